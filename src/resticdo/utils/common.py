"""Common utility functions for restic-do."""

import os
from pathlib import Path
from typing import Literal

PathOperation = Literal["read", "write", "create"]


def validate_path(path: Path, operation: PathOperation) -> bool:
    """Check that a path can be used for the given operation.

    Args:
    ----
        path: Path to validate
        operation: "read" or "write" test access to the path itself,
            "create" tests that the parent directory exists and is writable

    Returns:
    -------
        True if the path is usable, False otherwise

    """
    if operation == "read":
        return os.access(path, os.R_OK)
    if operation == "write":
        return os.access(path, os.W_OK)
    parent = Path(path).parent
    return parent.is_dir() and os.access(parent, os.W_OK)
