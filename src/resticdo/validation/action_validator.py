"""Per-action parameter validation."""

import logging
import re
from pathlib import Path

from resticdo.cli.arguments import InvocationRequest
from resticdo.exceptions import ValidationError
from resticdo.utils import validate_path

SOURCE_TYPES = ("dir", "stdin")

# action -> ((request attribute, flag name), ...)
REQUIRED_PARAMETERS: dict[str, tuple[tuple[str, str], ...]] = {
    "restore": (("snapshot_id", "--snapshot-id"), ("target_dir", "--target-dir")),
    "restore.latest": (("target_dir", "--target-dir"),),
    "ls": (("snapshot_id", "--snapshot-id"),),
    "find": (("pattern", "--pattern"),),
    "mount": (("mount_dir", "--mount-dir"),),
    "diff": (("snapshot_id1", "--snapshot-id1"), ("snapshot_id2", "--snapshot-id2")),
}

_UNSAFE_FILENAME = re.compile(r"[\s/\\]")


class ActionValidator:
    """Checks that an invocation has everything its action needs."""

    def __init__(self, logger: logging.Logger) -> None:
        """Initialize the validator with a logger."""
        self.logger = logger

    def validate(self, request: InvocationRequest) -> None:
        """Validate the request for its action.

        Raises:
            ValidationError: On the first failed check, naming that check

        """
        for attribute, flag in REQUIRED_PARAMETERS.get(request.action, ()):
            if not getattr(request, attribute):
                error_msg = f"{flag} is required for {request.action} action"
                raise ValidationError(error_msg)

        if request.is_backup:
            self.validate_backup_source(request)

        if request.target_dir:
            self._validate_target_dir(Path(request.target_dir))

        if request.mount_dir:
            self._validate_mount_dir(Path(request.mount_dir))

        self.logger.debug(f"Parameters for action '{request.action}' are valid")

    def validate_backup_source(self, request: InvocationRequest) -> None:
        """Validate the backup source type and its value.

        Raises:
            ValidationError: If the source type is unknown, the directory is
                missing or unreadable, or the stdin filename is absent or unsafe

        """
        source_type = request.source_type
        if not source_type:
            error_msg = "Backup source type is required. Use --source-type dir|stdin"
            raise ValidationError(error_msg)

        if source_type == "dir":
            source = request.source_value
            if not source:
                error_msg = (
                    "Directory path is required for 'dir' source type. "
                    "Use --source-value <path>"
                )
                raise ValidationError(error_msg)
            if not Path(source).is_dir():
                error_msg = f"Source directory does not exist: {source}"
                raise ValidationError(error_msg)
            if not validate_path(Path(source), "read"):
                error_msg = f"Source directory is not readable: {source}"
                raise ValidationError(error_msg)
            return

        if source_type == "stdin":
            filename = request.stdin_filename
            if not filename:
                error_msg = (
                    "Filename is required for 'stdin' source type. "
                    "Use --stdin-filename <name>"
                )
                raise ValidationError(error_msg)
            if _UNSAFE_FILENAME.search(filename):
                error_msg = f"Invalid filename for stdin backup: {filename}"
                raise ValidationError(error_msg)
            return

        error_msg = (
            f"Invalid backup source type: {source_type} "
            f"(must be {' or '.join(repr(t) for t in SOURCE_TYPES)})"
        )
        raise ValidationError(error_msg)

    def _validate_target_dir(self, target_dir: Path) -> None:
        parent = target_dir.parent
        if not parent.is_dir():
            error_msg = f"Parent directory for target does not exist: {parent}"
            raise ValidationError(error_msg)
        if not validate_path(target_dir, "create"):
            error_msg = f"Cannot write to target parent directory: {parent}"
            raise ValidationError(error_msg)

    def _validate_mount_dir(self, mount_dir: Path) -> None:
        if not mount_dir.is_dir():
            error_msg = f"Mount directory does not exist: {mount_dir}"
            raise ValidationError(error_msg)
        if not validate_path(mount_dir, "write"):
            error_msg = f"Cannot write to mount directory: {mount_dir}"
            raise ValidationError(error_msg)
