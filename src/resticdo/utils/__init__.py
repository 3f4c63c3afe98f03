"""Utility functions for restic-do."""

from .common import validate_path

__all__ = ["validate_path"]
