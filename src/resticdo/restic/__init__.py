"""Adapter around the restic command-line tool."""

from .restic_client import ResticClient

__all__ = ["ResticClient"]
