"""Command-line interface for restic-do."""
