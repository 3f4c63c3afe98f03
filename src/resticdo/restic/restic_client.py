"""Restic client for executing restic commands with pass-through output."""

import logging
import os
import shutil
import signal
import subprocess
from collections.abc import Sequence
from typing import IO

from resticdo.config import RetentionPolicy
from resticdo.exceptions import (
    ResticCommandFailedError,
    ResticNotFoundError,
    TerminationInterrupt,
)


class ResticClient:
    """Handles all restic command execution.

    Every command runs against one repository and inherits this process's
    stdout and stderr, so restic's progress output reaches the terminal
    unchanged. Only the exit code is interpreted.
    """

    def __init__(
        self,
        restic_path: str,
        repository: str,
        logger: logging.Logger,
        environment: dict[str, str] | None = None,
    ) -> None:
        """Initialize the restic client with binary, repository, logger and environment."""
        self.restic_path = restic_path
        self.repository = repository
        self.logger = logger
        self.environment = environment or {}

    def ensure_available(self) -> str:
        """Check that the restic binary can be found and log its version.

        Returns:
            Absolute path of the restic binary

        Raises:
            ResticNotFoundError: If restic is not installed or not on PATH

        """
        self.logger.info("Checking system dependencies...")
        resolved = shutil.which(self.restic_path)
        if resolved is None:
            error_msg = (
                f"{self.restic_path} command not found. Please install restic "
                "and ensure it's in your PATH."
            )
            raise ResticNotFoundError(error_msg)

        try:
            result = subprocess.run(  # noqa: S603
                [resolved, "version"],
                capture_output=True,
                text=True,
                check=False,
            )
            version = result.stdout.splitlines()[0] if result.stdout else "unknown"
        except OSError:
            version = "unknown"
        self.logger.info(f"Found restic: {version}")
        return resolved

    def _build_command(self, arguments: Sequence[str]) -> list[str]:
        return [self.restic_path, "--repo", self.repository, *arguments]

    def invoke(self, arguments: Sequence[str], stdin: IO[bytes] | None = None) -> int:
        """Run restic with the given arguments and wait for it to exit.

        Args:
            arguments: Action verb followed by its flags and positionals
            stdin: Stream connected to restic's standard input, if any

        Returns:
            The exit status, which is always 0 on return

        Raises:
            ResticCommandFailedError: If restic exits with a nonzero status
            ResticNotFoundError: If the restic process cannot be started
            KeyboardInterrupt: After restic has exited, if the run was
                interrupted while it was running

        """
        command = self._build_command(arguments)
        self.logger.debug(f"Running command: {' '.join(command)}")

        try:
            process = subprocess.Popen(  # noqa: S603
                command,
                stdin=stdin,
                env={**os.environ, **self.environment},
            )
        except OSError as e:
            error_msg = f"Failed to start {self.restic_path}: {e}"
            raise ResticNotFoundError(error_msg, original_error=e) from e

        with process:
            try:
                returncode = process.wait()
            except KeyboardInterrupt as e:
                self._wait_after_interrupt(process, e)
                raise

        if returncode != 0:
            verb = arguments[0] if arguments else ""
            raise ResticCommandFailedError(verb, returncode)
        return returncode

    def _wait_after_interrupt(
        self,
        process: subprocess.Popen,
        interrupt: KeyboardInterrupt,
    ) -> None:
        """Let restic finish its own cleanup; it is never killed.

        Ctrl+C already reached restic through the terminal's process group.
        SIGTERM only reached this process and is forwarded.
        """
        self.logger.info("Interrupted, waiting for restic to exit...")
        while True:
            if isinstance(interrupt, TerminationInterrupt):
                process.send_signal(signal.SIGTERM)
            try:
                process.wait()
            except KeyboardInterrupt as e:
                interrupt = e
                continue
            return

    @staticmethod
    def _exclude_arguments(excludes: Sequence[str]) -> list[str]:
        arguments: list[str] = []
        for pattern in excludes:
            arguments.extend(["--exclude", pattern])
        return arguments

    def snapshots(self) -> int:
        """List all snapshots in the repository."""
        return self.invoke(["snapshots"])

    def backup_directory(self, source: str, excludes: Sequence[str]) -> int:
        """Back up a directory."""
        self.logger.info(
            f"Starting directory backup with {len(excludes)} exclude rules",
        )
        return self.invoke(["backup", *self._exclude_arguments(excludes), source])

    def backup_stdin(
        self,
        filename: str,
        excludes: Sequence[str],
        stdin: IO[bytes],
    ) -> int:
        """Back up whatever is streamed on stdin under the given filename."""
        self.logger.info("Starting stdin backup")
        return self.invoke(
            [
                "backup",
                *self._exclude_arguments(excludes),
                "--stdin",
                "--stdin-filename",
                filename,
            ],
            stdin=stdin,
        )

    def check(self) -> int:
        """Check repository integrity, reading all pack data."""
        return self.invoke(["check", "--read-data"])

    def stats(self) -> int:
        """Show repository statistics in raw-data mode."""
        return self.invoke(["stats", "--mode", "raw-data"])

    def stats_latest(self) -> int:
        """Show the restore size of the latest snapshot."""
        return self.invoke(["stats", "latest", "--mode", "restore-size"])

    def cache_cleanup(self) -> int:
        """Remove old cache directories."""
        return self.invoke(["cache", "--cleanup"])

    def forget(self, retention: RetentionPolicy) -> int:
        """Forget snapshots outside the retention policy and prune the repository."""
        if retention.is_empty():
            self.logger.warning(
                "No retention policy configured; restic will not remove any snapshot",
            )
        return self.invoke(["forget", *retention.to_arguments(), "--prune"])

    def init(self) -> int:
        """Initialize a new repository."""
        return self.invoke(["init"])

    def unlock(self) -> int:
        """Remove stale locks from the repository."""
        return self.invoke(["unlock"])

    def restore(self, snapshot_id: str, target_dir: str) -> int:
        """Restore a snapshot into a target directory."""
        return self.invoke(["restore", snapshot_id, "--target", target_dir])

    def restore_latest(self, target_dir: str) -> int:
        """Restore the latest snapshot into a target directory."""
        return self.restore("latest", target_dir)

    def ls(self, snapshot_id: str) -> int:
        """List files in a snapshot."""
        return self.invoke(["ls", snapshot_id])

    def find(self, pattern: str) -> int:
        """Find files matching a pattern across all snapshots."""
        return self.invoke(["find", pattern])

    def mount(self, mount_dir: str) -> int:
        """Mount the repository with FUSE; blocks until unmounted."""
        return self.invoke(["mount", mount_dir])

    def diff(self, snapshot_id1: str, snapshot_id2: str) -> int:
        """Show differences between two snapshots."""
        return self.invoke(["diff", snapshot_id1, snapshot_id2])
