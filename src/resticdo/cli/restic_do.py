"""restic-do entry point: parse, load, validate, run, report."""

import signal
import sys
import threading
import types
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import IO

import requests

from resticdo import __version__
from resticdo.cli.arguments import (
    InvocationRequest,
    format_help,
    format_usage,
    format_version,
    parse_arguments,
    parse_early_arguments,
    pre_parse_arguments,
)
from resticdo.config import ConfigManager, ResticConfig
from resticdo.exceptions import (
    FlowAbortedError,
    NoActionError,
    ResticDoError,
    TerminationInterrupt,
    ValidationError,
)
from resticdo.flow import FLOW_STEPS, BackupFlow
from resticdo.logging import SUCCESS, LoggingConfig, configure_logging
from resticdo.notifier import NotificationContext, NotificationEvent, NotificationSender
from resticdo.restic import ResticClient
from resticdo.utils import validate_path
from resticdo.validation import ActionValidator

LOG_NAME = "restic_do"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

ACTION_TITLES = {
    "snapshots": "Listing repository snapshots",
    "check": "Checking repository integrity",
    "stats": "Repository statistics (raw data mode)",
    "stats.latest": "Latest snapshot statistics",
    "cache.cleanup": "Cleaning repository cache",
    "forget": "Forgetting and pruning old snapshots",
    "init": "Initializing repository",
    "unlock": "Unlocking repository",
}


def _raise_interrupt(signum: int, frame: types.FrameType | None) -> None:
    raise TerminationInterrupt


class ResticDo:
    """One restic-do run, from command line to exit code."""

    def __init__(self, argv: Sequence[str], stdin: IO[bytes] | None = None) -> None:
        """Initialize the run.

        Args:
            argv: Command-line arguments without the program name
            stdin: Stream forwarded to restic for stdin backups
                (defaults to this process's standard input)

        """
        self.argv = list(argv)
        self.stdin = stdin
        self.logger = configure_logging(LoggingConfig(log_name=LOG_NAME))
        self.config: ResticConfig | None = None
        self.request: InvocationRequest | None = None
        self.notifier: NotificationSender | None = None

    def run(self) -> int:
        """Execute the run and return the process exit code.

        Every exit path, including interrupts, goes through the same cleanup
        which logs the failure and sends at most one error notification.
        """
        exit_code = EXIT_SUCCESS
        error_message: str | None = None
        previous_handler = self._install_signal_handler()
        try:
            early = parse_early_arguments(self.argv)
            if early == "version":
                print(format_version())
                return EXIT_SUCCESS
            if early == "help":
                print(format_help())
                return EXIT_SUCCESS

            client = self._prepare()
            self._execute(client)
        except NoActionError as e:
            print(format_usage(), file=sys.stderr)
            exit_code = EXIT_FAILURE
            error_message = e.message
        except ResticDoError as e:
            exit_code = EXIT_FAILURE
            error_message = e.message
        except KeyboardInterrupt:
            exit_code = EXIT_INTERRUPTED
            error_message = "Script interrupted by user"
        finally:
            self._cleanup(exit_code, error_message)
            if previous_handler is not None:
                signal.signal(signal.SIGTERM, previous_handler)
        return exit_code

    @staticmethod
    def _install_signal_handler() -> Callable | int | None:
        if threading.current_thread() is not threading.main_thread():
            return None
        previous = signal.signal(signal.SIGTERM, _raise_interrupt)
        # None means the handler was not set from Python
        return signal.SIG_DFL if previous is None else previous

    def _setup_file_logging(self, log_file: Path) -> None:
        if not validate_path(log_file, "create"):
            error_msg = f"Cannot write to log file directory: {log_file.parent}"
            raise ValidationError(error_msg)
        self.logger = configure_logging(
            LoggingConfig(log_name=LOG_NAME, log_file=log_file),
        )
        self.logger.info(f"File logging enabled: {log_file}")

    def _prepare(self) -> ResticClient:
        """Load configuration, parse and validate; return a ready restic client."""
        pre_parsed = pre_parse_arguments(self.argv)
        if pre_parsed.log_file is not None:
            self._setup_file_logging(pre_parsed.log_file)

        env_file = pre_parsed.env_file
        self.logger.info(f"Loading environment from: {env_file}")
        config = ConfigManager.load_config(env_file)
        self.config = config
        self.notifier = NotificationSender(
            config.notifications,
            self.logger,
            requests.Session(),
        )
        self.logger.log(SUCCESS, "Environment loaded successfully")

        request = parse_arguments(self.argv, config)
        self.request = request

        client = ResticClient(
            config.restic_binary,
            config.repository,
            self.logger,
            config.restic_environment(),
        )
        client.ensure_available()

        ActionValidator(self.logger).validate(request)

        self.logger.info(f"Starting restic-do v{__version__}")
        self.logger.info(f"Action: {request.action}")
        self.logger.info(f"Environment: {request.env_file}")
        return client

    def _execute(self, client: ResticClient) -> None:
        request = self.request
        config = self.config
        if request is None or config is None:
            return

        success_message = f"Action '{request.action}' completed successfully"
        if request.action == "backup":
            self._backup(client, request)
            success_message = "Backup completed successfully!"
        elif request.action == "backup-flow":
            self._backup_flow(client, config, request)
            success_message = (
                f"Backup flow completed successfully ({len(FLOW_STEPS)} steps)"
            )
        else:
            self._single_action(client, config, request)

        self.logger.log(SUCCESS, success_message)
        if self.notifier is not None:
            emoji = config.notifications.emoji_success if request.is_backup else None
            self.notifier.notify(
                NotificationEvent.success(success_message, self._context(), emoji),
            )

    def _single_action(
        self,
        client: ResticClient,
        config: ResticConfig,
        request: InvocationRequest,
    ) -> None:
        action = request.action
        if action in ACTION_TITLES:
            self.logger.info(ACTION_TITLES[action])

        if action == "snapshots":
            client.snapshots()
        elif action == "check":
            client.check()
        elif action == "stats":
            client.stats()
        elif action == "stats.latest":
            client.stats_latest()
        elif action == "cache.cleanup":
            client.cache_cleanup()
        elif action == "forget":
            client.forget(config.retention)
        elif action == "init":
            client.init()
        elif action == "unlock":
            client.unlock()
        elif action == "restore":
            self.logger.info(
                f"Restoring snapshot {request.snapshot_id} to {request.target_dir}",
            )
            client.restore(request.snapshot_id or "", request.target_dir or "")
        elif action == "restore.latest":
            self.logger.info(f"Restoring latest snapshot to {request.target_dir}")
            client.restore_latest(request.target_dir or "")
        elif action == "ls":
            self.logger.info(f"Listing files in snapshot {request.snapshot_id}")
            client.ls(request.snapshot_id or "")
        elif action == "find":
            self.logger.info(f"Finding files matching pattern: {request.pattern}")
            client.find(request.pattern or "")
        elif action == "mount":
            self.logger.info(f"Mounting repository to {request.mount_dir}")
            self.logger.info("Note: This command requires FUSE to be installed")
            self.logger.info("Press Ctrl+C to unmount")
            client.mount(request.mount_dir or "")
        elif action == "diff":
            self.logger.info(
                f"Comparing snapshots {request.snapshot_id1} and {request.snapshot_id2}",
            )
            client.diff(request.snapshot_id1 or "", request.snapshot_id2 or "")

    def _stdin_stream(self) -> IO[bytes]:
        return self.stdin if self.stdin is not None else sys.stdin.buffer

    def _backup(self, client: ResticClient, request: InvocationRequest) -> None:
        if request.source_type == "stdin":
            self.logger.info(f"Backing up from stdin: {request.stdin_filename}")
            client.backup_stdin(
                request.stdin_filename or "",
                request.excludes,
                self._stdin_stream(),
            )
        else:
            self.logger.info(f"Backing up directory: {request.source_value}")
            client.backup_directory(request.source_value or "", request.excludes)

    def _backup_flow(
        self,
        client: ResticClient,
        config: ResticConfig,
        request: InvocationRequest,
    ) -> None:
        flow = BackupFlow(client, config, request, self.logger, self.stdin)
        result = flow.run()
        failed = result.failed_step
        if failed is not None:
            error_msg = (
                f"Backup flow aborted at step {failed.position}/{len(FLOW_STEPS)} "
                f"({failed.step.title}): exit code {failed.exit_status}"
            )
            raise FlowAbortedError(error_msg, result)

    def _context(self) -> NotificationContext:
        config = self.config
        request = self.request
        backup = request is not None and request.is_backup
        return NotificationContext(
            repository=config.repository if config else None,
            action=request.action if request else None,
            source_type=request.source_type if backup else None,
            source_value=request.source_value if backup else None,
            stdin_filename=request.stdin_filename if backup else None,
            config_excludes=config.exclude if config and backup else None,
            cli_excludes=request.cli_excludes if request and backup else (),
        )

    def _cleanup(self, exit_code: int, error_message: str | None) -> None:
        if exit_code != EXIT_SUCCESS:
            self.logger.error(error_message or f"Exited with error code: {exit_code}")
            if self.notifier is not None:
                self.notifier.notify(
                    NotificationEvent.error(
                        f"❌ Error: {error_message}",
                        self._context(),
                    ),
                )
        if self.notifier is not None:
            self.notifier.close()


def main() -> None:
    """Run restic-do with the process command line."""
    sys.exit(ResticDo(sys.argv[1:]).run())


if __name__ == "__main__":
    main()
