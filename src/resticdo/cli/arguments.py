"""Command-line parsing for restic-do.

Parsing happens in three passes. The early pass only looks for --version and
--help so they work even when the env file is missing or broken. The pre-pass
finds --env-file and --log-file, which must be known before configuration is
loaded. The main pass validates every token and merges the result with the
loaded configuration into an InvocationRequest.
"""

import argparse
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from resticdo import __version__
from resticdo.config import ResticConfig
from resticdo.exceptions import (
    ArgumentError,
    InvalidActionError,
    MissingFlagValueError,
    NoActionError,
    UnknownArgumentError,
)

PROGRAM_NAME = "restic-do"
DEFAULT_ENV_FILE = ".env"

ACTIONS: dict[str, str] = {
    "snapshots": "List all snapshots in the repository",
    "backup": "Perform a backup operation",
    "backup-flow": "Execute full backup cycle (check, backup, prune, check)",
    "check": "Check repository integrity",
    "stats": "Show repository statistics (raw data mode)",
    "stats.latest": "Show statistics for the latest snapshot",
    "cache.cleanup": "Clean up local cache",
    "forget": "Forget and prune old snapshots",
    "init": "Initialize a new repository",
    "unlock": "Unlock a locked repository",
    "restore": "Restore a specific snapshot",
    "restore.latest": "Restore the latest snapshot",
    "ls": "List files in a snapshot",
    "find": "Find files matching pattern across snapshots",
    "mount": "Mount repository using FUSE",
    "diff": "Show differences between two snapshots",
}

BACKUP_ACTIONS = frozenset({"backup", "backup-flow"})

EXAMPLES = """\
examples:
  # Initialize a new repository
  restic-do --action init --env-file ./config/.env

  # Backup a directory with exclusions
  restic-do --action backup --env-file ./config/.env \\
    --source-type dir --source-value /home/user/documents \\
    --exclude "*.tmp" --exclude "cache/"

  # Backup database dump from stdin
  pg_dump mydb | restic-do --action backup --env-file ./config/.env \\
    --source-type stdin --stdin-filename "mydb_$(date +%Y%m%d).sql"

  # Full backup cycle with logging
  restic-do --action backup-flow --env-file ./config/.env \\
    --source-value /data --log-file ./backup.log

  # Restore latest snapshot
  restic-do --action restore.latest --env-file ./config/.env \\
    --target-dir /tmp/restore

All configuration is read from the env file (default: ./.env).
"""


@dataclass(frozen=True)
class PreParsedArguments:
    """Arguments needed before the configuration is loaded."""

    env_file: Path
    log_file: Path | None


@dataclass(frozen=True)
class InvocationRequest:
    """A fully parsed and merged restic-do invocation."""

    action: str
    env_file: Path
    log_file: Path | None = None
    snapshot_id: str | None = None
    target_dir: str | None = None
    pattern: str | None = None
    mount_dir: str | None = None
    snapshot_id1: str | None = None
    snapshot_id2: str | None = None
    source_type: str | None = None
    source_value: str | None = None
    stdin_filename: str | None = None
    cli_excludes: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()

    @property
    def is_backup(self) -> bool:
        """Return True for actions that take a backup."""
        return self.action in BACKUP_ACTIONS


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of printing and exiting."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise ArgumentError(message)


def _action_list() -> str:
    width = max(len(name) for name in ACTIONS) + 2
    lines = ["actions:"]
    lines.extend(
        f"  {name.ljust(width)}{description}" for name, description in ACTIONS.items()
    )
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    """Build the parser for the main pass."""
    parser = _ArgumentParser(
        prog=PROGRAM_NAME,
        usage=f"{PROGRAM_NAME} --action <action> [options]",
        description="A wrapper for the restic backup tool.",
        epilog=f"{_action_list()}\n\n{EXAMPLES}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        allow_abbrev=False,
        exit_on_error=False,
    )

    global_options = parser.add_argument_group("global options")
    global_options.add_argument(
        "--action",
        metavar="<action>",
        help="Action to perform (see list below)",
    )
    global_options.add_argument(
        "--env-file",
        metavar="<path>",
        help=f"Path to env configuration file (default: ./{DEFAULT_ENV_FILE})",
    )
    global_options.add_argument(
        "--log-file",
        metavar="<path>",
        help="Enable file logging to specified path",
    )
    global_options.add_argument(
        "--version",
        action="store_true",
        help="Show version information",
    )
    global_options.add_argument(
        "--help",
        action="store_true",
        help="Display this help message",
    )

    backup_options = parser.add_argument_group("backup options")
    backup_options.add_argument(
        "--source-type",
        metavar="<type>",
        help="Backup source type: 'dir' or 'stdin'",
    )
    backup_options.add_argument(
        "--source-value",
        metavar="<path>",
        help="Directory path (required for 'dir' type)",
    )
    backup_options.add_argument(
        "--stdin-filename",
        metavar="<name>",
        help="Filename for stdin backup (required for 'stdin' type)",
    )
    backup_options.add_argument(
        "--exclude",
        metavar="<pattern>",
        action="append",
        default=[],
        help="Exclude pattern (can be used multiple times)",
    )

    restore_options = parser.add_argument_group("restore options")
    restore_options.add_argument(
        "--snapshot-id",
        metavar="<id>",
        help="Snapshot ID for restore/ls operations",
    )
    restore_options.add_argument(
        "--target-dir",
        metavar="<path>",
        help="Target directory for restore operations",
    )

    search_options = parser.add_argument_group("search options")
    search_options.add_argument(
        "--pattern",
        metavar="<pattern>",
        help="Search pattern for find operation",
    )

    mount_options = parser.add_argument_group("mount options")
    mount_options.add_argument(
        "--mount-dir",
        metavar="<path>",
        help="Directory to mount repository",
    )

    diff_options = parser.add_argument_group("diff options")
    diff_options.add_argument(
        "--snapshot-id1",
        metavar="<id>",
        help="First snapshot ID for comparison",
    )
    diff_options.add_argument(
        "--snapshot-id2",
        metavar="<id>",
        help="Second snapshot ID for comparison",
    )

    return parser


def format_help() -> str:
    """Return the full help text."""
    return build_parser().format_help()


def format_usage() -> str:
    """Return the one-line usage text."""
    return build_parser().format_usage()


def format_version() -> str:
    """Return the version banner."""
    return (
        f"{PROGRAM_NAME} version {__version__}\n"
        "A Python wrapper for the restic backup tool\n"
        "License: MIT"
    )


def parse_early_arguments(argv: Sequence[str]) -> str | None:
    """Look for --version or --help anywhere on the command line.

    Every other token is ignored, valid or not.

    Returns:
        "version" or "help" for whichever appears first, None if neither does

    """
    for token in argv:
        if token == "--version":
            return "version"
        if token == "--help":
            return "help"
    return None


def _known_args(
    parser: argparse.ArgumentParser,
    argv: Sequence[str],
) -> tuple[argparse.Namespace, list[str]]:
    try:
        return parser.parse_known_args(list(argv))
    except argparse.ArgumentError as e:
        if e.argument_name and "expected one argument" in e.message:
            raise MissingFlagValueError(e.argument_name) from e
        raise ArgumentError(str(e), original_error=e) from e


def _require_value(flag: str, value: str | None) -> None:
    if value is not None and not value:
        raise MissingFlagValueError(flag)


def pre_parse_arguments(argv: Sequence[str]) -> PreParsedArguments:
    """Find --env-file and --log-file before the configuration is loaded.

    Raises:
        MissingFlagValueError: If either flag is given without a value

    """
    parser = _ArgumentParser(add_help=False, allow_abbrev=False, exit_on_error=False)
    parser.add_argument("--env-file")
    parser.add_argument("--log-file")
    namespace, _ = _known_args(parser, argv)

    _require_value("--env-file", namespace.env_file)
    _require_value("--log-file", namespace.log_file)

    return PreParsedArguments(
        env_file=Path(namespace.env_file or DEFAULT_ENV_FILE),
        log_file=Path(namespace.log_file) if namespace.log_file else None,
    )


def build_exclude_list(
    config_value: str | None,
    cli_patterns: Iterable[str],
) -> list[str]:
    """Merge configured and command-line exclude patterns.

    Patterns from the comma-separated configuration value come first, then
    command-line patterns, each stripped of surrounding whitespace. Empty
    entries are dropped.
    """
    patterns = (config_value or "").split(",")
    patterns.extend(cli_patterns)
    return [stripped for pattern in patterns if (stripped := pattern.strip())]


def parse_arguments(argv: Sequence[str], config: ResticConfig) -> InvocationRequest:
    """Parse the full command line and merge it with the configuration.

    Command-line values take precedence over the configuration for the source
    type, source value and stdin filename.

    Raises:
        MissingFlagValueError: If a flag is missing its value
        UnknownArgumentError: If a token is not recognized
        NoActionError: If --action was not given
        InvalidActionError: If --action names an unsupported action

    """
    parser = build_parser()
    namespace, extras = _known_args(parser, argv)
    if extras:
        raise UnknownArgumentError(extras[0])

    for action in parser._actions:  # noqa: SLF001
        if not action.option_strings or action.nargs == 0:
            continue
        value = getattr(namespace, action.dest)
        values = value if isinstance(value, list) else [value]
        for item in values:
            _require_value(action.option_strings[0], item)

    if namespace.action is None:
        error_msg = "No action specified. Use --action <action>"
        raise NoActionError(error_msg)
    if namespace.action not in ACTIONS:
        error_msg = f"Invalid action: {namespace.action}"
        raise InvalidActionError(error_msg)

    cli_excludes = tuple(namespace.exclude)
    return InvocationRequest(
        action=namespace.action,
        env_file=Path(namespace.env_file or DEFAULT_ENV_FILE),
        log_file=Path(namespace.log_file) if namespace.log_file else None,
        snapshot_id=namespace.snapshot_id,
        target_dir=namespace.target_dir,
        pattern=namespace.pattern,
        mount_dir=namespace.mount_dir,
        snapshot_id1=namespace.snapshot_id1,
        snapshot_id2=namespace.snapshot_id2,
        source_type=namespace.source_type or config.source_type,
        source_value=namespace.source_value or config.source_value,
        stdin_filename=namespace.stdin_filename or config.stdin_filename,
        cli_excludes=cli_excludes,
        excludes=tuple(build_exclude_list(config.exclude, cli_excludes)),
    )
