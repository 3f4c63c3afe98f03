"""End-to-end tests for the restic-do command."""

import io
import os
import signal
import subprocess
import tempfile
import threading
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from resticdo.cli.restic_do import EXIT_FAILURE, EXIT_INTERRUPTED, ResticDo
from resticdo.exceptions import ResticCommandFailedError
from resticdo.notifier import NotificationEvent
from resticdo.notifier.notifier import NotificationKind

REPO = "/srv/restic-repo"
BASE_ENV = (
    f"RESTIC_REPO={REPO}\n"
    "RESTIC_PASSWORD=secret\n"
    "SLACK_HOOK=https://hooks.example.com/T000\n"
    "SLACK_SEND_NOTIFICATIONS_ON_SUCCESS=true\n"
    "SLACK_SEND_NOTIFICATIONS_ON_ERROR=true\n"
)

# Stands in for restic: answers "version" and otherwise runs until SIGTERM,
# then takes a moment to clean up before exiting.
FAKE_RESTIC = """\
#!/bin/sh
if [ "$1" = "version" ]; then
    echo "restic 0.0.0"
    exit 0
fi
trap 'kill "$child" 2>/dev/null; sleep 0.5; touch "$CLEANUP_MARKER"; exit 143' TERM
sleep 30 &
child=$!
wait "$child"
"""


@pytest.fixture
def workdir() -> Iterator[Path]:
    """Provide a temporary directory holding an env file."""
    with tempfile.TemporaryDirectory() as temp_dir:
        path = Path(temp_dir)
        (path / ".env").write_text(BASE_ENV)
        yield path


def sent_events(mock_sender_cls: MagicMock) -> list[NotificationEvent]:
    """Return the events passed to the patched sender."""
    sender = mock_sender_cls.return_value
    return [call.args[0] for call in sender.notify.call_args_list]


class TestEarlyExit:
    """Test cases for --version and --help."""

    @patch("resticdo.cli.restic_do.ResticClient")
    def test_version(self, mock_client_cls: MagicMock, capsys) -> None:
        """Test that --version prints and exits without touching restic."""
        assert ResticDo(["--action", "check", "--version"]).run() == 0

        assert capsys.readouterr().out.startswith("restic-do version ")
        mock_client_cls.assert_not_called()

    @patch("resticdo.cli.restic_do.ResticClient")
    def test_help_with_invalid_flags(self, mock_client_cls: MagicMock, capsys) -> None:
        """Test that --help wins over otherwise invalid command lines."""
        assert ResticDo(["--bogus", "--help"]).run() == 0

        assert "--action" in capsys.readouterr().out
        mock_client_cls.assert_not_called()


class TestSingleActions:
    """Test cases for single restic actions."""

    @patch("resticdo.restic.restic_client.shutil.which", return_value="/usr/bin/restic")
    @patch(
        "resticdo.restic.restic_client.subprocess.run",
        return_value=subprocess.CompletedProcess([], 0, stdout=""),
    )
    @patch("resticdo.restic.restic_client.subprocess.Popen")
    def test_restore_runs_restic(
        self,
        mock_popen: MagicMock,
        mock_run: MagicMock,
        mock_which: MagicMock,
        workdir: Path,
    ) -> None:
        """Test the restic command line for a restore."""
        mock_popen.return_value.wait.return_value = 0
        target = str(workdir / "restore")

        with patch("resticdo.cli.restic_do.NotificationSender") as mock_sender_cls:
            exit_code = ResticDo(
                [
                    "--action",
                    "restore",
                    "--snapshot-id",
                    "abc123",
                    "--target-dir",
                    target,
                    "--env-file",
                    str(workdir / ".env"),
                ],
            ).run()

        assert exit_code == 0
        command = mock_popen.call_args.args[0]
        assert command == ["restic", "--repo", REPO, "restore", "abc123", "--target", target]
        assert mock_popen.call_args.kwargs["env"]["RESTIC_PASSWORD"] == "secret"

        events = sent_events(mock_sender_cls)
        assert len(events) == 1
        assert events[0].kind is NotificationKind.SUCCESS
        assert events[0].message == "Action 'restore' completed successfully"
        assert events[0].context.repository == REPO
        assert events[0].context.source_type is None
        assert events[0].emoji is None

    @patch("resticdo.cli.restic_do.requests.Session")
    @patch("resticdo.cli.restic_do.ResticClient")
    def test_restore_without_success_notifications(
        self,
        mock_client_cls: MagicMock,
        mock_session_cls: MagicMock,
        workdir: Path,
        capsys,
    ) -> None:
        """Test that a disabled success toggle posts nothing but still logs success."""
        env_file = workdir / ".env"
        env_file.write_text(BASE_ENV.replace("ON_SUCCESS=true", "ON_SUCCESS=false"))
        target = str(workdir / "restore")

        exit_code = ResticDo(
            [
                "--action",
                "restore",
                "--snapshot-id",
                "abc123",
                "--target-dir",
                target,
                "--env-file",
                str(env_file),
            ],
        ).run()

        assert exit_code == 0
        mock_client_cls.return_value.restore.assert_called_once_with("abc123", target)
        mock_session_cls.return_value.post.assert_not_called()
        assert "[SUCCESS] Action 'restore' completed successfully" in (
            capsys.readouterr().out
        )

    @patch("resticdo.cli.restic_do.NotificationSender")
    @patch("resticdo.cli.restic_do.ResticClient")
    def test_forget_uses_configured_retention(
        self,
        mock_client_cls: MagicMock,
        mock_sender_cls: MagicMock,
        workdir: Path,
    ) -> None:
        """Test that forget receives the retention policy from the env file."""
        env_file = workdir / ".env"
        env_file.write_text(BASE_ENV + "RESTIC_REPO_KEEP_LAST=5\n")

        assert ResticDo(["--action", "forget", "--env-file", str(env_file)]).run() == 0

        client = mock_client_cls.return_value
        retention = client.forget.call_args.args[0]
        assert retention.keep_last == 5

    @patch("resticdo.cli.restic_do.NotificationSender")
    @patch("resticdo.cli.restic_do.ResticClient")
    def test_restic_failure(
        self,
        mock_client_cls: MagicMock,
        mock_sender_cls: MagicMock,
        workdir: Path,
    ) -> None:
        """Test that a failing restic run exits 1 and reports the error."""
        client = mock_client_cls.return_value
        client.check.side_effect = ResticCommandFailedError("check", 3)

        exit_code = ResticDo(
            ["--action", "check", "--env-file", str(workdir / ".env")],
        ).run()

        assert exit_code == EXIT_FAILURE
        events = sent_events(mock_sender_cls)
        assert [event.kind for event in events] == [NotificationKind.ERROR]
        assert events[0].message == "❌ Error: restic check failed with exit code 3"


class TestBackup:
    """Test cases for backup and backup-flow."""

    @patch("resticdo.restic.restic_client.shutil.which", return_value="/usr/bin/restic")
    @patch(
        "resticdo.restic.restic_client.subprocess.run",
        return_value=subprocess.CompletedProcess([], 0, stdout=""),
    )
    @patch("resticdo.restic.restic_client.subprocess.Popen")
    def test_stdin_backup_with_excludes(
        self,
        mock_popen: MagicMock,
        mock_run: MagicMock,
        mock_which: MagicMock,
        workdir: Path,
    ) -> None:
        """Test a stdin backup with configured and CLI exclude patterns."""
        mock_popen.return_value.wait.return_value = 0
        env_file = workdir / ".env"
        env_file.write_text(BASE_ENV + "BACKUP_EXCLUDE=*.log,node_modules/\n")
        stream = io.BytesIO(b"-- dump --")

        with patch("resticdo.cli.restic_do.NotificationSender") as mock_sender_cls:
            exit_code = ResticDo(
                [
                    "--action",
                    "backup",
                    "--source-type",
                    "stdin",
                    "--stdin-filename",
                    "dump.sql",
                    "--exclude",
                    "*.tmp",
                    "--exclude",
                    "cache/",
                    "--env-file",
                    str(env_file),
                ],
                stdin=stream,
            ).run()

        assert exit_code == 0
        call = mock_popen.call_args
        assert call.args[0] == [
            "restic",
            "--repo",
            REPO,
            "backup",
            "--exclude",
            "*.log",
            "--exclude",
            "node_modules/",
            "--exclude",
            "*.tmp",
            "--exclude",
            "cache/",
            "--stdin",
            "--stdin-filename",
            "dump.sql",
        ]
        assert call.kwargs["stdin"] is stream

        event = sent_events(mock_sender_cls)[0]
        assert event.message == "Backup completed successfully!"
        assert event.context.stdin_filename == "dump.sql"
        assert event.context.config_excludes == "*.log,node_modules/"
        assert event.emoji == ":white_check_mark:"
        assert event.context.cli_excludes == ("*.tmp", "cache/")

    @patch("resticdo.cli.restic_do.NotificationSender")
    @patch("resticdo.cli.restic_do.ResticClient")
    def test_backup_flow_completes(
        self,
        mock_client_cls: MagicMock,
        mock_sender_cls: MagicMock,
        workdir: Path,
    ) -> None:
        """Test that a clean backup flow exits 0 with one success notification."""
        exit_code = ResticDo(
            [
                "--action",
                "backup-flow",
                "--source-type",
                "dir",
                "--source-value",
                str(workdir),
                "--env-file",
                str(workdir / ".env"),
            ],
        ).run()

        assert exit_code == 0
        client = mock_client_cls.return_value
        assert client.check.call_count == 3
        client.stats.assert_called_once()
        events = sent_events(mock_sender_cls)
        assert [event.kind for event in events] == [NotificationKind.SUCCESS]

    @patch("resticdo.cli.restic_do.NotificationSender")
    @patch("resticdo.cli.restic_do.ResticClient")
    def test_backup_flow_abort(
        self,
        mock_client_cls: MagicMock,
        mock_sender_cls: MagicMock,
        workdir: Path,
    ) -> None:
        """Test that a failed backup step stops the flow and exits 1."""
        client = mock_client_cls.return_value
        client.backup_directory.side_effect = ResticCommandFailedError("backup", 1)

        exit_code = ResticDo(
            [
                "--action",
                "backup-flow",
                "--source-value",
                str(workdir),
                "--env-file",
                str(workdir / ".env"),
            ],
        ).run()

        assert exit_code == EXIT_FAILURE
        assert client.check.call_count == 1
        client.forget.assert_not_called()
        events = sent_events(mock_sender_cls)
        assert len(events) == 1
        assert events[0].kind is NotificationKind.ERROR
        assert "step 2/8 (Performing backup)" in events[0].message

    @patch("resticdo.cli.restic_do.NotificationSender")
    @patch("resticdo.cli.restic_do.ResticClient")
    def test_invalid_source_runs_nothing(
        self,
        mock_client_cls: MagicMock,
        mock_sender_cls: MagicMock,
        workdir: Path,
    ) -> None:
        """Test that a missing source directory fails before any restic action."""
        exit_code = ResticDo(
            [
                "--action",
                "backup-flow",
                "--source-value",
                str(workdir / "missing"),
                "--env-file",
                str(workdir / ".env"),
            ],
        ).run()

        assert exit_code == EXIT_FAILURE
        client = mock_client_cls.return_value
        client.check.assert_not_called()
        client.backup_directory.assert_not_called()
        assert "Source directory does not exist" in sent_events(mock_sender_cls)[0].message


class TestFailures:
    """Test cases for configuration, argument and interrupt failures."""

    @patch("resticdo.cli.restic_do.NotificationSender")
    @patch("resticdo.cli.restic_do.ResticClient")
    def test_missing_required_setting(
        self,
        mock_client_cls: MagicMock,
        mock_sender_cls: MagicMock,
        workdir: Path,
        capsys,
    ) -> None:
        """Test that a missing password exits 1 without running restic."""
        env_file = workdir / ".env"
        env_file.write_text(f"RESTIC_REPO={REPO}\n")

        exit_code = ResticDo(["--action", "snapshots", "--env-file", str(env_file)]).run()

        assert exit_code == EXIT_FAILURE
        mock_client_cls.assert_not_called()
        mock_sender_cls.assert_not_called()
        assert "Required environment variable not set: RESTIC_PASSWORD" in (
            capsys.readouterr().err
        )

    @patch("resticdo.cli.restic_do.ResticClient")
    def test_missing_env_file(self, mock_client_cls: MagicMock, workdir: Path) -> None:
        """Test that a missing env file exits 1."""
        exit_code = ResticDo(
            ["--action", "snapshots", "--env-file", str(workdir / "nope.env")],
        ).run()

        assert exit_code == EXIT_FAILURE
        mock_client_cls.assert_not_called()

    @patch("resticdo.cli.restic_do.NotificationSender")
    @patch("resticdo.cli.restic_do.ResticClient")
    def test_no_action_prints_usage(
        self,
        mock_client_cls: MagicMock,
        mock_sender_cls: MagicMock,
        workdir: Path,
        capsys,
    ) -> None:
        """Test that a missing --action exits 1 with usage on stderr."""
        exit_code = ResticDo(["--env-file", str(workdir / ".env")]).run()

        assert exit_code == EXIT_FAILURE
        assert "usage:" in capsys.readouterr().err
        mock_client_cls.assert_not_called()

    @patch("resticdo.cli.restic_do.NotificationSender")
    @patch("resticdo.cli.restic_do.ResticClient")
    def test_unknown_argument(
        self,
        mock_client_cls: MagicMock,
        mock_sender_cls: MagicMock,
        workdir: Path,
    ) -> None:
        """Test that an unknown flag exits 1 and is reported."""
        exit_code = ResticDo(
            ["--action", "check", "--fast", "--env-file", str(workdir / ".env")],
        ).run()

        assert exit_code == EXIT_FAILURE
        mock_client_cls.assert_not_called()
        assert sent_events(mock_sender_cls)[0].message == (
            "❌ Error: Unknown argument: --fast"
        )

    @patch("resticdo.cli.restic_do.NotificationSender")
    @patch("resticdo.cli.restic_do.ResticClient")
    def test_interrupt(
        self,
        mock_client_cls: MagicMock,
        mock_sender_cls: MagicMock,
        workdir: Path,
    ) -> None:
        """Test that an interrupt exits 130 with one error notification."""
        mock_client_cls.return_value.mount.side_effect = KeyboardInterrupt

        exit_code = ResticDo(
            [
                "--action",
                "mount",
                "--mount-dir",
                str(workdir),
                "--env-file",
                str(workdir / ".env"),
            ],
        ).run()

        assert exit_code == EXIT_INTERRUPTED
        events = sent_events(mock_sender_cls)
        assert len(events) == 1
        assert events[0].message == "❌ Error: Script interrupted by user"
        mock_sender_cls.return_value.close.assert_called_once()

    @patch("resticdo.cli.restic_do.NotificationSender")
    @patch("resticdo.cli.restic_do.ResticClient")
    def test_log_file_receives_output(
        self,
        mock_client_cls: MagicMock,
        mock_sender_cls: MagicMock,
        workdir: Path,
    ) -> None:
        """Test that --log-file mirrors the run into the file."""
        log_file = workdir / "restic-do.log"

        exit_code = ResticDo(
            [
                "--action",
                "unlock",
                "--env-file",
                str(workdir / ".env"),
                "--log-file",
                str(log_file),
            ],
        ).run()

        assert exit_code == 0
        content = log_file.read_text()
        assert "File logging enabled" in content
        assert "Action 'unlock' completed successfully" in content

    @patch("resticdo.cli.restic_do.ResticClient")
    def test_log_file_in_missing_directory(
        self,
        mock_client_cls: MagicMock,
        workdir: Path,
    ) -> None:
        """Test that an unwritable log location exits 1."""
        exit_code = ResticDo(
            [
                "--action",
                "unlock",
                "--env-file",
                str(workdir / ".env"),
                "--log-file",
                str(workdir / "missing" / "restic-do.log"),
            ],
        ).run()

        assert exit_code == EXIT_FAILURE
        mock_client_cls.assert_not_called()


class TestInterruptedRestic:
    """Test cases for interrupts while a real restic process is running."""

    @pytest.mark.skipif(os.name != "posix", reason="needs a POSIX shell")
    @patch("resticdo.cli.restic_do.NotificationSender")
    def test_sigterm_lets_restic_clean_up(
        self,
        mock_sender_cls: MagicMock,
        workdir: Path,
    ) -> None:
        """Test that SIGTERM is forwarded and restic finishes its cleanup."""
        fake_restic = workdir / "restic"
        fake_restic.write_text(FAKE_RESTIC)
        fake_restic.chmod(0o755)
        marker = workdir / "cleaned-up"
        env_file = workdir / ".env"
        env_file.write_text(
            BASE_ENV + f"RESTIC_BIN={fake_restic}\nCLEANUP_MARKER={marker}\n",
        )

        # Swallows a late SIGTERM should the run end before the timer fires
        previous_handler = signal.signal(signal.SIGTERM, lambda signum, frame: None)
        timer = threading.Timer(1.0, os.kill, (os.getpid(), signal.SIGTERM))
        timer.start()
        try:
            exit_code = ResticDo(
                ["--action", "check", "--env-file", str(env_file)],
            ).run()
        finally:
            timer.cancel()
            timer.join()
            signal.signal(signal.SIGTERM, previous_handler)

        assert exit_code == EXIT_INTERRUPTED
        assert marker.exists()
        events = sent_events(mock_sender_cls)
        assert events[0].message == "❌ Error: Script interrupted by user"
