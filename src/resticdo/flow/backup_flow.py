"""The eight-step backup flow.

The flow is a fixed, linear sequence of restic invocations. Each step runs
only if every previous step exited successfully; the first failure ends the
flow without undoing completed steps. The flow keeps no state between runs,
so a rerun after an abort starts again from the pre-backup check.
"""

import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import IO

from resticdo.cli.arguments import InvocationRequest
from resticdo.config import ResticConfig
from resticdo.exceptions import ResticCommandFailedError
from resticdo.logging import SUCCESS
from resticdo.restic import ResticClient


class FlowStep(Enum):
    """Steps of the backup flow, in execution order."""

    PRE_CHECK = "Pre-backup repository integrity check"
    BACKUP = "Performing backup"
    POST_CHECK = "Post-backup repository integrity check"
    FORGET_PRUNE = "Forgetting and pruning old snapshots"
    CACHE_CLEANUP = "Cleaning repository cache"
    FINAL_CHECK = "Final repository integrity check"
    LIST_SNAPSHOTS = "Listing current snapshots"
    STATS = "Repository statistics"

    @property
    def title(self) -> str:
        """Human-readable step description."""
        return self.value


FLOW_STEPS: tuple[FlowStep, ...] = tuple(FlowStep)


@dataclass(frozen=True)
class StepResult:
    """Outcome of a single flow step."""

    step: FlowStep
    position: int
    exit_status: int

    @property
    def succeeded(self) -> bool:
        """Return True if the step's restic command exited with 0."""
        return self.exit_status == 0


@dataclass
class FlowResult:
    """Ordered trace of the steps a flow run executed."""

    steps: list[StepResult] = field(default_factory=list)

    @property
    def failed_step(self) -> StepResult | None:
        """The step that aborted the flow, if any."""
        for result in self.steps:
            if not result.succeeded:
                return result
        return None

    @property
    def aborted(self) -> bool:
        """Return True if a step failed."""
        return self.failed_step is not None

    @property
    def done(self) -> bool:
        """Return True if every step ran and succeeded."""
        return not self.aborted and len(self.steps) == len(FLOW_STEPS)

    @property
    def failure_position(self) -> int | None:
        """One-based position of the failed step, if any."""
        failed = self.failed_step
        return failed.position if failed else None

    @property
    def completed(self) -> list[FlowStep]:
        """Steps that finished successfully, in order."""
        return [result.step for result in self.steps if result.succeeded]


class BackupFlow:
    """Runs the full backup cycle against one repository."""

    def __init__(
        self,
        client: ResticClient,
        config: ResticConfig,
        request: InvocationRequest,
        logger: logging.Logger,
        stdin: IO[bytes] | None = None,
    ) -> None:
        """Initialize the flow with its restic client, configuration and request."""
        self.client = client
        self.config = config
        self.request = request
        self.logger = logger
        self.stdin = stdin

    def _backup(self) -> int:
        if self.request.source_type == "stdin":
            return self.client.backup_stdin(
                self.request.stdin_filename or "",
                self.request.excludes,
                self.stdin if self.stdin is not None else sys.stdin.buffer,
            )
        return self.client.backup_directory(
            self.request.source_value or "",
            self.request.excludes,
        )

    def _step_commands(self) -> dict[FlowStep, Callable[[], int]]:
        return {
            FlowStep.PRE_CHECK: self.client.check,
            FlowStep.BACKUP: self._backup,
            FlowStep.POST_CHECK: self.client.check,
            FlowStep.FORGET_PRUNE: lambda: self.client.forget(self.config.retention),
            FlowStep.CACHE_CLEANUP: self.client.cache_cleanup,
            FlowStep.FINAL_CHECK: self.client.check,
            FlowStep.LIST_SNAPSHOTS: self.client.snapshots,
            FlowStep.STATS: self.client.stats,
        }

    def _log_summary(self) -> None:
        retention = self.config.retention
        self.logger.info("Configuration Summary:")
        self.logger.info(f"  Repository: {self.config.repository}")
        self.logger.info(f"  Source Type: {self.request.source_type}")
        self.logger.info(f"  Source Value: {self.request.source_value or 'Not set'}")
        self.logger.info(
            f"  Stdin Filename: {self.request.stdin_filename or 'Not set'}",
        )
        self.logger.info("Retention Policy:")
        for label, value in (
            ("Keep Last", retention.keep_last),
            ("Keep Daily", retention.keep_daily),
            ("Keep Weekly", retention.keep_weekly),
            ("Keep Monthly", retention.keep_monthly),
            ("Keep Yearly", retention.keep_yearly),
        ):
            self.logger.info(f"  {label}: {value if value is not None else 'Not set'}")

    def run(self) -> FlowResult:
        """Execute every step in order, stopping at the first failure.

        Returns:
            The trace of executed steps; the last entry is the failed step
            when the flow was aborted

        """
        total = len(FLOW_STEPS)
        self.logger.info(f"Starting comprehensive backup flow ({total} steps)")
        self._log_summary()

        result = FlowResult()
        commands = self._step_commands()
        for position, step in enumerate(FLOW_STEPS, start=1):
            self.logger.info(f"Step {position}/{total}: {step.title}")
            try:
                commands[step]()
            except ResticCommandFailedError as e:
                result.steps.append(StepResult(step, position, e.returncode))
                return result

            result.steps.append(StepResult(step, position, 0))
            self.logger.log(SUCCESS, f"{step.title} completed")

        self.logger.log(SUCCESS, "All backup flow steps completed successfully")
        return result
