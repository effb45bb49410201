"""
Resumable step runner.

The runner executes an ordered list of named steps, persisting each
successful step to a progress store so an interrupted or failed run can be
picked up where it left off. It never retries: waiting on slow external
state is the job of the step actions themselves.

Example:
    from workshoprunner.progress import FileProgressStore
    from workshoprunner.runner import RunStatus, StepRunner
    from workshoprunner.steps import Step

    runner = StepRunner("sc1", FileProgressStore("."))
    runner.register([
        Step("a", do_a),
        Step("b", do_b),
        Step("c", do_c),
    ])

    result = runner.run()                   # fails at "b"
    if result.status is RunStatus.FAILED:
        print(result.resume_command)        # ... -s b
    result = runner.run(start="b")          # runs b, then c
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Union

from opentelemetry.trace import Status, StatusCode

from workshoprunner.errors import ConfigurationError
from workshoprunner.logger import StepLogger
from workshoprunner.progress import ProgressRecord, ProgressStore
from workshoprunner.steps import Step, StepKind, StepOutcome
from workshoprunner.telemetry import (
    RUN_SCENARIO,
    RUN_STATUS,
    STEP_KIND,
    STEP_NAME,
    STEP_OUTCOME,
    STEP_POSITION,
    get_tracer,
)

logger = logging.getLogger(__name__)

__all__ = [
    "RunStatus",
    "RunResult",
    "StepStatus",
    "StepRunner",
    "StepRef",
    "DEFAULT_RESUME_COMMAND",
]

StepRef = Union[str, int]

# Formatted with the failed step's name
DEFAULT_RESUME_COMMAND = "workshop-runner -s {step}"


class RunStatus(str, Enum):
    """Terminal state of a run invocation."""
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class RunResult:
    """Outcome of ``StepRunner.run``."""
    status: RunStatus
    executed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[str] = None
    resume_command: Optional[str] = None

    @property
    def ok(self) -> bool:
        """True for completed and stopped runs."""
        return self.status is not RunStatus.FAILED

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


@dataclass(frozen=True)
class StepStatus:
    """Listing entry for one registered step."""
    position: int
    name: str
    description: str
    completed: bool
    kind: StepKind = StepKind.SETUP
    part: Optional[str] = None
    optional: bool = False


class StepRunner:
    """
    Sequences registered steps for one scenario.

    Args:
        scenario: Scenario identifier; selects the progress record
        store: Progress store used for reads, writes and resets
        resume_command: Template for the command that resumes a failed run,
            formatted with ``step``
    """

    def __init__(
        self,
        scenario: str,
        store: ProgressStore,
        resume_command: str = DEFAULT_RESUME_COMMAND,
    ) -> None:
        self.scenario = scenario
        self.store = store
        self.resume_command = resume_command
        self.events = StepLogger(scenario=scenario)
        self._steps: Optional[List[Step]] = None

    @property
    def steps(self) -> List[Step]:
        if self._steps is None:
            raise ConfigurationError("No steps registered; call register() first")
        return list(self._steps)

    def register(self, steps: Iterable[Step]) -> None:
        """
        Define the full step sequence.

        Raises:
            ConfigurationError: on empty or duplicate step names
        """
        steps = list(steps)
        seen = set()
        for step in steps:
            if not step.name or not step.name.strip():
                raise ConfigurationError("Step names must not be empty")
            if step.name in seen:
                raise ConfigurationError(f"Duplicate step name: {step.name}")
            seen.add(step.name)
        self._steps = steps

    def resolve(self, ref: StepRef) -> int:
        """
        Resolve a step name or 1-based position to a 0-based index.

        Numeric strings are positions unless a step is literally named that.

        Raises:
            ConfigurationError: if the reference matches no step
        """
        steps = self.steps
        if isinstance(ref, str):
            for index, step in enumerate(steps):
                if step.name == ref:
                    return index
            if not ref.strip().isdigit():
                raise ConfigurationError(f"Unknown step: {ref}")
            ref = int(ref.strip())

        if isinstance(ref, bool) or not isinstance(ref, int):
            raise ConfigurationError(f"Invalid step reference: {ref!r}")
        if not 1 <= ref <= len(steps):
            raise ConfigurationError(
                f"Step number {ref} out of range (1-{len(steps)})"
            )
        return ref - 1

    def progress(self) -> ProgressRecord:
        """Current progress record for this scenario."""
        return self.store.load(self.scenario)

    def list_steps(self) -> List[StepStatus]:
        """Registered steps with completion status, in registration order."""
        record = self.progress()
        return [
            StepStatus(
                position=index + 1,
                name=step.name,
                description=step.label,
                completed=record.is_completed(step.name),
                kind=step.kind,
                part=step.part,
                optional=step.optional,
            )
            for index, step in enumerate(self.steps)
        ]

    def reset(self) -> None:
        """Clear all progress for this scenario."""
        self.store.clear(self.scenario)
        self.events.log_progress_reset()
        logger.info("Progress cleared for scenario %s", self.scenario)

    def format_resume_command(self, step_name: str) -> str:
        return self.resume_command.format(step=step_name)

    def _first_incomplete(self, record: ProgressRecord, tests_only: bool) -> int:
        for index, step in enumerate(self.steps):
            if tests_only and not step.is_verification:
                continue
            if tests_only or not record.is_completed(step.name):
                return index
        return len(self.steps)

    def run(
        self,
        start: Optional[StepRef] = None,
        stop_after: Optional[StepRef] = None,
        tests_only: bool = False,
        reset: bool = False,
    ) -> RunResult:
        """
        Execute steps from the resume point.

        Args:
            start: Step name or 1-based position to start from. That step and
                every later one execute even if previously completed.
            stop_after: Step name or position after which the run stops
            tests_only: Only execute verification steps
            reset: Clear progress before doing anything else

        Returns:
            RunResult with status COMPLETED, STOPPED or FAILED

        Raises:
            ConfigurationError: for unknown references or a stop boundary
                that can never be reached; no step has run in that case
        """
        steps = self.steps
        start_index = self.resolve(start) if start is not None else None
        stop_index = self.resolve(stop_after) if stop_after is not None else None

        if reset:
            self.reset()

        record = self.progress()
        first = start_index if start_index is not None else self._first_incomplete(record, tests_only)

        if stop_index is not None:
            if stop_index < first:
                raise ConfigurationError(
                    f"Stop-after step '{steps[stop_index].name}' (step {stop_index + 1}) "
                    f"comes before the start step (step {first + 1})"
                )
            if tests_only and not steps[stop_index].is_verification:
                raise ConfigurationError(
                    f"Stop-after step '{steps[stop_index].name}' is a setup step "
                    "and never runs in tests-only mode"
                )

        if start_index is not None:
            logger.info(
                "Starting from step %d: %s", start_index + 1, steps[start_index].label
            )
        elif record.last_completed and first < len(steps):
            logger.info(
                "Resuming after '%s' at step %d: %s",
                record.last_completed, first + 1, steps[first].label,
            )

        self.events.log_run_started(
            total_steps=len(steps),
            start_step=steps[first].name if first < len(steps) else None,
            stop_after=steps[stop_index].name if stop_index is not None else None,
            tests_only=tests_only,
        )

        tracer = get_tracer()
        with tracer.start_as_current_span("workshop.run") as run_span:
            run_span.set_attribute(RUN_SCENARIO, self.scenario)
            result = self._execute(steps, start_index, stop_index, tests_only, record)
            run_span.set_attribute(RUN_STATUS, result.status.value)
            if result.status is RunStatus.FAILED:
                run_span.set_status(Status(StatusCode.ERROR, result.error or "step failed"))

        self.events.log_run_finished(
            result.status.value, result.executed, result.skipped, result.failed_step
        )
        return result

    def _execute(
        self,
        steps: List[Step],
        start_index: Optional[int],
        stop_index: Optional[int],
        tests_only: bool,
        record: ProgressRecord,
    ) -> RunResult:
        result = RunResult(status=RunStatus.COMPLETED)

        # Completed steps ahead of the resume point are walked so they show up as skipped
        for index in range(start_index or 0, len(steps)):
            step = steps[index]
            position = index + 1

            if tests_only and not step.is_verification:
                continue

            forced = start_index is not None or tests_only
            if not forced and record.is_completed(step.name):
                logger.info("Skipping step: %s (already completed)", step.name)
                self.events.log_step_skipped(step.name, position, reason="already completed")
                result.skipped.append(step.name)
            else:
                outcome, error = self._invoke(step, position)
                if outcome is StepOutcome.FAILURE:
                    result.status = RunStatus.FAILED
                    result.failed_step = step.name
                    result.error = error
                    result.resume_command = self.format_resume_command(step.name)
                    logger.error("Step '%s' failed", step.name)
                    logger.error("To retry from this step, run: %s", result.resume_command)
                    return result
                if outcome is StepOutcome.SUCCESS:
                    record = self.store.mark_completed(self.scenario, step.name)
                    result.executed.append(step.name)
                else:
                    result.skipped.append(step.name)

            if stop_index is not None and index == stop_index:
                logger.info("Stopping after step: %s (as requested)", step.name)
                result.status = RunStatus.STOPPED
                return result

        return result

    def _invoke(self, step: Step, position: int):
        """Run one step's action inside a span; returns (outcome, error)."""
        tracer = get_tracer()
        logger.info("==> Step %d: %s", position, step.label)
        self.events.log_step_started(step.name, position, kind=step.kind.value)
        started = time.monotonic()

        with tracer.start_as_current_span(f"step:{step.name}") as span:
            span.set_attribute(STEP_NAME, step.name)
            span.set_attribute(STEP_POSITION, position)
            span.set_attribute(STEP_KIND, step.kind.value)

            error: Optional[str] = None
            try:
                outcome = step.invoke()
            except Exception as exc:
                logger.exception("Step '%s' raised an error", step.name)
                span.record_exception(exc)
                outcome = StepOutcome.FAILURE
                error = str(exc) or type(exc).__name__

            duration = time.monotonic() - started
            span.set_attribute(STEP_OUTCOME, outcome.value)

            if outcome is StepOutcome.FAILURE:
                error = error or "step action reported failure"
                span.set_status(Status(StatusCode.ERROR, error))
                self.events.log_step_failed(step.name, position, error=error, duration_seconds=duration)
            elif outcome is StepOutcome.SKIP:
                logger.info("Step '%s' skipped by its action", step.name)
                self.events.log_step_skipped(step.name, position, reason="skipped by action")
            else:
                self.events.log_step_completed(step.name, position, duration_seconds=duration)

        return outcome, error
