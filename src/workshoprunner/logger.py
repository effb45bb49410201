"""
Structured logging for step events.

Step lifecycle events are written as JSON lines on the
``workshoprunner.steps`` logger so a run can be shipped to a log backend
and queried per scenario. Human-facing messages go through ordinary module
loggers; ``configure_logging`` decides how both are rendered.

Logged events:
- run.started
- step.started
- step.completed
- step.skipped
- step.failed
- run.stopped
- run.completed
- run.failed
- progress.reset

Usage:
    from workshoprunner.logger import StepLogger

    events = StepLogger(scenario="sc1")
    events.log_step_started("eks_cluster", position=2)
    events.log_step_failed("eks_cluster", position=2, error="exit code 1")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

__all__ = ["StepLogger", "configure_logging", "EVENT_LOGGER_NAME"]

EVENT_LOGGER_NAME = "workshoprunner.steps"

_event_logger = logging.getLogger(EVENT_LOGGER_NAME)
_event_logger.setLevel(logging.INFO)


class _TextFormatter(logging.Formatter):
    """``[INFO] message`` lines, matching the shell tooling's output."""

    def format(self, record: logging.LogRecord) -> str:
        level = "WARN" if record.levelno == logging.WARNING else record.levelname
        message = f"[{level}] {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def configure_logging(level: str = "info", fmt: str = "text", stream=None) -> None:
    """
    Configure the ``workshoprunner`` logger tree.

    Args:
        level: debug, info, warning or error
        fmt: ``text`` for console output, ``json`` for log shipping. In text
            mode structured step events are not printed since the plain log
            lines already describe them.
        stream: Output stream (defaults to stderr)
    """
    root = logging.getLogger("workshoprunner")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    if fmt == "json":
        handler.setFormatter(logging.Formatter("%(message)s"))
        _event_logger.propagate = True
    else:
        handler.setFormatter(_TextFormatter())
        _event_logger.propagate = False
        if not _event_logger.handlers:
            _event_logger.addHandler(logging.NullHandler())
    root.addHandler(handler)


class StepLogger:
    """
    Structured logger for step events.

    Each entry carries the scenario and step identifiers so events from
    different scenarios can be told apart in one log stream.
    """

    def __init__(
        self,
        scenario: str,
        service_name: str = "workshop-runner",
        extra_labels: Optional[Dict[str, str]] = None,
    ):
        self.scenario = scenario
        self.service_name = service_name
        self.extra_labels = extra_labels or {}
        self._logger = _event_logger

    def _emit(
        self,
        event: str,
        step: Optional[str] = None,
        level: str = "info",
        **extra_fields: Any,
    ) -> None:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "service": self.service_name,
            "scenario": self.scenario,
        }
        if step:
            entry["step"] = step

        entry.update({k: v for k, v in extra_fields.items() if v is not None})

        if self.extra_labels:
            entry["labels"] = self.extra_labels

        log_line = json.dumps(entry, default=str)

        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        else:
            self._logger.info(log_line)

    def log_run_started(
        self,
        total_steps: int,
        start_step: Optional[str] = None,
        stop_after: Optional[str] = None,
        tests_only: bool = False,
    ) -> None:
        """Log run start with the resolved boundaries."""
        self._emit(
            "run.started",
            total_steps=total_steps,
            start_step=start_step,
            stop_after=stop_after,
            tests_only=tests_only,
        )

    def log_step_started(self, step: str, position: int, kind: str = "setup") -> None:
        self._emit("step.started", step=step, position=position, kind=kind)

    def log_step_completed(self, step: str, position: int, duration_seconds: float) -> None:
        self._emit(
            "step.completed",
            step=step,
            position=position,
            duration_seconds=round(duration_seconds, 3),
        )

    def log_step_skipped(self, step: str, position: int, reason: str) -> None:
        """Log a step that was passed over or whose action chose to skip."""
        self._emit("step.skipped", step=step, position=position, reason=reason)

    def log_step_failed(
        self,
        step: str,
        position: int,
        error: Optional[str] = None,
        duration_seconds: Optional[float] = None,
    ) -> None:
        self._emit(
            "step.failed",
            step=step,
            level="error",
            position=position,
            error=error,
            duration_seconds=round(duration_seconds, 3) if duration_seconds is not None else None,
        )

    def log_run_finished(
        self,
        status: str,
        executed: List[str],
        skipped: List[str],
        failed_step: Optional[str] = None,
    ) -> None:
        """Log the terminal state of a run (completed, stopped or failed)."""
        self._emit(
            f"run.{status}",
            level="error" if status == "failed" else "info",
            executed=executed,
            skipped=skipped,
            failed_step=failed_step,
        )

    def log_progress_reset(self) -> None:
        self._emit("progress.reset", level="warn")
