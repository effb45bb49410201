"""
Build runnable steps from a workshop file.

Every step in the workshop file becomes a ``Step`` whose action closes over
the immutable WorkshopConfig: commands see the workshop variables through an
explicit child environment, and probes record into a shared TestReport.

Step types:
- run:  external command; a passing ``check`` guard means the work is already
        done, so the step succeeds without running the command
- wait: poll a command until its output matches, bounded by a timeout
- http: HTTP verification probe
- pods: Running-pod count verification probe
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from workshoprunner.config import (
    CommandSpec,
    HttpProbeSpec,
    PodsProbeSpec,
    StepSpec,
    WaitSpec,
    WorkshopConfig,
)
from workshoprunner.polling import wait_until
from workshoprunner.probes import ProbeResult, probe_http, probe_pods_running
from workshoprunner.report import TestReport
from workshoprunner.shell import run_command
from workshoprunner.steps import Step, StepAction, StepKind, StepOutcome

logger = logging.getLogger(__name__)

__all__ = ["Workshop", "build_step", "build_steps"]


def _command_action(
    spec: CommandSpec,
    workshop: WorkshopConfig,
    env: Dict[str, str],
    default_timeout: Optional[float],
) -> StepAction:
    run = workshop.expand(spec.run)
    check = workshop.expand(spec.check) if spec.check else None
    timeout = spec.timeout or default_timeout

    def action() -> StepOutcome:
        if check is not None:
            guard = run_command(check, env=env, check=False, shell=spec.shell, timeout=timeout)
            if guard.ok:
                logger.info("Already in place, skipping: %s", run)
                return StepOutcome.SUCCESS
        result = run_command(run, env=env, shell=spec.shell, timeout=timeout)
        if result.stdout.strip():
            logger.debug(result.stdout.rstrip())
        return StepOutcome.SUCCESS

    return action


def _wait_action(spec: WaitSpec, workshop: WorkshopConfig, env: Dict[str, str]) -> StepAction:
    command = workshop.expand(spec.command)
    expect = workshop.expand(spec.expect) if spec.expect is not None else None
    description = f"'{command}'" + (f" to report {expect}" if expect is not None else "")

    def ready() -> bool:
        result = run_command(command, env=env, check=False, shell=spec.shell, timeout=spec.timeout)
        if expect is None:
            return result.ok
        return result.ok and result.stdout.strip() == expect

    def action() -> StepOutcome:
        wait_until(ready, timeout=spec.timeout, interval=spec.interval, description=description)
        return StepOutcome.SUCCESS

    return action


def _record(report: TestReport, result: ProbeResult) -> StepOutcome:
    report.record(result.name, result.expected, result.actual, result.passed)
    if result.passed:
        logger.info("[PASS] %s", result.name)
        return StepOutcome.SUCCESS
    logger.error("[FAIL] %s (expected %s, got %s)", result.name, result.expected, result.actual)
    return StepOutcome.FAILURE


def _http_action(
    spec: HttpProbeSpec,
    name: str,
    workshop: WorkshopConfig,
    report: TestReport,
) -> StepAction:
    url = workshop.expand(spec.url)
    contains = workshop.expand(spec.contains) if spec.contains is not None else None

    def action() -> StepOutcome:
        result = probe_http(
            url,
            name=name,
            expected_status=spec.status,
            contains=contains,
            retries=spec.retries,
            delay=spec.delay,
            timeout=spec.timeout,
        )
        return _record(report, result)

    return action


def _pods_action(
    spec: PodsProbeSpec,
    name: str,
    workshop: WorkshopConfig,
    env: Dict[str, str],
    report: TestReport,
) -> StepAction:
    namespace = workshop.expand(spec.namespace)
    selector = workshop.expand(spec.selector)
    context = workshop.expand(spec.context) if spec.context else None

    def action() -> StepOutcome:
        result = probe_pods_running(
            namespace,
            selector,
            min_running=spec.min_running,
            context=context,
            name=name,
            env=env,
        )
        return _record(report, result)

    return action


def build_step(
    spec: StepSpec,
    workshop: WorkshopConfig,
    report: TestReport,
    command_timeout: Optional[float] = None,
) -> Step:
    """
    Turn one StepSpec into a Step.

    ``${VAR}`` references are expanded here, so an undefined variable is a
    ConfigurationError at load time rather than a failure mid-run.
    """
    env = workshop.environment()
    label = spec.description or spec.name

    action: StepAction
    if spec.command is not None:
        action = _command_action(spec.command, workshop, env, command_timeout)
    elif spec.wait is not None:
        action = _wait_action(spec.wait, workshop, env)
    elif spec.http is not None:
        action = _http_action(spec.http, label, workshop, report)
    else:
        action = _pods_action(spec.pods, label, workshop, env, report)

    return Step(
        name=spec.name,
        action=action,
        description=spec.description,
        kind=StepKind(spec.kind),
        part=spec.part,
        optional=spec.optional,
    )


def build_steps(
    specs: List[StepSpec],
    workshop: WorkshopConfig,
    report: TestReport,
    command_timeout: Optional[float] = None,
) -> List[Step]:
    return [build_step(spec, workshop, report, command_timeout) for spec in specs]


class Workshop:
    """
    A loaded workshop: its configuration, steps, cleanup steps and report.

    Example:
        workshop = Workshop(load_workshop_config("workshop.yaml"))
        runner = StepRunner(workshop.scenario, store)
        runner.register(workshop.steps)
    """

    def __init__(self, config: WorkshopConfig, command_timeout: Optional[float] = None):
        self.config = config
        self.report = TestReport()
        self.steps = build_steps(config.steps, config, self.report, command_timeout)
        self.cleanup_steps = build_steps(config.cleanup, config, self.report, command_timeout)

    @property
    def scenario(self) -> str:
        return self.config.scenario

    def run_cleanup(self, on_step: Optional[Callable[[Step, StepOutcome], None]] = None) -> bool:
        """
        Run every cleanup step, continuing past failures.

        Cleanup is not tracked in the progress record. Returns True if all
        cleanup steps succeeded or skipped.
        """
        all_ok = True
        for step in self.cleanup_steps:
            logger.info("==> Cleanup: %s", step.label)
            try:
                outcome = step.invoke()
            except Exception:
                logger.exception("Cleanup step '%s' raised an error", step.name)
                outcome = StepOutcome.FAILURE
            if outcome is StepOutcome.FAILURE:
                logger.warning("Cleanup step '%s' had errors", step.name)
                all_ok = False
            if on_step is not None:
                on_step(step, outcome)
        return all_ok
