"""
workshop-runner CLI - run a workshop file step by step with resumable progress.

Usage:
    workshop-runner -c workshop.yaml                 # Run (or resume) all steps
    workshop-runner -c workshop.yaml -s istio_install  # Start from a step by name
    workshop-runner -c workshop.yaml -s 3 --stop-after 5  # Run steps 3 through 5
    workshop-runner -c workshop.yaml -l              # Show step status
    workshop-runner -c workshop.yaml -t              # Run verification steps only
    workshop-runner -c workshop.yaml --reset         # Clear progress, run all steps
    workshop-runner -c workshop.yaml -d              # Run, then clean up
"""

from __future__ import annotations

import shlex
import sys
from typing import List, Optional

import click

from workshoprunner import __version__
from workshoprunner.config import get_settings, load_workshop_config
from workshoprunner.errors import ConfigurationError
from workshoprunner.logger import configure_logging
from workshoprunner.progress import FileProgressStore
from workshoprunner.runner import RunResult, RunStatus, StepRunner, StepStatus
from workshoprunner.shell import require_tools
from workshoprunner.steps import Step, StepOutcome
from workshoprunner.telemetry import configure_tracing, shutdown_tracing
from workshoprunner.workshop import Workshop


def _base_command(config_path: str, scenario: Optional[str] = None) -> str:
    command = f"workshop-runner -c {shlex.quote(config_path)}"
    if scenario:
        command += f" --scenario {shlex.quote(scenario)}"
    return command


def _render_step_list(statuses: List[StepStatus], base_command: str) -> None:
    """Step table grouped by part, optional steps last."""
    click.echo()
    click.echo("=" * 46)
    click.echo("         WORKSHOP STEPS STATUS")
    click.echo("=" * 46)

    def line(status: StepStatus) -> None:
        marker = (
            click.style("[done]", fg="green")
            if status.completed
            else click.style("[pending]", fg="yellow")
        )
        kind = " (verify)" if status.kind.value == "verify" else ""
        click.echo(f"  Step {status.position:2d}: {status.description + kind:<40} {marker}")

    click.echo()
    current_part = None
    for status in (s for s in statuses if not s.optional):
        if status.part and status.part != current_part:
            if current_part is not None:
                click.echo()
            click.echo(click.style(status.part, fg="blue"))
            click.echo("-" * 46)
            current_part = status.part
        line(status)

    optional = [s for s in statuses if s.optional]
    if optional:
        click.echo()
        click.echo(click.style("Optional", fg="blue"))
        click.echo("-" * 46)
        for status in optional:
            line(status)

    done = sum(1 for s in statuses if s.completed)
    click.echo()
    click.echo("=" * 46)
    click.echo(f"Progress: {done}/{len(statuses)} steps completed")
    click.echo()
    click.echo("Usage examples:")
    click.echo(f"  {base_command} -s 5              # Start from step 5")
    click.echo(f"  {base_command} -s <step_name>    # Start from step by name")
    click.echo(f"  {base_command} --stop-after 10   # Stop after step 10")
    click.echo(f"  {base_command} --reset           # Clear progress, start fresh")
    click.echo()


def _render_result(result: RunResult) -> None:
    click.echo()
    if result.status is RunStatus.FAILED:
        click.echo(click.style(f"Step '{result.failed_step}' failed", fg="red", bold=True), err=True)
        if result.error:
            click.echo(f"  {result.error}", err=True)
        click.echo("Fix the issue and retry with:", err=True)
        click.echo(f"  {result.resume_command}", err=True)
        return

    if result.status is RunStatus.STOPPED:
        headline = click.style("Stopped at the requested step", fg="yellow", bold=True)
    else:
        headline = click.style("All steps complete", fg="green", bold=True)
    click.echo(headline)
    click.echo(f"  Executed: {len(result.executed)}" + (f" ({', '.join(result.executed)})" if result.executed else ""))
    click.echo(f"  Skipped:  {len(result.skipped)}" + (f" ({', '.join(result.skipped)})" if result.skipped else ""))


def _echo_cleanup(step: Step, outcome: StepOutcome) -> None:
    color = "red" if outcome is StepOutcome.FAILURE else "green"
    click.echo(f"  {click.style(outcome.value.upper(), fg=color)} {step.label}")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-c", "--config", "config_path", default=None,
              help="Workshop file (default: $WORKSHOP_CONFIG or workshop.yaml)")
@click.option("-s", "--step", "start", default=None,
              help="Start from a specific step (name or number)")
@click.option("--stop-after", default=None, help="Stop after completing a specific step (name or number)")
@click.option("-l", "--list", "list_only", is_flag=True, help="List all steps and their completion status")
@click.option("-t", "--tests-only", is_flag=True, help="Skip setup steps, run verification steps only")
@click.option("--reset", is_flag=True, help="Clear progress and start fresh")
@click.option("-d", "--delete", is_flag=True, help="Run cleanup steps after the run")
@click.option("--scenario", default=None, help="Require the workshop file to define this scenario")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None)
@click.option("--log-format", type=click.Choice(["text", "json"]), default=None)
@click.version_option(__version__)
def main(
    config_path: Optional[str],
    start: Optional[str],
    stop_after: Optional[str],
    list_only: bool,
    tests_only: bool,
    reset: bool,
    delete: bool,
    scenario: Optional[str],
    log_level: Optional[str],
    log_format: Optional[str],
):
    """Run workshop steps in order, resuming from recorded progress."""
    overrides = {}
    if log_level:
        overrides["log_level"] = log_level
    if log_format:
        overrides["log_format"] = log_format
    settings = get_settings(**overrides)

    configure_logging(settings.log_level, settings.log_format)
    config_path = config_path or settings.config
    base_command = _base_command(config_path, scenario)

    try:
        workshop = Workshop(
            load_workshop_config(config_path, expected_scenario=scenario),
            command_timeout=settings.command_timeout_seconds,
        )
        runner = StepRunner(
            workshop.scenario,
            FileProgressStore(settings.progress_dir),
            resume_command=base_command.replace("{", "{{").replace("}", "}}") + " -s {step}",
        )
        runner.register(workshop.steps)

        if list_only:
            _render_step_list(runner.list_steps(), base_command)
            return

        require_tools(*workshop.config.tools)

        click.echo(click.style(f"Workshop scenario: {workshop.scenario}", bold=True))
        click.echo(f"Config file: {config_path}")
        if tests_only:
            click.echo("Tests only mode: setup steps are skipped")
        if reset:
            click.echo("Progress will be reset")

        configure_tracing(settings.trace_export, settings.otlp_endpoint)
        try:
            result = runner.run(
                start=start,
                stop_after=stop_after,
                tests_only=tests_only,
                reset=reset,
            )
        finally:
            shutdown_tracing()
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    _render_result(result)

    exit_code = result.exit_code
    if len(workshop.report):
        click.echo()
        click.echo(workshop.report.render(use_colors=sys.stdout.isatty()))
        if not workshop.report.all_passed:
            exit_code = 1

    click.echo()
    if result.status is RunStatus.FAILED:
        if delete:
            click.echo("Cleanup skipped: the run did not finish")
    elif delete:
        if workshop.cleanup_steps:
            click.echo(click.style("Cleanup: removing workshop resources", bold=True))
            if not workshop.run_cleanup(on_step=_echo_cleanup):
                click.echo(click.style("Cleanup had some errors", fg="yellow"), err=True)
        else:
            click.echo("No cleanup steps defined")
    elif workshop.cleanup_steps:
        click.echo("Environment kept intact. To clean up later, run:")
        click.echo(f"  {base_command} -d")

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
