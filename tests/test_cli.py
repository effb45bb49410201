"""Tests for the workshop-runner command line."""

import logging
import textwrap

import pytest
from click.testing import CliRunner

from workshoprunner.cli import main
from workshoprunner.probes import ProbeResult
from workshoprunner.progress import FileProgressStore


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def detach_log_handlers():
    """CliRunner closes its streams; drop handlers bound to them."""
    yield
    logging.getLogger("workshoprunner").handlers.clear()


@pytest.fixture
def store(tmp_path):
    return FileProgressStore(tmp_path / "progress")


def write_workshop(tmp_path, body):
    path = tmp_path / "workshop.yaml"
    path.write_text(textwrap.dedent(body))
    return str(path)


@pytest.fixture
def workshop(tmp_path):
    return write_workshop(tmp_path, """\
        scenario: sc1
        steps:
          - name: a
            description: First step
            part: "Part 1: Infrastructure Setup"
            run: "true"
          - name: b
            part: "Part 1: Infrastructure Setup"
            run: "true"
          - name: c
            part: "Part 2: Mesh"
            run: "true"
        cleanup:
          - name: teardown
            run: "true"
        """)


@pytest.fixture
def failing_workshop(tmp_path):
    return write_workshop(tmp_path, """\
        scenario: sc1
        steps:
          - name: a
            run: "true"
          - name: b
            run: "false"
          - name: c
            run: "true"
        """)


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------

class TestRun:

    def test_runs_all_steps(self, runner, workshop, store):
        result = runner.invoke(main, ["-c", workshop])

        assert result.exit_code == 0, result.output
        assert "All steps complete" in result.output
        assert "Executed: 3" in result.output
        assert store.load("sc1").completed_steps == ["a", "b", "c"]

    def test_second_run_skips(self, runner, workshop):
        runner.invoke(main, ["-c", workshop])

        result = runner.invoke(main, ["-c", workshop])

        assert result.exit_code == 0
        assert "Executed: 0" in result.output
        assert "Skipped:  3" in result.output

    def test_failure_prints_resume_command(self, runner, failing_workshop, store):
        result = runner.invoke(main, ["-c", failing_workshop])

        assert result.exit_code == 1
        assert "Step 'b' failed" in result.output
        assert f"workshop-runner -c {failing_workshop} -s b" in result.output
        assert store.load("sc1").completed_steps == ["a"]

    def test_resume_command_keeps_scenario(self, runner, failing_workshop):
        result = runner.invoke(main, ["-c", failing_workshop, "--scenario", "sc1"])

        assert result.exit_code == 1
        assert f"workshop-runner -c {failing_workshop} --scenario sc1 -s b" in result.output

    def test_stop_after(self, runner, workshop, store):
        result = runner.invoke(main, ["-c", workshop, "--stop-after", "a"])

        assert result.exit_code == 0
        assert "Stopped at the requested step" in result.output
        assert store.load("sc1").completed_steps == ["a"]

    def test_start_by_number(self, runner, workshop, store):
        result = runner.invoke(main, ["-c", workshop, "-s", "3"])

        assert result.exit_code == 0
        assert store.load("sc1").completed_steps == ["c"]

    def test_reset(self, runner, workshop, store):
        runner.invoke(main, ["-c", workshop])

        result = runner.invoke(main, ["-c", workshop, "--reset"])

        assert result.exit_code == 0
        assert "Executed: 3" in result.output

    def test_config_from_environment(self, runner, workshop, monkeypatch):
        monkeypatch.setenv("WORKSHOP_CONFIG", workshop)

        result = runner.invoke(main, [])

        assert result.exit_code == 0, result.output


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class TestConfigurationErrors:

    def test_missing_config(self, runner, tmp_path):
        result = runner.invoke(main, ["-c", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_unknown_step(self, runner, workshop, store):
        result = runner.invoke(main, ["-c", workshop, "-s", "nope"])

        assert result.exit_code == 1
        assert "Unknown step: nope" in result.output
        assert store.load("sc1").completed_steps == []

    def test_stop_before_start(self, runner, workshop):
        result = runner.invoke(main, ["-c", workshop, "-s", "c", "--stop-after", "a"])

        assert result.exit_code == 1
        assert "comes before" in result.output

    def test_scenario_mismatch(self, runner, workshop):
        result = runner.invoke(main, ["-c", workshop, "--scenario", "sc2"])

        assert result.exit_code == 1
        assert "scenario sc2 only" in result.output

    def test_missing_tool(self, runner, tmp_path, store):
        path = write_workshop(tmp_path, """\
            scenario: sc1
            tools: [definitely-not-installed-tool]
            steps:
              - name: a
                run: "true"
            """)

        result = runner.invoke(main, ["-c", path])

        assert result.exit_code == 1
        assert "definitely-not-installed-tool" in result.output
        assert store.load("sc1").completed_steps == []

    def test_bad_option_is_usage_error(self, runner, workshop):
        result = runner.invoke(main, ["-c", workshop, "--log-level", "loud"])

        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TestList:

    def test_list_groups_by_part(self, runner, workshop):
        runner.invoke(main, ["-c", workshop, "--stop-after", "a"])

        result = runner.invoke(main, ["-c", workshop, "-l"])

        assert result.exit_code == 0
        assert "Part 1: Infrastructure Setup" in result.output
        assert "Part 2: Mesh" in result.output
        assert "First step" in result.output
        assert "Progress: 1/3 steps completed" in result.output

    def test_list_runs_nothing(self, runner, workshop, store):
        runner.invoke(main, ["-c", workshop, "-l"])

        assert store.load("sc1").completed_steps == []


# ---------------------------------------------------------------------------
# Verification and cleanup
# ---------------------------------------------------------------------------

class TestVerification:

    @pytest.fixture
    def verify_workshop(self, tmp_path):
        return write_workshop(tmp_path, """\
            scenario: sc1
            steps:
              - name: setup
                run: "true"
              - name: echo_reachable
                description: Echo reachable
                kind: verify
                http:
                  url: http://echo.local/
            """)

    def test_failed_probe_exits_nonzero(self, runner, verify_workshop, monkeypatch):
        monkeypatch.setattr(
            "workshoprunner.workshop.probe_http",
            lambda url, **kwargs: ProbeResult(kwargs["name"], "HTTP 200", "HTTP 503", False),
        )

        result = runner.invoke(main, ["-c", verify_workshop])

        assert result.exit_code == 1
        assert "TEST SUMMARY" in result.output
        assert "Failed: 1" in result.output

    def test_tests_only(self, runner, verify_workshop, monkeypatch, store):
        monkeypatch.setattr(
            "workshoprunner.workshop.probe_http",
            lambda url, **kwargs: ProbeResult(kwargs["name"], "HTTP 200", "HTTP 200", True),
        )

        result = runner.invoke(main, ["-c", verify_workshop, "-t"])

        assert result.exit_code == 0, result.output
        assert "Tests only mode" in result.output
        assert "Passed: 1" in result.output
        assert store.load("sc1").completed_steps == ["echo_reachable"]


class TestCleanup:

    def test_delete_runs_cleanup(self, runner, workshop):
        result = runner.invoke(main, ["-c", workshop, "-d"])

        assert result.exit_code == 0
        assert "Cleanup: removing workshop resources" in result.output
        assert "SUCCESS" in result.output

    def test_cleanup_hint_without_delete(self, runner, workshop):
        result = runner.invoke(main, ["-c", workshop])

        assert f"workshop-runner -c {workshop} -d" in result.output

    def test_cleanup_skipped_after_failure(self, runner, failing_workshop):
        result = runner.invoke(main, ["-c", failing_workshop, "-d"])

        assert result.exit_code == 1
        assert "Cleanup skipped" in result.output
