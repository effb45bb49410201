"""
Tests for configuration - RunnerSettings and workshop file loading.
"""

import textwrap

import pytest

from workshoprunner.config import (
    RunnerSettings,
    get_settings,
    load_workshop_config,
    substitute,
)
from workshoprunner.errors import ConfigurationError


def write(path, content):
    path.write_text(textwrap.dedent(content))
    return path


@pytest.fixture
def workshop_file(tmp_path):
    return write(tmp_path / "workshop.yaml", """\
        scenario: sc1
        required: [AWS_REGION, CLUSTER_NAME]
        variables:
          AWS_REGION: us-east-1
          CLUSTER_NAME: ambient-ecs
          ECS_CLUSTER: ${CLUSTER_NAME}-1
          NUMBER_NODES: 2
        steps:
          - name: eks_cluster
            description: Create EKS Cluster
            part: "Part 1: Infrastructure Setup"
            run: eksctl create cluster --name ${CLUSTER_NAME}
          - name: echo_reachable
            kind: verify
            http:
              url: http://echo.${CLUSTER_NAME}.local/
        """)


class TestRunnerSettings:
    """Tests for RunnerSettings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("WORKSHOP_PROGRESS_DIR")
        settings = RunnerSettings(_env_file=None)

        assert settings.progress_dir == "."
        assert settings.log_level == "info"
        assert settings.trace_export == "none"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("WORKSHOP_LOG_LEVEL", "debug")
        monkeypatch.setenv("WORKSHOP_CONFIG", "sc2.yaml")

        settings = get_settings()

        assert settings.log_level == "debug"
        assert settings.config == "sc2.yaml"

    def test_otlp_endpoint_strips_protocol(self):
        assert RunnerSettings(otlp_endpoint="http://collector:4317").otlp_endpoint == "collector:4317"

    def test_progress_dir_expands_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))

        settings = RunnerSettings(progress_dir="~/.workshop")

        assert settings.progress_dir == str(tmp_path / ".workshop")

    def test_singleton_with_overrides(self):
        first = get_settings()
        assert get_settings() is first
        assert get_settings(log_format="json").log_format == "json"


class TestSubstitute:
    """Tests for ${VAR} substitution."""

    def test_variables_win_over_environment(self):
        assert substitute("${A}-${B}", {"A": "x"}, {"A": "env", "B": "y"}) == "x-y"

    def test_undefined_variable(self):
        with pytest.raises(ConfigurationError, match=r"\$\{MISSING\}"):
            substitute("${MISSING}", {}, {})

    def test_plain_dollar_untouched(self):
        assert substitute("cost $5 and $HOME", {}, {}) == "cost $5 and $HOME"


class TestLoadWorkshopConfig:
    """Tests for load_workshop_config()."""

    def test_loads_and_resolves(self, workshop_file):
        config = load_workshop_config(workshop_file, environ={})

        assert config.scenario == "sc1"
        assert config.variables["ECS_CLUSTER"] == "ambient-ecs-1"
        assert config.variables["NUMBER_NODES"] == "2"
        assert [s.name for s in config.steps] == ["eks_cluster", "echo_reachable"]
        assert config.source == str(workshop_file)

    def test_config_is_immutable(self, workshop_file):
        config = load_workshop_config(workshop_file, environ={})

        with pytest.raises(Exception):
            config.scenario = "other"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_workshop_config(tmp_path / "nope.yaml")

    def test_missing_file_points_at_example(self, tmp_path):
        (tmp_path / "sc1.yaml.example").write_text("scenario: sc1\n")

        with pytest.raises(ConfigurationError, match="cp .*sc1.yaml.example"):
            load_workshop_config(tmp_path / "sc1.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = write(tmp_path / "bad.yaml", "scenario: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_workshop_config(path)

    def test_required_variable_missing(self, tmp_path):
        path = write(tmp_path / "w.yaml", """\
            scenario: sc1
            required: [LICENSE_KEY, AWS_REGION]
            variables:
              AWS_REGION: ""
            """)

        with pytest.raises(ConfigurationError, match="LICENSE_KEY, AWS_REGION"):
            load_workshop_config(path, environ={})

    def test_required_variable_from_environment(self, tmp_path):
        path = write(tmp_path / "w.yaml", """\
            scenario: sc1
            required: [LICENSE_KEY]
            """)

        config = load_workshop_config(path, environ={"LICENSE_KEY": "secret"})

        assert config.variables["LICENSE_KEY"] == "secret"

    def test_empty_required_placeholder_takes_environment_value(self, tmp_path):
        path = write(tmp_path / "w.yaml", """\
            scenario: sc1
            required: [LICENSE_KEY]
            variables:
              LICENSE_KEY: ""
            """)

        config = load_workshop_config(path, environ={"LICENSE_KEY": "secret"})

        assert config.variables["LICENSE_KEY"] == "secret"
        assert config.environment()["LICENSE_KEY"] == "secret"

    def test_scenario_mismatch(self, workshop_file):
        with pytest.raises(ConfigurationError, match="scenario sc2 only"):
            load_workshop_config(workshop_file, expected_scenario="sc2", environ={})

    def test_step_needs_exactly_one_action(self, tmp_path):
        path = write(tmp_path / "w.yaml", """\
            scenario: sc1
            steps:
              - name: both
                run: "true"
                http: {url: "http://x/"}
            """)

        with pytest.raises(ConfigurationError, match="exactly one of"):
            load_workshop_config(path)

    def test_numeric_step_name_rejected(self, tmp_path):
        path = write(tmp_path / "w.yaml", """\
            scenario: sc1
            steps:
              - name: "3"
                run: "true"
            """)

        with pytest.raises(ConfigurationError):
            load_workshop_config(path)

    def test_unknown_keys_rejected(self, tmp_path):
        path = write(tmp_path / "w.yaml", """\
            scenario: sc1
            stepz: []
            """)

        with pytest.raises(ConfigurationError, match="Invalid workshop file"):
            load_workshop_config(path)

    def test_environment_is_not_mutated(self, workshop_file, monkeypatch):
        monkeypatch.delenv("CLUSTER_NAME", raising=False)

        config = load_workshop_config(workshop_file, environ={})

        import os
        assert "CLUSTER_NAME" not in os.environ
        assert config.environment()["CLUSTER_NAME"] == "ambient-ecs"
