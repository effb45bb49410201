"""
Centralized configuration for workshop-runner.

Two kinds of configuration live here:

1. ``RunnerSettings``: process-level settings (progress directory, logging,
   tracing) read from ``WORKSHOP_*`` environment variables or a ``.env`` file
   via Pydantic BaseSettings.
2. ``WorkshopConfig``: the immutable workshop definition loaded once from a
   YAML file (scenario id, variables, steps, cleanup) and handed to the step
   actions. Variables are never exported into ``os.environ``; commands get
   them through an explicit child environment.

Configuration sources for RunnerSettings (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (WORKSHOP_*)
3. .env file
4. Default values

Example:
    from workshoprunner.config import get_settings, load_workshop_config

    settings = get_settings()
    workshop = load_workshop_config("workshop.yaml", expected_scenario="sc1")
    print(workshop.variables["CLUSTER_NAME"])
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from workshoprunner.errors import ConfigurationError

__all__ = [
    "RunnerSettings",
    "get_settings",
    "reset_settings",
    "CommandSpec",
    "WaitSpec",
    "HttpProbeSpec",
    "PodsProbeSpec",
    "StepSpec",
    "WorkshopConfig",
    "load_workshop_config",
    "substitute",
    "DEFAULT_CONFIG_FILE",
]

DEFAULT_CONFIG_FILE = "workshop.yaml"

_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class RunnerSettings(BaseSettings):
    """
    Process-level settings for workshop-runner.

    Example:
        export WORKSHOP_PROGRESS_DIR=~/.workshop
        export WORKSHOP_LOG_LEVEL=debug
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKSHOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    config: str = Field(
        default=DEFAULT_CONFIG_FILE,
        description="Workshop file used when --config is not given",
    )
    progress_dir: str = Field(
        default=".",
        description="Directory holding .workshop-progress-<scenario>.json files",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level for workshop-runner",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log output format (text for console, json for log shipping)",
    )

    # Tracing
    trace_export: Literal["none", "console", "otlp"] = Field(
        default="none",
        description="Where run and step spans are exported",
    )
    otlp_endpoint: str = Field(
        default="localhost:4317",
        description="OTLP gRPC endpoint for trace export",
    )

    # External commands
    command_timeout_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="Upper bound for a single external command",
    )

    @field_validator("progress_dir")
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expand ~ and environment variables in paths."""
        return os.path.expanduser(os.path.expandvars(v))

    @field_validator("otlp_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Strip the protocol prefix; the gRPC exporter adds its own."""
        if v.startswith("http://"):
            v = v[7:]
        elif v.startswith("https://"):
            v = v[8:]
        return v


# Global singleton
_settings: Optional[RunnerSettings] = None


def get_settings(**overrides) -> RunnerSettings:
    """
    Get the global settings instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.
    """
    global _settings

    if overrides or _settings is None:
        _settings = RunnerSettings(**overrides)

    return _settings


def reset_settings() -> None:
    """Reset the global settings (for testing)."""
    global _settings
    _settings = None


def substitute(text: str, variables: Mapping[str, str], environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Replace ``${NAME}`` references with workshop variables, then environment.

    Raises:
        ConfigurationError: if a referenced name is defined in neither
    """
    environ = os.environ if environ is None else environ

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in variables:
            return variables[name]
        if name in environ:
            return environ[name]
        raise ConfigurationError(f"Undefined variable ${{{name}}} in: {text}")

    return _VAR_PATTERN.sub(_replace, text)


class _Spec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class CommandSpec(_Spec):
    """An external command to run."""
    run: str
    check: Optional[str] = Field(
        default=None,
        description="Guard command; exit 0 means the work is already done",
    )
    shell: bool = False
    timeout: Optional[float] = Field(default=None, gt=0)


class WaitSpec(_Spec):
    """Poll a command until its output matches, bounded by ``timeout``."""
    command: str
    expect: Optional[str] = None
    timeout: float = Field(default=300.0, gt=0)
    interval: float = Field(default=5.0, gt=0)
    shell: bool = False


class HttpProbeSpec(_Spec):
    """HTTP verification probe."""
    url: str
    status: int = 200
    contains: Optional[str] = None
    retries: int = Field(default=3, ge=1)
    delay: float = Field(default=2.0, ge=0)
    timeout: float = Field(default=10.0, gt=0)


class PodsProbeSpec(_Spec):
    """Count Running pods behind a label selector."""
    namespace: str
    selector: str
    min_running: int = Field(default=1, ge=0)
    context: Optional[str] = None


class StepSpec(_Spec):
    """One step as written in the workshop file."""
    name: str
    description: Optional[str] = None
    part: Optional[str] = None
    kind: Literal["setup", "verify"] = "setup"
    optional: bool = False
    run: Optional[str] = None
    check: Optional[str] = None
    shell: bool = False
    timeout: Optional[float] = Field(default=None, gt=0)
    wait: Optional[WaitSpec] = None
    http: Optional[HttpProbeSpec] = None
    pods: Optional[PodsProbeSpec] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("step name must not be empty")
        if v.strip().isdigit():
            raise ValueError("step names must not be plain numbers (they are read as positions)")
        return v

    @model_validator(mode="after")
    def exactly_one_action(self) -> "StepSpec":
        actions = [k for k in ("run", "wait", "http", "pods") if getattr(self, k) is not None]
        if len(actions) != 1:
            raise ValueError(
                f"step '{self.name}' must define exactly one of run, wait, http, pods "
                f"(found: {', '.join(actions) or 'none'})"
            )
        if self.check is not None and self.run is None:
            raise ValueError(f"step '{self.name}': check is only valid with run")
        return self

    @property
    def command(self) -> Optional[CommandSpec]:
        if self.run is None:
            return None
        return CommandSpec(run=self.run, check=self.check, shell=self.shell, timeout=self.timeout)


class WorkshopConfig(BaseModel):
    """Immutable workshop definition."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    scenario: str = Field(pattern=r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
    description: Optional[str] = None
    required: List[str] = Field(default_factory=list)
    tools: List[str] = Field(
        default_factory=list,
        description="Executables that must be on PATH before a run",
    )
    variables: Dict[str, str] = Field(default_factory=dict)
    steps: List[StepSpec] = Field(default_factory=list)
    cleanup: List[StepSpec] = Field(default_factory=list)
    source: Optional[str] = None

    @field_validator("variables", mode="before")
    @classmethod
    def stringify_variables(cls, v: Any) -> Any:
        """YAML scalars (ints, bools) become strings, as in a shell config."""
        if isinstance(v, dict):
            return {
                str(k): "" if val is None else (str(val).lower() if isinstance(val, bool) else str(val))
                for k, val in v.items()
            }
        return v

    def environment(self) -> Dict[str, str]:
        """Child-process environment: the parent's plus workshop variables."""
        env = dict(os.environ)
        env.update(self.variables)
        return env

    def expand(self, text: str) -> str:
        """Substitute ``${VAR}`` references in a string."""
        return substitute(text, self.variables)


def _resolve_variables(raw: Mapping[str, str], environ: Mapping[str, str]) -> Dict[str, str]:
    """Resolve ``${VAR}`` inside variables against earlier ones, then the environment."""
    resolved: Dict[str, str] = {}
    for name, value in raw.items():
        resolved[name] = substitute(value, resolved, environ)
    return resolved


def load_workshop_config(
    path: Union[str, Path],
    expected_scenario: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> WorkshopConfig:
    """
    Load and validate a workshop file.

    Args:
        path: YAML workshop file
        expected_scenario: If given, the file's scenario must match
        environ: Environment used for ``${VAR}`` fallback (defaults to os.environ)

    Returns:
        WorkshopConfig with variables resolved

    Raises:
        ConfigurationError: missing file, bad YAML, schema errors, unset
            required variables, undefined references or scenario mismatch
    """
    path = Path(path)
    environ = os.environ if environ is None else environ

    if not path.is_file():
        message = f"Config file not found: {path}"
        example = path.with_name(path.name + ".example")
        if example.is_file():
            message += (
                f"\n\nCreate the config file from the example:\n"
                f"  cp {example} {path}\n"
                f"  # Edit {path} with your settings"
            )
        raise ConfigurationError(message)

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Workshop file {path} must contain a mapping")

    try:
        config = WorkshopConfig.model_validate({**data, "source": str(path)})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid workshop file {path}:\n{e}") from e

    variables = _resolve_variables(config.variables, environ)

    missing = [
        name for name in config.required
        if not (variables.get(name) or environ.get(name))
    ]
    if missing:
        raise ConfigurationError(
            f"Required variable(s) not set in {path} or the environment: {', '.join(missing)}"
        )

    # Required variables supplied only by the environment (secrets, licence keys)
    for name in config.required:
        if not variables.get(name):
            variables[name] = environ[name]

    if expected_scenario is not None and config.scenario != expected_scenario:
        raise ConfigurationError(
            f"This run is for scenario {expected_scenario} only; "
            f"{path} defines scenario {config.scenario}"
        )

    return config.model_copy(update={"variables": variables})
