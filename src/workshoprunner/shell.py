"""External command execution for step actions."""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Union

from workshoprunner.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "CommandResult",
    "CommandError",
    "run_command",
    "require_tools",
    "split_command",
]

Command = Union[str, Sequence[str]]


@dataclass(frozen=True)
class CommandResult:
    """Captured result of an external command."""
    cmd: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(Exception):
    """Rich error for command failures with context."""

    def __init__(
        self,
        cmd: List[str],
        returncode: Optional[int],
        stdout: str = "",
        stderr: str = "",
        context: str = "",
    ):
        self.cmd = cmd
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = []
        if self.context:
            parts.append(self.context)
        parts.append(f"Command: {shlex.join(self.cmd)}")
        if self.returncode is not None:
            parts.append(f"Exit code: {self.returncode}")
        if self.stderr:
            parts.append(f"Error: {self.stderr.strip()}")
        if self.stdout and self.returncode:
            parts.append(f"Output: {self.stdout.strip()}")
        return "\n".join(parts)


def split_command(cmd: Command, shell: bool = False) -> List[str]:
    """Turn a command string or sequence into an argv list."""
    if shell:
        script = cmd if isinstance(cmd, str) else shlex.join(cmd)
        return ["sh", "-c", script]
    if isinstance(cmd, str):
        return shlex.split(cmd)
    return list(cmd)


def require_tools(*names: str) -> None:
    """
    Check that executables are on PATH.

    Raises:
        ConfigurationError: listing every missing tool
    """
    missing = [name for name in names if shutil.which(name) is None]
    if missing:
        raise ConfigurationError(f"Required tool(s) not found in PATH: {', '.join(missing)}")


def run_command(
    cmd: Command,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
    input_text: Optional[str] = None,
    check: bool = True,
    shell: bool = False,
    context: str = "",
) -> CommandResult:
    """
    Run an external command and capture its output.

    Args:
        cmd: Command string (split with shlex) or argv sequence
        env: Full child environment; defaults to the current process's
        timeout: Seconds before the command is killed
        input_text: Optional stdin
        check: Raise CommandError on a non-zero exit
        shell: Run through ``sh -c``
        context: Description of what the command is doing (for error messages)

    Raises:
        CommandError: on non-zero exit (when ``check``), missing executable
            or timeout
    """
    argv = split_command(cmd, shell=shell)
    if not argv:
        raise CommandError([], None, context=context or "Empty command")

    logger.debug("Running: %s", shlex.join(argv))
    try:
        completed = subprocess.run(
            argv,
            input=input_text,
            capture_output=True,
            text=True,
            env=dict(env) if env is not None else None,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise CommandError(argv, None, stderr=str(e), context=context or f"{argv[0]} not found") from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(
            argv,
            None,
            stderr=f"timed out after {timeout}s",
            context=context or "Command timed out",
        ) from e

    result = CommandResult(
        cmd=argv,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )
    if check and not result.ok:
        raise CommandError(argv, result.returncode, result.stdout, result.stderr, context)
    return result
