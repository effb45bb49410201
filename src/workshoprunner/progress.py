"""
Progress persistence for workshop runs.

Each scenario has its own progress record holding the names of the steps
that completed successfully. The runner receives a store at construction
time, so several scenarios (or tests) can run side by side in one process.

Two backends are provided:
- FileProgressStore: one JSON file per scenario, rewritten atomically
  after every completed step
- MemoryProgressStore: dictionary-backed, for tests and dry runs

File layout (``<progress_dir>/.workshop-progress-<scenario>.json``)::

    {
      "version": 1,
      "scenario": "sc1",
      "created_at": "2026-01-01T10:00:00+00:00",
      "updated_at": "2026-01-01T10:14:03+00:00",
      "completed_steps": ["sso_login", "eks_cluster"]
    }

Progress files written by the older shell tooling contain a single
``COMPLETED_STEPS="a,b,c"`` line; those are still readable.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

__all__ = [
    "ProgressRecord",
    "ProgressStore",
    "FileProgressStore",
    "MemoryProgressStore",
    "PROGRESS_FILE_PREFIX",
]

PROGRESS_FILE_PREFIX = ".workshop-progress-"

# Increment when the on-disk layout changes
PROGRESS_SCHEMA_VERSION = 1

_LEGACY_LINE = re.compile(r'^\s*(?:export\s+)?COMPLETED_STEPS=["\']?([^"\']*)["\']?\s*$')
_SCENARIO_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ProgressRecord:
    """Completed steps for one scenario."""
    scenario: str
    completed_steps: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def is_completed(self, step_name: str) -> bool:
        return step_name in self.completed_steps

    @property
    def last_completed(self) -> Optional[str]:
        """Most recently completed step, if any."""
        return self.completed_steps[-1] if self.completed_steps else None

    def add(self, step_name: str) -> bool:
        """Record a step; returns False if it was already recorded."""
        if step_name in self.completed_steps:
            return False
        self.completed_steps.append(step_name)
        self.updated_at = _now()
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": PROGRESS_SCHEMA_VERSION,
            "scenario": self.scenario,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_steps": list(self.completed_steps),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], scenario: Optional[str] = None) -> "ProgressRecord":
        """Create from dictionary, dropping duplicate step names."""
        steps: List[str] = []
        for name in data.get("completed_steps", []):
            if not isinstance(name, str):
                raise ValueError(f"Invalid step name in progress record: {name!r}")
            if name not in steps:
                steps.append(name)
        return cls(
            scenario=scenario or data["scenario"],
            completed_steps=steps,
            created_at=data.get("created_at", _now()),
            updated_at=data.get("updated_at", _now()),
        )


class ProgressStore(ABC):
    """Read/write/clear contract for per-scenario progress."""

    @abstractmethod
    def load(self, scenario: str) -> ProgressRecord:
        """Return the record for a scenario (empty if none exists)."""

    @abstractmethod
    def save(self, record: ProgressRecord) -> None:
        """Persist a record."""

    @abstractmethod
    def clear(self, scenario: str) -> None:
        """Remove all progress for a scenario."""

    def mark_completed(self, scenario: str, step_name: str) -> ProgressRecord:
        """Record a completed step and persist immediately."""
        record = self.load(scenario)
        if record.add(step_name):
            self.save(record)
        return record


class MemoryProgressStore(ProgressStore):
    """In-memory store. Records are copied so callers cannot alias them."""

    def __init__(self) -> None:
        self._records: Dict[str, ProgressRecord] = {}

    def load(self, scenario: str) -> ProgressRecord:
        record = self._records.get(scenario)
        if record is None:
            return ProgressRecord(scenario=scenario)
        return ProgressRecord.from_dict(record.to_dict())

    def save(self, record: ProgressRecord) -> None:
        self._records[record.scenario] = ProgressRecord.from_dict(record.to_dict())

    def clear(self, scenario: str) -> None:
        self._records.pop(scenario, None)


class FileProgressStore(ProgressStore):
    """
    JSON progress files, one per scenario, with atomic updates.

    Writes go to a temporary file in the same directory followed by
    ``os.replace`` so an interrupted write never leaves a truncated record.
    """

    def __init__(self, directory: Union[str, Path] = ".") -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, scenario: str) -> Path:
        """Progress file path for a scenario."""
        if not _SCENARIO_NAME.match(scenario):
            raise ValueError(
                f"Invalid scenario identifier {scenario!r}: "
                "use letters, digits, '.', '_' or '-'"
            )
        return self.directory / f"{PROGRESS_FILE_PREFIX}{scenario}.json"

    def legacy_path_for(self, scenario: str) -> Path:
        """Path the shell tooling used for the same scenario."""
        return self.directory / f"{PROGRESS_FILE_PREFIX}{scenario}"

    def exists(self, scenario: str) -> bool:
        return self.path_for(scenario).exists() or self.legacy_path_for(scenario).exists()

    def load(self, scenario: str) -> ProgressRecord:
        path = self.path_for(scenario)
        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                return ProgressRecord.from_dict(data, scenario=scenario)
            except (json.JSONDecodeError, KeyError, ValueError, TypeError, AttributeError):
                logger.warning("Corrupted progress file %s, starting with empty progress", path)
                return ProgressRecord(scenario=scenario)

        legacy = self.legacy_path_for(scenario)
        if legacy.exists():
            return self._load_legacy(legacy, scenario)

        return ProgressRecord(scenario=scenario)

    def _load_legacy(self, path: Path, scenario: str) -> ProgressRecord:
        """Read a ``COMPLETED_STEPS="a,b"`` file from the shell tooling."""
        for line in path.read_text(encoding="utf-8").splitlines():
            match = _LEGACY_LINE.match(line)
            if match:
                names = [n.strip() for n in match.group(1).split(",") if n.strip()]
                logger.info("Loaded legacy progress file %s", path)
                return ProgressRecord.from_dict(
                    {"completed_steps": names}, scenario=scenario
                )
        logger.warning("Unrecognized legacy progress file %s, ignoring", path)
        return ProgressRecord(scenario=scenario)

    def save(self, record: ProgressRecord) -> None:
        path = self.path_for(record.scenario)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f"{PROGRESS_FILE_PREFIX}{record.scenario}-",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record.to_dict(), f, indent=2)
                f.write("\n")
            os.replace(temp_path, path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

        # The JSON file supersedes any shell-era record
        legacy = self.legacy_path_for(record.scenario)
        if legacy.exists():
            legacy.unlink()

    def clear(self, scenario: str) -> None:
        for path in (self.path_for(scenario), self.legacy_path_for(scenario)):
            if path.exists():
                path.unlink()
                logger.debug("Removed progress file %s", path)
