"""
Pytest configuration and fixtures for workshop-runner tests.
"""

from __future__ import annotations

import os
from typing import Callable, Dict, Generator, List, Optional

import pytest

from workshoprunner.config import reset_settings
from workshoprunner.progress import FileProgressStore, MemoryProgressStore
from workshoprunner.steps import Step, StepKind, StepOutcome


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path) -> Generator[None, None, None]:
    """Isolate each test from WORKSHOP_* variables and the settings singleton."""
    for key in list(os.environ):
        if key.startswith("WORKSHOP_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("WORKSHOP_PROGRESS_DIR", str(tmp_path / "progress"))
    reset_settings()
    yield
    reset_settings()


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def memory_store() -> MemoryProgressStore:
    return MemoryProgressStore()


@pytest.fixture
def file_store(tmp_path) -> FileProgressStore:
    return FileProgressStore(tmp_path / "progress")


# ============================================================================
# Step Fixtures
# ============================================================================


class ActionLog:
    """Records which step actions were invoked, in order."""

    def __init__(self) -> None:
        self.calls: List[str] = []
        self.outcomes: Dict[str, StepOutcome] = {}

    def action(self, name: str) -> Callable[[], StepOutcome]:
        def _action() -> StepOutcome:
            self.calls.append(name)
            return self.outcomes.get(name, StepOutcome.SUCCESS)
        return _action

    def steps(
        self,
        *names: str,
        kinds: Optional[Dict[str, StepKind]] = None,
    ) -> List[Step]:
        kinds = kinds or {}
        return [
            Step(name, self.action(name), kind=kinds.get(name, StepKind.SETUP))
            for name in names
        ]


@pytest.fixture
def action_log() -> ActionLog:
    return ActionLog()
