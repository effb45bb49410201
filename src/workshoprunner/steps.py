"""
Step definitions for workshop runs.

A step is one named unit of orchestration work: create a cluster, wait for
a load balancer, probe an endpoint. The runner only cares about the step's
name, its position, and the tri-state outcome of its action.

Example:
    from workshoprunner.steps import Step, StepKind, StepOutcome

    def create_cluster() -> StepOutcome:
        ...
        return StepOutcome.SUCCESS

    steps = [
        Step("eks_cluster", create_cluster, description="Create EKS Cluster"),
        Step("echo_reachable", probe_echo, kind=StepKind.VERIFY),
    ]
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

__all__ = [
    "StepKind",
    "StepOutcome",
    "Step",
    "StepAction",
    "coerce_outcome",
]


class StepKind(str, Enum):
    """Whether a step provisions something or verifies it."""
    SETUP = "setup"
    VERIFY = "verify"


class StepOutcome(str, Enum):
    """Result reported by a step action."""
    SUCCESS = "success"
    FAILURE = "failure"
    SKIP = "skip"


StepAction = Callable[[], Union[StepOutcome, bool, None]]


def coerce_outcome(value: Union[StepOutcome, bool, None]) -> StepOutcome:
    """
    Normalize an action's return value.

    ``True`` and ``None`` mean success, ``False`` means failure.
    """
    if isinstance(value, StepOutcome):
        return value
    if value is None or value is True:
        return StepOutcome.SUCCESS
    if value is False:
        return StepOutcome.FAILURE
    raise TypeError(f"Step action returned unsupported value: {value!r}")


@dataclass(frozen=True)
class Step:
    """A named unit of work in a workshop run."""
    name: str
    action: StepAction
    description: Optional[str] = None
    kind: StepKind = StepKind.SETUP
    part: Optional[str] = None
    optional: bool = False

    @property
    def label(self) -> str:
        """Human-readable text for listings."""
        return self.description or self.name

    @property
    def is_verification(self) -> bool:
        return self.kind == StepKind.VERIFY

    def invoke(self) -> StepOutcome:
        """Run the action and normalize its result."""
        return coerce_outcome(self.action())
