"""
Verification results for a workshop run.

Probes record what they expected and what they saw; at the end of the run
the CLI prints the summary table and fails the process if anything failed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

import click

__all__ = ["TestRecord", "TestReport"]


@dataclass(frozen=True)
class TestRecord:
    """One verification outcome."""
    __test__ = False

    name: str
    expected: str
    actual: str
    passed: bool

    @property
    def status(self) -> str:
        return "PASS" if self.passed else "FAIL"


@dataclass
class TestReport:
    """Ordered PASS/FAIL records."""
    __test__ = False

    records: List[TestRecord] = field(default_factory=list)

    def record(self, name: str, expected: str, actual: str, passed: bool) -> TestRecord:
        entry = TestRecord(name=name, expected=expected, actual=actual, passed=passed)
        self.records.append(entry)
        return entry

    @property
    def passed(self) -> int:
        return sum(1 for r in self.records if r.passed)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.records if not r.passed)

    @property
    def all_passed(self) -> bool:
        return self.failed == 0

    def __len__(self) -> int:
        return len(self.records)

    def render(self, use_colors: bool = True) -> str:
        """Summary table followed by a totals line."""
        def style(text: str, passed: bool) -> str:
            if not use_colors:
                return text
            return click.style(text, fg="green" if passed else "red")

        lines = [
            "=" * 46,
            "               TEST SUMMARY",
            "=" * 46,
            "",
            f"{'TEST NAME':<45} STATUS",
            "-" * 46,
        ]
        for r in self.records:
            lines.append(f"{r.name:<45} {style(r.status, r.passed)}")
            if not r.passed:
                lines.append(f"    expected: {r.expected}")
                lines.append(f"    actual:   {r.actual}")
        lines.extend([
            "-" * 46,
            "",
            f"Total: {len(self.records)} | Passed: {self.passed} | Failed: {self.failed}",
        ])
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": len(self.records),
            "passed": self.passed,
            "failed": self.failed,
            "records": [
                {
                    "name": r.name,
                    "expected": r.expected,
                    "actual": r.actual,
                    "status": r.status,
                }
                for r in self.records
            ],
        }
