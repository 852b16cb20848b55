"""Run reports, human-readable summaries and exit status."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import json
from typing import Any

from queryprobe.core.comparator import Diff
from queryprobe.core.errors import FailureKind


class CaseOutcome(str, Enum):
    PASS = "pass"
    FAIL = "fail"


@dataclass(slots=True)
class CaseReport:
    index: int
    name: str
    query: str
    outcome: CaseOutcome
    kind: FailureKind | None = None
    diffs: tuple[Diff, ...] = ()
    error: str = ""
    error_code: int | None = None
    raw: str | None = None
    attempts: int = 1
    elapsed_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        return self.outcome is CaseOutcome.PASS

    def describe(self) -> list[str]:
        lines: list[str] = []
        if self.error:
            code = f" [{self.error_code}]" if self.error_code is not None else ""
            lines.append(f"{self.kind.value if self.kind else 'error'}{code}: {self.error}")
        lines.extend(diff.describe() for diff in self.diffs)
        return lines

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "query": self.query,
            "outcome": self.outcome.value,
            "kind": self.kind.value if self.kind else None,
            "diffs": [diff.to_dict() for diff in self.diffs],
            "error": self.error or None,
            "error_code": self.error_code,
            "raw": self.raw,
            "attempts": self.attempts,
            "elapsed_seconds": round(self.elapsed_seconds, 6),
        }


@dataclass(slots=True)
class SequenceReport:
    name: str
    isolated: bool
    total_cases: int
    cases: list[CaseReport] = field(default_factory=list)
    state: str = "idle"
    elapsed_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        return self.state == "done" and all(case.passed for case in self.cases)

    @property
    def failures(self) -> list[CaseReport]:
        return [case for case in self.cases if not case.passed]

    @property
    def skipped(self) -> int:
        return self.total_cases - len(self.cases)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "isolated": self.isolated,
            "state": self.state,
            "passed": self.passed,
            "total_cases": self.total_cases,
            "executed_cases": len(self.cases),
            "skipped_cases": self.skipped,
            "elapsed_seconds": round(self.elapsed_seconds, 6),
            "cases": [case.to_dict() for case in self.cases],
        }


@dataclass(slots=True)
class RunReport:
    sequences: list[SequenceReport] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(sequence.passed for sequence in self.sequences)

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "exit_code": self.exit_code,
            "sequences": [sequence.to_dict() for sequence in self.sequences],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)

    def render_summary(self) -> str:
        lines: list[str] = []
        total = sum(len(sequence.cases) for sequence in self.sequences)
        failed = sum(len(sequence.failures) for sequence in self.sequences)
        skipped = sum(sequence.skipped for sequence in self.sequences)
        for sequence in self.sequences:
            status = "PASS" if sequence.passed else "FAIL"
            lines.append(
                f"[{status}] {sequence.name}: {len(sequence.cases) - len(sequence.failures)}/"
                f"{sequence.total_cases} passed ({sequence.elapsed_seconds:.3f}s)"
            )
            for case in sequence.failures:
                lines.append(f"  #{case.index + 1} {case.name}: {case.query}")
                lines.extend(f"    {detail}" for detail in case.describe())
            if sequence.skipped:
                lines.append(f"  {sequence.skipped} case(s) not run")
        lines.append(f"{total - failed} passed, {failed} failed, {skipped} not run")
        return "\n".join(lines)
