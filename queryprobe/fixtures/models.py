"""Immutable fixture records."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Union


STATUS_FIELDS = (
    "field_count",
    "affected_rows",
    "insert_id",
    "info",
    "server_status",
    "warning_status",
)


@dataclass(frozen=True, slots=True)
class StatusResult:
    """Outcome of a command that returns no rows (OK packet)."""

    field_count: int = 0
    affected_rows: int = 0
    insert_id: int = 0
    info: str = ""
    server_status: int = 0
    warning_status: int = 0

    @property
    def kind(self) -> str:
        return "status"

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in STATUS_FIELDS}


@dataclass(frozen=True, slots=True)
class RowSet:
    """Ordered rows returned by a query-style command."""

    rows: tuple[Mapping[str, Any], ...] = ()

    @classmethod
    def of(cls, rows: list[Mapping[str, Any]] | tuple[Mapping[str, Any], ...]) -> RowSet:
        return cls(rows=tuple(MappingProxyType(dict(row)) for row in rows))

    @property
    def kind(self) -> str:
        return "rows"

    def __len__(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict[str, Any]:
        return {"rows": [dict(row) for row in self.rows]}


ExpectedResult = Union[StatusResult, RowSet]


@dataclass(frozen=True, slots=True)
class TestCase:
    query: str
    expected: ExpectedResult
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    name: str = ""
    retries: int = 0

    __test__ = False

    def label(self, index: int) -> str:
        return self.name or f"case-{index + 1}"


@dataclass(frozen=True, slots=True)
class FixtureSequence:
    name: str
    cases: tuple[TestCase, ...]
    isolated: bool
    source: str = ""

    def __len__(self) -> int:
        return len(self.cases)
