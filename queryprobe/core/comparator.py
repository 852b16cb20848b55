"""Structural comparison of expected and actual query results."""

from __future__ import annotations

from dataclasses import dataclass
from numbers import Number
from typing import Any, Mapping, Union

from queryprobe.fixtures.models import STATUS_FIELDS, ExpectedResult, RowSet, StatusResult


@dataclass(frozen=True, slots=True)
class FieldDiff:
    field: str
    expected: Any
    actual: Any

    def describe(self) -> str:
        return f"{self.field}: expected {self.expected!r}, got {self.actual!r}"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "field", "field": self.field, "expected": self.expected, "actual": self.actual}


@dataclass(frozen=True, slots=True)
class LengthDiff:
    expected_len: int
    actual_len: int

    def describe(self) -> str:
        return f"row count: expected {self.expected_len}, got {self.actual_len}"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "length", "expected": self.expected_len, "actual": self.actual_len}


@dataclass(frozen=True, slots=True)
class RowDiff:
    index: int
    expected_row: dict[str, Any]
    actual_row: dict[str, Any]
    missing_columns: tuple[str, ...] = ()
    extra_columns: tuple[str, ...] = ()
    changed_columns: tuple[str, ...] = ()

    def describe(self) -> str:
        parts: list[str] = []
        if self.missing_columns:
            parts.append(f"missing columns {list(self.missing_columns)}")
        if self.extra_columns:
            parts.append(f"extra columns {list(self.extra_columns)}")
        for column in self.changed_columns:
            parts.append(f"{column}: expected {self.expected_row[column]!r}, got {self.actual_row[column]!r}")
        return f"row {self.index}: " + "; ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "row",
            "index": self.index,
            "expected": self.expected_row,
            "actual": self.actual_row,
            "missing_columns": list(self.missing_columns),
            "extra_columns": list(self.extra_columns),
            "changed_columns": list(self.changed_columns),
        }


@dataclass(frozen=True, slots=True)
class ShapeDiff:
    expected_kind: str
    actual_kind: str

    def describe(self) -> str:
        return f"result shape: expected {self.expected_kind}, got {self.actual_kind}"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "shape", "expected": self.expected_kind, "actual": self.actual_kind}


Diff = Union[FieldDiff, LengthDiff, RowDiff, ShapeDiff]


@dataclass(frozen=True, slots=True)
class Verdict:
    diffs: tuple[Diff, ...] = ()

    @property
    def passed(self) -> bool:
        return not self.diffs


PASS = Verdict()


def compare(expected: ExpectedResult, actual: ExpectedResult) -> Verdict:
    if isinstance(expected, StatusResult):
        if not isinstance(actual, StatusResult):
            return Verdict(diffs=(ShapeDiff(expected.kind, _kind_of(actual)),))
        return _compare_status(expected, actual)
    if isinstance(expected, RowSet):
        if not isinstance(actual, RowSet):
            return Verdict(diffs=(ShapeDiff(expected.kind, _kind_of(actual)),))
        return _compare_rows(expected, actual)
    raise TypeError(f"unsupported expected result type: {type(expected).__name__}")


def values_equal(expected: Any, actual: Any) -> bool:
    expected_numeric = isinstance(expected, Number) and not isinstance(expected, bool)
    actual_numeric = isinstance(actual, Number) and not isinstance(actual, bool)
    if expected_numeric or actual_numeric:
        if not (expected_numeric and actual_numeric):
            return False
        return expected == actual
    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(expected) is type(actual) and expected == actual
    if isinstance(expected, Mapping) and isinstance(actual, Mapping):
        return expected.keys() == actual.keys() and all(values_equal(expected[key], actual[key]) for key in expected)
    if isinstance(expected, (list, tuple)) and isinstance(actual, (list, tuple)):
        return len(expected) == len(actual) and all(values_equal(left, right) for left, right in zip(expected, actual))
    return type(expected) is type(actual) and expected == actual


def _compare_status(expected: StatusResult, actual: StatusResult) -> Verdict:
    diffs = [
        FieldDiff(name, getattr(expected, name), getattr(actual, name))
        for name in STATUS_FIELDS
        if not values_equal(getattr(expected, name), getattr(actual, name))
    ]
    return Verdict(diffs=tuple(diffs))


def _compare_rows(expected: RowSet, actual: RowSet) -> Verdict:
    if len(expected.rows) != len(actual.rows):
        return Verdict(diffs=(LengthDiff(len(expected.rows), len(actual.rows)),))
    diffs: list[Diff] = []
    for index, (expected_row, actual_row) in enumerate(zip(expected.rows, actual.rows)):
        row_diff = _compare_row(index, expected_row, actual_row)
        if row_diff is not None:
            diffs.append(row_diff)
    return Verdict(diffs=tuple(diffs))


def _compare_row(index: int, expected_row: Mapping[str, Any], actual_row: Mapping[str, Any]) -> RowDiff | None:
    missing = tuple(column for column in expected_row if column not in actual_row)
    extra = tuple(column for column in actual_row if column not in expected_row)
    changed = tuple(
        column
        for column in expected_row
        if column in actual_row and not values_equal(expected_row[column], actual_row[column])
    )
    if not (missing or extra or changed):
        return None
    return RowDiff(
        index=index,
        expected_row=dict(expected_row),
        actual_row=dict(actual_row),
        missing_columns=missing,
        extra_columns=extra,
        changed_columns=changed,
    )


def _kind_of(result: Any) -> str:
    kind = getattr(result, "kind", None)
    return str(kind) if kind else type(result).__name__
