"""Fixture records, placeholder resolution and fixture loading."""

from .loader import builtin_suite_names, load_builtin_sequence, load_sequence, parse_sequence
from .models import FixtureSequence, RowSet, StatusResult, TestCase
from .placeholders import placeholder_names, resolve_placeholders

__all__ = [
    "FixtureSequence",
    "RowSet",
    "StatusResult",
    "TestCase",
    "builtin_suite_names",
    "load_builtin_sequence",
    "load_sequence",
    "parse_sequence",
    "placeholder_names",
    "resolve_placeholders",
]
