"""Fixture file loading and shared-context interpolation."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping

import yaml

from queryprobe.config.interpolation import interpolate
from queryprobe.config.schema import SequenceConfig
from queryprobe.core.errors import FixtureError
from queryprobe.fixtures.models import STATUS_FIELDS, ExpectedResult, FixtureSequence, RowSet, StatusResult, TestCase
from queryprobe.fixtures.placeholders import resolve_placeholders


SUITES_DIR = Path(__file__).with_name("suites")
IDEMPOTENT_COMMANDS = frozenset({"select", "show", "use", "describe", "desc", "explain", "set"})

_CAMEL_STATUS_KEYS = {
    "fieldCount": "field_count",
    "affectedRows": "affected_rows",
    "insertId": "insert_id",
    "info": "info",
    "serverStatus": "server_status",
    "warningStatus": "warning_status",
}


def builtin_suite_names() -> list[str]:
    return sorted(path.stem for path in SUITES_DIR.glob("*.yml"))


def load_builtin_sequence(
    name: str,
    context: Mapping[str, Any] | None = None,
    *,
    isolated: bool | None = None,
) -> FixtureSequence:
    path = SUITES_DIR / f"{name}.yml"
    if not path.exists():
        available = ", ".join(builtin_suite_names()) or "none"
        raise FixtureError(f"unknown built-in suite '{name}' (available: {available})")
    return load_sequence(path, context, isolated=isolated)


def load_sequence(
    path: Path,
    context: Mapping[str, Any] | None = None,
    *,
    name: str | None = None,
    isolated: bool | None = None,
) -> FixtureSequence:
    if not path.exists():
        raise FileNotFoundError(f"fixture file does not exist: {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    return parse_sequence(raw, context, name=name or path.stem, isolated=isolated, source=str(path))


def parse_sequence(
    raw: Any,
    context: Mapping[str, Any] | None = None,
    *,
    name: str = "fixtures",
    isolated: bool | None = None,
    source: str = "",
) -> FixtureSequence:
    """Build a `FixtureSequence` from a decoded fixture document.

    `${key}` tokens anywhere in the document are filled from `context` before
    the cases are validated. Declaration order is kept as-is.
    """
    if not isinstance(raw, dict):
        raise FixtureError(f"fixture document '{name}' must be a mapping")
    document = interpolate(raw, _context_lookup(context or {}), _missing_context(source or name))

    sequence_name = str(document.get("sequence") or name)
    declared_isolation = document.get("isolated")
    if isolated is None:
        if not isinstance(declared_isolation, bool):
            raise FixtureError(f"sequence '{sequence_name}' must declare 'isolated: true|false'")
        isolated = declared_isolation

    items = document.get("cases")
    if not isinstance(items, list) or not items:
        raise FixtureError(f"sequence '{sequence_name}' requires a non-empty 'cases' list")
    cases = tuple(_parse_case(item, index=index, sequence=sequence_name) for index, item in enumerate(items))
    return FixtureSequence(name=sequence_name, cases=cases, isolated=bool(isolated), source=source)


def _parse_case(item: Any, *, index: int, sequence: str) -> TestCase:
    where = f"sequence '{sequence}' case {index + 1}"
    if not isinstance(item, dict):
        raise FixtureError(f"{where} must be a mapping")
    query = item.get("query", item.get("q"))
    if not isinstance(query, str) or not query.strip():
        raise FixtureError(f"{where} requires a non-empty 'query'")

    params = item.get("params", item.get("p")) or {}
    if not isinstance(params, dict):
        raise FixtureError(f"{where} has invalid 'params' (expected mapping)")
    # Unbound placeholders are a load-time error.
    resolve_placeholders(query, params)

    if "expected" in item:
        expected_raw = item["expected"]
    elif "res" in item:
        expected_raw = item["res"]
    else:
        raise FixtureError(f"{where} requires 'expected'")
    expected = parse_expected(expected_raw, where=where)

    retries = item.get("retries", 0)
    if not isinstance(retries, int) or isinstance(retries, bool) or retries < 0:
        raise FixtureError(f"{where} has invalid 'retries' (expected non-negative integer)")
    if retries and not is_idempotent(query):
        raise FixtureError(f"{where} declares retries for a non-idempotent statement")

    return TestCase(
        query=query,
        expected=expected,
        params=MappingProxyType(dict(params)),
        name=str(item.get("name", "") or ""),
        retries=retries,
    )


def parse_expected(raw: Any, *, where: str = "fixture") -> ExpectedResult:
    if isinstance(raw, list):
        if any(not isinstance(row, dict) for row in raw):
            raise FixtureError(f"{where} row set entries must be mappings")
        for row in raw:
            _check_row(row, where=where)
        return RowSet.of(raw)
    if isinstance(raw, dict):
        normalized: dict[str, Any] = {}
        for key, value in raw.items():
            field_name = _CAMEL_STATUS_KEYS.get(str(key), str(key))
            if field_name not in STATUS_FIELDS:
                raise FixtureError(f"{where} has unknown status field '{key}'")
            normalized[field_name] = value
        missing = [field_name for field_name in STATUS_FIELDS if field_name not in normalized]
        if missing:
            raise FixtureError(f"{where} status result is missing {', '.join(missing)}")
        for field_name in STATUS_FIELDS:
            value = normalized[field_name]
            if field_name == "info":
                if not isinstance(value, str):
                    raise FixtureError(f"{where} status field 'info' must be a string")
            elif not isinstance(value, int) or isinstance(value, bool):
                raise FixtureError(f"{where} status field '{field_name}' must be an integer")
        return StatusResult(**normalized)
    raise FixtureError(f"{where} 'expected' must be a status mapping or a list of rows")


def is_idempotent(query: str) -> bool:
    stripped = query.strip()
    if not stripped:
        return False
    return stripped.split(None, 1)[0].lower() in IDEMPOTENT_COMMANDS


def load_configured_sequences(
    configs: list[SequenceConfig],
    context: Mapping[str, Any] | None = None,
    *,
    base_dir: Path | None = None,
    only: list[str] | None = None,
) -> list[FixtureSequence]:
    """Load the enabled sequences named in config, in config order.

    Relative fixture paths resolve against `base_dir` (normally the config
    file's directory). An `isolated` value in config overrides the file's own
    declaration.
    """
    wanted = set(only or [])
    unknown = wanted.difference(item.name for item in configs)
    if unknown:
        raise FixtureError(f"unknown sequence(s): {', '.join(sorted(unknown))}")
    sequences: list[FixtureSequence] = []
    for item in configs:
        if wanted and item.name not in wanted:
            continue
        if not wanted and not item.enabled:
            continue
        if item.builtin:
            sequence = load_builtin_sequence(item.builtin, context, isolated=item.isolated)
        else:
            path = Path(item.path)
            if not path.is_absolute() and base_dir is not None:
                path = base_dir / path
            sequence = load_sequence(path, context, name=item.name, isolated=item.isolated)
        sequences.append(sequence)
    return sequences


def _context_lookup(context: Mapping[str, Any]) -> Callable[[str], str | None]:
    def _lookup(key: str) -> str | None:
        value = context.get(key)
        return None if value is None else str(value)

    return _lookup


def _missing_context(source: str) -> Callable[[str, str], FixtureError]:
    def _missing(key: str, token: str) -> FixtureError:
        return FixtureError(f"fixture '{source}' references '{token}' but context has no '{key}'")

    return _missing


def _check_row(row: dict[Any, Any], *, where: str) -> None:
    # YAML 1.1 reads unquoted on/no/yes as bools and 2024-01-01 as a date;
    # the server only ever sends strings, numbers or NULL.
    for column, value in row.items():
        if not isinstance(column, str):
            raise FixtureError(f"{where} column name {column!r} must be a string; quote it")
        if isinstance(value, (bool, date)):
            raise FixtureError(
                f"{where} column '{column}' value {value!r} was read as {type(value).__name__}; quote it"
            )
        if value is not None and not isinstance(value, (str, int, float)):
            raise FixtureError(f"{where} column '{column}' must hold a scalar, got {type(value).__name__}")
