"""`${name}` / `${name:-default}` substitution over decoded YAML documents."""

from __future__ import annotations

import re
from typing import Any, Callable


TOKEN_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-(.*?))?\}")

Lookup = Callable[[str], "str | None"]
MissingError = Callable[[str, str], Exception]


def interpolate(value: Any, lookup: Lookup, missing: MissingError) -> Any:
    """Substitute tokens in every string key and value of `value`.

    `lookup` returns None for an unknown name; the token's default is used
    then, and without one `missing(name, token)` is raised.
    """
    if isinstance(value, dict):
        return {
            interpolate(key, lookup, missing): interpolate(item, lookup, missing)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [interpolate(item, lookup, missing) for item in value]
    if isinstance(value, str):
        return interpolate_string(value, lookup, missing)
    return value


def interpolate_string(value: str, lookup: Lookup, missing: MissingError) -> str:
    if "${" not in value:
        return value

    def _replace(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        resolved = lookup(name)
        if resolved is not None:
            return resolved
        if default is not None:
            return default
        raise missing(name, match.group(0))

    return TOKEN_RE.sub(_replace, value)
