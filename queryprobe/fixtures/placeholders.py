"""Named `::placeholder` substitution for query templates."""

from __future__ import annotations

import re
from typing import Any, Mapping

from queryprobe.core.errors import MissingParameterError


_PLACEHOLDER_RE = re.compile(r"::([A-Za-z_][A-Za-z0-9_]*)")


def placeholder_names(template: str) -> list[str]:
    names: list[str] = []
    for match in _PLACEHOLDER_RE.finditer(template):
        name = match.group(1)
        if name not in names:
            names.append(name)
    return names


def resolve_placeholders(template: str, params: Mapping[str, Any] | None = None) -> str:
    """Substitute every `::name` in `template` with `str(params[name])`.

    Values are inserted verbatim and are not escaped or re-expanded. Unused
    params are ignored; a placeholder without a value raises
    `MissingParameterError` before anything is sent to the server.
    """
    bound = params or {}
    missing = [name for name in placeholder_names(template) if name not in bound]
    if missing:
        raise MissingParameterError(missing, template=template)
    return _PLACEHOLDER_RE.sub(lambda match: str(bound[match.group(1)]), template)
