"""Driver loading and session instantiation."""

from __future__ import annotations

import importlib
import os

from queryprobe.clients.base import QuerySession
from queryprobe.config.schema import TargetConfig
from queryprobe.core.errors import PluginError


ALLOWED_DRIVER_MODULES = frozenset(
    {
        "queryprobe.clients.mysql",
    }
)


def _allowed_modules() -> set[str]:
    extra_raw = os.environ.get("QUERYPROBE_EXTRA_ALLOWED_DRIVERS", "")
    extras = {item.strip() for item in extra_raw.split(",") if item.strip()}
    return set(ALLOWED_DRIVER_MODULES).union(extras)


def load_session_type(module_path: str) -> type[QuerySession]:
    if module_path not in _allowed_modules():
        raise PluginError(f"driver module '{module_path}' is not in the allowed module list")
    try:
        module = importlib.import_module(module_path)
    except Exception as exc:  # pragma: no cover - passthrough for diagnostics
        raise PluginError(f"failed to import driver module '{module_path}': {exc}") from exc

    session_type = getattr(module, "Session", None)
    if session_type is None:
        raise PluginError(f"driver module '{module_path}' does not expose Session")
    if not isinstance(session_type, type) or not issubclass(session_type, QuerySession):
        raise PluginError(f"Session in '{module_path}' must subclass QuerySession")
    return session_type


class SessionFactory:
    """Creates a fresh, unconnected session per call."""

    def __init__(self, config: TargetConfig) -> None:
        self.config = config
        self.session_type = load_session_type(config.driver)

    def __call__(self) -> QuerySession:
        return self.session_type(self.config)
