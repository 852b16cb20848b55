"""Failure kinds and exceptions raised while loading and running fixtures."""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    MISSING_PARAMETER = "missing_parameter"
    CONNECTION_ERROR = "connection_error"
    PROTOCOL_ERROR = "protocol_error"
    ASSERTION_FAILURE = "assertion_failure"
    TIMEOUT = "timeout"


class QueryProbeError(RuntimeError):
    kind: FailureKind | None = None


class FixtureError(QueryProbeError):
    pass


class PluginError(QueryProbeError):
    pass


class MissingParameterError(QueryProbeError):
    kind = FailureKind.MISSING_PARAMETER

    def __init__(self, names: list[str] | tuple[str, ...], template: str = "") -> None:
        self.names = tuple(names)
        self.name = self.names[0] if self.names else ""
        self.template = template
        joined = ", ".join(f"'{item}'" for item in self.names)
        super().__init__(f"missing parameter {joined} for query template '{template}'")


class TargetConnectionError(QueryProbeError):
    kind = FailureKind.CONNECTION_ERROR


class ProtocolError(QueryProbeError):
    kind = FailureKind.PROTOCOL_ERROR

    def __init__(self, message: str, *, code: int | None = None, raw: object = None) -> None:
        super().__init__(message)
        self.code = code
        self.raw = raw


class QueryTimeoutError(QueryProbeError):
    kind = FailureKind.TIMEOUT

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(f"no response within {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


class MalformedResponseError(ProtocolError):
    """The server's reply could not be decoded; the session's wire state is unknown."""
