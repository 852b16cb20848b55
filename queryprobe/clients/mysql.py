"""MySQL-wire session backed by PyMySQL."""

from __future__ import annotations

import struct
from typing import Any

import pymysql
from pymysql.constants import CR

from queryprobe.clients.base import QuerySession
from queryprobe.config.schema import TargetConfig
from queryprobe.core.errors import MalformedResponseError, ProtocolError, TargetConnectionError
from queryprobe.core.logging import get_logger
from queryprobe.fixtures.models import ExpectedResult, RowSet, StatusResult


_CONNECTION_LOST_CODES = frozenset(
    {
        CR.CR_CONNECTION_ERROR,
        CR.CR_CONN_HOST_ERROR,
        CR.CR_SERVER_GONE_ERROR,
        CR.CR_SERVER_LOST,
    }
)


class Session(QuerySession):
    def __init__(self, config: TargetConfig) -> None:
        super().__init__(config)
        self.logger = get_logger("queryprobe.clients.mysql")
        self._connection: pymysql.connections.Connection | None = None

    @property
    def name(self) -> str:
        return "mysql"

    @property
    def connected(self) -> bool:
        return self._connection is not None and bool(self._connection.open)

    def connect(self) -> None:
        kwargs: dict[str, Any] = {
            "host": self.config.host,
            "port": self.config.port,
            "user": self.config.user,
            "password": self.config.password,
            "connect_timeout": self.config.connect_timeout_seconds,
            "autocommit": True,
        }
        if self.config.database:
            kwargs["database"] = self.config.database
        kwargs.update(self.config.options)
        try:
            self._connection = pymysql.connect(**kwargs)
        except (pymysql.MySQLError, OSError) as exc:
            raise TargetConnectionError(
                f"could not connect to {self.config.host}:{self.config.port}: {exc}"
            ) from exc
        self.logger.debug(
            "session connected",
            extra={
                "event_action": "connect",
                "event_outcome": "success",
                "target_host": self.config.host,
                "target_port": self.config.port,
                "payload": {"server_version": self._connection.get_server_info()},
            },
        )

    def execute(self, query: str) -> ExpectedResult:
        if self._connection is None:
            raise TargetConnectionError("session is not connected")
        try:
            self._connection.query(query)
        except pymysql.OperationalError as exc:
            code = exc.args[0] if exc.args else None
            if code in _CONNECTION_LOST_CODES:
                raise TargetConnectionError(f"connection lost: {exc}") from exc
            raise ProtocolError(_error_message(exc), code=code, raw=exc.args) from exc
        except pymysql.err.InterfaceError as exc:
            raise TargetConnectionError(f"connection unusable: {exc}") from exc
        except pymysql.MySQLError as exc:
            code = exc.args[0] if exc.args and isinstance(exc.args[0], int) else None
            raise ProtocolError(_error_message(exc), code=code, raw=exc.args) from exc
        except (struct.error, IndexError, ValueError) as exc:
            # UnicodeDecodeError is a ValueError; its offending bytes are kept.
            raise MalformedResponseError(
                f"malformed server response: {type(exc).__name__}: {exc}",
                raw=getattr(exc, "object", None),
            ) from exc
        except OSError as exc:
            raise TargetConnectionError(f"connection lost: {exc}") from exc
        # PyMySQL keeps the decoded OK/result packet on the connection; the
        # cursor API does not expose the OK packet's status and info fields.
        return to_result(self._connection._result)

    def close(self) -> None:
        connection = self._connection
        self._connection = None
        if connection is not None and connection.open:
            connection.close()


def to_result(result: Any) -> ExpectedResult:
    if result is None:
        raise ProtocolError("server returned no result for query")
    description = getattr(result, "description", None)
    if description:
        columns = [str(column[0]) for column in description]
        rows = result.rows or ()
        for row in rows:
            if len(row) != len(columns):
                raise MalformedResponseError(
                    f"row has {len(row)} values for {len(columns)} columns",
                    raw=row,
                )
        return RowSet.of([dict(zip(columns, row)) for row in rows])
    message = result.message or b""
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")
    return StatusResult(
        field_count=int(result.field_count or 0),
        affected_rows=int(result.affected_rows or 0),
        insert_id=int(result.insert_id or 0),
        info=str(message),
        server_status=int(result.server_status or 0),
        warning_status=int(result.warning_count or 0),
    )


def _error_message(exc: Exception) -> str:
    if len(exc.args) >= 2:
        return f"({exc.args[0]}) {exc.args[1]}"
    return str(exc)
