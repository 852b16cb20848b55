"""Scripted MySQL-wire stub used as the system under test."""

from __future__ import annotations

from collections.abc import Iterator
import os
import re
import socket
import socketserver
import struct
import threading
import time
from typing import Any

import pytest


_CLIENT_PROTOCOL_41 = 0x00000200
_CLIENT_SECURE_CONNECTION = 0x00008000
_CLIENT_PLUGIN_AUTH = 0x00080000
_CLIENT_CONNECT_WITH_DB = 0x00000008
_SERVER_STATUS_AUTOCOMMIT = 0x0002
_SLEEP_RE = re.compile(r"^select sleep\((\d+(?:\.\d+)?)\)$")


class _ThreadingTCPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    daemon_threads = True
    allow_reuse_address = True


class MySQLStub:
    """Answers a handful of database-management commands over the MySQL wire.

    State is shared across connections so that a database created on one
    session is visible to the next.
    """

    def __init__(self, db_name: str = "workbench") -> None:
        self.databases = ["information_schema", "mysql", db_name, f"{db_name}/main"]
        self.queries: list[str] = []
        self.connections = 0
        self._lock = threading.Lock()
        self._server: _ThreadingTCPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def endpoint(self) -> tuple[str, int]:
        assert self._server is not None
        host, port = self._server.server_address[:2]
        return (str(host), int(port))

    def start(self) -> None:
        stub = self

        class Handler(socketserver.BaseRequestHandler):
            def handle(self) -> None:
                stub._handle_client(self.request)

        self._server = _ThreadingTCPServer(("127.0.0.1", 0), Handler)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.0)
        self._thread = None

    def _handle_client(self, conn: socket.socket) -> None:
        conn.settimeout(10.0)
        with self._lock:
            self.connections += 1
            connection_id = self.connections
        capabilities = _CLIENT_PROTOCOL_41 | _CLIENT_SECURE_CONNECTION | _CLIENT_PLUGIN_AUTH | _CLIENT_CONNECT_WITH_DB
        if not _send_packet(conn, 0, _handshake_packet(connection_id, capabilities, os.urandom(20))):
            return
        if _read_packet(conn) is None:
            return
        _send_packet(conn, 2, _ok_packet())

        while True:
            packet = _read_packet(conn)
            if packet is None or not packet[1]:
                return
            payload = packet[1]
            command = payload[0]
            if command == 0x01:  # COM_QUIT
                return
            if command == 0x03:  # COM_QUERY
                query = payload[1:].decode("utf-8", errors="replace")
                with self._lock:
                    self.queries.append(query)
                if not self._respond_query(conn, query):
                    return
                continue
            _send_packet(conn, 1, _ok_packet())

    def _respond_query(self, conn: socket.socket, query: str) -> bool:
        normalized = " ".join(query.strip().rstrip(";").split())
        lower = normalized.lower()

        if lower == "show databases":
            with self._lock:
                rows = [[name] for name in self.databases]
            _send_result_set(conn, ["Database"], rows)
            return True

        if lower.startswith("use "):
            name = normalized[4:].strip().strip("`")
            with self._lock:
                known = name in self.databases
            if not known:
                _send_packet(conn, 1, _err_packet(1049, "42000", f"Unknown database '{name}'"))
                return True
            _send_packet(conn, 1, _ok_packet())
            return True

        if lower.startswith("create database "):
            name = normalized[len("create database ") :].strip().strip("`")
            with self._lock:
                exists = name in self.databases
                if not exists:
                    self.databases.append(name)
            if exists:
                _send_packet(
                    conn,
                    1,
                    _err_packet(1007, "HY000", f"Can't create database '{name}'; database exists"),
                )
                return True
            _send_packet(conn, 1, _ok_packet(affected_rows=1))
            return True

        sleep_match = _SLEEP_RE.match(lower)
        if sleep_match:
            time.sleep(float(sleep_match.group(1)))
            _send_result_set(conn, ["SLEEP"], [["0"]])
            return True

        if lower == "show tables":
            # Not valid UTF-8 although the column is declared utf8.
            _send_result_set(conn, ["Tables_in_workbench"], [[b"\xff\xfe"]])
            return True

        if lower == "kill connection":
            conn.close()
            return False

        if lower.startswith("select "):
            _send_packet(conn, 1, _err_packet(1064, "42000", "You have an error in your SQL syntax"))
            return True

        _send_packet(conn, 1, _ok_packet())
        return True


def _handshake_packet(connection_id: int, capabilities: int, seed: bytes) -> bytes:
    payload = bytearray()
    payload.append(0x0A)
    payload.extend(b"8.0.36-stub\x00")
    payload.extend(struct.pack("<I", connection_id))
    payload.extend(seed[:8])
    payload.append(0x00)
    payload.extend(struct.pack("<H", capabilities & 0xFFFF))
    payload.append(0x21)
    payload.extend(struct.pack("<H", _SERVER_STATUS_AUTOCOMMIT))
    payload.extend(struct.pack("<H", (capabilities >> 16) & 0xFFFF))
    payload.append(len(seed) + 1)
    payload.extend(b"\x00" * 10)
    payload.extend(seed[8:])
    payload.append(0x00)
    payload.extend(b"mysql_native_password\x00")
    return bytes(payload)


def _ok_packet(*, affected_rows: int = 0, insert_id: int = 0, info: str = "") -> bytes:
    return (
        b"\x00"
        + _lenenc_int(affected_rows)
        + _lenenc_int(insert_id)
        + struct.pack("<HH", _SERVER_STATUS_AUTOCOMMIT, 0)
        + info.encode("utf-8")
    )


def _err_packet(code: int, sqlstate: str, message: str) -> bytes:
    return b"\xff" + struct.pack("<H", code) + b"#" + sqlstate.encode("ascii") + message.encode("utf-8")


def _eof_packet() -> bytes:
    return b"\xfe" + struct.pack("<HH", 0, _SERVER_STATUS_AUTOCOMMIT)


def _lenenc_int(value: int) -> bytes:
    if value < 0xFB:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xFC" + value.to_bytes(2, "little")
    if value <= 0xFFFFFF:
        return b"\xFD" + value.to_bytes(3, "little")
    return b"\xFE" + value.to_bytes(8, "little")


def _lenenc_str(value: str | bytes) -> bytes:
    encoded = value if isinstance(value, bytes) else value.encode("utf-8")
    return _lenenc_int(len(encoded)) + encoded


def _column_definition(name: str) -> bytes:
    payload = bytearray()
    for part in ("def", "", "", "", name, name):
        payload.extend(_lenenc_str(part))
    payload.extend(b"\x0c")
    payload.extend((33).to_bytes(2, "little"))
    payload.extend((1024).to_bytes(4, "little"))
    payload.extend(b"\xfd")
    payload.extend((0).to_bytes(2, "little"))
    payload.extend(b"\x00")
    payload.extend(b"\x00\x00")
    return bytes(payload)


def _send_result_set(conn: socket.socket, columns: list[str], rows: list[list[str | bytes]]) -> None:
    sequence = 1
    _send_packet(conn, sequence, _lenenc_int(len(columns)))
    for column in columns:
        sequence += 1
        _send_packet(conn, sequence, _column_definition(column))
    sequence += 1
    _send_packet(conn, sequence, _eof_packet())
    for row in rows:
        sequence += 1
        _send_packet(conn, sequence, b"".join(_lenenc_str(value) for value in row))
    sequence += 1
    _send_packet(conn, sequence, _eof_packet())


def _send_packet(conn: socket.socket, sequence: int, payload: bytes) -> bool:
    try:
        conn.sendall(len(payload).to_bytes(3, "little") + bytes([sequence & 0xFF]) + payload)
        return True
    except OSError:
        return False


def _read_packet(conn: socket.socket) -> tuple[int, bytes] | None:
    header = _recv_exact(conn, 4)
    if header is None:
        return None
    payload = _recv_exact(conn, int.from_bytes(header[:3], "little"))
    if payload is None:
        return None
    return (header[3], payload)


def _recv_exact(conn: socket.socket, size: int) -> bytes | None:
    data = bytearray()
    try:
        while len(data) < size:
            chunk = conn.recv(size - len(data))
            if not chunk:
                return None
            data.extend(chunk)
    except OSError:
        return None
    return bytes(data)


@pytest.fixture
def mysql_stub() -> Iterator[MySQLStub]:
    stub = MySQLStub(db_name="workbench")
    stub.start()
    try:
        yield stub
    finally:
        stub.stop()


@pytest.fixture
def stub_target(mysql_stub: MySQLStub) -> dict[str, Any]:
    host, port = mysql_stub.endpoint
    return {"host": host, "port": port, "user": "root", "password": "", "connect_timeout_seconds": 2.0}
