"""Query session interface implemented by target drivers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from queryprobe.config.schema import TargetConfig
from queryprobe.fixtures.models import ExpectedResult


class QuerySession(ABC):
    """One logical connection to the system under test.

    Drivers raise `TargetConnectionError` when the session cannot be opened or
    is lost, and `ProtocolError` when the server answers with an error or with
    something that is neither a status nor a row set.
    """

    def __init__(self, config: TargetConfig) -> None:
        self.config = config

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def execute(self, query: str) -> ExpectedResult: ...

    @abstractmethod
    def close(self) -> None: ...

    @property
    @abstractmethod
    def name(self) -> str: ...

    def describe(self) -> dict[str, Any]:
        return {
            "driver": self.name,
            "host": self.config.host,
            "port": self.config.port,
            "database": self.config.database,
        }
