"""Dataclasses for top-level application config."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


DEFAULT_DRIVER = "queryprobe.clients.mysql"


@dataclass(slots=True)
class TargetConfig:
    driver: str = DEFAULT_DRIVER
    host: str = "127.0.0.1"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str = ""
    connect_timeout_seconds: float = 5.0
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RunnerConfig:
    policy: str = "fail_fast"
    query_timeout_seconds: float = 10.0
    max_workers: int = 4


@dataclass(slots=True)
class SequenceConfig:
    name: str
    builtin: str = ""
    path: str = ""
    enabled: bool = True
    isolated: bool | None = None


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    fmt: str = "ecs_json"
    sink: str = "stdout"
    file_path: str | None = None
    service_name: str = "queryprobe"


@dataclass(slots=True)
class AppConfig:
    environment: str
    target: TargetConfig
    runner: RunnerConfig
    logging: LoggingConfig
    context: dict[str, Any]
    sequences: list[SequenceConfig]


VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
VALID_LOG_FORMATS = {"json", "ecs_json", "plain"}
VALID_LOG_SINKS = {"stdout", "file"}
VALID_FAILURE_POLICIES = {"fail_fast", "collect_all"}


def _parse_bool_value(raw: Any, *, field_name: str, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        normalized = raw.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"{field_name} must be a boolean")


def _parse_positive_float(raw: Any, *, field_name: str, default: float) -> float:
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be a number") from exc
    if value <= 0:
        raise ValueError(f"{field_name} must be greater than zero")
    return value


def _parse_target(raw: dict[str, Any]) -> TargetConfig:
    if not isinstance(raw, dict):
        raise ValueError("target must be a mapping")
    driver = str(raw.get("driver", DEFAULT_DRIVER) or "").strip()
    if not driver:
        raise ValueError("target.driver must be a non-empty module path")
    port_raw = raw.get("port", 3306)
    if not isinstance(port_raw, int) or isinstance(port_raw, bool):
        try:
            port_raw = int(str(port_raw))
        except ValueError as exc:
            raise ValueError("target.port must be an integer") from exc
    if not (0 <= port_raw <= 65535):
        raise ValueError(f"target.port out of range: {port_raw}")
    options = raw.get("options", {}) or {}
    if not isinstance(options, dict):
        raise ValueError("target.options must be a mapping")
    return TargetConfig(
        driver=driver,
        host=str(raw.get("host", "127.0.0.1")),
        port=port_raw,
        user=str(raw.get("user", "root")),
        password=str(raw.get("password", "") or ""),
        database=str(raw.get("database", "") or ""),
        connect_timeout_seconds=_parse_positive_float(
            raw.get("connect_timeout_seconds"),
            field_name="target.connect_timeout_seconds",
            default=5.0,
        ),
        options=dict(options),
    )


def _parse_runner(raw: dict[str, Any]) -> RunnerConfig:
    if not isinstance(raw, dict):
        raise ValueError("runner must be a mapping")
    policy = str(raw.get("policy", "fail_fast")).strip().lower().replace("-", "_")
    if policy not in VALID_FAILURE_POLICIES:
        raise ValueError(f"runner.policy must be one of {sorted(VALID_FAILURE_POLICIES)}")
    max_workers = raw.get("max_workers", 4)
    if not isinstance(max_workers, int) or isinstance(max_workers, bool) or max_workers < 1:
        raise ValueError("runner.max_workers must be a positive integer")
    return RunnerConfig(
        policy=policy,
        query_timeout_seconds=_parse_positive_float(
            raw.get("query_timeout_seconds"),
            field_name="runner.query_timeout_seconds",
            default=10.0,
        ),
        max_workers=max_workers,
    )


def _parse_sequences(items: list[dict[str, Any]]) -> list[SequenceConfig]:
    sequences: list[SequenceConfig] = []
    seen: set[str] = set()
    for item in items:
        if not isinstance(item, dict):
            raise ValueError("sequence entries must be mappings")
        builtin = str(item.get("builtin", "") or "").strip()
        path = str(item.get("path", "") or "").strip()
        name = str(item.get("name", "") or builtin or path).strip()
        if not name:
            raise ValueError("sequence requires a non-empty 'name'")
        if bool(builtin) == bool(path):
            raise ValueError(f"sequence '{name}' requires exactly one of 'builtin' or 'path'")
        if name in seen:
            raise ValueError(f"duplicate sequence name '{name}'")
        seen.add(name)
        isolated_raw = item.get("isolated")
        sequences.append(
            SequenceConfig(
                name=name,
                builtin=builtin,
                path=path,
                enabled=_parse_bool_value(item.get("enabled"), field_name=f"sequence '{name}' enabled", default=True),
                isolated=(
                    None
                    if isolated_raw is None
                    else _parse_bool_value(isolated_raw, field_name=f"sequence '{name}' isolated", default=False)
                ),
            )
        )
    return sequences


def _parse_logging(raw: dict[str, Any]) -> LoggingConfig:
    if not isinstance(raw, dict):
        raise ValueError("logging must be a mapping")
    config = LoggingConfig(
        level=str(raw.get("level", "INFO")).upper(),
        fmt=str(raw.get("fmt", "ecs_json")),
        sink=str(raw.get("sink", "stdout")),
        file_path=raw.get("file_path"),
        service_name=str(raw.get("service_name", "queryprobe")),
    )
    if config.level not in VALID_LOG_LEVELS:
        raise ValueError(f"invalid logging level: {config.level}")
    if config.fmt not in VALID_LOG_FORMATS:
        raise ValueError(f"invalid logging format: {config.fmt}")
    if config.sink not in VALID_LOG_SINKS:
        raise ValueError(f"invalid logging sink: {config.sink}")
    if config.sink == "file" and not config.file_path:
        raise ValueError("logging.file_path is required when logging.sink is 'file'")
    return config


def parse_config(data: dict[str, Any]) -> AppConfig:
    context = data.get("context", {}) or {}
    if not isinstance(context, dict):
        raise ValueError("context must be a mapping")
    sequences_raw = data.get("sequences", []) or []
    if not isinstance(sequences_raw, list):
        raise ValueError("sequences must be a list")
    return AppConfig(
        environment=str(data.get("environment", "development")),
        target=_parse_target(data.get("target", {}) or {}),
        runner=_parse_runner(data.get("runner", {}) or {}),
        logging=_parse_logging(data.get("logging", {}) or {}),
        context={str(key): value for key, value in context.items()},
        sequences=_parse_sequences(sequences_raw),
    )
