import json
import logging

from queryprobe.config.schema import LoggingConfig
from queryprobe.core.logging import ECSJsonFormatter, configure_logging, emit_metric, get_logger


def test_ecs_log_output_to_file(tmp_path) -> None:
    log_file = tmp_path / "events.log"
    config = LoggingConfig(
        level="INFO",
        fmt="ecs_json",
        sink="file",
        file_path=str(log_file),
        service_name="queryprobe-test",
    )
    configure_logging(config, force=True)
    logger = get_logger("queryprobe.test.logging")
    logger.info(
        "case failed",
        extra={
            "sequence": "databases",
            "case_index": 1,
            "query": "SHOW DATABASES",
            "event_action": "case",
            "event_outcome": "failure",
            "target_host": "127.0.0.1",
            "target_port": 3306,
            "payload": {"kind": "assertion_failure"},
        },
    )

    record = json.loads(log_file.read_text(encoding="utf-8").strip().splitlines()[-1])
    assert record["@timestamp"]
    assert record["service"]["name"] == "queryprobe-test"
    assert record["event"]["action"] == "case"
    assert record["event"]["category"] == "database"
    assert record["queryprobe"]["sequence"] == "databases"
    assert record["queryprobe"]["case"] == 1
    assert record["destination"]["port"] == 3306


def test_emit_metric_logs_metric_category(tmp_path) -> None:
    log_file = tmp_path / "metrics.log"
    config = LoggingConfig(
        level="INFO",
        fmt="ecs_json",
        sink="file",
        file_path=str(log_file),
        service_name="queryprobe-test",
    )
    configure_logging(config, force=True)
    logger = get_logger("queryprobe.test.metrics")
    emit_metric(
        logger,
        name="cases_failed",
        value=2,
        sequence="databases",
        payload={"policy": "collect_all"},
    )

    lines = [line for line in log_file.read_text(encoding="utf-8").splitlines() if line.strip()]
    record = json.loads(lines[-1])
    assert record["event"]["category"] == "metric"
    assert record["event"]["action"] == "cases_failed"
    assert record["queryprobe"]["payload"]["metric_value"] == 2.0
    assert record["queryprobe"]["payload"]["policy"] == "collect_all"


def test_formatter_drops_empty_fields() -> None:
    record = logging.LogRecord("queryprobe.x", logging.WARNING, __file__, 1, "plain", None, None)
    payload = json.loads(ECSJsonFormatter().format(record))
    assert payload["log"]["level"] == "warning"
    assert "destination" not in payload
    assert "queryprobe" not in payload
    assert "outcome" not in payload["event"]


def test_json_format_writes_ecs_records(tmp_path) -> None:
    log_file = tmp_path / "json.log"
    config = LoggingConfig(level="INFO", fmt="json", sink="file", file_path=str(log_file))
    configure_logging(config, force=True)
    get_logger("queryprobe.test.json").info("sequence databases done")

    record = json.loads(log_file.read_text(encoding="utf-8").strip().splitlines()[-1])
    assert record["message"] == "sequence databases done"
    assert record["service"]["name"] == "queryprobe"


def test_plain_format_writes_text(tmp_path) -> None:
    log_file = tmp_path / "plain.log"
    config = LoggingConfig(level="INFO", fmt="plain", sink="file", file_path=str(log_file))
    configure_logging(config, force=True)
    get_logger("queryprobe.test.plain").info("sequence databases done")

    line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert line.endswith("INFO queryprobe.test.plain sequence databases done")
