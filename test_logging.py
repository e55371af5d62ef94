"""
Tests for netProbe structured logging.
"""
import asyncio
import json
import logging
import sys

from netProbe.logging_config import (
    JSONLFormatter,
    get_logger,
    get_scan_id,
    reset_scan_id,
    sanitize_dsn,
    set_scan_id,
    setup_logging,
)


def _record(msg="Query failed", level=logging.INFO, **extra):
    record = logging.LogRecord("netprobe.test", level, __file__, 10, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_file_logging_writes_json_lines(tmp_path):
    log_file = tmp_path / "test.jsonl"
    logger = setup_logging("test", log_level="DEBUG", log_file=str(log_file), enable_console=False)

    logger.info("Scan starting", extra={"network": "10.0.0.0/30", "concurrency": 4})
    for handler in logger.handlers:
        handler.flush()

    lines = [json.loads(line) for line in log_file.read_text().splitlines()]
    entry = lines[-1]
    assert entry["message"] == "Scan starting"
    assert entry["level"] == "INFO"
    assert entry["component"] == "test"
    assert entry["logger"] == "netprobe.test"
    assert entry["network"] == "10.0.0.0/30"
    assert entry["concurrency"] == 4
    assert entry["timestamp"].endswith("Z")


def test_structured_extra_fields():
    formatter = JSONLFormatter(component="scanner")
    data = json.loads(
        formatter.format(_record(target="10.0.0.1", domain="example.com", outcome="timeout", unrelated="x"))
    )
    assert data["target"] == "10.0.0.1"
    assert data["domain"] == "example.com"
    assert data["outcome"] == "timeout"
    assert "unrelated" not in data
    assert "scan_id" not in data


def test_error_logging_includes_exception():
    formatter = JSONLFormatter()
    try:
        1 / 0
    except ZeroDivisionError:
        record = logging.LogRecord("netprobe.test", logging.ERROR, __file__, 1, "boom", (), sys.exc_info())
    data = json.loads(formatter.format(record))
    assert data["exception"]["type"] == "ZeroDivisionError"
    assert data["exception"]["traceback"]


def test_scan_id_is_included():
    formatter = JSONLFormatter()
    token = set_scan_id("scan-123")
    try:
        data = json.loads(formatter.format(_record()))
    finally:
        reset_scan_id(token)
    assert data["scan_id"] == "scan-123"
    assert get_scan_id() == ""


def test_scan_id_propagates_into_tasks():

    async def scenario():
        set_scan_id("scan-abc")

        async def unit():
            await asyncio.sleep(0)
            return get_scan_id()

        return await asyncio.gather(*(asyncio.create_task(unit()) for _ in range(3)))

    assert asyncio.run(scenario()) == ["scan-abc"] * 3


def test_sanitize_dsn():
    assert sanitize_dsn("postgresql://probe:secret@db:5432/scans") == (
        "postgresql://probe:***REDACTED***@db:5432/scans"
    )
    assert sanitize_dsn("postgresql://db:5432/scans") == "postgresql://db:5432/scans"
    assert sanitize_dsn("dns.db") == "dns.db"


def test_component_loggers_are_namespaced():
    for component in ("scanner", "dispatcher", "db", "cli"):
        logger = get_logger(component)
        assert logger.name == f"netprobe.{component}"
        assert logger.handlers
        assert logger.propagate is False
