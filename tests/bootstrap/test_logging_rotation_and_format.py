from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler

from hotel_offline.bootstrap.logging import (
    MAIN_LOG_NAME,
    OPERATIONAL_ERROR_LOG_NAME,
    LevelOnlyFilter,
    configure_logging,
)
from hotel_offline.core.observability import OperationContext

MIN_FIELDS = {"timestamp", "level", "module", "function", "message", "correlation_id"}


def test_logging_writes_jsonl_with_minimum_fields(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)

    logger = logging.getLogger("tests.rotation")
    logger.info("first event")
    logger.info("second event", extra={"correlation_id": "cid-001", "extra": {"k": "v"}})

    lines = (tmp_path / MAIN_LOG_NAME).read_text(encoding="utf-8").splitlines()
    assert lines
    for line in lines:
        event = json.loads(line)
        assert MIN_FIELDS.issubset(event.keys())

    latest = json.loads(lines[-1])
    assert latest["correlation_id"] == "cid-001"
    assert latest["extra"]["k"] == "v"


def test_operation_name_is_attached_inside_context(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    logger = logging.getLogger("tests.rotation")

    with OperationContext("snapshot.persist") as operation:
        logger.info("inside operation")

    latest = json.loads((tmp_path / MAIN_LOG_NAME).read_text(encoding="utf-8").splitlines()[-1])
    assert latest["operation"] == "snapshot.persist"
    assert latest["correlation_id"] == operation.correlation_id


def test_logging_rotation_creates_backup_files(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=200, backup_count=3)
    logger = logging.getLogger("tests.rotation")

    for index in range(40):
        logger.info("event-%s %s", index, "x" * 120)

    rotated_files = sorted(tmp_path.glob(f"{MAIN_LOG_NAME}.*"))
    assert rotated_files


def test_operational_handler_filters_to_error_level(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)

    handlers = [h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)]
    operational_handler = next(h for h in handlers if h.baseFilename.endswith(OPERATIONAL_ERROR_LOG_NAME))

    assert operational_handler.level == logging.ERROR
    assert any(isinstance(filter_, LevelOnlyFilter) for filter_ in operational_handler.filters)


def test_critical_goes_to_crash_log_and_not_to_operational_error(tmp_path) -> None:
    configure_logging(tmp_path, max_bytes=4096, backup_count=2)
    logger = logging.getLogger("tests.crash")

    try:
        raise ValueError("critical failure")
    except ValueError:
        logger.critical("unhandled critical error", exc_info=True)

    crash_event = json.loads((tmp_path / "crash.log").read_text(encoding="utf-8").splitlines()[-1])
    assert crash_event["level"] == "CRITICAL"
    assert "ValueError: critical failure" in crash_event["exc_info"]

    operational_lines = (tmp_path / OPERATIONAL_ERROR_LOG_NAME).read_text(encoding="utf-8").splitlines()
    assert not operational_lines
