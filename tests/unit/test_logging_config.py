"""Unit tests for structured logging and correlation ids."""

import json
import logging

from prepmap.logging_config import CorrelationIdFilter, JsonFormatter, correlation_id_var, install_record_factory


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("prepmap.test", logging.WARNING, __file__, 1, "Cache fetch failed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extras_and_correlation_id():
    token = correlation_id_var.set("req-42")
    try:
        record = _record(cache_key="roadmap/backend/mid", error_code="TRANSIENT_NETWORK_ERROR")
        CorrelationIdFilter().filter(record)
        payload = json.loads(JsonFormatter().format(record))
    finally:
        correlation_id_var.reset(token)

    assert payload["message"] == "Cache fetch failed"
    assert payload["level"] == "WARNING"
    assert payload["correlation_id"] == "req-42"
    assert payload["cache_key"] == "roadmap/backend/mid"
    assert payload["error_code"] == "TRANSIENT_NETWORK_ERROR"


def test_missing_correlation_id_is_omitted():
    record = _record()
    CorrelationIdFilter().filter(record)

    payload = json.loads(JsonFormatter().format(record))

    assert record.correlation_id == "-"
    assert "correlation_id" not in payload


def test_unserializable_extra_is_stringified():
    payload = json.loads(JsonFormatter().format(_record(missing={"T1"})))

    assert payload["missing"] == "{'T1'}"


def test_record_factory_sets_correlation_id_without_filter():
    install_record_factory()
    factory = logging.getLogRecordFactory()
    install_record_factory()

    token = correlation_id_var.set("req-7")
    try:
        record = logging.getLogRecordFactory()("prepmap.test", logging.INFO, __file__, 1, "View built", None, None)
    finally:
        correlation_id_var.reset(token)
    outside = logging.getLogRecordFactory()("prepmap.test", logging.INFO, __file__, 1, "View built", None, None)

    assert logging.getLogRecordFactory() is factory
    assert record.correlation_id == "req-7"
    assert outside.correlation_id == "-"
