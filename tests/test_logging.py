import json
import logging

from chatrouter.core.logging import (
    JsonLogFormatter,
    MessageContextFilter,
    bind_message,
    bind_request_id,
    reset_message,
    reset_request_id,
)


def _record(**extra):
    record = logging.LogRecord("chatrouter.test", logging.INFO, __file__, 1, "routed %s", ("ok",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_filter_stamps_bound_correlation_ids():
    request_token = bind_request_id("req-1")
    message_tokens = bind_message("wamid.9", "u9")
    try:
        record = _record()
        assert MessageContextFilter().filter(record) is True
    finally:
        reset_message(message_tokens)
        reset_request_id(request_token)

    assert record.request_id == "req-1"
    assert record.message_id == "wamid.9"
    assert record.user_id == "u9"


def test_ids_reset_after_unit_of_work():
    reset_message(bind_message("wamid.9", "u9"))
    record = _record()
    MessageContextFilter().filter(record)
    assert record.message_id == "-"
    assert record.user_id == "-"


def test_json_formatter_merges_extra_fields():
    record = _record(provider="gemini", latency_ms=12.5)
    MessageContextFilter().filter(record)

    entry = json.loads(JsonLogFormatter().format(record))

    assert entry["message"] == "routed ok"
    assert entry["level"] == "INFO"
    assert entry["provider"] == "gemini"
    assert entry["latency_ms"] == 12.5
    assert entry["message_id"] == "-"
    assert "msg" not in entry
