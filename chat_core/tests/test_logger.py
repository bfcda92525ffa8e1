import json
import logging

from chat_core.infrastructure.logging.logger import JsonFormatter


def make_record(msg, **extra):
    record = logging.LogRecord("chat_core", logging.INFO, __file__, 1, msg, None, None)
    if extra:
        record.extra = extra
    return record


def test_json_formatter_includes_extra():
    line = JsonFormatter().format(make_record("Deleted chat", chat_id="c1"))
    payload = json.loads(line)
    assert payload["msg"] == "Deleted chat"
    assert payload["chat_id"] == "c1"
    assert payload["level"] == "INFO"
    assert payload["ts"].endswith("Z")


def test_json_formatter_masks_bearer_tokens():
    line = JsonFormatter().format(make_record("header was Bearer abc.def-123"))
    assert "abc.def-123" not in line
    assert "Bearer ***" in json.loads(line)["msg"]


def test_json_formatter_redacts_long_content():
    line = JsonFormatter(redact_content=True).format(make_record("x" * 200))
    assert len(json.loads(line)["msg"]) == 64
