from __future__ import annotations

import json
import logging
import sys

from visitor_tracker.logs import JsonFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "visitor_tracker.services", logging.INFO, __file__, 1, "ping %s", ("received",), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_line_carries_request_context() -> None:
    line = JsonFormatter().format(_record(page_code="P1", session_id="A", route="track", other="x"))
    payload = json.loads(line)

    assert payload["msg"] == "ping received"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "visitor_tracker.services"
    assert (payload["page_code"], payload["session_id"], payload["route"]) == ("P1", "A", "track")
    assert "other" not in payload
    assert "\n" not in line


def test_exception_is_embedded() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in payload["exc"]
