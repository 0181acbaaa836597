import io
import json
import logging
import re

import pytest

from walstream.log import JsonFormatter, get_logger, setup


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_setup_writes_json_line():
    stream = io.StringIO()
    setup("info", stream)
    get_logger().info("connect slot")
    (entry,) = _lines(stream)
    assert entry["message"] == "connect slot"
    assert entry["level"] == "INFO"
    assert "test_log.py" in entry["caller"]
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}", entry["time"])


def test_level_filters_lower_records():
    stream = io.StringIO()
    setup("warn", stream)
    logger = get_logger()
    logger.info("hidden")
    logger.debug("hidden too")
    logger.warning("shown")
    entries = _lines(stream)
    assert [e["message"] for e in entries] == ["shown"]
    assert entries[0]["level"] == "WARN"


def test_fields_are_merged():
    stream = io.StringIO()
    setup("debug", stream)
    get_logger().debug("start replication", extra={"fields": {"slot": "slot_a"}})
    (entry,) = _lines(stream)
    assert entry["slot"] == "slot_a"
    assert entry["message"] == "start replication"


def test_uppercase_level_accepted():
    stream = io.StringIO()
    logger = setup("ERROR", stream)
    assert logger.level == logging.ERROR


def test_setup_replaces_previous_handler():
    first, second = io.StringIO(), io.StringIO()
    setup("info", first)
    setup("info", second)
    get_logger().info("once")
    assert first.getvalue() == ""
    assert len(_lines(second)) == 1


def test_invalid_level_raises():
    with pytest.raises(ValueError):
        setup("verbose", io.StringIO())


def test_formatter_includes_stacktrace():
    formatter = JsonFormatter()
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        import sys

        record = logging.LogRecord("walstream", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
    entry = json.loads(formatter.format(record))
    assert "RuntimeError: boom" in entry["stacktrace"]
    assert entry["message"] == "failed"