import json
import logging

from gltf_viewer.utils.logging import JsonFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("gltf_viewer.test", logging.INFO, __file__, 1, "translation_ready", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_lifecycle_fields():
    line = JsonFormatter().format(_record(translation_id="T1", webhook_id="W9", state="ready"))

    data = json.loads(line)
    assert data["message"] == "translation_ready"
    assert data["level"] == "INFO"
    assert data["translation_id"] == "T1"
    assert data["webhook_id"] == "W9"
    assert data["state"] == "ready"
    assert "document_id" not in data


def test_json_formatter_renders_exceptions():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        import sys

        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
    data = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in data["exc_info"]


def test_setup_logging_installs_single_json_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("debug")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
