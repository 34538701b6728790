# tests/unit/logging/test_unit_logger.py — v2
"""Tests for logging/logger.py — formatters and setup."""

from __future__ import annotations

import json
import logging

import pytest

from storyloom.logging.context import clear_context, log_context
from storyloom.logging.logger import JsonFormatter, TextFormatter, setup_logging


def _record(msg: str = "Hello", exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="storyloom.test", level=logging.INFO, pathname="", lineno=0,
        msg=msg, args=(), exc_info=exc_info,
    )


@pytest.fixture(autouse=True)
def _clean_context():
    clear_context()
    yield
    clear_context()


class TestJsonFormatter:
    def test_format_basic(self):
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Hello"
        assert parsed["logger"] == "storyloom.test"
        assert "timestamp" in parsed
        assert "context" not in parsed

    def test_format_with_context(self):
        with log_context(workflow_id="u1_龙_1", persona="architect"):
            parsed = json.loads(JsonFormatter().format(_record("生成完成")))
        assert parsed["context"] == {"workflow_id": "u1_龙_1", "persona": "architect"}
        assert parsed["message"] == "生成完成"

    def test_extra_data(self):
        record = _record()
        record.data = {"tokens": 42}
        assert json.loads(JsonFormatter().format(record))["data"] == {"tokens": 42}

    def test_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            import sys
            record = _record(exc_info=sys.exc_info())
        assert "RuntimeError: boom" in json.loads(JsonFormatter().format(record))["exception"]


class TestTextFormatter:
    def test_format_basic(self):
        output = TextFormatter().format(_record("Hello text"))
        assert "Hello text" in output
        assert "INFO" in output

    def test_context_markers(self):
        with log_context(workflow_id="wf1", persona="writer", phase="writing"):
            output = TextFormatter().format(_record())
        assert "<wf1>" in output
        assert "[writer]" in output
        assert "(writing)" in output


class TestSetupLogging:
    def test_setup_json(self):
        setup_logging(level="DEBUG", log_format="json")
        root = logging.getLogger("storyloom")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_setup_text_replaces_handlers(self):
        setup_logging(level="INFO", log_format="json")
        setup_logging(level="INFO", log_format="text")
        root = logging.getLogger("storyloom")
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, TextFormatter)

    def test_setup_with_file(self, tmp_path):
        setup_logging(level="INFO", log_format="json", log_file=tmp_path / "logs" / "app.log")
        root = logging.getLogger("storyloom")
        assert len(root.handlers) == 2
        for handler in root.handlers[1:]:
            handler.close()
        root.handlers.clear()
