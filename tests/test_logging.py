"""Tests for structured logging helpers."""

import json
import logging
import sys

import pytest

from admission.app.core import logging as admission_logging
from admission.app.core.config import Settings
from admission.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logging_config,
)


def make_record(msg="hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="admission.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "admission.test"
        assert data["message"] == "hello"
        assert data["source"]["line"] == 10

    def test_context_fields_promoted(self):
        record = make_record(request_id="req-1", client_key="user:a", status_code=429)
        data = json.loads(JSONFormatter().format(record))

        assert data["request_id"] == "req-1"
        assert data["client_key"] == "user:a"
        assert data["status_code"] == 429
        assert "extra" not in data

    def test_unset_context_omitted(self):
        record = make_record()
        ContextFilter().filter(record)
        data = json.loads(JSONFormatter().format(record))
        assert "request_id" not in data

    def test_other_extras_nested(self):
        data = json.loads(JSONFormatter().format(make_record(reason="timeout")))
        assert data["extra"] == {"reason": "timeout"}

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in "".join(data["exception"])


class TestContextFilter:

    def test_adds_defaults(self):
        record = make_record()
        assert ContextFilter().filter(record) is True
        assert record.request_id is None
        assert record.subject_id is None

    def test_keeps_existing_values(self):
        record = make_record(request_id="req-1")
        ContextFilter().filter(record)
        assert record.request_id == "req-1"


class TestLoggingConfig:

    def test_get_log_context_drops_none(self):
        context = get_log_context(request_id="r", subject_id=None, path="/v1")
        assert context == {"request_id": "r", "path": "/v1"}

    @pytest.mark.parametrize(
        "log_format, formatter",
        [("text", "standard"), ("structured", "structured"), ("json", "json")],
    )
    def test_formatter_selection(self, monkeypatch, log_format, formatter):
        monkeypatch.setattr(
            admission_logging, "settings", Settings(_env_file=None, log_format=log_format)
        )
        config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == formatter
        assert config["handlers"]["error_console"]["level"] == "ERROR"
        assert config["loggers"]["admission"]["propagate"] is False

    def test_level_from_settings(self, monkeypatch):
        monkeypatch.setattr(
            admission_logging, "settings", Settings(_env_file=None, log_level="debug")
        )
        assert get_logging_config()["loggers"]["admission"]["level"] == "DEBUG"
