"""Tests for structured logging."""

import json
import logging
import sys
from datetime import date
from decimal import Decimal

import pytest

from vesting_domain.config import VestingSettings
from vesting_domain.errors import ConsistencyError
from vesting_domain.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_from_settings,
    configure_logging,
    get_logger,
)


def _record(msg="event_name", exc_info=None, **extra):
    record = logging.LogRecord("vesting_domain.test", logging.INFO, __file__, 1, msg, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:

    def test_basic_fields(self):
        payload = json.loads(StructuredFormatter().format(_record()))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "vesting_domain.test"
        assert payload["message"] == "event_name"
        assert "ts" in payload

    def test_extra_fields_are_serialized(self):
        line = StructuredFormatter().format(
            _record(event_count=4, first_date=date(2025, 1, 1), pct=Decimal("25.00"))
        )
        payload = json.loads(line)
        assert payload["event_count"] == 4
        assert payload["first_date"] == "2025-01-01"
        assert payload["pct"] == "25.00"

    def test_context_fields_are_included(self):
        with LogContext.bind(grant_id="gr_1", correlation_id="abc"):
            payload = json.loads(StructuredFormatter().format(_record()))
        assert payload["grant_id"] == "gr_1"
        assert payload["correlation_id"] == "abc"
        assert "schedule_id" not in payload

    def test_vesting_error_details(self):
        try:
            raise ConsistencyError("refusing", grant_id="gr_1", stage="materialize")
        except ConsistencyError:
            record = _record(exc_info=sys.exc_info())

        payload = json.loads(StructuredFormatter().format(record))
        assert payload["exc_type"] == "ConsistencyError"
        assert payload["exc_code"] == "CONSISTENCY_ERROR"
        assert payload["exc_stage"] == "materialize"
        assert "Traceback" in payload["traceback"]


class TestLogContext:

    def test_bind_restores_previous_values(self):
        with LogContext.bind(grant_id="outer"):
            with LogContext.bind(grant_id="inner", schedule_id="s"):
                assert LogContext.get_all() == {"grant_id": "inner", "schedule_id": "s"}
            assert LogContext.get_all() == {"grant_id": "outer"}
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="Unknown log context fields"):
            LogContext.bind(tenant="x")


class TestConfigureLogging:

    def test_single_handler_after_repeated_calls(self):
        configure_logging("DEBUG")
        root = configure_logging("INFO")

        installed = [h for h in root.handlers if h.get_name() == "vesting_domain_handler"]
        assert len(installed) == 1
        assert isinstance(installed[0].formatter, StructuredFormatter)
        assert root.level == logging.INFO

    def test_text_format(self):
        root = configure_logging("WARNING", fmt="text")
        handler = [h for h in root.handlers if h.get_name() == "vesting_domain_handler"][0]
        assert not isinstance(handler.formatter, StructuredFormatter)

    def test_from_settings(self):
        settings = VestingSettings(_env_file=None, log_level="debug", log_format="text")
        root = configure_from_settings(settings)
        assert root.level == logging.DEBUG

    def test_get_logger_namespace(self):
        assert get_logger("service").name == "vesting_domain.service"
