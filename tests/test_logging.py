"""Tests for structured JSON logging (dues_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from dues_kernel.exceptions import AlreadyPaidError, StoreError
from dues_kernel.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def lines():
    """Configure logging into a buffer; return a reader of parsed lines."""
    stream = StringIO()
    configure_logging(stream=stream, level=logging.DEBUG)

    def _read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _read


log = get_logger("tests.logging")


class TestLineShape:
    def test_core_fields(self, lines):
        log.info("semester_rollover_completed")

        (record,) = lines()
        assert record["level"] == "INFO"
        assert record["logger"] == "dues_kernel.tests.logging"
        assert record["message"] == "semester_rollover_completed"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields(self, lines):
        log.info("payment_recorded", extra={"receipt_number": "R-1", "attempt": 2})

        (record,) = lines()
        assert record["receipt_number"] == "R-1"
        assert record["attempt"] == 2

    def test_money_keeps_scale_and_dates_are_iso(self, lines):
        log.info("rollover", extra={"dues_amount": Decimal("20.50"), "start_date": date(2025, 9, 1)})

        (record,) = lines()
        assert record["dues_amount"] == "20.50"
        assert record["start_date"] == "2025-09-01"

    def test_identifier_sets_are_sorted(self, lines):
        log.debug("identifiers", extra={"identifiers": frozenset({"kofi@ntc.edu.gh", "NTCW/23/001"})})

        (record,) = lines()
        assert record["identifiers"] == ["NTCW/23/001", "kofi@ntc.edu.gh"]

    def test_context_before_extra(self, lines):
        LogContext.set(actor_id="bursar")
        log.info("x", extra={"actor_id": "ignored"})

        (record,) = lines()
        assert record["actor_id"] == "bursar"


class TestExceptionFields:
    def test_plain_exception(self, lines):
        try:
            raise ValueError("boom")
        except ValueError:
            log.error("failed", exc_info=True)

        (record,) = lines()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_ledger_error_details(self, lines):
        try:
            raise AlreadyPaidError("NTCW/23/001", "sem-1", "pay-1")
        except AlreadyPaidError:
            log.warning("duplicate_payment_rejected", exc_info=True)

        (record,) = lines()
        assert record["exc_code"] == "ALREADY_PAID"
        assert record["exc_student_id"] == "NTCW/23/001"
        assert record["exc_semester_id"] == "sem-1"
        assert record["exc_payment_id"] == "pay-1"

    def test_store_error_retryable_flag(self, lines):
        try:
            raise StoreError("record_payment", "database is locked", retryable=True)
        except StoreError:
            log.error("store_operation_failed", exc_info=True)

        (record,) = lines()
        assert record["exc_code"] == "STORE_ERROR"
        assert record["exc_operation"] == "record_payment"
        assert record["exc_retryable"] is True


class TestLogContext:
    def test_fields_appear_on_lines(self, lines):
        LogContext.set(correlation_id="abc-123", semester_id="sem-1")
        log.info("report_computed")

        (record,) = lines()
        assert record["correlation_id"] == "abc-123"
        assert record["semester_id"] == "sem-1"

    def test_empty_context_adds_nothing(self, lines):
        log.info("bare")

        (record,) = lines()
        assert not set(CONTEXT_FIELDS) & record.keys()

    def test_set_ignores_none(self):
        LogContext.set(actor_id="a")
        LogContext.set(actor_id=None, request_id="r")
        assert LogContext.get_all() == {"request_id": "r", "actor_id": "a"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", semester_id="sem-2"):
            assert LogContext.get_all() == {"actor_id": "inner", "semester_id": "sem-2"}
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(semester_id="temp"):
                raise RuntimeError("inside")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(hall="h1")


class TestConfigureLogging:
    def test_first_call_wins(self):
        configure_logging(stream=StringIO())
        configure_logging(stream=StringIO())
        ours = [
            h for h in logging.getLogger("dues_kernel").handlers if isinstance(h.formatter, StructuredFormatter)
        ]
        assert len(ours) == 1

    def test_default_level_drops_debug(self):
        stream = StringIO()
        configure_logging(stream=stream)
        log.debug("hidden")
        log.info("shown")

        assert [json.loads(line)["message"] for line in stream.getvalue().splitlines()] == ["shown"]

    def test_does_not_propagate_to_root(self):
        configure_logging(stream=StringIO())
        assert logging.getLogger("dues_kernel").propagate is False

    def test_explicit_handler(self):
        stream = StringIO()
        configure_logging(handler=logging.StreamHandler(stream))
        get_logger("services.payment_recorder").warning("w")

        assert json.loads(stream.getvalue())["logger"] == "dues_kernel.services.payment_recorder"
