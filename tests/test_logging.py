"""Tests for the structured logging system (expense_kernel/logging_config.py)."""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from expense_kernel.exceptions import ExchangeRateNotFoundError, NotAnAuthorizedApproverError
from expense_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "expense_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("claim_submitted", extra={"approver_count": 3, "sequential": True})

        record = _parse_log(stream)
        assert record["approver_count"] == 3
        assert record["sequential"] is True

    def test_payload_types_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed",
            extra={
                "claim_id": uid,
                "amount": Decimal("45.10"),
                "decided_at": datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc),
                "approvers": (uid,),
            },
        )

        record = _parse_log(stream)
        assert record["claim_id"] == str(uid)
        assert record["amount"] == "45.10"
        assert record["decided_at"] == "2024-01-02T03:04:00+00:00"
        assert record["approvers"] == [str(uid)]

    def test_unknown_types_fall_back_to_str(self):
        class Money:
            def __str__(self):
                return "12.50 EUR"

        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("typed", extra={"total": Money(), "ids": frozenset({"a"})})

        record = _parse_log(stream)
        assert record["total"] == "12.50 EUR"
        assert record["ids"] == ["a"]

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_fields_extracted(self):
        """Kernel exceptions carry a code and their constructor fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise NotAnAuthorizedApproverError("c-1", "u-9", "slot already decided")
        except NotAnAuthorizedApproverError:
            get_logger("test").warning("decision_rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "NOT_AN_AUTHORIZED_APPROVER"
        assert record["exc_claim_id"] == "c-1"
        assert record["exc_approver_id"] == "u-9"
        assert record["exc_reason"] == "slot already decided"

    def test_currency_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ExchangeRateNotFoundError("JPY", "USD")
        except ExchangeRateNotFoundError:
            get_logger("test").error("conversion_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "EXCHANGE_RATE_NOT_FOUND"
        assert record["exc_from_currency"] == "JPY"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "claim_id" not in record
        assert "actor_id" not in record


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_clear(self):
        LogContext.set(correlation_id="req-1", company_id="co-1")
        assert LogContext.get_all() == {"correlation_id": "req-1", "company_id": "co-1"}

        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", claim_id="claim-9")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["claim_id"] == "claim-9"

    def test_bind_restores_previous_values(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", policy_id=uuid4()):
            assert LogContext.get_all()["actor_id"] == "inner"
            assert "policy_id" in LogContext.get_all()

        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(claim_id="c-1"):
                raise RuntimeError("fail")

        assert LogContext.get_all() == {}

    def test_bind_ignores_none_and_unknown(self):
        with LogContext.bind(claim_id=None, tenant="x"):
            assert LogContext.get_all() == {}

    def test_bound_fields_on_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        with LogContext.bind(claim_id="c-7"):
            logger.info("first")
            logger.info("second")
        logger.info("third")

        records = _parse_all_logs(stream)
        assert [r.get("claim_id") for r in records] == ["c-7", "c-7", None]


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        first, first_stream = _make_handler()
        second, second_stream = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)

        get_logger("test").info("once")

        assert len(_parse_all_logs(first_stream)) == 1
        assert second_stream.getvalue() == ""

    def test_level_filters(self):
        handler, stream = _make_handler()
        configure_logging(level="WARNING", handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

    def test_does_not_propagate(self):
        configure_logging(stream=StringIO())
        assert logging.getLogger("expense_kernel").propagate is False

    def test_reset_clears_handlers(self):
        configure_logging(stream=StringIO())
        reset_logging()
        assert logging.getLogger("expense_kernel").handlers == []
