"""Tests for the structured logging system (banca_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from banca_kernel.exceptions import InsufficientFundsError
from banca_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


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
    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "banca_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("movement_applied", extra={"amount": "100.00", "attempts": 2})

        record = _parse_log(stream)
        assert record["amount"] == "100.00"
        assert record["attempts"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", idempotency_key="key-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["idempotency_key"] == "key-1"

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

    def test_banca_exception_code_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        account_id = uuid4()
        try:
            raise InsufficientFundsError(account_id, Decimal("10"), Decimal("20"))
        except InsufficientFundsError:
            get_logger("test").error("funds_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INSUFFICIENT_FUNDS"
        assert record["exc_type"] == "InsufficientFundsError"
        assert record["exc_account_id"] == str(account_id)

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "transaction_id" not in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("typed", extra={"entity": uid, "total": Decimal("1.50")})

        record = _parse_log(stream)
        assert record["entity"] == str(uid)
        assert record["total"] == "1.50"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner"):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all()["correlation_id"] == "outer"

    def test_bind_restores_none(self):
        assert "transaction_id" not in LogContext.get_all()
        with LogContext.bind(transaction_id="temp"):
            assert LogContext.get_all()["transaction_id"] == "temp"
        assert "transaction_id" not in LogContext.get_all()

    def test_bind_stringifies_values(self):
        uid = uuid4()
        with LogContext.bind(actor_id=uid):
            assert LogContext.get_all()["actor_id"] == str(uid)

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(not_a_field="x", idempotency_key="k"):
            assert LogContext.get_all() == {"idempotency_key": "k"}

    def test_set_ignores_none_and_unknown(self):
        LogContext.set(actor_id="a", transaction_id=None, branch="north")
        assert LogContext.get_all() == {"actor_id": "a"}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            transaction_id="t1",
            idempotency_key="k",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 4
        assert ctx["idempotency_key"] == "k"

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(transaction_id="t1"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        handlers = logging.getLogger("banca_kernel").handlers
        assert h1 in handlers
        assert h2 not in handlers

    def test_reset_keeps_foreign_handlers(self):
        ours, _ = _make_handler()
        configure_logging(handler=ours)
        foreign = logging.NullHandler()
        logger = logging.getLogger("banca_kernel")
        logger.addHandler(foreign)
        try:
            reset_logging()
            assert ours not in logger.handlers
            assert foreign in logger.handlers
        finally:
            logger.removeHandler(foreign)

    def test_get_logger_returns_child(self):
        assert get_logger("services.balance_ledger").name == "banca_kernel.services.balance_ledger"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "banca_kernel.deep.nested.module"
