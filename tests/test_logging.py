"""Tests for the structured logging system (approval_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from approval_kernel.domain.committee import CommitteeTally, FinalDecision
from approval_kernel.domain.status import ApplicationStatus
from approval_kernel.logging_config import (
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
        assert record["logger"] == "approval_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("approved", extra={"tier_rank": 2, "status": "approved"})

        record = _parse_log(stream)
        assert record["tier_rank"] == 2
        assert record["status"] == "approved"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(actor_id="officer-7", application_id="app-456")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["actor_id"] == "officer-7"
        assert record["application_id"] == "app-456"

    def test_approval_exception_fields(self):
        """Approval kernel exceptions carry a code and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from approval_kernel.exceptions import NoMatchingTierError

        try:
            raise NoMatchingTierError(Decimal("12000000"), "sme")
        except NoMatchingTierError:
            get_logger("test").error("tier_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "NO_MATCHING_TIER"
        assert record["exc_type"] == "NoMatchingTierError"
        assert record["exc_amount"] == "12000000"
        assert record["exc_borrower_type"] == "sme"
        assert "traceback" in record

    def test_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed_values",
            extra={
                "application": uid,
                "amount": Decimal("7000000.50"),
                "status": ApplicationStatus.APPROVED,
            },
        )

        record = _parse_log(stream)
        assert record["application"] == str(uid)
        assert record["amount"] == "7000000.50"
        assert record["status"] == "approved"

    def test_tally_renders_as_object(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from approval_kernel.exceptions import VotingClosedError

        tally = CommitteeTally(
            application_id=uuid4(),
            total_members=5,
            quorum_required=3,
            total_votes_cast=3,
            approve_count=2,
            reject_count=1,
            approve_weight=Decimal("2"),
            reject_weight=Decimal("1"),
            quorum_met=True,
            final_decision=FinalDecision.APPROVE,
        )
        try:
            raise VotingClosedError(str(tally.application_id), "decision reached", tally)
        except VotingClosedError:
            get_logger("test").warning("vote_refused", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_tally"]["final_decision"] == "approve"
        assert record["exc_tally"]["approve_weight"] == "2"
        assert record["exc_tally"]["quorum_met"] is True

    def test_level_filters_debug(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_clear(self):
        LogContext.set(actor_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", application_id=uuid4()):
            assert LogContext.get_all()["actor_id"] == "inner"
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_unknown_field_is_refused(self):
        with pytest.raises(TypeError, match="session_id"):
            LogContext.set(session_id="abc")
        assert LogContext.get_all() == {}

    def test_bind_stringifies_and_skips_none(self):
        uid = uuid4()
        with LogContext.bind(application_id=uid, actor_id=None):
            assert LogContext.get_all() == {"application_id": str(uid)}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert logging.getLogger("approval_kernel").handlers == [h1]

    def test_get_logger_returns_child(self):
        assert get_logger("services.workflow").name == "approval_kernel.services.workflow"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "approval_kernel.deep.nested.module"
