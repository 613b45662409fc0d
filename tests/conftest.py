"""
Pytest fixtures for the loan approval kernel test suite.

Provides:
- An in-memory SQLite database per test (tables created fresh)
- A file-backed SQLite session factory for multi-session tests
- A deterministic clock, a fixed test actor and captured JSON logs
- Factories for tiers (the standard three-band catalog), applications
  and committee members

Environment Variables:
- none; every test builds its own database.
"""

import json
import logging
from collections.abc import Callable
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from approval_kernel.db.engine import (
    create_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.domain.committee import CommitteeRole
from approval_kernel.domain.status import ApplicationStatus, AuthorityRole
from approval_kernel.domain.tiers import ApprovalTier
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.models.application import LoanApplicationModel
from approval_kernel.services.committee_service import CommitteeVotingEngine
from approval_kernel.services.level_resolver import ApprovalLevelResolver
from approval_kernel.services.tier_catalog import ApprovalTierCatalog
from approval_kernel.services.workflow_service import ApprovalWorkflowEngine


# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, workflow):
            workflow.start_workflow(app_id, actor)
            logs = captured_logs()
            assert any(r["message"] == "approval_workflow_started" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite engine with all tables, disposed after the test."""
    eng = init_engine_from_url("sqlite:///:memory:")
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Session on the in-memory database; rolled back at teardown."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def file_session_factory(tmp_path) -> Generator[sessionmaker[Session], None, None]:
    """Session factory over a SQLite file, for tests that need real commits
    seen by more than one session."""
    init_engine_from_url(f"sqlite:///{tmp_path / 'approval.db'}")
    create_tables()
    yield get_session_factory()
    reset_engine()


# =============================================================================
# Clock and actors
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def catalog(session) -> ApprovalTierCatalog:
    return ApprovalTierCatalog(session)


@pytest.fixture
def resolver(catalog) -> ApprovalLevelResolver:
    return ApprovalLevelResolver(catalog)


@pytest.fixture
def workflow(session, deterministic_clock, catalog) -> ApprovalWorkflowEngine:
    return ApprovalWorkflowEngine(session, clock=deterministic_clock, catalog=catalog)


@pytest.fixture
def committee(session, workflow, deterministic_clock) -> CommitteeVotingEngine:
    return CommitteeVotingEngine(session, workflow, clock=deterministic_clock)


# =============================================================================
# Data factories
# =============================================================================


def create_standard_tiers(
    catalog: ApprovalTierCatalog, actor_id: UUID,
) -> dict[AuthorityRole, ApprovalTier]:
    """Three-band catalog: officer below 1M, manager below 10M with a
    committee vote from 5M, committee above."""
    return {
        AuthorityRole.LOAN_OFFICER: catalog.create_tier(
            "Loan Officer", 0, 1_000_000, AuthorityRole.LOAN_OFFICER, actor_id,
        ),
        AuthorityRole.MANAGER: catalog.create_tier(
            "Branch Manager", 1_000_000, 10_000_000, AuthorityRole.MANAGER, actor_id,
            requires_committee_approval=True, committee_threshold=5_000_000,
        ),
        AuthorityRole.COMMITTEE: catalog.create_tier(
            "Credit Committee", 10_000_000, None, AuthorityRole.COMMITTEE, actor_id,
            requires_committee_approval=True,
        ),
    }


@pytest.fixture
def standard_tiers(catalog, test_actor_id) -> dict[AuthorityRole, ApprovalTier]:
    return create_standard_tiers(catalog, test_actor_id)


_MISSING = object()


@pytest.fixture
def create_application(session, deterministic_clock) -> Callable[..., UUID]:
    """Factory: insert a loan application row and return its ID.

    ``amount=None`` stores a row without a requested amount; ``status`` may
    be any string, including one outside the vocabulary.
    """
    counter = {"n": 0}

    def _create(
        amount=Decimal("200000"),
        status: ApplicationStatus | str | None = ApplicationStatus.SUBMITTED,
        borrower_type: str | None = "individual",
        **overrides,
    ) -> UUID:
        counter["n"] += 1
        raw_status = getattr(status, "value", status)
        model = LoanApplicationModel(
            application_number=f"LA-{counter['n']:05d}",
            requested_amount=Decimal(str(amount)) if amount is not None else None,
            borrower_type=borrower_type,
            approval_status=raw_status,
            created_at=deterministic_clock.tick(),
            **overrides,
        )
        session.add(model)
        session.flush()
        return model.id

    return _create


@pytest.fixture
def committee_members(committee, test_actor_id) -> list[UUID]:
    """Five active members of weight 1; the first is the chairperson."""
    user_ids = [uuid4() for _ in range(5)]
    for index, user_id in enumerate(user_ids):
        committee.add_member(
            user_id,
            test_actor_id,
            role=CommitteeRole.CHAIRPERSON if index == 0 else CommitteeRole.MEMBER,
            display_name=f"Member {index + 1}",
        )
    return user_ids


@pytest.fixture
def committee_application(
    standard_tiers, create_application, workflow, test_actor_id,
) -> UUID:
    """A 7M application approved by officer and manager, now in committee review."""
    app_id = create_application(amount=Decimal("7000000"))
    workflow.start_workflow(app_id, test_actor_id)
    workflow.process_approval_action(app_id, "approve", uuid4())
    workflow.process_approval_action(app_id, "approve", uuid4())
    return app_id
