"""
Tests for the closed status vocabulary and the workflow state machine.
"""

import pytest

from approval_kernel.domain.status import (
    APPROVAL_TRANSITIONS,
    AUTHORITY_PENDING_STATUS,
    INTAKE_STATUSES,
    PENDING_APPROVAL_STATUSES,
    PENDING_STATUS_AUTHORITY,
    TERMINAL_APPROVAL_STATUSES,
    ApplicationStatus,
    AuthorityRole,
    is_valid_transition,
    parse_status,
)
from approval_kernel.exceptions import UnknownStatusError


class TestVocabulary:

    def test_vocabulary_is_shared_verbatim(self):
        assert [s.value for s in ApplicationStatus] == [
            "submitted",
            "under_review",
            "pending_initial_review",
            "pending_supervisor_approval",
            "pending_manager_approval",
            "pending_committee_review",
            "approved",
            "rejected",
            "contract_generated",
            "ready_for_disbursement",
            "disbursed",
            "active",
            "completed",
        ]

    def test_parse_known_status(self):
        assert parse_status("approved") is ApplicationStatus.APPROVED
        assert parse_status(ApplicationStatus.REJECTED) is ApplicationStatus.REJECTED

    def test_parse_unknown_status(self):
        with pytest.raises(UnknownStatusError) as exc_info:
            parse_status("Approved ")
        assert exc_info.value.status == "Approved "

    def test_each_authority_has_one_pending_status(self):
        assert set(AUTHORITY_PENDING_STATUS) == set(AuthorityRole)
        assert PENDING_STATUS_AUTHORITY[ApplicationStatus.PENDING_MANAGER_APPROVAL] == (
            AuthorityRole.MANAGER
        )


class TestTransitions:

    @pytest.mark.parametrize("status", sorted(TERMINAL_APPROVAL_STATUSES))
    def test_terminal_statuses_have_no_exit(self, status):
        assert APPROVAL_TRANSITIONS[status] == frozenset()
        for target in ApplicationStatus:
            assert not is_valid_transition(status, target)

    @pytest.mark.parametrize("status", sorted(PENDING_APPROVAL_STATUSES))
    def test_rejection_reachable_from_every_pending_status(self, status):
        assert is_valid_transition(status, ApplicationStatus.REJECTED)

    @pytest.mark.parametrize("status", sorted(INTAKE_STATUSES))
    def test_intake_enters_any_pending_status(self, status):
        for target in PENDING_APPROVAL_STATUSES:
            assert is_valid_transition(status, target)
        assert not is_valid_transition(status, ApplicationStatus.APPROVED)

    def test_no_moving_down_the_ladder(self):
        assert not is_valid_transition(
            ApplicationStatus.PENDING_MANAGER_APPROVAL,
            ApplicationStatus.PENDING_INITIAL_REVIEW,
        )

    def test_post_approval_statuses_are_outside_the_workflow(self):
        assert not is_valid_transition(
            ApplicationStatus.DISBURSED, ApplicationStatus.REJECTED,
        )
