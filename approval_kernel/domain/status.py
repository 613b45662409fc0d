"""
Application status vocabulary (``approval_kernel.domain.status``).

Responsibility
--------------
Owns the closed set of loan application statuses shared by the workflow,
the committee and the stage router, the authority roles that map tiers onto
pending statuses, and the workflow state machine.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* The status vocabulary is closed: ``parse_status`` refuses anything else.
* ``APPROVAL_TRANSITIONS`` defines the only workflow moves; ``approved``
  and ``rejected`` have no outgoing edges inside the approval workflow.
"""

from __future__ import annotations

from enum import Enum

from approval_kernel.exceptions import UnknownStatusError


class ApplicationStatus(str, Enum):
    """Every status a loan application can hold."""

    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    PENDING_INITIAL_REVIEW = "pending_initial_review"
    PENDING_SUPERVISOR_APPROVAL = "pending_supervisor_approval"
    PENDING_MANAGER_APPROVAL = "pending_manager_approval"
    PENDING_COMMITTEE_REVIEW = "pending_committee_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    CONTRACT_GENERATED = "contract_generated"
    READY_FOR_DISBURSEMENT = "ready_for_disbursement"
    DISBURSED = "disbursed"
    ACTIVE = "active"
    COMPLETED = "completed"


class AuthorityRole(str, Enum):
    """Authority level attached to an approval tier, lowest first."""

    LOAN_OFFICER = "loan_officer"
    SENIOR_OFFICER = "senior_officer"
    MANAGER = "manager"
    COMMITTEE = "committee"


class CommitteeVotingStatus(str, Enum):
    """Committee progress flag stored on the application."""

    NOT_STARTED = "not_started"
    VOTING_OPEN = "voting_open"
    VOTING_COMPLETE = "voting_complete"


AUTHORITY_PENDING_STATUS: dict[AuthorityRole, ApplicationStatus] = {
    AuthorityRole.LOAN_OFFICER: ApplicationStatus.PENDING_INITIAL_REVIEW,
    AuthorityRole.SENIOR_OFFICER: ApplicationStatus.PENDING_SUPERVISOR_APPROVAL,
    AuthorityRole.MANAGER: ApplicationStatus.PENDING_MANAGER_APPROVAL,
    AuthorityRole.COMMITTEE: ApplicationStatus.PENDING_COMMITTEE_REVIEW,
}

PENDING_STATUS_AUTHORITY: dict[ApplicationStatus, AuthorityRole] = {
    status: role for role, status in AUTHORITY_PENDING_STATUS.items()
}

AUTHORITY_RANK: dict[AuthorityRole, int] = {
    role: rank for rank, role in enumerate(AuthorityRole)
}

# Statuses from which an application enters the approval workflow.
INTAKE_STATUSES: frozenset[ApplicationStatus] = frozenset({
    ApplicationStatus.SUBMITTED,
    ApplicationStatus.UNDER_REVIEW,
})

PENDING_APPROVAL_STATUSES: frozenset[ApplicationStatus] = frozenset(
    AUTHORITY_PENDING_STATUS.values()
)

TERMINAL_APPROVAL_STATUSES: frozenset[ApplicationStatus] = frozenset({
    ApplicationStatus.APPROVED,
    ApplicationStatus.REJECTED,
})

# Everything after approval belongs to contracting/disbursement; the
# approval workflow never moves an application out of these.
POST_APPROVAL_STATUSES: frozenset[ApplicationStatus] = frozenset({
    ApplicationStatus.CONTRACT_GENERATED,
    ApplicationStatus.READY_FOR_DISBURSEMENT,
    ApplicationStatus.DISBURSED,
    ApplicationStatus.ACTIVE,
    ApplicationStatus.COMPLETED,
})

_S = ApplicationStatus

APPROVAL_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    _S.SUBMITTED: frozenset(PENDING_APPROVAL_STATUSES),
    _S.UNDER_REVIEW: frozenset(PENDING_APPROVAL_STATUSES),
    _S.PENDING_INITIAL_REVIEW: frozenset({
        _S.PENDING_SUPERVISOR_APPROVAL,
        _S.PENDING_MANAGER_APPROVAL,
        _S.PENDING_COMMITTEE_REVIEW,
        _S.APPROVED,
        _S.REJECTED,
    }),
    _S.PENDING_SUPERVISOR_APPROVAL: frozenset({
        _S.PENDING_MANAGER_APPROVAL,
        _S.PENDING_COMMITTEE_REVIEW,
        _S.APPROVED,
        _S.REJECTED,
    }),
    _S.PENDING_MANAGER_APPROVAL: frozenset({
        _S.PENDING_COMMITTEE_REVIEW,
        _S.APPROVED,
        _S.REJECTED,
    }),
    _S.PENDING_COMMITTEE_REVIEW: frozenset({
        _S.APPROVED,
        _S.REJECTED,
    }),
    _S.APPROVED: frozenset(),
    _S.REJECTED: frozenset(),
}


def parse_status(raw: str | ApplicationStatus) -> ApplicationStatus:
    """Parse a stored status string into the closed vocabulary.

    Raises:
        UnknownStatusError: if ``raw`` is not a known status.
    """
    if isinstance(raw, ApplicationStatus):
        return raw
    try:
        return ApplicationStatus(raw)
    except ValueError:
        raise UnknownStatusError(str(raw)) from None


def is_valid_transition(
    from_status: ApplicationStatus, to_status: ApplicationStatus,
) -> bool:
    """True when the workflow may move ``from_status`` to ``to_status``."""
    return to_status in APPROVAL_TRANSITIONS.get(from_status, frozenset())
