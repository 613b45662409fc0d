"""
Workflow value objects (``approval_kernel.domain.workflow``).

Responsibility
--------------
DTOs crossing the store boundary for the approval workflow: the loan
application snapshot, assignments, history entries, the derived workflow
state and action results.  Also the ``CommitteeOutcomeSink`` protocol the
committee engine uses to hand its decision back to the workflow.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``LoanApplicationRecord`` refuses construction when a required field is
  missing, so malformed rows surface as one typed error at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from approval_kernel.domain.status import (
    ApplicationStatus,
    AuthorityRole,
    CommitteeVotingStatus,
    parse_status,
)
from approval_kernel.domain.tiers import ApprovalTier
from approval_kernel.exceptions import InvalidApplicationRecordError


class ApprovalAction(str, Enum):
    """Actions recorded in approval history."""

    APPROVE = "approve"
    REJECT = "reject"
    REFER_TO_COMMITTEE = "refer_to_committee"
    START = "start"
    RECONCILE = "reconcile"


# Actions a human approver may submit through process_approval_action.
APPROVER_ACTIONS: frozenset[ApprovalAction] = frozenset({
    ApprovalAction.APPROVE,
    ApprovalAction.REJECT,
    ApprovalAction.REFER_TO_COMMITTEE,
})


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class LoanApplicationRecord:
    """Validated snapshot of a loan application row.

    ``raw_status`` keeps the stored string so rows with a status outside
    the vocabulary can still be listed (the ``unmapped`` work queue);
    ``status`` parses it and raises ``UnknownStatusError`` when unknown.

    A record with non-empty ``problems`` is a diagnostic snapshot of a
    malformed row: required fields may be None and each entry names one
    defect.  Only the ``unmapped`` listing produces such records.
    """

    application_id: UUID
    requested_amount: Decimal | None
    raw_status: str | None
    borrower_type: str | None = None
    application_number: str | None = None
    approval_level: AuthorityRole | None = None
    committee_review_required: bool = False
    committee_voting_status: CommitteeVotingStatus = CommitteeVotingStatus.NOT_STARTED
    disbursement_method: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    problems: tuple[str, ...] = ()

    _REQUIRED = ("application_id", "requested_amount", "raw_status")

    def __post_init__(self) -> None:
        if self.problems:
            return
        for name in self._REQUIRED:
            if getattr(self, name) is None:
                raise InvalidApplicationRecordError(
                    str(self.application_id), name, "is missing",
                )

    @property
    def status(self) -> ApplicationStatus:
        if self.raw_status is None:
            raise InvalidApplicationRecordError(
                str(self.application_id), "raw_status", "is missing",
            )
        return parse_status(self.raw_status)


@dataclass(frozen=True)
class ApprovalAssignmentRecord:
    """One tier's turn at deciding an application."""

    assignment_id: UUID
    application_id: UUID
    tier_id: UUID
    authority_role: AuthorityRole
    status: AssignmentStatus
    assigned_actor_id: UUID | None = None
    comments: str | None = None
    decided_by: UUID | None = None
    decided_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class ApprovalHistoryRecord:
    """Append-only record of one workflow transition."""

    entry_id: UUID
    application_id: UUID
    action: ApprovalAction
    actor_id: UUID
    status_before: str
    status_after: str
    tier_at_action: AuthorityRole | None = None
    comments: str | None = None
    timestamp: datetime | None = None


@dataclass(frozen=True)
class WorkflowState:
    """Derived view of where an application stands."""

    application_id: UUID
    status: ApplicationStatus
    current_tier: ApprovalTier | None
    current_assignment: ApprovalAssignmentRecord | None
    target_tier: ApprovalTier | None
    next_tier: ApprovalTier | None
    can_approve: bool
    can_reject: bool
    is_committee_required: bool
    progress_percent: int


@dataclass(frozen=True)
class ActionResult:
    """Business outcome of a workflow or voting operation."""

    success: bool
    message: str
    application_id: UUID | None = None
    previous_status: ApplicationStatus | None = None
    new_status: ApplicationStatus | None = None
    details: dict[str, Any] = field(default_factory=dict)


class CommitteeOutcomeSink(Protocol):
    """Receives a finalized committee decision for an application."""

    def apply_committee_decision(
        self,
        application_id: UUID,
        approved: bool,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ActionResult:
        ...
