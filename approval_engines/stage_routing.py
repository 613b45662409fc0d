"""
approval_engines.stage_routing -- Static status-to-work-queue routing tables.

Responsibility:
    Map application statuses onto pages (work queues) and onto the
    lifecycle stages shown to staff, and detect statuses no page picks up.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types and sibling engines.

Invariants enforced:
    - Every status in the vocabulary has a primary page; the ``unmapped``
      diagnostic page exists for stored strings outside the vocabulary.
      ``find_unmapped_statuses()`` returns an empty tuple for this table
      and tests pin that.
    - Page and stage tables are immutable module constants.
"""

from __future__ import annotations

from dataclasses import dataclass

from approval_engines import workflow_rules
from approval_kernel.domain.status import ApplicationStatus
from approval_kernel.exceptions import UnknownPageError

_S = ApplicationStatus

UNMAPPED_PAGE = "unmapped"


@dataclass(frozen=True)
class PageDefinition:
    """A work queue and the statuses it lists."""

    name: str
    statuses: frozenset[ApplicationStatus]
    description: str
    next_page: str | None = None


PAGE_STATUS_MAPPING: dict[str, PageDefinition] = {
    page.name: page
    for page in (
        PageDefinition(
            "loan_applications",
            frozenset({_S.SUBMITTED}),
            "New loan applications",
            "credit_assessment",
        ),
        PageDefinition(
            "credit_assessment",
            frozenset({_S.UNDER_REVIEW}),
            "Loans under credit assessment",
            "loan_approvals",
        ),
        PageDefinition(
            "loan_approvals",
            frozenset({
                _S.PENDING_INITIAL_REVIEW,
                _S.PENDING_SUPERVISOR_APPROVAL,
                _S.PENDING_MANAGER_APPROVAL,
            }),
            "Loans pending tiered approval",
            "committee_approval",
        ),
        PageDefinition(
            "committee_approval",
            frozenset({_S.PENDING_COMMITTEE_REVIEW}),
            "Loans pending committee review",
            "contract_generation",
        ),
        PageDefinition(
            "contract_generation",
            frozenset({_S.APPROVED}),
            "Approved loans awaiting a contract",
            "contract_upload",
        ),
        PageDefinition(
            "contract_upload",
            frozenset({_S.CONTRACT_GENERATED}),
            "Contracts awaiting client signature",
            "disbursements",
        ),
        PageDefinition(
            "disbursements",
            frozenset({_S.APPROVED, _S.READY_FOR_DISBURSEMENT, _S.DISBURSED}),
            "Loans ready for or recently disbursed",
            "loan_monitoring",
        ),
        PageDefinition(
            "loan_processing",
            frozenset({
                _S.SUBMITTED,
                _S.UNDER_REVIEW,
                _S.PENDING_INITIAL_REVIEW,
                _S.PENDING_SUPERVISOR_APPROVAL,
                _S.PENDING_MANAGER_APPROVAL,
                _S.PENDING_COMMITTEE_REVIEW,
                _S.APPROVED,
                _S.CONTRACT_GENERATED,
                _S.READY_FOR_DISBURSEMENT,
            }),
            "Loans in the processing pipeline",
            "disbursements",
        ),
        PageDefinition(
            "loan_monitoring",
            frozenset({_S.DISBURSED, _S.ACTIVE}),
            "Active loans under monitoring",
            "loan_closure",
        ),
        PageDefinition(
            "loan_closure",
            frozenset({_S.COMPLETED}),
            "Closed loans",
        ),
        PageDefinition(
            "rejected_applications",
            frozenset({_S.REJECTED}),
            "Rejected applications",
        ),
    )
}

# The queue an application of each status is worked from.
PRIMARY_PAGE: dict[ApplicationStatus, str] = {
    _S.SUBMITTED: "loan_applications",
    _S.UNDER_REVIEW: "credit_assessment",
    _S.PENDING_INITIAL_REVIEW: "loan_approvals",
    _S.PENDING_SUPERVISOR_APPROVAL: "loan_approvals",
    _S.PENDING_MANAGER_APPROVAL: "loan_approvals",
    _S.PENDING_COMMITTEE_REVIEW: "committee_approval",
    _S.APPROVED: "disbursements",
    _S.CONTRACT_GENERATED: "contract_upload",
    _S.READY_FOR_DISBURSEMENT: "disbursements",
    _S.DISBURSED: "disbursements",
    _S.ACTIVE: "loan_monitoring",
    _S.COMPLETED: "loan_closure",
    _S.REJECTED: "rejected_applications",
}


@dataclass(frozen=True)
class StageInfo:
    """One step of the loan lifecycle as shown to staff."""

    stage: str
    status: str
    description: str
    next_stage: str | None
    can_proceed: bool
    required_actions: tuple[str, ...]
    display_order: int


LOAN_FLOW_STAGES: tuple[StageInfo, ...] = (
    StageInfo("submitted", "submitted", "Loan application submitted",
              "credit_assessment", True,
              ("Review application", "Start credit assessment"), 1),
    StageInfo("credit_assessment", "under_review", "Under credit assessment",
              "approval", True,
              ("Complete credit assessment", "Generate risk score"), 2),
    StageInfo("approval", "pending_initial_review", "Pending initial approval",
              "contract_generation", False, ("Review and approve/reject",), 3),
    StageInfo("approval", "pending_supervisor_approval", "Pending supervisor approval",
              "contract_generation", False, ("Supervisor review and approval",), 4),
    StageInfo("approval", "pending_manager_approval", "Pending manager approval",
              "contract_generation", False, ("Manager review and approval",), 5),
    StageInfo("approval", "pending_committee_review", "Pending committee review",
              "contract_generation", False, ("Committee review and decision",), 6),
    StageInfo("approval", "approved", "Approved for contract generation",
              "contract_generation", True, ("Generate loan contract",), 7),
    StageInfo("contract_generation", "contract_generated", "Contract generated",
              "contract_upload", True,
              ("Send contract to client", "Wait for signature"), 8),
    StageInfo("contract_upload", "approved", "Contract signed by client",
              "disbursement", True,
              ("Verify contract", "Prepare for disbursement"), 9),
    StageInfo("disbursement", "ready_for_disbursement", "Ready for disbursement",
              "disbursed", True, ("Process disbursement",), 10),
    StageInfo("disbursed", "disbursed", "Loan disbursed",
              "monitoring", True, ("Start loan monitoring",), 11),
    StageInfo("monitoring", "active", "Active loan - under monitoring",
              "closure", True, ("Monitor repayments", "Track performance"), 12),
    StageInfo("closure", "completed", "Loan completed/closed",
              None, False, ("Archive loan records",), 13),
    StageInfo("rejected", "rejected", "Loan rejected",
              None, False, ("Notify client", "Archive application"), 14),
)


def _as_status(status: str | ApplicationStatus) -> ApplicationStatus | None:
    if isinstance(status, ApplicationStatus):
        return status
    try:
        return ApplicationStatus(status)
    except ValueError:
        return None


def page_names() -> tuple[str, ...]:
    """All page names, including the unmapped diagnostic page."""
    return tuple(PAGE_STATUS_MAPPING) + (UNMAPPED_PAGE,)


def statuses_for_page(page_name: str) -> frozenset[ApplicationStatus]:
    """Statuses listed on a page.  The unmapped page lists none by status.

    Raises:
        UnknownPageError: if the page does not exist.
    """
    if page_name == UNMAPPED_PAGE:
        return frozenset()
    page = PAGE_STATUS_MAPPING.get(page_name)
    if page is None:
        raise UnknownPageError(page_name)
    return page.statuses


def page_for_status(status: str | ApplicationStatus) -> str:
    """Primary page for a status; ``unmapped`` for anything unknown."""
    parsed = _as_status(status)
    if parsed is None:
        return UNMAPPED_PAGE
    return PRIMARY_PAGE.get(parsed, UNMAPPED_PAGE)


def pages_for_status(status: str | ApplicationStatus) -> tuple[str, ...]:
    """Every page that lists the status, in table order."""
    parsed = _as_status(status)
    if parsed is None:
        return (UNMAPPED_PAGE,)
    pages = tuple(
        name for name, page in PAGE_STATUS_MAPPING.items() if parsed in page.statuses
    )
    return pages or (UNMAPPED_PAGE,)


def is_mapped(status: str | ApplicationStatus) -> bool:
    return pages_for_status(status) != (UNMAPPED_PAGE,)


def find_unmapped_statuses() -> tuple[ApplicationStatus, ...]:
    """Vocabulary statuses that no page lists or that lack a primary page."""
    listed = set().union(*(page.statuses for page in PAGE_STATUS_MAPPING.values()))
    return tuple(
        status for status in ApplicationStatus
        if status not in listed or status not in PRIMARY_PAGE
    )


def progress_percent(
    status: str | ApplicationStatus, committee_required: bool = True,
) -> int:
    """Workflow display percentage; 0 for statuses outside the table."""
    parsed = _as_status(status)
    if parsed is None:
        return 0
    return workflow_rules.progress_percent(parsed, committee_required)


def stage_info(status: str | ApplicationStatus | None) -> StageInfo:
    """Lifecycle stage for a status; an ``unknown`` stage when none matches."""
    if status is None:
        raw = ""
    else:
        raw = status.value if isinstance(status, ApplicationStatus) else str(status)
    for stage in LOAN_FLOW_STAGES:
        if stage.status == raw:
            return stage
    return StageInfo(
        stage="unknown",
        status=raw,
        description=f"Unknown status {raw}" if raw else "No status recorded",
        next_stage=None,
        can_proceed=False,
        required_actions=("Contact administrator",),
        display_order=0,
    )


def describe_stage(stage: str, status: str | ApplicationStatus) -> str:
    """Human description of a (stage, status) pair."""
    raw = status.value if isinstance(status, ApplicationStatus) else str(status)
    for info in LOAN_FLOW_STAGES:
        if info.stage == stage and info.status == raw:
            return info.description
    return f"{stage} - {raw}"
