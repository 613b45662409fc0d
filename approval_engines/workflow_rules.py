"""
approval_engines.workflow_rules -- Pure approval workflow transition rules.

Responsibility:
    Given where an application stands (its current tier, its resolved
    target tier, the committee requirement) decide what an approver's
    action leads to, what a reconciliation pass should correct, and how
    far along the pipeline a status is for display.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types and exceptions.

Invariants enforced:
    - reject always ends in ``rejected``.
    - approve climbs one ladder rung at a time until the target tier;
      at the target tier it goes to committee review when committee
      approval applies and the current authority is not the committee,
      otherwise to ``approved``.
    - refer_to_committee always goes to committee review.
    - Reconciliation never reopens ``approved`` or ``rejected``.

Failure modes:
    - ConfigurationError when the outcome is committee review but the
      catalog has no active committee tier to assign.
    - InvalidActionError for actions outside approve/reject/refer.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from approval_engines.tier_resolution import next_rung
from approval_kernel.domain.status import (
    PENDING_APPROVAL_STATUSES,
    ApplicationStatus,
    AuthorityRole,
)
from approval_kernel.domain.tiers import ApprovalTier
from approval_kernel.domain.workflow import ApprovalAction, AssignmentStatus
from approval_kernel.exceptions import ConfigurationError, InvalidActionError

PROGRESS_BY_STATUS: dict[ApplicationStatus, int] = {
    ApplicationStatus.PENDING_INITIAL_REVIEW: 20,
    ApplicationStatus.PENDING_SUPERVISOR_APPROVAL: 40,
    ApplicationStatus.PENDING_MANAGER_APPROVAL: 60,
    ApplicationStatus.PENDING_COMMITTEE_REVIEW: 80,
    ApplicationStatus.APPROVED: 100,
    ApplicationStatus.REJECTED: 0,
}


def progress_percent(
    status: ApplicationStatus, committee_required: bool = True,
) -> int:
    """Display percentage for a status; 0 for statuses outside the table."""
    if status == ApplicationStatus.PENDING_COMMITTEE_REVIEW and not committee_required:
        return 100
    return PROGRESS_BY_STATUS.get(status, 0)


@dataclass(frozen=True)
class NextStep:
    """What an approver action leads to."""

    new_status: ApplicationStatus
    assignment_status: AssignmentStatus
    next_tier: ApprovalTier | None
    message: str


def _committee_step(
    committee_tier: ApprovalTier | None, message: str,
) -> NextStep:
    if committee_tier is None:
        raise ConfigurationError("no active committee tier to assign committee review")
    return NextStep(
        new_status=ApplicationStatus.PENDING_COMMITTEE_REVIEW,
        assignment_status=AssignmentStatus.APPROVED,
        next_tier=committee_tier,
        message=message,
    )


def outcome_at_target(
    current_tier: ApprovalTier,
    committee_required: bool,
    committee_tier: ApprovalTier | None,
) -> NextStep:
    """Outcome of an approval once the target tier has signed off."""
    if committee_required and current_tier.authority_role != AuthorityRole.COMMITTEE:
        return _committee_step(
            committee_tier, "Approved at tier; forwarded to committee review",
        )
    return NextStep(
        new_status=ApplicationStatus.APPROVED,
        assignment_status=AssignmentStatus.APPROVED,
        next_tier=None,
        message="Loan application approved",
    )


def plan_action(
    action: ApprovalAction,
    *,
    current_tier: ApprovalTier,
    target_tier: ApprovalTier,
    ladder: Sequence[ApprovalTier],
    committee_tier: ApprovalTier | None,
    committee_required: bool,
) -> NextStep:
    """Decide the next status for an approver action at ``current_tier``."""
    if action == ApprovalAction.REJECT:
        return NextStep(
            new_status=ApplicationStatus.REJECTED,
            assignment_status=AssignmentStatus.REJECTED,
            next_tier=None,
            message="Loan application rejected",
        )

    if action == ApprovalAction.REFER_TO_COMMITTEE:
        return _committee_step(committee_tier, "Referred to committee review")

    if action != ApprovalAction.APPROVE:
        raise InvalidActionError(action)

    if current_tier.rank < target_tier.rank:
        rung = next_rung(ladder, current_tier)
        if rung is not None:
            return NextStep(
                new_status=rung.pending_status,
                assignment_status=AssignmentStatus.APPROVED,
                next_tier=rung,
                message=f"Approved at {current_tier.name}; forwarded to {rung.name}",
            )

    return outcome_at_target(current_tier, committee_required, committee_tier)


@dataclass(frozen=True)
class ReconcilePlan:
    """Status correction produced by reconciliation."""

    new_status: ApplicationStatus
    next_tier: ApprovalTier | None
    reason: str


def plan_reconciliation(
    status: ApplicationStatus,
    *,
    current_tier: ApprovalTier | None,
    target_tier: ApprovalTier,
    committee_required: bool,
    explicitly_referred: bool,
    committee_tier: ApprovalTier | None,
) -> ReconcilePlan | None:
    """Status the catalog would now produce, or None when nothing changes.

    Only pending approval statuses are ever corrected.
    """
    if status not in PENDING_APPROVAL_STATUSES:
        return None

    if status == ApplicationStatus.PENDING_COMMITTEE_REVIEW:
        if (
            committee_required
            or explicitly_referred
            or target_tier.authority_role == AuthorityRole.COMMITTEE
        ):
            return None
        return ReconcilePlan(
            new_status=ApplicationStatus.APPROVED,
            next_tier=None,
            reason="committee review no longer required for this amount",
        )

    if current_tier is None or current_tier.rank <= target_tier.rank:
        return None

    step = outcome_at_target(target_tier, committee_required, committee_tier)
    return ReconcilePlan(
        new_status=step.new_status,
        next_tier=step.next_tier,
        reason=(
            f"waiting at {current_tier.name} above resolved tier {target_tier.name}"
        ),
    )
