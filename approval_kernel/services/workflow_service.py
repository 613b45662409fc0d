"""
ApprovalWorkflowEngine -- tracks and transitions a loan application's
approval state.

Responsibility:
    Starts the workflow at the lowest tier, derives the current workflow
    state, applies approver actions (approve, reject, refer to committee),
    receives the committee's final decision, and reconciles applications
    whose status no longer matches the live tier catalog.  Transition
    rules are delegated to the pure ``approval_engines.workflow_rules``.

Architecture position:
    Kernel > Services -- imperative shell.
    Reads through ``ApplicationSelector`` and ``ApprovalTierCatalog``;
    writes assignments, history and the application row.

Invariants enforced:
    - At most one pending assignment per application.  The pending row is
      claimed with a conditional UPDATE (``status = 'pending'``); losing the
      race raises ``NoPendingAssignmentError``.  A partial unique index
      backs this up in the database.
    - The application row is written with a conditional UPDATE on the
      status the engine read; a concurrent change raises
      ``OptimisticLockError``.
    - ``approved`` and ``rejected`` are terminal inside this workflow;
      reconciliation never reopens them.
    - Every transition appends exactly one history entry.
    - The committee's own assignment is closed only through
      ``apply_committee_decision``.
    - Flush-only: never commits.

Failure modes:
    - ApplicationNotFoundError, InvalidApplicationRecordError,
      UnknownStatusError from the selector.
    - NoPendingAssignmentError: nothing to act on (already decided,
      terminal, or never started).
    - InvalidActionError: action outside approve/reject/refer.
    - InvalidStatusTransitionError: the computed move is not allowed.
    - NotAuthorizedError: approver action on a committee assignment.
    - ConfigurationError / NoMatchingTierError from the catalog/resolver.
    - OptimisticLockError / StorageError on lost races and store failures.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from approval_engines.tier_resolution import (
    approval_ladder,
    committee_authority_tier,
    next_rung,
)
from approval_engines.workflow_rules import (
    plan_action,
    plan_reconciliation,
    progress_percent,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.status import (
    INTAKE_STATUSES,
    PENDING_APPROVAL_STATUSES,
    PENDING_STATUS_AUTHORITY,
    ApplicationStatus,
    AuthorityRole,
    CommitteeVotingStatus,
    is_valid_transition,
)
from approval_kernel.domain.tiers import ApprovalTier, TierResolution
from approval_kernel.domain.workflow import (
    APPROVER_ACTIONS,
    ActionResult,
    ApprovalAction,
    ApprovalAssignmentRecord,
    ApprovalHistoryRecord,
    AssignmentStatus,
    LoanApplicationRecord,
    WorkflowState,
)
from approval_kernel.exceptions import (
    InvalidActionError,
    InvalidStatusTransitionError,
    NoPendingAssignmentError,
    NotAuthorizedError,
    OptimisticLockError,
    TierError,
    ValidationError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.models.application import LoanApplicationModel
from approval_kernel.models.workflow import (
    ApprovalAssignmentModel,
    ApprovalHistoryModel,
)
from approval_kernel.selectors.application_selector import ApplicationSelector
from approval_kernel.services.base import BaseService
from approval_kernel.services.level_resolver import ApprovalLevelResolver
from approval_kernel.services.tier_catalog import ApprovalTierCatalog

logger = get_logger("services.workflow")


def _parse_action(action: ApprovalAction | str) -> ApprovalAction:
    try:
        parsed = ApprovalAction(action)
    except ValueError:
        raise InvalidActionError(action) from None
    if parsed not in APPROVER_ACTIONS:
        raise InvalidActionError(action)
    return parsed


class ApprovalWorkflowEngine(BaseService[LoanApplicationModel]):
    """
    Approval workflow over loan applications.

    Contract:
        Every mutating operation re-reads the application and its pending
        assignment inside the caller's transaction, decides with the pure
        rules, then writes with conditional updates.  Business outcomes
        come back as ``ActionResult``; only errors raise.

    Also acts as the committee engine's ``CommitteeOutcomeSink``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        catalog: ApprovalTierCatalog | None = None,
        resolver: ApprovalLevelResolver | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._catalog = catalog or ApprovalTierCatalog(session)
        self._resolver = resolver or ApprovalLevelResolver(self._catalog)
        self._applications = ApplicationSelector(session)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_workflow_state(self, application_id: UUID) -> WorkflowState:
        """Derive where an application stands right now.

        The target tier and committee requirement are computed from the
        live catalog while the application is still in the approval
        workflow; afterwards the stored flag is reported.
        """
        app = self._applications.get(application_id)
        status = app.status
        assignment = self._applications.pending_assignment(application_id)
        current_tier = (
            self._catalog.get_tier(assignment.tier_id) if assignment is not None else None
        )

        target_tier: ApprovalTier | None = None
        next_tier: ApprovalTier | None = None
        committee_required = app.committee_review_required

        if status in INTAKE_STATUSES or status in PENDING_APPROVAL_STATUSES:
            active = self._catalog.list_active_tiers()
            resolution = self._resolver.resolve(
                app.requested_amount, app.borrower_type, tiers=active,
            )
            target_tier = resolution.tier
            committee_required = self._committee_involved(
                resolution, self._applications.was_referred_to_committee(application_id),
            )
            if current_tier is not None:
                next_tier = self._next_tier(active, current_tier, resolution)

        actionable = (
            assignment is not None
            and assignment.authority_role != AuthorityRole.COMMITTEE
        )
        return WorkflowState(
            application_id=application_id,
            status=status,
            current_tier=current_tier,
            current_assignment=assignment,
            target_tier=target_tier,
            next_tier=next_tier,
            can_approve=actionable,
            can_reject=actionable,
            is_committee_required=committee_required,
            progress_percent=progress_percent(status, committee_required),
        )

    def get_assignments(self, application_id: UUID) -> list[ApprovalAssignmentRecord]:
        return self._applications.assignments(application_id)

    def get_history(self, application_id: UUID) -> list[ApprovalHistoryRecord]:
        return self._applications.history(application_id)

    @staticmethod
    def _committee_involved(resolution: TierResolution, referred: bool) -> bool:
        return (
            resolution.committee_required
            or referred
            or resolution.tier.authority_role == AuthorityRole.COMMITTEE
        )

    @staticmethod
    def _next_tier(
        active: tuple[ApprovalTier, ...],
        current_tier: ApprovalTier,
        resolution: TierResolution,
    ) -> ApprovalTier | None:
        """Tier an approval at ``current_tier`` would hand over to."""
        if current_tier.rank < resolution.tier.rank:
            rung = next_rung(approval_ladder(active, resolution.tier), current_tier)
            if rung is not None:
                return rung
        if (
            resolution.committee_required
            and current_tier.authority_role != AuthorityRole.COMMITTEE
        ):
            return committee_authority_tier(active)
        return None

    # =========================================================================
    # Start
    # =========================================================================

    def start_workflow(
        self,
        application_id: UUID,
        actor_id: UUID,
        assigned_actor_id: UUID | None = None,
        comments: str | None = None,
    ) -> ActionResult:
        """Place a submitted application on the lowest tier of its ladder."""
        with LogContext.bind(application_id=application_id, actor_id=actor_id):
            app = self._applications.get(application_id)
            status = app.status
            if status not in INTAKE_STATUSES:
                raise InvalidStatusTransitionError(
                    str(application_id), status.value,
                    ApplicationStatus.PENDING_INITIAL_REVIEW.value,
                )

            active = self._catalog.list_active_tiers()
            resolution = self._resolver.resolve(
                app.requested_amount, app.borrower_type, tiers=active,
            )
            first = approval_ladder(active, resolution.tier)[0]
            new_status = first.pending_status
            if not is_valid_transition(status, new_status):
                raise InvalidStatusTransitionError(
                    str(application_id), status.value, new_status.value,
                )

            now = self._clock.now()
            self._open_assignment(
                application_id, first, actor_id, now, assigned_actor_id,
            )
            self._append_history(
                application_id, ApprovalAction.START, actor_id, now,
                status_before=status, status_after=new_status,
                tier_at_action=None, comments=comments,
            )
            values: dict[str, Any] = {
                "approval_status": new_status.value,
                "approval_level": resolution.tier.authority_role.value,
                "committee_review_required": resolution.committee_required,
            }
            if first.authority_role == AuthorityRole.COMMITTEE:
                values["committee_voting_status"] = CommitteeVotingStatus.VOTING_OPEN.value
            self._write_application(app, now, values)
            self._flush("start approval workflow")

            logger.info(
                "approval_workflow_started",
                extra={
                    "status_after": new_status.value,
                    "first_tier": first.name,
                    "target_tier": resolution.tier.name,
                    "committee_required": resolution.committee_required,
                },
            )
            return ActionResult(
                success=True,
                message=f"Workflow started at {first.name}",
                application_id=application_id,
                previous_status=status,
                new_status=new_status,
                details={
                    "first_tier": first.name,
                    "target_tier": resolution.tier.name,
                    "committee_required": resolution.committee_required,
                },
            )

    # =========================================================================
    # Approver actions
    # =========================================================================

    def process_approval_action(
        self,
        application_id: UUID,
        action: ApprovalAction | str,
        actor_id: UUID,
        comments: str | None = None,
    ) -> ActionResult:
        """Apply an approver's action to the application's pending assignment.

        Args:
            application_id: Application being decided.
            action: ``approve``, ``reject`` or ``refer_to_committee``.
            actor_id: Verified identity of the approver.
            comments: Free text; stored as the rejection reason on reject.

        Raises:
            NoPendingAssignmentError: no pending assignment, including on
                applications that are already approved or rejected.
        """
        parsed = _parse_action(action)
        with LogContext.bind(application_id=application_id, actor_id=actor_id):
            app = self._applications.get(application_id)
            status = app.status
            assignment = self._applications.pending_assignment(application_id)
            if assignment is None:
                logger.warning(
                    "approval_action_without_pending_assignment",
                    extra={"action": parsed.value, "status": status.value},
                )
                raise NoPendingAssignmentError(str(application_id), status.value)
            if assignment.authority_role == AuthorityRole.COMMITTEE:
                raise NotAuthorizedError(str(actor_id), AuthorityRole.COMMITTEE.value)

            active = self._catalog.list_active_tiers()
            resolution = self._resolver.resolve(
                app.requested_amount, app.borrower_type, tiers=active,
            )
            referred = (
                parsed == ApprovalAction.REFER_TO_COMMITTEE
                or self._applications.was_referred_to_committee(application_id)
            )
            current_tier = self._catalog.get_tier(assignment.tier_id)
            step = plan_action(
                parsed,
                current_tier=current_tier,
                target_tier=resolution.tier,
                ladder=approval_ladder(active, resolution.tier),
                committee_tier=committee_authority_tier(active),
                committee_required=resolution.committee_required,
            )
            if not is_valid_transition(status, step.new_status):
                raise InvalidStatusTransitionError(
                    str(application_id), status.value, step.new_status.value,
                )

            now = self._clock.now()
            self._claim_assignment(
                application_id, assignment.assignment_id,
                step.assignment_status, actor_id, now, comments,
            )
            if step.next_tier is not None:
                self._open_assignment(application_id, step.next_tier, actor_id, now)
            self._append_history(
                application_id, parsed, actor_id, now,
                status_before=status, status_after=step.new_status,
                tier_at_action=current_tier.authority_role, comments=comments,
            )

            values: dict[str, Any] = {
                "approval_status": step.new_status.value,
                "approval_level": resolution.tier.authority_role.value,
                "committee_review_required": resolution.committee_required or referred,
            }
            values.update(self._outcome_values(step.new_status, actor_id, now, comments))
            self._write_application(app, now, values)
            self._flush("process approval action")

            logger.info(
                "approval_action_processed",
                extra={
                    "action": parsed.value,
                    "status_before": status.value,
                    "status_after": step.new_status.value,
                    "tier": current_tier.name,
                    "next_tier": step.next_tier.name if step.next_tier else None,
                },
            )
            return ActionResult(
                success=True,
                message=step.message,
                application_id=application_id,
                previous_status=status,
                new_status=step.new_status,
                details={
                    "action": parsed.value,
                    "tier": current_tier.name,
                    "next_tier": step.next_tier.name if step.next_tier else None,
                },
            )

    # =========================================================================
    # Committee outcome
    # =========================================================================

    def apply_committee_decision(
        self,
        application_id: UUID,
        approved: bool,
        actor_id: UUID,
        reason: str | None = None,
    ) -> ActionResult:
        """Close committee review with the committee's final decision."""
        with LogContext.bind(application_id=application_id, actor_id=actor_id):
            app = self._applications.get(application_id)
            status = app.status
            new_status = ApplicationStatus.APPROVED if approved else ApplicationStatus.REJECTED
            if status != ApplicationStatus.PENDING_COMMITTEE_REVIEW:
                raise InvalidStatusTransitionError(
                    str(application_id), status.value, new_status.value,
                )
            assignment = self._applications.pending_assignment(application_id)
            if assignment is None:
                raise NoPendingAssignmentError(str(application_id), status.value)

            now = self._clock.now()
            self._claim_assignment(
                application_id, assignment.assignment_id,
                AssignmentStatus.APPROVED if approved else AssignmentStatus.REJECTED,
                actor_id, now, reason,
            )
            self._append_history(
                application_id,
                ApprovalAction.APPROVE if approved else ApprovalAction.REJECT,
                actor_id, now,
                status_before=status, status_after=new_status,
                tier_at_action=AuthorityRole.COMMITTEE, comments=reason,
            )
            values: dict[str, Any] = {"approval_status": new_status.value}
            values.update(self._outcome_values(new_status, actor_id, now, reason))
            values["committee_voting_status"] = CommitteeVotingStatus.VOTING_COMPLETE.value
            self._write_application(app, now, values)
            self._flush("apply committee decision")

            logger.info(
                "committee_decision_applied",
                extra={"status_after": new_status.value, "approved": approved},
            )
            return ActionResult(
                success=True,
                message=(
                    "Loan application approved by committee" if approved
                    else "Loan application rejected by committee"
                ),
                application_id=application_id,
                previous_status=status,
                new_status=new_status,
                details={"approved": approved},
            )

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def reconcile_tier_consistency(
        self, application_id: UUID, actor_id: UUID,
    ) -> ActionResult:
        """Bring one application in line with the live tier catalog.

        Refreshes the stored tier flags, releases committee review that is
        no longer required (unless an approver referred the application),
        moves an application waiting above its target tier to the outcome
        it would now reach, and re-opens a missing pending assignment.
        Applications outside the pending approval statuses are left alone.
        """
        with LogContext.bind(application_id=application_id, actor_id=actor_id):
            app = self._applications.get(application_id)
            status = app.status
            if status not in PENDING_APPROVAL_STATUSES:
                return ActionResult(
                    success=True,
                    message=f"No changes: application is {status.value}",
                    application_id=application_id,
                    previous_status=status,
                    new_status=status,
                    details={"changed": False},
                )

            active = self._catalog.list_active_tiers()
            resolution = self._resolver.resolve(
                app.requested_amount, app.borrower_type, tiers=active,
            )
            referred = self._applications.was_referred_to_committee(application_id)
            assignment = self._applications.pending_assignment(application_id)
            current_tier = (
                self._catalog.get_tier(assignment.tier_id) if assignment is not None
                else None
            )
            committee_tier = committee_authority_tier(active)

            values: dict[str, Any] = {}
            level = resolution.tier.authority_role
            if app.approval_level != level:
                values["approval_level"] = level.value
            committee_flag = resolution.committee_required or referred
            if app.committee_review_required != committee_flag:
                values["committee_review_required"] = committee_flag

            plan = plan_reconciliation(
                status,
                current_tier=current_tier,
                target_tier=resolution.tier,
                committee_required=resolution.committee_required,
                explicitly_referred=referred,
                committee_tier=committee_tier,
            )

            now = self._clock.now()
            new_status = status
            reason: str | None = None
            if plan is not None:
                new_status = plan.new_status
                reason = plan.reason
                if not is_valid_transition(status, new_status):
                    raise InvalidStatusTransitionError(
                        str(application_id), status.value, new_status.value,
                    )
                if assignment is not None:
                    self._claim_assignment(
                        application_id, assignment.assignment_id,
                        AssignmentStatus.APPROVED, actor_id, now, plan.reason,
                    )
                if plan.next_tier is not None:
                    self._open_assignment(application_id, plan.next_tier, actor_id, now)
                values["approval_status"] = new_status.value
                if status == ApplicationStatus.PENDING_COMMITTEE_REVIEW:
                    values["committee_voting_status"] = (
                        CommitteeVotingStatus.NOT_STARTED.value
                    )
                values.update(self._outcome_values(new_status, actor_id, now, None))
            elif assignment is None:
                tier = self._tier_for_status(active, status)
                if tier is not None:
                    self._open_assignment(application_id, tier, actor_id, now)
                    reason = f"re-opened missing assignment at {tier.name}"
                else:
                    logger.warning(
                        "reconcile_no_tier_for_status",
                        extra={"status": status.value},
                    )

            if reason is None and values:
                reason = "refreshed tier flags: " + ", ".join(sorted(values))
            if reason is None:
                return ActionResult(
                    success=True,
                    message="No changes: application is consistent with the catalog",
                    application_id=application_id,
                    previous_status=status,
                    new_status=status,
                    details={"changed": False},
                )

            self._append_history(
                application_id, ApprovalAction.RECONCILE, actor_id, now,
                status_before=status, status_after=new_status,
                tier_at_action=current_tier.authority_role if current_tier else None,
                comments=reason,
            )
            if values:
                self._write_application(app, now, values)
            self._flush("reconcile tier consistency")

            logger.info(
                "approval_tier_reconciled",
                extra={
                    "status_before": status.value,
                    "status_after": new_status.value,
                    "reason": reason,
                },
            )
            return ActionResult(
                success=True,
                message=f"Reconciled: {reason}",
                application_id=application_id,
                previous_status=status,
                new_status=new_status,
                details={"changed": True, "reason": reason},
            )

    def reconcile_all(self, actor_id: UUID) -> list[ActionResult]:
        """Reconcile every application waiting in a pending approval status.

        Applications that cannot be resolved (malformed row, unknown
        status, no matching tier) are reported as failed results; a broken
        catalog or a store failure aborts the whole pass.
        """
        results: list[ActionResult] = []
        ids = self._applications.ids_by_statuses(PENDING_APPROVAL_STATUSES)
        for application_id in ids:
            try:
                results.append(self.reconcile_tier_consistency(application_id, actor_id))
            except (TierError, ValidationError) as exc:
                with LogContext.bind(application_id=application_id):
                    logger.warning(
                        "reconcile_application_failed",
                        extra={"error_code": exc.code, "error": str(exc)},
                    )
                results.append(ActionResult(
                    success=False,
                    message=str(exc),
                    application_id=application_id,
                    details={"error_code": exc.code},
                ))

        logger.info(
            "approval_reconcile_all_completed",
            extra={
                "total": len(results),
                "changed": sum(1 for r in results if r.details.get("changed")),
                "failed": sum(1 for r in results if not r.success),
            },
        )
        return results

    @staticmethod
    def _tier_for_status(
        active: tuple[ApprovalTier, ...], status: ApplicationStatus,
    ) -> ApprovalTier | None:
        role = PENDING_STATUS_AUTHORITY[status]
        for tier in active:
            if tier.authority_role == role:
                return tier
        return None

    # =========================================================================
    # Writes
    # =========================================================================

    def _next_sequence(self, model: type, application_id: UUID) -> int:
        current = self.session.execute(
            select(func.max(model.sequence)).where(model.application_id == application_id)
        ).scalar_one()
        return (current or 0) + 1

    def _open_assignment(
        self,
        application_id: UUID,
        tier: ApprovalTier,
        actor_id: UUID,
        now: datetime,
        assigned_actor_id: UUID | None = None,
    ) -> ApprovalAssignmentModel:
        assignment = ApprovalAssignmentModel(
            application_id=application_id,
            tier_id=tier.tier_id,
            authority_role=tier.authority_role.value,
            assigned_actor_id=assigned_actor_id,
            status=AssignmentStatus.PENDING.value,
            created_at=now,
            created_by=actor_id,
            sequence=self._next_sequence(ApprovalAssignmentModel, application_id),
        )
        self.session.add(assignment)
        self._flush("open approval assignment")
        return assignment

    def _claim_assignment(
        self,
        application_id: UUID,
        assignment_id: UUID,
        outcome: AssignmentStatus,
        actor_id: UUID,
        now: datetime,
        comments: str | None,
    ) -> None:
        """Decide the pending assignment, or fail if someone else already did."""
        result = self.session.execute(
            update(ApprovalAssignmentModel)
            .where(
                ApprovalAssignmentModel.id == assignment_id,
                ApprovalAssignmentModel.status == AssignmentStatus.PENDING.value,
            )
            .values(
                status=outcome.value,
                decided_by=actor_id,
                decided_at=now,
                comments=comments,
            )
        )
        if result.rowcount != 1:
            logger.warning(
                "approval_assignment_claim_lost",
                extra={"assignment_id": str(assignment_id)},
            )
            raise NoPendingAssignmentError(str(application_id))

    def _append_history(
        self,
        application_id: UUID,
        action: ApprovalAction,
        actor_id: UUID,
        now: datetime,
        *,
        status_before: ApplicationStatus,
        status_after: ApplicationStatus,
        tier_at_action: AuthorityRole | None,
        comments: str | None,
    ) -> None:
        self.session.add(ApprovalHistoryModel(
            application_id=application_id,
            action=action.value,
            actor_id=actor_id,
            comments=comments,
            tier_at_action=tier_at_action.value if tier_at_action else None,
            status_before=status_before.value,
            status_after=status_after.value,
            timestamp=now,
            sequence=self._next_sequence(ApprovalHistoryModel, application_id),
        ))

    @staticmethod
    def _outcome_values(
        new_status: ApplicationStatus,
        actor_id: UUID,
        now: datetime,
        comments: str | None,
    ) -> dict[str, Any]:
        if new_status == ApplicationStatus.APPROVED:
            return {"approved_by": actor_id, "approved_at": now}
        if new_status == ApplicationStatus.REJECTED:
            return {"rejection_reason": comments}
        if new_status == ApplicationStatus.PENDING_COMMITTEE_REVIEW:
            return {"committee_voting_status": CommitteeVotingStatus.VOTING_OPEN.value}
        return {}

    def _write_application(
        self,
        app: LoanApplicationRecord,
        now: datetime,
        values: dict[str, Any],
    ) -> None:
        """Update the application only if its status is still the one we read."""
        result = self.session.execute(
            update(LoanApplicationModel)
            .where(
                LoanApplicationModel.id == app.application_id,
                LoanApplicationModel.approval_status == app.raw_status,
            )
            .values(updated_at=now, **values)
        )
        if result.rowcount != 1:
            logger.warning(
                "loan_application_write_conflict",
                extra={"expected_status": app.raw_status},
            )
            raise OptimisticLockError("LoanApplication", str(app.application_id))
