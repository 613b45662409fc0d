"""
CommitteeVotingEngine -- weighted credit-committee voting.

Responsibility:
    Records member votes on applications in committee review, keeps the
    persisted tally current, reports per-caller voting summaries, and lets
    the chairperson finalize a resolved decision, which is then handed to
    the workflow through its ``CommitteeOutcomeSink`` interface.

Architecture position:
    Kernel > Services -- imperative shell.
    The tally is computed by the pure ``approval_engines.committee_tally``.

Invariants enforced:
    - Per application: NoDecision -> Tallying -> Decided(approve|reject).
      The decision may flip while pending and freezes the instant it
      first resolves.
    - One vote per (application, member); re-voting replaces the vote
      while the decision is pending.  The member's weight is copied at
      cast time.
    - The tally is recomputed from a fresh read of the votes inside the
      caller's transaction and written with a conditional UPDATE on
      (version, final_decision = 'pending').
    - A membership change recounts every open tally, and finalize
      recounts before checking, so the stored row always agrees with
      what ``get_voting_summary`` reports.
    - Finalize happens once: the stamp is written with a conditional
      UPDATE on ``decided_at IS NULL``.
    - Flush-only: never commits.

Failure modes:
    - NotACommitteeMemberError: caller is not an active member.
    - NotAuthorizedError: finalize by anyone but an active chairperson.
    - VotingClosedError: application not in committee review, or the
      decision already resolved (carries the tally).
    - DecisionStillPendingError: finalize before a decision exists.
    - AlreadyDecidedError: second finalize.
    - OptimisticLockError: concurrent tally write; safe to retry.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from approval_engines.committee_tally import compute_tally
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.committee import (
    CommitteeDecisionRecord,
    CommitteeMemberRecord,
    CommitteeRole,
    CommitteeTally,
    FinalDecision,
    VoteDecision,
    VoteRecord,
    VotingPolicy,
    VotingSummary,
)
from approval_kernel.domain.status import ApplicationStatus
from approval_kernel.domain.workflow import ActionResult, CommitteeOutcomeSink
from approval_kernel.exceptions import (
    AlreadyDecidedError,
    DecisionStillPendingError,
    InvalidActionError,
    NotACommitteeMemberError,
    NotAuthorizedError,
    OptimisticLockError,
    VotingClosedError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.models.committee import (
    CommitteeDecisionModel,
    CommitteeMemberModel,
    CommitteeVoteModel,
)
from approval_kernel.selectors.application_selector import ApplicationSelector
from approval_kernel.selectors.committee_selector import CommitteeSelector
from approval_kernel.services.base import BaseService

logger = get_logger("services.committee")


def _parse_vote(decision: VoteDecision | str) -> VoteDecision:
    try:
        return VoteDecision(decision)
    except ValueError:
        raise InvalidActionError(decision) from None


class CommitteeVotingEngine(BaseService[CommitteeVoteModel]):
    """
    Weighted committee voting over applications in committee review.

    Contract:
        ``cast_vote`` and ``finalize`` return ``ActionResult`` on success
        and raise typed errors otherwise; ``get_voting_summary`` is a pure
        read.  Finalized outcomes go to ``outcome_sink``.
    """

    def __init__(
        self,
        session: Session,
        outcome_sink: CommitteeOutcomeSink,
        policy: VotingPolicy | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._outcome_sink = outcome_sink
        self._policy = policy or VotingPolicy()
        self._clock = clock or SystemClock()
        self._committee = CommitteeSelector(session)
        self._applications = ApplicationSelector(session)

    # =========================================================================
    # Voting
    # =========================================================================

    def cast_vote(
        self,
        application_id: UUID,
        user_id: UUID,
        decision: VoteDecision | str,
        comments: str | None = None,
    ) -> ActionResult:
        """Record (or replace) the caller's vote and refresh the tally.

        Raises:
            NotACommitteeMemberError: ``user_id`` is not an active member.
            VotingClosedError: voting is not open, or already decided.
        """
        vote_decision = _parse_vote(decision)
        with LogContext.bind(application_id=application_id, actor_id=user_id):
            member = self._committee.member_by_user(user_id)
            if member is None:
                raise NotACommitteeMemberError(str(user_id))

            status = self._applications.get(application_id).status
            if status != ApplicationStatus.PENDING_COMMITTEE_REVIEW:
                raise VotingClosedError(
                    str(application_id), f"voting is not open (status {status.value})",
                )

            row = self._decision_model(application_id)
            if row.final_decision != FinalDecision.PENDING.value:
                raise VotingClosedError(
                    str(application_id),
                    f"decision already {row.final_decision}",
                    tally=row.to_dto().tally,
                )
            expected_version = row.version

            now = self._clock.now()
            self._upsert_vote(application_id, member, vote_decision, comments, now)

            tally = compute_tally(
                application_id=application_id,
                votes=self._committee.votes(application_id),
                active_member_ids=self._committee.active_member_ids(),
                policy=self._policy,
            )
            self._write_tally(row, expected_version, tally, now)

            logger.info(
                "committee_vote_cast",
                extra={
                    "member_id": str(member.member_id),
                    "decision": vote_decision.value,
                    "weight": member.voting_weight,
                    "votes_cast": tally.total_votes_cast,
                    "quorum_met": tally.quorum_met,
                    "final_decision": tally.final_decision.value,
                },
            )
            if tally.is_decided:
                logger.info(
                    "committee_decision_reached",
                    extra={
                        "final_decision": tally.final_decision.value,
                        "approve_weight": tally.approve_weight,
                        "reject_weight": tally.reject_weight,
                    },
                )

            return ActionResult(
                success=True,
                message=f"Vote recorded: {vote_decision.value}",
                application_id=application_id,
                previous_status=status,
                new_status=status,
                details={"tally": tally, "final_decision": tally.final_decision.value},
            )

    def get_voting_summary(self, application_id: UUID, user_id: UUID) -> VotingSummary:
        """What ``user_id`` sees about the committee vote on an application.

        A resolved tally is reported as frozen; a pending one is recomputed
        against the members who are active now.
        """
        app = self._applications.get(application_id)
        stored = self._committee.decision(app.application_id)
        tally = self._current_tally(application_id, stored)

        member = self._committee.member_by_user(user_id, active_only=False)
        vote = (
            self._committee.vote_by_member(application_id, member.member_id)
            if member is not None else None
        )
        has_voted = vote is not None
        return VotingSummary(
            application_id=application_id,
            total_members=tally.total_members,
            total_votes_cast=tally.total_votes_cast,
            approve_count=tally.approve_count,
            reject_count=tally.reject_count,
            abstain_count=tally.abstain_count,
            approve_weight=tally.approve_weight,
            reject_weight=tally.reject_weight,
            quorum_met=tally.quorum_met,
            quorum_required=tally.quorum_required,
            final_decision=tally.final_decision,
            votes_remaining=tally.votes_remaining,
            has_voted=has_voted,
            user_vote=vote.decision if vote is not None else None,
            user_vote_comments=vote.comments if vote is not None else None,
            is_member=member is not None and member.is_active,
            can_vote=not has_voted and tally.final_decision == FinalDecision.PENDING,
            is_finalized=stored is not None and stored.is_finalized,
        )

    def finalize(
        self,
        application_id: UUID,
        user_id: UUID,
        reason: str | None = None,
    ) -> ActionResult:
        """Stamp the resolved decision and hand it to the workflow.

        Raises:
            NotAuthorizedError: caller is not an active chairperson.
            DecisionStillPendingError: no resolved decision yet.
            AlreadyDecidedError: already finalized.
        """
        with LogContext.bind(application_id=application_id, actor_id=user_id):
            member = self._committee.member_by_user(user_id)
            if member is None or member.role != CommitteeRole.CHAIRPERSON:
                raise NotAuthorizedError(str(user_id), CommitteeRole.CHAIRPERSON.value)

            now = self._clock.now()
            stored = self._committee.decision(application_id)
            if stored is None:
                tally = self._current_tally(application_id, stored)
                raise DecisionStillPendingError(str(application_id), tally=tally)
            if not stored.tally.is_decided:
                stored = self._recount(stored, now)
            if not stored.tally.is_decided:
                raise DecisionStillPendingError(str(application_id), tally=stored.tally)
            if stored.is_finalized:
                raise AlreadyDecidedError(
                    "CommitteeDecision", str(application_id),
                    stored.tally.final_decision.value,
                )

            result = self.session.execute(
                update(CommitteeDecisionModel)
                .where(
                    CommitteeDecisionModel.application_id == application_id,
                    CommitteeDecisionModel.decided_at.is_(None),
                    CommitteeDecisionModel.final_decision != FinalDecision.PENDING.value,
                )
                .values(decided_by=user_id, decided_at=now, decision_reason=reason)
            )
            if result.rowcount != 1:
                raise AlreadyDecidedError(
                    "CommitteeDecision", str(application_id),
                    stored.tally.final_decision.value,
                )

            approved = stored.tally.final_decision == FinalDecision.APPROVE
            outcome = self._outcome_sink.apply_committee_decision(
                application_id, approved, user_id, reason,
            )
            self._flush("finalize committee decision")

            logger.info(
                "committee_decision_finalized",
                extra={
                    "final_decision": stored.tally.final_decision.value,
                    "status_after": outcome.new_status.value if outcome.new_status else None,
                },
            )
            return ActionResult(
                success=True,
                message=f"Committee decision finalized: {stored.tally.final_decision.value}",
                application_id=application_id,
                previous_status=outcome.previous_status,
                new_status=outcome.new_status,
                details={
                    "final_decision": stored.tally.final_decision.value,
                    "tally": stored.tally,
                },
            )

    # =========================================================================
    # Committee reads
    # =========================================================================

    def list_members(self, include_inactive: bool = False) -> list[CommitteeMemberRecord]:
        return self._committee.members(include_inactive)

    def get_votes(self, application_id: UUID) -> list[VoteRecord]:
        return self._committee.votes(application_id)

    def pending_decisions(self) -> list[CommitteeDecisionRecord]:
        return self._committee.decisions(pending=True)

    def completed_decisions(self) -> list[CommitteeDecisionRecord]:
        return self._committee.decisions(pending=False)

    def is_committee_member(self, user_id: UUID) -> bool:
        return self._committee.member_by_user(user_id) is not None

    def is_chairperson(self, user_id: UUID) -> bool:
        member = self._committee.member_by_user(user_id)
        return member is not None and member.role == CommitteeRole.CHAIRPERSON

    # =========================================================================
    # Membership administration
    # =========================================================================

    def add_member(
        self,
        user_id: UUID,
        actor_id: UUID,
        role: CommitteeRole | str = CommitteeRole.MEMBER,
        voting_weight: Decimal | int | str = Decimal("1"),
        display_name: str | None = None,
    ) -> CommitteeMemberRecord:
        """Seat a user on the committee (or reactivate their old seat)."""
        seat_role = CommitteeRole(role)
        weight = Decimal(str(voting_weight))
        if weight <= 0:
            raise ValueError(f"voting_weight must be positive: {voting_weight!r}")

        model = self.session.execute(
            select(CommitteeMemberModel).where(CommitteeMemberModel.user_id == user_id)
        ).scalar_one_or_none()
        if model is None:
            model = CommitteeMemberModel(
                user_id=user_id,
                display_name=display_name,
                role=seat_role.value,
                voting_weight=weight,
                is_active=True,
                created_by_id=actor_id,
            )
            self.session.add(model)
        else:
            model.role = seat_role.value
            model.voting_weight = weight
            model.is_active = True
            if display_name is not None:
                model.display_name = display_name
            model.updated_by_id = actor_id
        self._flush("add committee member")
        self._recount_open_tallies()

        logger.info(
            "committee_member_added",
            extra={
                "user_id": str(user_id),
                "role": seat_role.value,
                "voting_weight": weight,
                "actor_id": str(actor_id),
            },
        )
        return model.to_dto()

    def deactivate_member(self, user_id: UUID, actor_id: UUID) -> CommitteeMemberRecord:
        """Remove a seat. Existing votes stay stored but stop counting."""
        model = self.session.execute(
            select(CommitteeMemberModel).where(CommitteeMemberModel.user_id == user_id)
        ).scalar_one_or_none()
        if model is None:
            raise NotACommitteeMemberError(str(user_id))
        model.is_active = False
        model.updated_by_id = actor_id
        self._flush("deactivate committee member")
        self._recount_open_tallies()

        logger.info(
            "committee_member_deactivated",
            extra={"user_id": str(user_id), "actor_id": str(actor_id)},
        )
        return model.to_dto()

    # =========================================================================
    # Internals
    # =========================================================================

    def _current_tally(
        self,
        application_id: UUID,
        stored: CommitteeDecisionRecord | None,
    ) -> CommitteeTally:
        if stored is not None and stored.tally.is_decided:
            return stored.tally
        return compute_tally(
            application_id=application_id,
            votes=self._committee.votes(application_id),
            active_member_ids=self._committee.active_member_ids(),
            policy=self._policy,
        )

    def _recount(
        self, stored: CommitteeDecisionRecord, now: datetime,
    ) -> CommitteeDecisionRecord:
        """Recount a pending tally against the members active now."""
        application_id = stored.tally.application_id
        tally = compute_tally(
            application_id=application_id,
            votes=self._committee.votes(application_id),
            active_member_ids=self._committee.active_member_ids(),
            policy=self._policy,
        )
        if tally == stored.tally:
            return stored

        self._write_tally(self._decision_model(application_id), stored.version, tally, now)
        with LogContext.bind(application_id=application_id):
            logger.info(
                "committee_tally_recounted",
                extra={
                    "total_members": tally.total_members,
                    "votes_cast": tally.total_votes_cast,
                    "final_decision": tally.final_decision.value,
                },
            )
        return replace(stored, tally=tally, version=stored.version + 1)

    def _recount_open_tallies(self) -> None:
        """Membership changed: bring every open committee vote up to date."""
        now = self._clock.now()
        for stored in self._committee.decisions(pending=True):
            app = self._applications.get(stored.tally.application_id, strict=False)
            if app.raw_status == ApplicationStatus.PENDING_COMMITTEE_REVIEW.value:
                self._recount(stored, now)

    def _decision_model(self, application_id: UUID) -> CommitteeDecisionModel:
        """The tally row for an application, created empty on first vote."""
        row = self.session.execute(
            select(CommitteeDecisionModel).where(
                CommitteeDecisionModel.application_id == application_id,
            )
        ).scalar_one_or_none()
        if row is not None:
            return row
        members = len(self._committee.active_member_ids())
        row = CommitteeDecisionModel(
            application_id=application_id,
            total_members=members,
            quorum_required=self._policy.quorum_for(members),
            final_decision=FinalDecision.PENDING.value,
            version=1,
            updated_at=self._clock.now(),
        )
        self.session.add(row)
        self._flush("open committee tally")
        return row

    def _upsert_vote(
        self,
        application_id: UUID,
        member: CommitteeMemberRecord,
        decision: VoteDecision,
        comments: str | None,
        now: datetime,
    ) -> None:
        vote = self.session.execute(
            select(CommitteeVoteModel).where(
                CommitteeVoteModel.application_id == application_id,
                CommitteeVoteModel.member_id == member.member_id,
            )
        ).scalar_one_or_none()
        if vote is None:
            self.session.add(CommitteeVoteModel(
                application_id=application_id,
                member_id=member.member_id,
                decision=decision.value,
                comments=comments,
                weight=member.voting_weight,
                cast_at=now,
            ))
        else:
            vote.decision = decision.value
            vote.comments = comments
            vote.weight = member.voting_weight
            vote.cast_at = now
        self._flush("cast committee vote")

    def _write_tally(
        self,
        row: CommitteeDecisionModel,
        expected_version: int,
        tally: CommitteeTally,
        now: datetime,
    ) -> None:
        """Persist the tally unless someone else moved it first."""
        result = self.session.execute(
            update(CommitteeDecisionModel)
            .where(
                CommitteeDecisionModel.id == row.id,
                CommitteeDecisionModel.version == expected_version,
                CommitteeDecisionModel.final_decision == FinalDecision.PENDING.value,
            )
            .values(
                total_members=tally.total_members,
                quorum_required=tally.quorum_required,
                total_votes_cast=tally.total_votes_cast,
                approve_count=tally.approve_count,
                reject_count=tally.reject_count,
                abstain_count=tally.abstain_count,
                approve_weight=tally.approve_weight,
                reject_weight=tally.reject_weight,
                abstain_weight=tally.abstain_weight,
                quorum_met=tally.quorum_met,
                final_decision=tally.final_decision.value,
                version=expected_version + 1,
                updated_at=now,
            )
        )
        if result.rowcount == 1:
            return

        self.session.expire(row)
        if row.final_decision != FinalDecision.PENDING.value:
            raise VotingClosedError(
                str(row.application_id),
                f"decision already {row.final_decision}",
                tally=row.to_dto().tally,
            )
        raise OptimisticLockError("CommitteeDecision", str(row.application_id))
