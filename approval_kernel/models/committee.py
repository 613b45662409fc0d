"""
Module: approval_kernel.models.committee
Responsibility: ORM persistence for committee members, votes and the
    per-application decision tally.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - One vote row per (application, member): UNIQUE constraint.
    - One decision row per application: UNIQUE constraint.
    - Voting weight is positive (check constraint).
    - Frozen tally: once final_decision leaves 'pending' the tally fields
      never change again; only the finalize stamp (decided_by, decided_at,
      decision_reason) may be written, and only once (ORM listener).
    - Votes are never deleted (ORM listener).

Failure modes:
    - IntegrityError on a duplicate vote or decision row.
    - ImmutabilityViolationError on modifying a frozen tally.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, TrackedBase, UUIDString
from approval_kernel.db.types import strip_scale
from approval_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from approval_kernel.domain.committee import (
        CommitteeDecisionRecord,
        CommitteeMemberRecord,
        VoteRecord,
    )


class CommitteeMemberModel(TrackedBase):
    """A credit committee seat."""

    __tablename__ = "committee_members"

    __table_args__ = (
        CheckConstraint(
            "role IN ('chairperson', 'secretary', 'member')",
            name="ck_committee_members_role",
        ),
        CheckConstraint("voting_weight > 0", name="ck_committee_members_weight_positive"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")
    voting_weight: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False, default=Decimal("1"),
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<CommitteeMember {self.user_id} {self.role} weight={self.voting_weight}>"

    def to_dto(self) -> CommitteeMemberRecord:
        from approval_kernel.domain.committee import (
            CommitteeMemberRecord as MemberDTO,
            CommitteeRole,
        )

        return MemberDTO(
            member_id=self.id,
            user_id=self.user_id,
            role=CommitteeRole(self.role),
            voting_weight=strip_scale(self.voting_weight),
            is_active=self.is_active,
            display_name=self.display_name,
        )


class CommitteeVoteModel(Base):
    """A member's vote on an application. Upserted until the decision resolves."""

    __tablename__ = "committee_votes"

    __table_args__ = (
        UniqueConstraint(
            "application_id", "member_id",
            name="uq_committee_votes_application_member",
        ),
        CheckConstraint(
            "decision IN ('approve', 'reject', 'abstain')",
            name="ck_committee_votes_decision",
        ),
        Index("ix_committee_votes_application", "application_id"),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("loan_applications.id"), nullable=False,
    )
    member_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("committee_members.id"), nullable=False,
    )
    decision: Mapped[str] = mapped_column(String(10), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    weight: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    cast_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<CommitteeVote app={self.application_id} member={self.member_id} "
            f"{self.decision}>"
        )

    def to_dto(self) -> VoteRecord:
        from approval_kernel.domain.committee import VoteDecision, VoteRecord as VoteDTO

        return VoteDTO(
            vote_id=self.id,
            application_id=self.application_id,
            member_id=self.member_id,
            decision=VoteDecision(self.decision),
            weight=strip_scale(self.weight),
            comments=self.comments,
            cast_at=self.cast_at,
        )


class CommitteeDecisionModel(Base):
    """Persisted tally for one application plus the chairperson's stamp.

    ``version`` increments on every tally write; writers update
    conditionally on the version they read.
    """

    __tablename__ = "committee_decisions"

    __table_args__ = (
        CheckConstraint(
            "final_decision IN ('approve', 'reject', 'pending')",
            name="ck_committee_decisions_final_decision",
        ),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("loan_applications.id"), nullable=False, unique=True,
    )
    total_members: Mapped[int] = mapped_column(nullable=False, default=0)
    quorum_required: Mapped[int] = mapped_column(nullable=False, default=1)
    total_votes_cast: Mapped[int] = mapped_column(nullable=False, default=0)
    approve_count: Mapped[int] = mapped_column(nullable=False, default=0)
    reject_count: Mapped[int] = mapped_column(nullable=False, default=0)
    abstain_count: Mapped[int] = mapped_column(nullable=False, default=0)
    approve_weight: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False, default=Decimal("0"),
    )
    reject_weight: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False, default=Decimal("0"),
    )
    abstain_weight: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False, default=Decimal("0"),
    )
    quorum_met: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    final_decision: Mapped[str] = mapped_column(
        String(10), nullable=False, default="pending",
    )
    version: Mapped[int] = mapped_column(nullable=False, default=1)
    decided_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    decision_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<CommitteeDecision app={self.application_id} "
            f"{self.final_decision} v{self.version}>"
        )

    def to_dto(self) -> CommitteeDecisionRecord:
        from approval_kernel.domain.committee import (
            CommitteeDecisionRecord as DecisionDTO,
            CommitteeTally,
            FinalDecision,
        )

        return DecisionDTO(
            tally=CommitteeTally(
                application_id=self.application_id,
                total_members=self.total_members,
                quorum_required=self.quorum_required,
                total_votes_cast=self.total_votes_cast,
                approve_count=self.approve_count,
                reject_count=self.reject_count,
                abstain_count=self.abstain_count,
                approve_weight=strip_scale(self.approve_weight),
                reject_weight=strip_scale(self.reject_weight),
                abstain_weight=strip_scale(self.abstain_weight),
                quorum_met=self.quorum_met,
                final_decision=FinalDecision(self.final_decision),
            ),
            version=self.version,
            decided_by=self.decided_by,
            decided_at=self.decided_at,
            decision_reason=self.decision_reason,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================

_FINALIZE_STAMP_FIELDS = frozenset({"decided_by", "decided_at", "decision_reason"})


@event.listens_for(CommitteeDecisionModel, "before_update")
def prevent_frozen_tally_update(mapper, connection, target):
    """A resolved tally is frozen; only the finalize stamp may be written once."""
    state = inspect(target)
    status_history = state.attrs.final_decision.history
    original = (
        status_history.deleted[0] if status_history.deleted else target.final_decision
    )
    if original == "pending":
        return

    changed = {
        attr.key for attr in state.attrs if attr.history.has_changes()
    }
    stamp_history = state.attrs.decided_at.history
    if stamp_history.deleted:
        original_stamp = stamp_history.deleted[0]
    elif stamp_history.unchanged:
        original_stamp = stamp_history.unchanged[0]
    else:
        original_stamp = None
    already_stamped = original_stamp is not None
    if not changed <= _FINALIZE_STAMP_FIELDS or already_stamped:
        raise ImmutabilityViolationError(
            entity_type="CommitteeDecision",
            entity_id=str(target.application_id),
            reason=f"Committee decision already {original} -- tally is frozen",
        )


@event.listens_for(CommitteeVoteModel, "before_delete")
def prevent_vote_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="CommitteeVote",
        entity_id=str(target.id),
        reason="Committee votes cannot be deleted",
    )
