"""
Module: approval_kernel.selectors.committee_selector
Responsibility: Read-only access to committee members, votes and stored
    decision tallies.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only: no mutations performed on any queried data.
    - Deterministic ordering: members by role then creation, votes by cast
      time then ID, decisions by update time.
"""

from uuid import UUID

from sqlalchemy import select

from approval_kernel.domain.committee import (
    CommitteeDecisionRecord,
    CommitteeMemberRecord,
    FinalDecision,
    VoteRecord,
)
from approval_kernel.models.committee import (
    CommitteeDecisionModel,
    CommitteeMemberModel,
    CommitteeVoteModel,
)
from approval_kernel.selectors.base import BaseSelector


class CommitteeSelector(BaseSelector[CommitteeMemberModel]):
    """Queries over the credit committee."""

    def members(self, include_inactive: bool = False) -> list[CommitteeMemberRecord]:
        query = select(CommitteeMemberModel)
        if not include_inactive:
            query = query.where(CommitteeMemberModel.is_active.is_(True))
        rows = self.session.execute(
            query.order_by(CommitteeMemberModel.role, CommitteeMemberModel.created_at)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def active_member_ids(self) -> list[UUID]:
        return list(self.session.execute(
            select(CommitteeMemberModel.id).where(CommitteeMemberModel.is_active.is_(True))
        ).scalars().all())

    def member_by_user(
        self, user_id: UUID, active_only: bool = True,
    ) -> CommitteeMemberRecord | None:
        query = select(CommitteeMemberModel).where(CommitteeMemberModel.user_id == user_id)
        if active_only:
            query = query.where(CommitteeMemberModel.is_active.is_(True))
        model = self.session.execute(query).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def votes(self, application_id: UUID) -> list[VoteRecord]:
        rows = self.session.execute(
            select(CommitteeVoteModel)
            .where(CommitteeVoteModel.application_id == application_id)
            .order_by(CommitteeVoteModel.cast_at, CommitteeVoteModel.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def vote_by_member(self, application_id: UUID, member_id: UUID) -> VoteRecord | None:
        model = self.session.execute(
            select(CommitteeVoteModel).where(
                CommitteeVoteModel.application_id == application_id,
                CommitteeVoteModel.member_id == member_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def decision(self, application_id: UUID) -> CommitteeDecisionRecord | None:
        model = self.session.execute(
            select(CommitteeDecisionModel).where(
                CommitteeDecisionModel.application_id == application_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def decisions(self, pending: bool) -> list[CommitteeDecisionRecord]:
        """Pending tallies oldest first, resolved tallies newest first."""
        column = CommitteeDecisionModel.final_decision
        query = select(CommitteeDecisionModel)
        if pending:
            query = query.where(column == FinalDecision.PENDING.value).order_by(
                CommitteeDecisionModel.updated_at.asc().nulls_first(),
                CommitteeDecisionModel.id,
            )
        else:
            query = query.where(column != FinalDecision.PENDING.value).order_by(
                CommitteeDecisionModel.decided_at.desc().nulls_first(),
                CommitteeDecisionModel.updated_at.desc().nulls_last(),
                CommitteeDecisionModel.id,
            )
        return [row.to_dto() for row in self.session.execute(query).scalars().all()]
