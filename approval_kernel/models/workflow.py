"""
Module: approval_kernel.models.workflow
Responsibility: ORM persistence for approval assignments and the approval
    history trail.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - At most one pending assignment per application: partial unique index
      on application_id WHERE status = 'pending' (PostgreSQL and SQLite).
    - Decided assignments are immutable (ORM listener).
    - History entries are append-only: no UPDATE, no DELETE (ORM listeners).

Failure modes:
    - IntegrityError when a second pending assignment is inserted.
    - ImmutabilityViolationError on modifying a decided assignment or any
      history entry.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from approval_kernel.domain.workflow import (
        ApprovalAssignmentRecord,
        ApprovalHistoryRecord,
    )


class ApprovalAssignmentModel(Base):
    """One tier's turn at deciding an application.

    ``authority_role`` is snapshotted from the tier at creation so later
    tier edits do not rewrite who an open assignment belongs to.
    """

    __tablename__ = "approval_assignments"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_approval_assignments_valid_status",
        ),
        Index(
            "uq_approval_assignments_one_pending",
            "application_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        UniqueConstraint(
            "application_id", "sequence",
            name="uq_approval_assignments_sequence",
        ),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("loan_applications.id"), nullable=False,
    )
    tier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_tiers.id"), nullable=False,
    )
    authority_role: Mapped[str] = mapped_column(String(50), nullable=False)
    assigned_actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ApprovalAssignment {self.id} app={self.application_id} "
            f"{self.authority_role} status={self.status}>"
        )

    def to_dto(self) -> ApprovalAssignmentRecord:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.status import AuthorityRole
        from approval_kernel.domain.workflow import (
            ApprovalAssignmentRecord as AssignmentDTO,
            AssignmentStatus,
        )

        return AssignmentDTO(
            assignment_id=self.id,
            application_id=self.application_id,
            tier_id=self.tier_id,
            authority_role=AuthorityRole(self.authority_role),
            status=AssignmentStatus(self.status),
            assigned_actor_id=self.assigned_actor_id,
            comments=self.comments,
            decided_by=self.decided_by,
            decided_at=self.decided_at,
            created_at=self.created_at,
        )


class ApprovalHistoryModel(Base):
    """Append-only record of one workflow transition."""

    __tablename__ = "approval_history"

    __table_args__ = (
        UniqueConstraint(
            "application_id", "sequence",
            name="uq_approval_history_sequence",
        ),
    )

    application_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("loan_applications.id"), nullable=False,
    )
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    tier_at_action: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status_before: Mapped[str] = mapped_column(String(50), nullable=False)
    status_after: Mapped[str] = mapped_column(String(50), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ApprovalHistory {self.id} app={self.application_id} "
            f"{self.action}: {self.status_before} -> {self.status_after}>"
        )

    def to_dto(self) -> ApprovalHistoryRecord:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.status import AuthorityRole
        from approval_kernel.domain.workflow import (
            ApprovalAction,
            ApprovalHistoryRecord as HistoryDTO,
        )

        return HistoryDTO(
            entry_id=self.id,
            application_id=self.application_id,
            action=ApprovalAction(self.action),
            actor_id=self.actor_id,
            status_before=self.status_before,
            status_after=self.status_after,
            tier_at_action=(
                AuthorityRole(self.tier_at_action) if self.tier_at_action else None
            ),
            comments=self.comments,
            timestamp=self.timestamp,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(ApprovalAssignmentModel, "before_update")
def prevent_decided_assignment_update(mapper, connection, target):
    """Only a pending assignment may change (to record its decision)."""
    history = inspect(target).attrs.status.history
    original = history.deleted[0] if history.deleted else target.status
    if original != "pending":
        raise ImmutabilityViolationError(
            entity_type="ApprovalAssignment",
            entity_id=str(target.id),
            reason=f"Assignment already {original} -- cannot modify",
        )


@event.listens_for(ApprovalAssignmentModel, "before_delete")
def prevent_assignment_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ApprovalAssignment",
        entity_id=str(target.id),
        reason="Assignments are part of the approval trail -- cannot delete",
    )


@event.listens_for(ApprovalHistoryModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to approval history records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalHistory",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot modify",
    )


@event.listens_for(ApprovalHistoryModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of approval history records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalHistory",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot delete",
    )
