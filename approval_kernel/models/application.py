"""
Module: approval_kernel.models.application
Responsibility: ORM mapping of the loan application columns the approval
    pipeline reads and writes.

Architecture position: Kernel > Models.  May import from db/ and domain/.

The wider loan application record (client details, product terms,
documents) belongs to the loan origination system; only the approval
columns are mapped here.  Columns the pipeline requires are nullable in
the table because rows arrive from outside; ``to_dto`` turns a missing
value into ``InvalidApplicationRecordError``, or into a flagged
diagnostic record for the ``unmapped`` listing.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ColumnElement,
    DateTime,
    Index,
    Numeric,
    String,
    Text,
    and_,
    or_,
)
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.exceptions import InvalidApplicationRecordError

if TYPE_CHECKING:
    from approval_kernel.domain.workflow import LoanApplicationRecord


class LoanApplicationModel(Base):
    """Approval-relevant slice of a loan application."""

    __tablename__ = "loan_applications"

    __table_args__ = (
        Index("ix_loan_applications_status_created", "approval_status", "created_at"),
    )

    application_number: Mapped[str | None] = mapped_column(
        String(50), nullable=True, unique=True,
    )
    requested_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True,
    )
    borrower_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    approval_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    approval_level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    committee_review_required: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    committee_voting_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="not_started",
    )
    disbursement_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<LoanApplication {self.id} amount={self.requested_amount} "
            f"status={self.approval_status}>"
        )

    def to_dto(self, *, strict: bool = True) -> LoanApplicationRecord:
        """Convert to a validated DTO.

        With ``strict=False`` a malformed row comes back as a diagnostic
        record whose ``problems`` name each defect, instead of raising.
        ``malformed()`` is the same set of checks as a SQL predicate.

        Raises:
            InvalidApplicationRecordError: (strict only) on a missing
                required field or an approval level / voting status
                outside its vocabulary.
        """
        from approval_kernel.domain.status import AuthorityRole, CommitteeVotingStatus
        from approval_kernel.domain.workflow import LoanApplicationRecord

        problems: list[tuple[str, str]] = []
        level = None
        if self.approval_level is not None:
            try:
                level = AuthorityRole(self.approval_level)
            except ValueError:
                problems.append(
                    ("approval_level", f"has unknown value {self.approval_level!r}")
                )
        voting_status = CommitteeVotingStatus.NOT_STARTED
        try:
            voting_status = CommitteeVotingStatus(
                self.committee_voting_status or CommitteeVotingStatus.NOT_STARTED.value
            )
        except ValueError:
            problems.append((
                "committee_voting_status",
                f"has unknown value {self.committee_voting_status!r}",
            ))
        if self.requested_amount is None:
            problems.append(("requested_amount", "is missing"))
        if self.approval_status is None:
            problems.append(("raw_status", "is missing"))

        if problems and strict:
            field_name, detail = problems[0]
            raise InvalidApplicationRecordError(str(self.id), field_name, detail)

        return LoanApplicationRecord(
            application_id=self.id,
            requested_amount=self.requested_amount,
            raw_status=self.approval_status,
            borrower_type=self.borrower_type,
            application_number=self.application_number,
            approval_level=level,
            committee_review_required=bool(self.committee_review_required),
            committee_voting_status=voting_status,
            disbursement_method=self.disbursement_method,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            rejection_reason=self.rejection_reason,
            created_at=self.created_at,
            updated_at=self.updated_at,
            problems=tuple(f"{name} {detail}" for name, detail in problems),
        )

    @classmethod
    def malformed(cls) -> ColumnElement[bool]:
        """SQL predicate matching rows that ``to_dto`` refuses."""
        from approval_kernel.domain.status import AuthorityRole, CommitteeVotingStatus

        return or_(
            cls.requested_amount.is_(None),
            cls.approval_status.is_(None),
            and_(
                cls.approval_level.is_not(None),
                cls.approval_level.not_in([r.value for r in AuthorityRole]),
            ),
            and_(
                cls.committee_voting_status.is_not(None),
                cls.committee_voting_status != "",
                cls.committee_voting_status.not_in(
                    [s.value for s in CommitteeVotingStatus]
                ),
            ),
        )
