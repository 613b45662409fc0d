"""
Module: approval_kernel.models.tier
Responsibility: ORM persistence for approval tiers (the amount-band catalog).

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - authority_role is limited to the four authority levels (check constraint).
    - min_amount is non-negative; committee_threshold, when set, is
      non-negative.
    - Band shape (max above min, no gaps, no ambiguous overlaps) is NOT
      enforced here; the catalog validates the active set lazily so that
      administrators can edit tiers one at a time.

Failure modes:
    - IntegrityError on duplicate tier name.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from approval_kernel.domain.tiers import ApprovalTier


class ApprovalTierModel(TrackedBase):
    """Persistent approval tier.

    ``version`` increases on every administrative edit so callers can tell
    which revision of a tier an application was routed under.
    """

    __tablename__ = "approval_tiers"

    __table_args__ = (
        CheckConstraint(
            "authority_role IN ('loan_officer', 'senior_officer', 'manager', 'committee')",
            name="ck_approval_tiers_authority_role",
        ),
        CheckConstraint("min_amount >= 0", name="ck_approval_tiers_min_non_negative"),
        CheckConstraint(
            "committee_threshold IS NULL OR committee_threshold >= 0",
            name="ck_approval_tiers_threshold_non_negative",
        ),
        Index("ix_approval_tiers_active_min", "is_active", "min_amount"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    min_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    authority_role: Mapped[str] = mapped_column(String(50), nullable=False)
    requires_committee_approval: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    committee_threshold: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<ApprovalTier {self.name} [{self.min_amount}, {self.max_amount}) "
            f"{self.authority_role} active={self.is_active}>"
        )

    def to_dto(self) -> ApprovalTier:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.status import AuthorityRole
        from approval_kernel.domain.tiers import ApprovalTier as ApprovalTierDTO

        return ApprovalTierDTO(
            tier_id=self.id,
            name=self.name,
            min_amount=self.min_amount,
            max_amount=self.max_amount,
            authority_role=AuthorityRole(self.authority_role),
            requires_committee_approval=self.requires_committee_approval,
            committee_threshold=self.committee_threshold,
            is_active=self.is_active,
            version=self.version,
        )
