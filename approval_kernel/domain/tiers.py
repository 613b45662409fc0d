"""
Approval tier value objects (``approval_kernel.domain.tiers``).

Responsibility
--------------
Immutable snapshot of one configured approval tier: an amount band, the
authority that decides inside it, and whether committee approval applies.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from approval_kernel.domain.status import (
    AUTHORITY_PENDING_STATUS,
    AUTHORITY_RANK,
    ApplicationStatus,
    AuthorityRole,
)


@dataclass(frozen=True)
class ApprovalTier:
    """One configured approval band.

    The band is half-open ``[min_amount, max_amount)``; ``max_amount=None``
    means unbounded.  ``committee_threshold`` narrows the committee
    requirement to amounts at or above it.
    """

    tier_id: UUID
    name: str
    min_amount: Decimal
    max_amount: Decimal | None
    authority_role: AuthorityRole
    requires_committee_approval: bool = False
    committee_threshold: Decimal | None = None
    is_active: bool = True
    version: int = 1

    @property
    def pending_status(self) -> ApplicationStatus:
        """Status an application holds while waiting on this tier."""
        return AUTHORITY_PENDING_STATUS[self.authority_role]

    @property
    def rank(self) -> int:
        return AUTHORITY_RANK[self.authority_role]

    @property
    def is_unbounded(self) -> bool:
        return self.max_amount is None

    def requires_committee_for(self, amount: Decimal) -> bool:
        """Committee is required when flagged and the amount reaches the threshold."""
        if not self.requires_committee_approval:
            return False
        threshold = self.committee_threshold or Decimal("0")
        return amount >= threshold


@dataclass(frozen=True)
class TierResolution:
    """Outcome of resolving an amount against the active catalog."""

    tier: ApprovalTier
    amount: Decimal
    borrower_type: str | None
    committee_required: bool
