"""
ApprovalLevelResolver -- maps a requested amount to its approval tier.

Responsibility:
    Validates the requested amount, reads the active catalog and asks the
    pure ``select_tier`` engine which tier covers it.  Also answers the
    derived questions the workflow needs: is committee approval required,
    from which amount, and which tiers an application climbs.

Architecture position:
    Kernel > Services -- read-only orchestration over the catalog.

Invariants enforced:
    - Negative or non-numeric amounts are refused before any lookup.
    - First match in ascending ``min_amount`` order wins; the resolver
      never falls back to a default tier.
    - ``borrower_type`` is accepted and logged but does not change the
      result.

Failure modes:
    - InvalidAmountError: negative, float or non-numeric amount.
    - NoMatchingTierError: no active tier covers the amount.
    - ConfigurationError: propagated from the catalog.
"""

from __future__ import annotations

from decimal import Decimal

from approval_engines.tier_resolution import approval_ladder, select_tier
from approval_kernel.db.types import to_money
from approval_kernel.domain.tiers import ApprovalTier, TierResolution
from approval_kernel.exceptions import InvalidAmountError, NoMatchingTierError
from approval_kernel.logging_config import get_logger
from approval_kernel.services.tier_catalog import ApprovalTierCatalog

logger = get_logger("services.level_resolver")


def parse_amount(amount: Decimal | int | str) -> Decimal:
    """Decimal amount or InvalidAmountError."""
    try:
        value = to_money(amount)
    except ValueError:
        raise InvalidAmountError(amount) from None
    if value < 0:
        raise InvalidAmountError(amount)
    return value


class ApprovalLevelResolver:
    """Resolves amounts against the active tier catalog."""

    def __init__(self, catalog: ApprovalTierCatalog):
        self._catalog = catalog

    def resolve_tier(
        self,
        amount: Decimal | int | str,
        borrower_type: str | None = None,
    ) -> ApprovalTier:
        return self.resolve(amount, borrower_type).tier

    def resolve(
        self,
        amount: Decimal | int | str,
        borrower_type: str | None = None,
        tiers: tuple[ApprovalTier, ...] | None = None,
    ) -> TierResolution:
        """Resolve ``amount`` to its tier and committee requirement.

        Args:
            amount: Requested loan amount.
            borrower_type: Borrower classification; recorded only.
            tiers: Pre-read active tiers, to avoid reading the catalog
                twice inside one operation.
        """
        value = parse_amount(amount)
        active = tiers if tiers is not None else self._catalog.list_active_tiers()

        tier = select_tier(active, amount=value)
        if tier is None:
            logger.warning(
                "approval_tier_not_found",
                extra={"amount": str(value), "borrower_type": borrower_type},
            )
            raise NoMatchingTierError(value, borrower_type)

        resolution = TierResolution(
            tier=tier,
            amount=value,
            borrower_type=borrower_type,
            committee_required=tier.requires_committee_for(value),
        )
        logger.debug(
            "approval_tier_resolved",
            extra={
                "amount": str(value),
                "borrower_type": borrower_type,
                "tier_name": tier.name,
                "authority_role": tier.authority_role.value,
                "committee_required": resolution.committee_required,
            },
        )
        return resolution

    def is_committee_required(
        self,
        amount: Decimal | int | str,
        borrower_type: str | None = None,
    ) -> bool:
        return self.resolve(amount, borrower_type).committee_required

    def committee_threshold(
        self,
        amount: Decimal | int | str,
        borrower_type: str | None = None,
    ) -> Decimal | None:
        """Amount from which the resolved tier needs the committee, if ever."""
        tier = self.resolve(amount, borrower_type).tier
        if not tier.requires_committee_approval:
            return None
        return tier.committee_threshold or Decimal("0")

    def approval_ladder(
        self,
        amount: Decimal | int | str,
        borrower_type: str | None = None,
    ) -> tuple[ApprovalTier, ...]:
        """Tiers the application climbs, lowest first, ending at its tier."""
        active = self._catalog.list_active_tiers()
        target = self.resolve(amount, borrower_type, tiers=active).tier
        return approval_ladder(active, target)
