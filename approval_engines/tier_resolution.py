"""
approval_engines.tier_resolution -- Pure tier catalog validation and selection.

Responsibility:
    Decide which approval tier covers a requested amount, check that the
    active catalog partitions the amount axis, and derive the ladder of
    tiers an application climbs on its way to its target tier.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types and exceptions.

Invariants enforced:
    - Deterministic ordering: tiers are sorted by ``min_amount`` ascending
      (name as a secondary key) before any scan; first match wins.
    - Half-open bands ``[min, max)``.  The highest tier, when bounded, is
      closed at its ceiling so every amount in ``[0, ceiling]`` resolves.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - ``validate_catalog`` reports errors (empty set, gap, ambiguous
      overlap, malformed band) and warnings (partial overlap); it never
      raises.  The catalog service turns errors into ``ConfigurationError``.
    - ``select_tier`` returns None when nothing covers the amount.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from approval_engines.tracer import traced_engine
from approval_kernel.domain.status import AuthorityRole
from approval_kernel.domain.tiers import ApprovalTier

ZERO = Decimal("0")


@dataclass(frozen=True)
class CatalogValidation:
    """Result of checking an active tier set."""

    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


def sort_tiers(tiers: Sequence[ApprovalTier]) -> tuple[ApprovalTier, ...]:
    """Order tiers by min_amount ascending, name as tie-break."""
    return tuple(sorted(tiers, key=lambda t: (t.min_amount, t.name)))


def catalog_ceiling(tiers: Sequence[ApprovalTier]) -> Decimal | None:
    """Highest covered amount, or None when the top tier is unbounded."""
    ordered = sort_tiers(tiers)
    if not ordered or any(t.max_amount is None for t in ordered):
        return None
    return max(t.max_amount for t in ordered)  # type: ignore[type-var]


def validate_catalog(tiers: Sequence[ApprovalTier]) -> CatalogValidation:
    """Check that active tiers partition [0, ceiling] without gaps.

    Errors:
        - no tiers at all
        - negative minimum, or max <= min
        - two tiers starting at the same amount (ambiguous)
        - an unbounded tier that is not the highest
        - the lowest tier not starting at 0, or a gap between bands

    Warnings:
        - partial overlap between consecutive bands (resolved by the
          first-match tie-break)
    """
    errors: list[str] = []
    warnings: list[str] = []

    ordered = sort_tiers(tiers)
    if not ordered:
        return CatalogValidation(errors=("no active approval tiers",))

    for tier in ordered:
        if tier.min_amount < ZERO:
            errors.append(f"tier {tier.name!r} has negative min_amount {tier.min_amount}")
        if tier.max_amount is not None and tier.max_amount <= tier.min_amount:
            errors.append(
                f"tier {tier.name!r} has max_amount {tier.max_amount} "
                f"not above min_amount {tier.min_amount}"
            )

    for prev, curr in zip(ordered, ordered[1:]):
        if prev.min_amount == curr.min_amount:
            errors.append(
                f"tiers {prev.name!r} and {curr.name!r} both start at "
                f"{curr.min_amount} (ambiguous)"
            )
            continue
        if prev.max_amount is None:
            errors.append(
                f"unbounded tier {prev.name!r} is followed by {curr.name!r}"
            )
            continue
        if prev.max_amount < curr.min_amount:
            errors.append(
                f"gap between {prev.name!r} (max {prev.max_amount}) and "
                f"{curr.name!r} (min {curr.min_amount})"
            )
        elif prev.max_amount > curr.min_amount:
            warnings.append(
                f"tiers {prev.name!r} and {curr.name!r} overlap on "
                f"[{curr.min_amount}, {prev.max_amount})"
            )

    if ordered[0].min_amount != ZERO:
        errors.append(
            f"lowest tier {ordered[0].name!r} starts at {ordered[0].min_amount}, not 0"
        )

    return CatalogValidation(errors=tuple(errors), warnings=tuple(warnings))


def tier_covers(tier: ApprovalTier, amount: Decimal, closed_at_max: bool = False) -> bool:
    """True when ``amount`` falls inside the tier's band."""
    if amount < tier.min_amount:
        return False
    if tier.max_amount is None:
        return True
    if closed_at_max:
        return amount <= tier.max_amount
    return amount < tier.max_amount


@traced_engine("tier_resolution", "1.0", fingerprint_fields=("amount",))
def select_tier(
    tiers: Sequence[ApprovalTier],
    amount: Decimal,
) -> ApprovalTier | None:
    """Return the first tier (ascending min_amount) that covers ``amount``."""
    ordered = sort_tiers(tiers)
    last = len(ordered) - 1
    for index, tier in enumerate(ordered):
        if tier_covers(tier, amount, closed_at_max=(index == last)):
            return tier
    return None


def approval_ladder(
    tiers: Sequence[ApprovalTier],
    target: ApprovalTier,
) -> tuple[ApprovalTier, ...]:
    """Tiers an application passes through, lowest first, ending at ``target``.

    Consecutive tiers that share an authority role collapse into the first
    one; the target itself is always the last rung.
    """
    ordered = sort_tiers(tiers)
    rungs: list[ApprovalTier] = []
    for tier in ordered:
        if tier.tier_id == target.tier_id:
            break
        if tier.min_amount > target.min_amount:
            break
        if tier.rank >= target.rank:
            continue
        if rungs and rungs[-1].authority_role == tier.authority_role:
            continue
        rungs.append(tier)
    rungs.append(target)
    return tuple(rungs)


def next_rung(
    ladder: Sequence[ApprovalTier],
    current: ApprovalTier,
) -> ApprovalTier | None:
    """The rung above ``current`` on the ladder, or None at the top."""
    for index, tier in enumerate(ladder):
        if tier.tier_id == current.tier_id:
            return ladder[index + 1] if index + 1 < len(ladder) else None
    # current is not on the ladder: climb to the first rung of higher rank
    for tier in ladder:
        if tier.rank > current.rank:
            return tier
    return None


def committee_authority_tier(tiers: Sequence[ApprovalTier]) -> ApprovalTier | None:
    """The lowest active tier whose authority is the committee."""
    for tier in sort_tiers(tiers):
        if tier.authority_role == AuthorityRole.COMMITTEE:
            return tier
    return None
