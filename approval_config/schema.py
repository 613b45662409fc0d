"""
Approval configuration schema.

Defines the human-authored, reviewable configuration for the approval
pipeline: the tier catalog to seed and the committee voting policy.  YAML
files are parsed into these types by the loader; ``get_active_config``
returns the validated result.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import NAMESPACE_URL, UUID, uuid5

from approval_kernel.domain.committee import VotingPolicy
from approval_kernel.domain.status import AuthorityRole
from approval_kernel.domain.tiers import ApprovalTier

# Stable IDs for configured tiers before they reach the database.
_TIER_NAMESPACE = uuid5(NAMESPACE_URL, "approval-config/tiers")


@dataclass(frozen=True)
class TierDef:
    """One configured approval band."""

    name: str
    min_amount: Decimal
    max_amount: Decimal | None
    authority_role: AuthorityRole
    requires_committee_approval: bool = False
    committee_threshold: Decimal | None = None
    is_active: bool = True
    description: str | None = None

    @property
    def config_tier_id(self) -> UUID:
        return uuid5(_TIER_NAMESPACE, self.name)

    def to_tier(self) -> ApprovalTier:
        """Domain snapshot, for validating the configured catalog."""
        return ApprovalTier(
            tier_id=self.config_tier_id,
            name=self.name,
            min_amount=self.min_amount,
            max_amount=self.max_amount,
            authority_role=self.authority_role,
            requires_committee_approval=self.requires_committee_approval,
            committee_threshold=self.committee_threshold,
            is_active=self.is_active,
        )


@dataclass(frozen=True)
class VotingPolicyDef:
    """Committee quorum rule."""

    quorum_fraction: Decimal = Decimal("0.5")
    quorum_inclusive: bool = False

    def to_policy(self) -> VotingPolicy:
        return VotingPolicy(
            quorum_fraction=self.quorum_fraction,
            quorum_inclusive=self.quorum_inclusive,
        )


@dataclass(frozen=True)
class ApprovalConfig:
    """A complete, parsed approval configuration."""

    config_id: str
    version: int
    tiers: tuple[TierDef, ...]
    voting_policy: VotingPolicyDef
    description: str = ""
    checksum: str = ""
