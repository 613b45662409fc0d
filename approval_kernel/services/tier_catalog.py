"""
ApprovalTierCatalog -- the configured set of approval tiers.

Responsibility:
    Serves the active tier set, ordered by ``min_amount``, to the level
    resolver and the workflow engine, and carries the administrative
    operations (create, edit, deactivate, seed from configuration).

Architecture position:
    Kernel > Services -- imperative shell.
    Band checks are delegated to the pure
    ``approval_engines.tier_resolution.validate_catalog``.

Invariants enforced:
    - The active set is validated lazily, every time it is read: an empty
      set, a gap, an ambiguous overlap or a malformed band raises
      ``ConfigurationError`` instead of silently routing applications.
    - Administrative edits are NOT validated as a set, so a catalog can be
      reshaped one tier at a time; the next read reports the result.
    - Every edit bumps the tier's ``version``.
    - Flush-only: never commits.

Failure modes:
    - ConfigurationError: the active set is unusable.
    - TierNotFoundError: unknown tier ID.
    - ValueError: malformed administrative input (bad role, float amount,
      unknown field).
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import select

from approval_engines.tier_resolution import (
    committee_authority_tier,
    sort_tiers,
    validate_catalog,
)
from approval_kernel.db.types import to_money
from approval_kernel.domain.status import AuthorityRole
from approval_kernel.domain.tiers import ApprovalTier
from approval_kernel.exceptions import ConfigurationError, TierNotFoundError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.tier import ApprovalTierModel
from approval_kernel.services.base import BaseService

if TYPE_CHECKING:
    from approval_config.schema import ApprovalConfig

logger = get_logger("services.tier_catalog")

_EDITABLE_FIELDS = frozenset({
    "name",
    "description",
    "min_amount",
    "max_amount",
    "authority_role",
    "requires_committee_approval",
    "committee_threshold",
    "is_active",
})

_AMOUNT_FIELDS = frozenset({"min_amount", "max_amount", "committee_threshold"})


def _normalize_field(field_name: str, value: Any) -> Any:
    if field_name in _AMOUNT_FIELDS:
        return None if value is None else to_money(value)
    if field_name == "authority_role":
        return AuthorityRole(value).value
    return value


class ApprovalTierCatalog(BaseService[ApprovalTierModel]):
    """
    Service over the approval tier catalog.

    Contract:
        Reads return frozen ``ApprovalTier`` DTOs; ``list_active_tiers``
        guarantees a usable partition of the amount axis or raises.
        Mutations flush within the caller's transaction.
    """

    # =========================================================================
    # Reads
    # =========================================================================

    def list_active_tiers(self) -> tuple[ApprovalTier, ...]:
        """Active tiers ordered by min_amount ascending.

        Raises:
            ConfigurationError: if the active set is empty, has a gap or
                an ambiguous overlap, or contains a malformed band.
        """
        rows = self.session.execute(
            select(ApprovalTierModel).where(ApprovalTierModel.is_active.is_(True))
        ).scalars().all()
        tiers = sort_tiers([row.to_dto() for row in rows])

        result = validate_catalog(tiers)
        if result.warnings:
            logger.warning(
                "approval_tier_catalog_overlap",
                extra={"warnings": list(result.warnings)},
            )
        if not result.is_valid:
            logger.error(
                "approval_tier_catalog_invalid",
                extra={"errors": list(result.errors)},
            )
            raise ConfigurationError("; ".join(result.errors))
        return tiers

    def list_all_tiers(self) -> tuple[ApprovalTier, ...]:
        """Every tier, active or not, without validation."""
        rows = self.session.execute(select(ApprovalTierModel)).scalars().all()
        return sort_tiers([row.to_dto() for row in rows])

    def get_tier(self, tier_id: UUID) -> ApprovalTier:
        return self._get_model(tier_id).to_dto()

    def committee_tier(self) -> ApprovalTier | None:
        """The lowest active tier whose authority is the committee."""
        return committee_authority_tier(self.list_active_tiers())

    def _get_model(self, tier_id: UUID) -> ApprovalTierModel:
        model = self.session.get(ApprovalTierModel, tier_id)
        if model is None:
            raise TierNotFoundError(str(tier_id))
        return model

    def _find_by_name(self, name: str) -> ApprovalTierModel | None:
        return self.session.execute(
            select(ApprovalTierModel).where(ApprovalTierModel.name == name)
        ).scalar_one_or_none()

    # =========================================================================
    # Administration
    # =========================================================================

    def create_tier(
        self,
        name: str,
        min_amount: Decimal | int | str,
        max_amount: Decimal | int | str | None,
        authority_role: AuthorityRole | str,
        actor_id: UUID,
        requires_committee_approval: bool = False,
        committee_threshold: Decimal | int | str | None = None,
        description: str | None = None,
        is_active: bool = True,
    ) -> ApprovalTier:
        """Create a tier.

        The new tier is not checked against the rest of the catalog; the
        next ``list_active_tiers`` call does that.
        """
        model = ApprovalTierModel(
            name=name,
            description=description,
            min_amount=_normalize_field("min_amount", min_amount),
            max_amount=_normalize_field("max_amount", max_amount),
            authority_role=_normalize_field("authority_role", authority_role),
            requires_committee_approval=requires_committee_approval,
            committee_threshold=_normalize_field("committee_threshold", committee_threshold),
            is_active=is_active,
            version=1,
            created_by_id=actor_id,
        )
        self.session.add(model)
        self._flush("create approval tier")

        logger.info(
            "approval_tier_created",
            extra={
                "tier_id": str(model.id),
                "tier_name": name,
                "authority_role": model.authority_role,
                "min_amount": str(model.min_amount),
                "max_amount": str(model.max_amount) if model.max_amount is not None else None,
                "actor_id": str(actor_id),
            },
        )
        return model.to_dto()

    def update_tier(self, tier_id: UUID, actor_id: UUID, **changes: Any) -> ApprovalTier:
        """Apply field changes to a tier and bump its version.

        Raises:
            TierNotFoundError: unknown tier.
            ValueError: a field outside the editable set, or a bad value.
        """
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit tier fields: {sorted(unknown)}")

        model = self._get_model(tier_id)
        applied: dict[str, Any] = {}
        for field_name, value in changes.items():
            normalized = _normalize_field(field_name, value)
            if getattr(model, field_name) != normalized:
                setattr(model, field_name, normalized)
                applied[field_name] = normalized

        if not applied:
            return model.to_dto()

        model.version += 1
        model.updated_by_id = actor_id
        self._flush("update approval tier")

        logger.info(
            "approval_tier_updated",
            extra={
                "tier_id": str(tier_id),
                "fields": sorted(applied),
                "version": model.version,
                "actor_id": str(actor_id),
            },
        )
        return model.to_dto()

    def deactivate_tier(self, tier_id: UUID, actor_id: UUID) -> ApprovalTier:
        """Soft-delete a tier. Assignments keep pointing at it."""
        return self.update_tier(tier_id, actor_id, is_active=False)

    def seed_from_config(
        self, config: ApprovalConfig, actor_id: UUID,
    ) -> tuple[ApprovalTier, ...]:
        """Create or update tiers from configuration, matching by name.

        Re-running with an unchanged configuration changes nothing.
        """
        seeded: list[ApprovalTier] = []
        created = updated = 0
        for tier_def in config.tiers:
            fields = {
                "description": tier_def.description,
                "min_amount": tier_def.min_amount,
                "max_amount": tier_def.max_amount,
                "authority_role": tier_def.authority_role,
                "requires_committee_approval": tier_def.requires_committee_approval,
                "committee_threshold": tier_def.committee_threshold,
                "is_active": tier_def.is_active,
            }
            existing = self._find_by_name(tier_def.name)
            if existing is None:
                seeded.append(self.create_tier(name=tier_def.name, actor_id=actor_id, **fields))
                created += 1
                continue
            before = existing.version
            tier = self.update_tier(existing.id, actor_id, **fields)
            if tier.version != before:
                updated += 1
            seeded.append(tier)

        logger.info(
            "approval_tiers_seeded",
            extra={
                "config_id": config.config_id,
                "tiers_created": created,
                "tiers_updated": updated,
                "total": len(seeded),
            },
        )
        return sort_tiers(seeded)
