"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads an approval configuration YAML file, parses it into the frozen
``approval_config.schema`` dataclasses and validates the result.  The
runtime entry point is ``approval_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required keys have no silent defaults.
* Amounts are Decimals.  YAML floats are refused; write amounts as
  integers or quoted strings.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Bad values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import ApprovalConfig, TierDef, VotingPolicyDef
from approval_engines.tier_resolution import validate_catalog
from approval_kernel.db.types import to_money
from approval_kernel.domain.status import AuthorityRole


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_amount(value: Any, field_name: str) -> Decimal:
    try:
        return to_money(value)
    except ValueError as exc:
        raise ValueError(f"{field_name}: {exc}") from None


def parse_optional_amount(value: Any, field_name: str) -> Decimal | None:
    if value is None:
        return None
    return parse_amount(value, field_name)


def parse_tier(data: dict[str, Any]) -> TierDef:
    """
    Parse a ``TierDef`` from a dict.

    Required keys: ``name``, ``min_amount``, ``authority_role``.  A missing
    or null ``max_amount`` means the band is unbounded.

    Raises:
        KeyError: if required keys are missing.
        ValueError: on an unknown authority role or a bad amount.
    """
    name = data["name"]
    try:
        role = AuthorityRole(data["authority_role"])
    except ValueError:
        raise ValueError(
            f"tier {name!r}: unknown authority_role {data['authority_role']!r}"
        ) from None

    return TierDef(
        name=name,
        min_amount=parse_amount(data["min_amount"], f"tier {name!r} min_amount"),
        max_amount=parse_optional_amount(data.get("max_amount"), f"tier {name!r} max_amount"),
        authority_role=role,
        requires_committee_approval=bool(data.get("requires_committee_approval", False)),
        committee_threshold=parse_optional_amount(
            data.get("committee_threshold"), f"tier {name!r} committee_threshold",
        ),
        is_active=bool(data.get("is_active", True)),
        description=data.get("description"),
    )


def parse_voting_policy(data: dict[str, Any] | None) -> VotingPolicyDef:
    """Parse the committee voting policy; absent means simple majority."""
    if not data:
        return VotingPolicyDef()
    return VotingPolicyDef(
        quorum_fraction=parse_amount(data.get("quorum_fraction", "0.5"), "quorum_fraction"),
        quorum_inclusive=bool(data.get("quorum_inclusive", False)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any]) -> ApprovalConfig:
    """
    Parse a whole configuration document.

    Raises:
        KeyError: if ``config_id`` or ``tiers`` is missing.
        ValueError: on malformed values.
    """
    tiers_raw = data["tiers"]
    if not isinstance(tiers_raw, list):
        raise ValueError("tiers must be a list")
    return ApprovalConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        description=data.get("description", ""),
        tiers=tuple(parse_tier(t) for t in tiers_raw),
        voting_policy=parse_voting_policy(data.get("voting_policy")),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> ApprovalConfig:
    return parse_config(load_yaml_file(path))


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty; warnings should be
    reviewed but do not block loading.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0


def validate_config(config: ApprovalConfig) -> ConfigValidationResult:
    """Check tier names, the active bands and the voting policy."""
    result = ConfigValidationResult()

    seen: set[str] = set()
    for tier in config.tiers:
        if tier.name in seen:
            result.errors.append(f"duplicate tier name {tier.name!r}")
        seen.add(tier.name)
        if tier.committee_threshold is not None and not tier.requires_committee_approval:
            result.warnings.append(
                f"tier {tier.name!r} sets committee_threshold without "
                f"requires_committee_approval"
            )

    catalog = validate_catalog([t.to_tier() for t in config.tiers if t.is_active])
    result.errors.extend(catalog.errors)
    result.warnings.extend(catalog.warnings)

    fraction = config.voting_policy.quorum_fraction
    if not Decimal("0") < fraction <= Decimal("1"):
        result.errors.append(f"quorum_fraction must be in (0, 1], got {fraction}")

    return result
