"""
approval_config -- single public entrypoint for approval configuration.

Responsibility:
    Provides the way to obtain the approval configuration at runtime
    through ``get_active_config()``: the tier catalog to seed and the
    committee voting policy.

Architecture position:
    Configuration -- YAML-driven, validated on load.  Sits above
    ``approval_kernel`` and ``approval_engines``; the kernel never imports
    from here.

Invariants enforced:
    - Single entrypoint: runtime config flows through ``get_active_config()``.
    - A configuration with validation errors is never returned.
    - Deterministic: the same YAML always produces the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` -- a required key is missing.
    - ``ValueError`` -- malformed values or validation errors.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``approval_config_loaded`` log entry with the config_id, version and
    checksum, tying tier seeding back to an exact configuration.
"""

from __future__ import annotations

import logging
from pathlib import Path

from approval_config.loader import load_config, validate_config
from approval_config.schema import ApprovalConfig, TierDef, VotingPolicyDef

_logger = logging.getLogger("approval_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> ApprovalConfig:
    """Load, validate and return the approval configuration.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``approval_config/sets/default.yaml``.

    Raises:
        FileNotFoundError: if the file does not exist.
        KeyError: if a required key is missing.
        ValueError: if a value is malformed or validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = load_config(path)

    validation = validate_config(config)
    for warning in validation.warnings:
        _logger.warning(
            "approval_config_warning",
            extra={"config_id": config.config_id, "warning": warning},
        )
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )

    _logger.info(
        "approval_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "tier_count": len(config.tiers),
            "config_path": str(path),
        },
    )
    return config


__all__ = [
    "ApprovalConfig",
    "TierDef",
    "VotingPolicyDef",
    "get_active_config",
]
