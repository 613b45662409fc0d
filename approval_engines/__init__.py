"""
Module: approval_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used by
    the approval kernel's services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain (and sibling engine modules).
    MUST NOT import approval_kernel services, selectors or models.

Invariants enforced:
    - Purity: engines never read the clock or the database.  Callers pass
      everything in.
    - Decimal-only arithmetic for amounts and vote weights.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from approval_engines.tier_resolution import select_tier, validate_catalog
    from approval_engines.committee_tally import compute_tally
    from approval_engines.workflow_rules import plan_action, progress_percent
    from approval_engines.stage_routing import page_for_status
"""

from approval_engines.committee_tally import compute_tally, decide
from approval_engines.stage_routing import (
    LOAN_FLOW_STAGES,
    PAGE_STATUS_MAPPING,
    PRIMARY_PAGE,
    UNMAPPED_PAGE,
    describe_stage,
    find_unmapped_statuses,
    page_for_status,
    pages_for_status,
    stage_info,
)
from approval_engines.tier_resolution import (
    CatalogValidation,
    approval_ladder,
    select_tier,
    validate_catalog,
)
from approval_engines.workflow_rules import (
    NextStep,
    ReconcilePlan,
    plan_action,
    plan_reconciliation,
    progress_percent,
)

__all__ = [
    "CatalogValidation",
    "LOAN_FLOW_STAGES",
    "NextStep",
    "PAGE_STATUS_MAPPING",
    "PRIMARY_PAGE",
    "ReconcilePlan",
    "UNMAPPED_PAGE",
    "approval_ladder",
    "compute_tally",
    "decide",
    "describe_stage",
    "find_unmapped_statuses",
    "page_for_status",
    "pages_for_status",
    "plan_action",
    "plan_reconciliation",
    "progress_percent",
    "select_tier",
    "stage_info",
    "validate_catalog",
]
