"""Services for the approval kernel (write side)."""

from approval_kernel.services.committee_service import CommitteeVotingEngine
from approval_kernel.services.level_resolver import ApprovalLevelResolver
from approval_kernel.services.stage_router import StageRouter
from approval_kernel.services.tier_catalog import ApprovalTierCatalog
from approval_kernel.services.workflow_service import ApprovalWorkflowEngine

__all__ = [
    "ApprovalLevelResolver",
    "ApprovalTierCatalog",
    "ApprovalWorkflowEngine",
    "CommitteeVotingEngine",
    "StageRouter",
]
