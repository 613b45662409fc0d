"""ORM models for the approval kernel."""

from approval_kernel.models.application import LoanApplicationModel
from approval_kernel.models.committee import (
    CommitteeDecisionModel,
    CommitteeMemberModel,
    CommitteeVoteModel,
)
from approval_kernel.models.tier import ApprovalTierModel
from approval_kernel.models.workflow import (
    ApprovalAssignmentModel,
    ApprovalHistoryModel,
)

__all__ = [
    "ApprovalAssignmentModel",
    "ApprovalHistoryModel",
    "ApprovalTierModel",
    "CommitteeDecisionModel",
    "CommitteeMemberModel",
    "CommitteeVoteModel",
    "LoanApplicationModel",
]
