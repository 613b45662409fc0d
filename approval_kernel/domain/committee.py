"""
Committee voting value objects (``approval_kernel.domain.committee``).

Responsibility
--------------
Pure value objects for weighted committee voting: member snapshots, cast
votes, the quorum policy, the computed tally and the per-caller summary.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* A tally's ``final_decision`` is ``pending`` until quorum is met and one
  side's weight strictly exceeds the other's.
* ``VotingPolicy.quorum_for`` never returns less than 1 or more than the
  member count (for a non-empty committee).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class CommitteeRole(str, Enum):
    CHAIRPERSON = "chairperson"
    SECRETARY = "secretary"
    MEMBER = "member"


class VoteDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    ABSTAIN = "abstain"


class FinalDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    PENDING = "pending"


@dataclass(frozen=True)
class CommitteeMemberRecord:
    """Snapshot of a committee member."""

    member_id: UUID
    user_id: UUID
    role: CommitteeRole
    voting_weight: Decimal
    is_active: bool = True
    display_name: str | None = None


@dataclass(frozen=True)
class VoteRecord:
    """One member's vote on one application. Weight is copied at cast time."""

    vote_id: UUID
    application_id: UUID
    member_id: UUID
    decision: VoteDecision
    weight: Decimal
    comments: str | None = None
    cast_at: datetime | None = None


@dataclass(frozen=True)
class VotingPolicy:
    """Quorum rule.

    Strict mode (default) requires more than ``quorum_fraction`` of the
    members: ``floor(n * f) + 1``.  Inclusive mode requires at least that
    share: ``ceil(n * f)``.
    """

    quorum_fraction: Decimal = Decimal("0.5")
    quorum_inclusive: bool = False

    def quorum_for(self, total_members: int) -> int:
        if total_members <= 0:
            return 1
        share = Decimal(total_members) * self.quorum_fraction
        if self.quorum_inclusive:
            required = math.ceil(share)
        else:
            required = math.floor(share) + 1
        return max(1, min(required, total_members))


@dataclass(frozen=True)
class CommitteeTally:
    """Aggregated votes for one application."""

    application_id: UUID
    total_members: int
    quorum_required: int
    total_votes_cast: int = 0
    approve_count: int = 0
    reject_count: int = 0
    abstain_count: int = 0
    approve_weight: Decimal = Decimal("0")
    reject_weight: Decimal = Decimal("0")
    abstain_weight: Decimal = Decimal("0")
    quorum_met: bool = False
    final_decision: FinalDecision = FinalDecision.PENDING

    @property
    def votes_remaining(self) -> int:
        return max(self.total_members - self.total_votes_cast, 0)

    @property
    def is_decided(self) -> bool:
        return self.final_decision != FinalDecision.PENDING


@dataclass(frozen=True)
class CommitteeDecisionRecord:
    """Persisted tally plus the chairperson's finalize stamp."""

    tally: CommitteeTally
    version: int
    decided_by: UUID | None = None
    decided_at: datetime | None = None
    decision_reason: str | None = None

    @property
    def is_finalized(self) -> bool:
        return self.decided_at is not None


@dataclass(frozen=True)
class VotingSummary:
    """What one caller sees about an application's committee vote."""

    application_id: UUID
    total_members: int
    total_votes_cast: int
    approve_count: int
    reject_count: int
    abstain_count: int
    approve_weight: Decimal
    reject_weight: Decimal
    quorum_met: bool
    quorum_required: int
    final_decision: FinalDecision
    votes_remaining: int
    has_voted: bool
    user_vote: VoteDecision | None
    user_vote_comments: str | None
    is_member: bool
    can_vote: bool
    is_finalized: bool = False
