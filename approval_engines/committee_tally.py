"""
approval_engines.committee_tally -- Pure weighted committee vote tally.

Responsibility:
    Aggregate the votes cast on one application into a ``CommitteeTally``:
    per-decision counts and weight sums, quorum, and the weighted-majority
    decision.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types.

Invariants enforced:
    - Only votes from currently active members are counted; votes from
      deactivated members stay in history but drop out of the tally.
    - ``quorum_met = total_votes_cast >= quorum_required`` where the quorum
      is derived from the current active member count.
    - Abstentions count toward quorum, never toward either side.
    - Once quorum is met, strictly greater approve weight approves and
      strictly greater reject weight rejects; ties stay pending.
    - Deterministic: identical inputs always produce identical tallies.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from approval_engines.tracer import traced_engine
from approval_kernel.domain.committee import (
    CommitteeTally,
    FinalDecision,
    VoteDecision,
    VoteRecord,
    VotingPolicy,
)

ZERO = Decimal("0")


def decide(
    quorum_met: bool, approve_weight: Decimal, reject_weight: Decimal,
) -> FinalDecision:
    """Weighted-majority rule gated on quorum."""
    if not quorum_met:
        return FinalDecision.PENDING
    if approve_weight > reject_weight:
        return FinalDecision.APPROVE
    if reject_weight > approve_weight:
        return FinalDecision.REJECT
    return FinalDecision.PENDING


@traced_engine(
    "committee_tally", "1.0",
    fingerprint_fields=("application_id", "total_members"),
)
def compute_tally(
    *,
    application_id: UUID,
    votes: Iterable[VoteRecord],
    active_member_ids: Iterable[UUID],
    policy: VotingPolicy,
    total_members: int | None = None,
) -> CommitteeTally:
    """Build a tally from the current votes.

    Args:
        application_id: Application being voted on.
        votes: Every stored vote for the application.
        active_member_ids: IDs of members who are active right now.
        policy: Quorum rule.
        total_members: Override for the member count (defaults to the
            number of active member IDs).
    """
    active = set(active_member_ids)
    members = len(active) if total_members is None else total_members

    counts = {decision: 0 for decision in VoteDecision}
    weights = {decision: ZERO for decision in VoteDecision}
    for vote in votes:
        if vote.member_id not in active:
            continue
        counts[vote.decision] += 1
        weights[vote.decision] += vote.weight

    cast = sum(counts.values())
    quorum_required = policy.quorum_for(members)
    quorum_met = members > 0 and cast >= quorum_required

    return CommitteeTally(
        application_id=application_id,
        total_members=members,
        quorum_required=quorum_required,
        total_votes_cast=cast,
        approve_count=counts[VoteDecision.APPROVE],
        reject_count=counts[VoteDecision.REJECT],
        abstain_count=counts[VoteDecision.ABSTAIN],
        approve_weight=weights[VoteDecision.APPROVE],
        reject_weight=weights[VoteDecision.REJECT],
        abstain_weight=weights[VoteDecision.ABSTAIN],
        quorum_met=quorum_met,
        final_decision=decide(
            quorum_met,
            weights[VoteDecision.APPROVE],
            weights[VoteDecision.REJECT],
        ),
    )
