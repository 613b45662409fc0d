"""
Tests for CommitteeVotingEngine.

Covers weighted voting, the pending -> decided state machine with its
freeze on first resolution, per-caller summaries, chairperson finalize
and membership changes while a vote is open.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from approval_kernel.domain.committee import CommitteeRole, FinalDecision, VoteDecision
from approval_kernel.domain.status import ApplicationStatus, CommitteeVotingStatus
from approval_kernel.exceptions import (
    AlreadyDecidedError,
    DecisionStillPendingError,
    InvalidActionError,
    NotACommitteeMemberError,
    NotAuthorizedError,
    VotingClosedError,
)
from approval_kernel.models.committee import CommitteeMemberModel
from approval_kernel.selectors.application_selector import ApplicationSelector


def vote_all(committee, app_id, members, decisions):
    for user_id, decision in zip(members, decisions):
        committee.cast_vote(app_id, user_id, decision)


class TestCastVote:

    def test_majority_decides_and_freezes(
        self, committee, committee_members, committee_application,
    ):
        first = committee.cast_vote(committee_application, committee_members[0], "approve")
        assert first.details["final_decision"] == "pending"

        committee.cast_vote(committee_application, committee_members[1], "approve")
        third = committee.cast_vote(committee_application, committee_members[2], "reject")

        tally = third.details["tally"]
        assert tally.final_decision == FinalDecision.APPROVE
        assert tally.quorum_required == 3
        assert tally.quorum_met
        assert tally.approve_weight == Decimal("2")
        assert tally.reject_weight == Decimal("1")

        with pytest.raises(VotingClosedError) as exc_info:
            committee.cast_vote(committee_application, committee_members[3], "reject")
        frozen = exc_info.value.tally
        assert frozen.final_decision == FinalDecision.APPROVE
        assert frozen.approve_weight == Decimal("2")
        assert frozen.reject_weight == Decimal("1")
        assert len(committee.get_votes(committee_application)) == 3

    def test_repeat_vote_is_idempotent(
        self, committee, committee_members, committee_application,
    ):
        committee.cast_vote(committee_application, committee_members[0], "approve")
        result = committee.cast_vote(committee_application, committee_members[0], "approve")

        assert result.details["tally"].total_votes_cast == 1
        assert len(committee.get_votes(committee_application)) == 1

    def test_vote_can_change_while_pending(
        self, committee, committee_members, committee_application,
    ):
        committee.cast_vote(committee_application, committee_members[0], "approve")
        result = committee.cast_vote(
            committee_application, committee_members[0], VoteDecision.REJECT,
            comments="changed after site visit",
        )

        tally = result.details["tally"]
        assert tally.approve_count == 0
        assert tally.reject_count == 1
        votes = committee.get_votes(committee_application)
        assert votes[0].decision == VoteDecision.REJECT
        assert votes[0].comments == "changed after site visit"

    def test_abstentions_count_toward_quorum_only(
        self, committee, committee_members, committee_application,
    ):
        vote_all(
            committee, committee_application, committee_members,
            ["abstain", "abstain", "approve"],
        )
        summary = committee.get_voting_summary(committee_application, committee_members[0])
        assert summary.quorum_met
        assert summary.abstain_count == 2
        assert summary.final_decision == FinalDecision.APPROVE

    def test_tie_stays_pending(self, committee, committee_members, committee_application):
        vote_all(
            committee, committee_application, committee_members,
            ["approve", "reject", "abstain", "abstain"],
        )
        result = committee.cast_vote(committee_application, committee_members[4], "abstain")
        assert result.details["final_decision"] == "pending"

    def test_voting_not_open(
        self, committee, committee_members, standard_tiers, create_application,
        workflow, test_actor_id,
    ):
        app_id = create_application(amount=Decimal("7000000"))
        workflow.start_workflow(app_id, test_actor_id)
        with pytest.raises(VotingClosedError, match="not open"):
            committee.cast_vote(app_id, committee_members[0], "approve")

    def test_non_member_cannot_vote(self, committee, committee_members, committee_application):
        with pytest.raises(NotACommitteeMemberError):
            committee.cast_vote(committee_application, uuid4(), "approve")

    def test_invalid_decision(self, committee, committee_members, committee_application):
        with pytest.raises(InvalidActionError):
            committee.cast_vote(committee_application, committee_members[0], "maybe")

    def test_vote_is_logged(
        self, committee, committee_members, committee_application, captured_logs,
    ):
        committee.cast_vote(committee_application, committee_members[0], "approve")
        record = next(r for r in captured_logs() if r["message"] == "committee_vote_cast")
        assert record["application_id"] == str(committee_application)
        assert record["decision"] == "approve"
        assert record["weight"] == "1"


class TestWeightedVoting:

    def test_weight_outweighs_head_count(
        self, committee, committee_application, test_actor_id,
    ):
        chair = uuid4()
        committee.add_member(
            chair, test_actor_id, role=CommitteeRole.CHAIRPERSON, voting_weight=3,
        )
        others = [uuid4() for _ in range(4)]
        for user_id in others:
            committee.add_member(user_id, test_actor_id)

        committee.cast_vote(committee_application, chair, "approve")
        committee.cast_vote(committee_application, others[0], "reject")
        result = committee.cast_vote(committee_application, others[1], "reject")

        tally = result.details["tally"]
        assert tally.reject_count == 2
        assert tally.approve_weight == Decimal("3")
        assert tally.final_decision == FinalDecision.APPROVE

    def test_weight_is_copied_at_cast_time(
        self, committee, committee_members, committee_application, test_actor_id,
    ):
        committee.cast_vote(committee_application, committee_members[1], "approve")
        committee.add_member(committee_members[1], test_actor_id, voting_weight=5)

        vote = committee.get_votes(committee_application)[0]
        assert vote.weight == Decimal("1")


class TestMembership:

    def test_deactivated_member_votes_stop_counting(
        self, committee, committee_members, committee_application, test_actor_id,
    ):
        vote_all(committee, committee_application, committee_members, ["approve", "approve"])
        committee.deactivate_member(committee_members[0], test_actor_id)

        result = committee.cast_vote(committee_application, committee_members[2], "reject")
        tally = result.details["tally"]
        assert tally.total_members == 4
        assert tally.total_votes_cast == 2
        assert tally.final_decision == FinalDecision.PENDING

        result = committee.cast_vote(committee_application, committee_members[3], "reject")
        assert result.details["tally"].final_decision == FinalDecision.REJECT

    def test_deactivated_member_cannot_vote(
        self, committee, committee_members, committee_application, test_actor_id,
    ):
        committee.deactivate_member(committee_members[4], test_actor_id)
        with pytest.raises(NotACommitteeMemberError):
            committee.cast_vote(committee_application, committee_members[4], "approve")
        assert not committee.is_committee_member(committee_members[4])

    def test_add_member_reactivates_seat(self, committee, committee_members, test_actor_id):
        before = committee.deactivate_member(committee_members[2], test_actor_id)
        after = committee.add_member(
            committee_members[2], test_actor_id, role="secretary",
        )
        assert after.member_id == before.member_id
        assert after.is_active
        assert after.role == CommitteeRole.SECRETARY
        assert after.display_name == "Member 3"

    @pytest.mark.parametrize("weight", [0, -1, "0.0"])
    def test_weight_must_be_positive(self, committee, test_actor_id, weight):
        with pytest.raises(ValueError):
            committee.add_member(uuid4(), test_actor_id, voting_weight=weight)

    def test_deactivate_unknown_user(self, committee, test_actor_id):
        with pytest.raises(NotACommitteeMemberError):
            committee.deactivate_member(uuid4(), test_actor_id)

    def test_deactivation_can_resolve_an_open_vote(
        self, committee, committee_members, committee_application, test_actor_id, session,
    ):
        chair = committee_members[0]
        vote_all(committee, committee_application, committee_members[1:3], ["approve", "approve"])
        committee.deactivate_member(committee_members[3], test_actor_id)
        committee.deactivate_member(committee_members[4], test_actor_id)

        summary = committee.get_voting_summary(committee_application, chair)
        assert summary.total_members == 3
        assert summary.quorum_required == 2
        assert summary.final_decision == FinalDecision.APPROVE
        assert not summary.can_vote

        assert committee.pending_decisions() == []
        with pytest.raises(VotingClosedError):
            committee.cast_vote(committee_application, chair, "reject")

        result = committee.finalize(committee_application, chair)
        assert result.new_status == ApplicationStatus.APPROVED
        record = ApplicationSelector(session).get(committee_application)
        assert record.status == ApplicationStatus.APPROVED

    def test_finalize_recounts_against_current_members(
        self, committee, committee_members, committee_application, session,
    ):
        chair = committee_members[0]
        vote_all(committee, committee_application, committee_members[1:3], ["reject", "reject"])
        session.execute(
            update(CommitteeMemberModel)
            .where(CommitteeMemberModel.user_id.in_(committee_members[3:]))
            .values(is_active=False)
        )

        result = committee.finalize(committee_application, chair, reason="thin margins")
        assert result.details["final_decision"] == "reject"
        assert result.details["tally"].total_members == 3
        record = ApplicationSelector(session).get(committee_application)
        assert record.status == ApplicationStatus.REJECTED
        assert record.rejection_reason == "thin margins"

    def test_member_listing_and_roles(self, committee, committee_members, test_actor_id):
        assert len(committee.list_members()) == 5
        committee.deactivate_member(committee_members[4], test_actor_id)
        assert len(committee.list_members()) == 4
        assert len(committee.list_members(include_inactive=True)) == 5
        assert committee.is_chairperson(committee_members[0])
        assert not committee.is_chairperson(committee_members[1])


class TestVotingSummary:

    def test_before_any_vote(self, committee, committee_members, committee_application):
        summary = committee.get_voting_summary(committee_application, committee_members[0])
        assert summary.total_members == 5
        assert summary.quorum_required == 3
        assert summary.votes_remaining == 5
        assert summary.final_decision == FinalDecision.PENDING
        assert summary.is_member
        assert summary.can_vote
        assert not summary.has_voted

    def test_caller_view(self, committee, committee_members, committee_application):
        committee.cast_vote(
            committee_application, committee_members[0], "approve", comments="good file",
        )

        voter = committee.get_voting_summary(committee_application, committee_members[0])
        assert voter.has_voted
        assert voter.user_vote == VoteDecision.APPROVE
        assert voter.user_vote_comments == "good file"
        assert not voter.can_vote
        assert voter.votes_remaining == 4

        other = committee.get_voting_summary(committee_application, committee_members[1])
        assert not other.has_voted
        assert other.user_vote is None
        assert other.can_vote

    def test_outsider_is_not_a_member(
        self, committee, committee_members, committee_application,
    ):
        summary = committee.get_voting_summary(committee_application, uuid4())
        assert not summary.is_member
        assert not summary.has_voted

    def test_decided_summary_is_frozen(
        self, committee, committee_members, committee_application, test_actor_id,
    ):
        vote_all(
            committee, committee_application, committee_members,
            ["reject", "reject", "reject"],
        )
        committee.deactivate_member(committee_members[0], test_actor_id)

        summary = committee.get_voting_summary(committee_application, committee_members[4])
        assert summary.final_decision == FinalDecision.REJECT
        assert summary.total_members == 5
        assert summary.reject_count == 3
        assert not summary.can_vote
        assert not summary.is_finalized


class TestFinalize:

    def test_approval_is_handed_to_workflow(
        self, committee, committee_members, committee_application, session,
    ):
        vote_all(
            committee, committee_application, committee_members,
            ["approve", "approve", "approve"],
        )
        chair = committee_members[0]
        result = committee.finalize(committee_application, chair, reason="strong cash flow")

        assert result.new_status == ApplicationStatus.APPROVED
        assert result.previous_status == ApplicationStatus.PENDING_COMMITTEE_REVIEW
        record = ApplicationSelector(session).get(committee_application)
        assert record.status == ApplicationStatus.APPROVED
        assert record.approved_by == chair
        assert record.committee_voting_status == CommitteeVotingStatus.VOTING_COMPLETE

        summary = committee.get_voting_summary(committee_application, chair)
        assert summary.is_finalized

    def test_rejection_is_handed_to_workflow(
        self, committee, committee_members, committee_application, session,
    ):
        vote_all(
            committee, committee_application, committee_members,
            ["reject", "approve", "reject"],
        )
        result = committee.finalize(
            committee_application, committee_members[0], reason="weak collateral",
        )
        assert result.new_status == ApplicationStatus.REJECTED
        record = ApplicationSelector(session).get(committee_application)
        assert record.rejection_reason == "weak collateral"

    def test_only_chairperson_finalizes(
        self, committee, committee_members, committee_application,
    ):
        vote_all(
            committee, committee_application, committee_members,
            ["approve", "approve", "approve"],
        )
        with pytest.raises(NotAuthorizedError):
            committee.finalize(committee_application, committee_members[1])

    def test_pending_decision_cannot_be_finalized(
        self, committee, committee_members, committee_application,
    ):
        committee.cast_vote(committee_application, committee_members[1], "approve")
        with pytest.raises(DecisionStillPendingError) as exc_info:
            committee.finalize(committee_application, committee_members[0])
        assert exc_info.value.tally.total_votes_cast == 1

    def test_nothing_to_finalize_before_votes(
        self, committee, committee_members, committee_application,
    ):
        with pytest.raises(DecisionStillPendingError):
            committee.finalize(committee_application, committee_members[0])

    def test_second_finalize_is_refused(
        self, committee, committee_members, committee_application,
    ):
        vote_all(
            committee, committee_application, committee_members,
            ["approve", "approve", "approve"],
        )
        committee.finalize(committee_application, committee_members[0])
        with pytest.raises(AlreadyDecidedError):
            committee.finalize(committee_application, committee_members[0])

    def test_votes_after_finalize_are_refused(
        self, committee, committee_members, committee_application,
    ):
        vote_all(
            committee, committee_application, committee_members,
            ["approve", "approve", "approve"],
        )
        committee.finalize(committee_application, committee_members[0])
        with pytest.raises(VotingClosedError):
            committee.cast_vote(committee_application, committee_members[4], "reject")


class TestDecisionQueues:

    def test_pending_and_completed(
        self, committee, committee_members, committee_application,
        standard_tiers, create_application, workflow, test_actor_id,
    ):
        other = create_application(amount=Decimal("20000000"))
        workflow.start_workflow(other, test_actor_id)
        workflow.process_approval_action(other, "approve", uuid4())
        workflow.process_approval_action(other, "approve", uuid4())

        committee.cast_vote(other, committee_members[0], "approve")
        vote_all(
            committee, committee_application, committee_members,
            ["reject", "reject", "reject"],
        )

        pending = committee.pending_decisions()
        completed = committee.completed_decisions()
        assert [d.tally.application_id for d in pending] == [other]
        assert [d.tally.application_id for d in completed] == [committee_application]
        assert completed[0].tally.final_decision == FinalDecision.REJECT
