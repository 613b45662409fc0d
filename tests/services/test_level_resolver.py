"""
Tests for ApprovalLevelResolver against a stored catalog.
"""

from decimal import Decimal

import pytest

from approval_kernel.domain.status import AuthorityRole
from approval_kernel.exceptions import (
    ConfigurationError,
    InvalidAmountError,
    NoMatchingTierError,
    ValidationError,
)
from approval_kernel.services.level_resolver import parse_amount


class TestResolveTier:

    def test_seven_million_resolves_to_manager_with_committee(self, resolver, standard_tiers):
        tier = resolver.resolve_tier(Decimal("7000000"), "individual")
        assert tier == standard_tiers[AuthorityRole.MANAGER]
        assert tier.requires_committee_approval
        assert resolver.is_committee_required(7_000_000, "individual")

    def test_below_threshold_no_committee(self, resolver, standard_tiers):
        resolution = resolver.resolve("3000000", "group")
        assert resolution.tier.authority_role == AuthorityRole.MANAGER
        assert not resolution.committee_required
        assert resolution.borrower_type == "group"

    def test_threshold_is_inclusive(self, resolver, standard_tiers):
        assert resolver.is_committee_required("5000000")
        assert not resolver.is_committee_required("4999999.99")

    def test_band_boundaries(self, resolver, standard_tiers):
        assert resolver.resolve_tier(0).authority_role == AuthorityRole.LOAN_OFFICER
        assert resolver.resolve_tier("999999.99").authority_role == AuthorityRole.LOAN_OFFICER
        assert resolver.resolve_tier(1_000_000).authority_role == AuthorityRole.MANAGER
        assert resolver.resolve_tier(10_000_000).authority_role == AuthorityRole.COMMITTEE

    def test_borrower_type_does_not_change_the_tier(self, resolver, standard_tiers):
        assert resolver.resolve_tier(700, "individual") == resolver.resolve_tier(700, "sme")
        assert resolver.resolve_tier(700, None) == resolver.resolve_tier(700, "sme")

    def test_negative_amount_rejected_before_lookup(self, resolver):
        # no tiers exist: a catalog read would raise ConfigurationError
        with pytest.raises(InvalidAmountError) as exc_info:
            resolver.resolve_tier(-5, "individual")
        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.amount == "-5"

    @pytest.mark.parametrize("amount", [1.5, "abc", "NaN", "Infinity"])
    def test_malformed_amounts(self, resolver, amount):
        with pytest.raises(InvalidAmountError):
            resolver.resolve_tier(amount)

    def test_above_ceiling_is_no_matching_tier(self, resolver, catalog, test_actor_id, captured_logs):
        catalog.create_tier("Officer", 0, 1_000_000, AuthorityRole.LOAN_OFFICER, test_actor_id)
        catalog.create_tier("Manager", 1_000_000, 10_000_000, AuthorityRole.MANAGER, test_actor_id)

        assert resolver.resolve_tier(10_000_000).name == "Manager"
        with pytest.raises(NoMatchingTierError) as exc_info:
            resolver.resolve_tier("10000000.01", "individual")
        assert exc_info.value.borrower_type == "individual"
        assert any(r["message"] == "approval_tier_not_found" for r in captured_logs())

    def test_broken_catalog_propagates(self, resolver):
        with pytest.raises(ConfigurationError):
            resolver.resolve_tier(100)


class TestDerivedAnswers:

    def test_committee_threshold(self, resolver, standard_tiers):
        assert resolver.committee_threshold(100) is None
        assert resolver.committee_threshold(2_000_000) == Decimal("5000000")
        assert resolver.committee_threshold(20_000_000) == Decimal("0")

    def test_approval_ladder(self, resolver, standard_tiers):
        ladder = resolver.approval_ladder(20_000_000)
        assert [t.authority_role for t in ladder] == [
            AuthorityRole.LOAN_OFFICER, AuthorityRole.MANAGER, AuthorityRole.COMMITTEE,
        ]
        assert len(resolver.approval_ladder(100)) == 1


class TestParseAmount:

    def test_accepts_integers_strings_and_decimals(self):
        assert parse_amount(5) == Decimal("5")
        assert parse_amount("5.25") == Decimal("5.25")
        assert parse_amount(Decimal("0")) == Decimal("0")
