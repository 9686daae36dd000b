"""
Tests for the operation catalog and plan tier policies.

Includes Hypothesis properties for the monthly refresh arithmetic.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from devclip.exceptions import ValidationError
from devclip.models.api import AIOperation, FormatOperation, HandlerCategory, PlanTier
from devclip.models.domain import OperationDefinition, TierPolicy
from devclip.services.catalog import CODE_FORMAT_OPERATION, OperationCatalog, default_catalog
from devclip.services.plans import PlanPolicies, compute_monthly_refresh, plan_policies


class TestOperationCatalog:
    """Tests for cost lookup."""

    @pytest.mark.parametrize("operation", [op.value for op in FormatOperation])
    def test_format_operations_cost_one_local_credit(self, operation):
        definition = default_catalog.lookup(operation)

        assert definition.cost == 1
        assert definition.category == HandlerCategory.LOCAL

    def test_code_format_is_local(self):
        assert default_catalog.lookup(CODE_FORMAT_OPERATION).category == HandlerCategory.LOCAL

    @pytest.mark.parametrize(
        "operation,cost",
        [(AIOperation.EXPLAIN, 1), (AIOperation.SUMMARIZE, 1), (AIOperation.REFACTOR, 2)],
    )
    def test_ai_costs(self, operation, cost):
        definition = default_catalog.lookup(operation.value)

        assert definition.cost == cost
        assert definition.category == HandlerCategory.AI

    def test_unknown_operation_is_validation_error(self):
        with pytest.raises(ValidationError, match="Unknown operation: translate"):
            default_catalog.lookup("translate")

    def test_lookup_is_pure(self):
        assert default_catalog.lookup("json") is default_catalog.lookup("json")

    def test_duplicate_operation_rejected(self):
        definition = OperationDefinition("json", 1, HandlerCategory.LOCAL)
        with pytest.raises(ValueError, match="Duplicate operation"):
            OperationCatalog([definition, definition])

    def test_non_positive_cost_rejected(self):
        with pytest.raises(ValueError):
            OperationDefinition("free", 0, HandlerCategory.LOCAL)

    def test_names(self):
        assert set(default_catalog.names()) == (
            {op.value for op in FormatOperation}
            | {op.value for op in AIOperation}
            | {CODE_FORMAT_OPERATION}
        )


class TestPlanPolicies:
    """Tests for tier policy lookup."""

    @pytest.mark.parametrize(
        "tier,allocation,cap,model",
        [
            (PlanTier.FREE, 50, 0, "gpt-5-nano"),
            (PlanTier.PRO, 5000, 10000, "gpt-5-mini"),
            (PlanTier.TEAM, 25000, 50000, "gpt-5"),
        ],
    )
    def test_default_policies(self, tier, allocation, cap, model):
        policy = plan_policies.get(tier)

        assert policy.monthly_allocation == allocation
        assert policy.carryover_cap == cap
        assert policy.model == model

    def test_key_limits(self):
        assert plan_policies.get("free").max_api_keys == 0
        assert plan_policies.get("pro").max_api_keys == 3
        assert plan_policies.get("team").max_api_keys is None

    def test_tier_ordering(self):
        assert plan_policies.meets(PlanTier.TEAM, PlanTier.PRO)
        assert plan_policies.meets(PlanTier.PRO, PlanTier.PRO)
        assert not plan_policies.meets(PlanTier.FREE, PlanTier.PRO)
        assert plan_policies.meets(PlanTier.FREE, None)

    def test_missing_tier_rejected(self):
        with pytest.raises(ValueError, match="Missing tier policies"):
            PlanPolicies([plan_policies.get(PlanTier.FREE)])

    def test_models_cover_every_tier(self):
        assert set(plan_policies.models()) == set(PlanTier)


class TestMonthlyRefresh:
    """Tests for the monthly refresh arithmetic."""

    def test_carryover_capped(self):
        policy = plan_policies.get(PlanTier.PRO)
        amounts = compute_monthly_refresh(12000, policy)

        assert amounts.carryover == 10000
        assert amounts.new_balance == 15000

    def test_free_tier_has_no_carryover(self):
        amounts = compute_monthly_refresh(30, plan_policies.get(PlanTier.FREE))

        assert amounts.carryover == 0
        assert amounts.new_balance == 50

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError):
            compute_monthly_refresh(-1, plan_policies.get(PlanTier.PRO))

    @given(
        balance=st.integers(min_value=0, max_value=10**9),
        allocation=st.integers(min_value=0, max_value=10**6),
        cap=st.integers(min_value=0, max_value=10**6),
    )
    def test_refresh_properties(self, balance, allocation, cap):
        """Carryover never exceeds the cap or the balance; the allocation is always granted."""
        policy = TierPolicy(
            tier=PlanTier.PRO,
            rank=1,
            monthly_allocation=allocation,
            carryover_cap=cap,
            model="m",
            max_api_keys=None,
        )
        amounts = compute_monthly_refresh(balance, policy)

        assert 0 <= amounts.carryover <= min(balance, cap)
        assert amounts.carryover == min(balance, cap)
        assert amounts.new_balance == allocation + amounts.carryover
        assert amounts.new_balance >= allocation
