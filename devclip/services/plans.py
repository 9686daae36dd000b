"""
Plan Tier Policies - Allocation, carryover cap, model and key limit per tier.

NO DICTIONARIES - Policies are immutable TierPolicy records.
"""

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from devclip.models.api import PlanTier
from devclip.models.domain import RefreshAmounts, TierPolicy

DEFAULT_TIER = PlanTier.FREE

DEFAULT_POLICIES: tuple[TierPolicy, ...] = (
    TierPolicy(
        tier=PlanTier.FREE,
        rank=0,
        monthly_allocation=50,
        carryover_cap=0,
        model="gpt-5-nano",
        max_api_keys=0,
    ),
    TierPolicy(
        tier=PlanTier.PRO,
        rank=1,
        monthly_allocation=5000,
        carryover_cap=10000,
        model="gpt-5-mini",
        max_api_keys=3,
    ),
    TierPolicy(
        tier=PlanTier.TEAM,
        rank=2,
        monthly_allocation=25000,
        carryover_cap=50000,
        model="gpt-5",
        max_api_keys=None,
    ),
)


class PlanPolicies:
    """Read-only lookup of tier policies."""

    def __init__(self, policies: Iterable[TierPolicy] = DEFAULT_POLICIES) -> None:
        table = {policy.tier: policy for policy in policies}
        missing = set(PlanTier) - set(table)
        if missing:
            raise ValueError(f"Missing tier policies: {sorted(t.value for t in missing)}")
        self._policies: Mapping[PlanTier, TierPolicy] = MappingProxyType(table)

    def get(self, tier: PlanTier | str) -> TierPolicy:
        """Get the policy for a tier."""
        return self._policies[PlanTier(tier)]

    def meets(self, tier: PlanTier | str, minimum: PlanTier | None) -> bool:
        """True when `tier` is at or above `minimum` (or there is no minimum)."""
        if minimum is None:
            return True
        return self.get(tier).rank >= self.get(minimum).rank

    def models(self) -> dict[PlanTier, str]:
        """Tier to completion model mapping."""
        return {tier: policy.model for tier, policy in self._policies.items()}


def compute_monthly_refresh(current_balance: int, policy: TierPolicy) -> RefreshAmounts:
    """
    Compute the balance after a monthly refresh.

    Unused balance is carried over up to the tier's cap, then the monthly
    allocation is granted on top.
    """
    if current_balance < 0:
        raise ValueError(f"Balance cannot be negative: {current_balance}")

    carryover = min(current_balance, policy.carryover_cap)
    return RefreshAmounts(
        carryover=carryover,
        new_balance=policy.monthly_allocation + carryover,
    )


plan_policies = PlanPolicies()
