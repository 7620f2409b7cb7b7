from __future__ import annotations

from typing import List, Tuple

from .fees import compute_fees, rebase_supply, time_scaled_rate
from .models import APYSelection, APYTier, FeeBreakdown, RebaseParameters
from .zones import backing_ratio


def _evaluate_tier(
    tier: APYTier,
    current_supply: int,
    reported_value: int,
    elapsed_seconds: int,
    params: RebaseParameters,
) -> APYSelection:
    fees = compute_fees(reported_value, current_supply, elapsed_seconds, tier.monthly_rate, params)
    # management fee is part of new supply before the par check
    new_supply = rebase_supply(current_supply, fees)
    r = backing_ratio(reported_value, new_supply)
    return APYSelection(
        tier=tier,
        scaled_rate=time_scaled_rate(tier.monthly_rate, elapsed_seconds),
        fees=fees,
        new_supply=new_supply,
        backing_ratio=r,
        needs_backstop=r < params.trigger_backing,
    )


def select_apy(
    current_supply: int,
    reported_value: int,
    elapsed_seconds: int,
    params: RebaseParameters,
) -> APYSelection:
    """
    Greedy waterfall over the candidate tiers, highest APY first:
      - the first tier whose post-rebase backing stays at or above par wins
      - if none does, the floor tier is still paid and needs_backstop is raised
    """
    for tier in params.tiers:
        sel = _evaluate_tier(tier, current_supply, reported_value, elapsed_seconds, params)
        if not sel.needs_backstop:
            return sel
    return sel  # floor tier, needs_backstop already set


def simulate_all_tiers(
    current_supply: int,
    reported_value: int,
    elapsed_seconds: int,
    params: RebaseParameters,
) -> List[Tuple[APYTier, FeeBreakdown, int, int]]:
    """(tier, fees, new_supply, backing_ratio) for every tier, in tier order."""
    rows = []
    for tier in params.tiers:
        sel = _evaluate_tier(tier, current_supply, reported_value, elapsed_seconds, params)
        rows.append((tier, sel.fees, sel.new_supply, sel.backing_ratio))
    return rows
