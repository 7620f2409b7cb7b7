from __future__ import annotations

from typing import Dict, Optional

import pandas as pd

from .apy import simulate_all_tiers
from .fixed_point import from_wad
from .models import RebaseParameters, RebasePlan, TrancheId, TrancheSystem


def _f(x: int) -> float:
    # display only; engine values stay integer fixed point
    return float(from_wad(x))


def _pct(x: int) -> float:
    return float(from_wad(x) * 100)


def build_rebase_summary(plan: RebasePlan, epoch: Optional[int] = None) -> pd.DataFrame:
    sel = plan.selection
    rows = [
        {"metric": "Epoch", "value": epoch if epoch is not None else plan.after.senior.epoch},
        {"metric": "Rebase Time", "value": plan.now},
        {"metric": "Elapsed Seconds", "value": plan.elapsed_seconds},
        {"metric": "Selected Tier", "value": sel.tier.tier},
        {"metric": "Selected APY (%)", "value": sel.tier.apy_bps / 100},
        {"metric": "Zone", "value": plan.zone.value},
        {"metric": "Backing Ratio (%)", "value": _pct(plan.projected_backing_ratio)},
        {"metric": "Old Index", "value": _f(plan.before.senior.rebase_index)},
        {"metric": "New Index", "value": _f(plan.new_index)},
        {"metric": "New Supply", "value": _f(sel.new_supply)},
        {"metric": "Backstop Insufficient", "value": str(plan.backstop_insufficient)},
    ]
    if plan.backstop is not None:
        rows.append({"metric": "Backstop Shortfall", "value": _f(plan.backstop.shortfall)})
    return pd.DataFrame(rows)


def build_apy_tiers(plan: RebasePlan, params: RebaseParameters) -> pd.DataFrame:
    senior = plan.before.senior
    rows = []
    for tier, fees, new_supply, ratio in simulate_all_tiers(
        senior.supply, plan.senior_value, plan.elapsed_seconds, params
    ):
        rows.append({
            "Tier": tier.tier,
            "APY (%)": tier.apy_bps / 100,
            "User Yield Tokens": _f(fees.user_yield_tokens),
            "Performance Fee Tokens": _f(fees.performance_fee_tokens),
            "Management Fee Tokens": _f(fees.management_fee_tokens),
            "New Supply": _f(new_supply),
            "Backing Ratio (%)": _pct(ratio),
            "Passes Par": ratio >= params.trigger_backing,
            "Selected": tier == plan.selection.tier,
        })
    return pd.DataFrame(rows)


def build_fee_summary(plan: RebasePlan) -> pd.DataFrame:
    fees = plan.selection.fees
    rows = [
        {"line": "User Yield Tokens", "amount": _f(fees.user_yield_tokens)},
        {"line": "Performance Fee Tokens", "amount": _f(fees.performance_fee_tokens)},
        {"line": "Management Fee Tokens", "amount": _f(fees.management_fee_tokens)},
        {"line": "Total Fee Tokens", "amount": _f(fees.total_fee_tokens)},
        {"line": "Fee Shares Minted", "amount": _f(plan.fee_shares)},
    ]
    return pd.DataFrame(rows)


def build_transfers(plan: RebasePlan) -> pd.DataFrame:
    rows = [
        {"step": f"{t.source.value.title()} -> {t.destination.value.title()}", "amount": _f(t.amount)}
        for t in plan.transfers
    ]
    if not rows:
        rows.append({"step": "No transfer (healthy zone)", "amount": 0.0})
    return pd.DataFrame(rows, columns=["step", "amount"])


def build_tranche_rollforward(
    before: TrancheSystem,
    after: TrancheSystem,
    senior_value: Optional[int] = None,
) -> pd.DataFrame:
    """
    Opening Value is the value the rebase ran on: for Senior that is the
    keeper-supplied market value when one was given. Revaluation is the move
    from the stored value to it; Value Change is transfers only.
    """
    rows = []
    for t in TrancheId:
        b, a = before.get(t), after.get(t)
        opening = b.reported_value
        if t is TrancheId.SENIOR and senior_value is not None:
            opening = senior_value
        rows.append({
            "Tranche": t.value.title(),
            "Stored Value": _f(b.reported_value),
            "Revaluation": _f(opening) - _f(b.reported_value),
            "Opening Value": _f(opening),
            "Closing Value": _f(a.reported_value),
            "Value Change": _f(a.reported_value) - _f(opening),
            "Opening Supply": _f(b.supply),
            "Closing Supply": _f(a.supply),
            "Rebase Index": _f(a.rebase_index),
            "Epoch": a.epoch,
            "Cumulative Spillover Received": _f(a.cumulative_spillover_received),
            "Cumulative Backstop Provided": _f(a.cumulative_backstop_provided),
        })
    return pd.DataFrame(rows)


def build_report(plan: RebasePlan, params: RebaseParameters) -> Dict[str, pd.DataFrame]:
    return {
        "Rebase Summary": build_rebase_summary(plan),
        "APY Tiers": build_apy_tiers(plan, params),
        "Fees": build_fee_summary(plan),
        "Transfers": build_transfers(plan),
        "Tranche Rollforward": build_tranche_rollforward(plan.before, plan.after, plan.senior_value),
    }
