from __future__ import annotations

from dataclasses import replace
from typing import List, Tuple

from .fixed_point import add, mul_wad, sub
from .models import (
    BackstopResult,
    RebaseParameters,
    SpilloverResult,
    TrancheId,
    TrancheState,
    Transfer,
    ZoneThresholds,
)


def compute_spillover(
    senior_value: int,
    thresholds: ZoneThresholds,
    params: RebaseParameters,
) -> SpilloverResult:
    """
    Excess zone:
      1) Excess = Senior value above the 110% target
      2) Junior takes its share (80%), Reserve takes the remainder
    The remainder goes to Reserve so that to_junior + to_reserve == excess exactly.
    """
    excess = sub(senior_value, thresholds.target_value)
    to_junior = mul_wad(excess, params.junior_spillover_share)
    to_reserve = sub(excess, to_junior)
    return SpilloverResult(
        excess=excess,
        to_junior=to_junior,
        to_reserve=to_reserve,
        senior_final_value=sub(senior_value, excess),
    )


def compute_backstop(
    senior_value: int,
    thresholds: ZoneThresholds,
    reserve_value: int,
    junior_value: int,
) -> BackstopResult:
    """
    Deficit zone, drawn strictly in order up to each provider's full value:
      1) Reserve
      2) Junior
    If both together cannot cover the deficit, Senior ends up under-restored and
    both providers are drained; the result says so via fully_restored=False.
    """
    deficit = sub(thresholds.restore_value, senior_value)

    remaining = deficit
    draws: List[int] = []
    for available in (reserve_value, junior_value):
        draw = min(available, remaining)
        remaining = sub(remaining, draw)
        draws.append(draw)
    from_reserve, from_junior = draws

    provided = add(from_reserve, from_junior)
    return BackstopResult(
        deficit=deficit,
        from_reserve=from_reserve,
        from_junior=from_junior,
        senior_final_value=add(senior_value, provided),
        fully_restored=provided == deficit,
    )


def apply_spillover(
    senior: TrancheState,
    junior: TrancheState,
    reserve: TrancheState,
    res: SpilloverResult,
) -> Tuple[TrancheState, TrancheState, TrancheState, Tuple[Transfer, ...]]:
    transfers = (
        Transfer(TrancheId.SENIOR, TrancheId.JUNIOR, res.to_junior),
        Transfer(TrancheId.SENIOR, TrancheId.RESERVE, res.to_reserve),
    )
    return (
        replace(senior, reported_value=sub(senior.reported_value, res.excess)),
        replace(
            junior,
            reported_value=add(junior.reported_value, res.to_junior),
            cumulative_spillover_received=add(junior.cumulative_spillover_received, res.to_junior),
        ),
        replace(
            reserve,
            reported_value=add(reserve.reported_value, res.to_reserve),
            cumulative_spillover_received=add(reserve.cumulative_spillover_received, res.to_reserve),
        ),
        transfers,
    )


def apply_backstop(
    senior: TrancheState,
    junior: TrancheState,
    reserve: TrancheState,
    res: BackstopResult,
) -> Tuple[TrancheState, TrancheState, TrancheState, Tuple[Transfer, ...]]:
    transfers = tuple(
        Transfer(src, TrancheId.SENIOR, amt)
        for src, amt in ((TrancheId.RESERVE, res.from_reserve), (TrancheId.JUNIOR, res.from_junior))
        if amt > 0
    )
    return (
        replace(senior, reported_value=add(senior.reported_value, res.total_provided)),
        replace(
            junior,
            reported_value=sub(junior.reported_value, res.from_junior),
            cumulative_backstop_provided=add(junior.cumulative_backstop_provided, res.from_junior),
        ),
        replace(
            reserve,
            reported_value=sub(reserve.reported_value, res.from_reserve),
            cumulative_backstop_provided=add(reserve.cumulative_backstop_provided, res.from_reserve),
        ),
        transfers,
    )
