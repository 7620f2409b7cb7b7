from __future__ import annotations

from .fixed_point import mul_wad, ratio
from .models import RebaseParameters, Zone, ZoneDecision, ZoneThresholds


def backing_ratio(reported_value: int, supply: int) -> int:
    return ratio(reported_value, supply)


def zone_thresholds(new_supply: int, params: RebaseParameters) -> ZoneThresholds:
    return ZoneThresholds(
        target_value=mul_wad(new_supply, params.target_backing),
        trigger_value=mul_wad(new_supply, params.trigger_backing),
        restore_value=mul_wad(new_supply, params.restore_backing),
    )


def zone_for_ratio(ratio_wad: int, params: RebaseParameters) -> Zone:
    # exactly 110% is healthy, exactly 100% is healthy; only strict crossings act
    if ratio_wad > params.target_backing:
        return Zone.EXCESS
    if ratio_wad < params.trigger_backing:
        return Zone.DEFICIT
    return Zone.HEALTHY


def classify(reported_value: int, new_supply: int, params: RebaseParameters) -> ZoneDecision:
    r = backing_ratio(reported_value, new_supply)
    return ZoneDecision(
        zone=zone_for_ratio(r, params),
        backing_ratio=r,
        thresholds=zone_thresholds(new_supply, params),
    )
