import pytest

from tranche_rebase.errors import DivideByZero, ValueValidationError
from tranche_rebase.fixed_point import WAD
from tranche_rebase.models import APYTier, RebaseParameters, Zone
from tranche_rebase.zones import classify, zone_for_ratio, zone_thresholds

PARAMS = RebaseParameters()
SUPPLY = 1_000_000 * WAD


def test_boundaries_are_healthy():
    assert zone_for_ratio(110 * WAD // 100, PARAMS) is Zone.HEALTHY
    assert zone_for_ratio(WAD, PARAMS) is Zone.HEALTHY
    assert zone_for_ratio(1009 * WAD // 1000, PARAMS) is Zone.HEALTHY


def test_strict_crossings():
    assert zone_for_ratio(110 * WAD // 100 + 1, PARAMS) is Zone.EXCESS
    assert zone_for_ratio(WAD - 1, PARAMS) is Zone.DEFICIT
    assert zone_for_ratio(999999 * WAD // 1_000_000, PARAMS) is Zone.DEFICIT


def test_classify_thresholds():
    d = classify(1_100_000 * WAD, SUPPLY, PARAMS)
    assert d.zone is Zone.HEALTHY
    assert d.backing_ratio == 110 * WAD // 100
    assert d.thresholds == zone_thresholds(SUPPLY, PARAMS)
    assert d.thresholds.target_value == 1_100_000 * WAD
    assert d.thresholds.trigger_value == SUPPLY
    assert d.thresholds.restore_value == 1_009_000 * WAD


def test_zero_supply():
    with pytest.raises(DivideByZero):
        classify(0, 0, PARAMS)


def test_parameter_validation():
    with pytest.raises(ValueValidationError) as ei:
        RebaseParameters(tiers=(APYTier(2, 1100), APYTier(1, 1200)))
    assert "descending" in str(ei.value)
    with pytest.raises(ValueValidationError):
        RebaseParameters(junior_spillover_share=WAD // 2)
    with pytest.raises(ValueValidationError):
        RebaseParameters(restore_backing=2 * WAD)
