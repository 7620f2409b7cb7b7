from __future__ import annotations

from typing import Tuple

from .errors import ValueValidationError
from .fixed_point import WAD, add, check, mul_div, mul_wad, sub
from .models import SECONDS_PER_MONTH, SECONDS_PER_YEAR, FeeBreakdown, RebaseParameters


def time_scaled_rate(monthly_rate: int, elapsed_seconds: int) -> int:
    """
    Monthly rate scaled to the elapsed interval. The index update and the yield
    token calculation both derive from this value, never from their own scaling.
    """
    return mul_div(monthly_rate, elapsed_seconds, SECONDS_PER_MONTH)


def management_fee_tokens(reported_value: int, elapsed_seconds: int, annual_rate: int) -> int:
    # minted as new supply; reported_value itself is not reduced
    return mul_div(check(reported_value * annual_rate), elapsed_seconds, SECONDS_PER_YEAR * WAD)


def management_fee_monthly(reported_value: int, annual_rate: int) -> int:
    return mul_div(reported_value, annual_rate, 12 * WAD)


def user_yield_tokens(current_supply: int, scaled_rate: int) -> int:
    return mul_wad(current_supply, scaled_rate)


def performance_fee_tokens(user_tokens: int, performance_fee_rate: int) -> int:
    return mul_wad(user_tokens, performance_fee_rate)


def compute_fees(
    reported_value: int,
    current_supply: int,
    elapsed_seconds: int,
    monthly_rate: int,
    params: RebaseParameters,
) -> FeeBreakdown:
    scaled = time_scaled_rate(monthly_rate, elapsed_seconds)
    user = user_yield_tokens(current_supply, scaled)
    return FeeBreakdown(
        management_fee_tokens=management_fee_tokens(reported_value, elapsed_seconds, params.management_fee_rate),
        performance_fee_tokens=performance_fee_tokens(user, params.performance_fee_rate),
        user_yield_tokens=user,
    )


def rebase_supply(current_supply: int, fees: FeeBreakdown) -> int:
    """S_new = S + S_users + S_perf + S_mgmt"""
    total = add(current_supply, fees.user_yield_tokens)
    total = add(total, fees.performance_fee_tokens)
    return add(total, fees.management_fee_tokens)


def new_rebase_index(old_index: int, scaled_rate: int) -> int:
    # performance fee is not in the index; it is realised only through minting
    return mul_div(old_index, add(WAD, scaled_rate), WAD)


def withdrawal_penalty(
    amount: int,
    cooldown_start: int,
    now: int,
    params: RebaseParameters,
) -> Tuple[int, int]:
    """
    Early-withdrawal penalty, returned as (penalty, net_amount).

    The penalty applies when no cooldown was ever started (cooldown_start == 0)
    or when fewer than ``params.cooldown_period`` seconds have passed since it was.
    """
    if cooldown_start and now < cooldown_start:
        raise ValueValidationError(f"now ({now}) is before cooldown start ({cooldown_start})")
    in_cooldown = cooldown_start == 0 or sub(now, cooldown_start) < params.cooldown_period
    penalty = mul_wad(amount, params.withdrawal_penalty_rate) if in_cooldown else 0
    return penalty, sub(amount, penalty)
