from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import ErrorKind, ValueValidationError
from .fixed_point import WAD, mul_div

SECONDS_PER_YEAR = 365 * 24 * 3600   # 31_536_000
SECONDS_PER_MONTH = 30 * 24 * 3600   # 2_592_000, nominal epoch
COOLDOWN_PERIOD = 7 * 24 * 3600


class TrancheId(str, Enum):
    SENIOR = "senior"
    JUNIOR = "junior"
    RESERVE = "reserve"


class Zone(str, Enum):
    EXCESS = "excess"       # backing > 110%: spillover
    HEALTHY = "healthy"     # 100% <= backing <= 110%: no transfer
    DEFICIT = "deficit"     # backing < 100%: backstop


@dataclass(frozen=True)
class APYTier:
    tier: int                 # 3 = highest
    apy_bps: int              # annual, e.g. 1300 = 13%

    @property
    def monthly_rate(self) -> int:
        return self.apy_bps * WAD // (12 * 10_000)


DEFAULT_TIERS: Tuple[APYTier, ...] = (APYTier(3, 1300), APYTier(2, 1200), APYTier(1, 1100))


@dataclass(frozen=True)
class RebaseParameters:
    tiers: Tuple[APYTier, ...] = DEFAULT_TIERS
    management_fee_rate: int = WAD // 100           # 1% / yr
    performance_fee_rate: int = 2 * WAD // 100      # 2% of user yield
    target_backing: int = 110 * WAD // 100          # spillover above this
    trigger_backing: int = WAD                      # backstop below this
    restore_backing: int = 1009 * WAD // 1000       # backstop restores to this
    junior_spillover_share: int = 80 * WAD // 100
    reserve_spillover_share: int = 20 * WAD // 100
    withdrawal_penalty_rate: int = 20 * WAD // 100
    cooldown_period: int = COOLDOWN_PERIOD

    def __post_init__(self) -> None:
        problems: List[str] = []
        if not self.tiers:
            problems.append("at least one APY tier is required")
        rates = [t.apy_bps for t in self.tiers]
        if any(a <= b for a, b in zip(rates, rates[1:])):
            problems.append(f"APY tiers must be strictly descending, got {rates}")
        if self.junior_spillover_share + self.reserve_spillover_share != WAD:
            problems.append("spillover shares must sum to 100%")
        if not (self.trigger_backing < self.restore_backing < self.target_backing):
            problems.append("thresholds must satisfy trigger < restore < target")
        if problems:
            raise ValueValidationError("invalid rebase parameters: " + "; ".join(problems), problems)

    @property
    def floor_tier(self) -> APYTier:
        return self.tiers[-1]


@dataclass(frozen=True)
class TrancheState:
    tranche: TrancheId
    total_shares: int = 0
    rebase_index: int = WAD                  # Senior only; fixed at 1.0 elsewhere
    reported_value: int = 0
    last_rebase_time: int = 0
    epoch: int = 0
    cumulative_spillover_received: int = 0   # Junior / Reserve
    cumulative_backstop_provided: int = 0    # Junior / Reserve

    @property
    def supply(self) -> int:
        # balance = shares x index
        return mul_div(self.total_shares, self.rebase_index, WAD)


@dataclass(frozen=True)
class TrancheSystem:
    senior: TrancheState
    junior: TrancheState
    reserve: TrancheState
    version: int = 0

    def get(self, tranche: TrancheId) -> TrancheState:
        return {
            TrancheId.SENIOR: self.senior,
            TrancheId.JUNIOR: self.junior,
            TrancheId.RESERVE: self.reserve,
        }[tranche]

    def with_state(self, state: TrancheState) -> "TrancheSystem":
        return replace(self, **{state.tranche.value: state})

    def total_value(self) -> int:
        return self.senior.reported_value + self.junior.reported_value + self.reserve.reported_value


@dataclass(frozen=True)
class FeeBreakdown:
    management_fee_tokens: int
    performance_fee_tokens: int
    user_yield_tokens: int

    @property
    def total_fee_tokens(self) -> int:
        return self.management_fee_tokens + self.performance_fee_tokens


@dataclass(frozen=True)
class APYSelection:
    tier: APYTier
    scaled_rate: int            # monthly rate scaled by elapsed time
    fees: FeeBreakdown
    new_supply: int
    backing_ratio: int
    needs_backstop: bool

    @property
    def monthly_rate(self) -> int:
        return self.tier.monthly_rate


@dataclass(frozen=True)
class ZoneThresholds:
    target_value: int
    trigger_value: int
    restore_value: int


@dataclass(frozen=True)
class ZoneDecision:
    zone: Zone
    backing_ratio: int
    thresholds: ZoneThresholds


@dataclass(frozen=True)
class SpilloverResult:
    excess: int
    to_junior: int
    to_reserve: int
    senior_final_value: int


@dataclass(frozen=True)
class BackstopResult:
    deficit: int
    from_reserve: int
    from_junior: int
    senior_final_value: int
    fully_restored: bool

    @property
    def total_provided(self) -> int:
        return self.from_reserve + self.from_junior

    @property
    def shortfall(self) -> int:
        return self.deficit - self.total_provided


@dataclass(frozen=True)
class Transfer:
    source: TrancheId
    destination: TrancheId
    amount: int


@dataclass(frozen=True)
class RebasePlan:
    """Everything a rebase would do, computed without touching stored state."""
    now: int
    elapsed_seconds: int
    senior_value: int           # Senior value the zone was classified on
    selection: APYSelection
    decision: ZoneDecision
    spillover: Optional[SpilloverResult]
    backstop: Optional[BackstopResult]
    new_index: int
    fee_shares: int
    transfers: Tuple[Transfer, ...]
    before: TrancheSystem
    after: TrancheSystem

    @property
    def zone(self) -> Zone:
        return self.decision.zone

    @property
    def projected_backing_ratio(self) -> int:
        return self.decision.backing_ratio

    @property
    def backstop_insufficient(self) -> bool:
        return self.backstop is not None and not self.backstop.fully_restored


@dataclass(frozen=True)
class RebasePreview:
    selection: APYSelection
    zone: Zone
    projected_backing_ratio: int
    plan: RebasePlan


@dataclass(frozen=True)
class RebaseResult:
    epoch: int
    selected_rate: int          # monthly rate of the chosen tier
    selected_tier: int
    new_index: int
    new_supply: int
    zone: Zone
    fees_minted: FeeBreakdown
    fee_shares: int
    transferred: Tuple[Transfer, ...]
    backstop_insufficient: bool
    shortfall: int
    plan: RebasePlan
    alerts: List[ErrorKind] = field(default_factory=list)

    def transferred_by_tranche(self) -> Dict[TrancheId, int]:
        """Net value change per tranche (positive = received)."""
        out = {t: 0 for t in TrancheId}
        for tr in self.transferred:
            out[tr.source] -= tr.amount
            out[tr.destination] += tr.amount
        return out


@dataclass(frozen=True)
class RebaseRequest:
    now: Optional[int] = None             # unix seconds; None = wall clock
    senior_value: Optional[int] = None    # market value supplied by the keeper
