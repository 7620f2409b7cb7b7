"""
Rebase orchestration.

One rebase is one traversal of:

    load state -> fees + APY tier -> zone -> spillover | backstop | no-op
               -> new index + fee shares -> commit -> custody instructions

Everything up to the commit is the pure function ``plan_rebase``; the preview
(``simulate_rebase``) and the real run (``rebase``) both call it with the same
inputs, so they cannot disagree. The commit is a single compare_and_swap of the
whole tranche triplet: if anything before it raises, nothing is written.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Optional

from .apy import select_apy
from .config import EngineConfig
from .errors import ErrorKind, RebaseTooSoon, ValueValidationError
from .fees import new_rebase_index
from .fixed_point import BPS_SCALE, WAD, add, from_wad, mul_div
from .ledger import CustodyLedger, InMemoryLedger
from .models import (
    RebaseParameters,
    RebasePlan,
    RebasePreview,
    RebaseResult,
    TrancheId,
    TrancheState,
    TrancheSystem,
    Zone,
)
from .waterfall import apply_backstop, apply_spillover, compute_backstop, compute_spillover
from .zones import classify

logger = logging.getLogger(__name__)

MIN_PROFIT_BPS = -5_000     # -50%
MAX_PROFIT_BPS = 10_000     # +100%

Clock = Callable[[], int]
ReferenceValue = Callable[[TrancheId], int]


def plan_rebase(
    system: TrancheSystem,
    params: RebaseParameters,
    now: int,
    min_rebase_interval: int,
    senior_value: Optional[int] = None,
) -> RebasePlan:
    senior = system.senior
    elapsed = now - senior.last_rebase_time
    # elapsed must be positive even with a zero interval: same-timestamp calls are duplicates
    required = max(min_rebase_interval, 1)
    if elapsed < required:
        raise RebaseTooSoon(elapsed, required)

    if senior_value is not None:
        senior = replace(senior, reported_value=senior_value)

    value = senior.reported_value
    selection = select_apy(senior.supply, value, elapsed, params)
    decision = classify(value, selection.new_supply, params)

    new_senior, new_junior, new_reserve = senior, system.junior, system.reserve
    spillover = backstop = None
    transfers: tuple = ()
    if decision.zone is Zone.EXCESS:
        spillover = compute_spillover(value, decision.thresholds, params)
        new_senior, new_junior, new_reserve, transfers = apply_spillover(
            senior, system.junior, system.reserve, spillover
        )
    elif decision.zone is Zone.DEFICIT:
        backstop = compute_backstop(
            value, decision.thresholds, system.reserve.reported_value, system.junior.reported_value
        )
        new_senior, new_junior, new_reserve, transfers = apply_backstop(
            senior, system.junior, system.reserve, backstop
        )

    new_index = new_rebase_index(senior.rebase_index, selection.scaled_rate)
    # fee tokens become shares for the fee recipient; user share counts are untouched
    fee_shares = mul_div(selection.fees.total_fee_tokens, WAD, new_index)
    new_senior = replace(
        new_senior,
        rebase_index=new_index,
        total_shares=add(senior.total_shares, fee_shares),
        last_rebase_time=now,
        epoch=senior.epoch + 1,
    )

    return RebasePlan(
        now=now,
        elapsed_seconds=elapsed,
        senior_value=value,
        selection=selection,
        decision=decision,
        spillover=spillover,
        backstop=backstop,
        new_index=new_index,
        fee_shares=fee_shares,
        transfers=transfers,
        before=system,
        after=TrancheSystem(new_senior, new_junior, new_reserve, version=system.version),
    )


class RebaseTransaction:
    """
    Borrows the whole tranche triplet for one operation. The snapshot read on
    entry is the only input; ``commit`` is the only write and fails with
    StateConflict if someone else committed in between.
    """

    def __init__(self, store) -> None:
        self.store = store
        self.system: Optional[TrancheSystem] = None
        self.committed: Optional[TrancheSystem] = None

    def __enter__(self) -> "RebaseTransaction":
        self.system = self.store.load()
        return self

    def commit(self, new_system: TrancheSystem) -> TrancheSystem:
        if self.committed is not None:
            raise RuntimeError("transaction already committed")
        self.committed = self.store.compare_and_swap(self.system.version, new_system)
        return self.committed

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None and self.committed is None:
            logger.warning("%s aborted, no state written: %s", type(self).__name__, exc)
        return False


class RebaseOrchestrator:
    def __init__(
        self,
        store,
        config: Optional[EngineConfig] = None,
        ledger: Optional[CustodyLedger] = None,
        clock: Optional[Clock] = None,
        reference_value: Optional[ReferenceValue] = None,
    ) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self.ledger = ledger if ledger is not None else InMemoryLedger()
        self.clock = clock or (lambda: int(time.time()))
        self.reference_value = reference_value
        # one rebase/update at a time per tranche triplet in this process;
        # the store's compare_and_swap covers other processes
        self._lock = threading.Lock()

    @property
    def params(self) -> RebaseParameters:
        return self.config.params

    def state(self) -> TrancheSystem:
        return self.store.load()

    def get_reported_value(self, tranche: TrancheId) -> int:
        return self.store.load().get(tranche).reported_value

    def simulate_rebase(self, senior_value: Optional[int] = None, now: Optional[int] = None) -> RebasePreview:
        if senior_value is not None:
            self._validate_against_reference(TrancheId.SENIOR, senior_value)
        plan = plan_rebase(
            self.store.load(),
            self.params,
            self.clock() if now is None else now,
            self.config.min_rebase_interval,
            senior_value,
        )
        return RebasePreview(
            selection=plan.selection,
            zone=plan.zone,
            projected_backing_ratio=plan.projected_backing_ratio,
            plan=plan,
        )

    def rebase(self, senior_value: Optional[int] = None, now: Optional[int] = None) -> RebaseResult:
        with self._lock:
            if senior_value is not None:
                self._validate_against_reference(TrancheId.SENIOR, senior_value)
            with RebaseTransaction(self.store) as txn:
                plan = plan_rebase(
                    txn.system,
                    self.params,
                    self.clock() if now is None else now,
                    self.config.min_rebase_interval,
                    senior_value,
                )
                committed = txn.commit(plan.after)

            for tr in plan.transfers:
                self.ledger.transfer_value(tr.source, tr.destination, tr.amount)
            if plan.fee_shares > 0:
                self.ledger.mint_fee_shares(TrancheId.SENIOR, plan.fee_shares, self.config.fee_recipient)

        result = self._result(plan, committed)
        logger.info(
            "rebase epoch=%d tier=%d zone=%s backing=%s index=%s supply=%s",
            result.epoch,
            result.selected_tier,
            result.zone.value,
            from_wad(plan.projected_backing_ratio),
            from_wad(result.new_index),
            from_wad(result.new_supply),
        )
        if result.backstop_insufficient:
            logger.warning(
                "backstop insufficient at epoch %d: shortfall %s, reserve and junior drained",
                result.epoch,
                from_wad(result.shortfall),
            )
        return result

    def update_reported_value(self, tranche: TrancheId, profit_bps: int) -> TrancheState:
        """Apply a profit/loss in basis points to a tranche's reported value."""
        if not MIN_PROFIT_BPS <= profit_bps <= MAX_PROFIT_BPS:
            raise ValueValidationError(
                f"profit_bps {profit_bps} outside [{MIN_PROFIT_BPS}, {MAX_PROFIT_BPS}]"
            )
        with self._lock:
            return self._write_value(tranche, lambda old: mul_div(old, BPS_SCALE + profit_bps, BPS_SCALE))

    def set_reported_value(self, tranche: TrancheId, value: int) -> TrancheState:
        if value < 0:
            raise ValueValidationError(f"reported value must be non-negative, got {value}")
        with self._lock:
            return self._write_value(tranche, lambda _old: value)

    def _write_value(self, tranche: TrancheId, compute: Callable[[int], int]) -> TrancheState:
        with RebaseTransaction(self.store) as txn:
            old = txn.system.get(tranche)
            value = compute(old.reported_value)
            self._validate_against_reference(tranche, value)
            new_state = replace(old, reported_value=value)
            txn.commit(txn.system.with_state(new_state))
        logger.info("%s reported value %s -> %s", tranche.value, from_wad(old.reported_value), from_wad(value))
        return new_state

    def _validate_against_reference(self, tranche: TrancheId, value: int) -> None:
        if not self.config.validation_enabled:
            return
        if self.reference_value is None:
            raise ValueValidationError("validation is enabled but no reference value source is configured")
        ref = self.reference_value(tranche)
        tol = self.config.validation_tolerance_bps
        if abs(value - ref) * BPS_SCALE > tol * ref:
            logger.warning(
                "rejected %s value %s: reference %s, tolerance %d bps",
                tranche.value, from_wad(value), from_wad(ref), tol,
            )
            raise ValueValidationError(
                f"{tranche.value} value {from_wad(value)} deviates from reference {from_wad(ref)} "
                f"by more than {tol} bps",
                [f"reference={ref}", f"submitted={value}"],
            )

    def _result(self, plan: RebasePlan, committed: TrancheSystem) -> RebaseResult:
        backstop = plan.backstop
        return RebaseResult(
            epoch=committed.senior.epoch,
            selected_rate=plan.selection.monthly_rate,
            selected_tier=plan.selection.tier.tier,
            new_index=plan.new_index,
            new_supply=plan.selection.new_supply,
            zone=plan.zone,
            fees_minted=plan.selection.fees,
            fee_shares=plan.fee_shares,
            transferred=plan.transfers,
            backstop_insufficient=plan.backstop_insufficient,
            shortfall=backstop.shortfall if backstop is not None else 0,
            plan=plan,
            alerts=[ErrorKind.CAPACITY] if plan.backstop_insufficient else [],
        )
