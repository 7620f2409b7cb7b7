from __future__ import annotations

import math
from dataclasses import fields
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .config import EngineConfig
from .fixed_point import to_wad
from .models import (
    APYTier,
    RebaseParameters,
    RebaseRequest,
    TrancheId,
    TrancheState,
    TrancheSystem,
)

# Parameters sheet keys given as decimal fractions (0.01 = 1%)
_RATE_KEYS = (
    "management_fee_rate",
    "performance_fee_rate",
    "target_backing",
    "trigger_backing",
    "restore_backing",
    "junior_spillover_share",
    "reserve_spillover_share",
    "withdrawal_penalty_rate",
)

_TRANCHE_REQUIRED = {"tranche", "total_shares", "reported_value", "last_rebase_time"}
_TRANCHE_INT_COLUMNS = ("last_rebase_time", "epoch")


def _read_table(path: str, sheet: str) -> pd.DataFrame:
    return pd.read_excel(path, sheet_name=sheet)


def _blank(v: object) -> bool:
    if v is None:
        return True
    if isinstance(v, float) and math.isnan(v):
        return True
    return str(v).strip() in ("", "nan", "None")


def _key_values(df: pd.DataFrame, sheet: str) -> Dict[str, object]:
    if set(df.columns) != {"key", "value"}:
        raise ValueError(f"{sheet} sheet must have columns: key, value")
    return {str(k).strip(): v for k, v in zip(df["key"], df["value"]) if not _blank(k)}


def parse_tiers(raw: object) -> Tuple[APYTier, ...]:
    """'1300,1200,1100' -> tiers numbered from the top (3, 2, 1)."""
    bps = [int(float(x)) for x in str(raw).replace(";", ",").split(",") if x.strip()]
    return tuple(APYTier(len(bps) - i, b) for i, b in enumerate(bps))


def parse_parameters(kv: Dict[str, object]) -> EngineConfig:
    p_kwargs: Dict[str, object] = {}
    for key in _RATE_KEYS:
        if key in kv and not _blank(kv[key]):
            p_kwargs[key] = to_wad(str(kv[key]))
    if "tier_apy_bps" in kv and not _blank(kv["tier_apy_bps"]):
        p_kwargs["tiers"] = parse_tiers(kv["tier_apy_bps"])
    if "cooldown_period" in kv and not _blank(kv["cooldown_period"]):
        p_kwargs["cooldown_period"] = int(float(kv["cooldown_period"]))  # type: ignore[arg-type]

    overrides: Dict[str, object] = {}
    if "min_rebase_interval" in kv and not _blank(kv["min_rebase_interval"]):
        overrides["min_rebase_interval"] = int(float(kv["min_rebase_interval"]))  # type: ignore[arg-type]
    if "fee_recipient" in kv and not _blank(kv["fee_recipient"]):
        overrides["fee_recipient"] = str(kv["fee_recipient"]).strip()

    return EngineConfig.from_env(params=RebaseParameters(**p_kwargs), **overrides)


def parse_tranches(df: pd.DataFrame) -> TrancheSystem:
    if not _TRANCHE_REQUIRED.issubset(df.columns):
        raise ValueError(f"Tranches sheet must include columns: {sorted(_TRANCHE_REQUIRED)}")

    optional = [f.name for f in fields(TrancheState) if f.name not in _TRANCHE_REQUIRED]
    states: Dict[TrancheId, TrancheState] = {}
    for _, r in df.iterrows():
        tranche = TrancheId(str(r["tranche"]).strip().lower())
        kwargs: Dict[str, int] = {}
        for col in ["total_shares", "reported_value", "last_rebase_time"] + optional:
            if col not in df.columns or _blank(r.get(col, None)):
                continue
            raw = r[col]
            kwargs[col] = int(float(raw)) if col in _TRANCHE_INT_COLUMNS else to_wad(str(raw))
        states[tranche] = TrancheState(tranche, **kwargs)

    missing: List[str] = [t.value for t in TrancheId if t not in states]
    if missing:
        raise ValueError(f"Tranches sheet is missing rows for: {missing}")
    return TrancheSystem(states[TrancheId.SENIOR], states[TrancheId.JUNIOR], states[TrancheId.RESERVE])


def parse_request(kv: Dict[str, object]) -> RebaseRequest:
    now: Optional[int] = None
    senior_value: Optional[int] = None
    if "now" in kv and not _blank(kv["now"]):
        now = int(float(kv["now"]))  # type: ignore[arg-type]
    if "senior_value" in kv and not _blank(kv["senior_value"]):
        senior_value = to_wad(str(kv["senior_value"]))
    return RebaseRequest(now=now, senior_value=senior_value)


def read_engine_inputs(excel_path: str) -> Tuple[EngineConfig, TrancheSystem, RebaseRequest]:
    """
    Expected sheets:
      - Parameters (key/value table; any missing key keeps its default)
      - Tranches (tranche, total_shares, reported_value, last_rebase_time,
                  [optional: rebase_index, epoch, cumulative_spillover_received,
                   cumulative_backstop_provided])
      - Rebase (optional key/value: now, senior_value)
    Amounts are in whole tokens / USD and converted to 18-decimal fixed point.
    """
    sheets = pd.ExcelFile(excel_path).sheet_names

    kv = _key_values(_read_table(excel_path, "Parameters"), "Parameters") if "Parameters" in sheets else {}
    cfg = parse_parameters(kv)

    system = parse_tranches(_read_table(excel_path, "Tranches"))

    request = RebaseRequest()
    if "Rebase" in sheets:
        request = parse_request(_key_values(_read_table(excel_path, "Rebase"), "Rebase"))

    return cfg, system, request
