from __future__ import annotations

import io
import logging
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from tranche_rebase.config import EngineConfig
from tranche_rebase.errors import ErrorKind, RebaseError, RebaseTooSoon
from tranche_rebase.excel_writer import ensure_template, write_rebase_pack
from tranche_rebase.fixed_point import from_wad, to_wad
from tranche_rebase.models import RebasePlan, RebaseResult, TrancheId, TrancheState, TrancheSystem
from tranche_rebase.orchestrator import RebaseOrchestrator
from tranche_rebase.reporting import build_report
from tranche_rebase.store import JsonStateStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Tranche Rebase Engine", version="1.0")

_STATUS_BY_KIND = {
    ErrorKind.ARITHMETIC: 422,
    ErrorKind.TIMING: 409,
    ErrorKind.VALIDATION: 422,
    ErrorKind.CONCURRENCY: 409,
    ErrorKind.CAPACITY: 503,
}

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@lru_cache(maxsize=1)
def get_orchestrator() -> RebaseOrchestrator:
    cfg = EngineConfig.from_env()
    logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return RebaseOrchestrator(JsonStateStore(cfg.state_path), cfg)


@app.exception_handler(RebaseError)
async def rebase_error_handler(request: Request, exc: RebaseError):
    headers = {}
    if isinstance(exc, RebaseTooSoon):
        headers["Retry-After"] = str(exc.remaining_seconds)
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=_STATUS_BY_KIND[exc.kind],
        content={"kind": exc.kind.value, "detail": str(exc)},
        headers=headers,
    )


class ValueUpdate(BaseModel):
    tranche: TrancheId
    profit_bps: int


class ValueSet(BaseModel):
    tranche: TrancheId
    value: str   # decimal string, whole tokens


class RebaseBody(BaseModel):
    senior_value: Optional[str] = None
    now: Optional[int] = None


def _amt(x: int) -> str:
    return str(from_wad(x))


def _state_json(s: TrancheState) -> dict:
    return {
        "total_shares": _amt(s.total_shares),
        "supply": _amt(s.supply),
        "rebase_index": _amt(s.rebase_index),
        "reported_value": _amt(s.reported_value),
        "last_rebase_time": s.last_rebase_time,
        "epoch": s.epoch,
        "cumulative_spillover_received": _amt(s.cumulative_spillover_received),
        "cumulative_backstop_provided": _amt(s.cumulative_backstop_provided),
    }


def _system_json(system: TrancheSystem) -> dict:
    return {"version": system.version, "tranches": {t.value: _state_json(system.get(t)) for t in TrancheId}}


def _plan_json(plan: RebasePlan) -> dict:
    sel = plan.selection
    return {
        "tier": sel.tier.tier,
        "apy_bps": sel.tier.apy_bps,
        "monthly_rate": _amt(sel.monthly_rate),
        "elapsed_seconds": plan.elapsed_seconds,
        "fees": {
            "management": _amt(sel.fees.management_fee_tokens),
            "performance": _amt(sel.fees.performance_fee_tokens),
            "user_yield": _amt(sel.fees.user_yield_tokens),
        },
        "new_supply": _amt(sel.new_supply),
        "backing_ratio": _amt(plan.projected_backing_ratio),
        "zone": plan.zone.value,
        "new_index": _amt(plan.new_index),
        "fee_shares": _amt(plan.fee_shares),
        "transfers": [
            {"from": tr.source.value, "to": tr.destination.value, "amount": _amt(tr.amount)} for tr in plan.transfers
        ],
        "backstop_insufficient": plan.backstop_insufficient,
    }


def _result_json(result: RebaseResult) -> dict:
    out = _plan_json(result.plan)
    out.update(
        epoch=result.epoch,
        shortfall=_amt(result.shortfall),
        alerts=[a.value for a in result.alerts],
    )
    return out


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/state")
def state(orch: RebaseOrchestrator = Depends(get_orchestrator)):
    return _system_json(orch.state())


@app.get("/simulate")
def simulate(
    senior_value: Optional[str] = Query(default=None),
    now: Optional[int] = Query(default=None),
    orch: RebaseOrchestrator = Depends(get_orchestrator),
):
    preview = orch.simulate_rebase(to_wad(senior_value) if senior_value else None, now)
    return _plan_json(preview.plan)


@app.post("/rebase")
def rebase(body: RebaseBody, orch: RebaseOrchestrator = Depends(get_orchestrator)):
    result = orch.rebase(to_wad(body.senior_value) if body.senior_value else None, body.now)
    return _result_json(result)


@app.post("/value/update")
def value_update(body: ValueUpdate, orch: RebaseOrchestrator = Depends(get_orchestrator)):
    s = orch.update_reported_value(body.tranche, body.profit_bps)
    return {"tranche": s.tranche.value, "reported_value": _amt(s.reported_value)}


@app.post("/value/set")
def value_set(body: ValueSet, orch: RebaseOrchestrator = Depends(get_orchestrator)):
    s = orch.set_reported_value(body.tranche, to_wad(body.value))
    return {"tranche": s.tranche.value, "reported_value": _amt(s.reported_value)}


@app.get("/report.xlsx")
def report_xlsx(
    senior_value: Optional[str] = Query(default=None),
    now: Optional[int] = Query(default=None),
    orch: RebaseOrchestrator = Depends(get_orchestrator),
):
    """Report pack for a preview of the next rebase; nothing is committed."""
    plan = orch.simulate_rebase(to_wad(senior_value) if senior_value else None, now).plan
    dfs = build_report(plan, orch.params)

    with tempfile.TemporaryDirectory() as td:
        template = Path(td) / "rebase_template.xlsx"
        out = Path(td) / "rebase_pack.xlsx"
        ensure_template(str(template))
        write_rebase_pack(str(template), str(out), dfs)
        data = out.read_bytes()

    filename = f"rebase_pack_epoch_{plan.after.senior.epoch}.xlsx"
    return StreamingResponse(
        io.BytesIO(data),
        media_type=XLSX_MIME,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
