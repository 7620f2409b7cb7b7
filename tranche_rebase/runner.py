from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from .excel_writer import ensure_template, write_rebase_pack
from .inputs import read_engine_inputs
from .ledger import InMemoryLedger
from .orchestrator import RebaseOrchestrator
from .reporting import build_report
from .store import InMemoryStateStore

logger = logging.getLogger(__name__)


def run_rebase_engine(
    input_xlsx: str,
    template_xlsx: str,
    output_xlsx: str,
    apply: bool = True,
    extra_sheets: Optional[Dict[str, pd.DataFrame]] = None,
) -> Dict[str, pd.DataFrame]:
    """
    End-to-end engine run:
      - Reads engine input workbook (Parameters/Tranches/Rebase)
      - Runs the rebase (or only simulates it when apply=False)
      - Builds report tables
      - Writes the report pack into output_xlsx (from template_xlsx)
      - Returns the DataFrames for UI display
    The workbook is a snapshot; state is held in memory for the run only.
    """
    if not Path(template_xlsx).exists():
        ensure_template(template_xlsx)

    cfg, system, request = read_engine_inputs(input_xlsx)
    orch = RebaseOrchestrator(InMemoryStateStore(system), cfg, ledger=InMemoryLedger())

    if apply:
        plan = orch.rebase(senior_value=request.senior_value, now=request.now).plan
    else:
        plan = orch.simulate_rebase(senior_value=request.senior_value, now=request.now).plan

    dfs = build_report(plan, cfg.params)
    if extra_sheets:
        dfs.update(extra_sheets)

    write_rebase_pack(template_xlsx, output_xlsx, dfs)
    logger.info("wrote rebase pack %s (%s)", output_xlsx, "applied" if apply else "simulated")
    return dfs
