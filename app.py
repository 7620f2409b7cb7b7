from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Dict, Tuple

import pandas as pd
import streamlit as st

from tranche_rebase.config import EngineConfig
from tranche_rebase.errors import RebaseError
from tranche_rebase.excel_writer import ensure_template, write_rebase_pack
from tranche_rebase.fixed_point import from_wad, to_wad
from tranche_rebase.models import RebaseParameters, RebasePlan
from tranche_rebase.orchestrator import RebaseOrchestrator
from tranche_rebase.reporting import build_report
from tranche_rebase.runner import run_rebase_engine
from tranche_rebase.store import JsonStateStore

st.set_page_config(page_title="Tranche Rebase Engine", layout="wide")

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@st.cache_data(show_spinner=False)
def cached_run_engine(input_excel_bytes: bytes, apply: bool) -> Tuple[bytes, Dict[str, pd.DataFrame]]:
    """Run the workbook through the engine and return report pack bytes + DataFrames."""
    with tempfile.TemporaryDirectory() as td:
        td = Path(td)
        input_xlsx = td / "input.xlsx"
        template_xlsx = td / "rebase_template.xlsx"
        output_xlsx = td / "rebase_pack.xlsx"

        input_xlsx.write_bytes(input_excel_bytes)
        dfs = run_rebase_engine(
            input_xlsx=str(input_xlsx),
            template_xlsx=str(template_xlsx),
            output_xlsx=str(output_xlsx),
            apply=apply,
        )
        return output_xlsx.read_bytes(), dfs


def _pack_bytes(plan: RebasePlan, params: RebaseParameters) -> Tuple[bytes, Dict[str, pd.DataFrame]]:
    dfs = build_report(plan, params)
    with tempfile.TemporaryDirectory() as td:
        template = Path(td) / "rebase_template.xlsx"
        out = Path(td) / "rebase_pack.xlsx"
        ensure_template(str(template))
        write_rebase_pack(str(template), str(out), dfs)
        return out.read_bytes(), dfs


def _show_plan(plan: RebasePlan) -> None:
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Tier", f"{plan.selection.tier.tier} ({plan.selection.tier.apy_bps / 100:.2f}% APY)")
    c2.metric("Zone", plan.zone.value)
    c3.metric("Backing", f"{from_wad(plan.projected_backing_ratio * 100):.4f}%")
    c4.metric("New index", f"{from_wad(plan.new_index):.8f}")
    if plan.backstop_insufficient:
        st.error(f"Backstop insufficient: shortfall {from_wad(plan.backstop.shortfall):,.2f}")


def _show_tables(pack: bytes, dfs: Dict[str, pd.DataFrame], epoch: int) -> None:
    st.download_button(
        "Download rebase pack (XLSX)",
        data=pack,
        file_name=f"rebase_pack_epoch_{epoch}.xlsx",
        mime=XLSX_MIME,
    )
    st.divider()
    tabs = st.tabs(list(dfs.keys()))
    for name, tab in zip(dfs.keys(), tabs):
        with tab:
            st.subheader(name)
            st.dataframe(dfs[name], use_container_width=True)


def workbook_mode() -> None:
    uploaded = st.file_uploader("Upload engine input workbook (Parameters / Tranches / Rebase)", type=["xlsx"])
    if uploaded is None:
        st.info("Upload an input workbook, or create one with `tranche-rebase make-sample`.")
        return
    input_bytes = uploaded.read()
    apply = st.checkbox("Apply the rebase (otherwise preview only)", value=False)

    with st.spinner("Running rebase engine..."):
        try:
            pack, dfs = cached_run_engine(input_bytes, apply)
        except (RebaseError, ValueError) as e:
            st.error(str(e))
            return

    summary = dfs["Rebase Summary"].set_index("metric")["value"]
    st.write(f"Tier **{summary['Selected Tier']}**, zone **{summary['Zone']}**, "
             f"backing **{float(summary['Backing Ratio (%)']):.4f}%**")
    _show_tables(pack, dfs, int(summary["Epoch"]))


def state_mode() -> None:
    cfg = EngineConfig.from_env()
    path = st.text_input("State file", value=cfg.state_path)
    if not Path(path).exists():
        st.info("State file not found. Create one with `tranche-rebase init`.")
        return
    orch = RebaseOrchestrator(JsonStateStore(path), cfg)

    raw_value = st.text_input("Senior market value (blank = stored value)", value="")

    try:
        senior_value = to_wad(raw_value) if raw_value.strip() else None
        plan = orch.simulate_rebase(senior_value).plan
    except RebaseError as e:
        st.warning(f"{e.kind.value}: {e}")
        return

    _show_plan(plan)
    if st.button("Apply rebase"):
        try:
            plan = orch.rebase(senior_value).plan
        except RebaseError as e:
            st.error(f"{e.kind.value}: {e}")
            return
        st.success(f"Committed epoch {plan.after.senior.epoch}")

    pack, dfs = _pack_bytes(plan, orch.params)
    _show_tables(pack, dfs, plan.after.senior.epoch)


def main():
    st.title("Senior / Junior / Reserve Rebase Engine")

    with st.sidebar:
        st.header("Mode")
        mode = st.radio("Choose input source", ["Upload workbook", "State file"], index=0)
        st.divider()
        st.caption("Workbook runs are cached per upload; state file runs read the store on every rerun.")

    st.write(
        "Select the Senior APY tier, classify the backing zone, and run spillover or backstop "
        "between Senior, Junior and Reserve. Outputs a **rebase report pack (XLSX)**."
    )

    if mode == "Upload workbook":
        workbook_mode()
    else:
        state_mode()


if __name__ == "__main__":
    main()
