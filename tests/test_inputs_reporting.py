import pandas as pd
import pytest
from openpyxl import load_workbook

from tranche_rebase.excel_writer import REPORT_SHEETS, ensure_template
from tranche_rebase.fixed_point import WAD
from tranche_rebase.inputs import parse_tiers, read_engine_inputs
from tranche_rebase.models import APYTier, RebaseParameters, TrancheId
from tranche_rebase.runner import run_rebase_engine
from tranche_rebase.scripts.make_sample_input import SAMPLE_NOW, write_sample_input


@pytest.fixture
def sample(tmp_path):
    path = tmp_path / "sample_input.xlsx"
    write_sample_input(str(path))
    return path


def test_parse_tiers():
    assert parse_tiers("1300,1200,1100") == (APYTier(3, 1300), APYTier(2, 1200), APYTier(1, 1100))
    assert parse_tiers("1500; 900") == (APYTier(2, 1500), APYTier(1, 900))


def test_read_sample_workbook(sample):
    cfg, system, request = read_engine_inputs(str(sample))
    assert cfg.params == RebaseParameters()
    assert cfg.min_rebase_interval == 86400
    assert cfg.fee_recipient == "treasury"
    assert system.senior.total_shares == 10_000_000 * WAD
    assert system.senior.rebase_index == WAD
    assert system.get(TrancheId.RESERVE).reported_value == 625_000 * WAD
    assert request.now == SAMPLE_NOW
    assert request.senior_value == 11_150_000 * WAD


def test_missing_tranche_row_rejected(tmp_path):
    path = tmp_path / "bad.xlsx"
    df = pd.DataFrame([{"tranche": "senior", "total_shares": 1, "reported_value": 1, "last_rebase_time": 0}])
    with pd.ExcelWriter(path) as xw:
        df.to_excel(xw, sheet_name="Tranches", index=False)
    with pytest.raises(ValueError, match="missing rows"):
        read_engine_inputs(str(path))


def test_run_writes_report_pack(sample, tmp_path):
    template = tmp_path / "rebase_template.xlsx"
    out = tmp_path / "rebase_pack.xlsx"
    dfs = run_rebase_engine(str(sample), str(template), str(out))

    assert template.exists() and out.exists()
    assert list(dfs) == list(REPORT_SHEETS)
    assert load_workbook(out).sheetnames == list(REPORT_SHEETS)

    summary = dfs["Rebase Summary"].set_index("metric")["value"]
    assert summary["Zone"] == "excess"
    assert summary["Selected Tier"] == 3
    assert summary["Epoch"] == 1
    assert abs(summary["Backing Ratio (%)"] - 110.18) < 0.01

    tiers = dfs["APY Tiers"]
    assert tiers["Selected"].tolist() == [True, False, False]
    assert tiers["Passes Par"].all()

    transfers = dfs["Transfers"]
    assert transfers["step"].tolist() == ["Senior -> Junior", "Senior -> Reserve"]
    assert abs(transfers["amount"].sum() - 18_369.178) < 0.01

    roll = dfs["Tranche Rollforward"].set_index("Tranche")
    assert abs(roll.loc["Junior", "Value Change"] - 14_695.342) < 0.01
    # Senior opens at the keeper value; transfers alone make up Value Change
    assert roll.loc["Senior", "Opening Value"] == 11_150_000
    assert abs(roll.loc["Senior", "Revaluation"] - 1_150_000) < 0.01
    assert abs(roll.loc["Senior", "Value Change"] + 18_369.178) < 0.01
    assert roll.loc["Junior", "Revaluation"] == 0


def test_simulate_only_reports_healthy_transfer_placeholder(tmp_path):
    path = tmp_path / "in.xlsx"
    write_sample_input(str(path))
    with pd.ExcelWriter(path, mode="a", if_sheet_exists="replace") as xw:
        pd.DataFrame([{"key": "now", "value": SAMPLE_NOW}, {"key": "senior_value", "value": 10_500_000}]).to_excel(
            xw, sheet_name="Rebase", index=False
        )
    template = tmp_path / "t.xlsx"
    ensure_template(str(template))
    dfs = run_rebase_engine(str(path), str(template), str(tmp_path / "out.xlsx"), apply=False)
    assert dfs["Transfers"]["step"].tolist() == ["No transfer (healthy zone)"]
