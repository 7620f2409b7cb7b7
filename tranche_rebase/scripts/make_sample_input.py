from __future__ import annotations

import argparse

import pandas as pd

SAMPLE_NOW = 30 * 24 * 3600  # one nominal month after the last rebase


def write_sample_input(path: str) -> None:
    """Senior 10M at par, valued 11.15M after 30 days; lands in the excess zone."""
    parameters = pd.DataFrame(
        [
            {"key": "tier_apy_bps", "value": "1300,1200,1100"},
            {"key": "management_fee_rate", "value": 0.01},
            {"key": "performance_fee_rate", "value": 0.02},
            {"key": "target_backing", "value": 1.10},
            {"key": "trigger_backing", "value": 1.00},
            {"key": "restore_backing", "value": 1.009},
            {"key": "junior_spillover_share", "value": 0.80},
            {"key": "reserve_spillover_share", "value": 0.20},
            {"key": "min_rebase_interval", "value": 86400},
            {"key": "fee_recipient", "value": "treasury"},
        ]
    )

    tranches = pd.DataFrame(
        [
            {"tranche": "senior", "total_shares": 10000000, "rebase_index": 1, "reported_value": 10000000,
             "last_rebase_time": 0, "epoch": 0},
            {"tranche": "junior", "total_shares": 2000000, "rebase_index": 1, "reported_value": 2000000,
             "last_rebase_time": 0, "epoch": 0},
            {"tranche": "reserve", "total_shares": 625000, "rebase_index": 1, "reported_value": 625000,
             "last_rebase_time": 0, "epoch": 0},
        ]
    )

    rebase = pd.DataFrame(
        [
            {"key": "now", "value": SAMPLE_NOW},
            {"key": "senior_value", "value": 11150000},
        ]
    )

    with pd.ExcelWriter(path) as xw:
        parameters.to_excel(xw, sheet_name="Parameters", index=False)
        tranches.to_excel(xw, sheet_name="Tranches", index=False)
        rebase.to_excel(xw, sheet_name="Rebase", index=False)


def main(argv=None):
    p = argparse.ArgumentParser(description="Write a sample rebase engine input workbook.")
    p.add_argument("--out", default="sample_input.xlsx")
    args = p.parse_args(argv)
    write_sample_input(args.out)
    print(f"Created {args.out}")


if __name__ == "__main__":
    main()
