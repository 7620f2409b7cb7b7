from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import List, Optional

from .config import EngineConfig
from .errors import RebaseError
from .excel_writer import ensure_template
from .fixed_point import from_wad, to_wad
from .models import RebasePlan, TrancheId, TrancheSystem
from .orchestrator import RebaseOrchestrator
from .runner import run_rebase_engine
from .scripts.make_sample_input import write_sample_input
from .store import JsonStateStore, initial_system


def _amount(x: int) -> str:
    return f"{from_wad(x):,.6f}"


def _print_system(system: TrancheSystem) -> None:
    print(f"state version {system.version}")
    for t in TrancheId:
        s = system.get(t)
        print(
            f"  {t.value:<8} value={_amount(s.reported_value)} shares={_amount(s.total_shares)} "
            f"supply={_amount(s.supply)} index={from_wad(s.rebase_index)} epoch={s.epoch} "
            f"last_rebase={s.last_rebase_time}"
        )


def _print_plan(plan: RebasePlan) -> None:
    sel = plan.selection
    print(f"tier {sel.tier.tier} ({sel.tier.apy_bps / 100:.2f}% APY), elapsed {plan.elapsed_seconds}s")
    print(f"  fees: mgmt={_amount(sel.fees.management_fee_tokens)} perf={_amount(sel.fees.performance_fee_tokens)} "
          f"user={_amount(sel.fees.user_yield_tokens)}")
    print(f"  new supply={_amount(sel.new_supply)} backing={from_wad(plan.projected_backing_ratio * 100):.4f}%")
    print(f"  zone={plan.zone.value} new index={from_wad(plan.new_index)}")
    for tr in plan.transfers:
        print(f"  transfer {tr.source.value} -> {tr.destination.value}: {_amount(tr.amount)}")
    if plan.backstop_insufficient:
        print(f"  BACKSTOP INSUFFICIENT: shortfall {_amount(plan.backstop.shortfall)}")


def _orchestrator(cfg: EngineConfig, state_path: Optional[str]) -> RebaseOrchestrator:
    return RebaseOrchestrator(JsonStateStore(state_path or cfg.state_path), cfg)


def _opt_wad(raw: Optional[str]) -> Optional[int]:
    return None if raw is None else to_wad(raw)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tranche-rebase", description="Senior/Junior/Reserve tranche rebase engine")
    p.add_argument("--state", help="State file (default: TRANCHE_REBASE_STATE_PATH or rebase_state.json)")
    p.add_argument("--log-level", help="Logging level (default: TRANCHE_REBASE_LOG_LEVEL or INFO)")
    sub = p.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("init", help="Create a fresh state file")
    sp.add_argument("--senior-shares", required=True, help="Senior shares, whole tokens")
    sp.add_argument("--senior-value", help="Senior value (default: equal to shares)")
    sp.add_argument("--junior-value", default="0")
    sp.add_argument("--reserve-value", default="0")
    sp.add_argument("--now", type=int, help="Unix time of the initial rebase checkpoint")
    sp.add_argument("--overwrite", action="store_true")

    sub.add_parser("show", help="Print the stored tranche state")

    for name, help_text in (("simulate", "Preview the next rebase"), ("rebase", "Run and commit a rebase")):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("--senior-value", help="Keeper-supplied Senior market value")
        sp.add_argument("--now", type=int, help="Override the clock (unix seconds)")

    sp = sub.add_parser("update-value", help="Apply a profit/loss in basis points to a tranche value")
    sp.add_argument("--tranche", required=True, choices=[t.value for t in TrancheId])
    sp.add_argument("--bps", required=True, type=int)

    sp = sub.add_parser("set-value", help="Set a tranche's reported value")
    sp.add_argument("--tranche", required=True, choices=[t.value for t in TrancheId])
    sp.add_argument("--value", required=True)

    sp = sub.add_parser("run", help="Workbook -> rebase -> report pack")
    sp.add_argument("--input", required=True, help="Input Excel file (Parameters, Tranches, Rebase sheets)")
    sp.add_argument("--template", required=True, help="Excel template path (created if missing)")
    sp.add_argument("--output", required=True, help="Output report pack path")
    sp.add_argument("--simulate-only", action="store_true")

    sp = sub.add_parser("make-template", help="Write an empty report template")
    sp.add_argument("--out", default="rebase_template.xlsx")

    sp = sub.add_parser("make-sample", help="Write a sample input workbook")
    sp.add_argument("--out", default="sample_input.xlsx")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = EngineConfig.from_env(log_level=args.log_level.upper() if args.log_level else None)
    logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        if args.command == "init":
            shares = to_wad(args.senior_shares)
            system = initial_system(
                now=args.now if args.now is not None else int(time.time()),
                senior_shares=shares,
                senior_value=to_wad(args.senior_value) if args.senior_value else shares,
                junior_value=to_wad(args.junior_value),
                reserve_value=to_wad(args.reserve_value),
            )
            store = JsonStateStore(args.state or cfg.state_path)
            store.initialize(system, overwrite=args.overwrite)
            _print_system(store.load())

        elif args.command == "show":
            _print_system(_orchestrator(cfg, args.state).state())

        elif args.command == "simulate":
            preview = _orchestrator(cfg, args.state).simulate_rebase(_opt_wad(args.senior_value), args.now)
            _print_plan(preview.plan)

        elif args.command == "rebase":
            result = _orchestrator(cfg, args.state).rebase(_opt_wad(args.senior_value), args.now)
            _print_plan(result.plan)
            print(f"committed epoch {result.epoch}, fee shares {_amount(result.fee_shares)} to {cfg.fee_recipient}")

        elif args.command == "update-value":
            state = _orchestrator(cfg, args.state).update_reported_value(TrancheId(args.tranche), args.bps)
            print(f"{state.tranche.value} reported value: {_amount(state.reported_value)}")

        elif args.command == "set-value":
            state = _orchestrator(cfg, args.state).set_reported_value(TrancheId(args.tranche), to_wad(args.value))
            print(f"{state.tranche.value} reported value: {_amount(state.reported_value)}")

        elif args.command == "run":
            run_rebase_engine(args.input, args.template, args.output, apply=not args.simulate_only)
            print(f"Wrote rebase pack: {args.output}")

        elif args.command == "make-template":
            ensure_template(args.out)
            print(f"Created {args.out}")

        elif args.command == "make-sample":
            write_sample_input(args.out)
            print(f"Created {args.out}")

    except RebaseError as e:
        print(f"error [{e.kind.value}]: {e}", file=sys.stderr)
        return 2
    except (FileNotFoundError, FileExistsError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
