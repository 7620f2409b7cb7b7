from __future__ import annotations

import argparse

from tranche_rebase.excel_writer import ensure_template


def main(argv=None):
    p = argparse.ArgumentParser(description="Write an empty rebase report template.")
    p.add_argument("--out", default="rebase_template.xlsx")
    args = p.parse_args(argv)
    ensure_template(args.out)
    print(f"Created {args.out}")


if __name__ == "__main__":
    main()
