# src/cli/stage_report.py
"""
Pending / history counts per stage, or one stage tab as CSV.

  python -m src.cli.stage_report
  python -m src.cli.stage_report --stage dispatch --tab pending --out dispatch.csv
  python -m src.cli.stage_report --stage installation --q sitapur --filter district=Sitapur
"""
from __future__ import annotations
import argparse
import sys
from typing import Dict, List, Optional

from src.utils.csv_io import write_dicts_csv
from src.workflow import service
from src.workflow.records import PORTAL_FIELDS, TABS
from src.workflow.stages import STAGES, get_stage

def _parse_filters(pairs: List[str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise SystemExit(f"--filter expects name=value, got {pair!r}")
        name, value = pair.split("=", 1)
        out[name.strip()] = value.strip()
    return out

def print_counts() -> None:
    print(f"{'step':>4}  {'stage':<20} {'pending':>8} {'history':>8}")
    for stage in STAGES:
        buckets = service.fetch_stage(stage)
        print(f"{stage.step:>4}  {stage.key:<20} {len(buckets.pending):>8} {len(buckets.history):>8}")

def export_tab(stage_key: str, tab: str, q: Optional[str], filters: Dict[str, str], out_path: Optional[str]) -> int:
    stage = get_stage(stage_key)
    view = service.stage_view(stage, tab, q, filters)
    columns = [*PORTAL_FIELDS, *(f.name for f in stage.fields), *stage.extra_columns, "planned", "actual"]
    if out_path:
        with open(out_path, "w", encoding="utf-8", newline="") as fh:
            n = write_dicts_csv(view["items"], fh, columns)
        print(f"[OK] {n} rows -> {out_path}", file=sys.stderr)
    else:
        n = write_dicts_csv(view["items"], sys.stdout, columns)
    return n

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Workflow stage counts / CSV export")
    ap.add_argument("--stage", choices=[s.key for s in STAGES], help="Export this stage instead of printing counts")
    ap.add_argument("--tab", choices=list(TABS), default="pending")
    ap.add_argument("--q", help="Case-insensitive search")
    ap.add_argument("--filter", action="append", default=[], help="Exact-match filter name=value (repeatable)")
    ap.add_argument("--out", help="CSV path (default stdout)")
    args = ap.parse_args(argv)

    if not args.stage:
        print_counts()
        return 0
    export_tab(args.stage, args.tab, args.q, _parse_filters(args.filter), args.out)
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
