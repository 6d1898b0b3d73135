#!/usr/bin/env python3
"""Generate a markdown status report for UAT test cases."""

import argparse
import sys
from pathlib import Path
from typing import List

from case_table import fetch_rows, statistics, status_of, unique_modules
from common import ConfigError, ensure_parent, load_cases, load_env, now_utc, store_settings, text_of
from store_client import StoreError, configured_table


def module_breakdown(rows: List[dict]) -> List[dict]:
    out = []
    for module in unique_modules(rows) + [""]:
        members = [r for r in rows if text_of(r.get("module")) == module]
        if not members:
            continue
        stats = statistics(members)
        stats["module"] = module or "(no module)"
        out.append(stats)
    return out


def cell(value) -> str:
    return text_of(value).replace("|", "\\|").replace("\n", " ")


def render_report(rows: List[dict], source: str) -> str:
    stats = statistics(rows)
    failing = [r for r in rows if status_of(r).lower() == "fail"]

    lines = [
        "# UAT Status Report",
        "",
        f"- Generated: {now_utc()}",
        f"- Source: {source}",
        f"- Total cases: {stats['total']}",
        f"- Pass: {stats['pass']} ({stats['pass_pct']}%)",
        f"- Fail: {stats['fail']} ({stats['fail_pct']}%)",
        f"- Pending: {stats['pending']} ({stats['pending_pct']}%)",
        "",
        "## By Module",
        "",
        "| Module | Total | Pass | Fail | Pending |",
        "|---|---|---|---|---|",
    ]
    for m in module_breakdown(rows):
        lines.append(f"| {cell(m['module'])} | {m['total']} | {m['pass']} | {m['fail']} | {m['pending']} |")

    lines += ["", "## Failing Cases", ""]
    if not failing:
        lines.append("None.")
    for r in failing:
        actual = text_of(r.get("actual_result")).strip()
        tail = f": {cell(actual)}" if actual else ""
        lines.append(f"- `{cell(r.get('case_id'))}` [{cell(r.get('module'))}] {cell(r.get('test_case'))}{tail}")
    return "\n".join(lines) + "\n"


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--data", default="", help="Read cases from this JSON file instead of the remote table")
    parser.add_argument("--table", default="", help="Remote table name (default: SUPABASE_TABLE or 'uat')")
    parser.add_argument("--env-root", default=".", help="Directory holding .env / .env.local")
    parser.add_argument("--out", default="reports/uat_status.md")
    args = parser.parse_args()

    load_env(Path(args.env_root))
    if args.data:
        rows = load_cases(Path(args.data))
        source = args.data
    else:
        settings = store_settings("viewer")
        if args.table:
            settings["table"] = args.table
        table = configured_table(settings)
        rows = fetch_rows(table)
        source = f"table {settings['table']}"

    out = Path(args.out)
    ensure_parent(out)
    out.write_text(render_report(rows, source), encoding="utf-8")
    print(f"Wrote status report for {len(rows)} cases to {out}")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except (ConfigError, StoreError, ValueError, OSError) as exc:
        print(str(exc), file=sys.stderr)
        raise SystemExit(1)
