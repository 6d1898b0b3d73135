#!/usr/bin/env python3
"""Import the local UAT case dataset into the hosted table in batches."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List

from common import ConfigError, chunk, format_steps, load_cases, load_env, store_settings
from store_client import StoreError, configured_table


class ImportFailed(Exception):
    pass


def transform_rows(rows: List[dict], steps_as: str) -> List[dict]:
    return [{**r, "test_steps": format_steps(r.get("test_steps"), steps_as)} for r in rows]


def failure_message(exc: StoreError, index: int, count: int, conflict: str) -> str:
    status = f" (HTTP {exc.status})" if exc.status is not None else ""
    return (
        f"Import failed at batch {index}/{count}{status}.\n"
        f"{exc.body or exc.message}\n\n"
        "Common causes:\n"
        "- RLS/policy blocks INSERT/UPSERT for anon key (use SUPABASE_SERVICE_ROLE_KEY or adjust policies)\n"
        "- Column types don't match (e.g. test_steps)\n"
        f"- If using upsert: \"{conflict}\" must have UNIQUE/PRIMARY KEY constraint\n"
    )


def run_import(table, rows: List[dict], settings: dict) -> int:
    batch_size = settings["batch_size"]
    upsert = settings["import_mode"] == "upsert"
    conflict = settings["conflict"]
    transformed = transform_rows(rows, settings["steps_as"])
    batches = chunk(transformed, batch_size)

    print(
        f'Importing {len(transformed)} rows into "{settings["table"]}" in batches of {batch_size}...'
        f" (mode: {settings['import_mode']})",
    )
    for idx, batch in enumerate(batches, start=1):
        try:
            table.insert(batch, upsert=upsert, on_conflict=conflict)
        except StoreError as exc:
            raise ImportFailed(failure_message(exc, idx, len(batches), conflict)) from exc
        done = min(idx * batch_size, len(transformed))
        print(f"OK {done}/{len(transformed)}")

    print("Done.")
    return len(transformed)


def describe_plan(rows: List[dict], settings: dict) -> None:
    batches = chunk(transform_rows(rows, settings["steps_as"]), settings["batch_size"])
    print(
        f'Dry run: {len(rows)} rows for "{settings["table"]}" in {len(batches)} batches of {settings["batch_size"]}'
        f" (mode: {settings['import_mode']}, test_steps as {settings['steps_as']})",
    )
    for idx, batch in enumerate(batches, start=1):
        first = batch[0].get("case_id", "") if batch else ""
        last = batch[-1].get("case_id", "") if batch else ""
        print(f" - batch {idx}: {len(batch)} rows ({first} .. {last})")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--data", default="", help="JSON dataset (default: UAT_DATA_PATH or data/aerplus.json)")
    parser.add_argument("--table", default="", help="Remote table name (default: SUPABASE_TABLE or 'uat')")
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--mode", choices=["insert", "upsert"], default=None)
    parser.add_argument("--on-conflict", default="", help="Conflict column for upsert (default: case_id)")
    parser.add_argument("--steps-as", choices=["array", "text"], default=None)
    parser.add_argument("--env-root", default=".", help="Directory holding .env / .env.local")
    parser.add_argument("--dry-run", action="store_true", help="Show the batch plan without sending anything")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    load_env(Path(args.env_root))
    settings = store_settings("import")
    if args.table:
        settings["table"] = args.table
    if args.batch_size is not None:
        settings["batch_size"] = max(1, args.batch_size)
    if args.mode:
        settings["import_mode"] = args.mode
    if args.on_conflict:
        settings["conflict"] = args.on_conflict
    if args.steps_as:
        settings["steps_as"] = args.steps_as

    table = None if args.dry_run else configured_table(settings)
    rows = load_cases(Path(args.data or settings["data_path"]))

    if table is None:
        describe_plan(rows, settings)
        return 0

    run_import(table, rows, settings)
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except (ConfigError, ImportFailed, OSError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        raise SystemExit(1)
