#!/usr/bin/env python3
"""Validate the local UAT case dataset before importing it."""

import argparse
import sys
from pathlib import Path
from typing import List

from common import STATUSES, ConfigError, load_cases, load_env, normalize_steps, store_settings, text_of


class ValidationError(Exception):
    pass


REQUIRED = ["case_id", "module", "test_case", "expected_result"]


def validate_records(rows: List[dict], conflict: str = "case_id", strict: bool = False) -> List[str]:
    errors = []
    warns = []
    seen = {}

    for idx, rec in enumerate(rows, start=1):
        label = text_of(rec.get("case_id")).strip() or f"row #{idx}"

        for field in REQUIRED:
            if not text_of(rec.get(field)).strip():
                errors.append(f"{label}: missing {field}")

        status = text_of(rec.get("status"))
        if status and status not in STATUSES:
            msg = f"{label}: unknown status {status!r} (expected {', '.join(STATUSES)})"
            (errors if strict else warns).append(msg)

        if not normalize_steps(rec.get("test_steps")):
            msg = f"{label}: no test steps"
            (errors if strict else warns).append(msg)

        key = text_of(rec.get(conflict)).strip()
        if not key:
            continue
        if key in seen:
            errors.append(f"Duplicate {conflict}: {key} (rows {seen[key]} and {idx})")
        else:
            seen[key] = idx

    if errors:
        raise ValidationError("\n".join(errors))
    return warns


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--data", default="", help="JSON dataset (default: UAT_DATA_PATH or data/aerplus.json)")
    parser.add_argument("--on-conflict", default="", help="Column that must be unique (default: UAT_IMPORT_CONFLICT or case_id)")
    parser.add_argument("--env-root", default=".", help="Directory holding .env / .env.local")
    parser.add_argument("--strict", action="store_true", help="Fail on unknown status values and missing steps")
    args = parser.parse_args()

    load_env(Path(args.env_root))
    settings = store_settings("import")
    rows = load_cases(Path(args.data or settings["data_path"]))
    warnings = validate_records(rows, conflict=args.on_conflict or settings["conflict"], strict=args.strict)

    if warnings:
        print(f"Warnings (non-blocking unless --strict is used): {len(warnings)}")
        limit = 20
        for w in warnings[:limit]:
            print(f" - {w}")
        if len(warnings) > limit:
            print(f" - ... {len(warnings) - limit} additional warnings omitted")

    print(f"Validation passed ({len(rows)} cases)")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except (ConfigError, ValidationError, ValueError, OSError) as exc:
        print(str(exc), file=sys.stderr)
        raise SystemExit(1)
