#!/usr/bin/env python3
"""In-memory UAT case table: loading, filter options, statistics, search and edits.

Rows are plain dicts as returned by the remote store. Nothing here caches or
persists; callers keep the row list and replace it with the value returned by
``save_case`` after a successful edit.
"""

import logging
import math
from typing import Dict, List

from common import (
    DEFAULT_STATUS,
    EDITABLE_FIELDS,
    SEARCH_FIELDS,
    STATUSES,
    format_steps,
    normalize_steps,
    steps_to_text,
    text_of,
)
from store_client import StoreError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["case_id", "module", "test_case", "expected_result"]

STATUS_VARIANTS = {
    "pass": "success",
    "fail": "destructive",
    "pending": "warning",
}


def fetch_rows(table) -> List[dict]:
    try:
        return table.select_all(order="id")
    except StoreError as exc:
        logger.warning("Ordering by id failed (%s); retrying with case_id", exc)
    return table.select_all(order="case_id")


def unique_modules(rows: List[dict]) -> List[str]:
    return sorted({text_of(r.get("module")) for r in rows if r.get("module")})


def module_options(rows: List[dict]) -> List[Dict[str, str]]:
    return [{"value": "", "label": "All modules"}] + [{"value": m, "label": m} for m in unique_modules(rows)]


def status_of(row: dict) -> str:
    return text_of(row.get("status")) or DEFAULT_STATUS


def percent(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(math.floor(part * 100 / total + 0.5))


def statistics(rows: List[dict]) -> Dict[str, int]:
    stats = {"total": len(rows), "pass": 0, "fail": 0, "pending": 0}
    for row in rows:
        status = status_of(row).lower()
        if status == "pass":
            stats["pass"] += 1
        elif status == "fail":
            stats["fail"] += 1
        else:
            stats["pending"] += 1
    for key in ("pass", "fail", "pending"):
        stats[f"{key}_pct"] = percent(stats[key], stats["total"])
    return stats


def searchable_text(row: dict) -> List[str]:
    values = [text_of(row.get(f)) for f in SEARCH_FIELDS]
    values.append(" ".join(text_of(s) for s in normalize_steps(row.get("test_steps"))))
    return values


def matches_search(row: dict, term: str) -> bool:
    term = text_of(term).strip().lower()
    if not term:
        return True
    return any(term in value.lower() for value in searchable_text(row))


def filter_rows(rows: List[dict], search: str = "", module: str = "", status: str = "") -> List[dict]:
    out = []
    for row in rows:
        if not matches_search(row, search):
            continue
        if module and text_of(row.get("module")) != module:
            continue
        if status and status_of(row) != status:
            continue
        out.append(row)
    return out


def status_variant(status) -> str:
    return STATUS_VARIANTS.get((text_of(status) or "pending").lower(), "secondary")


def form_from_case(row: dict) -> Dict[str, str]:
    form = {f: text_of(row.get(f)) for f in EDITABLE_FIELDS}
    form["test_steps"] = steps_to_text(row.get("test_steps"))
    form["status"] = status_of(row)
    return form


def case_from_form(row: dict, form: dict) -> dict:
    item = dict(row)
    item.update(form)
    item["test_steps"] = normalize_steps(form["test_steps"] if "test_steps" in form else row.get("test_steps"))
    return item


def validate_case(item: dict) -> List[str]:
    errors: List[str] = []
    if item.get("id") in (None, ""):
        errors.append("Missing record id")
    for field in REQUIRED_FIELDS:
        if not text_of(item.get(field)).strip():
            errors.append(f"Missing required field: {field}")
    status = text_of(item.get("status"))
    if status not in STATUSES:
        errors.append(f"status must be one of {', '.join(STATUSES)}; got {status!r}")
    return errors


def update_payload(item: dict, steps_as: str = "array") -> dict:
    payload = {f: item.get(f) for f in EDITABLE_FIELDS}
    payload["test_steps"] = format_steps(item.get("test_steps"), steps_as)
    return payload


def merge_row(rows: List[dict], item: dict) -> List[dict]:
    return [{**row, **item} if row.get("id") == item.get("id") else row for row in rows]


def save_case(table, rows: List[dict], item: dict, steps_as: str = "array") -> List[dict]:
    errors = validate_case(item)
    if errors:
        raise ValueError("\n".join(errors))
    table.update({"id": item["id"]}, update_payload(item, steps_as))
    return merge_row(rows, item)
