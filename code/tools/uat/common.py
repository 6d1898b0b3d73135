#!/usr/bin/env python3
"""Common utilities for UAT case tooling."""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv

STATUSES = ["Pass", "Fail", "Pending"]
DEFAULT_STATUS = "Pending"

EDITABLE_FIELDS = [
    "case_id",
    "module",
    "test_case",
    "test_steps",
    "expected_result",
    "actual_result",
    "status",
    "note",
]

SEARCH_FIELDS = ["case_id", "module", "test_case", "expected_result", "actual_result"]

STEPS_FORMATS = {"array", "text"}
IMPORT_MODES = {"insert", "upsert"}

URL_VARS = ["SUPABASE_URL", "VITE_SUPABASE_URL"]
TABLE_VARS = ["SUPABASE_TABLE", "VITE_SUPABASE_TABLE"]
KEY_VARS = {
    "viewer": ["SUPABASE_ANON_KEY", "VITE_SUPABASE_PUBLISHABLE_DEFAULT_KEY", "SUPABASE_SERVICE_ROLE_KEY"],
    "import": ["SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_ANON_KEY", "VITE_SUPABASE_PUBLISHABLE_DEFAULT_KEY"],
}


class ConfigError(Exception):
    pass


def now_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def text_of(value) -> str:
    if value is None:
        return ""
    return str(value)


def normalize_steps(value) -> List[str]:
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [s.strip() for s in value.split("\n") if s.strip()]
    return []


def steps_to_text(value) -> str:
    return "\n".join(text_of(s) for s in normalize_steps(value))


def format_steps(value, steps_as: str = "array"):
    if steps_as == "text":
        return steps_to_text(value)
    return normalize_steps(value)


def chunk(items: list, size: int) -> List[list]:
    size = max(1, int(size))
    return [items[i : i + size] for i in range(0, len(items), size)]


def load_env(root: Path = Path(".")) -> None:
    # .env.local cannot override .env here; shell variables win over both.
    for name in (".env", ".env.local"):
        path = Path(root) / name
        if path.exists():
            load_dotenv(path, override=False)


def first_env(names: List[str], default: str = "") -> str:
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return default


def store_settings(purpose: str = "viewer") -> Dict[str, object]:
    if purpose not in KEY_VARS:
        raise ConfigError(f"Unknown settings purpose: {purpose}")

    steps_as = first_env(["UAT_TEST_STEPS_AS"], "array").lower()
    if steps_as not in STEPS_FORMATS:
        raise ConfigError(f"UAT_TEST_STEPS_AS must be one of {sorted(STEPS_FORMATS)}; got {steps_as!r}")

    import_mode = first_env(["UAT_IMPORT_MODE"], "insert").lower()
    if purpose == "import" and import_mode not in IMPORT_MODES:
        raise ConfigError(f"UAT_IMPORT_MODE must be one of {sorted(IMPORT_MODES)}; got {import_mode!r}")

    raw_batch = first_env(["UAT_IMPORT_BATCH_SIZE"], "200")
    try:
        batch_size = max(1, int(raw_batch))
    except ValueError:
        raise ConfigError(f"UAT_IMPORT_BATCH_SIZE must be an integer; got {raw_batch!r}") from None

    return {
        "url": first_env(URL_VARS),
        "key": first_env(KEY_VARS[purpose]),
        "key_vars": KEY_VARS[purpose],
        "table": first_env(TABLE_VARS, "uat"),
        "steps_as": steps_as,
        "batch_size": batch_size,
        "import_mode": import_mode,
        "conflict": first_env(["UAT_IMPORT_CONFLICT"], "case_id"),
        "data_path": first_env(["UAT_DATA_PATH"], "data/aerplus.json"),
    }


def load_cases(path: Path) -> List[dict]:
    path = Path(path)
    rows = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise ValueError(f"Expected {path.name} to be an array of objects.")
    return rows


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
