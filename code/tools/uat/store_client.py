#!/usr/bin/env python3
"""Minimal client for a hosted PostgREST table (Supabase REST API)."""

import logging
from typing import Dict, List, Optional
from urllib.parse import quote

import requests

from common import ConfigError

logger = logging.getLogger(__name__)


class StoreError(Exception):
    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body


def error_message(response) -> str:
    text = response.text or ""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return text.strip() or f"HTTP {response.status_code}"


class RemoteTable:
    def __init__(self, url: str, key: str, table: str, session=None, timeout: float = 30):
        self.base_url = url.rstrip("/")
        self.key = key
        self.table = table
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/rest/v1/{quote(self.table, safe='')}"

    def headers(self, prefer: str = "") -> Dict[str, str]:
        out = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
        }
        if prefer:
            out["Prefer"] = prefer
        return out

    def _request(self, method: str, params=None, payload=None, prefer: str = ""):
        logger.debug("%s %s params=%s", method, self.endpoint, params)
        try:
            response = self.session.request(
                method,
                self.endpoint,
                params=params,
                json=payload,
                headers=self.headers(prefer),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise StoreError(f"Could not reach {self.base_url}: {exc}") from exc
        if not response.ok:
            raise StoreError(error_message(response), response.status_code, response.text or "")
        return response

    def select_all(self, order: str, ascending: bool = True, page_size: int = 1000) -> List[dict]:
        rows: List[dict] = []
        direction = "asc" if ascending else "desc"
        offset = 0
        while True:
            params = {
                "select": "*",
                "order": f"{order}.{direction}",
                "limit": str(page_size),
                "offset": str(offset),
            }
            response = self._request("GET", params=params)
            try:
                data = response.json()
            except ValueError:
                raise StoreError(f"Invalid JSON from {self.base_url}", response.status_code, response.text or "") from None
            page = data if isinstance(data, list) else []
            rows.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
        return rows

    def update(self, match: Dict[str, object], fields: Dict[str, object]) -> None:
        if not match:
            raise ValueError("update requires at least one match column")
        params = {col: f"eq.{value}" for col, value in match.items()}
        self._request("PATCH", params=params, payload=fields, prefer="return=minimal")

    def insert(self, rows: List[dict], upsert: bool = False, on_conflict: str = "case_id") -> None:
        if upsert:
            self._request(
                "POST",
                params={"on_conflict": on_conflict},
                payload=rows,
                prefer="resolution=merge-duplicates,return=minimal",
            )
            return
        self._request("POST", payload=rows, prefer="return=minimal")


def configured_table(settings: dict, session=None) -> RemoteTable:
    missing = []
    if not settings.get("url"):
        missing.append("SUPABASE_URL")
    if not settings.get("key"):
        missing.append(" or ".join(settings.get("key_vars", ["SUPABASE_ANON_KEY"])))
    if missing:
        raise ConfigError(
            f"Missing {', '.join(missing)}. "
            "Create a .env file (copy from env.example) or set the variables in your shell."
        )
    return RemoteTable(settings["url"], settings["key"], settings["table"], session=session)
