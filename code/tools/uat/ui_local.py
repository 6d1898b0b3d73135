#!/usr/bin/env python3
"""Local web UI for browsing, filtering and editing UAT test cases.

Run:
  python3 code/tools/uat/ui_local.py
Then open http://127.0.0.1:8766
"""

import argparse
import json
import logging
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import List, Optional
from urllib.parse import parse_qs, urlparse

from case_table import (
    case_from_form,
    fetch_rows,
    filter_rows,
    form_from_case,
    module_options,
    save_case,
    statistics,
    status_variant,
    unique_modules,
)
from common import EDITABLE_FIELDS, ConfigError, load_env, store_settings
from store_client import StoreError, configured_table

HTML = """<!doctype html>
<html>
<head>
<meta charset='utf-8' />
<title>UAT Test Cases</title>
<style>
body { font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, sans-serif; margin: 24px; background: #f6f7f9; }
.wrap { max-width: 1280px; margin: 0 auto; background: #fff; border: 1px solid #d9dde3; border-radius: 10px; padding: 20px; }
.grid3 { display: grid; grid-template-columns: repeat(3, minmax(0, 1fr)); gap: 18px; }
.grid4 { display: grid; grid-template-columns: repeat(4, minmax(0, 1fr)); gap: 14px; }
.card { border: 1px solid #d9dde3; border-radius: 8px; padding: 14px; text-align: center; }
.card .n { font-size: 28px; font-weight: 700; }
.card.pass { background: #effaf1; color: #1f6b33; }
.card.fail { background: #fdf0f0; color: #9b2222; }
.card.pending { background: #fdf8e8; color: #8a6400; }
label { font-size: 12px; color: #4d5663; font-weight: 600; display: block; margin-bottom: 6px; }
input, textarea, select { width: 100%; padding: 10px; border: 1px solid #cfd6e0; border-radius: 6px; font-size: 13px; box-sizing: border-box; }
textarea { min-height: 64px; }
.row { margin-bottom: 16px; }
button { background: #0b57d0; color: white; border: 0; border-radius: 6px; padding: 8px 12px; font-size: 13px; cursor: pointer; }
button.secondary { background: #4d5968; }
button.ghost { background: transparent; color: #334455; }
button:disabled { opacity: 0.6; cursor: default; }
small { color: #5f6977; }
table { width: 100%; border-collapse: collapse; font-size: 13px; }
th, td { text-align: left; padding: 8px; border-bottom: 1px solid #e6e9ee; vertical-align: top; }
tr.open { background: #f3f5f8; }
td.detail { background: #fafbfc; }
.mono { font-family: ui-monospace, monospace; font-size: 12px; }
.badge { display: inline-block; padding: 2px 8px; border-radius: 10px; font-size: 12px; font-weight: 600; }
.badge.success { background: #dcf3e2; color: #1f6b33; }
.badge.destructive { background: #f9dcdc; color: #9b2222; }
.badge.warning { background: #fbefc6; color: #8a6400; }
.badge.secondary { background: #e6e9ee; color: #334455; }
.err { color: #ad2b2b; }
.empty { text-align: center; color: #5f6977; padding: 30px; }
dialog { border: 1px solid #d9dde3; border-radius: 10px; width: 600px; max-height: 90vh; }
#toast { position: fixed; right: 24px; bottom: 24px; padding: 12px 16px; border-radius: 8px; color: #fff; display: none; max-width: 360px; }
#toast.success { background: #1f6b33; display: block; }
#toast.error { background: #9b2222; display: block; }
</style>
</head>
<body>
<div class='wrap'>
  <h2>UAT Test Cases</h2>
  <p><small id='summary'>Loading data...</small> <small class='err' id='loadError'></small></p>

  <div class='grid4 row'>
    <div class='card'><div>Total</div><div class='n' id='stat_total'>-</div></div>
    <div class='card pass'><div>Pass</div><div class='n' id='stat_pass'>-</div><small id='stat_pass_pct'></small></div>
    <div class='card fail'><div>Fail</div><div class='n' id='stat_fail'>-</div><small id='stat_fail_pct'></small></div>
    <div class='card pending'><div>Pending</div><div class='n' id='stat_pending'>-</div><small id='stat_pending_pct'></small></div>
  </div>

  <div class='grid3 row'>
    <div>
      <label for='search'>Search</label>
      <input id='search' placeholder='Search Case ID, Module, Test Case...' oninput='scheduleRefresh()'>
    </div>
    <div>
      <label for='module'>Filter module</label>
      <select id='module' onchange='refresh()'><option value=''>All modules</option></select>
    </div>
    <div>
      <label for='status'>Filter status</label>
      <select id='status' onchange='refresh()'>
        <option value=''>All statuses</option>
        <option value='Pass'>Pass</option>
        <option value='Fail'>Fail</option>
        <option value='Pending'>Pending</option>
      </select>
    </div>
  </div>

  <div class='row'><button class='secondary' onclick='reloadCases()'>Reload from database</button></div>

  <table>
    <thead>
      <tr><th>No</th><th>Case ID</th><th>Module</th><th>Test Case</th><th>Expected Result</th><th>Status</th><th>Actions</th><th></th></tr>
    </thead>
    <tbody id='rows'></tbody>
  </table>
</div>

<dialog id='editDialog'>
  <h3>Edit Test Case</h3>
  <p><small>Update all information of this test case.</small></p>
  <div class='row'><label>Case ID *</label><input id='f_case_id'></div>
  <div class='row'><label>Module *</label><input id='f_module'></div>
  <div class='row'><label>Test Case *</label><textarea id='f_test_case' rows='2'></textarea></div>
  <div class='row'><label>Test Steps (one per line)</label><textarea id='f_test_steps' rows='4' placeholder='Step 1&#10;Step 2&#10;Step 3'></textarea></div>
  <div class='row'><label>Expected Result *</label><textarea id='f_expected_result' rows='2'></textarea></div>
  <div class='row'><label>Actual Result</label><textarea id='f_actual_result' rows='2'></textarea></div>
  <div class='row'>
    <label>Status *</label>
    <select id='f_status'>
      <option value='Pass'>Pass</option>
      <option value='Fail'>Fail</option>
      <option value='Pending'>Pending</option>
    </select>
  </div>
  <div class='row'><label>Note</label><textarea id='f_note' rows='3' placeholder='Add a note for this test case...'></textarea></div>
  <div style='display:flex; gap:10px; justify-content:flex-end;'>
    <button class='secondary' id='cancelBtn' onclick='closeEdit()'>Cancel</button>
    <button id='saveBtn' onclick='saveEdit()'>Save</button>
  </div>
</dialog>

<div id='toast'></div>

<script>
const FIELDS = ['case_id','module','test_case','test_steps','expected_result','actual_result','status','note'];
let shownRows = [];
let expanded = null;
let editing = null;
let refreshTimer = null;

function v(id){ return document.getElementById(id).value || ''; }
function esc(s){
  return String(s === null || s === undefined ? '' : s)
    .replace(/&/g,'&amp;').replace(/</g,'&lt;').replace(/>/g,'&gt;').replace(/"/g,'&quot;').replace(/'/g,'&#39;');
}
function steps(value){
  if (Array.isArray(value)) return value;
  if (typeof value === 'string') return value.split('\\n').map(s => s.trim()).filter(Boolean);
  return [];
}
function toast(message, kind){
  const el = document.getElementById('toast');
  el.textContent = message;
  el.className = kind;
  setTimeout(() => { el.className = ''; }, 4000);
}

async function req(path, payload){
  let r;
  try {
    r = await fetch(path, {method:'POST', headers:{'Content-Type':'application/json'}, body: JSON.stringify(payload || {})});
  } catch (err) {
    throw new Error(`Could not reach local server while calling ${path}. The UI server may have stopped.`);
  }
  let j = {};
  try {
    j = await r.json();
  } catch (err) {
    throw new Error(`Server returned an unreadable response for ${path} (HTTP ${r.status}).`);
  }
  if(!r.ok){ throw new Error(j.error || ('HTTP '+r.status)); }
  return j;
}

function render(j){
  shownRows = j.rows || [];
  document.getElementById('summary').textContent = `Showing ${j.shown} of ${j.total} test cases`;
  document.getElementById('loadError').textContent = j.error ? `Error: ${j.error}` : '';
  const s = j.statistics || {};
  for (const k of ['total','pass','fail','pending']) document.getElementById('stat_'+k).textContent = s[k] ?? 0;
  for (const k of ['pass','fail','pending']) document.getElementById('stat_'+k+'_pct').textContent = `${s[k+'_pct'] ?? 0}%`;
  const sel = document.getElementById('module');
  const current = sel.value;
  sel.innerHTML = '';
  (j.module_options || []).forEach(o => { const opt = document.createElement('option'); opt.value = o.value; opt.textContent = o.label; sel.appendChild(opt); });
  sel.value = current;
  if (sel.value !== current) sel.value = '';
  renderRows();
}

function renderRows(){
  const body = document.getElementById('rows');
  if (!shownRows.length) {
    body.innerHTML = "<tr><td colspan='8' class='empty'>No matching test cases</td></tr>";
    return;
  }
  const html = [];
  shownRows.forEach((item, index) => {
    const open = expanded === index;
    html.push(`<tr class='${open ? 'open' : ''}'>
      <td>${index + 1}</td>
      <td class='mono'>${esc(item.case_id)}</td>
      <td>${esc(item.module)}</td>
      <td>${esc(item.test_case)}</td>
      <td><small>${esc(item.expected_result)}</small></td>
      <td><span class='badge ${esc(item.variant)}'>${esc(item.status || 'Pending')}</span></td>
      <td><button class='secondary' onclick='openEdit(${index})' aria-label='Edit test case'>Edit</button></td>
      <td><button class='ghost' onclick='toggleRow(${index})' aria-label='Toggle details'>${open ? '&#9650;' : '&#9660;'}</button></td>
    </tr>`);
    if (open) {
      const list = steps(item.test_steps).map(st => `<li>${esc(st)}</li>`).join('');
      let detail = `<b>Test Steps:</b><ol>${list}</ol>`;
      if (item.actual_result) detail += `<b>Actual Result:</b><p>${esc(item.actual_result)}</p>`;
      if (item.note) detail += `<b>Note:</b><p style='white-space:pre-wrap'>${esc(item.note)}</p>`;
      html.push(`<tr><td colspan='8' class='detail'>${detail}</td></tr>`);
    }
  });
  body.innerHTML = html.join('');
}

function toggleRow(index){
  expanded = expanded === index ? null : index;
  renderRows();
}

function query(){
  const qs = new URLSearchParams({search: v('search'), module: v('module'), status: v('status')});
  return '/api/cases?' + qs.toString();
}

async function refresh(){
  try {
    const r = await fetch(query());
    const j = await r.json();
    if (!r.ok) throw new Error(j.error || ('HTTP ' + r.status));
    expanded = null;
    render(j);
  } catch (err) {
    document.getElementById('loadError').textContent = String(err);
  }
}

function scheduleRefresh(){
  clearTimeout(refreshTimer);
  refreshTimer = setTimeout(refresh, 200);
}

async function reloadCases(){
  document.getElementById('summary').textContent = 'Loading data...';
  try {
    await req('/api/reload', {});
    await refresh();
  } catch (err) {
    document.getElementById('loadError').textContent = String(err);
  }
}

function openEdit(index){
  editing = shownRows[index];
  for (const f of FIELDS) document.getElementById('f_' + f).value = editing.form[f] || '';
  document.getElementById('editDialog').showModal();
}

function closeEdit(){
  document.getElementById('editDialog').close();
  editing = null;
}

async function saveEdit(){
  if (!editing) return;
  const form = {};
  for (const f of FIELDS) form[f] = v('f_' + f);
  const btns = [document.getElementById('saveBtn'), document.getElementById('cancelBtn')];
  btns.forEach(b => { b.disabled = true; });
  try {
    const out = await req('/api/update_case', {id: editing.id, form});
    toast(out.message || 'Test case updated', 'success');
    closeEdit();
    await refresh();
  } catch (err) {
    toast(String(err.message || err), 'error');
  } finally {
    btns.forEach(b => { b.disabled = false; });
  }
}

refresh();
window.addEventListener('unload', () => {
  if (navigator.sendBeacon) {
    navigator.sendBeacon('/api/shutdown', new Blob([JSON.stringify({})], {type: 'application/json'}));
  }
});
setInterval(() => { fetch('/api/ping').catch(() => {}); }, 2000);
</script>
</body></html>"""

logger = logging.getLogger(__name__)


class App:
    def __init__(self, table=None, steps_as: str = "array", config_error: str = ""):
        self.table = table
        self.steps_as = steps_as
        self.rows: List[dict] = []
        self.load_error = config_error
        self.lock = threading.Lock()
        self.last_ping = time.time()
        self.idle_timeout_seconds = 300

    def reload(self) -> None:
        if self.table is None:
            return
        try:
            rows = fetch_rows(self.table)
        except StoreError as exc:
            logger.error("Loading cases failed: %s", exc)
            with self.lock:
                self.rows = []
                self.load_error = f"{exc} (table: {self.table.table})"
            return
        with self.lock:
            self.rows = rows
            self.load_error = ""

    def view(self, search: str = "", module: str = "", status: str = "") -> dict:
        with self.lock:
            rows = list(self.rows)
            error = self.load_error
        shown = filter_rows(rows, search, module, status)
        return {
            "rows": [dict(r, variant=status_variant(r.get("status")), form=form_from_case(r)) for r in shown],
            "shown": len(shown),
            "total": len(rows),
            "statistics": statistics(rows),
            "modules": unique_modules(rows),
            "module_options": module_options(rows),
            "error": error,
        }

    def save(self, case_id, form: dict) -> dict:
        if self.table is None:
            raise ValueError(self.load_error or "Store client not configured")
        form = {f: form[f] for f in EDITABLE_FIELDS if f in form}
        with self.lock:
            row = next((r for r in self.rows if r.get("id") == case_id), None)
            if row is None:
                raise ValueError(f"Unknown test case id: {case_id}")
            item = case_from_form(row, form)
            try:
                self.rows = save_case(self.table, self.rows, item, self.steps_as)
            except StoreError as exc:
                raise ValueError(f"Save failed: {exc}") from exc
            return next((r for r in self.rows if r.get("id") == case_id), item)


class Handler(BaseHTTPRequestHandler):
    app: Optional[App] = None

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def _send_json(self, payload: dict, status: int = 200):
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _send_html(self, html: str):
        data = html.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _read_json(self):
        n = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(n) if n > 0 else b"{}"
        return json.loads(raw.decode("utf-8"))

    def do_GET(self):
        self.app.last_ping = time.time()
        parsed = urlparse(self.path)
        if parsed.path == "/":
            self._send_html(HTML)
            return

        if parsed.path == "/api/cases":
            qs = parse_qs(parsed.query)
            self._send_json(
                self.app.view(
                    search=(qs.get("search") or [""])[0],
                    module=(qs.get("module") or [""])[0],
                    status=(qs.get("status") or [""])[0],
                )
            )
            return

        if parsed.path == "/api/ping":
            self._send_json({"ok": True})
            return

        self._send_json({"error": "Not found"}, 404)

    def do_POST(self):
        self.app.last_ping = time.time()
        try:
            if self.path == "/api/reload":
                self.app.reload()
                self._send_json(self.app.view())
                return

            if self.path == "/api/update_case":
                data = self._read_json()
                form = data.get("form")
                if not isinstance(form, dict):
                    raise ValueError("form is required")
                record = self.app.save(data.get("id"), form)
                self._send_json({"ok": True, "record": record, "message": "Test case updated"})
                return

            if self.path == "/api/shutdown":
                self._send_json({"ok": True, "message": "Shutting down"})
                threading.Thread(target=self.server.shutdown, daemon=True).start()
                return

            self._send_json({"error": "Not found"}, 404)
        except Exception as exc:  # pylint: disable=broad-except
            self._send_json({"error": str(exc)}, 400)


def idle_guard(app: App, httpd, poll_seconds: float = 1.0) -> None:
    while True:
        time.sleep(poll_seconds)
        if time.time() - app.last_ping > app.idle_timeout_seconds:
            logger.info("No UI activity for %ss; shutting down", app.idle_timeout_seconds)
            httpd.shutdown()
            return


def build_app(args) -> App:
    settings = store_settings("viewer")
    if args.table:
        settings["table"] = args.table
    steps_as = args.steps_as or settings["steps_as"]
    try:
        table = configured_table(settings)
    except ConfigError as exc:
        logger.warning("%s", exc)
        return App(None, steps_as, f"Store client not configured. {exc}")
    return App(table, steps_as)


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8766)
    parser.add_argument("--table", default="", help="Remote table name (default: SUPABASE_TABLE or 'uat')")
    parser.add_argument("--steps-as", choices=["array", "text"], default=None, help="Storage format of test_steps")
    parser.add_argument("--env-root", default=".", help="Directory holding .env / .env.local")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    load_env(Path(args.env_root))
    app = build_app(args)
    app.reload()
    Handler.app = app

    httpd = ThreadingHTTPServer((args.host, args.port), Handler)
    threading.Thread(target=idle_guard, args=(app, httpd), daemon=True).start()

    print(f"UAT case viewer running at http://{args.host}:{args.port}")
    print("The server stops automatically when the UI window/tab closes.")
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        raise SystemExit(1)
