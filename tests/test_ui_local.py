import threading
import time
from http.server import ThreadingHTTPServer

import pytest
import requests

from store_client import RemoteTable
from ui_local import App, Handler, idle_guard


@pytest.fixture()
def serve():
    servers = []

    def start(app):
        Handler.app = app
        httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        threading.Thread(target=httpd.serve_forever, daemon=True).start()
        servers.append(httpd)
        return f"http://127.0.0.1:{httpd.server_address[1]}"

    yield start
    for httpd in servers:
        httpd.shutdown()
        httpd.server_close()


def start_server(app):
    Handler.app = app
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    return httpd, thread


def loaded_app(table):
    app = App(table)
    app.reload()
    return app


def test_index_page(serve, make_table, cases):
    base = serve(loaded_app(make_table(cases)))
    r = requests.get(base + "/", timeout=5)
    assert r.status_code == 200
    assert "text/html" in r.headers["Content-Type"]
    assert "UAT Test Cases" in r.text


def test_cases_endpoint_filters_but_counts_everything(serve, make_table, cases):
    base = serve(loaded_app(make_table(cases)))
    j = requests.get(base + "/api/cases", params={"module": "Login", "search": "wrong"}, timeout=5).json()

    assert j["shown"] == 1
    assert j["total"] == 4
    assert j["rows"][0]["case_id"] == "UAT-002"
    assert j["rows"][0]["variant"] == "destructive"
    assert j["rows"][0]["form"]["test_steps"] == "Open login page\nType wrong password"
    assert j["rows"][0]["form"]["note"] == "Reported to dev"
    assert j["statistics"]["pending"] == 2
    assert j["modules"] == ["Booking", "Login"]
    assert j["module_options"][0]["label"] == "All modules"
    assert j["error"] == ""


def test_update_case_merges_locally(serve, make_table, cases):
    table = make_table(cases)
    base = serve(loaded_app(table))
    row = requests.get(base + "/api/cases", params={"search": "create booking"}, timeout=5).json()["rows"][0]
    form = dict(row["form"], status="Pass", actual_result="Booking confirmed", test_steps="Open form\n\n  Submit  ")

    r = requests.post(base + "/api/update_case", json={"id": row["id"], "form": form}, timeout=5)
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["record"]["status"] == "Pass"
    assert body["record"]["test_steps"] == ["Open form", "Submit"]
    assert "variant" not in body["record"]
    assert "form" not in body["record"]

    op, match, fields = table.calls[-1]
    assert op == "update"
    assert match == {"id": 3}
    assert fields["test_steps"] == ["Open form", "Submit"]
    assert "variant" not in fields

    j = requests.get(base + "/api/cases", params={"status": "Pass"}, timeout=5).json()
    assert [r["id"] for r in j["rows"]] == [1, 3]
    assert j["rows"][1]["form"]["test_steps"] == "Open form\nSubmit"


def test_update_case_stores_text_steps(serve, make_table, cases):
    table = make_table(cases)
    app = loaded_app(table)
    app.steps_as = "text"
    base = serve(app)
    form = {"test_steps": "Open login page\nSubmit credentials\nSee dashboard"}

    r = requests.post(base + "/api/update_case", json={"id": 1, "form": form}, timeout=5)
    assert r.status_code == 200
    assert r.json()["record"]["test_steps"] == ["Open login page", "Submit credentials", "See dashboard"]
    assert table.calls[-1][2]["test_steps"] == "Open login page\nSubmit credentials\nSee dashboard"


def test_update_case_ignores_non_editable_form_keys(serve, make_table, cases):
    table = make_table(cases)
    base = serve(loaded_app(table))

    r = requests.post(base + "/api/update_case", json={"id": 2, "form": {"status": "Pass", "id": 99}}, timeout=5)
    assert r.status_code == 200
    assert r.json()["record"]["id"] == 2
    assert r.json()["record"]["test_steps"] == ["Open login page", "Type wrong password"]
    assert table.calls[-1][1] == {"id": 2}


def test_update_case_unknown_id(serve, make_table, cases):
    table = make_table(cases)
    base = serve(loaded_app(table))

    r = requests.post(base + "/api/update_case", json={"id": 42, "form": {"status": "Pass"}}, timeout=5)
    assert r.status_code == 400
    assert r.json()["error"] == "Unknown test case id: 42"

    r = requests.post(base + "/api/update_case", json={"id": 1}, timeout=5)
    assert r.status_code == 400
    assert r.json()["error"] == "form is required"
    assert [c for c in table.calls if c[0] == "update"] == []


def test_update_case_store_failure(serve, make_table, cases):
    base = serve(loaded_app(make_table(cases, fail_update="permission denied")))

    r = requests.post(base + "/api/update_case", json={"id": 1, "form": {"status": "Fail"}}, timeout=5)
    assert r.status_code == 400
    assert r.json()["error"] == "Save failed: permission denied"

    j = requests.get(base + "/api/cases", params={"status": "Pass"}, timeout=5).json()
    assert j["shown"] == 1


def test_update_case_validation_failure(serve, make_table, cases):
    table = make_table(cases)
    base = serve(loaded_app(table))
    r = requests.post(base + "/api/update_case", json={"id": 1, "form": {"module": ""}}, timeout=5)
    assert r.status_code == 400
    assert "module" in r.json()["error"]
    assert [c for c in table.calls if c[0] == "update"] == []


def test_reload_picks_up_remote_changes(serve, make_table, cases):
    table = make_table(cases[:2])
    base = serve(loaded_app(table))
    table.rows.append(dict(cases[2]))

    j = requests.post(base + "/api/reload", json={}, timeout=5).json()
    assert j["total"] == 3
    assert j["error"] == ""
    assert j["modules"] == ["Booking", "Login"]


def test_reload_reports_store_errors(serve, make_table, cases):
    table = make_table(cases, table="uat_cases", fail_order=["id", "case_id"])
    base = serve(App(table))

    j = requests.post(base + "/api/reload", json={}, timeout=5).json()
    assert j["total"] == 0
    assert j["error"] == "column uat_cases.case_id does not exist (table: uat_cases)"


class HtmlSession:
    def __init__(self):
        self.calls = 0

    def request(self, method, url, **kwargs):
        self.calls += 1
        response = requests.Response()
        response.status_code = 200
        response.encoding = "utf-8"
        response._content = b"<html>captive portal</html>"
        return response


def test_reload_reports_non_json_responses():
    session = HtmlSession()
    app = App(RemoteTable("https://demo.supabase.co", "secret", "uat", session=session))
    app.reload()

    assert session.calls == 2
    assert app.rows == []
    assert app.load_error == "Invalid JSON from https://demo.supabase.co (table: uat)"


def test_unconfigured_store(serve):
    base = serve(App(None, config_error="Store client not configured. Missing SUPABASE_URL."))
    j = requests.get(base + "/api/cases", timeout=5).json()
    assert j["rows"] == []
    assert "not configured" in j["error"]

    r = requests.post(base + "/api/update_case", json={"id": 1, "form": {"status": "Pass"}}, timeout=5)
    assert r.status_code == 400
    assert "not configured" in r.json()["error"]


def test_unknown_paths(serve, make_table):
    base = serve(App(make_table()))
    assert requests.get(base + "/api/nope", timeout=5).status_code == 404
    assert requests.post(base + "/api/nope", json={}, timeout=5).status_code == 404
    assert requests.get(base + "/api/ping", timeout=5).json() == {"ok": True}


def test_shutdown_stops_server(make_table):
    httpd, thread = start_server(App(make_table()))
    base = f"http://127.0.0.1:{httpd.server_address[1]}"

    r = requests.post(base + "/api/shutdown", data=b"", timeout=5)
    assert r.json()["ok"] is True
    thread.join(timeout=5)
    assert not thread.is_alive()
    httpd.server_close()


def test_idle_guard_stops_inactive_server(make_table):
    app = App(make_table())
    app.idle_timeout_seconds = 0.2
    httpd, thread = start_server(app)

    guard = threading.Thread(target=idle_guard, args=(app, httpd, 0.05), daemon=True)
    guard.start()
    thread.join(timeout=5)
    guard.join(timeout=5)
    assert not thread.is_alive()
    assert not guard.is_alive()
    httpd.server_close()


def test_idle_guard_waits_while_pinged(make_table):
    app = App(make_table())
    app.idle_timeout_seconds = 0.5
    httpd, thread = start_server(app)
    base = f"http://127.0.0.1:{httpd.server_address[1]}"

    guard = threading.Thread(target=idle_guard, args=(app, httpd, 0.05), daemon=True)
    guard.start()
    for _ in range(6):
        time.sleep(0.2)
        requests.get(base + "/api/ping", timeout=5)
    assert thread.is_alive()

    thread.join(timeout=5)
    assert not thread.is_alive()
    httpd.server_close()
