import pytest

from store_client import StoreError

ENV_VARS = [
    "SUPABASE_URL",
    "VITE_SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "VITE_SUPABASE_PUBLISHABLE_DEFAULT_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_TABLE",
    "VITE_SUPABASE_TABLE",
    "UAT_IMPORT_BATCH_SIZE",
    "UAT_TEST_STEPS_AS",
    "UAT_IMPORT_MODE",
    "UAT_IMPORT_CONFLICT",
    "UAT_DATA_PATH",
]


class FakeTable:
    """In-memory stand-in for RemoteTable."""

    def __init__(self, rows=None, table="uat", fail_order=(), fail_update="", fail_insert_at=None):
        self.rows = [dict(r) for r in rows or []]
        self.table = table
        self.fail_order = set(fail_order)
        self.fail_update = fail_update
        self.fail_insert_at = fail_insert_at
        self.calls = []
        self.batches = []

    def select_all(self, order, ascending=True, page_size=1000):
        self.calls.append(("select", order))
        if order in self.fail_order:
            raise StoreError(f"column {self.table}.{order} does not exist", 400)
        return [dict(r) for r in self.rows]

    def update(self, match, fields):
        self.calls.append(("update", dict(match), dict(fields)))
        if self.fail_update:
            raise StoreError(self.fail_update, 403)
        for row in self.rows:
            if all(row.get(k) == v for k, v in match.items()):
                row.update(fields)

    def insert(self, rows, upsert=False, on_conflict="case_id"):
        self.calls.append(("insert", len(rows), upsert, on_conflict))
        if self.fail_insert_at is not None and len(self.batches) + 1 == self.fail_insert_at:
            raise StoreError("permission denied for table uat", 401, '{"message":"permission denied for table uat"}')
        self.batches.append(list(rows))


@pytest.fixture()
def make_table():
    return FakeTable


@pytest.fixture()
def cases():
    return [
        {
            "id": 1,
            "case_id": "UAT-001",
            "module": "Login",
            "test_case": "Valid login",
            "test_steps": ["Open login page", "Submit credentials"],
            "expected_result": "Dashboard shown",
            "actual_result": "",
            "status": "Pass",
            "note": "",
        },
        {
            "id": 2,
            "case_id": "UAT-002",
            "module": "Login",
            "test_case": "Wrong password",
            "test_steps": "Open login page\nType wrong password",
            "expected_result": "Error shown",
            "actual_result": "Stack trace shown",
            "status": "Fail",
            "note": "Reported to dev",
        },
        {
            "id": 3,
            "case_id": "UAT-003",
            "module": "Booking",
            "test_case": "Create booking",
            "test_steps": None,
            "expected_result": "Booking confirmed",
            "actual_result": None,
            "status": None,
            "note": None,
        },
        {
            "id": 4,
            "case_id": "UAT-004",
            "module": "Booking",
            "test_case": "Cancel booking",
            "test_steps": ["Open booking", "Press cancel"],
            "expected_result": "Booking cancelled",
            "status": "pending",
        },
    ]


@pytest.fixture()
def clean_env(monkeypatch):
    # setenv first so monkeypatch restores the variable to "unset" afterwards,
    # even when load_dotenv writes to os.environ during the test.
    for name in ENV_VARS:
        monkeypatch.setenv(name, "x")
        monkeypatch.delenv(name)
    return monkeypatch
