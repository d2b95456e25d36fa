"""Shared fixtures: an in-memory warehouse store and a fake Supabase client, so no test touches the network."""
import pytest

from backend.etl.errors import StoreWriteError, StoreErrorKind
from backend.etl.load import PacingPolicy, ResilientLoader
from backend.etl.pipeline import ETLPipeline
from backend.etl.quarantine import QuarantineSink


# ─────────────────────────────────────────────────────────────
# In-memory store
# ─────────────────────────────────────────────────────────────

class FakeStore:
    """
    Mirrors the WarehouseStore interface over plain dicts.

    Failures are scripted with fail(): by operation, table, optional key
    (matched against any value in a row) and error kind. batch_only rules
    fire only for calls carrying more than one row.
    """

    def __init__(self, tables=None, countries=None, configured=True):
        self.tables = {name: [dict(r) for r in rows] for name, rows in (tables or {}).items()}
        self.countries = dict(countries or {})
        self.is_configured = configured
        self.calls = []
        self.rules = []

    def fail(self, table, key=None, kind=StoreErrorKind.OTHER, message="simulated failure",
             operation="upsert", batch_only=False):
        self.rules.append({
            "table": table, "key": key, "kind": kind, "message": message,
            "operation": operation, "batch_only": batch_only,
        })

    def rows(self, table):
        return self.tables.setdefault(table, [])

    def _check(self, operation, table, rows=()):
        if not self.is_configured:
            raise StoreWriteError("Supabase client not configured")
        rows = list(rows)
        for rule in self.rules:
            if rule["operation"] != operation or rule["table"] != table:
                continue
            if rule["batch_only"] and len(rows) <= 1:
                continue
            if rule["key"] is None or any(rule["key"] in row.values() for row in rows):
                code = "23505" if rule["kind"] is StoreErrorKind.CONFLICT else None
                raise StoreWriteError(rule["message"], kind=rule["kind"], code=code)

    # Writes

    def upsert(self, table, rows, on_conflict):
        rows = [dict(r) for r in rows]
        self.calls.append(("upsert", table, [r.get(on_conflict) for r in rows]))
        self._check("upsert", table, rows)
        existing = self.rows(table)
        for row in rows:
            for i, current in enumerate(existing):
                if current.get(on_conflict) == row.get(on_conflict):
                    existing[i] = row
                    break
            else:
                existing.append(row)

    def insert(self, table, rows):
        rows = [dict(r) for r in rows]
        self.calls.append(("insert", table, len(rows)))
        self._check("insert", table, rows)
        self.rows(table).extend(rows)

    def update(self, table, values, column, value):
        self.calls.append(("update", table, value))
        self._check("update", table, [{column: value}])
        for row in self.rows(table):
            if row.get(column) == value:
                row.update(values)

    # Lookups

    def exists(self, table, column, value):
        self.calls.append(("exists", table, value))
        self._check("exists", table, [{column: value}])
        return any(row.get(column) == value for row in self.rows(table))

    def existing_keys(self, table, column, values):
        values = list(values)
        self.calls.append(("existing_keys", table, values))
        self._check("existing_keys", table)
        return {row.get(column) for row in self.rows(table) if row.get(column) in values}

    def fetch_column(self, table, column):
        self.calls.append(("fetch_column", table, column))
        self._check("fetch_column", table)
        return [row.get(column) for row in self.rows(table)]

    def find_country(self, fragment):
        for name in self.countries:
            if fragment.lower() in name.lower():
                return name
        return None

    def country_id(self, country_name):
        return self.countries.get(country_name)

    def recent_rows(self, table, order_by="created_at", limit=100):
        self._check("recent_rows", table)
        rows = sorted(self.rows(table), key=lambda r: str(r.get(order_by, "")), reverse=True)
        return rows[:limit]

    def latest_flight_status(self, flight_key):
        self._check("latest_flight_status", "flight_status_updates")
        updates = [r for r in self.rows("flight_status_updates") if r.get("flight_key") == flight_key]
        if not updates:
            return None
        return max(updates, key=lambda r: str(r.get("update_timestamp", "")))

    def mark_insurance_eligible(self, flight_key):
        self.update("fact_sales", {"is_eligible_insurance": True}, "flight_key", flight_key)


# ─────────────────────────────────────────────────────────────
# Fake Supabase client (chainable query builder)
# ─────────────────────────────────────────────────────────────

class FakeAPIError(Exception):
    """Shaped like postgrest's APIError: carries .code and .message."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        self.code = code


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.ops = []

    def _op(self, name, *args, **kwargs):
        self.ops.append((name, args, kwargs))
        return self

    def select(self, *args, **kwargs):
        return self._op("select", *args, **kwargs)

    def insert(self, *args, **kwargs):
        return self._op("insert", *args, **kwargs)

    def upsert(self, *args, **kwargs):
        return self._op("upsert", *args, **kwargs)

    def update(self, *args, **kwargs):
        return self._op("update", *args, **kwargs)

    def eq(self, *args, **kwargs):
        return self._op("eq", *args, **kwargs)

    def in_(self, *args, **kwargs):
        return self._op("in_", *args, **kwargs)

    def ilike(self, *args, **kwargs):
        return self._op("ilike", *args, **kwargs)

    def order(self, *args, **kwargs):
        return self._op("order", *args, **kwargs)

    def limit(self, *args, **kwargs):
        return self._op("limit", *args, **kwargs)

    def execute(self):
        self.client.executed.append((self.table, self.ops))
        if self.client.error is not None:
            raise self.client.error
        return FakeResponse(self.client.data.get(self.table, []))


class FakeSupabaseClient:

    def __init__(self, data=None, error=None):
        self.data = data or {}
        self.error = error
        self.executed = []

    def table(self, name):
        return FakeQuery(self, name)


# ─────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────

@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def pacing(sleeps):
    return PacingPolicy(batch_interval=0.2, record_interval=0.05, sleep=sleeps.append)


@pytest.fixture
def backup_path(tmp_path):
    return tmp_path / "dirty_data_backup.jsonl"


@pytest.fixture
def sink(store, backup_path):
    return QuarantineSink(store, table="dirty_data", fallback_path=str(backup_path), batch_size=100)


@pytest.fixture
def loader(store, sink, pacing):
    return ResilientLoader(store, sink, batch_size=100, pacing=pacing, skip_existing=True)


@pytest.fixture
def pipeline(store, sink, loader):
    return ETLPipeline(store=store, sink=sink, loader=loader)


@pytest.fixture
def write_csv(tmp_path):
    """Write CSV text to a file under tmp_path and return its path as str."""
    def _write(name, text):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)
    return _write
