"""Warehouse store adapter over a fake Supabase client."""
from decimal import Decimal

import pytest

from backend.etl.errors import StoreErrorKind, StoreWriteError
from backend.supabase_client import WarehouseStore, classify_store_error, to_json_safe
from conftest import FakeAPIError, FakeSupabaseClient


def test_unique_violation_code_is_conflict():
    err = classify_store_error(FakeAPIError("violates unique constraint", code="23505"))
    assert err.kind is StoreErrorKind.CONFLICT
    assert err.code == "23505"


def test_duplicate_message_without_code_is_conflict():
    err = classify_store_error(FakeAPIError("duplicate key value violates unique constraint"))
    assert err.is_conflict


def test_other_errors():
    err = classify_store_error(RuntimeError("connection reset"))
    assert err.kind is StoreErrorKind.OTHER
    assert err.message == "connection reset"


def test_json_safe_conversion():
    assert to_json_safe({"amount": Decimal("10.50"), "items": [Decimal("1")]}) == {
        "amount": 10.5, "items": [1.0],
    }


def test_upsert_sends_conflict_column_and_plain_numbers():
    client = FakeSupabaseClient()
    WarehouseStore(client).upsert("fact_sales", [{"transaction_id": "TA000001", "total_amount": Decimal("9.99")}],
                                  on_conflict="transaction_id")

    table, ops = client.executed[0]
    assert table == "fact_sales"
    name, args, kwargs = ops[0]
    assert name == "upsert"
    assert args[0] == [{"transaction_id": "TA000001", "total_amount": 9.99}]
    assert kwargs == {"on_conflict": "transaction_id"}


def test_write_failures_are_typed():
    client = FakeSupabaseClient(error=FakeAPIError("dup", code="23505"))
    with pytest.raises(StoreWriteError) as exc:
        WarehouseStore(client).insert("dirty_data", [{}])
    assert exc.value.is_conflict


def test_unconfigured_store():
    store = WarehouseStore.from_env(None, None)
    assert not store.is_configured
    with pytest.raises(StoreWriteError):
        store.upsert("dim_passenger", [{}], on_conflict="passenger_key")
    assert store.find_country("phil") is None
    assert store.country_id("Philippines") is None


def test_existing_keys_uses_in_filter():
    client = FakeSupabaseClient(data={"dim_passenger": [{"passenger_key": "P001"}]})
    keys = WarehouseStore(client).existing_keys("dim_passenger", "passenger_key", ["P001", "P002"])

    assert keys == {"P001"}
    _, ops = client.executed[0]
    assert ("in_", ("passenger_key", ["P001", "P002"]), {}) in ops


def test_existing_keys_with_no_values_skips_query():
    client = FakeSupabaseClient()
    assert WarehouseStore(client).existing_keys("dim_passenger", "passenger_key", []) == set()
    assert client.executed == []


def test_find_country_partial_match():
    client = FakeSupabaseClient(data={"dim_country_hierarchy": [{"country_name": "Philippines"}]})
    assert WarehouseStore(client).find_country("phil") == "Philippines"

    _, ops = client.executed[0]
    assert ("ilike", ("country_name", "%phil%"), {}) in ops


def test_find_country_failure_returns_none():
    client = FakeSupabaseClient(error=RuntimeError("offline"))
    assert WarehouseStore(client).find_country("phil") is None


def test_latest_flight_status():
    client = FakeSupabaseClient(data={"flight_status_updates": [{"flight_key": "FL1", "delay_minutes": 300}]})
    status = WarehouseStore(client).latest_flight_status("FL1")

    assert status["delay_minutes"] == 300
    _, ops = client.executed[0]
    assert ("order", ("update_timestamp",), {"desc": True}) in ops
