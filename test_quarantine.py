"""Quarantine sink: remote table, local backup, and the fatal case."""
import json

import pytest

from backend.etl.errors import QuarantineFallbackError
from backend.etl.models import EntityType
from backend.etl.quarantine import QuarantineSink


def test_entries_keep_payload_and_reason(store, sink):
    entry = sink.add(EntityType.AIRPORTS, {"AirportKey": "ny "}, "Invalid airport key: 'ny '")

    assert entry["source_table"] == "airports"
    assert entry["original_data"] == {"AirportKey": "ny "}
    assert entry["error_reason"] == "Invalid airport key: 'ny '"
    assert entry["created_at"]
    assert sink.pending == 1

    assert sink.flush() == 1
    assert store.rows("dirty_data") == [entry]
    assert sink.pending == 0
    assert sink.written_remote == 1


def test_flush_in_batches(store, backup_path):
    sink = QuarantineSink(store, fallback_path=str(backup_path), batch_size=2)
    for i in range(5):
        sink.add(EntityType.PASSENGERS, {"row": i}, "bad")

    sink.flush()
    inserts = [c for c in store.calls if c[0] == "insert"]
    assert [c[2] for c in inserts] == [2, 2, 1]
    assert [e["original_data"]["row"] for e in store.rows("dirty_data")] == [0, 1, 2, 3, 4]


def test_failed_table_write_goes_to_local_backup(store, sink, backup_path):
    store.fail("dirty_data", operation="insert", message="table missing")
    sink.add(EntityType.FLIGHTS, {"FlightKey": ""}, "Missing required flight data: FlightKey")
    sink.flush()

    lines = backup_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    saved = json.loads(lines[0])
    assert saved["source_table"] == "flights"
    assert saved["error_reason"] == "Missing required flight data: FlightKey"
    assert sink.written_local == 1
    assert store.rows("dirty_data") == []


def test_unconfigured_store_writes_locally(backup_path):
    from conftest import FakeStore

    sink = QuarantineSink(FakeStore(configured=False), fallback_path=str(backup_path))
    sink.add(EntityType.AIRLINES, {}, "Missing airline key")
    sink.flush()
    assert backup_path.exists()


def test_backup_appends_across_flushes(backup_path):
    sink = QuarantineSink(None, fallback_path=str(backup_path))
    sink.add(EntityType.AIRLINES, {}, "first")
    sink.flush()
    sink.add(EntityType.AIRLINES, {}, "second")
    sink.flush()

    reasons = [json.loads(l)["error_reason"] for l in backup_path.read_text(encoding="utf-8").splitlines()]
    assert reasons == ["first", "second"]


def test_losing_both_destinations_is_fatal(tmp_path):
    sink = QuarantineSink(None, fallback_path=str(tmp_path / "no_such_dir" / "backup.jsonl"))
    sink.add(EntityType.PASSENGERS, {"PassengerKey": "x"}, "Invalid passenger key: 'x'")

    with pytest.raises(QuarantineFallbackError):
        sink.flush()
    # nothing is dropped silently
    assert sink.pending == 1
