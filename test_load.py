"""Resilient load: batch upsert, per-record fallback, skip-existing and pacing."""
from backend.etl.errors import StoreErrorKind
from backend.etl.load import PacingPolicy, ResilientLoader
from backend.etl.models import EntityType


def passengers(*keys):
    return [{"passenger_key": k, "full_name": f"Name {k}"} for k in keys]


def test_clean_batches_upload_with_pacing(store, sink, sleeps, pacing):
    loader = ResilientLoader(store, sink, batch_size=2, pacing=pacing)
    summary = loader.load(EntityType.PASSENGERS, "dim_passenger", passengers("P001", "P002", "P003"))

    assert summary.to_dict() == {
        "table": "dim_passenger", "attempted": 3, "uploaded": 3, "already_existed": 0, "errored": 0,
    }
    upserts = [c for c in store.calls if c[0] == "upsert"]
    assert [c[2] for c in upserts] == [["P001", "P002"], ["P003"]]
    assert sleeps == [0.2, 0.2]
    assert sink.pending == 0


def test_batch_failure_falls_back_to_single_records(store, sink, sleeps, loader):
    store.fail("dim_passenger", batch_only=True, message="payload too large")
    store.fail("dim_passenger", key="P002", kind=StoreErrorKind.CONFLICT, message="duplicate key value")
    store.fail("dim_passenger", key="P003", message="timeout")

    records = passengers("P001", "P002", "P003")
    payloads = [{"PassengerKey": k} for k in ("1001", "1002", "1003")]
    summary = loader.load(EntityType.PASSENGERS, "dim_passenger", records, payloads)

    assert (summary.uploaded, summary.already_existed, summary.errored) == (1, 1, 1)
    assert summary.uploaded + summary.already_existed + summary.errored == summary.attempted
    assert [r["passenger_key"] for r in store.rows("dim_passenger")] == ["P001"]

    reasons = [(e["original_data"], e["error_reason"]) for e in sink.buffer]
    assert reasons == [
        ({"PassengerKey": "1002"}, "Already exists in dim_passenger: P002"),
        ({"PassengerKey": "1003"}, "Upload failed: timeout"),
    ]
    assert all(e["source_table"] == "passengers" for e in sink.buffer)
    # one pause per single-record retry, then the batch pause
    assert sleeps == [0.05, 0.05, 0.05, 0.2]


def test_existing_rows_are_reported_not_rewritten(store, sink, loader):
    store.rows("dim_passenger").append({"passenger_key": "P001", "full_name": "Original"})

    summary = loader.load(EntityType.PASSENGERS, "dim_passenger", passengers("P001", "P002"))

    assert (summary.uploaded, summary.already_existed) == (1, 1)
    assert store.rows("dim_passenger")[0]["full_name"] == "Original"
    assert sink.buffer[0]["error_reason"] == "Already exists in dim_passenger: P001"


def test_reload_is_idempotent(store, loader):
    records = passengers("P001", "P002")
    loader.load(EntityType.PASSENGERS, "dim_passenger", records)
    second = loader.load(EntityType.PASSENGERS, "dim_passenger", records)

    assert (second.uploaded, second.already_existed, second.errored) == (0, 2, 0)
    assert len(store.rows("dim_passenger")) == 2


def test_failed_existence_check_upserts_whole_batch(store, sink, pacing):
    store.fail("dim_passenger", operation="existing_keys")
    loader = ResilientLoader(store, sink, pacing=pacing)

    summary = loader.load(EntityType.PASSENGERS, "dim_passenger", passengers("P001", "P002"))
    assert summary.uploaded == 2


def test_skip_existing_disabled_overwrites(store, sink, pacing):
    store.rows("dim_passenger").append({"passenger_key": "P001", "full_name": "Original"})
    loader = ResilientLoader(store, sink, pacing=pacing, skip_existing=False)

    summary = loader.load(EntityType.PASSENGERS, "dim_passenger", passengers("P001"))
    assert summary.uploaded == 1
    assert store.rows("dim_passenger")[0]["full_name"] == "Name P001"


def test_upsert_uses_table_conflict_key(store, sink, pacing):
    loader = ResilientLoader(store, sink, pacing=pacing)
    loader.load(EntityType.TRAVEL_AGENCY_SALES, "fact_sales", [
        {"transaction_id": "TA000001", "total_amount": 1},
        {"transaction_id": "TA000002", "total_amount": 2},
    ])
    assert store.calls[-1] == ("upsert", "fact_sales", ["TA000001", "TA000002"])


def test_zero_intervals_do_not_sleep():
    calls = []
    pacing = PacingPolicy(batch_interval=0, record_interval=0, sleep=calls.append)
    pacing.after_batch()
    pacing.after_record()
    assert calls == []
