"""
Load Layer - Batched upsert into the warehouse with per-record fallback.

For every batch:
1. (skip_existing) ask the store which keys are already present; those rows
   are counted as already existing and quarantined without a write
2. upsert the rest in one call, keyed on the table's conflict column
3. if that call fails, retry each row on its own once:
   - conflict error -> already existed, quarantined
   - any other error -> errored, quarantined with the error text
No further retries. Every attempted row ends up counted exactly once.
"""
import logging
import time
from typing import List, Dict, Any, Optional, Callable, Sequence

from .errors import StoreWriteError
from .models import EntityType, LoadSummary, conflict_key_for
from .quarantine import QuarantineSink


class PacingPolicy:
    """
    Fixed delays between store calls so a large load does not flood the API.
    Swap in another object with the same two methods to change the policy.
    """

    def __init__(self, batch_interval: float = 0.2, record_interval: float = 0.05,
                 sleep: Callable[[float], None] = time.sleep):
        self.batch_interval = batch_interval
        self.record_interval = record_interval
        self.sleep = sleep

    def after_batch(self) -> None:
        if self.batch_interval > 0:
            self.sleep(self.batch_interval)

    def after_record(self) -> None:
        if self.record_interval > 0:
            self.sleep(self.record_interval)


class ResilientLoader:

    def __init__(self, store, sink: QuarantineSink, batch_size: int = 100,
                 pacing: Optional[PacingPolicy] = None, skip_existing: bool = True):
        self.store = store
        self.sink = sink
        self.batch_size = max(1, batch_size)
        self.pacing = pacing or PacingPolicy()
        self.skip_existing = skip_existing

    def load(self, entity_type: EntityType, table: str, records: Sequence[Dict[str, Any]],
             payloads: Optional[Sequence[Dict[str, Any]]] = None) -> LoadSummary:
        """
        Load `records` into `table`.

        `payloads` (same length as records) is what gets quarantined for a
        failed record, normally the original CSV row; defaults to the record.
        """
        conflict_key = conflict_key_for(table)
        summary = LoadSummary(table=table)
        payloads = list(payloads) if payloads is not None else list(records)

        for start in range(0, len(records), self.batch_size):
            batch = list(records[start:start + self.batch_size])
            batch_payloads = payloads[start:start + self.batch_size]
            batch_num = start // self.batch_size + 1
            summary.attempted += len(batch)

            logging.info(f"Processing batch {batch_num} ({len(batch)} records) for {table}...")
            batch, batch_payloads = self._skip_existing(
                entity_type, table, conflict_key, batch, batch_payloads, summary
            )

            if batch:
                try:
                    self.store.upsert(table, batch, on_conflict=conflict_key)
                    summary.uploaded += len(batch)
                    logging.info(f"Batch {batch_num}: {len(batch)} records uploaded")
                except StoreWriteError as e:
                    logging.warning(f"Batch {batch_num} failed ({e.message}), trying individual upserts...")
                    self._load_individually(entity_type, table, conflict_key, batch, batch_payloads, summary)

            self.pacing.after_batch()

        logging.info(
            f"UPLOAD SUMMARY {table}: uploaded={summary.uploaded} "
            f"already_existed={summary.already_existed} errors={summary.errored} "
            f"attempted={summary.attempted}"
        )
        return summary

    def _skip_existing(self, entity_type: EntityType, table: str, conflict_key: str,
                       batch: List[Dict[str, Any]], batch_payloads: List[Dict[str, Any]],
                       summary: LoadSummary):
        if not self.skip_existing:
            return batch, batch_payloads

        keys = [record.get(conflict_key) for record in batch]
        try:
            existing = self.store.existing_keys(table, conflict_key, keys)
        except StoreWriteError as e:
            logging.warning(f"Existence check on {table} failed ({e.message}), upserting whole batch")
            return batch, batch_payloads

        if not existing:
            return batch, batch_payloads

        remaining, remaining_payloads = [], []
        for record, payload in zip(batch, batch_payloads):
            key = record.get(conflict_key)
            if key in existing:
                summary.already_existed += 1
                self.sink.add(entity_type, payload, f"Already exists in {table}: {key}")
            else:
                remaining.append(record)
                remaining_payloads.append(payload)
        logging.info(f"{len(batch) - len(remaining)} record(s) already exist in {table}")
        return remaining, remaining_payloads

    def _load_individually(self, entity_type: EntityType, table: str, conflict_key: str,
                           batch: List[Dict[str, Any]], batch_payloads: List[Dict[str, Any]],
                           summary: LoadSummary) -> None:
        for record, payload in zip(batch, batch_payloads):
            key = record.get(conflict_key)
            try:
                self.store.upsert(table, [record], on_conflict=conflict_key)
                summary.uploaded += 1
                logging.debug(f"  {key}: Added")
            except StoreWriteError as e:
                if e.is_conflict:
                    summary.already_existed += 1
                    logging.info(f"  {key}: Already exists in {table}")
                    self.sink.add(entity_type, payload, f"Already exists in {table}: {key}")
                else:
                    summary.errored += 1
                    logging.error(f"  {key}: {e.message}")
                    self.sink.add(entity_type, payload, f"Upload failed: {e.message}")
            self.pacing.after_record()
