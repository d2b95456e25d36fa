"""
Quarantine Sink - Durable, append-only record of every row the pipeline did not load.

Entries are buffered in discovery order and flushed in batches to the
quarantine table. A batch the table refuses is appended to a local
JSON-lines file instead; only when that file write also fails does the
run stop, since the rows would otherwise be lost.
"""
import json
import logging
from datetime import datetime
from typing import List, Dict, Any

from .errors import StoreWriteError, QuarantineFallbackError
from .models import EntityType
from .schema import QuarantineEntry


class QuarantineSink:

    def __init__(self, store, table: str = "dirty_data",
                 fallback_path: str = "dirty_data_backup.jsonl", batch_size: int = 100):
        self.store = store
        self.table = table
        self.fallback_path = fallback_path
        self.batch_size = max(1, batch_size)
        self.buffer: List[QuarantineEntry] = []
        self.written_remote = 0
        self.written_local = 0

    @property
    def pending(self) -> int:
        return len(self.buffer)

    def add(self, entity_type: EntityType, payload: Dict[str, Any], reason: str) -> QuarantineEntry:
        entry: QuarantineEntry = {
            "source_table": entity_type.value,
            "original_data": dict(payload),
            "error_reason": reason,
            "created_at": datetime.now().isoformat(),
        }
        self.buffer.append(entry)
        return entry

    def flush(self) -> int:
        """Write all buffered entries. Returns how many were flushed."""
        flushed = 0
        while self.buffer:
            batch = self.buffer[:self.batch_size]
            self._write_batch(batch)
            del self.buffer[:len(batch)]
            flushed += len(batch)
        return flushed

    def _write_batch(self, batch: List[QuarantineEntry]) -> None:
        if self.store is not None and getattr(self.store, "is_configured", True):
            try:
                self.store.insert(self.table, batch)
                self.written_remote += len(batch)
                logging.info(f"Quarantined {len(batch)} row(s) to {self.table}")
                return
            except StoreWriteError as e:
                logging.error(f"Error saving quarantine batch to {self.table}: {e.message}")
        self._write_local(batch)

    def _write_local(self, batch: List[QuarantineEntry]) -> None:
        try:
            with open(self.fallback_path, "a", encoding="utf-8") as f:
                for entry in batch:
                    f.write(json.dumps(entry, default=str, ensure_ascii=False) + "\n")
        except OSError as e:
            logging.critical(f"QUARANTINE_LOST: cannot write backup {self.fallback_path}: {e}")
            raise QuarantineFallbackError(
                f"Quarantine table and local backup both failed ({len(batch)} rows): {e}"
            ) from e
        self.written_local += len(batch)
        logging.warning(f"Quarantine batch of {len(batch)} written to local backup {self.fallback_path}")
