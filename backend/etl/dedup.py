"""
Deduplicator - Natural-key duplicate detection ahead of the load engine.

Runs before any write: an upsert on the conflict key would silently
overwrite the earlier row instead of flagging the collision.

Scopes:
- within-file: reset by start_file()
- across files: kept for the lifetime of the instance (one multi-file run)
"""
from typing import Dict, Any, Optional, Set


class Deduplicator:
    """
    First occurrence of a key wins; every later occurrence is reported.

    Usage:
        dedup = Deduplicator("transaction_id")
        dedup.check({"transaction_id": "TA000007"})   # None (kept)
        dedup.check({"transaction_id": "TA000007"})   # "Duplicate transaction_id within file: TA000007"
    """

    def __init__(self, key_field: str):
        self.key_field = key_field
        self.file_keys: Set[Any] = set()
        self.run_keys: Set[Any] = set()
        self.stats = {"kept": 0, "within_file": 0, "across_files": 0}

    def start_file(self) -> None:
        self.file_keys = set()

    def check(self, record: Dict[str, Any], register: bool = True) -> Optional[str]:
        """
        Return a duplicate reason, or None for a new key.
        With register=False the caller must call register() once the record is kept.
        """
        key = record.get(self.key_field)
        if key in self.file_keys:
            self.stats["within_file"] += 1
            return f"Duplicate {self.key_field} within file: {key}"
        if key in self.run_keys:
            self.stats["across_files"] += 1
            return f"Duplicate {self.key_field} across files: {key}"

        if register:
            self.register(record)
        return None

    def register(self, record: Dict[str, Any]) -> None:
        key = record.get(self.key_field)
        self.file_keys.add(key)
        self.run_keys.add(key)
        self.stats["kept"] += 1

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()
