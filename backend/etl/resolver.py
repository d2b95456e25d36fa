"""
Airport Resolver - Makes sure every airport a flight references exists.

Missing airports are healed forward: a placeholder row ("<KEY> Airport",
city and country "Unknown") is written so the flight can load. The
placeholder name marks the row as auto-generated for later review.
"""
import logging
from typing import Dict, List

from .errors import StoreWriteError

AIRPORT_TABLE = "dim_airport"
AIRPORT_KEY = "airport_key"


class AirportResolver:
    """Existence cache is owned by one load run; nothing here is shared."""

    def __init__(self, store):
        self.store = store
        self.cache: Dict[str, bool] = {}
        self.placeholders_created: List[str] = []

    def preload(self) -> int:
        """Warm the cache with every airport key already in the store."""
        try:
            keys = self.store.fetch_column(AIRPORT_TABLE, AIRPORT_KEY)
        except StoreWriteError as e:
            logging.warning(f"Could not preload airports: {e.message}")
            return 0
        for key in keys:
            if key:
                self.cache[key] = True
        logging.info(f"Loaded {len(self.cache)} airports into cache")
        return len(self.cache)

    def ensure(self, airport_key: str) -> bool:
        if self.cache.get(airport_key):
            return True

        try:
            if self.store.exists(AIRPORT_TABLE, AIRPORT_KEY, airport_key):
                self.cache[airport_key] = True
                return True
        except StoreWriteError as e:
            logging.error(f"Airport lookup failed for {airport_key}: {e.message}")
            return False

        logging.info(f"Creating placeholder for {airport_key}")
        placeholder = {
            "airport_key": airport_key,
            "airport_name": f"{airport_key} Airport",
            "city": "Unknown",
            "country": "Unknown",
        }
        try:
            self.store.upsert(AIRPORT_TABLE, [placeholder], on_conflict=AIRPORT_KEY)
        except StoreWriteError as e:
            logging.error(f"Error creating airport {airport_key}: {e.message}")
            self.cache[airport_key] = False
            return False

        self.cache[airport_key] = True
        self.placeholders_created.append(airport_key)
        return True
