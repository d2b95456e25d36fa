"""
Supabase Warehouse Client - The only component that talks to the remote store.

Wraps the Supabase client with the handful of primitives the ETL needs:
upsert by conflict key, append-only insert, and lookups by key.
Every failure is converted into a typed StoreWriteError so callers branch
on `kind` instead of parsing error text.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Any, List, Optional, Iterable, Set

from supabase import create_client, Client

from backend.etl.errors import StoreWriteError, StoreErrorKind

UNIQUE_VIOLATION_CODE = "23505"


def classify_store_error(exc: Exception) -> StoreWriteError:
    """
    Turn a Supabase/PostgREST exception into a StoreWriteError.

    Postgres reports uniqueness violations as SQLSTATE 23505. Some proxies
    drop the code, so a message mentioning "duplicate" is also treated as
    a conflict. That text match is a fallback only.
    """
    if isinstance(exc, StoreWriteError):
        return exc

    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or str(exc)
    code = str(code) if code is not None else None

    if code == UNIQUE_VIOLATION_CODE or "duplicate" in message.lower():
        kind = StoreErrorKind.CONFLICT
    else:
        kind = StoreErrorKind.OTHER
    return StoreWriteError(message, kind=kind, code=code)


def to_json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_safe(v) for v in value]
    return value


class WarehouseStore:
    """
    Thin adapter over the Supabase client.

    An unconfigured store (no URL/key) is allowed: reads report nothing
    found and writes raise StoreWriteError, which lets the quarantine sink
    fall back to its local file.
    """

    def __init__(self, client: Optional[Client] = None):
        self.client = client

    @classmethod
    def from_env(cls, url: Optional[str] = None, key: Optional[str] = None) -> "WarehouseStore":
        if not url or not key:
            logging.warning("Supabase URL/key not configured. Store writes will fail over to local backup.")
            return cls(None)
        try:
            client = create_client(url, key)
            logging.info("Supabase warehouse client initialized.")
            return cls(client)
        except Exception as e:
            logging.warning(f"Failed to initialize Supabase client: {e}")
            return cls(None)

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    def _require_client(self) -> Client:
        if self.client is None:
            raise StoreWriteError("Supabase client not configured")
        return self.client

    # ─────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────

    def upsert(self, table: str, rows: Any, on_conflict: str) -> None:
        client = self._require_client()
        try:
            client.table(table).upsert(to_json_safe(rows), on_conflict=on_conflict).execute()
        except Exception as e:
            raise classify_store_error(e) from e

    def insert(self, table: str, rows: Any) -> None:
        client = self._require_client()
        try:
            client.table(table).insert(to_json_safe(rows)).execute()
        except Exception as e:
            raise classify_store_error(e) from e

    def update(self, table: str, values: Dict[str, Any], column: str, value: Any) -> None:
        client = self._require_client()
        try:
            client.table(table).update(to_json_safe(values)).eq(column, value).execute()
        except Exception as e:
            raise classify_store_error(e) from e

    # ─────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────

    def exists(self, table: str, column: str, value: Any) -> bool:
        client = self._require_client()
        try:
            res = client.table(table).select(column).eq(column, value).limit(1).execute()
        except Exception as e:
            raise classify_store_error(e) from e
        return bool(res.data)

    def existing_keys(self, table: str, column: str, values: Iterable[Any]) -> Set[Any]:
        values = list(values)
        if not values:
            return set()
        client = self._require_client()
        try:
            res = client.table(table).select(column).in_(column, values).execute()
        except Exception as e:
            raise classify_store_error(e) from e
        return {row.get(column) for row in (res.data or [])}

    def fetch_column(self, table: str, column: str) -> List[Any]:
        client = self._require_client()
        try:
            res = client.table(table).select(column).execute()
        except Exception as e:
            raise classify_store_error(e) from e
        return [row.get(column) for row in (res.data or [])]

    def find_country(self, fragment: str) -> Optional[str]:
        """Partial, case-insensitive match against the country hierarchy."""
        if not self.client or not fragment:
            return None
        try:
            res = (
                self.client.table("dim_country_hierarchy")
                .select("country_name")
                .ilike("country_name", f"%{fragment}%")
                .limit(1)
                .execute()
            )
        except Exception as e:
            logging.warning(f"Country hierarchy lookup failed for '{fragment}': {e}")
            return None
        return res.data[0].get("country_name") if res.data else None

    def country_id(self, country_name: str) -> Optional[int]:
        if not self.client or not country_name:
            return None
        try:
            res = (
                self.client.table("dim_country_hierarchy")
                .select("country_id")
                .eq("country_name", country_name)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logging.warning(f"Country id lookup failed for '{country_name}': {e}")
            return None
        return res.data[0].get("country_id") if res.data else None

    def recent_rows(self, table: str, order_by: str = "created_at", limit: int = 100) -> List[Dict[str, Any]]:
        client = self._require_client()
        try:
            res = client.table(table).select("*").order(order_by, desc=True).limit(limit).execute()
        except Exception as e:
            raise classify_store_error(e) from e
        return res.data or []

    # ─────────────────────────────────────────────────────────────
    # Flight status / insurance
    # ─────────────────────────────────────────────────────────────

    def latest_flight_status(self, flight_key: str) -> Optional[Dict[str, Any]]:
        client = self._require_client()
        try:
            res = (
                client.table("flight_status_updates")
                .select("*")
                .eq("flight_key", flight_key)
                .order("update_timestamp", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise classify_store_error(e) from e
        return res.data[0] if res.data else None

    def mark_insurance_eligible(self, flight_key: str) -> None:
        self.update("fact_sales", {"is_eligible_insurance": True}, "flight_key", flight_key)
