"""
Transform Layer - Deterministic row standardization per entity type.

This module implements:
1. Key normalization (passenger, airport, transaction ID synthesis)
2. Email derivation and loyalty tier mapping
3. Country canonicalization (alias table -> hierarchy lookup -> title case)
4. Date and amount parsing
5. One processor per entity that returns a record or a rejection reason

Processors never raise: any unexpected error becomes a rejection reason,
so one malformed row cannot abort a batch.
"""
import logging
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Dict, Any, Optional, Callable, Tuple

import pandas as pd

from .models import EntityType, SalesSource
from .schema import (
    RawRow, PassengerRecord, AirportRecord, AirlineRecord, FlightRecord, SalesRecord,
)

# (record, None) on success, (None, reason) on rejection
StandardizeResult = Tuple[Optional[Dict[str, Any]], Optional[str]]
CountryLookup = Callable[[str], Optional[str]]
CountryIdLookup = Callable[[str], Optional[int]]

PASSENGER_MARKER = "P"
PASSENGER_KEY_DIGITS = 3
TRANSACTION_ID_DIGITS = 6
CENT = Decimal("0.01")
ZERO = Decimal("0.00")

NON_DIGIT = re.compile(r"\D")
AMOUNT_NOISE = re.compile(r"[^\d.\-]")
# Leading numeric part, as a permissive float parser would read it
LEADING_NUMBER = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# Marker form with a short number ("P1", "P07") is padded rather than rejected
SHORT_MARKER_KEY = re.compile(r"^P\d{1,2}$", re.I)

LOYALTY_TIERS = (
    ("Platinum", ("PLATINUM",), ("PLAT",)),
    ("Gold", ("GOLD",), ()),
    ("Silver", ("SILVER",), ("SILV",)),
    ("Bronze", ("BRONZE",), ("BRNZ",)),
)
DEFAULT_LOYALTY = "Bronze"

COUNTRY_ALIASES: Dict[str, str] = {
    "us": "United States",
    "usa": "United States",
    "u.s.": "United States",
    "u.s.a.": "United States",
    "united states": "United States",
    "united states of america": "United States",
    "uk": "United Kingdom",
    "united kingdom": "United Kingdom",
    "great britain": "United Kingdom",
    "england": "United Kingdom",
    "uae": "United Arab Emirates",
    "u.a.e.": "United Arab Emirates",
    "united arab emirates": "United Arab Emirates",
}
UNKNOWN = "Unknown"


# ─────────────────────────────────────────────────────────────
# Field Access
# ─────────────────────────────────────────────────────────────

def _lookup(row: RawRow, name: str) -> Optional[Any]:
    if name in row:
        return row[name]
    wanted = name.lower()
    for key, value in row.items():
        if str(key).strip().lower() == wanted:
            return value
    return None


def get_field(row: RawRow, *names: str) -> Optional[str]:
    """
    First non-blank value among `names` (header case and padding ignored).
    Returns "" when a column exists but is blank everywhere, None when absent.
    """
    found = None
    for name in names:
        value = _lookup(row, name)
        if value is None:
            continue
        text = str(value)
        if text.strip():
            return text
        found = ""
    return found


def _clean(value: Optional[str]) -> str:
    return value.strip() if value else ""


# ─────────────────────────────────────────────────────────────
# Field Standardizers
# ─────────────────────────────────────────────────────────────

def standardize_passenger_key(value: Any) -> Optional[str]:
    """
    'P' + last three digits, zero padded: 'PAX-10042' -> 'P042', 'P1' -> 'P001'.
    Bare numbers with fewer than three digits are rejected (None).
    """
    if value is None:
        return None
    text = str(value).strip()
    digits = NON_DIGIT.sub("", text)
    if not digits:
        return None
    if len(digits) < PASSENGER_KEY_DIGITS and not SHORT_MARKER_KEY.match(text):
        return None
    return PASSENGER_MARKER + digits[-PASSENGER_KEY_DIGITS:].zfill(PASSENGER_KEY_DIGITS)


def standardize_airport_key(value: Any) -> Optional[str]:
    key = str(value).strip().upper() if value is not None else ""
    return key if len(key) == 3 else None


def standardize_email(full_name: Optional[str], existing: Optional[str]) -> str:
    existing = _clean(existing)
    if existing and EMAIL_PATTERN.match(existing):
        return existing.lower()

    names = _clean(full_name).split()
    first = names[0].lower() if names else "user"
    last = names[-1].lower() if len(names) > 1 else ""
    return f"{first}.{last}@example.com" if last else f"{first}@example.com"


def standardize_loyalty_status(value: Optional[str]) -> str:
    status = _clean(value).upper()
    if not status:
        return DEFAULT_LOYALTY
    for tier, fragments, abbreviations in LOYALTY_TIERS:
        if status in abbreviations or any(f in status for f in fragments):
            return tier
    return DEFAULT_LOYALTY


def standardize_country(value: Optional[str], lookup: Optional[CountryLookup] = None) -> str:
    raw = _clean(value)
    normalized = raw.lower()
    if not normalized:
        return UNKNOWN
    if normalized in COUNTRY_ALIASES:
        return COUNTRY_ALIASES[normalized]
    if lookup:
        found = lookup(normalized)
        if found:
            return found
    return raw.title()


def standardize_date(value: Any) -> Optional[Tuple[str, int]]:
    """Returns ('YYYY-MM-DD', YYYYMMDD) or None when unparseable."""
    text = str(value).strip() if value is not None else ""
    if not text:
        return None
    try:
        parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    iso = parsed.strftime("%Y-%m-%d")
    return iso, int(iso.replace("-", ""))


def standardize_amount(value: Any) -> Decimal:
    """Strip currency noise and round to cents; anything unparseable is 0.00."""
    if value is None:
        return ZERO
    match = LEADING_NUMBER.search(AMOUNT_NOISE.sub("", str(value)))
    if not match:
        return ZERO
    number = match.group()
    # Precision must cover every integer digit or quantize overflows
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(number) + 2)
        try:
            return Decimal(number).quantize(CENT, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            return ZERO


def synthesize_transaction_id(value: Any, source: SalesSource) -> Optional[str]:
    digits = NON_DIGIT.sub("", str(value)) if value is not None else ""
    if not digits:
        return None
    return source.prefix + digits.zfill(TRANSACTION_ID_DIGITS)


# ─────────────────────────────────────────────────────────────
# Entity Processors
# ─────────────────────────────────────────────────────────────

class RowStandardizer:
    """
    Turns one RawRow into a canonical record or a rejection reason.

    Country lookups hit the hierarchy table, so their answers are cached
    for the lifetime of the standardizer.
    """

    def __init__(self, country_lookup: Optional[CountryLookup] = None,
                 country_id_lookup: Optional[CountryIdLookup] = None):
        self.country_lookup = country_lookup
        self.country_id_lookup = country_id_lookup
        self._country_cache: Dict[str, Optional[str]] = {}
        self._country_id_cache: Dict[str, Optional[int]] = {}

    def standardize(self, entity_type: EntityType, row: RawRow) -> StandardizeResult:
        try:
            if entity_type is EntityType.PASSENGERS:
                return self.passenger(row)
            elif entity_type is EntityType.AIRPORTS:
                return self.airport(row)
            elif entity_type is EntityType.AIRLINES:
                return self.airline(row)
            elif entity_type is EntityType.FLIGHTS:
                return self.flight(row)
            elif entity_type is EntityType.TRAVEL_AGENCY_SALES:
                return self.sale(row, SalesSource.TRAVEL_AGENCY)
            elif entity_type is EntityType.CORPORATE_SALES:
                return self.sale(row, SalesSource.CORPORATE)
        except Exception as e:
            logging.exception("ROW_STANDARDIZE_ERROR")
            return None, f"Processing error: {e}"
        raise ValueError(f"No processor for file type: {entity_type.value}")

    def passenger(self, row: RawRow) -> StandardizeResult:
        raw_key = get_field(row, "PassengerKey")
        key = standardize_passenger_key(raw_key)
        if not key:
            return None, f"Invalid passenger key: {raw_key!r}"

        full_name = _clean(get_field(row, "FullName")) or UNKNOWN
        record: PassengerRecord = {
            "passenger_key": key,
            "full_name": full_name,
            "email": standardize_email(full_name, get_field(row, "Email")),
            "loyalty_status": standardize_loyalty_status(get_field(row, "LoyaltyStatus")),
        }
        return record, None

    def airport(self, row: RawRow) -> StandardizeResult:
        raw_key = get_field(row, "AirportKey")
        key = standardize_airport_key(raw_key)
        if not key:
            return None, f"Invalid airport key: {raw_key!r}"

        country = standardize_country(get_field(row, "Country"), self._find_country)
        record: AirportRecord = {
            "airport_key": key,
            "airport_name": _clean(get_field(row, "AirportName")) or UNKNOWN,
            "city": _clean(get_field(row, "City")) or UNKNOWN,
            "country": country,
            "country_id": self._find_country_id(country),
        }
        return record, None

    def airline(self, row: RawRow) -> StandardizeResult:
        key = _clean(get_field(row, "AirlineKey")).upper()
        if not key:
            return None, "Missing airline key"

        alliance = _clean(get_field(row, "Alliance"))
        record: AirlineRecord = {
            "airline_key": key,
            "airline_name": _clean(get_field(row, "AirlineName")) or UNKNOWN,
            "alliance": None if alliance in ("", "N/A") else alliance,
        }
        return record, None

    def flight(self, row: RawRow) -> StandardizeResult:
        flight_key = _clean(get_field(row, "FlightKey"))
        origin = _clean(get_field(row, "OriginAirportKey")).upper()
        destination = _clean(get_field(row, "DestinationAirportKey")).upper()

        missing = [name for name, value in (
            ("FlightKey", flight_key),
            ("OriginAirportKey", origin),
            ("DestinationAirportKey", destination),
        ) if not value]
        if missing:
            return None, f"Missing required flight data: {', '.join(missing)}"

        record: FlightRecord = {
            "flight_key": flight_key,
            "origin_airport_key": origin,
            "destination_airport_key": destination,
            "aircraft_type": _clean(get_field(row, "AircraftType")) or UNKNOWN,
        }
        return record, None

    def sale(self, row: RawRow, source: SalesSource) -> StandardizeResult:
        raw_transaction = get_field(row, "TransactionID")
        transaction_id = synthesize_transaction_id(raw_transaction, source)
        if not transaction_id:
            if _clean(raw_transaction):
                return None, f"Invalid transaction ID: {raw_transaction!r}"
            return None, "Missing transaction ID"

        raw_passenger = get_field(row, "PassengerID", "PassengerKey")
        passenger_key = standardize_passenger_key(raw_passenger)
        if not passenger_key:
            return None, f"Invalid passenger key: {raw_passenger!r}"

        flight_key = _clean(get_field(row, "FlightID", "FlightKey"))
        if not flight_key:
            return None, "Missing flight key"

        raw_date = get_field(row, "TransactionDate", "DateKey")
        parsed = standardize_date(raw_date)
        if not parsed:
            return None, f"Invalid date: {raw_date!r}"
        _, date_key = parsed

        ticket_price = get_field(row, "TicketPrice")
        if not _clean(ticket_price):
            return None, "Missing ticket price"

        record: SalesRecord = {
            "transaction_id": transaction_id,
            "date_key": date_key,
            "passenger_key": passenger_key,
            "flight_key": flight_key,
            "ticket_price": standardize_amount(ticket_price),
            "taxes": standardize_amount(get_field(row, "Taxes")),
            "baggage_fees": standardize_amount(get_field(row, "BaggageFees")),
            "total_amount": standardize_amount(get_field(row, "TotalAmount")),
            "sales_source": source.value,
        }
        return record, None

    # ─────────────────────────────────────────────────────────────
    # Cached hierarchy lookups
    # ─────────────────────────────────────────────────────────────

    def _find_country(self, fragment: str) -> Optional[str]:
        if not self.country_lookup:
            return None
        if fragment not in self._country_cache:
            self._country_cache[fragment] = self.country_lookup(fragment)
        return self._country_cache[fragment]

    def _find_country_id(self, country: str) -> Optional[int]:
        if not self.country_id_lookup or country == UNKNOWN:
            return None
        if country not in self._country_id_cache:
            self._country_id_cache[country] = self.country_id_lookup(country)
        return self._country_id_cache[country]
