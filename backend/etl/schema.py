"""
Warehouse Record Schema - TypedDict shapes for canonical and quarantined rows.

Canonical records map one-to-one onto the star schema columns:
- dim_passenger, dim_airport, dim_airline, dim_flight (dimensions)
- fact_sales (fact)
- dirty_data (quarantine, append-only)
"""
from decimal import Decimal
from typing import TypedDict, Dict, Any, Optional

# Raw CSV row as read from the file: header -> string value
RawRow = Dict[str, str]


class PassengerRecord(TypedDict):
    passenger_key: str            # 'P' + 3 digits, e.g. P001
    full_name: str
    email: str                    # lowercase, existing or synthesized
    loyalty_status: str           # Platinum | Gold | Silver | Bronze


class AirportRecord(TypedDict):
    airport_key: str              # 3-letter uppercase code
    airport_name: str
    city: str
    country: str                  # canonical country name
    country_id: Optional[int]     # dim_country_hierarchy.country_id if known


class AirlineRecord(TypedDict):
    airline_key: str
    airline_name: str
    alliance: Optional[str]


class FlightRecord(TypedDict):
    flight_key: str
    origin_airport_key: str
    destination_airport_key: str
    aircraft_type: str


class SalesRecord(TypedDict):
    transaction_id: str           # TA000123 | CO000123
    date_key: int                 # YYYYMMDD
    passenger_key: str
    flight_key: str
    ticket_price: Decimal
    taxes: Decimal
    baggage_fees: Decimal
    total_amount: Decimal
    sales_source: str             # 'travel_agency' | 'corporate'


class QuarantineEntry(TypedDict):
    """One rejected, duplicate or failed row, written once and never mutated."""
    source_table: str             # entity type the row came from
    original_data: Dict[str, Any] # the row as read (or the record that failed to load)
    error_reason: str
    created_at: str               # ISO 8601 timestamp
