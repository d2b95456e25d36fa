"""
File Signature Registry - The fixed catalog of entity types this warehouse accepts.

Registry order is the tie-break rule: when a header set satisfies more than
one signature, the one declared first in SIGNATURES wins.
"""
import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, FrozenSet, Tuple


class EntityType(Enum):
    PASSENGERS = "passengers"
    AIRPORTS = "airports"
    AIRLINES = "airlines"
    FLIGHTS = "flights"
    TRAVEL_AGENCY_SALES = "travel_agency_sales"
    CORPORATE_SALES = "corporate_sales"
    UNKNOWN = "unknown"


class SalesSource(Enum):
    TRAVEL_AGENCY = "travel_agency"
    CORPORATE = "corporate"

    @property
    def prefix(self) -> str:
        return "TA" if self is SalesSource.TRAVEL_AGENCY else "CO"


@dataclass(frozen=True)
class FileSignature:
    entity_type: EntityType
    required_columns: FrozenSet[str]
    target_table: str
    conflict_key: str
    optional_columns: FrozenSet[str] = frozenset()
    amount_columns: FrozenSet[str] = frozenset()
    sales_source: Optional[SalesSource] = None

    @property
    def is_sales(self) -> bool:
        return self.sales_source is not None


# ─────────────────────────────────────────────────────────────
# Registry (declaration order = detection priority)
# ─────────────────────────────────────────────────────────────

SALES_AMOUNT_COLUMNS = frozenset({"TicketPrice", "Taxes", "BaggageFees", "TotalAmount"})

SIGNATURES: Tuple[FileSignature, ...] = (
    FileSignature(
        entity_type=EntityType.PASSENGERS,
        required_columns=frozenset({"PassengerKey", "FullName"}),
        optional_columns=frozenset({"Email", "LoyaltyStatus"}),
        target_table="dim_passenger",
        conflict_key="passenger_key",
    ),
    FileSignature(
        entity_type=EntityType.AIRPORTS,
        required_columns=frozenset({"AirportKey", "AirportName", "City", "Country"}),
        target_table="dim_airport",
        conflict_key="airport_key",
    ),
    FileSignature(
        entity_type=EntityType.AIRLINES,
        required_columns=frozenset({"AirlineKey", "AirlineName"}),
        optional_columns=frozenset({"Alliance"}),
        target_table="dim_airline",
        conflict_key="airline_key",
    ),
    FileSignature(
        entity_type=EntityType.FLIGHTS,
        required_columns=frozenset({"FlightKey", "OriginAirportKey", "DestinationAirportKey"}),
        optional_columns=frozenset({"AircraftType"}),
        target_table="dim_flight",
        conflict_key="flight_key",
    ),
    FileSignature(
        entity_type=EntityType.TRAVEL_AGENCY_SALES,
        required_columns=frozenset({"TransactionID", "TransactionDate", "PassengerID", "FlightID"}),
        amount_columns=SALES_AMOUNT_COLUMNS,
        target_table="fact_sales",
        conflict_key="transaction_id",
        sales_source=SalesSource.TRAVEL_AGENCY,
    ),
    FileSignature(
        entity_type=EntityType.CORPORATE_SALES,
        required_columns=frozenset({"TransactionID", "DateKey", "PassengerKey", "FlightKey"}),
        amount_columns=SALES_AMOUNT_COLUMNS,
        target_table="fact_sales",
        conflict_key="transaction_id",
        sales_source=SalesSource.CORPORATE,
    ),
)

CONFLICT_KEYS: Dict[str, str] = {sig.target_table: sig.conflict_key for sig in SIGNATURES}


def signature_for(entity_type: EntityType) -> FileSignature:
    for sig in SIGNATURES:
        if sig.entity_type is entity_type:
            return sig
    raise ValueError(f"No signature registered for: {entity_type.value}")


def conflict_key_for(table: str) -> str:
    """
    Conflict column for a target table.

    Unknown tables fall back to a generic 'id' column. That fallback only
    works if the table really has such a unique column, so it is logged.
    """
    key = CONFLICT_KEYS.get(table)
    if key is None:
        logging.warning(f"No conflict key registered for table '{table}', falling back to 'id'")
        return "id"
    return key


# ─────────────────────────────────────────────────────────────
# Run Summaries
# ─────────────────────────────────────────────────────────────

@dataclass
class LoadSummary:
    table: str
    attempted: int = 0
    uploaded: int = 0
    already_existed: int = 0
    errored: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FileResult:
    filename: str
    file_type: str
    success: bool
    total_rows: int = 0
    clean_rows: int = 0
    quarantined_rows: int = 0
    load: Optional[LoadSummary] = None
    error: Optional[str] = None
    document_hash: Optional[str] = None
    processing_time_ms: float = 0.0
    reasons: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "file_type": self.file_type,
            "success": self.success,
            "total_rows": self.total_rows,
            "clean_rows": self.clean_rows,
            "quarantined_rows": self.quarantined_rows,
            "uploaded": self.load.uploaded if self.load else 0,
            "already_existed": self.load.already_existed if self.load else 0,
            "errored": self.load.errored if self.load else 0,
            "attempted": self.load.attempted if self.load else 0,
            "error": self.error,
            "document_hash": self.document_hash,
            "processing_time_ms": self.processing_time_ms,
            "reasons": dict(self.reasons),
        }
