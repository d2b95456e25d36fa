"""
FileTypeClassifier - Header-based detection of which entity a CSV extract holds.

Detection is a pure function of the header list:
1. Exact signatures, in registry order (first match wins).
   Sales signatures additionally need at least one amount column.
2. Fuzzy fallback on entity-name fragments (FUZZY_RULES, first match wins).
3. Otherwise UNKNOWN, which the caller must treat as a hard stop for the file.
"""
from typing import List, Dict, Any, Iterable, Optional, Sequence, Tuple

from .models import EntityType, FileSignature, SIGNATURES


# ─────────────────────────────────────────────────────────────
# Fuzzy Fallback Rules
# ─────────────────────────────────────────────────────────────
# Applied in order when no signature matches; first fragment hit wins.

FUZZY_RULES: Tuple[Tuple[str, EntityType], ...] = (
    ("passenger", EntityType.PASSENGERS),
    ("airport", EntityType.AIRPORTS),
    ("airline", EntityType.AIRLINES),
    ("flight", EntityType.FLIGHTS),
    ("transaction", EntityType.TRAVEL_AGENCY_SALES),
)

TRAVEL_AGENCY_FRAGMENTS = ("travel", "agency")
CORPORATE_FRAGMENTS = ("corporate", "datekey")


def _normalize(headers: Iterable[Any]) -> List[str]:
    return [str(h).strip().lower() for h in headers if h is not None]


class FileTypeClassifier:
    """
    Usage:
        classifier = FileTypeClassifier()
        classifier.detect(["PassengerKey", "FullName", "Email"])
        # Returns: EntityType.PASSENGERS
    """

    def __init__(self, signatures: Sequence[FileSignature] = SIGNATURES):
        self.signatures = tuple(signatures)

    def detect(self, headers: Iterable[Any]) -> EntityType:
        entity_type, _ = self._detect(headers)
        return entity_type

    def describe(self, headers: Iterable[Any]) -> Dict[str, Any]:
        headers = list(headers)
        entity_type, matched_by = self._detect(headers)
        return {
            "file_type": entity_type.value,
            "matched_by": matched_by,
            "headers": [str(h) for h in headers],
        }

    def _detect(self, headers: Iterable[Any]) -> Tuple[EntityType, Optional[str]]:
        header_set = set(_normalize(headers))

        for sig in self.signatures:
            if self._matches(sig, header_set):
                return sig.entity_type, "signature"

        fuzzy = self._fuzzy_match(header_set)
        if fuzzy is not EntityType.UNKNOWN:
            return fuzzy, "fuzzy"
        return EntityType.UNKNOWN, None

    def _matches(self, sig: FileSignature, header_set: set) -> bool:
        has_required = all(col.lower() in header_set for col in sig.required_columns)
        if not has_required:
            return False
        if sig.is_sales:
            return any(col.lower() in header_set for col in sig.amount_columns)
        return True

    def _fuzzy_match(self, header_set: set) -> EntityType:
        for fragment, entity_type in FUZZY_RULES:
            if not any(fragment in h for h in header_set):
                continue
            if entity_type is EntityType.TRAVEL_AGENCY_SALES:
                return self._sales_subtype(header_set)
            return entity_type
        return EntityType.UNKNOWN

    def _sales_subtype(self, header_set: set) -> EntityType:
        if any(frag in h for h in header_set for frag in TRAVEL_AGENCY_FRAGMENTS):
            return EntityType.TRAVEL_AGENCY_SALES
        if any(frag in h for h in header_set for frag in CORPORATE_FRAGMENTS):
            return EntityType.CORPORATE_SALES
        # No subtype hint: default to travel agency
        return EntityType.TRAVEL_AGENCY_SALES
