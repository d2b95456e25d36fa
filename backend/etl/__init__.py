"""
ETL Package - Airline CSV to Star-Schema Warehouse Loader

Modules:
- models: File signature registry, entity types, run summaries
- classify: Header-based file type detection
- extract: CSV reading with malformed-line capture
- transform: Row standardizers (keys, emails, countries, dates, amounts)
- dedup: Within-file and cross-file duplicate detection
- resolver: Airport reference checks with placeholder creation
- load: Batched upsert with per-record fallback and pacing
- quarantine: Durable record of every row that was not loaded
- report: Excel review workbook for quarantined rows
- pipeline: Main orchestrator
- schema: TypedDict definitions
"""
from .pipeline import ETLPipeline
from .classify import FileTypeClassifier
from .transform import RowStandardizer
from .dedup import Deduplicator
from .load import ResilientLoader, PacingPolicy
from .quarantine import QuarantineSink
from .resolver import AirportResolver
from .models import EntityType, FileSignature, LoadSummary, FileResult
from .errors import ETLError, FileReadError, StoreWriteError, StoreErrorKind, QuarantineFallbackError

__all__ = [
    'ETLPipeline', 'FileTypeClassifier', 'RowStandardizer', 'Deduplicator',
    'ResilientLoader', 'PacingPolicy', 'QuarantineSink', 'AirportResolver',
    'EntityType', 'FileSignature', 'LoadSummary', 'FileResult',
    'ETLError', 'FileReadError', 'StoreWriteError', 'StoreErrorKind', 'QuarantineFallbackError',
]
