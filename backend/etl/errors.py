"""
ETL exception hierarchy.

Row-level problems never surface here; they become quarantine reasons.
These types mark the boundaries where a file or a whole run has to stop,
plus the typed store failure the load engine branches on.
"""
from enum import Enum
from typing import Optional


class ETLError(Exception):
    """Base exception for all pipeline failures."""


class FileReadError(ETLError):
    """Raised when an input file cannot be opened or parsed at all."""


class StoreErrorKind(Enum):
    CONFLICT = "conflict"
    OTHER = "other"


class StoreWriteError(ETLError):
    """
    Raised by the store client for any failed write or lookup.

    `kind` tells the load engine whether the row already exists
    (uniqueness violation) or failed for some other reason.
    """

    def __init__(self, message: str, kind: StoreErrorKind = StoreErrorKind.OTHER, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.code = code

    @property
    def is_conflict(self) -> bool:
        return self.kind is StoreErrorKind.CONFLICT


class QuarantineFallbackError(ETLError):
    """Raised when neither the quarantine table nor the local backup file accepted a batch."""
