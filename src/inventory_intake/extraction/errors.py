"""Typed failures of the extraction pipeline.

Every failure carries a kind enum; callers branch on `kind`, never on the
message text. `http_status` is the status the HTTP layer answers with.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class AcquisitionErrorKind(str, Enum):
    UNREADABLE = "unreadable"
    INSUFFICIENT_TEXT = "insufficient_text"
    NO_TEXT = "no_text"
    TOO_LARGE = "too_large"


class AIErrorKind(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    SERVICE_ERROR = "service_error"
    MALFORMED_JSON = "malformed_json"
    NO_VALID_RECORDS = "no_valid_records"


class ValidationErrorKind(str, Enum):
    EMPTY = "empty"


class ExtractionError(Exception):
    """Base class; subclasses fix the family prefix and status mapping."""

    family = "extraction"
    statuses: Dict[Enum, int] = {}

    def __init__(self, kind: Enum, message: str, *, debug: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.debug: Dict[str, Any] = dict(debug or {})

    @property
    def code(self) -> str:
        return f"{self.family}.{self.kind.value}"

    @property
    def http_status(self) -> int:
        return self.statuses.get(self.kind, 500)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.name}, {self.message!r})"


class AcquisitionError(ExtractionError):
    family = "acquisition"
    statuses = {
        AcquisitionErrorKind.UNREADABLE: 400,
        AcquisitionErrorKind.INSUFFICIENT_TEXT: 400,
        AcquisitionErrorKind.NO_TEXT: 400,
        AcquisitionErrorKind.TOO_LARGE: 413,
    }


class AIError(ExtractionError):
    family = "ai"
    statuses = {
        AIErrorKind.MISSING_CREDENTIAL: 503,
        AIErrorKind.SERVICE_ERROR: 502,
        AIErrorKind.MALFORMED_JSON: 502,
        AIErrorKind.NO_VALID_RECORDS: 400,
    }


class ValidationError(ExtractionError):
    family = "validation"
    statuses = {ValidationErrorKind.EMPTY: 400}


__all__ = [
    "AcquisitionError",
    "AcquisitionErrorKind",
    "AIError",
    "AIErrorKind",
    "ExtractionError",
    "ValidationError",
    "ValidationErrorKind",
]
