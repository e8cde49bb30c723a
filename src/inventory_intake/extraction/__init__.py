"""Product extraction pipeline: text acquisition, strategies, validation."""

from .acquisition import AcquiredText, TextAcquirer
from .ai import AIExtractor, AIExtractorConfig
from .dictionaries import ProductDictionaries, load_dictionaries
from .errors import (
    AcquisitionError,
    AcquisitionErrorKind,
    AIError,
    AIErrorKind,
    ExtractionError,
    ValidationError,
    ValidationErrorKind,
)
from .pattern import PatternExtractor
from .recovery import recover_json_array
from .service import ExtractionRun, ExtractionService, RunState, SourceFile
from .validation import RecordValidator, dedupe_records

__all__ = [
    "AcquiredText",
    "TextAcquirer",
    "AIExtractor",
    "AIExtractorConfig",
    "ProductDictionaries",
    "load_dictionaries",
    "AcquisitionError",
    "AcquisitionErrorKind",
    "AIError",
    "AIErrorKind",
    "ExtractionError",
    "ValidationError",
    "ValidationErrorKind",
    "PatternExtractor",
    "recover_json_array",
    "ExtractionRun",
    "ExtractionService",
    "RunState",
    "SourceFile",
    "RecordValidator",
    "dedupe_records",
]
