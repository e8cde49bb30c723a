from __future__ import annotations

import json
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..domain.models import ProductRecord
from ..domain.normalize import coerce_amount
from ..logging import get_logger
from .constants import (
    AMOUNT_FIELDS,
    REJECTED_SAMPLE_CHARS,
    REJECTED_SAMPLE_SIZE,
    TEXT_PREVIEW_CHARS,
)
from .dictionaries import ProductDictionaries, load_dictionaries
from .errors import ValidationError, ValidationErrorKind


LOG = get_logger("validation")


def is_valid_record(record: ProductRecord) -> bool:
    """A record needs a product name or a model number; price may be absent."""
    return record.has_identifier()


def dedupe_records(records: Iterable[ProductRecord]) -> List[ProductRecord]:
    """Drop exact (product_name, manufacturer, price) repeats, keeping first occurrences."""
    seen: Set[Tuple[str, str, str]] = set()
    out: List[ProductRecord] = []
    for record in records:
        key = record.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        out.append(record)
    return out


def _sample(records: List[ProductRecord]) -> List[str]:
    sample: List[str] = []
    for record in records[:REJECTED_SAMPLE_SIZE]:
        dumped = json.dumps(record.as_dict(), ensure_ascii=False)
        sample.append(dumped[:REJECTED_SAMPLE_CHARS])
    return sample


class RecordValidator:
    """Shared post-stage run after either extraction strategy."""

    def __init__(self, dictionaries: Optional[ProductDictionaries] = None) -> None:
        self.dictionaries = dictionaries or load_dictionaries()

    def normalize(self, record: ProductRecord) -> ProductRecord:
        """Trim text, coerce amounts and map labels onto the enumerated sets."""
        changes: Dict[str, Optional[str]] = {}
        for name in ("product_name", "manufacturer", "model_number", "color"):
            changes[name] = (getattr(record, name) or "").strip()
        for name in AMOUNT_FIELDS:
            amount = coerce_amount(getattr(record, name))
            if name == "price":
                changes[name] = amount or ""
            else:
                changes[name] = amount
        changes["category"] = self.dictionaries.canonical_category(record.category)
        changes["condition"] = self.dictionaries.canonical_condition(record.condition)
        return replace(record, **changes)

    def validate(self, records: List[ProductRecord], *, source_text: Optional[str] = None) -> List[ProductRecord]:
        """Return the valid, normalized, de-duplicated records.

        Raises ValidationError(EMPTY) when nothing survives.
        """
        kept: List[ProductRecord] = []
        rejected: List[ProductRecord] = []
        for record in records:
            if is_valid_record(record):
                kept.append(self.normalize(record))
            else:
                rejected.append(record)
        unique = dedupe_records(kept)
        LOG.info(
            "Validation: %d in, %d rejected, %d duplicate(s), %d out",
            len(records),
            len(rejected),
            len(kept) - len(unique),
            len(unique),
        )
        if not unique:
            debug = {
                "extracted_count": len(records),
                "rejected_sample": _sample(rejected),
            }
            if source_text:
                debug["text_preview"] = source_text[:TEXT_PREVIEW_CHARS]
            raise ValidationError(
                ValidationErrorKind.EMPTY,
                "No valid product records could be extracted",
                debug=debug,
            )
        return unique
