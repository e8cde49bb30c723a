"""Deterministic line scanner producing product records without any network call."""

from __future__ import annotations

import re
from typing import List, Optional

from ..domain.models import ProductRecord
from ..domain.normalize import find_price, nfkc
from ..logging import get_logger
from .base import Extractor
from .constants import STRATEGY_PATTERN
from .dictionaries import ProductDictionaries, load_dictionaries
from .validation import dedupe_records


LOG = get_logger("pattern-extractor")

_MODEL_TOKEN = re.compile(r"[A-Za-z0-9]+(?:-[A-Za-z0-9]+)*")
_MIN_MODEL_LEN = 3
_NOTE_CHARS = 100


def find_model_number(line: str, brand: Optional[str]) -> str:
    """Return the longest alphanumeric(-hyphen) token that is not the brand.

    Tokens need a digit and a letter so that prices and plain words are skipped.
    """
    best = ""
    brand_l = (brand or "").lower()
    for token in _MODEL_TOKEN.findall(line):
        if len(token) < _MIN_MODEL_LEN or token.lower() == brand_l:
            continue
        if not (any(ch.isdigit() for ch in token) and any(ch.isalpha() for ch in token)):
            continue
        if len(token) > len(best):
            best = token
    return best


class PatternExtractor(Extractor):
    """Brand-anchored heuristic extractor; never raises, may return []."""

    name = STRATEGY_PATTERN

    def __init__(self, dictionaries: Optional[ProductDictionaries] = None) -> None:
        self.dictionaries = dictionaries or load_dictionaries()

    def extract(self, text: str, *, action: str = "pattern_extraction") -> List[ProductRecord]:
        products: List[ProductRecord] = []
        lines = [ln for ln in re.split(r"[\r\n]+", text or "") if ln.strip()]
        for raw_line in lines:
            record = self.extract_line(raw_line)
            if record is not None:
                products.append(record)
        unique = dedupe_records(products)
        LOG.info("Pattern scan: %d line(s), %d candidate(s), %d unique", len(lines), len(products), len(unique))
        return unique

    def extract_line(self, raw_line: str) -> Optional[ProductRecord]:
        d = self.dictionaries
        line = nfkc(raw_line).strip()
        brand = d.match_brand(line)
        if not brand:
            return None

        price = find_price(line)
        category = d.classify_category(line)
        model = find_model_number(line, brand)
        color = d.match_color(line)
        condition = d.match_condition(line)

        parts = [brand]
        if model:
            parts.append(model)
        if category != d.default_category:
            parts.append(category)
        product_name = " ".join(parts)

        if not product_name or not price:
            LOG.debug("Skipping brand line without price: %r", line[:80])
            return None

        return ProductRecord(
            category=category,
            product_name=product_name,
            manufacturer=brand,
            model_number=model,
            color=color,
            condition=condition,
            price=price,
            notes=f"パターン抽出: {raw_line.strip()[:_NOTE_CHARS]}",
        )
