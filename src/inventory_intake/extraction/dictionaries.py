from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..logging import get_logger


LOG = get_logger("dictionaries")

DEFAULT_DICTIONARIES_PATH = os.path.join(os.path.dirname(__file__), "data", "dictionaries.json")

_ASCII_WORD = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 \-]*$")


class DictionaryError(Exception):
    pass


def _keyword_hit(haystack_lower: str, keyword: str, *, whole_word: bool) -> bool:
    kw = keyword.lower()
    if whole_word and _ASCII_WORD.match(kw):
        return re.search(rf"(?<![a-z0-9]){re.escape(kw)}(?![a-z0-9])", haystack_lower) is not None
    return kw in haystack_lower


def _first_label(
    table: Dict[str, Tuple[str, ...]], text: str, *, whole_word: bool
) -> Optional[str]:
    lowered = (text or "").lower()
    for label, keywords in table.items():
        if any(_keyword_hit(lowered, kw, whole_word=whole_word) for kw in keywords):
            return label
    return None


@dataclass(frozen=True)
class ProductDictionaries:
    """Brand, category, colour and condition tables used by the scanners.

    Table order is significant: the first matching entry wins.
    """

    brands: Tuple[str, ...]
    categories: Dict[str, Tuple[str, ...]]
    default_category: str
    colors: Dict[str, Tuple[str, ...]]
    default_color: str
    conditions: Dict[str, Tuple[str, ...]]
    default_condition: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductDictionaries":
        def _table(key: str) -> Dict[str, Tuple[str, ...]]:
            raw = data.get(key)
            if not isinstance(raw, dict) or not raw:
                raise DictionaryError(f"'{key}' must be a non-empty object of label -> keywords")
            out: Dict[str, Tuple[str, ...]] = {}
            for label, keywords in raw.items():
                if not isinstance(keywords, list) or not all(isinstance(k, str) and k for k in keywords):
                    raise DictionaryError(f"'{key}.{label}' must be a list of non-empty strings")
                out[str(label)] = tuple(keywords)
            return out

        def _label(key: str) -> str:
            value = data.get(key)
            if not isinstance(value, str) or not value.strip():
                raise DictionaryError(f"'{key}' must be a non-empty string")
            return value.strip()

        brands = data.get("brands")
        if not isinstance(brands, list) or not brands or not all(isinstance(b, str) and b.strip() for b in brands):
            raise DictionaryError("'brands' must be a non-empty list of strings")

        return cls(
            brands=tuple(b.strip() for b in brands),
            categories=_table("categories"),
            default_category=_label("default_category"),
            colors=_table("colors"),
            default_color=_label("default_color"),
            conditions=_table("conditions"),
            default_condition=_label("default_condition"),
        )

    # ---- scanners ------------------------------------------------------------
    def match_brand(self, line: str) -> Optional[str]:
        lowered = (line or "").lower()
        for brand in self.brands:
            if brand.lower() in lowered:
                return brand
        return None

    def classify_category(self, text: str) -> str:
        return _first_label(self.categories, text, whole_word=False) or self.default_category

    def match_color(self, text: str) -> str:
        return _first_label(self.colors, text, whole_word=True) or self.default_color

    def match_condition(self, text: str) -> str:
        return _first_label(self.conditions, text, whole_word=True) or self.default_condition

    # ---- label normalisation (validation stage) ------------------------------
    def canonical_category(self, value: str) -> str:
        """Map a category label or synonym onto a known label.

        Empty or unrecognised values become the catch-all category.
        """
        v = (value or "").strip()
        if not v:
            return self.default_category
        if v in self.categories or v == self.default_category:
            return v
        return _first_label(self.categories, v, whole_word=False) or self.default_category

    def canonical_condition(self, value: str) -> str:
        """Map a condition synonym onto a known label; unknown stays empty."""
        v = (value or "").strip()
        if not v:
            return ""
        if v in self.conditions:
            return v
        return _first_label(self.conditions, v, whole_word=True) or ""


def load_dictionaries(path: Optional[str] = None) -> ProductDictionaries:
    """Load dictionaries from `path`, or the bundled defaults when None."""
    target = path or DEFAULT_DICTIONARIES_PATH
    try:
        with open(target, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise DictionaryError(f"Cannot read product dictionaries from {target}: {exc}") from exc
    if not isinstance(data, dict):
        raise DictionaryError(f"Product dictionaries in {target} must be a JSON object")
    dictionaries = ProductDictionaries.from_dict(data)
    LOG.debug(
        "Loaded dictionaries from %s (%d brands, %d categories, %d colors)",
        target,
        len(dictionaries.brands),
        len(dictionaries.categories),
        len(dictionaries.colors),
    )
    return dictionaries
