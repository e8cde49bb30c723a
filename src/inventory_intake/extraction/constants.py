from __future__ import annotations

from typing import Tuple

# Extraction strategies selectable by the caller.
STRATEGY_AI = "ai"
STRATEGY_PATTERN = "pattern"

STRATEGY_CHOICES: Tuple[str, ...] = (STRATEGY_AI, STRATEGY_PATTERN)

# Source kinds accepted by the acquisition adapter.
KIND_PDF = "pdf"
KIND_IMAGE = "image"

KIND_CHOICES: Tuple[str, ...] = (KIND_PDF, KIND_IMAGE)

# Canonical labels stored in the inventory; the shop records are in Japanese.
CATEGORY_CHOICES: Tuple[str, ...] = (
    "ギター",
    "ベース",
    "ドラム",
    "キーボード・ピアノ",
    "管楽器",
    "弦楽器",
    "アンプ",
    "エフェクター",
    "アクセサリー",
    "その他",
)
CATEGORY_DEFAULT = "その他"

CONDITION_NEW = "新品"
CONDITION_USED = "中古"
CONDITION_DISPLAY = "展示品"
CONDITION_GRADE_B = "B級品"
CONDITION_JUNK = "ジャンク"

CONDITION_CHOICES: Tuple[str, ...] = (
    CONDITION_NEW,
    CONDITION_USED,
    CONDITION_DISPLAY,
    CONDITION_GRADE_B,
    CONDITION_JUNK,
)

# Numeric text fields coerced by the validation stage.
AMOUNT_FIELDS: Tuple[str, ...] = ("price", "list_price", "wholesale_price", "gross_margin")

# Debug payload sizes.
RESPONSE_PREVIEW_CHARS = 1000
TEXT_PREVIEW_CHARS = 500
REJECTED_SAMPLE_SIZE = 5
REJECTED_SAMPLE_CHARS = 200
