import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple

from ..logging import get_logger

_LOG = get_logger("normalize")

_AMOUNT = r"(\d[\d,]*(?:\.\d+)?)"

# Ordered: the first pattern that hits a line decides its price.
PRICE_PATTERNS: Tuple["re.Pattern[str]", ...] = (
    re.compile(r"(?:¥|JPY|YEN)\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(_AMOUNT + r"\s*(?:¥|JPY\b|YEN\b)", re.IGNORECASE),
    re.compile(_AMOUNT + r"\s*円"),
    re.compile(r"(?:price|値段|価格|販売価格|売価)\s*[:：]?\s*" + _AMOUNT, re.IGNORECASE),
)

_BARE_NUMBER = re.compile(r"^[+]?" + _AMOUNT + r"$")

# Longer digit runs are barcodes or OCR noise, not shop prices.
MAX_PRICE_DIGITS = 12


def nfkc(text: str) -> str:
    """Fold full-width digits, letters and the full-width yen sign to ASCII forms."""
    return unicodedata.normalize("NFKC", text or "")


def _digits(amount: str) -> Optional[str]:
    """Digit string of a whole, non-negative amount; None for anything else."""
    try:
        value = Decimal(amount.replace(",", ""))
    except InvalidOperation:
        return None
    if not value.is_finite() or value.is_signed() or value.adjusted() >= MAX_PRICE_DIGITS:
        return None
    whole = value.to_integral_value()
    if value != whole:
        return None
    return str(int(whole))


def find_price(line: str) -> str:
    """Return the first currency-marked amount on a line as a digit string.

    Unmarked numbers (model numbers, quantities) are ignored; "" when none.
    """
    s = nfkc(line)
    for pattern in PRICE_PATTERNS:
        m = pattern.search(s)
        if m:
            digits = _digits(m.group(1))
            if digits is not None:
                return digits
    return ""


def normalize_price(value: Any) -> str:
    """Normalize a price to a bare digit string.

    '¥12,345', '12345円' and '12,345¥' all become '12345'. A bare number such
    as '12,345' or 12345 is accepted too; anything else yields "".
    """
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return _digits(str(value)) or ""
    s = nfkc(str(value)).strip()
    if not s:
        return ""
    m = _BARE_NUMBER.match(s.replace(" ", ""))
    if m:
        return _digits(m.group(1)) or ""
    return find_price(s)


def coerce_amount(value: Any) -> Optional[str]:
    """Return a non-negative integer digit string, or None when not numeric.

    Non-numeric input means absent, never zero. Fractional amounts such as
    "12.7" and digit runs longer than MAX_PRICE_DIGITS are absent too; "12.0"
    is kept as "12".
    """
    digits = normalize_price(value)
    if not digits:
        if value not in (None, ""):
            _LOG.debug(f"Dropping unusable amount: {value!r}")
        return None
    return digits
