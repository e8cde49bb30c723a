from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Tuple


OPTIONAL_FIELDS: Tuple[str, ...] = (
    "supplier",
    "list_price",
    "wholesale_price",
    "wholesale_rate",
    "gross_margin",
    "serial_number",
    "purchase_date",
    "notes",
)


def _text(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


@dataclass
class ProductRecord:
    """One inventory item recovered from free text."""

    category: str = ""
    product_name: str = ""
    manufacturer: str = ""
    model_number: str = ""
    color: str = ""
    condition: str = ""
    price: str = ""
    supplier: Optional[str] = None
    list_price: Optional[str] = None
    wholesale_price: Optional[str] = None
    wholesale_rate: Optional[str] = None
    gross_margin: Optional[str] = None
    serial_number: Optional[str] = None
    purchase_date: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProductRecord":
        """Build a record from model/JSON output, ignoring unknown keys.

        Numbers become their text form; null and empty optional values stay absent.
        """
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            text = _text(data.get(f.name))
            if f.name in OPTIONAL_FIELDS:
                kwargs[f.name] = text or None
            else:
                kwargs[f.name] = text
        return cls(**kwargs)

    def as_dict(self) -> Dict[str, str]:
        out = asdict(self)
        for name in OPTIONAL_FIELDS:
            if out.get(name) is None:
                out.pop(name, None)
        return out

    def has_identifier(self) -> bool:
        return bool((self.product_name or "").strip() or (self.model_number or "").strip())

    def dedupe_key(self) -> Tuple[str, str, str]:
        return (self.product_name, self.manufacturer, self.price)


@dataclass
class ExtractionResult:
    """Envelope handed back to the caller for one extraction request."""

    success: bool
    products: List[ProductRecord] = field(default_factory=list)
    method: str = ""
    diagnostics: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    debug: Optional[Dict[str, Any]] = None
    status_code: int = 200

    @classmethod
    def failure(
        cls,
        message: str,
        *,
        error_code: str,
        status_code: int,
        method: str = "",
        debug: Optional[Dict[str, Any]] = None,
    ) -> "ExtractionResult":
        return cls(
            success=False,
            method=method,
            error=message,
            error_code=error_code,
            debug=debug or None,
            status_code=status_code,
        )

    def as_dict(self) -> Dict[str, Any]:
        if self.success:
            payload: Dict[str, Any] = {
                "success": True,
                "products": [p.as_dict() for p in self.products],
                "method": self.method,
            }
            if self.diagnostics:
                payload["diagnostics"] = self.diagnostics
            if self.debug:
                payload["debug"] = self.debug
            return payload
        payload = {"success": False, "error": self.error, "error_code": self.error_code}
        if self.debug:
            payload["debug"] = self.debug
        return payload


@dataclass(frozen=True)
class UsageLogEntry:
    timestamp: str  # ISO-8601, UTC
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost_usd: float
    endpoint: str
    user_action: str

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)
