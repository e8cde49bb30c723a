from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import ExtractionConfig
from ..domain.models import UsageLogEntry
from ..logging import get_logger
from .store import MemoryUsageStore, SqliteUsageStore, UsageStore


LOG = get_logger("usage-meter")

# USD per 1M tokens: (input, output).
PRICING: Dict[str, Tuple[float, float]] = {
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "gpt-4": (30.00, 60.00),
}
DEFAULT_PRICING_MODEL = "gpt-4o-mini"

PERIODS: Dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "24h": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_PERIOD = "24h"
RECENT_LOG_COUNT = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def compute_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    input_price, output_price = PRICING.get(model, PRICING[DEFAULT_PRICING_MODEL])
    cost = (prompt_tokens / 1_000_000) * input_price + (completion_tokens / 1_000_000) * output_price
    return round(cost, 6)


@dataclass
class UsageStats:
    period: str
    total_requests: int = 0
    total_tokens: int = 0
    total_cost_usd: float = 0.0
    total_cost_jpy: float = 0.0
    by_model: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    by_endpoint: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    recent_logs: List[UsageLogEntry] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "total_tokens": self.total_tokens,
            "total_cost_usd": self.total_cost_usd,
            "total_cost_jpy": self.total_cost_jpy,
            "by_model": self.by_model,
            "by_endpoint": self.by_endpoint,
            "recent_logs": [e.as_dict() for e in self.recent_logs],
        }


def _bump(groups: Dict[str, Dict[str, Any]], key: str, entry: UsageLogEntry) -> None:
    g = groups.setdefault(key, {"requests": 0, "tokens": 0, "cost_usd": 0.0})
    g["requests"] += 1
    g["tokens"] += entry.total_tokens
    g["cost_usd"] = round(g["cost_usd"] + entry.cost_usd, 6)


class UsageMeter:
    """Per-call token/cost accounting on top of a bounded UsageStore."""

    def __init__(
        self,
        store: Optional[UsageStore] = None,
        *,
        usd_jpy_rate: float = 150.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store if store is not None else MemoryUsageStore()
        self.usd_jpy_rate = usd_jpy_rate
        self.clock = clock

    def record(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        endpoint: str = "unknown",
        user_action: str = "unknown",
    ) -> UsageLogEntry:
        if prompt_tokens < 0 or completion_tokens < 0:
            raise ValueError("token counts must be non-negative")
        entry = UsageLogEntry(
            timestamp=self.clock().isoformat(timespec="seconds"),
            model=model,
            prompt_tokens=int(prompt_tokens),
            completion_tokens=int(completion_tokens),
            total_tokens=int(prompt_tokens) + int(completion_tokens),
            cost_usd=compute_cost(model, prompt_tokens, completion_tokens),
            endpoint=endpoint or "unknown",
            user_action=user_action or "unknown",
        )
        self.store.append(entry)
        LOG.info(
            "Usage recorded: model=%s tokens=%d cost_usd=%.6f endpoint=%s action=%s",
            entry.model,
            entry.total_tokens,
            entry.cost_usd,
            entry.endpoint,
            entry.user_action,
        )
        return entry

    def query(self, period: Optional[str] = None) -> UsageStats:
        key = period if period in PERIODS else DEFAULT_PERIOD
        if period and period not in PERIODS:
            LOG.warning("Unknown usage period %r; using %s", period, DEFAULT_PERIOD)
        since = self.clock() - PERIODS[key]

        selected: List[UsageLogEntry] = []
        for entry in self.store.entries():
            ts = _parse_timestamp(entry.timestamp)
            if ts is not None and ts >= since:
                selected.append(entry)

        stats = UsageStats(period=key)
        total_cost = 0.0
        for entry in selected:
            stats.total_requests += 1
            stats.total_tokens += entry.total_tokens
            total_cost += entry.cost_usd
            _bump(stats.by_model, entry.model, entry)
            _bump(stats.by_endpoint, entry.endpoint, entry)
        stats.total_cost_usd = round(total_cost, 6)
        stats.total_cost_jpy = round(total_cost * self.usd_jpy_rate, 2)
        stats.recent_logs = selected[-RECENT_LOG_COUNT:]
        return stats


def build_meter(config: Optional[ExtractionConfig] = None) -> UsageMeter:
    """Memory-backed meter by default; USAGE_DB switches to the sqlite store."""
    config = config or ExtractionConfig()
    store: UsageStore
    if config.usage_db:
        store = SqliteUsageStore(config.usage_db, capacity=config.usage_capacity)
    else:
        store = MemoryUsageStore(config.usage_capacity)
    return UsageMeter(store, usd_jpy_rate=config.usd_jpy_rate)
