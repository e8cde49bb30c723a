"""AI usage accounting: bounded append-only log plus period queries."""

from .meter import PERIODS, PRICING, UsageMeter, UsageStats, build_meter, compute_cost
from .store import MemoryUsageStore, SqliteUsageStore, UsageStore

__all__ = [
    "PERIODS",
    "PRICING",
    "UsageMeter",
    "UsageStats",
    "build_meter",
    "compute_cost",
    "MemoryUsageStore",
    "SqliteUsageStore",
    "UsageStore",
]
