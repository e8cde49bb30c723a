import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from inventory_intake.config import ExtractionConfig
from inventory_intake.domain.models import UsageLogEntry
from inventory_intake.usage import (
    MemoryUsageStore,
    SqliteUsageStore,
    UsageMeter,
    build_meter,
    compute_cost,
)


NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _entry(ts: datetime, model: str = "gpt-4o-mini", tokens: int = 100) -> UsageLogEntry:
    return UsageLogEntry(
        timestamp=ts.isoformat(timespec="seconds"),
        model=model,
        prompt_tokens=tokens,
        completion_tokens=0,
        total_tokens=tokens,
        cost_usd=compute_cost(model, tokens, 0),
        endpoint="/extract",
        user_action="pdf_extraction",
    )


def test_cost_uses_per_million_token_prices() -> None:
    assert compute_cost("gpt-4o-mini", 1_000_000, 1_000_000) == pytest.approx(0.75)
    assert compute_cost("gpt-4o", 1000, 500) == pytest.approx(0.0075)
    # unknown models are charged at the default row
    assert compute_cost("some-new-model", 1_000_000, 0) == pytest.approx(0.15)


def test_memory_store_keeps_newest_hundred() -> None:
    meter = UsageMeter(MemoryUsageStore(100), clock=_Clock(NOW))
    for i in range(105):
        meter.record("gpt-4o-mini", i, 0, "/extract", f"call-{i}")

    entries = meter.store.entries()
    assert len(entries) == 100
    assert entries[0].user_action == "call-5"
    assert entries[-1].user_action == "call-104"


def test_one_hour_window_excludes_older_entries() -> None:
    store = MemoryUsageStore()
    store.append(_entry(NOW - timedelta(hours=2), tokens=1000))
    store.append(_entry(NOW - timedelta(minutes=30), tokens=200))
    meter = UsageMeter(store, clock=_Clock(NOW))

    stats = meter.query("1h")

    assert stats.period == "1h"
    assert stats.total_requests == 1
    assert stats.total_tokens == 200
    assert [e.total_tokens for e in stats.recent_logs] == [200]

    assert meter.query("24h").total_requests == 2


def test_query_totals_groups_and_recent_logs() -> None:
    clock = _Clock(NOW)
    meter = UsageMeter(usd_jpy_rate=150.0, clock=clock)
    for _ in range(12):
        meter.record("gpt-4o-mini", 1000, 500, "/extract", "pdf_extraction")
    meter.record("gpt-4o", 1000, 500, "/describe", "description")

    stats = meter.query("24h").as_dict()

    assert stats["total_requests"] == 13
    assert stats["total_tokens"] == 13 * 1500
    assert stats["by_model"]["gpt-4o-mini"]["requests"] == 12
    assert stats["by_endpoint"]["/describe"]["requests"] == 1
    assert len(stats["recent_logs"]) == 10
    assert stats["recent_logs"][-1]["model"] == "gpt-4o"
    expected_usd = 12 * compute_cost("gpt-4o-mini", 1000, 500) + compute_cost("gpt-4o", 1000, 500)
    assert stats["total_cost_usd"] == pytest.approx(expected_usd)
    assert stats["total_cost_jpy"] == pytest.approx(round(expected_usd * 150, 2))


def test_unknown_period_falls_back_to_24h() -> None:
    meter = UsageMeter(clock=_Clock(NOW))
    meter.record("gpt-4o-mini", 10, 10)
    stats = meter.query("90d")
    assert stats.period == "24h"
    assert stats.total_requests == 1


def test_negative_token_counts_are_rejected() -> None:
    meter = UsageMeter()
    with pytest.raises(ValueError):
        meter.record("gpt-4o-mini", -1, 0)
    assert len(meter.store) == 0


def test_sqlite_store_is_bounded_and_persistent(tmp_path: Path) -> None:
    db_path = tmp_path / "usage.sqlite3"
    store = SqliteUsageStore(str(db_path), capacity=3)
    meter = UsageMeter(store, clock=_Clock(NOW))
    for i in range(5):
        meter.record("gpt-4o-mini", 10 * i, 0, "/extract", f"call-{i}")

    reopened = SqliteUsageStore(str(db_path), capacity=3)
    actions = [e.user_action for e in reopened.entries()]
    assert actions == ["call-2", "call-3", "call-4"]
    assert UsageMeter(reopened, clock=_Clock(NOW)).query("1h").total_requests == 3


@pytest.mark.parametrize("backend", ["memory", "sqlite"])
def test_concurrent_appends_stay_bounded_and_ordered(backend: str, tmp_path: Path) -> None:
    if backend == "memory":
        store = MemoryUsageStore(100)
    else:
        store = SqliteUsageStore(str(tmp_path / "usage.sqlite3"), capacity=100)

    def writer(thread_no: int) -> None:
        for i in range(50):
            store.append(replace(_entry(NOW), user_action=f"t{thread_no}-{i:02d}"))

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    actions = [e.user_action for e in store.entries()]
    assert len(actions) == 100
    assert len(set(actions)) == 100
    for n in range(8):
        mine = [a for a in actions if a.startswith(f"t{n}-")]
        assert mine == sorted(mine)


def test_build_meter_picks_store_from_config(tmp_path: Path) -> None:
    assert isinstance(build_meter(ExtractionConfig()).store, MemoryUsageStore)

    cfg = ExtractionConfig(usage_db=str(tmp_path / "u.sqlite3"), usage_capacity=7, usd_jpy_rate=140.0)
    meter = build_meter(cfg)
    assert isinstance(meter.store, SqliteUsageStore)
    assert meter.store.capacity == 7
    assert meter.usd_jpy_rate == 140.0
