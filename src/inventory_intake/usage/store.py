from __future__ import annotations

import os
import sqlite3
import threading
from collections import deque
from contextlib import contextmanager
from typing import Deque, Iterator, List, Optional

from ..domain.models import UsageLogEntry
from ..logging import get_logger
from ..paths import find_project_root, var_dir


LOG = get_logger("usage-store")

DEFAULT_CAPACITY = 100
DEFAULT_DB_FOLDER = "usage"
DEFAULT_DB_FILENAME = "usage.sqlite3"


class UsageStore:
    """Append-only, bounded log of usage entries in arrival order.

    Implementations serialize appends so concurrent requests never interleave.
    """

    capacity: int = DEFAULT_CAPACITY

    def append(self, entry: UsageLogEntry) -> None:
        raise NotImplementedError

    def entries(self) -> List[UsageLogEntry]:
        raise NotImplementedError

    def __len__(self) -> int:
        return len(self.entries())


class MemoryUsageStore(UsageStore):
    """Process-local ring buffer; the oldest entry is evicted past capacity."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._entries: Deque[UsageLogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, entry: UsageLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> List[UsageLogEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS usage_log (
  entry_id          INTEGER PRIMARY KEY AUTOINCREMENT,
  timestamp         TEXT NOT NULL,     -- ISO-8601 UTC
  model             TEXT NOT NULL,
  prompt_tokens     INTEGER NOT NULL CHECK(prompt_tokens >= 0),
  completion_tokens INTEGER NOT NULL CHECK(completion_tokens >= 0),
  total_tokens      INTEGER NOT NULL,
  cost_usd          REAL NOT NULL,
  endpoint          TEXT NOT NULL,
  user_action       TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_usage_timestamp ON usage_log(timestamp);
"""


def default_usage_db_path(root_dir: Optional[str] = None) -> str:
    root = find_project_root(root_dir)
    return os.path.join(var_dir(root), DEFAULT_DB_FOLDER, DEFAULT_DB_FILENAME)


class SqliteUsageStore(UsageStore):
    """SQLite-backed usage log that survives restarts.

    - Keeps only the newest `capacity` rows; trimming happens in the same
      transaction as the insert.
    - A process-wide lock serializes writers on top of SQLite's own locking.
    """

    def __init__(self, db_path: Optional[str] = None, *, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.db_path = os.path.abspath(db_path) if db_path else default_usage_db_path()
        os.makedirs(os.path.dirname(self.db_path), exist_ok=True)
        self._lock = threading.Lock()
        self._ensure_schema()
        LOG.info(f"Usage DB path: {self.db_path}")

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            try:
                conn.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.OperationalError as exc:
                LOG.debug(f"WAL journal mode unavailable: {exc}")
            conn.executescript(SCHEMA_SQL)

    def append(self, entry: UsageLogEntry) -> None:
        with self._lock, self.connect() as conn:
            conn.execute(
                """
                INSERT INTO usage_log(timestamp, model, prompt_tokens, completion_tokens,
                                      total_tokens, cost_usd, endpoint, user_action)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.timestamp,
                    entry.model,
                    entry.prompt_tokens,
                    entry.completion_tokens,
                    entry.total_tokens,
                    entry.cost_usd,
                    entry.endpoint,
                    entry.user_action,
                ),
            )
            conn.execute(
                """
                DELETE FROM usage_log
                WHERE entry_id NOT IN (
                  SELECT entry_id FROM usage_log ORDER BY entry_id DESC LIMIT ?
                )
                """,
                (self.capacity,),
            )

    def entries(self) -> List[UsageLogEntry]:
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT timestamp, model, prompt_tokens, completion_tokens, total_tokens,
                       cost_usd, endpoint, user_action
                FROM usage_log ORDER BY entry_id ASC
                """
            ).fetchall()
        return [
            UsageLogEntry(
                timestamp=row["timestamp"],
                model=row["model"],
                prompt_tokens=int(row["prompt_tokens"]),
                completion_tokens=int(row["completion_tokens"]),
                total_tokens=int(row["total_tokens"]),
                cost_usd=float(row["cost_usd"]),
                endpoint=row["endpoint"],
                user_action=row["user_action"],
            )
            for row in rows
        ]
