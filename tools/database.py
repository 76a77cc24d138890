from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional, Union

from utils.logger import get_logger, log_event


_SCHEMA = """
CREATE TABLE IF NOT EXISTS settings(
  id INTEGER PRIMARY KEY CHECK (id=1),
  sender_name TEXT,
  sender_email TEXT,
  school TEXT,
  program TEXT,
  city TEXT,
  bcc_list TEXT,
  daily_cap INTEGER DEFAULT 25
);
INSERT OR IGNORE INTO settings(id) VALUES (1);

-- one row per message Gmail accepted
CREATE TABLE IF NOT EXISTS sends(
  id TEXT NOT NULL,
  ts INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sends_ts ON sends(ts);
"""

_logger = get_logger("database")


class AppDatabase:
    """
    Owns the single SQLite connection used by the settings store and send log.

    Open it once at startup and close it on shutdown (or use it as a context
    manager). ":memory:" works for tests.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database is not open")
        return self._conn

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> "AppDatabase":
        if self._conn is not None:
            return self
        if str(self.path) != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        conn.executescript(_SCHEMA)
        conn.commit()
        self._conn = conn
        log_event(_logger, "db_open", path=str(self.path))
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "AppDatabase":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()
