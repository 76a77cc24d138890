from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from tools.database import AppDatabase
from tools.errors import QuotaExceededError
from tools.settings_store import SettingsStore
from utils.logger import get_logger, log_event


_logger = get_logger("quota")


def local_now() -> datetime:
    # naive local wall-clock time; the system zone resolves DST
    return datetime.now()


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def start_of_local_day_ms(now: datetime) -> int:
    """
    Local wall-clock midnight of `now`'s day, as epoch milliseconds.

    A zone with rules (zoneinfo) resolves midnight's own offset. Naive times
    and fixed offsets carry no DST rules, so they go through the system zone;
    midnight may sit on the other side of a DST change from `now`.
    """
    if now.tzinfo is None or isinstance(now.tzinfo, timezone):
        local = now.astimezone().replace(tzinfo=None)
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    else:
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return to_epoch_ms(midnight)


@dataclass(frozen=True)
class QuotaState:
    used: int
    cap: int
    remaining: int

    def to_dict(self) -> dict[str, int]:
        return {"used": self.used, "cap": self.cap, "remaining": self.remaining}


class SendLog:
    """Append-only log of accepted sends: (message id, epoch ms)."""

    def __init__(self, db: AppDatabase) -> None:
        self.db = db

    def append(self, message_id: str, ts_ms: int) -> None:
        conn = self.db.conn
        conn.execute("INSERT INTO sends(id, ts) VALUES(?, ?)", (message_id, ts_ms))
        conn.commit()

    def count_since(self, threshold_ms: int) -> int:
        row = self.db.conn.execute("SELECT COUNT(*) AS n FROM sends WHERE ts >= ?", (threshold_ms,)).fetchone()
        return int(row["n"]) if row else 0


class SendQuotaGuard:
    """
    Daily send cap. The cap resets at local midnight, not UTC midnight.

    Nothing is cached: every call recounts today's rows.
    """

    def __init__(
        self,
        settings: SettingsStore,
        log: SendLog,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.settings = settings
        self.log = log
        self.clock = clock

    def quota(self) -> QuotaState:
        cap = self.settings.daily_cap()
        used = self.log.count_since(start_of_local_day_ms(self.clock()))
        return QuotaState(used=used, cap=cap, remaining=max(0, cap - used))

    def check(self) -> QuotaState:
        state = self.quota()
        if state.used >= state.cap:
            raise QuotaExceededError(state.used, state.cap)
        return state

    def record(self, message_id: Optional[str]) -> str:
        if not message_id:
            message_id = f"local-{uuid.uuid4()}"
            log_event(_logger, "send_id_missing", fallback_id=message_id)
        self.log.append(message_id, to_epoch_ms(self.clock()))
        return message_id
