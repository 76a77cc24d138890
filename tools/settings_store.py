from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Optional

from tools.database import AppDatabase
from tools.errors import InvalidRequestError


DEFAULT_DAILY_CAP = 25


@dataclass(frozen=True)
class Settings:
    sender_name: str = ""
    sender_email: str = ""
    school: str = ""
    program: str = ""
    city: str = ""
    bcc_list: str = ""
    daily_cap: int = DEFAULT_DAILY_CAP

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_FIELDS = tuple(f.name for f in fields(Settings))


def _coerce_cap(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        cap = int(value)
    except (TypeError, ValueError):
        raise InvalidRequestError(f"daily_cap must be an integer, got {value!r}") from None
    if cap < 0:
        raise InvalidRequestError("daily_cap cannot be negative")
    return cap


class SettingsStore:
    """The single settings row (id=1)."""

    def __init__(self, db: AppDatabase, default_daily_cap: int = DEFAULT_DAILY_CAP) -> None:
        self.db = db
        self.default_daily_cap = default_daily_cap

    def get(self) -> Settings:
        row = self.db.conn.execute("SELECT * FROM settings WHERE id=1").fetchone()
        if row is None:
            return Settings(daily_cap=self.default_daily_cap)
        values = {name: (row[name] or "") for name in _FIELDS if name != "daily_cap"}
        return Settings(daily_cap=_coerce_cap(row["daily_cap"], self.default_daily_cap), **values)

    def update(self, payload: dict[str, Any]) -> Settings:
        current = self.get().to_dict()
        unknown = set(payload) - set(_FIELDS)
        if unknown:
            raise InvalidRequestError(f"Unknown settings field(s): {', '.join(sorted(unknown))}")

        merged = {**current, **payload}
        merged["daily_cap"] = _coerce_cap(merged.get("daily_cap"), self.default_daily_cap)
        for name in _FIELDS:
            if name != "daily_cap":
                merged[name] = str(merged.get(name) or "").strip()

        conn = self.db.conn
        conn.execute(
            """
            UPDATE settings SET
              sender_name=:sender_name,
              sender_email=:sender_email,
              school=:school,
              program=:program,
              city=:city,
              bcc_list=:bcc_list,
              daily_cap=:daily_cap
            WHERE id=1
            """,
            merged,
        )
        conn.commit()
        return Settings(**merged)

    def daily_cap(self) -> int:
        return self.get().daily_cap

    def sender_email(self) -> Optional[str]:
        return self.get().sender_email or None
