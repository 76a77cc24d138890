"""Tests for the daily send cap and the local-midnight reset."""

import time
from datetime import datetime, timezone

import pytest

from conftest import LOCAL_TZ, FakeClock
from tools.errors import QuotaExceededError
from tools.send_quota import SendLog, SendQuotaGuard, start_of_local_day_ms, to_epoch_ms
from tools.settings_store import SettingsStore


@pytest.fixture
def guard(db, clock) -> SendQuotaGuard:
    return SendQuotaGuard(SettingsStore(db), SendLog(db), clock=clock)


def test_start_of_local_day_uses_local_midnight() -> None:
    now = datetime(2026, 3, 10, 1, 30, tzinfo=LOCAL_TZ)
    expected = to_epoch_ms(datetime(2026, 3, 10, 0, 0, tzinfo=LOCAL_TZ))
    assert start_of_local_day_ms(now) == expected


@pytest.fixture
def new_york_system_tz(monkeypatch: pytest.MonkeyPatch):
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "America/New_York")
    time.tzset()
    if "EST" not in time.tzname:
        monkeypatch.undo()
        time.tzset()
        pytest.skip("system time zone database has no America/New_York")
    yield
    monkeypatch.undo()
    time.tzset()


def _utc_ms(*args) -> int:
    return to_epoch_ms(datetime(*args, tzinfo=timezone.utc))


def test_named_zone_midnight_on_spring_forward_day() -> None:
    # 2026-03-08: midnight is EST (-05:00), 10:00 is EDT (-04:00)
    now = datetime(2026, 3, 8, 10, 0, tzinfo=LOCAL_TZ)
    assert start_of_local_day_ms(now) == _utc_ms(2026, 3, 8, 5, 0)


@pytest.mark.usefixtures("new_york_system_tz")
def test_system_zone_midnight_on_spring_forward_day() -> None:
    naive = datetime(2026, 3, 8, 10, 0)
    fixed_offset = datetime(2026, 3, 8, 10, 0, tzinfo=LOCAL_TZ).astimezone()
    assert start_of_local_day_ms(naive) == _utc_ms(2026, 3, 8, 5, 0)
    assert start_of_local_day_ms(fixed_offset) == _utc_ms(2026, 3, 8, 5, 0)


@pytest.mark.usefixtures("new_york_system_tz")
def test_system_zone_midnight_on_fall_back_day() -> None:
    # 2026-11-01: midnight is EDT (-04:00), 10:00 is EST (-05:00)
    assert start_of_local_day_ms(datetime(2026, 11, 1, 10, 0)) == _utc_ms(2026, 11, 1, 4, 0)


@pytest.mark.usefixtures("new_york_system_tz")
def test_send_just_before_spring_forward_midnight_not_counted(db) -> None:
    clock = FakeClock(datetime(2026, 3, 8, 10, 0))
    log = SendLog(db)
    guard = SendQuotaGuard(SettingsStore(db), log, clock=clock)

    log.append("late-last-night", _utc_ms(2026, 3, 8, 4, 30))  # 23:30 EST on the 7th
    log.append("early-today", _utc_ms(2026, 3, 8, 5, 30))  # 00:30 EST on the 8th
    assert guard.quota().used == 1


def test_quota_defaults_to_cap_25_with_nothing_sent(guard: SendQuotaGuard) -> None:
    state = guard.quota()
    assert (state.used, state.cap, state.remaining) == (0, 25, 25)


def test_quota_counts_todays_sends(guard: SendQuotaGuard) -> None:
    guard.settings.update({"daily_cap": 5})
    for i in range(3):
        guard.record(f"msg-{i}")
    assert guard.quota().to_dict() == {"used": 3, "cap": 5, "remaining": 2}


def test_remaining_never_negative(guard: SendQuotaGuard) -> None:
    for i in range(4):
        guard.record(f"msg-{i}")
    guard.settings.update({"daily_cap": 2})
    state = guard.quota()
    assert state.used == 4
    assert state.remaining == 0


def test_yesterday_late_evening_does_not_count(db) -> None:
    # 01:00 local; an entry from 23:30 local yesterday is only 90 minutes old
    clock = FakeClock(datetime(2026, 3, 10, 1, 0, tzinfo=LOCAL_TZ))
    log = SendLog(db)
    guard = SendQuotaGuard(SettingsStore(db), log, clock=clock)

    log.append("late-last-night", to_epoch_ms(datetime(2026, 3, 9, 23, 30, tzinfo=LOCAL_TZ)))
    assert guard.quota().used == 0

    log.append("just-after-midnight", to_epoch_ms(datetime(2026, 3, 10, 0, 10, tzinfo=LOCAL_TZ)))
    assert guard.quota().used == 1


def test_cap_resets_when_clock_rolls_past_local_midnight(db) -> None:
    clock = FakeClock(datetime(2026, 3, 10, 23, 50, tzinfo=LOCAL_TZ))
    guard = SendQuotaGuard(SettingsStore(db), SendLog(db), clock=clock)
    guard.settings.update({"daily_cap": 2})
    guard.record("a")
    guard.record("b")
    with pytest.raises(QuotaExceededError):
        guard.check()

    clock.advance(minutes=15)
    assert guard.check().remaining == 2


def test_check_raises_with_display_message(guard: SendQuotaGuard) -> None:
    guard.settings.update({"daily_cap": 1})
    guard.record("only-one")
    with pytest.raises(QuotaExceededError) as exc:
        guard.check()
    assert str(exc.value) == "Daily cap reached (1/1). Try again tomorrow."
    assert (exc.value.used, exc.value.cap) == (1, 1)


def test_zero_cap_blocks_everything(guard: SendQuotaGuard) -> None:
    guard.settings.update({"daily_cap": 0})
    with pytest.raises(QuotaExceededError):
        guard.check()


def test_record_falls_back_to_local_id(guard: SendQuotaGuard) -> None:
    message_id = guard.record(None)
    assert message_id.startswith("local-")
    assert guard.quota().used == 1
