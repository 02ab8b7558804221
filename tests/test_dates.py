from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from core.clock import FixedClock
from core.dates import CalendarDay, DateNormalizer, is_explicit_date, normalize_date, resolve_timezone
from core.errors import ConfigError

LA = ZoneInfo("America/Los_Angeles")
NY = ZoneInfo("America/New_York")
BERLIN = ZoneInfo("Europe/Berlin")


def test_today_uses_local_day_not_utc_truncation() -> None:
    # 02:30 UTC on the 10th is still the evening of the 9th in Los Angeles.
    ref = datetime(2024, 3, 10, 2, 30, tzinfo=timezone.utc)

    assert normalize_date("today", ref, local_tz=LA).key == "2024-03-09"
    assert normalize_date("tomorrow", ref, local_tz=LA).key == "2024-03-10"
    assert normalize_date("today", ref, local_tz=timezone.utc).key == "2024-03-10"


def test_same_instant_same_local_day_gives_same_key() -> None:
    instant = datetime(2024, 6, 1, 15, 0, tzinfo=timezone.utc)

    a = normalize_date("today", instant.astimezone(NY), local_tz=NY)
    b = normalize_date("today", instant.astimezone(BERLIN), local_tz=NY)
    assert a == b
    assert a.key == "2024-06-01"


def test_tokens_are_case_insensitive() -> None:
    ref = datetime(2024, 1, 31, 12, 0, tzinfo=NY)
    assert normalize_date("  TODAY ", ref, local_tz=NY).key == "2024-01-31"
    assert normalize_date("Tomorrow", ref, local_tz=NY).key == "2024-02-01"


def test_explicit_date_is_taken_directly() -> None:
    ref = datetime(2024, 3, 10, 2, 30, tzinfo=timezone.utc)
    day = normalize_date("2024-12-25", ref, local_tz=LA)

    assert day.key == "2024-12-25"
    assert day.utc_midnight() == datetime(2024, 12, 25, tzinfo=timezone.utc)


def test_unparseable_token_falls_back_to_today() -> None:
    ref = datetime(2024, 3, 10, 2, 30, tzinfo=timezone.utc)

    assert normalize_date("next tuesday", ref, local_tz=LA).key == "2024-03-09"
    assert normalize_date("2024-02-30", ref, local_tz=LA).key == "2024-03-09"
    assert normalize_date("", ref, local_tz=LA).key == "2024-03-09"


def test_naive_reference_is_read_in_local_zone() -> None:
    ref = datetime(2024, 3, 9, 23, 30)
    assert normalize_date("today", ref, local_tz=LA).key == "2024-03-09"


def test_is_explicit_date() -> None:
    assert is_explicit_date("2024-02-29")
    assert not is_explicit_date("2023-02-29")
    assert not is_explicit_date("today")
    assert not is_explicit_date("2024-2-9")


def test_normalizer_follows_injected_clock() -> None:
    clock = FixedClock(datetime(2024, 12, 31, 23, 0, tzinfo=timezone.utc))
    dates = DateNormalizer(clock=clock, local_tz=NY)

    assert dates.today().key == "2024-12-31"
    assert dates.normalize(None).key == "2024-12-31"

    clock.advance(days=1)
    assert dates.today().key == "2025-01-01"
    assert dates.normalize("tomorrow").key == "2025-01-02"


def test_fixed_clock_rejects_naive() -> None:
    with pytest.raises(ValueError):
        FixedClock(datetime(2024, 1, 1))


def test_calendar_day_helpers() -> None:
    day = CalendarDay.from_key("2024-02-28")
    assert day.plus_days(1).key == "2024-02-29"
    assert str(day.plus_days(2)) == "2024-03-01"
    assert day < day.plus_days(1)

    with pytest.raises(ValueError):
        CalendarDay.from_key("tomorrow")


def test_resolve_timezone() -> None:
    assert resolve_timezone("UTC") is timezone.utc
    assert resolve_timezone("Europe/Berlin") == BERLIN
    assert resolve_timezone("") is not None

    with pytest.raises(ConfigError) as ei:
        resolve_timezone("Mars/Olympus_Mons")
    assert ei.value.path == "dates.local_timezone"


def test_default_zone_is_system_zone_not_reference_zone(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("core.dates.system_local_timezone", lambda: LA)
    # 02:00 UTC on May 1st is still April 30th in Los Angeles.
    ref = datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc)

    assert normalize_date("today", ref).key == "2024-04-30"
    assert normalize_date("tomorrow", ref).key == "2024-05-01"
    assert DateNormalizer(clock=FixedClock(ref)).today() == normalize_date("today", ref)
