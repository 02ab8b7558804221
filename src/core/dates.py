"""Loose date tokens to canonical calendar-day keys.

Capabilities receive dates from the model as ``"today"``, ``"tomorrow"`` or an
explicit ``YYYY-MM-DD``. All three must land on the same storage key, so the
day is computed in the user's local zone first and only then expressed in the
canonical zone (UTC). Truncating the instant in UTC instead would shift
"today" near local midnight.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from observability.logging import get_logger

from .clock import Clock
from .errors import ConfigError

CANONICAL_TZ = timezone.utc

_EXPLICIT_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_log = get_logger("trainer.dates")


@dataclass(frozen=True, slots=True, order=True)
class CalendarDay:
    """Canonical calendar-day key, independent of the caller's zone."""

    day: date

    @property
    def key(self) -> str:
        return self.day.isoformat()

    def utc_midnight(self) -> datetime:
        return datetime(self.day.year, self.day.month, self.day.day, tzinfo=CANONICAL_TZ)

    def plus_days(self, days: int) -> "CalendarDay":
        return CalendarDay(self.day + timedelta(days=days))

    @classmethod
    def from_key(cls, key: str) -> "CalendarDay":
        parsed = parse_explicit_date(key)
        if parsed is None:
            raise ValueError(f"not a YYYY-MM-DD day key: {key!r}")
        return cls(parsed)

    def __str__(self) -> str:
        return self.key


def system_local_timezone() -> tzinfo:
    tz = datetime.now().astimezone().tzinfo
    return tz if tz is not None else CANONICAL_TZ


def resolve_timezone(name: str | None) -> tzinfo:
    """Map a configured zone name to a tzinfo; empty means the system zone."""

    if not name:
        return system_local_timezone()
    if name.upper() == "UTC":
        return CANONICAL_TZ
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"unknown timezone {name!r}", path="dates.local_timezone") from e


def parse_explicit_date(token: str) -> date | None:
    text = (token or "").strip()
    if not _EXPLICIT_DAY_RE.fullmatch(text):
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def is_explicit_date(token: str) -> bool:
    """Strict check for callers that must not rely on the permissive fallback."""

    return parse_explicit_date(token) is not None


def local_day(reference: datetime, local_tz: tzinfo) -> date:
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=local_tz)
    return reference.astimezone(local_tz).date()


def normalize_date(token: str, reference: datetime, *, local_tz: tzinfo | None = None) -> CalendarDay:
    """Resolve `token` against `reference` to a canonical calendar day.

    - ``today`` / ``tomorrow`` (any case) are the local day of `reference`
      (plus one day), re-expressed as the same calendar day in UTC.
    - ``YYYY-MM-DD`` is taken as-is.
    - Anything else falls back to the local day of `reference`.

    `local_tz` defaults to the system zone. The zone carried by an aware
    `reference` only locates the instant; it never picks the calendar.
    """

    tz = local_tz or system_local_timezone()
    today = local_day(reference, tz)

    word = (token or "").strip().lower()
    if word == "today":
        return CalendarDay(today)
    if word == "tomorrow":
        return CalendarDay(today + timedelta(days=1))

    explicit = parse_explicit_date(word)
    if explicit is not None:
        return CalendarDay(explicit)

    _log.debug("date_token_fallback", token=token, day=today.isoformat())
    return CalendarDay(today)


class DateNormalizer:
    """`normalize_date` bound to an injected clock and the user's zone."""

    def __init__(self, *, clock: Clock, local_tz: tzinfo | None = None) -> None:
        self._clock = clock
        self._local_tz = local_tz

    @property
    def local_tz(self) -> tzinfo:
        return self._local_tz or system_local_timezone()

    def normalize(self, token: str | None) -> CalendarDay:
        return normalize_date(token or "today", self._clock.now(), local_tz=self.local_tz)

    def today(self) -> CalendarDay:
        return self.normalize("today")
