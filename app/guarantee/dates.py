"""Reservation date/time parsing and calendar window computation"""

import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIME = time(12, 0)
DEFAULT_DURATION_MINUTES = 60

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_LONG_DATE = re.compile(r"(\d{1,2})\s+([^\s\d]+)\s+(\d{4})")
_TIME = re.compile(r"^\s*(\d{1,2})\s*[h:H]\s*(\d{2})?\s*$")

FRENCH_MONTHS = {
    "janvier": 1,
    "fevrier": 2,
    "mars": 3,
    "avril": 4,
    "mai": 5,
    "juin": 6,
    "juillet": 7,
    "aout": 8,
    "septembre": 9,
    "octobre": 10,
    "novembre": 11,
    "decembre": 12,
}


def _strip_accents(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    return "".join(c for c in normalized if not unicodedata.combining(c))


def parse_reservation_date(value: str) -> datetime:
    """
    Parse a reservation date sent by the voice agent.

    Accepts ISO dates ("2025-12-20", optionally followed by a time part) and French
    long dates ("20 décembre 2025"). Long dates are pinned to noon so that the
    calendar day survives timezone shifts. Raises ValueError when nothing matches.
    """
    value = value.strip()

    iso = _ISO_DATE.match(value)
    if iso:
        year, month, day = (int(part) for part in iso.groups())
        return datetime(year, month, day, DEFAULT_TIME.hour, DEFAULT_TIME.minute)

    long_form = _LONG_DATE.search(value)
    if long_form:
        day, month_name, year = long_form.groups()
        month = FRENCH_MONTHS.get(_strip_accents(month_name).lower())
        if month:
            return datetime(int(year), month, int(day), DEFAULT_TIME.hour, DEFAULT_TIME.minute)

    raise ValueError(f"Unrecognized reservation date: {value!r}")


def parse_reservation_time(value: Optional[str]) -> Optional[time]:
    """Parse "19:30", "19h30" or "19h"; None when absent or unparseable"""
    if not value:
        return None
    match = _TIME.match(value)
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    if hours > 23 or minutes > 59:
        return None
    return time(hours, minutes)


def resolve_timezone(name: Optional[str], fallback: str = "Europe/Paris") -> ZoneInfo:
    try:
        return ZoneInfo(name or fallback)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(fallback)


@dataclass(frozen=True)
class ReservationWindow:
    start: datetime
    end: datetime
    day_start: datetime
    day_end: datetime
    timezone: str

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def reservation_window(
    reservation_date: date,
    reservation_time: Optional[str],
    duration_minutes: Optional[int],
    timezone: Optional[str],
) -> ReservationWindow:
    """Timezone-aware start/end of the booking plus the bounds of its calendar day"""
    tz = resolve_timezone(timezone)
    day = reservation_date.date() if isinstance(reservation_date, datetime) else reservation_date
    start_time = parse_reservation_time(reservation_time) or DEFAULT_TIME

    start = datetime.combine(day, start_time, tzinfo=tz)
    end = start + timedelta(minutes=duration_minutes or DEFAULT_DURATION_MINUTES)
    day_start = datetime.combine(day, time(0, 0), tzinfo=tz)
    day_end = datetime.combine(day, time(23, 59, 59, 999000), tzinfo=tz)

    return ReservationWindow(
        start=start,
        end=end,
        day_start=day_start,
        day_end=day_end,
        timezone=tz.key,
    )
