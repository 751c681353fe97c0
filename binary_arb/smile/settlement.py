from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from binary_arb.smile.pricing import SECONDS_PER_YEAR

EASTERN = ZoneInfo("America/New_York")

# Daily contracts on the prediction venue settle at noon Eastern.
SETTLEMENT_HOUR_ET = 12

_MONTH_MAP = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December"
    "|Jan|Feb|Mar|Apr|Jun|Jul|Aug|Sep|Oct|Nov|Dec"
)

_ISO_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_WITH_YEAR_RE = re.compile(rf"\b({_MONTHS})\s+(\d{{1,2}}),?\s+(\d{{4}})\b", re.IGNORECASE)
_NO_YEAR_RE = re.compile(rf"\b(?:on\s+)?({_MONTHS})\s+(\d{{1,2}})\b", re.IGNORECASE)


@dataclass(frozen=True)
class SettlementInfo:
    settlement_time_utc: datetime
    time_to_expiry_years: float
    is_expired: bool


def settlement_noon_utc(year: int, month: int, day: int) -> datetime:
    """Noon Eastern on the given calendar day, as an aware UTC datetime."""
    return datetime(year, month, day, SETTLEMENT_HOUR_ET, tzinfo=EASTERN).astimezone(timezone.utc)


def settlement_from_iso_date(value: str) -> datetime:
    """``YYYY-MM-DD`` to that day's settlement instant.

    Raises ``ValueError`` on anything else.
    """
    day = date.fromisoformat(value.strip()[:10])
    return settlement_noon_utc(day.year, day.month, day.day)


def et_to_utc(value: datetime) -> datetime:
    """Naive datetimes are read as Eastern wall time; aware ones are converted."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=EASTERN)
    return value.astimezone(timezone.utc)


def utc_to_et(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(EASTERN)


def parse_settlement_time(text: str, now: datetime | None = None) -> datetime | None:
    """Settlement instant named in a market title, or None.

    Tried in order: ISO date, month name with year, month name alone. A
    date without a year lands in the current Eastern year, or the next one
    when that day's settlement has already passed.
    """
    match = _ISO_RE.search(text)
    if match:
        return _safe_noon(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _WITH_YEAR_RE.search(text)
    if match:
        month = _MONTH_MAP[match.group(1).lower()]
        return _safe_noon(int(match.group(3)), month, int(match.group(2)))

    match = _NO_YEAR_RE.search(text)
    if match:
        month = _MONTH_MAP[match.group(1).lower()]
        day = int(match.group(2))
        current = now or datetime.now(timezone.utc)
        year = utc_to_et(current).year
        tentative = _safe_noon(year, month, day)
        if tentative is not None and tentative < current:
            return _safe_noon(year + 1, month, day)
        return tentative

    return None


def _safe_noon(year: int, month: int, day: int) -> datetime | None:
    try:
        return settlement_noon_utc(year, month, day)
    except ValueError:
        return None


def get_settlement_info(settlement: datetime, now: float | None = None) -> SettlementInfo:
    settlement_utc = et_to_utc(settlement)
    current = time.time() if now is None else now
    seconds_left = settlement_utc.timestamp() - current
    return SettlementInfo(
        settlement_time_utc=settlement_utc,
        time_to_expiry_years=max(0.0, seconds_left / SECONDS_PER_YEAR),
        is_expired=seconds_left <= 0,
    )


def is_within_cutoff(settlement: datetime, cutoff_minutes: float, now: float | None = None) -> bool:
    """True once less than ``cutoff_minutes`` remain, and after settlement."""
    current = time.time() if now is None else now
    seconds_left = et_to_utc(settlement).timestamp() - current
    return seconds_left <= cutoff_minutes * 60.0
