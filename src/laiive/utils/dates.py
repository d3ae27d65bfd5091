"""Date range resolution and display helpers for event searches."""

from __future__ import annotations

import datetime
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta


def _weekend(reference: datetime.date) -> tuple[datetime.date, datetime.date]:
    # Saturday is weekday 5; on Saturday and Sunday the current weekend is meant.
    if reference.weekday() == 6:
        saturday = reference - datetime.timedelta(days=1)
    else:
        saturday = reference + datetime.timedelta(days=5 - reference.weekday())
    return saturday, saturday + datetime.timedelta(days=1)


def resolve_relative_date(
    expression: str, reference: datetime.date
) -> Optional[tuple[datetime.date, datetime.date]]:
    """Translate phrases such as "tomorrow" into an inclusive date range."""

    expr = expression.strip().lower()
    if "tomorrow" in expr:
        day = reference + datetime.timedelta(days=1)
        return day, day
    if "today" in expr or "tonight" in expr:
        return reference, reference
    if "next weekend" in expr:
        saturday, sunday = _weekend(reference)
        return saturday + datetime.timedelta(days=7), sunday + datetime.timedelta(days=7)
    if "weekend" in expr:
        return _weekend(reference)
    if "next week" in expr:
        monday = reference + relativedelta(days=7 - reference.weekday())
        return monday, monday + datetime.timedelta(days=6)
    if "this week" in expr:
        monday = reference - datetime.timedelta(days=reference.weekday())
        return monday, monday + datetime.timedelta(days=6)
    return None


def parse_date(value: str, reference: datetime.date, *, end: bool = False) -> datetime.date:
    """Parse an ISO date or a relative phrase; ``end`` picks the range's last day."""

    text = (value or "").strip()
    if not text:
        raise ValueError("date is required")
    try:
        return date_parser.isoparse(text).date()
    except ValueError:
        pass

    resolved = resolve_relative_date(text, reference)
    if resolved is not None:
        return resolved[1] if end else resolved[0]

    try:
        return date_parser.parse(text, default=datetime.datetime.combine(reference, datetime.time())).date()
    except (ValueError, OverflowError) as exc:
        raise ValueError(f"Unrecognised date: {value!r}") from exc


def day_bounds(
    start: datetime.date, end: datetime.date
) -> tuple[datetime.datetime, datetime.datetime]:
    """Return ``[start 00:00 UTC, end + 1 day 00:00 UTC)`` for a date range."""

    utc = datetime.timezone.utc
    lower = datetime.datetime.combine(start, datetime.time(), tzinfo=utc)
    upper = datetime.datetime.combine(end, datetime.time(), tzinfo=utc) + datetime.timedelta(days=1)
    return lower, upper


def format_event_when(value: str) -> str:
    """Render a stored timestamp as ``Sun, Jun 1, 2025 at 08:00 PM``."""

    try:
        moment = date_parser.isoparse(value)
    except ValueError:
        return value
    return f"{moment:%a}, {moment:%b} {moment.day}, {moment.year} at {moment:%I:%M %p}"


_CITY_ALIASES = {
    "bergamo": "Bergamo",
    "bergmo": "Bergamo",
    "milan": "Milan",
    "milano": "Milan",
    "rome": "Rome",
    "roma": "Rome",
    "florence": "Florence",
    "firenze": "Florence",
    "venice": "Venice",
    "venezia": "Venice",
    "turin": "Turin",
    "torino": "Turin",
    "naples": "Naples",
    "napoli": "Naples",
    "barcelona": "Barcelona",
    "barna": "Barcelona",
}


def standardize_city(value: str) -> str:
    """Map common spellings to the canonical city name."""

    normalized = value.strip()
    if not normalized:
        return normalized
    alias = _CITY_ALIASES.get(normalized.lower())
    if alias:
        return alias
    return normalized[0].upper() + normalized[1:]


__all__ = [
    "day_bounds",
    "format_event_when",
    "parse_date",
    "resolve_relative_date",
    "standardize_city",
]
