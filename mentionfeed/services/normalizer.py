"""Normalisation of scraped engagement counts and post timestamps."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from dateutil import parser as date_parser

# Leading magnitude of an abbreviated count ("1.2k", "3 m", "12,345")
_COUNT_PREFIX_RE = re.compile(r"^\d[\d,]*(?:\.\d+)?|^\.\d+")

_UNIT_SECONDS = {
    "s": 1,
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hr": 3600,
    "hrs": 3600,
    "hour": 3600,
    "hours": 3600,
    "d": 86400,
    "day": 86400,
    "days": 86400,
}

# "5m", "5m ago", "5 min ago", "3 hours ago", "2d"
_RELATIVE_RE = re.compile(
    r"^(\d+)\s*(" + "|".join(sorted(_UNIT_SECONDS, key=len, reverse=True)) + r")\b(?:\s+ago)?$"
)

_NOW_WORDS = {"now", "just now"}


def parse_count(text: Optional[str]) -> int:
    """Convert an abbreviated engagement count into an integer.

    ``"1.5k"`` → 1500, ``"2m"`` → 2000000, ``"1,234"`` → 1234.  Empty or
    unparsable input yields 0; counts are best-effort telemetry and this
    function never raises.
    """
    if not text:
        return 0
    value = text.strip().lower()

    if "k" in value or "m" in value:
        multiplier = 1_000 if "k" in value else 1_000_000
        match = _COUNT_PREFIX_RE.match(value)
        if not match:
            return 0
        try:
            return max(0, round(float(match.group(0).replace(",", "")) * multiplier))
        except ValueError:
            return 0

    try:
        return max(0, int(value.replace(",", "")))
    except ValueError:
        return 0


def parse_relative_time(text: Optional[str], now: datetime) -> datetime:
    """Resolve a relative ("5m ago") or absolute timestamp against *now*.

    Note that a bare ``m`` suffix means *minutes* here while
    :func:`parse_count` reads it as *millions*; pick the parser per field.
    Falls back to *now* when nothing matches.
    """
    if not text:
        return now
    value = text.strip().lower()

    if value in _NOW_WORDS:
        return now

    match = _RELATIVE_RE.match(value)
    if match:
        magnitude = int(match.group(1))
        try:
            return now - timedelta(seconds=magnitude * _UNIT_SECONDS[match.group(2)])
        except (OverflowError, ValueError):
            return now

    parsed = parse_absolute_time(text.strip())
    return parsed if parsed is not None else now


def parse_absolute_time(text: str) -> Optional[datetime]:
    """Parse an ISO or human-readable date; naive results are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        # Nitter titles look like "Oct 5, 2024 · 3:12 PM UTC"
        try:
            parsed = date_parser.parse(text.replace("·", " "))
        except (ValueError, OverflowError):
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
