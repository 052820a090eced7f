"""Blocked-date normalization.

Doctor records carry blocked dates in several shapes: plain strings
("2024-01-15" or a full ISO timestamp), wrapper objects ({"date": "2024-01-15",
"reason": "Conference"}), and database timestamps exposing `seconds` or a
`to_date()` method. Each raw entry is parsed once into a BlockedDate variant
and converted to a canonical YYYY-MM-DD string in one place.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, tzinfo
from typing import Any

import pytz

logger = logging.getLogger(__name__)

DEFAULT_BLOCKED_REASON = "Doctor not available"


@dataclass(frozen=True)
class StringDate:
    value: str


@dataclass(frozen=True)
class WrappedDate:
    value: str
    reason: str | None = None


@dataclass(frozen=True)
class EpochSeconds:
    seconds: float
    reason: str | None = None


BlockedDate = StringDate | WrappedDate | EpochSeconds


def resolve_timezone(tz: tzinfo | str | None) -> tzinfo:
    """Accept a tzinfo, a zone name or None (UTC). Unknown names fall back to UTC."""
    if tz is None:
        return UTC
    if isinstance(tz, str):
        try:
            return pytz.timezone(tz)
        except pytz.UnknownTimeZoneError:
            logger.warning("Unknown timezone %r, using UTC", tz)
            return UTC
    return tz


def _reason_of(raw: Any) -> str | None:
    reason = raw.get("reason") if isinstance(raw, Mapping) else getattr(raw, "reason", None)
    return reason if isinstance(reason, str) and reason else None


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def parse_blocked_date(raw: Any) -> BlockedDate | None:
    """Classify a raw blocked-date entry. Returns None for shapes we cannot read."""
    if raw is None:
        return None
    if isinstance(raw, str):
        return StringDate(raw)
    # datetime before date: datetime is a date subclass
    if isinstance(raw, datetime):
        return EpochSeconds(raw.timestamp())
    if isinstance(raw, date):
        return StringDate(raw.isoformat())
    if isinstance(raw, Mapping):
        if isinstance(raw.get("date"), str):
            return WrappedDate(raw["date"], _reason_of(raw))
        if _is_number(raw.get("seconds")):
            return EpochSeconds(float(raw["seconds"]), _reason_of(raw))
        return None
    seconds = getattr(raw, "seconds", None)
    if _is_number(seconds):
        return EpochSeconds(float(seconds), _reason_of(raw))
    to_date = getattr(raw, "to_date", None) or getattr(raw, "toDate", None)
    if callable(to_date):
        try:
            converted = to_date()
        except Exception:
            logger.debug("Blocked date %r: to_date() failed", raw, exc_info=True)
            return None
        if isinstance(converted, datetime):
            return EpochSeconds(converted.timestamp(), _reason_of(raw))
        if isinstance(converted, date):
            return WrappedDate(converted.isoformat(), _reason_of(raw))
    return None


def _iso_prefix(value: str) -> str | None:
    prefix = value.strip()[:10]
    try:
        return date.fromisoformat(prefix).isoformat()
    except ValueError:
        return None


def normalize_to_canonical_date(
    blocked: BlockedDate, tz: tzinfo | str | None = None
) -> str | None:
    """Convert any BlockedDate variant to YYYY-MM-DD, or None if it is malformed."""
    match blocked:
        case StringDate(value=value) | WrappedDate(value=value):
            return _iso_prefix(value)
        case EpochSeconds(seconds=seconds):
            try:
                return datetime.fromtimestamp(seconds, resolve_timezone(tz)).date().isoformat()
            except (OverflowError, OSError, ValueError):
                return None
    return None


def normalize_blocked_dates(raw_dates: Iterable[Any] | None, tz: tzinfo | str | None = None) -> list[str]:
    """Canonical YYYY-MM-DD strings for every readable entry; malformed entries are skipped."""
    if not raw_dates or isinstance(raw_dates, str | Mapping):
        return []
    out: list[str] = []
    for raw in raw_dates:
        parsed = parse_blocked_date(raw)
        canonical = normalize_to_canonical_date(parsed, tz) if parsed else None
        if canonical is None:
            logger.debug("Skipping unreadable blocked date entry: %r", raw)
            continue
        out.append(canonical)
    return out


def find_blocked_entry(
    raw_dates: Iterable[Any] | None, day: str, tz: tzinfo | str | None = None
) -> BlockedDate | None:
    """Return the first parsed entry whose canonical date equals `day`."""
    if not raw_dates or isinstance(raw_dates, str | Mapping):
        return None
    for raw in raw_dates:
        parsed = parse_blocked_date(raw)
        if parsed and normalize_to_canonical_date(parsed, tz) == day:
            return parsed
    return None


def reason_for(blocked: BlockedDate) -> str:
    if isinstance(blocked, WrappedDate | EpochSeconds) and blocked.reason:
        return blocked.reason
    return DEFAULT_BLOCKED_REASON
