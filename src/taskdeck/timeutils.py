from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
import re
from zoneinfo import ZoneInfo

_RELATIVE = re.compile(r"^\+\s*(?P<amount>\d+)\s*(?P<unit>[mhd])$")
_UNITS = {"m": "minutes", "h": "hours", "d": "days"}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the configured zone, or the machine's local zone when unset."""
    if name:
        return ZoneInfo(name)
    local = datetime.now().astimezone().tzinfo
    return local or timezone.utc


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_iso(value: datetime) -> str:
    """Serialise an instant the way browsers do: UTC, milliseconds, ``Z``."""
    moment = ensure_aware(value).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_iso(value: str) -> datetime:
    cleaned = value.strip()
    if cleaned.endswith(("Z", "z")):
        cleaned = cleaned[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(cleaned))


def parse_due(value: str | None, tz: tzinfo, *, now: datetime | None = None) -> datetime | None:
    """Parse a due date typed by the user.

    Accepted: empty (no deadline), ``+90m``/``+2h``/``+3d``, ``YYYY-MM-DD``
    (end of that day), ``YYYY-MM-DD HH:MM`` and full ISO-8601 strings.
    Wall-clock values are read in ``tz``.
    """
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    match = _RELATIVE.match(cleaned.lower())
    if match:
        base = now or utc_now()
        delta = timedelta(**{_UNITS[match.group("unit")]: int(match.group("amount"))})
        return base + delta
    try:
        day = date.fromisoformat(cleaned)
    except ValueError:
        pass
    else:
        return datetime.combine(day, time(23, 59), tzinfo=tz)
    try:
        parsed = datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"Unsupported due date format: {value}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def format_due(value: datetime | None, tz: tzinfo) -> str:
    if value is None:
        return ""
    return ensure_aware(value).astimezone(tz).strftime("%Y-%m-%d %H:%M")
