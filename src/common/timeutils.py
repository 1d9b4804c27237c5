"""Timestamp and duration helpers shared by the API client and the views.

The backend is inconsistent about time values: some endpoints send ISO-8601
strings, others epoch milliseconds, and idle times arrive either as seconds,
as interval objects (``{"hours": 1, "minutes": 5}``) or as
``"[N day[s] ]HH:MM:SS"`` strings. Everything is normalised here to aware
UTC datetimes and integer milliseconds.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

_INTERVAL_RE = re.compile(
    r"^\s*(?:(?P<days>-?\d+)\s+days?\s*,?\s*)?"
    r"(?:(?P<hours>\d+):(?P<minutes>\d{1,2}):(?P<seconds>\d{1,2}(?:\.\d+)?))?\s*$"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch milliseconds into an aware datetime.

    Naive ISO strings are taken as UTC. Returns None for empty values and
    for 0, which the backend uses for "not reached".
    """
    if value is None or value == "" or value == 0:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return parse_timestamp(int(text))
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def to_epoch_ms(value: datetime | None) -> int:
    """Epoch milliseconds for a datetime, 0 for None."""
    if value is None:
        return 0
    return int(round(value.timestamp() * 1000))


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Milliseconds between two datetimes, never negative."""
    return max(0, int(round((end - start).total_seconds() * 1000)))


def parse_interval_ms(value: Any) -> int:
    """Convert a backend interval value to milliseconds.

    Accepts seconds as a number, an interval object with any of
    days/hours/minutes/seconds/milliseconds, or an interval string.
    Unparseable strings count as zero.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(0, int(round(value * 1000)))
    if isinstance(value, dict):
        total_seconds = (
            (value.get("days") or 0) * 86400
            + (value.get("hours") or 0) * 3600
            + (value.get("minutes") or 0) * 60
            + (value.get("seconds") or 0)
        )
        total_ms = total_seconds * 1000 + (value.get("milliseconds") or 0)
        return max(0, int(round(total_ms)))
    if isinstance(value, str):
        text = value.strip()
        try:
            return parse_interval_ms(float(text))
        except ValueError:
            pass
        match = _INTERVAL_RE.match(text)
        if not match or not any(match.groupdict().values()):
            return 0
        parts = match.groupdict()
        total_seconds = (
            int(parts["days"] or 0) * 86400
            + int(parts["hours"] or 0) * 3600
            + int(parts["minutes"] or 0) * 60
            + float(parts["seconds"] or 0)
        )
        return max(0, int(round(total_seconds * 1000)))
    return 0


def format_duration(milliseconds: int, with_seconds: bool = False) -> str:
    """Render a duration as ``"1h 5m"`` or ``"5m 30s"``.

    With ``with_seconds`` the hour form keeps the seconds (``"1h 5m 30s"``).
    """
    milliseconds = max(0, int(milliseconds))
    hours = milliseconds // 3_600_000
    minutes = (milliseconds % 3_600_000) // 60_000
    seconds = (milliseconds % 60_000) // 1000

    if hours > 0:
        if with_seconds:
            return f"{hours}h {minutes}m {seconds}s"
        return f"{hours}h {minutes}m"
    return f"{minutes}m {seconds}s"


def format_idle_time(value: Any) -> str:
    """Render a backend idle-time value, ``"0s"`` when absent."""
    if not value:
        return "0s"
    return format_duration(parse_interval_ms(value))


def format_timestamp(milliseconds: int, tz: timezone | None = None) -> str:
    """Render an epoch-ms stage time as ``dd/mm HH:MM:SS``; ``"-"`` for 0."""
    if not milliseconds:
        return "-"
    moment = datetime.fromtimestamp(milliseconds / 1000, tz=tz or timezone.utc)
    return moment.strftime("%d/%m %H:%M:%S")


def stage_status(current_stage: int, stage: int) -> str:
    """Position of ``stage`` relative to a product's current stage."""
    if stage < current_stage:
        return "completed"
    if stage == current_stage:
        return "current"
    return "pending"
