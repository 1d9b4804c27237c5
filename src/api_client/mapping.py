"""Translate backend alert records into dashboard failure records."""

from __future__ import annotations

from datetime import datetime

from src.common.config import SeverityThresholds
from src.common.models import FailureRecord, FailureStatus, Severity
from src.common.timeutils import utc_now

from .models import Alert


def is_open_status(status: str | None, open_status: str) -> bool:
    """True iff the backend status equals the open sentinel (case-insensitive)."""
    if status is None:
        return False
    return status.strip().casefold() == open_status.strip().casefold()


def classify_severity(duration_ms: int, thresholds: SeverityThresholds) -> Severity:
    """Severity from how long the line has been (or was) stopped."""
    minutes = duration_ms / 60_000
    if minutes >= thresholds.critical_minutes:
        return Severity.CRITICAL
    if minutes >= thresholds.high_minutes:
        return Severity.HIGH
    if minutes >= thresholds.medium_minutes:
        return Severity.MEDIUM
    return Severity.LOW


def alert_to_failure(
    alert: Alert,
    open_status: str,
    thresholds: SeverityThresholds | None = None,
    now: datetime | None = None,
) -> FailureRecord:
    """Map one backend alert to a FailureRecord.

    A resolved alert without an end time is closed at ``now``; an alert
    without a start time starts at ``now``.
    """
    now = now or utc_now()
    thresholds = thresholds or SeverityThresholds()
    status = FailureStatus.OPEN if is_open_status(alert.status, open_status) else FailureStatus.RESOLVED

    start_time = alert.started_at or now
    end_time = alert.finished_at
    if status == FailureStatus.RESOLVED and end_time is None:
        end_time = now

    record = FailureRecord(
        id=str(alert.id),
        line_id=str(alert.line_id),
        stage=alert.stage_id or 0,
        start_time=start_time,
        end_time=end_time,
        status=status,
        description=alert.description or "",
    )
    record.severity = classify_severity(record.duration_at(now), thresholds)
    return record
