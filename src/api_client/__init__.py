# API Client: one async method per production backend endpoint
"""
API client for the production-line backend.

Wraps the REST surface (line analyses, goals, alerts, production events,
scanner) behind an injectable async client and maps backend records to
dashboard view models.
"""

from .client import ProductionAPI, validate_goal
from .errors import (
    ApiError,
    InvalidInputError,
    MonitorError,
    RequestTimeoutError,
    ResponseFormatError,
    TransportError,
)
from .mapping import alert_to_failure, classify_severity

__all__ = [
    "ProductionAPI",
    "validate_goal",
    "ApiError",
    "InvalidInputError",
    "MonitorError",
    "RequestTimeoutError",
    "ResponseFormatError",
    "TransportError",
    "alert_to_failure",
    "classify_severity",
]
