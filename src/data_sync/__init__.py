# Data Sync: periodic refresh and view-model derivation for the dashboard
"""
Data sync layer for the production-line dashboard.

Modules:
- derive: pure functions turning backend records into view models
- store: ProductionDataSync, the refreshed in-memory snapshot plus actions
- poller: cancellable repeating asyncio task
- main: operator CLI
"""

from .derive import build_metrics, calculate_efficiency, derive_line_status
from .poller import RepeatingTask
from .store import ProductionDataSync, ProductionSnapshot, SyncState

__all__ = [
    "ProductionDataSync",
    "ProductionSnapshot",
    "SyncState",
    "RepeatingTask",
    "build_metrics",
    "calculate_efficiency",
    "derive_line_status",
]
