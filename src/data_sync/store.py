"""Production data store: keeps dashboard view models in sync with the backend.

Owns the current snapshot of lines, metrics and failures, refreshes it on a
fixed interval and exposes the operator actions (set goal, report/resolve a
failure, start/stop events, serial association).

Usage:
    async with ProductionAPI() as api:
        store = ProductionDataSync(api)
        await store.start()          # initial load + background refresh
        print(store.metrics.overall_efficiency)
        await store.set_daily_production_goal(1, 150)
        await store.stop()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError

from src.api_client import ProductionAPI, validate_goal
from src.api_client.errors import InvalidInputError, MonitorError, ResponseFormatError
from src.api_client.mapping import alert_to_failure
from src.common.config import Settings
from src.common.models import (
    FailureRecord,
    FailureStatus,
    LineStatus,
    Product,
    ProductAnalysis,
    ProductionLine,
    ProductionMetrics,
)
from src.common.timeutils import utc_now

from .derive import (
    build_metrics,
    build_product_analysis,
    build_production_line,
    calculate_efficiency,
    downtime_by_line,
)
from .poller import RepeatingTask

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Lifecycle of a store instance."""
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class ProductionSnapshot:
    """Everything one sync cycle produced, replaced as a unit."""
    lines: list[ProductionLine] = field(default_factory=list)
    metrics: ProductionMetrics = field(default_factory=ProductionMetrics)
    failures: list[FailureRecord] = field(default_factory=list)
    taken_at: datetime | None = None

    def line(self, line_id: int | str) -> ProductionLine | None:
        key = str(line_id)
        return next((line for line in self.lines if line.id == key), None)

    def to_dict(self) -> dict:
        """Serialize with the dashboard's camelCase field names."""
        return {
            "lines": [line.model_dump(mode="json", by_alias=True) for line in self.lines],
            "metrics": self.metrics.model_dump(mode="json", by_alias=True),
            "failures": [f.model_dump(mode="json", by_alias=True) for f in self.failures],
            "takenAt": self.taken_at.isoformat() if self.taken_at else None,
        }


Listener = Callable[[ProductionSnapshot], None]


class ProductionDataSync:
    """In-memory view-model state backed by periodic full refreshes.

    Each cycle fetches failures, daily targets and one analysis per
    configured line concurrently, derives the view models and swaps the
    snapshot in one assignment. A failed cycle records ``error`` and keeps
    the last good snapshot. Only one cycle runs at a time: timer ticks that
    arrive mid-cycle are skipped, refreshes requested by actions wait.

    Args:
        api: Backend client.
        settings: Line ids, catalog and polling interval. Defaults to the
            client's settings.
        clock: Returns the current aware datetime; injectable for tests.
    """

    def __init__(
        self,
        api: ProductionAPI,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.api = api
        self.settings = settings or api.settings
        self._clock = clock or utc_now

        self.snapshot = ProductionSnapshot()
        self.is_loading = False
        self.error: str | None = None
        self.state = SyncState.UNINITIALIZED

        self._cycle_lock = asyncio.Lock()
        self._poller: RepeatingTask | None = None
        self._listeners: list[Listener] = []
        self._analysis_cache: dict[str, ProductAnalysis] = {}

    # --- State accessors ---

    @property
    def lines(self) -> list[ProductionLine]:
        return self.snapshot.lines

    @property
    def metrics(self) -> ProductionMetrics:
        return self.snapshot.metrics

    @property
    def failures(self) -> list[FailureRecord]:
        return self.snapshot.failures

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def downtime_by_line(self) -> dict[str, int]:
        """Stopped time per line (ms) over the current failures."""
        return downtime_by_line(self.failures, self._clock())

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every committed change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- Sync cycles ---

    async def load(self) -> bool:
        """Initial (blocking) load; ``is_loading`` is set while it runs."""
        self.is_loading = True
        self.state = SyncState.LOADING
        try:
            return await self._run_cycle()
        finally:
            self.is_loading = False

    async def refresh(self) -> bool:
        """Background refresh; skipped if a cycle is already in flight."""
        if self._cycle_lock.locked():
            logger.warning("Previous sync cycle still running, skipping tick")
            return False
        return await self._run_cycle()

    async def resync(self) -> bool:
        """Full refresh that waits for any running cycle instead of skipping."""
        return await self._run_cycle()

    async def _run_cycle(self) -> bool:
        async with self._cycle_lock:
            try:
                snapshot = await self._collect()
            except MonitorError as exc:
                self.error = str(exc) or exc.__class__.__name__
                self.state = SyncState.ERROR
                logger.error("Sync cycle failed: %s", self.error)
                self._notify()
                return False

            self.snapshot = snapshot
            self.error = None
            self.state = SyncState.READY
            logger.debug(
                "Sync cycle done: %d lines, %d failures",
                len(snapshot.lines),
                len(snapshot.failures),
            )
            self._notify()
            return True

    async def _collect(self) -> ProductionSnapshot:
        now = self._clock()
        line_ids = self.settings.sync.line_ids

        results = await asyncio.gather(
            self.api.get_failure_records(now=now),
            self.api.get_daily_targets(),
            *(self._fetch_line_analysis(line_id) for line_id in line_ids),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        failures, targets, *analyses = results
        try:
            lines = [
                build_production_line(
                    line_id, analysis, targets, failures, self.settings.line_info(line_id), now
                )
                for line_id, analysis in zip(line_ids, analyses)
            ]
            metrics = build_metrics(lines, failures)
        except ValidationError as exc:
            raise ResponseFormatError(f"Backend data could not be turned into views: {exc}") from exc
        return ProductionSnapshot(
            lines=lines,
            metrics=metrics,
            failures=failures,
            taken_at=now,
        )

    async def _fetch_line_analysis(self, line_id: int):
        """One line's analysis; a failure here only blanks that line."""
        try:
            return await self.api.get_line_analysis(line_id)
        except MonitorError as exc:
            logger.warning("No data for line %s this cycle: %s", line_id, exc)
            return None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.snapshot)
            except Exception:
                logger.exception("Snapshot listener failed")

    # --- Polling ---

    async def start(self, interval: float | None = None) -> bool:
        """Initial load, then refresh every ``interval`` seconds until stop()."""
        loaded = await self.load()
        if self._poller is None or not self._poller.running:
            self._poller = RepeatingTask(
                self.refresh,
                interval if interval is not None else self.settings.sync.poll_interval_seconds,
                name="production-sync",
            )
            self._poller.start()
        return loaded

    async def stop(self) -> None:
        """Stop the refresh timer. In-flight requests are left to finish."""
        if self._poller is not None:
            await self._poller.stop()
            self._poller = None

    @property
    def polling(self) -> bool:
        return self._poller is not None and self._poller.running

    # --- Local patches ---

    def _commit_patch(self, **changes: Any) -> None:
        self.snapshot = replace(self.snapshot, **changes)
        self._notify()

    def _patch_line(self, line_id: int | str, **updates: Any) -> None:
        key = str(line_id)
        lines = [
            line.model_copy(update=updates) if line.id == key else line
            for line in self.snapshot.lines
        ]
        self._commit_patch(lines=lines)

    # --- Actions ---

    async def update_line_status(self, line_id: int | str, status: LineStatus | str) -> bool:
        """Set a line's status on the backend and locally. False on failure."""
        try:
            ok = await self.api.update_line_status(line_id, status)
        except InvalidInputError:
            raise
        except MonitorError as exc:
            logger.warning("Could not update status of line %s: %s", line_id, exc)
            return False
        if ok:
            self._patch_line(line_id, status=LineStatus(status), last_update=self._clock())
        return ok

    async def add_product(self, line_id: int | str, product: dict[str, Any]) -> Product | None:
        """Register a product on a line and append it locally."""
        try:
            created = await self.api.add_product_to_line(line_id, product)
        except MonitorError as exc:
            logger.warning("Could not add product to line %s: %s", line_id, exc)
            return None
        if created is not None:
            line = self.snapshot.line(line_id)
            if line is not None:
                self._patch_line(line_id, products=[*line.products, created])
        return created

    async def report_failure(
        self,
        line_id: int | str,
        stage_id: int,
        description: str | None = None,
    ) -> FailureRecord | None:
        """Open an alert on a line stage and add it to the local failures.

        The line's derived status is left alone until the next full sync.
        """
        try:
            alert = await self.api.create_alert(line_id, stage_id, description)
        except InvalidInputError:
            raise
        except MonitorError as exc:
            logger.warning("Could not report failure on line %s: %s", line_id, exc)
            return None
        if alert is None:
            return None
        alert_settings = self.settings.alerts
        failure = alert_to_failure(
            alert, alert_settings.open_status, alert_settings.severity, self._clock()
        )
        self._commit_patch(failures=[*self.snapshot.failures, failure])
        return failure

    async def resolve_failure(self, failure_id: str) -> bool:
        """Resolve a known failure and mark it resolved locally."""
        failure = next((f for f in self.snapshot.failures if f.id == str(failure_id)), None)
        if failure is None:
            logger.warning("Unknown failure %s", failure_id)
            return False
        try:
            alert = await self.api.resolve_alert(failure.line_id, failure.stage)
        except MonitorError as exc:
            logger.warning("Could not resolve failure %s: %s", failure_id, exc)
            return False
        if alert is None:
            return False

        end_time = alert.finished_at or self._clock()
        failures = [
            f.model_copy(update={"status": FailureStatus.RESOLVED, "end_time": end_time})
            if f.id == failure.id
            else f
            for f in self.snapshot.failures
        ]
        self._commit_patch(failures=failures)
        return True

    async def set_daily_production_goal(self, line_id: int | str, goal: Any) -> bool:
        """Save a line's daily goal and update its target locally.

        Raises:
            InvalidInputError: the goal is not a positive integer.
        """
        try:
            await self.api.set_daily_production_goal(line_id, goal)
        except InvalidInputError:
            raise
        except MonitorError as exc:
            logger.warning("Could not set goal for line %s: %s", line_id, exc)
            return False

        target = validate_goal(goal)
        line = self.snapshot.line(line_id)
        if line is not None:
            self._patch_line(
                line_id,
                target_production=target,
                efficiency=calculate_efficiency(line.current_production, target),
            )
        return True

    async def process_production_event(
        self,
        kind: str,
        stage_id: int,
        line_id: int | str,
    ) -> str | None:
        """Send a start/stop event, then resync. Returns the affected product id."""
        try:
            product_id = await self.api.process_production_event(kind, stage_id, line_id)
        except InvalidInputError:
            raise
        except MonitorError as exc:
            logger.warning("Event %s on line %s stage %s failed: %s", kind, line_id, stage_id, exc)
            return None
        await self.resync()
        return product_id

    async def associate_serial_number(self, serial: str, line_id: int | str) -> Any:
        """Associate a scanned serial with the line's product in progress, then resync."""
        try:
            result = await self.api.associate_serial_number(serial, line_id)
        except InvalidInputError:
            raise
        except MonitorError as exc:
            logger.warning("Could not associate serial %s on line %s: %s", serial, line_id, exc)
            return None
        await self.resync()
        return result if result is not None else True

    async def get_product_analysis(self, product_id: str) -> ProductAnalysis | None:
        """Stage-by-stage analysis of a product, cached once found."""
        key = (product_id or "").strip()
        if not key:
            raise InvalidInputError("Enter a valid product id")
        if key in self._analysis_cache:
            return self._analysis_cache[key]
        try:
            record = await self.api.get_product_analysis(key)
        except MonitorError as exc:
            logger.warning("Could not fetch analysis for product %s: %s", key, exc)
            return None
        if record is None:
            return None
        analysis = build_product_analysis(record)
        self._analysis_cache[key] = analysis
        return analysis
