"""View-model derivation: backend records in, dashboard models out.

Everything here is pure; the sync store feeds it one cycle's worth of
backend data and commits the result.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from src.api_client.models import DailyTargets, LineAnalysis, LineProduct, ProductAnalysisRecord
from src.common.config import TOTAL_STAGES, LineInfo
from src.common.models import (
    FailureRecord,
    LineStatus,
    Product,
    ProductAnalysis,
    ProductionLine,
    ProductionMetrics,
    ProductStatus,
    StageBreakdown,
)
from src.common.timeutils import elapsed_ms, parse_interval_ms, to_epoch_ms

# Backend spellings of a finished / paused product.
COMPLETED_STATUSES = {"concluido", "concluído", "completed", "finalizado", "finished"}
PAUSED_STATUSES = {"pausado", "paused", "parado"}


def calculate_efficiency(produced: int, target: int) -> int:
    """Percent of target reached, rounded half up; 0 when there is no target.

    Not clamped: a line past its goal reports more than 100.
    """
    if target <= 0:
        return 0
    ratio = Decimal(produced) * 100 / Decimal(target)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def derive_line_status(line_id: str, failures: Iterable[FailureRecord]) -> LineStatus:
    """A line with any open failure is considered stopped."""
    for failure in failures:
        if failure.line_id == line_id and failure.is_open:
            return LineStatus.STOPPED
    return LineStatus.RUNNING


def product_status(raw_status: str | None) -> ProductStatus:
    status = (raw_status or "").strip().casefold()
    if status in COMPLETED_STATUSES:
        return ProductStatus.COMPLETED
    if status in PAUSED_STATUSES:
        return ProductStatus.PAUSED
    return ProductStatus.IN_PRODUCTION


def derive_current_stage(product: LineProduct) -> int:
    """Highest stage with a recorded start, or the last stage if completed."""
    if product_status(product.status) == ProductStatus.COMPLETED:
        return TOTAL_STAGES
    started = [entry.stage_id for entry in product.history if entry.started_at is not None]
    if not started:
        return 0
    return min(max(max(started), 0), TOTAL_STAGES)


def next_stage(current_stage: int) -> int | None:
    if 1 <= current_stage < TOTAL_STAGES:
        return current_stage + 1
    return None


def build_stage_times(product: LineProduct) -> list[int]:
    """Start time (epoch ms) of each of the five stages, 0 if not reached."""
    times = [0] * TOTAL_STAGES
    for entry in product.history:
        if 1 <= entry.stage_id <= TOTAL_STAGES and entry.started_at is not None:
            times[entry.stage_id - 1] = to_epoch_ms(entry.started_at)
    return times


def build_product(raw: LineProduct, model: str = "") -> Product:
    """Dashboard product from one entry of a line analysis."""
    current = derive_current_stage(raw)
    status = product_status(raw.status)
    stage_times = build_stage_times(raw)

    reached = [t for t in stage_times if t]
    finished = [to_epoch_ms(e.finished_at) for e in raw.history if e.finished_at is not None]
    active_time = 0
    if reached:
        active_time = max(reached + finished) - min(reached)

    serial = raw.serial_number or ""
    return Product(
        id=serial or str(raw.product_id),
        serial_number=serial,
        model=model,
        current_stage=current,
        next_stage=next_stage(current),
        stage_times=stage_times,
        total_active_time=max(active_time, 0),
        idle_time=parse_interval_ms(raw.total_idle),
        status=status,
        barcode=serial if status == ProductStatus.COMPLETED and serial else None,
    )


def build_production_line(
    line_id: int | str,
    analysis: LineAnalysis | None,
    targets: DailyTargets | None,
    failures: list[FailureRecord],
    info: LineInfo,
    now: datetime,
) -> ProductionLine:
    """Assemble one line; a missing analysis yields an empty line."""
    key = str(line_id)
    line_failures = [f for f in failures if f.line_id == key]
    produced = analysis.completed_count if analysis else 0
    target = targets.target_for(key) if targets else 0
    products = [build_product(p, info.model) for p in analysis.products] if analysis else []

    return ProductionLine(
        id=key,
        name=info.name or f"Linha {key}",
        model=info.model,
        current_production=produced,
        target_production=target,
        status=derive_line_status(key, line_failures),
        efficiency=calculate_efficiency(produced, target),
        last_update=now,
        issues=[f.description for f in line_failures if f.is_open and f.description],
        products=products,
    )


def average_cycle_minutes(lines: Iterable[ProductionLine]) -> float:
    """Mean active time of completed products, in minutes."""
    cycles = [
        product.total_active_time
        for line in lines
        for product in line.products
        if product.status == ProductStatus.COMPLETED and product.total_active_time > 0
    ]
    if not cycles:
        return 0.0
    return round(sum(cycles) / len(cycles) / 60_000, 1)


def build_metrics(lines: list[ProductionLine], failures: list[FailureRecord]) -> ProductionMetrics:
    total_produced = sum(line.current_production for line in lines)
    total_target = sum(line.target_production for line in lines)
    return ProductionMetrics(
        total_produced=total_produced,
        total_target=total_target,
        overall_efficiency=calculate_efficiency(total_produced, total_target),
        active_lines=sum(1 for line in lines if line.status == LineStatus.RUNNING),
        total_issues=sum(1 for f in failures if f.is_open),
        average_cycle_time=average_cycle_minutes(lines),
    )


def build_product_analysis(raw: ProductAnalysisRecord) -> ProductAnalysis:
    """Per-stage duration and idle time of one product.

    Stage duration comes from the backend when it sends one, otherwise from
    the stage's start and end times.
    """
    stages = []
    for entry in sorted(raw.stages, key=lambda s: s.stage_id):
        duration = parse_interval_ms(entry.duration)
        if not duration and entry.started_at and entry.finished_at:
            duration = elapsed_ms(entry.started_at, entry.finished_at)
        stages.append(
            StageBreakdown(
                stage_id=entry.stage_id,
                stage_name=entry.stage_name,
                started_at=entry.started_at,
                finished_at=entry.finished_at,
                duration=duration,
                idle_time=parse_interval_ms(entry.idle_time),
            )
        )

    total_idle = parse_interval_ms(raw.total_idle)
    if not total_idle:
        total_idle = sum(stage.idle_time for stage in stages)

    product = raw.product
    return ProductAnalysis(
        product_id=str(product.id),
        serial_number=product.serial_number,
        line_id=str(product.line_id) if product.line_id is not None else None,
        overall_status=product.overall_status,
        stages=stages,
        total_idle_time=total_idle,
    )


def downtime_by_line(failures: Iterable[FailureRecord], now: datetime) -> dict[str, int]:
    """Total stopped time per line in ms, open failures counted up to ``now``."""
    downtime: dict[str, int] = {}
    for failure in failures:
        downtime[failure.line_id] = downtime.get(failure.line_id, 0) + failure.duration_at(now)
    return downtime
