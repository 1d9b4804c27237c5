"""Shared Pydantic view models for the production line monitor.

These models are the data contract between the sync layer and whatever
presents it. Field names are snake_case in Python and serialise to the
camelCase names the dashboard expects (``model_dump(by_alias=True)``).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from .config import TOTAL_STAGES
from .timeutils import elapsed_ms, utc_now


# === Enums ===

class LineStatus(str, Enum):
    """Operating state of a production line."""
    RUNNING = "running"
    STOPPED = "stopped"
    MAINTENANCE = "maintenance"
    COMPLETED = "completed"


class ProductStatus(str, Enum):
    """Progress of a product through the line."""
    IN_PRODUCTION = "in_production"
    COMPLETED = "completed"
    PAUSED = "paused"


class FailureStatus(str, Enum):
    """Whether a failure/stoppage is still ongoing."""
    OPEN = "open"
    RESOLVED = "resolved"


class Severity(str, Enum):
    """Failure severity. Derived on the client, the backend has no such field."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ViewModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === View models ===

class Product(ViewModel):
    """A unit travelling through the five stages of a line."""
    id: str
    serial_number: str = ""
    model: str = ""
    fabrication: str = ""
    current_stage: int = Field(default=0, ge=0, le=TOTAL_STAGES)
    next_stage: int | None = None
    stage_times: list[int] = Field(default_factory=lambda: [0] * TOTAL_STAGES)
    total_active_time: int = Field(default=0, ge=0, description="Milliseconds")
    idle_time: int = Field(default=0, ge=0, description="Milliseconds")
    status: ProductStatus = ProductStatus.IN_PRODUCTION
    barcode: str | None = None
    total_stages: int = TOTAL_STAGES

    @field_validator("stage_times")
    @classmethod
    def _five_stage_times(cls, value: list[int]) -> list[int]:
        if len(value) != TOTAL_STAGES:
            raise ValueError(f"stage_times must have {TOTAL_STAGES} entries")
        return value


class ProductionLine(ViewModel):
    """One line as shown on the dashboard."""
    id: str
    name: str
    model: str = ""
    current_production: int = Field(default=0, ge=0)
    target_production: int = Field(default=0, ge=0)
    status: LineStatus = LineStatus.RUNNING
    efficiency: int = 0
    last_update: datetime = Field(default_factory=utc_now)
    issues: list[str] = []
    products: list[Product] = []


class FailureRecord(ViewModel):
    """A stoppage reported on a line stage.

    ``duration`` is computed on every read: it grows with the clock while
    the failure is open and is fixed at ``end_time - start_time`` once
    resolved.
    """
    id: str
    line_id: str
    stage: int = 0
    start_time: datetime
    end_time: datetime | None = None
    status: FailureStatus = FailureStatus.OPEN
    description: str = ""
    severity: Severity = Severity.MEDIUM

    def duration_at(self, now: datetime) -> int:
        """Duration in milliseconds as observed at ``now``."""
        if self.status == FailureStatus.OPEN or self.end_time is None:
            return elapsed_ms(self.start_time, now)
        return elapsed_ms(self.start_time, self.end_time)

    @computed_field
    @property
    def duration(self) -> int:
        return self.duration_at(utc_now())

    @property
    def is_open(self) -> bool:
        return self.status == FailureStatus.OPEN


class ProductionMetrics(ViewModel):
    """Aggregates across all lines. Derived on every sync, never stored."""
    total_produced: int = 0
    total_target: int = 0
    overall_efficiency: int = 0
    active_lines: int = 0
    total_issues: int = 0
    average_cycle_time: float = Field(default=0.0, description="Minutes")


class StageBreakdown(ViewModel):
    """Time spent by a product in one stage."""
    stage_id: int
    stage_name: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration: int = Field(default=0, ge=0, description="Milliseconds")
    idle_time: int = Field(default=0, ge=0, description="Milliseconds")


class ProductAnalysis(ViewModel):
    """Per-stage breakdown of a single product."""
    product_id: str
    serial_number: str | None = None
    line_id: str | None = None
    overall_status: str | None = None
    stages: list[StageBreakdown] = []
    total_idle_time: int = Field(default=0, ge=0, description="Milliseconds")
