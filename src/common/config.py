"""Project configuration and paths.

Loads settings from config/settings.yaml and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# === Paths ===
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
SETTINGS_FILE = CONFIG_DIR / "settings.yaml"

# Load .env from project root
load_dotenv(PROJECT_ROOT / ".env")

DEFAULT_API_URL = "http://localhost:3000"

TOTAL_STAGES = 5


class ApiSettings(BaseModel):
    """Backend connection settings."""
    base_url: str = DEFAULT_API_URL
    request_timeout: float = Field(default=30.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class SyncSettings(BaseModel):
    """Polling and line fan-out settings."""
    poll_interval_seconds: float = Field(default=15.0, gt=0)
    line_ids: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])


class SeverityThresholds(BaseModel):
    """Minutes of downtime at which a failure escalates to each severity."""
    medium_minutes: float = 5.0
    high_minutes: float = 30.0
    critical_minutes: float = 120.0


class AlertSettings(BaseModel):
    """How backend alert records are interpreted."""
    open_status: str = "aberto"
    severity: SeverityThresholds = Field(default_factory=SeverityThresholds)


class LineInfo(BaseModel):
    """Display metadata for one production line."""
    name: str = ""
    model: str = ""
    description: str = ""


def _default_catalog() -> dict[int, LineInfo]:
    return {
        1: LineInfo(name="Linha 1", model="20RT COMPACT BR",
                    description="Climatizador Compacto 20.000 BTU/h"),
        2: LineInfo(name="Linha 2", model="30RT STANDARD BR",
                    description="Climatizador Standard 30.000 BTU/h"),
        3: LineInfo(name="Linha 3", model="40RT PREMIUM BR",
                    description="Climatizador Premium 40.000 BTU/h"),
        4: LineInfo(name="Linha 4", model="25RT ECO BR",
                    description="Climatizador Eco 25.000 BTU/h"),
        5: LineInfo(name="Linha 5", model="35RT INDUSTRIAL BR",
                    description="Climatizador Industrial 35.000 BTU/h"),
    }


class Settings(BaseModel):
    """Top-level application settings."""
    api: ApiSettings = Field(default_factory=ApiSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    lines: dict[int, LineInfo] = Field(default_factory=_default_catalog)
    log_level: str = "INFO"

    def line_info(self, line_id: int) -> LineInfo:
        """Catalog entry for a line, with a generated name when unknown."""
        info = self.lines.get(line_id)
        if info is None:
            return LineInfo(name=f"Linha {line_id}")
        if not info.name:
            return info.model_copy(update={"name": f"Linha {line_id}"})
        return info

    @classmethod
    def load(cls, path: Path | None = None) -> Settings:
        """Load settings from config/settings.yaml, then apply env overrides."""
        settings_path = path or SETTINGS_FILE
        data: dict = {}
        if settings_path.exists():
            with open(settings_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        settings = cls(**data)
        settings.apply_env_overrides()
        return settings

    def apply_env_overrides(self) -> None:
        """Override file values with MONITOR_* environment variables."""
        if url := os.getenv("MONITOR_API_URL") or os.getenv("NEXT_PUBLIC_API_URL"):
            self.api.base_url = url.rstrip("/")
        if timeout := os.getenv("MONITOR_REQUEST_TIMEOUT"):
            self.api.request_timeout = float(timeout)
        if interval := os.getenv("MONITOR_POLL_INTERVAL"):
            self.sync.poll_interval_seconds = float(interval)
        if line_ids := os.getenv("MONITOR_LINE_IDS"):
            self.sync.line_ids = [int(p) for p in line_ids.split(",") if p.strip()]
        if open_status := os.getenv("MONITOR_ALERT_OPEN_STATUS"):
            self.alerts.open_status = open_status
        if level := os.getenv("MONITOR_LOG_LEVEL"):
            self.log_level = level.upper()


# Singleton settings instance
settings = Settings.load()
