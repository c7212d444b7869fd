"""Pydantic v2 configuration schema with strict validation."""

from datetime import date

from pydantic import BaseModel, Field, field_validator

from haakweer.config.defaults import (
    ARCHIVE_URL,
    DEFAULT_ARCHIVE_PATH,
    DEFAULT_START_DATE,
    DEFAULT_USER_AGENT,
    FORECAST_URL,
    GEOCODING_URL,
    HISTORIC_EMBARGO_DAYS,
    REFRESH_WINDOW_DAYS,
)


class SyncConfig(BaseModel):
    model_config = {"extra": "forbid"}

    start_date: str = DEFAULT_START_DATE
    refresh_window_days: int = Field(default=REFRESH_WINDOW_DAYS, ge=0)
    historic_embargo_days: int = Field(default=HISTORIC_EMBARGO_DAYS, ge=0)

    @field_validator("start_date")
    @classmethod
    def _check_start_date(cls, v: str) -> str:
        # Zero-padded ISO form only; comparisons downstream are lexicographic.
        if len(v) != 10 or date.fromisoformat(v).isoformat() != v:
            raise ValueError(f"start_date must be YYYY-MM-DD, got {v!r}")
        return v


class ApiConfig(BaseModel):
    model_config = {"extra": "forbid"}

    forecast_url: str = FORECAST_URL
    archive_url: str = ARCHIVE_URL
    geocoding_url: str = GEOCODING_URL
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    user_agent: str = DEFAULT_USER_AGENT


class StorageConfig(BaseModel):
    model_config = {"extra": "forbid"}

    archive_path: str = DEFAULT_ARCHIVE_PATH


class OpsConfig(BaseModel):
    model_config = {"extra": "forbid"}

    sync_interval_minutes: int = Field(default=60, ge=1)
    log_dir: str = "logs"
    max_log_files: int = Field(default=100, ge=1)


class AppConfig(BaseModel):
    model_config = {"extra": "forbid"}

    sync: SyncConfig = SyncConfig()
    api: ApiConfig = ApiConfig()
    storage: StorageConfig = StorageConfig()
    ops: OpsConfig = OpsConfig()
