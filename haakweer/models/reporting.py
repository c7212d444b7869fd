"""Sync run reporting models."""

from dataclasses import dataclass, field


@dataclass
class SyncReport:
    city_id: str | None = None
    city_name: str = ""
    new_days: int = 0
    up_to: str | None = None
    persisted: bool = False
    cancelled: bool = False
    duration_seconds: float = 0.0
    errors: list[str] = field(default_factory=list)
