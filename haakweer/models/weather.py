"""Open-Meteo daily temperature and sync result models."""

from dataclasses import dataclass

from haakweer.models.archive import City


@dataclass(frozen=True)
class DailyTemps:
    date: str  # YYYY-MM-DD
    tmax: float
    tmin: float
    tavg: float


@dataclass(frozen=True)
class GeoResult:
    id: int
    name: str
    latitude: float
    longitude: float
    timezone: str
    country: str | None = None
    admin1: str | None = None

    @property
    def display_name(self) -> str:
        return ", ".join(p for p in (self.name, self.admin1, self.country) if p)


@dataclass(frozen=True)
class DateRange:
    start: str
    end: str


@dataclass(frozen=True)
class SyncPlan:
    target_end: str
    range_start: str
    archive_range: DateRange | None
    forecast_range: DateRange | None

    @property
    def is_empty(self) -> bool:
        return self.archive_range is None and self.forecast_range is None


@dataclass(frozen=True)
class SyncResult:
    updated: City
    new_days: int
    up_to: str | None
