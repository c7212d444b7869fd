"""Archive state models: cities and their stored days."""

from dataclasses import dataclass

from haakweer.models.common import CheckedFlag

SCHEMA_VERSION = 1


@dataclass(frozen=True)
class DailyRecord:
    date: str  # YYYY-MM-DD
    tmax: float
    tmin: float
    tavg: float
    checked: CheckedFlag = CheckedFlag.NO


@dataclass(frozen=True)
class City:
    id: str
    name: str
    latitude: float
    longitude: float
    timezone: str
    days: tuple[DailyRecord, ...] = ()

    @property
    def last_date(self) -> str | None:
        """Most recent stored date, regardless of storage order."""
        if not self.days:
            return None
        return max(d.date for d in self.days)


@dataclass(frozen=True)
class TempColorRow:
    temp_h: int
    temp_l: int
    color: int


@dataclass(frozen=True)
class ArchiveState:
    version: int = SCHEMA_VERSION
    selected_city_id: str | None = None
    cities: tuple[City, ...] = ()
    temp_to_color_matrix: tuple[TempColorRow, ...] = ()
