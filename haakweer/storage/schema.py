"""On-disk document schema for the archive JSON file.

Field names on disk are camelCase (selectedCityId, tempToColorMatrix, tempH,
tempL); the in-memory models in haakweer.models.archive use snake_case.
"""

from datetime import date as date_type
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from haakweer.models.archive import (
    SCHEMA_VERSION,
    ArchiveState,
    City,
    DailyRecord,
    TempColorRow,
)
from haakweer.models.common import CheckedFlag

COLOR_MATRIX_MIN = -50
COLOR_MATRIX_MAX = 50


class DayDocument(BaseModel):
    date: str = Field(strict=True)
    tmax: float = Field(strict=True)
    tmin: float = Field(strict=True)
    tavg: float = Field(strict=True)
    checked: CheckedFlag

    @field_validator("date")
    @classmethod
    def _check_date(cls, v: str) -> str:
        if len(v) != 10 or date_type.fromisoformat(v).isoformat() != v:
            raise ValueError(f"date must be YYYY-MM-DD, got {v!r}")
        return v


class CityDocument(BaseModel):
    id: str = Field(strict=True)
    name: str = Field(strict=True)
    latitude: float = Field(strict=True)
    longitude: float = Field(strict=True)
    timezone: str = Field(strict=True)
    days: list[DayDocument]


class TempColorRowDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    temp_h: int = Field(alias="tempH")
    temp_l: int = Field(alias="tempL")
    color: int


class ArchiveDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: Literal[1]
    selected_city_id: str | None = Field(alias="selectedCityId", strict=True)
    cities: list[CityDocument]
    temp_to_color_matrix: list[TempColorRowDocument] = Field(
        default_factory=list, alias="tempToColorMatrix"
    )

    @field_validator("temp_to_color_matrix", mode="before")
    @classmethod
    def _normalize_matrix(cls, v: Any) -> list[dict[str, int]]:
        if not isinstance(v, list):
            return []
        rows = []
        for row in v:
            if not isinstance(row, dict):
                continue
            values = [
                _matrix_int(row.get("tempH")),
                _matrix_int(row.get("tempL")),
                _matrix_int(row.get("color")),
            ]
            if any(x is None for x in values):
                continue
            temp_h, temp_l, color = values
            rows.append({"tempH": temp_h, "tempL": temp_l, "color": color})
        return rows

    def to_state(self) -> ArchiveState:
        return ArchiveState(
            version=self.version,
            selected_city_id=self.selected_city_id,
            cities=tuple(
                City(
                    id=c.id,
                    name=c.name,
                    latitude=c.latitude,
                    longitude=c.longitude,
                    timezone=c.timezone,
                    days=tuple(
                        DailyRecord(
                            date=d.date,
                            tmax=d.tmax,
                            tmin=d.tmin,
                            tavg=d.tavg,
                            checked=d.checked,
                        )
                        for d in c.days
                    ),
                )
                for c in self.cities
            ),
            temp_to_color_matrix=tuple(
                TempColorRow(temp_h=r.temp_h, temp_l=r.temp_l, color=r.color)
                for r in self.temp_to_color_matrix
            ),
        )

    @classmethod
    def from_state(cls, state: ArchiveState) -> "ArchiveDocument":
        return cls(
            version=SCHEMA_VERSION,
            selected_city_id=state.selected_city_id,
            cities=[
                CityDocument(
                    id=c.id,
                    name=c.name,
                    latitude=c.latitude,
                    longitude=c.longitude,
                    timezone=c.timezone,
                    days=[
                        DayDocument(
                            date=d.date,
                            tmax=d.tmax,
                            tmin=d.tmin,
                            tavg=d.tavg,
                            checked=d.checked,
                        )
                        for d in c.days
                    ],
                )
                for c in state.cities
            ],
            temp_to_color_matrix=[
                {"tempH": r.temp_h, "tempL": r.temp_l, "color": r.color}
                for r in state.temp_to_color_matrix
            ],
        )


def _matrix_int(v: Any) -> int | None:
    """Integer in the matrix range, from an int or an integer-like string."""
    if isinstance(v, bool):
        return None
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    elif isinstance(v, str):
        try:
            v = int(v.strip())
        except ValueError:
            return None
    if not isinstance(v, int):
        return None
    if not COLOR_MATRIX_MIN <= v <= COLOR_MATRIX_MAX:
        return None
    return v
