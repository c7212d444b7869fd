"""Shared test fixtures."""

import json
from datetime import date
from pathlib import Path

import pytest
import yaml

from haakweer.config.schema import AppConfig
from haakweer.models.archive import ArchiveState, City, DailyRecord
from haakweer.models.common import CheckedFlag
from haakweer.models.weather import DailyTemps

# Wall clock used throughout: yesterday is 2026-01-09, the archive horizon 2026-01-05.
TODAY = date(2026, 1, 10)


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def berlin() -> City:
    """A city with no stored days."""
    return City(
        id="2950159",
        name="Berlin, Land Berlin, Germany",
        latitude=52.52437,
        longitude=13.41053,
        timezone="Europe/Berlin",
    )


@pytest.fixture
def archive_temps(fixtures_dir: Path) -> list[DailyTemps]:
    """Archive rows for 2026-01-01..2026-01-05 matching the JSON fixture."""
    return _temps_from_fixture(fixtures_dir / "open_meteo_archive_berlin.json")


@pytest.fixture
def forecast_temps(fixtures_dir: Path) -> list[DailyTemps]:
    """Forecast rows for 2026-01-06..2026-01-09 matching the JSON fixture."""
    return _temps_from_fixture(fixtures_dir / "open_meteo_forecast_berlin.json")


@pytest.fixture
def default_config(tmp_path: Path) -> AppConfig:
    """Default config with the archive and logs redirected to tmp_path."""
    return AppConfig(
        storage={"archive_path": str(tmp_path / "weather.json")},
        ops={"log_dir": str(tmp_path / "logs")},
    )


@pytest.fixture
def config_yaml_path(tmp_path: Path) -> Path:
    """Write a minimal valid config YAML and return its path."""
    data = {
        "sync": {"start_date": "2026-01-01", "refresh_window_days": 7},
        "storage": {"archive_path": str(tmp_path / "weather.json")},
    }
    path = tmp_path / "test_config.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


@pytest.fixture
def state_with_cities(berlin: City) -> ArchiveState:
    amsterdam = City(
        id="2759794",
        name="Amsterdam, North Holland, Netherlands",
        latitude=52.37403,
        longitude=4.88969,
        timezone="Europe/Amsterdam",
    )
    utrecht = City(
        id="2745912",
        name="Utrecht, Utrecht, Netherlands",
        latitude=52.09083,
        longitude=5.12222,
        timezone="Europe/Amsterdam",
        days=(DailyRecord("2026-01-01", 4.0, 1.0, 2.5, CheckedFlag.NO),),
    )
    return ArchiveState(
        selected_city_id=amsterdam.id,
        cities=(berlin, amsterdam, utrecht),
    )


def _temps_from_fixture(path: Path) -> list[DailyTemps]:
    daily = json.loads(path.read_text())["daily"]
    return [
        DailyTemps(date=d, tmax=hi, tmin=lo, tavg=avg)
        for d, hi, lo, avg in zip(
            daily["time"],
            daily["temperature_2m_max"],
            daily["temperature_2m_min"],
            daily["temperature_2m_mean"],
        )
    ]
