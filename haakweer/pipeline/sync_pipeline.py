"""Sync pipeline: load the archive, sync one city, persist the result."""

import asyncio
import logging
import time
from dataclasses import replace
from datetime import date
from pathlib import Path

from haakweer.config.schema import AppConfig
from haakweer.ingest.open_meteo_client import FetchError, OpenMeteoClient
from haakweer.models.archive import City
from haakweer.models.reporting import SyncReport
from haakweer.storage import archive_repo
from haakweer.storage.json_store import load_archive, save_archive
from haakweer.sync.sync_engine import SyncPolicy, WeatherSource, sync_city

logger = logging.getLogger(__name__)


class SyncPipeline:
    def __init__(
        self,
        config: AppConfig,
        archive_path: str | Path | None = None,
        source: WeatherSource | None = None,
    ):
        self.config = config
        self.archive_path = Path(archive_path or config.storage.archive_path)
        self.source = source or OpenMeteoClient.from_config(config.api)
        self.policy = SyncPolicy.from_config(config.sync)

    async def run(
        self,
        city_id: str | None = None,
        start_date: str | None = None,
        cancel: asyncio.Event | None = None,
        today: date | None = None,
    ) -> SyncReport:
        """Sync one city (the selected one by default) and save if anything changed."""
        start_time = time.monotonic()
        report = SyncReport()

        state = archive_repo.ensure_valid_selection(load_archive(self.archive_path))
        if city_id is not None:
            city = archive_repo.find_city(state, city_id)
        else:
            city = archive_repo.selected_city(state)

        if city is None:
            report.errors.append(f"Unknown city: {city_id}" if city_id else "No city selected")
            return self._finish(report, start_time)

        report.city_id = city.id
        report.city_name = city.name

        try:
            result = await sync_city(
                city,
                start_date or self.config.sync.start_date,
                self.source,
                cancel=cancel,
                today=today,
                policy=self.policy,
            )
        except FetchError as e:
            logger.error("Sync failed for %s: %s", city.id, e)
            report.errors.append(str(e))
            return self._finish(report, start_time)

        if cancel is not None and cancel.is_set():
            report.cancelled = True
            report.up_to = city.last_date
            return self._finish(report, start_time)

        report.new_days = result.new_days
        report.up_to = result.up_to

        if result.updated.days != city.days:
            # Reload so edits made while fetching (other cities, selection, checked flags) survive.
            latest = load_archive(self.archive_path)
            latest_city = archive_repo.find_city(latest, city.id)
            if latest_city is None:
                logger.warning("%s was removed during sync, discarding result", city.id)
                return self._finish(report, start_time)
            updated = _with_latest_checked(result.updated, latest_city)
            latest = archive_repo.ensure_valid_selection(
                archive_repo.replace_city(latest, updated)
            )
            save_archive(latest, self.archive_path)
            report.persisted = True

        return self._finish(report, start_time)

    def _finish(self, report: SyncReport, start_time: float) -> SyncReport:
        report.duration_seconds = time.monotonic() - start_time
        return report


def _with_latest_checked(updated: City, latest: City) -> City:
    """Carry over checked flags toggled on disk while the fetch was running."""
    flags = {d.date: d.checked for d in latest.days}
    days = tuple(
        replace(d, checked=flags[d.date]) if d.date in flags else d
        for d in updated.days
    )
    return replace(updated, days=days)
