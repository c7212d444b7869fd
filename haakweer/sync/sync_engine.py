"""Incremental sync of a city's day archive from the forecast and archive APIs.

The engine never touches storage: it takes a City snapshot and returns a new
one. Running it concurrently for different cities is safe.
"""

import asyncio
import logging
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass, replace
from datetime import date
from typing import Protocol

from haakweer.config.defaults import HISTORIC_EMBARGO_DAYS, REFRESH_WINDOW_DAYS
from haakweer.config.schema import SyncConfig
from haakweer.ingest.open_meteo_client import OperationCancelled
from haakweer.models.archive import City, DailyRecord
from haakweer.models.common import CheckedFlag
from haakweer.models.weather import DailyTemps, DateRange, SyncPlan, SyncResult
from haakweer.sync.dates import (
    add_days,
    latest_available_historic_ymd,
    local_today,
    yesterday_ymd,
    ymd_max,
    ymd_min,
)

logger = logging.getLogger(__name__)


class WeatherSource(Protocol):
    async def fetch_forecast_range(
        self,
        latitude: float,
        longitude: float,
        start_date: str,
        end_date: str,
        timezone: str,
        cancel: asyncio.Event | None = None,
    ) -> list[DailyTemps]: ...

    async def fetch_archive_range(
        self,
        latitude: float,
        longitude: float,
        start_date: str,
        end_date: str,
        timezone: str,
        cancel: asyncio.Event | None = None,
    ) -> list[DailyTemps]: ...


@dataclass(frozen=True)
class SyncPolicy:
    refresh_window_days: int = REFRESH_WINDOW_DAYS
    historic_embargo_days: int = HISTORIC_EMBARGO_DAYS

    @classmethod
    def from_config(cls, sync_config: SyncConfig) -> "SyncPolicy":
        return cls(
            refresh_window_days=sync_config.refresh_window_days,
            historic_embargo_days=sync_config.historic_embargo_days,
        )


def next_date_to_fetch(city: City, start_date: str) -> str:
    """First date after the newest stored day, or start_date for an empty city."""
    last = city.last_date
    if last is None:
        return start_date
    return add_days(last, 1)


def plan_sync(
    city: City,
    start_date: str,
    today: date | None = None,
    policy: SyncPolicy = SyncPolicy(),
) -> SyncPlan:
    """Work out which dates to request from which source.

    The clock is read once so every boundary comes from the same day.
    """
    if today is None:
        today = local_today()

    # Today is never complete, so the archive always stops at yesterday.
    target_end = yesterday_ymd(today)

    missing_start = next_date_to_fetch(city, start_date)
    refresh_start = ymd_max(start_date, add_days(target_end, -policy.refresh_window_days))
    range_start = ymd_min(missing_start, refresh_start)

    if range_start > target_end:
        return SyncPlan(target_end, range_start, None, None)

    latest_historic = latest_available_historic_ymd(today, policy.historic_embargo_days)

    archive_end = ymd_min(target_end, latest_historic)
    archive_range = (
        DateRange(range_start, archive_end) if range_start <= archive_end else None
    )

    forecast_start = ymd_max(range_start, add_days(latest_historic, 1))
    forecast_range = (
        DateRange(forecast_start, target_end) if forecast_start <= target_end else None
    )

    return SyncPlan(target_end, range_start, archive_range, forecast_range)


def merge_days(
    existing: Iterable[DailyRecord],
    forecast: Iterable[DailyTemps],
    archive: Iterable[DailyTemps],
    target_end: str,
) -> tuple[tuple[DailyRecord, ...], int]:
    """Merge fetched temperatures into stored days.

    Sources apply in ascending authority (forecast, then archive), so the
    archive wins on shared dates. Stored `checked` flags survive; temperatures
    are always replaced. Returns the merged days sorted by date and the number
    of dates that were not stored before.
    """
    by_date = {d.date: d for d in existing}
    new_days = 0

    for temps in (forecast, archive):
        for t in temps:
            prior = by_date.get(t.date)
            if prior is None:
                new_days += 1
            by_date[t.date] = DailyRecord(
                date=t.date,
                tmax=t.tmax,
                tmin=t.tmin,
                tavg=t.tavg,
                checked=prior.checked if prior is not None else CheckedFlag.NO,
            )

    trimmed = [d for day, d in by_date.items() if day <= target_end]
    dropped = len(by_date) - len(trimmed)
    if dropped:
        logger.warning("Dropped %d day(s) dated after %s", dropped, target_end)

    merged = tuple(sorted(trimmed, key=lambda d: d.date))
    return merged, new_days


async def sync_city(
    city: City,
    start_date: str,
    source: WeatherSource,
    cancel: asyncio.Event | None = None,
    today: date | None = None,
    policy: SyncPolicy = SyncPolicy(),
) -> SyncResult:
    """Fetch missing and recently published days for `city` and merge them.

    Fetch errors propagate to the caller; there is no retry here. If `cancel`
    fires before results are merged the city comes back unchanged.
    """
    unchanged = SyncResult(updated=city, new_days=0, up_to=city.last_date)

    plan = plan_sync(city, start_date, today, policy)
    if plan.is_empty:
        logger.debug("%s: nothing to fetch (range starts %s)", city.id, plan.range_start)
        return unchanged

    logger.debug(
        "%s: archive=%s forecast=%s", city.id, plan.archive_range, plan.forecast_range
    )

    forecast_fetch: Awaitable[list[DailyTemps]]
    if plan.forecast_range is not None:
        forecast_fetch = source.fetch_forecast_range(
            city.latitude, city.longitude,
            plan.forecast_range.start, plan.forecast_range.end,
            city.timezone or "auto", cancel,
        )
    else:
        forecast_fetch = _no_temps()

    archive_fetch: Awaitable[list[DailyTemps]]
    if plan.archive_range is not None:
        archive_fetch = source.fetch_archive_range(
            city.latitude, city.longitude,
            plan.archive_range.start, plan.archive_range.end,
            city.timezone or "auto", cancel,
        )
    else:
        archive_fetch = _no_temps()

    try:
        forecast, archive = await _gather_or_cancel(forecast_fetch, archive_fetch)
    except OperationCancelled:
        logger.info("%s: sync cancelled during fetch", city.id)
        return unchanged

    if cancel is not None and cancel.is_set():
        logger.info("%s: sync cancelled before merge", city.id)
        return unchanged

    days, new_days = merge_days(city.days, forecast, archive, plan.target_end)
    up_to = days[-1].date if days else None
    logger.info(
        "%s: merged %d forecast + %d archive day(s), %d new, through %s",
        city.id, len(forecast), len(archive), new_days, up_to,
    )
    return SyncResult(updated=replace(city, days=days), new_days=new_days, up_to=up_to)


async def _no_temps() -> list[DailyTemps]:
    return []


async def _gather_or_cancel(*aws: Awaitable[list[DailyTemps]]) -> list[list[DailyTemps]]:
    """Run fetches concurrently; if one fails, cancel the rest and re-raise."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
