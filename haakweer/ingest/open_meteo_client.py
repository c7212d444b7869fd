"""Open-Meteo client: forecast and archive daily temperatures, geocoding."""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

import httpx

from haakweer.config.defaults import (
    ARCHIVE_URL,
    DEFAULT_USER_AGENT,
    FORECAST_URL,
    GEOCODING_URL,
)
from haakweer.config.schema import ApiConfig
from haakweer.models.weather import DailyTemps, GeoResult

logger = logging.getLogger(__name__)

DAILY_VARS = "temperature_2m_max,temperature_2m_min,temperature_2m_mean"

T = TypeVar("T")


class FetchError(Exception):
    """A remote call failed."""


class TransportError(FetchError):
    """The endpoint could not be reached (network, DNS, timeout)."""


class RemoteStatusError(FetchError):
    def __init__(self, source: str, status_code: int, reason: str = ""):
        self.source = source
        self.status_code = status_code
        super().__init__(f"{source} fetch failed ({status_code} {reason})".rstrip())


class MalformedResponseError(FetchError):
    """The response body could not be decoded at all."""


class OperationCancelled(Exception):
    """The cancellation token fired while a request was in flight."""


class OpenMeteoClient:
    def __init__(
        self,
        forecast_url: str = FORECAST_URL,
        archive_url: str = ARCHIVE_URL,
        geocoding_url: str = GEOCODING_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
    ):
        self.forecast_url = forecast_url
        self.archive_url = archive_url
        self.geocoding_url = geocoding_url
        self.user_agent = user_agent
        self.timeout = timeout

    @classmethod
    def from_config(cls, api_config: ApiConfig) -> "OpenMeteoClient":
        return cls(
            forecast_url=api_config.forecast_url,
            archive_url=api_config.archive_url,
            geocoding_url=api_config.geocoding_url,
            user_agent=api_config.user_agent,
            timeout=api_config.timeout_seconds,
        )

    async def fetch_forecast_range(
        self,
        latitude: float,
        longitude: float,
        start_date: str,
        end_date: str,
        timezone: str,
        cancel: asyncio.Event | None = None,
    ) -> list[DailyTemps]:
        """Daily temperatures from the forecast API, which has no publication delay."""
        return await self._fetch_daily(
            "forecast", self.forecast_url,
            latitude, longitude, start_date, end_date, timezone, cancel,
        )

    async def fetch_archive_range(
        self,
        latitude: float,
        longitude: float,
        start_date: str,
        end_date: str,
        timezone: str,
        cancel: asyncio.Event | None = None,
    ) -> list[DailyTemps]:
        """Daily temperatures from the historical archive API.

        The archive is authoritative but lags real time by several days;
        dates past its horizon come back missing.
        """
        return await self._fetch_daily(
            "archive", self.archive_url,
            latitude, longitude, start_date, end_date, timezone, cancel,
        )

    async def geocode_top_result(
        self, query: str, cancel: asyncio.Event | None = None
    ) -> GeoResult | None:
        """Resolve a free-text place name to its best match, or None."""
        params = {"name": query, "count": 10, "language": "en", "format": "json"}
        payload = await self._get_json("geocoding", self.geocoding_url, params, cancel)
        return parse_geocoding_result(payload)

    async def _fetch_daily(
        self,
        source: str,
        url: str,
        latitude: float,
        longitude: float,
        start_date: str,
        end_date: str,
        timezone: str,
        cancel: asyncio.Event | None,
    ) -> list[DailyTemps]:
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "start_date": start_date,
            "end_date": end_date,
            "timezone": timezone or "auto",
            "daily": DAILY_VARS,
        }
        payload = await self._get_json(source, url, params, cancel)
        temps = parse_daily_temps(payload)
        logger.debug(
            "%s %s..%s returned %d day(s)", source, start_date, end_date, len(temps)
        )
        return temps

    async def _get_json(
        self,
        source: str,
        url: str,
        params: dict[str, Any],
        cancel: asyncio.Event | None,
    ) -> Any:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled(f"{source} request cancelled")

        resp = await run_cancellable(self._send(source, url, params), cancel, source)
        if not resp.is_success:
            logger.error(
                "Open-Meteo %s returned %d for %s", source, resp.status_code, url
            )
            raise RemoteStatusError(source, resp.status_code, resp.reason_phrase)
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"{source} response is not JSON") from e

    async def _send(
        self, source: str, url: str, params: dict[str, Any]
    ) -> httpx.Response:
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=headers) as client:
                return await client.get(url, params=params)
        except httpx.RequestError as e:
            logger.error("Open-Meteo %s request failed: %s", source, e)
            raise TransportError(f"{source} request failed: {e}") from e


async def run_cancellable(
    aw: Awaitable[T], cancel: asyncio.Event | None, what: str
) -> T:
    """Await `aw`, aborting it if `cancel` fires first."""
    task = asyncio.ensure_future(aw)
    if cancel is None:
        return await task

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task.done():
        return task.result()

    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
    raise OperationCancelled(f"{what} request cancelled")


def parse_daily_temps(payload: Any) -> list[DailyTemps]:
    """Extract aligned (date, max, min, mean) rows from a `daily` block.

    A missing block or series yields an empty list. Individual dates with
    non-numeric values are skipped.
    """
    daily = payload.get("daily") if isinstance(payload, dict) else None
    if not isinstance(daily, dict):
        return []

    times = daily.get("time")
    series = [
        daily.get("temperature_2m_max"),
        daily.get("temperature_2m_min"),
        daily.get("temperature_2m_mean"),
    ]
    if not isinstance(times, list) or not all(isinstance(s, list) for s in series):
        return []

    out: list[DailyTemps] = []
    for i, day in enumerate(times):
        values = [s[i] if i < len(s) else None for s in series]
        if not isinstance(day, str) or not all(_is_number(v) for v in values):
            continue
        tmax, tmin, tavg = (float(v) for v in values)
        out.append(DailyTemps(date=day, tmax=tmax, tmin=tmin, tavg=tavg))

    skipped = len(times) - len(out)
    if skipped:
        logger.debug("Skipped %d day(s) with missing temperatures", skipped)
    return out


def parse_geocoding_result(payload: Any) -> GeoResult | None:
    results = payload.get("results") if isinstance(payload, dict) else None
    if not isinstance(results, list) or not results:
        return None

    first = results[0]
    if not isinstance(first, dict):
        return None
    if (
        not _is_int(first.get("id"))
        or not isinstance(first.get("name"), str)
        or not _is_number(first.get("latitude"))
        or not _is_number(first.get("longitude"))
        or not isinstance(first.get("timezone"), str)
    ):
        return None

    country = first.get("country")
    admin1 = first.get("admin1")
    return GeoResult(
        id=first["id"],
        name=first["name"],
        latitude=float(first["latitude"]),
        longitude=float(first["longitude"]),
        timezone=first["timezone"],
        country=country if isinstance(country, str) else None,
        admin1=admin1 if isinstance(admin1, str) else None,
    )


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)
