"""Tests for range planning, precedence merge and the async sync engine."""

import asyncio
from dataclasses import replace
from datetime import date
from unittest.mock import MagicMock

import pytest

from haakweer.ingest.open_meteo_client import (
    OpenMeteoClient,
    RemoteStatusError,
    TransportError,
    run_cancellable,
)
from haakweer.models.archive import City, DailyRecord
from haakweer.models.common import CheckedFlag
from haakweer.models.weather import DailyTemps, DateRange
from haakweer.sync.dates import add_days
from haakweer.sync.sync_engine import (
    SyncPolicy,
    merge_days,
    next_date_to_fetch,
    plan_sync,
    sync_city,
)

START = "2026-01-01"


def _days(start: str, count: int, checked: CheckedFlag = CheckedFlag.NO) -> tuple[DailyRecord, ...]:
    return tuple(
        DailyRecord(add_days(start, i), 5.0 + i, -1.0 + i, 2.0 + i, checked)
        for i in range(count)
    )


def _mock_source(forecast=None, archive=None) -> MagicMock:
    source = MagicMock(spec=OpenMeteoClient)
    source.fetch_forecast_range.return_value = forecast or []
    source.fetch_archive_range.return_value = archive or []
    return source


def _run(coro):
    return asyncio.run(coro)


class TestNextDateToFetch:
    def test_empty_city_uses_start_date(self, berlin: City):
        assert next_date_to_fetch(berlin, START) == START

    def test_day_after_latest_stored(self, berlin: City):
        city = replace(berlin, days=_days("2026-01-01", 5))
        assert next_date_to_fetch(city, START) == "2026-01-06"

    def test_unsorted_days(self, berlin: City):
        days = _days("2026-01-01", 5)
        city = replace(berlin, days=(days[4], days[0], days[2]))
        assert next_date_to_fetch(city, START) == "2026-01-06"


class TestPlanSync:
    def test_empty_archive_scenario(self, berlin: City, today: date):
        plan = plan_sync(berlin, START, today)
        assert plan.target_end == "2026-01-09"
        assert plan.range_start == "2026-01-01"
        assert plan.archive_range == DateRange("2026-01-01", "2026-01-05")
        assert plan.forecast_range == DateRange("2026-01-06", "2026-01-09")

    def test_up_to_date_still_refreshes(self, berlin: City, today: date):
        city = replace(berlin, days=_days("2026-01-01", 9))
        plan = plan_sync(city, START, today)
        # missing start 01-10 is past the target end; refresh window floors at start_date
        assert plan.range_start == "2026-01-01"
        assert plan.archive_range == DateRange("2026-01-01", "2026-01-05")
        assert plan.forecast_range == DateRange("2026-01-06", "2026-01-09")

    def test_refresh_window_spans_fourteen_days(self, berlin: City):
        city = replace(berlin, days=_days("2025-06-01", 274))  # through 2026-03-01
        plan = plan_sync(city, "2025-06-01", date(2026, 3, 2))
        assert plan.target_end == "2026-03-01"
        assert plan.range_start == "2026-02-15"

    def test_refresh_window_bounded_by_start_date(self, berlin: City, today: date):
        city = replace(berlin, days=_days("2026-01-05", 5))  # through 2026-01-09
        plan = plan_sync(city, "2026-01-05", today)
        assert plan.range_start == "2026-01-05"

    def test_forward_only_missing_range(self, berlin: City):
        # Latest stored day is far behind: the gap starts the day after it.
        city = replace(berlin, days=_days("2026-01-01", 32))  # through 2026-02-01
        plan = plan_sync(city, START, date(2026, 3, 10))
        assert plan.range_start == "2026-02-02"
        assert plan.archive_range == DateRange("2026-02-02", "2026-03-05")
        assert plan.forecast_range == DateRange("2026-03-06", "2026-03-09")

    def test_never_requests_before_refresh_window(self, berlin: City):
        city = replace(berlin, days=_days("2026-01-01", 60))  # through 2026-03-01
        plan = plan_sync(city, START, date(2026, 3, 10))
        assert plan.range_start == add_days("2026-03-09", -14)

    def test_future_start_date_fetches_nothing(self, berlin: City, today: date):
        plan = plan_sync(berlin, "2026-02-01", today)
        assert plan.is_empty
        assert plan.archive_range is None
        assert plan.forecast_range is None

    def test_forecast_only_when_range_inside_embargo(self, berlin: City, today: date):
        plan = plan_sync(berlin, "2026-01-07", today)
        assert plan.archive_range is None
        assert plan.forecast_range == DateRange("2026-01-07", "2026-01-09")

    def test_archive_only_without_embargo(self, berlin: City, today: date):
        policy = SyncPolicy(historic_embargo_days=0)
        plan = plan_sync(berlin, START, today, policy)
        assert plan.archive_range == DateRange("2026-01-01", "2026-01-09")
        assert plan.forecast_range is None

    def test_zero_refresh_window(self, berlin: City, today: date):
        city = replace(berlin, days=_days("2026-01-01", 9))
        plan = plan_sync(city, START, today, SyncPolicy(refresh_window_days=0))
        assert plan.range_start == "2026-01-09"
        assert plan.archive_range is None
        assert plan.forecast_range == DateRange("2026-01-09", "2026-01-09")

    def test_clock_read_once_across_midnight(self, berlin: City, monkeypatch):
        ticks = iter([date(2026, 1, 10), date(2026, 1, 11), date(2026, 1, 12)])

        class Clock(date):
            @classmethod
            def today(cls):
                return next(ticks)

        monkeypatch.setattr("haakweer.sync.dates.date", Clock)

        plan = plan_sync(berlin, START)

        assert plan.target_end == "2026-01-09"
        assert plan.archive_range == DateRange("2026-01-01", "2026-01-05")
        assert plan.forecast_range == DateRange("2026-01-06", "2026-01-09")


class TestMergeDays:
    def test_new_days_counted_and_unchecked(self):
        temps = [DailyTemps("2026-01-02", 1.0, 0.0, 0.5), DailyTemps("2026-01-01", 2.0, 1.0, 1.5)]
        days, new_days = merge_days((), temps, [], "2026-01-09")
        assert new_days == 2
        assert [d.date for d in days] == ["2026-01-01", "2026-01-02"]
        assert all(d.checked == CheckedFlag.NO for d in days)

    def test_archive_wins_over_forecast(self):
        forecast = [DailyTemps("2026-01-05", 9.0, 9.0, 9.0)]
        archive = [DailyTemps("2026-01-05", 1.0, -1.0, 0.0)]
        days, new_days = merge_days((), forecast, archive, "2026-01-09")
        assert new_days == 1
        assert days[0].tmax == 1.0
        assert days[0].tmin == -1.0
        assert days[0].tavg == 0.0

    def test_checked_flag_preserved_temps_replaced(self):
        existing = (DailyRecord("2026-01-03", 4.0, 0.0, 2.0, CheckedFlag.YES),)
        days, new_days = merge_days(
            existing, [], [DailyTemps("2026-01-03", 4.5, 0.5, 2.5)], "2026-01-09"
        )
        assert new_days == 0
        assert days[0].checked == CheckedFlag.YES
        assert days[0].tmax == 4.5

    def test_days_after_target_end_dropped(self):
        existing = (DailyRecord("2026-01-12", 1.0, 1.0, 1.0, CheckedFlag.YES),)
        forecast = [DailyTemps("2026-01-09", 2.0, 1.0, 1.5), DailyTemps("2026-01-10", 3.0, 2.0, 2.5)]
        days, _ = merge_days(existing, forecast, [], "2026-01-09")
        assert [d.date for d in days] == ["2026-01-09"]

    def test_untouched_days_kept(self):
        existing = _days("2025-12-01", 3)
        days, new_days = merge_days(existing, [DailyTemps("2026-01-01", 1.0, 0.0, 0.5)], [], "2026-01-09")
        assert new_days == 1
        assert days[:3] == existing


class TestSyncCity:
    def test_empty_archive_scenario(self, berlin, today, archive_temps, forecast_temps):
        source = _mock_source(forecast=forecast_temps, archive=archive_temps)

        result = _run(sync_city(berlin, START, source, today=today))

        source.fetch_archive_range.assert_awaited_once_with(
            52.52437, 13.41053, "2026-01-01", "2026-01-05", "Europe/Berlin", None
        )
        source.fetch_forecast_range.assert_awaited_once_with(
            52.52437, 13.41053, "2026-01-06", "2026-01-09", "Europe/Berlin", None
        )
        assert result.new_days == 9
        assert result.up_to == "2026-01-09"
        dates = [d.date for d in result.updated.days]
        assert dates == [add_days(START, i) for i in range(9)]
        assert all(d.checked == CheckedFlag.NO for d in result.updated.days)

    def test_input_city_not_mutated(self, berlin, today, archive_temps, forecast_temps):
        source = _mock_source(forecast=forecast_temps, archive=archive_temps)
        result = _run(sync_city(berlin, START, source, today=today))
        assert berlin.days == ()
        assert result.updated is not berlin
        assert result.updated.id == berlin.id

    def test_idempotent(self, berlin, today, archive_temps, forecast_temps):
        source = _mock_source(forecast=forecast_temps, archive=archive_temps)

        first = _run(sync_city(berlin, START, source, today=today))
        second = _run(sync_city(first.updated, START, source, today=today))

        assert first.new_days == 9
        assert second.new_days == 0
        assert second.updated.days == first.updated.days
        assert second.up_to == "2026-01-09"

    def test_up_to_date_refresh_scenario(self, berlin, today, archive_temps, forecast_temps):
        source = _mock_source(forecast=forecast_temps, archive=archive_temps)
        synced = _run(sync_city(berlin, START, source, today=today)).updated
        source.reset_mock()

        result = _run(sync_city(synced, START, source, today=today))

        # Refresh window re-fetches every day even though none are missing.
        assert source.fetch_archive_range.await_args.args[2:4] == ("2026-01-01", "2026-01-05")
        assert source.fetch_forecast_range.await_args.args[2:4] == ("2026-01-06", "2026-01-09")
        assert result.new_days == 0
        assert result.updated.days == synced.days

    def test_archive_precedence(self, berlin, today):
        source = _mock_source(
            forecast=[DailyTemps("2026-01-05", 10.0, 8.0, 9.0)],
            archive=[DailyTemps("2026-01-05", 2.0, -2.0, 0.0)],
        )
        result = _run(sync_city(berlin, START, source, today=today))
        day = result.updated.days[0]
        assert (day.tmax, day.tmin, day.tavg) == (2.0, -2.0, 0.0)
        assert result.new_days == 1

    def test_checked_flag_preserved(self, berlin, today, archive_temps, forecast_temps):
        source = _mock_source(forecast=forecast_temps, archive=archive_temps)
        synced = _run(sync_city(berlin, START, source, today=today)).updated
        days = tuple(
            replace(d, checked=CheckedFlag.YES) if d.date == "2026-01-03" else d
            for d in synced.days
        )
        checked_city = replace(synced, days=days)

        corrected = [replace(t, tmax=t.tmax + 0.5) for t in archive_temps]
        source = _mock_source(forecast=forecast_temps, archive=corrected)
        result = _run(sync_city(checked_city, START, source, today=today))

        by_date = {d.date: d for d in result.updated.days}
        assert by_date["2026-01-03"].checked == CheckedFlag.YES
        assert by_date["2026-01-03"].tmax == pytest.approx(-0.1)
        assert by_date["2026-01-02"].checked == CheckedFlag.NO
        assert result.new_days == 0

    def test_retention_cutoff(self, berlin, today):
        source = _mock_source(
            forecast=[
                DailyTemps("2026-01-09", 1.0, 0.0, 0.5),
                DailyTemps("2026-01-10", 2.0, 1.0, 1.5),
                DailyTemps("2026-01-11", 3.0, 2.0, 2.5),
            ],
        )
        result = _run(sync_city(berlin, START, source, today=today))
        assert [d.date for d in result.updated.days] == ["2026-01-09"]
        assert result.up_to == "2026-01-09"

    def test_gapped_response_tolerated(self, berlin, today, archive_temps):
        source = _mock_source(archive=[archive_temps[0], archive_temps[3]])
        result = _run(sync_city(berlin, START, source, today=today))
        assert [d.date for d in result.updated.days] == ["2026-01-01", "2026-01-04"]
        assert result.new_days == 2

    def test_nothing_to_do_returns_unchanged(self, berlin, today):
        city = replace(berlin, days=_days("2026-01-01", 9))
        source = _mock_source()
        result = _run(sync_city(city, "2026-02-01", source, today=today))
        assert result.updated is city
        assert result.new_days == 0
        assert result.up_to == "2026-01-09"
        source.fetch_archive_range.assert_not_awaited()
        source.fetch_forecast_range.assert_not_awaited()

    def test_nothing_to_do_empty_city(self, berlin, today):
        source = _mock_source()
        result = _run(sync_city(berlin, "2026-02-01", source, today=today))
        assert result.up_to is None
        assert result.new_days == 0

    def test_empty_timezone_uses_auto(self, berlin, today):
        city = replace(berlin, timezone="")
        source = _mock_source()
        _run(sync_city(city, START, source, today=today))
        assert source.fetch_archive_range.await_args.args[4] == "auto"

    def test_policy_passed_through(self, berlin, today):
        source = _mock_source()
        _run(sync_city(berlin, START, source, today=today, policy=SyncPolicy(historic_embargo_days=0)))
        source.fetch_forecast_range.assert_not_awaited()
        assert source.fetch_archive_range.await_args.args[2:4] == ("2026-01-01", "2026-01-09")

    def test_empty_placeholder_only_for_absent_range(
        self, berlin, today, monkeypatch, archive_temps, forecast_temps
    ):
        created = []

        async def no_temps():
            return []

        def tracking_no_temps():
            created.append(1)
            return no_temps()

        monkeypatch.setattr("haakweer.sync.sync_engine._no_temps", tracking_no_temps)

        _run(sync_city(berlin, START, _mock_source(forecast_temps, archive_temps), today=today))
        assert created == []

        _run(sync_city(
            berlin, START, _mock_source(), today=today,
            policy=SyncPolicy(historic_embargo_days=0),
        ))
        assert created == [1]


class TestSyncErrors:
    def test_transport_error_propagates(self, berlin, today, forecast_temps):
        source = _mock_source(forecast=forecast_temps)
        source.fetch_archive_range.side_effect = TransportError("archive request failed")

        with pytest.raises(TransportError):
            _run(sync_city(berlin, START, source, today=today))

    def test_status_error_propagates(self, berlin, today, archive_temps):
        source = _mock_source(archive=archive_temps)
        source.fetch_forecast_range.side_effect = RemoteStatusError("forecast", 500, "Internal Server Error")

        with pytest.raises(RemoteStatusError) as exc_info:
            _run(sync_city(berlin, START, source, today=today))
        assert exc_info.value.status_code == 500

    def test_failure_cancels_sibling_fetch(self, berlin, today):
        sibling_cancelled = asyncio.Event()

        class Source:
            async def fetch_forecast_range(self, *args):
                raise TransportError("forecast request failed")

            async def fetch_archive_range(self, *args):
                try:
                    await asyncio.sleep(10)
                except asyncio.CancelledError:
                    sibling_cancelled.set()
                    raise
                return []

        async def scenario():
            with pytest.raises(TransportError):
                await sync_city(berlin, START, Source(), today=today)
            return sibling_cancelled.is_set()

        assert _run(scenario()) is True


class TestSyncCancellation:
    def test_cancel_before_merge_is_noop(self, berlin, today, archive_temps, forecast_temps):
        source = _mock_source(forecast=forecast_temps, archive=archive_temps)

        async def scenario():
            cancel = asyncio.Event()
            cancel.set()
            return await sync_city(berlin, START, source, cancel=cancel, today=today)

        result = _run(scenario())
        assert result.updated is berlin
        assert result.new_days == 0
        assert result.up_to is None

    def test_cancel_during_fetch_is_noop(self, berlin, today):
        city = replace(berlin, days=_days("2026-01-01", 3))

        class SlowSource:
            async def fetch_forecast_range(self, lat, lon, start, end, tz, cancel=None):
                return await run_cancellable(asyncio.sleep(10, result=[]), cancel, "forecast")

            async def fetch_archive_range(self, lat, lon, start, end, tz, cancel=None):
                return await run_cancellable(asyncio.sleep(10, result=[]), cancel, "archive")

        async def scenario():
            cancel = asyncio.Event()
            task = asyncio.create_task(
                sync_city(city, START, SlowSource(), cancel=cancel, today=today)
            )
            await asyncio.sleep(0.01)
            cancel.set()
            return await asyncio.wait_for(task, timeout=5)

        result = _run(scenario())
        assert result.updated is city
        assert result.new_days == 0
        assert result.up_to == "2026-01-03"

    def test_different_cities_concurrently(self, berlin, today, archive_temps, forecast_temps):
        other = replace(berlin, id="2759794", name="Amsterdam", latitude=52.37, longitude=4.89)
        source = _mock_source(forecast=forecast_temps, archive=archive_temps)

        async def scenario():
            return await asyncio.gather(
                sync_city(berlin, START, source, today=today),
                sync_city(other, START, source, today=today),
            )

        a, b = _run(scenario())
        assert a.updated.id == berlin.id
        assert b.updated.id == other.id
        assert a.updated.days == b.updated.days
        assert a.new_days == b.new_days == 9
