"""Output formatters for cities, stored days and sync reports."""

import json

from haakweer.models.archive import City, DailyRecord
from haakweer.models.reporting import SyncReport


def format_temp(value: float) -> str:
    return f"{value:6.1f}"


def format_day_line(d: DailyRecord) -> str:
    return (
        f"{d.date}  max {format_temp(d.tmax)}  min {format_temp(d.tmin)}  "
        f"avg {format_temp(d.tavg)}  checked:{d.checked.value}"
    )


def format_days(city: City) -> str:
    """Stored days newest first, one per line."""
    if not city.days:
        return "No data yet"
    days = sorted(city.days, key=lambda d: d.date, reverse=True)
    return "\n".join(format_day_line(d) for d in days)


def format_city_line(city: City, selected: bool = False) -> str:
    marker = "*" if selected else " "
    return (
        f"{marker} {city.id:<10} {city.name}  {city.timezone}  "
        f"({city.latitude:.2f}, {city.longitude:.2f})  {len(city.days)} day(s)"
    )


def format_status(report: SyncReport) -> str:
    """One-line status after a sync run."""
    if report.errors:
        return f"Sync failed: {report.errors[-1]}"
    if report.cancelled:
        return "Sync cancelled"
    if report.new_days == 0:
        return f"Up to date (through {report.up_to})" if report.up_to else "No data yet"
    return (
        f"Fetched {report.new_days} day(s). "
        f"Up to date (through {report.up_to or 'n/a'})."
    )


def format_report_json(report: SyncReport) -> str:
    """JSON report for programmatic consumption."""
    data = {
        "city_id": report.city_id,
        "city_name": report.city_name,
        "new_days": report.new_days,
        "up_to": report.up_to,
        "persisted": report.persisted,
        "cancelled": report.cancelled,
        "duration_seconds": report.duration_seconds,
        "errors": report.errors,
    }
    return json.dumps(data, indent=2)
