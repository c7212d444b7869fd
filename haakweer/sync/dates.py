"""Calendar arithmetic on zero-padded ISO date strings (YYYY-MM-DD).

Dates are civil, timezone-naive local dates. Because the format is zero-padded,
plain string comparison orders them chronologically.
"""

from datetime import date, timedelta

from haakweer.config.defaults import HISTORIC_EMBARGO_DAYS


def format_ymd(d: date) -> str:
    return d.isoformat()


def parse_ymd(ymd: str) -> date:
    return date.fromisoformat(ymd)


def add_days(ymd: str, days: int) -> str:
    """Return the calendar date `days` after `ymd` (negative goes back)."""
    return format_ymd(parse_ymd(ymd) + timedelta(days=days))


def ymd_max(a: str, b: str) -> str:
    return a if a > b else b


def ymd_min(a: str, b: str) -> str:
    return a if a < b else b


def local_today() -> date:
    """The host's local calendar date."""
    return date.today()


def today_ymd(today: date | None = None) -> str:
    if today is None:
        today = local_today()
    return format_ymd(today)


def yesterday_ymd(today: date | None = None) -> str:
    return add_days(today_ymd(today), -1)


def latest_available_historic_ymd(
    today: date | None = None, embargo_days: int = HISTORIC_EMBARGO_DAYS
) -> str:
    """Last date the archive source is expected to have published."""
    return add_days(today_ymd(today), -embargo_days)
