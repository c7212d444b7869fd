"""Common types and helpers shared across models."""

from datetime import UTC, datetime
from enum import StrEnum


class CheckedFlag(StrEnum):
    YES = "Y"
    NO = "N"


def utc_now() -> datetime:
    return datetime.now(UTC)


def utc_now_iso() -> str:
    return utc_now().isoformat()
