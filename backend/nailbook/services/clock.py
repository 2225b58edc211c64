"""Timestamp helpers. All stored timestamps are naive salon-local ISO strings."""

from datetime import datetime
from typing import Optional


def local_now() -> datetime:
    return datetime.now()


def to_timestamp(dt: datetime) -> str:
    return dt.isoformat(timespec="seconds")


def parse_timestamp(value) -> Optional[datetime]:
    """Parse ISO or SQLite CURRENT_TIMESTAMP text. Returns None if unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "").replace(" ", "T"))
    except ValueError:
        return None


def slot_datetime(date_str: str, time_str: str) -> datetime:
    return datetime.strptime(f"{date_str} {time_str}", "%Y-%m-%d %H:%M")
