import re
from datetime import datetime
from typing import Optional


def check_date(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        datetime.strptime(v, "%Y-%m-%d")
    except ValueError:
        raise ValueError("Date must be in YYYY-MM-DD format")
    return v


def check_time(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not re.match(r"^([01]\d|2[0-3]):[0-5]\d$", v):
        raise ValueError("Time must be in HH:MM format")
    return v
