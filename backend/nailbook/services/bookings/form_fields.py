"""
Appointment date/time extraction from free-text intake-form answers.
"""

import re
from datetime import datetime
from typing import Callable, Optional

from dateutil import parser as date_parser

DATE_FIELD_NAMES = ("appointment date", "booking date", "preferred date", "date of appointment", "date")
TIME_FIELD_NAMES = ("appointment time", "booking time", "preferred time", "time of appointment", "time")

ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
US_DATE_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")
YEAR_RE = re.compile(r"\b\d{4}\b")
MONTH_FIRST_RE = re.compile(
    r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})\b",
    re.IGNORECASE,
)
DAY_FIRST_RE = re.compile(
    r"\b(\d{1,2})(?:st|nd|rd|th)?\s+(jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?,?\s+(\d{4})\b",
    re.IGNORECASE,
)
MONTHS = {m: i for i, m in enumerate(
    ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"), start=1
)}
MONTHS["sept"] = 9

AMPM_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})\s*([AaPp][Mm])")
H24_TIME_RE = re.compile(r"\b(\d{1,2}):(\d{2})\b")


def _safe_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return datetime(year, month, day).strftime("%Y-%m-%d")
    except ValueError:
        return None


def parse_form_date(value: Optional[str]) -> Optional[str]:
    """Parse a free-text date into YYYY-MM-DD, or None."""
    if not value or not str(value).strip():
        return None
    value = str(value).strip()

    m = ISO_DATE_RE.search(value)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = US_DATE_RE.search(value)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(1)), int(m.group(2)))

    # without a year dateutil would silently fill in the current one
    if YEAR_RE.search(value):
        try:
            return date_parser.parse(value, fuzzy=True).strftime("%Y-%m-%d")
        except (ValueError, OverflowError):
            pass

    m = MONTH_FIRST_RE.search(value)
    if m:
        return _safe_date(int(m.group(3)), MONTHS[m.group(1).lower()], int(m.group(2)))
    m = DAY_FIRST_RE.search(value)
    if m:
        return _safe_date(int(m.group(3)), MONTHS[m.group(2).lower()], int(m.group(1)))
    return None


def parse_form_time(value: Optional[str]) -> Optional[str]:
    """
    Parse a free-text time into HH:MM. For ranges ("10:30 AM - 3:00 PM")
    the first time wins. Falls back to 24-hour HH:MM.
    """
    if not value or not str(value).strip():
        return None
    value = str(value)

    m = AMPM_TIME_RE.search(value)
    if m:
        hour, minute, meridiem = int(m.group(1)), int(m.group(2)), m.group(3).upper()
        if not (1 <= hour <= 12 and minute < 60):
            return None
        if meridiem == "PM" and hour != 12:
            hour += 12
        if meridiem == "AM" and hour == 12:
            hour = 0
        return f"{hour:02d}:{minute:02d}"

    m = H24_TIME_RE.search(value)
    if m:
        hour, minute = int(m.group(1)), int(m.group(2))
        if hour < 24 and minute < 60:
            return f"{hour:02d}:{minute:02d}"
    return None


def format_time_12h(value: str) -> str:
    hour, minute = (int(p) for p in value.split(":"))
    meridiem = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minute:02d} {meridiem}"


def find_field_value(
    field_map: dict,
    names: tuple[str, ...],
    preferred_keys: tuple[Optional[str], ...] = (),
    parse: Optional[Callable[[str], Optional[str]]] = None,
) -> Optional[str]:
    """
    Value of the first configured key present, else the first header that
    contains one of ``names`` (case-insensitive, in ``names`` order).

    With ``parse``, candidates are tried in the same order and the first
    value that parses is returned (parsed), so an unrelated answer such as
    "Is this your first time?" cannot hide the real "Time" column.
    """
    for value in _candidate_values(field_map, names, preferred_keys):
        if parse is None:
            return value
        parsed = parse(value)
        if parsed is not None:
            return parsed
    return None


def _candidate_values(field_map: dict, names: tuple[str, ...], preferred_keys: tuple[Optional[str], ...]):
    seen = set()
    for key in preferred_keys:
        if key and field_map.get(key) and str(field_map[key]).strip():
            seen.add(key)
            yield str(field_map[key]).strip()
    for name in names:
        for key, value in field_map.items():
            if key in seen:
                continue
            if name in key.lower() and value and str(value).strip():
                seen.add(key)
                yield str(value).strip()


def extract_appointment(
    field_map: dict,
    date_keys: tuple[Optional[str], ...] = (),
    time_keys: tuple[Optional[str], ...] = (),
) -> tuple[Optional[str], Optional[str]]:
    """(YYYY-MM-DD, HH:MM) found in form answers; either may be None."""
    return (
        find_field_value(field_map, DATE_FIELD_NAMES, date_keys, parse=parse_form_date),
        find_field_value(field_map, TIME_FIELD_NAMES, time_keys, parse=parse_form_time),
    )
