"""
Prefilled Google Form links for new bookings.

The form entry ids (``entry.123456``) come from settings; fields whose entry
id is not configured are simply left out of the link.
"""

import logging
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode

from ..config import Settings, settings as default_settings
from .bookings.form_fields import format_time_12h

logger = logging.getLogger(__name__)

SERVICE_LOCATION_LABELS = {
    "home_service": "Home Service",
    "homebased_studio": "Homebased Studio",
}


def format_form_date(date_str: str, fmt: str = "FULL") -> str:
    d = datetime.strptime(date_str, "%Y-%m-%d")
    if fmt == "YYYY-MM-DD":
        return date_str
    if fmt == "DD/MM/YYYY":
        return d.strftime("%d/%m/%Y")
    if fmt == "MM/DD/YYYY":
        return d.strftime("%m/%d/%Y")
    # FULL: "Tuesday, January 13, 2026"
    return f"{d.strftime('%A, %B')} {d.day}, {d.year}"


def format_form_time(times: list[str]) -> str:
    """Single slot: "10:30 AM"; run of slots: "10:30 AM - 3:00 PM"."""
    if len(times) == 1:
        return format_time_12h(times[0])
    return f"{format_time_12h(times[0])} - {format_time_12h(times[-1])}"


def build_prefilled_form_url(
    booking,
    slots: list,
    customer=None,
    settings: Optional[Settings] = None,
) -> Optional[str]:
    """Prefilled form link for a booking, or None if no form is configured."""
    s = settings or default_settings
    if not s.google_form_base_url or not s.google_form_booking_id_entry:
        return None

    fields: dict[str, str] = {s.google_form_booking_id_entry: booking.booking_code}
    if slots:
        if s.google_form_date_entry:
            fields[s.google_form_date_entry] = format_form_date(slots[0].date, s.google_form_date_format)
        if s.google_form_time_entry:
            fields[s.google_form_time_entry] = format_form_time([slot.time for slot in slots])
    if s.google_form_service_location_entry and booking.service_location:
        fields[s.google_form_service_location_entry] = SERVICE_LOCATION_LABELS.get(
            booking.service_location, booking.service_location
        )

    if customer is not None:
        for entry, value in (
            (s.google_form_name_entry, customer.name),
            (s.google_form_email_entry, customer.email),
            (s.google_form_phone_entry, customer.phone),
            (s.google_form_social_media_entry, customer.social_media_name),
        ):
            if entry and value:
                fields[entry] = value

    separator = "&" if "?" in s.google_form_base_url else "?"
    url = f"{s.google_form_base_url}{separator}{urlencode(fields)}"
    logger.debug(f"Prefill URL for {booking.booking_code}: {url}")
    return url
