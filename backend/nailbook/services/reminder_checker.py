"""
Booking reminder checker.

Checks for upcoming bookings and emits booking_reminder events so clients
are notified before their appointment.

Triggered externally (cron endpoint); there is no in-process loop.
Each booking is reminded at most once (Redis sent-key).
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..models.entities import Bookings, Slots
from .clock import local_now, slot_datetime
from .slots.config import BookingConfig, get_booking_config

logger = logging.getLogger(__name__)

SENT_KEY_TTL = 86400 * 2  # longer than the widest reminder window


def check_upcoming_bookings(
    db: Session,
    redis,
    events,
    config: Optional[BookingConfig] = None,
    now: Optional[datetime] = None,
) -> int:
    """Emit reminders for bookings inside the window. Returns number emitted."""
    config = config or get_booking_config()
    now = now or local_now()
    if config.remind_before_minutes <= 0:
        return 0

    rows = (
        db.query(Bookings, Slots)
        .join(Slots, Slots.id == Bookings.slot_id)
        .filter(
            Bookings.status.in_(["pending_payment", "confirmed"]),
            Slots.date >= now.strftime("%Y-%m-%d"),
        )
        .all()
    )

    emitted = 0
    for booking, slot in rows:
        try:
            if _process_single_booking(booking, slot, redis, events, config.remind_before_minutes, now):
                emitted += 1
        except Exception:
            logger.exception(f"Error processing booking {booking.id} for reminder")
    return emitted


def _process_single_booking(booking, slot, redis, events, remind_before: int, now: datetime) -> bool:
    sent_key = f"bkremind:sent:{booking.id}"
    if redis.exists(sent_key):
        return False

    starts_at = slot_datetime(slot.date, slot.time)
    # date_start - remind_before <= now < date_start
    if now < starts_at - timedelta(minutes=remind_before) or now >= starts_at:
        return False

    events.emit("booking_reminder", {
        "booking_id": booking.id,
        "booking_code": booking.booking_code,
        "date": slot.date,
        "time": slot.time,
    })
    redis.setex(sent_key, SENT_KEY_TTL, "1")
    logger.info(f"booking_reminder emitted for {booking.booking_code} (starts {slot.date} {slot.time})")
    return True
