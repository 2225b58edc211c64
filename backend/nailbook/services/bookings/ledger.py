# backend/nailbook/services/bookings/ledger.py
"""
Booking ledger: lookups, sequential codes, admin confirm/cancel and the
conditional release primitive shared by cancellation and the sweeper.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ...models.entities import Bookings, Customers, Slots
from ..clock import local_now, to_timestamp
from ..customers import display_name
from ..errors import NotFound, ValidationError
from ..slots.config import BookingConfig, get_booking_config
from ..slots.store import confirm_slots, free_slots, get_slots_by_ids

logger = logging.getLogger(__name__)

BOOKING_STATUSES = ("pending_form", "pending_payment", "confirmed", "cancelled")
ACTIVE_STATUSES = ("pending_form", "pending_payment", "confirmed")
RELEASED_REASON = "released"


@dataclass
class BookingView:
    """A booking with its slots and resolved customer name."""
    booking: Bookings
    slot: Optional[Slots] = None
    linked_slots: list[Slots] = field(default_factory=list)
    customer_name: str = "Unknown Customer"


# ──────────────────────────────────────────────────────────────────────────────
# Codes
# ──────────────────────────────────────────────────────────────────────────────

def next_booking_code(db: Session, config: Optional[BookingConfig] = None) -> str:
    """Max existing sequential code + 1 (GN-00001, GN-00002, ...)."""
    config = config or get_booking_config()
    pattern = re.compile(rf"^{re.escape(config.booking_code_prefix)}(\d{{1,6}})$")
    highest = 0
    codes = (
        db.query(Bookings.booking_code)
        .filter(Bookings.booking_code.like(f"{config.booking_code_prefix}%"))
        .all()
    )
    for (code,) in codes:
        m = pattern.match(code or "")
        if m:
            highest = max(highest, int(m.group(1)))
    return config.format_booking_code(highest + 1)


def normalize_booking_code(raw: str, config: Optional[BookingConfig] = None) -> str:
    """'GN00001', 'gn-1' and '1' all normalise to 'GN-00001'."""
    config = config or get_booking_config()
    value = (raw or "").strip()
    prefix = config.booking_code_prefix.rstrip("-")
    m = re.fullmatch(rf"(?:{re.escape(prefix)}-?)?(\d{{1,6}})", value, re.IGNORECASE)
    if not m:
        return value
    return config.format_booking_code(int(m.group(1)))


# ──────────────────────────────────────────────────────────────────────────────
# Reads
# ──────────────────────────────────────────────────────────────────────────────

def get_booking(db: Session, booking_id: int) -> Bookings:
    booking = db.get(Bookings, booking_id)
    if not booking:
        raise NotFound(f"Booking {booking_id} not found")
    return booking


def get_booking_by_code(db: Session, code: str, config: Optional[BookingConfig] = None) -> Optional[Bookings]:
    normalized = normalize_booking_code(code, config)
    return db.query(Bookings).filter(Bookings.booking_code == normalized).first()


def build_view(db: Session, booking: Bookings) -> BookingView:
    slots = {s.id: s for s in get_slots_by_ids(db, booking.slot_ids)}
    customer = db.get(Customers, booking.customer_id) if booking.customer_id else None
    return BookingView(
        booking=booking,
        slot=slots.get(booking.slot_id),
        linked_slots=[slots[i] for i in booking.slot_ids[1:] if i in slots],
        customer_name=display_name(customer, booking.customer_data),
    )


def list_bookings(
    db: Session,
    status: Optional[str] = None,
    include_released: bool = False,
) -> list[BookingView]:
    """Newest first. Released bookings stay out unless asked for."""
    q = db.query(Bookings)
    if status:
        if status not in BOOKING_STATUSES:
            raise ValidationError(f"Unknown booking status: {status}")
        q = q.filter(Bookings.status == status)
    if not include_released:
        q = q.filter(Bookings.released_at.is_(None))
    bookings = q.order_by(Bookings.created_at.desc(), Bookings.id.desc()).all()
    return [build_view(db, b) for b in bookings]


# ──────────────────────────────────────────────────────────────────────────────
# Writes
# ──────────────────────────────────────────────────────────────────────────────

def release_hold(
    db: Session,
    booking: Bookings,
    reason: str,
    now: datetime,
    expected_statuses: tuple[str, ...] = ("pending_form",),
    require_unsynced: bool = True,
) -> bool:
    """
    Cancel a booking and free the slots it holds, in the caller's
    transaction.

    The booking row is only touched if it is still in one of
    ``expected_statuses`` (and, with ``require_unsynced``, no form has been
    applied) at write time. Returns False when the booking moved on since it
    was read; nothing is changed in that case.
    """
    ts = to_timestamp(now)
    stmt = update(Bookings).where(
        Bookings.id == booking.id,
        Bookings.status.in_(expected_statuses),
    )
    if require_unsynced:
        stmt = stmt.where(Bookings.form_synced == 0, Bookings.form_response_id.is_(None))
    values = dict(status="cancelled", cancel_reason=reason, updated_at=ts)
    if reason == RELEASED_REASON:
        values["released_at"] = ts
    result = db.execute(stmt.values(**values).execution_options(synchronize_session=False))
    if result.rowcount != 1:
        return False
    freed = free_slots(db, booking.slot_ids, booking.id, now)
    logger.info(f"Booking {booking.booking_code} → cancelled ({reason}), freed {freed} slots")
    return True


def confirm_booking(db: Session, booking_id: int, events=None, now: Optional[datetime] = None) -> Bookings:
    """Admin confirmation: the booking and every slot it holds become confirmed."""
    now = now or local_now()
    booking = get_booking(db, booking_id)
    if booking.status == "confirmed":
        return booking

    result = db.execute(
        update(Bookings)
        .where(Bookings.id == booking.id, Bookings.status.in_(("pending_form", "pending_payment")))
        .values(status="confirmed", updated_at=to_timestamp(now))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise ValidationError(
            f"Booking {booking.booking_code} cannot be confirmed from status {booking.status}"
        )
    confirm_slots(db, booking.slot_ids, booking.id, now)
    db.commit()
    db.refresh(booking)
    logger.info(f"Booking {booking.booking_code} confirmed")
    if events:
        events.emit("booking_confirmed", {"booking_id": booking.id, "booking_code": booking.booking_code})
    return booking


def cancel_booking(
    db: Session,
    booking_id: int,
    reason: Optional[str] = None,
    events=None,
    now: Optional[datetime] = None,
) -> Bookings:
    now = now or local_now()
    booking = get_booking(db, booking_id)
    if booking.status == "cancelled":
        raise ValidationError(f"Booking {booking.booking_code} is already cancelled")

    if not release_hold(
        db, booking, reason or "cancelled", now,
        expected_statuses=ACTIVE_STATUSES, require_unsynced=False,
    ):
        db.rollback()
        raise ValidationError(f"Booking {booking.booking_code} changed while cancelling, retry")
    db.commit()
    db.refresh(booking)
    if events:
        events.emit("booking_cancelled", {"booking_id": booking.id, "booking_code": booking.booking_code})
    return booking
