# backend/nailbook/services/bookings/allocator.py
"""
Booking allocator: turns a slot selection into a booking that holds one or
more back-to-back slots.

All slots of one booking are reserved in a single transaction. Each slot is
claimed with a conditional UPDATE (available -> reserved); if any claim
finds the slot already taken, the whole transaction is rolled back and the
caller gets SlotUnavailable. Either every slot is held by the new booking or
none is.

Rescheduling uses the same claims: the old run is freed and the new run is
claimed inside one transaction, so a failed move leaves the booking on its
original slots.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.entities import Bookings, Slots
from ..clock import local_now, to_timestamp
from ..customers import get_customer_by_identifier
from ..errors import (
    BookingError,
    InsufficientConsecutiveSlots,
    SlotUnavailable,
    ValidationError,
)
from ..slots.availability import following_slots, unavailable_reason
from ..slots.calendar import list_blocked_dates
from ..slots.config import BookingConfig, get_booking_config
from ..slots.store import day_ordering, free_slots, reserve_slot
from .ledger import ACTIVE_STATUSES, get_booking, next_booking_code

logger = logging.getLogger(__name__)

CLIENT_TYPES = ("new", "repeat")
SERVICE_LOCATIONS = ("homebased_studio", "home_service")
CODE_RETRIES = 5


def requested_linked_ids(
    slot_id: int,
    required: int,
    linked_slot_ids: Optional[list[int]],
    paired_slot_id: Optional[int],
) -> Optional[list[int]]:
    """Explicit continuation slots from the caller, or None to auto-select."""
    provided = list(linked_slot_ids or [])
    if not provided and paired_slot_id is not None:
        provided = [paired_slot_id]
    if not provided:
        return None
    if required == 1:
        raise ValidationError("Single-slot services take no linked slots")
    if len(provided) != required - 1:
        raise ValidationError(
            f"Service needs {required - 1} linked slots, got {len(provided)}"
        )
    if slot_id in provided or len(set(provided)) != len(provided):
        raise ValidationError("Linked slots must be distinct from each other and the primary slot")
    return provided


def select_slot_run(
    db: Session,
    slot: Slots,
    required: int,
    requested: Optional[list[int]],
    now: datetime,
) -> list[Slots]:
    """
    The primary slot plus the ``required - 1`` slots immediately after it in
    the staff member's day. Raises if the run is not bookable.
    """
    blocks = list_blocked_dates(db, slot.date, slot.date)
    reason = unavailable_reason(slot, blocks, now)
    if reason:
        raise SlotUnavailable(f"Slot {slot.id} is not available: {reason}", slot_id=slot.id)
    if required == 1:
        return [slot]

    day = day_ordering(db, slot.nail_tech_id, slot.date)
    successors = following_slots(day, slot, required - 1)

    if requested is not None:
        for position, wanted in enumerate(requested):
            if position >= len(successors) or successors[position].id != wanted:
                raise InsufficientConsecutiveSlots(
                    f"Slot {wanted} is not the next slot after the selection",
                    slot_id=wanted,
                )
            reason = unavailable_reason(successors[position], blocks, now)
            if reason:
                raise SlotUnavailable(f"Slot {wanted} is not available: {reason}", slot_id=wanted)
        return [slot, *successors]

    if len(successors) < required - 1:
        raise InsufficientConsecutiveSlots(
            f"Service needs {required} consecutive slots, only {len(successors) + 1} left that day",
            required=required,
        )
    for nxt in successors:
        reason = unavailable_reason(nxt, blocks, now)
        if reason:
            raise InsufficientConsecutiveSlots(
                f"Service needs {required} consecutive slots; {nxt.date} {nxt.time} {reason}",
                required=required,
                slot_id=nxt.id,
            )
    return [slot, *successors]


def create_booking(
    db: Session,
    slot_id: int,
    service_type: str = "manicure",
    linked_slot_ids: Optional[list[int]] = None,
    paired_slot_id: Optional[int] = None,
    client_type: Optional[str] = None,
    service_location: Optional[str] = None,
    repeat_client_identifier: Optional[str] = None,
    social_media_name: Optional[str] = None,
    config: Optional[BookingConfig] = None,
    events=None,
    now: Optional[datetime] = None,
) -> Bookings:
    """
    Reserve ``slot_id`` (and the linked run a multi-slot service needs) and
    create a ``pending_form`` booking holding them.

    Raises:
        ValidationError: bad options or unknown service type
        SlotUnavailable: a slot is missing or taken (including by a concurrent request)
        InsufficientConsecutiveSlots: the day has no bookable run long enough
    """
    config = config or get_booking_config()
    now = now or local_now()

    try:
        required = config.required_slot_count(service_type)
    except ValueError as e:
        raise ValidationError(str(e))
    if client_type is not None and client_type not in CLIENT_TYPES:
        raise ValidationError(f"Unknown client type: {client_type}")
    if service_location is not None and service_location not in SERVICE_LOCATIONS:
        raise ValidationError(f"Unknown service location: {service_location}")
    requested = requested_linked_ids(slot_id, required, linked_slot_ids, paired_slot_id)

    for attempt in range(CODE_RETRIES):
        slot = db.get(Slots, slot_id)
        if slot is None:
            raise SlotUnavailable(f"Slot {slot_id} not found", slot_id=slot_id)
        run = select_slot_run(db, slot, required, requested, now)

        customer = None
        if repeat_client_identifier:
            customer = get_customer_by_identifier(db, repeat_client_identifier)

        customer_data = None
        if social_media_name and customer is None:
            customer_data = {"Social Media Name": social_media_name}

        ts = to_timestamp(now)
        linked = [s.id for s in run[1:]]
        booking = Bookings(
            booking_code=next_booking_code(db, config),
            nail_tech_id=slot.nail_tech_id,
            slot_id=slot.id,
            paired_slot_id=linked[0] if linked else None,
            linked_slot_ids=linked,
            service_type=service_type,
            status="pending_form",
            form_synced=0,
            customer_id=customer.id if customer else None,
            client_type=client_type or ("repeat" if customer else None),
            service_location=service_location,
            customer_data=customer_data,
            created_at=ts,
            updated_at=ts,
        )
        try:
            db.add(booking)
            db.flush()
            claim_run(db, run, booking.id, config.reservation_status, now)
            db.commit()
        except IntegrityError:
            # booking code taken by a concurrent allocation; recompute and retry
            db.rollback()
            logger.warning(f"Booking code collision, retry {attempt + 1}/{CODE_RETRIES}")
            continue

        db.refresh(booking)
        logger.info(
            f"Booking {booking.booking_code} created: {service_type} "
            f"slots={booking.slot_ids} nail_tech={booking.nail_tech_id}"
        )
        if events:
            events.emit("booking_created", {
                "booking_id": booking.id,
                "booking_code": booking.booking_code,
                "slot_ids": booking.slot_ids,
                "service_type": service_type,
            })
        return booking

    raise ValidationError("Could not allocate a booking code, retry")


def claim_run(db: Session, run: list[Slots], booking_id: int, status: str, now: datetime) -> None:
    """Claim every slot of ``run`` for a booking, or roll back and raise. Does not commit."""
    for s in run:
        if not reserve_slot(db, s.id, booking_id, status, now):
            db.rollback()
            raise SlotUnavailable(
                f"Slot {s.id} ({s.date} {s.time}) was just taken",
                slot_id=s.id,
            )


def reschedule_booking(
    db: Session,
    booking_id: int,
    new_slot_id: int,
    linked_slot_ids: Optional[list[int]] = None,
    config: Optional[BookingConfig] = None,
    events=None,
    now: Optional[datetime] = None,
) -> Bookings:
    """
    Move an active booking to ``new_slot_id`` (plus the run its service
    needs).

    The booking row is locked first with a conditional UPDATE on the status
    that was read, then the old slots are freed and the new ones claimed.
    The new run may overlap the old one. Confirmed bookings keep their
    slots confirmed; others take the configured reservation status.

    Raises:
        NotFound: unknown booking
        ValidationError: booking is not active, or changed concurrently
        SlotUnavailable / InsufficientConsecutiveSlots: the new run is not bookable
    """
    config = config or get_booking_config()
    now = now or local_now()

    booking = get_booking(db, booking_id)
    if booking.status not in ACTIVE_STATUSES:
        raise ValidationError(f"Booking {booking.booking_code} is {booking.status} and cannot be rescheduled")
    try:
        required = config.required_slot_count(booking.service_type)
    except ValueError as e:
        raise ValidationError(str(e))
    requested = requested_linked_ids(new_slot_id, required, linked_slot_ids, None)

    code, observed_status, old_ids = booking.booking_code, booking.status, booking.slot_ids
    ts = to_timestamp(now)
    locked = db.execute(
        update(Bookings)
        .where(Bookings.id == booking_id, Bookings.status == observed_status)
        .values(updated_at=ts)
        .execution_options(synchronize_session=False)
    )
    if locked.rowcount != 1:
        db.rollback()
        raise ValidationError(f"Booking {code} changed while rescheduling, retry")

    free_slots(db, old_ids, booking_id, now)
    # freed slots must read as available to the run selection below
    db.expire_all()

    try:
        slot = db.get(Slots, new_slot_id)
        if slot is None:
            raise SlotUnavailable(f"Slot {new_slot_id} not found", slot_id=new_slot_id)
        run = select_slot_run(db, slot, required, requested, now)
    except BookingError:
        db.rollback()
        raise

    slot_status = "confirmed" if observed_status == "confirmed" else config.reservation_status
    claim_run(db, run, booking_id, slot_status, now)
    linked = [s.id for s in run[1:]]
    db.execute(
        update(Bookings)
        .where(Bookings.id == booking_id)
        .values(
            nail_tech_id=slot.nail_tech_id,
            slot_id=slot.id,
            paired_slot_id=linked[0] if linked else None,
            linked_slot_ids=linked,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()

    booking = get_booking(db, booking_id)
    db.refresh(booking)
    logger.info(f"Booking {code} rescheduled: slots {old_ids} → {booking.slot_ids}")
    if events:
        events.emit("booking_rescheduled", {
            "booking_id": booking_id,
            "booking_code": code,
            "old_slot_ids": old_ids,
            "slot_ids": booking.slot_ids,
        })
    return booking
