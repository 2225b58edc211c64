# backend/nailbook/services/bookings/recovery.py
"""
Slot recovery for bookings whose primary slot record has disappeared.

When a booking references a slot id that no longer exists, the slot's date
and time are inferred from the evidence left behind, tried in order:

1. form_data:             appointment date/time written on the intake form
2. linked_slots:          the grid time right before the earliest surviving linked slot
3. nearest_confirmed_day: confirmed slots of the same staff nearest the booking's creation (bulk only)

The slot is then recreated under its original id, confirmed and held by the
booking. Re-running finds it and reports "found". Nothing is created when
the evidence is insufficient; the result explains what was tried.

The opposite case, a booking record that is gone while its form answers
survive in the response sheet, is handled by ``recover_booking_from_form``:
the booking is rebuilt under its original code against a chosen slot.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import Settings, settings as default_settings
from ...models.entities import Bookings, Slots
from ..clock import local_now, parse_timestamp, to_timestamp
from ..customers import determine_client_type, extract_customer_info, find_or_create_customer
from ..errors import NotFound, SlotUnavailable, ValidationError
from ..slots.config import BookingConfig, get_booking_config, time_str_to_minutes
from ..slots.store import day_ordering, find_live_slot, get_slots_by_ids
from .allocator import SERVICE_LOCATIONS, claim_run, requested_linked_ids, select_slot_run
from .form_fields import extract_appointment
from .ledger import get_booking_by_code, normalize_booking_code
from .reconciler import apply_saved_email, has_answers

logger = logging.getLogger(__name__)

FOUND = "found"
CREATED = "created"
UNRECOVERABLE = "unrecoverable"
SKIPPED = "skipped"


@dataclass
class SlotInference:
    date: Optional[str] = None
    time: Optional[str] = None
    note: str = ""


@dataclass
class RecoveryResult:
    booking_id: int
    booking_code: str
    slot_id: Optional[int]
    action: str
    date: Optional[str] = None
    time: Optional[str] = None
    date_source: Optional[str] = None
    time_source: Optional[str] = None
    diagnostics: list[str] = field(default_factory=list)


@dataclass
class RestoreReport:
    total_confirmed: int = 0
    missing: int = 0
    restored: list[RecoveryResult] = field(default_factory=list)
    failed: list[RecoveryResult] = field(default_factory=list)


# ──────────────────────────────────────────────────────────────────────────────
# Inference strategies
# ──────────────────────────────────────────────────────────────────────────────

def preceding_grid_time(
    db: Session,
    booking: Bookings,
    date_str: str,
    before_time: str,
    config: BookingConfig,
) -> Optional[str]:
    """
    Latest candidate time strictly before ``before_time`` on ``date_str``.

    Candidates are the salon grid plus every time the staff member already
    has on that day. Returns None if that time is taken by another slot.
    """
    day = day_ordering(db, booking.nail_tech_id, date_str)
    candidates = set(config.slot_times) | {s.time for s in day}
    limit = time_str_to_minutes(before_time)
    earlier = sorted(
        (t for t in candidates if time_str_to_minutes(t) < limit),
        key=time_str_to_minutes,
    )
    if not earlier:
        return None
    chosen = earlier[-1]
    occupant = next((s for s in day if s.time == chosen), None)
    if occupant is not None and occupant.held_by_booking_id != booking.id:
        return None
    return chosen


class FormDataStrategy:
    name = "form_data"

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    def infer(self, db: Session, booking: Bookings, config: BookingConfig) -> Optional[SlotInference]:
        if not booking.customer_data:
            return None
        date_str, time_str = extract_appointment(
            booking.customer_data,
            date_keys=(self.settings.google_form_date_entry,),
            time_keys=(self.settings.google_form_time_entry,),
        )
        if not date_str and not time_str:
            return None
        return SlotInference(date=date_str, time=time_str, note="parsed from form answers")


class LinkedSlotStrategy:
    name = "linked_slots"

    def infer(self, db: Session, booking: Bookings, config: BookingConfig) -> Optional[SlotInference]:
        linked = get_slots_by_ids(db, booking.slot_ids[1:])
        if not linked:
            return None
        earliest = min(linked, key=lambda s: (s.date, time_str_to_minutes(s.time)))
        time_str = preceding_grid_time(db, booking, earliest.date, earliest.time, config)
        return SlotInference(
            date=earliest.date,
            time=time_str,
            note=f"linked slot {earliest.id} at {earliest.date} {earliest.time}"
            + ("" if time_str else "; no free grid time before it"),
        )


class NearestConfirmedDayStrategy:
    name = "nearest_confirmed_day"

    def infer(self, db: Session, booking: Bookings, config: BookingConfig) -> Optional[SlotInference]:
        created = parse_timestamp(booking.created_at)
        if created is None:
            return None
        confirmed = (
            db.query(Slots)
            .filter(Slots.nail_tech_id == booking.nail_tech_id, Slots.status == "confirmed")
            .all()
        )
        if not confirmed:
            return None
        created_date = created.date()
        nearest = min(
            {s.date for s in confirmed},
            key=lambda d: (abs((datetime.strptime(d, "%Y-%m-%d").date() - created_date).days), d),
        )
        earliest = min(
            (s for s in confirmed if s.date == nearest),
            key=lambda s: time_str_to_minutes(s.time),
        )
        return SlotInference(
            date=nearest,
            time=preceding_grid_time(db, booking, nearest, earliest.time, config),
            note=f"confirmed slots on {nearest} nearest to creation date {created_date}",
        )


def default_strategies(bulk: bool = False, settings: Optional[Settings] = None) -> list:
    strategies = [FormDataStrategy(settings), LinkedSlotStrategy()]
    if bulk:
        strategies.append(NearestConfirmedDayStrategy())
    return strategies


def infer_slot(
    db: Session,
    booking: Bookings,
    strategies: list,
    config: BookingConfig,
    result: RecoveryResult,
) -> None:
    """Fill date/time on ``result`` from the first strategies that know them."""
    for strategy in strategies:
        inference = strategy.infer(db, booking, config)
        if inference is None:
            result.diagnostics.append(f"{strategy.name}: no evidence")
            continue
        result.diagnostics.append(f"{strategy.name}: {inference.note}")
        if result.date is None and inference.date:
            result.date, result.date_source = inference.date, strategy.name
        if result.time is None and inference.time:
            result.time, result.time_source = inference.time, strategy.name
        if result.date and result.time:
            return


# ──────────────────────────────────────────────────────────────────────────────
# Recovery
# ──────────────────────────────────────────────────────────────────────────────

def recover_slot_for_booking(
    db: Session,
    booking: Bookings,
    strategies: list,
    config: BookingConfig,
    events=None,
    now: Optional[datetime] = None,
) -> RecoveryResult:
    result = RecoveryResult(
        booking_id=booking.id,
        booking_code=booking.booking_code,
        slot_id=booking.slot_id,
        action=UNRECOVERABLE,
    )
    if booking.slot_id is None:
        result.diagnostics.append("booking references no slot")
        return result
    existing = db.get(Slots, booking.slot_id)
    if existing is not None:
        result.action = FOUND
        result.date, result.time = existing.date, existing.time
        return result
    if booking.status == "cancelled":
        result.action = SKIPPED
        result.diagnostics.append("booking is cancelled")
        return result

    infer_slot(db, booking, strategies, config, result)
    if not result.date or not result.time:
        missing = " and ".join(p for p, v in (("date", result.date), ("time", result.time)) if not v)
        result.diagnostics.append(f"could not determine {missing}")
        logger.warning(f"Slot {booking.slot_id} of {booking.booking_code} unrecoverable: {result.diagnostics}")
        return result

    clash = find_live_slot(db, booking.nail_tech_id, result.date, result.time)
    if clash is not None:
        result.diagnostics.append(f"slot {clash.id} already occupies {result.date} {result.time}")
        return result

    created = parse_timestamp(booking.created_at) or (now or local_now())
    updated = parse_timestamp(booking.updated_at) or created
    status = "confirmed" if booking.status == "confirmed" else config.reservation_status
    db.add(Slots(
        id=booking.slot_id,
        nail_tech_id=booking.nail_tech_id,
        date=result.date,
        time=result.time,
        status=status,
        slot_type="regular",
        is_hidden=0,
        held_by_booking_id=booking.id,
        created_at=to_timestamp(created),
        updated_at=to_timestamp(updated),
    ))
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        result.diagnostics.append(f"could not recreate slot: {e.orig}")
        return result

    result.action = CREATED
    logger.info(
        f"Restored slot {booking.slot_id} for {booking.booking_code} at {result.date} {result.time} "
        f"(date from {result.date_source}, time from {result.time_source})"
    )
    if events:
        events.emit("slot_restored", {
            "booking_id": booking.id,
            "booking_code": booking.booking_code,
            "slot_id": booking.slot_id,
            "date": result.date,
            "time": result.time,
        })
    return result


def recover_booking(
    db: Session,
    booking_code: str,
    config: Optional[BookingConfig] = None,
    settings: Optional[Settings] = None,
    events=None,
    now: Optional[datetime] = None,
) -> RecoveryResult:
    """Recover the primary slot of one booking."""
    config = config or get_booking_config()
    booking = get_booking_by_code(db, booking_code, config)
    if booking is None:
        raise NotFound(f"Booking {booking_code} not found")
    return recover_slot_for_booking(
        db, booking, default_strategies(settings=settings), config, events=events, now=now,
    )


def restore_missing_slots(
    db: Session,
    config: Optional[BookingConfig] = None,
    settings: Optional[Settings] = None,
    events=None,
    now: Optional[datetime] = None,
) -> RestoreReport:
    """Recreate missing primary slots for every confirmed booking. Safe to re-run."""
    config = config or get_booking_config()
    strategies = default_strategies(bulk=True, settings=settings)
    report = RestoreReport()

    confirmed = db.query(Bookings).filter(Bookings.status == "confirmed").order_by(Bookings.id).all()
    report.total_confirmed = len(confirmed)
    existing_ids = {
        sid for (sid,) in db.query(Slots.id).filter(
            Slots.id.in_([b.slot_id for b in confirmed if b.slot_id is not None])
        ).all()
    }
    missing = [b for b in confirmed if b.slot_id not in existing_ids]
    report.missing = len(missing)

    for booking in missing:
        booking_id, code, slot_id = booking.id, booking.booking_code, booking.slot_id
        try:
            result = recover_slot_for_booking(db, booking, strategies, config, events=events, now=now)
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to restore slot for {code}")
            result = RecoveryResult(
                booking_id=booking_id,
                booking_code=code,
                slot_id=slot_id,
                action=UNRECOVERABLE,
                diagnostics=[str(e)],
            )
        if result.action in (CREATED, FOUND):
            report.restored.append(result)
        else:
            report.failed.append(result)

    logger.info(
        f"Restore: confirmed={report.total_confirmed} missing={report.missing} "
        f"restored={len(report.restored)} failed={len(report.failed)}"
    )
    return report


# ──────────────────────────────────────────────────────────────────────────────
# Booking rebuild from form answers
# ──────────────────────────────────────────────────────────────────────────────

def recover_booking_from_form(
    db: Session,
    booking_code: str,
    slot_id: int,
    field_map: dict,
    field_order: Optional[list[str]] = None,
    source_row_reference: Optional[str] = None,
    service_type: str = "manicure",
    linked_slot_ids: Optional[list[int]] = None,
    service_location: Optional[str] = None,
    config: Optional[BookingConfig] = None,
    events=None,
    now: Optional[datetime] = None,
) -> Bookings:
    """
    Rebuild a booking that was released or lost, from its form answers.

    The booking keeps ``booking_code``: a released or cancelled record with
    that code is reused, otherwise a new one is inserted. The slot run is
    chosen and claimed exactly as for a new booking, and the booking comes
    back already synced with the submitted form.

    Raises:
        ValidationError: bad options, no answers, or the code is still live
        SlotUnavailable / InsufficientConsecutiveSlots: the run is not bookable
    """
    config = config or get_booking_config()
    now = now or local_now()

    code = normalize_booking_code(booking_code, config)
    if not code:
        raise ValidationError("Booking code is required")
    if not has_answers(field_map):
        raise ValidationError(f"No form answers to rebuild {code} from")
    try:
        required = config.required_slot_count(service_type)
    except ValueError as e:
        raise ValidationError(str(e))
    if service_location is not None and service_location not in SERVICE_LOCATIONS:
        raise ValidationError(f"Unknown service location: {service_location}")
    requested = requested_linked_ids(slot_id, required, linked_slot_ids, None)

    existing = get_booking_by_code(db, code, config)
    if existing is not None and existing.status != "cancelled":
        raise ValidationError(f"Booking {code} is {existing.status}; nothing to recover", booking_id=existing.id)

    slot = db.get(Slots, slot_id)
    if slot is None:
        raise SlotUnavailable(f"Slot {slot_id} not found", slot_id=slot_id)
    run = select_slot_run(db, slot, required, requested, now)

    customer = find_or_create_customer(db, extract_customer_info(field_map), now)
    status = config.synced_status
    slot_status = "confirmed" if status == "confirmed" else config.reservation_status
    ts = to_timestamp(now)
    linked = [s.id for s in run[1:]]
    values = dict(
        nail_tech_id=slot.nail_tech_id,
        slot_id=slot.id,
        paired_slot_id=linked[0] if linked else None,
        linked_slot_ids=linked,
        service_type=service_type,
        status=status,
        form_synced=1,
        customer_id=customer.id,
        service_location=service_location,
        form_response_id=source_row_reference,
        customer_data=apply_saved_email(customer, field_map),
        customer_data_order=list(field_order or field_map.keys()),
        date_changed=0,
        time_changed=0,
        validation_warnings=None,
        cancel_reason=None,
        released_at=None,
        updated_at=ts,
    )

    if existing is not None:
        booking_id = existing.id
        values["client_type"] = determine_client_type(db, customer, exclude_booking_id=booking_id)
        revived = db.execute(
            update(Bookings)
            .where(Bookings.id == booking_id, Bookings.status == "cancelled")
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if revived.rowcount != 1:
            db.rollback()
            raise ValidationError(f"Booking {code} changed while recovering, retry")
    else:
        values["client_type"] = determine_client_type(db, customer)
        booking = Bookings(booking_code=code, created_at=ts, **values)
        db.add(booking)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            raise ValidationError(f"Booking {code} was created concurrently, retry")
        booking_id = booking.id

    claim_run(db, run, booking_id, slot_status, now)
    db.commit()

    booking = db.get(Bookings, booking_id)
    db.refresh(booking)
    logger.info(
        f"Booking {code} rebuilt from form: {service_type} slots={booking.slot_ids} "
        f"status={status} customer={customer.id}"
    )
    if events:
        events.emit("booking_recovered", {
            "booking_id": booking_id,
            "booking_code": code,
            "slot_ids": booking.slot_ids,
            "status": status,
        })
    return booking
