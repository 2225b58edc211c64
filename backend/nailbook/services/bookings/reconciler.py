# backend/nailbook/services/bookings/reconciler.py
"""
Form reconciliation: applies an intake-form submission to the booking it
names.

A submission is identified by its source row reference, so replaying the
same row is a no-op. The booking is updated with one conditional UPDATE on
the status that was read; if the sweeper released the booking in the
meantime the update matches nothing and the submission is reported as not
processed instead of reviving a released booking.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from ...config import Settings, settings as default_settings
from ...models.entities import Bookings, Customers
from ..clock import local_now, to_timestamp
from ..customers import (
    EMAIL_KEYS,
    determine_client_type,
    extract_customer_info,
    find_or_create_customer,
)
from ..slots.config import BookingConfig, get_booking_config
from ..slots.store import confirm_slots, get_slots_by_ids
from .form_fields import extract_appointment
from .ledger import get_booking_by_code

logger = logging.getLogger(__name__)


@dataclass
class FormRecord:
    """One form submission: the booking it names and its answers."""
    booking_code: str
    fields: dict
    field_order: list[str] = field(default_factory=list)
    row_reference: Optional[str] = None


@dataclass
class SyncReport:
    processed: int = 0
    skipped: int = 0
    failed: list[dict] = field(default_factory=list)


def has_answers(field_map: Optional[dict]) -> bool:
    return bool(field_map) and any(str(v).strip() for v in field_map.values() if v is not None)


def _check_schedule_drift(db: Session, booking: Bookings, field_map: dict, s: Settings) -> tuple[bool, bool, list[str]]:
    """Compare the appointment written on the form with the booked slots."""
    form_date, form_time = extract_appointment(
        field_map,
        date_keys=(s.google_form_date_entry,),
        time_keys=(s.google_form_time_entry,),
    )
    slots = get_slots_by_ids(db, booking.slot_ids)
    if not slots:
        return False, False, []

    warnings = []
    date_changed = bool(form_date) and form_date != slots[0].date
    time_changed = bool(form_time) and form_time not in {sl.time for sl in slots}
    if date_changed:
        warnings.append(f"Form date {form_date} differs from booked date {slots[0].date}")
    if time_changed:
        warnings.append(f"Form time {form_time} differs from booked time {slots[0].time}")
    return date_changed, time_changed, warnings


def apply_saved_email(customer: Customers, field_map: dict) -> dict:
    """Replace email answers with the address already on file."""
    if not customer.email:
        return dict(field_map)
    return {
        k: (customer.email if k.strip().lower().rstrip("?.:") in EMAIL_KEYS else v)
        for k, v in field_map.items()
    }


def sync_booking_with_form(
    db: Session,
    booking_code: str,
    field_map: dict,
    field_order: Optional[list[str]] = None,
    source_row_reference: Optional[str] = None,
    config: Optional[BookingConfig] = None,
    settings: Optional[Settings] = None,
    events=None,
    now: Optional[datetime] = None,
) -> Optional[Bookings]:
    """
    Apply a form submission to a booking.

    Returns the updated booking, or None when the submission was not
    processed: unknown code, row already applied, empty answers, or the
    booking was cancelled/released (possibly concurrently).
    """
    config = config or get_booking_config()
    s = settings or default_settings
    now = now or local_now()

    booking = get_booking_by_code(db, booking_code, config)
    if booking is None:
        logger.warning(f"Form submission for unknown booking code {booking_code!r}")
        return None
    if source_row_reference and booking.form_response_id == source_row_reference:
        logger.info(f"Form row {source_row_reference} already applied to {booking.booking_code}")
        return None
    if not has_answers(field_map):
        logger.warning(f"Empty form submission for {booking.booking_code}, skipped")
        return None
    if booking.status == "cancelled":
        logger.warning(f"Form submission for cancelled booking {booking.booking_code}, skipped")
        return None

    observed_status = booking.status
    date_changed, time_changed, warnings = _check_schedule_drift(db, booking, field_map, s)
    for w in warnings:
        logger.warning(f"{booking.booking_code}: {w}")

    if booking.customer_id:
        customer = db.get(Customers, booking.customer_id)
    else:
        customer = None
    if customer is None:
        customer = find_or_create_customer(db, extract_customer_info(field_map), now)

    new_status = config.synced_status if observed_status == "pending_form" else observed_status
    stmt = (
        update(Bookings)
        .where(Bookings.id == booking.id, Bookings.status == observed_status)
        .values(
            status=new_status,
            customer_id=customer.id,
            customer_data=apply_saved_email(customer, field_map),
            customer_data_order=list(field_order or field_map.keys()),
            form_response_id=source_row_reference,
            form_synced=1,
            client_type=determine_client_type(db, customer, exclude_booking_id=booking.id),
            date_changed=int(date_changed),
            time_changed=int(time_changed),
            validation_warnings=warnings or None,
            updated_at=to_timestamp(now),
        )
        .execution_options(synchronize_session=False)
    )
    if source_row_reference:
        stmt = stmt.where(or_(
            Bookings.form_response_id.is_(None),
            Bookings.form_response_id != source_row_reference,
        ))

    if db.execute(stmt).rowcount != 1:
        db.rollback()
        logger.warning(
            f"Booking {booking.booking_code} changed while syncing form (was {observed_status}), skipped"
        )
        return None
    if new_status == "confirmed":
        confirm_slots(db, booking.slot_ids, booking.id, now)
    db.commit()
    db.refresh(booking)

    logger.info(f"Booking {booking.booking_code} synced with form: {observed_status} → {new_status}")
    if events:
        events.emit("booking_form_synced", {
            "booking_id": booking.id,
            "booking_code": booking.booking_code,
            "status": new_status,
            "date_changed": bool(date_changed),
            "time_changed": bool(time_changed),
        })
        if new_status == "confirmed" and observed_status != "confirmed":
            events.emit("booking_confirmed", {"booking_id": booking.id, "booking_code": booking.booking_code})
    return booking


def sync_form_records(
    db: Session,
    records: list[FormRecord],
    config: Optional[BookingConfig] = None,
    settings: Optional[Settings] = None,
    events=None,
    now: Optional[datetime] = None,
) -> SyncReport:
    """Run the reconciler over many submissions; one bad row never stops the batch."""
    report = SyncReport()
    for record in records:
        try:
            result = sync_booking_with_form(
                db,
                record.booking_code,
                record.fields,
                field_order=record.field_order,
                source_row_reference=record.row_reference,
                config=config,
                settings=settings,
                events=events,
                now=now,
            )
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to sync form row {record.row_reference} ({record.booking_code})")
            report.failed.append({
                "booking_code": record.booking_code,
                "row_reference": record.row_reference,
                "error": str(e),
            })
            continue
        if result is None:
            report.skipped += 1
        else:
            report.processed += 1
    logger.info(f"Form sync: processed={report.processed} skipped={report.skipped} failed={len(report.failed)}")
    return report
