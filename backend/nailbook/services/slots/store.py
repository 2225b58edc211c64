# backend/nailbook/services/slots/store.py
"""
Slot store: CRUD for slots and the conditional writes that move a slot
between available / pending / confirmed.

Every status write is a single UPDATE guarded by the expected current state
(compare-and-swap). Callers check the returned row count instead of trusting
a value read earlier, so two concurrent writers can never both win a slot.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.entities import Slots
from ..clock import local_now, to_timestamp
from ..errors import NotFound, SlotUnavailable, ValidationError
from .calendar import ensure_date_not_blocked
from .config import time_str_to_minutes

logger = logging.getLogger(__name__)

SLOT_STATUSES = ("available", "pending", "confirmed")
SLOT_TYPES = ("regular", "with_squeeze_fee")


# ──────────────────────────────────────────────────────────────────────────────
# Reads
# ──────────────────────────────────────────────────────────────────────────────

def get_slot(db: Session, slot_id: int) -> Optional[Slots]:
    return db.get(Slots, slot_id)


def get_slots_by_ids(db: Session, slot_ids: Iterable[int]) -> list[Slots]:
    """Slots for the given ids, in the given order; missing ids are skipped."""
    ids = [i for i in slot_ids if i is not None]
    if not ids:
        return []
    by_id = {s.id: s for s in db.query(Slots).filter(Slots.id.in_(ids)).all()}
    return [by_id[i] for i in ids if i in by_id]


def list_slots(
    db: Session,
    nail_tech_id: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    status: Optional[str] = None,
) -> list[Slots]:
    q = db.query(Slots)
    if nail_tech_id is not None:
        q = q.filter(Slots.nail_tech_id == nail_tech_id)
    if start_date:
        q = q.filter(Slots.date >= start_date)
    if end_date:
        q = q.filter(Slots.date <= end_date)
    if status:
        q = q.filter(Slots.status == status)
    return q.order_by(Slots.date, Slots.time, Slots.nail_tech_id).all()


def day_ordering(db: Session, nail_tech_id: int, date_str: str) -> list[Slots]:
    """All of one staff member's slots on a date, ordered by time."""
    slots = (
        db.query(Slots)
        .filter(Slots.nail_tech_id == nail_tech_id, Slots.date == date_str)
        .all()
    )
    return sorted(slots, key=lambda s: time_str_to_minutes(s.time))


def find_live_slot(db: Session, nail_tech_id: int, date_str: str, time_str: str) -> Optional[Slots]:
    return (
        db.query(Slots)
        .filter(
            Slots.nail_tech_id == nail_tech_id,
            Slots.date == date_str,
            Slots.time == time_str,
        )
        .first()
    )


# ──────────────────────────────────────────────────────────────────────────────
# Admin CRUD
# ──────────────────────────────────────────────────────────────────────────────

def create_slot(
    db: Session,
    nail_tech_id: int,
    date: str,
    time: str,
    slot_type: str = "regular",
    is_hidden: bool = False,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Slots:
    if slot_type not in SLOT_TYPES:
        raise ValidationError(f"Unknown slot type: {slot_type}")
    ensure_date_not_blocked(db, date)
    if find_live_slot(db, nail_tech_id, date, time):
        raise ValidationError(f"Slot {date} {time} already exists for nail tech {nail_tech_id}")

    ts = to_timestamp(now or local_now())
    slot = Slots(
        nail_tech_id=nail_tech_id,
        date=date,
        time=time,
        status="available",
        slot_type=slot_type,
        is_hidden=int(is_hidden),
        notes=notes,
        created_at=ts,
        updated_at=ts,
    )
    db.add(slot)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError(f"Slot {date} {time} already exists for nail tech {nail_tech_id}")
    db.refresh(slot)
    return slot


def update_slot(db: Session, slot_id: int, changes: dict, now: Optional[datetime] = None) -> Slots:
    """
    Admin edit. Notes, slot type and visibility can always change; date and
    time only while the slot is not held by a booking.
    """
    slot = db.get(Slots, slot_id)
    if not slot:
        raise NotFound(f"Slot {slot_id} not found")

    moves = {k: v for k, v in changes.items() if k in ("date", "time") and v is not None}
    if moves:
        if slot.status != "available" or slot.held_by_booking_id is not None:
            raise SlotUnavailable(f"Slot {slot_id} is reserved and cannot be moved")
        new_date = moves.get("date", slot.date)
        new_time = moves.get("time", slot.time)
        ensure_date_not_blocked(db, new_date)
        clash = find_live_slot(db, slot.nail_tech_id, new_date, new_time)
        if clash and clash.id != slot.id:
            raise ValidationError(f"Slot {new_date} {new_time} already exists")
        slot.date, slot.time = new_date, new_time

    if changes.get("slot_type") is not None:
        if changes["slot_type"] not in SLOT_TYPES:
            raise ValidationError(f"Unknown slot type: {changes['slot_type']}")
        slot.slot_type = changes["slot_type"]
    if changes.get("is_hidden") is not None:
        slot.is_hidden = int(changes["is_hidden"])
    if "notes" in changes:
        slot.notes = changes["notes"]

    slot.updated_at = to_timestamp(now or local_now())
    db.commit()
    db.refresh(slot)
    return slot


def delete_slot(db: Session, slot_id: int) -> None:
    slot = db.get(Slots, slot_id)
    if not slot:
        raise NotFound(f"Slot {slot_id} not found")
    if slot.held_by_booking_id is not None:
        logger.warning(
            f"Deleting slot {slot_id} ({slot.date} {slot.time}) held by booking {slot.held_by_booking_id}"
        )
    db.delete(slot)
    db.commit()


def delete_expired_slots(db: Session, today: Optional[str] = None) -> int:
    """Delete past slots nobody booked. Returns number deleted."""
    today = today or local_now().strftime("%Y-%m-%d")
    deleted = (
        db.query(Slots)
        .filter(Slots.date < today, Slots.status == "available")
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info(f"Deleted {deleted} expired slots before {today}")
    return deleted


# ──────────────────────────────────────────────────────────────────────────────
# Conditional status writes
# ──────────────────────────────────────────────────────────────────────────────

def reserve_slot(db: Session, slot_id: int, booking_id: int, status: str, now: datetime) -> bool:
    """
    Flip one slot from available to ``status`` on behalf of a booking.

    Returns False when the slot was no longer available (or hidden) at write
    time. Does not commit.
    """
    result = db.execute(
        update(Slots)
        .where(
            Slots.id == slot_id,
            Slots.status == "available",
            Slots.is_hidden == 0,
            Slots.held_by_booking_id.is_(None),
        )
        .values(status=status, held_by_booking_id=booking_id, updated_at=to_timestamp(now))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def confirm_slots(db: Session, slot_ids: Iterable[int], booking_id: int, now: datetime) -> int:
    """Mark slots held by ``booking_id`` confirmed. Does not commit."""
    ids = [i for i in slot_ids if i is not None]
    if not ids:
        return 0
    result = db.execute(
        update(Slots)
        .where(
            Slots.id.in_(ids),
            Slots.held_by_booking_id == booking_id,
            Slots.status.in_(("pending", "confirmed")),
        )
        .values(status="confirmed", updated_at=to_timestamp(now))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def free_slots(db: Session, slot_ids: Iterable[int], booking_id: int, now: datetime) -> int:
    """
    Return slots held by ``booking_id`` to available. Slots that were
    re-booked by someone else are left alone. Does not commit.
    """
    ids = [i for i in slot_ids if i is not None]
    if not ids:
        return 0
    result = db.execute(
        update(Slots)
        .where(
            Slots.id.in_(ids),
            Slots.held_by_booking_id == booking_id,
        )
        .values(status="available", held_by_booking_id=None, updated_at=to_timestamp(now))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
