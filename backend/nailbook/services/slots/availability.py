# backend/nailbook/services/slots/availability.py
"""
Availability reads.

A slot is bookable when it is available, not hidden, not blocked and not in
the past. Availability is always read straight from the database: nothing
here is cached, so a slot reserved a moment ago is never offered again.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models.entities import Slots
from ..clock import local_now
from .calendar import find_block, list_blocked_dates


def is_past(slot: Slots, now: datetime) -> bool:
    today = now.strftime("%Y-%m-%d")
    if slot.date != today:
        return slot.date < today
    return slot.time <= now.strftime("%H:%M")


def unavailable_reason(slot: Slots, blocks: list, now: datetime) -> Optional[str]:
    """Why a slot cannot be booked, or None if it can."""
    if slot.status != "available" or slot.held_by_booking_id is not None:
        return f"slot is {slot.status}"
    if slot.is_hidden:
        return "slot is hidden"
    if is_past(slot, now):
        return "slot is in the past"
    if find_block(slot.date, blocks):
        return "date is blocked"
    return None


def list_available_slots(
    db: Session,
    nail_tech_id: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[Slots]:
    """Bookable slots, ordered by (date, time)."""
    now = now or local_now()
    today = now.strftime("%Y-%m-%d")
    start_date = max(start_date or today, today)

    q = db.query(Slots).filter(
        Slots.status == "available",
        Slots.held_by_booking_id.is_(None),
        Slots.is_hidden == 0,
        Slots.date >= start_date,
    )
    if end_date:
        q = q.filter(Slots.date <= end_date)
    if nail_tech_id is not None:
        q = q.filter(Slots.nail_tech_id == nail_tech_id)

    blocks = list_blocked_dates(db, start_date, end_date)
    return [
        s for s in q.order_by(Slots.date, Slots.time, Slots.nail_tech_id).all()
        if not is_past(s, now) and not find_block(s.date, blocks)
    ]


def following_slots(day: list[Slots], slot: Slots, count: int) -> list[Slots]:
    """
    The ``count`` slots immediately after ``slot`` in a staff member's day
    ordering (fewer if the day ends first). No skipping.
    """
    ids = [s.id for s in day]
    idx = ids.index(slot.id)
    return day[idx + 1: idx + 1 + count]
