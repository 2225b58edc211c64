# backend/nailbook/services/slots/calendar.py
"""
Block calendar: date ranges during which no slot may be created or booked.

A date is blocked when start_date <= date <= end_date (inclusive) for any
block. Dates are YYYY-MM-DD strings, so lexical comparison is date order.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models.entities import BlockedDates
from ..clock import local_now, to_timestamp
from ..errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

SCOPES = ("single", "range", "month")


def list_blocked_dates(
    db: Session,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> list[BlockedDates]:
    """Blocks overlapping [start_date, end_date] (either bound optional)."""
    q = db.query(BlockedDates)
    if start_date:
        q = q.filter(BlockedDates.end_date >= start_date)
    if end_date:
        q = q.filter(BlockedDates.start_date <= end_date)
    return q.order_by(BlockedDates.start_date).all()


def find_block(date_str: str, blocks: list[BlockedDates]) -> Optional[BlockedDates]:
    for block in blocks:
        if block.start_date <= date_str <= block.end_date:
            return block
    return None


def is_date_blocked(db: Session, date_str: str) -> bool:
    return find_block(date_str, list_blocked_dates(db, date_str, date_str)) is not None


def slot_is_blocked(slot, blocks: list[BlockedDates]) -> bool:
    return find_block(slot.date, blocks) is not None


def ensure_date_not_blocked(db: Session, date_str: str) -> None:
    block = find_block(date_str, list_blocked_dates(db, date_str, date_str))
    if block:
        raise ValidationError(
            f"Date {date_str} is blocked ({block.start_date} to {block.end_date})",
            blocked_date_id=block.id,
        )


def _normalize_range(scope: str, start_date: str, end_date: Optional[str]) -> tuple[str, str]:
    if scope not in SCOPES:
        raise ValidationError(f"Unknown block scope: {scope}")
    if scope == "single" or not end_date:
        end_date = start_date
    if start_date > end_date:
        raise ValidationError("start_date must not be after end_date")
    return start_date, end_date


def create_blocked_date(
    db: Session,
    start_date: str,
    end_date: Optional[str] = None,
    scope: str = "single",
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BlockedDates:
    start_date, end_date = _normalize_range(scope, start_date, end_date)
    ts = to_timestamp(now or local_now())
    block = BlockedDates(
        start_date=start_date,
        end_date=end_date,
        scope=scope,
        reason=reason,
        created_at=ts,
        updated_at=ts,
    )
    db.add(block)
    db.commit()
    db.refresh(block)
    logger.info(f"Blocked {start_date}..{end_date} ({scope}): {reason or '-'}")
    return block


def update_blocked_date(db: Session, block_id: int, changes: dict, now: Optional[datetime] = None) -> BlockedDates:
    block = db.get(BlockedDates, block_id)
    if not block:
        raise NotFound(f"Blocked date {block_id} not found")

    scope = changes.get("scope", block.scope)
    start_date = changes.get("start_date", block.start_date)
    end_date = changes.get("end_date", block.end_date)
    block.start_date, block.end_date = _normalize_range(scope, start_date, end_date)
    block.scope = scope
    if "reason" in changes:
        block.reason = changes["reason"]
    block.updated_at = to_timestamp(now or local_now())
    db.commit()
    db.refresh(block)
    return block


def delete_blocked_date(db: Session, block_id: int) -> None:
    block = db.get(BlockedDates, block_id)
    if not block:
        raise NotFound(f"Blocked date {block_id} not found")
    db.delete(block)
    db.commit()
    logger.info(f"Unblocked {block.start_date}..{block.end_date}")
