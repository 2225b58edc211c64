# backend/nailbook/services/bookings/sweeper.py
"""
Release sweeper: frees slots held by bookings whose intake form never
arrived.

Candidates are found with a plain read, but every release goes through
``ledger.release_hold``, which re-checks "still pending_form and still
unsynced" inside the UPDATE itself. A booking synced between the scan and
the write is therefore skipped, never released.

Nothing here runs on a timer: callers (cron endpoint, external runner,
admin action, optional listing hook) decide when a sweep happens.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...models.entities import Bookings
from ..clock import local_now, parse_timestamp, to_timestamp
from ..slots.config import BookingConfig, get_booking_config
from .ledger import RELEASED_REASON, BookingView, build_view, release_hold

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "nailbook:sweep:listing"


@dataclass
class ReleaseResult:
    released: int = 0
    released_ids: list[int] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)


def _unsynced_pending_query(db: Session):
    return db.query(Bookings).filter(
        Bookings.status == "pending_form",
        Bookings.form_synced == 0,
        Bookings.form_response_id.is_(None),
    )


def _split_by_age(db: Session, threshold_minutes: int, now: datetime) -> tuple[list[Bookings], list[Bookings]]:
    """(expired, undated): holds older than the threshold, and holds whose age is unknown."""
    cutoff = now - timedelta(minutes=threshold_minutes)
    expired, undated = [], []
    for booking in _unsynced_pending_query(db).order_by(Bookings.created_at).all():
        created = parse_timestamp(booking.created_at)
        if created is None:
            logger.warning(f"Booking {booking.booking_code} has unreadable created_at {booking.created_at!r}")
            undated.append(booking)
        elif created < cutoff:
            expired.append(booking)
    return expired, undated


def find_expired_pending_bookings(
    db: Session,
    threshold_minutes: int,
    now: datetime,
) -> list[Bookings]:
    return _split_by_age(db, threshold_minutes, now)[0]


def get_eligible_bookings_for_release(db: Session) -> list[BookingView]:
    """Every unsynced pending_form booking, regardless of age, with slot details."""
    bookings = _unsynced_pending_query(db).order_by(Bookings.created_at, Bookings.id).all()
    return [build_view(db, b) for b in bookings]


def release_bookings(
    db: Session,
    bookings: Iterable[Bookings],
    events=None,
    now: Optional[datetime] = None,
) -> ReleaseResult:
    """Release each booking in its own transaction; failures are collected."""
    now = now or local_now()
    result = ReleaseResult()
    for booking in bookings:
        booking_id, code = booking.id, booking.booking_code
        try:
            released = release_hold(db, booking, RELEASED_REASON, now)
            if released:
                db.commit()
            else:
                db.rollback()
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to release booking {code}")
            result.failed.append({"booking_id": booking_id, "booking_code": code, "error": str(e)})
            continue

        if not released:
            logger.warning(f"Booking {code} is no longer releasable, skipped")
            result.skipped.append({
                "booking_id": booking_id,
                "booking_code": code,
                "reason": "booking is no longer pending_form or has a form submission",
            })
            continue

        result.released += 1
        result.released_ids.append(booking_id)
        if events:
            events.emit("booking_released", {"booking_id": booking_id, "booking_code": code})

    if result.released or result.failed:
        logger.info(
            f"Release sweep: released={result.released} skipped={len(result.skipped)} failed={len(result.failed)}"
        )
    return result


def release_expired_pending_bookings(
    db: Session,
    threshold_minutes: Optional[int] = None,
    config: Optional[BookingConfig] = None,
    events=None,
    now: Optional[datetime] = None,
) -> ReleaseResult:
    config = config or get_booking_config()
    now = now or local_now()
    if threshold_minutes is None:
        threshold_minutes = config.release_threshold_minutes
    expired, undated = _split_by_age(db, threshold_minutes, now)
    result = release_bookings(db, expired, events=events, now=now)
    result.skipped.extend(
        {"booking_id": b.id, "booking_code": b.booking_code, "reason": "creation time unknown"}
        for b in undated
    )
    return result


def manually_release_bookings(
    db: Session,
    booking_ids: list[int],
    events=None,
    now: Optional[datetime] = None,
) -> ReleaseResult:
    """Admin release of selected bookings. Ids that are gone or ineligible are skipped."""
    found = {b.id: b for b in db.query(Bookings).filter(Bookings.id.in_(booking_ids)).all()}
    result = ReleaseResult()
    to_release = []
    for booking_id in dict.fromkeys(booking_ids):
        booking = found.get(booking_id)
        if booking is None:
            result.skipped.append({"booking_id": booking_id, "reason": "booking not found"})
        elif booking.status != "pending_form" or booking.form_synced:
            result.skipped.append({
                "booking_id": booking_id,
                "booking_code": booking.booking_code,
                "reason": f"booking is {booking.status}",
            })
        else:
            to_release.append(booking)

    released = release_bookings(db, to_release, events=events, now=now)
    released.skipped = result.skipped + released.skipped
    return released


def maybe_release_on_listing(
    db: Session,
    redis,
    config: Optional[BookingConfig] = None,
    events=None,
    now: Optional[datetime] = None,
) -> Optional[ReleaseResult]:
    """
    Opportunistic sweep triggered by a slot listing. Disabled unless
    configured; at most one sweep per interval across all workers.
    """
    config = config or get_booking_config()
    if not config.auto_release_on_listing:
        return None
    try:
        acquired = redis.set(
            SWEEP_LOCK_KEY,
            to_timestamp(now or local_now()),
            nx=True,
            ex=config.auto_release_interval_seconds,
        )
    except Exception as e:
        logger.error(f"Sweep throttle unavailable, skipping listing sweep: {e}")
        return None
    if not acquired:
        return None
    return release_expired_pending_bookings(db, config=config, events=events, now=now)
