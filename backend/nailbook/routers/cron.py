# backend/nailbook/routers/cron.py
"""
Periodic triggers, called by an external scheduler.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..redis_client import get_redis
from ..schemas.bookings import FormSyncReport, ReleaseResponse
from ..services.bookings.sweeper import release_expired_pending_bookings
from ..services.events import get_events
from ..services.reminder_checker import check_upcoming_bookings
from ..services.slots.store import delete_expired_slots
from .google import run_sheet_sync

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get("/release-expired", response_model=ReleaseResponse)
def release_expired(db: Session = Depends(get_db), events=Depends(get_events)):
    return release_expired_pending_bookings(db, events=events)


@router.get("/cleanup-slots")
def cleanup_slots(db: Session = Depends(get_db)):
    return {"deleted": delete_expired_slots(db)}


@router.get("/send-reminders")
def send_reminders(
    db: Session = Depends(get_db),
    redis=Depends(get_redis),
    events=Depends(get_events),
):
    return {"sent": check_upcoming_bookings(db, redis, events)}


@router.get("/sync-forms", response_model=FormSyncReport)
def sync_forms(db: Session = Depends(get_db), events=Depends(get_events)):
    return run_sheet_sync(db, events)
