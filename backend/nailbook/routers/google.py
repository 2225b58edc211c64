# backend/nailbook/routers/google.py

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.bookings import FormSyncReport
from ..services.events import get_events
from ..services.google_sheets import SheetsNotConfigured, sync_sheet_responses

router = APIRouter(prefix="/google", tags=["google"])


def run_sheet_sync(db: Session, events) -> FormSyncReport:
    try:
        report = sync_sheet_responses(db, events=events)
    except SheetsNotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e))
    return FormSyncReport(processed=report.processed, skipped=report.skipped, failed=report.failed)


@router.post("/sync", response_model=FormSyncReport)
def sync_sheet(db: Session = Depends(get_db), events=Depends(get_events)):
    return run_sheet_sync(db, events)
