# backend/nailbook/routers/bookings.py
# Literal paths (/release, /recover, ...) are declared before /{id}.

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.entities import Bookings, Customers
from ..schemas.bookings import (
    BookingCancel,
    BookingCreate,
    BookingCreated,
    BookingDetail,
    BookingRead,
    BookingReschedule,
    FormSubmission,
    FormSyncResponse,
    RecoverFromFormRequest,
    RecoverRequest,
    RecoveryRead,
    ReleaseExpiredRequest,
    ReleaseRequest,
    ReleaseResponse,
    RestoreReportRead,
)
from ..schemas.slots import SlotRead
from ..services.bookings import allocator, ledger, reconciler, recovery, sweeper
from ..services.events import get_events
from ..services.google_forms import build_prefilled_form_url
from ..services.slots.store import get_slots_by_ids

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _detail(view: ledger.BookingView) -> BookingDetail:
    return BookingDetail(
        booking=BookingRead.model_validate(view.booking),
        slot=SlotRead.model_validate(view.slot) if view.slot else None,
        linked_slots=[SlotRead.model_validate(s) for s in view.linked_slots],
        customer_name=view.customer_name,
    )


def _form_url(db: Session, booking) -> Optional[str]:
    customer = db.get(Customers, booking.customer_id) if booking.customer_id else None
    return build_prefilled_form_url(booking, get_slots_by_ids(db, booking.slot_ids), customer)


@router.get("/", response_model=list[BookingDetail])
def list_bookings(
    status: Optional[str] = Query(None),
    include_released: bool = Query(False),
    db: Session = Depends(get_db),
):
    return [_detail(v) for v in ledger.list_bookings(db, status, include_released)]


@router.post("/", response_model=BookingCreated, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
    events=Depends(get_events),
):
    booking = allocator.create_booking(db, events=events, **data.model_dump())
    return BookingCreated(booking=BookingRead.model_validate(booking), form_url=_form_url(db, booking))


# ──────────────────────────────────────────────────────────────────────────────
# Form sync
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/sync-form", response_model=FormSyncResponse)
def sync_form(
    data: FormSubmission,
    db: Session = Depends(get_db),
    events=Depends(get_events),
):
    booking = reconciler.sync_booking_with_form(
        db,
        data.booking_code,
        data.fields,
        field_order=data.field_order,
        source_row_reference=data.row_reference,
        events=events,
    )
    if booking is None:
        return FormSyncResponse(processed=False)
    return FormSyncResponse(processed=True, booking=BookingRead.model_validate(booking))


# ──────────────────────────────────────────────────────────────────────────────
# Release
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/release", response_model=list[BookingDetail])
def eligible_for_release(db: Session = Depends(get_db)):
    return [_detail(v) for v in sweeper.get_eligible_bookings_for_release(db)]


@router.post("/release", response_model=ReleaseResponse)
def release_bookings(
    data: ReleaseRequest,
    db: Session = Depends(get_db),
    events=Depends(get_events),
):
    return sweeper.manually_release_bookings(db, data.booking_ids, events=events)


@router.post("/release-expired", response_model=ReleaseResponse)
def release_expired(
    data: ReleaseExpiredRequest,
    db: Session = Depends(get_db),
    events=Depends(get_events),
):
    return sweeper.release_expired_pending_bookings(db, data.threshold_minutes, events=events)


# ──────────────────────────────────────────────────────────────────────────────
# Recovery
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/recover", response_model=RecoveryRead)
def recover_booking(
    data: RecoverRequest,
    db: Session = Depends(get_db),
    events=Depends(get_events),
):
    return recovery.recover_booking(db, data.booking_code, events=events)


@router.post("/recover-from-form", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def recover_from_form(
    data: RecoverFromFormRequest,
    db: Session = Depends(get_db),
    events=Depends(get_events),
):
    return recovery.recover_booking_from_form(
        db,
        data.booking_code,
        data.slot_id,
        data.fields,
        field_order=data.field_order,
        source_row_reference=data.row_reference,
        service_type=data.service_type,
        linked_slot_ids=data.linked_slot_ids,
        service_location=data.service_location,
        events=events,
    )


@router.post("/restore-slots", response_model=RestoreReportRead)
def restore_slots(db: Session = Depends(get_db), events=Depends(get_events)):
    report = recovery.restore_missing_slots(db, events=events)
    return RestoreReportRead(
        total_confirmed=report.total_confirmed,
        missing=report.missing,
        restored=[RecoveryRead.model_validate(r) for r in report.restored],
        failed=[RecoveryRead.model_validate(r) for r in report.failed],
    )


# ──────────────────────────────────────────────────────────────────────────────
# Single booking
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/{id}", response_model=BookingDetail)
def get_booking(id: int, db: Session = Depends(get_db)):
    obj = db.get(Bookings, id)
    if not obj:
        raise HTTPException(status_code=404, detail="Not found")
    return _detail(ledger.build_view(db, obj))


@router.get("/{id}/form-url")
def get_form_url(id: int, db: Session = Depends(get_db)):
    booking = ledger.get_booking(db, id)
    return {"booking_code": booking.booking_code, "form_url": _form_url(db, booking)}


@router.post("/{id}/confirm", response_model=BookingRead)
def confirm_booking(id: int, db: Session = Depends(get_db), events=Depends(get_events)):
    return ledger.confirm_booking(db, id, events=events)


@router.post("/{id}/reschedule", response_model=BookingRead)
def reschedule_booking(
    id: int,
    data: BookingReschedule,
    db: Session = Depends(get_db),
    events=Depends(get_events),
):
    return allocator.reschedule_booking(db, id, data.slot_id, data.linked_slot_ids, events=events)


@router.post("/{id}/cancel", response_model=BookingRead)
def cancel_booking(
    id: int,
    data: BookingCancel,
    db: Session = Depends(get_db),
    events=Depends(get_events),
):
    return ledger.cancel_booking(db, id, data.reason, events=events)
