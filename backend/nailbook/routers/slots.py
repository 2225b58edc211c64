# backend/nailbook/routers/slots.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..redis_client import get_redis
from ..schemas.slots import SlotCreate, SlotRead, SlotUpdate
from ..services.bookings.sweeper import maybe_release_on_listing
from ..services.events import get_events
from ..services.slots import store
from ..services.slots.availability import list_available_slots

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/available", response_model=list[SlotRead])
def available_slots(
    nail_tech_id: Optional[int] = Query(None),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
    redis=Depends(get_redis),
    events=Depends(get_events),
):
    maybe_release_on_listing(db, redis, events=events)
    return list_available_slots(db, nail_tech_id, start_date, end_date)


@router.get("/", response_model=list[SlotRead])
def list_slots(
    nail_tech_id: Optional[int] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return store.list_slots(db, nail_tech_id, start_date, end_date, status)


@router.get("/{id}", response_model=SlotRead)
def get_slot(id: int, db: Session = Depends(get_db)):
    obj = store.get_slot(db, id)
    if not obj:
        raise HTTPException(status_code=404, detail="Not found")
    return obj


@router.post("/", response_model=SlotRead, status_code=status.HTTP_201_CREATED)
def create_slot(data: SlotCreate, db: Session = Depends(get_db)):
    return store.create_slot(db, **data.model_dump())


@router.patch("/{id}", response_model=SlotRead)
def update_slot(id: int, data: SlotUpdate, db: Session = Depends(get_db)):
    return store.update_slot(db, id, data.model_dump(exclude_unset=True))


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(id: int, db: Session = Depends(get_db)):
    store.delete_slot(db, id)
