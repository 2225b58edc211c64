# backend/nailbook/routers/blocked_dates.py

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.blocked_dates import BlockedDateCreate, BlockedDateRead, BlockedDateUpdate
from ..services.slots import calendar

router = APIRouter(prefix="/blocked_dates", tags=["blocked_dates"])


@router.get("/", response_model=list[BlockedDateRead])
def list_blocked_dates(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return calendar.list_blocked_dates(db, start_date, end_date)


@router.post("/", response_model=BlockedDateRead, status_code=status.HTTP_201_CREATED)
def create_blocked_date(data: BlockedDateCreate, db: Session = Depends(get_db)):
    return calendar.create_blocked_date(db, **data.model_dump())


@router.patch("/{id}", response_model=BlockedDateRead)
def update_blocked_date(id: int, data: BlockedDateUpdate, db: Session = Depends(get_db)):
    return calendar.update_blocked_date(db, id, data.model_dump(exclude_unset=True))


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_blocked_date(id: int, db: Session = Depends(get_db)):
    calendar.delete_blocked_date(db, id)
