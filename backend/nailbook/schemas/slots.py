# backend/nailbook/schemas/slots.py

from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from ._validators import check_date, check_time


class SlotCreate(BaseModel):
    nail_tech_id: int
    date: str
    time: str
    slot_type: Literal["regular", "with_squeeze_fee"] = "regular"
    is_hidden: bool = False
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: str) -> str:
        return check_date(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return check_time(v)


class SlotUpdate(BaseModel):
    date: Optional[str] = None
    time: Optional[str] = None
    slot_type: Optional[Literal["regular", "with_squeeze_fee"]] = None
    is_hidden: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: Optional[str]) -> Optional[str]:
        return check_date(v)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        return check_time(v)


class SlotRead(BaseModel):
    id: int
    nail_tech_id: int
    date: str
    time: str
    status: str
    slot_type: str
    is_hidden: bool
    notes: Optional[str] = None
    held_by_booking_id: Optional[int] = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}
