# backend/nailbook/schemas/blocked_dates.py

from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from ._validators import check_date


class BlockedDateCreate(BaseModel):
    start_date: str
    end_date: Optional[str] = None
    scope: Literal["single", "range", "month"] = "single"
    reason: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_dates(cls, v: Optional[str]) -> Optional[str]:
        return check_date(v)


class BlockedDateUpdate(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    scope: Optional[Literal["single", "range", "month"]] = None
    reason: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_dates(cls, v: Optional[str]) -> Optional[str]:
        return check_date(v)


class BlockedDateRead(BaseModel):
    id: int
    start_date: str
    end_date: str
    scope: str
    reason: Optional[str] = None
    created_at: str

    model_config = {"from_attributes": True}
