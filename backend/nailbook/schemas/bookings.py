# backend/nailbook/schemas/bookings.py

from typing import Literal, Optional

from pydantic import BaseModel, Field

from .slots import SlotRead


ServiceType = Literal["manicure", "pedicure", "mani_pedi", "home_service_2slots", "home_service_3slots"]


class BookingCreate(BaseModel):
    slot_id: int
    service_type: ServiceType = "manicure"
    linked_slot_ids: Optional[list[int]] = None
    paired_slot_id: Optional[int] = None
    client_type: Optional[Literal["new", "repeat"]] = None
    service_location: Optional[Literal["homebased_studio", "home_service"]] = None
    repeat_client_identifier: Optional[str] = Field(None, description="Email or phone of a returning client")
    social_media_name: Optional[str] = None


class BookingRead(BaseModel):
    id: int
    booking_code: str
    nail_tech_id: int
    slot_id: int
    paired_slot_id: Optional[int] = None
    linked_slot_ids: list[int] = []
    service_type: str
    status: str
    form_synced: bool
    customer_id: Optional[int] = None
    client_type: Optional[str] = None
    service_location: Optional[str] = None
    form_response_id: Optional[str] = None
    customer_data: Optional[dict] = None
    customer_data_order: Optional[list[str]] = None
    date_changed: bool = False
    time_changed: bool = False
    validation_warnings: Optional[list[str]] = None
    cancel_reason: Optional[str] = None
    released_at: Optional[str] = None
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class BookingCreated(BaseModel):
    booking: BookingRead
    form_url: Optional[str] = None


class BookingDetail(BaseModel):
    booking: BookingRead
    slot: Optional[SlotRead] = None
    linked_slots: list[SlotRead] = []
    customer_name: str


class BookingCancel(BaseModel):
    reason: Optional[str] = None


class BookingReschedule(BaseModel):
    slot_id: int
    linked_slot_ids: Optional[list[int]] = None


class FormSubmission(BaseModel):
    booking_code: str
    fields: dict[str, Optional[str]]
    field_order: Optional[list[str]] = None
    row_reference: Optional[str] = None


class FormSyncResponse(BaseModel):
    processed: bool
    booking: Optional[BookingRead] = None


class FormSyncReport(BaseModel):
    processed: int
    skipped: int
    failed: list[dict] = []


class ReleaseRequest(BaseModel):
    booking_ids: list[int] = Field(min_length=1)


class ReleaseExpiredRequest(BaseModel):
    threshold_minutes: Optional[int] = Field(None, ge=0)


class ReleaseResponse(BaseModel):
    released: int
    released_ids: list[int] = []
    skipped: list[dict] = []
    failed: list[dict] = []

    model_config = {"from_attributes": True}


class RecoverRequest(BaseModel):
    booking_code: str


class RecoverFromFormRequest(BaseModel):
    booking_code: str
    slot_id: int
    fields: dict[str, Optional[str]]
    field_order: Optional[list[str]] = None
    row_reference: Optional[str] = None
    service_type: ServiceType = "manicure"
    linked_slot_ids: Optional[list[int]] = None
    service_location: Optional[Literal["homebased_studio", "home_service"]] = None


class RecoveryRead(BaseModel):
    booking_id: int
    booking_code: str
    slot_id: Optional[int] = None
    action: str
    date: Optional[str] = None
    time: Optional[str] = None
    date_source: Optional[str] = None
    time_source: Optional[str] = None
    diagnostics: list[str] = []

    model_config = {"from_attributes": True}


class RestoreReportRead(BaseModel):
    total_confirmed: int
    missing: int
    restored: list[RecoveryRead] = []
    failed: list[RecoveryRead] = []

    model_config = {"from_attributes": True}
