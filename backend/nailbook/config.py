# backend/nailbook/config.py

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repo root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./nailbook.db"
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"

    # Google service account (Sheets API)
    google_service_account_email: Optional[str] = None
    google_service_account_private_key: Optional[str] = None
    google_sheets_id: Optional[str] = None
    google_sheets_range: str = "'Form Responses 1'!A:Z"
    google_sheets_booking_id_column: str = "bookingId"

    # Google Form prefill
    google_form_base_url: Optional[str] = None
    google_form_booking_id_entry: Optional[str] = None
    google_form_date_entry: Optional[str] = None
    google_form_time_entry: Optional[str] = None
    google_form_date_format: str = "FULL"
    google_form_service_location_entry: Optional[str] = None
    google_form_name_entry: Optional[str] = None
    google_form_email_entry: Optional[str] = None
    google_form_phone_entry: Optional[str] = None
    google_form_social_media_entry: Optional[str] = None

    # Booking policy
    reservation_status: str = "pending"
    synced_booking_status: str = "confirmed"
    release_threshold_minutes: int = 30
    auto_release_on_listing: bool = False
    auto_release_interval_seconds: int = 60
    remind_before_minutes: int = 1440
    booking_code_prefix: str = "GN-"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # relative sqlite path is anchored at the repo root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
