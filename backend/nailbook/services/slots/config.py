# backend/nailbook/services/slots/config.py
"""
Booking configuration for slot allocation, release and recovery.
"""

from dataclasses import dataclass
from functools import lru_cache

from ...config import settings

SLOT_TIMES = (
    "08:00", "10:00", "10:30", "13:00", "15:00",
    "15:30", "19:00", "20:00", "21:00",
)

SERVICE_SLOT_COUNTS = {
    "manicure": 1,
    "pedicure": 1,
    "mani_pedi": 2,
    "home_service_2slots": 2,
    "home_service_3slots": 3,
}

RESERVATION_STATUSES = ("pending", "confirmed")
SYNCED_STATUSES = ("confirmed", "pending_payment")


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for the booking system.

    Attributes:
        reservation_status: Slot status set by the allocator (pending/confirmed)
        synced_status: Booking status after the intake form is reconciled
        release_threshold_minutes: Age after which an unsynced booking is released
        auto_release_on_listing: Sweep on public slot listing
        auto_release_interval_seconds: Minimum gap between listing-triggered sweeps
        slot_times: Salon time grid, used to infer a preceding slot time
        booking_code_prefix: Prefix of sequential booking codes
        booking_code_digits: Zero padding of booking codes
        remind_before_minutes: Reminder window before the appointment
    """
    reservation_status: str = "pending"
    synced_status: str = "confirmed"
    release_threshold_minutes: int = 30
    auto_release_on_listing: bool = False
    auto_release_interval_seconds: int = 60
    slot_times: tuple[str, ...] = SLOT_TIMES
    booking_code_prefix: str = "GN-"
    booking_code_digits: int = 5
    remind_before_minutes: int = 1440

    def __post_init__(self):
        """Validate configuration."""
        if self.reservation_status not in RESERVATION_STATUSES:
            raise ValueError(
                f"reservation_status must be one of {RESERVATION_STATUSES}, got {self.reservation_status}"
            )
        if self.synced_status not in SYNCED_STATUSES:
            raise ValueError(
                f"synced_status must be one of {SYNCED_STATUSES}, got {self.synced_status}"
            )
        if self.release_threshold_minutes < 0:
            raise ValueError("release_threshold_minutes must be >= 0")
        for t in self.slot_times:
            time_str_to_minutes(t)

    def required_slot_count(self, service_type: str) -> int:
        """Number of consecutive slots a service occupies."""
        try:
            return SERVICE_SLOT_COUNTS[service_type]
        except KeyError:
            raise ValueError(f"Unknown service type: {service_type}")

    def format_booking_code(self, number: int) -> str:
        return f"{self.booking_code_prefix}{number:0{self.booking_code_digits}d}"


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight."""
    hours, minutes = value.split(":")
    hours, minutes = int(hours), int(minutes)
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time: {value}")
    return hours * 60 + minutes


def minutes_to_time_str(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@lru_cache
def get_booking_config() -> BookingConfig:
    """
    Get booking configuration (singleton), built from environment settings.
    """
    return BookingConfig(
        reservation_status=settings.reservation_status,
        synced_status=settings.synced_booking_status,
        release_threshold_minutes=settings.release_threshold_minutes,
        auto_release_on_listing=settings.auto_release_on_listing,
        auto_release_interval_seconds=settings.auto_release_interval_seconds,
        booking_code_prefix=settings.booking_code_prefix,
        remind_before_minutes=settings.remind_before_minutes,
    )
