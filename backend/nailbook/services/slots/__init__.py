# backend/nailbook/services/slots/__init__.py
"""
Slots module: store, block calendar and availability reads.
"""

from .availability import list_available_slots
from .calendar import is_date_blocked, list_blocked_dates
from .config import BookingConfig, get_booking_config
from .store import delete_expired_slots, get_slot, get_slots_by_ids, list_slots

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "list_available_slots",
    "list_blocked_dates",
    "is_date_blocked",
    "get_slot",
    "get_slots_by_ids",
    "list_slots",
    "delete_expired_slots",
]
