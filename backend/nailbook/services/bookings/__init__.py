# backend/nailbook/services/bookings/__init__.py
"""
Bookings module: allocation, ledger, form reconciliation, release and
slot recovery.
"""

from .allocator import create_booking, reschedule_booking
from .ledger import cancel_booking, confirm_booking, get_booking, get_booking_by_code, list_bookings
from .reconciler import FormRecord, sync_booking_with_form, sync_form_records
from .recovery import recover_booking, recover_booking_from_form, restore_missing_slots
from .sweeper import (
    get_eligible_bookings_for_release,
    manually_release_bookings,
    release_expired_pending_bookings,
)

__all__ = [
    "create_booking",
    "reschedule_booking",
    "get_booking",
    "get_booking_by_code",
    "list_bookings",
    "confirm_booking",
    "cancel_booking",
    "FormRecord",
    "sync_booking_with_form",
    "sync_form_records",
    "get_eligible_bookings_for_release",
    "manually_release_bookings",
    "release_expired_pending_bookings",
    "recover_booking",
    "recover_booking_from_form",
    "restore_missing_slots",
]
