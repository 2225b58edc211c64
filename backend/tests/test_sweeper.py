"""Tests for releasing bookings whose intake form never arrived."""

from datetime import timedelta

from nailbook.models.entities import Slots
from nailbook.services.bookings.allocator import create_booking
from nailbook.services.bookings.ledger import list_bookings
from nailbook.services.bookings.reconciler import sync_booking_with_form
from nailbook.services.bookings.sweeper import (
    find_expired_pending_bookings,
    get_eligible_bookings_for_release,
    manually_release_bookings,
    maybe_release_on_listing,
    release_bookings,
    release_expired_pending_bookings,
)
from nailbook.services.slots.config import BookingConfig

from conftest import NOW, make_day, queued_events, reload

FORM = {"Name": "Ana", "Email": "ana@example.com"}
LATER = NOW + timedelta(minutes=31)


class TestReleaseExpired:
    def test_releases_old_unsynced_booking(self, db, nail_tech, events, fake_redis):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "mani_pedi", now=NOW)

        result = release_expired_pending_bookings(db, 30, events=events, now=LATER)
        assert result.released == 1
        assert result.released_ids == [booking.id]

        booking = reload(db, booking)
        assert booking.status == "cancelled"
        assert booking.cancel_reason == "released"
        assert booking.released_at is not None
        for t in ("10:00", "10:30"):
            slot = reload(db, day[t])
            assert slot.status == "available"
            assert slot.held_by_booking_id is None

        events.flush()
        assert queued_events(fake_redis, "booking_released")[0]["booking_id"] == booking.id

    def test_young_booking_is_kept(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        create_booking(db, day["10:00"].id, "manicure", now=NOW)
        result = release_expired_pending_bookings(db, 30, now=NOW + timedelta(minutes=10))
        assert result.released == 0
        assert reload(db, day["10:00"]).status == "pending"

    def test_threshold_defaults_to_config(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        create_booking(db, day["10:00"].id, "manicure", now=NOW)
        cfg = BookingConfig(release_threshold_minutes=120)
        assert release_expired_pending_bookings(db, config=cfg, now=LATER).released == 0
        assert release_expired_pending_bookings(db, config=cfg, now=NOW + timedelta(hours=3)).released == 1

    def test_synced_booking_is_never_released(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "manicure", now=NOW)
        sync_booking_with_form(db, booking.booking_code, FORM, source_row_reference="2", now=NOW)

        result = release_expired_pending_bookings(db, 30, now=NOW + timedelta(days=1))
        assert result.released == 0
        assert reload(db, booking).status == "confirmed"

    def test_prelinked_customer_does_not_count_as_synced(self, db, nail_tech):
        from nailbook.models.entities import Customers

        db.add(Customers(name="Ana", email="ana@example.com", created_at="x", updated_at="x"))
        db.commit()
        day = make_day(db, nail_tech.id)
        create_booking(db, day["10:00"].id, "manicure", repeat_client_identifier="ana@example.com", now=NOW)

        assert release_expired_pending_bookings(db, 30, now=LATER).released == 1

    def test_released_booking_leaves_active_view(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        create_booking(db, day["10:00"].id, "manicure", now=NOW)
        release_expired_pending_bookings(db, 30, now=LATER)

        assert list_bookings(db) == []
        assert len(list_bookings(db, include_released=True)) == 1
        assert get_eligible_bookings_for_release(db) == []
        # a second sweep finds nothing to do
        assert release_expired_pending_bookings(db, 30, now=LATER).released == 0


    def test_unreadable_creation_time_is_skipped(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "manicure", now=NOW)
        row = reload(db, booking)
        row.created_at = "not a timestamp"
        db.commit()

        assert find_expired_pending_bookings(db, 30, LATER) == []
        result = release_expired_pending_bookings(db, 30, now=LATER)
        assert result.released == 0
        assert result.skipped == [{
            "booking_id": booking.id,
            "booking_code": booking.booking_code,
            "reason": "creation time unknown",
        }]
        assert reload(db, booking).status == "pending_form"
        assert reload(db, day["10:00"]).held_by_booking_id == booking.id


class TestStaleScan:
    def test_booking_synced_after_scan_is_skipped(self, session_factory, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "manicure", now=NOW)

        stale = find_expired_pending_bookings(db, 30, LATER)
        assert [b.id for b in stale] == [booking.id]

        form_session = session_factory()
        try:
            assert sync_booking_with_form(
                form_session, booking.booking_code, FORM, source_row_reference="2", now=LATER,
            ) is not None
        finally:
            form_session.close()

        result = release_bookings(db, stale, now=LATER)
        assert result.released == 0
        assert result.skipped[0]["booking_id"] == booking.id

        assert reload(db, booking).status == "confirmed"
        slot = reload(db, day["10:00"])
        assert slot.status == "confirmed"
        assert slot.held_by_booking_id == booking.id

    def test_slot_rebooked_by_someone_else_is_left_alone(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "manicure", now=NOW)
        # an admin moved the hold to another booking in the meantime
        slot = db.get(Slots, day["10:00"].id)
        slot.held_by_booking_id = booking.id + 100
        db.commit()

        assert release_expired_pending_bookings(db, 30, now=LATER).released == 1
        slot = reload(db, day["10:00"])
        assert slot.status == "pending"
        assert slot.held_by_booking_id == booking.id + 100


class TestManualRelease:
    def test_ignores_age(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "manicure", now=NOW)
        result = manually_release_bookings(db, [booking.id], now=NOW)
        assert result.released == 1
        assert reload(db, day["10:00"]).status == "available"

    def test_skips_ineligible_and_missing(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        synced = create_booking(db, day["10:00"].id, "manicure", now=NOW)
        sync_booking_with_form(db, synced.booking_code, FORM, source_row_reference="2", now=NOW)
        pending = create_booking(db, day["13:00"].id, "manicure", now=NOW)

        result = manually_release_bookings(db, [synced.id, pending.id, 999], now=NOW)
        assert result.released == 1
        assert result.released_ids == [pending.id]
        assert {s["booking_id"] for s in result.skipped} == {synced.id, 999}
        assert reload(db, synced).status == "confirmed"


class TestEligibleListing:
    def test_lists_young_bookings_with_slots(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "mani_pedi", now=NOW)

        [view] = get_eligible_bookings_for_release(db)
        assert view.booking.id == booking.id
        assert view.slot.time == "10:00"
        assert [s.time for s in view.linked_slots] == ["10:30"]
        assert view.customer_name == "Unknown Customer"


class TestListingTrigger:
    def test_disabled_by_default(self, db, fake_redis):
        assert maybe_release_on_listing(db, fake_redis, config=BookingConfig(), now=LATER) is None

    def test_throttled(self, db, nail_tech, fake_redis):
        day = make_day(db, nail_tech.id)
        create_booking(db, day["10:00"].id, "manicure", now=NOW)
        cfg = BookingConfig(auto_release_on_listing=True)

        first = maybe_release_on_listing(db, fake_redis, config=cfg, now=LATER)
        second = maybe_release_on_listing(db, fake_redis, config=cfg, now=LATER)
        assert first.released == 1
        assert second is None
