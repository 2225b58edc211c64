"""Tests for slot reservation and booking creation."""

from datetime import timedelta

import pytest

from nailbook.models.entities import Customers, NailTechs, Slots
from nailbook.services.bookings.allocator import create_booking, reschedule_booking
from nailbook.services.bookings.ledger import cancel_booking, confirm_booking
from nailbook.services.errors import InsufficientConsecutiveSlots, NotFound, SlotUnavailable, ValidationError
from nailbook.services.slots.calendar import create_blocked_date
from nailbook.services.slots.config import BookingConfig

from conftest import DAY, NOW, booking_count, make_day, make_slot, queued_events, reload


class TestSingleSlot:
    def test_reserves_slot_and_creates_pending_form_booking(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "manicure", now=NOW)

        assert booking.booking_code == "GN-00001"
        assert booking.status == "pending_form"
        assert booking.form_synced == 0
        assert booking.customer_id is None
        assert booking.linked_slot_ids == []
        slot = reload(db, day["10:00"])
        assert slot.status == "pending"
        assert slot.held_by_booking_id == booking.id

    def test_codes_are_sequential(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        first = create_booking(db, day["10:00"].id, "manicure", now=NOW)
        second = create_booking(db, day["13:00"].id, "pedicure", now=NOW)
        assert first.booking_code == "GN-00001"
        assert second.booking_code == "GN-00002"

    def test_reservation_status_can_be_confirmed(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        cfg = BookingConfig(reservation_status="confirmed")
        create_booking(db, day["10:00"].id, "manicure", config=cfg, now=NOW)
        assert reload(db, day["10:00"]).status == "confirmed"

    def test_taken_slot_is_rejected(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        create_booking(db, day["10:00"].id, "manicure", now=NOW)
        with pytest.raises(SlotUnavailable):
            create_booking(db, day["10:00"].id, "manicure", now=NOW)
        assert booking_count(db) == 1

    def test_missing_slot_is_unavailable(self, db, nail_tech):
        with pytest.raises(SlotUnavailable):
            create_booking(db, 999, "manicure", now=NOW)

    def test_hidden_slot_is_unavailable(self, db, nail_tech):
        slot = make_slot(db, nail_tech.id, "10:00", is_hidden=True)
        with pytest.raises(SlotUnavailable):
            create_booking(db, slot.id, "manicure", now=NOW)

    def test_past_slot_is_unavailable(self, db, nail_tech):
        slot = make_slot(db, nail_tech.id, "10:00")
        with pytest.raises(SlotUnavailable):
            create_booking(db, slot.id, "manicure", now=NOW + timedelta(days=2))

    def test_blocked_date_is_unavailable(self, db, nail_tech):
        slot = make_slot(db, nail_tech.id, "10:00")
        create_blocked_date(db, "2030-03-10", "2030-03-15", scope="range", reason="vacation")
        with pytest.raises(SlotUnavailable) as exc:
            create_booking(db, slot.id, "manicure", now=NOW)
        assert "blocked" in exc.value.message
        assert reload(db, slot).status == "available"

    def test_unknown_service_type(self, db, nail_tech):
        slot = make_slot(db, nail_tech.id, "10:00")
        with pytest.raises(ValidationError):
            create_booking(db, slot.id, "gel_extensions", now=NOW)

    def test_linked_slots_on_single_service_rejected(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        with pytest.raises(ValidationError):
            create_booking(db, day["10:00"].id, "manicure", linked_slot_ids=[day["10:30"].id], now=NOW)

    def test_emits_booking_created(self, db, nail_tech, events, fake_redis):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "manicure", events=events, now=NOW)
        events.flush()
        [event] = queued_events(fake_redis, "booking_created")
        assert event["booking_code"] == booking.booking_code
        assert event["slot_ids"] == [day["10:00"].id]


class TestMultiSlot:
    def test_mani_pedi_takes_next_slot(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "mani_pedi", now=NOW)

        assert booking.linked_slot_ids == [day["10:30"].id]
        assert booking.paired_slot_id == day["10:30"].id
        for t in ("10:00", "10:30"):
            slot = reload(db, day[t])
            assert slot.status == "pending"
            assert slot.held_by_booking_id == booking.id
        assert reload(db, day["11:00"]).status == "available"

    def test_three_slot_service_takes_run(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "home_service_3slots", now=NOW)
        assert booking.slot_ids == [day["10:00"].id, day["10:30"].id, day["11:00"].id]

    def test_next_slot_pending_fails_and_changes_nothing(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        create_booking(db, day["10:30"].id, "manicure", now=NOW)

        with pytest.raises(InsufficientConsecutiveSlots):
            create_booking(db, day["10:00"].id, "mani_pedi", now=NOW)
        assert reload(db, day["10:00"]).status == "available"
        assert booking_count(db) == 1

    def test_does_not_skip_over_taken_slot(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        create_booking(db, day["10:30"].id, "manicure", now=NOW)
        # 11:00 is free, but it is not adjacent to 10:00
        with pytest.raises(InsufficientConsecutiveSlots):
            create_booking(db, day["10:00"].id, "mani_pedi", now=NOW)
        assert reload(db, day["11:00"]).status == "available"

    def test_last_slot_of_day_has_no_successor(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        with pytest.raises(InsufficientConsecutiveSlots):
            create_booking(db, day["13:00"].id, "mani_pedi", now=NOW)

    def test_successor_ordering_is_per_staff(self, db, nail_tech):
        other = NailTechs(name="Other")
        db.add(other)
        db.commit()
        mine = make_slot(db, nail_tech.id, "10:00")
        make_slot(db, other.id, "10:30")
        with pytest.raises(InsufficientConsecutiveSlots):
            create_booking(db, mine.id, "mani_pedi", now=NOW)

    def test_successor_hidden_fails(self, db, nail_tech):
        first = make_slot(db, nail_tech.id, "10:00")
        make_slot(db, nail_tech.id, "10:30", is_hidden=True)
        with pytest.raises(InsufficientConsecutiveSlots):
            create_booking(db, first.id, "mani_pedi", now=NOW)

    def test_explicit_linked_slot_must_be_adjacent(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        with pytest.raises(InsufficientConsecutiveSlots):
            create_booking(db, day["10:00"].id, "mani_pedi", linked_slot_ids=[day["11:00"].id], now=NOW)

    def test_explicit_linked_slot_accepted(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "mani_pedi", paired_slot_id=day["10:30"].id, now=NOW)
        assert booking.linked_slot_ids == [day["10:30"].id]

    def test_wrong_number_of_linked_slots(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        with pytest.raises(ValidationError):
            create_booking(
                db, day["10:00"].id, "mani_pedi",
                linked_slot_ids=[day["10:30"].id, day["11:00"].id], now=NOW,
            )


class TestConcurrentReservation:
    def test_stale_reader_loses_the_slot(self, session_factory, db, nail_tech):
        slot = make_slot(db, nail_tech.id, "10:00")
        other = session_factory()
        try:
            # second request has already seen the slot as available
            assert other.get(Slots, slot.id).status == "available"
            create_booking(db, slot.id, "manicure", now=NOW)

            with pytest.raises(SlotUnavailable):
                create_booking(other, slot.id, "manicure", now=NOW)
        finally:
            other.close()
        assert booking_count(db) == 1
        assert reload(db, slot).held_by_booking_id is not None

    def test_partial_run_is_rolled_back(self, session_factory, db, nail_tech):
        day = make_day(db, nail_tech.id)
        other = session_factory()
        try:
            other.get(Slots, day["10:00"].id)
            other.get(Slots, day["10:30"].id)
            for s in other.query(Slots).all():
                assert s.status == "available"
            create_booking(db, day["10:30"].id, "manicure", now=NOW)

            with pytest.raises(SlotUnavailable):
                create_booking(other, day["10:00"].id, "mani_pedi", now=NOW)
        finally:
            other.close()
        assert reload(db, day["10:00"]).status == "available"
        assert reload(db, day["10:00"]).held_by_booking_id is None
        assert booking_count(db) == 1


class TestRepeatClient:
    def test_prelinks_customer_but_stays_unsynced(self, db, nail_tech):
        customer = Customers(name="Ana Cruz", email="ana@example.com", created_at="x", updated_at="x")
        db.add(customer)
        db.commit()
        slot = make_slot(db, nail_tech.id, "10:00")

        booking = create_booking(db, slot.id, "manicure", repeat_client_identifier="ANA@example.com", now=NOW)
        assert booking.customer_id == customer.id
        assert booking.client_type == "repeat"
        assert booking.form_synced == 0

    def test_unknown_identifier_leaves_customer_empty(self, db, nail_tech):
        slot = make_slot(db, nail_tech.id, "10:00")
        booking = create_booking(db, slot.id, "manicure", repeat_client_identifier="0917", now=NOW)
        assert booking.customer_id is None


class TestReschedule:
    def test_moves_single_slot_booking(self, db, nail_tech, events, fake_redis):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "manicure", now=NOW)

        moved = reschedule_booking(db, booking.id, day["13:00"].id, events=events, now=NOW)
        events.flush()

        assert moved.slot_id == day["13:00"].id
        assert moved.status == "pending_form"
        old = reload(db, day["10:00"])
        assert old.status == "available"
        assert old.held_by_booking_id is None
        new = reload(db, day["13:00"])
        assert new.status == "pending"
        assert new.held_by_booking_id == booking.id
        [event] = queued_events(fake_redis, "booking_rescheduled")
        assert event["old_slot_ids"] == [day["10:00"].id]
        assert event["slot_ids"] == [day["13:00"].id]

    def test_run_may_overlap_current_slots(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "mani_pedi", now=NOW)

        moved = reschedule_booking(db, booking.id, day["10:30"].id, now=NOW)

        assert moved.slot_ids == [day["10:30"].id, day["11:00"].id]
        assert moved.paired_slot_id == day["11:00"].id
        assert reload(db, day["10:00"]).status == "available"
        assert reload(db, day["10:30"]).held_by_booking_id == booking.id
        assert reload(db, day["11:00"]).held_by_booking_id == booking.id

    def test_confirmed_booking_keeps_confirmed_slots(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "manicure", now=NOW)
        confirm_booking(db, booking.id, now=NOW)

        reschedule_booking(db, booking.id, day["13:00"].id, now=NOW)
        assert reload(db, booking).status == "confirmed"
        assert reload(db, day["13:00"]).status == "confirmed"

    def test_taken_target_leaves_booking_where_it_was(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "manicure", now=NOW)
        create_booking(db, day["13:00"].id, "manicure", now=NOW)

        with pytest.raises(SlotUnavailable):
            reschedule_booking(db, booking.id, day["13:00"].id, now=NOW)

        assert reload(db, booking).slot_id == day["10:00"].id
        slot = reload(db, day["10:00"])
        assert slot.status == "pending"
        assert slot.held_by_booking_id == booking.id

    def test_short_target_run_leaves_booking_where_it_was(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "mani_pedi", now=NOW)

        with pytest.raises(InsufficientConsecutiveSlots):
            reschedule_booking(db, booking.id, day["13:00"].id, now=NOW)

        assert reload(db, day["10:00"]).held_by_booking_id == booking.id
        assert reload(db, day["10:30"]).held_by_booking_id == booking.id
        assert reload(db, day["13:00"]).status == "available"

    def test_cancelled_booking_cannot_move(self, db, nail_tech):
        day = make_day(db, nail_tech.id)
        booking = create_booking(db, day["10:00"].id, "manicure", now=NOW)
        cancel_booking(db, booking.id, now=NOW)

        with pytest.raises(ValidationError):
            reschedule_booking(db, booking.id, day["13:00"].id, now=NOW)
        assert reload(db, day["13:00"]).status == "available"

    def test_unknown_booking(self, db, nail_tech):
        slot = make_slot(db, nail_tech.id, "10:00")
        with pytest.raises(NotFound):
            reschedule_booking(db, 999, slot.id, now=NOW)
