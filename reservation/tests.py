from datetime import datetime, time, timedelta, timezone as dt_timezone
from decimal import Decimal
from itertools import count
from unittest import mock

from django.core import mail
from django.db import DatabaseError
from django.test import TestCase, override_settings

from reservation.exceptions import (
    ArrivedTooEarly,
    ArrivedTooLate,
    CodeGenerationExhausted,
    InvalidIdentity,
    InvalidPartySize,
    NotFound,
    PartyTooLarge,
    ReservationNotActive,
    SlotNoLongerAvailable,
    SlotNotAvailable,
    TableNotFound,
    TableNotOccupied,
    TableOccupied,
)
from reservation.identity import Guest, Subscriber, identity_from
from reservation.models import Bill, Reservation, Seating, WaitlistEntry
from reservation.services.availability import AvailabilityResult, AvailabilityService
from reservation.services.billing import BillingService
from reservation.services.reservation import ReservationService
from reservation.services.seating import CheckInResult, SeatingService
from reservation.services.waitlist import WaitlistService
from restaurant.models import OpeningHours, Table

# Monday morning, before opening
NOW = datetime(2030, 6, 3, 9, 0, tzinfo=dt_timezone.utc)
TODAY = NOW.date()
TOMORROW = TODAY + timedelta(days=1)

_codes = count(100000)


@override_settings(TIME_ZONE="UTC")
class BistroTestCase(TestCase):
    """
    Base class pinning the clock and opening the restaurant 10:00-23:00
    for the coming days. Tables: 1, 2 (2 seats), 3, 4 (4 seats), 5 (6 seats).
    """

    fixtures = ['users.json', 'tables.json']

    def setUp(self):
        patcher = mock.patch("django.utils.timezone.now", return_value=NOW)
        self.clock = patcher.start()
        self.addCleanup(patcher.stop)

        for offset in range(-1, 10):
            OpeningHours.objects.create(
                date=TODAY + timedelta(days=offset),
                open_time=time(10, 0),
                close_time=time(23, 0),
            )

    def set_now(self, value):
        self.clock.return_value = value

    def at(self, hour, minute=0, day=TODAY):
        return datetime.combine(day, time(hour, minute), tzinfo=dt_timezone.utc)

    def book(
        self,
        start=time(12, 0),
        party_size=2,
        day=TOMORROW,
        status=Reservation.Status.CONFIRMED,
        contact="guest@example.com",
        user_id=None,
        created_at=None,
    ):
        """Insert a reservation directly, bypassing availability checks."""
        tier = AvailabilityService.allocated_capacity(party_size)
        return Reservation.objects.create(
            confirmation_code=str(next(_codes)),
            user_id=user_id,
            guest_contact="" if user_id else contact,
            date=day,
            start_time=start,
            party_size=party_size,
            allocated_capacity=tier,
            status=status,
            created_at=created_at or NOW,
        )

    def seat(self, reservation, table_number, check_in_time=None):
        reservation.set_status(Reservation.Status.SEATED)
        return Seating.objects.create(
            table=Table.objects.get(number=table_number),
            reservation=reservation,
            check_in_time=check_in_time or NOW,
        )

    def enqueue(self, reservation, priority=WaitlistEntry.Priority.HELD_RESERVATION, created_at=None):
        reservation.set_status(Reservation.Status.WAITING)
        return WaitlistEntry.objects.create(
            reservation=reservation, priority=priority, created_at=created_at or NOW
        )

    def only_tables(self, *numbers):
        Table.objects.exclude(number__in=numbers).update(is_active=False)


class IdentityTest(TestCase):
    """Unit tests for the booking identity"""

    def test_subscriber_identity(self):
        self.assertEqual(identity_from(user_id=3), Subscriber(user_id=3))

    def test_guest_identity_is_stripped(self):
        self.assertEqual(identity_from(guest_contact="  052-1234567 "), Guest(contact="052-1234567"))

    def test_both_or_neither_rejected(self):
        with self.assertRaises(InvalidIdentity):
            identity_from(user_id=1, guest_contact="a@b.com")
        with self.assertRaises(InvalidIdentity):
            identity_from()
        with self.assertRaises(InvalidIdentity):
            identity_from(guest_contact="   ")


class ReservationModelTest(BistroTestCase):
    """Unit tests for Reservation model"""

    def test_end_time_is_start_plus_duration(self):
        reservation = self.book(start=time(19, 30))
        self.assertEqual(reservation.end_time, time(21, 30))

    def test_end_time_follows_start_time_updates(self):
        reservation = self.book(start=time(12, 0))
        reservation.start_time = time(13, 0)
        reservation.save(update_fields=["start_time"])
        reservation.refresh_from_db()
        self.assertEqual(reservation.end_time, time(15, 0))

    def test_identity_round_trip(self):
        guest = self.book()
        subscriber = self.book(user_id=1)
        self.assertEqual(guest.identity, Guest("guest@example.com"))
        self.assertEqual(subscriber.identity, Subscriber(1))

    def test_user_and_guest_together_rejected(self):
        with self.assertRaises(Exception):
            Reservation.objects.create(
                confirmation_code="999999",
                user_id=1,
                guest_contact="guest@example.com",
                date=TOMORROW,
                start_time=time(12, 0),
                party_size=2,
                allocated_capacity=2,
            )
        self.assertFalse(Reservation.objects.filter(confirmation_code="999999").exists())


class AvailabilityTest(BistroTestCase):
    """Unit tests for the availability engine"""

    def test_allocated_capacity_rounds_up(self):
        """Test party sizes map to the smallest fitting tier"""
        expected = {1: 2, 2: 2, 3: 4, 4: 4, 5: 6, 6: 6}
        for party_size, tier in expected.items():
            self.assertEqual(AvailabilityService.allocated_capacity(party_size), tier)

    def test_allocated_capacity_is_monotonic(self):
        """Test the tier is never below the party and is the minimal fit"""
        tiers = AvailabilityService.tier_counts()
        for party_size in range(1, 7):
            tier = AvailabilityService.allocated_capacity(party_size)
            self.assertGreaterEqual(tier, party_size)
            self.assertFalse([t for t in tiers if party_size <= t < tier])

    def test_party_too_large(self):
        with self.assertRaises(PartyTooLarge):
            AvailabilityService.allocated_capacity(7)

    def test_invalid_party_size(self):
        with self.assertRaises(InvalidPartySize):
            AvailabilityService.allocated_capacity(0)

    def test_tier_without_active_tables_is_skipped(self):
        """Test a party of 3 goes to the 6 tier when no 4-seat table is active"""
        Table.objects.filter(capacity=4).update(is_active=False)
        self.assertEqual(AvailabilityService.allocated_capacity(3), 6)

    def test_windows_overlap_is_half_open(self):
        overlap = AvailabilityService.windows_overlap
        self.assertTrue(overlap(time(10), time(12), time(11), time(13)))
        self.assertTrue(overlap(time(11), time(13), time(10), time(12)))
        self.assertTrue(overlap(time(10), time(12), time(10), time(12)))
        self.assertFalse(overlap(time(10), time(12), time(12), time(14)))
        self.assertFalse(overlap(time(12), time(14), time(10), time(12)))

    def test_touching_reservations_do_not_conflict(self):
        """Test a booking ending at 12:00 leaves 12:00 free on a single table"""
        self.only_tables(1)
        self.book(start=time(10, 0))
        self.assertTrue(AvailabilityService.is_slot_free(TOMORROW, time(12, 0), 2))
        self.assertFalse(AvailabilityService.is_slot_free(TOMORROW, time(11, 30), 2))

    def test_scenario_a_free_day(self):
        """Test one 4-seat table, hours 10-14, party of 3, nothing booked"""
        self.only_tables(3)
        OpeningHours.objects.filter(date=TOMORROW).update(open_time=time(10), close_time=time(14))

        result = AvailabilityService.find_availability(TOMORROW, 3)

        self.assertEqual(result.outcome, AvailabilityResult.SHOW_AVAILABILITY)
        self.assertEqual(result.allocated_capacity, 4)
        self.assertEqual(
            result.slots,
            [time(10, 0), time(10, 30), time(11, 0), time(11, 30), time(12, 0)],
        )

    def test_free_day_is_logged(self):
        with self.assertLogs("reservation.services.availability", level="INFO") as logs:
            AvailabilityService.find_availability(TOMORROW, 2)

        self.assertIn("SHOW_AVAILABILITY", "\n".join(logs.output))

    def test_scenario_b_full_day_gives_suggestions(self):
        """Test a fully booked day suggests the first free times of later days"""
        self.only_tables(3)
        OpeningHours.objects.filter(date=TOMORROW).update(open_time=time(10), close_time=time(14))
        self.book(start=time(10, 0), party_size=3)
        self.book(start=time(12, 0), party_size=3)

        result = AvailabilityService.find_availability(TOMORROW, 3)

        self.assertEqual(result.outcome, AvailabilityResult.SHOW_SUGGESTIONS)
        self.assertEqual(result.slots, [])
        first_day = min(result.suggestions)
        self.assertEqual(first_day, TOMORROW + timedelta(days=1))
        self.assertEqual(result.suggestions[first_day], [time(10, 0), time(10, 30), time(11, 0)])

    def test_scenario_b_full_week_gives_nothing(self):
        """Test no availability when the date and the next 7 days are full"""
        self.only_tables(3)
        for offset in range(0, 8):
            day = TOMORROW + timedelta(days=offset)
            OpeningHours.objects.filter(date=day).update(open_time=time(10), close_time=time(14))
            self.book(start=time(10, 0), party_size=3, day=day)
            self.book(start=time(12, 0), party_size=3, day=day)

        result = AvailabilityService.find_availability(TOMORROW, 3)

        self.assertEqual(result.outcome, AvailabilityResult.NO_AVAILABILITY)
        self.assertEqual(result.suggestions, {})

    def test_suggestions_skip_days_without_slots(self):
        self.only_tables(3)
        OpeningHours.objects.filter(date=TOMORROW).update(open_time=None, close_time=None)
        OpeningHours.objects.filter(date=TOMORROW + timedelta(days=1)).update(
            open_time=None, close_time=None, occasion=OpeningHours.Occasion.HOLIDAY
        )

        result = AvailabilityService.find_availability(TOMORROW, 3)

        self.assertEqual(result.outcome, AvailabilityResult.SHOW_SUGGESTIONS)
        self.assertNotIn(TOMORROW + timedelta(days=1), result.suggestions)
        self.assertEqual(min(result.suggestions), TOMORROW + timedelta(days=2))

    def test_missing_hours_means_closed(self):
        self.assertEqual(AvailabilityService.candidate_starts(TODAY + timedelta(days=20)), [])

    def test_same_day_starts_after_booking_lead(self):
        """Test today's first start is now + 1h rounded up to the half hour"""
        self.set_now(self.at(12, 10))
        result = AvailabilityService.find_availability(TODAY, 2)
        self.assertEqual(result.slots[0], time(13, 30))

        self.set_now(self.at(12, 0))
        result = AvailabilityService.find_availability(TODAY, 2)
        self.assertEqual(result.slots[0], time(13, 0))

    def test_past_date_has_no_slots(self):
        yesterday = TODAY - timedelta(days=1)
        self.assertEqual(AvailabilityService.candidate_starts(yesterday), [])
        result = AvailabilityService.find_availability(yesterday, 2)
        self.assertNotEqual(result.outcome, AvailabilityResult.SHOW_AVAILABILITY)

    def test_last_start_leaves_full_dining_window(self):
        starts = AvailabilityService.candidate_starts(TOMORROW)
        self.assertEqual(starts[0], time(10, 0))
        self.assertEqual(starts[-1], time(21, 0))

    def test_only_booked_statuses_count(self):
        self.only_tables(1)
        self.book(status=Reservation.Status.CANCELLED)
        self.book(status=Reservation.Status.NO_SHOW)
        self.book(status=Reservation.Status.COMPLETED)
        self.assertTrue(AvailabilityService.is_slot_free(TOMORROW, time(12, 0), 2))

        self.book(status=Reservation.Status.WAITING)
        self.assertFalse(AvailabilityService.is_slot_free(TOMORROW, time(12, 0), 2))

    def test_tiers_are_counted_separately(self):
        """Test bookings of the 6 tier never consume 2-seat tables"""
        self.book(party_size=5)
        self.assertTrue(AvailabilityService.is_slot_free(TOMORROW, time(12, 0), 2))
        self.assertFalse(AvailabilityService.is_slot_free(TOMORROW, time(12, 0), 6))


class ReservationServiceTest(BistroTestCase):
    """Unit tests for ReservationService"""

    def test_confirm_slot(self):
        """Test a confirmed slot is stored with a 6 digit code"""
        reservation = ReservationService.confirm_slot(
            TOMORROW, time(19, 0), 3, Guest("guest@example.com")
        )

        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Reservation.Status.CONFIRMED)
        self.assertEqual(reservation.allocated_capacity, 4)
        self.assertEqual(reservation.end_time, time(21, 0))
        self.assertRegex(reservation.confirmation_code, r"^\d{6}$")
        self.assertEqual(reservation.guest_contact, "guest@example.com")
        self.assertIsNone(reservation.user)

    def test_confirm_slot_notifies_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            reservation = ReservationService.confirm_slot(
                TOMORROW, time(19, 0), 2, Guest("guest@example.com")
            )

        self.assertEqual(len(callbacks), 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["guest@example.com"])
        self.assertIn(reservation.confirmation_code, mail.outbox[0].body)

    def test_confirm_slot_for_subscriber(self):
        with self.captureOnCommitCallbacks(execute=True):
            reservation = ReservationService.confirm_slot(TOMORROW, time(19, 0), 2, Subscriber(1))

        self.assertEqual(reservation.user_id, 1)
        self.assertEqual(reservation.guest_contact, "")
        self.assertEqual(mail.outbox[0].to, ["dana@example.com"])

    def test_confirm_slot_unknown_subscriber(self):
        with self.assertRaises(InvalidIdentity):
            ReservationService.confirm_slot(TOMORROW, time(19, 0), 2, Subscriber(999))

    def test_confirm_slot_rebooked_concurrently(self):
        """Test a slot shown as free but booked meanwhile is never overbooked"""
        shown = AvailabilityService.find_availability(TOMORROW, 2)
        self.assertEqual(shown.outcome, AvailabilityResult.SHOW_AVAILABILITY)
        self.assertIn(time(12, 0), shown.slots)

        # Other customers take both 2-seat tables after the search
        ReservationService.confirm_slot(TOMORROW, time(12, 0), 2, Guest("a@example.com"))
        ReservationService.confirm_slot(TOMORROW, time(11, 30), 2, Guest("b@example.com"))

        with self.assertRaises(SlotNoLongerAvailable):
            ReservationService.confirm_slot(TOMORROW, time(12, 0), 2, Guest("c@example.com"))

        self.assertEqual(Reservation.objects.filter(allocated_capacity=2).count(), 2)
        self.assertFalse(Reservation.objects.filter(guest_contact="c@example.com").exists())
        self.assertFalse(AvailabilityService.is_slot_free(TOMORROW, time(12, 0), 2))

    def test_confirm_slot_outside_hours(self):
        with self.assertRaises(SlotNotAvailable) as ctx:
            ReservationService.confirm_slot(TOMORROW, time(21, 30), 2, Guest("a@example.com"))
        self.assertNotIsInstance(ctx.exception, SlotNoLongerAvailable)

    def test_confirm_slot_in_the_past(self):
        with self.assertRaises(SlotNotAvailable):
            ReservationService.confirm_slot(TODAY - timedelta(days=1), time(12, 0), 2, Guest("a@example.com"))

    def test_confirmation_code_exhaustion(self):
        """Test colliding codes stop after a bounded number of attempts"""
        existing = self.book(day=TOMORROW + timedelta(days=2))
        with mock.patch.object(
            ReservationService, "generate_confirmation_code", return_value=existing.confirmation_code
        ) as generate:
            with self.assertRaises(CodeGenerationExhausted):
                ReservationService.confirm_slot(TOMORROW, time(12, 0), 2, Guest("a@example.com"))

        self.assertEqual(generate.call_count, 20)
        self.assertEqual(Reservation.objects.count(), 1)

    def test_edit_reservation(self):
        reservation = self.book(start=time(12, 0), party_size=2)

        edited = ReservationService.edit_reservation(
            reservation.confirmation_code, TOMORROW, time(18, 0), 4, Guest("0521234567")
        )

        edited.refresh_from_db()
        self.assertEqual(edited.start_time, time(18, 0))
        self.assertEqual(edited.end_time, time(20, 0))
        self.assertEqual(edited.allocated_capacity, 4)
        self.assertEqual(edited.guest_contact, "0521234567")
        self.assertEqual(edited.confirmation_code, reservation.confirmation_code)

    def test_edit_ignores_own_booking(self):
        """Test moving by half an hour on a single table succeeds"""
        self.only_tables(1)
        reservation = self.book(start=time(12, 0))

        edited = ReservationService.edit_reservation(
            reservation.confirmation_code, TOMORROW, time(12, 30), 2
        )
        self.assertEqual(edited.start_time, time(12, 30))
        self.assertEqual(edited.guest_contact, "guest@example.com")

    def test_edit_into_full_slot(self):
        self.only_tables(1)
        self.book(start=time(18, 0))
        reservation = self.book(start=time(12, 0))

        with self.assertRaises(SlotNotAvailable):
            ReservationService.edit_reservation(reservation.confirmation_code, TOMORROW, time(17, 0), 2)

        reservation.refresh_from_db()
        self.assertEqual(reservation.start_time, time(12, 0))

    def test_edit_unknown_code(self):
        with self.assertRaises(NotFound):
            ReservationService.edit_reservation("000000", TOMORROW, time(12, 0), 2)

    def test_edit_cancelled_reservation(self):
        reservation = self.book(status=Reservation.Status.CANCELLED)
        with self.assertRaises(ReservationNotActive):
            ReservationService.edit_reservation(reservation.confirmation_code, TOMORROW, time(13, 0), 2)

    def test_cancel_reservation(self):
        self.only_tables(1)
        reservation = self.book()

        with self.captureOnCommitCallbacks(execute=True):
            ReservationService.cancel_reservation(reservation.confirmation_code, "Plans changed")

        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Reservation.Status.CANCELLED)
        self.assertEqual(reservation.cancellation_reason, "Plans changed")
        self.assertTrue(AvailabilityService.is_slot_free(TOMORROW, time(12, 0), 2))
        self.assertEqual(len(mail.outbox), 1)

    def test_cancel_twice_succeeds(self):
        reservation = self.book()
        ReservationService.cancel_reservation(reservation.confirmation_code)
        again = ReservationService.cancel_reservation(reservation.confirmation_code)
        self.assertEqual(again.status, Reservation.Status.CANCELLED)

    def test_cancel_unknown_code(self):
        with self.assertRaises(NotFound):
            ReservationService.cancel_reservation("000000")

    def test_cancel_finished_reservations_fails(self):
        for status in (
            Reservation.Status.SEATED,
            Reservation.Status.COMPLETED,
            Reservation.Status.NO_SHOW,
        ):
            reservation = self.book(status=status)
            with self.assertRaises(ReservationNotActive):
                ReservationService.cancel_reservation(reservation.confirmation_code)

    def test_cancel_waiting_reservation_cancels_entry(self):
        reservation = self.book(day=TODAY, start=time(9, 0))
        entry = self.enqueue(reservation)

        ReservationService.cancel_reservation(reservation.confirmation_code)

        entry.refresh_from_db()
        self.assertEqual(entry.status, WaitlistEntry.Status.CANCELLED)

    def test_cancel_called_reservation_hands_table_on(self):
        """Test cancelling a called party seats the next waiter at the held table"""
        self.only_tables(1)
        called = self.book(day=TODAY, start=time(9, 0))
        self.enqueue(called, created_at=NOW - timedelta(minutes=5))
        following = self.book(day=TODAY, start=time(9, 0), contact="next@example.com")
        next_entry = self.enqueue(following)
        WaitlistService.call_next(Table.objects.get(number=1).pk)

        ReservationService.cancel_reservation(called.confirmation_code)

        following.refresh_from_db()
        next_entry.refresh_from_db()
        self.assertEqual(following.status, Reservation.Status.SEATED)
        self.assertEqual(next_entry.status, WaitlistEntry.Status.ASSIGNED)
        self.assertEqual(Seating.objects.get(check_out_time__isnull=True).reservation, following)

    def test_show_reservation(self):
        reservation = self.book()
        self.assertEqual(ReservationService.show_reservation(reservation.confirmation_code), reservation)
        with self.assertRaises(NotFound):
            ReservationService.show_reservation("123")

    def test_retrieve_lost_code_for_guest(self):
        self.book(day=TOMORROW + timedelta(days=3), contact="guest@example.com")
        soonest = self.book(day=TOMORROW, contact="guest@example.com")

        found = ReservationService.retrieve_confirmation_code(Guest("GUEST@example.com"))

        self.assertEqual(found, soonest)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(soonest.confirmation_code, mail.outbox[0].body)

    def test_retrieve_lost_code_for_subscriber(self):
        reservation = self.book(user_id=2)
        self.assertEqual(ReservationService.retrieve_confirmation_code(Subscriber(2)), reservation)
        self.assertEqual(mail.outbox[0].to, ["omer@example.com"])

    def test_retrieve_lost_code_ignores_past_and_cancelled(self):
        self.book(day=TODAY - timedelta(days=1))
        self.book(status=Reservation.Status.CANCELLED)
        with self.assertRaises(NotFound):
            ReservationService.retrieve_confirmation_code(Guest("guest@example.com"))

    def test_mark_no_shows(self):
        """Test reservations are no-shows once the arrival window closed"""
        missed = self.book(day=TODAY, start=time(10, 0))
        on_time = self.book(day=TODAY, start=time(10, 30))
        yesterday = self.book(day=TODAY - timedelta(days=1), start=time(20, 0))
        waiting = self.book(day=TODAY, start=time(10, 0), status=Reservation.Status.WAITING)

        marked = ReservationService.mark_no_shows(self.at(10, 16))

        self.assertEqual(marked, 2)
        for reservation, status in (
            (missed, Reservation.Status.NO_SHOW),
            (on_time, Reservation.Status.CONFIRMED),
            (yesterday, Reservation.Status.NO_SHOW),
            (waiting, Reservation.Status.WAITING),
        ):
            reservation.refresh_from_db()
            self.assertEqual(reservation.status, status)

    def test_arrival_window_end_is_not_a_no_show(self):
        reservation = self.book(day=TODAY, start=time(10, 0))
        self.assertEqual(ReservationService.mark_no_shows(self.at(10, 15)), 0)
        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Reservation.Status.CONFIRMED)

    def test_send_reminders_once(self):
        soon = self.book(day=TODAY, start=time(10, 30))
        later = self.book(day=TODAY, start=time(12, 0))

        self.assertEqual(ReservationService.send_reminders(NOW), 1)
        self.assertEqual(ReservationService.send_reminders(NOW), 0)

        soon.refresh_from_db()
        later.refresh_from_db()
        self.assertEqual(soon.reminder_sent_at, NOW)
        self.assertIsNone(later.reminder_sent_at)
        self.assertEqual(len(mail.outbox), 1)


class SeatingServiceTest(BistroTestCase):
    """Unit tests for SeatingService"""

    def test_scenario_c_check_in_on_time(self):
        """Test check-in at the start time seats the party"""
        reservation = self.book(day=TODAY, start=time(9, 0), party_size=2)

        result = SeatingService.check_in(reservation.confirmation_code)

        reservation.refresh_from_db()
        self.assertEqual(result.outcome, CheckInResult.SEATED)
        self.assertEqual(result.table.number, 1)
        self.assertEqual(reservation.status, Reservation.Status.SEATED)
        seating = Seating.objects.get(reservation=reservation)
        self.assertTrue(seating.is_open)
        self.assertEqual(seating.check_in_time, NOW)

    def test_check_in_picks_smallest_free_table(self):
        reservation = self.book(day=TODAY, start=time(9, 0), party_size=3)
        self.seat(self.book(day=TODAY, start=time(9, 0), party_size=3), 3)

        result = SeatingService.check_in(reservation.confirmation_code)
        self.assertEqual(result.table.number, 4)

    def test_check_in_uses_larger_table_when_tier_is_full(self):
        reservation = self.book(day=TODAY, start=time(9, 0), party_size=2)
        self.seat(self.book(day=TODAY, start=time(9, 0)), 1)
        self.seat(self.book(day=TODAY, start=time(9, 0)), 2)

        result = SeatingService.check_in(reservation.confirmation_code)
        self.assertEqual(result.table.capacity, 4)

    def test_arrival_window(self):
        reservation = self.book(day=TODAY, start=time(9, 30))

        self.set_now(self.at(9, 14))
        with self.assertRaises(ArrivedTooEarly):
            SeatingService.check_in(reservation.confirmation_code)

        self.set_now(self.at(9, 46))
        with self.assertRaises(ArrivedTooLate):
            SeatingService.check_in(reservation.confirmation_code)

        self.set_now(self.at(9, 15))
        result = SeatingService.check_in(reservation.confirmation_code)
        self.assertEqual(result.outcome, CheckInResult.SEATED)

    def test_check_in_on_wrong_day(self):
        tomorrow = self.book(day=TOMORROW, start=time(9, 0))
        yesterday = self.book(day=TODAY - timedelta(days=1), start=time(9, 0))

        with self.assertRaises(ArrivedTooEarly):
            SeatingService.check_in(tomorrow.confirmation_code)
        with self.assertRaises(ArrivedTooLate):
            SeatingService.check_in(yesterday.confirmation_code)

    def test_check_in_unknown_code(self):
        with self.assertRaises(NotFound):
            SeatingService.check_in("000000")

    def test_check_in_inactive_reservation(self):
        for status in (Reservation.Status.CANCELLED, Reservation.Status.SEATED, Reservation.Status.NO_SHOW):
            reservation = self.book(day=TODAY, start=time(9, 0), status=status)
            with self.assertRaises(ReservationNotActive):
                SeatingService.check_in(reservation.confirmation_code)

    def test_check_in_without_free_table_joins_waiting_list(self):
        """Test a full house is a successful outcome with a queued entry"""
        self.only_tables(1)
        self.seat(self.book(day=TODAY, start=time(9, 0)), 1)
        reservation = self.book(day=TODAY, start=time(9, 0))

        result = SeatingService.check_in(reservation.confirmation_code)

        reservation.refresh_from_db()
        self.assertEqual(result.outcome, CheckInResult.WAITING)
        self.assertEqual(reservation.status, Reservation.Status.WAITING)
        self.assertEqual(result.entry.priority, WaitlistEntry.Priority.HELD_RESERVATION)
        self.assertEqual(result.entry.status, WaitlistEntry.Status.WAITING)
        self.assertFalse(Seating.objects.filter(reservation=reservation).exists())

        again = SeatingService.check_in(reservation.confirmation_code)
        self.assertEqual(again.outcome, CheckInResult.ALREADY_WAITING)
        self.assertEqual(WaitlistEntry.objects.filter(reservation=reservation).count(), 1)

    def test_check_in_rolls_back_on_failure(self):
        """Test a failure while queueing leaves no entry and no status change"""
        self.only_tables(1)
        self.seat(self.book(day=TODAY, start=time(9, 0)), 1)
        reservation = self.book(day=TODAY, start=time(9, 0))

        with mock.patch.object(Reservation, "set_status", side_effect=DatabaseError("disk full")):
            with self.assertRaises(DatabaseError):
                SeatingService.check_in(reservation.confirmation_code)

        reservation.refresh_from_db()
        self.assertEqual(reservation.status, Reservation.Status.CONFIRMED)
        self.assertFalse(WaitlistEntry.objects.filter(reservation=reservation).exists())

    def test_scenario_d_checkout_seats_next_waiter(self):
        """Test checkout hands the table to the waiting party that fits"""
        self.only_tables(1)
        leaving = self.book(day=TODAY, start=time(9, 0))
        table = self.seat(leaving, 1).table
        waiting = self.book(day=TODAY, start=time(9, 0), contact="next@example.com")
        entry = self.enqueue(waiting)

        with self.captureOnCommitCallbacks(execute=True):
            result = SeatingService.check_out_and_assign_next(table.pk)

        leaving.refresh_from_db()
        waiting.refresh_from_db()
        entry.refresh_from_db()
        self.assertEqual(leaving.status, Reservation.Status.COMPLETED)
        self.assertEqual(result.closed_seating.check_out_time, NOW)
        self.assertEqual(entry.status, WaitlistEntry.Status.ASSIGNED)
        self.assertEqual(waiting.status, Reservation.Status.SEATED)
        self.assertEqual(result.next_seating.table, table)
        self.assertEqual(result.next_seating.reservation, waiting)
        self.assertEqual(result.message, "Checked out, next customer seated at table 1.")
        self.assertEqual(mail.outbox[0].to, ["next@example.com"])

    def test_checkout_nobody_waiting(self):
        table = self.seat(self.book(day=TODAY, start=time(9, 0)), 1).table
        result = SeatingService.check_out_and_assign_next(table.pk)
        self.assertIsNone(result.next_seating)
        self.assertEqual(result.message, "Checked out, nobody waiting.")

    def test_checkout_never_seats_oversized_party(self):
        table = self.seat(self.book(day=TODAY, start=time(9, 0)), 1).table
        big = self.book(day=TODAY, start=time(9, 0), party_size=4)
        entry = self.enqueue(big)

        result = SeatingService.check_out_and_assign_next(table.pk)

        entry.refresh_from_db()
        self.assertIsNone(result.next_seating)
        self.assertEqual(entry.status, WaitlistEntry.Status.WAITING)

    def test_checkout_errors(self):
        with self.assertRaises(TableNotFound):
            SeatingService.check_out_and_assign_next(999)
        with self.assertRaises(TableNotOccupied):
            SeatingService.check_out_and_assign_next(Table.objects.get(number=1).pk)

    def test_double_checkout_fails(self):
        table = self.seat(self.book(day=TODAY, start=time(9, 0)), 1).table
        SeatingService.check_out_and_assign_next(table.pk)
        with self.assertRaises(TableNotOccupied):
            SeatingService.check_out_and_assign_next(table.pk)

    def test_waiting_list_order(self):
        """Test priorities [1, 0, 1] created A, B, C are seated A, C, B"""
        table = self.seat(self.book(day=TODAY, start=time(9, 0)), 1).table
        a = self.book(day=TODAY, start=time(9, 0), contact="a@example.com")
        b = self.book(day=TODAY, start=time(9, 0), contact="b@example.com")
        c = self.book(day=TODAY, start=time(9, 0), contact="c@example.com")
        self.enqueue(a, WaitlistEntry.Priority.HELD_RESERVATION, NOW - timedelta(minutes=3))
        self.enqueue(b, WaitlistEntry.Priority.WALK_IN, NOW - timedelta(minutes=2))
        self.enqueue(c, WaitlistEntry.Priority.HELD_RESERVATION, NOW - timedelta(minutes=1))

        seated = []
        for _ in range(3):
            result = SeatingService.check_out_and_assign_next(table.pk)
            seated.append(result.next_seating.reservation)

        self.assertEqual(seated, [a, c, b])

    def test_current_seatings(self):
        open_seating = self.seat(self.book(day=TODAY, start=time(9, 0)), 2)
        closed = self.seat(self.book(day=TODAY, start=time(9, 0)), 1)
        closed.check_out()

        self.assertEqual(list(SeatingService.current_seatings()), [open_seating])


class WaitlistServiceTest(BistroTestCase):
    """Unit tests for WaitlistService"""

    def setUp(self):
        super().setUp()
        self.only_tables(1, 3)
        self.table = Table.objects.get(number=1)

    def test_next_waiting_that_fits(self):
        small = self.book(day=TODAY, start=time(9, 0))
        big = self.book(day=TODAY, start=time(9, 0), party_size=3)
        self.enqueue(big, created_at=NOW - timedelta(minutes=10))
        small_entry = self.enqueue(small)

        self.assertEqual(WaitlistService.get_next_waiting_that_fits(2), small_entry)
        self.assertEqual(WaitlistService.get_next_waiting_that_fits(4).reservation, big)

    def test_call_next_holds_table(self):
        reservation = self.book(day=TODAY, start=time(9, 0))
        entry = self.enqueue(reservation)

        with self.captureOnCommitCallbacks(execute=True):
            called = WaitlistService.call_next(self.table.pk)

        reservation.refresh_from_db()
        self.assertEqual(called, entry)
        self.assertEqual(called.status, WaitlistEntry.Status.CALLED)
        self.assertEqual(called.assigned_at, NOW)
        self.assertEqual(reservation.status, Reservation.Status.CALLED)
        self.assertTrue(Seating.objects.filter(table=self.table, reservation=reservation, check_out_time__isnull=True).exists())
        self.assertIn("table 1", mail.outbox[0].body)

    def test_call_next_nobody_fits(self):
        self.assertIsNone(WaitlistService.call_next(self.table.pk))

    def test_call_next_occupied_table(self):
        self.seat(self.book(day=TODAY, start=time(9, 0)), 1)
        with self.assertRaises(TableOccupied):
            WaitlistService.call_next(self.table.pk)

    def test_called_party_claims_table_at_check_in(self):
        reservation = self.book(day=TODAY, start=time(9, 0))
        entry = self.enqueue(reservation)
        WaitlistService.call_next(self.table.pk)

        self.set_now(NOW + timedelta(minutes=5))
        result = SeatingService.check_in(reservation.confirmation_code)

        reservation.refresh_from_db()
        entry.refresh_from_db()
        self.assertEqual(result.outcome, CheckInResult.SEATED)
        self.assertEqual(result.table, self.table)
        self.assertEqual(entry.status, WaitlistEntry.Status.ASSIGNED)
        self.assertEqual(reservation.status, Reservation.Status.SEATED)
        self.assertEqual(Seating.objects.get(reservation=reservation).check_in_time, NOW + timedelta(minutes=5))

    def test_late_called_party_loses_held_table(self):
        """Test a check-in after the hold expired releases the table without a sweep"""
        late = self.book(day=TODAY, start=time(9, 0))
        late_entry = self.enqueue(late, created_at=NOW - timedelta(minutes=1))
        following = self.book(day=TODAY, start=time(9, 0), contact="next@example.com")
        self.enqueue(following)
        WaitlistService.call_next(self.table.pk)

        self.set_now(NOW + timedelta(minutes=40))
        with self.assertRaises(ArrivedTooLate):
            SeatingService.check_in(late.confirmation_code)

        late.refresh_from_db()
        late_entry.refresh_from_db()
        following.refresh_from_db()
        self.assertEqual(late_entry.status, WaitlistEntry.Status.CANCELLED)
        self.assertEqual(late.status, Reservation.Status.CANCELLED)
        self.assertEqual(following.status, Reservation.Status.SEATED)
        self.assertEqual(Seating.objects.get(check_out_time__isnull=True).reservation, following)

    def test_called_party_claims_table_at_hold_limit(self):
        reservation = self.book(day=TODAY, start=time(9, 0))
        self.enqueue(reservation)
        WaitlistService.call_next(self.table.pk)

        self.set_now(NOW + timedelta(minutes=15))
        result = SeatingService.check_in(reservation.confirmation_code)

        self.assertEqual(result.outcome, CheckInResult.SEATED)

    def test_scenario_e_stale_called_entry_expires(self):
        """Test a called entry unclaimed for 20 minutes is cancelled and cascades"""
        called = self.book(day=TODAY, start=time(9, 0))
        called_entry = self.enqueue(called, created_at=NOW - timedelta(minutes=1))
        following = self.book(day=TODAY, start=time(9, 0), contact="next@example.com")
        following_entry = self.enqueue(following)
        WaitlistService.call_next(self.table.pk)

        self.set_now(NOW + timedelta(minutes=20))
        counts = WaitlistService.expire_stale_called_entries()

        self.assertEqual(counts, {"expired": 1, "failed": 0})
        called.refresh_from_db()
        called_entry.refresh_from_db()
        following.refresh_from_db()
        following_entry.refresh_from_db()
        self.assertEqual(called_entry.status, WaitlistEntry.Status.CANCELLED)
        self.assertEqual(called.status, Reservation.Status.CANCELLED)
        self.assertEqual(following_entry.status, WaitlistEntry.Status.ASSIGNED)
        self.assertEqual(following.status, Reservation.Status.SEATED)
        self.assertEqual(Seating.objects.get(check_out_time__isnull=True).reservation, following)

    def test_fresh_called_entry_is_kept(self):
        reservation = self.book(day=TODAY, start=time(9, 0))
        entry = self.enqueue(reservation)
        WaitlistService.call_next(self.table.pk)

        counts = WaitlistService.expire_stale_called_entries(NOW + timedelta(minutes=10))

        entry.refresh_from_db()
        self.assertEqual(counts["expired"], 0)
        self.assertEqual(entry.status, WaitlistEntry.Status.CALLED)

    def test_expiry_continues_after_failure(self):
        """Test one failing entry does not stop the sweep"""
        for number, contact in ((1, "a@example.com"), (3, "b@example.com")):
            self.enqueue(self.book(day=TODAY, start=time(9, 0), contact=contact))
            WaitlistService.call_next(Table.objects.get(number=number).pk)

        original = WaitlistService._release
        calls = []

        def flaky_release(entry, reason):
            calls.append(entry.pk)
            if len(calls) == 1:
                raise DatabaseError("lock timeout")
            return original(entry, reason)

        with mock.patch.object(WaitlistService, "_release", side_effect=flaky_release):
            counts = WaitlistService.expire_stale_called_entries(NOW + timedelta(minutes=20))

        self.assertEqual(counts, {"expired": 1, "failed": 1})
        self.assertEqual(WaitlistEntry.objects.filter(status=WaitlistEntry.Status.CALLED).count(), 1)
        self.assertEqual(WaitlistEntry.objects.filter(status=WaitlistEntry.Status.CANCELLED).count(), 1)

    def test_cancel_waiting_list_entry(self):
        reservation = self.book(day=TODAY, start=time(9, 0))
        entry = self.enqueue(reservation)

        cancelled = WaitlistService.cancel_waiting_list_entry(reservation.confirmation_code)

        reservation.refresh_from_db()
        self.assertEqual(cancelled, entry)
        self.assertEqual(cancelled.status, WaitlistEntry.Status.CANCELLED)
        self.assertEqual(reservation.status, Reservation.Status.CANCELLED)

    def test_cancel_waiting_list_entry_not_waiting(self):
        reservation = self.book(day=TODAY, start=time(9, 0))
        with self.assertRaises(NotFound):
            WaitlistService.cancel_waiting_list_entry(reservation.confirmation_code)

    def test_one_active_entry_per_reservation(self):
        from django.db import IntegrityError, transaction

        reservation = self.book(day=TODAY, start=time(9, 0))
        self.enqueue(reservation)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                WaitlistEntry.objects.create(reservation=reservation, created_at=NOW)

    def test_active_entries(self):
        waiting = self.enqueue(self.book(day=TODAY, start=time(9, 0)))
        cancelled = self.enqueue(self.book(day=TODAY, start=time(9, 0)))
        cancelled.cancel()

        self.assertEqual(list(WaitlistService.active_entries()), [waiting])


class BillingServiceTest(BistroTestCase):
    """Unit tests for automatic billing"""

    def setUp(self):
        super().setUp()
        self.reservation = self.book(day=TODAY, start=time(9, 0), party_size=3)
        self.seating = self.seat(self.reservation, 3, check_in_time=NOW - timedelta(hours=2))

    def test_due_seating_ids(self):
        recent = self.seat(self.book(day=TODAY, start=time(9, 0)), 1, check_in_time=NOW - timedelta(minutes=119))
        closed = self.seat(self.book(day=TODAY, start=time(9, 0)), 2, check_in_time=NOW - timedelta(hours=3))
        closed.check_out()

        due = BillingService.due_seating_ids(NOW)

        self.assertEqual(due, [self.seating.pk])
        self.assertNotIn(recent.pk, due)

    def test_claim_is_exclusive(self):
        """Test only one of two claims on the same seating succeeds"""
        self.assertTrue(BillingService.claim(self.seating.pk, NOW))
        self.assertFalse(BillingService.claim(self.seating.pk, NOW))

        self.seating.refresh_from_db()
        self.assertEqual(self.seating.bill_sent, Seating.BillStatus.CLAIMED)
        self.assertEqual(self.seating.bill_claimed_at, NOW)

    def test_claim_not_due(self):
        self.assertFalse(BillingService.claim(self.seating.pk, NOW - timedelta(minutes=1)))

    def test_send_bill_automatically(self):
        outcome = BillingService.send_bill_automatically(self.seating.pk, NOW)

        self.seating.refresh_from_db()
        bill = Bill.objects.get(seating=self.seating)
        self.assertEqual(outcome, BillingService.SENT)
        self.assertEqual(self.seating.bill_sent, Seating.BillStatus.SENT)
        self.assertIsNone(self.seating.bill_claimed_at)
        self.assertEqual(bill.amount, Decimal("360.00"))
        self.assertEqual(bill.sent_at, NOW)
        self.assertEqual(mail.outbox[0].to, ["guest@example.com"])
        self.assertIn("360", mail.outbox[0].body)

    def test_failed_send_releases_claim(self):
        with mock.patch("reservation.services.notifications.notify", return_value=False):
            outcome = BillingService.send_bill_automatically(self.seating.pk, NOW)

        self.seating.refresh_from_db()
        self.assertEqual(outcome, BillingService.SEND_FAILED)
        self.assertEqual(self.seating.bill_sent, Seating.BillStatus.NOT_SENT)
        self.assertIn(self.seating.pk, BillingService.due_seating_ids(NOW))

    def test_send_error_releases_claim(self):
        with mock.patch("reservation.services.notifications.notify", side_effect=RuntimeError("smtp down")):
            with self.assertRaises(RuntimeError):
                BillingService.send_bill_automatically(self.seating.pk, NOW)

        self.seating.refresh_from_db()
        self.assertEqual(self.seating.bill_sent, Seating.BillStatus.NOT_SENT)

    def test_release_stale_claims(self):
        BillingService.claim(self.seating.pk, NOW)

        self.assertEqual(BillingService.release_stale_claims(NOW + timedelta(minutes=4)), 0)
        self.assertEqual(BillingService.release_stale_claims(NOW + timedelta(minutes=6)), 1)

        self.seating.refresh_from_db()
        self.assertEqual(self.seating.bill_sent, Seating.BillStatus.NOT_SENT)

    def test_billing_sweep_bills_exactly_once(self):
        first = BillingService.run_billing_sweep(NOW)
        second = BillingService.run_billing_sweep(NOW + timedelta(seconds=30))

        self.assertEqual(first[BillingService.SENT], 1)
        self.assertEqual(second[BillingService.SENT], 0)
        self.assertEqual(Bill.objects.count(), 1)
        self.assertEqual(len(mail.outbox), 1)

    def test_billing_sweep_continues_after_failure(self):
        other = self.seat(self.book(day=TODAY, start=time(9, 0)), 1, check_in_time=NOW - timedelta(hours=3))

        original = BillingService.issue_bill

        def flaky_issue(seating):
            if seating.pk == other.pk:
                raise DatabaseError("deadlock")
            return original(seating)

        with mock.patch.object(BillingService, "issue_bill", side_effect=flaky_issue):
            counts = BillingService.run_billing_sweep(NOW)

        other.refresh_from_db()
        self.assertEqual(counts[BillingService.SENT], 1)
        self.assertEqual(counts["failed"], 1)
        self.assertEqual(other.bill_sent, Seating.BillStatus.NOT_SENT)

    def test_claim_released_before_sending(self):
        """Test a worker whose claim expired while billing does not send"""
        original = BillingService.issue_bill

        def slow_issue(seating):
            BillingService.release_stale_claims(NOW + timedelta(minutes=6))
            return original(seating)

        with mock.patch.object(BillingService, "issue_bill", side_effect=slow_issue):
            outcome = BillingService.send_bill_automatically(self.seating.pk, NOW)

        self.seating.refresh_from_db()
        self.assertEqual(outcome, BillingService.LOST_CLAIM)
        self.assertEqual(self.seating.bill_sent, Seating.BillStatus.NOT_SENT)
        self.assertEqual(len(mail.outbox), 0)

    def test_slow_worker_does_not_settle_newer_claim(self):
        """Test a send finishing after its claim was taken over leaves the newer state alone"""
        later = NOW + timedelta(minutes=6)

        def takeover(*args, **kwargs):
            BillingService.release_stale_claims(later)
            self.assertTrue(BillingService.claim(self.seating.pk, later))
            return True

        with mock.patch("reservation.services.notifications.notify", side_effect=takeover):
            outcome = BillingService.send_bill_automatically(self.seating.pk, NOW)

        self.seating.refresh_from_db()
        self.assertEqual(outcome, BillingService.LOST_CLAIM)
        self.assertEqual(self.seating.bill_sent, Seating.BillStatus.CLAIMED)
        self.assertEqual(self.seating.bill_claimed_at, later)
        self.assertIsNone(Bill.objects.get(seating=self.seating).sent_at)

    def test_request_bill(self):
        bill, sent = BillingService.request_bill(self.reservation.confirmation_code)

        self.seating.refresh_from_db()
        self.assertTrue(sent)
        self.assertEqual(bill.amount, Decimal("360.00"))
        self.assertEqual(bill.sent_at, NOW)
        self.assertEqual(self.seating.bill_sent, Seating.BillStatus.SENT)
        self.assertEqual(mail.outbox[0].to, ["guest@example.com"])

        counts = BillingService.run_billing_sweep(NOW)
        self.assertEqual(counts[BillingService.SENT], 0)
        self.assertEqual(len(mail.outbox), 1)

    def test_request_bill_twice_reuses_bill(self):
        first, _ = BillingService.request_bill(self.reservation.confirmation_code)
        second, sent = BillingService.request_bill(self.reservation.confirmation_code)

        self.assertTrue(sent)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Bill.objects.count(), 1)
        self.assertEqual(len(mail.outbox), 2)

    def test_request_bill_not_delivered(self):
        with mock.patch("reservation.services.notifications.notify", return_value=False):
            bill, sent = BillingService.request_bill(self.reservation.confirmation_code)

        self.seating.refresh_from_db()
        self.assertFalse(sent)
        self.assertIsNone(bill.sent_at)
        self.assertEqual(self.seating.bill_sent, Seating.BillStatus.NOT_SENT)
        self.assertIn(self.seating.pk, BillingService.due_seating_ids(NOW))

    def test_request_bill_while_sweep_holds_claim(self):
        BillingService.claim(self.seating.pk, NOW)

        _, sent = BillingService.request_bill(self.reservation.confirmation_code)

        self.seating.refresh_from_db()
        self.assertTrue(sent)
        self.assertEqual(self.seating.bill_sent, Seating.BillStatus.CLAIMED)
        self.assertEqual(self.seating.bill_claimed_at, NOW)

    def test_request_bill_unknown_code(self):
        with self.assertRaises(NotFound):
            BillingService.request_bill("000000")

    def test_request_bill_without_table(self):
        upcoming = self.book()

        with self.assertRaises(NotFound):
            BillingService.request_bill(upcoming.confirmation_code)
        self.assertFalse(Bill.objects.filter(seating__reservation=upcoming).exists())


class NotificationTest(TestCase):
    """Unit tests for notification routing"""

    fixtures = ['users.json']

    def test_contact_routing(self):
        from reservation.services import notifications

        with mock.patch.object(notifications, "send_sms", return_value=True) as send_sms:
            self.assertTrue(notifications.send_to_contact("a@example.com", "hello"))
            self.assertTrue(notifications.send_to_contact("0521234567", "hello"))

        send_sms.assert_called_once_with("0521234567", "hello")
        self.assertEqual(mail.outbox[0].to, ["a@example.com"])

    def test_empty_contact_is_not_sent(self):
        from reservation.services import notifications

        self.assertFalse(notifications.send_to_contact("  ", "hello"))

    def test_contacts_for_identity(self):
        from reservation.services.notifications import contacts_for

        self.assertEqual(contacts_for(Guest("0521234567")), ["0521234567"])
        self.assertEqual(contacts_for(Subscriber(1)), ["dana@example.com", "0501234567"])
        self.assertEqual(contacts_for(Subscriber(2)), ["omer@example.com"])
        self.assertEqual(contacts_for(Subscriber(999)), [])

    @override_settings(TWILIO_ACCOUNT_SID="AC123", TWILIO_AUTH_TOKEN="token", TWILIO_PHONE_NUMBER="+15550000")
    def test_sms_through_twilio(self):
        from twilio.base.exceptions import TwilioRestException
        from reservation.services import notifications

        with mock.patch.object(notifications, "TwilioClient") as client_class:
            self.assertTrue(notifications.send_sms("0521234567", "hello"))
            client_class.return_value.messages.create.assert_called_once_with(
                body="hello", from_="+15550000", to="0521234567"
            )

            client_class.return_value.messages.create.side_effect = TwilioRestException(400, "uri", "bad number")
            self.assertFalse(notifications.send_sms("0521234567", "hello"))


class PeriodicTaskTest(BistroTestCase):
    """Unit tests for the Celery beat tasks"""

    def test_send_due_bills(self):
        from reservation.tasks import send_due_bills

        reservation = self.book(day=TODAY, start=time(7, 0))
        self.seat(reservation, 1, check_in_time=NOW - timedelta(hours=2))

        counts = send_due_bills()

        self.assertEqual(counts["sent"], 1)
        self.assertEqual(Bill.objects.count(), 1)

    def test_mark_no_shows(self):
        from reservation.tasks import mark_no_shows

        self.book(day=TODAY - timedelta(days=1))
        self.assertEqual(mark_no_shows(), {"marked_count": 1})

    def test_send_reservation_reminders(self):
        from reservation.tasks import send_reservation_reminders

        self.book(day=TODAY, start=time(10, 0))
        self.assertEqual(send_reservation_reminders(), {"sent_count": 1})

    def test_expire_called_waitlist_entries(self):
        from reservation.tasks import expire_called_waitlist_entries

        self.assertEqual(expire_called_waitlist_entries(), {"expired": 0, "failed": 0})

    def test_ensure_opening_hours(self):
        from reservation.tasks import ensure_opening_hours

        result = ensure_opening_hours()

        self.assertEqual(result, {"created_count": 20})
        self.assertEqual(OpeningHours.objects.filter(date__gte=TODAY).count(), 30)
