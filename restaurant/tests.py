from datetime import datetime, time, timedelta, timezone as dt_timezone
from unittest import mock

from django.core import mail
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from reservation.exceptions import TableNotFound, TableNumberTaken, TableOccupied
from reservation.models import Reservation, Seating
from reservation.services.management import ManagementService
from restaurant.models import OpeningHours, Table
from users.models import CustomUser

NOW = datetime(2030, 6, 3, 9, 0, tzinfo=dt_timezone.utc)
TODAY = NOW.date()
TOMORROW = TODAY + timedelta(days=1)


class ClockMixin:
    fixtures = ['users.json', 'tables.json']

    def setUp(self):
        super().setUp()
        patcher = mock.patch("django.utils.timezone.now", return_value=NOW)
        patcher.start()
        self.addCleanup(patcher.stop)
        OpeningHours.objects.create(date=TOMORROW, open_time=time(10, 0), close_time=time(23, 0))

    def book(self, start, party_size=2, day=TOMORROW, created_at=NOW, status=Reservation.Status.CONFIRMED):
        return Reservation.objects.create(
            confirmation_code=f"{start:%H%M}{Reservation.objects.count():02d}",
            guest_contact="guest@example.com",
            date=day,
            start_time=start,
            party_size=party_size,
            allocated_capacity=2 if party_size <= 2 else 4,
            status=status,
            created_at=created_at,
        )


class OpeningHoursModelTest(TestCase):
    """Unit tests for OpeningHours model"""

    def test_closed_without_times(self):
        hours = OpeningHours(date=TOMORROW)
        self.assertTrue(hours.is_closed)
        self.assertIn("closed", str(hours))

    def test_open_day(self):
        hours = OpeningHours(date=TOMORROW, open_time=time(10), close_time=time(22))
        self.assertFalse(hours.is_closed)
        self.assertEqual(hours.day_name, "Tuesday")


@override_settings(TIME_ZONE="UTC")
class TableManagementTest(ClockMixin, TestCase):
    """Unit tests for table inventory changes"""

    def test_add_table(self):
        table = ManagementService.add_table(6, 8)
        self.assertTrue(table.is_active)
        self.assertEqual(table.capacity, 8)

    def test_add_duplicate_table(self):
        with self.assertRaises(TableNumberTaken):
            ManagementService.add_table(1, 4)

    def test_unknown_table(self):
        with self.assertRaises(TableNotFound):
            ManagementService.change_table_capacity(99, 4)
        with self.assertRaises(TableNotFound):
            ManagementService.deactivate_table(99)

    def test_unchanged_capacity_is_a_no_op(self):
        self.book(time(12, 0))
        self.book(time(12, 0))

        table, cancelled = ManagementService.change_table_capacity(1, 2)

        self.assertEqual(cancelled, [])
        self.assertEqual(table.capacity, 2)

    def test_capacity_change_of_seated_table(self):
        reservation = self.book(time(9, 0), day=TODAY, status=Reservation.Status.SEATED)
        Seating.objects.create(table=Table.objects.get(number=1), reservation=reservation, check_in_time=NOW)

        with self.assertRaises(TableOccupied):
            ManagementService.change_table_capacity(1, 4)
        with self.assertRaises(TableOccupied):
            ManagementService.deactivate_table(1)

    def test_capacity_change_cancels_newest_overlapping_booking(self):
        """Test the tier losing a table keeps the oldest bookings"""
        older = self.book(time(12, 0), created_at=NOW - timedelta(days=2))
        newer = self.book(time(13, 0), created_at=NOW - timedelta(days=1))
        evening = self.book(time(18, 0), created_at=NOW)

        with self.captureOnCommitCallbacks(execute=True):
            table, cancelled = ManagementService.change_table_capacity(1, 4)

        self.assertEqual(table.capacity, 4)
        self.assertEqual(cancelled, [newer])
        for reservation, expected in (
            (older, Reservation.Status.CONFIRMED),
            (newer, Reservation.Status.CANCELLED),
            (evening, Reservation.Status.CONFIRMED),
        ):
            reservation.refresh_from_db()
            self.assertEqual(reservation.status, expected)
        self.assertEqual(len(mail.outbox), 1)

    def test_tier_fits_after_change(self):
        """Test no instant stays overbooked after shrinking a tier"""
        for hour in (12, 12, 13, 13):
            self.book(time(hour, 0))

        ManagementService.deactivate_table(2)

        live = Reservation.objects.filter(status=Reservation.Status.CONFIRMED, allocated_capacity=2)
        for instant in (time(12, 0), time(13, 0), time(13, 30)):
            concurrent = [r for r in live if r.start_time <= instant < r.end_time]
            self.assertLessEqual(len(concurrent), 1)

    def test_arrived_parties_are_never_cancelled(self):
        seated = self.book(time(9, 0), day=TODAY, status=Reservation.Status.SEATED)
        Seating.objects.create(table=Table.objects.get(number=2), reservation=seated, check_in_time=NOW)
        upcoming = self.book(time(10, 0), day=TODAY, created_at=NOW - timedelta(days=5))
        other = self.book(time(10, 0), day=TODAY, created_at=NOW - timedelta(days=6))

        table, cancelled = ManagementService.deactivate_table(1)

        self.assertFalse(table.is_active)
        self.assertEqual(len(cancelled), 2)
        self.assertCountEqual(cancelled, [upcoming, other])
        seated.refresh_from_db()
        self.assertEqual(seated.status, Reservation.Status.SEATED)

    def test_deactivate_twice(self):
        ManagementService.deactivate_table(5)
        table, cancelled = ManagementService.deactivate_table(5)
        self.assertFalse(table.is_active)
        self.assertEqual(cancelled, [])


@override_settings(TIME_ZONE="UTC")
class OpeningHoursManagementTest(ClockMixin, TestCase):
    """Unit tests for opening hours changes"""

    def test_shorter_hours_cancel_reservations_outside(self):
        lunch = self.book(time(12, 0))
        late_lunch = self.book(time(13, 0))
        breakfast = self.book(time(10, 0))

        hours, cancelled = ManagementService.update_opening_hours(TOMORROW, time(11, 0), time(14, 0))

        self.assertEqual(hours.close_time, time(14, 0))
        self.assertCountEqual(cancelled, [late_lunch, breakfast])
        lunch.refresh_from_db()
        self.assertEqual(lunch.status, Reservation.Status.CONFIRMED)

    def test_closing_a_day_cancels_everything(self):
        reservations = [self.book(time(12, 0)), self.book(time(19, 0))]
        waiting = self.book(time(12, 0), status=Reservation.Status.WAITING)

        hours, cancelled = ManagementService.update_opening_hours(
            TOMORROW, None, None, OpeningHours.Occasion.STRIKE
        )

        self.assertTrue(hours.is_closed)
        self.assertEqual(hours.occasion, OpeningHours.Occasion.STRIKE)
        self.assertCountEqual(cancelled, reservations)
        self.assertIn("Strike", cancelled[0].cancellation_reason)
        waiting.refresh_from_db()
        self.assertEqual(waiting.status, Reservation.Status.WAITING)

    def test_new_day_is_created(self):
        day = TOMORROW + timedelta(days=3)
        hours, cancelled = ManagementService.update_opening_hours(day, time(12, 0), time(20, 0))
        self.assertEqual(hours.date, day)
        self.assertEqual(cancelled, [])

    def test_ensure_opening_hours(self):
        created = ManagementService.ensure_opening_hours(TODAY)

        self.assertEqual(created, 29)
        self.assertEqual(OpeningHours.objects.count(), 30)
        self.assertEqual(OpeningHours.objects.get(date=TOMORROW).close_time, time(23, 0))
        self.assertEqual(ManagementService.ensure_opening_hours(TODAY), 0)


@override_settings(TIME_ZONE="UTC")
class TableAPITest(ClockMixin, APITestCase):
    """API tests for the table endpoints"""

    def setUp(self):
        super().setUp()
        self.manager = CustomUser.objects.get(username='manager')
        self.host = CustomUser.objects.get(username='host')

    def test_list_tables_as_staff(self):
        self.client.force_authenticate(user=self.host)
        response = self.client.get(reverse('table-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([t['number'] for t in response.data['data']], [1, 2, 3, 4, 5])

    def test_create_table_requires_manager(self):
        self.client.force_authenticate(user=self.host)
        response = self.client.post(reverse('table-list'), {'number': 6, 'capacity': 8}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertIs(response.data['success'], False)

    def test_create_table(self):
        self.client.force_authenticate(user=self.manager)
        response = self.client.post(reverse('table-list'), {'number': 6, 'capacity': 8}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(Table.objects.filter(number=6, capacity=8).exists())

    def test_change_capacity(self):
        self.book(time(12, 0), created_at=NOW - timedelta(days=1))
        self.book(time(12, 0))
        self.client.force_authenticate(user=self.manager)

        response = self.client.patch(reverse('table-detail', args=[1]), {'capacity': 4}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['table']['capacity'], 4)
        self.assertEqual(len(response.data['data']['cancelled']), 1)

    def test_deactivate_table(self):
        self.client.force_authenticate(user=self.manager)
        response = self.client.delete(reverse('table-detail', args=[5]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Table.objects.get(number=5).is_active)

    def test_update_opening_hours(self):
        self.book(time(20, 0))
        self.client.force_authenticate(user=self.manager)

        response = self.client.put(
            reverse('opening-hours-detail', args=[TOMORROW.isoformat()]),
            {'open_time': '10:00', 'close_time': '21:00', 'occasion': 'HOLIDAY'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['hours']['occasion'], 'HOLIDAY')
        self.assertEqual(len(response.data['data']['cancelled']), 1)

    def test_update_opening_hours_needs_both_times(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.put(
            reverse('opening-hours-detail', args=[TOMORROW.isoformat()]),
            {'open_time': '10:00'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_opening_hours_is_public(self):
        response = self.client.get(reverse('opening-hours-list'), {'date__gte': TODAY.isoformat()})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data'][0]['day_name'], 'Tuesday')
