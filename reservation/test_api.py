from datetime import datetime, time, timedelta, timezone as dt_timezone
from unittest import mock

from django.core import mail
from django.db import DatabaseError
from django.test import override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from reservation.models import Reservation, Seating, WaitlistEntry
from restaurant.models import OpeningHours, Table
from users.models import CustomUser

NOW = datetime(2030, 6, 3, 9, 0, tzinfo=dt_timezone.utc)
TODAY = NOW.date()
TOMORROW = TODAY + timedelta(days=1)


@override_settings(TIME_ZONE="UTC")
class BistroAPITestCase(APITestCase):
    fixtures = ['users.json', 'tables.json']

    def setUp(self):
        """Set up test client, clock and opening hours"""
        patcher = mock.patch("django.utils.timezone.now", return_value=NOW)
        patcher.start()
        self.addCleanup(patcher.stop)

        for offset in range(0, 9):
            OpeningHours.objects.create(
                date=TODAY + timedelta(days=offset),
                open_time=time(10, 0),
                close_time=time(23, 0),
            )

        self.client = APIClient()
        self.host = CustomUser.objects.get(username='host')
        self.customer = CustomUser.objects.get(username='dana')

    def book(self, code, day=TOMORROW, start=time(12, 0), party_size=2, status=Reservation.Status.CONFIRMED):
        return Reservation.objects.create(
            confirmation_code=code,
            guest_contact='guest@example.com',
            date=day,
            start_time=start,
            party_size=party_size,
            allocated_capacity=2 if party_size <= 2 else 4,
            status=status,
            created_at=NOW,
        )

    def assertEnvelope(self, response, success=True):
        self.assertEqual(set(response.data), {'success', 'message', 'data'} | ({'code'} if not success else set()))
        self.assertIs(response.data['success'], success)
        self.assertTrue(response.data['message'])


class AvailabilityAPITest(BistroAPITestCase):
    """API tests for the availability endpoint"""

    def setUp(self):
        super().setUp()
        self.url = reverse('availability')

    def test_get_availability_success(self):
        """Test a free day lists its start times"""
        response = self.client.get(self.url, {'date': TOMORROW.isoformat(), 'party_size': 3})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEnvelope(response)
        data = response.data['data']
        self.assertEqual(data['outcome'], 'SHOW_AVAILABILITY')
        self.assertEqual(data['allocated_capacity'], 4)
        self.assertEqual(data['slots'][0], '10:00')
        self.assertEqual(data['suggestions'], [])

    def test_get_availability_suggestions(self):
        """Test a closed day falls back to the next days"""
        OpeningHours.objects.filter(date=TOMORROW).update(open_time=None, close_time=None)

        response = self.client.get(self.url, {'date': TOMORROW.isoformat(), 'party_size': 2})

        data = response.data['data']
        self.assertEqual(data['outcome'], 'SHOW_SUGGESTIONS')
        self.assertEqual(data['suggestions'][0]['date'], (TOMORROW + timedelta(days=1)).isoformat())
        self.assertEqual(data['suggestions'][0]['times'], ['10:00', '10:30', '11:00'])

    def test_get_availability_invalid_date(self):
        """Test availability check with invalid date format"""
        response = self.client.get(self.url, {'date': 'invalid-date', 'party_size': 2})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEnvelope(response, success=False)
        self.assertIn('date', response.data['data'])

    def test_get_availability_party_too_large(self):
        response = self.client.get(self.url, {'date': TOMORROW.isoformat(), 'party_size': 12})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'party_too_large')


class ConfirmReservationAPITest(BistroAPITestCase):
    """API tests for reservation creation endpoint"""

    def setUp(self):
        super().setUp()
        self.url = reverse('confirm-reservation')

    def test_confirm_as_guest(self):
        """Test successful reservation creation"""
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(self.url, {
                'date': TOMORROW.isoformat(),
                'start_time': '19:00',
                'party_size': 2,
                'guest_contact': 'guest@example.com',
            }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEnvelope(response)
        code = response.data['data']['confirmation_code']
        self.assertIn(code, response.data['message'])
        self.assertEqual(response.data['data']['status'], Reservation.Status.CONFIRMED)
        self.assertEqual(len(mail.outbox), 1)

    def test_confirm_as_subscriber(self):
        response = self.client.post(self.url, {
            'date': TOMORROW.isoformat(),
            'start_time': '19:00',
            'party_size': 4,
            'user_id': self.customer.id,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['user'], self.customer.id)

    def test_confirm_with_both_identities(self):
        response = self.client.post(self.url, {
            'date': TOMORROW.isoformat(),
            'start_time': '19:00',
            'party_size': 2,
            'user_id': self.customer.id,
            'guest_contact': 'guest@example.com',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_identity')

    def test_confirm_taken_slot(self):
        """Test reservation creation when the tier is fully booked"""
        self.book('111111')
        self.book('222222')

        response = self.client.post(self.url, {
            'date': TOMORROW.isoformat(),
            'start_time': '13:00',
            'party_size': 2,
            'guest_contact': '0521234567',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEnvelope(response, success=False)
        self.assertEqual(response.data['code'], 'slot_no_longer_available')

    def test_confirm_missing_fields(self):
        response = self.client.post(self.url, {'guest_contact': 'guest@example.com'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('party_size', response.data['data'])

    def test_storage_failure(self):
        """Test database errors are reported as a storage failure"""
        with mock.patch(
            'reservation.services.reservation.ReservationService.confirm_slot',
            side_effect=DatabaseError('connection lost'),
        ):
            response = self.client.post(self.url, {
                'date': TOMORROW.isoformat(),
                'start_time': '19:00',
                'party_size': 2,
                'guest_contact': 'guest@example.com',
            }, format='json')

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data['code'], 'storage_failure')


class ReservationDetailAPITest(BistroAPITestCase):
    """API tests for showing, editing and cancelling a reservation"""

    def setUp(self):
        super().setUp()
        self.reservation = self.book('123456')

    def test_show_reservation(self):
        response = self.client.get(reverse('reservation-detail', args=['123456']))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['end_time'], '14:00:00')

    def test_show_unknown_reservation(self):
        response = self.client.get(reverse('reservation-detail', args=['654321']))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEnvelope(response, success=False)
        self.assertEqual(response.data['code'], 'not_found')

    def test_edit_reservation(self):
        response = self.client.put(reverse('reservation-detail', args=['123456']), {
            'date': TOMORROW.isoformat(),
            'start_time': '18:30',
            'party_size': 3,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.reservation.refresh_from_db()
        self.assertEqual(self.reservation.start_time, time(18, 30))
        self.assertEqual(self.reservation.allocated_capacity, 4)
        self.assertEqual(self.reservation.guest_contact, 'guest@example.com')

    def test_cancel_reservation(self):
        """Test successful reservation cancellation"""
        url = reverse('cancel-reservation', args=['123456'])
        response = self.client.post(url, {'reason': 'Change of plans'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], Reservation.Status.CANCELLED)
        self.assertEqual(response.data['data']['cancellation_reason'], 'Change of plans')

        again = self.client.post(url, {}, format='json')
        self.assertEqual(again.status_code, status.HTTP_200_OK)

    def test_cancel_completed_reservation(self):
        self.book('777777', status=Reservation.Status.COMPLETED)

        response = self.client.post(reverse('cancel-reservation', args=['777777']), {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'reservation_not_active')

    def test_lost_code(self):
        response = self.client.post(reverse('lost-code'), {'guest_contact': 'guest@example.com'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertNotIn('123456', str(response.data))
        self.assertIn('123456', mail.outbox[0].body)


class FrontOfHouseAPITest(BistroAPITestCase):
    """API tests for check-in, checkout and the waiting list"""

    def test_check_in_seats_party(self):
        self.book('123456', day=TODAY, start=time(9, 0))

        response = self.client.post(reverse('check-in'), {'confirmation_code': '123456'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['outcome'], 'SEATED')
        self.assertEqual(response.data['data']['table_number'], 1)
        self.assertEqual(response.data['data']['table_capacity'], 2)

    def test_check_in_full_house_waits(self):
        Table.objects.exclude(number=1).update(is_active=False)
        seated = self.book('111111', day=TODAY, start=time(9, 0), status=Reservation.Status.SEATED)
        Seating.objects.create(table=Table.objects.get(number=1), reservation=seated, check_in_time=NOW)
        self.book('123456', day=TODAY, start=time(9, 0))

        response = self.client.post(reverse('check-in'), {'confirmation_code': '123456'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIs(response.data['success'], True)
        self.assertEqual(response.data['data']['outcome'], 'WAITING')
        self.assertIsNone(response.data['data']['table_number'])

    def test_check_in_too_early(self):
        self.book('123456', day=TODAY, start=time(12, 0))

        response = self.client.post(reverse('check-in'), {'confirmation_code': '123456'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'arrived_too_early')

    def test_checkout_requires_staff(self):
        table = Table.objects.get(number=1)
        url = reverse('checkout', args=[table.pk])

        response = self.client.post(url)
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
        self.assertIs(response.data['success'], False)

        self.client.force_authenticate(user=self.customer)
        response = self.client.post(url)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_checkout_and_assign_next(self):
        table = Table.objects.get(number=1)
        seated = self.book('111111', day=TODAY, start=time(9, 0), status=Reservation.Status.SEATED)
        Seating.objects.create(table=table, reservation=seated, check_in_time=NOW)
        waiting = self.book('222222', day=TODAY, start=time(9, 0), status=Reservation.Status.WAITING)
        WaitlistEntry.objects.create(reservation=waiting, created_at=NOW)

        self.client.force_authenticate(user=self.host)
        response = self.client.post(reverse('checkout', args=[table.pk]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Checked out, next customer seated at table 1.')
        self.assertEqual(response.data['data']['next_seating']['confirmation_code'], '222222')

    def test_checkout_free_table(self):
        self.client.force_authenticate(user=self.host)
        response = self.client.post(reverse('checkout', args=[Table.objects.get(number=1).pk]))

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'table_not_occupied')

    def test_call_next_and_leave(self):
        waiting = self.book('222222', day=TODAY, start=time(9, 0), status=Reservation.Status.WAITING)
        WaitlistEntry.objects.create(reservation=waiting, created_at=NOW)
        self.client.force_authenticate(user=self.host)

        listed = self.client.get(reverse('waitlist'))
        self.assertEqual(len(listed.data['data']), 1)

        response = self.client.post(reverse('call-next', args=[Table.objects.get(number=2).pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], WaitlistEntry.Status.CALLED)

        seatings = self.client.get(reverse('current-seatings'))
        self.assertEqual(seatings.data['data'][0]['table_number'], 2)

        response = self.client.post(reverse('leave-waitlist', args=['222222']))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Seating.objects.filter(check_out_time__isnull=True).exists())

    def test_reservation_list_filters(self):
        self.book('111111', day=TODAY, start=time(9, 0))
        self.book('222222')
        self.book('333333', status=Reservation.Status.CANCELLED)
        self.client.force_authenticate(user=self.host)

        response = self.client.get(reverse('reservation-list'), {
            'date': TOMORROW.isoformat(),
            'status': Reservation.Status.CONFIRMED,
        })

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([r['confirmation_code'] for r in response.data['data']], ['222222'])


class BillAPITest(BistroAPITestCase):
    """API tests for a bill requested at the table"""

    def test_request_bill(self):
        seated = self.book('123456', day=TODAY, start=time(9, 0), party_size=3, status=Reservation.Status.SEATED)
        Seating.objects.create(table=Table.objects.get(number=3), reservation=seated, check_in_time=NOW)

        response = self.client.post(reverse('request-bill', args=['123456']))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEnvelope(response)
        self.assertEqual(response.data['data']['amount'], '360.00')
        self.assertEqual(response.data['data']['table_number'], 3)
        self.assertIs(response.data['data']['sent'], True)
        self.assertIn('360', mail.outbox[0].body)
        self.assertEqual(Seating.objects.get(reservation=seated).bill_sent, Seating.BillStatus.SENT)

    def test_request_bill_not_seated(self):
        self.book('123456')

        response = self.client.post(reverse('request-bill', args=['123456']))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEnvelope(response, success=False)
        self.assertEqual(response.data['code'], 'not_found')

    def test_request_bill_unknown_code(self):
        response = self.client.post(reverse('request-bill', args=['654321']))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')
