# reservation/services/reservation.py

import logging
import secrets
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from reservation.exceptions import (
    CodeGenerationExhausted,
    InvalidIdentity,
    NotFound,
    ReservationNotActive,
    SlotNoLongerAvailable,
    SlotNotAvailable,
)
from reservation.identity import Guest, Identity, Subscriber
from reservation.models import Reservation, Seating, WaitlistEntry
from reservation.services import notifications
from reservation.services.availability import AvailabilityService
from restaurant.models import Table

logger = logging.getLogger(__name__)


class ReservationService:
    """
    Service class for handling the reservation lifecycle.
    """

    @staticmethod
    def generate_confirmation_code() -> str:
        """Random 6 digit code, never starting with 0."""
        return str(secrets.randbelow(900000) + 100000)

    @classmethod
    def _unique_confirmation_code(cls) -> str:
        for _ in range(settings.CONFIRMATION_CODE_MAX_ATTEMPTS):
            code = cls.generate_confirmation_code()
            if not Reservation.objects.filter(confirmation_code=code).exists():
                return code
        logger.error(
            f"No free confirmation code after {settings.CONFIRMATION_CODE_MAX_ATTEMPTS} attempts"
        )
        raise CodeGenerationExhausted()

    @staticmethod
    def validate_identity(identity: Identity) -> Identity:
        if isinstance(identity, Guest):
            if not identity.contact.strip():
                raise InvalidIdentity("Guest contact is empty.")
            return identity
        if isinstance(identity, Subscriber):
            if not get_user_model().objects.filter(pk=identity.user_id, is_active=True).exists():
                raise InvalidIdentity(f"Subscriber {identity.user_id} does not exist.")
            return identity
        raise InvalidIdentity()

    @staticmethod
    def get_by_code(code: str, lock: bool = False) -> Reservation:
        queryset = Reservation.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(confirmation_code=str(code).strip())
        except Reservation.DoesNotExist:
            raise NotFound(f"No reservation with confirmation code {code}.")

    @staticmethod
    def _lock_tier(tier: int):
        """
        Lock the tables of a tier so that concurrent bookings of the same
        tier re-validate one after the other.
        """
        list(Table.objects.select_for_update().filter(is_active=True, capacity=tier))

    @staticmethod
    def _notify_after_commit(reservation: Reservation, message: str, subject: str):
        identity = reservation.identity
        transaction.on_commit(lambda: notifications.notify(identity, message, subject))

    @classmethod
    def confirm_slot(
        cls, date: date, start_time: time, party_size: int, identity: Identity
    ) -> Reservation:
        """
        Book the slot if it is still free and send the confirmation code.
        """
        cls.validate_identity(identity)
        tier = AvailabilityService.allocated_capacity(party_size)
        if not AvailabilityService.is_bookable_start(date, start_time):
            raise SlotNotAvailable(
                f"{start_time:%H:%M} on {date} is not a bookable time."
            )

        with transaction.atomic():
            cls._lock_tier(tier)
            if not AvailabilityService.is_slot_free(date, start_time, tier):
                raise SlotNoLongerAvailable()

            reservation = Reservation(
                confirmation_code=cls._unique_confirmation_code(),
                date=date,
                start_time=start_time,
                party_size=party_size,
                allocated_capacity=tier,
                status=Reservation.Status.CONFIRMED,
                created_at=timezone.now(),
            )
            reservation.set_identity(identity)
            reservation.save()

            cls._notify_after_commit(
                reservation,
                notifications.confirmation_message(reservation),
                "Reservation confirmed",
            )

        logger.info(
            f"Reservation {reservation.confirmation_code} confirmed for {party_size} "
            f"on {date} at {start_time} (tier {tier})"
        )
        return reservation

    @classmethod
    def edit_reservation(
        cls,
        code: str,
        new_date: date,
        new_start_time: time,
        new_party_size: int,
        new_identity: Optional[Identity] = None,
    ) -> Reservation:
        """
        Move a reservation that has not started yet to a new slot.
        The reservation's own booking is ignored when re-validating.
        """
        if new_identity is not None:
            cls.validate_identity(new_identity)
        tier = AvailabilityService.allocated_capacity(new_party_size)

        with transaction.atomic():
            reservation = cls.get_by_code(code, lock=True)
            if reservation.status not in Reservation.UPCOMING_STATUSES:
                raise ReservationNotActive(
                    f"A {reservation.get_status_display().lower()} reservation cannot be edited."
                )
            if not AvailabilityService.is_bookable_start(new_date, new_start_time):
                raise SlotNotAvailable(
                    f"{new_start_time:%H:%M} on {new_date} is not a bookable time."
                )

            cls._lock_tier(tier)
            if not AvailabilityService.is_slot_free(
                new_date, new_start_time, tier, exclude_reservation=reservation
            ):
                raise SlotNotAvailable()

            reservation.date = new_date
            reservation.start_time = new_start_time
            reservation.party_size = new_party_size
            reservation.allocated_capacity = tier
            if new_identity is not None:
                reservation.set_identity(new_identity)
            # A moved reservation needs a fresh reminder
            reservation.reminder_sent_at = None
            reservation.save()

            cls._notify_after_commit(
                reservation, notifications.update_message(reservation), "Reservation updated"
            )

        logger.info(f"Reservation {reservation.confirmation_code} moved to {new_date} {new_start_time}")
        return reservation

    @classmethod
    def cancel_reservation(cls, code: str, reason: str = "") -> Reservation:
        """
        Cancel a reservation. Cancelling twice succeeds without changes.
        A table held for the party is handed to the next waiter.
        """
        from reservation.services.seating import SeatingService

        with transaction.atomic():
            reservation = cls.get_by_code(code, lock=True)
            if reservation.status == Reservation.Status.CANCELLED:
                return reservation
            if reservation.status in (
                Reservation.Status.SEATED,
                Reservation.Status.COMPLETED,
                Reservation.Status.NO_SHOW,
            ):
                raise ReservationNotActive(
                    f"A {reservation.get_status_display().lower()} reservation cannot be cancelled."
                )

            held_table_id = cls.held_table_id(reservation)
            for entry in reservation.waitlist_entries.select_for_update().filter(
                status__in=WaitlistEntry.ACTIVE_STATUSES
            ):
                entry.cancel()

            reservation.cancel(reason or "Cancelled by customer")
            if held_table_id is not None:
                SeatingService.check_out_and_assign_next(held_table_id)

            cls._notify_after_commit(
                reservation,
                notifications.cancellation_message(reservation),
                "Reservation cancelled",
            )

        logger.info(f"Reservation {reservation.confirmation_code} cancelled")
        return reservation

    @staticmethod
    def held_table_id(reservation: Reservation) -> Optional[int]:
        """
        Table held for a CALLED reservation, if any.
        """
        if reservation.status != Reservation.Status.CALLED:
            return None
        return (
            Seating.objects.filter(reservation=reservation, check_out_time__isnull=True)
            .values_list("table_id", flat=True)
            .first()
        )

    @classmethod
    def show_reservation(cls, code: str) -> Reservation:
        return cls.get_by_code(code)

    @staticmethod
    def upcoming_for(identity: Identity) -> List[Reservation]:
        """
        Upcoming active reservations of an identity, soonest first.
        """
        queryset = Reservation.objects.filter(
            status__in=Reservation.UPCOMING_STATUSES,
            date__gte=timezone.localdate(),
        )
        if isinstance(identity, Subscriber):
            queryset = queryset.filter(user_id=identity.user_id)
        else:
            queryset = queryset.filter(guest_contact__iexact=identity.contact)
        return list(queryset.order_by("date", "start_time", "id"))

    @classmethod
    def retrieve_confirmation_code(cls, identity: Identity) -> Reservation:
        """
        Re-send the code of the soonest upcoming reservation of a customer
        who lost it.
        """
        upcoming = cls.upcoming_for(identity)
        if not upcoming:
            raise NotFound("No upcoming reservation found for these details.")

        reservation = upcoming[0]
        sent = notifications.notify(
            reservation.identity,
            notifications.lost_code_message(reservation),
            "Your confirmation code",
        )
        if not sent:
            logger.warning(f"Could not re-send code of reservation {reservation.pk}")
        return reservation

    @classmethod
    def mark_no_shows(cls, now: Optional[datetime] = None) -> int:
        """
        Mark reservations whose arrival window closed without a check-in.
        """
        now = now or timezone.now()
        today = timezone.localdate(now)
        window = timedelta(minutes=settings.ARRIVAL_WINDOW_MINUTES)

        marked = 0
        with transaction.atomic():
            candidates = Reservation.objects.select_for_update().filter(
                status__in=Reservation.UPCOMING_STATUSES, date__lte=today
            )
            for reservation in candidates:
                if reservation.starts_at + window >= now:
                    continue
                reservation.set_status(Reservation.Status.NO_SHOW)
                cls._notify_after_commit(
                    reservation, notifications.no_show_message(reservation), "Missed reservation"
                )
                marked += 1

        if marked:
            logger.info(f"Marked {marked} reservation(s) as no-show")
        return marked

    @classmethod
    def send_reminders(cls, now: Optional[datetime] = None) -> int:
        """
        Remind confirmed reservations starting within the reminder lead.
        Each reservation is reminded once.
        """
        now = now or timezone.now()
        horizon = now + timedelta(minutes=settings.REMINDER_LEAD_MINUTES)

        candidates = Reservation.objects.filter(
            status=Reservation.Status.CONFIRMED,
            reminder_sent_at__isnull=True,
            date__gte=timezone.localdate(now),
            date__lte=timezone.localdate(horizon),
        )

        sent = 0
        for reservation in candidates:
            if not now <= reservation.starts_at <= horizon:
                continue
            if not notifications.notify(
                reservation.identity,
                notifications.reminder_message(reservation),
                "Reservation reminder",
            ):
                logger.warning(f"Reminder for reservation {reservation.pk} was not delivered")
                continue
            Reservation.objects.filter(pk=reservation.pk, reminder_sent_at__isnull=True).update(
                reminder_sent_at=now
            )
            sent += 1

        if sent:
            logger.info(f"Sent {sent} reservation reminder(s)")
        return sent
