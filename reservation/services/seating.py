# reservation/services/seating.py

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Exists, OuterRef, QuerySet
from django.utils import timezone

from reservation.exceptions import (
    ArrivedTooEarly,
    ArrivedTooLate,
    ReservationNotActive,
    TableNotFound,
    TableNotOccupied,
)
from reservation.models import Reservation, Seating, WaitlistEntry
from reservation.services import notifications
from restaurant.models import Table

logger = logging.getLogger(__name__)


@dataclass
class CheckInResult:
    SEATED = "SEATED"
    WAITING = "WAITING"
    ALREADY_WAITING = "ALREADY_WAITING"

    outcome: str
    reservation: Reservation
    table: Optional[Table] = None
    entry: Optional[WaitlistEntry] = None

    @property
    def message(self) -> str:
        if self.outcome == self.SEATED:
            return f"Checked in. Please take table {self.table.number}."
        if self.outcome == self.WAITING:
            return "No table is free right now. You have been added to the waiting list."
        return "You are already on the waiting list."


@dataclass
class CheckoutResult:
    table: Table
    closed_seating: Seating
    next_seating: Optional[Seating] = None

    @property
    def message(self) -> str:
        if self.next_seating is None:
            return "Checked out, nobody waiting."
        return f"Checked out, next customer seated at table {self.table.number}."


class SeatingService:
    """
    Service class for seating arriving parties and freeing tables.
    """

    @staticmethod
    def free_tables(min_capacity: int) -> QuerySet:
        """
        Active tables of at least the capacity without an open seating,
        smallest first.
        """
        open_seating = Seating.objects.filter(table=OuterRef("pk"), check_out_time__isnull=True)
        return (
            Table.objects.filter(is_active=True, capacity__gte=min_capacity)
            .filter(~Exists(open_seating))
            .order_by("capacity", "number")
        )

    @classmethod
    def _seat_at_free_table(cls, reservation: Reservation) -> Optional[Seating]:
        """
        Open a seating at the first free table that can be claimed.
        Losing a table to a concurrent check-in moves on to the next one.
        """
        for table in cls.free_tables(reservation.allocated_capacity).select_for_update():
            try:
                with transaction.atomic():
                    return Seating.objects.create(
                        table=table, reservation=reservation, check_in_time=timezone.now()
                    )
            except IntegrityError:
                logger.warning(f"Table {table.number} was taken concurrently, trying the next one")
        return None

    @staticmethod
    def open_seating_of(reservation: Reservation) -> Optional[Seating]:
        return (
            Seating.objects.select_for_update()
            .filter(reservation=reservation, check_out_time__isnull=True)
            .first()
        )

    @staticmethod
    def _validate_arrival(reservation: Reservation):
        now = timezone.now()
        today = timezone.localdate(now)
        if reservation.date > today:
            raise ArrivedTooEarly(f"This reservation is for {reservation.date}.")
        if reservation.date < today:
            raise ArrivedTooLate(f"This reservation was for {reservation.date}.")

        window = timedelta(minutes=settings.ARRIVAL_WINDOW_MINUTES)
        if now < reservation.starts_at - window:
            raise ArrivedTooEarly(
                f"Check-in opens {settings.ARRIVAL_WINDOW_MINUTES} minutes before "
                f"{reservation.start_time:%H:%M}."
            )
        if now > reservation.starts_at + window:
            raise ArrivedTooLate()

    @classmethod
    def _claim_held_table(cls, reservation: Reservation) -> Optional[CheckInResult]:
        """
        Seat a called party at the table held for it. A hold older than the
        called timeout is released on the spot and None is returned.
        """
        from reservation.services.waitlist import WaitlistService

        seating = cls.open_seating_of(reservation)
        entry = (
            reservation.waitlist_entries.select_for_update()
            .filter(status=WaitlistEntry.Status.CALLED)
            .first()
        )
        if seating is None or entry is None:
            raise ReservationNotActive("The table held for this reservation was released.")

        now = timezone.now()
        if entry.assigned_at < now - timedelta(minutes=settings.CALLED_ENTRY_TIMEOUT_MINUTES):
            WaitlistService._release(entry, "The held table was not claimed in time")
            logger.info(f"Reservation {reservation.confirmation_code} arrived after its held table expired")
            return None

        seating.check_in_time = now
        seating.save(update_fields=["check_in_time"])
        entry.assign()
        reservation.set_status(Reservation.Status.SEATED)
        logger.info(f"Reservation {reservation.confirmation_code} claimed held table {seating.table.number}")
        return CheckInResult(CheckInResult.SEATED, reservation, table=seating.table, entry=entry)

    @classmethod
    def check_in(cls, code: str) -> CheckInResult:
        """
        Seat an arriving party, or put it on the waiting list when no table
        is free. Runs as one transaction.
        """
        from reservation.services.reservation import ReservationService

        with transaction.atomic():
            reservation = ReservationService.get_by_code(code, lock=True)
            if reservation.status == Reservation.Status.CALLED:
                result = cls._claim_held_table(reservation)
            else:
                result = cls._seat_or_queue(reservation)

        # The expired hold is released and committed before reporting
        if result is None:
            raise ArrivedTooLate(
                f"The table held for you was released after "
                f"{settings.CALLED_ENTRY_TIMEOUT_MINUTES} minutes."
            )
        return result

    @classmethod
    def _seat_or_queue(cls, reservation: Reservation) -> CheckInResult:
        if reservation.status == Reservation.Status.WAITING:
            entry = reservation.waitlist_entries.filter(status=WaitlistEntry.Status.WAITING).first()
            return CheckInResult(CheckInResult.ALREADY_WAITING, reservation, entry=entry)
        if reservation.status not in Reservation.UPCOMING_STATUSES:
            raise ReservationNotActive(
                f"Cannot check in a {reservation.get_status_display().lower()} reservation."
            )

        cls._validate_arrival(reservation)

        seating = cls._seat_at_free_table(reservation)
        if seating is not None:
            reservation.set_status(Reservation.Status.SEATED)
            logger.info(
                f"Reservation {reservation.confirmation_code} seated at table {seating.table.number}"
            )
            return CheckInResult(CheckInResult.SEATED, reservation, table=seating.table)

        entry = WaitlistEntry.objects.create(
            reservation=reservation,
            created_at=timezone.now(),
            priority=WaitlistEntry.Priority.HELD_RESERVATION,
        )
        reservation.set_status(Reservation.Status.WAITING)
        logger.info(f"Reservation {reservation.confirmation_code} added to the waiting list")
        return CheckInResult(CheckInResult.WAITING, reservation, entry=entry)

    @classmethod
    def check_out_and_assign_next(cls, table_id: int) -> CheckoutResult:
        """
        Free a table and seat the next waiting party that fits it.
        The whole cascade commits or rolls back together.
        """
        from reservation.services.waitlist import WaitlistService

        with transaction.atomic():
            try:
                table = Table.objects.select_for_update().get(pk=table_id)
            except Table.DoesNotExist:
                raise TableNotFound(f"Table {table_id} not found.")

            seating = (
                Seating.objects.select_for_update()
                .filter(table=table, check_out_time__isnull=True)
                .first()
            )
            if seating is None:
                raise TableNotOccupied(f"Table {table.number} is not occupied.")

            seating.check_out()
            finished = seating.reservation
            if finished.status == Reservation.Status.SEATED:
                finished.complete()
            logger.info(f"Table {table.number} checked out (reservation {finished.confirmation_code})")

            result = CheckoutResult(table=table, closed_seating=seating)

            entry = WaitlistService.get_next_waiting_that_fits(table.capacity, lock=True)
            if entry is None:
                return result

            following = entry.reservation
            result.next_seating = Seating.objects.create(
                table=table, reservation=following, check_in_time=timezone.now()
            )
            entry.assign()
            following.set_status(Reservation.Status.SEATED)

            identity = following.identity
            message = notifications.table_ready_message(following, table)
            transaction.on_commit(lambda: notifications.notify(identity, message, "Your table is ready"))

            logger.info(f"Reservation {following.confirmation_code} seated at table {table.number} from the waiting list")
            return result

    @staticmethod
    def current_seatings() -> QuerySet:
        return (
            Seating.objects.filter(check_out_time__isnull=True)
            .select_related("table", "reservation")
            .order_by("table__number")
        )
