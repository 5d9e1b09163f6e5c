# reservation/services/management.py

import logging
from collections import defaultdict
from datetime import date, time, timedelta
from typing import List, Optional, Tuple

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from reservation.exceptions import TableNotFound, TableNumberTaken, TableOccupied
from reservation.models import Reservation, Seating
from reservation.services import notifications
from restaurant.models import OpeningHours, Table

logger = logging.getLogger(__name__)


class ManagementService:
    """
    Manager actions on tables and opening hours.

    Changes that shrink the restaurant cancel the reservations that no
    longer fit. Within an overbooked window the newest booking (latest
    created_at, then highest id) is cancelled first. Parties that already
    arrived are never cancelled.
    """

    @staticmethod
    def _get_table(number: int) -> Table:
        try:
            return Table.objects.select_for_update().get(number=number)
        except Table.DoesNotExist:
            raise TableNotFound(f"Table {number} not found.")

    @staticmethod
    def _ensure_free(table: Table):
        if Seating.objects.filter(table=table, check_out_time__isnull=True).exists():
            raise TableOccupied(f"Table {table.number} is occupied right now.")

    @staticmethod
    def _cancel(reservation: Reservation, reason: str):
        reservation.cancel(reason)
        identity = reservation.identity
        message = notifications.cancellation_message(reservation)
        transaction.on_commit(lambda: notifications.notify(identity, message, "Reservation cancelled"))

    @classmethod
    def resolve_overbooking(cls, tier: int, today: Optional[date] = None) -> List[Reservation]:
        """
        Cancel future bookings of a tier until no instant has more
        concurrent bookings than the tier has active tables.
        """
        today = today or timezone.localdate()
        tables = Table.objects.filter(is_active=True, capacity=tier).count()
        reason = "The restaurant can no longer seat this reservation"

        by_date = defaultdict(list)
        booked = (
            Reservation.objects.select_for_update()
            .filter(date__gte=today, allocated_capacity=tier, status__in=Reservation.BOOKED_STATUSES)
            .order_by("date", "start_time", "id")
        )
        for reservation in booked:
            by_date[reservation.date].append(reservation)

        cancelled = []
        for day, live in by_date.items():
            for instant in sorted({r.start_time for r in live}):
                while True:
                    concurrent = [r for r in live if r.start_time <= instant < r.end_time]
                    if len(concurrent) <= tables:
                        break
                    cancellable = [r for r in concurrent if r.status in Reservation.UPCOMING_STATUSES]
                    if not cancellable:
                        logger.warning(f"Tier {tier} on {day} at {instant} stays overbooked by arrived parties")
                        break
                    victim = max(cancellable, key=lambda r: (r.created_at, r.id))
                    live.remove(victim)
                    cls._cancel(victim, reason)
                    cancelled.append(victim)

        if cancelled:
            logger.info(f"Cancelled {len(cancelled)} reservation(s) of tier {tier} after a table change")
        return cancelled

    @classmethod
    def add_table(cls, number: int, capacity: int) -> Table:
        if Table.objects.filter(number=number).exists():
            raise TableNumberTaken(f"Table {number} already exists.")
        try:
            with transaction.atomic():
                table = Table.objects.create(number=number, capacity=capacity)
        except IntegrityError:
            raise TableNumberTaken(f"Table {number} already exists.")
        logger.info(f"Added table {number} with {capacity} seats")
        return table

    @classmethod
    def change_table_capacity(cls, number: int, new_capacity: int) -> Tuple[Table, List[Reservation]]:
        with transaction.atomic():
            table = cls._get_table(number)
            if table.capacity == new_capacity:
                return table, []
            cls._ensure_free(table)

            old_capacity = table.capacity
            table.capacity = new_capacity
            table.save(update_fields=["capacity"])

            cancelled = cls.resolve_overbooking(old_capacity) if table.is_active else []

        logger.info(f"Table {number} capacity changed {old_capacity} -> {new_capacity}")
        return table, cancelled

    @classmethod
    def deactivate_table(cls, number: int) -> Tuple[Table, List[Reservation]]:
        with transaction.atomic():
            table = cls._get_table(number)
            if not table.is_active:
                return table, []
            cls._ensure_free(table)

            table.is_active = False
            table.save(update_fields=["is_active"])
            cancelled = cls.resolve_overbooking(table.capacity)

        logger.info(f"Table {number} deactivated")
        return table, cancelled

    @classmethod
    def update_opening_hours(
        cls,
        day: date,
        open_time: Optional[time],
        close_time: Optional[time],
        occasion: str = OpeningHours.Occasion.REGULAR,
    ) -> Tuple[OpeningHours, List[Reservation]]:
        """
        Set the hours of a date and cancel the reservations that fall
        outside them. No open/close time closes the restaurant that day.
        """
        with transaction.atomic():
            hours, _ = OpeningHours.objects.update_or_create(
                date=day,
                defaults={"open_time": open_time, "close_time": close_time, "occasion": occasion},
            )

            cancelled = []
            reason = f"Opening hours on {day} changed ({hours.get_occasion_display()})"
            upcoming = Reservation.objects.select_for_update().filter(
                date=day, status__in=Reservation.UPCOMING_STATUSES
            ).order_by("start_time", "id")
            for reservation in upcoming:
                if (
                    hours.is_closed
                    or reservation.start_time < hours.open_time
                    or reservation.end_time > hours.close_time
                ):
                    cls._cancel(reservation, reason)
                    cancelled.append(reservation)

        logger.info(f"Opening hours of {day} set to {hours}, {len(cancelled)} reservation(s) cancelled")
        return hours, cancelled

    @staticmethod
    def ensure_opening_hours(today: Optional[date] = None) -> int:
        """
        Fill missing days of the coming horizon with the default hours.
        """
        today = today or timezone.localdate()
        created = 0
        for offset in range(settings.OPENING_HOURS_HORIZON_DAYS):
            _, was_created = OpeningHours.objects.get_or_create(
                date=today + timedelta(days=offset),
                defaults={
                    "open_time": settings.DEFAULT_OPEN_TIME,
                    "close_time": settings.DEFAULT_CLOSE_TIME,
                    "occasion": OpeningHours.Occasion.REGULAR,
                },
            )
            created += int(was_created)
        if created:
            logger.info(f"Created default opening hours for {created} day(s)")
        return created
