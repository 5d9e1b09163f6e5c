# reservation/services/waitlist.py

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from reservation.exceptions import NotFound, TableNotFound, TableOccupied
from reservation.models import Reservation, Seating, WaitlistEntry
from reservation.services import notifications
from reservation.services.seating import SeatingService
from restaurant.models import Table

logger = logging.getLogger(__name__)


class WaitlistService:
    """
    Service class for handling waiting list logic.

    Queue order is priority first (held reservations before walk-ins),
    then arrival order.
    """

    @staticmethod
    def get_next_waiting_that_fits(capacity: int, lock: bool = False) -> Optional[WaitlistEntry]:
        """
        First waiting entry whose reservation fits a table of this capacity.
        """
        queryset = (
            WaitlistEntry.objects.filter(
                status=WaitlistEntry.Status.WAITING,
                reservation__allocated_capacity__lte=capacity,
            )
            .select_related("reservation")
            .order_by("-priority", "created_at", "id")
        )
        if lock:
            queryset = queryset.select_for_update()
        return queryset.first()

    @staticmethod
    def active_entries() -> QuerySet:
        return (
            WaitlistEntry.objects.filter(status__in=WaitlistEntry.ACTIVE_STATUSES)
            .select_related("reservation")
            .order_by("-priority", "created_at", "id")
        )

    @staticmethod
    def _release(entry: WaitlistEntry, reason: str):
        """
        Cancel an active entry and its reservation, then hand a table held
        for it to the next waiter.
        """
        reservation = entry.reservation
        held = SeatingService.open_seating_of(reservation)

        entry.cancel()
        reservation.cancel(reason)
        if held is not None:
            SeatingService.check_out_and_assign_next(held.table_id)

        identity = reservation.identity
        message = notifications.cancellation_message(reservation)
        transaction.on_commit(lambda: notifications.notify(identity, message, "Reservation cancelled"))

    @classmethod
    def call_next(cls, table_id: int) -> Optional[WaitlistEntry]:
        """
        Hold a free table for the next waiting party that fits it and tell
        them to come. Returns None when nobody fits.
        """
        with transaction.atomic():
            try:
                table = Table.objects.select_for_update().get(pk=table_id, is_active=True)
            except Table.DoesNotExist:
                raise TableNotFound(f"Table {table_id} not found.")

            if Seating.objects.filter(table=table, check_out_time__isnull=True).exists():
                raise TableOccupied(f"Table {table.number} is occupied right now.")

            entry = cls.get_next_waiting_that_fits(table.capacity, lock=True)
            if entry is None:
                return None

            reservation = entry.reservation
            Seating.objects.create(table=table, reservation=reservation, check_in_time=timezone.now())
            entry.call()
            reservation.set_status(Reservation.Status.CALLED)

            identity = reservation.identity
            message = notifications.table_ready_message(reservation, table)
            transaction.on_commit(lambda: notifications.notify(identity, message, "Your table is ready"))

        logger.info(f"Called reservation {reservation.confirmation_code} to table {table.number}")
        return entry

    @classmethod
    def cancel_waiting_list_entry(cls, code: str) -> WaitlistEntry:
        """
        Take a party off the waiting list. Its reservation is cancelled too.
        """
        from reservation.services.reservation import ReservationService

        with transaction.atomic():
            reservation = ReservationService.get_by_code(code, lock=True)
            entry = (
                reservation.waitlist_entries.select_for_update()
                .filter(status__in=WaitlistEntry.ACTIVE_STATUSES)
                .first()
            )
            if entry is None:
                raise NotFound(f"Reservation {code} is not on the waiting list.")
            cls._release(entry, "Left the waiting list")

        logger.info(f"Waiting list entry {entry.id} cancelled")
        return entry

    @classmethod
    def _expire_entry(cls, entry_id: int, cutoff: datetime) -> bool:
        with transaction.atomic():
            entry = (
                WaitlistEntry.objects.select_for_update()
                .select_related("reservation")
                .get(pk=entry_id)
            )
            # Claimed or cancelled since it was listed
            if entry.status != WaitlistEntry.Status.CALLED or entry.assigned_at >= cutoff:
                return False
            cls._release(entry, "The held table was not claimed in time")
        return True

    @classmethod
    def expire_stale_called_entries(cls, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Cancel called entries whose party did not show up within the timeout.
        Each entry is handled in its own transaction; a failing entry is
        logged and skipped.
        """
        now = now or timezone.now()
        cutoff = now - timedelta(minutes=settings.CALLED_ENTRY_TIMEOUT_MINUTES)

        stale_ids = list(
            WaitlistEntry.objects.filter(
                status=WaitlistEntry.Status.CALLED, assigned_at__lt=cutoff
            ).values_list("id", flat=True)
        )

        expired = failed = 0
        for entry_id in stale_ids:
            try:
                if cls._expire_entry(entry_id, cutoff):
                    expired += 1
                    logger.info(f"Expired called waiting list entry {entry_id}")
            except Exception:
                failed += 1
                logger.exception(f"Failed to expire waiting list entry {entry_id}")

        return {"expired": expired, "failed": failed}
