# reservation/tasks.py

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def send_due_bills():
    """
    Periodic task to bill parties seated longer than the auto-bill delay.
    Runs every 30 seconds via Celery Beat; overlapping runs are safe since
    every seating is claimed before it is billed.
    """
    from reservation.services.billing import BillingService

    counts = BillingService.run_billing_sweep()
    logger.info(
        f"Billing sweep: {counts['sent']} sent, {counts['send_failed']} not delivered, "
        f"{counts['failed']} failed, {counts['lost_claim']} lost claim(s), "
        f"{counts['released']} stale claim(s) released"
    )
    return counts


@shared_task
def expire_called_waitlist_entries():
    """
    Periodic task to cancel waiting list entries that were called to a
    table and did not claim it in time. Runs every minute.
    """
    from reservation.services.waitlist import WaitlistService

    counts = WaitlistService.expire_stale_called_entries()
    logger.info(f"Expired {counts['expired']} called waitlist entries ({counts['failed']} failed)")
    return counts


@shared_task
def mark_no_shows():
    from reservation.services.reservation import ReservationService

    marked = ReservationService.mark_no_shows()
    logger.info(f"Marked {marked} no-show reservations")
    return {"marked_count": marked}


@shared_task
def send_reservation_reminders():
    """
    Periodic task to remind customers of reservations starting soon.
    """
    from reservation.services.reservation import ReservationService

    sent = ReservationService.send_reminders()
    logger.info(f"Sent {sent} reservation reminders")
    return {"sent_count": sent}


@shared_task(bind=True, max_retries=3)
def ensure_opening_hours(self):
    """
    Daily task keeping the opening hours calendar filled for the coming days.
    """
    from django.db import DatabaseError

    from reservation.services.management import ManagementService

    try:
        created = ManagementService.ensure_opening_hours()
    except DatabaseError as exc:
        logger.error(f"Error filling opening hours: {exc}")
        raise self.retry(exc=exc, countdown=60)

    logger.info(f"Created opening hours for {created} days")
    return {"created_count": created}
