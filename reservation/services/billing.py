# reservation/services/billing.py

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from reservation.exceptions import NotFound
from reservation.models import Bill, Seating
from reservation.services import notifications

logger = logging.getLogger(__name__)


class BillingService:
    """
    Automatic billing of long seated parties.

    A seating is due once it has been open for AUTO_BILL_AFTER_MINUTES and
    no bill went out. ``bill_sent`` moves 0 -> 2 (claimed) -> 1 (sent), or
    back 2 -> 0 when sending failed, so a bill is sent at most once even
    with several pollers. A claim is settled only by the worker whose
    claim time is still stored on the row.
    """

    SENT = "sent"
    SEND_FAILED = "send_failed"
    NOT_CLAIMED = "not_claimed"
    LOST_CLAIM = "lost_claim"

    @staticmethod
    def _due_filter(now: datetime) -> dict:
        return {
            "check_out_time__isnull": True,
            "bill_sent": Seating.BillStatus.NOT_SENT,
            "check_in_time__lte": now - timedelta(minutes=settings.AUTO_BILL_AFTER_MINUTES),
        }

    @classmethod
    def due_seating_ids(cls, now: Optional[datetime] = None) -> List[int]:
        now = now or timezone.now()
        return list(
            Seating.objects.filter(**cls._due_filter(now))
            .order_by("check_in_time", "id")
            .values_list("id", flat=True)
        )

    @classmethod
    def claim(cls, seating_id: int, now: Optional[datetime] = None) -> bool:
        """
        Flip the seating to claimed if it is still due.
        Exactly one concurrent caller sees a changed row.
        """
        now = now or timezone.now()
        updated = Seating.objects.filter(pk=seating_id, **cls._due_filter(now)).update(
            bill_sent=Seating.BillStatus.CLAIMED, bill_claimed_at=now
        )
        return updated == 1

    @staticmethod
    def _finish(seating_id: int, status: int, claimed_at: datetime) -> bool:
        """
        Settle a claim taken at ``claimed_at``. False means the claim was
        released as stale and possibly re-claimed by another worker.
        """
        return bool(
            Seating.objects.filter(
                pk=seating_id,
                bill_sent=Seating.BillStatus.CLAIMED,
                bill_claimed_at=claimed_at,
            ).update(bill_sent=status, bill_claimed_at=None)
        )

    @staticmethod
    def _holds_claim(seating_id: int, claimed_at: datetime) -> bool:
        return Seating.objects.filter(
            pk=seating_id, bill_sent=Seating.BillStatus.CLAIMED, bill_claimed_at=claimed_at
        ).exists()

    @staticmethod
    def issue_bill(seating: Seating) -> Bill:
        amount = Decimal(seating.reservation.party_size) * Decimal(settings.BILL_PRICE_PER_GUEST)
        bill, _ = Bill.objects.get_or_create(seating=seating, defaults={"amount": amount})
        return bill

    @classmethod
    def send_bill_automatically(cls, seating_id: int, now: Optional[datetime] = None) -> str:
        """
        Claim, bill and mark one seating.
        """
        now = now or timezone.now()

        with transaction.atomic():
            if not cls.claim(seating_id, now):
                logger.info(f"Seating {seating_id} is claimed elsewhere or no longer due")
                return cls.NOT_CLAIMED

        try:
            seating = Seating.objects.select_related("reservation", "table").get(pk=seating_id)
            bill = cls.issue_bill(seating)
            if not cls._holds_claim(seating_id, now):
                logger.warning(f"Claim on seating {seating_id} expired before sending")
                return cls.LOST_CLAIM
            sent = notifications.notify(
                seating.reservation.identity, notifications.bill_message(bill), "Your bill"
            )
        except Exception:
            cls._finish(seating_id, Seating.BillStatus.NOT_SENT, now)
            raise

        if not sent:
            cls._finish(seating_id, Seating.BillStatus.NOT_SENT, now)
            logger.warning(f"Bill for seating {seating_id} was not delivered, released for retry")
            return cls.SEND_FAILED

        with transaction.atomic():
            if not cls._finish(seating_id, Seating.BillStatus.SENT, now):
                logger.error(
                    f"Bill {bill.pk} was sent after the claim on seating {seating_id} expired; "
                    f"another worker may have sent it too"
                )
                return cls.LOST_CLAIM
            Bill.objects.filter(pk=bill.pk).update(sent_at=now)

        logger.info(f"Bill {bill.pk} of {bill.amount} sent for seating {seating_id}")
        return cls.SENT

    @classmethod
    def request_bill(cls, code: str, now: Optional[datetime] = None) -> Tuple[Bill, bool]:
        """
        Bill requested by a seated party at the terminal. The existing bill
        is reused and re-sent. A seating nobody claimed yet is marked sent so
        the automatic sweep skips it. Returns the bill and whether it was
        delivered.
        """
        from reservation.services.reservation import ReservationService

        now = now or timezone.now()
        reservation = ReservationService.get_by_code(code)

        with transaction.atomic():
            seating = (
                Seating.objects.select_for_update()
                .select_related("reservation", "table")
                .filter(reservation=reservation, check_out_time__isnull=True)
                .first()
            )
            if seating is None:
                raise NotFound(f"Reservation {reservation.confirmation_code} has no open table.")
            bill = cls.issue_bill(seating)
            claimed = bool(
                Seating.objects.filter(pk=seating.pk, bill_sent=Seating.BillStatus.NOT_SENT).update(
                    bill_sent=Seating.BillStatus.CLAIMED, bill_claimed_at=now
                )
            )

        try:
            sent = notifications.notify(
                reservation.identity, notifications.bill_message(bill), "Your bill"
            )
        except Exception:
            if claimed:
                cls._finish(seating.pk, Seating.BillStatus.NOT_SENT, now)
            raise

        if claimed:
            cls._finish(seating.pk, Seating.BillStatus.SENT if sent else Seating.BillStatus.NOT_SENT, now)
        if sent:
            Bill.objects.filter(pk=bill.pk, sent_at__isnull=True).update(sent_at=now)
            bill.refresh_from_db(fields=["sent_at"])
            logger.info(f"Bill {bill.pk} of {bill.amount} sent on request for seating {seating.pk}")
        else:
            logger.warning(f"Requested bill {bill.pk} for seating {seating.pk} was not delivered")
        return bill, sent

    @staticmethod
    def release_stale_claims(now: Optional[datetime] = None) -> int:
        """
        Release claims left behind by a worker that died between claim
        and mark.
        """
        now = now or timezone.now()
        released = Seating.objects.filter(
            bill_sent=Seating.BillStatus.CLAIMED,
            bill_claimed_at__lt=now - timedelta(minutes=settings.BILL_CLAIM_TIMEOUT_MINUTES),
        ).update(bill_sent=Seating.BillStatus.NOT_SENT, bill_claimed_at=None)
        if released:
            logger.warning(f"Released {released} stale bill claim(s)")
        return released

    @classmethod
    def run_billing_sweep(cls, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or timezone.now()
        counts = {
            "released": cls.release_stale_claims(now),
            cls.SENT: 0,
            cls.SEND_FAILED: 0,
            cls.NOT_CLAIMED: 0,
            cls.LOST_CLAIM: 0,
            "failed": 0,
        }

        for seating_id in cls.due_seating_ids(now):
            try:
                counts[cls.send_bill_automatically(seating_id, now)] += 1
            except Exception:
                counts["failed"] += 1
                logger.exception(f"Automatic billing failed for seating {seating_id}")

        return counts
