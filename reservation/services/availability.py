# reservation/services/availability.py

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from django.conf import settings
from django.db.models import Count, Q, QuerySet
from django.utils import timezone

from reservation.exceptions import InvalidPartySize, PartyTooLarge
from reservation.models import Reservation, add_minutes
from restaurant.models import OpeningHours, Table

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityResult:
    SHOW_AVAILABILITY = "SHOW_AVAILABILITY"
    SHOW_SUGGESTIONS = "SHOW_SUGGESTIONS"
    NO_AVAILABILITY = "NO_AVAILABILITY_OR_SUGGESTIONS"

    outcome: str
    date: date
    party_size: int
    allocated_capacity: int
    slots: List[time] = field(default_factory=list)
    suggestions: Dict[date, List[time]] = field(default_factory=dict)

    @property
    def message(self) -> str:
        if self.outcome == self.SHOW_AVAILABILITY:
            return f"{len(self.slots)} free time(s) on {self.date}."
        if self.outcome == self.SHOW_SUGGESTIONS:
            return f"No free time on {self.date}. Showing the nearest alternatives."
        return "No availability in the coming days."


class AvailabilityService:
    """
    Service class for handling slot availability logic.

    A slot is free when the reservations booked against its capacity tier
    that overlap its dining window are fewer than the active tables of
    exactly that tier.
    """

    @staticmethod
    def windows_overlap(start1: time, end1: time, start2: time, end2: time) -> bool:
        """
        Half-open overlap test: windows that only touch do not overlap.
        """
        return start1 < end2 and start2 < end1

    @staticmethod
    def tier_counts() -> Dict[int, int]:
        """
        Number of active tables per capacity.
        """
        rows = (
            Table.objects.filter(is_active=True)
            .values("capacity")
            .annotate(tables=Count("id"))
            .order_by("capacity")
        )
        return {row["capacity"]: row["tables"] for row in rows}

    @classmethod
    def allocated_capacity(cls, party_size: int, tiers: Optional[Dict[int, int]] = None) -> int:
        """
        Smallest capacity tier with at least one table that seats the party.
        Example: tiers {2, 4, 6}: 1 -> 2, 3 -> 4, 6 -> 6, 7 -> PartyTooLarge
        """
        if party_size is None or party_size < 1:
            raise InvalidPartySize()
        if tiers is None:
            tiers = cls.tier_counts()
        fitting = [capacity for capacity, tables in tiers.items() if capacity >= party_size and tables > 0]
        if not fitting:
            raise PartyTooLarge(f"No table seats a party of {party_size}.")
        return min(fitting)

    @staticmethod
    def opening_hours(check_date: date) -> Optional[OpeningHours]:
        """
        Opening hours of the date, or None when missing or closed.
        """
        hours = OpeningHours.objects.filter(date=check_date).first()
        if hours is None or hours.is_closed:
            return None
        return hours

    @staticmethod
    def earliest_start(check_date: date) -> Optional[time]:
        """
        Earliest bookable start on the date.
        Past dates have none; today starts at now + lead, rounded up to the
        slot step. Example with a 60 min lead: 12:10 -> 13:30, 12:00 -> 13:00
        """
        today = timezone.localdate()
        if check_date < today:
            return None
        if check_date > today:
            return time.min

        step = settings.SLOT_STEP_MINUTES
        earliest = timezone.localtime() + timedelta(minutes=settings.SAME_DAY_BOOKING_LEAD_MINUTES)
        if earliest.date() != today:
            return None
        minutes = earliest.hour * 60 + earliest.minute
        if earliest.second or earliest.microsecond:
            minutes += 1
        minutes = -(-minutes // step) * step
        if minutes >= 24 * 60:
            return None
        return time(minutes // 60, minutes % 60)

    @classmethod
    def candidate_starts(cls, check_date: date) -> List[time]:
        """
        Start times from opening to closing minus the dining duration,
        every slot step, that can still be booked.
        """
        hours = cls.opening_hours(check_date)
        earliest = cls.earliest_start(check_date)
        if hours is None or earliest is None:
            return []

        duration = timedelta(minutes=settings.RESERVATION_DURATION_MINUTES)
        step = timedelta(minutes=settings.SLOT_STEP_MINUTES)
        current = datetime.combine(check_date, hours.open_time)
        last = datetime.combine(check_date, hours.close_time) - duration

        starts = []
        while current <= last:
            if current.time() >= earliest:
                starts.append(current.time())
            current += step
        return starts

    @classmethod
    def is_bookable_start(cls, check_date: date, start_time: time) -> bool:
        return start_time in cls.candidate_starts(check_date)

    @staticmethod
    def booked_for_tier(
        check_date: date, tier: int, exclude_reservation: Optional[Reservation] = None
    ) -> QuerySet:
        queryset = Reservation.objects.filter(
            date=check_date,
            allocated_capacity=tier,
            status__in=Reservation.BOOKED_STATUSES,
        )
        if exclude_reservation is not None:
            queryset = queryset.exclude(pk=exclude_reservation.pk)
        return queryset

    @classmethod
    def booked_count(
        cls,
        check_date: date,
        start_time: time,
        tier: int,
        exclude_reservation: Optional[Reservation] = None,
    ) -> int:
        end_time = add_minutes(start_time, settings.RESERVATION_DURATION_MINUTES)
        return (
            cls.booked_for_tier(check_date, tier, exclude_reservation)
            # Two time ranges overlap if: start1 < end2 AND start2 < end1
            .filter(Q(start_time__lt=end_time) & Q(end_time__gt=start_time))
            .count()
        )

    @classmethod
    def is_slot_free(
        cls,
        check_date: date,
        start_time: time,
        tier: int,
        exclude_reservation: Optional[Reservation] = None,
    ) -> bool:
        tables = Table.objects.filter(is_active=True, capacity=tier).count()
        return cls.booked_count(check_date, start_time, tier, exclude_reservation) < tables

    @classmethod
    def free_slots(
        cls, check_date: date, tier: int, tables: int, limit: Optional[int] = None
    ) -> List[time]:
        """
        Free start times of a date for one tier, in time order.
        Booked windows are loaded once and counted per candidate.
        """
        candidates = cls.candidate_starts(check_date)
        if not candidates or tables <= 0:
            return []

        windows = list(
            cls.booked_for_tier(check_date, tier).values_list("start_time", "end_time")
        )
        duration = settings.RESERVATION_DURATION_MINUTES

        free = []
        for start in candidates:
            end = add_minutes(start, duration)
            booked = sum(1 for s, e in windows if cls.windows_overlap(start, end, s, e))
            if booked < tables:
                free.append(start)
                if limit is not None and len(free) >= limit:
                    break
        return free

    @classmethod
    def find_availability(cls, check_date: date, party_size: int) -> AvailabilityResult:
        """
        Free times of the requested date, else the first free times of each
        of the following days that has any, else nothing.
        """
        tiers = cls.tier_counts()
        tier = cls.allocated_capacity(party_size, tiers)
        tables = tiers[tier]

        result = AvailabilityResult(
            outcome=AvailabilityResult.NO_AVAILABILITY,
            date=check_date,
            party_size=party_size,
            allocated_capacity=tier,
        )

        slots = cls.free_slots(check_date, tier, tables)
        if slots:
            result.outcome = AvailabilityResult.SHOW_AVAILABILITY
            result.slots = slots
        else:
            for offset in range(1, settings.SUGGESTION_HORIZON_DAYS + 1):
                day = check_date + timedelta(days=offset)
                day_slots = cls.free_slots(day, tier, tables, limit=settings.SUGGESTIONS_PER_DAY)
                if day_slots:
                    result.suggestions[day] = day_slots

            if result.suggestions:
                result.outcome = AvailabilityResult.SHOW_SUGGESTIONS

        logger.info(
            f"Availability for {party_size} on {check_date} (tier {tier}): {result.outcome}"
        )
        return result
