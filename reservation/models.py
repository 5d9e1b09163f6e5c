# reservation/models.py

from datetime import datetime, time, timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from reservation.identity import Guest, Subscriber


def add_minutes(start: time, minutes: int) -> time:
    """
    Shift a time of day, clamped to the end of the day.
    """
    shifted = datetime.combine(datetime.min, start) + timedelta(minutes=minutes)
    if shifted.date() != datetime.min.date():
        return time.max
    return shifted.time()


class Reservation(models.Model):
    """
    Core reservation model.
    A reservation occupies the fixed dining window [start_time, end_time)
    on its date and is booked against one table-capacity tier.
    """

    class Status(models.TextChoices):
        NEW = "NEW", "New"
        CONFIRMED = "CONFIRMED", "Confirmed"
        WAITING = "WAITING", "Waiting for a table"
        CALLED = "CALLED", "Called to a table"
        SEATED = "SEATED", "Seated"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"
        NO_SHOW = "NO_SHOW", "No show"

    # Statuses that hold their slot in the booking counts
    BOOKED_STATUSES = (
        Status.NEW,
        Status.CONFIRMED,
        Status.WAITING,
        Status.CALLED,
        Status.SEATED,
    )

    # Statuses of a booking whose party has not arrived yet
    UPCOMING_STATUSES = (Status.NEW, Status.CONFIRMED)

    confirmation_code = models.CharField(max_length=6, unique=True)

    # Exactly one of user / guest_contact is set
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reservations",
    )
    guest_contact = models.CharField(max_length=254, blank=True)

    date = models.DateField()
    start_time = models.TimeField(help_text="Reservation start time")
    end_time = models.TimeField(help_text="Start time plus the dining duration")

    party_size = models.PositiveIntegerField()
    allocated_capacity = models.PositiveIntegerField(
        help_text="Table capacity tier the reservation is booked against"
    )

    status = models.CharField(
        max_length=15, choices=Status.choices, default=Status.CONFIRMED
    )

    cancellation_reason = models.TextField(blank=True)
    reminder_sent_at = models.DateTimeField(null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-date", "-start_time"]
        indexes = [
            models.Index(fields=["date", "status"], name="res_date_status_idx"),
            models.Index(
                fields=["date", "allocated_capacity", "start_time"],
                name="res_date_tier_start_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(user__isnull=False, guest_contact="")
                    | (Q(user__isnull=True) & ~Q(guest_contact=""))
                ),
                name="reservation_user_xor_guest",
            ),
        ]

    def __str__(self):
        return f"{self.confirmation_code} - {self.date} ({self.start_time}-{self.end_time})"

    def clean(self):
        super().clean()
        has_user = self.user_id is not None
        has_guest = bool(self.guest_contact and self.guest_contact.strip())
        if has_user == has_guest:
            raise ValidationError("Exactly one of user or guest contact must be set.")
        if self.party_size is not None and self.party_size < 1:
            raise ValidationError({"party_size": "Party size must be at least 1."})
        if (
            self.party_size
            and self.allocated_capacity is not None
            and self.allocated_capacity < self.party_size
        ):
            raise ValidationError(
                {"allocated_capacity": "Allocated capacity is smaller than the party."}
            )

    def save(self, *args, **kwargs):
        if self.start_time is not None:
            self.end_time = add_minutes(
                self.start_time, settings.RESERVATION_DURATION_MINUTES
            )
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "start_time" in update_fields:
                kwargs["update_fields"] = set(update_fields) | {"end_time"}
        self.full_clean(validate_constraints=False)
        super().save(*args, **kwargs)

    @property
    def identity(self):
        if self.user_id is not None:
            return Subscriber(user_id=self.user_id)
        return Guest(contact=self.guest_contact)

    def set_identity(self, identity):
        if isinstance(identity, Subscriber):
            self.user_id = identity.user_id
            self.guest_contact = ""
        else:
            self.user = None
            self.guest_contact = identity.contact

    @property
    def starts_at(self) -> datetime:
        """Aware datetime of the reservation start in the restaurant time zone."""
        return timezone.make_aware(datetime.combine(self.date, self.start_time))

    @property
    def is_booked(self) -> bool:
        return self.status in self.BOOKED_STATUSES

    def set_status(self, status):
        self.status = status
        self.save(update_fields=["status", "updated_at"])

    def cancel(self, reason: str = ""):
        """Handle reservation cancellation."""
        self.status = self.Status.CANCELLED
        self.cancellation_reason = reason
        self.save(update_fields=["status", "cancellation_reason", "updated_at"])

    def complete(self):
        """Mark reservation as completed."""
        self.set_status(self.Status.COMPLETED)


class Seating(models.Model):
    """
    Occupation of a table by a reservation, from check-in to check-out.
    """

    class BillStatus(models.IntegerChoices):
        NOT_SENT = 0, "Not sent"
        SENT = 1, "Sent"
        CLAIMED = 2, "Claimed, sending in progress"

    table = models.ForeignKey(
        "restaurant.Table", on_delete=models.PROTECT, related_name="seatings"
    )
    reservation = models.ForeignKey(
        Reservation, on_delete=models.PROTECT, related_name="seatings"
    )

    check_in_time = models.DateTimeField(default=timezone.now)
    check_out_time = models.DateTimeField(null=True, blank=True)

    bill_sent = models.PositiveSmallIntegerField(
        choices=BillStatus.choices, default=BillStatus.NOT_SENT
    )
    bill_claimed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-check_in_time"]
        indexes = [
            models.Index(
                fields=["check_out_time", "bill_sent", "check_in_time"],
                name="seating_billing_due_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["table"],
                condition=Q(check_out_time__isnull=True),
                name="one_open_seating_per_table",
            ),
        ]

    def __str__(self):
        return f"Seating {self.pk} - table {self.table_id} - reservation {self.reservation_id}"

    @property
    def is_open(self) -> bool:
        return self.check_out_time is None

    def check_out(self):
        self.check_out_time = timezone.now()
        self.save(update_fields=["check_out_time"])


class WaitlistEntry(models.Model):
    """
    Queue entry of a party that arrived and found no free table.
    """

    class Status(models.TextChoices):
        WAITING = "WAITING", "Waiting"
        CALLED = "CALLED", "Called to a held table"
        ASSIGNED = "ASSIGNED", "Assigned to a table"
        CANCELLED = "CANCELLED", "Cancelled"

    class Priority(models.IntegerChoices):
        WALK_IN = 0, "Walk-in"
        HELD_RESERVATION = 1, "Held reservation"

    ACTIVE_STATUSES = (Status.WAITING, Status.CALLED)

    reservation = models.ForeignKey(
        Reservation, on_delete=models.PROTECT, related_name="waitlist_entries"
    )

    status = models.CharField(
        max_length=15, choices=Status.choices, default=Status.WAITING
    )
    priority = models.PositiveSmallIntegerField(
        choices=Priority.choices, default=Priority.HELD_RESERVATION
    )

    created_at = models.DateTimeField(default=timezone.now)
    # When the entry was called to, or assigned, a table
    assigned_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-priority", "created_at", "id"]
        indexes = [
            models.Index(fields=["status", "priority", "created_at"], name="wait_queue_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["reservation"],
                condition=Q(status__in=["WAITING", "CALLED"]),
                name="one_active_waitlist_entry_per_reservation",
            ),
        ]

    def __str__(self):
        return f"Waitlist: {self.reservation} ({self.status}, priority {self.priority})"

    @property
    def is_active(self) -> bool:
        return self.status in self.ACTIVE_STATUSES

    def call(self):
        """Hold a table for the party and start the claim timeout."""
        self.status = self.Status.CALLED
        self.assigned_at = timezone.now()
        self.save(update_fields=["status", "assigned_at", "updated_at"])

    def assign(self):
        self.status = self.Status.ASSIGNED
        self.assigned_at = timezone.now()
        self.save(update_fields=["status", "assigned_at", "updated_at"])

    def cancel(self):
        """Cancel waitlist entry."""
        self.status = self.Status.CANCELLED
        self.save(update_fields=["status", "updated_at"])


class Bill(models.Model):
    """
    Bill issued for a seating.
    """

    seating = models.OneToOneField(
        Seating, on_delete=models.PROTECT, related_name="bill"
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2)

    created_at = models.DateTimeField(default=timezone.now)
    sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Bill {self.pk} - seating {self.seating_id} - {self.amount}"
