# Generated manually (initial migration).
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("restaurant", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Reservation",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("confirmation_code", models.CharField(max_length=6, unique=True)),
                ("guest_contact", models.CharField(blank=True, max_length=254)),
                ("date", models.DateField()),
                ("start_time", models.TimeField(help_text="Reservation start time")),
                (
                    "end_time",
                    models.TimeField(help_text="Start time plus the dining duration"),
                ),
                ("party_size", models.PositiveIntegerField()),
                (
                    "allocated_capacity",
                    models.PositiveIntegerField(
                        help_text="Table capacity tier the reservation is booked against"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("NEW", "New"),
                            ("CONFIRMED", "Confirmed"),
                            ("WAITING", "Waiting for a table"),
                            ("CALLED", "Called to a table"),
                            ("SEATED", "Seated"),
                            ("COMPLETED", "Completed"),
                            ("CANCELLED", "Cancelled"),
                            ("NO_SHOW", "No show"),
                        ],
                        default="CONFIRMED",
                        max_length=15,
                    ),
                ),
                ("cancellation_reason", models.TextField(blank=True)),
                ("reminder_sent_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reservations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-date", "-start_time"],
            },
        ),
        migrations.CreateModel(
            name="Seating",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("check_in_time", models.DateTimeField(default=django.utils.timezone.now)),
                ("check_out_time", models.DateTimeField(blank=True, null=True)),
                (
                    "bill_sent",
                    models.PositiveSmallIntegerField(
                        choices=[
                            (0, "Not sent"),
                            (1, "Sent"),
                            (2, "Claimed, sending in progress"),
                        ],
                        default=0,
                    ),
                ),
                ("bill_claimed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "reservation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="seatings",
                        to="reservation.reservation",
                    ),
                ),
                (
                    "table",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="seatings",
                        to="restaurant.table",
                    ),
                ),
            ],
            options={
                "ordering": ["-check_in_time"],
            },
        ),
        migrations.CreateModel(
            name="WaitlistEntry",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("WAITING", "Waiting"),
                            ("CALLED", "Called to a held table"),
                            ("ASSIGNED", "Assigned to a table"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        default="WAITING",
                        max_length=15,
                    ),
                ),
                (
                    "priority",
                    models.PositiveSmallIntegerField(
                        choices=[(0, "Walk-in"), (1, "Held reservation")], default=1
                    ),
                ),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("assigned_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "reservation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="waitlist_entries",
                        to="reservation.reservation",
                    ),
                ),
            ],
            options={
                "ordering": ["-priority", "created_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="Bill",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                (
                    "seating",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bill",
                        to="reservation.seating",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.AddIndex(
            model_name="reservation",
            index=models.Index(fields=["date", "status"], name="res_date_status_idx"),
        ),
        migrations.AddIndex(
            model_name="reservation",
            index=models.Index(
                fields=["date", "allocated_capacity", "start_time"],
                name="res_date_tier_start_idx",
            ),
        ),
        migrations.AddConstraint(
            model_name="reservation",
            constraint=models.CheckConstraint(
                condition=(
                    models.Q(("guest_contact", ""), ("user__isnull", False))
                    | models.Q(models.Q(("user__isnull", True)), models.Q(("guest_contact", ""), _negated=True))
                ),
                name="reservation_user_xor_guest",
            ),
        ),
        migrations.AddIndex(
            model_name="seating",
            index=models.Index(
                fields=["check_out_time", "bill_sent", "check_in_time"],
                name="seating_billing_due_idx",
            ),
        ),
        migrations.AddConstraint(
            model_name="seating",
            constraint=models.UniqueConstraint(
                condition=models.Q(("check_out_time__isnull", True)),
                fields=("table",),
                name="one_open_seating_per_table",
            ),
        ),
        migrations.AddIndex(
            model_name="waitlistentry",
            index=models.Index(fields=["status", "priority", "created_at"], name="wait_queue_idx"),
        ),
        migrations.AddConstraint(
            model_name="waitlistentry",
            constraint=models.UniqueConstraint(
                condition=models.Q(("status__in", ["WAITING", "CALLED"])),
                fields=("reservation",),
                name="one_active_waitlist_entry_per_reservation",
            ),
        ),
    ]
