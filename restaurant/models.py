from django.db import models


class Table(models.Model):
    number = models.PositiveIntegerField(unique=True)
    capacity = models.PositiveIntegerField()

    # Soft disable, tables are never deleted
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["number"]
        indexes = [
            models.Index(fields=["is_active", "capacity"], name="table_active_capacity_idx"),
        ]

    def __str__(self):
        return f"Table {self.number} ({self.capacity} seats)"


class OpeningHours(models.Model):
    """
    Opening hours of a single calendar date. A date with no open/close time
    is closed.
    """

    class Occasion(models.TextChoices):
        REGULAR = "REGULAR", "Regular"
        HOLIDAY = "HOLIDAY", "Holiday"
        WAR = "WAR", "War"
        STRIKE = "STRIKE", "Strike"

    date = models.DateField(unique=True)
    open_time = models.TimeField(null=True, blank=True)
    close_time = models.TimeField(null=True, blank=True)
    occasion = models.CharField(
        max_length=10, choices=Occasion.choices, default=Occasion.REGULAR
    )

    class Meta:
        ordering = ["date"]
        verbose_name_plural = "opening hours"

    def __str__(self):
        if self.is_closed:
            return f"{self.date} closed ({self.occasion})"
        return f"{self.date} {self.open_time}-{self.close_time} ({self.occasion})"

    @property
    def is_closed(self) -> bool:
        return (
            self.open_time is None
            or self.close_time is None
            or self.close_time <= self.open_time
        )

    @property
    def day_name(self) -> str:
        return self.date.strftime("%A")
