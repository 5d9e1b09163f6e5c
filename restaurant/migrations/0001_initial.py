# Generated manually (initial migration).
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Table",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("number", models.PositiveIntegerField(unique=True)),
                ("capacity", models.PositiveIntegerField()),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["number"],
            },
        ),
        migrations.CreateModel(
            name="OpeningHours",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("date", models.DateField(unique=True)),
                ("open_time", models.TimeField(blank=True, null=True)),
                ("close_time", models.TimeField(blank=True, null=True)),
                (
                    "occasion",
                    models.CharField(
                        choices=[
                            ("REGULAR", "Regular"),
                            ("HOLIDAY", "Holiday"),
                            ("WAR", "War"),
                            ("STRIKE", "Strike"),
                        ],
                        default="REGULAR",
                        max_length=10,
                    ),
                ),
            ],
            options={
                "ordering": ["date"],
                "verbose_name_plural": "opening hours",
            },
        ),
        migrations.AddIndex(
            model_name="table",
            index=models.Index(fields=["is_active", "capacity"], name="table_active_capacity_idx"),
        ),
    ]
