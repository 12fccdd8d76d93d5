import django.core.validators
import django.db.models.deletion
from django.db import migrations, models

WEEKDAY_CHOICES = [
    (0, "Monday"),
    (1, "Tuesday"),
    (2, "Wednesday"),
    (3, "Thursday"),
    (4, "Friday"),
    (5, "Saturday"),
    (6, "Sunday"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("salons", "0001_initial"),
        ("booking", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="OpeningHours",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "weekday",
                    models.PositiveSmallIntegerField(
                        choices=WEEKDAY_CHOICES, validators=[django.core.validators.MaxValueValidator(6)]
                    ),
                ),
                ("is_open", models.BooleanField(default=True)),
                ("open_time", models.TimeField(blank=True, null=True)),
                ("close_time", models.TimeField(blank=True, null=True)),
                (
                    "salon",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="opening_hours", to="salons.salon"
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "opening hours",
                "ordering": ["salon_id", "weekday"],
                "constraints": [
                    models.UniqueConstraint(fields=("salon", "weekday"), name="uniq_opening_hours_salon_weekday"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StaffWorkingHours",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "weekday",
                    models.PositiveSmallIntegerField(
                        choices=WEEKDAY_CHOICES, validators=[django.core.validators.MaxValueValidator(6)]
                    ),
                ),
                ("start_time", models.TimeField()),
                ("end_time", models.TimeField()),
                (
                    "staff",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="working_hours", to="booking.staff"
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "staff working hours",
                "ordering": ["staff_id", "weekday", "start_time"],
            },
        ),
        migrations.CreateModel(
            name="StaffAbsence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("start_time", models.DateTimeField()),
                ("end_time", models.DateTimeField()),
                (
                    "reason",
                    models.CharField(
                        choices=[
                            ("vacation", "Vacation"),
                            ("sick", "Sick leave"),
                            ("training", "Training"),
                            ("other", "Other"),
                        ],
                        default="other",
                        max_length=20,
                    ),
                ),
                ("note", models.TextField(blank=True)),
                (
                    "staff",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="absences", to="booking.staff"
                    ),
                ),
            ],
            options={
                "ordering": ["staff_id", "start_time"],
                "indexes": [
                    models.Index(fields=["staff", "start_time", "end_time"], name="absence_staff_range_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BlockedTime",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("start_time", models.DateTimeField()),
                ("end_time", models.DateTimeField()),
                (
                    "block_type",
                    models.CharField(
                        choices=[
                            ("holiday", "Holiday"),
                            ("maintenance", "Maintenance"),
                            ("cleaning", "Cleaning"),
                            ("admin", "Admin"),
                            ("other", "Other"),
                        ],
                        default="other",
                        max_length=20,
                    ),
                ),
                ("reason", models.TextField(blank=True)),
                (
                    "salon",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="blocked_times", to="salons.salon"
                    ),
                ),
                (
                    "staff",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="blocked_times",
                        to="booking.staff",
                    ),
                ),
            ],
            options={
                "ordering": ["salon_id", "start_time"],
                "indexes": [
                    models.Index(fields=["salon", "start_time", "end_time"], name="blocked_salon_range_idx"),
                ],
            },
        ),
    ]
