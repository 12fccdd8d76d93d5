import django.core.validators
import salons.models
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Salon",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=100, unique=True)),
                ("timezone", models.CharField(default=salons.models._default_timezone, max_length=64)),
                ("is_active", models.BooleanField(default=True)),
                (
                    "slot_granularity_minutes",
                    models.PositiveIntegerField(
                        blank=True, null=True, validators=[django.core.validators.MinValueValidator(1)]
                    ),
                ),
                ("lead_time_minutes", models.PositiveIntegerField(blank=True, null=True)),
                ("horizon_days", models.PositiveIntegerField(blank=True, null=True)),
                ("reservation_timeout_minutes", models.PositiveIntegerField(blank=True, null=True)),
                ("cancellation_cutoff_minutes", models.PositiveIntegerField(blank=True, null=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
    ]
