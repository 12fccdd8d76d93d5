# salons/models.py
#
# Purpose:
# - The salon (tenant) row: identity, local timezone, and per-salon overrides
#   of the booking rules defined in settings.SALON_BOOKING.
#
# Notes for developers:
# - Override fields are nullable; NULL means "use the project default".
#   booking.services.rules.get_booking_rules() does the merge.
# - All scheduling math for a salon happens in its local timezone.
#
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

logger = logging.getLogger(__name__)


def _default_timezone():
    return settings.TIME_ZONE


class Salon(models.Model):
    """
    A salon location that takes bookings.

    Rule overrides (all optional):
    - slot_granularity_minutes: spacing of candidate start times
    - lead_time_minutes: minimum gap between "now" and the first bookable start
    - horizon_days: how many days ahead customers may book
    - reservation_timeout_minutes: how long a pending hold occupies its slot
    - cancellation_cutoff_minutes: customer self-cancel cut-off before start
    """
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=100, unique=True)
    timezone = models.CharField(max_length=64, default=_default_timezone)
    is_active = models.BooleanField(default=True)

    slot_granularity_minutes = models.PositiveIntegerField(
        null=True, blank=True, validators=[MinValueValidator(1)]
    )
    lead_time_minutes = models.PositiveIntegerField(null=True, blank=True)
    horizon_days = models.PositiveIntegerField(null=True, blank=True)
    reservation_timeout_minutes = models.PositiveIntegerField(null=True, blank=True)
    cancellation_cutoff_minutes = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    @property
    def tzinfo(self):
        """
        The salon's local timezone.
        A bad zone name must not break booking, so we fall back to TIME_ZONE.
        """
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(
                "Salon %s has unknown timezone %r; using %s",
                self.pk, self.timezone, settings.TIME_ZONE,
            )
            return ZoneInfo(settings.TIME_ZONE)
