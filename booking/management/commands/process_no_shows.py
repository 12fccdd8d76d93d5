"""
process_no_shows.py
-------------------
Django management command that flags missed appointments.

Usage:
    python manage.py process_no_shows

Behavior:
- Marks confirmed appointments as no_show once they ended more than
  NO_SHOW_GRACE_MINUTES ago (settings.SALON_BOOKING).
- Completed appointments are never touched; staff should mark an
  appointment complete before the grace period ends.
"""

from django.core.management.base import BaseCommand, CommandError

from booking.services.errors import StoreUnavailable
from booking.services.reservation_coordinator import ReservationCoordinator


class Command(BaseCommand):
    help = "Mark confirmed appointments that were never completed as no-show."

    def handle(self, *args, **options):
        try:
            count = ReservationCoordinator().process_no_shows()
        except StoreUnavailable as exc:
            raise CommandError(str(exc)) from exc
        self.stdout.write(self.style.SUCCESS(f"Marked {count} appointment(s) as no-show."))
