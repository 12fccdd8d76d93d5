"""
expire_reservations.py
----------------------
Django management command that releases abandoned checkouts.

Usage:
    python manage.py expire_reservations

Behavior:
- Cancels every pending appointment whose reservation hold has run out
  (reason "reservation expired"). Expired holds already stop blocking their
  slot in availability; this sweep just records the outcome and tells the
  customer.
- Safe to run as often as you like (e.g. cron every minute).
"""

from django.core.management.base import BaseCommand, CommandError

from booking.services.errors import StoreUnavailable
from booking.services.reservation_coordinator import ReservationCoordinator


class Command(BaseCommand):
    help = "Cancel pending reservations whose hold has expired."

    def handle(self, *args, **options):
        try:
            count = ReservationCoordinator().expire_stale_reservations()
        except StoreUnavailable as exc:
            raise CommandError(str(exc)) from exc
        self.stdout.write(self.style.SUCCESS(f"Expired {count} reservation(s)."))
