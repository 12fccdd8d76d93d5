# booking/tests/helpers.py
#
# Shared fixtures for the scheduling tests. Every scenario happens on DAY,
# a Monday far enough in the future that real "now" never interferes, with
# the clock pinned through FixedClock.
#
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from booking.models import Appointment, Customer, Service, Staff
from booking.services.clock import FixedClock
from salons.models import Salon
from schedules.models import OpeningHours, StaffWorkingHours

ZURICH = ZoneInfo("Europe/Zurich")
DAY = date(2031, 3, 3)


def local(day, hour, minute=0, tz=ZURICH):
    return datetime.combine(day, time(hour, minute), tzinfo=tz)


def clock_at(day=DAY - timedelta(days=2), hour=8, minute=0):
    return FixedClock(local(day, hour, minute))


def make_salon(slug="test-salon", open_time=time(9, 0), close_time=time(18, 0), days=(DAY,), **overrides):
    salon = Salon.objects.create(name=slug.replace("-", " ").title(), slug=slug, timezone="Europe/Zurich", **overrides)
    for day in days:
        OpeningHours.objects.create(
            salon=salon, weekday=day.weekday(), is_open=True, open_time=open_time, close_time=close_time
        )
    return salon


def make_staff(salon, name="Anna", start=time(9, 0), end=time(17, 0), days=(DAY,), services=()):
    staff = Staff.objects.create(salon=salon, name=name, email=f"{name.lower()}@{salon.slug}.test")
    for day in days:
        StaffWorkingHours.objects.create(staff=staff, weekday=day.weekday(), start_time=start, end_time=end)
    if services:
        staff.services.set(services)
    return staff


def make_service(salon, name="Haircut", duration=30, buffer=0, price="40.00"):
    return Service.objects.create(
        salon=salon, name=name, duration_minutes=duration, buffer_minutes=buffer, price=Decimal(price)
    )


def make_customer(name="Chloe", email="chloe@example.com"):
    return Customer.objects.create(name=name, email=email, phone="0791234567")


def make_appointment(salon, staff, customer, start, minutes, status=Appointment.CONFIRMED, **extra):
    return Appointment.objects.create(
        salon=salon,
        staff=staff,
        customer=customer,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        duration_minutes=minutes,
        status=status,
        **extra,
    )


def hhmm(slots):
    """Local HH:MM of each slot start, for readable assertions."""
    return [s.start.astimezone(ZURICH).strftime("%H:%M") for s in slots]


class RecordingNotifier:
    """Notifier double that remembers (event, appointment id) pairs."""

    def __init__(self):
        self.calls = []

    def appointment_reserved(self, appointment):
        self.calls.append(("reserved", appointment.pk))

    def appointment_confirmed(self, appointment):
        self.calls.append(("confirmed", appointment.pk))

    def appointment_rescheduled(self, appointment):
        self.calls.append(("rescheduled", appointment.pk))

    def appointment_cancelled(self, appointment):
        self.calls.append(("cancelled", appointment.pk))
