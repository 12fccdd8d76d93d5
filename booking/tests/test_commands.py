# booking/tests/test_commands.py

from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from booking.models import Appointment, Service, Staff
from booking.tests.helpers import make_appointment, make_customer, make_salon, make_staff
from salons.models import Salon
from schedules.models import OpeningHours, StaffWorkingHours


def run(name, *args):
    out = StringIO()
    call_command(name, *args, stdout=out)
    return out.getvalue()


class SweepCommandTests(TestCase):
    def setUp(self):
        self.salon = make_salon()
        self.staff = make_staff(self.salon)
        self.customer = make_customer()
        self.now = timezone.now().replace(second=0, microsecond=0)

    def test_expire_reservations(self):
        stale = make_appointment(
            self.salon, self.staff, self.customer, self.now + timedelta(days=1), 30,
            status=Appointment.PENDING, reservation_expires_at=self.now - timedelta(minutes=1),
        )
        live = make_appointment(
            self.salon, self.staff, self.customer, self.now + timedelta(days=1, hours=2), 30,
            status=Appointment.PENDING, reservation_expires_at=self.now + timedelta(minutes=30),
        )

        self.assertIn("Expired 1 reservation(s).", run("expire_reservations"))

        stale.refresh_from_db()
        live.refresh_from_db()
        self.assertEqual(stale.status, Appointment.CANCELLED)
        self.assertEqual(stale.cancellation_reason, "reservation expired")
        self.assertEqual(live.status, Appointment.PENDING)

        self.assertIn("Expired 0 reservation(s).", run("expire_reservations"))

    def test_process_no_shows(self):
        overdue = make_appointment(self.salon, self.staff, self.customer, self.now - timedelta(hours=3), 60)
        in_grace = make_appointment(self.salon, self.staff, self.customer, self.now - timedelta(minutes=70), 60)
        done = make_appointment(
            self.salon, self.staff, self.customer, self.now - timedelta(hours=5), 60, status=Appointment.COMPLETED
        )

        self.assertIn("Marked 1 appointment(s) as no-show.", run("process_no_shows"))

        for appt in (overdue, in_grace, done):
            appt.refresh_from_db()
        self.assertEqual(overdue.status, Appointment.NO_SHOW)
        self.assertIsNotNone(overdue.no_show_at)
        self.assertEqual(in_grace.status, Appointment.CONFIRMED)
        self.assertEqual(done.status, Appointment.COMPLETED)


class SeedSalonTests(TestCase):
    def test_seed_is_idempotent(self):
        first = run("seed_salon", "--slug", "downtown", "--timezone", "Europe/Zurich")
        self.assertIn("Created salon 'downtown'. Services created=7, updated=0; staff=3", first)

        second = run("seed_salon", "--slug", "downtown")
        self.assertIn("Updated salon 'downtown'. Services created=0, updated=0; staff=3", second)

        salon = Salon.objects.get(slug="downtown")
        self.assertEqual(Service.objects.filter(salon=salon).count(), 7)
        self.assertEqual(Staff.objects.filter(salon=salon).count(), 3)
        self.assertEqual(OpeningHours.objects.filter(salon=salon).count(), 7)
        self.assertFalse(OpeningHours.objects.get(salon=salon, weekday=0).is_open)

        anna = Staff.objects.get(email="anna@salon.local")
        self.assertEqual(StaffWorkingHours.objects.filter(staff=anna).count(), 5)
        self.assertEqual(anna.services.count(), 0)
        self.assertEqual(Staff.objects.get(email="lea@salon.local").services.count(), 4)

    def test_seed_restores_edited_services(self):
        run("seed_salon")
        Service.objects.filter(name="Blow-dry").update(price="1.00", active=False)

        out = run("seed_salon")

        self.assertIn("updated=1", out)
        blow_dry = Service.objects.get(name="Blow-dry")
        self.assertTrue(blow_dry.active)
        self.assertEqual(str(blow_dry.price), "35.00")
