from unittest import mock

from django.core import mail
from django.test import TestCase

from booking.models import Appointment
from booking.services.reservation_coordinator import ReservationCoordinator
from booking.tests.helpers import DAY, clock_at, local, make_appointment, make_customer, make_salon, make_staff

from .dispatcher import NotificationDispatcher
from .models import Notification


class DispatcherTests(TestCase):

    def setUp(self):
        self.salon = make_salon()
        self.staff = make_staff(self.salon)
        self.customer = make_customer()
        self.appointment = make_appointment(self.salon, self.staff, self.customer, local(DAY, 10), 60)
        self.dispatcher = NotificationDispatcher()

    def test_confirmation_email_is_sent_and_recorded(self):
        self.dispatcher.appointment_confirmed(self.appointment)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["chloe@example.com"])
        self.assertIn("confirmed", mail.outbox[0].body)
        self.assertIn("Monday, March 03, 2031 at 10:00", mail.outbox[0].body)

        note = Notification.objects.get()
        self.assertEqual(note.kind, "confirmed")
        self.assertTrue(note.sent)

    def test_cancellation_includes_reason(self):
        self.appointment.status = Appointment.CANCELLED
        self.appointment.cancellation_reason = "stylist ill"
        self.dispatcher.appointment_cancelled(self.appointment)

        self.assertIn("Reason: stylist ill", mail.outbox[0].body)
        self.assertEqual(Notification.objects.get().kind, "cancelled")

    def test_mail_failure_is_recorded_not_raised(self):
        with mock.patch("notifications.dispatcher.send_mail", side_effect=ConnectionError("smtp down")):
            with self.assertLogs("notifications.dispatcher", level="ERROR"):
                self.dispatcher.appointment_rescheduled(self.appointment)

        note = Notification.objects.get()
        self.assertEqual(note.kind, "rescheduled")
        self.assertFalse(note.sent)

    def test_record_failure_is_logged(self):
        with mock.patch.object(Notification.objects, "create", side_effect=RuntimeError("boom")):
            with self.assertLogs("notifications.dispatcher", level="ERROR") as logs:
                self.dispatcher.appointment_confirmed(self.appointment)
        self.assertIn("Could not record confirmed notification", logs.output[0])


class BookingNotificationTests(TestCase):

    def setUp(self):
        self.salon = make_salon()
        self.staff = make_staff(self.salon)
        self.customer = make_customer()
        self.coordinator = ReservationCoordinator(clock=clock_at())

    def test_email_sent_after_reservation_commits(self):
        with self.captureOnCommitCallbacks(execute=True):
            appt = self.coordinator.reserve(
                self.salon.id, self.staff.id, local(DAY, 10), 60, customer_id=self.customer.id
            )

        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(f"Booking Received #{appt.id}", mail.outbox[0].subject)
        self.assertEqual(Notification.objects.get().appointment_id, appt.id)

    def test_mail_failure_keeps_the_booking(self):
        with mock.patch("notifications.dispatcher.send_mail", side_effect=ConnectionError("smtp down")):
            with self.assertLogs("notifications.dispatcher", level="ERROR"):
                with self.captureOnCommitCallbacks(execute=True):
                    appt = self.coordinator.reserve(
                        self.salon.id, self.staff.id, local(DAY, 10), 60, customer_id=self.customer.id
                    )

        self.assertTrue(Appointment.objects.filter(pk=appt.pk, status=Appointment.PENDING).exists())
        self.assertFalse(Notification.objects.get().sent)
