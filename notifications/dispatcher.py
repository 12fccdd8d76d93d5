# notifications/dispatcher.py
#
# Purpose:
# - Tell customers about their appointments (received, confirmed, moved,
#   cancelled) and keep a Notification row for auditing.
#
# Notes:
# - Fire-and-forget. The reservation coordinator calls us from
#   transaction.on_commit(), after the appointment row is durable, and a
#   failure here must never undo a booking. Every error is logged, not raised.
# - Works with either the console backend (dev) or SMTP (prod).
#
import logging

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from .models import Notification

logger = logging.getLogger(__name__)

SALUTATION = "Hi {name},\n\n"
SIGNATURE = "\nWe look forward to seeing you!\n"


def _send(subject: str, body: str, to_email: str) -> bool:
    """
    Send a single email. Returns True when the backend accepted it.
    """
    if not to_email:
        return False
    try:
        send_mail(
            subject=subject,
            message=body,
            from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
            recipient_list=[to_email],
            fail_silently=False,
        )
        return True
    except Exception:
        logger.exception("Email to %s failed (subject=%r)", to_email, subject)
        return False


def _format_when(appointment) -> str:
    local_start = timezone.localtime(appointment.start_time, appointment.salon.tzinfo)
    return local_start.strftime("%A, %B %d, %Y at %H:%M")


def _service_names(appointment) -> str:
    names = [item.service_name for item in appointment.line_items.all()]
    return ", ".join(names) if names else f"{appointment.duration_minutes} min appointment"


class NotificationDispatcher:
    """
    Default notification collaborator used by ReservationCoordinator.
    """

    def appointment_reserved(self, appointment) -> None:
        if appointment.status == appointment.CONFIRMED:
            kind, subject, headline = "confirmed", "Booking Confirmation", "Your appointment is confirmed."
        else:
            kind, subject, headline = (
                "reserved",
                "Booking Received",
                "We are holding this time for you until your booking is confirmed.",
            )
        body = (
            SALUTATION.format(name=appointment.customer.name)
            + f"{headline}\n\n"
            f"Booking ID: {appointment.id}\n"
            f"Service: {_service_names(appointment)}\n"
            f"Date & Time: {_format_when(appointment)}\n"
            f"Staff: {appointment.staff.name}\n"
            + SIGNATURE
        )
        self._deliver(appointment, kind, f"{subject} #{appointment.id}", body)

    def appointment_confirmed(self, appointment) -> None:
        body = (
            SALUTATION.format(name=appointment.customer.name)
            + "Your appointment is confirmed.\n\n"
            f"Booking ID: {appointment.id}\n"
            f"Date & Time: {_format_when(appointment)}\n"
            f"Staff: {appointment.staff.name}\n"
            + SIGNATURE
        )
        self._deliver(appointment, "confirmed", f"Booking Confirmation #{appointment.id}", body)

    def appointment_rescheduled(self, appointment) -> None:
        body = (
            SALUTATION.format(name=appointment.customer.name)
            + "Your appointment has been moved.\n\n"
            f"Booking ID: {appointment.id}\n"
            f"New Date & Time: {_format_when(appointment)}\n"
            f"Staff: {appointment.staff.name}\n"
            + SIGNATURE
        )
        self._deliver(appointment, "rescheduled", f"Booking #{appointment.id} Rescheduled", body)

    def appointment_cancelled(self, appointment) -> None:
        body = (
            SALUTATION.format(name=appointment.customer.name)
            + f"Your appointment on {_format_when(appointment)} has been cancelled.\n"
        )
        if appointment.cancellation_reason:
            body += f"Reason: {appointment.cancellation_reason}\n"
        body += "If this was unexpected, please reply to this email.\n"
        self._deliver(appointment, "cancelled", f"Booking #{appointment.id} Cancelled", body)

    def _deliver(self, appointment, kind: str, subject: str, body: str) -> None:
        try:
            sent = _send(subject, body, appointment.customer.email)
            Notification.objects.create(
                customer=appointment.customer,
                appointment=appointment,
                kind=kind,
                subject=subject,
                message=body,
                sent=sent,
            )
        except Exception:
            logger.exception("Could not record %s notification for appointment %s", kind, appointment.pk)
