# notifications/models.py
#
# Purpose:
# - Record messages sent to customers about their appointments.
#
# Design:
# - FK to booking.Customer (not auth.User).
# - 'sent' records whether the delivery attempt succeeded.
#
from django.db import models

from booking.models import Appointment, Customer


class Notification(models.Model):
    KIND_CHOICES = [
        ("reserved", "Reservation received"),
        ("confirmed", "Appointment confirmed"),
        ("rescheduled", "Appointment rescheduled"),
        ("cancelled", "Appointment cancelled"),
    ]

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name="notifications")
    appointment = models.ForeignKey(
        Appointment,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
    )
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    subject = models.CharField(max_length=200)
    message = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    sent = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        label = getattr(self.customer, "name", None) or getattr(self.customer, "email", "customer")
        return f"{self.get_kind_display()} to {label} at {self.created_at:%Y-%m-%d %H:%M}"
