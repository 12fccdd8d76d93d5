# booking/models.py
#
# Purpose:
# - Core domain models for salon scheduling.
#
# Design highlights:
# - Service: duration plus optional buffer (processing/cleanup time during
#   which the staff member cannot take another client). A service with no
#   assigned staff can be done by anyone bookable in the salon.
# - Staff: belongs to one salon; is_active/is_bookable gate availability.
# - Customer: the person who books. The auth 'user' link is optional.
# - Appointment:
#   • start_time/end_time are stored absolute (UTC in the database)
#   • status is lowercase: pending, confirmed, completed, cancelled, no_show
#   • cancelled and no_show rows are kept for history but free their interval
#   • a pending row stops occupying its interval once reservation_expires_at
#     has passed, even before the expiry sweep cancels it
# - AppointmentService: snapshot of every chained service at booking time.
#
# Notes for developers:
# - Appointment rows are only created through
#   booking.services.reservation_coordinator.ReservationCoordinator, which is
#   where double-booking is prevented. Do not call Appointment.objects.create()
#   from views.
#
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q

from salons.models import Salon


# -------------------------
# Service catalog item
# -------------------------
class Service(models.Model):
    """
    A service offered by a salon.

    Rules:
    - duration_minutes must be >= 1
    - buffer_minutes is appended to the duration when blocking the calendar
    - active controls visibility and bookability
    """
    salon = models.ForeignKey(Salon, on_delete=models.CASCADE, related_name="services")
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    duration_minutes = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    buffer_minutes = models.PositiveIntegerField(default=0)
    price = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(0)],
    )
    active = models.BooleanField(default=True)

    class Meta:
        ordering = ["salon_id", "name"]

    def __str__(self):
        return f"{self.name} ({self.duration_minutes} min)"

    @property
    def occupied_minutes(self) -> int:
        return self.duration_minutes + self.buffer_minutes


# -------------------------
# Staff member / Stylist
# -------------------------
class Staff(models.Model):
    """
    A stylist who can be booked.

    'services' lists what this person is qualified to perform.
    """
    salon = models.ForeignKey(Salon, on_delete=models.CASCADE, related_name="staff_members")
    name = models.CharField(max_length=200)
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=100, blank=True)
    is_active = models.BooleanField(default=True)
    is_bookable = models.BooleanField(default=True)
    services = models.ManyToManyField(Service, blank=True, related_name="staff_members")

    class Meta:
        ordering = ["id"]
        verbose_name_plural = "staff"

    def __str__(self):
        return self.name


# -------------------------
# Customer (person who books)
# -------------------------
class Customer(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="salon_customer",
        null=True,
        blank=True,
    )
    name = models.CharField(max_length=200)
    email = models.EmailField()
    phone = models.CharField(max_length=20, blank=True)

    def __str__(self):
        return self.name


# -------------------------
# Appointment record
# -------------------------
class Appointment(models.Model):
    """
    A booked interval [start_time, end_time) for one staff member.

    Lifecycle (see booking.services.status):
        pending -> confirmed -> completed
        pending | confirmed -> cancelled
        confirmed -> no_show
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (CONFIRMED, "Confirmed"),
        (COMPLETED, "Completed"),
        (CANCELLED, "Cancelled"),
        (NO_SHOW, "No-show"),
    ]

    # Statuses that keep their interval blocked for availability purposes.
    OCCUPYING_STATUSES = (PENDING, CONFIRMED, COMPLETED)

    salon = models.ForeignKey(Salon, on_delete=models.CASCADE, related_name="appointments")
    staff = models.ForeignKey(Staff, on_delete=models.PROTECT, related_name="appointments")
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name="appointments")

    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    duration_minutes = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    status = models.CharField(
        max_length=10,
        choices=STATUS_CHOICES,
        default=PENDING,
        help_text="Appointment lifecycle status",
    )
    reservation_expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a pending hold stops blocking its slot.",
    )
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    no_show_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["start_time", "staff_id"]
        indexes = [
            models.Index(fields=["staff", "start_time"], name="appt_staff_start_idx"),
            models.Index(fields=["salon", "start_time"], name="appt_salon_start_idx"),
            models.Index(fields=["status", "reservation_expires_at"], name="appt_status_expiry_idx"),
        ]

    def __str__(self):
        return f"{self.customer} with {self.staff} at {self.start_time:%Y-%m-%d %H:%M} ({self.status})"

    def clean(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError("Appointment must end after it starts.")

    @classmethod
    def occupying_filter(cls, now):
        """
        Q() selecting rows that still block their interval at instant 'now'.
        """
        expired_hold = Q(status=cls.PENDING, reservation_expires_at__lte=now)
        return Q(status__in=cls.OCCUPYING_STATUSES) & ~expired_hold

    @property
    def is_terminal(self) -> bool:
        return self.status in (self.COMPLETED, self.CANCELLED, self.NO_SHOW)


class AppointmentService(models.Model):
    """
    A service included in an appointment, copied at booking time so later
    catalog edits (price, duration) do not rewrite history.
    """
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name="line_items")
    service = models.ForeignKey(Service, on_delete=models.SET_NULL, null=True, related_name="+")
    service_name = models.CharField(max_length=200)
    duration_minutes = models.PositiveIntegerField()
    buffer_minutes = models.PositiveIntegerField(default=0)
    price = models.DecimalField(max_digits=8, decimal_places=2)
    sort_order = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ["appointment_id", "sort_order"]

    def __str__(self):
        return f"{self.service_name} (#{self.appointment_id})"
