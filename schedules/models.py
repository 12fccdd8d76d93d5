# schedules/models.py
#
# Purpose:
# - Calendar configuration read by the availability engine:
#   • OpeningHours       salon, recurring per weekday
#   • StaffWorkingHours  staff, recurring per weekday (several rows = split shift)
#   • StaffAbsence       staff, absolute interval (vacation, sick leave, ...)
#   • BlockedTime        salon-wide or staff-specific absolute interval
#
# Notes for developers:
# - weekday follows Python's date.weekday(): Monday=0 ... Sunday=6.
# - These rows are maintained by the salon administration workflow. The
#   engine only reads them, and a malformed row (open >= close, end <= start)
#   is treated as "unavailable" instead of raising.
#
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator
from django.db import models

from salons.models import Salon

WEEKDAY_CHOICES = [
    (0, "Monday"),
    (1, "Tuesday"),
    (2, "Wednesday"),
    (3, "Thursday"),
    (4, "Friday"),
    (5, "Saturday"),
    (6, "Sunday"),
]


class OpeningHours(models.Model):
    """
    Salon opening hours for one weekday.
    If is_open is False the times are ignored.
    """
    salon = models.ForeignKey(Salon, on_delete=models.CASCADE, related_name="opening_hours")
    weekday = models.PositiveSmallIntegerField(choices=WEEKDAY_CHOICES, validators=[MaxValueValidator(6)])
    is_open = models.BooleanField(default=True)
    open_time = models.TimeField(null=True, blank=True)
    close_time = models.TimeField(null=True, blank=True)

    class Meta:
        ordering = ["salon_id", "weekday"]
        verbose_name_plural = "opening hours"
        constraints = [
            models.UniqueConstraint(fields=["salon", "weekday"], name="uniq_opening_hours_salon_weekday"),
        ]

    def __str__(self):
        if not self.is_open:
            return f"{self.salon}: {self.get_weekday_display()} closed"
        return f"{self.salon}: {self.get_weekday_display()} {self.open_time}-{self.close_time}"

    def clean(self):
        if self.is_open:
            if self.open_time is None or self.close_time is None:
                raise ValidationError("Open days need both an opening and a closing time.")
            if self.open_time >= self.close_time:
                raise ValidationError("Opening time must be before closing time.")


class StaffWorkingHours(models.Model):
    """
    A working window for a staff member on one weekday.
    May be narrower than the salon's opening hours.
    """
    staff = models.ForeignKey("booking.Staff", on_delete=models.CASCADE, related_name="working_hours")
    weekday = models.PositiveSmallIntegerField(choices=WEEKDAY_CHOICES, validators=[MaxValueValidator(6)])
    start_time = models.TimeField()
    end_time = models.TimeField()

    class Meta:
        ordering = ["staff_id", "weekday", "start_time"]
        verbose_name_plural = "staff working hours"

    def __str__(self):
        return f"{self.staff}: {self.get_weekday_display()} {self.start_time}-{self.end_time}"

    def clean(self):
        if self.start_time >= self.end_time:
            raise ValidationError("Start time must be before end time.")


class StaffAbsence(models.Model):
    """
    Vacation, sick leave, etc. Fully blocks availability in [start_time, end_time)
    regardless of working hours.
    """
    REASON_CHOICES = [
        ("vacation", "Vacation"),
        ("sick", "Sick leave"),
        ("training", "Training"),
        ("other", "Other"),
    ]

    staff = models.ForeignKey("booking.Staff", on_delete=models.CASCADE, related_name="absences")
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    reason = models.CharField(max_length=20, choices=REASON_CHOICES, default="other")
    note = models.TextField(blank=True)

    class Meta:
        ordering = ["staff_id", "start_time"]
        indexes = [
            models.Index(fields=["staff", "start_time", "end_time"], name="absence_staff_range_idx"),
        ]

    def __str__(self):
        return f"{self.staff} absent ({self.reason}): {self.start_time} - {self.end_time}"

    def clean(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError("Absence must end after it starts.")


class BlockedTime(models.Model):
    """
    Non-bookable time. staff=None blocks the whole salon (holiday, maintenance);
    otherwise only that staff member (admin block, cleaning duty).
    """
    BLOCK_TYPE_CHOICES = [
        ("holiday", "Holiday"),
        ("maintenance", "Maintenance"),
        ("cleaning", "Cleaning"),
        ("admin", "Admin"),
        ("other", "Other"),
    ]

    salon = models.ForeignKey(Salon, on_delete=models.CASCADE, related_name="blocked_times")
    staff = models.ForeignKey(
        "booking.Staff",
        on_delete=models.CASCADE,
        related_name="blocked_times",
        null=True,
        blank=True,
    )
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    block_type = models.CharField(max_length=20, choices=BLOCK_TYPE_CHOICES, default="other")
    reason = models.TextField(blank=True)

    class Meta:
        ordering = ["salon_id", "start_time"]
        indexes = [
            models.Index(fields=["salon", "start_time", "end_time"], name="blocked_salon_range_idx"),
        ]

    def __str__(self):
        scope = self.staff.name if self.staff_id else "salon-wide"
        return f"{self.salon} blocked ({scope}, {self.block_type}): {self.start_time} - {self.end_time}"

    def clean(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError("Blocked time must end after it starts.")
        if self.staff_id and self.staff.salon_id != self.salon_id:
            raise ValidationError("Staff member does not belong to this salon.")
