"""
calendar_repository.py
----------------------
Read side of the scheduling core: loads salon, catalog, schedule and
appointment rows through the ORM and reshapes them into calendar-model
values (local-minute Intervals) for one day.

Everything the availability engine knows about the database goes through
this class, so tests can hand the engine a different repository and the
engine itself never touches a QuerySet.

Failure handling:
- unknown / inactive salon, staff, service, customer -> InvalidRequest
- any django.db.DatabaseError -> StoreUnavailable
- malformed schedule rows -> skipped with a warning (never raised)
"""

import logging
from dataclasses import dataclass, field
from functools import wraps

from django.db import DatabaseError
from django.db.models import Q

from salons.models import Salon
from schedules.models import BlockedTime, OpeningHours, StaffAbsence, StaffWorkingHours

from ..models import Appointment, Customer, Service, Staff
from .calendar import WorkingWindow, absolute_to_interval, intersect_interval_sets, local_day_bounds
from .errors import InvalidRequest, StoreUnavailable

logger = logging.getLogger(__name__)


def store_call(func):
    """Translate database failures into StoreUnavailable."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DatabaseError as exc:
            logger.exception("Row store failure in %s", func.__name__)
            raise StoreUnavailable("The booking database is currently unavailable.") from exc
    return wrapper


@dataclass
class StaffDay:
    """
    One staff member's calendar for one local date, in local minutes.

    windows: working hours intersected with salon opening hours
    blocked: absences and blocked times (salon-wide and own)
    booked:  (appointment_id, Interval) for every occupying appointment
    """
    staff_id: int
    windows: list = field(default_factory=list)
    blocked: list = field(default_factory=list)
    booked: list = field(default_factory=list)

    @property
    def busy(self):
        return self.blocked + [interval for _, interval in self.booked]


class CalendarRepository:

    # -------------------------
    # Lookups
    # -------------------------
    @store_call
    def get_salon(self, salon_id):
        salon = Salon.objects.filter(pk=_require_id(salon_id, "salon"), is_active=True).first()
        if salon is None:
            raise InvalidRequest(f"Unknown salon: {salon_id}")
        return salon

    @store_call
    def get_services(self, salon, service_ids):
        """
        Active services in the order requested. Duplicates are kept (booking
        the same service twice chains it twice).
        """
        ids = [_require_id(sid, "service") for sid in service_ids]
        rows = {s.id: s for s in Service.objects.filter(salon=salon, active=True, pk__in=ids)}
        missing = [sid for sid in ids if sid not in rows]
        if missing:
            raise InvalidRequest(f"Unknown or inactive service(s): {missing}")
        return [rows[sid] for sid in ids]

    @store_call
    def get_staff(self, salon, staff_id):
        staff = Staff.objects.filter(
            pk=_require_id(staff_id, "staff"), salon=salon, is_active=True, is_bookable=True
        ).first()
        if staff is None:
            raise InvalidRequest(f"Unknown or unbookable staff member: {staff_id}")
        return staff

    @store_call
    def get_customer(self, customer_id):
        customer = Customer.objects.filter(pk=_require_id(customer_id, "customer")).first()
        if customer is None:
            raise InvalidRequest(f"Unknown customer: {customer_id}")
        return customer

    @store_call
    def qualified_staff_ids(self, services):
        """
        Set of staff ids allowed to perform every service, or None when no
        service restricts its staff (anyone bookable may do it).
        """
        allowed = None
        for service in services:
            assigned = set(service.staff_members.values_list("id", flat=True))
            if not assigned:
                continue
            allowed = assigned if allowed is None else allowed & assigned
        return allowed

    @store_call
    def bookable_staff(self, salon):
        return list(
            Staff.objects.filter(salon=salon, is_active=True, is_bookable=True).order_by("id")
        )

    # -------------------------
    # Day calendars
    # -------------------------
    @store_call
    def load_staff_days(self, salon, staff_ids, day, now, exclude_appointment_id=None):
        """
        Build a StaffDay for every id in staff_ids (same order).

        'now' decides which pending holds have expired.
        """
        tz = salon.tzinfo
        day_start, day_end = local_day_bounds(day, tz)
        weekday = day.weekday()
        days = {sid: StaffDay(staff_id=sid) for sid in staff_ids}

        salon_window = self._salon_window(salon, day)
        if salon_window is None:
            return [days[sid] for sid in staff_ids]

        for row in StaffWorkingHours.objects.filter(staff_id__in=staff_ids, weekday=weekday):
            interval = WorkingWindow(weekday, row.start_time, row.end_time).resolve(day)
            if interval is None:
                logger.warning("Skipping malformed working hours row %s (staff %s)", row.pk, row.staff_id)
                continue
            days[row.staff_id].windows.append(interval)
        for staff_day in days.values():
            staff_day.windows = intersect_interval_sets(staff_day.windows, [salon_window])

        absences = StaffAbsence.objects.filter(
            staff_id__in=staff_ids, start_time__lt=day_end, end_time__gt=day_start
        )
        for row in absences:
            days[row.staff_id].blocked.append(absolute_to_interval(row.start_time, row.end_time, day, tz))

        blocks = BlockedTime.objects.filter(
            Q(staff__isnull=True) | Q(staff_id__in=staff_ids),
            salon=salon,
            start_time__lt=day_end,
            end_time__gt=day_start,
        )
        for row in blocks:
            interval = absolute_to_interval(row.start_time, row.end_time, day, tz)
            targets = staff_ids if row.staff_id is None else [row.staff_id]
            for sid in targets:
                days[sid].blocked.append(interval)

        appointments = Appointment.objects.filter(
            Appointment.occupying_filter(now),
            staff_id__in=staff_ids,
            start_time__lt=day_end,
            end_time__gt=day_start,
        )
        if exclude_appointment_id is not None:
            appointments = appointments.exclude(pk=exclude_appointment_id)
        for row in appointments.only("id", "staff_id", "start_time", "end_time"):
            interval = absolute_to_interval(row.start_time, row.end_time, day, tz)
            days[row.staff_id].booked.append((row.id, interval))

        return [days[sid] for sid in staff_ids]

    def _salon_window(self, salon, day):
        row = OpeningHours.objects.filter(salon=salon, weekday=day.weekday()).first()
        if row is None or not row.is_open:
            return None
        interval = WorkingWindow(row.weekday, row.open_time, row.close_time, row.is_open).resolve(day)
        if interval is None:
            logger.warning("Salon %s has malformed opening hours for weekday %s; treating as closed", salon.pk, row.weekday)
        return interval


def _require_id(value, label):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f"Invalid {label} id: {value!r}") from None
