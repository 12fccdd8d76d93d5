"""
availability_engine.py
----------------------
Computes bookable slots for a salon day.

For every candidate staff member:
1) working window = staff working hours ∩ salon opening hours
2) free time      = window − absences − blocked times − occupying appointments
3) candidates     = grid-aligned starts inside each free sub-interval such that
                    start + duration <= sub-interval end
Results from all staff are merged and ordered by (start, staff_id).

Slots are advisory. The reservation coordinator re-checks the interval inside
its transaction (check_interval below) because another request may commit in
between.

Notes:
- Candidate starts sit on the salon-local clock grid (multiples of the slot
  granularity since local midnight), so a 15-minute grid yields :00/:15/:30/:45
  no matter where a free sub-interval begins.
- Same-day candidates must start strictly after now + lead time.
- Chained services are one contiguous block: the sum of each service's
  duration + buffer, plus the configured gap between consecutive services.
"""

import logging
from dataclasses import dataclass
from datetime import date as date_cls, datetime, timedelta
from itertools import groupby

from .calendar import (
    absolute_to_interval,
    from_local_minutes,
    subtract_intervals,
    to_local_minutes,
)
from .calendar_repository import CalendarRepository
from .clock import SystemClock
from .errors import InvalidRequest, ReservationConflict
from .rules import get_booking_rules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slot:
    """A candidate (staff, start, end). Computed, never persisted."""
    staff_id: int
    start: datetime
    end: datetime
    duration_minutes: int

    def as_dict(self) -> dict:
        return {
            "staff_id": self.staff_id,
            "start_time": self.start.isoformat(),
            "end_time": self.end.isoformat(),
            "duration_minutes": self.duration_minutes,
        }


# -------------------------
# Pure helpers
# -------------------------
def compute_free_intervals(windows, busy):
    """Disjoint free sub-intervals of 'windows' after removing 'busy'."""
    return subtract_intervals(windows, busy)


def generate_slot_starts(free_intervals, duration_minutes: int, granularity_minutes: int, earliest=None):
    """
    Yield grid-aligned start minutes that fit entirely inside a free interval.

    'earliest' (local minutes) excludes every start <= earliest.
    """
    g = granularity_minutes
    for interval in free_intervals:
        start = -(-interval.start // g) * g
        if earliest is not None:
            start = max(start, (earliest // g + 1) * g)
        while start + duration_minutes <= interval.end:
            yield start
            start += g


def total_duration(services, rules) -> int:
    """
    Minutes a chain of services blocks: each service's duration + buffer, with
    rules.chained_service_gap_minutes between consecutive services.
    """
    if not services:
        return 0
    occupied = sum(s.duration_minutes + s.buffer_minutes for s in services)
    return occupied + rules.chained_service_gap_minutes * (len(services) - 1)


def group_slots_by_date(slots):
    """
    [(date, [slots...]), ...] in date order. Slot starts are already in the
    salon's local timezone, so .date() is the local calendar day.
    """
    ordered = sorted(slots, key=lambda s: (s.start, s.staff_id))
    return [(day, list(items)) for day, items in groupby(ordered, key=lambda s: s.start.date())]


def coerce_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date_cls):
        return value
    try:
        return date_cls.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise InvalidRequest("Invalid date format. Use YYYY-MM-DD.") from None


def validate_duration(value) -> int:
    if isinstance(value, bool):
        raise InvalidRequest("Duration must be a positive number of minutes.")
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        raise InvalidRequest("Duration must be a positive number of minutes.") from None
    if minutes != value and str(minutes) != str(value).strip():
        raise InvalidRequest("Duration must be a whole number of minutes.")
    if minutes <= 0:
        raise InvalidRequest("Duration must be a positive number of minutes.")
    return minutes


class AvailabilityEngine:
    def __init__(self, clock=None, repository=None, rules_provider=None):
        self.clock = clock or SystemClock()
        self.repository = repository or CalendarRepository()
        self.rules_provider = rules_provider or get_booking_rules

    # -------------------------
    # Public API
    # -------------------------
    def get_available_slots(self, salon_id, date, total_duration_minutes, staff_id=None, service_ids=None):
        """
        Ordered list of Slot for 'date' (salon-local calendar day).

        Args:
            salon_id: Salon PK
            date: date, datetime or 'YYYY-MM-DD'
            total_duration_minutes: minutes the booking blocks (> 0)
            staff_id: restrict to one staff member; None = anyone qualified
            service_ids: when given, only staff qualified for all of them

        Raises:
            InvalidRequest: bad duration/date, past date, beyond horizon,
                unknown salon/staff/service
            StoreUnavailable: database failure

        Returns [] (not an error) when nothing is free.
        """
        duration = validate_duration(total_duration_minutes)
        day = coerce_date(date)

        salon = self.repository.get_salon(salon_id)
        rules = self.rules_provider(salon)
        now = self.clock.now()
        self._validate_day(day, salon, rules, now)

        services = self.repository.get_services(salon, service_ids) if service_ids else []
        staff_ids = self._candidate_staff_ids(salon, services, staff_id)
        if not staff_ids:
            return []
        return self._slots_for_day(salon, rules, day, duration, staff_ids, now)

    def get_slots_for_services(self, salon_id, date, service_ids, staff_id=None):
        """
        Slots for a chain of services booked back to back (e.g. cut + colour).
        """
        if not service_ids:
            raise InvalidRequest("At least one service is required.")
        salon = self.repository.get_salon(salon_id)
        services = self.repository.get_services(salon, service_ids)
        duration = total_duration(services, self.rules_provider(salon))
        return self.get_available_slots(
            salon_id, date, duration, staff_id=staff_id, service_ids=service_ids
        )

    def get_available_slots_for_range(
        self, salon_id, start_date, end_date, total_duration_minutes=None, staff_id=None, service_ids=None
    ):
        """
        Slots for every day in [start_date, end_date] (inclusive). Days before
        today are skipped; days beyond the booking horizon are cut off.
        """
        first = coerce_date(start_date)
        last = coerce_date(end_date)
        if last < first:
            raise InvalidRequest("End date must not be before start date.")

        salon = self.repository.get_salon(salon_id)
        rules = self.rules_provider(salon)
        if total_duration_minutes is None:
            if not service_ids:
                raise InvalidRequest("Provide a duration or at least one service.")
            total_duration_minutes = total_duration(self.repository.get_services(salon, service_ids), rules)

        today = self.clock.now().astimezone(salon.tzinfo).date()
        first = max(first, today)
        last = min(last, today + timedelta(days=rules.horizon_days))

        slots = []
        day = first
        while day <= last:
            slots.extend(
                self.get_available_slots(
                    salon_id, day, total_duration_minutes, staff_id=staff_id, service_ids=service_ids
                )
            )
            day += timedelta(days=1)
        return slots

    def check_interval(self, salon, staff, start, end, exclude_appointment_id=None):
        """
        Commit-time re-validation of [start, end) for 'staff'.

        Raises ReservationConflict with reason "overlap" when an occupying
        appointment intersects the interval, or "unavailable" when it is
        outside the working window or hits an absence / blocked time.
        """
        tz = salon.tzinfo
        day = start.astimezone(tz).date()
        now = self.clock.now()
        (staff_day,) = self.repository.load_staff_days(
            salon, [staff.id], day, now, exclude_appointment_id=exclude_appointment_id
        )
        target = absolute_to_interval(start, end, day, tz)

        overlapping = [appt_id for appt_id, interval in staff_day.booked if interval.overlaps(target)]
        if overlapping:
            raise ReservationConflict(
                "Selected time overlaps with an existing appointment for this staff member.",
                staff_id=staff.id, start=start, end=end, reason="overlap", conflicting_ids=overlapping,
            )

        free = compute_free_intervals(staff_day.windows, staff_day.blocked)
        if not any(interval.contains(target) for interval in free):
            raise ReservationConflict(
                "Selected time is no longer available for this staff member.",
                staff_id=staff.id, start=start, end=end, reason="unavailable",
            )

    # -------------------------
    # Internals
    # -------------------------
    def _validate_day(self, day, salon, rules, now):
        today = now.astimezone(salon.tzinfo).date()
        if day < today:
            raise InvalidRequest("Date must not be in the past.")
        if day > today + timedelta(days=rules.horizon_days):
            raise InvalidRequest(f"Bookings open at most {rules.horizon_days} days ahead.")

    def _candidate_staff_ids(self, salon, services, staff_id):
        qualified = self.repository.qualified_staff_ids(services) if services else None
        if staff_id is not None:
            staff = self.repository.get_staff(salon, staff_id)
            if qualified is not None and staff.id not in qualified:
                raise InvalidRequest(f"{staff.name} does not perform the requested service(s).")
            return [staff.id]
        staff_ids = [s.id for s in self.repository.bookable_staff(salon)]
        if qualified is not None:
            staff_ids = [sid for sid in staff_ids if sid in qualified]
        return staff_ids

    def _slots_for_day(self, salon, rules, day, duration, staff_ids, now):
        tz = salon.tzinfo
        earliest = to_local_minutes(now + timedelta(minutes=rules.lead_time_minutes), day, tz)

        slots = []
        for staff_day in self.repository.load_staff_days(salon, staff_ids, day, now):
            free = compute_free_intervals(staff_day.windows, staff_day.busy)
            for start in generate_slot_starts(free, duration, rules.slot_granularity_minutes, earliest):
                slots.append(
                    Slot(
                        staff_id=staff_day.staff_id,
                        start=from_local_minutes(day, start, tz),
                        end=from_local_minutes(day, start + duration, tz),
                        duration_minutes=duration,
                    )
                )
        slots.sort(key=lambda s: (s.start, s.staff_id))
        logger.debug(
            "Computed %d slot(s) for salon %s on %s (duration=%s, staff=%s)",
            len(slots), salon.pk, day, duration, staff_ids,
        )
        return slots
