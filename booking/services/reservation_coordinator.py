"""
reservation_coordinator.py
--------------------------
The only code path that writes Appointment rows.

Double-booking prevention:
- Slot lists from the AvailabilityEngine are advisory; another request may
  commit between "show slots" and "book".
- reserve() therefore locks the staff row (SELECT ... FOR UPDATE) inside
  transaction.atomic(), re-runs AvailabilityEngine.check_interval against the
  committed state, and only then inserts. Two writers for the same staff
  member queue on that lock; the second one sees the first one's appointment
  and gets ReservationConflict. SQLite has no row locks; its connections
  begin IMMEDIATE (see settings.DATABASES), which queues writers the same way.
- The loser must recompute availability. Nothing here retries.

Lock order is always staff row(s) first (ascending id), then the appointment
row, so reschedule() and confirm() cannot deadlock against reserve().

Notifications are scheduled with transaction.on_commit() and run through
_notify(), which logs and swallows every failure: a broken mail server never
rolls back a booking.
"""

import logging
from datetime import datetime, timedelta
from functools import partial

from django.db import DatabaseError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from notifications.dispatcher import NotificationDispatcher

from ..models import Appointment, AppointmentService, Staff
from .availability_engine import AvailabilityEngine, total_duration, validate_duration
from .clock import SystemClock
from .errors import (
    AppointmentNotFound,
    CancellationWindowClosed,
    InvalidRequest,
    InvalidStateTransition,
    ReservationConflict,
    StoreUnavailable,
)
from .rules import get_booking_rules
from .status import STATUS_TIMESTAMPS, check_transition, is_noop

logger = logging.getLogger(__name__)

EXPIRED_REASON = "reservation expired"


class ReservationCoordinator:
    def __init__(self, engine=None, clock=None, notifier=None, rules_provider=None):
        self.clock = clock or (engine.clock if engine is not None else SystemClock())
        self.rules_provider = rules_provider or get_booking_rules
        self.engine = engine or AvailabilityEngine(clock=self.clock, rules_provider=self.rules_provider)
        self.repository = self.engine.repository
        self.notifier = notifier if notifier is not None else NotificationDispatcher()

    # -------------------------
    # Reserve / reschedule
    # -------------------------
    def reserve(
        self,
        salon_id,
        staff_id,
        start_time,
        duration_minutes=None,
        customer_id=None,
        service_ids=None,
        confirm=False,
        notes="",
    ):
        """
        Book [start_time, start_time + duration) for one staff member.

        Args:
            salon_id, staff_id, customer_id: primary keys
            start_time: aware datetime or ISO-8601 string; naive values are
                read as salon-local wall clock
            duration_minutes: minutes to block; defaults to the chained total
                of service_ids
            service_ids: services performed, in order (snapshotted)
            confirm: create the appointment as confirmed instead of as a
                pending hold
            notes: free text

        Raises:
            InvalidRequest: bad input, unknown ids, unqualified staff, start
                not after now + lead time, beyond the booking horizon
            ReservationConflict: the interval is taken or no longer workable
            StoreUnavailable: database failure

        Returns the saved Appointment.
        """
        salon = self.repository.get_salon(salon_id)
        rules = self.rules_provider(salon)

        services = self.repository.get_services(salon, service_ids) if service_ids else []
        if duration_minutes is None:
            if not services:
                raise InvalidRequest("Provide a duration or at least one service.")
            duration_minutes = total_duration(services, rules)
        duration = validate_duration(duration_minutes)

        if customer_id is None:
            raise InvalidRequest("A customer is required.")
        customer = self.repository.get_customer(customer_id)
        staff = self.repository.get_staff(salon, staff_id)
        self._check_qualified(staff, services)

        start = self._validate_start(start_time, salon, rules)
        end = start + timedelta(minutes=duration)

        def work():
            self._lock_staff([staff.pk])
            self.engine.check_interval(salon, staff, start, end)

            now = self.clock.now()
            appointment = Appointment(
                salon=salon,
                staff=staff,
                customer=customer,
                start_time=start,
                end_time=end,
                duration_minutes=duration,
                notes=notes or "",
            )
            if confirm:
                appointment.status = Appointment.CONFIRMED
                appointment.confirmed_at = now
            else:
                appointment.status = Appointment.PENDING
                appointment.reservation_expires_at = now + timedelta(minutes=rules.reservation_timeout_minutes)
            appointment.save()

            AppointmentService.objects.bulk_create([
                AppointmentService(
                    appointment=appointment,
                    service=service,
                    service_name=service.name,
                    duration_minutes=service.duration_minutes,
                    buffer_minutes=service.buffer_minutes,
                    price=service.price,
                    sort_order=position,
                )
                for position, service in enumerate(services)
            ])
            transaction.on_commit(partial(self._notify, "appointment_reserved", appointment))
            return appointment

        appointment = self._commit(work, staff_id=staff.pk, start=start, end=end)
        logger.info(
            "Reserved appointment %s: staff=%s %s-%s status=%s",
            appointment.pk, staff.pk, start.isoformat(), end.isoformat(), appointment.status,
        )
        return appointment

    def reschedule(self, appointment_id, new_start, new_staff_id=None):
        """
        Move a pending or confirmed appointment to new_start (and optionally
        another staff member), keeping its duration. The appointment's own
        current interval never conflicts with the move.
        """
        appointment = self._get_appointment(appointment_id)
        salon = appointment.salon
        rules = self.rules_provider(salon)
        self._check_movable(appointment)

        staff = self.repository.get_staff(salon, new_staff_id if new_staff_id is not None else appointment.staff_id)
        services = [item.service for item in appointment.line_items.all() if item.service is not None]
        self._check_qualified(staff, services)

        start = self._validate_start(new_start, salon, rules)
        end = start + timedelta(minutes=appointment.duration_minutes)

        def work():
            self._lock_staff({staff.pk, appointment.staff_id})
            locked = self._lock_appointment(appointment.pk)
            self._check_movable(locked)
            self.engine.check_interval(salon, staff, start, end, exclude_appointment_id=locked.pk)

            locked.staff = staff
            locked.start_time = start
            locked.end_time = end
            fields = ["staff", "start_time", "end_time", "updated_at"]
            if locked.status == Appointment.PENDING:
                locked.reservation_expires_at = self.clock.now() + timedelta(
                    minutes=rules.reservation_timeout_minutes
                )
                fields.append("reservation_expires_at")
            locked.save(update_fields=fields)
            transaction.on_commit(partial(self._notify, "appointment_rescheduled", locked))
            return locked

        moved = self._commit(work, staff_id=staff.pk, start=start, end=end)
        logger.info("Rescheduled appointment %s to staff=%s %s", moved.pk, staff.pk, start.isoformat())
        return moved

    # -------------------------
    # Status transitions
    # -------------------------
    def confirm(self, appointment_id):
        return self.transition(appointment_id, Appointment.CONFIRMED)

    def cancel(self, appointment_id, reason="", by_customer=False):
        """
        Cancel an appointment. Idempotent: cancelling a cancelled appointment
        returns it unchanged.

        by_customer=True enforces the salon's cancellation cut-off
        (CancellationWindowClosed when start_time is closer than that).
        """
        if by_customer:
            appointment = self._get_appointment(appointment_id)
            if appointment.status != Appointment.CANCELLED:
                cutoff = self.rules_provider(appointment.salon).cancellation_cutoff_minutes
                if appointment.start_time - self.clock.now() < timedelta(minutes=cutoff):
                    raise CancellationWindowClosed(
                        f"Appointments can only be cancelled up to {cutoff} minutes before they start."
                    )
        return self.transition(appointment_id, Appointment.CANCELLED, reason=reason)

    def complete(self, appointment_id):
        return self.transition(appointment_id, Appointment.COMPLETED)

    def mark_no_show(self, appointment_id):
        return self.transition(appointment_id, Appointment.NO_SHOW)

    def transition(self, appointment_id, target, reason=""):
        """
        Move an appointment to 'target' if the lifecycle allows it.

        Confirming a pending hold whose timer already ran out re-checks its
        interval first, since someone else may have booked it meanwhile.
        """
        appointment = self._get_appointment(appointment_id)

        def work():
            if target == Appointment.CONFIRMED:
                self._lock_staff([appointment.staff_id])
            locked = self._lock_appointment(appointment.pk)
            return self._apply(locked, target, reason)

        updated, changed = self._commit(work, staff_id=appointment.staff_id,
                                        start=appointment.start_time, end=appointment.end_time)
        if changed:
            logger.info("Appointment %s -> %s", updated.pk, updated.status)
        return updated

    # -------------------------
    # Sweeps (management commands)
    # -------------------------
    def expire_stale_reservations(self) -> int:
        """
        Cancel pending holds whose reservation_expires_at has passed.
        Returns how many were cancelled.
        """
        now = self.clock.now()
        candidates = self._query(lambda: list(
            Appointment.objects.filter(
                status=Appointment.PENDING, reservation_expires_at__lte=now
            ).values_list("pk", flat=True)
        ))

        def expire(pk):
            locked = self._lock_appointment(pk)
            still_stale = (
                locked.status == Appointment.PENDING
                and locked.reservation_expires_at is not None
                and locked.reservation_expires_at <= now
            )
            if not still_stale:
                return False
            self._apply(locked, Appointment.CANCELLED, EXPIRED_REASON)
            return True

        count = sum(1 for pk in candidates if self._commit(partial(expire, pk)))
        if count:
            logger.info("Expired %d stale reservation(s)", count)
        return count

    def process_no_shows(self) -> int:
        """
        Mark confirmed appointments as no_show once they ended more than the
        salon's no-show grace period ago. Returns how many were marked.
        """
        now = self.clock.now()
        candidates = self._query(lambda: list(
            Appointment.objects.filter(status=Appointment.CONFIRMED, end_time__lte=now).select_related("salon")
        ))

        grace_by_salon = {}
        due = []
        for appointment in candidates:
            if appointment.salon_id not in grace_by_salon:
                grace_by_salon[appointment.salon_id] = self.rules_provider(appointment.salon).no_show_grace_minutes
            if appointment.end_time + timedelta(minutes=grace_by_salon[appointment.salon_id]) <= now:
                due.append(appointment.pk)

        def mark(pk):
            locked = self._lock_appointment(pk)
            if locked.status != Appointment.CONFIRMED:
                return False
            self._apply(locked, Appointment.NO_SHOW, "")
            return True

        count = sum(1 for pk in due if self._commit(partial(mark, pk)))
        if count:
            logger.info("Marked %d appointment(s) as no-show", count)
        return count

    # -------------------------
    # Internals
    # -------------------------
    def _apply(self, appointment, target, reason):
        """Run inside a transaction with 'appointment' locked."""
        current = appointment.status
        check_transition(current, target)
        if is_noop(current, target):
            return appointment, False

        now = self.clock.now()
        if (
            current == Appointment.PENDING
            and target == Appointment.CONFIRMED
            and appointment.reservation_expires_at is not None
            and appointment.reservation_expires_at <= now
        ):
            self.engine.check_interval(
                appointment.salon, appointment.staff, appointment.start_time, appointment.end_time,
                exclude_appointment_id=appointment.pk,
            )

        timestamp_field = STATUS_TIMESTAMPS[target]
        appointment.status = target
        setattr(appointment, timestamp_field, now)
        fields = ["status", timestamp_field, "updated_at"]
        if target == Appointment.CONFIRMED:
            appointment.reservation_expires_at = None
            fields.append("reservation_expires_at")
        if target == Appointment.CANCELLED:
            appointment.cancellation_reason = reason or ""
            fields.append("cancellation_reason")
        appointment.save(update_fields=fields)

        if target == Appointment.CONFIRMED:
            transaction.on_commit(partial(self._notify, "appointment_confirmed", appointment))
        elif target == Appointment.CANCELLED:
            transaction.on_commit(partial(self._notify, "appointment_cancelled", appointment))
        return appointment, True

    def _commit(self, work, staff_id=None, start=None, end=None):
        try:
            with transaction.atomic():
                return work()
        except ReservationConflict as exc:
            logger.info(
                "Reservation conflict (%s) for staff=%s %s-%s, conflicting=%s",
                exc.reason, exc.staff_id, exc.start, exc.end, exc.conflicting_ids,
            )
            raise
        except DatabaseError as exc:
            logger.exception("Database error while writing appointment (staff=%s start=%s)", staff_id, start)
            raise StoreUnavailable("The booking database is currently unavailable.") from exc

    def _query(self, func):
        try:
            return func()
        except DatabaseError as exc:
            logger.exception("Database error while reading appointments")
            raise StoreUnavailable("The booking database is currently unavailable.") from exc

    def _lock_staff(self, staff_ids):
        # Locks taken in id order so concurrent writers queue, never deadlock.
        list(Staff.objects.select_for_update().filter(pk__in=sorted(staff_ids)).order_by("pk"))

    def _lock_appointment(self, appointment_id):
        return (
            Appointment.objects.select_for_update(of=("self",))
            .select_related("salon", "staff", "customer")
            .get(pk=appointment_id)
        )

    def _get_appointment(self, appointment_id):
        try:
            pk = int(appointment_id)
        except (TypeError, ValueError):
            raise InvalidRequest(f"Invalid appointment id: {appointment_id!r}") from None
        appointment = self._query(
            lambda: Appointment.objects.select_related("salon", "staff", "customer").filter(pk=pk).first()
        )
        if appointment is None:
            raise AppointmentNotFound(f"Unknown appointment: {appointment_id}")
        return appointment

    def _check_qualified(self, staff, services):
        if not services:
            return
        qualified = self.repository.qualified_staff_ids(services)
        if qualified is not None and staff.pk not in qualified:
            raise InvalidRequest(f"{staff.name} does not perform the requested service(s).")

    def _check_movable(self, appointment):
        if appointment.status not in (Appointment.PENDING, Appointment.CONFIRMED):
            raise InvalidStateTransition(appointment.status, "rescheduled")
        expires = appointment.reservation_expires_at
        if appointment.status == Appointment.PENDING and expires is not None and expires <= self.clock.now():
            raise InvalidRequest("This reservation hold has expired. Please book again.")

    def _validate_start(self, value, salon, rules):
        if isinstance(value, str):
            try:
                parsed = parse_datetime(value.strip())
            except ValueError:
                parsed = None
            if parsed is None:
                raise InvalidRequest("Invalid start_time. Use ISO-8601, e.g. 2031-03-03T10:00:00+01:00.")
            value = parsed
        if not isinstance(value, datetime):
            raise InvalidRequest("start_time must be a datetime.")
        if timezone.is_naive(value):
            value = timezone.make_aware(value, salon.tzinfo)
        if value.second or value.microsecond:
            raise InvalidRequest("start_time must be on a whole minute.")

        now = self.clock.now()
        earliest = now + timedelta(minutes=rules.lead_time_minutes)
        if value <= earliest:
            raise InvalidRequest("start_time must be in the future (respecting the booking lead time).")

        tz = salon.tzinfo
        last_day = now.astimezone(tz).date() + timedelta(days=rules.horizon_days)
        if value.astimezone(tz).date() > last_day:
            raise InvalidRequest(f"Bookings open at most {rules.horizon_days} days ahead.")
        return value

    def _notify(self, event, appointment):
        handler = getattr(self.notifier, event, None)
        if handler is None:
            return
        try:
            handler(appointment)
        except Exception:
            logger.exception("Notifier %s failed for appointment %s", event, appointment.pk)
