"""
errors.py
---------
Typed failures raised by the scheduling core.

How callers should react:
- InvalidRequest           fix the input (AppointmentNotFound: the id is unknown)
- ReservationConflict      recompute availability and offer fresh slots
- StoreUnavailable         retry later; the database could not be reached
- InvalidStateTransition   the appointment is not in a state that allows it

"No availability" is not an error: the engine simply returns [].
"""


class BookingError(Exception):
    """Base class for scheduling errors."""


class InvalidRequest(BookingError, ValueError):
    """Bad duration, past date, unknown salon/staff/service/customer."""


class CancellationWindowClosed(InvalidRequest):
    """Customer tried to cancel inside the salon's cancellation cut-off."""


class AppointmentNotFound(InvalidRequest):
    """No appointment with the given id."""


class StoreUnavailable(BookingError):
    """The row store failed (connection lost, lock timeout, ...)."""


class ReservationConflict(BookingError):
    """
    The requested interval is no longer free for this staff member.

    reason:
      - "overlap": another non-cancelled appointment claimed an overlapping interval
      - "unavailable": outside working hours, or an absence/blocked time now covers it
    """

    def __init__(self, message, staff_id=None, start=None, end=None, reason="overlap", conflicting_ids=()):
        super().__init__(message)
        self.staff_id = staff_id
        self.start = start
        self.end = end
        self.reason = reason
        self.conflicting_ids = list(conflicting_ids)

    def as_dict(self) -> dict:
        return {
            "detail": str(self),
            "code": "reservation_conflict",
            "reason": self.reason,
            "staff_id": self.staff_id,
            "start_time": self.start.isoformat() if self.start else None,
            "end_time": self.end.isoformat() if self.end else None,
            "conflicting_ids": self.conflicting_ids,
        }


class InvalidStateTransition(BookingError, ValueError):
    def __init__(self, current, target):
        super().__init__(f"Cannot change appointment from '{current}' to '{target}'.")
        self.current = current
        self.target = target
