"""
status.py
---------
Appointment lifecycle.

    pending   -> confirmed | cancelled
    confirmed -> completed | cancelled | no_show
    completed, cancelled, no_show are terminal

Cancelling an already cancelled appointment is a no-op rather than an error,
so an abandoned checkout can be released more than once safely.
"""

from ..models import Appointment
from .errors import InvalidStateTransition

ALLOWED_TRANSITIONS = {
    Appointment.PENDING: {Appointment.CONFIRMED, Appointment.CANCELLED},
    Appointment.CONFIRMED: {Appointment.COMPLETED, Appointment.CANCELLED, Appointment.NO_SHOW},
    Appointment.COMPLETED: set(),
    Appointment.CANCELLED: set(),
    Appointment.NO_SHOW: set(),
}

# Timestamp column stamped when an appointment enters each status.
STATUS_TIMESTAMPS = {
    Appointment.CONFIRMED: "confirmed_at",
    Appointment.CANCELLED: "cancelled_at",
    Appointment.COMPLETED: "completed_at",
    Appointment.NO_SHOW: "no_show_at",
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def is_noop(current: str, target: str) -> bool:
    """True for the idempotent case (cancel of a cancelled appointment)."""
    return current == target == Appointment.CANCELLED


def check_transition(current: str, target: str) -> None:
    """Raise InvalidStateTransition unless current -> target is allowed."""
    if target not in ALLOWED_TRANSITIONS:
        raise InvalidStateTransition(current, target)
    if not (can_transition(current, target) or is_noop(current, target)):
        raise InvalidStateTransition(current, target)
