"""
rules.py
--------
Booking rules: granularity, lead time, horizon, hold timeout, etc.

Resolution order (later wins):
1) built-in defaults below
2) settings.SALON_BOOKING
3) per-salon overrides on salons.Salon (NULL = not overridden)

Bad values never raise; they fall back to the default and log a warning so a
single misconfigured salon cannot take booking down.
"""

import logging
from dataclasses import dataclass, fields, replace

from django.conf import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingRules:
    slot_granularity_minutes: int = 15
    lead_time_minutes: int = 0
    horizon_days: int = 90
    reservation_timeout_minutes: int = 15
    chained_service_gap_minutes: int = 0
    no_show_grace_minutes: int = 30
    cancellation_cutoff_minutes: int = 120


DEFAULT_RULES = BookingRules()

# Fields that must be >= 1; everything else must be >= 0.
_POSITIVE_FIELDS = {"slot_granularity_minutes", "horizon_days", "reservation_timeout_minutes"}

# Fields a salon row may override.
SALON_OVERRIDES = (
    "slot_granularity_minutes",
    "lead_time_minutes",
    "horizon_days",
    "reservation_timeout_minutes",
    "cancellation_cutoff_minutes",
)


def _clean(name, value, fallback, source):
    try:
        value = int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer booking rule %s=%r from %s", name, value, source)
        return fallback
    minimum = 1 if name in _POSITIVE_FIELDS else 0
    if value < minimum:
        logger.warning("Ignoring out-of-range booking rule %s=%r from %s", name, value, source)
        return fallback
    return value


def get_booking_rules(salon=None) -> BookingRules:
    rules = DEFAULT_RULES
    configured = getattr(settings, "SALON_BOOKING", {}) or {}

    updates = {}
    for f in fields(BookingRules):
        key = f.name.upper()
        if key in configured:
            updates[f.name] = _clean(f.name, configured[key], getattr(rules, f.name), "settings")
    rules = replace(rules, **updates)

    if salon is not None:
        updates = {}
        for name in SALON_OVERRIDES:
            value = getattr(salon, name, None)
            if value is not None:
                updates[name] = _clean(name, value, getattr(rules, name), f"salon {salon.pk}")
        rules = replace(rules, **updates)

    return rules
