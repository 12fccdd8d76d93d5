"""
clock.py
--------
Source of "now" for past-date rejection, lead time and reservation expiry.

The engine and coordinator take a clock in their constructor so tests can pin
time with FixedClock instead of patching django.utils.timezone.
"""

from datetime import timedelta

from django.utils import timezone


class SystemClock:
    def now(self):
        return timezone.now()


class FixedClock:
    """
    A clock frozen at 'instant' (an aware datetime). advance() moves it.
    """

    def __init__(self, instant):
        if timezone.is_naive(instant):
            raise ValueError("FixedClock needs an aware datetime")
        self.instant = instant

    def now(self):
        return self.instant

    def advance(self, **kwargs):
        self.instant = self.instant + timedelta(**kwargs)
        return self.instant
