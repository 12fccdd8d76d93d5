"""
calendar.py
-----------
Calendar model: half-open time intervals and the helpers that turn recurring
weekday hours and absolute timestamps into them.

Conventions:
- Interval math is done in integer minutes since *local* midnight of the day
  being computed. Absolute timestamps are first converted to the salon's
  local wall clock, then to minutes, so raw UTC is never compared against
  local opening hours.
- Intervals are half-open [start, end): a slot ending at 12:00 does not touch
  an absence starting at 12:00.
- A window with open >= close is "closed", never an error.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta

MINUTES_PER_DAY = 24 * 60
_ONE_MINUTE = timedelta(minutes=1)


@dataclass(frozen=True, order=True)
class Interval:
    start: int
    end: int

    @property
    def length(self) -> int:
        return max(0, self.end - self.start)

    def is_empty(self) -> bool:
        return self.start >= self.end

    def overlaps(self, other) -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other) -> bool:
        return self.start <= other.start and other.end <= self.end

    def intersection(self, other):
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if start >= end:
            return None
        return Interval(start, end)


def merge_intervals(intervals):
    """
    Sort and coalesce overlapping or touching intervals. Empty ones are dropped.
    """
    ordered = sorted(i for i in intervals if not i.is_empty())
    merged = []
    for current in ordered:
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def intersect_interval_sets(left, right):
    """
    Intersection of two interval sets (each may be unsorted / overlapping).
    """
    a = merge_intervals(left)
    b = merge_intervals(right)
    result = []
    i = j = 0
    while i < len(a) and j < len(b):
        overlap = a[i].intersection(b[j])
        if overlap is not None:
            result.append(overlap)
        if a[i].end < b[j].end:
            i += 1
        else:
            j += 1
    return result


def subtract_intervals(windows, blocks):
    """
    Remove every block from the windows, returning disjoint free sub-intervals
    in ascending order.
    """
    free = []
    busy = merge_intervals(blocks)
    for window in merge_intervals(windows):
        cursor = window.start
        for block in busy:
            if block.end <= cursor:
                continue
            if block.start >= window.end:
                break
            if block.start > cursor:
                free.append(Interval(cursor, block.start))
            cursor = max(cursor, block.end)
            if cursor >= window.end:
                break
        if cursor < window.end:
            free.append(Interval(cursor, window.end))
    return free


# -------------------------
# Time-of-day helpers
# -------------------------
def parse_hhmm(value: str) -> time:
    h, m = value.split(":")
    return time(int(h), int(m))


def minutes_of(t: time) -> int:
    return t.hour * 60 + t.minute


@dataclass(frozen=True)
class WorkingWindow:
    """
    Recurring weekday hours (salon opening hours or a staff shift).

    weekday uses date.weekday(): Monday=0 ... Sunday=6.
    """
    weekday: int
    open_time: time | None
    close_time: time | None
    is_open: bool = True

    @property
    def is_valid(self) -> bool:
        return (
            self.is_open
            and self.open_time is not None
            and self.close_time is not None
            and self.open_time < self.close_time
        )

    def resolve(self, day):
        """
        Concrete Interval (local minutes) for 'day', or None when the window
        does not apply to that weekday or is closed/malformed.
        """
        if day.weekday() != self.weekday or not self.is_valid:
            return None
        return Interval(minutes_of(self.open_time), minutes_of(self.close_time))


# -------------------------
# Absolute <-> local minutes
# -------------------------
def to_local_minutes(dt, day, tz, round_up=False) -> int:
    """
    Minutes between local midnight of 'day' and the aware datetime 'dt',
    measured on the local wall clock of 'tz'. May be negative (dt before the
    day) or exceed 1440 (dt after it).

    Seconds are floored, or ceiled with round_up=True (used for block ends so
    a block never shrinks).
    """
    local = dt.astimezone(tz).replace(tzinfo=None)
    delta = local - datetime.combine(day, time.min)
    if round_up:
        return -((-delta) // _ONE_MINUTE)
    return delta // _ONE_MINUTE


def from_local_minutes(day, minutes: int, tz):
    """Aware datetime for 'minutes' after local midnight of 'day' in 'tz'."""
    naive = datetime.combine(day, time.min) + timedelta(minutes=minutes)
    return naive.replace(tzinfo=tz)


def local_day_bounds(day, tz):
    """
    Aware [start, end) covering 'day' on the local calendar of 'tz'.
    """
    start = datetime.combine(day, time.min).replace(tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min).replace(tzinfo=tz)
    return start, end


def absolute_to_interval(start, end, day, tz):
    """Local-minute Interval for an absolute [start, end) on 'day'."""
    return Interval(to_local_minutes(start, day, tz), to_local_minutes(end, day, tz, round_up=True))
