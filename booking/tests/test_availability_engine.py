# booking/tests/test_availability_engine.py

from datetime import time, timedelta
from unittest import mock

from django.db import OperationalError
from django.test import SimpleTestCase, TestCase

from booking.models import Appointment, Staff
from booking.services.availability_engine import (
    AvailabilityEngine,
    generate_slot_starts,
    group_slots_by_date,
    total_duration,
)
from booking.services.calendar import Interval
from booking.services.errors import InvalidRequest, ReservationConflict, StoreUnavailable
from booking.services.rules import BookingRules
from booking.tests.helpers import (
    DAY,
    ZURICH,
    clock_at,
    hhmm,
    local,
    make_appointment,
    make_customer,
    make_salon,
    make_service,
    make_staff,
)
from schedules.models import BlockedTime, OpeningHours, StaffAbsence


class SlotStartTests(SimpleTestCase):
    def test_starts_aligned_to_grid_not_to_interval(self):
        starts = list(generate_slot_starts([Interval(547, 620)], 30, 15))
        self.assertEqual(starts, [555, 570, 585])

    def test_slot_may_end_exactly_at_interval_end(self):
        self.assertEqual(list(generate_slot_starts([Interval(540, 600)], 60, 15)), [540])

    def test_earliest_is_exclusive(self):
        self.assertEqual(list(generate_slot_starts([Interval(540, 660)], 30, 15, earliest=600)), [615, 630])

    def test_total_duration_adds_buffer_and_gap(self):
        a = mock.Mock(duration_minutes=30, buffer_minutes=15)
        b = mock.Mock(duration_minutes=45, buffer_minutes=0)
        self.assertEqual(total_duration([a, b], BookingRules()), 90)
        self.assertEqual(total_duration([a, b], BookingRules(chained_service_gap_minutes=10)), 100)
        self.assertEqual(total_duration([], BookingRules()), 0)


class AvailabilityEngineTests(TestCase):
    def setUp(self):
        self.salon = make_salon()
        self.staff = make_staff(self.salon)
        self.customer = make_customer()
        self.clock = clock_at()
        self.engine = AvailabilityEngine(clock=self.clock)

    def slots(self, duration=30, **kwargs):
        return self.engine.get_available_slots(self.salon.id, DAY, duration, **kwargs)

    # -------------------------
    # Scenarios
    # -------------------------
    def test_existing_appointment_scenario(self):
        make_appointment(self.salon, self.staff, self.customer, local(DAY, 10), 60)

        slots = self.slots(30)
        starts = hhmm(slots)

        self.assertEqual(starts[0], "09:00")
        self.assertEqual(slots[0].end, local(DAY, 9, 30))
        self.assertEqual(starts[-1], "16:30")
        self.assertEqual(slots[-1].end, local(DAY, 17))
        self.assertIn("09:30", starts)
        self.assertNotIn("09:45", starts)
        for s in slots:
            local_start = s.start.astimezone(ZURICH)
            self.assertFalse(10 <= local_start.hour < 11, local_start)

    def test_duration_longer_than_window_is_empty(self):
        self.assertEqual(self.slots(600), [])

    def test_slots_never_overlap_busy_time(self):
        make_appointment(self.salon, self.staff, self.customer, local(DAY, 10), 45)
        StaffAbsence.objects.create(staff=self.staff, start_time=local(DAY, 13), end_time=local(DAY, 14))
        BlockedTime.objects.create(salon=self.salon, start_time=local(DAY, 15, 10), end_time=local(DAY, 15, 20))

        busy = [
            (local(DAY, 10), local(DAY, 10, 45)),
            (local(DAY, 13), local(DAY, 14)),
            (local(DAY, 15, 10), local(DAY, 15, 20)),
        ]
        for s in self.slots(45):
            self.assertEqual(s.end - s.start, timedelta(minutes=45))
            for start, end in busy:
                self.assertFalse(s.start < end and start < s.end, (s, start, end))

    def test_idempotent(self):
        make_appointment(self.salon, self.staff, self.customer, local(DAY, 11), 30)
        self.assertEqual(self.slots(30), self.slots(30))

    # -------------------------
    # Working windows
    # -------------------------
    def test_staff_hours_outside_salon_hours_yield_nothing(self):
        evening = make_staff(self.salon, name="Eve", start=time(18, 0), end=time(21, 0))
        self.assertEqual(self.slots(30, staff_id=evening.id), [])

    def test_salon_closed_that_day(self):
        OpeningHours.objects.filter(salon=self.salon).update(is_open=False)
        self.assertEqual(self.slots(30), [])

    def test_no_working_hours_row_means_unavailable(self):
        self.staff.working_hours.all().delete()
        self.assertEqual(self.slots(30), [])

    def test_malformed_opening_hours_degrade_to_closed(self):
        OpeningHours.objects.filter(salon=self.salon).update(open_time=time(18, 0), close_time=time(9, 0))
        with self.assertLogs("booking.services.calendar_repository", level="WARNING"):
            self.assertEqual(self.slots(30), [])

    def test_split_shift(self):
        self.staff.working_hours.all().delete()
        self.staff.working_hours.create(weekday=DAY.weekday(), start_time=time(9, 0), end_time=time(10, 0))
        self.staff.working_hours.create(weekday=DAY.weekday(), start_time=time(14, 0), end_time=time(15, 0))
        self.assertEqual(hhmm(self.slots(60)), ["09:00", "14:00"])

    def test_slot_ending_at_closing_time_is_valid(self):
        self.staff.working_hours.update(end_time=time(18, 0))
        self.assertEqual(hhmm(self.slots(60))[-1], "17:00")

    # -------------------------
    # Absences and blocks (half-open)
    # -------------------------
    def test_slot_starting_at_absence_end_is_valid(self):
        StaffAbsence.objects.create(staff=self.staff, start_time=local(DAY, 12), end_time=local(DAY, 13))
        starts = hhmm(self.slots(30))
        self.assertIn("11:30", starts)
        self.assertNotIn("11:45", starts)
        self.assertNotIn("12:00", starts)
        self.assertIn("13:00", starts)

    def test_one_minute_absence_overlap_excludes_slot(self):
        StaffAbsence.objects.create(staff=self.staff, start_time=local(DAY, 12), end_time=local(DAY, 12, 1))
        starts = hhmm(self.slots(30))
        self.assertNotIn("11:45", starts)
        self.assertNotIn("12:00", starts)
        self.assertIn("12:15", starts)

    def test_multi_day_absence_blocks_whole_day(self):
        StaffAbsence.objects.create(
            staff=self.staff, reason="vacation",
            start_time=local(DAY - timedelta(days=1), 0), end_time=local(DAY + timedelta(days=3), 0),
        )
        self.assertEqual(self.slots(30), [])

    def test_salon_wide_block_applies_to_every_staff_member(self):
        other = make_staff(self.salon, name="Marco")
        BlockedTime.objects.create(
            salon=self.salon, block_type="maintenance", start_time=local(DAY, 9), end_time=local(DAY, 12)
        )
        slots = self.slots(30)
        self.assertEqual({s.staff_id for s in slots}, {self.staff.id, other.id})
        self.assertTrue(all(s.start >= local(DAY, 12) for s in slots))

    def test_staff_block_only_affects_that_staff_member(self):
        other = make_staff(self.salon, name="Marco")
        BlockedTime.objects.create(
            salon=self.salon, staff=self.staff, block_type="admin", start_time=local(DAY, 9), end_time=local(DAY, 10)
        )
        nine = [s.staff_id for s in self.slots(30) if s.start == local(DAY, 9)]
        self.assertEqual(nine, [other.id])

    # -------------------------
    # Appointment statuses
    # -------------------------
    def test_cancelled_and_no_show_free_their_interval(self):
        make_appointment(self.salon, self.staff, self.customer, local(DAY, 9), 60, status=Appointment.CANCELLED)
        make_appointment(self.salon, self.staff, self.customer, local(DAY, 10), 60, status=Appointment.NO_SHOW)
        starts = hhmm(self.slots(60))
        self.assertIn("09:00", starts)
        self.assertIn("10:00", starts)

    def test_pending_hold_blocks_until_it_expires(self):
        make_appointment(
            self.salon, self.staff, self.customer, local(DAY, 9), 60,
            status=Appointment.PENDING, reservation_expires_at=self.clock.now() + timedelta(minutes=15),
        )
        self.assertNotIn("09:00", hhmm(self.slots(60)))

        self.clock.advance(minutes=15)
        self.assertIn("09:00", hhmm(self.slots(60)))

    # -------------------------
    # Staff selection
    # -------------------------
    def test_merged_results_ordered_by_start_then_staff(self):
        other = make_staff(self.salon, name="Marco")
        slots = self.slots(30)
        keys = [(s.start, s.staff_id) for s in slots]
        self.assertEqual(keys, sorted(keys))
        self.assertEqual([s.staff_id for s in slots[:2]], sorted([self.staff.id, other.id]))

    def test_inactive_or_unbookable_staff_contribute_nothing(self):
        off = make_staff(self.salon, name="Off")
        gone = make_staff(self.salon, name="Gone")
        Staff.objects.filter(pk=off.pk).update(is_bookable=False)
        Staff.objects.filter(pk=gone.pk).update(is_active=False)
        self.assertEqual({s.staff_id for s in self.slots(30)}, {self.staff.id})

    def test_service_assigned_to_subset_of_staff(self):
        colourist = make_staff(self.salon, name="Lea")
        colour = make_service(self.salon, name="Colour", duration=60)
        colourist.services.add(colour)

        slots = self.engine.get_slots_for_services(self.salon.id, DAY, [colour.id])
        self.assertEqual({s.staff_id for s in slots}, {colourist.id})

    def test_unassigned_service_can_be_done_by_anyone(self):
        other = make_staff(self.salon, name="Marco")
        cut = make_service(self.salon)
        slots = self.engine.get_slots_for_services(self.salon.id, DAY, [cut.id])
        self.assertEqual({s.staff_id for s in slots}, {self.staff.id, other.id})

    def test_explicit_unqualified_staff_is_rejected(self):
        colourist = make_staff(self.salon, name="Lea")
        colour = make_service(self.salon, name="Colour", duration=60)
        colourist.services.add(colour)
        with self.assertRaises(InvalidRequest):
            self.engine.get_slots_for_services(self.salon.id, DAY, [colour.id], staff_id=self.staff.id)

    def test_chained_services_are_one_block_including_buffer(self):
        colour = make_service(self.salon, name="Colour", duration=45, buffer=30)
        cut = make_service(self.salon, name="Cut", duration=30)
        slots = self.engine.get_slots_for_services(self.salon.id, DAY, [colour.id, cut.id])
        self.assertTrue(all(s.duration_minutes == 105 for s in slots))
        self.assertEqual(hhmm(slots)[-1], "15:15")

    def test_chained_gap_is_configurable(self):
        engine = AvailabilityEngine(clock=self.clock, rules_provider=lambda salon: BookingRules(chained_service_gap_minutes=15))
        a = make_service(self.salon, name="A", duration=30)
        b = make_service(self.salon, name="B", duration=30)
        slots = engine.get_slots_for_services(self.salon.id, DAY, [a.id, b.id])
        self.assertEqual(slots[0].duration_minutes, 75)

    # -------------------------
    # Clock and rules
    # -------------------------
    def test_same_day_excludes_now_and_earlier(self):
        self.clock.instant = local(DAY, 10, 0)
        starts = hhmm(self.slots(30))
        self.assertEqual(starts[0], "10:15")

    def test_same_day_lead_time(self):
        self.salon.lead_time_minutes = 30
        self.salon.save()
        self.clock.instant = local(DAY, 10, 7)
        self.assertEqual(hhmm(self.slots(30))[0], "10:45")

    def test_granularity_override(self):
        self.salon.slot_granularity_minutes = 30
        self.salon.save()
        self.assertTrue(all(m in ("00", "30") for m in (h[-2:] for h in hhmm(self.slots(30)))))

    def test_slots_are_salon_local(self):
        first = self.slots(30)[0]
        self.assertEqual(first.start.utcoffset(), timedelta(hours=1))
        self.assertEqual(first.as_dict()["start_time"], "2031-03-03T09:00:00+01:00")

    # -------------------------
    # Invalid requests
    # -------------------------
    def test_invalid_requests(self):
        with self.assertRaises(InvalidRequest):
            self.slots(0)
        with self.assertRaises(InvalidRequest):
            self.slots(-30)
        with self.assertRaises(InvalidRequest):
            self.slots("abc")
        with self.assertRaises(InvalidRequest):
            self.engine.get_available_slots(self.salon.id, "03/03/2031", 30)
        with self.assertRaises(InvalidRequest):
            self.engine.get_available_slots(999999, DAY, 30)
        with self.assertRaises(InvalidRequest):
            self.slots(30, staff_id=999999)
        with self.assertRaises(InvalidRequest):
            self.slots(30, service_ids=[999999])

    def test_past_date_rejected(self):
        self.clock.instant = local(DAY + timedelta(days=1), 9)
        with self.assertRaises(InvalidRequest):
            self.slots(30)

    def test_beyond_horizon_rejected(self):
        self.salon.horizon_days = 1
        self.salon.save()
        with self.assertRaises(InvalidRequest):
            self.slots(30)

    def test_store_failure_is_reported(self):
        with mock.patch.object(StaffAbsence.objects, "filter", side_effect=OperationalError("connection lost")):
            with self.assertLogs("booking.services.calendar_repository", level="ERROR"):
                with self.assertRaises(StoreUnavailable):
                    self.slots(30)

    # -------------------------
    # Ranges
    # -------------------------
    def test_range_groups_by_day_and_skips_closed_days(self):
        tuesday = DAY + timedelta(days=1)
        OpeningHours.objects.create(
            salon=self.salon, weekday=tuesday.weekday(), open_time=time(9, 0), close_time=time(18, 0)
        )
        self.staff.working_hours.create(weekday=tuesday.weekday(), start_time=time(9, 0), end_time=time(10, 0))

        slots = self.engine.get_available_slots_for_range(
            self.salon.id, DAY - timedelta(days=5), tuesday + timedelta(days=1), 60
        )
        grouped = group_slots_by_date(slots)

        self.assertEqual([day for day, _ in grouped], [DAY, tuesday])
        self.assertEqual(len(grouped[1][1]), 1)

    def test_range_requires_ordered_dates(self):
        with self.assertRaises(InvalidRequest):
            self.engine.get_available_slots_for_range(self.salon.id, DAY, DAY - timedelta(days=1), 30)

    # -------------------------
    # Commit-time check
    # -------------------------
    def test_check_interval_reports_overlap(self):
        existing = make_appointment(self.salon, self.staff, self.customer, local(DAY, 10), 60)
        with self.assertRaises(ReservationConflict) as ctx:
            self.engine.check_interval(self.salon, self.staff, local(DAY, 10, 30), local(DAY, 11))
        self.assertEqual(ctx.exception.reason, "overlap")
        self.assertEqual(ctx.exception.conflicting_ids, [existing.id])

    def test_check_interval_reports_unavailable(self):
        with self.assertRaises(ReservationConflict) as ctx:
            self.engine.check_interval(self.salon, self.staff, local(DAY, 16, 30), local(DAY, 17, 30))
        self.assertEqual(ctx.exception.reason, "unavailable")

    def test_check_interval_can_ignore_one_appointment(self):
        existing = make_appointment(self.salon, self.staff, self.customer, local(DAY, 10), 60)
        self.engine.check_interval(
            self.salon, self.staff, local(DAY, 10, 30), local(DAY, 11, 30), exclude_appointment_id=existing.id
        )
