# booking/tests/test_api.py

from unittest import mock

from django.contrib.auth.models import User
from django.test import TestCase
from django.utils.dateparse import parse_datetime
from rest_framework.test import APIClient

from booking.models import Appointment, Customer
from booking.services.errors import StoreUnavailable
from booking.services.reservation_coordinator import ReservationCoordinator
from booking.tests.helpers import (
    DAY,
    RecordingNotifier,
    clock_at,
    local,
    make_appointment,
    make_customer,
    make_salon,
    make_service,
    make_staff,
)
from booking.views import AppointmentViewSet


class ApiTestCase(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.salon = make_salon()
        self.staff = make_staff(self.salon)
        self.customer = make_customer()
        self.clock = clock_at()
        self.coordinator = ReservationCoordinator(clock=self.clock, notifier=RecordingNotifier())
        patcher = mock.patch.object(AppointmentViewSet, "coordinator", self.coordinator)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.staff_user = User.objects.create_user(username="frontdesk", password="pass12345", is_staff=True)

    def book(self, start="2031-03-03T10:00:00+01:00", **overrides):
        payload = {
            "salon": self.salon.id,
            "staff": self.staff.id,
            "customer": self.customer.id,
            "start_time": start,
            "duration_minutes": 60,
        }
        payload.update(overrides)
        payload = {key: value for key, value in payload.items() if value is not None}
        return self.client.post("/api/appointments/", payload, format="json")


class CatalogApiTests(ApiTestCase):
    def test_services_lists_active_only(self):
        make_service(self.salon, name="Cut")
        hidden = make_service(self.salon, name="Retired")
        hidden.active = False
        hidden.save()

        resp = self.client.get("/api/services/", {"salon": self.salon.id})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual([s["name"] for s in resp.json()], ["Cut"])

    def test_staff_filtered_by_service(self):
        colourist = make_staff(self.salon, name="Lea")
        colour = make_service(self.salon, name="Colour")
        colourist.services.add(colour)

        resp = self.client.get("/api/staff/", {"service": colour.id})

        self.assertEqual([s["id"] for s in resp.json()], [colourist.id])

    def test_customer_create_or_reuse(self):
        payload = {"name": " Dana ", "email": "dana@example.com", "phone": "0790000000"}
        first = self.client.post("/api/customers/", payload, format="json")
        second = self.client.post("/api/customers/", {**payload, "email": "DANA@example.com"}, format="json")

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(first.json()["id"], second.json()["id"])
        self.assertEqual(Customer.objects.filter(email__iexact="dana@example.com").count(), 1)


class AvailabilityApiTests(ApiTestCase):
    def test_availability_for_duration(self):
        make_appointment(self.salon, self.staff, self.customer, local(DAY, 10), 60)

        resp = self.client.get(
            "/api/appointments/availability/", {"salon": self.salon.id, "date": "2031-03-03", "duration": 30}
        )

        self.assertEqual(resp.status_code, 200)
        slots = resp.json()["slots"]
        self.assertEqual(slots[0]["start_time"], "2031-03-03T09:00:00+01:00")
        self.assertEqual(slots[-1]["end_time"], "2031-03-03T17:00:00+01:00")
        self.assertTrue(all(s["staff_id"] == self.staff.id for s in slots))

    def test_availability_for_chained_services(self):
        a = make_service(self.salon, name="Wash", duration=15)
        b = make_service(self.salon, name="Cut", duration=45)
        resp = self.client.get(
            "/api/appointments/availability/",
            {"salon": self.salon.id, "date": "2031-03-03", "services": f"{a.id},{b.id}"},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["slots"][0]["duration_minutes"], 60)

    def test_availability_rejects_bad_input(self):
        url = "/api/appointments/availability/"
        self.assertEqual(self.client.get(url, {"salon": self.salon.id, "date": "2031-03-03"}).status_code, 400)
        self.assertEqual(
            self.client.get(url, {"salon": self.salon.id, "date": "2020-01-01", "duration": 30}).status_code, 400
        )
        self.assertEqual(self.client.get(url, {"salon": 999999, "date": "2031-03-03", "duration": 30}).status_code, 400)

    def test_availability_range(self):
        resp = self.client.get(
            "/api/appointments/availability/range/",
            {"salon": self.salon.id, "start": "2031-03-02", "end": "2031-03-04", "duration": 60},
        )
        self.assertEqual(resp.status_code, 200)
        days = resp.json()["days"]
        self.assertEqual([d["date"] for d in days], ["2031-03-03"])
        self.assertEqual(len(days[0]["slots"]), 29)


class ReserveApiTests(ApiTestCase):
    def test_public_booking_is_pending(self):
        resp = self.book(confirm=True)
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["status"], Appointment.PENDING)

    def test_staff_booking_can_be_confirmed(self):
        self.client.force_authenticate(user=self.staff_user)
        resp = self.book(confirm=True)
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["status"], Appointment.CONFIRMED)

    def test_conflict_returns_409_with_details(self):
        first = self.book()
        resp = self.book(start="2031-03-03T10:30:00+01:00")

        self.assertEqual(resp.status_code, 409)
        body = resp.json()
        self.assertEqual(body["code"], "reservation_conflict")
        self.assertEqual(body["reason"], "overlap")
        self.assertEqual(body["conflicting_ids"], [first.json()["id"]])

    def test_invalid_request_returns_400(self):
        self.assertEqual(self.book(duration_minutes=0).status_code, 400)
        self.assertEqual(self.book(start="not a date").status_code, 400)
        self.assertEqual(self.book(customer=999999).status_code, 400)

    def test_store_unavailable_returns_503(self):
        with mock.patch.object(self.coordinator, "reserve", side_effect=StoreUnavailable("db down")):
            resp = self.book()
        self.assertEqual(resp.status_code, 503)

    def test_booking_with_services(self):
        cut = make_service(self.salon, name="Cut", duration=45, buffer=15)
        resp = self.book(duration_minutes=None, services=[cut.id])
        self.assertEqual(resp.status_code, 201, resp.content)
        body = resp.json()
        self.assertEqual(body["duration_minutes"], 60)
        self.assertEqual(body["services"][0]["service_name"], "Cut")


class LifecycleApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.appt = self.coordinator.reserve(
            self.salon.id, self.staff.id, local(DAY, 10), 60, customer_id=self.customer.id
        )

    def test_public_cancel_requires_matching_email(self):
        url = f"/api/appointments/{self.appt.id}/cancel/"
        self.assertEqual(self.client.post(url, {"email": "someone@else.com"}, format="json").status_code, 400)

        resp = self.client.post(url, {"email": "CHLOE@example.com", "reason": "sick"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], Appointment.CANCELLED)

        again = self.client.post(url, {"email": "chloe@example.com"}, format="json")
        self.assertEqual(again.status_code, 200)

    def test_public_cancel_inside_cutoff(self):
        self.clock.instant = local(DAY, 9)
        url = f"/api/appointments/{self.appt.id}/cancel/"
        resp = self.client.post(url, {"email": "chloe@example.com"}, format="json")
        self.assertEqual(resp.status_code, 400)

        self.client.force_authenticate(user=self.staff_user)
        self.assertEqual(self.client.post(url, {}, format="json").status_code, 200)

    def test_cancel_unknown_appointment(self):
        self.assertEqual(
            self.client.post("/api/appointments/999999/cancel/", {"email": "x@y.com"}, format="json").status_code,
            404,
        )

    def test_staff_actions_need_staff_user(self):
        self.assertIn(self.client.post(f"/api/appointments/{self.appt.id}/confirm/").status_code, (401, 403))
        self.assertIn(self.client.get("/api/appointments/").status_code, (401, 403))

        customer_user = User.objects.create_user(username="chloe", password="pass12345")
        self.client.force_authenticate(user=customer_user)
        self.assertEqual(self.client.post(f"/api/appointments/{self.appt.id}/confirm/").status_code, 403)

    def test_staff_lifecycle(self):
        self.client.force_authenticate(user=self.staff_user)
        base = f"/api/appointments/{self.appt.id}"

        self.assertEqual(self.client.post(f"{base}/confirm/").json()["status"], Appointment.CONFIRMED)
        moved = self.client.post(f"{base}/reschedule/", {"start_time": "2031-03-03T14:00:00+01:00"}, format="json")
        self.assertEqual(moved.status_code, 200)
        self.assertEqual(parse_datetime(moved.json()["start_time"]), local(DAY, 14))

        self.clock.instant = local(DAY, 15, 30)
        self.assertEqual(self.client.post(f"{base}/no-show/").json()["status"], Appointment.NO_SHOW)
        self.assertEqual(self.client.post(f"{base}/complete/").status_code, 400)

    def test_staff_list_and_retrieve(self):
        self.client.force_authenticate(user=self.staff_user)
        listing = self.client.get("/api/appointments/", {"date": "2031-03-03", "staff": self.staff.id})
        self.assertEqual([a["id"] for a in listing.json()], [self.appt.id])
        self.assertEqual(self.client.get(f"/api/appointments/{self.appt.id}/").json()["id"], self.appt.id)
        self.assertEqual(self.client.post("/api/appointments/999999/confirm/").status_code, 404)
