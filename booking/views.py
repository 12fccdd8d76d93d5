# booking/views.py
#
# Purpose:
# - Read-only catalog APIs (services, staff) and customer create-or-reuse.
# - Appointment API: availability, reserve, cancel, and the staff-only
#   lifecycle actions (confirm, complete, no-show, reschedule).
#
# Permissions:
# - Browsing, availability, booking and cancelling need no login.
#   A public cancel must quote the customer's email and respects the
#   cancellation cut-off; staff users skip both checks.
# - Listing appointments and every other lifecycle action is staff-only.
#
# Error mapping (domain errors come from booking.services.errors):
# - InvalidRequest / InvalidStateTransition -> 400
# - AppointmentNotFound                     -> 404
# - ReservationConflict                     -> 409 (with conflict details)
# - StoreUnavailable                        -> 503
#
from django.utils.dateparse import parse_date
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, BasePermission
from rest_framework.response import Response

from .models import Appointment, Customer, Service, Staff
from .serializers import (
    AppointmentSerializer,
    AvailabilityQuerySerializer,
    CancelSerializer,
    CustomerSerializer,
    RescheduleSerializer,
    ReservationRequestSerializer,
    ServiceSerializer,
    StaffSerializer,
)
from .services.availability_engine import group_slots_by_date
from .services.errors import (
    AppointmentNotFound,
    BookingError,
    ReservationConflict,
    StoreUnavailable,
)
from .services.reservation_coordinator import ReservationCoordinator


# -------------------- Permissions --------------------
class IsStaffUser(BasePermission):
    """Logged-in user with is_staff."""
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_staff)


def _is_staff(request):
    user = getattr(request, "user", None)
    return bool(user and user.is_authenticated and user.is_staff)


def error_response(exc):
    """Translate a scheduling error into an HTTP response."""
    if isinstance(exc, ReservationConflict):
        return Response(exc.as_dict(), status=status.HTTP_409_CONFLICT)
    if isinstance(exc, StoreUnavailable):
        return Response({"detail": str(exc)}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
    if isinstance(exc, AppointmentNotFound):
        return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


# -------------------- ViewSets --------------------
class CustomerViewSet(mixins.CreateModelMixin, viewsets.GenericViewSet):
    queryset = Customer.objects.all().order_by("id")
    serializer_class = CustomerSerializer

    def create(self, request, *args, **kwargs):
        """
        Create-or-reuse a Customer with trimmed fields.
        - An existing row with the same name and email (case-insensitive) and
          the same phone is returned with 200 OK.
        - Otherwise a new one is created (201 Created).
        """
        name = (request.data.get("name") or "").strip()
        email = (request.data.get("email") or "").strip()
        phone = (request.data.get("phone") or "").strip()

        if not name or not email:
            return Response({"detail": "name and email are required."}, status=400)
        if phone and not phone.isdigit():
            return Response({"detail": "Phone must include digits only."}, status=400)

        existing = Customer.objects.filter(name__iexact=name, email__iexact=email, phone=phone).first()
        if existing:
            return Response(self.get_serializer(existing).data, status=200)

        serializer = self.get_serializer(data={"name": name, "email": email, "phone": phone})
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)
        headers = self.get_success_headers(serializer.data)
        return Response(serializer.data, status=201, headers=headers)


class ServiceViewSet(viewsets.ReadOnlyModelViewSet):
    """Active services; ?salon=ID narrows to one salon."""
    serializer_class = ServiceSerializer

    def get_queryset(self):
        qs = Service.objects.filter(active=True, salon__is_active=True).order_by("id")
        salon = self.request.query_params.get("salon")
        if salon and salon.isdigit():
            qs = qs.filter(salon_id=int(salon))
        return qs


class StaffViewSet(viewsets.ReadOnlyModelViewSet):
    """Active, bookable staff; ?salon=ID and ?service=ID narrow the list."""
    serializer_class = StaffSerializer

    def get_queryset(self):
        qs = Staff.objects.filter(is_active=True, is_bookable=True).prefetch_related("services").order_by("id")
        params = self.request.query_params
        salon = params.get("salon")
        if salon and salon.isdigit():
            qs = qs.filter(salon_id=int(salon))
        service = params.get("service")
        if service and service.isdigit():
            assigned = Service.objects.filter(pk=int(service)).values_list("staff_members", flat=True)
            assigned = [pk for pk in assigned if pk is not None]
            # Unassigned services may be done by anyone.
            if assigned:
                qs = qs.filter(pk__in=assigned)
        return qs


class AppointmentViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Endpoints:
    - GET  /api/appointments/availability/        slots for one day
    - GET  /api/appointments/availability/range/  slots grouped by day
    - POST /api/appointments/                     reserve (201/400/409/503)
    - POST /api/appointments/{id}/cancel/         public cancel (cut-off applies)
    - POST /api/appointments/{id}/confirm/        staff
    - POST /api/appointments/{id}/complete/       staff
    - POST /api/appointments/{id}/no-show/        staff
    - POST /api/appointments/{id}/reschedule/     staff
    - GET  /api/appointments/[{id}/]              staff
    """
    serializer_class = AppointmentSerializer
    lookup_value_regex = r"\d+"
    coordinator = ReservationCoordinator()

    PUBLIC_ACTIONS = ("create", "cancel", "availability", "availability_range")

    def get_permissions(self):
        if self.action in self.PUBLIC_ACTIONS:
            return [AllowAny()]
        return [IsStaffUser()]

    def get_queryset(self):
        qs = Appointment.objects.select_related("salon", "staff", "customer").prefetch_related("line_items")
        params = self.request.query_params
        for param, lookup in (("salon", "salon_id"), ("staff", "staff_id"), ("customer", "customer_id")):
            value = params.get(param)
            if value and value.isdigit():
                qs = qs.filter(**{lookup: int(value)})
        state = params.get("status")
        if state:
            qs = qs.filter(status=state)
        try:
            day = parse_date(params.get("date") or "")
        except ValueError:
            day = None
        if day:
            qs = qs.filter(start_time__date=day)
        return qs.order_by("start_time", "staff_id")

    def create(self, request, *args, **kwargs):
        """
        Reserve a slot. Only staff users may create an appointment as
        already confirmed; public bookings start as a pending hold.
        """
        serializer = ReservationRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            appointment = self.coordinator.reserve(
                salon_id=data["salon"],
                staff_id=data["staff"],
                start_time=data["start_time"],
                duration_minutes=data.get("duration_minutes"),
                customer_id=data["customer"],
                service_ids=data.get("services") or None,
                confirm=data["confirm"] and _is_staff(request),
                notes=data["notes"],
            )
        except BookingError as exc:
            return error_response(exc)

        out = AppointmentSerializer(appointment)
        headers = self.get_success_headers(out.data)
        return Response(out.data, status=status.HTTP_201_CREATED, headers=headers)

    @action(detail=False, methods=["get"], url_path="availability")
    def availability(self, request):
        """
        GET /api/appointments/availability/?salon=ID&date=YYYY-MM-DD&duration=30
        or  ...&services=1,2 (chained) and optionally &staff=ID
        """
        query = AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data
        if "date" not in params:
            return Response({"detail": "Missing 'date'."}, status=status.HTTP_400_BAD_REQUEST)

        engine = self.coordinator.engine
        try:
            if params.get("duration"):
                slots = engine.get_available_slots(
                    params["salon"], params["date"], params["duration"],
                    staff_id=params.get("staff"), service_ids=params.get("services") or None,
                )
            else:
                slots = engine.get_slots_for_services(
                    params["salon"], params["date"], params["services"], staff_id=params.get("staff"),
                )
        except BookingError as exc:
            return error_response(exc)

        return Response({"date": params["date"].isoformat(), "slots": [s.as_dict() for s in slots]})

    @action(detail=False, methods=["get"], url_path="availability/range")
    def availability_range(self, request):
        """
        GET /api/appointments/availability/range/?salon=ID&start=YYYY-MM-DD&end=YYYY-MM-DD&duration=30
        """
        query = AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data
        if "start" not in params or "end" not in params:
            return Response({"detail": "Missing 'start' or 'end'."}, status=status.HTTP_400_BAD_REQUEST)

        try:
            slots = self.coordinator.engine.get_available_slots_for_range(
                params["salon"], params["start"], params["end"],
                total_duration_minutes=params.get("duration"),
                staff_id=params.get("staff"),
                service_ids=params.get("services") or None,
            )
        except BookingError as exc:
            return error_response(exc)

        days = [
            {"date": day.isoformat(), "slots": [s.as_dict() for s in day_slots]}
            for day, day_slots in group_slots_by_date(slots)
        ]
        return Response({"days": days})

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        """
        Cancel an appointment. Public callers must send the customer's email
        and are held to the cancellation cut-off. Repeating a cancel is fine.
        """
        payload = CancelSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data
        staff_caller = _is_staff(request)

        if not staff_caller:
            appointment = Appointment.objects.select_related("customer").filter(pk=pk).first()
            if appointment is None:
                return Response({"detail": "Appointment not found."}, status=status.HTTP_404_NOT_FOUND)
            email = (data.get("email") or "").strip().lower()
            if not email or appointment.customer.email.strip().lower() != email:
                return Response(
                    {"detail": "Provided email does not match this booking."},
                    status=status.HTTP_400_BAD_REQUEST,
                )

        try:
            appointment = self.coordinator.cancel(pk, reason=data["reason"], by_customer=not staff_caller)
        except BookingError as exc:
            return error_response(exc)
        return Response(AppointmentSerializer(appointment).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def confirm(self, request, pk=None):
        return self._run(self.coordinator.confirm, pk)

    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):
        return self._run(self.coordinator.complete, pk)

    @action(detail=True, methods=["post"], url_path="no-show")
    def no_show(self, request, pk=None):
        return self._run(self.coordinator.mark_no_show, pk)

    @action(detail=True, methods=["post"])
    def reschedule(self, request, pk=None):
        payload = RescheduleSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = payload.validated_data
        return self._run(self.coordinator.reschedule, pk, data["start_time"], new_staff_id=data.get("staff"))

    def _run(self, operation, *args, **kwargs):
        try:
            appointment = operation(*args, **kwargs)
        except BookingError as exc:
            return error_response(exc)
        return Response(AppointmentSerializer(appointment).data, status=status.HTTP_200_OK)
