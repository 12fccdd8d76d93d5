# booking/urls.py
#
# Purpose:
# - Expose the scheduling REST API via DRF router.
#
# Routes (all under /api/, see salon_booking/urls.py):
#   customers/     POST create-or-reuse
#   services/      GET  active catalog
#   staff/         GET  active, bookable staff
#   appointments/  availability, reserve, cancel, lifecycle actions
#
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import AppointmentViewSet, CustomerViewSet, ServiceViewSet, StaffViewSet

router = DefaultRouter()
router.register(r"customers", CustomerViewSet, basename="customer")
router.register(r"services", ServiceViewSet, basename="service")
router.register(r"staff", StaffViewSet, basename="staff")
router.register(r"appointments", AppointmentViewSet, basename="appointment")

urlpatterns = [
    path("", include(router.urls)),
]
