# salon_booking/urls.py
#
# Purpose:
# - Project URL router. All JSON APIs live under /api/.
#
from django.urls import include, path

urlpatterns = [
    path("api/", include("booking.urls")),
]
