"""
seed_salon.py
-------------
Seeds (creates or updates) a demo salon: opening hours, stylists with their
weekly shifts, and a service catalog. You can run this any time; rows are
upserted by slug / email / name, so nothing is duplicated.

Usage:
    python manage.py seed_salon
    python manage.py seed_salon --slug downtown --name "Downtown Salon" --timezone Europe/Zurich
"""

from datetime import time
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from booking.models import Service, Staff
from salons.models import Salon
from schedules.models import OpeningHours, StaffWorkingHours

# weekday -> (open, close); missing weekdays are closed
OPENING_HOURS = {
    0: None,
    1: (time(9, 0), time(18, 0)),
    2: (time(9, 0), time(18, 0)),
    3: (time(9, 0), time(20, 0)),
    4: (time(9, 0), time(18, 0)),
    5: (time(8, 0), time(16, 0)),
    6: None,
}

CATALOG = [
    # Cuts
    {"name": "Haircut - Short",       "description": "Wash, cut, style",        "duration_minutes": 30,  "buffer_minutes": 0,  "price": Decimal("45.00")},
    {"name": "Haircut - Long",        "description": "Wash, cut, style",        "duration_minutes": 60,  "buffer_minutes": 0,  "price": Decimal("75.00")},
    {"name": "Blow-dry",              "description": "Styling only",            "duration_minutes": 30,  "buffer_minutes": 0,  "price": Decimal("35.00")},

    # Colour (processing time kept as buffer)
    {"name": "Colour - Roots",        "description": "Root touch-up",           "duration_minutes": 45,  "buffer_minutes": 30, "price": Decimal("90.00")},
    {"name": "Colour - Full",         "description": "Full colour",             "duration_minutes": 90,  "buffer_minutes": 30, "price": Decimal("150.00")},
    {"name": "Balayage",              "description": "Hand-painted highlights", "duration_minutes": 150, "buffer_minutes": 15, "price": Decimal("220.00")},

    # Treatments
    {"name": "Keratin Treatment",     "description": "Smoothing treatment",     "duration_minutes": 120, "buffer_minutes": 15, "price": Decimal("250.00")},
]

# email -> (name, role, weekdays worked, shift, services by name or None = all)
STAFF = {
    "anna@salon.local":  ("Anna",  "Senior Stylist", [1, 2, 3, 4, 5], (time(9, 0), time(17, 0)), None),
    "marco@salon.local": ("Marco", "Stylist",        [1, 2, 3, 4],    (time(10, 0), time(18, 0)),
                          ["Haircut - Short", "Haircut - Long", "Blow-dry"]),
    "lea@salon.local":   ("Lea",   "Colourist",      [2, 3, 4, 5],    (time(9, 0), time(17, 0)),
                          ["Colour - Roots", "Colour - Full", "Balayage", "Keratin Treatment"]),
}


class Command(BaseCommand):
    help = "Seed or update a demo salon with hours, staff and services."

    def add_arguments(self, parser):
        parser.add_argument("--slug", default="demo-salon", help="Salon slug (upsert key).")
        parser.add_argument("--name", default="Demo Salon", help="Salon display name.")
        parser.add_argument("--timezone", default=None, help="IANA timezone name (default: TIME_ZONE).")

    @transaction.atomic
    def handle(self, *args, **options):
        defaults = {"name": options["name"], "is_active": True}
        if options["timezone"]:
            defaults["timezone"] = options["timezone"]
        salon, salon_created = Salon.objects.update_or_create(slug=options["slug"], defaults=defaults)

        for weekday, hours in OPENING_HOURS.items():
            OpeningHours.objects.update_or_create(
                salon=salon,
                weekday=weekday,
                defaults={
                    "is_open": hours is not None,
                    "open_time": hours[0] if hours else None,
                    "close_time": hours[1] if hours else None,
                },
            )

        created = 0
        updated = 0
        services = {}
        for item in CATALOG:
            svc, is_created = Service.objects.get_or_create(
                salon=salon,
                name=item["name"],
                defaults={
                    "description": item["description"],
                    "duration_minutes": item["duration_minutes"],
                    "buffer_minutes": item["buffer_minutes"],
                    "price": item["price"],
                    "active": True,
                },
            )
            if is_created:
                created += 1
            else:
                changed = False
                for field in ("description", "duration_minutes", "buffer_minutes", "price"):
                    if getattr(svc, field) != item[field]:
                        setattr(svc, field, item[field])
                        changed = True
                if not svc.active:
                    svc.active = True
                    changed = True
                if changed:
                    svc.save()
                    updated += 1
            services[svc.name] = svc

        for email, (name, role, weekdays, shift, service_names) in STAFF.items():
            member, _ = Staff.objects.update_or_create(
                email=email,
                defaults={"salon": salon, "name": name, "role": role, "is_active": True, "is_bookable": True},
            )
            member.working_hours.all().delete()
            StaffWorkingHours.objects.bulk_create([
                StaffWorkingHours(staff=member, weekday=day, start_time=shift[0], end_time=shift[1])
                for day in weekdays
            ])
            if service_names is None:
                member.services.clear()
            else:
                member.services.set([services[n] for n in service_names])

        verb = "Created" if salon_created else "Updated"
        self.stdout.write(self.style.SUCCESS(
            f"{verb} salon '{salon.slug}'. Services created={created}, updated={updated}; staff={len(STAFF)}"
        ))
