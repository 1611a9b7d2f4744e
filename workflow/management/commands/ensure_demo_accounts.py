from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction

from workflow.models import Facility, Hospital, User

DEMO_SET = [
    ("hospital1", User.ROLE_HOSPITAL, "Central General Hospital"),
    ("facility1", User.ROLE_FACILITY, "Green Hill Care Home"),
    ("admin1", User.ROLE_ADMIN, None),
]


class Command(BaseCommand):
    help = "Ensure demo hospital, facility and admin accounts exist (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--password", default="demo-pass-123", help="password set on every demo account")

    @transaction.atomic
    def handle(self, *args, **opts):
        password = make_password(opts["password"])
        for username, role, entity_name in DEMO_SET:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": password, "is_active": True},
            )
            if not created:
                u.password = password
                u.role = role
                u.is_active = True
                u.save(update_fields=["password", "role", "is_active"])
            if role == User.ROLE_ADMIN and not u.is_staff:
                u.is_staff = True
                u.save(update_fields=["is_staff"])
            if role == User.ROLE_HOSPITAL:
                Hospital.objects.get_or_create(user=u, defaults={"name": entity_name})
            elif role == User.ROLE_FACILITY:
                Facility.objects.get_or_create(
                    user=u, defaults={"name": entity_name, "bed_capacity": 40, "available_beds": 5}
                )
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("All demo accounts ensured."))
