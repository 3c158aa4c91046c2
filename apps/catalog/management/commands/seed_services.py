from decimal import Decimal

from django.core.management.base import BaseCommand

from apps.catalog.models import Service, ServiceType

STARTER_SERVICES = [
    ("Trademark Registration", ServiceType.TRADEMARK, Decimal("5000.00"), 72),
    ("Copyright Registration", ServiceType.COPYRIGHT, Decimal("3500.00"), 72),
    ("Patent Filing", ServiceType.PATENT, Decimal("15000.00"), 168),
    ("GST Registration", ServiceType.GST_REGISTRATION, Decimal("1500.00"), 48),
    ("Private Limited Company Registration", ServiceType.COMPANY_REGISTRATION, Decimal("9000.00"), 120),
]


class Command(BaseCommand):
    help = "Seed a starter catalog of enrollable services."

    def handle(self, *args, **options):
        created_count = 0
        for name, service_type, price, sla_hours in STARTER_SERVICES:
            _, created = Service.objects.get_or_create(
                name=name,
                defaults={"type": service_type, "price": price, "sla_hours": sla_hours},
            )
            if created:
                created_count += 1

        self.stdout.write(self.style.SUCCESS(f"Seed services completed. services_created={created_count}"))
