from __future__ import annotations

from django.core.management.base import BaseCommand
from django.db import transaction

from assessments.constants import DEFAULT_INDUSTRIES, DEFAULT_MODULES
from assessments.models import Industry, SAPModule


class Command(BaseCommand):
    help = "Seed the SAP module and industry lookup lists."

    @transaction.atomic
    def handle(self, *args, **options):
        for code, name, category in DEFAULT_MODULES:
            module, created = SAPModule.objects.update_or_create(
                code=code,
                defaults={"name": name, "category": category, "is_active": True},
            )
            action = "Created" if created else "Updated"
            self.stdout.write(f"{action} module {module.name}")

        for code, name in DEFAULT_INDUSTRIES:
            industry, created = Industry.objects.update_or_create(
                code=code,
                defaults={"name": name, "is_active": True},
            )
            action = "Created" if created else "Updated"
            self.stdout.write(f"{action} industry {industry.name}")

        self.stdout.write(
            self.style.SUCCESS(
                f"Seeded {len(DEFAULT_MODULES)} module(s) and {len(DEFAULT_INDUSTRIES)} industry(ies)."
            )
        )
