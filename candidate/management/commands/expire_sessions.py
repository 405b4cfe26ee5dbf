"""
Expire and score candidate sessions whose time ran out.

Covers candidates who closed the browser mid-test. Meant to run from a
scheduler every few minutes.

Usage:
    python manage.py expire_sessions
"""
from django.core.management.base import BaseCommand

from candidate.session import expire_overdue_sessions


class Command(BaseCommand):
    help = "Force-submit running assessment sessions past their deadline"

    def handle(self, *args, **options):
        stats = expire_overdue_sessions()

        if stats["expired"] == 0 and stats["errors"] == 0:
            self.stdout.write("No overdue sessions.")
            return

        if stats["errors"]:
            self.stderr.write(
                self.style.ERROR(
                    f"Expired {stats['expired']} session(s) with {stats['errors']} error(s)."
                )
            )
            raise SystemExit(1)
        self.stdout.write(self.style.SUCCESS(f"Expired {stats['expired']} session(s)."))
