# hsse_core/events/management/commands/show_permissions.py

from django.core.management.base import BaseCommand

from hsse_core.events.models import EventStatus
from hsse_core.events.workflow import PERMISSIONS


class Command(BaseCommand):
    help = "Print the (status, action) -> roles permission table."

    def add_arguments(self, parser):
        parser.add_argument("--status", choices=EventStatus.values, default=None)

    def handle(self, *args, **options):
        only = options.get("status")
        rows = sorted(
            (str(status), str(action), ", ".join(sorted(roles)))
            for (status, action), roles in PERMISSIONS.items()
            if only is None or status == only
        )
        for status, action, roles in rows:
            self.stdout.write(f"{status:<36} {action:<26} {roles}")
        self.stdout.write(self.style.SUCCESS(f"{len(rows)} transitions"))
