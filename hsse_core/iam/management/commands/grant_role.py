# hsse_core/iam/management/commands/grant_role.py

from django.core.management.base import BaseCommand, CommandError

from hsse_core.iam.roles import RoleCode
from hsse_core.iam.services.membership import ensure_member
from hsse_core.tenants.models import Tenant


class Command(BaseCommand):
    help = "Grant one or more HSSE roles to a user within a tenant (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("tenant_code")
        parser.add_argument("user_id", type=int)
        parser.add_argument("roles", nargs="*", choices=RoleCode.values)

    def handle(self, *args, **options):
        try:
            tenant = Tenant.objects.get(code=options["tenant_code"])
        except Tenant.DoesNotExist:
            raise CommandError(f"Unknown tenant: {options['tenant_code']}")

        member = ensure_member(tenant_id=tenant.id, user_id=options["user_id"], roles=options["roles"])
        held = sorted(member.role_assignments.filter(is_active=True).values_list("role", flat=True))
        self.stdout.write(self.style.SUCCESS(f"user {member.user_id} in {tenant.code}: {', '.join(held) or '-'}"))
