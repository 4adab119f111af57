# hsse_core/iam/services/membership.py
from __future__ import annotations

from typing import Iterable, Optional
from uuid import UUID

from django.db import transaction

from hsse_core.iam.models import RoleAssignment, TenantMember
from hsse_core.tenants.models import TenantStatus


def is_user_member_of_tenant(*, user_id: int, tenant_id: UUID) -> bool:
    """
    Validate user -> tenant membership.
    Single source of truth used by scope enforcement.
    """
    return TenantMember.objects.filter(
        tenant_id=tenant_id,
        user_id=user_id,
        is_active=True,
        tenant__status=TenantStatus.ACTIVE,
    ).exists()


def get_role_codes(*, tenant_id: UUID, user_id: int) -> frozenset[str]:
    """
    Configured role codes the user holds in the tenant.
    Contextual roles (reporter, assigned investigator...) are derived by the workflow.
    """
    codes = RoleAssignment.objects.filter(
        member__tenant_id=tenant_id,
        member__user_id=user_id,
        member__is_active=True,
        is_active=True,
    ).values_list("role", flat=True)
    return frozenset(codes)


def list_user_ids_with_role(*, tenant_id: UUID, role: str) -> list[int]:
    return list(
        RoleAssignment.objects.filter(
            member__tenant_id=tenant_id,
            member__is_active=True,
            role=role,
            is_active=True,
        )
        .order_by("member__user_id")
        .values_list("member__user_id", flat=True)
        .distinct()
    )


@transaction.atomic
def ensure_member(
    *,
    tenant_id: UUID,
    user_id: int,
    roles: Iterable[str] = (),
    display_name: Optional[str] = None,
) -> TenantMember:
    """
    Idempotent: creates the membership if missing and grants any roles not yet held.
    Existing roles are never revoked here.
    """
    member, created = TenantMember.objects.get_or_create(
        tenant_id=tenant_id,
        user_id=user_id,
        defaults={"display_name": display_name or ""},
    )
    if not created and display_name and member.display_name != display_name:
        member.display_name = display_name
        member.save(update_fields=["display_name", "updated_at"])

    for role in roles:
        RoleAssignment.objects.update_or_create(member=member, role=role, defaults={"is_active": True})

    return member


def list_user_tenants(user_id: int) -> list[dict]:
    """
    Active memberships with their role codes, for /me.
    """
    members = (
        TenantMember.objects.filter(user_id=user_id, is_active=True, tenant__status=TenantStatus.ACTIVE)
        .select_related("tenant")
        .prefetch_related("role_assignments")
        .order_by("tenant__name")
    )
    return [
        {
            "tenant_id": str(m.tenant_id),
            "tenant_code": m.tenant.code,
            "tenant_name": m.tenant.name,
            "roles": sorted(ra.role for ra in m.role_assignments.all() if ra.is_active),
        }
        for m in members
    ]
