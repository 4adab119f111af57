# hsse_core/iam/models.py
import uuid

from django.db import models

from hsse_core.iam.roles import RoleCode
from hsse_core.tenants.models import Tenant


class TenantMember(models.Model):
    """
    Anchors a Django user (by id) to a tenant.
    This is the membership check used by request scope enforcement.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="members")
    user_id = models.BigIntegerField(db_index=True)
    display_name = models.CharField(max_length=255, blank=True, default="")

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "iam_tenant_member"
        constraints = [
            models.UniqueConstraint(fields=["tenant", "user_id"], name="uq_tenant_member_user"),
        ]
        indexes = [
            models.Index(fields=["tenant", "is_active"]),
        ]

    def __str__(self) -> str:
        return self.display_name or f"user:{self.user_id}"


class RoleAssignment(models.Model):
    """
    One role held by one member. A member may hold several roles.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    member = models.ForeignKey(TenantMember, on_delete=models.CASCADE, related_name="role_assignments")
    role = models.CharField(max_length=64, choices=RoleCode.choices, db_index=True)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "iam_role_assignment"
        constraints = [
            models.UniqueConstraint(fields=["member", "role"], name="uq_member_role"),
        ]

    def __str__(self) -> str:
        return f"{self.member} -> {self.role}"
