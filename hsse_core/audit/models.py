# hsse_core/audit/models.py
from django.db import models

from hsse_core.common.models import TenantScopedModel


class AuditEntryImmutable(Exception):
    pass


class AuditEntry(TenantScopedModel):
    """
    Immutable audit record.
    One row per successful workflow transition or corrective-action change;
    this is the ground-truth timeline of an event.
    """
    event_id = models.UUIDField(db_index=True)
    actor_id = models.BigIntegerField(null=True, blank=True, db_index=True)

    action = models.CharField(max_length=64, db_index=True)  # e.g. "expert_reject"
    from_status = models.CharField(max_length=48, blank=True, default="")
    to_status = models.CharField(max_length=48, blank=True, default="")

    old_value = models.JSONField(default=dict)
    new_value = models.JSONField(default=dict)

    occurred_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = "audit_audit_entry"
        ordering = ["occurred_at", "created_at"]
        indexes = [
            models.Index(fields=["tenant_id", "event_id", "occurred_at"]),
            models.Index(fields=["tenant_id", "action"]),
        ]

    def __str__(self) -> str:
        return f"{self.action} {self.from_status}->{self.to_status}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AuditEntryImmutable("Audit entries are append-only.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AuditEntryImmutable("Audit entries cannot be deleted.")
