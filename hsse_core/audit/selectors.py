# hsse_core/audit/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from hsse_core.audit.models import AuditEntry


def list_audit_entries(
    *,
    tenant_id: UUID,
    event_id: UUID | None = None,
    action: str | None = None,
    actor_id: int | None = None,
) -> QuerySet[AuditEntry]:
    qs = AuditEntry.objects.filter(tenant_id=tenant_id)

    if event_id:
        qs = qs.filter(event_id=event_id)
    if action:
        qs = qs.filter(action=action)
    if actor_id is not None:
        qs = qs.filter(actor_id=actor_id)

    return qs.order_by("-occurred_at")


def get_audit_trail(*, tenant_id: UUID, event_id: UUID) -> list[AuditEntry]:
    """
    Full history of one event, oldest first.
    """
    return list(
        AuditEntry.objects.filter(tenant_id=tenant_id, event_id=event_id).order_by("occurred_at", "created_at")
    )
