# hsse_core/audit/services.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from uuid import UUID

from django.db import transaction

from hsse_core.audit.models import AuditEntry


@dataclass(frozen=True)
class AuditDraft:
    """
    Audit entry produced by the workflow before it is persisted.
    """
    action: str
    from_status: str
    to_status: str
    old_value: Dict[str, Any] = field(default_factory=dict)
    new_value: Dict[str, Any] = field(default_factory=dict)


class AuditService:
    """
    Central audit writer. Persists into AuditEntry (immutable).
    """

    @staticmethod
    @transaction.atomic
    def log(
        *,
        tenant_id: UUID,
        event_id: UUID,
        actor_id: int | None,
        action: str,
        from_status: str = "",
        to_status: str = "",
        old_value: Optional[Dict[str, Any]] = None,
        new_value: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        return AuditEntry.objects.create(
            tenant_id=tenant_id,
            event_id=event_id,
            actor_id=actor_id,
            action=action,
            from_status=from_status,
            to_status=to_status,
            old_value=old_value or {},
            new_value=new_value or {},
        )

    @staticmethod
    def log_draft(*, tenant_id: UUID, event_id: UUID, actor_id: int | None, draft: AuditDraft) -> AuditEntry:
        return AuditService.log(
            tenant_id=tenant_id,
            event_id=event_id,
            actor_id=actor_id,
            action=draft.action,
            from_status=draft.from_status,
            to_status=draft.to_status,
            old_value=draft.old_value,
            new_value=draft.new_value,
        )
