# hsse_core/events/store.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.utils.timezone import now

from hsse_core.audit.models import AuditEntry
from hsse_core.audit.services import AuditDraft, AuditService
from hsse_core.events.errors import Conflict, NotFound
from hsse_core.events.models import Event, Investigation

logger = logging.getLogger(__name__)


class EventStore:
    """
    The only writer of Event rows once they exist.

    compare_and_update() is a single conditional UPDATE guarded by
    (status, version); zero affected rows means someone else got there first.
    """

    @staticmethod
    def get(*, tenant_id: UUID, event_id: UUID) -> Event:
        try:
            return Event.objects.get(id=event_id, tenant_id=tenant_id)
        except (Event.DoesNotExist, ValueError, ValidationError):
            raise NotFound()

    @staticmethod
    def get_investigation(*, tenant_id: UUID, event_id: UUID) -> Optional[Investigation]:
        return Investigation.objects.filter(event_id=event_id, tenant_id=tenant_id).first()

    @staticmethod
    def compare_and_update(
        *,
        tenant_id: UUID,
        event_id: UUID,
        expected_status: str,
        expected_version: int,
        patch: Dict[str, Any],
    ) -> Event:
        fields = dict(patch)
        fields["version"] = F("version") + 1
        fields["updated_at"] = now()
        if "status" in fields and fields["status"] != expected_status:
            fields["status_changed_at"] = fields["updated_at"]

        updated = Event.objects.filter(
            id=event_id,
            tenant_id=tenant_id,
            status=expected_status,
            version=expected_version,
        ).update(**fields)

        if updated == 0:
            if Event.objects.filter(id=event_id, tenant_id=tenant_id).exists():
                logger.warning(
                    "Stale write on event %s (expected status=%s version=%s)",
                    event_id,
                    expected_status,
                    expected_version,
                )
                raise Conflict()
            raise NotFound()

        return Event.objects.get(id=event_id, tenant_id=tenant_id)

    @staticmethod
    def upsert_investigation(*, event: Event, patch: Dict[str, Any]) -> Investigation:
        investigation, _ = Investigation.objects.update_or_create(
            event=event,
            defaults={"tenant_id": event.tenant_id, **patch},
        )
        return investigation

    @staticmethod
    def append_audit(*, tenant_id: UUID, event_id: UUID, actor_id: int | None, draft: AuditDraft) -> AuditEntry:
        return AuditService.log_draft(tenant_id=tenant_id, event_id=event_id, actor_id=actor_id, draft=draft)

    @staticmethod
    @transaction.atomic
    def commit(*, event: Event, actor_id: int, result) -> Event:
        """
        Apply a TransitionResult: event patch, investigation patch and audit entry
        land together or not at all.
        """
        updated = EventStore.compare_and_update(
            tenant_id=event.tenant_id,
            event_id=event.id,
            expected_status=event.status,
            expected_version=event.version,
            patch=result.event_patch,
        )

        if result.investigation_patch:
            EventStore.upsert_investigation(event=updated, patch=result.investigation_patch)

        EventStore.append_audit(
            tenant_id=updated.tenant_id,
            event_id=updated.id,
            actor_id=actor_id,
            draft=result.audit,
        )
        return updated
