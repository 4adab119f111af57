# hsse_core/corrective_actions/services.py

from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils.timezone import now

from hsse_core.audit.services import AuditService
from hsse_core.corrective_actions.models import CorrectiveAction, CorrectiveActionStatus, OPEN_STATUSES
from hsse_core.events.models import Event

logger = logging.getLogger(__name__)


class CorrectiveActionService:
    """
    Corrective-action write model.

    Notes:
    - Strict workflow: ASSIGNED -> IN_PROGRESS -> COMPLETED -> VERIFIED.
    - Verification may instead return a COMPLETED action for correction
      (RETURNED_FOR_CORRECTION -> IN_PROGRESS again); return_count tracks it.
    - Repeating the call that produced the current status is a no-op.
    - Every change appends an audit entry on the parent event.
    """

    # -------------------------
    # Internal helpers
    # -------------------------
    @staticmethod
    def _get_scoped(*, tenant_id: UUID, action_id: UUID) -> CorrectiveAction:
        return CorrectiveAction.objects.select_related("event").select_for_update().get(
            id=action_id, tenant_id=tenant_id
        )

    @staticmethod
    def _audit(
        *,
        action: CorrectiveAction,
        verb: str,
        actor_id: Optional[int],
        previous_status: str,
        meta: Optional[dict[str, Any]] = None,
    ) -> None:
        new_value = {
            "corrective_action_id": str(action.id),
            "title": action.title,
            "status": action.status,
        }
        if meta:
            new_value.update(meta)

        AuditService.log(
            tenant_id=action.tenant_id,
            event_id=action.event_id,
            actor_id=actor_id,
            action=f"corrective_action.{verb}",
            from_status=action.event.status,
            to_status=action.event.status,
            old_value={"corrective_action_id": str(action.id), "status": previous_status},
            new_value=new_value,
        )
        logger.info("Corrective action %s %s by user %s", action.id, verb, actor_id)

    @staticmethod
    def _save(action: CorrectiveAction, update_fields: list[str]) -> None:
        update_fields.append("updated_at")
        action.save(update_fields=update_fields)

    # -------------------------
    # Create
    # -------------------------
    @staticmethod
    @transaction.atomic
    def create_action(
        *,
        tenant_id: UUID,
        event_id: UUID,
        actor_id: Optional[int],
        title: str,
        description: str = "",
        assigned_to_id: Optional[int] = None,
        due_at=None,
    ) -> CorrectiveAction:
        try:
            event = Event.objects.get(id=event_id, tenant_id=tenant_id)
        except Event.DoesNotExist:
            raise ValidationError("Event not found in this tenant.")

        if event.is_terminal:
            raise ValidationError("Cannot add corrective actions to a closed event.")
        if not (title or "").strip():
            raise ValidationError("Corrective action title is required.")

        action = CorrectiveAction.objects.create(
            tenant_id=tenant_id,
            event=event,
            title=title.strip(),
            description=description or "",
            assigned_to_id=assigned_to_id,
            created_by_id=actor_id,
            due_at=due_at,
            status=CorrectiveActionStatus.ASSIGNED,
        )
        CorrectiveActionService._audit(
            action=action,
            verb="created",
            actor_id=actor_id,
            previous_status="",
            meta={"assigned_to_id": assigned_to_id},
        )
        return action

    # -------------------------
    # Workflow
    # -------------------------
    @staticmethod
    @transaction.atomic
    def start_action(*, tenant_id: UUID, action_id: UUID, actor_id: Optional[int]) -> CorrectiveAction:
        action = CorrectiveActionService._get_scoped(tenant_id=tenant_id, action_id=action_id)

        if action.status == CorrectiveActionStatus.IN_PROGRESS:
            return action

        if action.status not in {CorrectiveActionStatus.ASSIGNED, CorrectiveActionStatus.RETURNED_FOR_CORRECTION}:
            raise ValidationError("Only ASSIGNED or RETURNED_FOR_CORRECTION actions can be started.")

        previous = action.status
        action.status = CorrectiveActionStatus.IN_PROGRESS
        CorrectiveActionService._save(action, ["status"])
        CorrectiveActionService._audit(action=action, verb="started", actor_id=actor_id, previous_status=previous)
        return action

    @staticmethod
    @transaction.atomic
    def complete_action(
        *,
        tenant_id: UUID,
        action_id: UUID,
        actor_id: Optional[int],
        notes: str = "",
        completed_at=None,
    ) -> CorrectiveAction:
        """
        Strict completion: only IN_PROGRESS -> COMPLETED.
        """
        action = CorrectiveActionService._get_scoped(tenant_id=tenant_id, action_id=action_id)

        # Idempotent: if already COMPLETED, do not mutate completed_at
        if action.status == CorrectiveActionStatus.COMPLETED and action.completed_at:
            return action

        if action.status != CorrectiveActionStatus.IN_PROGRESS:
            raise ValidationError("Only IN_PROGRESS actions can be completed.")

        previous = action.status
        action.status = CorrectiveActionStatus.COMPLETED
        action.completed_at = completed_at or now()
        action.completion_notes = notes or ""
        CorrectiveActionService._save(action, ["status", "completed_at", "completion_notes"])
        CorrectiveActionService._audit(action=action, verb="completed", actor_id=actor_id, previous_status=previous)
        return action

    @staticmethod
    @transaction.atomic
    def verify_action(*, tenant_id: UUID, action_id: UUID, actor_id: int) -> CorrectiveAction:
        action = CorrectiveActionService._get_scoped(tenant_id=tenant_id, action_id=action_id)

        if action.status == CorrectiveActionStatus.VERIFIED:
            return action

        if action.status != CorrectiveActionStatus.COMPLETED:
            raise ValidationError("Only COMPLETED actions can be verified.")

        previous = action.status
        action.status = CorrectiveActionStatus.VERIFIED
        action.verified_by_id = actor_id
        action.verified_at = now()
        CorrectiveActionService._save(action, ["status", "verified_by_id", "verified_at"])
        CorrectiveActionService._audit(action=action, verb="verified", actor_id=actor_id, previous_status=previous)
        return action

    @staticmethod
    @transaction.atomic
    def return_action(*, tenant_id: UUID, action_id: UUID, actor_id: int, reason: str) -> CorrectiveAction:
        """
        COMPLETED -> RETURNED_FOR_CORRECTION (verification failed).
        """
        if not (reason or "").strip():
            raise ValidationError("A reason is required to return an action for correction.")

        action = CorrectiveActionService._get_scoped(tenant_id=tenant_id, action_id=action_id)

        if action.status != CorrectiveActionStatus.COMPLETED:
            raise ValidationError("Only COMPLETED actions can be returned for correction.")

        previous = action.status
        action.status = CorrectiveActionStatus.RETURNED_FOR_CORRECTION
        action.return_count += 1
        action.last_return_reason = reason.strip()
        action.completed_at = None
        CorrectiveActionService._save(action, ["status", "return_count", "last_return_reason", "completed_at"])
        CorrectiveActionService._audit(
            action=action,
            verb="returned",
            actor_id=actor_id,
            previous_status=previous,
            meta={"reason": action.last_return_reason, "return_count": action.return_count},
        )
        return action

    @staticmethod
    @transaction.atomic
    def cancel_action(*, tenant_id: UUID, action_id: UUID, actor_id: Optional[int]) -> CorrectiveAction:
        """
        Any open status -> CANCELLED. Completed/verified work cannot be cancelled.
        """
        action = CorrectiveActionService._get_scoped(tenant_id=tenant_id, action_id=action_id)

        if action.status == CorrectiveActionStatus.CANCELLED:
            return action

        if action.status not in OPEN_STATUSES:
            raise ValidationError("Cannot cancel COMPLETED/VERIFIED action.")

        previous = action.status
        action.status = CorrectiveActionStatus.CANCELLED
        CorrectiveActionService._save(action, ["status"])
        CorrectiveActionService._audit(action=action, verb="cancelled", actor_id=actor_id, previous_status=previous)
        return action
