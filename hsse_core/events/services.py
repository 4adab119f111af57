# hsse_core/events/services.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from uuid import UUID

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils.timezone import now

from hsse_core.audit.services import AuditService
from hsse_core.corrective_actions.selectors import closure_eligibility
from hsse_core.events import severity as sev
from hsse_core.events.errors import Conflict, InvalidPayload, WorkflowError
from hsse_core.events.models import Event, EventStatus, EventType, InjuryClassification, Investigation
from hsse_core.events.store import EventStore
from hsse_core.events.workflow import (
    RECIPIENT_APPROVER,
    RECIPIENT_INVESTIGATOR,
    RECIPIENT_PROPOSER,
    RECIPIENT_REPORTER,
    TransitionContext,
    TransitionResult,
    allowed_actions,
    transition,
)
from hsse_core.iam.roles import RoleCode
from hsse_core.iam.services.membership import get_role_codes, list_user_ids_with_role
from hsse_core.notifications.dispatchers import get_dispatcher

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_PREFIXES = {EventType.INCIDENT: "INC", EventType.OBSERVATION: "OBS"}
REFERENCE_ALLOCATION_ATTEMPTS = 5


@dataclass(frozen=True)
class ActionOutcome:
    """
    Typed result of submit_action: {"status": "ok", "new_state"} or
    {"status": "error", "kind", "message"}.
    """
    status: str
    new_state: Optional[str] = None
    kind: Optional[str] = None
    message: Optional[str] = None
    noop: bool = False
    event: Optional[Event] = None
    error: Optional[WorkflowError] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def as_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"status": "ok", "new_state": self.new_state, "noop": self.noop}
        return {"status": "error", "kind": self.kind, "message": self.message}


class WorkflowService:
    """
    Write-model entry point for event lifecycle changes.

    Notes:
    - Every status change goes through transition() + EventStore.commit().
    - Stale writes (Conflict) are retried on a fresh read, bounded by
      HSSE_WORKFLOW_CONFLICT_RETRIES.
    - Notifications are dispatched after the atomic block, immediately (not
      on_commit) so pytest transaction semantics still see them. Dispatch
      failures are logged and never undo the transition.
    """

    # -------------------------
    # Create
    # -------------------------
    @staticmethod
    def _reference_prefix(event_type: str) -> str:
        prefixes = getattr(settings, "HSSE_REFERENCE_PREFIXES", None) or DEFAULT_REFERENCE_PREFIXES
        return prefixes.get(event_type) or DEFAULT_REFERENCE_PREFIXES[event_type]

    @staticmethod
    def _next_reference(*, tenant_id: UUID, event_type: str, offset: int = 0) -> str:
        stem = f"{WorkflowService._reference_prefix(event_type)}-{now().year}-"
        last = (
            Event.objects.filter(tenant_id=tenant_id, reference__startswith=stem)
            .order_by("-reference")
            .values_list("reference", flat=True)
            .first()
        )
        seq = int(last.rsplit("-", 1)[1]) if last else 0
        return f"{stem}{seq + 1 + offset:05d}"

    @staticmethod
    @transaction.atomic
    def create_event(
        *,
        tenant_id: UUID,
        reporter_id: int,
        event_type: str,
        title: str,
        description: str = "",
        subtype: str = "",
        department: str = "",
        injury_classification: str = InjuryClassification.NONE,
        erp_activated: bool = False,
        severity: Optional[int] = None,
        potential_severity: Optional[int] = None,
        approver_id: Optional[int] = None,
        override_reason: str = "",
    ) -> Event:
        """
        Creates an event in status `new`. The reference (INC-/OBS-YYYY-NNNNN)
        is allocated per tenant; a collision retries inside a savepoint.
        """
        if event_type not in EventType.values:
            raise InvalidPayload(f"'event_type' must be one of: {', '.join(EventType.values)}.")
        if injury_classification not in InjuryClassification.values:
            raise InvalidPayload(
                f"'injury_classification' must be one of: {', '.join(InjuryClassification.values)}."
            )
        if not (title or "").strip():
            raise InvalidPayload("'title' is required. Describe the event in a few words.")

        event = Event(
            tenant_id=tenant_id,
            reporter_id=reporter_id,
            event_type=event_type,
            title=title.strip(),
            description=description or "",
            subtype=subtype or "",
            department=department or "",
            injury_classification=injury_classification,
            erp_activated=bool(erp_activated),
            approver_id=approver_id,
            status=EventStatus.NEW,
        )

        if severity is not None:
            event.severity = sev.coerce_level(severity)
            sev.check_actual_severity(event, event.severity, override_reason)
        if potential_severity is not None:
            event.potential_severity = sev.coerce_level(potential_severity, field_name="potential_severity")

        for attempt in range(REFERENCE_ALLOCATION_ATTEMPTS):
            event.reference = WorkflowService._next_reference(
                tenant_id=tenant_id, event_type=event_type, offset=attempt
            )
            try:
                with transaction.atomic(savepoint=True):
                    event.save(force_insert=True)
                break
            except IntegrityError:
                logger.warning("Reference %s already taken, retrying", event.reference)
        else:
            raise Conflict("Could not allocate a reference number. Please try again.")

        AuditService.log(
            tenant_id=tenant_id,
            event_id=event.id,
            actor_id=reporter_id,
            action="create",
            from_status="",
            to_status=EventStatus.NEW,
            new_value={"reference": event.reference, "event_type": event_type, "severity": event.severity},
        )
        logger.info("Event %s created by user %s", event.reference, reporter_id)
        return event

    # -------------------------
    # Context
    # -------------------------
    @staticmethod
    def build_context(*, event: Event, actor_id: int) -> TransitionContext:
        tenant_id = event.tenant_id
        return TransitionContext(
            roles=get_role_codes(tenant_id=tenant_id, user_id=actor_id),
            investigation=EventStore.get_investigation(tenant_id=tenant_id, event_id=event.id),
            eligibility=closure_eligibility(tenant_id=tenant_id, event_id=event.id),
            roles_of=lambda user_id: get_role_codes(tenant_id=tenant_id, user_id=user_id),
        )

    @staticmethod
    def available_actions(*, tenant_id: UUID, event_id: UUID, actor_id: int) -> list[str]:
        event = EventStore.get(tenant_id=tenant_id, event_id=event_id)
        return allowed_actions(event, actor_id, WorkflowService.build_context(event=event, actor_id=actor_id))

    # -------------------------
    # Transitions
    # -------------------------
    @staticmethod
    def apply_action(
        *,
        tenant_id: UUID,
        event_id: UUID,
        actor_id: int,
        action_name: str,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> tuple[Event, TransitionResult]:
        """
        Raises WorkflowError subclasses. Use submit_action() for the typed outcome.
        """
        retries = int(getattr(settings, "HSSE_WORKFLOW_CONFLICT_RETRIES", 3))
        attempt = 0

        while True:
            event = EventStore.get(tenant_id=tenant_id, event_id=event_id)
            context = WorkflowService.build_context(event=event, actor_id=actor_id)
            result = transition(event, actor_id, action_name, payload, context)

            if result.noop:
                logger.info("Event %s: %s by user %s is a repeat, no-op", event.reference, action_name, actor_id)
                return event, result

            try:
                updated = EventStore.commit(event=event, actor_id=actor_id, result=result)
            except Conflict:
                attempt += 1
                if attempt > retries:
                    logger.warning("Event %s: giving up on %s after %s conflicts", event_id, action_name, attempt)
                    raise Conflict("The event's state changed while you were working. Please refresh and try again.")
                logger.warning("Event %s: conflict on %s, retry %s/%s", event_id, action_name, attempt, retries)
                continue
            break

        logger.info(
            "Event %s: %s %s -> %s by user %s",
            updated.reference,
            result.action,
            result.from_status,
            result.to_status,
            actor_id,
        )
        WorkflowService.dispatch_notifications(before=event, after=updated, actor_id=actor_id, result=result)
        return updated, result

    @staticmethod
    def submit_action(
        *,
        tenant_id: UUID,
        event_id: UUID,
        actor_id: int,
        action_name: str,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> ActionOutcome:
        try:
            event, result = WorkflowService.apply_action(
                tenant_id=tenant_id,
                event_id=event_id,
                actor_id=actor_id,
                action_name=action_name,
                payload=payload,
            )
        except WorkflowError as exc:
            logger.info("Event %s: %s by user %s refused (%s)", event_id, action_name, actor_id, exc.kind)
            return ActionOutcome(status="error", kind=exc.kind, message=exc.message, error=exc)

        return ActionOutcome(status="ok", new_state=event.status, noop=result.noop, event=event)

    # -------------------------
    # Notifications
    # -------------------------
    @staticmethod
    def _resolve_recipients(
        target: str,
        *,
        before: Event,
        after: Event,
        investigation: Optional[Investigation],
        severity_field: str,
    ) -> list[int]:
        if target == RECIPIENT_REPORTER:
            return [after.reporter_id]
        if target == RECIPIENT_INVESTIGATOR:
            return [investigation.investigator_id] if investigation and investigation.investigator_id else []
        if target == RECIPIENT_APPROVER:
            if after.approver_id is not None:
                return [after.approver_id]
            return list_user_ids_with_role(tenant_id=after.tenant_id, role=RoleCode.MANAGER)
        if target == RECIPIENT_PROPOSER:
            proposer = getattr(before, f"{severity_field}_proposed_by_id", None)
            return [proposer] if proposer else []
        if target.startswith("role:"):
            return list_user_ids_with_role(tenant_id=after.tenant_id, role=target.split(":", 1)[1])
        logger.warning("Unknown notification recipient %r", target)
        return []

    @staticmethod
    def dispatch_notifications(*, before: Event, after: Event, actor_id: int, result: TransitionResult) -> None:
        if not result.notifications:
            return
        try:
            dispatcher = get_dispatcher()
            investigation = EventStore.get_investigation(tenant_id=after.tenant_id, event_id=after.id)
            severity_field = (result.audit.new_value.get("field") if result.audit else None) or "severity"

            for request in result.notifications:
                recipients: list[int] = []
                for target in request.recipients:
                    recipients.extend(
                        WorkflowService._resolve_recipients(
                            target,
                            before=before,
                            after=after,
                            investigation=investigation,
                            severity_field=severity_field,
                        )
                    )
                recipients = [uid for uid in dict.fromkeys(recipients) if uid != actor_id]
                if not recipients:
                    continue
                dispatcher.notify(
                    after.id,
                    request.template_kind,
                    recipients,
                    tenant_id=after.tenant_id,
                    reference=after.reference,
                    status=after.status,
                )
        except Exception:
            logger.exception("Notification dispatch failed for event %s (%s)", after.id, result.action)


def submit_action(
    tenant_id: UUID,
    event_id: UUID,
    actor_id: int,
    action_name: str,
    payload: Optional[Mapping[str, Any]] = None,
) -> ActionOutcome:
    return WorkflowService.submit_action(
        tenant_id=tenant_id,
        event_id=event_id,
        actor_id=actor_id,
        action_name=action_name,
        payload=payload,
    )
