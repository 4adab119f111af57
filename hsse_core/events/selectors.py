# hsse_core/events/selectors.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional
from uuid import UUID

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db.models import Q, QuerySet
from django.utils.timezone import now

from hsse_core.audit.models import AuditEntry
from hsse_core.audit.selectors import get_audit_trail as _audit_trail
from hsse_core.events.errors import NotFound
from hsse_core.events.models import Event, EventStatus, EventType
from hsse_core.events.workflow import PERMISSIONS, SEVERITY_ACTIONS, SEVERITY_CHANGE_STATUSES, WorkflowAction
from hsse_core.iam.roles import (
    CONTEXTUAL_ROLES,
    ROLE_ASSIGNED_INVESTIGATOR,
    ROLE_DESIGNATED_APPROVER,
    ROLE_REPORTER,
    RoleCode,
)
from hsse_core.iam.services.membership import get_role_codes


@dataclass(frozen=True)
class EventSummary:
    id: UUID
    reference: str
    status: str
    severity: Optional[int]
    event_type: str
    due_at: Optional[datetime]
    is_overdue: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "reference": self.reference,
            "status": self.status,
            "severity": self.severity,
            "event_type": self.event_type,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "is_overdue": self.is_overdue,
        }


# Permitted but not work that is waiting on the role: reassigning a running investigation.
_OPTIONAL_ACTIONS = frozenset({
    (EventStatus.INVESTIGATION_IN_PROGRESS, WorkflowAction.ASSIGN_INVESTIGATOR),
})


def _statuses_for(role: str) -> set[str]:
    """
    Statuses in which `role` is expected to move the event forward
    (severity decisions and optional reassignment excluded).
    """
    return {
        status
        for (status, action), permitted in PERMISSIONS.items()
        if action not in SEVERITY_ACTIONS
        and (status, action) not in _OPTIONAL_ACTIONS
        and role in permitted
    }


def sla_due_at(event: Event) -> Optional[datetime]:
    hours = (getattr(settings, "HSSE_STATUS_SLA_HOURS", None) or {}).get(str(event.status))
    if not hours:
        return None
    started = event.status_changed_at or event.created_at
    if started is None:
        return None
    return started + timedelta(hours=hours)


def summarize(event: Event, *, at: Optional[datetime] = None) -> EventSummary:
    due = sla_due_at(event)
    return EventSummary(
        id=event.id,
        reference=event.reference,
        status=str(event.status),
        severity=event.severity,
        event_type=str(event.event_type),
        due_at=due,
        is_overdue=bool(due and due < (at or now())),
    )


class EventSelector:
    @staticmethod
    def get_event(*, tenant_id: UUID, event_id: UUID) -> Event:
        try:
            return Event.objects.select_related("investigation").get(id=event_id, tenant_id=tenant_id)
        except (Event.DoesNotExist, ValueError, ValidationError):
            raise NotFound()

    @staticmethod
    def list_events(*, tenant_id: UUID, user_id: Optional[int], params: Any) -> QuerySet[Event]:
        """
        Query params supported:
          - status (comma separated)
          - event_type
          - severity
          - department
          - mine=1|true (reported by me)
          - q (reference / title contains)
          - ordering in {created_at, -created_at, status_changed_at, -status_changed_at, severity, -severity}
        """
        qs = Event.objects.filter(tenant_id=tenant_id)

        status_param = params.get("status")
        if status_param:
            statuses = [s.strip() for s in status_param.split(",") if s.strip()]
            unknown = sorted(set(statuses) - set(EventStatus.values))
            if unknown:
                raise ValidationError(f"status is invalid: {unknown}.")
            qs = qs.filter(status__in=statuses)

        event_type = params.get("event_type")
        if event_type:
            if event_type not in EventType.values:
                raise ValidationError(f"event_type is invalid. Allowed: {EventType.values}")
            qs = qs.filter(event_type=event_type)

        severity = params.get("severity")
        if severity:
            try:
                qs = qs.filter(severity=int(severity))
            except ValueError:
                raise ValidationError("severity must be an integer.")

        department = params.get("department")
        if department:
            qs = qs.filter(department=department)

        if params.get("mine") in {"1", "true", "True"}:
            if not user_id:
                raise ValidationError("mine=1 requires an authenticated user.")
            qs = qs.filter(reporter_id=user_id)

        search = params.get("q")
        if search:
            qs = qs.filter(Q(reference__icontains=search) | Q(title__icontains=search))

        allowed = {
            "created_at",
            "-created_at",
            "status_changed_at",
            "-status_changed_at",
            "severity",
            "-severity",
        }
        ordering = params.get("ordering")
        if ordering:
            if ordering not in allowed:
                raise ValidationError(f"ordering is invalid. Allowed: {sorted(allowed)}")
            return qs.order_by(ordering)
        return qs.order_by("-created_at")


def get_pending_for(
    tenant_id: UUID,
    actor_id: int,
    role_filter: Optional[Iterable[str]] = None,
) -> list[EventSummary]:
    """
    "My Actions" read model: events waiting on the actor, oldest deadline first.

    role_filter narrows which of the actor's roles are considered; contextual
    roles (reporter, assigned_investigator, designated_approver) may be named too.
    """
    configured = set(get_role_codes(tenant_id=tenant_id, user_id=actor_id))
    considered = configured | set(CONTEXTUAL_ROLES)
    if role_filter:
        considered &= {r.strip() for r in role_filter if r and r.strip()}

    q = Q(pk__in=[])

    for role in considered - set(CONTEXTUAL_ROLES):
        statuses = _statuses_for(role)
        if statuses:
            q |= Q(status__in=statuses)

    if ROLE_REPORTER in considered:
        q |= Q(reporter_id=actor_id, status__in=_statuses_for(ROLE_REPORTER))

    if ROLE_ASSIGNED_INVESTIGATOR in considered:
        q |= Q(investigation__investigator_id=actor_id, status__in=_statuses_for(ROLE_ASSIGNED_INVESTIGATOR))

    if ROLE_DESIGNATED_APPROVER in considered:
        approver_statuses = _statuses_for(ROLE_DESIGNATED_APPROVER)
        q |= Q(approver_id=actor_id, status__in=approver_statuses)
        if RoleCode.MANAGER in configured:
            q |= Q(approver_id__isnull=True, status__in=approver_statuses)

    if RoleCode.HSSE_MANAGER in considered:
        q |= Q(status__in=SEVERITY_CHANGE_STATUSES) & (
            Q(severity_pending_approval=True) | Q(potential_severity_pending_approval=True)
        )

    events = list(Event.objects.filter(tenant_id=tenant_id).filter(q).distinct())

    at = now()
    summaries = [summarize(e, at=at) for e in events]
    far_future = datetime.max.replace(tzinfo=at.tzinfo)
    summaries.sort(key=lambda s: (s.due_at or far_future, s.reference))
    return summaries


def get_audit_trail(tenant_id: UUID, event_id: UUID) -> list[AuditEntry]:
    if not Event.objects.filter(id=event_id, tenant_id=tenant_id).exists():
        raise NotFound()
    return _audit_trail(tenant_id=tenant_id, event_id=event_id)
