# hsse_core/corrective_actions/selectors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db.models import QuerySet
from django.utils.timezone import now

from hsse_core.corrective_actions.models import CorrectiveAction, CorrectiveActionStatus, OPEN_STATUSES


@dataclass(frozen=True)
class ClosureEligibility:
    """
    Snapshot of an event's corrective actions (cancelled ones ignored).
    """
    total: int = 0
    open: int = 0
    completed: int = 0
    verified: int = 0
    pending: tuple[str, ...] = ()

    @property
    def all_verified(self) -> bool:
        return not self.pending

    @property
    def all_completed(self) -> bool:
        return self.total > 0 and self.open == 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "open": self.open,
            "completed": self.completed,
            "verified": self.verified,
            "pending": list(self.pending),
            "can_request_closure": self.all_verified,
        }


class CorrectiveActionSelector:
    class NotFound(Exception):
        pass

    @staticmethod
    def get_action(*, tenant_id, action_id) -> CorrectiveAction:
        try:
            return CorrectiveAction.objects.select_related("event").get(id=action_id, tenant_id=tenant_id)
        except (CorrectiveAction.DoesNotExist, ValueError, ValidationError):
            raise CorrectiveActionSelector.NotFound()

    @staticmethod
    def list_actions(*, tenant_id, user_id: Optional[int], params: Any) -> QuerySet[CorrectiveAction]:
        """
        Query params supported:
          - event or event_id
          - status
          - assigned_to_id
          - mine=1|true
          - overdue=1|true
        """
        event_id = params.get("event_id") or params.get("event")
        status_param = params.get("status")
        assigned_to_id = params.get("assigned_to_id")
        mine = params.get("mine")
        overdue = params.get("overdue")

        qs = CorrectiveAction.objects.filter(tenant_id=tenant_id)

        if event_id:
            qs = qs.filter(event_id=event_id)

        if status_param:
            if status_param not in CorrectiveActionStatus.values:
                raise ValidationError(f"status is invalid. Allowed: {sorted(CorrectiveActionStatus.values)}")
            qs = qs.filter(status=status_param)

        if assigned_to_id:
            qs = qs.filter(assigned_to_id=assigned_to_id)

        if mine in {"1", "true", "True"}:
            if not user_id:
                raise ValidationError("mine=1 requires an authenticated user.")
            qs = qs.filter(assigned_to_id=user_id)

        if overdue in {"1", "true", "True"}:
            qs = qs.filter(due_at__lt=now(), status__in=OPEN_STATUSES)

        return qs.order_by("due_at", "-created_at")


def closure_eligibility(*, tenant_id: UUID, event_id: UUID) -> ClosureEligibility:
    rows = list(
        CorrectiveAction.objects.filter(tenant_id=tenant_id, event_id=event_id)
        .exclude(status=CorrectiveActionStatus.CANCELLED)
        .order_by("created_at")
        .values_list("title", "status")
    )

    open_count = sum(1 for _, s in rows if s in OPEN_STATUSES)
    completed = sum(1 for _, s in rows if s == CorrectiveActionStatus.COMPLETED)
    verified = sum(1 for _, s in rows if s == CorrectiveActionStatus.VERIFIED)

    return ClosureEligibility(
        total=len(rows),
        open=open_count,
        completed=completed,
        verified=verified,
        pending=tuple(title for title, s in rows if s != CorrectiveActionStatus.VERIFIED),
    )
