# hsse_core/corrective_actions/models.py
from django.db import models
from django.utils.timezone import now as tz_now

from hsse_core.common.models import TenantScopedModel


class CorrectiveActionStatus(models.TextChoices):
    ASSIGNED = "assigned", "Assigned"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETED = "completed", "Completed"
    VERIFIED = "verified", "Verified"
    RETURNED_FOR_CORRECTION = "returned_for_correction", "Returned for Correction"
    CANCELLED = "cancelled", "Cancelled"


OPEN_STATUSES = frozenset({
    CorrectiveActionStatus.ASSIGNED,
    CorrectiveActionStatus.IN_PROGRESS,
    CorrectiveActionStatus.RETURNED_FOR_CORRECTION,
})


class CorrectiveAction(TenantScopedModel):
    """
    Remedial work attached to an event. Verified actions gate incident closure.
    """
    event = models.ForeignKey("events.Event", on_delete=models.PROTECT, related_name="corrective_actions")

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")

    status = models.CharField(
        max_length=32,
        choices=CorrectiveActionStatus.choices,
        default=CorrectiveActionStatus.ASSIGNED,
        db_index=True,
    )

    assigned_to_id = models.BigIntegerField(null=True, blank=True, db_index=True)
    created_by_id = models.BigIntegerField(null=True, blank=True)

    due_at = models.DateTimeField(null=True, blank=True, db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    completion_notes = models.TextField(blank=True, default="")

    verified_by_id = models.BigIntegerField(null=True, blank=True)
    verified_at = models.DateTimeField(null=True, blank=True)

    return_count = models.PositiveIntegerField(default=0)
    last_return_reason = models.TextField(blank=True, default="")

    class Meta:
        db_table = "corrective_actions_corrective_action"
        indexes = [
            models.Index(fields=["tenant_id", "event", "status"]),
            models.Index(fields=["tenant_id", "assigned_to_id", "status"]),
        ]

    def __str__(self) -> str:
        return f"{self.title} [{self.status}]"

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def is_overdue(self) -> bool:
        if not self.due_at or not self.is_open:
            return False
        return self.due_at < tz_now()
