# hsse_core/notifications/models.py
from __future__ import annotations

from django.db import models
from django.utils import timezone

from hsse_core.common.models import TenantScopedModel


class Notification(TenantScopedModel):
    """
    In-app inbox row, one per recipient.
    Keep links loose (UUID fields) to avoid cross-app FK coupling.
    """
    recipient_id = models.BigIntegerField(db_index=True)
    event_id = models.UUIDField(null=True, blank=True, db_index=True)

    template_kind = models.CharField(max_length=64, db_index=True)  # e.g. "event.expert_reject"
    title = models.CharField(max_length=255)
    body = models.TextField(blank=True, default="")

    is_read = models.BooleanField(default=False, db_index=True)
    read_at = models.DateTimeField(null=True, blank=True)

    meta = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "notifications_notification"
        indexes = [
            models.Index(fields=["tenant_id", "recipient_id", "is_read"]),
            models.Index(fields=["tenant_id", "event_id"]),
        ]

    def mark_read(self) -> None:
        if not self.is_read:
            self.is_read = True
            self.read_at = timezone.now()
