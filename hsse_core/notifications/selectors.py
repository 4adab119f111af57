# hsse_core/notifications/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import QuerySet

from hsse_core.notifications.models import Notification


def notifications_qs(*, tenant_id: UUID, user_id: int) -> QuerySet[Notification]:
    return Notification.objects.filter(tenant_id=tenant_id, recipient_id=user_id)
