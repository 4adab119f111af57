# hsse_core/notifications/services.py
from __future__ import annotations

from typing import Iterable
from uuid import UUID

from django.db import transaction

from hsse_core.notifications.models import Notification
from hsse_core.notifications.templates import render


class NotificationService:
    @staticmethod
    @transaction.atomic
    def notify_users_in_app(
        *,
        tenant_id: UUID,
        event_id: UUID | None,
        template_kind: str,
        user_ids: Iterable[int],
        reference: str = "",
        status: str = "",
        meta: dict | None = None,
    ) -> list[Notification]:
        title, body = render(template_kind, reference=reference, status=status)
        objs = [
            Notification(
                tenant_id=tenant_id,
                recipient_id=uid,
                event_id=event_id,
                template_kind=template_kind,
                title=title,
                body=body,
                meta={"reference": reference, "status": status, **(meta or {})},
            )
            for uid in dict.fromkeys(user_ids)
        ]
        return Notification.objects.bulk_create(objs)

    @staticmethod
    @transaction.atomic
    def mark_read(*, tenant_id: UUID, user_id: int, notification_id: UUID) -> Notification:
        notif = Notification.objects.get(id=notification_id, tenant_id=tenant_id, recipient_id=user_id)
        if not notif.is_read:
            notif.mark_read()
            notif.save(update_fields=["is_read", "read_at", "updated_at"])
        return notif
