# hsse_core/notifications/dispatchers.py
from __future__ import annotations

import logging
from typing import Iterable
from uuid import UUID

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

DEFAULT_DISPATCHER = "hsse_core.notifications.dispatchers.InAppNotificationDispatcher"


class BaseNotificationDispatcher:
    """
    Output port invoked after a transition commits.
    Delivery is best-effort: callers log failures and move on.
    """

    def notify(
        self,
        event_id: UUID,
        template_kind: str,
        recipients: Iterable[int],
        *,
        tenant_id: UUID,
        reference: str = "",
        status: str = "",
    ) -> None:
        raise NotImplementedError


class InAppNotificationDispatcher(BaseNotificationDispatcher):
    def notify(self, event_id, template_kind, recipients, *, tenant_id, reference="", status=""):
        from hsse_core.notifications.services import NotificationService

        NotificationService.notify_users_in_app(
            tenant_id=tenant_id,
            event_id=event_id,
            template_kind=template_kind,
            user_ids=recipients,
            reference=reference,
            status=status,
        )


class NullNotificationDispatcher(BaseNotificationDispatcher):
    def notify(self, event_id, template_kind, recipients, *, tenant_id, reference="", status=""):
        logger.debug("Notification %s for event %s dropped (null dispatcher)", template_kind, event_id)


def get_dispatcher() -> BaseNotificationDispatcher:
    path = getattr(settings, "HSSE_NOTIFICATION_DISPATCHER", None) or DEFAULT_DISPATCHER
    return import_string(path)()
