from __future__ import annotations

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hsse_core.iam.scope import require_scope
from hsse_core.notifications.api.serializers import NotificationSerializer
from hsse_core.notifications.models import Notification
from hsse_core.notifications.selectors import notifications_qs
from hsse_core.notifications.services import NotificationService


class NotificationViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    The requesting user's in-app inbox.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = NotificationSerializer

    def get_queryset(self):
        tenant_id = require_scope(self.request)
        qs = notifications_qs(tenant_id=tenant_id, user_id=self.request.user.id)
        is_read = self.request.query_params.get("is_read")
        if is_read in ("true", "false"):
            qs = qs.filter(is_read=(is_read == "true"))
        event_id = self.request.query_params.get("event_id")
        if event_id:
            qs = qs.filter(event_id=event_id)
        return qs.order_by("-created_at")

    @action(methods=["POST"], detail=True, url_path="read")
    def read(self, request, pk=None):
        tenant_id = require_scope(request)
        try:
            notif = NotificationService.mark_read(tenant_id=tenant_id, user_id=request.user.id, notification_id=pk)
        except (Notification.DoesNotExist, ValueError):
            raise NotFound("Notification not found.")
        return Response(NotificationSerializer(notif).data, status=status.HTTP_200_OK)
