# hsse_core/audit/api/views.py
from __future__ import annotations

from uuid import UUID

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hsse_core.audit.api.serializers import AuditEntrySerializer
from hsse_core.audit.models import AuditEntry
from hsse_core.audit.selectors import list_audit_entries
from hsse_core.iam.scope import require_scope


class AuditEntryViewSet(viewsets.GenericViewSet):
    """
    List audit entries (tenant-scoped).
    """
    permission_classes = [IsAuthenticated]

    serializer_class = AuditEntrySerializer
    queryset = AuditEntry.objects.none()

    @extend_schema(
        tags=["Audit"],
        responses={200: AuditEntrySerializer(many=True)},
        parameters=[
            OpenApiParameter(
                name="event_id",
                type=OpenApiTypes.UUID,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Filter by event UUID.",
            ),
            OpenApiParameter(
                name="action",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Filter by workflow action (e.g. expert_reject).",
            ),
            OpenApiParameter(
                name="actor_id",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Filter by actor user id (int).",
            ),
            OpenApiParameter(
                name="limit",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Max records to return (default 200, max 500).",
            ),
        ],
    )
    def list(self, request):
        tenant_id = require_scope(request)

        event_id_raw = request.query_params.get("event_id") or None
        action = request.query_params.get("action") or None
        actor_raw = request.query_params.get("actor_id")

        event_id = None
        if event_id_raw:
            try:
                event_id = UUID(str(event_id_raw))
            except ValueError:
                raise ValidationError({"detail": "Invalid event_id (UUID expected)"})

        actor_id = None
        if actor_raw:
            try:
                actor_id = int(actor_raw)
            except ValueError:
                raise ValidationError({"detail": "Invalid actor_id (int expected)"})

        qs = list_audit_entries(tenant_id=tenant_id, event_id=event_id, action=action, actor_id=actor_id)

        # timelines can get huge
        try:
            limit_n = int(request.query_params.get("limit") or 200)
        except ValueError:
            limit_n = 200
        limit_n = max(1, min(limit_n, 500))

        return Response(AuditEntrySerializer(qs[:limit_n], many=True).data, status=status.HTTP_200_OK)
