# hsse_core/events/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from hsse_core.audit.api.serializers import AuditEntrySerializer
from hsse_core.common.api.exceptions import workflow_error_response
from hsse_core.common.api.pagination import paginate
from hsse_core.events.api.serializers import (
    ActionRequestSerializer,
    ActionResponseSerializer,
    AvailableActionsSerializer,
    EventCreateSerializer,
    EventSerializer,
    EventSummarySerializer,
)
from hsse_core.events.models import Event
from hsse_core.events.selectors import EventSelector, get_audit_trail, get_pending_for
from hsse_core.events.services import WorkflowService
from hsse_core.iam.scope import require_scope


class EventViewSet(viewsets.ViewSet):
    """
    Thin API layer:
    - scope parsing
    - calls selectors for reads
    - calls WorkflowService for writes (domain errors go through the global handler)
    """

    permission_classes = [IsAuthenticated]
    serializer_class = EventSerializer
    queryset = Event.objects.none()

    def _get_object(self, request, pk) -> Event:
        tenant_id = require_scope(request)
        return EventSelector.get_event(tenant_id=tenant_id, event_id=pk)

    # ----------------------------
    # Reads
    # ----------------------------
    @extend_schema(tags=["Events"], responses={200: EventSerializer(many=True)})
    def list(self, request):
        tenant_id = require_scope(request)
        qs = EventSelector.list_events(
            tenant_id=tenant_id,
            user_id=getattr(request.user, "id", None),
            params=request.query_params,
        )
        return paginate(request, qs, EventSerializer)

    @extend_schema(tags=["Events"], responses={200: EventSerializer})
    def retrieve(self, request, pk=None):
        event = self._get_object(request, pk)
        return Response(EventSerializer(event).data, status=status.HTTP_200_OK)

    # ----------------------------
    # Create
    # ----------------------------
    @extend_schema(tags=["Events"], request=EventCreateSerializer, responses={201: EventSerializer})
    def create(self, request):
        tenant_id = require_scope(request)

        ser = EventCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        event = WorkflowService.create_event(
            tenant_id=tenant_id,
            reporter_id=request.user.id,
            **ser.validated_data,
        )
        return Response(EventSerializer(event).data, status=status.HTTP_201_CREATED)

    # ----------------------------
    # Workflow
    # ----------------------------
    @extend_schema(tags=["Events"], request=ActionRequestSerializer, responses={200: ActionResponseSerializer})
    @action(detail=True, methods=["post"], url_path="actions")
    def actions(self, request, pk=None):
        tenant_id = require_scope(request)

        ser = ActionRequestSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        outcome = WorkflowService.submit_action(
            tenant_id=tenant_id,
            event_id=pk,
            actor_id=request.user.id,
            action_name=ser.validated_data["action"],
            payload=ser.validated_data.get("payload") or {},
        )
        if not outcome.ok:
            return workflow_error_response(outcome.error, request)

        event = EventSelector.get_event(tenant_id=tenant_id, event_id=pk)
        return Response(
            {
                "status": "ok",
                "new_state": outcome.new_state,
                "noop": outcome.noop,
                "event": EventSerializer(event).data,
            },
            status=status.HTTP_200_OK,
        )

    @extend_schema(tags=["Events"], responses={200: AvailableActionsSerializer})
    @action(detail=True, methods=["get"], url_path="available-actions")
    def available_actions(self, request, pk=None):
        event = self._get_object(request, pk)
        actions = WorkflowService.available_actions(
            tenant_id=event.tenant_id,
            event_id=event.id,
            actor_id=request.user.id,
        )
        return Response(
            {"event_id": str(event.id), "status": event.status, "actions": actions},
            status=status.HTTP_200_OK,
        )

    @extend_schema(tags=["Events"], responses={200: AuditEntrySerializer(many=True)})
    @action(detail=True, methods=["get"], url_path="audit")
    def audit(self, request, pk=None):
        tenant_id = require_scope(request)
        entries = get_audit_trail(tenant_id, pk)
        return Response(AuditEntrySerializer(entries, many=True).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Events"],
        responses={200: EventSummarySerializer(many=True)},
        parameters=[
            OpenApiParameter(
                name="roles",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                description="Comma separated role codes to restrict the queue (e.g. hsse_expert,reporter).",
            ),
        ],
    )
    @action(detail=False, methods=["get"], url_path="pending")
    def pending(self, request):
        tenant_id = require_scope(request)
        raw = request.query_params.get("roles") or ""
        role_filter = [r for r in raw.split(",") if r.strip()] or None

        summaries = get_pending_for(tenant_id, request.user.id, role_filter)
        return Response(EventSummarySerializer(summaries, many=True).data, status=status.HTTP_200_OK)
