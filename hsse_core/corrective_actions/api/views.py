# hsse_core/corrective_actions/api/views.py
from __future__ import annotations

from uuid import UUID

from django.core.exceptions import ValidationError as DjangoValidationError
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError as DRFValidationError
from rest_framework.response import Response

from hsse_core.common.api.pagination import paginate
from hsse_core.corrective_actions.api.serializers import (
    ClosureEligibilitySerializer,
    CompleteActionSerializer,
    CorrectiveActionCreateSerializer,
    CorrectiveActionSerializer,
    ReturnActionSerializer,
)
from hsse_core.corrective_actions.models import CorrectiveAction
from hsse_core.corrective_actions.permissions import CorrectiveActionPermission
from hsse_core.corrective_actions.selectors import CorrectiveActionSelector, closure_eligibility
from hsse_core.corrective_actions.services import CorrectiveActionService
from hsse_core.iam.scope import require_scope


def _detail(e: DjangoValidationError) -> str:
    return e.messages[0] if getattr(e, "messages", None) else str(e)


class CorrectiveActionViewSet(viewsets.ViewSet):
    """
    Thin API layer:
    - scope parsing
    - validation mapping
    - calls selectors for reads
    - calls services for writes
    """

    permission_classes = [CorrectiveActionPermission]
    serializer_class = CorrectiveActionSerializer
    queryset = CorrectiveAction.objects.none()

    def _get_object(self, request, pk) -> CorrectiveAction:
        tenant_id = require_scope(request)
        try:
            obj = CorrectiveActionSelector.get_action(tenant_id=tenant_id, action_id=pk)
        except CorrectiveActionSelector.NotFound:
            raise NotFound("Corrective action not found in this tenant.")
        self.check_object_permissions(request, obj)
        return obj

    def _respond(self, obj: CorrectiveAction) -> Response:
        obj.refresh_from_db()
        return Response(CorrectiveActionSerializer(obj).data, status=status.HTTP_200_OK)

    # ----------------------------
    # Reads
    # ----------------------------
    @extend_schema(tags=["Corrective Actions"], responses={200: CorrectiveActionSerializer(many=True)})
    def list(self, request):
        tenant_id = require_scope(request)

        try:
            qs = CorrectiveActionSelector.list_actions(
                tenant_id=tenant_id,
                user_id=getattr(request.user, "id", None),
                params=request.query_params,
            )
        except DjangoValidationError as e:
            raise DRFValidationError({"detail": _detail(e)})

        return paginate(request, qs.select_related("event"), CorrectiveActionSerializer)

    @extend_schema(tags=["Corrective Actions"], responses={200: CorrectiveActionSerializer})
    def retrieve(self, request, pk=None):
        obj = self._get_object(request, pk)
        return Response(CorrectiveActionSerializer(obj).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Corrective Actions"],
        responses={200: ClosureEligibilitySerializer},
        parameters=[
            OpenApiParameter(
                name="event_id",
                type=OpenApiTypes.UUID,
                location=OpenApiParameter.QUERY,
                required=True,
                description="Event whose corrective actions gate closure.",
            ),
        ],
    )
    @action(detail=False, methods=["get"], url_path="closure-eligibility")
    def closure_eligibility(self, request):
        tenant_id = require_scope(request)
        raw = request.query_params.get("event_id")
        try:
            event_id = UUID(str(raw))
        except ValueError:
            raise DRFValidationError({"detail": "Invalid event_id (UUID expected)"})

        data = {"event_id": event_id, **closure_eligibility(tenant_id=tenant_id, event_id=event_id).as_dict()}
        return Response(ClosureEligibilitySerializer(data).data, status=status.HTTP_200_OK)

    # ----------------------------
    # Writes
    # ----------------------------
    @extend_schema(
        tags=["Corrective Actions"],
        request=CorrectiveActionCreateSerializer,
        responses={201: CorrectiveActionSerializer},
    )
    def create(self, request):
        tenant_id = require_scope(request)

        ser = CorrectiveActionCreateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        try:
            obj = CorrectiveActionService.create_action(
                tenant_id=tenant_id,
                actor_id=request.user.id,
                **ser.validated_data,
            )
        except DjangoValidationError as e:
            raise DRFValidationError({"detail": _detail(e)})

        return Response(CorrectiveActionSerializer(obj).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Corrective Actions"], request=None, responses={200: CorrectiveActionSerializer})
    @action(detail=True, methods=["post"])
    def start(self, request, pk=None):
        obj = self._get_object(request, pk)

        try:
            CorrectiveActionService.start_action(tenant_id=obj.tenant_id, action_id=obj.id, actor_id=request.user.id)
        except DjangoValidationError as e:
            raise DRFValidationError({"detail": _detail(e)})

        return self._respond(obj)

    @extend_schema(
        tags=["Corrective Actions"],
        request=CompleteActionSerializer,
        responses={200: CorrectiveActionSerializer},
    )
    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):
        obj = self._get_object(request, pk)

        ser = CompleteActionSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        try:
            CorrectiveActionService.complete_action(
                tenant_id=obj.tenant_id,
                action_id=obj.id,
                actor_id=request.user.id,
                notes=ser.validated_data["notes"],
            )
        except DjangoValidationError as e:
            raise DRFValidationError({"detail": _detail(e)})

        return self._respond(obj)

    @extend_schema(tags=["Corrective Actions"], request=None, responses={200: CorrectiveActionSerializer})
    @action(detail=True, methods=["post"])
    def verify(self, request, pk=None):
        obj = self._get_object(request, pk)

        try:
            CorrectiveActionService.verify_action(tenant_id=obj.tenant_id, action_id=obj.id, actor_id=request.user.id)
        except DjangoValidationError as e:
            raise DRFValidationError({"detail": _detail(e)})

        return self._respond(obj)

    @extend_schema(
        tags=["Corrective Actions"],
        request=ReturnActionSerializer,
        responses={200: CorrectiveActionSerializer},
    )
    @action(detail=True, methods=["post"], url_path="return")
    def return_action(self, request, pk=None):
        obj = self._get_object(request, pk)

        ser = ReturnActionSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)

        try:
            CorrectiveActionService.return_action(
                tenant_id=obj.tenant_id,
                action_id=obj.id,
                actor_id=request.user.id,
                reason=ser.validated_data["reason"],
            )
        except DjangoValidationError as e:
            raise DRFValidationError({"detail": _detail(e)})

        return self._respond(obj)

    @extend_schema(tags=["Corrective Actions"], request=None, responses={200: CorrectiveActionSerializer})
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        obj = self._get_object(request, pk)

        try:
            CorrectiveActionService.cancel_action(tenant_id=obj.tenant_id, action_id=obj.id, actor_id=request.user.id)
        except DjangoValidationError as e:
            raise DRFValidationError({"detail": _detail(e)})

        return self._respond(obj)
