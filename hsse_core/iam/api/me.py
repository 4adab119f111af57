# hsse_core/iam/api/me.py

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from hsse_core.iam.api.schema_serializers import MeResponseSerializer
from hsse_core.iam.scope import assert_user_membership, resolve_scope
from hsse_core.iam.services.membership import get_role_codes, list_user_tenants


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: MeResponseSerializer}, tags=["IAM"])
    def get(self, request):
        """
        Returns user info + tenant memberships.
        The tenant header is OPTIONAL here; if provided it MUST be valid and
        the user MUST be a member, else 400/403.
        """
        active_scope = None
        scope = resolve_scope(request)
        if scope is not None:
            assert_user_membership(request.user, scope)
            active_scope = {
                "tenant_id": str(scope.tenant_id),
                "roles": sorted(get_role_codes(tenant_id=scope.tenant_id, user_id=request.user.id)),
            }

        return Response(
            {
                "user": {
                    "id": request.user.id,
                    "username": getattr(request.user, "username", None),
                    "email": getattr(request.user, "email", None),
                    "is_superuser": bool(getattr(request.user, "is_superuser", False)),
                },
                "memberships": list_user_tenants(request.user.id),
                "active_scope": active_scope,
            },
            status=status.HTTP_200_OK,
        )
