# hsse_core/corrective_actions/permissions.py

from __future__ import annotations

from rest_framework.permissions import BasePermission

from hsse_core.corrective_actions.models import CorrectiveAction
from hsse_core.iam.roles import RoleCode
from hsse_core.iam.scope import require_scope
from hsse_core.iam.services.membership import get_role_codes

# Roles that manage corrective actions on any event in the tenant
MANAGING_ROLES = frozenset({
    RoleCode.DEPARTMENT_REPRESENTATIVE,
    RoleCode.HSSE_EXPERT,
    RoleCode.HSSE_MANAGER,
})
VERIFYING_ROLES = frozenset({RoleCode.HSSE_EXPERT, RoleCode.HSSE_MANAGER})


def _tenant_roles(request) -> frozenset[str]:
    cached = getattr(request, "_hsse_roles", None)
    if cached is not None:
        return cached
    tenant_id = require_scope(request)
    roles = get_role_codes(tenant_id=tenant_id, user_id=request.user.id)
    request._hsse_roles = roles
    return roles


class CorrectiveActionPermission(BasePermission):
    """
    Role-based permissions for CorrectiveActionViewSet.

    High-level policy:
    - Any tenant member: list / retrieve / closure eligibility
    - Dept rep, HSSE expert, HSSE manager, investigator: create
    - Assignee or managing roles: start / complete / cancel (assignee cannot cancel)
    - HSSE expert / HSSE manager: verify / return (never on their own completed work)
    """

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view) -> bool:
        user = request.user
        if not user or not user.is_authenticated:
            return False

        roles = _tenant_roles(request)
        action = getattr(view, "action", None)

        if action in {"list", "retrieve", "closure_eligibility"}:
            return True

        if action == "create":
            return bool(roles & (MANAGING_ROLES | {RoleCode.INVESTIGATOR}))

        # Detail actions: decided per object
        if action in {"start", "complete", "verify", "return_action", "cancel"}:
            return True

        # Unknown action => deny by default
        return False

    def has_object_permission(self, request, view, obj: CorrectiveAction) -> bool:
        roles = _tenant_roles(request)
        action = getattr(view, "action", None)
        is_assignee = obj.assigned_to_id is not None and obj.assigned_to_id == request.user.id

        if action in {None, "list", "retrieve"}:
            return True

        if action in {"start", "complete"}:
            return is_assignee or bool(roles & MANAGING_ROLES)

        if action == "cancel":
            return bool(roles & MANAGING_ROLES)

        if action in {"verify", "return_action"}:
            return bool(roles & VERIFYING_ROLES) and not is_assignee

        return False
