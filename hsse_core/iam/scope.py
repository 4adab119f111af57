# hsse_core/iam/scope.py
from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from rest_framework.exceptions import PermissionDenied, ValidationError

from hsse_core.iam.services.membership import is_user_member_of_tenant


@dataclass(frozen=True)
class Scope:
    tenant_id: UUID


# Preferred header name (what we standardize on)
HDR_TENANT = "X-Tenant-Id"

# Legacy variant (kept for compatibility)
HDR_TENANT_LEGACY = "X-Tenant-ID"

MISSING_SCOPE_MSG = "Missing scope header. Provide X-Tenant-Id."
INVALID_SCOPE_MSG = "Invalid scope header. Provide a valid UUID for X-Tenant-Id."


def _get_header(request, name: str) -> str | None:
    """
    request.headers is case-insensitive; fallback to META for pytest/client.
    """
    headers = getattr(request, "headers", None)
    if headers is not None:
        v = headers.get(name)
        if v:
            return v
    meta_key = "HTTP_" + name.upper().replace("-", "_")
    return request.META.get(meta_key)


def resolve_scope(request) -> Scope | None:
    """
    Returns Scope if the tenant header (or a value attached by auth) is present.
    Returns None if absent. Raises 400 on a malformed UUID.
    """
    attached = getattr(request, "tenant_id", None)
    raw = attached or _get_header(request, HDR_TENANT) or _get_header(request, HDR_TENANT_LEGACY)
    if not raw:
        return None

    try:
        return Scope(tenant_id=UUID(str(raw)))
    except ValueError:
        raise ValidationError({"detail": INVALID_SCOPE_MSG})


def assert_user_membership(user, scope: Scope) -> None:
    """
    Ensures user is an active member of the tenant. Raises 403 if not.
    """
    if not user or not getattr(user, "is_authenticated", False):
        raise PermissionDenied("Authentication required to set scope.")

    if not is_user_member_of_tenant(user_id=user.id, tenant_id=scope.tenant_id):
        raise PermissionDenied("You do not have access to the selected tenant.")


def require_scope(request) -> UUID:
    """
    Public API used by views: resolves + validates the tenant scope and
    attaches it to the request. Returns tenant_id.
    """
    scope = resolve_scope(request)
    if scope is None:
        raise ValidationError({"detail": MISSING_SCOPE_MSG})

    assert_user_membership(getattr(request, "user", None), scope)

    request.tenant_id = scope.tenant_id
    request.scope = scope
    return scope.tenant_id
