# desk_core/permissions.py
from __future__ import annotations

from typing import Optional

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import SAFE_METHODS, BasePermission

from .models import Tenant, UserRole
from .workflows.roles import normalize_roles


# ------------------------------------------------------------------
# Role definitions
# ------------------------------------------------------------------
WORKFLOW_ADMIN_ROLES = {"ADMIN", "SUPPORT_MANAGER"}


# ------------------------------------------------------------------
# Utilities
# ------------------------------------------------------------------
def _lookup_tenant(value) -> Optional[Tenant]:
    raw = str(value or "").strip()
    if not raw:
        return None
    qs = Tenant.objects.filter(is_active=True)
    if raw.isdigit():
        found = qs.filter(pk=int(raw)).first()
        if found is not None:
            return found
    return qs.filter(code__iexact=raw).first()


def resolve_current_tenant(request) -> Optional[Tenant]:
    """
    Canonical tenant resolver.

    Priority:
      1) X-Tenant header (code or id)
      2) ?tenant=<code or id>
      3) single-tenant auto resolution via UserRole
      4) superuser with exactly one active tenant
    """
    user = getattr(request, "user", None)
    if not user or not user.is_authenticated:
        return None

    ref = getattr(request, "headers", {}).get("X-Tenant")
    if not ref:
        ref = getattr(request, "query_params", {}).get("tenant")

    if ref:
        tenant = _lookup_tenant(ref)
        if tenant is None:
            return None

        if user.is_superuser:
            return tenant

        if UserRole.objects.filter(user=user, tenant=tenant).exists():
            return tenant
        if UserRole.objects.filter(user=user, tenant__isnull=True).exists():
            return tenant

        return None

    tenants = list(
        Tenant.objects.filter(
            is_active=True,
            user_roles__user=user,
        ).distinct()[:2]
    )
    if len(tenants) == 1:
        return tenants[0]

    if user.is_superuser:
        only = list(Tenant.objects.filter(is_active=True)[:2])
        if len(only) == 1:
            return only[0]

    return None


def require_tenant(request) -> Tenant:
    tenant = resolve_current_tenant(request)
    if tenant is None:
        raise PermissionDenied(
            "Tenant could not be resolved. Provide an X-Tenant header or ?tenant=<code> "
            "for a tenant you belong to."
        )
    return tenant


def user_has_any_role(user, tenant: Tenant, allowed_roles: set[str]) -> bool:
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    raw = UserRole.objects.filter(user=user, tenant=tenant).values_list("role", flat=True)
    global_raw = UserRole.objects.filter(user=user, tenant__isnull=True).values_list("role", flat=True)
    return bool(normalize_roles([*raw, *global_raw]) & allowed_roles)


# ------------------------------------------------------------------
# Permission class
# ------------------------------------------------------------------
class IsWorkflowAdminOrReadOnly(BasePermission):
    """
    Read: any authenticated member of the tenant
    Write: ADMIN or SUPPORT_MANAGER in the resolved tenant
    """

    message = "Only administrators and support managers may change workflows."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False

        tenant = require_tenant(request)
        request.tenant = tenant

        if request.method in SAFE_METHODS:
            return True

        return user_has_any_role(user, tenant, WORKFLOW_ADMIN_ROLES)
