from __future__ import annotations

from rest_framework.permissions import BasePermission


class RequireRole(BasePermission):
    """
    Allow only authenticated users whose ``role`` is in ``allowed_roles``.
    Superusers always pass.
    """

    allowed_roles: set[str] = set()

    def has_permission(self, request, view):
        user = getattr(request, 'user', None)
        if not user or not getattr(user, 'is_authenticated', False):
            return False
        if getattr(user, 'status', 'active') != 'active':
            return False
        role = getattr(user, 'role', None)
        return (role or '') in self.allowed_roles or getattr(user, 'is_superuser', False)


class RequireAdminRole(RequireRole):
    allowed_roles = {"admin"}


class RequireAssetManagerRole(RequireRole):
    allowed_roles = {"asset_manager", "admin"}


class RequireStaffRole(RequireRole):
    allowed_roles = {"admin", "compliance_officer", "asset_manager"}
