# config/permissions.py

from rest_framework import permissions


class RolePermission(permissions.BasePermission):
    """
    Grants access to authenticated users holding one of ``roles``.
    Superusers always pass.
    """
    roles = ()

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return user.is_superuser or user.has_role(*self.roles)


class IsManagerOrAdmin(RolePermission):
    """
    Used for: table inventory, opening hours.
    """
    roles = ('manager', 'admin')
    message = 'Only managers and admins can perform this action.'


class IsStaffOrAbove(RolePermission):
    """
    Used for: checkout, calling waiters, host views.
    """
    roles = ('staff', 'manager', 'admin')
    message = 'Only staff members can perform this action.'
