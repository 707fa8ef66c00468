"""
Role-based permission building blocks.

Endpoint permissions subclass ``RoleBasedPermission`` and declare which
roles may read, write and delete.
"""
from rest_framework import permissions
from apps.authz.models import RoleChoices


def get_user_roles(request):
    """Role names of the authenticated user (empty set for anonymous)."""
    if not request.user or not request.user.is_authenticated:
        return set()
    return set(request.user.user_roles.values_list('role__name', flat=True))


class RoleBasedPermission(permissions.BasePermission):
    """
    Permission driven by three role sets.

    - read_roles: GET, HEAD, OPTIONS
    - write_roles: POST, PUT, PATCH
    - delete_roles: DELETE
    """
    read_roles = frozenset()
    write_roles = frozenset()
    delete_roles = frozenset()

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        user_roles = get_user_roles(request)

        if request.method in permissions.SAFE_METHODS:
            return bool(user_roles & self.read_roles)

        if request.method in ['POST', 'PUT', 'PATCH']:
            return bool(user_roles & self.write_roles)

        if request.method == 'DELETE':
            return bool(user_roles & self.delete_roles)

        return False


class IsAdmin(permissions.BasePermission):
    """Permission class that only allows Admin role users."""

    def has_permission(self, request, view):
        return RoleChoices.ADMIN in get_user_roles(request)
