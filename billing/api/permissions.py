"""
Object-level access control. Tenants only ever reach their own rows.
"""
from rest_framework import permissions


class IsOwner(permissions.BasePermission):
    """Permission: user can only access objects they own."""

    message = "You do not have access to this resource."

    def has_object_permission(self, request, view, obj):
        if not request.user or not request.user.is_authenticated:
            return False
        return obj.user_id == request.user.id
