from rest_framework.permissions import BasePermission


class IsPlatformAdmin(BasePermission):
    """Allow access only to superusers and users holding the admin role."""

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_platform_admin
