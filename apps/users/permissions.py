"""Role based permission classes shared by the API views."""

from __future__ import annotations

from rest_framework import permissions  # type: ignore


def is_admin_user(user) -> bool:  # type: ignore
    """Platform administrators and Django staff have full access."""
    if not user or not user.is_authenticated:
        return False
    if getattr(user, "is_staff", False) or getattr(user, "is_superuser", False):
        return True
    return hasattr(user, "is_platform_admin") and user.is_platform_admin()


class IsPlatformAdmin(permissions.BasePermission):
    """Only administrators may access."""

    def has_permission(self, request, view) -> bool:  # type: ignore
        return is_admin_user(request.user)
