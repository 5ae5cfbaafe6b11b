from __future__ import annotations

from typing import Iterable

from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission


class ActiveUserPermission(BasePermission):
    def has_permission(self, request, view) -> bool:
        user = getattr(request, 'user', None)
        if not user or not user.is_authenticated:
            return False
        if not user.is_active:
            raise PermissionDenied('Your account has been disabled.')
        return True


class RolePermission(BasePermission):
    allowed_roles: Iterable[str] | None = None
    message = 'Only admins can perform this action.'

    def has_permission(self, request, view) -> bool:
        roles = getattr(view, 'allowed_roles', None) or self.allowed_roles
        if not roles:
            return True
        user = getattr(request, 'user', None)
        if not user or not user.is_authenticated:
            return False
        return getattr(user, 'role', None) in roles
