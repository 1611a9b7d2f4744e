"""
Custom permission classes for role based access control.
"""
from rest_framework.permissions import BasePermission

from .models import User

PARTICIPANT_ROLES = {User.ROLE_HOSPITAL, User.ROLE_FACILITY}


class IsParticipantRole(BasePermission):
    """Allow access only to hospital and facility users."""
    message = 'only hospital and facility users can use this endpoint'

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "role", None) in PARTICIPANT_ROLES)

