"""
Operator roles as DRF permissions.

viewer reads the live vendor directory; admin additionally drives discovery
under /api/admin/. Superusers are admins whatever their profile says.
"""

from rest_framework.permissions import BasePermission

from apps.core.models import OperatorProfile

# Higher rank includes everything a lower rank may do
ROLE_RANK = {
    OperatorProfile.ROLE_VIEWER: 1,
    OperatorProfile.ROLE_ADMIN: 2,
}


def get_user_role(user):
    """Effective role for ``user``, or None when anonymous."""
    if user is None or not user.is_authenticated:
        return None
    if user.is_superuser:
        return OperatorProfile.ROLE_ADMIN

    role = (
        OperatorProfile.objects
        .filter(user_id=user.pk)
        .values_list('role', flat=True)
        .first()
    )
    return role or OperatorProfile.ROLE_VIEWER


def has_role(user, required_role):
    role = get_user_role(user)
    return role is not None and ROLE_RANK.get(role, 0) >= ROLE_RANK[required_role]


class RolePermission(BasePermission):
    required_role = OperatorProfile.ROLE_ADMIN

    def has_permission(self, request, view):
        return has_role(request.user, self.required_role)


class IsViewer(RolePermission):
    required_role = OperatorProfile.ROLE_VIEWER
    message = "Viewer access required."


class IsAdmin(RolePermission):
    required_role = OperatorProfile.ROLE_ADMIN
    message = "Admin access required."
