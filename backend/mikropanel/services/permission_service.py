# Overview: Service-layer operations for permission checks.

"""
Role-based access control.

- Roles are a fixed enumeration (owner, admin, tech, envios, viewer)
- Each role maps to a fixed permission set (permissions.roles)
- owner holds every permission
- Fail closed: unknown roles and inactive users get nothing
- Denials are logged (warning level); grants are not
"""

import logging

from ..models import User
from ..permissions import get_role_permissions, validate_permission_code


logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def get_user_permissions(user: User) -> set[str]:
    if user is None or not user.is_active:
        return set()
    return get_role_permissions(user.role)


def user_has_permission(user: User, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def require_permission(user: User, permission_code: str, *, resource: str | None = None) -> None:
    """
    Raise PermissionDeniedError unless user holds permission_code.

    Unknown permission codes are a programming error and always deny.
    """
    if not validate_permission_code(permission_code):
        logger.error("Unknown permission code checked: %s", permission_code)
        raise PermissionDeniedError(f"Unknown permission: {permission_code}")

    if not user_has_permission(user, permission_code):
        logger.warning(
            "Permission denied: user=%s role=%s permission=%s resource=%s",
            getattr(user, "username", None),
            getattr(user, "role", None),
            permission_code,
            resource,
        )
        raise PermissionDeniedError(f"Missing permission: {permission_code}")
