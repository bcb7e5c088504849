# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    SYSTEM_PERMISSIONS,
    USER_PERMISSIONS,
    CLIENT_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    BILLING_PERMISSIONS,
    SHIPMENT_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    get_all_permission_codes,
    get_permission_definition,
    get_role_permissions,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "SYSTEM_PERMISSIONS",
    "USER_PERMISSIONS",
    "CLIENT_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "BILLING_PERMISSIONS",
    "SHIPMENT_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_permission_codes",
    "get_permission_definition",
    "get_role_permissions",
    "validate_permission_code",
]
