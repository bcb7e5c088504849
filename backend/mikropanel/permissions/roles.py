# Overview: Fixed role -> permission mapping. owner is granted every permission.

from ..models.auth import ROLE_OWNER, ROLE_ADMIN, ROLE_TECH, ROLE_ENVIOS, ROLE_VIEWER
from .definitions import PERMISSION_DEFINITIONS


DEFAULT_ROLE_PERMISSIONS = {
    ROLE_OWNER: [perm[0] for perm in PERMISSION_DEFINITIONS],
    ROLE_ADMIN: [
        "VIEW_DATA",
        "MANAGE_SETTINGS",
        "MANAGE_USERS",
        "CREATE_CLIENT",
        "TOGGLE_CLIENT",
        "EDIT_CLIENT",
        "DELETE_CLIENT",
        "CREATE_EQUIPMENT",
        "DELETE_EQUIPMENT",
        "REGISTER_MOVEMENT",
        "DELETE_MOVEMENT",
        "COLLECT_PAYMENTS",
        "FORCE_COLLECTION",
        "MANAGE_CLOSING",
        "MANAGE_ADJUSTMENTS",
        "CREATE_EXPENSE",
        "DELETE_EXPENSE",
        "CREATE_SHIPMENT",
        "MARK_SHIPMENT_AVAILABLE",
        "PICK_UP_SHIPMENT",
        "EDIT_SHIPMENT",
        "DELETE_SHIPMENT",
    ],
    ROLE_TECH: [
        "VIEW_DATA",
        "CREATE_CLIENT",
        "TOGGLE_CLIENT",
        "REGISTER_MOVEMENT",
        "COLLECT_PAYMENTS",
        "CREATE_EXPENSE",
        "PICK_UP_SHIPMENT",
    ],
    ROLE_ENVIOS: [
        "VIEW_DATA",
        "REGISTER_MOVEMENT",
        "COLLECT_PAYMENTS",
        "CREATE_SHIPMENT",
        "MARK_SHIPMENT_AVAILABLE",
    ],
    ROLE_VIEWER: [
        "VIEW_DATA",
    ],
}
