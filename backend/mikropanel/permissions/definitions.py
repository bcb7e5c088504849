# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "VIEW_DATA",
        "View Data",
        "Read clients, inventory, collection, closings and shipments",
        PermissionCategory.SYSTEM,
    ),
    (
        "MANAGE_SETTINGS",
        "Manage Settings",
        "Create/delete zones, save tariffs, set inventory stock by group",
        PermissionCategory.SYSTEM,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "MANAGE_USERS",
        "Manage Users",
        "List, create and update panel accounts",
        PermissionCategory.USERS,
    ),
]


# -- CLIENTS --

CLIENT_PERMISSIONS = [
    (
        "CREATE_CLIENT",
        "Create Client",
        "Register new subscribers (with equipment and proration)",
        PermissionCategory.CLIENTS,
    ),
    (
        "TOGGLE_CLIENT",
        "Toggle Client",
        "Activate or deactivate subscribers",
        PermissionCategory.CLIENTS,
    ),
    (
        "EDIT_CLIENT",
        "Edit Client",
        "Edit subscriber data and equipment flags",
        PermissionCategory.CLIENTS,
    ),
    (
        "DELETE_CLIENT",
        "Delete Client",
        "Hard-delete subscribers",
        PermissionCategory.CLIENTS,
    ),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "CREATE_EQUIPMENT",
        "Create Equipment",
        "Add equipment units to inventory",
        PermissionCategory.INVENTORY,
    ),
    (
        "DELETE_EQUIPMENT",
        "Delete Equipment",
        "Remove available units of an equipment group",
        PermissionCategory.INVENTORY,
    ),
    (
        "REGISTER_MOVEMENT",
        "Register Movement",
        "Register sales and assignments, toggle router payment",
        PermissionCategory.INVENTORY,
    ),
    (
        "DELETE_MOVEMENT",
        "Delete Movement",
        "Delete movements (reverts the unit to available)",
        PermissionCategory.INVENTORY,
    ),
]


# -- BILLING --

BILLING_PERMISSIONS = [
    (
        "COLLECT_PAYMENTS",
        "Collect Payments",
        "Mark collection items as paid",
        PermissionCategory.BILLING,
    ),
    (
        "FORCE_COLLECTION",
        "Force Collection",
        "Rebuild the month's collection batch",
        PermissionCategory.BILLING,
    ),
    (
        "MANAGE_CLOSING",
        "Manage Closing",
        "Save/reset monthly closings and record remittances",
        PermissionCategory.BILLING,
    ),
    (
        "MANAGE_ADJUSTMENTS",
        "Manage Adjustments",
        "Register sale gains and delete adjustments",
        PermissionCategory.BILLING,
    ),
    (
        "CREATE_EXPENSE",
        "Create Expense",
        "Record operating expenses",
        PermissionCategory.BILLING,
    ),
    (
        "DELETE_EXPENSE",
        "Delete Expense",
        "Delete expenses and their adjustments",
        PermissionCategory.BILLING,
    ),
]


# -- SHIPMENTS --

SHIPMENT_PERMISSIONS = [
    (
        "CREATE_SHIPMENT",
        "Create Shipment",
        "Register an in-transit shipment",
        PermissionCategory.SHIPMENTS,
    ),
    (
        "MARK_SHIPMENT_AVAILABLE",
        "Mark Shipment Available",
        "Mark a shipment as arrived at the pickup point",
        PermissionCategory.SHIPMENTS,
    ),
    (
        "PICK_UP_SHIPMENT",
        "Pick Up Shipment",
        "Pick up a shipment and add its units to inventory",
        PermissionCategory.SHIPMENTS,
    ),
    (
        "EDIT_SHIPMENT",
        "Edit Shipment",
        "Edit shipment lines (applies inventory delta when picked up)",
        PermissionCategory.SHIPMENTS,
    ),
    (
        "DELETE_SHIPMENT",
        "Delete Shipment",
        "Delete shipments (removes picked-up units)",
        PermissionCategory.SHIPMENTS,
    ),
]


PERMISSION_DEFINITIONS = (
    SYSTEM_PERMISSIONS
    + USER_PERMISSIONS
    + CLIENT_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + BILLING_PERMISSIONS
    + SHIPMENT_PERMISSIONS
)
