# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    SYSTEM = "SYSTEM"
    USERS = "USERS"
    CLIENTS = "CLIENTS"
    INVENTORY = "INVENTORY"
    BILLING = "BILLING"
    SHIPMENTS = "SHIPMENTS"
