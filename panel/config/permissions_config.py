"""
Permissions and Roles Configuration
This config defines the permission catalog and the role hierarchy for the panel.
Used by the resolver, the catalog endpoint and the seed script. Nothing here is
created at runtime; bump CATALOG_VERSION whenever the matrix changes.
"""

from enum import Enum
from typing import Dict, FrozenSet, List

CATALOG_VERSION = "2024.1"


class RoleType(str, Enum):
    SYSTEM_ADMIN = "system_admin"
    ORG_ADMIN = "org_admin"
    USER = "user"


class Permission(str, Enum):
    # System admin permissions
    SYSTEM_ADMIN = "system:admin"
    MANAGE_ORGANIZATIONS = "system:organizations:manage"
    MANAGE_SYSTEM_USERS = "system:users:manage"
    MANAGE_SYSTEM_APIS = "system:apis:manage"
    VIEW_SYSTEM_ANALYTICS = "system:analytics:view"

    # Organization admin permissions
    ORG_ADMIN = "org:admin"
    MANAGE_ORG_USERS = "org:users:manage"
    MANAGE_ORG_APIS = "org:apis:manage"
    VIEW_ORG_ANALYTICS = "org:analytics:view"
    MANAGE_ORG_SETTINGS = "org:settings:manage"
    MANAGE_ORG_INVITATIONS = "org:invitations:manage"

    # User permissions
    USER_BASIC = "user:basic"
    ACCESS_APIS = "user:apis:access"
    VIEW_PERSONAL_DASHBOARD = "user:dashboard:view"


class SubscriptionPlan(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


# Permission groups; each role below is a union of groups
PERMISSION_CATEGORIES = {
    "system": {
        "permissions": [
            Permission.SYSTEM_ADMIN,
            Permission.MANAGE_ORGANIZATIONS,
            Permission.MANAGE_SYSTEM_USERS,
            Permission.MANAGE_SYSTEM_APIS,
            Permission.VIEW_SYSTEM_ANALYTICS,
        ],
        "description": "Platform-wide administration"
    },
    "organization": {
        "permissions": [
            Permission.ORG_ADMIN,
            Permission.MANAGE_ORG_USERS,
            Permission.MANAGE_ORG_APIS,
            Permission.VIEW_ORG_ANALYTICS,
            Permission.MANAGE_ORG_SETTINGS,
            Permission.MANAGE_ORG_INVITATIONS,
        ],
        "description": "Administration of a single organization"
    },
    "user": {
        "permissions": [
            Permission.USER_BASIC,
            Permission.ACCESS_APIS,
            Permission.VIEW_PERSONAL_DASHBOARD,
        ],
        "description": "Everyday access for organization members"
    }
}

ROLE_TYPES = {
    RoleType.SYSTEM_ADMIN: {
        "categories": ["system", "organization", "user"],
        "display_name": "System Administrator",
        "description": "Full access to every organization and system setting"
    },
    RoleType.ORG_ADMIN: {
        "categories": ["organization", "user"],
        "display_name": "Organization Administrator",
        "description": "Manages users, APIs and settings of one organization"
    },
    RoleType.USER: {
        "categories": ["user"],
        "display_name": "User",
        "description": "Uses the APIs of the organizations they belong to"
    }
}

PERMISSION_DISPLAY_NAMES = {
    Permission.SYSTEM_ADMIN: "System Administration",
    Permission.MANAGE_ORGANIZATIONS: "Manage Organizations",
    Permission.MANAGE_SYSTEM_USERS: "Manage System Users",
    Permission.MANAGE_SYSTEM_APIS: "Manage System APIs",
    Permission.VIEW_SYSTEM_ANALYTICS: "View System Analytics",
    Permission.ORG_ADMIN: "Organization Administration",
    Permission.MANAGE_ORG_USERS: "Manage Organization Users",
    Permission.MANAGE_ORG_APIS: "Manage Organization APIs",
    Permission.VIEW_ORG_ANALYTICS: "View Organization Analytics",
    Permission.MANAGE_ORG_SETTINGS: "Manage Organization Settings",
    Permission.MANAGE_ORG_INVITATIONS: "Manage User Invitations",
    Permission.USER_BASIC: "Basic User Access",
    Permission.ACCESS_APIS: "Access APIs",
    Permission.VIEW_PERSONAL_DASHBOARD: "View Personal Dashboard",
}

# -1 means unlimited
SUBSCRIPTION_LIMITS = {
    SubscriptionPlan.FREE: {"max_users": 5, "max_apis": 2},
    SubscriptionPlan.BASIC: {"max_users": 25, "max_apis": 10},
    SubscriptionPlan.PREMIUM: {"max_users": 100, "max_apis": 50},
    SubscriptionPlan.ENTERPRISE: {"max_users": -1, "max_apis": -1},
}


def _build_role_hierarchy() -> Dict[RoleType, FrozenSet[str]]:
    hierarchy = {}
    for role_type, role_config in ROLE_TYPES.items():
        permissions = set()
        for category in role_config["categories"]:
            permissions.update(p.value for p in PERMISSION_CATEGORIES[category]["permissions"])
        hierarchy[role_type] = frozenset(permissions)
    return hierarchy


# Role -> permission values. Plain strings so explicit grants stored as text compare equal.
ROLE_HIERARCHY: Dict[RoleType, FrozenSet[str]] = _build_role_hierarchy()


def permission_value(permission) -> str:
    """Normalize a Permission member or raw string to its stored text form"""
    if isinstance(permission, Enum):
        return permission.value
    return str(permission)


def role_permissions(role_type) -> FrozenSet[str]:
    """Permissions implied by a role; unknown roles imply nothing"""
    try:
        return ROLE_HIERARCHY[RoleType(role_type)]
    except ValueError:
        return frozenset()


def get_role_display_name(role_type) -> str:
    try:
        return ROLE_TYPES[RoleType(role_type)]["display_name"]
    except ValueError:
        return str(role_type)


def get_permission_display_name(permission) -> str:
    try:
        return PERMISSION_DISPLAY_NAMES[Permission(permission_value(permission))]
    except ValueError:
        return permission_value(permission)


def get_permission_matrix():
    """
    Returns the catalog as plain data
    Format: {
        "version": "...",
        "permissions": [
            {"name": "org:users:manage", "category": "organization", "resource": "users",
             "action": "manage", "description": "Manage Organization Users"},
            ...
        ],
        "roles": [
            {"name": "org_admin", "display_name": "...", "description": "...",
             "permissions": ["org:admin", ...]},
            ...
        ]
    }
    """
    permissions = []
    roles = []

    for category, category_config in PERMISSION_CATEGORIES.items():
        for permission in category_config["permissions"]:
            parts = permission.value.split(":")
            # "system:admin" has no resource segment; resource defaults to the scope
            resource = parts[1] if len(parts) > 2 else parts[0]
            action = parts[-1]
            permissions.append({
                "name": permission.value,
                "category": category,
                "resource": resource,
                "action": action,
                "description": PERMISSION_DISPLAY_NAMES[permission]
            })

    for role_type, role_config in ROLE_TYPES.items():
        roles.append({
            "name": role_type.value,
            "display_name": role_config["display_name"],
            "description": role_config["description"],
            "permissions": sorted(ROLE_HIERARCHY[role_type])
        })

    return {
        "version": CATALOG_VERSION,
        "permissions": permissions,
        "roles": roles
    }


def all_permissions() -> List[str]:
    return [p.value for p in Permission]


# Export the matrix for use in seed scripts
PERMISSION_MATRIX = get_permission_matrix()
