# Overview: Default role templates seeded on first use.
# Each role is defined as a dict matching the Role model's columns.

from .definitions import Action, DataScope, Module, SUPER_ADMIN_ROLE


def _grant(actions, scope):
    return {"actions": [a.value for a in actions], "scope": scope.value}


ALL_ACTIONS = list(Action)
MANAGER_ACTIONS = [Action.VIEW, Action.CREATE, Action.UPDATE, Action.EXPORT, Action.ASSIGN]


DEFAULT_ROLES = [
    {
        "name": SUPER_ADMIN_ROLE,
        "description": "Full system access - bypasses all permission checks",
        "color": "#dc2626",
        "icon": "Shield",
        "is_system": True,
        # Empty: Super Admin is resolved before any role lookup
        "permissions": {},
    },
    {
        "name": "Admin",
        "description": "Administrative access with most permissions",
        "color": "#7c3aed",
        "icon": "UserCog",
        "is_system": True,
        "permissions": {m.value: _grant(ALL_ACTIONS, DataScope.ALL) for m in Module},
    },
    {
        "name": "Manager",
        "description": "Department management with team oversight",
        "color": "#2563eb",
        "icon": "Users",
        "is_system": False,
        "permissions": {m.value: _grant(MANAGER_ACTIONS, DataScope.DEPARTMENT) for m in Module},
    },
    {
        "name": "Staff",
        "description": "Regular employee with basic access",
        "color": "#059669",
        "icon": "User",
        "is_system": False,
        "permissions": {
            Module.DASHBOARD.value: _grant([Action.VIEW], DataScope.SELF),
            Module.EMPLOYEES.value: {
                **_grant([Action.VIEW], DataScope.SELF),
                "view_fields": ["hourly_rate_site", "hourly_rate_drive", "password"],
            },
            Module.ESTIMATES.value: _grant([Action.VIEW, Action.CREATE, Action.UPDATE], DataScope.SELF),
            Module.SCHEDULES.value: _grant([Action.VIEW], DataScope.SELF),
            Module.TIME_CARDS.value: _grant([Action.VIEW, Action.CREATE, Action.UPDATE], DataScope.SELF),
            Module.CHAT.value: _grant([Action.VIEW, Action.CREATE], DataScope.SELF),
            Module.COMPANY_DOCS.value: _grant([Action.VIEW], DataScope.ALL),
        },
    },
    {
        "name": "Viewer",
        "description": "Read-only access to assigned modules",
        "color": "#6b7280",
        "icon": "Eye",
        "is_system": False,
        "permissions": {
            Module.DASHBOARD.value: _grant([Action.VIEW], DataScope.SELF),
            Module.ESTIMATES.value: _grant([Action.VIEW], DataScope.ALL),
            Module.COMPANY_DOCS.value: _grant([Action.VIEW], DataScope.ALL),
        },
    },
]
