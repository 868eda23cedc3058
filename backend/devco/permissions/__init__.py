# Overview: Permission model package.
# Re-exports the public vocabulary, role templates and routing helpers.

from .categories import PermissionGroup, PERMISSION_GROUPS
from .definitions import (
    Action,
    DataScope,
    FieldAction,
    Module,
    ACTION_FIELD_ACTION,
    ACTION_LABELS,
    FIELD_RULE_ACTIONS,
    MODULE_FIELDS,
    MODULE_LABELS,
    SUPER_ADMIN_ROLE,
)
from .roles import DEFAULT_ROLES
from .routing import URL_TO_MODULE, METHOD_TO_ACTION, get_module_from_path, resolve_route
from .helpers import get_all_modules, get_module_fields, get_permission_catalogue
from .types import (
    ModulePermission,
    OverridePatch,
    parse_action,
    parse_module,
    parse_scope,
    parse_role_permissions,
    serialize_role_permissions,
)

__all__ = [
    "PermissionGroup",
    "PERMISSION_GROUPS",
    "Action",
    "DataScope",
    "FieldAction",
    "Module",
    "ACTION_FIELD_ACTION",
    "ACTION_LABELS",
    "FIELD_RULE_ACTIONS",
    "MODULE_FIELDS",
    "MODULE_LABELS",
    "SUPER_ADMIN_ROLE",
    "DEFAULT_ROLES",
    "URL_TO_MODULE",
    "METHOD_TO_ACTION",
    "get_module_from_path",
    "resolve_route",
    "get_all_modules",
    "get_module_fields",
    "get_permission_catalogue",
    "ModulePermission",
    "OverridePatch",
    "parse_action",
    "parse_module",
    "parse_scope",
    "parse_role_permissions",
    "serialize_role_permissions",
]
