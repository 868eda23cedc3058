# Overview: Utility functions for permission catalogue lookups.

from .categories import PERMISSION_GROUPS
from .definitions import (
    Action,
    DataScope,
    Module,
    ACTION_LABELS,
    MODULE_FIELDS,
    MODULE_LABELS,
)


def get_all_modules():
    """Get list of all module keys."""
    return [m.value for m in Module]


def get_module_fields(module):
    """Get the field keys that can be restricted on a module."""
    return list(MODULE_FIELDS[Module(module)])


def get_permission_catalogue():
    """Modules, actions, scopes, fields and groups for the role editor."""
    return {
        "modules": [
            {"key": m.value, "label": MODULE_LABELS[m], "fields": MODULE_FIELDS[m]}
            for m in Module
        ],
        "actions": [{"key": a.value, "label": ACTION_LABELS[a]} for a in Action],
        "scopes": [s.value for s in DataScope],
        "groups": {
            key: {
                "label": group["label"],
                "color": group["color"],
                "modules": [m.value for m in group["modules"]],
            }
            for key, group in PERMISSION_GROUPS.items()
        },
    }
