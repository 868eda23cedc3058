# Overview: Typed permission structures; invalid keys are rejected when these are built.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from ..errors import ValidationError
from .definitions import Action, DataScope, Module, MODULE_FIELDS, FIELD_RULE_ACTIONS


def parse_module(value: Any) -> Module:
    try:
        return Module(value)
    except ValueError:
        raise ValidationError(f"Unknown module: {value!r}")


def parse_action(value: Any) -> Action:
    try:
        return Action(value)
    except ValueError:
        raise ValidationError(f"Unknown action: {value!r}")


def parse_scope(value: Any) -> DataScope:
    try:
        return DataScope(value)
    except ValueError:
        raise ValidationError(f"Unknown data scope: {value!r}")


def parse_fields(module: Module, values: Iterable[Any] | None) -> frozenset[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str) or not isinstance(values, (list, tuple, set, frozenset)):
        raise ValidationError("Field lists must be arrays of field keys")
    if not all(isinstance(v, str) for v in values):
        raise ValidationError("Field keys must be strings")
    allowed = set(MODULE_FIELDS[module])
    unknown = sorted(str(v) for v in values if v not in allowed)
    if unknown:
        raise ValidationError(f"Unknown field(s) for {module.value}: {', '.join(unknown)}")
    return frozenset(values)


@dataclass(frozen=True)
class ModulePermission:
    """
    A role's grant for one module.

    actions: explicit boolean per action; absent actions are denied.
    view_fields / edit_fields: restricted field keys for reads and writes.
    """
    module: Module
    actions: dict[Action, bool] = field(default_factory=dict)
    scope: DataScope = DataScope.SELF
    view_fields: frozenset[str] = frozenset()
    edit_fields: frozenset[str] = frozenset()

    def allows(self, action: Action) -> bool:
        return self.actions.get(action, False)

    @classmethod
    def from_dict(cls, module: Any, data: dict) -> "ModulePermission":
        module = parse_module(module)
        if not isinstance(data, dict):
            raise ValidationError(f"Permission entry for {module.value} must be an object")

        raw_actions = data.get("actions", {})
        actions: dict[Action, bool] = {}
        if isinstance(raw_actions, (list, tuple)):
            # Shorthand: a list of granted actions
            for value in raw_actions:
                actions[parse_action(value)] = True
        elif isinstance(raw_actions, dict):
            for key, allowed in raw_actions.items():
                if not isinstance(allowed, bool):
                    raise ValidationError(f"Action '{key}' on {module.value} must be true or false")
                actions[parse_action(key)] = allowed
        else:
            raise ValidationError(f"actions for {module.value} must be a list or an object")

        scope = data.get("scope", data.get("data_scope"))
        return cls(
            module=module,
            actions=actions,
            scope=parse_scope(scope) if scope else DataScope.SELF,
            view_fields=parse_fields(module, data.get("view_fields")),
            edit_fields=parse_fields(module, data.get("edit_fields")),
        )

    def to_dict(self) -> dict:
        return {
            "actions": {action.value: allowed for action, allowed in sorted(self.actions.items(), key=lambda kv: kv[0].value)},
            "scope": self.scope.value,
            "view_fields": sorted(self.view_fields),
            "edit_fields": sorted(self.edit_fields),
        }


def parse_role_permissions(data: Any) -> dict[Module, ModulePermission]:
    """
    Accepts either {"module": {...}} or [{"module": "...", ...}].

    Raises ValidationError on unknown modules/actions/scopes/fields or duplicates.
    """
    if data is None:
        return {}

    entries: list[tuple[Any, dict]] = []
    if isinstance(data, dict):
        entries = list(data.items())
    elif isinstance(data, list):
        for item in data:
            if not isinstance(item, dict) or not item.get("module"):
                raise ValidationError("Each permission entry needs a module")
            entries.append((item["module"], item))
    else:
        raise ValidationError("permissions must be an object or a list")

    result: dict[Module, ModulePermission] = {}
    for module_key, entry in entries:
        perm = ModulePermission.from_dict(module_key, entry)
        if perm.module in result:
            raise ValidationError(f"Duplicate permission entry for {perm.module.value}")
        result[perm.module] = perm
    return result


def serialize_role_permissions(perms: dict[Module, ModulePermission]) -> dict:
    return {module.value: perm.to_dict() for module, perm in sorted(perms.items(), key=lambda kv: kv[0].value)}


@dataclass(frozen=True)
class OverridePatch:
    """Validated content of one per-user override row."""
    module: Module
    action: Action
    allow: bool | None = None
    scope: DataScope | None = None
    field_rules: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def build(cls, module: Any, action: Any, allow: Any = None, scope: Any = None,
              field_rules: Any = None) -> "OverridePatch":
        module = parse_module(module)
        action = parse_action(action)

        if allow is not None and not isinstance(allow, bool):
            raise ValidationError("allow must be true, false or null")

        rules: dict[str, bool] = {}
        if field_rules:
            if action not in FIELD_RULE_ACTIONS:
                raise ValidationError("Field rules can only be set on view or update overrides")
            if not isinstance(field_rules, dict):
                raise ValidationError("field_rules must map field keys to true (restricted) or false")
            parse_fields(module, list(field_rules.keys()))
            for key, restricted in field_rules.items():
                if not isinstance(restricted, bool):
                    raise ValidationError(f"Field rule for '{key}' must be true or false")
                rules[key] = restricted

        if allow is None and scope is None and not rules:
            raise ValidationError("Override must set allow, scope or field_rules")

        return cls(
            module=module,
            action=action,
            allow=allow,
            scope=parse_scope(scope) if scope else None,
            field_rules=rules,
        )
