# Overview: Service-layer operations for permission resolution; merges roles and overrides into effective permissions.

"""
Permission Resolution

WHY: Every protected request asks one question: may this user perform this
action on this module (and, optionally, this field)? The answer comes from
the user's role, patched by the user's overrides.

DESIGN PRINCIPLES:
- Fail closed: deny by default; store errors during resolution deny
- Super Admin short-circuits before any role or override lookup
- Most specific rule wins: field rule > role field restriction > action value
- Snapshots are cached per user in an injected PermissionCache; every role or
  override mutation invalidates the affected entries
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from flask import current_app
from sqlalchemy import false, func, or_
from sqlalchemy.exc import SQLAlchemyError

from ..errors import DevcoError, NotFound, PermissionDenied
from ..extensions import db
from ..models import Role, User, UserPermissionOverride
from ..permissions import (
    Action,
    DataScope,
    FieldAction,
    ACTION_FIELD_ACTION,
    SUPER_ADMIN_ROLE,
    parse_action,
    parse_module,
    parse_role_permissions,
    parse_scope,
)


CACHE_EXTENSION_KEY = "devco_permission_cache"


def _key(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def is_super_admin(role_name: str | None) -> bool:
    """Super Admin designation, compared case-insensitively."""
    return bool(role_name) and role_name.strip().lower() == SUPER_ADMIN_ROLE.lower()


@dataclass
class EffectiveModulePermission:
    actions: dict[str, bool] = field(default_factory=dict)
    scopes: dict[str, str] = field(default_factory=dict)
    view_fields: set[str] = field(default_factory=set)
    edit_fields: set[str] = field(default_factory=set)

    def allowed_actions(self) -> list[str]:
        return [a.value for a in Action if self.actions.get(a.value)]

    def to_dict(self) -> dict:
        return {
            "actions": dict(self.actions),
            "scopes": dict(self.scopes),
            "view_fields": sorted(self.view_fields),
            "edit_fields": sorted(self.edit_fields),
        }


@dataclass
class EffectivePermissions:
    user_id: int | None
    role_name: str | None
    is_super_admin: bool = False
    department: str | None = None
    modules: dict[str, EffectiveModulePermission] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "role_name": self.role_name,
            "is_super_admin": self.is_super_admin,
            "department": self.department,
            "modules": {key: perm.to_dict() for key, perm in sorted(self.modules.items())},
        }


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    scope: str | None = None
    restricted_fields: frozenset[str] = frozenset()


DENIED = PermissionDecision(allowed=False)


class PermissionCache:
    """
    In-process snapshot cache keyed by user id.

    One instance per app (stored in app.extensions). Invalidation never
    raises; a missing entry is simply recomputed on the next request.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[int, EffectivePermissions] = {}

    def get(self, user_id: int) -> EffectivePermissions | None:
        with self._lock:
            return self._entries.get(user_id)

    def set(self, user_id: int, permissions: EffectivePermissions) -> None:
        with self._lock:
            self._entries[user_id] = permissions

    def invalidate(self, user_id: int) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def invalidate_role(self, role_name: str | None) -> None:
        if not role_name:
            return
        target = role_name.strip().lower()
        with self._lock:
            stale = [
                uid for uid, perms in self._entries.items()
                if (perms.role_name or "").strip().lower() == target
            ]
            for uid in stale:
                del self._entries[uid]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def get_permission_cache() -> PermissionCache | None:
    return current_app.extensions.get(CACHE_EXTENSION_KEY)


def _super_admin_snapshot(user: User) -> EffectivePermissions:
    return EffectivePermissions(
        user_id=user.id,
        role_name=user.app_role,
        is_super_admin=True,
        department=user.department,
    )


def _find_active_role(role_name: str | None) -> Role | None:
    if not role_name:
        return None
    return (
        db.session.query(Role)
        .filter(func.lower(Role.name) == role_name.strip().lower(), Role.is_active.is_(True))
        .first()
    )


def resolve_effective_permissions(user: User) -> EffectivePermissions:
    """
    Compute the effective permission snapshot for a user.

    Raises on store errors or corrupt stored permission data; callers that
    must fail closed use get_user_permissions().
    """
    if is_super_admin(user.app_role):
        return _super_admin_snapshot(user)

    role = _find_active_role(user.app_role)
    role_perms = parse_role_permissions(role.permissions) if role else {}

    modules: dict[str, EffectiveModulePermission] = {}
    for module, perm in role_perms.items():
        modules[module.value] = EffectiveModulePermission(
            actions={a.value: perm.allows(a) for a in Action},
            scopes={a.value: perm.scope.value for a in Action},
            view_fields=set(perm.view_fields),
            edit_fields=set(perm.edit_fields),
        )

    overrides = (
        db.session.query(UserPermissionOverride)
        .filter_by(user_id=user.id)
        .order_by(UserPermissionOverride.id)
        .all()
    )
    for override in overrides:
        module = parse_module(override.module)
        action = parse_action(override.action)
        entry = modules.setdefault(
            module.value,
            EffectiveModulePermission(
                actions={a.value: False for a in Action},
                scopes={a.value: DataScope.SELF.value for a in Action},
            ),
        )

        if override.allow is not None:
            entry.actions[action.value] = override.allow
        if override.data_scope:
            entry.scopes[action.value] = parse_scope(override.data_scope).value

        rules = override.field_rules or {}
        if rules:
            target = entry.view_fields if action == Action.VIEW else entry.edit_fields
            for field_key, restricted in rules.items():
                if restricted:
                    target.add(field_key)
                else:
                    target.discard(field_key)

    return EffectivePermissions(
        user_id=user.id,
        role_name=role.name if role else user.app_role,
        department=user.department,
        modules=modules,
    )


def get_user_permissions(user: User, cache: PermissionCache | None = None) -> EffectivePermissions:
    """
    Cached, fail-closed resolution.

    Store errors are logged and produce an empty (deny-all) snapshot that is
    not cached, so the next request retries the store.
    """
    if cache is not None:
        cached = cache.get(user.id)
        if cached is not None:
            return cached

    try:
        permissions = resolve_effective_permissions(user)
    except (SQLAlchemyError, DevcoError, ValueError):
        current_app.logger.exception("Permission resolution failed for user %s; denying", user.id)
        return EffectivePermissions(user_id=user.id, role_name=user.app_role, department=user.department)

    if cache is not None:
        cache.set(user.id, permissions)
    return permissions


def create_cached_permissions(permissions: EffectivePermissions) -> dict:
    """Compact form returned to clients for quick checks."""
    quick_access = {}
    for module_key, perm in sorted(permissions.modules.items()):
        allowed = perm.allowed_actions()
        if allowed:
            quick_access[module_key] = {
                "actions": allowed,
                "scope": perm.scopes.get(Action.VIEW.value, DataScope.SELF.value),
            }
    return {
        "is_super_admin": permissions.is_super_admin,
        "role": permissions.role_name,
        "department": permissions.department,
        "quick_access": quick_access,
    }


def build_scope_filter(decision: PermissionDecision, user: User, owner_column, department_column=None):
    """
    SQLAlchemy criterion restricting records to the decision's data scope.

    Returns None when no restriction applies (scope "all"). A denied decision
    yields a criterion matching nothing.
    """
    if not decision.allowed:
        return false()
    if decision.scope == DataScope.ALL.value:
        return None
    if decision.scope == DataScope.DEPARTMENT.value and department_column is not None and user.department:
        return or_(owner_column == user.id, department_column == user.department)
    return owner_column == user.id


class PermissionChecker:
    """
    Evaluates checks against one user's effective snapshot.

    Attached to g.permissions by require_auth.
    """

    def __init__(self, user: User, permissions: EffectivePermissions):
        self.user = user
        self.permissions = permissions

    @property
    def is_super_admin(self) -> bool:
        return self.permissions.is_super_admin

    def decide(self, module, action, field_key: str | None = None) -> PermissionDecision:
        if self.permissions.is_super_admin:
            return PermissionDecision(allowed=True, scope=DataScope.ALL.value)

        module_key, action_key = _key(module), _key(action)
        perm = self.permissions.modules.get(module_key)
        if perm is None or not perm.actions.get(action_key, False):
            return DENIED

        scope = perm.scopes.get(action_key) or DataScope.SELF.value
        restricted = self._restricted_fields(perm, action_key)
        if field_key is not None and field_key in restricted:
            return PermissionDecision(allowed=False, scope=scope, restricted_fields=restricted)
        return PermissionDecision(allowed=True, scope=scope, restricted_fields=restricted)

    @staticmethod
    def _restricted_fields(perm: EffectiveModulePermission, action_key: str) -> frozenset[str]:
        try:
            field_action = ACTION_FIELD_ACTION.get(Action(action_key))
        except ValueError:
            return frozenset()
        if field_action == FieldAction.VIEW:
            return frozenset(perm.view_fields)
        if field_action == FieldAction.EDIT:
            return frozenset(perm.edit_fields)
        return frozenset()

    def can(self, module, action, field_key: str | None = None) -> bool:
        return self.decide(module, action, field_key).allowed

    def can_field(self, module, field_key: str, field_action=FieldAction.VIEW) -> bool:
        action = Action.VIEW if _key(field_action) == FieldAction.VIEW.value else Action.UPDATE
        return self.can(module, action, field_key)

    def get_scope(self, module, action=Action.VIEW) -> str | None:
        decision = self.decide(module, action)
        return decision.scope if decision.allowed else None

    def require(self, module, action, field_key: str | None = None) -> PermissionDecision:
        decision = self.decide(module, action, field_key)
        if not decision.allowed:
            raise PermissionDenied(
                module=_key(module),
                action=_key(action),
                field=field_key,
                scope=decision.scope,
            )
        return decision

    def build_scope_filter(self, module, owner_column, department_column=None, action=Action.VIEW):
        return build_scope_filter(self.decide(module, action), self.user, owner_column, department_column)

    def filter_fields_for_view(self, module, record: dict) -> dict:
        """Strip view-restricted fields from a serialized record."""
        restricted = self.decide(module, Action.VIEW).restricted_fields
        if not restricted:
            return record
        return {k: v for k, v in record.items() if k not in restricted}

    def filter_records(self, module, records: list[dict]) -> list[dict]:
        return [self.filter_fields_for_view(module, r) for r in records]

    def enforce_editable_fields(self, module, data: dict, action=Action.UPDATE) -> None:
        """Reject a write that touches an edit-restricted field."""
        decision = self.require(module, action)
        for field_key in sorted(data):
            if field_key in decision.restricted_fields:
                raise PermissionDenied(
                    module=_key(module),
                    action=_key(action),
                    field=field_key,
                    scope=decision.scope,
                )


def get_permission_checker(user: User) -> PermissionChecker:
    return PermissionChecker(user, get_user_permissions(user, get_permission_cache()))


def invalidate_user(user_id: int) -> None:
    cache = get_permission_cache()
    if cache is not None:
        cache.invalidate(user_id)


def invalidate_role(role_name: str | None) -> None:
    cache = get_permission_cache()
    if cache is not None:
        cache.invalidate_role(role_name)


def get_user_in_scope(checker: PermissionChecker, module, action, user_id: int, label: str = "User") -> User:
    """
    Load the target of a user-directed operation through the caller's data scope.

    Raises NotFound when the user does not exist and PermissionDenied (with
    the caller's scope) when it exists outside that scope.
    """
    query = db.session.query(User).filter(User.id == user_id)
    criterion = checker.build_scope_filter(module, User.id, User.department, action=action)
    if criterion is not None:
        query = query.filter(criterion)
    user = query.first()
    if user:
        return user
    if db.session.get(User, user_id) is None:
        raise NotFound(f"{label} not found")
    raise PermissionDenied(
        module=_key(module),
        action=_key(action),
        scope=checker.get_scope(module, action),
        message=f"{label} is outside your data scope",
    )
