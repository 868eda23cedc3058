# Overview: Service-layer operations for roles and per-user overrides; every mutation is audited and invalidates cached permissions.

"""
Role and Override Administration

DESIGN:
- Role permissions are validated through permissions.types before storage
  and stored in normalized form
- System roles cannot be deleted; roles assigned to a user cannot be deleted
  (the caller reassigns those users first)
- The Super Admin role bypasses checks, so its permissions are not editable
- Every role create/update/delete and every override upsert/delete writes
  exactly one PermissionAuditLog row in the same transaction
- Cache invalidation runs after commit and never fails the mutation
"""

from __future__ import annotations

from typing import Any

from flask import current_app
from sqlalchemy import func

from ..errors import ConflictError, NotFound, ValidationError
from ..extensions import db
from ..models import PermissionAuditLog, Role, User, UserPermissionOverride
from ..permissions import (
    DEFAULT_ROLES,
    OverridePatch,
    get_permission_catalogue,
    parse_action,
    parse_module,
    parse_role_permissions,
    serialize_role_permissions,
)
from .permission_service import get_permission_cache, is_super_admin


ROLE_EDITABLE_FIELDS = ("name", "description", "color", "icon", "permissions", "is_active")


def _invalidate(user_id: int | None = None, role_name: str | None = None) -> None:
    cache = get_permission_cache()
    if cache is None:
        return
    try:
        if user_id is not None:
            cache.invalidate(user_id)
        if role_name is not None:
            cache.invalidate_role(role_name)
    except Exception:
        current_app.logger.exception("Permission cache invalidation failed")


def write_audit(
    *,
    target_type: str,
    target_id: Any,
    change_type: str,
    changed_by: str | None,
    user_id: int | None = None,
    module: str | None = None,
    action: str | None = None,
    previous_value: Any = None,
    new_value: Any = None,
) -> PermissionAuditLog:
    """Stage an audit row; the caller commits it with the mutation."""
    entry = PermissionAuditLog(
        target_type=target_type,
        target_id=str(target_id),
        user_id=user_id,
        changed_by=changed_by,
        change_type=change_type,
        module=module,
        action=action,
        previous_value=previous_value,
        new_value=new_value,
    )
    db.session.add(entry)
    return entry


# =============================================================================
# ROLES
# =============================================================================

def find_role(name: str) -> Role | None:
    return db.session.query(Role).filter(func.lower(Role.name) == name.strip().lower()).first()


def _users_in_role(name: str) -> int:
    return db.session.query(func.count(User.id)).filter(
        func.lower(User.app_role) == name.strip().lower()
    ).scalar() or 0


def seed_default_roles() -> int:
    """
    Create any default role that does not exist yet.

    Idempotent: safe to run multiple times. Returns the number created.
    """
    created = 0
    for template in DEFAULT_ROLES:
        if find_role(template["name"]):
            continue
        role = Role(
            name=template["name"],
            description=template["description"],
            color=template["color"],
            icon=template["icon"],
            is_system=template["is_system"],
            is_active=True,
            permissions=serialize_role_permissions(parse_role_permissions(template["permissions"])),
            created_by="system",
        )
        db.session.add(role)
        created += 1

    if created:
        db.session.commit()
    return created


def list_roles() -> dict:
    """Roles with active-user counts and the permission catalogue."""
    if db.session.query(Role.id).first() is None:
        seed_default_roles()

    counts = dict(
        db.session.query(func.lower(User.app_role), func.count(User.id))
        .filter(User.is_active.is_(True), User.app_role.isnot(None))
        .group_by(func.lower(User.app_role))
        .all()
    )

    roles = []
    for role in db.session.query(Role).order_by(Role.is_system.desc(), Role.name).all():
        data = role.to_dict()
        data["user_count"] = counts.get(role.name.lower(), 0)
        roles.append(data)

    return {"roles": roles, "catalogue": get_permission_catalogue()}


def get_role(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if not role:
        raise NotFound("Role not found")
    return role


def create_role(data: dict, changed_by: str | None = None) -> Role:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Role name is required")
    if is_super_admin(name):
        raise ConflictError("The Super Admin role is reserved")
    if find_role(name):
        raise ConflictError(f"Role '{name}' already exists")

    permissions = serialize_role_permissions(parse_role_permissions(data.get("permissions") or {}))

    role = Role(
        name=name,
        description=data.get("description"),
        color=data.get("color"),
        icon=data.get("icon"),
        is_system=False,
        is_active=bool(data.get("is_active", True)),
        permissions=permissions,
        created_by=changed_by,
    )
    db.session.add(role)
    db.session.flush()

    write_audit(
        target_type=PermissionAuditLog.TARGET_ROLE,
        target_id=role.id,
        change_type="create",
        changed_by=changed_by,
        new_value=role.to_dict(),
    )
    db.session.commit()

    current_app.logger.info("Role '%s' created by %s", role.name, changed_by)
    return role


def update_role(role_id: int, data: dict, changed_by: str | None = None) -> Role:
    role = get_role(role_id)
    previous = role.to_dict()
    old_name = role.name

    unknown = sorted(set(data) - set(ROLE_EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown role field(s): {', '.join(unknown)}")

    if "name" in data:
        new_name = (data.get("name") or "").strip()
        if not new_name:
            raise ValidationError("Role name is required")
        if new_name.lower() != old_name.lower():
            if role.is_system:
                raise ConflictError("System roles cannot be renamed")
            if is_super_admin(new_name) or find_role(new_name):
                raise ConflictError(f"Role '{new_name}' already exists")
        role.name = new_name

    if "permissions" in data:
        if is_super_admin(old_name):
            raise ValidationError("Super Admin permissions cannot be edited")
        role.permissions = serialize_role_permissions(parse_role_permissions(data["permissions"] or {}))

    for attr in ("description", "color", "icon"):
        if attr in data:
            setattr(role, attr, data[attr])

    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            raise ValidationError("is_active must be true or false")
        role.is_active = data["is_active"]

    if role.name != old_name:
        # Users reference roles by name
        db.session.query(User).filter(func.lower(User.app_role) == old_name.lower()).update(
            {User.app_role: role.name}, synchronize_session=False
        )

    db.session.flush()
    write_audit(
        target_type=PermissionAuditLog.TARGET_ROLE,
        target_id=role.id,
        change_type="update",
        changed_by=changed_by,
        previous_value=previous,
        new_value=role.to_dict(),
    )
    db.session.commit()

    _invalidate(role_name=old_name)
    if role.name != old_name:
        _invalidate(role_name=role.name)
    return role


def delete_role(role_id: int, changed_by: str | None = None) -> None:
    role = get_role(role_id)
    if role.is_system:
        raise ConflictError("System roles cannot be deleted")

    in_use = _users_in_role(role.name)
    if in_use:
        raise ConflictError(f"Role '{role.name}' is assigned to {in_use} user(s); reassign them first")

    previous = role.to_dict()
    name = role.name
    db.session.delete(role)
    write_audit(
        target_type=PermissionAuditLog.TARGET_ROLE,
        target_id=role_id,
        change_type="delete",
        changed_by=changed_by,
        previous_value=previous,
    )
    db.session.commit()

    _invalidate(role_name=name)
    current_app.logger.info("Role '%s' deleted by %s", name, changed_by)


# =============================================================================
# USER OVERRIDES
# =============================================================================

def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def list_overrides(user_id: int) -> list[UserPermissionOverride]:
    _get_user(user_id)
    return (
        db.session.query(UserPermissionOverride)
        .filter_by(user_id=user_id)
        .order_by(UserPermissionOverride.module, UserPermissionOverride.action)
        .all()
    )


def upsert_override(user_id: int, data: dict, changed_by: str | None = None) -> UserPermissionOverride:
    """
    Create or replace the override for (user_id, module, action).

    The payload replaces the whole override row; a field left out is cleared.
    """
    _get_user(user_id)
    patch = OverridePatch.build(
        module=data.get("module"),
        action=data.get("action"),
        allow=data.get("allow"),
        scope=data.get("data_scope", data.get("scope")),
        field_rules=data.get("field_rules"),
    )

    override = db.session.query(UserPermissionOverride).filter_by(
        user_id=user_id,
        module=patch.module.value,
        action=patch.action.value,
    ).first()

    previous = override.to_dict() if override else None
    if override is None:
        override = UserPermissionOverride(
            user_id=user_id,
            module=patch.module.value,
            action=patch.action.value,
            created_by=changed_by,
        )
        db.session.add(override)

    override.allow = patch.allow
    override.data_scope = patch.scope.value if patch.scope else None
    override.field_rules = dict(patch.field_rules) or None

    db.session.flush()
    write_audit(
        target_type=PermissionAuditLog.TARGET_USER_OVERRIDE,
        target_id=override.id,
        user_id=user_id,
        change_type="update" if previous else "create",
        changed_by=changed_by,
        module=override.module,
        action=override.action,
        previous_value=previous,
        new_value=override.to_dict(),
    )
    db.session.commit()

    _invalidate(user_id=user_id)
    return override


def delete_override(user_id: int, module: str, action: str, changed_by: str | None = None) -> None:
    module_key = parse_module(module).value
    action_key = parse_action(action).value

    override = db.session.query(UserPermissionOverride).filter_by(
        user_id=user_id,
        module=module_key,
        action=action_key,
    ).first()
    if not override:
        raise NotFound("Override not found")

    previous = override.to_dict()
    db.session.delete(override)
    write_audit(
        target_type=PermissionAuditLog.TARGET_USER_OVERRIDE,
        target_id=previous["id"],
        user_id=user_id,
        change_type="delete",
        changed_by=changed_by,
        module=module_key,
        action=action_key,
        previous_value=previous,
    )
    db.session.commit()

    _invalidate(user_id=user_id)


def resolve_role_name(role_name: str | None) -> str | None:
    """Canonical stored name for a role designation; raises NotFound for unknown roles."""
    if role_name is not None and not isinstance(role_name, str):
        raise ValidationError("role must be a string")
    if not role_name or is_super_admin(role_name):
        return role_name
    role = find_role(role_name)
    if not role:
        raise NotFound(f"Role '{role_name}' not found")
    return role.name


def assign_role(user_id: int, role_name: str | None, changed_by: str | None = None) -> User:
    """Move a user to another role (or the Super Admin designation)."""
    user = _get_user(user_id)
    role_name = resolve_role_name(role_name)

    previous = user.app_role
    user.app_role = role_name
    write_audit(
        target_type=PermissionAuditLog.TARGET_USER_ROLE,
        target_id=user.id,
        user_id=user.id,
        change_type="update",
        changed_by=changed_by,
        previous_value={"app_role": previous},
        new_value={"app_role": role_name},
    )
    db.session.commit()

    _invalidate(user_id=user.id)
    return user


def list_audit_logs(target_type: str | None = None, user_id: int | None = None, limit: int = 100) -> list[PermissionAuditLog]:
    query = db.session.query(PermissionAuditLog)
    if target_type:
        query = query.filter(PermissionAuditLog.target_type == target_type)
    if user_id is not None:
        query = query.filter(PermissionAuditLog.user_id == user_id)
    return query.order_by(PermissionAuditLog.id.desc()).limit(max(1, min(limit, 500))).all()
