# Overview: Flask API routes for roles, per-user overrides and the permission audit trail.

"""
Role administration routes

- Role CRUD and the permission catalogue for the role editor
- Role assignment and per-user overrides; the target user is loaded through
  the caller's data scope on the roles module, and callers other than Super
  Admin cannot change their own role or overrides
- The permission audit trail
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_route_permission
from ..errors import DevcoError, PermissionDenied, ValidationError
from ..extensions import db
from ..permissions import Action, Module, get_permission_catalogue
from ..services import role_service
from ..services.permission_service import get_user_in_scope, is_super_admin


roles_bp = Blueprint("roles", __name__, url_prefix="/api/roles")


def _actor() -> str:
    return g.current_user.email


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def _error_response(e: DevcoError):
    db.session.rollback()
    return jsonify(e.to_dict()), e.status_code


def _target_user(user_id: int, action: Action):
    """Target of a user-directed change, loaded through the caller's roles scope."""
    user = get_user_in_scope(g.permissions, Module.ROLES, action, user_id)
    if action != Action.VIEW and user.id == g.current_user.id and not g.permissions.is_super_admin:
        raise PermissionDenied(
            module=Module.ROLES.value,
            action=action.value,
            message="You cannot change your own role or permissions",
        )
    return user


@roles_bp.get("")
@require_auth
@require_route_permission
def list_roles_route():
    """Roles with user counts; default roles are seeded on first use."""
    result = role_service.list_roles()
    return jsonify({"success": True, **result})


@roles_bp.get("/catalogue")
@require_auth
@require_route_permission
def catalogue_route():
    return jsonify({"success": True, "catalogue": get_permission_catalogue()})


@roles_bp.post("")
@require_auth
@require_route_permission
def create_role_route():
    try:
        role = role_service.create_role(_json_body(), changed_by=_actor())
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "role": role.to_dict()}), 201


@roles_bp.get("/<int:role_id>")
@require_auth
@require_route_permission
def get_role_route(role_id: int):
    try:
        role = role_service.get_role(role_id)
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "role": role.to_dict()})


@roles_bp.route("/<int:role_id>", methods=["PUT", "PATCH"])
@require_auth
@require_route_permission
def update_role_route(role_id: int):
    try:
        role = role_service.update_role(role_id, _json_body(), changed_by=_actor())
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "role": role.to_dict()})


@roles_bp.delete("/<int:role_id>")
@require_auth
@require_route_permission
def delete_role_route(role_id: int):
    try:
        role_service.delete_role(role_id, changed_by=_actor())
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True})


@roles_bp.put("/users/<int:user_id>")
@require_auth
@require_route_permission
def assign_role_route(user_id: int):
    try:
        data = _json_body()
        if "role" not in data:
            raise ValidationError("role is required")
        if is_super_admin(data["role"]) and not g.permissions.is_super_admin:
            raise PermissionDenied(
                module=Module.ROLES.value,
                action=Action.ASSIGN.value,
                message="Only a Super Admin can grant Super Admin",
            )
        target = _target_user(user_id, Action.UPDATE)
        user = role_service.assign_role(target.id, data["role"], changed_by=_actor())
    except DevcoError as e:
        return _error_response(e)

    current_app.logger.info("User %s assigned role '%s' by %s", user.id, user.app_role, _actor())
    return jsonify({"success": True, "user": g.permissions.filter_fields_for_view(Module.EMPLOYEES, user.to_dict())})


# =============================================================================
# OVERRIDES
# =============================================================================

@roles_bp.get("/overrides/<int:user_id>")
@require_auth
@require_route_permission
def list_overrides_route(user_id: int):
    try:
        target = _target_user(user_id, Action.VIEW)
        overrides = role_service.list_overrides(target.id)
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "overrides": [o.to_dict() for o in overrides]})


@roles_bp.put("/overrides/<int:user_id>")
@require_auth
@require_route_permission
def upsert_override_route(user_id: int):
    try:
        data = _json_body()
        target = _target_user(user_id, Action.UPDATE)
        override = role_service.upsert_override(target.id, data, changed_by=_actor())
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "override": override.to_dict()})


@roles_bp.delete("/overrides/<int:user_id>")
@require_auth
@require_route_permission
def delete_override_route(user_id: int):
    module = request.args.get("module")
    action = request.args.get("action")
    if not module or not action:
        return jsonify(ValidationError("module and action query parameters are required").to_dict()), 400

    try:
        target = _target_user(user_id, Action.DELETE)
        role_service.delete_override(target.id, module, action, changed_by=_actor())
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True})


@roles_bp.get("/audit")
@require_auth
@require_route_permission
def audit_route():
    entries = role_service.list_audit_logs(
        target_type=request.args.get("target_type"),
        user_id=request.args.get("user_id", type=int),
        limit=request.args.get("limit", default=100, type=int),
    )
    return jsonify({"success": True, "entries": [e.to_dict() for e in entries]})
