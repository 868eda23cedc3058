# Overview: Flask API routes for employee records; data-scope filtering and field-level restrictions.

"""
Employee records API.

Every query is narrowed to the caller's data scope for the action
(self / department / all), view-restricted fields are stripped from
responses, and writes touching an edit-restricted field are rejected.

Setting app_role here is a role assignment: it also needs the roles
module grant for the target, and is validated before anything is written.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_route_permission
from ..errors import DevcoError, PermissionDenied, ValidationError
from ..extensions import db
from ..models import User
from ..permissions import Action, MODULE_FIELDS, Module
from ..services import auth_service, role_service
from ..services.permission_service import get_user_in_scope, invalidate_user, is_super_admin


employees_bp = Blueprint("employees", __name__, url_prefix="/api/employees")

EDITABLE_FIELDS = set(MODULE_FIELDS[Module.EMPLOYEES]) - {"email", "app_role", "password"}


def _scoped_query(action: Action):
    query = db.session.query(User)
    criterion = g.permissions.build_scope_filter(Module.EMPLOYEES, User.id, User.department, action=action)
    if criterion is not None:
        query = query.filter(criterion)
    return query


def _get_in_scope(user_id: int, action: Action) -> User:
    return get_user_in_scope(g.permissions, Module.EMPLOYEES, action, user_id, label="Employee")


def _serialize(user: User) -> dict:
    return g.permissions.filter_fields_for_view(Module.EMPLOYEES, user.to_dict())


def _error_response(e: DevcoError):
    db.session.rollback()
    return jsonify(e.to_dict()), e.status_code


def _checked_role_name(role_name, target: User | None = None):
    """
    Validate an app_role change before any write.

    Requires the roles update grant (and, for an existing employee, the
    target inside the caller's roles scope). Only a Super Admin may grant
    Super Admin or change their own role. Returns the canonical role name.
    """
    if is_super_admin(role_name) and not g.permissions.is_super_admin:
        raise PermissionDenied(
            module=Module.ROLES.value,
            action=Action.ASSIGN.value,
            message="Only a Super Admin can grant Super Admin",
        )
    g.permissions.require(Module.ROLES, Action.UPDATE)
    if target is not None:
        get_user_in_scope(g.permissions, Module.ROLES, Action.UPDATE, target.id)
        if target.id == g.current_user.id and not g.permissions.is_super_admin:
            raise PermissionDenied(
                module=Module.ROLES.value,
                action=Action.UPDATE.value,
                message="You cannot change your own role",
            )
    return role_service.resolve_role_name(role_name)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


@employees_bp.get("")
@require_auth
@require_route_permission
def list_employees_route():
    query = _scoped_query(Action.VIEW)

    department = request.args.get("department")
    if department:
        query = query.filter(User.department == department)
    if request.args.get("include_inactive") not in {"1", "true"}:
        query = query.filter(User.is_active.is_(True))

    employees = query.order_by(User.last_name, User.first_name, User.id).all()
    return jsonify({
        "success": True,
        "scope": g.permissions.get_scope(Module.EMPLOYEES, Action.VIEW),
        "employees": [_serialize(u) for u in employees],
    })


@employees_bp.get("/<int:user_id>")
@require_auth
@require_route_permission
def get_employee_route(user_id: int):
    try:
        user = _get_in_scope(user_id, Action.VIEW)
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "employee": _serialize(user)})


@employees_bp.post("")
@require_auth
@require_route_permission
def create_employee_route():
    try:
        data = _json_body()
        g.permissions.enforce_editable_fields(Module.EMPLOYEES, data, action=Action.CREATE)

        unknown = sorted(set(data) - EDITABLE_FIELDS - {"email", "password", "app_role"})
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")

        app_role = _checked_role_name(data["app_role"]) if data.get("app_role") else None
        profile = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
        user = auth_service.create_user(
            email=data.get("email"),
            password=data.get("password"),
            app_role=app_role,
            **profile,
        )
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "employee": _serialize(user)}), 201


@employees_bp.patch("/<int:user_id>")
@require_auth
@require_route_permission
def update_employee_route(user_id: int):
    try:
        data = _json_body()
        user = _get_in_scope(user_id, Action.UPDATE)
        g.permissions.enforce_editable_fields(Module.EMPLOYEES, data, action=Action.UPDATE)

        unknown = sorted(set(data) - EDITABLE_FIELDS - {"password", "app_role"})
        if unknown:
            raise ValidationError(f"Field(s) cannot be updated: {', '.join(unknown)}")

        # Everything that can fail runs before the first attribute is set
        role_name = _checked_role_name(data["app_role"], target=user) if "app_role" in data else None
        password_hash = auth_service.hash_password(data["password"]) if "password" in data else None

        for key in sorted(set(data) & EDITABLE_FIELDS):
            setattr(user, key, data[key])
        if password_hash:
            user.password_hash = password_hash

        if "app_role" in data:
            # Commits the profile changes together with the assignment and its audit row
            user = role_service.assign_role(user.id, role_name, changed_by=g.current_user.email)
        else:
            db.session.commit()
            if "department" in data:
                # Department feeds department-scoped checks
                invalidate_user(user.id)
    except DevcoError as e:
        return _error_response(e)

    return jsonify({"success": True, "employee": _serialize(user)})


@employees_bp.delete("/<int:user_id>")
@require_auth
@require_route_permission
def deactivate_employee_route(user_id: int):
    """Soft delete: the account is deactivated, not removed."""
    try:
        user = _get_in_scope(user_id, Action.DELETE)
    except DevcoError as e:
        return _error_response(e)

    if user.id == g.current_user.id:
        return jsonify({"success": False, "error": "You cannot deactivate your own account"}), 400

    user.is_active = False
    db.session.commit()
    invalidate_user(user.id)
    return jsonify({"success": True})
