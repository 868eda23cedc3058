# Overview: Flask API routes for auth operations; login, logout and permission snapshots.

"""
Authentication API routes

- POST /api/auth/login sets the HTTP-only identity cookie and also returns
  the token for API clients that prefer a bearer header
- GET /api/auth/me/permissions returns the compact permission snapshot the
  client uses for quick checks
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import clear_auth_cookie, require_auth, set_auth_cookie
from ..services import auth_service
from ..services.permission_service import create_cached_permissions, get_permission_checker


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return jsonify({"success": False, "error": "email and password required"}), 400

    user = auth_service.authenticate(email, password)
    if not user:
        return jsonify({"success": False, "error": "Invalid credentials"}), 401

    token = auth_service.create_access_token(user)
    checker = get_permission_checker(user)

    response = jsonify({
        "success": True,
        "token": token,
        "user": user.to_dict(),
        "permissions": create_cached_permissions(checker.permissions),
    })
    return set_auth_cookie(response, token)


@auth_bp.post("/logout")
def logout_route():
    response = jsonify({"success": True})
    return clear_auth_cookie(response)


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"success": True, "user": g.current_user.to_dict()})


@auth_bp.get("/me/permissions")
@require_auth
def my_permissions_route():
    """Compact snapshot; pass ?full=1 for the per-module breakdown."""
    payload = {
        "permissions": create_cached_permissions(g.permissions.permissions),
        "cached": bool(getattr(g, "permissions_cached", False)),
        "user": {
            "id": g.current_user.id,
            "email": g.current_user.email,
            "name": g.current_user.full_name,
            "role": g.current_user.app_role,
        },
    }
    if request.args.get("full") in {"1", "true"}:
        payload["effective"] = g.permissions.permissions.to_dict()
    return jsonify(payload)
