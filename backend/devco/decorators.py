# Overview: Request authentication hook and permission decorators for API routes.

from __future__ import annotations

from datetime import timedelta
from functools import wraps
from urllib.parse import urlencode

from flask import current_app, g, jsonify, redirect, request

from .errors import NotAuthenticated, PermissionDenied
from .permissions import resolve_route
from .services import auth_service
from .services.permission_service import get_permission_cache, get_permission_checker


# Reachable without identity. Matched as exact path or path prefix + "/".
PUBLIC_PREFIXES = (
    "/login",
    "/api/auth/login",
    "/api/auth/logout",
    "/api/health",
    "/static",
)

# Exact matches only: /api/webhooks/quickbooks/logs stays protected
PUBLIC_PATHS = {
    "/favicon.ico",
    "/api/webhooks/quickbooks",
}


def is_public_path(path: str) -> bool:
    if path in PUBLIC_PATHS:
        return True
    return any(path == prefix or path.startswith(prefix + "/") for prefix in PUBLIC_PREFIXES)


def is_api_path(path: str) -> bool:
    return path == "/api" or path.startswith("/api/")


def _read_token() -> tuple[str | None, bool]:
    """Returns (token, came_from_cookie). The bearer header wins over the cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip(), False
    token = request.cookies.get(current_app.config["AUTH_COOKIE_NAME"])
    return token, bool(token)


def _establish_identity() -> None:
    """
    Set g.current_user and g.permissions.

    Raises NotAuthenticated for a missing, expired or forged token.
    """
    if getattr(g, "current_user", None) is not None:
        return

    token, from_cookie = _read_token()
    user = auth_service.get_user_from_token(token)

    cache = get_permission_cache()
    g.permissions_cached = cache is not None and cache.get(user.id) is not None
    g.current_user = user
    g.permissions = get_permission_checker(user)
    g.renew_auth_cookie = from_cookie


def set_auth_cookie(response, token: str):
    response.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        token,
        max_age=int(timedelta(days=current_app.config["JWT_EXPIRES_DAYS"]).total_seconds()),
        httponly=True,
        samesite="Lax",
        secure=current_app.config.get("AUTH_COOKIE_SECURE", False),
        path="/",
    )
    return response


def clear_auth_cookie(response):
    response.delete_cookie(current_app.config["AUTH_COOKIE_NAME"], path="/")
    return response


def authenticate_request():
    """
    Global before_request hook.

    Public paths pass. Otherwise a valid identity is required: API paths get
    a JSON 401, page paths are redirected to /login?redirect=<path>.
    """
    if request.method == "OPTIONS" or is_public_path(request.path):
        return None

    try:
        _establish_identity()
    except NotAuthenticated as exc:
        if is_api_path(request.path):
            return jsonify(exc.to_dict()), exc.status_code
        return redirect(f"/login?{urlencode({'redirect': request.full_path.rstrip('?')})}")
    return None


def renew_auth_cookie(response):
    """Rolling session: a request authenticated by cookie gets a fresh 30-day cookie."""
    if getattr(g, "renew_auth_cookie", False) and getattr(g, "current_user", None) is not None:
        set_auth_cookie(response, auth_service.create_access_token(g.current_user))
    return response


def require_auth(f):
    """
    Require a valid identity token (cookie or bearer header).

    Sets the following Flask g attributes:
    - g.current_user: the authenticated User
    - g.permissions: a PermissionChecker for that user
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            _establish_identity()
        except NotAuthenticated as exc:
            return jsonify(exc.to_dict()), exc.status_code
        return f(*args, **kwargs)

    return decorated_function


def require_permission(module, action):
    """Require an explicit (module, action) grant. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if getattr(g, "current_user", None) is None:
                return jsonify(NotAuthenticated().to_dict()), 401
            try:
                g.permission_decision = g.permissions.require(module, action)
            except PermissionDenied as e:
                current_app.logger.info(
                    "Permission denied: user=%s %s %s", g.current_user.id, request.method, request.path
                )
                return jsonify(e.to_dict()), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_route_permission(f):
    """
    Derive (module, action) from the request path and method through the
    static routing table. Routes missing from the table are denied unless
    the caller is Super Admin.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if getattr(g, "current_user", None) is None:
            return jsonify(NotAuthenticated().to_dict()), 401

        resolved = resolve_route(request.path, request.method)
        if resolved is None:
            if g.permissions.is_super_admin:
                return f(*args, **kwargs)
            e = PermissionDenied(message=f"No permission mapping for {request.method} {request.path}")
            return jsonify(e.to_dict()), 403

        module, action = resolved
        try:
            g.permission_decision = g.permissions.require(module, action)
        except PermissionDenied as e:
            current_app.logger.info(
                "Permission denied: user=%s %s %s", g.current_user.id, request.method, request.path
            )
            return jsonify(e.to_dict()), 403
        return f(*args, **kwargs)

    return decorated_function
