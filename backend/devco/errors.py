# Overview: Error kinds shared by services and routes, plus their JSON error handlers.

"""
Error taxonomy.

Routes and services raise these; create_app() registers handlers that turn
them into JSON responses. NotAuthenticated and PermissionDenied are kept
apart on purpose: the first means identity could not be established, the
second means the caller is known but not allowed.
"""

from __future__ import annotations

from flask import jsonify


class DevcoError(Exception):
    """Base class for errors rendered as JSON responses."""
    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.error)
        self.message = message or self.error

    def to_dict(self) -> dict:
        return {"success": False, "error": self.error, "message": self.message}


class NotAuthenticated(DevcoError):
    """Missing, malformed, expired or forged identity credential."""
    status_code = 401
    error = "Authentication required"


class PermissionDenied(DevcoError):
    """Valid identity, insufficient rights."""
    status_code = 403
    error = "Permission denied"

    def __init__(
        self,
        module: str | None = None,
        action: str | None = None,
        field: str | None = None,
        scope: str | None = None,
        message: str | None = None,
    ):
        if message is None:
            if field:
                message = f"Cannot {action} field '{field}' on {module}"
            elif module:
                message = f"Cannot {action} on {module}"
        super().__init__(message)
        self.module = module
        self.action = action
        self.field = field
        self.scope = scope

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "module": self.module,
            "action": self.action,
            "field": self.field,
            "scope": self.scope,
        })
        return data


class NotFound(DevcoError):
    status_code = 404
    error = "Not found"


class ValidationError(DevcoError):
    """400-level input problem."""
    status_code = 400
    error = "Validation failed"


class ConflictError(DevcoError):
    """409-level business rule conflict (duplicate role name, role in use)."""
    status_code = 409
    error = "Conflict"


class ExternalServiceError(DevcoError):
    """Accounting provider unreachable or rejected the request."""
    status_code = 502
    error = "External service error"

    def __init__(self, message: str | None = None, status: int | None = None):
        super().__init__(message)
        self.status = status


class SignatureInvalid(DevcoError):
    """Webhook HMAC mismatch."""
    status_code = 401
    error = "invalid_signature"


def register_error_handlers(app) -> None:
    @app.errorhandler(DevcoError)
    def _handle_devco_error(exc: DevcoError):
        if exc.status_code >= 500:
            app.logger.error("%s: %s", type(exc).__name__, exc.message)
        return jsonify(exc.to_dict()), exc.status_code
