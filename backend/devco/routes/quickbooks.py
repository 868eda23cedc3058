# Overview: Flask API routes for QuickBooks projects, manual overrides, sync triggers and the OAuth connect flow.

import secrets

from flask import Blueprint, current_app, g, jsonify, redirect, request, session

from ..decorators import require_auth, require_permission, require_route_permission
from ..errors import DevcoError, ValidationError
from ..extensions import db
from ..permissions import Action, Module
from ..services import qbo_sync_service
from ..services.qbo_client import get_qbo_client


quickbooks_bp = Blueprint("quickbooks", __name__, url_prefix="/api/quickbooks")
qbo_auth_bp = Blueprint("qbo_auth", __name__, url_prefix="/api/auth/quickbooks")

# Request keys map onto the restrictable field keys of the WIP report
MANUAL_FIELDS = ("original_contract", "change_orders")
OAUTH_STATE_KEY = "qbo_oauth_state"


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def _error_response(e: DevcoError):
    db.session.rollback()
    if e.status_code >= 500:
        current_app.logger.error("QuickBooks request failed: %s", e.message)
    return jsonify(e.to_dict()), e.status_code


def _serialize(project, include_transactions: bool = False) -> dict:
    return g.permissions.filter_fields_for_view(Module.REPORTS_WIP, project.to_dict(include_transactions))


@quickbooks_bp.get("/projects")
@require_auth
@require_route_permission
def list_projects_route():
    projects = qbo_sync_service.list_projects()
    return jsonify({"success": True, "projects": [_serialize(p) for p in projects]})


@quickbooks_bp.get("/projects/<project_id>")
@require_auth
@require_route_permission
def get_project_route(project_id: str):
    try:
        project = qbo_sync_service.get_project(project_id)
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "project": _serialize(project, include_transactions=True)})


@quickbooks_bp.patch("/projects/<project_id>")
@require_auth
@require_route_permission
def update_project_route(project_id: str):
    """Set manual contract figures; null or "" reverts to the computed value."""
    try:
        data = _json_body()
        changes = {k: data[k] for k in MANUAL_FIELDS if k in data}
        if not changes:
            return jsonify({"success": True, "message": "No changes provided"})

        g.permissions.enforce_editable_fields(Module.REPORTS_WIP, changes, action=Action.UPDATE)
        project = qbo_sync_service.update_manual_values(project_id, changes)
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "project": _serialize(project)})


@quickbooks_bp.patch("/projects/<project_id>/proposal")
@require_auth
@require_route_permission
def update_proposal_route(project_id: str):
    try:
        data = _json_body()
        if "proposal_number" not in data:
            raise ValidationError("proposal_number is required")

        g.permissions.enforce_editable_fields(
            Module.REPORTS_WIP, {"proposal_number": data["proposal_number"]}, action=Action.UPDATE
        )
        project = qbo_sync_service.set_proposal_number(project_id, data["proposal_number"])
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "project": _serialize(project)})


@quickbooks_bp.get("/projects/<project_id>/transactions")
@require_auth
@require_route_permission
def project_transactions_route(project_id: str):
    if not g.permissions.can(Module.REPORTS_WIP, Action.VIEW, "transactions"):
        return jsonify({"success": True, "transactions": [], "restricted": True})
    try:
        transactions = qbo_sync_service.get_transactions(project_id)
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "transactions": transactions})


@quickbooks_bp.get("/projects/<project_id>/profitability")
@require_auth
@require_route_permission
def project_profitability_route(project_id: str):
    try:
        figures = qbo_sync_service.get_profitability(project_id)
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, "profitability": g.permissions.filter_fields_for_view(Module.REPORTS_WIP, figures)})


@quickbooks_bp.post("/sync")
@require_auth
@require_route_permission
def sync_route():
    """Full sync of one project ({"project_id": ...}) or a metadata sync of all projects."""
    data = request.get_json(silent=True) or {}
    project_id = data.get("project_id")

    try:
        if project_id:
            project = qbo_sync_service.sync_project_to_db(str(project_id))
            return jsonify({"success": True, "project": _serialize(project)})

        summary = qbo_sync_service.sync_all_projects()
    except DevcoError as e:
        return _error_response(e)
    return jsonify({"success": True, **summary})


# =============================================================================
# OAUTH CONNECT FLOW
# =============================================================================

@qbo_auth_bp.get("")
@require_auth
@require_permission(Module.REPORTS_WIP, Action.UPDATE)
def connect_route():
    state = secrets.token_urlsafe(24)
    session[OAUTH_STATE_KEY] = state
    return redirect(get_qbo_client().token_supplier.build_authorization_url(state))


@qbo_auth_bp.get("/callback")
@require_auth
@require_permission(Module.REPORTS_WIP, Action.UPDATE)
def callback_route():
    expected_state = session.pop(OAUTH_STATE_KEY, None)
    if not expected_state or request.args.get("state") != expected_state:
        return jsonify(ValidationError("OAuth state mismatch").to_dict()), 400

    if request.args.get("error"):
        return jsonify(ValidationError(f"QuickBooks authorization failed: {request.args['error']}").to_dict()), 400

    code = request.args.get("code")
    if not code:
        return jsonify(ValidationError("Missing authorization code").to_dict()), 400

    try:
        token = get_qbo_client().token_supplier.exchange_code(code, request.args.get("realmId"))
    except DevcoError as e:
        return _error_response(e)

    app_url = current_app.config.get("APP_URL")
    if app_url:
        return redirect(f"{app_url.rstrip('/')}/quickbooks?connected=1")
    return jsonify({"success": True, "connection": token.to_dict()})
