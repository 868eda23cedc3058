# Overview: Flask API routes for QuickBooks webhook deliveries and the delivery log.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_route_permission
from ..errors import DevcoError
from ..extensions import db
from ..services import webhook_service


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks/quickbooks")


@webhooks_bp.post("")
def receive_route():
    """
    Intuit delivery endpoint. Public; authenticity comes from the HMAC
    signature, which is checked on the raw body before parsing.
    """
    try:
        log, finished = webhook_service.handle_delivery(request.get_data(cache=False), request.headers)
    except DevcoError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"success": True, "delivery_id": log.id, "processed": finished}), 200


@webhooks_bp.get("")
def liveness_route():
    return jsonify({"success": True, "message": "QuickBooks Webhook Endpoint Active"})


@webhooks_bp.get("/logs")
@require_auth
@require_route_permission
def logs_route():
    logs = webhook_service.list_webhook_logs(
        status=request.args.get("status"),
        limit=request.args.get("limit", default=50, type=int),
    )
    return jsonify({"success": True, "logs": [log.to_dict() for log in logs]})
