# Overview: Service-layer operations for maintenance; retention cleanup of delivery logs.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import WebhookLog
from devco.time_utils import utcnow


def cleanup_webhook_logs(*, retention_days: int = 30) -> int:
    """Delete webhook delivery logs received more than retention_days ago."""
    if retention_days < 1:
        raise ValueError("retention_days must be at least 1")
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(WebhookLog).filter(
        WebhookLog.received_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
