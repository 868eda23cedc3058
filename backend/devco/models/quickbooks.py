from __future__ import annotations

from ..extensions import db
from devco.time_utils import to_utc_z


INCOME_TYPES = ("Invoice",)
COST_TYPES = ("Bill", "Purchase")
CONTRACT_TYPES = ("Estimate",)


def compute_financials(transactions: list[dict]) -> dict:
    """
    Derive contract and profitability figures from stored transactions.

    The earliest Estimate is the original contract; every later Estimate is a
    change order. Costs are stored as negative amounts, so they are summed as
    absolute values.
    """
    estimates = sorted(
        (t for t in transactions if t.get("type") in CONTRACT_TYPES),
        key=lambda t: (t.get("date") or "", t.get("transaction_id") or ""),
    )
    original_contract = float(estimates[0].get("amount") or 0) if estimates else 0.0
    change_orders = sum(float(t.get("amount") or 0) for t in estimates[1:])

    income = sum(float(t.get("amount") or 0) for t in transactions if t.get("type") in INCOME_TYPES)
    cost = sum(abs(float(t.get("amount") or 0)) for t in transactions if t.get("type") in COST_TYPES)

    return {
        "original_contract": round(original_contract, 2),
        "change_orders": round(change_orders, 2),
        "income": round(income, 2),
        "cost": round(cost, 2),
        "profit": round(income - cost, 2),
        "profit_margin": round((income - cost) / income * 100, 1) if income > 0 else 0.0,
    }


class QuickBooksProject(db.Model):
    """
    Locally stored financial snapshot of one QuickBooks project.

    transactions is written only by the sync; manual_original_contract and
    manual_change_orders are written only by user edits. A manual value,
    when set, takes precedence over the computed figure.
    """
    __tablename__ = "quickbooks_projects"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # QBO Customer.Id of the project
    project_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    project = db.Column(db.String(255), nullable=True)
    customer = db.Column(db.String(255), nullable=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(32), nullable=True)
    proposal_number = db.Column(db.String(64), nullable=True, index=True)

    manual_original_contract = db.Column(db.Float, nullable=True)
    manual_change_orders = db.Column(db.Float, nullable=True)

    # [{transaction_id, date, type, split, from_to, amount, memo}]
    transactions = db.Column(db.JSON, nullable=False, default=list)

    last_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def financials(self) -> dict:
        figures = compute_financials(self.transactions or [])
        if self.manual_original_contract is not None:
            figures["original_contract"] = self.manual_original_contract
        if self.manual_change_orders is not None:
            figures["change_orders"] = self.manual_change_orders
        return figures

    def to_dict(self, include_transactions: bool = False) -> dict:
        data = {
            "id": self.id,
            "project_id": self.project_id,
            "project": self.project,
            "customer": self.customer,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "status": self.status,
            "proposal_number": self.proposal_number,
            "manual_original_contract": self.manual_original_contract,
            "manual_change_orders": self.manual_change_orders,
            "transaction_count": len(self.transactions or []),
            "last_synced_at": to_utc_z(self.last_synced_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        data.update(self.financials())
        if include_transactions:
            data["transactions"] = list(self.transactions or [])
        return data


class OAuthToken(db.Model):
    """
    OAuth credentials per external service, upserted last-writer-wins.

    Tokens are secrets: to_dict() reports only expiry metadata.
    """
    __tablename__ = "oauth_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    service = db.Column(db.String(64), nullable=False, unique=True, index=True)

    access_token = db.Column(db.Text, nullable=False)
    refresh_token = db.Column(db.Text, nullable=False)
    realm_id = db.Column(db.String(64), nullable=True)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    refresh_token_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "service": self.service,
            "realm_id": self.realm_id,
            "expires_at": to_utc_z(self.expires_at),
            "refresh_token_expires_at": to_utc_z(self.refresh_token_expires_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WebhookLog(db.Model):
    """
    One row per webhook delivery.

    Append-only apart from the status transition received -> processed/failed.
    Rows older than WEBHOOK_LOG_RETENTION_DAYS are removed by
    `flask maintenance cleanup-webhook-logs`.
    """
    __tablename__ = "webhook_logs"
    __table_args__ = (
        db.Index("ix_webhook_logs_received", "received_at"),
        {"sqlite_autoincrement": True},
    )

    STATUS_RECEIVED = "received"
    STATUS_PROCESSED = "processed"
    STATUS_FAILED = "failed"
    STATUS_REJECTED = "rejected"

    id = db.Column(db.Integer, primary_key=True)
    source = db.Column(db.String(32), nullable=False, default="quickbooks")

    # Raw body as received; not parsed for rejected deliveries
    payload = db.Column(db.Text, nullable=True)
    headers = db.Column(db.JSON, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_RECEIVED, index=True)
    error = db.Column(db.Text, nullable=True)

    entities_processed = db.Column(db.Integer, nullable=False, default=0)
    projects_synced = db.Column(db.JSON, nullable=False, default=list)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "payload": self.payload,
            "headers": self.headers or {},
            "status": self.status,
            "error": self.error,
            "entities_processed": self.entities_processed,
            "projects_synced": self.projects_synced or [],
            "received_at": to_utc_z(self.received_at),
            "processed_at": to_utc_z(self.processed_at),
        }
