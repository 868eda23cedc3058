# Overview: Service-layer operations for QuickBooks project sync; refetches snapshots and reconciles stored project financials.

"""
Project Sync

WHY: Webhooks only say "something changed". The sync always refetches the
authoritative snapshot of a project from QuickBooks and rewrites the stored
transactions, so applying the same sync twice yields the same row.

DESIGN:
- Transactions are normalised and sorted by (date, type, id)
- manual_original_contract / manual_change_orders are never written here
- proposal_number is taken from the project name prefix ("1234_...") only
  while the stored value is empty
"""

from __future__ import annotations

import re
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ExternalServiceError, NotFound, ValidationError
from ..extensions import db
from ..models import QuickBooksProject
from devco.time_utils import parse_iso_datetime, utcnow
from .qbo_client import get_qbo_client
from .qbo_resolver import line_customer_refs


HEADER_CUSTOMER_TYPES = ("Invoice", "Payment", "Estimate", "SalesReceipt", "CreditMemo")
LINE_CUSTOMER_TYPES = ("Bill", "Purchase")

# Credits reduce income
NEGATIVE_HEADER_TYPES = ("CreditMemo",)

PROPOSAL_PREFIX = re.compile(r"^([^_]+)_")


def extract_proposal_number(project_name: str | None) -> str | None:
    match = PROPOSAL_PREFIX.match(project_name or "")
    if not match:
        return None
    return match.group(1).strip() or None


def _name(ref: Any) -> str:
    if isinstance(ref, dict):
        return ref.get("name") or ""
    return ""


def _memo(record: dict) -> str:
    return record.get("PrivateNote") or (record.get("CustomerMemo") or {}).get("value") or ""


def _project_lines(record: dict, project_id: str) -> list[dict]:
    return [
        line for line in (record.get("Line") or [])
        if isinstance(line, dict) and project_id in line_customer_refs({"Line": [line]}).project_ids
    ]


def normalize_header_transaction(txn_type: str, record: dict) -> dict:
    amount = float(record.get("TotalAmt") or 0)
    if txn_type in NEGATIVE_HEADER_TYPES:
        amount = -amount
    return {
        "transaction_id": str(record.get("Id")),
        "date": record.get("TxnDate") or "",
        "type": txn_type,
        "split": "",
        "from_to": _name(record.get("CustomerRef")),
        "amount": round(amount, 2),
        "memo": _memo(record),
    }


def normalize_cost_transaction(txn_type: str, record: dict, project_id: str) -> dict | None:
    """Only the lines charged to this project count; costs are stored negative."""
    lines = _project_lines(record, project_id)
    if not lines:
        return None

    accounts = set()
    for line in lines:
        details = line.get("AccountBasedExpenseLineDetail") or line.get("ItemBasedExpenseLineDetail") or {}
        ref = details.get("AccountRef") or details.get("ItemRef")
        if _name(ref):
            accounts.add(_name(ref))

    vendor = record.get("VendorRef") or record.get("EntityRef")
    return {
        "transaction_id": str(record.get("Id")),
        "date": record.get("TxnDate") or "",
        "type": txn_type,
        "split": accounts.pop() if len(accounts) == 1 else ("-Split-" if accounts else ""),
        "from_to": _name(vendor),
        "amount": -round(sum(abs(float(line.get("Amount") or 0)) for line in lines), 2),
        "memo": _memo(record),
    }


def sort_transactions(transactions: list[dict]) -> list[dict]:
    return sorted(transactions, key=lambda t: (t["date"], t["type"], t["transaction_id"]))


def fetch_project_snapshot(project_id: str, client=None) -> tuple[dict, list[dict]]:
    """
    Returns (customer record, normalised transactions).

    Raises NotFound when QuickBooks has no such customer.
    """
    client = client or get_qbo_client()
    project_id = str(project_id)
    safe_id = project_id.replace("'", "")

    customer = client.get_entity("Customer", safe_id)
    if customer is None:
        raise NotFound(f"QuickBooks project {project_id} not found")

    transactions = []
    for txn_type in HEADER_CUSTOMER_TYPES:
        for record in client.query_entities(txn_type, where=f"CustomerRef = '{safe_id}'"):
            transactions.append(normalize_header_transaction(txn_type, record))

    # Expense transactions reference projects per line, which QBO cannot filter on
    for txn_type in LINE_CUSTOMER_TYPES:
        for record in client.query_entities(txn_type):
            txn = normalize_cost_transaction(txn_type, record, project_id)
            if txn:
                transactions.append(txn)

    return customer, sort_transactions(transactions)


def _project_metadata(customer: dict) -> dict:
    name = customer.get("DisplayName") or customer.get("FullyQualifiedName") or ""
    fqn = customer.get("FullyQualifiedName") or ""
    created = (customer.get("MetaData") or {}).get("CreateTime")
    return {
        "project": name,
        "customer": (
            customer.get("CompanyName")
            or _name(customer.get("ParentRef"))
            or (fqn.split(":")[0] if fqn else "")
        ),
        "start_date": parse_iso_datetime(created) if created else None,
        "status": "Active" if customer.get("Active", True) else "Inactive",
    }


def _upsert_project(project_id: str, values: dict) -> QuickBooksProject:
    """Insert or update; a concurrent first insert falls back to update."""
    for attempt in range(2):
        project = db.session.query(QuickBooksProject).filter_by(project_id=project_id).first()
        if project is None:
            project = QuickBooksProject(project_id=project_id, transactions=[])
            db.session.add(project)

        for key, value in values.items():
            setattr(project, key, value)

        proposal = extract_proposal_number(project.project)
        if proposal and not project.proposal_number:
            project.proposal_number = proposal

        try:
            db.session.commit()
            return project
        except IntegrityError:
            db.session.rollback()
            if attempt:
                raise
    return project


def sync_project_to_db(project_id: str, client=None) -> QuickBooksProject:
    project_id = str(project_id)
    current_app.logger.info("[QBO-SYNC] Syncing project %s", project_id)

    customer, transactions = fetch_project_snapshot(project_id, client)
    values = _project_metadata(customer)
    values["transactions"] = transactions
    values["last_synced_at"] = utcnow()

    project = _upsert_project(str(customer.get("Id") or project_id), values)
    current_app.logger.info(
        "[QBO-SYNC] Synced project %s (%d transactions)", project.project_id, len(transactions)
    )
    return project


def sync_all_projects(client=None) -> dict:
    """
    Lightweight bulk sync: project metadata only, no transactions.

    A failing project is logged and counted; the others still sync.
    """
    client = client or get_qbo_client()
    projects = client.get_projects()

    synced = failed = 0
    for customer in projects:
        try:
            _upsert_project(str(customer["Id"]), _project_metadata(customer))
            synced += 1
        except (KeyError, IntegrityError, ValueError) as exc:
            db.session.rollback()
            failed += 1
            current_app.logger.warning("[QBO-SYNC] Bulk sync skipped project %s: %s", customer.get("Id"), exc)

    current_app.logger.info("[QBO-SYNC] Bulk sync: %d synced, %d failed of %d", synced, failed, len(projects))
    return {"total": len(projects), "synced": synced, "failed": failed}


# =============================================================================
# STORED PROJECTS
# =============================================================================

def list_projects() -> list[QuickBooksProject]:
    return db.session.query(QuickBooksProject).order_by(QuickBooksProject.project).all()


def get_project(project_id: str) -> QuickBooksProject:
    project = db.session.query(QuickBooksProject).filter_by(project_id=str(project_id)).first()
    if not project:
        raise NotFound("Project not found")
    return project


def _parse_amount(key: str, value: Any) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")


def update_manual_values(project_id: str, data: dict) -> QuickBooksProject:
    """
    Set or unset manual contract figures.

    null or "" unsets the manual value so the computed figure applies again.
    """
    project = get_project(project_id)

    changed = False
    if "original_contract" in data:
        project.manual_original_contract = _parse_amount("original_contract", data["original_contract"])
        changed = True
    if "change_orders" in data:
        project.manual_change_orders = _parse_amount("change_orders", data["change_orders"])
        changed = True

    if changed:
        db.session.commit()
    return project


def set_proposal_number(project_id: str, proposal_number: Any) -> QuickBooksProject:
    project = get_project(project_id)
    if proposal_number is not None and not isinstance(proposal_number, (str, int)):
        raise ValidationError("proposal_number must be a string")
    value = str(proposal_number).strip() if proposal_number is not None else ""
    project.proposal_number = value or None
    db.session.commit()
    return project


def get_transactions(project_id: str) -> list[dict]:
    """Newest first."""
    project = get_project(project_id)
    return sorted(
        project.transactions or [],
        key=lambda t: (t.get("date") or "", t.get("type") or "", t.get("transaction_id") or ""),
        reverse=True,
    )


def get_profitability(project_id: str, client=None) -> dict:
    """
    Live ProfitAndLoss figures, falling back to the stored transactions
    when QuickBooks cannot be reached.
    """
    project = get_project(project_id)
    stored = project.financials()
    try:
        figures = (client or get_qbo_client()).get_profit_and_loss(project.project_id)
        figures["source"] = "report"
    except ExternalServiceError as exc:
        current_app.logger.warning("ProfitAndLoss report unavailable for %s: %s", project.project_id, exc)
        figures = {
            "income": stored["income"],
            "cost": stored["cost"],
            "profit": stored["profit"],
            "profit_margin": stored["profit_margin"],
            "source": "stored",
        }

    figures["original_contract"] = stored["original_contract"]
    figures["change_orders"] = stored["change_orders"]
    figures["project_id"] = project.project_id
    return figures
