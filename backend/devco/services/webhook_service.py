# Overview: Service-layer operations for QuickBooks webhooks; signature checks, delivery logging and project re-sync.

"""
Webhook Processing

Order of operations for one delivery:
1. Verify HMAC-SHA256(raw body, verifier token) against the intuit-signature
   header, before the body is parsed. Failures are logged as "rejected".
2. Parse JSON and collect entities from
   eventNotifications[].dataChangeEvent.entities[], deduplicated by (name, id).
3. Resolve every entity to project ids. Create operations wait for QBO to
   make the new record queryable, then retry with backoff.
4. Sync each affected project exactly once. A failing project is logged and
   does not stop the others.

The HTTP layer acknowledges within QBO_WEBHOOK_ACK_BUDGET_SECONDS; steps 3
and 4 keep running in the app's worker pool and update the delivery log.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import DevcoError, NotFound, SignatureInvalid, ValidationError
from ..extensions import db
from ..models import QuickBooksProject, WebhookLog
from devco.time_utils import utcnow
from .qbo_client import get_qbo_client
from .qbo_resolver import QBOEntityResolver
from .qbo_sync_service import sync_project_to_db


SIGNATURE_HEADER = "intuit-signature"
EXECUTOR_EXTENSION_KEY = "devco_webhook_executor"

# Never persisted with the delivery
SENSITIVE_HEADERS = {"authorization", "cookie", "x-forwarded-for"}


@dataclass(frozen=True)
class WebhookEntity:
    name: str
    id: str
    operation: str = ""
    realm_id: str | None = None

    def to_dict(self) -> dict:
        return {"name": self.name, "id": self.id, "operation": self.operation, "realm_id": self.realm_id}


@dataclass
class DeliveryResult:
    entities_processed: int = 0
    projects_synced: list[str] = field(default_factory=list)
    failed_projects: dict[str, str] = field(default_factory=dict)


def compute_signature(body: bytes, verifier_token: str) -> str:
    digest = hmac.new(verifier_token.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(body: bytes, signature: str | None, verifier_token: str | None) -> None:
    """Constant-time check. A missing token or header rejects the delivery."""
    if not verifier_token:
        raise SignatureInvalid("Webhook verifier token is not configured")
    if not signature:
        raise SignatureInvalid("Missing intuit-signature header")
    if not hmac.compare_digest(compute_signature(body, verifier_token), signature.strip()):
        raise SignatureInvalid("Webhook signature mismatch")


def parse_payload(body: bytes) -> dict:
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise ValidationError("Webhook body is not valid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Webhook body must be a JSON object")
    return data


def extract_entities(payload: dict) -> list[WebhookEntity]:
    """Entities in delivery order; a repeated (name, id) pair keeps its first occurrence."""
    seen: set[tuple[str, str]] = set()
    entities: list[WebhookEntity] = []

    for notification in payload.get("eventNotifications") or []:
        if not isinstance(notification, dict):
            continue
        event = notification.get("dataChangeEvent") or notification.get("dataEvents") or {}
        for raw in event.get("entities") or []:
            if not isinstance(raw, dict) or not raw.get("name") or not raw.get("id"):
                continue
            key = (str(raw["name"]), str(raw["id"]))
            if key in seen:
                continue
            seen.add(key)
            entities.append(WebhookEntity(
                name=key[0],
                id=key[1],
                operation=str(raw.get("operation") or ""),
                realm_id=notification.get("realmId"),
            ))
    return entities


@dataclass
class StoredProjectIndex:
    """
    Stored project snapshots, indexed by the transactions they hold.

    Built once per delivery. Lets a delete or re-assignment reach the
    project holding the stale transaction, which QBO no longer points back at.
    """
    project_ids: set[str] = field(default_factory=set)
    by_transaction: dict[tuple[str, str], set[str]] = field(default_factory=dict)

    @classmethod
    def load(cls) -> "StoredProjectIndex":
        index = cls()
        for project_id, transactions in db.session.query(QuickBooksProject.project_id, QuickBooksProject.transactions):
            index.project_ids.add(project_id)
            for txn in transactions or []:
                if not isinstance(txn, dict) or not txn.get("type") or not txn.get("transaction_id"):
                    continue
                key = (str(txn["type"]), str(txn["transaction_id"]))
                index.by_transaction.setdefault(key, set()).add(project_id)
        return index

    def referencing(self, entity: WebhookEntity) -> set[str]:
        """Projects whose stored snapshot already contains this entity."""
        if entity.name == "Customer":
            return {entity.id} if entity.id in self.project_ids else set()
        return set(self.by_transaction.get((entity.name, entity.id), ()))


class WebhookProcessor:
    def __init__(
        self,
        client,
        *,
        sync: Callable[..., Any] = sync_project_to_db,
        sleep: Callable[[float], None] = time.sleep,
        create_delay: float = 0.0,
        create_retries: int = 0,
    ):
        self._client = client
        self._resolver = QBOEntityResolver(client)
        self._sync = sync
        self._sleep = sleep
        self._create_delay = create_delay
        self._create_retries = create_retries

    @classmethod
    def from_config(cls, config, client=None, **kwargs) -> "WebhookProcessor":
        return cls(
            client or get_qbo_client(),
            create_delay=config.get("QBO_CREATE_RESOLVE_DELAY_SECONDS", 0.0),
            create_retries=config.get("QBO_CREATE_RESOLVE_RETRIES", 0),
            **kwargs,
        )

    def load_stored_index(self) -> StoredProjectIndex:
        try:
            return StoredProjectIndex.load()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.warning("Stored project lookup failed: %s", exc)
            return StoredProjectIndex()

    def resolve_entity(self, entity: WebhookEntity, stored: StoredProjectIndex | None = None) -> set[str]:
        if entity.operation != "Create":
            resolution = self._resolver.resolve_detailed(entity.name, entity.id)
        else:
            # New records are not always queryable right away
            if self._create_delay > 0:
                self._sleep(self._create_delay)
            resolution = self._resolver.resolve_detailed(entity.name, entity.id)
            for attempt in range(self._create_retries):
                if resolution.complete:
                    break
                backoff = max(self._create_delay, 0.5) * (2 ** attempt)
                current_app.logger.info(
                    "QBO %s %s not resolvable yet; retrying in %.1fs", entity.name, entity.id, backoff
                )
                self._sleep(backoff)
                resolution = self._resolver.resolve_detailed(entity.name, entity.id)

        if stored is None:
            stored = self.load_stored_index()
        project_ids = set(resolution.project_ids) | stored.referencing(entity)

        if not project_ids:
            current_app.logger.info("QBO %s %s (%s) affects no project", entity.name, entity.id, entity.operation)
        return project_ids

    def process(self, entities: list[WebhookEntity]) -> DeliveryResult:
        result = DeliveryResult()

        if not entities:
            return result

        stored = self.load_stored_index()
        affected: list[str] = []
        for entity in entities:
            for project_id in sorted(self.resolve_entity(entity, stored)):
                if project_id not in affected:
                    affected.append(project_id)
            result.entities_processed += 1

        for project_id in affected:
            try:
                self._sync(project_id, client=self._client)
                result.projects_synced.append(project_id)
            except (DevcoError, SQLAlchemyError) as exc:
                db.session.rollback()
                result.failed_projects[project_id] = str(exc)
                current_app.logger.warning("[QBO-SYNC] Sync failed for project %s: %s", project_id, exc)

        return result


def _safe_headers(headers) -> dict:
    return {k: v for k, v in dict(headers).items() if k.lower() not in SENSITIVE_HEADERS}


def record_delivery(body: bytes, headers, status: str = WebhookLog.STATUS_RECEIVED, error: str | None = None) -> WebhookLog:
    log = WebhookLog(
        source="quickbooks",
        payload=body.decode("utf-8", errors="replace"),
        headers=_safe_headers(headers),
        status=status,
        error=error,
        received_at=utcnow(),
        processed_at=utcnow() if status != WebhookLog.STATUS_RECEIVED else None,
    )
    db.session.add(log)
    db.session.commit()
    return log


def process_delivery(log_id: int, entities: list[WebhookEntity], processor: WebhookProcessor | None = None) -> WebhookLog:
    """Resolve, sync and record the outcome on the delivery log."""
    log = db.session.get(WebhookLog, log_id)
    if log is None:
        raise NotFound(f"Webhook log {log_id} not found")

    processor = processor or WebhookProcessor.from_config(current_app.config)
    try:
        result = processor.process(entities)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Webhook delivery %s failed", log_id)
        log = db.session.get(WebhookLog, log_id)
        log.status = WebhookLog.STATUS_FAILED
        log.error = str(exc)
        log.processed_at = utcnow()
        db.session.commit()
        raise

    log.entities_processed = result.entities_processed
    log.projects_synced = list(result.projects_synced)
    if result.failed_projects:
        log.status = WebhookLog.STATUS_FAILED
        log.error = "; ".join(f"{pid}: {err}" for pid, err in sorted(result.failed_projects.items()))
    else:
        log.status = WebhookLog.STATUS_PROCESSED
        log.error = None
    log.processed_at = utcnow()
    db.session.commit()

    current_app.logger.info(
        "Webhook delivery %s: %d entities, %d projects synced, %d failed",
        log_id, result.entities_processed, len(result.projects_synced), len(result.failed_projects),
    )
    return log


def _process_in_app_context(app, log_id: int, entities: list[WebhookEntity]) -> None:
    with app.app_context():
        try:
            process_delivery(log_id, entities)
        finally:
            db.session.remove()


def get_executor() -> ThreadPoolExecutor:
    return current_app.extensions[EXECUTOR_EXTENSION_KEY]


def dispatch_delivery(log_id: int, entities: list[WebhookEntity]) -> Future:
    app = current_app._get_current_object()
    return get_executor().submit(_process_in_app_context, app, log_id, entities)


def handle_delivery(body: bytes, headers) -> tuple[WebhookLog, bool]:
    """
    Verify, record and dispatch one delivery.

    Returns (log, finished) where finished tells whether processing completed
    inside the acknowledgement budget. Raises SignatureInvalid or
    ValidationError before anything is processed.
    """
    signature = headers.get(SIGNATURE_HEADER)
    try:
        verify_signature(body, signature, current_app.config.get("QBO_WEBHOOK_VERIFIER_TOKEN"))
    except SignatureInvalid as exc:
        current_app.logger.warning("Rejected QuickBooks webhook: %s", exc.message)
        record_delivery(body, headers, status=WebhookLog.STATUS_REJECTED, error=exc.message)
        raise

    try:
        payload = parse_payload(body)
    except ValidationError as exc:
        record_delivery(body, headers, status=WebhookLog.STATUS_FAILED, error=exc.message)
        raise

    entities = extract_entities(payload)
    log = record_delivery(body, headers)

    future = dispatch_delivery(log.id, entities)
    done, _ = wait([future], timeout=current_app.config.get("QBO_WEBHOOK_ACK_BUDGET_SECONDS", 2.5))
    return log, bool(done)


def list_webhook_logs(status: str | None = None, limit: int = 50) -> list[WebhookLog]:
    query = db.session.query(WebhookLog)
    if status:
        query = query.filter(WebhookLog.status == status)
    return query.order_by(WebhookLog.id.desc()).limit(max(1, min(limit, 500))).all()
