# Overview: QuickBooks Online HTTP client and OAuth token supplier backed by the oauth_tokens table.

"""
QuickBooks Online (QBO) connector.

- QBOTokenSupplier owns the OAuth lifecycle: authorization URL, code
  exchange, refresh, and the last-writer-wins upsert of the token row.
- QBOClient wraps the read-only query and report endpoints. A 401 from the
  API triggers exactly one refresh and retry.

Tokens are never logged.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any
from urllib.parse import urlencode

import requests
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ExternalServiceError
from ..extensions import db
from ..models import OAuthToken
from devco.time_utils import as_utc_naive, utcnow


SERVICE_NAME = "quickbooks"
AUTHORIZATION_URL = "https://appcenter.intuit.com/connect/oauth2"
TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
ACCOUNTING_SCOPE = "com.intuit.quickbooks.accounting"
MINOR_VERSION = "70"

# Tokens closer than this to expiry are refreshed before use
REFRESH_MARGIN = timedelta(seconds=60)


class QBOTokenSupplier:
    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout_seconds: int = 30,
        service: str = SERVICE_NAME,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._timeout_seconds = timeout_seconds
        self._service = service

    @classmethod
    def from_config(cls, config) -> "QBOTokenSupplier":
        return cls(
            client_id=config.get("QBO_CLIENT_ID", ""),
            client_secret=config.get("QBO_CLIENT_SECRET", ""),
            redirect_uri=config.get("QBO_REDIRECT_URI", ""),
            timeout_seconds=config.get("QBO_HTTP_TIMEOUT_SECONDS", 30),
        )

    def load(self) -> OAuthToken | None:
        return db.session.query(OAuthToken).filter_by(service=self._service).first()

    def build_authorization_url(self, state: str) -> str:
        params = {
            "client_id": self._client_id,
            "response_type": "code",
            "scope": ACCOUNTING_SCOPE,
            "redirect_uri": self._redirect_uri,
            "state": state,
        }
        return f"{AUTHORIZATION_URL}?{urlencode(params)}"

    def _post_token(self, data: dict[str, str]) -> dict[str, Any]:
        if not self._client_id or not self._client_secret:
            raise ExternalServiceError("Missing QBO_CLIENT_ID or QBO_CLIENT_SECRET")

        try:
            resp = requests.post(
                TOKEN_URL,
                data=data,
                auth=(self._client_id, self._client_secret),
                headers={"Accept": "application/json"},
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise ExternalServiceError(f"QuickBooks token endpoint unreachable: {exc}")

        if resp.status_code >= 400:
            try:
                detail = resp.json()
            except ValueError:
                detail = {}
            reason = detail.get("error_description") or detail.get("error") or f"HTTP {resp.status_code}"
            raise ExternalServiceError(f"QuickBooks token request failed: {reason}", status=resp.status_code)

        payload = resp.json()
        if not payload.get("access_token") or not payload.get("refresh_token"):
            raise ExternalServiceError("QuickBooks token response is missing tokens")
        return payload

    def _upsert(self, payload: dict[str, Any], realm_id: str | None) -> OAuthToken:
        """Last writer wins; a concurrent first insert falls back to update."""
        now = utcnow()
        values = {
            "access_token": payload["access_token"],
            "refresh_token": payload["refresh_token"],
            "expires_at": now + timedelta(seconds=int(payload.get("expires_in", 3600))),
            "refresh_token_expires_at": (
                now + timedelta(seconds=int(payload["x_refresh_token_expires_in"]))
                if payload.get("x_refresh_token_expires_in") else None
            ),
            "updated_at": now,
        }

        token = self.load()
        if token is None:
            token = OAuthToken(service=self._service, realm_id=realm_id, **values)
            db.session.add(token)
            try:
                db.session.commit()
                return token
            except IntegrityError:
                db.session.rollback()
                token = self.load()

        for key, value in values.items():
            setattr(token, key, value)
        if realm_id:
            token.realm_id = realm_id
        db.session.commit()
        return token

    def exchange_code(self, code: str, realm_id: str | None) -> OAuthToken:
        payload = self._post_token({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._redirect_uri,
        })
        token = self._upsert(payload, realm_id)
        current_app.logger.info("QuickBooks connected for realm %s", token.realm_id)
        return token

    def refresh(self, token: OAuthToken | None = None) -> OAuthToken:
        token = token or self.load()
        if token is None:
            raise ExternalServiceError("QuickBooks is not connected")

        payload = self._post_token({
            "grant_type": "refresh_token",
            "refresh_token": token.refresh_token.strip(),
        })
        current_app.logger.info("QuickBooks access token refreshed")
        return self._upsert(payload, token.realm_id)

    def get_token(self) -> OAuthToken:
        token = self.load()
        if token is None:
            raise ExternalServiceError("QuickBooks is not connected")
        if as_utc_naive(token.expires_at) - utcnow() <= REFRESH_MARGIN:
            token = self.refresh(token)
        return token

    def get_access_token(self) -> str:
        return self.get_token().access_token


class QBOClient:
    def __init__(
        self,
        *,
        token_supplier: QBOTokenSupplier,
        environment: str = "sandbox",
        realm_id: str | None = None,
        timeout_seconds: int = 30,
    ) -> None:
        self._tokens = token_supplier
        self._environment = environment
        self._realm_id = realm_id
        self._timeout_seconds = timeout_seconds

    @staticmethod
    def _base_url(environment: str) -> str:
        return (
            "https://quickbooks.api.intuit.com"
            if environment == "production"
            else "https://sandbox-quickbooks.api.intuit.com"
        )

    @classmethod
    def from_config(cls, config) -> "QBOClient":
        return cls(
            token_supplier=QBOTokenSupplier.from_config(config),
            environment=config.get("QBO_ENVIRONMENT", "sandbox"),
            realm_id=config.get("QBO_REALM_ID") or None,
            timeout_seconds=config.get("QBO_HTTP_TIMEOUT_SECONDS", 30),
        )

    @property
    def token_supplier(self) -> QBOTokenSupplier:
        return self._tokens

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        bearer_token: str,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            resp = requests.request(
                method,
                url,
                headers={
                    "Authorization": f"Bearer {bearer_token}",
                    "Accept": "application/json",
                },
                params=params,
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise ExternalServiceError(f"QuickBooks API unreachable: {exc}")

        if resp.status_code >= 400:
            raise ExternalServiceError(
                f"QuickBooks API error: HTTP {resp.status_code}: {resp.text[:500]}",
                status=resp.status_code,
            )
        return resp.json()

    def _get(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        token = self._tokens.get_token()
        realm_id = token.realm_id or self._realm_id
        if not realm_id:
            raise ExternalServiceError("QuickBooks realm id is not configured")

        url = f"{self._base_url(self._environment)}/v3/company/{realm_id}/{path}"
        params = {**(params or {}), "minorversion": MINOR_VERSION}

        try:
            return self._request_json("GET", url, bearer_token=token.access_token, params=params)
        except ExternalServiceError as e:
            if e.status != 401:
                raise
            # Access token revoked or expired early: one refresh, one retry
            token = self._tokens.refresh(token)
            return self._request_json("GET", url, bearer_token=token.access_token, params=params)

    def query(self, sql: str) -> dict[str, Any]:
        """Run a QBO Query API statement and return its QueryResponse."""
        data = self._get("query", {"query": sql})
        qr = data.get("QueryResponse") if isinstance(data, dict) else None
        return qr if isinstance(qr, dict) else {}

    def query_entities(self, entity_type: str, where: str | None = None, max_results: int = 1000) -> list[dict[str, Any]]:
        sql = f"SELECT * FROM {entity_type}"
        if where:
            sql += f" WHERE {where}"
        sql += f" MAXRESULTS {int(max_results)}"

        rows = self.query(sql).get(entity_type)
        if rows is None:
            return []
        if isinstance(rows, dict):
            return [rows]
        return list(rows)

    def get_entity(self, entity_type: str, entity_id: str) -> dict[str, Any] | None:
        safe_id = str(entity_id).replace("'", "")
        rows = self.query_entities(entity_type, where=f"Id = '{safe_id}'", max_results=1)
        return rows[0] if rows else None

    def get_report(self, report_name: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        return self._get(f"reports/{report_name}", params)

    def get_projects(self) -> list[dict[str, Any]]:
        """Customers flagged as projects (IsProject) or sub-jobs (Job)."""
        customers = self.query_entities("Customer")
        return [c for c in customers if c.get("IsProject") is True or c.get("Job") is True]

    def get_profit_and_loss(self, project_id: str) -> dict[str, float]:
        data = self.get_report("ProfitAndLoss", {"customer": str(project_id), "summarize_column_by": "Total"})
        return parse_profit_and_loss(data)


def parse_profit_and_loss(report: dict[str, Any]) -> dict[str, float]:
    """Pull total income, total cost and net income out of a ProfitAndLoss report."""
    totals = {"income": 0.0, "cost": 0.0, "profit": 0.0}

    def _walk(rows):
        for row in rows:
            cols = (row.get("Summary") or {}).get("ColData") or []
            name = (cols[0].get("value") if cols else "") or ""
            try:
                value = float(cols[1].get("value") or 0) if len(cols) > 1 else 0.0
            except ValueError:
                value = 0.0

            lowered = name.lower()
            if "total income" in lowered:
                totals["income"] = value
            elif "total expense" in lowered or "total cost of goods sold" in lowered:
                totals["cost"] += value
            elif "net income" in lowered:
                totals["profit"] = value

            nested = (row.get("Rows") or {}).get("Row")
            if nested:
                _walk(nested)

    _walk((report.get("Rows") or {}).get("Row") or [])

    if totals["profit"] == 0 and totals["income"] != 0:
        totals["profit"] = totals["income"] - totals["cost"]
    income = totals["income"]
    totals["profit_margin"] = round(totals["profit"] / income * 100, 2) if income > 0 else 0.0
    return totals


def get_qbo_client() -> QBOClient:
    """App-scoped client; tests replace app.extensions["devco_qbo_client"]."""
    client = current_app.extensions.get("devco_qbo_client")
    if client is None:
        client = QBOClient.from_config(current_app.config)
    return client
