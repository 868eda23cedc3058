"""
Pytest fixtures for DEVCO backend tests.

Provides a fresh SQLite database per test, the default roles, one user per
role, bearer-token helpers, and an in-memory QuickBooks client.
"""

import pytest

from devco import create_app
from devco.errors import ExternalServiceError
from devco.extensions import db
from devco.services import auth_service, role_service


PASSWORD = "Password123"
VERIFIER_TOKEN = "test-verifier-token"


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing, backed by a throwaway SQLite file."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.sqlite3'}",
        'SECRET_KEY': 'test-secret',
        'JWT_SECRET': 'test-jwt-secret',
        'BCRYPT_ROUNDS': 4,
        'QBO_WEBHOOK_VERIFIER_TOKEN': VERIFIER_TOKEN,
        'QBO_CREATE_RESOLVE_DELAY_SECONDS': 0.0,
        'QBO_CREATE_RESOLVE_RETRIES': 0,
    })

    with app.app_context():
        db.create_all()
        role_service.seed_default_roles()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
    app.extensions["devco_webhook_executor"].shutdown(wait=True)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


def make_user(app, email, role, department=None, **profile):
    """Create a user and return its id."""
    with app.app_context():
        user = auth_service.create_user(
            email=email,
            password=PASSWORD,
            app_role=role,
            department=department,
            **profile,
        )
        return user.id


def token_for(app, user_id) -> str:
    with app.app_context():
        from devco.models import User
        return auth_service.create_access_token(db.session.get(User, user_id))


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def users(app):
    """One user per default role; Manager and Staff share the Field department."""
    return {
        "super_admin": make_user(app, "root@devco.test", "Super Admin", first_name="Root"),
        "admin": make_user(app, "admin@devco.test", "Admin", department="Office"),
        "manager": make_user(app, "manager@devco.test", "Manager", department="Field"),
        "staff": make_user(
            app, "staff@devco.test", "Staff", department="Field",
            hourly_rate_site=42.5, hourly_rate_drive=30,
        ),
        "staff_office": make_user(app, "clerk@devco.test", "Staff", department="Office"),
        "viewer": make_user(app, "viewer@devco.test", "Viewer", department="Office"),
    }


@pytest.fixture(scope='function')
def headers_for(app, users):
    """headers_for("manager") -> bearer headers for that user."""
    def _headers(name):
        return auth_headers(token_for(app, users[name]))
    return _headers


# =============================================================================
# QUICKBOOKS FAKE
# =============================================================================

class FakeQBOClient:
    """
    In-memory stand-in for QBOClient.

    Records are stored per (entity type, id). query_entities understands the
    two WHERE forms the services emit: Id = '...' and CustomerRef = '...'.
    """

    def __init__(self):
        self.records = {}
        self.get_entity_calls = []
        self.missing_until = {}
        self.fail_types = set()
        self.profit_and_loss = None

    def add(self, entity_type, record):
        self.records[(entity_type, str(record["Id"]))] = record
        return record

    def remove(self, entity_type, entity_id):
        self.records.pop((entity_type, str(entity_id)), None)

    def get_entity(self, entity_type, entity_id):
        key = (entity_type, str(entity_id))
        self.get_entity_calls.append(key)
        if entity_type in self.fail_types:
            raise ExternalServiceError("QuickBooks API error: HTTP 500", status=500)
        # Simulate records that only become queryable after a few lookups
        if self.missing_until.get(key, 0) > 0:
            self.missing_until[key] -= 1
            return None
        return self.records.get(key)

    def query_entities(self, entity_type, where=None, max_results=1000):
        if entity_type in self.fail_types:
            raise ExternalServiceError("QuickBooks API error: HTTP 500", status=500)
        rows = [r for (t, _), r in self.records.items() if t == entity_type]
        if where and where.startswith("CustomerRef = "):
            wanted = where.split("'")[1]
            rows = [r for r in rows if (r.get("CustomerRef") or {}).get("value") == wanted]
        elif where and where.startswith("Id = "):
            wanted = where.split("'")[1]
            rows = [r for r in rows if str(r["Id"]) == wanted]
        return rows[:max_results]

    def get_projects(self):
        return [
            r for (t, _), r in self.records.items()
            if t == "Customer" and (r.get("IsProject") is True or r.get("Job") is True)
        ]

    def get_profit_and_loss(self, project_id):
        if self.profit_and_loss is None:
            raise ExternalServiceError("QuickBooks API unreachable")
        return dict(self.profit_and_loss)


def project_customer(project_id, name, company="Acme Utilities"):
    return {
        "Id": str(project_id),
        "DisplayName": name,
        "FullyQualifiedName": f"{company}:{name}",
        "CompanyName": company,
        "IsProject": True,
        "Job": True,
        "Active": True,
        "MetaData": {"CreateTime": "2026-01-05T08:00:00-08:00"},
    }


def expense_line(project_id, amount, account="Materials"):
    return {
        "Amount": amount,
        "DetailType": "AccountBasedExpenseLineDetail",
        "AccountBasedExpenseLineDetail": {
            "AccountRef": {"value": "7", "name": account},
            "CustomerRef": {"value": str(project_id)},
        },
    }


@pytest.fixture(scope='function')
def qbo(app):
    """Fake QuickBooks client installed on the app."""
    fake = FakeQBOClient()
    app.extensions["devco_qbo_client"] = fake
    return fake


@pytest.fixture(scope='function')
def qbo_project(qbo):
    """Project 501 with two estimates, an invoice, a credit memo and a split bill."""
    qbo.add("Customer", project_customer(501, "2417_Main St Boring"))
    qbo.add("Estimate", {
        "Id": "11", "TxnDate": "2026-01-10", "TotalAmt": 100000,
        "CustomerRef": {"value": "501", "name": "2417_Main St Boring"},
    })
    qbo.add("Estimate", {
        "Id": "12", "TxnDate": "2026-02-01", "TotalAmt": 15000,
        "CustomerRef": {"value": "501", "name": "2417_Main St Boring"},
    })
    qbo.add("Invoice", {
        "Id": "21", "TxnDate": "2026-02-15", "TotalAmt": 60000,
        "CustomerRef": {"value": "501", "name": "2417_Main St Boring"},
        "PrivateNote": "Progress billing 1",
    })
    qbo.add("CreditMemo", {
        "Id": "31", "TxnDate": "2026-02-20", "TotalAmt": 500,
        "CustomerRef": {"value": "501", "name": "2417_Main St Boring"},
    })
    qbo.add("Bill", {
        "Id": "41", "TxnDate": "2026-02-03",
        "VendorRef": {"value": "9", "name": "Pipe Supply Co"},
        "Line": [
            expense_line(501, 12000, "Materials"),
            expense_line(501, 3000, "Equipment Rental"),
            expense_line(777, 9999, "Materials"),
        ],
    })
    return qbo
