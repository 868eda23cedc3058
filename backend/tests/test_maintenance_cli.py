"""
Maintenance service and Flask CLI tests.

CLI commands are invoked through app.test_cli_runner() against the test
database; output is checked for the PASS / FAIL prefixes.
"""

from datetime import timedelta

import pytest

from devco.extensions import db
from devco.models import QuickBooksProject, Role, User, WebhookLog
from devco.services import maintenance_service
from devco.time_utils import utcnow


def _log(days_old):
    log = WebhookLog(source="quickbooks", payload="{}", status="processed", received_at=utcnow() - timedelta(days=days_old))
    db.session.add(log)
    return log


class TestCleanupWebhookLogs:

    def test_deletes_only_old_logs(self, app):
        with app.app_context():
            _log(45)
            _log(31)
            _log(2)
            db.session.commit()

            assert maintenance_service.cleanup_webhook_logs(retention_days=30) == 2
            assert db.session.query(WebhookLog).count() == 1

    def test_rejects_non_positive_retention(self, app):
        with app.app_context():
            with pytest.raises(ValueError):
                maintenance_service.cleanup_webhook_logs(retention_days=0)

    def test_cli_uses_configured_retention(self, app):
        app.config["WEBHOOK_LOG_RETENTION_DAYS"] = 10
        with app.app_context():
            _log(11)
            _log(1)
            db.session.commit()

        result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-webhook-logs"])
        assert result.exit_code == 0, result.output
        assert "Deleted 1 webhook logs older than 10 days." in result.output


class TestSystemCommands:

    def test_init_roles_is_idempotent(self, app):
        result = app.test_cli_runner().invoke(args=["system", "init-roles"])
        assert result.exit_code == 0, result.output
        assert "Created 0 default role(s)" in result.output
        with app.app_context():
            assert db.session.query(Role).count() == 5

    def test_create_user(self, app):
        result = app.test_cli_runner().invoke(args=[
            "users", "create", "--email", "boss@devco.test", "--password", "Password123", "--role", "Super Admin",
        ])
        assert result.exit_code == 0, result.output
        assert "PASS" in result.output
        with app.app_context():
            user = db.session.query(User).filter_by(email="boss@devco.test").one()
            assert user.app_role == "Super Admin"

    def test_create_user_unknown_role_fails(self, app):
        result = app.test_cli_runner().invoke(args=[
            "users", "create", "--email", "x@devco.test", "--password", "Password123", "--role", "Astronaut",
        ])
        assert "FAIL" in result.output
        with app.app_context():
            assert db.session.query(User).filter_by(email="x@devco.test").count() == 0


class TestPermsCommands:

    def test_check_allowed_with_scope(self, app, users):
        result = app.test_cli_runner().invoke(args=["perms", "check", "manager@devco.test", "employees", "view"])
        assert "PASS" in result.output
        assert "scope 'department'" in result.output

    def test_check_restricted_field(self, app, users):
        result = app.test_cli_runner().invoke(
            args=["perms", "check", "staff@devco.test", "employees", "view", "--field", "hourly_rate_site"]
        )
        assert "FAIL" in result.output
        assert "hourly_rate_site" in result.output

    def test_check_unknown_user(self, app):
        result = app.test_cli_runner().invoke(args=["perms", "check", "ghost@devco.test", "employees", "view"])
        assert "not found" in result.output

    def test_audit_empty(self, app):
        result = app.test_cli_runner().invoke(args=["perms", "audit"])
        assert "No audit entries found." in result.output


class TestQboSyncCommand:

    def test_sync_single_project(self, app, qbo_project):
        result = app.test_cli_runner().invoke(args=["qbo", "sync", "--project-id", "501"])
        assert result.exit_code == 0, result.output
        assert "PASS Synced 501" in result.output
        with app.app_context():
            assert db.session.query(QuickBooksProject).count() == 1

    def test_sync_unknown_project_reports_failure(self, app, qbo):
        result = app.test_cli_runner().invoke(args=["qbo", "sync", "--project-id", "404"])
        assert "FAIL" in result.output
