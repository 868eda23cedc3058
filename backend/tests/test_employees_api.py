"""
Employee records API tests.

Verifies:
- Listing is narrowed to the caller's data scope (self / department / all)
- View-restricted fields are stripped from responses
- Writes touching an edit-restricted field are rejected before any change
- Out-of-scope records answer 403; missing records answer 404
"""

from devco.extensions import db
from devco.models import User
from devco.services import role_service


def _emails(resp):
    return sorted(e["email"] for e in resp.json["employees"])


def _user(app, user_id):
    with app.app_context():
        user = db.session.get(User, user_id)
        return user.to_dict()


# =============================================================================
# SCOPES
# =============================================================================


class TestScopedListing:

    def test_admin_sees_everyone(self, client, headers_for):
        resp = client.get("/api/employees", headers=headers_for("admin"))
        assert resp.status_code == 200
        assert resp.json["scope"] == "all"
        assert len(resp.json["employees"]) == 6

    def test_manager_sees_own_department(self, client, headers_for):
        resp = client.get("/api/employees", headers=headers_for("manager"))
        assert resp.json["scope"] == "department"
        assert _emails(resp) == ["manager@devco.test", "staff@devco.test"]

    def test_staff_sees_only_self(self, client, headers_for):
        resp = client.get("/api/employees", headers=headers_for("staff"))
        assert resp.json["scope"] == "self"
        assert _emails(resp) == ["staff@devco.test"]

    def test_viewer_denied(self, client, headers_for):
        resp = client.get("/api/employees", headers=headers_for("viewer"))
        assert resp.status_code == 403

    def test_inactive_hidden_unless_requested(self, app, client, headers_for, users):
        with app.app_context():
            db.session.get(User, users["viewer"]).is_active = False
            db.session.commit()
        headers = headers_for("admin")
        assert len(client.get("/api/employees", headers=headers).json["employees"]) == 5
        assert len(client.get("/api/employees?include_inactive=1", headers=headers).json["employees"]) == 6

    def test_department_filter(self, client, headers_for):
        resp = client.get("/api/employees?department=Office", headers=headers_for("admin"))
        assert _emails(resp) == ["admin@devco.test", "clerk@devco.test", "viewer@devco.test"]

    def test_scope_override_widens_listing(self, app, client, headers_for, users):
        with app.app_context():
            role_service.upsert_override(
                users["staff"], {"module": "employees", "action": "view", "data_scope": "department"}
            )
        resp = client.get("/api/employees", headers=headers_for("staff"))
        assert _emails(resp) == ["manager@devco.test", "staff@devco.test"]


class TestSingleRecord:

    def test_out_of_scope_is_forbidden(self, client, headers_for, users):
        resp = client.get(f"/api/employees/{users['staff_office']}", headers=headers_for("manager"))
        assert resp.status_code == 403
        assert resp.json["scope"] == "department"

    def test_missing_is_not_found(self, client, headers_for):
        resp = client.get("/api/employees/9999", headers=headers_for("manager"))
        assert resp.status_code == 404

    def test_in_scope(self, client, headers_for, users):
        resp = client.get(f"/api/employees/{users['staff']}", headers=headers_for("manager"))
        assert resp.status_code == 200
        assert resp.json["employee"]["hourly_rate_site"] == 42.5


# =============================================================================
# FIELD RESTRICTIONS
# =============================================================================


class TestFieldRestrictions:

    def test_staff_does_not_see_own_rates(self, client, headers_for, users):
        resp = client.get(f"/api/employees/{users['staff']}", headers=headers_for("staff"))
        assert resp.status_code == 200
        employee = resp.json["employee"]
        assert "hourly_rate_site" not in employee
        assert "hourly_rate_drive" not in employee
        assert "email" in employee

    def test_edit_restricted_field_rejected(self, app, client, headers_for, users):
        with app.app_context():
            role_service.upsert_override(
                users["manager"],
                {"module": "employees", "action": "update", "field_rules": {"hourly_rate_site": True}},
            )
        resp = client.patch(
            f"/api/employees/{users['staff']}",
            json={"phone": "555-0100", "hourly_rate_site": 99},
            headers=headers_for("manager"),
        )
        assert resp.status_code == 403
        assert resp.json["field"] == "hourly_rate_site"

        unchanged = _user(app, users["staff"])
        assert unchanged["phone"] is None
        assert unchanged["hourly_rate_site"] == 42.5

    def test_manager_updates_in_department(self, app, client, headers_for, users):
        resp = client.patch(
            f"/api/employees/{users['staff']}",
            json={"phone": "555-0100", "designation": "Foreman"},
            headers=headers_for("manager"),
        )
        assert resp.status_code == 200
        assert _user(app, users["staff"])["designation"] == "Foreman"

    def test_manager_cannot_update_other_department(self, client, headers_for, users):
        resp = client.patch(
            f"/api/employees/{users['staff_office']}", json={"phone": "1"}, headers=headers_for("manager")
        )
        assert resp.status_code == 403

    def test_email_is_not_updatable(self, client, headers_for, users):
        resp = client.patch(
            f"/api/employees/{users['staff']}", json={"email": "new@devco.test"}, headers=headers_for("admin")
        )
        assert resp.status_code == 400


# =============================================================================
# CREATE / ROLE CHANGES / DEACTIVATE
# =============================================================================


class TestEmployeeWrites:

    def test_admin_creates_employee(self, client, headers_for):
        resp = client.post(
            "/api/employees",
            json={
                "email": "New.Hire@devco.test",
                "password": "Welcome123",
                "app_role": "Staff",
                "first_name": "New",
                "last_name": "Hire",
                "department": "Field",
            },
            headers=headers_for("admin"),
        )
        assert resp.status_code == 201
        assert resp.json["employee"]["email"] == "new.hire@devco.test"

    def test_duplicate_email(self, client, headers_for):
        resp = client.post(
            "/api/employees",
            json={"email": "staff@devco.test", "password": "Welcome123"},
            headers=headers_for("admin"),
        )
        assert resp.status_code == 409

    def test_weak_password(self, client, headers_for):
        resp = client.post(
            "/api/employees",
            json={"email": "weak@devco.test", "password": "weak"},
            headers=headers_for("admin"),
        )
        assert resp.status_code == 400

    def test_manager_cannot_create_super_admin(self, client, headers_for):
        resp = client.post(
            "/api/employees",
            json={"email": "sneaky@devco.test", "password": "Welcome123", "app_role": "Super Admin"},
            headers=headers_for("manager"),
        )
        assert resp.status_code == 403

    def test_role_change_through_patch_applies(self, app, client, headers_for, users):
        resp = client.patch(
            f"/api/employees/{users['staff']}", json={"app_role": "Manager"}, headers=headers_for("admin")
        )
        assert resp.status_code == 200
        assert resp.json["employee"]["app_role"] == "Manager"

        staff_headers = headers_for("staff")
        listing = client.get("/api/employees", headers=staff_headers)
        assert listing.json["scope"] == "department"

    def test_patch_cannot_escalate_to_super_admin(self, app, client, headers_for, users):
        resp = client.patch(
            f"/api/employees/{users['staff']}",
            json={"designation": "Boss", "app_role": "Super Admin"},
            headers=headers_for("admin"),
        )
        assert resp.status_code == 403
        record = _user(app, users["staff"])
        assert record["app_role"] == "Staff"
        assert record["designation"] is None

    def test_unknown_role_leaves_profile_unchanged(self, app, client, headers_for, users):
        resp = client.patch(
            f"/api/employees/{users['staff']}",
            json={"designation": "Foreman", "app_role": "NoSuchRole"},
            headers=headers_for("admin"),
        )
        assert resp.status_code == 404
        record = _user(app, users["staff"])
        assert record["designation"] is None
        assert record["app_role"] == "Staff"

    def test_weak_password_leaves_profile_unchanged(self, app, client, headers_for, users):
        resp = client.patch(
            f"/api/employees/{users['staff']}",
            json={"designation": "Foreman", "password": "short"},
            headers=headers_for("admin"),
        )
        assert resp.status_code == 400
        assert _user(app, users["staff"])["designation"] is None

    def test_role_change_with_profile_is_one_write(self, app, client, headers_for, users):
        resp = client.patch(
            f"/api/employees/{users['viewer']}",
            json={"designation": "Estimator", "app_role": "staff"},
            headers=headers_for("admin"),
        )
        assert resp.status_code == 200
        record = _user(app, users["viewer"])
        assert record["designation"] == "Estimator"
        assert record["app_role"] == "Staff"

    def test_manager_cannot_change_own_role(self, app, client, headers_for, users):
        resp = client.patch(
            f"/api/employees/{users['manager']}", json={"app_role": "Admin"}, headers=headers_for("manager")
        )
        assert resp.status_code == 403
        assert resp.json["module"] == "roles"
        assert _user(app, users["manager"])["app_role"] == "Manager"

    def test_role_change_needs_roles_grant(self, app, client, headers_for, users):
        with app.app_context():
            role_service.upsert_override(
                users["staff"], {"module": "employees", "action": "update", "allow": True}
            )
        resp = client.patch(
            f"/api/employees/{users['staff']}", json={"app_role": "Admin"}, headers=headers_for("staff")
        )
        assert resp.status_code == 403
        assert resp.json["module"] == "roles"
        assert resp.json["action"] == "update"
        assert _user(app, users["staff"])["app_role"] == "Staff"

    def test_employees_grant_alone_still_updates_profile(self, app, client, headers_for, users):
        with app.app_context():
            role_service.upsert_override(
                users["staff"], {"module": "employees", "action": "update", "allow": True}
            )
        resp = client.patch(
            f"/api/employees/{users['staff']}", json={"phone": "555-0199"}, headers=headers_for("staff")
        )
        assert resp.status_code == 200
        assert _user(app, users["staff"])["phone"] == "555-0199"

    def test_password_change_is_hashed(self, app, client, headers_for, users):
        resp = client.patch(
            f"/api/employees/{users['staff']}", json={"password": "Rotated999"}, headers=headers_for("admin")
        )
        assert resp.status_code == 200
        login = client.post("/api/auth/login", json={"email": "staff@devco.test", "password": "Rotated999"})
        assert login.status_code == 200

    def test_deactivate(self, app, client, headers_for, users):
        resp = client.delete(f"/api/employees/{users['viewer']}", headers=headers_for("admin"))
        assert resp.status_code == 200
        assert _user(app, users["viewer"])["is_active"] is False

    def test_cannot_deactivate_self(self, client, headers_for, users):
        resp = client.delete(f"/api/employees/{users['admin']}", headers=headers_for("admin"))
        assert resp.status_code == 400
