"""
Role administration API tests.

Verifies:
- Role CRUD with validation of the permission payload
- System roles and roles in use cannot be deleted
- Renaming a role moves its users
- Every mutation writes exactly one audit row
- Only a Super Admin can grant Super Admin
- Assignments and overrides only reach users inside the caller's scope,
  and only a Super Admin can change their own role or overrides
"""

from devco.extensions import db
from devco.models import PermissionAuditLog, Role, User, UserPermissionOverride
from tests.conftest import PASSWORD, auth_headers


def _audit_rows(app, target_type=None):
    with app.app_context():
        query = db.session.query(PermissionAuditLog)
        if target_type:
            query = query.filter_by(target_type=target_type)
        return [row.to_dict() for row in query.order_by(PermissionAuditLog.id).all()]


def _role_id(app, name):
    with app.app_context():
        return db.session.query(Role).filter_by(name=name).one().id


def _app_role(app, user_id):
    with app.app_context():
        return db.session.get(User, user_id).app_role


CREW_PERMISSIONS = {
    "time_cards": {"actions": ["view", "create"], "scope": "self"},
    "employees": {"actions": {"view": True}, "scope": "department", "view_fields": ["dob"]},
}


# =============================================================================
# LIST / CATALOGUE
# =============================================================================


class TestListRoles:

    def test_admin_lists_roles_with_counts(self, client, headers_for):
        resp = client.get("/api/roles", headers=headers_for("admin"))
        assert resp.status_code == 200
        roles = {r["name"]: r for r in resp.json["roles"]}
        assert set(roles) == {"Super Admin", "Admin", "Manager", "Staff", "Viewer"}
        assert roles["Staff"]["user_count"] == 2
        assert roles["Admin"]["is_system"] is True
        assert len(resp.json["catalogue"]["modules"]) == 32

    def test_viewer_cannot_list_roles(self, client, headers_for):
        resp = client.get("/api/roles", headers=headers_for("viewer"))
        assert resp.status_code == 403
        assert resp.json["module"] == "roles"
        assert resp.json["action"] == "view"

    def test_get_missing_role(self, client, headers_for):
        resp = client.get("/api/roles/9999", headers=headers_for("admin"))
        assert resp.status_code == 404


# =============================================================================
# CREATE / UPDATE
# =============================================================================


class TestCreateUpdateRole:

    def test_create_role_writes_one_audit_row(self, app, client, headers_for):
        resp = client.post(
            "/api/roles",
            json={"name": "Field Crew", "description": "Crew leads", "permissions": CREW_PERMISSIONS},
            headers=headers_for("admin"),
        )
        assert resp.status_code == 201
        role = resp.json["role"]
        assert role["permissions"]["time_cards"]["actions"] == {"create": True, "view": True}
        assert role["is_system"] is False

        rows = _audit_rows(app, PermissionAuditLog.TARGET_ROLE)
        assert len(rows) == 1
        assert rows[0]["change_type"] == "create"
        assert rows[0]["changed_by"] == "admin@devco.test"

    def test_duplicate_name_conflicts(self, client, headers_for):
        resp = client.post("/api/roles", json={"name": "staff"}, headers=headers_for("admin"))
        assert resp.status_code == 409

    def test_super_admin_name_reserved(self, client, headers_for):
        resp = client.post("/api/roles", json={"name": "super admin"}, headers=headers_for("admin"))
        assert resp.status_code == 409

    def test_invalid_permissions_rejected_without_audit(self, app, client, headers_for):
        resp = client.post(
            "/api/roles",
            json={"name": "Broken", "permissions": {"clients": {"actions": ["fly"]}}},
            headers=headers_for("admin"),
        )
        assert resp.status_code == 400
        assert _audit_rows(app) == []

    def test_rename_moves_users(self, app, client, headers_for, users):
        headers = headers_for("admin")
        created = client.post("/api/roles", json={"name": "Crew", "permissions": CREW_PERMISSIONS}, headers=headers)
        role_id = created.json["role"]["id"]
        assign = client.put(f"/api/roles/users/{users['viewer']}", json={"role": "crew"}, headers=headers)
        assert assign.status_code == 200
        assert _app_role(app, users["viewer"]) == "Crew"

        resp = client.patch(f"/api/roles/{role_id}", json={"name": "Field Crew"}, headers=headers)
        assert resp.status_code == 200
        assert _app_role(app, users["viewer"]) == "Field Crew"

    def test_system_role_cannot_be_renamed(self, app, client, headers_for):
        resp = client.put(
            f"/api/roles/{_role_id(app, 'Admin')}", json={"name": "Boss"}, headers=headers_for("admin")
        )
        assert resp.status_code == 409

    def test_super_admin_permissions_not_editable(self, app, client, headers_for):
        resp = client.put(
            f"/api/roles/{_role_id(app, 'Super Admin')}",
            json={"permissions": {"clients": {"actions": ["view"]}}},
            headers=headers_for("super_admin"),
        )
        assert resp.status_code == 400

    def test_unknown_field_rejected(self, app, client, headers_for):
        resp = client.patch(
            f"/api/roles/{_role_id(app, 'Staff')}", json={"is_system": True}, headers=headers_for("admin")
        )
        assert resp.status_code == 400

    def test_permission_change_applies_to_next_request(self, app, client, headers_for):
        staff_headers = headers_for("staff")
        assert client.get("/api/roles", headers=staff_headers).status_code == 403

        resp = client.patch(
            f"/api/roles/{_role_id(app, 'Staff')}",
            json={"permissions": {"roles": {"actions": ["view"], "scope": "all"}}},
            headers=headers_for("admin"),
        )
        assert resp.status_code == 200
        assert client.get("/api/roles", headers=staff_headers).status_code == 200


# =============================================================================
# DELETE
# =============================================================================


class TestDeleteRole:

    def test_system_role_cannot_be_deleted(self, app, client, headers_for):
        resp = client.delete(f"/api/roles/{_role_id(app, 'Admin')}", headers=headers_for("super_admin"))
        assert resp.status_code == 409

    def test_role_in_use_cannot_be_deleted(self, app, client, headers_for):
        resp = client.delete(f"/api/roles/{_role_id(app, 'Viewer')}", headers=headers_for("admin"))
        assert resp.status_code == 409
        assert "reassign" in resp.json["message"]

    def test_unused_role_deleted_and_audited(self, app, client, headers_for):
        headers = headers_for("admin")
        role_id = client.post("/api/roles", json={"name": "Temp"}, headers=headers).json["role"]["id"]

        resp = client.delete(f"/api/roles/{role_id}", headers=headers)
        assert resp.status_code == 200

        rows = _audit_rows(app, PermissionAuditLog.TARGET_ROLE)
        assert [r["change_type"] for r in rows] == ["create", "delete"]
        assert rows[1]["previous_value"]["name"] == "Temp"

    def test_manager_cannot_delete(self, app, client, headers_for):
        resp = client.delete(f"/api/roles/{_role_id(app, 'Viewer')}", headers=headers_for("manager"))
        assert resp.status_code == 403


# =============================================================================
# ROLE ASSIGNMENT
# =============================================================================


class TestAssignRole:

    def test_admin_cannot_grant_super_admin(self, app, client, headers_for, users):
        resp = client.put(
            f"/api/roles/users/{users['staff']}", json={"role": "Super Admin"}, headers=headers_for("admin")
        )
        assert resp.status_code == 403
        assert _app_role(app, users["staff"]) == "Staff"

    def test_super_admin_can_grant_super_admin(self, app, client, headers_for, users):
        resp = client.put(
            f"/api/roles/users/{users['admin']}", json={"role": "Super Admin"}, headers=headers_for("super_admin")
        )
        assert resp.status_code == 200
        assert _app_role(app, users["admin"]) == "Super Admin"

        rows = _audit_rows(app, PermissionAuditLog.TARGET_USER_ROLE)
        assert len(rows) == 1
        assert rows[0]["previous_value"] == {"app_role": "Admin"}

    def test_assignment_takes_effect_immediately(self, app, client, headers_for, users):
        viewer_headers = headers_for("viewer")
        assert client.get("/api/employees", headers=viewer_headers).status_code == 403

        client.put(f"/api/roles/users/{users['viewer']}", json={"role": "Manager"}, headers=headers_for("admin"))
        assert client.get("/api/employees", headers=viewer_headers).status_code == 200

    def test_unknown_role(self, client, headers_for, users):
        resp = client.put(f"/api/roles/users/{users['staff']}", json={"role": "Astronaut"}, headers=headers_for("admin"))
        assert resp.status_code == 404


# =============================================================================
# OVERRIDES
# =============================================================================


class TestOverridesApi:

    def test_override_lifecycle_is_audited(self, app, client, headers_for, users):
        headers = headers_for("admin")
        url = f"/api/roles/overrides/{users['staff']}"

        created = client.put(url, json={"module": "clients", "action": "view", "allow": True}, headers=headers)
        assert created.status_code == 200
        updated = client.put(
            url, json={"module": "clients", "action": "view", "allow": True, "data_scope": "all"}, headers=headers
        )
        assert updated.json["override"]["data_scope"] == "all"

        listed = client.get(url, headers=headers)
        assert len(listed.json["overrides"]) == 1

        deleted = client.delete(f"{url}?module=clients&action=view", headers=headers)
        assert deleted.status_code == 200

        rows = _audit_rows(app, PermissionAuditLog.TARGET_USER_OVERRIDE)
        assert [r["change_type"] for r in rows] == ["create", "update", "delete"]
        assert all(r["user_id"] == users["staff"] for r in rows)

    def test_override_changes_access(self, client, headers_for, users):
        staff_headers = headers_for("staff")
        assert client.get("/api/roles", headers=staff_headers).status_code == 403

        client.put(
            f"/api/roles/overrides/{users['staff']}",
            json={"module": "roles", "action": "view", "allow": True},
            headers=headers_for("admin"),
        )
        assert client.get("/api/roles", headers=staff_headers).status_code == 200

    def test_delete_missing_override(self, client, headers_for, users):
        resp = client.delete(
            f"/api/roles/overrides/{users['staff']}?module=clients&action=view", headers=headers_for("admin")
        )
        assert resp.status_code == 404

    def test_delete_requires_query(self, client, headers_for, users):
        resp = client.delete(f"/api/roles/overrides/{users['staff']}", headers=headers_for("admin"))
        assert resp.status_code == 400

    def test_override_for_missing_user(self, client, headers_for):
        resp = client.put(
            "/api/roles/overrides/9999",
            json={"module": "clients", "action": "view", "allow": True},
            headers=headers_for("admin"),
        )
        assert resp.status_code == 404

    def test_audit_endpoint_filters(self, client, headers_for, users):
        headers = headers_for("admin")
        client.put(
            f"/api/roles/overrides/{users['staff']}",
            json={"module": "clients", "action": "view", "allow": True},
            headers=headers,
        )
        client.post("/api/roles", json={"name": "Temp"}, headers=headers)

        resp = client.get("/api/roles/audit?target_type=user_override", headers=headers)
        assert resp.status_code == 200
        assert len(resp.json["entries"]) == 1
        assert resp.json["entries"][0]["module"] == "clients"


# =============================================================================
# TARGET USER SCOPE
# =============================================================================


WIDEN_EMPLOYEES = {"module": "employees", "action": "view", "allow": True, "data_scope": "all"}


def _override_count(app, user_id):
    with app.app_context():
        return db.session.query(UserPermissionOverride).filter_by(user_id=user_id).count()


class TestTargetUserScope:
    """The Manager's roles grant is department-scoped (Field)."""

    def test_override_outside_department_forbidden(self, app, client, headers_for, users):
        resp = client.put(
            f"/api/roles/overrides/{users['staff_office']}", json=WIDEN_EMPLOYEES, headers=headers_for("manager")
        )
        assert resp.status_code == 403
        assert resp.json["scope"] == "department"
        assert resp.json["module"] == "roles"
        assert _override_count(app, users["staff_office"]) == 0
        assert _audit_rows(app) == []

    def test_override_inside_department_allowed(self, app, client, headers_for, users):
        resp = client.put(
            f"/api/roles/overrides/{users['staff']}", json=WIDEN_EMPLOYEES, headers=headers_for("manager")
        )
        assert resp.status_code == 200
        assert _override_count(app, users["staff"]) == 1

    def test_override_on_self_forbidden(self, app, client, headers_for, users):
        resp = client.put(
            f"/api/roles/overrides/{users['manager']}", json=WIDEN_EMPLOYEES, headers=headers_for("manager")
        )
        assert resp.status_code == 403
        assert _override_count(app, users["manager"]) == 0

    def test_list_overrides_outside_department_forbidden(self, client, headers_for, users):
        resp = client.get(f"/api/roles/overrides/{users['staff_office']}", headers=headers_for("manager"))
        assert resp.status_code == 403
        assert resp.json["scope"] == "department"

    def test_list_own_overrides_allowed(self, client, headers_for, users):
        resp = client.get(f"/api/roles/overrides/{users['manager']}", headers=headers_for("manager"))
        assert resp.status_code == 200
        assert resp.json["overrides"] == []

    def test_assign_outside_department_forbidden(self, app, client, headers_for, users):
        resp = client.put(
            f"/api/roles/users/{users['staff_office']}", json={"role": "Manager"}, headers=headers_for("manager")
        )
        assert resp.status_code == 403
        assert resp.json["scope"] == "department"
        assert _app_role(app, users["staff_office"]) == "Staff"

    def test_assign_own_role_forbidden(self, app, client, headers_for, users):
        resp = client.put(
            f"/api/roles/users/{users['manager']}", json={"role": "Admin"}, headers=headers_for("manager")
        )
        assert resp.status_code == 403
        assert _app_role(app, users["manager"]) == "Manager"

    def test_missing_user_is_not_found_for_scoped_caller(self, client, headers_for):
        resp = client.put("/api/roles/overrides/9999", json=WIDEN_EMPLOYEES, headers=headers_for("manager"))
        assert resp.status_code == 404

    def test_super_admin_may_change_own_overrides(self, client, headers_for, users):
        resp = client.put(
            f"/api/roles/overrides/{users['super_admin']}",
            json={"module": "clients", "action": "view", "allow": True},
            headers=headers_for("super_admin"),
        )
        assert resp.status_code == 200


def test_unhashable_field_key_is_a_validation_error(app, client, headers_for):
    resp = client.post(
        "/api/roles",
        json={"name": "Odd", "permissions": {"employees": {"actions": ["view"], "view_fields": [{}]}}},
        headers=headers_for("admin"),
    )
    assert resp.status_code == 400
    assert _audit_rows(app) == []


def test_roles_api_with_bearer_from_login(app, client, users):
    """Tokens minted by /api/auth/login work as bearer credentials."""
    token = client.post(
        "/api/auth/login", json={"email": "admin@devco.test", "password": PASSWORD}
    ).json["token"]
    client.delete_cookie(app.config["AUTH_COOKIE_NAME"])
    assert client.get("/api/roles", headers=auth_headers(token)).status_code == 200
