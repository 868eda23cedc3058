from __future__ import annotations

from ..extensions import db
from devco.time_utils import to_utc_z


class User(db.Model):
    """
    Employee accounts for authentication, attribution and scoped records.

    app_role holds the name of the assigned Role, or the Super Admin
    designation. The employee record itself is the resource served by
    /api/employees, so the profile columns below double as the field
    keys that roles can restrict.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_department", "department"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    mobile = db.Column(db.String(32), nullable=True)

    app_role = db.Column(db.String(64), nullable=True, index=True)
    company_position = db.Column(db.String(128), nullable=True)
    designation = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(32), nullable=False, default="Active")
    department = db.Column(db.String(128), nullable=True)

    # Pay rates are the usual candidates for field restrictions
    hourly_rate_site = db.Column(db.Numeric(10, 2), nullable=True)
    hourly_rate_drive = db.Column(db.Numeric(10, 2), nullable=True)

    dob = db.Column(db.String(10), nullable=True)
    driver_license = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    state = db.Column(db.String(64), nullable=True)
    zip = db.Column(db.String(16), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.email

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "mobile": self.mobile,
            "app_role": self.app_role,
            "company_position": self.company_position,
            "designation": self.designation,
            "status": self.status,
            "department": self.department,
            "hourly_rate_site": float(self.hourly_rate_site) if self.hourly_rate_site is not None else None,
            "hourly_rate_drive": float(self.hourly_rate_drive) if self.hourly_rate_drive is not None else None,
            "dob": self.dob,
            "driver_license": self.driver_license,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class Role(db.Model):
    """
    Named permission set.

    permissions is stored as JSON keyed by module:
        {"employees": {"actions": {"view": true, ...}, "scope": "department",
                       "view_fields": [...], "edit_fields": [...]}}
    The payload is validated through permissions.types before it is written.

    System roles cannot be deleted. Users reference roles by name
    (User.app_role), so renaming a role moves its users along with it.
    """
    __tablename__ = "roles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)
    color = db.Column(db.String(16), nullable=True)
    icon = db.Column(db.String(32), nullable=True)

    is_system = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    permissions = db.Column(db.JSON, nullable=False, default=dict)

    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "icon": self.icon,
            "is_system": self.is_system,
            "is_active": self.is_active,
            "permissions": self.permissions or {},
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class UserPermissionOverride(db.Model):
    """
    Sparse per-user patch on top of the user's role for one (module, action).

    allow: when set, replaces the role's boolean for the action.
    data_scope: when set, replaces the role's scope for the action.
    field_rules: {field_key: restricted}; only on view and update overrides.
    """
    __tablename__ = "user_permission_overrides"
    __table_args__ = (
        db.UniqueConstraint("user_id", "module", "action", name="uq_user_perm_override"),
        db.Index("ix_user_perm_overrides_user", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    module = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(32), nullable=False)

    allow = db.Column(db.Boolean, nullable=True)
    data_scope = db.Column(db.String(16), nullable=True)
    field_rules = db.Column(db.JSON, nullable=True)

    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("permission_overrides", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "module": self.module,
            "action": self.action,
            "allow": self.allow,
            "data_scope": self.data_scope,
            "field_rules": self.field_rules or {},
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PermissionAuditLog(db.Model):
    """
    Append-only record of role and override changes.

    IMMUTABLE: Never update or delete. One row per mutation.
    """
    __tablename__ = "permission_audit_logs"
    __table_args__ = (
        db.Index("ix_permission_audit_target", "target_type", "target_id"),
        db.Index("ix_permission_audit_user", "user_id"),
        {"sqlite_autoincrement": True},
    )

    TARGET_ROLE = "role"
    TARGET_USER_OVERRIDE = "user_override"
    TARGET_USER_ROLE = "user_role"

    id = db.Column(db.Integer, primary_key=True)

    target_type = db.Column(db.String(32), nullable=False)
    target_id = db.Column(db.String(64), nullable=False)

    # Affected user, for override changes
    user_id = db.Column(db.Integer, nullable=True)

    changed_by = db.Column(db.String(255), nullable=True)
    change_type = db.Column(db.String(16), nullable=False)  # create, update, delete

    module = db.Column(db.String(64), nullable=True)
    action = db.Column(db.String(32), nullable=True)

    previous_value = db.Column(db.JSON, nullable=True)
    new_value = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "user_id": self.user_id,
            "changed_by": self.changed_by,
            "change_type": self.change_type,
            "module": self.module,
            "action": self.action,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "created_at": to_utc_z(self.created_at),
        }
