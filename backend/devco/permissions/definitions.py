# Overview: Closed vocabularies of the permission model: modules, actions, data scopes, fields.

from enum import Enum


class Module(str, Enum):
    """Functional areas subject to access control."""
    # CRM
    DASHBOARD = "dashboard"
    CLIENTS = "clients"
    EMPLOYEES = "employees"
    CONTACTS = "contacts"
    ROLES = "roles"

    # Jobs
    CATALOGUE = "catalogue"
    TEMPLATES = "templates"
    ESTIMATES = "estimates"
    SCHEDULES = "schedules"
    TIME_CARDS = "time_cards"
    REPORTS_WIP = "reports_wip"

    # Docs
    JHA = "jha"
    JOB_TICKETS = "job_tickets"
    BILLING_TICKETS = "billing_tickets"
    POTHOLE = "pothole"
    DAMAGE_REPORT = "damage_report"
    INCIDENTS = "incidents"
    PRE_BORE_LOGS = "pre_bore_logs"
    VEHICLE_SAFETY = "vehicle_safety"
    LUBRICATION = "lubrication"
    REPAIR = "repair"
    SCOPE_CHANGE = "scope_change"
    RECEIPTS_COSTS = "receipts_costs"
    VEHICLE_EQUIPMENT = "vehicle_equipment"

    # Misc
    CONSTANTS = "constants"
    CHAT = "chat"
    COMPANY_DOCS = "company_docs"

    # Reports
    REPORTS_PAYROLL = "reports_payroll"
    REPORTS_WORK_COMP = "reports_work_comp"
    REPORTS_FRINGE = "reports_fringe"
    REPORTS_SALES = "reports_sales"
    REPORTS_DAILY_ACTIVITY = "reports_daily_activity"


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXPORT = "export"
    APPROVE = "approve"
    ASSIGN = "assign"
    CHANGE_STATUS = "change_status"


class DataScope(str, Enum):
    SELF = "self"              # records owned by or assigned to the caller
    DEPARTMENT = "department"  # records in the caller's department
    ALL = "all"


class FieldAction(str, Enum):
    VIEW = "view"
    EDIT = "edit"


# Module actions that carry field restrictions, and which restriction set they use
ACTION_FIELD_ACTION = {
    Action.VIEW: FieldAction.VIEW,
    Action.CREATE: FieldAction.EDIT,
    Action.UPDATE: FieldAction.EDIT,
}

# Overrides may only patch field rules through these actions
FIELD_RULE_ACTIONS = {
    Action.VIEW: FieldAction.VIEW,
    Action.UPDATE: FieldAction.EDIT,
}

SUPER_ADMIN_ROLE = "Super Admin"


# -- FIELD CATALOGUE --

MODULE_FIELDS: dict[Module, list[str]] = {
    Module.DASHBOARD: [
        "widget_upcoming_schedules",
        "widget_chat",
        "widget_estimates_overview",
        "widget_time_cards",
        "widget_tasks",
    ],
    Module.CLIENTS: ["name", "email", "phone", "address", "city", "state", "zip", "notes", "status"],
    Module.EMPLOYEES: [
        "first_name", "last_name", "email", "phone", "mobile", "app_role", "company_position",
        "designation", "status", "department", "hourly_rate_site", "hourly_rate_drive", "dob",
        "driver_license", "address", "city", "state", "zip", "password",
    ],
    Module.CONTACTS: ["first_name", "last_name", "email", "mobile"],
    Module.ROLES: ["name", "description", "color", "icon", "is_active", "permissions"],
    Module.CATALOGUE: ["name", "description", "category", "unit_cost", "unit", "status"],
    Module.TEMPLATES: ["name", "description", "category", "content", "is_active"],
    Module.ESTIMATES: [
        "title", "client", "status", "total_amount", "items", "notes", "valid_until",
        "assigned_to", "approved_by", "discount", "tax",
    ],
    Module.SCHEDULES: ["title", "date", "assigned_to", "status", "location", "notes"],
    Module.TIME_CARDS: ["employee", "date", "hours_worked", "project", "status", "notes"],
    Module.REPORTS_WIP: [
        "project", "customer", "status", "proposal_number", "original_contract",
        "change_orders", "income", "cost", "profit_margin", "transactions",
    ],
    Module.JHA: ["title", "date", "hazards", "controls", "status", "assigned_to"],
    Module.JOB_TICKETS: ["title", "date", "description", "status", "assigned_to"],
    Module.BILLING_TICKETS: ["title", "amount", "status", "client", "date"],
    Module.POTHOLE: ["location", "size", "status", "date", "repaired_by"],
    Module.DAMAGE_REPORT: ["title", "description", "severity", "status", "date", "reported_by"],
    Module.INCIDENTS: ["title", "description", "severity", "status", "date", "involved_parties"],
    Module.PRE_BORE_LOGS: ["title", "location", "depth", "date", "operator"],
    Module.VEHICLE_SAFETY: ["vehicle", "check_items", "status", "date", "inspector"],
    Module.LUBRICATION: ["equipment", "lubricant", "date", "operator"],
    Module.REPAIR: ["equipment", "issue", "solution", "status", "date", "technician"],
    Module.SCOPE_CHANGE: ["title", "description", "status", "requested_by", "approved_by", "date"],
    Module.RECEIPTS_COSTS: ["vendor", "date", "cost", "description", "category", "status", "approval_status"],
    Module.VEHICLE_EQUIPMENT: ["unit", "unit_number", "vin_serial_number", "documents"],
    Module.CONSTANTS: ["name", "value", "category", "description"],
    Module.CHAT: ["message", "attachments"],
    Module.COMPANY_DOCS: ["title", "url", "status"],
    Module.REPORTS_PAYROLL: [],
    Module.REPORTS_WORK_COMP: [],
    Module.REPORTS_FRINGE: [],
    Module.REPORTS_SALES: [],
    Module.REPORTS_DAILY_ACTIVITY: [],
}


# -- DISPLAY LABELS --

MODULE_LABELS: dict[Module, str] = {
    Module.DASHBOARD: "Dashboard",
    Module.CLIENTS: "Clients",
    Module.EMPLOYEES: "Employees",
    Module.CONTACTS: "Contacts",
    Module.ROLES: "Roles & Permissions",
    Module.CATALOGUE: "Catalogue",
    Module.TEMPLATES: "Templates",
    Module.ESTIMATES: "Estimates & Proposals",
    Module.SCHEDULES: "Schedules",
    Module.TIME_CARDS: "Time Cards",
    Module.REPORTS_WIP: "Work in Progress Report",
    Module.JHA: "JHA",
    Module.JOB_TICKETS: "Job Tickets",
    Module.BILLING_TICKETS: "Billing Tickets",
    Module.POTHOLE: "Pothole",
    Module.DAMAGE_REPORT: "Damage Report",
    Module.INCIDENTS: "Incidents",
    Module.PRE_BORE_LOGS: "Pre Bore Logs",
    Module.VEHICLE_SAFETY: "Vehicle Safety",
    Module.LUBRICATION: "Lubrication",
    Module.REPAIR: "Repair Report",
    Module.SCOPE_CHANGE: "Scope Change",
    Module.RECEIPTS_COSTS: "Receipts & Costs",
    Module.VEHICLE_EQUIPMENT: "Vehicle Equipment",
    Module.CONSTANTS: "Constants",
    Module.CHAT: "Chat",
    Module.COMPANY_DOCS: "Company Docs",
    Module.REPORTS_PAYROLL: "Payroll Report",
    Module.REPORTS_WORK_COMP: "Work Comp Report",
    Module.REPORTS_FRINGE: "Fringe Benefits",
    Module.REPORTS_SALES: "Sales Performance",
    Module.REPORTS_DAILY_ACTIVITY: "Daily Activity",
}

ACTION_LABELS: dict[Action, str] = {
    Action.VIEW: "View",
    Action.CREATE: "Create",
    Action.UPDATE: "Edit",
    Action.DELETE: "Delete",
    Action.EXPORT: "Export",
    Action.APPROVE: "Approve",
    Action.ASSIGN: "Assign",
    Action.CHANGE_STATUS: "Change Status",
}
