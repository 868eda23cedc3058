# Overview: Module groupings used to organise the role editor.

from .definitions import Module


class PermissionGroup:
    """Permission groups for organization and UI display."""
    GENERAL = "GENERAL"
    CRM = "CRM"
    JOBS = "JOBS"
    DOCS = "DOCS"
    SETTINGS = "SETTINGS"
    REPORTS = "REPORTS"


PERMISSION_GROUPS = {
    PermissionGroup.GENERAL: {
        "label": "General",
        "modules": [Module.DASHBOARD, Module.CHAT],
        "color": "#0891b2",
    },
    PermissionGroup.CRM: {
        "label": "CRM & People",
        "modules": [Module.CLIENTS, Module.EMPLOYEES, Module.CONTACTS],
        "color": "#0F4C75",
    },
    PermissionGroup.JOBS: {
        "label": "Jobs & Projects",
        "modules": [Module.CATALOGUE, Module.TEMPLATES, Module.ESTIMATES, Module.SCHEDULES, Module.TIME_CARDS],
        "color": "#ea580c",
    },
    PermissionGroup.DOCS: {
        "label": "Documents & Forms",
        "modules": [
            Module.JHA, Module.JOB_TICKETS, Module.BILLING_TICKETS, Module.POTHOLE,
            Module.DAMAGE_REPORT, Module.INCIDENTS, Module.PRE_BORE_LOGS,
            Module.VEHICLE_SAFETY, Module.LUBRICATION, Module.REPAIR, Module.SCOPE_CHANGE,
            Module.RECEIPTS_COSTS, Module.VEHICLE_EQUIPMENT, Module.COMPANY_DOCS,
        ],
        "color": "#7c3aed",
    },
    PermissionGroup.SETTINGS: {
        "label": "Settings",
        "modules": [Module.CONSTANTS, Module.ROLES],
        "color": "#64748b",
    },
    PermissionGroup.REPORTS: {
        "label": "Reports & Analytics",
        "modules": [
            Module.REPORTS_PAYROLL, Module.REPORTS_FRINGE, Module.REPORTS_WORK_COMP,
            Module.REPORTS_WIP, Module.REPORTS_DAILY_ACTIVITY, Module.REPORTS_SALES,
        ],
        "color": "#059669",
    },
}
