# Overview: Static routing table mapping URL prefixes and HTTP methods to (module, action).

from __future__ import annotations

from .definitions import Action, Module


URL_TO_MODULE: dict[str, Module] = {
    # Pages
    "/": Module.DASHBOARD,
    "/dashboard": Module.DASHBOARD,
    "/clients": Module.CLIENTS,
    "/employees": Module.EMPLOYEES,
    "/contacts": Module.CONTACTS,
    "/roles": Module.ROLES,
    "/catalogue": Module.CATALOGUE,
    "/templates": Module.TEMPLATES,
    "/estimates": Module.ESTIMATES,
    "/jobs/schedules": Module.SCHEDULES,
    "/jobs/time-cards": Module.TIME_CARDS,
    "/jobs/jha": Module.JHA,
    "/reports/wip": Module.REPORTS_WIP,
    "/docs/jha": Module.JHA,
    "/docs/job-tickets": Module.JOB_TICKETS,
    "/docs/billing-tickets": Module.BILLING_TICKETS,
    "/docs/pothole-logs": Module.POTHOLE,
    "/docs/damage-report": Module.DAMAGE_REPORT,
    "/docs/incidents": Module.INCIDENTS,
    "/docs/pre-bore-logs": Module.PRE_BORE_LOGS,
    "/docs/vehicle-safety": Module.VEHICLE_SAFETY,
    "/docs/lubrication": Module.LUBRICATION,
    "/docs/repair": Module.REPAIR,
    "/docs/scope-change": Module.SCOPE_CHANGE,
    "/docs/receipts-costs": Module.RECEIPTS_COSTS,
    "/docs/vehicle-equipment": Module.VEHICLE_EQUIPMENT,
    "/docs/company-docs": Module.COMPANY_DOCS,
    "/constants": Module.CONSTANTS,
    "/chat": Module.CHAT,
    "/settings/general": Module.CONSTANTS,
    "/settings/imports": Module.CONSTANTS,
    "/settings/knowledgebase": Module.CONSTANTS,
    "/reports/payroll": Module.REPORTS_PAYROLL,
    "/reports/workers-comp": Module.REPORTS_WORK_COMP,
    "/reports/fringe-benefits": Module.REPORTS_FRINGE,
    "/reports/sales": Module.REPORTS_SALES,
    "/reports/daily-activities": Module.REPORTS_DAILY_ACTIVITY,
    "/quickbooks": Module.REPORTS_WIP,

    # API
    "/api/employees": Module.EMPLOYEES,
    "/api/roles": Module.ROLES,
    "/api/quickbooks": Module.REPORTS_WIP,
    "/api/webhooks/quickbooks/logs": Module.REPORTS_WIP,
}

METHOD_TO_ACTION: dict[str, Action] = {
    "GET": Action.VIEW,
    "HEAD": Action.VIEW,
    "POST": Action.CREATE,
    "PUT": Action.UPDATE,
    "PATCH": Action.UPDATE,
    "DELETE": Action.DELETE,
}


def get_module_from_path(pathname: str) -> Module | None:
    """
    Longest matching prefix wins, so "/api/webhooks/quickbooks/logs" is not
    shadowed by a shorter entry. "/" only matches the root itself.
    """
    if pathname in URL_TO_MODULE:
        return URL_TO_MODULE[pathname]

    best: str | None = None
    for route in URL_TO_MODULE:
        if route == "/":
            continue
        if pathname.startswith(route + "/") and (best is None or len(route) > len(best)):
            best = route
    return URL_TO_MODULE[best] if best else None


def resolve_route(pathname: str, method: str) -> tuple[Module, Action] | None:
    """Map a request to (module, action); None when the route is not in the table."""
    module = get_module_from_path(pathname.rstrip("/") or "/")
    action = METHOD_TO_ACTION.get(method.upper())
    if module is None or action is None:
        return None
    return module, action
