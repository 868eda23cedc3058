from .auth import User, Role, UserPermissionOverride, PermissionAuditLog
from .quickbooks import QuickBooksProject, OAuthToken, WebhookLog, compute_financials

__all__ = [
    'User', 'Role', 'UserPermissionOverride', 'PermissionAuditLog',
    'QuickBooksProject', 'OAuthToken', 'WebhookLog', 'compute_financials',
]
