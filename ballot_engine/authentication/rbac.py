# ballot_engine/authentication/rbac.py

from enum import Enum
from functools import wraps
from flask import session, abort, current_app
import requests
import logging

# Role-based access for institutional staff. Staff identity lives in the
# Flask session (user_id, user_role) and is unrelated to voter sessions:
# a voter token never passes these checks.

logger = logging.getLogger(__name__)


class UserRole(Enum):
    ADMINISTRATOR = "administrator"
    ELECTION_MANAGER = "election_manager"
    AUDITOR = "auditor"


class Permission(Enum):
    MANAGE_ELECTIONS = "manage_elections"
    VIEW_ACTIVITY_LOGS = "view_activity_logs"
    VIEW_SECURITY_LOG = "view_security_log"
    VIEW_FEEDBACK = "view_feedback"


# Role -> Permissions mapping
ROLE_PERMISSIONS = {
    UserRole.ADMINISTRATOR: [
        Permission.MANAGE_ELECTIONS,
        Permission.VIEW_ACTIVITY_LOGS,
        Permission.VIEW_SECURITY_LOG,
        Permission.VIEW_FEEDBACK,
    ],
    UserRole.ELECTION_MANAGER: [
        Permission.MANAGE_ELECTIONS,
        Permission.VIEW_FEEDBACK,
    ],
    UserRole.AUDITOR: [
        Permission.VIEW_ACTIVITY_LOGS,
        Permission.VIEW_SECURITY_LOG,
    ],
}


class RBACService:
    def has_permission(self, user_role, permission):
        try:
            if isinstance(user_role, str):
                user_role = UserRole(user_role.lower().strip())
            if isinstance(permission, str):
                permission = Permission(permission.lower().strip())
        except ValueError:
            return False
        return permission in ROLE_PERMISSIONS.get(user_role, [])

    def get_permissions(self, user_role):
        if isinstance(user_role, str):
            user_role = UserRole(user_role)
        return ROLE_PERMISSIONS.get(user_role, [])


rbac_service = RBACService()


def opa_check_permission(user_role, permission, opa_url=None):
    """Ask the OPA policy server; without one configured, use ROLE_PERMISSIONS."""
    role_str = str(user_role).lower().strip()
    perm_str = str(permission).lower().strip()
    if opa_url is None:
        opa_url = current_app.config.get('OPA_URL')
    if not opa_url:
        return rbac_service.has_permission(role_str, perm_str)

    data = {"input": {"role": role_str, "permission": perm_str}}
    try:
        response = requests.post(opa_url, json=data, timeout=2)
    except requests.RequestException as e:
        logger.warning(f"OPA request error: {e}")
        return False
    if response.status_code != 200:
        logger.warning(f"OPA returned {response.status_code} for {data}")
        return False
    return bool(response.json().get("result", False))


def require_permission(permission):
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if 'user_role' not in session:
                abort(401)
            perm_str = permission.value if isinstance(permission, Enum) else str(permission)
            if not opa_check_permission(session['user_role'], perm_str):
                abort(403)
            return func(*args, **kwargs)
        return wrapper
    return decorator
