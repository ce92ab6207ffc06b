"""Authentication: local email/password accounts with JWT bearer tokens."""

from selliox.auth.local import LocalAuthService, auth_service
from selliox.auth.middleware import get_current_user, require_admin, require_auth
from selliox.auth.models import User, UserAccount

__all__ = [
    "User",
    "UserAccount",
    "LocalAuthService",
    "auth_service",
    "get_current_user",
    "require_admin",
    "require_auth",
]
