from alphacare_portal.auth.context import Session
from alphacare_portal.auth.dispatcher import dispatch_route, login_route
from alphacare_portal.auth.guard import GuardOutcome, RouteGuard
from alphacare_portal.auth.oauth import OAuthCompletionFlow, OAuthTransferState
from alphacare_portal.auth.service import AuthState, RoleAuthService, create_auth_service
from alphacare_portal.auth.storage import (
    BrowserStorageRegistry,
    FileStorage,
    MemoryStorage,
    SessionStore,
)

__all__ = [
    "Session",
    "SessionStore",
    "MemoryStorage",
    "FileStorage",
    "BrowserStorageRegistry",
    "AuthState",
    "RoleAuthService",
    "create_auth_service",
    "OAuthCompletionFlow",
    "OAuthTransferState",
    "RouteGuard",
    "GuardOutcome",
    "dispatch_route",
    "login_route",
]
