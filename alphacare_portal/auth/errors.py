from __future__ import annotations

from typing import Any

from alphacare_portal.providers.backend.client import BackendError


PENDING_VERIFICATION_MESSAGE = (
    "Your account is pending verification. Please contact the administrator "
    "to complete the verification process."
)
SUSPENDED_MESSAGE = "Your account has been suspended. Please contact your hospital administrator."


class PortalAuthError(Exception):
    """Base class for user-facing authentication failures."""

    kind: str = "auth_error"
    default_message: str = "Authentication failed"
    http_status: int = 400

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def category(self) -> str:
        return "terminal"

    @property
    def retryable(self) -> bool:
        return self.category == "transient"

    def to_detail(self) -> dict[str, Any]:
        return {
            "type": "auth_error",
            "kind": self.kind,
            "category": self.category,
            "retryable": self.retryable,
            "message": self.message,
        }


class InvalidCredentials(PortalAuthError):
    kind = "invalid_credentials"
    default_message = "Invalid email or password"
    http_status = 401

    @property
    def category(self) -> str:
        return "auth"


class AccountPendingVerification(PortalAuthError):
    kind = "account_pending_verification"
    default_message = PENDING_VERIFICATION_MESSAGE
    http_status = 403

    @property
    def category(self) -> str:
        return "auth"


class AccountSuspended(PortalAuthError):
    kind = "account_suspended"
    default_message = SUSPENDED_MESSAGE
    http_status = 403

    @property
    def category(self) -> str:
        return "auth"


class RoleMismatch(PortalAuthError):
    kind = "role_mismatch"
    default_message = "Access denied. This account does not belong to this portal."
    http_status = 403

    @property
    def category(self) -> str:
        return "auth"


class NetworkFailure(PortalAuthError):
    kind = "network_failure"
    default_message = "Unable to reach the server. Please check your connection and try again."
    http_status = 503

    @property
    def category(self) -> str:
        return "transient"


class RequestRejected(PortalAuthError):
    kind = "request_rejected"
    default_message = "The request could not be completed"
    http_status = 400


class OAuthMissingToken(PortalAuthError):
    kind = "oauth_missing_token"
    default_message = "No access token received"
    http_status = 400


class OAuthProviderError(PortalAuthError):
    kind = "oauth_provider_error"
    default_message = "Failed to complete authentication"
    http_status = 400


class SessionCorrupt(PortalAuthError):
    """Stored session failed validation. Handled by clearing, never surfaced."""

    kind = "session_corrupt"
    default_message = "Stored session is invalid"

    def __init__(self, message: str | None = None, *, reason: str = "invalid") -> None:
        super().__init__(message)
        self.reason = reason


def status_error_for(account_status: str | None) -> PortalAuthError | None:
    if account_status == "pending_verification":
        return AccountPendingVerification()
    if account_status == "suspended":
        return AccountSuspended()
    return None


def map_backend_error(exc: BackendError) -> PortalAuthError:
    """Translate a structured backend failure into the portal's error kinds."""
    message = exc.server_message
    lowered = (message or "").lower()
    if exc.status_code is None or exc.category == "transient":
        return NetworkFailure(status_code=exc.status_code)
    if "pending verification" in lowered or "pending_verification" in lowered:
        return AccountPendingVerification(status_code=exc.status_code)
    if "suspended" in lowered and exc.status_code in {401, 403}:
        return AccountSuspended(status_code=exc.status_code)
    if exc.status_code == 403:
        if "access denied" in lowered:
            return RoleMismatch(message, status_code=403)
        return RequestRejected(message, status_code=403)
    if exc.status_code == 401:
        return InvalidCredentials(message, status_code=401)
    return RequestRejected(message, status_code=exc.status_code)
