"""OAuth redirect completion.

The identity provider sends the browser back to the callback view with either
``access_token`` or ``error`` in the query string. ``OAuthCompletionFlow``
turns that into a persisted session or an error, then redirects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Mapping, Protocol
from urllib.parse import parse_qs

from alphacare_portal.auth.context import Session
from alphacare_portal.auth.dispatcher import dispatch_route, login_route
from alphacare_portal.auth.errors import (
    OAuthMissingToken,
    OAuthProviderError,
    PortalAuthError,
    RequestRejected,
    RoleMismatch,
    map_backend_error,
    status_error_for,
)
from alphacare_portal.auth.navigation import AsyncioScheduler, Navigator, ScheduledCall, Scheduler
from alphacare_portal.auth.notifications import Notifier
from alphacare_portal.auth.storage import SessionStore
from alphacare_portal.config import settings
from alphacare_portal.domain.principals import extract_auth_payload, normalize_principal
from alphacare_portal.domain.roles import namespace_for_role
from alphacare_portal.models.principal import Principal
from alphacare_portal.observability import incr_metric, log_event
from alphacare_portal.providers.backend.client import BackendError

CallbackStatus = Literal["loading", "success", "error", "redirected"]

# The callback view belongs to the doctor portal: provisional tokens and error redirects go there.
OAUTH_HOME_NAMESPACE = "doctor"


class OAuthBackend(Protocol):
    async def get_session(self, token: str) -> Any: ...

    async def get_oauth_authorize_url(self) -> str: ...

    async def complete_oauth_registration(self, data: dict[str, Any]) -> Any: ...


@dataclass(frozen=True)
class OAuthTransferState:
    access_token: str | None = None
    error: str | None = None

    @classmethod
    def from_query(cls, query: str | Mapping[str, str]) -> "OAuthTransferState":
        if isinstance(query, str):
            parsed = parse_qs(query.lstrip("?"), keep_blank_values=True)
            values = {key: items[0] for key, items in parsed.items() if items}
        else:
            values = dict(query)
        access_token = (values.get("access_token") or "").strip() or None
        error = (values.get("error") or "").strip() or None
        return cls(access_token=access_token, error=error)


class OAuthCompletionFlow:
    """``loading -> success|error -> redirected``.

    A token is written provisionally to the doctor namespace while the session
    is fetched. It is removed again (restoring whatever was there before)
    unless a validated principal is persisted with it.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        backend: OAuthBackend,
        navigator: Navigator,
        notifier: Notifier,
        scheduler: Scheduler | None = None,
        success_delay_seconds: float | None = None,
        error_delay_seconds: float | None = None,
    ) -> None:
        self.store = store
        self.backend = backend
        self.navigator = navigator
        self.notifier = notifier
        self.scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self.success_delay_seconds = (
            settings.oauth_success_redirect_delay_seconds if success_delay_seconds is None else success_delay_seconds
        )
        self.error_delay_seconds = (
            settings.oauth_error_redirect_delay_seconds if error_delay_seconds is None else error_delay_seconds
        )
        self.status: CallbackStatus = "loading"
        self.message = "Processing authentication..."
        self.error: PortalAuthError | None = None
        self.session: Session | None = None
        self.redirect_to: str | None = None
        self.redirect_delay_seconds: float | None = None
        self._started = False
        self._disposed = False
        self._pending_redirect: ScheduledCall | None = None
        self._provisional = False
        self._previous_home_token: str | None = None

    async def run(self, transfer: OAuthTransferState) -> CallbackStatus:
        if self._started:
            raise RuntimeError("OAuth callback state was already consumed")
        self._started = True
        log_event("oauth_callback_received", has_token=bool(transfer.access_token), error=transfer.error)

        if transfer.error:
            self._fail(
                OAuthProviderError(f"Authentication failed: {transfer.error}"),
                description=transfer.error,
            )
            return self.status
        if not transfer.access_token:
            self._fail(OAuthMissingToken(), description="No access token received from the server")
            return self.status

        token = transfer.access_token
        self._hold_provisional(token)
        try:
            body = await self.backend.get_session(token)
            principal = self._principal_from(body)
        except Exception as exc:
            self._release_provisional()
            if self._disposed:
                return self.status
            log_event(
                "oauth_session_fetch_failed",
                level=logging.WARNING,
                error_type=type(exc).__name__,
                status_code=getattr(exc, "status_code", None),
            )
            self._fail(OAuthProviderError(), description=_describe(exc))
            return self.status

        if self._disposed:
            self._release_provisional()
            return self.status

        status_error = status_error_for(principal.account_status)
        if status_error is not None:
            self._release_provisional()
            self._fail(status_error, description=status_error.message)
            return self.status

        namespace = namespace_for_role(principal.role)
        session = Session(access_token=token, principal=principal, role=namespace)
        if namespace != OAUTH_HOME_NAMESPACE:
            self._release_provisional()
        self.store.save(namespace, session)
        self._provisional = False
        self.session = session

        self.status = "success"
        self.message = "Authentication successful! Redirecting..."
        incr_metric("auth.oauth_callback", outcome="success", namespace=namespace)
        log_event("oauth_session_established", namespace=namespace, principal_id=principal.id, role=principal.role)
        self.notifier.success("Login Successful", f"Welcome back, {principal.display_name}!")
        self._schedule_redirect(self.success_delay_seconds, dispatch_route(principal.role, principal.account_status))
        return self.status

    def dispose(self) -> None:
        """Unmount: cancel pending redirects and drop an unconfirmed provisional token."""
        self._disposed = True
        if self._pending_redirect is not None:
            self._pending_redirect.cancel()
            self._pending_redirect = None
        if self._provisional:
            self._release_provisional()

    def _principal_from(self, body: Any) -> Principal:
        payload = extract_auth_payload(body, ("user",))
        if payload.principal is None:
            raise RequestRejected("Invalid session response from server")
        return normalize_principal(payload.principal)

    def _hold_provisional(self, token: str) -> None:
        self._previous_home_token = self.store.load_token(OAUTH_HOME_NAMESPACE)
        self.store.save_token(OAUTH_HOME_NAMESPACE, token)
        self._provisional = True

    def _release_provisional(self) -> None:
        if not self._provisional:
            return
        if self._previous_home_token is not None:
            self.store.save_token(OAUTH_HOME_NAMESPACE, self._previous_home_token)
        else:
            self.store.remove_token(OAUTH_HOME_NAMESPACE)
        self._provisional = False

    def _fail(self, error: PortalAuthError, *, description: str) -> None:
        self.status = "error"
        self.error = error
        self.message = error.message
        incr_metric("auth.oauth_callback", outcome=error.kind)
        log_event("oauth_callback_failed", level=logging.WARNING, kind=error.kind)
        self.notifier.error("Authentication Failed", description)
        self._schedule_redirect(self.error_delay_seconds, login_route(OAUTH_HOME_NAMESPACE))

    def _schedule_redirect(self, delay: float, path: str) -> None:
        self.redirect_to = path
        self.redirect_delay_seconds = delay
        self._pending_redirect = self.scheduler.call_later(delay, lambda: self._redirect(path))

    def _redirect(self, path: str) -> None:
        if self._disposed:
            return
        self._pending_redirect = None
        self.status = "redirected"
        self.navigator.push(path)


def _describe(exc: Exception) -> str:
    if isinstance(exc, BackendError):
        return exc.server_message or "An unexpected error occurred"
    if isinstance(exc, PortalAuthError):
        return exc.message
    return "An unexpected error occurred"


async def get_authorize_url(backend: OAuthBackend) -> str:
    """URL of the identity provider's consent screen."""
    try:
        return await backend.get_oauth_authorize_url()
    except BackendError as exc:
        log_event("oauth_authorize_url_failed", level=logging.WARNING, status_code=exc.status_code)
        mapped = map_backend_error(exc)
        raise OAuthProviderError(mapped.message, status_code=exc.status_code) from exc


async def complete_oauth_registration(
    data: Mapping[str, Any],
    *,
    store: SessionStore,
    backend: OAuthBackend,
    navigator: Navigator,
    notifier: Notifier | None = None,
) -> Principal:
    """Finish sign-up for a doctor who arrived through OAuth.

    A session is only created when the backend returns a token for an active
    doctor account; new doctors normally wait for verification.
    """
    notifier = notifier if notifier is not None else Notifier()
    try:
        principal, access_token = await _register_oauth_doctor(data, backend)
    except PortalAuthError as exc:
        log_event("oauth_registration_failed", level=logging.WARNING, kind=exc.kind, status_code=exc.status_code)
        notifier.error("Registration Failed", exc.message)
        raise

    if access_token and principal.is_active:
        store.save(
            OAUTH_HOME_NAMESPACE,
            Session(access_token=access_token, principal=principal, role=OAUTH_HOME_NAMESPACE),
        )
        log_event("oauth_registration_completed", principal_id=principal.id, session_created=True)
        notifier.success("Registration Successful", f"Welcome, {principal.display_name}!")
        navigator.replace(dispatch_route(principal.role, principal.account_status))
    else:
        log_event(
            "oauth_registration_completed",
            principal_id=principal.id,
            account_status=principal.account_status,
            session_created=False,
        )
        notifier.success("Registration Submitted", "Your account will be available once it has been verified.")
    return principal


async def _register_oauth_doctor(data: Mapping[str, Any], backend: OAuthBackend) -> tuple[Principal, str | None]:
    try:
        body = await backend.complete_oauth_registration(dict(data))
    except BackendError as exc:
        raise map_backend_error(exc) from exc

    payload = extract_auth_payload(body, ("user", "doctor"))
    if payload.principal is None:
        raise RequestRejected("Invalid response structure from server")
    try:
        principal = normalize_principal(payload.principal, default_role=OAUTH_HOME_NAMESPACE)
    except ValueError as exc:
        raise RequestRejected("Invalid response structure from server") from exc
    if namespace_for_role(principal.role) != OAUTH_HOME_NAMESPACE:
        raise RoleMismatch("Access denied. This account is not a doctor account.")
    return principal, payload.access_token
