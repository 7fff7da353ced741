from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping, Protocol

from pydantic import ValidationError

from alphacare_portal.auth.context import Session
from alphacare_portal.auth.dispatcher import dispatch_route, login_route
from alphacare_portal.auth.errors import (
    PortalAuthError,
    RequestRejected,
    RoleMismatch,
    map_backend_error,
    status_error_for,
)
from alphacare_portal.auth.navigation import Navigator
from alphacare_portal.auth.notifications import Notifier
from alphacare_portal.auth.profiles import RoleProfile, get_role_profile
from alphacare_portal.auth.storage import SessionStore
from alphacare_portal.auth.tokens import token_is_expired
from alphacare_portal.domain.principals import AuthPayload, extract_auth_payload, normalize_principal
from alphacare_portal.domain.roles import normalize_namespace, role_matches_namespace
from alphacare_portal.models.principal import Principal
from alphacare_portal.observability import incr_metric, log_event
from alphacare_portal.providers.backend.client import BackendError


class AuthBackend(Protocol):
    async def login(self, namespace: str, credentials: dict[str, Any]) -> Any: ...

    async def register(self, namespace: str, data: dict[str, Any]) -> Any: ...

    async def logout(self, namespace: str, token: str) -> None: ...

    async def get_profile(self, namespace: str, token: str) -> Any: ...

    async def refresh(self, namespace: str, token: str, refresh_token: str | None = None) -> Any: ...


@dataclass(frozen=True)
class AuthState:
    principal: Principal | None = None
    token: str | None = field(default=None, repr=False)
    is_loading: bool = True
    error: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and self.principal is not None


StateListener = Callable[[AuthState], None]


class RoleAuthService:
    """Session lifecycle for one role namespace.

    Build instances with ``create_auth_service``. Results of requests that
    were overtaken by a later login/logout, or that finish after ``dispose``,
    are dropped instead of being written to state or storage.
    """

    def __init__(
        self,
        profile: RoleProfile,
        *,
        store: SessionStore,
        backend: AuthBackend,
        navigator: Navigator,
        notifier: Notifier,
    ) -> None:
        self.profile = profile
        self.namespace = profile.namespace
        self.store = store
        self.backend = backend
        self.navigator = navigator
        self.notifier = notifier
        self._state = AuthState()
        self._listeners: list[StateListener] = []
        self._refresh_token: str | None = None
        self._epoch = 0
        self._mounted = True
        self._bootstrapped = False
        self._bootstrap_result: Session | None = None

    # -- observable state -------------------------------------------------

    @property
    def state(self) -> AuthState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def clear_error(self) -> None:
        self._set_state(error=None)

    def dispose(self) -> None:
        self._mounted = False
        self._epoch += 1
        self._listeners.clear()

    def _set_state(self, **changes: Any) -> None:
        if not self._mounted:
            return
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)

    def _is_current(self, epoch: int) -> bool:
        return self._mounted and epoch == self._epoch

    def _discard_stale(self, operation: str) -> None:
        incr_metric("auth.stale_response_discarded", namespace=self.namespace, operation=operation)
        log_event("stale_response_discarded", namespace=self.namespace, operation=operation)

    # -- bootstrap --------------------------------------------------------

    async def bootstrap(self) -> Session | None:
        """Restore the persisted session. Runs once per mount; never calls the backend."""
        if self._bootstrapped:
            return self._bootstrap_result
        self._bootstrapped = True

        session = self.store.load(self.namespace)
        if session is not None and token_is_expired(session.access_token):
            log_event("session_token_expired", namespace=self.namespace, principal_id=session.principal.id)
            self.store.clear(self.namespace)
            session = None

        self._bootstrap_result = session
        if session is None:
            self._set_state(principal=None, token=None, is_loading=False)
            return None

        self._refresh_token = session.refresh_token
        self._set_state(principal=session.principal, token=session.access_token, is_loading=False)
        log_event("session_restored", namespace=self.namespace, principal_id=session.principal.id)
        return session

    # -- login / registration ---------------------------------------------

    async def login(self, credentials: Mapping[str, Any]) -> Principal:
        self._epoch += 1
        epoch = self._epoch
        self._set_state(is_loading=True, error=None)
        try:
            body = await self.backend.login(self.namespace, dict(credentials))
            payload = extract_auth_payload(body, self.profile.principal_keys)
            principal = self._accept_principal(payload, require_token=True)
            status_error = status_error_for(principal.account_status)
            if status_error is not None:
                raise status_error
        except BackendError as exc:
            error = map_backend_error(exc)
            self._fail("login", epoch, error, title="Login Failed")
            raise error from exc
        except PortalAuthError as exc:
            self._fail("login", epoch, exc, title="Login Failed")
            raise

        if not self._is_current(epoch):
            self._discard_stale("login")
            return principal

        self._start_session(payload, principal)
        incr_metric("auth.login", namespace=self.namespace, outcome="success")
        log_event("login_succeeded", namespace=self.namespace, principal_id=principal.id, role=principal.role)
        self.notifier.success("Login Successful", f"Welcome back, {principal.display_name}!")
        self.navigator.replace(dispatch_route(principal.role, principal.account_status))
        return principal

    async def register(self, data: Mapping[str, Any]) -> None:
        """Submit a registration.

        Doctor and coordinator sign-ups never create a session. Patient and admin
        sign-ups log in when the backend answers with a token for an active
        account. Callers check ``state.is_authenticated`` to pick the next screen.
        """
        self._epoch += 1
        epoch = self._epoch
        self._set_state(is_loading=True, error=None)
        request = {**dict(data), **dict(self.profile.register_extra)}
        try:
            body = await self.backend.register(self.namespace, request)
            if not isinstance(body, Mapping):
                raise RequestRejected("Registration failed")
            payload = extract_auth_payload(body, self.profile.principal_keys)
            principal = None
            if payload.principal is not None:
                principal = self._accept_principal(payload, require_token=False)
        except BackendError as exc:
            error = map_backend_error(exc)
            self._fail("register", epoch, error, title="Registration Failed")
            raise error from exc
        except PortalAuthError as exc:
            self._fail("register", epoch, exc, title="Registration Failed")
            raise

        if not self._is_current(epoch):
            self._discard_stale("register")
            return

        incr_metric("auth.register", namespace=self.namespace)
        auto_login = (
            self.profile.auto_login_on_register
            and principal is not None
            and payload.access_token is not None
            and principal.is_active
        )
        if not auto_login:
            log_event(
                "registration_submitted",
                namespace=self.namespace,
                principal_id=principal.id if principal else None,
                account_status=principal.account_status if principal else None,
                session_created=False,
            )
            self._set_state(is_loading=False)
            return

        assert principal is not None
        self._start_session(payload, principal)
        log_event("registration_submitted", namespace=self.namespace, principal_id=principal.id, session_created=True)
        self.navigator.replace(dispatch_route(principal.role, principal.account_status))

    # -- logout -----------------------------------------------------------

    async def logout(self) -> None:
        """Revoke remotely if possible, then always destroy the local session."""
        self._epoch += 1
        token = self._state.token or self.store.load_token(self.namespace)
        self._set_state(is_loading=True)
        try:
            if token:
                await self.backend.logout(self.namespace, token)
        except Exception as exc:
            incr_metric("auth.logout_revoke_failed", namespace=self.namespace)
            log_event(
                "logout_revoke_failed",
                level=logging.WARNING,
                namespace=self.namespace,
                error=str(exc),
            )
        finally:
            self.store.clear(self.namespace)
            self._refresh_token = None
            self._set_state(principal=None, token=None, error=None, is_loading=False)
            log_event("logout_completed", namespace=self.namespace)
            self.navigator.replace(login_route(self.namespace))

    # -- refresh ----------------------------------------------------------

    async def refresh_principal(self) -> None:
        """Re-fetch the profile and overwrite the stored principal; the token is untouched."""
        token = self._state.token
        if not token:
            return
        epoch = self._epoch
        try:
            try:
                body = await self.backend.get_profile(self.namespace, token)
            except BackendError as exc:
                if exc.status_code != 401:
                    raise
                # Expired access token: rotate once and retry. A failed rotation already logged out.
                if not await self.refresh_token():
                    return
                token = self._state.token
                if not token:
                    return
                body = await self.backend.get_profile(self.namespace, token)
            payload = extract_auth_payload(body, self.profile.principal_keys)
            principal = self._accept_principal(payload, require_token=False)
        except BackendError as exc:
            self._surface("refresh_principal", epoch, map_backend_error(exc))
            return
        except PortalAuthError as exc:
            self._surface("refresh_principal", epoch, exc)
            return

        if not self._is_current(epoch) or self._state.token != token:
            self._discard_stale("refresh_principal")
            return
        self.store.save_principal(self.namespace, principal)
        self._set_state(principal=principal)
        log_event("principal_refreshed", namespace=self.namespace, principal_id=principal.id)

    async def refresh_token(self) -> bool:
        """Rotate the access token. A failed rotation ends the local session."""
        token = self._state.token
        if not token:
            return False
        epoch = self._epoch
        try:
            body = await self.backend.refresh(self.namespace, token, self._refresh_token)
        except BackendError as exc:
            if not self._is_current(epoch):
                self._discard_stale("refresh_token")
                return False
            log_event(
                "token_refresh_failed",
                level=logging.WARNING,
                namespace=self.namespace,
                status_code=exc.status_code,
            )
            self._expire_session()
            return False

        payload = extract_auth_payload(body, self.profile.principal_keys)
        if not self._is_current(epoch) or self._state.token != token:
            self._discard_stale("refresh_token")
            return False
        if not payload.access_token:
            log_event("token_refresh_failed", level=logging.WARNING, namespace=self.namespace, reason="no_token")
            self._expire_session()
            return False

        if payload.refresh_token:
            self._refresh_token = payload.refresh_token
        self.store.save_token(self.namespace, payload.access_token, payload.refresh_token)
        self._set_state(token=payload.access_token)
        incr_metric("auth.token_refreshed", namespace=self.namespace)
        log_event("token_refreshed", namespace=self.namespace)
        return True

    # -- helpers ----------------------------------------------------------

    def _accept_principal(self, payload: AuthPayload, *, require_token: bool) -> Principal:
        if payload.principal is None or (require_token and not payload.access_token):
            raise RequestRejected("Invalid response structure from server")
        try:
            principal = normalize_principal(payload.principal, default_role=self.namespace)
        except (ValueError, ValidationError) as exc:
            raise RequestRejected("Invalid response structure from server") from exc
        if not role_matches_namespace(principal.role, self.namespace):
            raise RoleMismatch(f"Access denied. This account is not a {self.namespace} account.")
        return principal

    def _start_session(self, payload: AuthPayload, principal: Principal) -> None:
        assert payload.access_token is not None
        session = Session(
            access_token=payload.access_token,
            principal=principal,
            role=self.namespace,
            refresh_token=payload.refresh_token,
        )
        self.store.save(self.namespace, session)
        self._refresh_token = payload.refresh_token
        self._set_state(principal=principal, token=payload.access_token, is_loading=False, error=None)

    def _expire_session(self) -> None:
        self.store.clear(self.namespace)
        self._refresh_token = None
        self._set_state(principal=None, token=None, is_loading=False)
        self.navigator.replace(login_route(self.namespace))

    def _fail(self, operation: str, epoch: int, error: PortalAuthError, *, title: str) -> None:
        incr_metric(f"auth.{operation}", namespace=self.namespace, outcome=error.kind)
        log_event(
            f"{operation}_failed",
            level=logging.WARNING,
            namespace=self.namespace,
            kind=error.kind,
            status_code=error.status_code,
        )
        if not self._is_current(epoch):
            return
        self._set_state(is_loading=False, error=error.message)
        self.notifier.error(title, error.message)

    def _surface(self, operation: str, epoch: int, error: PortalAuthError) -> None:
        log_event(
            f"{operation}_failed",
            level=logging.WARNING,
            namespace=self.namespace,
            kind=error.kind,
            status_code=error.status_code,
        )
        if not self._is_current(epoch):
            return
        self._set_state(error=error.message)
        self.notifier.error("Request Failed", error.message)


def create_auth_service(
    role: str,
    *,
    store: SessionStore,
    backend: AuthBackend,
    navigator: Navigator | None = None,
    notifier: Notifier | None = None,
) -> RoleAuthService:
    """Build the auth service for one of the four role namespaces."""
    profile = get_role_profile(normalize_namespace(role))
    return RoleAuthService(
        profile,
        store=store,
        backend=backend,
        navigator=navigator or Navigator(),
        notifier=notifier or Notifier(),
    )
