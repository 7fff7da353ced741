import asyncio
import json

import pytest

from alphacare_portal.auth.errors import (
    AccountPendingVerification,
    OAuthMissingToken,
    OAuthProviderError,
    RequestRejected,
)
from alphacare_portal.auth.navigation import DeferredScheduler, Navigator
from alphacare_portal.auth.notifications import Notifier
from alphacare_portal.auth.oauth import (
    OAuthCompletionFlow,
    OAuthTransferState,
    complete_oauth_registration,
    get_authorize_url,
)
from alphacare_portal.auth.storage import MemoryStorage, SessionStore
from alphacare_portal.providers.backend.client import BackendError


class FakeOAuthBackend:
    def __init__(self, session=None, authorize_url="https://accounts.example/consent", registration=None):
        self.session = session
        self.authorize_url = authorize_url
        self.registration = registration
        self.session_tokens: list[str] = []
        self.registrations: list[dict] = []

    async def get_session(self, token):
        self.session_tokens.append(token)
        if isinstance(self.session, BaseException):
            raise self.session
        return self.session

    async def get_oauth_authorize_url(self):
        if isinstance(self.authorize_url, BaseException):
            raise self.authorize_url
        return self.authorize_url

    async def complete_oauth_registration(self, data):
        self.registrations.append(data)
        if isinstance(self.registration, BaseException):
            raise self.registration
        return self.registration


def _flow(backend, storage=None):
    storage = storage if storage is not None else MemoryStorage()
    scheduler = DeferredScheduler()
    flow = OAuthCompletionFlow(
        store=SessionStore(storage),
        backend=backend,
        navigator=Navigator(),
        notifier=Notifier(),
        scheduler=scheduler,
        success_delay_seconds=1.5,
        error_delay_seconds=3.0,
    )
    return flow, storage, scheduler


def test_transfer_state_from_query_string():
    state = OAuthTransferState.from_query("?access_token=abc123&extra=1")
    assert state.access_token == "abc123"
    assert state.error is None

    assert OAuthTransferState.from_query({"error": "access_denied"}).error == "access_denied"
    assert OAuthTransferState.from_query("access_token=").access_token is None


def test_provider_error_shows_error_and_returns_to_login():
    flow, storage, scheduler = _flow(FakeOAuthBackend())

    status = asyncio.run(flow.run(OAuthTransferState(error="access_denied")))

    assert status == "error"
    assert isinstance(flow.error, OAuthProviderError)
    assert flow.message == "Authentication failed: access_denied"
    assert storage.as_dict() == {}
    assert flow.navigator.history == []
    assert scheduler.pending[0].delay == 3.0

    scheduler.run_pending()
    assert flow.status == "redirected"
    assert flow.navigator.history == [("push", "/doctor/login")]


def test_missing_token_is_an_error():
    flow, storage, _ = _flow(FakeOAuthBackend())

    asyncio.run(flow.run(OAuthTransferState()))

    assert isinstance(flow.error, OAuthMissingToken)
    assert flow.message == "No access token received"
    assert flow.redirect_to == "/doctor/login"
    assert storage.as_dict() == {}


def test_doctor_session_is_established_and_redirected_after_delay():
    backend = FakeOAuthBackend(session={"user": {"id": "d-1", "role": "doctor", "fullName": "Dr. Ada"}})
    flow, storage, scheduler = _flow(backend)

    status = asyncio.run(flow.run(OAuthTransferState(access_token="abc123")))

    assert status == "success"
    assert flow.message == "Authentication successful! Redirecting..."
    assert backend.session_tokens == ["abc123"]
    assert set(storage.as_dict()) == {"accessToken", "user"}
    assert storage.get_item("accessToken") == "abc123"
    assert json.loads(storage.get_item("user"))["full_name"] == "Dr. Ada"
    assert flow.notifier.items[0].description == "Welcome back, Dr. Ada!"
    assert flow.navigator.history == []
    assert scheduler.pending[0].delay == 1.5

    scheduler.run_pending()
    assert flow.navigator.history == [("push", "/dashboard")]


def test_failed_session_fetch_leaves_no_orphan_token():
    backend = FakeOAuthBackend(session=BackendError("HTTP 500", status_code=500, server_message="boom"))
    flow, storage, _ = _flow(backend)

    asyncio.run(flow.run(OAuthTransferState(access_token="abc123")))

    assert flow.status == "error"
    assert flow.message == "Failed to complete authentication"
    assert storage.as_dict() == {}
    assert flow.notifier.items[0].description == "boom"


def test_failed_session_fetch_restores_previous_doctor_token():
    storage = MemoryStorage({"accessToken": "old-token", "user": json.dumps({"id": "d-0", "role": "doctor"})})
    flow, _, _ = _flow(FakeOAuthBackend(session={"unexpected": True}), storage)

    asyncio.run(flow.run(OAuthTransferState(access_token="abc123")))

    assert flow.status == "error"
    assert storage.get_item("accessToken") == "old-token"


def test_admin_principal_is_stored_in_admin_namespace():
    backend = FakeOAuthBackend(session={"data": {"user": {"id": "a-1", "role": "super_admin"}}})
    flow, storage, scheduler = _flow(backend)

    asyncio.run(flow.run(OAuthTransferState(access_token="abc123")))

    assert set(storage.as_dict()) == {"adminAccessToken", "admin"}
    scheduler.run_pending()
    assert flow.navigator.current == "/admin/dashboard"


def test_pending_account_is_not_signed_in():
    backend = FakeOAuthBackend(session={"user": {"id": "d-1", "role": "doctor", "accountStatus": "pending"}})
    flow, storage, _ = _flow(backend)

    asyncio.run(flow.run(OAuthTransferState(access_token="abc123")))

    assert isinstance(flow.error, AccountPendingVerification)
    assert storage.as_dict() == {}
    assert flow.redirect_to == "/doctor/login"


def test_dispose_cancels_pending_redirect():
    backend = FakeOAuthBackend(session={"user": {"id": "d-1", "role": "doctor"}})
    flow, _, scheduler = _flow(backend)

    asyncio.run(flow.run(OAuthTransferState(access_token="abc123")))
    flow.dispose()

    assert scheduler.run_pending() == 0
    assert flow.navigator.history == []


def test_callback_state_is_consumed_once():
    flow, _, _ = _flow(FakeOAuthBackend())
    asyncio.run(flow.run(OAuthTransferState(error="access_denied")))

    with pytest.raises(RuntimeError):
        asyncio.run(flow.run(OAuthTransferState(error="access_denied")))


def test_authorize_url_errors_are_wrapped():
    assert asyncio.run(get_authorize_url(FakeOAuthBackend())) == "https://accounts.example/consent"

    backend = FakeOAuthBackend(authorize_url=BackendError("down"))
    with pytest.raises(OAuthProviderError):
        asyncio.run(get_authorize_url(backend))


def test_oauth_registration_creates_session_only_for_active_doctor():
    storage = MemoryStorage()
    navigator = Navigator()
    notifier = Notifier()
    pending = FakeOAuthBackend(
        registration={"data": {"doctor": {"id": "d-1", "accountStatus": "pending"}, "accessToken": "tok"}}
    )
    principal = asyncio.run(
        complete_oauth_registration(
            {"email": "d@example.com", "oauthToken": "o-1"},
            store=SessionStore(storage),
            backend=pending,
            navigator=navigator,
            notifier=notifier,
        )
    )
    assert principal.account_status == "pending_verification"
    assert notifier.items[0].title == "Registration Submitted"
    assert storage.as_dict() == {}
    assert navigator.history == []

    active = FakeOAuthBackend(registration={"data": {"doctor": {"id": "d-2"}, "accessToken": "tok-2"}})
    asyncio.run(
        complete_oauth_registration(
            {"email": "e@example.com", "oauthToken": "o-2"},
            store=SessionStore(storage),
            backend=active,
            navigator=navigator,
        )
    )
    assert storage.get_item("accessToken") == "tok-2"
    assert navigator.current == "/dashboard"


def test_default_scheduler_redirects_on_the_event_loop():
    backend = FakeOAuthBackend(session={"user": {"id": "c-1", "role": "coordinator"}})
    navigator = Navigator()
    flow = OAuthCompletionFlow(
        store=SessionStore(MemoryStorage()),
        backend=backend,
        navigator=navigator,
        notifier=Notifier(),
        success_delay_seconds=0.01,
    )

    async def scenario():
        await flow.run(OAuthTransferState(access_token="abc123"))
        assert navigator.history == []
        await asyncio.sleep(0.05)

    asyncio.run(scenario())

    assert navigator.history == [("push", "/coordinator/dashboard")]


def test_oauth_registration_rejection_is_notified():
    notifier = Notifier()
    backend = FakeOAuthBackend(
        registration=BackendError("HTTP 409", status_code=409, server_message="Email already registered")
    )

    with pytest.raises(RequestRejected):
        asyncio.run(
            complete_oauth_registration(
                {"email": "d@example.com", "oauthToken": "o-1"},
                store=SessionStore(MemoryStorage()),
                backend=backend,
                navigator=Navigator(),
                notifier=notifier,
            )
        )

    assert notifier.items[0].title == "Registration Failed"
    assert notifier.items[0].description == "Email already registered"
