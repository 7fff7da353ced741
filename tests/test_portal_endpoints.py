import pytest
from fastapi.testclient import TestClient

from alphacare_portal.auth.dependencies import get_backend_client, get_storage_registry
from alphacare_portal.auth.storage import BrowserStorageRegistry
from alphacare_portal.config import settings
from alphacare_portal.main import app
from alphacare_portal.providers.backend.client import BackendError


class FakePortalBackend:
    def __init__(self):
        self.login_responses: dict[str, object] = {}
        self.register_responses: dict[str, object] = {}
        self.session_response: object = None
        self.registration_response: object = None
        self.logout_error: Exception | None = None
        self.calls: list[tuple] = []

    @staticmethod
    def _answer(value):
        if isinstance(value, BaseException):
            raise value
        return value

    async def login(self, namespace, credentials):
        self.calls.append(("login", namespace, credentials))
        return self._answer(self.login_responses[namespace])

    async def register(self, namespace, data):
        self.calls.append(("register", namespace, data))
        return self._answer(self.register_responses[namespace])

    async def logout(self, namespace, token):
        self.calls.append(("logout", namespace, token))
        if self.logout_error is not None:
            raise self.logout_error

    async def get_profile(self, namespace, token):
        raise BackendError("HTTP 500", status_code=500)

    async def refresh(self, namespace, token, refresh_token=None):
        raise BackendError("HTTP 401", status_code=401)

    async def get_oauth_authorize_url(self):
        return "https://accounts.example/consent"

    async def get_session(self, token):
        self.calls.append(("get_session", token))
        return self._answer(self.session_response)

    async def complete_oauth_registration(self, data):
        self.calls.append(("complete_oauth_registration", data))
        return self._answer(self.registration_response)


@pytest.fixture
def backend():
    fake = FakePortalBackend()
    registry = BrowserStorageRegistry()
    app.dependency_overrides[get_backend_client] = lambda: fake
    app.dependency_overrides[get_storage_registry] = lambda: registry
    yield fake
    app.dependency_overrides.clear()


def test_patient_login_opens_patient_dashboard_only(backend):
    backend.login_responses["patient"] = {
        "accessToken": "tok-p",
        "user": {"_id": "p-1", "username": "pat", "role": "patient"},
    }
    client = TestClient(app)

    response = client.post("/api/portal/patient/login", json={"username": "pat", "password": "pw"})
    assert response.status_code == 200
    body = response.json()
    assert body["authenticated"] is True
    assert body["redirect_to"] == "/patient/dashboard"
    assert body["principal"]["display_name"] == "pat"
    assert body["notifications"][0]["title"] == "Login Successful"
    assert settings.browser_cookie_name in response.cookies

    dashboard = client.get("/patient/dashboard")
    assert dashboard.status_code == 200
    assert dashboard.json()["principal"]["id"] == "p-1"

    doctor = client.get("/dashboard", follow_redirects=False)
    assert doctor.status_code == 303
    assert doctor.headers["location"] == "/doctor/login"


def test_login_body_is_validated_per_portal(backend):
    client = TestClient(app)

    assert client.post("/api/portal/doctor/login", json={"username": "x", "password": "pw"}).status_code == 422
    assert client.post("/api/portal/patient/login", json={"email": "p@example.com"}).status_code == 422
    assert client.post("/api/portal/nurse/login", json={"email": "n@example.com", "password": "pw"}).status_code == 404
    assert backend.calls == []


def test_pending_doctor_login_is_refused(backend):
    backend.login_responses["doctor"] = {
        "data": {"doctor": {"id": "d-1", "role": "doctor", "accountStatus": "pending"}, "accessToken": "tok"}
    }
    client = TestClient(app)

    response = client.post("/api/portal/doctor/login", json={"email": "d@example.com", "password": "pw"})

    assert response.status_code == 403
    assert response.json()["detail"]["kind"] == "account_pending_verification"
    assert response.json()["notifications"][0]["title"] == "Login Failed"
    assert client.get("/api/portal/doctor/session").json()["authenticated"] is False


def test_logout_always_clears_local_session(backend):
    backend.login_responses["coordinator"] = {
        "data": {"coordinator": {"id": "c-1", "role": "coordinator"}, "tokens": {"accessToken": "tok-c"}}
    }
    backend.logout_error = BackendError("connect failed")
    client = TestClient(app)
    client.post("/api/portal/coordinator/login", json={"email": "c@example.com", "password": "pw"})
    assert client.get("/api/portal/coordinator/session").json()["authenticated"] is True

    response = client.post("/api/portal/coordinator/logout")

    assert response.status_code == 200
    assert response.json()["redirect_to"] == "/coordinator/login"
    assert ("logout", "coordinator", "tok-c") in backend.calls
    assert client.get("/api/portal/coordinator/session").json()["authenticated"] is False


def test_sessions_are_isolated_per_browser(backend):
    backend.login_responses["admin"] = {"data": {"admin": {"id": "a-1", "role": "admin"}, "accessToken": "tok-a"}}
    first = TestClient(app)
    second = TestClient(app)

    first.post("/api/portal/admin/login", json={"email": "a@example.com", "password": "pw"})

    assert first.get("/admin/dashboard").status_code == 200
    assert second.get("/admin/dashboard", follow_redirects=False).status_code == 303


def test_doctor_registration_does_not_sign_in(backend):
    backend.register_responses["doctor"] = {
        "data": {"doctor": {"id": "d-1", "role": "doctor", "accountStatus": "pending"}}
    }
    client = TestClient(app)

    response = client.post(
        "/api/portal/doctor/register",
        json={
            "fullName": "Dr. Ada",
            "email": "d@example.com",
            "medicalRegistrationId": "MR-1",
            "specialty": "Cardiology",
            "password": "pw",
            "hospitalId": "h-1",
        },
    )

    assert response.status_code == 201
    assert response.json()["authenticated"] is False
    assert backend.calls[0][2]["medicalRegistrationId"] == "MR-1"


def test_oauth_callback_success_sets_refresh_redirect(backend):
    backend.session_response = {"user": {"id": "d-1", "role": "doctor", "fullName": "Dr. Ada"}}
    client = TestClient(app)

    response = client.get("/auth/callback", params={"access_token": "abc123"})

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert response.headers["Refresh"] == "1.5; url=/dashboard"
    assert client.get("/dashboard").json()["principal"]["display_name"] == "Dr. Ada"


def test_oauth_callback_error_redirects_to_doctor_login(backend):
    client = TestClient(app)

    response = client.get("/auth/callback", params={"error": "access_denied"})

    assert response.json()["status"] == "error"
    assert response.json()["message"] == "Authentication failed: access_denied"
    assert response.headers["Refresh"] == "3; url=/doctor/login"
    assert backend.calls == []


def test_oauth_start_redirects_to_provider(backend):
    client = TestClient(app)
    response = client.get("/auth/google", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "https://accounts.example/consent"


def test_login_page_reports_existing_session(backend):
    backend.login_responses["patient"] = {"accessToken": "tok-p", "user": {"id": "p-1", "role": "patient"}}
    client = TestClient(app)
    assert client.get("/patient/login").json()["authenticated"] is False

    client.post("/api/portal/patient/login", json={"username": "pat", "password": "pw"})

    assert client.get("/patient/login").json()["redirect_to"] == "/patient/dashboard"


def test_request_id_is_echoed(backend):
    response = TestClient(app).get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.json() == {"status": "healthy"}


def test_oauth_registration_failure_returns_notifications(backend):
    backend.registration_response = BackendError(
        "HTTP 409", status_code=409, server_message="Email already registered"
    )
    client = TestClient(app)

    response = client.post(
        "/api/portal/oauth/complete-registration",
        json={
            "email": "d@example.com",
            "oauthToken": "o-1",
            "fullName": "Dr. Ada",
            "medicalRegistrationId": "MR-1",
            "specialty": "Cardiology",
        },
    )

    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Email already registered"
    assert response.json()["notifications"] == [
        {"level": "error", "title": "Registration Failed", "description": "Email already registered"}
    ]
    assert backend.calls[0][1]["oauthToken"] == "o-1"


def test_cors_only_allows_configured_origins(backend):
    client = TestClient(app)

    foreign = client.get("/api/portal/doctor/session", headers={"Origin": "https://evil.example"})
    assert "access-control-allow-origin" not in foreign.headers

    allowed_origin = settings.cors_allow_origins[0]
    allowed = client.get("/api/portal/doctor/session", headers={"Origin": allowed_origin})
    assert allowed.headers["access-control-allow-origin"] == allowed_origin
    assert allowed.headers["access-control-allow-credentials"] == "true"


def test_cookieless_reads_do_not_grow_storage(backend):
    registry = app.dependency_overrides[get_storage_registry]()
    for _ in range(20):
        assert TestClient(app).get("/api/portal/doctor/session").json()["authenticated"] is False

    assert len(registry) == 0
