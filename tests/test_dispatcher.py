import pytest

from alphacare_portal.auth.dispatcher import dispatch_route, login_route


def test_dispatch_routes_per_role():
    assert dispatch_route("doctor") == "/dashboard"
    assert dispatch_route("patient") == "/patient/dashboard"
    assert dispatch_route("coordinator") == "/coordinator/dashboard"
    assert dispatch_route("admin") == "/admin/dashboard"
    assert dispatch_route("super_admin") == "/admin/dashboard"
    assert dispatch_route("moderator") == "/admin/dashboard"


def test_dispatch_sends_inactive_accounts_to_their_login_page():
    assert dispatch_route("doctor", "pending_verification") == "/doctor/login"
    assert dispatch_route("coordinator", "suspended") == "/coordinator/login"
    assert dispatch_route("super_admin", "pending") == "/admin/login"
    assert dispatch_route("patient", None) == "/patient/dashboard"


def test_login_routes():
    assert login_route("doctor") == "/doctor/login"
    assert login_route("patient") == "/patient/login"
    assert login_route("coordinator") == "/coordinator/login"
    assert login_route("super_admin") == "/admin/login"


def test_unknown_role_has_no_route():
    with pytest.raises(ValueError):
        dispatch_route("nurse")
    with pytest.raises(ValueError):
        login_route("")
