"""Post-authentication routing.

The only place that decides where a user lands after login, registration,
OAuth completion or logout.
"""

from __future__ import annotations

from typing import Final

from alphacare_portal.domain.normalization import normalize_account_status
from alphacare_portal.domain.roles import namespace_for_role, normalize_role

ADMIN_DASHBOARD: Final[str] = "/admin/dashboard"

DASHBOARD_ROUTES: Final[dict[str, str]] = {
    "doctor": "/dashboard",
    "patient": "/patient/dashboard",
    "coordinator": "/coordinator/dashboard",
    "admin": ADMIN_DASHBOARD,
    "super_admin": ADMIN_DASHBOARD,
}

LOGIN_ROUTES: Final[dict[str, str]] = {
    "doctor": "/doctor/login",
    "patient": "/patient/login",
    "coordinator": "/coordinator/login",
    "admin": "/admin/login",
}


def login_route(role: str) -> str:
    return LOGIN_ROUTES[namespace_for_role(role)]


def dispatch_route(role: str, account_status: str | None = "active") -> str:
    """Landing route for ``role``; accounts that are not active go back to their login page."""
    normalized = normalize_role(role)
    if normalize_account_status(account_status) != "active":
        return login_route(normalized)
    return DASHBOARD_ROUTES[normalized]
