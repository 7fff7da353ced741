from typing import Any

from pydantic import BaseModel

from alphacare_portal.models.principal import PrincipalSummary


class AuthActionResponse(BaseModel):
    role: str
    authenticated: bool
    principal: PrincipalSummary | None = None
    redirect_to: str | None = None
    notifications: list[dict[str, Any]] = []


class SessionResponse(BaseModel):
    role: str
    authenticated: bool
    principal: PrincipalSummary | None = None


class OAuthCallbackResponse(BaseModel):
    status: str
    message: str
    redirect_to: str | None = None
    redirect_after_seconds: float | None = None
    notifications: list[dict[str, Any]] = []


class DashboardResponse(BaseModel):
    portal: str
    principal: PrincipalSummary
