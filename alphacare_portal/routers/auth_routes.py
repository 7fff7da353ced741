from typing import Any

from fastapi import APIRouter, Body, Depends, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from alphacare_portal.auth.dependencies import (
    PortalContext,
    build_auth_service,
    get_portal_context,
    resolve_namespace,
)
from alphacare_portal.auth.errors import PortalAuthError
from alphacare_portal.auth.oauth import complete_oauth_registration
from alphacare_portal.auth.service import RoleAuthService
from alphacare_portal.models.auth import (
    LOGIN_REQUEST_MODELS,
    REGISTER_REQUEST_MODELS,
    BackendPayload,
    OAuthRegistrationRequest,
)
from alphacare_portal.models.principal import PrincipalSummary
from alphacare_portal.models.responses import AuthActionResponse, SessionResponse

router = APIRouter(prefix="/api/portal", tags=["auth"])


def _parse(model: type[BackendPayload], body: dict[str, Any]) -> BackendPayload:
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())


def _action_response(ctx: PortalContext, service: RoleAuthService) -> AuthActionResponse:
    state = service.state
    return AuthActionResponse(
        role=service.namespace,
        authenticated=state.is_authenticated,
        principal=PrincipalSummary.from_principal(state.principal) if state.principal else None,
        redirect_to=ctx.navigator.current,
        notifications=ctx.notifier.drain(),
    )


def _error_response(ctx: PortalContext, exc: PortalAuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.to_detail(), "notifications": ctx.notifier.drain()},
    )


@router.post("/{role}/login", response_model=AuthActionResponse)
async def login(
    role: str,
    body: dict[str, Any] = Body(...),
    ctx: PortalContext = Depends(get_portal_context),
):
    """Log in to one portal. Patients use a username, every other role an email."""
    namespace = resolve_namespace(role)
    credentials = _parse(LOGIN_REQUEST_MODELS[namespace], body)
    service = build_auth_service(ctx, namespace)
    await service.bootstrap()
    try:
        await service.login(credentials.to_backend())
    except PortalAuthError as exc:
        return _error_response(ctx, exc)
    return _action_response(ctx, service)


@router.post("/{role}/register", response_model=AuthActionResponse, status_code=status.HTTP_201_CREATED)
async def register(
    role: str,
    body: dict[str, Any] = Body(...),
    ctx: PortalContext = Depends(get_portal_context),
):
    namespace = resolve_namespace(role)
    data = _parse(REGISTER_REQUEST_MODELS[namespace], body)
    service = build_auth_service(ctx, namespace)
    await service.bootstrap()
    try:
        await service.register(data.to_backend())
    except PortalAuthError as exc:
        return _error_response(ctx, exc)
    return _action_response(ctx, service)


@router.post("/{role}/logout", response_model=AuthActionResponse)
async def logout(role: str, ctx: PortalContext = Depends(get_portal_context)):
    """Always succeeds: the local session is destroyed even if revocation fails."""
    service = build_auth_service(ctx, resolve_namespace(role))
    await service.bootstrap()
    await service.logout()
    return _action_response(ctx, service)


@router.post("/{role}/refresh", response_model=AuthActionResponse)
async def refresh(role: str, ctx: PortalContext = Depends(get_portal_context)):
    service = build_auth_service(ctx, resolve_namespace(role))
    await service.bootstrap()
    await service.refresh_principal()
    return _action_response(ctx, service)


@router.get("/{role}/session", response_model=SessionResponse)
async def get_session(role: str, ctx: PortalContext = Depends(get_portal_context)):
    service = build_auth_service(ctx, resolve_namespace(role))
    await service.bootstrap()
    state = service.state
    return SessionResponse(
        role=service.namespace,
        authenticated=state.is_authenticated,
        principal=PrincipalSummary.from_principal(state.principal) if state.principal else None,
    )


@router.post("/oauth/complete-registration", response_model=AuthActionResponse, status_code=status.HTTP_201_CREATED)
async def oauth_complete_registration(
    data: OAuthRegistrationRequest,
    ctx: PortalContext = Depends(get_portal_context),
):
    try:
        principal = await complete_oauth_registration(
            data.to_backend(),
            store=ctx.store,
            backend=ctx.backend,
            navigator=ctx.navigator,
            notifier=ctx.notifier,
        )
    except PortalAuthError as exc:
        return _error_response(ctx, exc)
    return AuthActionResponse(
        role="doctor",
        authenticated=ctx.store.load("doctor") is not None,
        principal=PrincipalSummary.from_principal(principal),
        redirect_to=ctx.navigator.current,
        notifications=ctx.notifier.drain(),
    )
