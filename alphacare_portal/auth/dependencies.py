from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status

from alphacare_portal.auth.guard import RouteGuard
from alphacare_portal.auth.navigation import Navigator
from alphacare_portal.auth.notifications import Notifier
from alphacare_portal.auth.service import RoleAuthService, create_auth_service
from alphacare_portal.auth.storage import BrowserStorageRegistry, SessionStore
from alphacare_portal.config import settings
from alphacare_portal.domain.roles import normalize_namespace
from alphacare_portal.models.principal import Principal
from alphacare_portal.providers.backend.client import BackendClient


_storage_registry = BrowserStorageRegistry(
    settings.storage_backend,
    settings.storage_dir,
    max_browsers=settings.storage_max_browsers,
)
_backend_client = BackendClient()


class GuardRedirect(Exception):
    """Raised by guarded routes when the browser must go to a login page."""

    def __init__(self, location: str) -> None:
        super().__init__(location)
        self.location = location


@dataclass
class PortalContext:
    """Per-request view of one browser's storage plus navigation and toasts."""

    browser_id: str
    store: SessionStore
    backend: BackendClient
    navigator: Navigator
    notifier: Notifier


def get_storage_registry() -> BrowserStorageRegistry:
    return _storage_registry


def get_backend_client() -> BackendClient:
    return _backend_client


def get_portal_context(
    request: Request,
    registry: BrowserStorageRegistry = Depends(get_storage_registry),
    backend: BackendClient = Depends(get_backend_client),
) -> PortalContext:
    browser_id = getattr(request.state, "browser_id", None)
    if not registry.is_valid_browser_id(browser_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing browser session cookie",
        )
    return PortalContext(
        browser_id=browser_id,
        store=SessionStore(registry.get(browser_id)),
        backend=backend,
        navigator=Navigator(),
        notifier=Notifier(),
    )


def resolve_namespace(role: str) -> str:
    """Path parameter to storage namespace; unknown portals are 404."""
    try:
        return normalize_namespace(role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown portal: {role}",
        )


def build_auth_service(ctx: PortalContext, namespace: str) -> RoleAuthService:
    return create_auth_service(
        namespace,
        store=ctx.store,
        backend=ctx.backend,
        navigator=ctx.navigator,
        notifier=ctx.notifier,
    )


def require_session(role: str):
    """Dependency factory guarding a view on a live session of ``role``."""
    namespace = normalize_namespace(role)

    async def _require(ctx: PortalContext = Depends(get_portal_context)) -> Principal:
        guard = RouteGuard(build_auth_service(ctx, namespace), namespace)
        outcome = await guard.resolve()
        if not outcome.allowed or outcome.principal is None:
            raise GuardRedirect(ctx.navigator.current or outcome.redirect_to or "/")
        return outcome.principal

    return _require
