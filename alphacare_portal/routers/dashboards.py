from fastapi import APIRouter, Depends

from alphacare_portal.auth.dependencies import (
    PortalContext,
    build_auth_service,
    get_portal_context,
    require_session,
)
from alphacare_portal.auth.dispatcher import dispatch_route
from alphacare_portal.domain.roles import NAMESPACES
from alphacare_portal.models.principal import Principal, PrincipalSummary
from alphacare_portal.models.responses import DashboardResponse

router = APIRouter(tags=["portal"])


def _dashboard(portal: str, principal: Principal) -> DashboardResponse:
    return DashboardResponse(portal=portal, principal=PrincipalSummary.from_principal(principal))


@router.get("/dashboard", response_model=DashboardResponse)
async def doctor_dashboard(principal: Principal = Depends(require_session("doctor"))):
    return _dashboard("doctor", principal)


@router.get("/patient/dashboard", response_model=DashboardResponse)
async def patient_dashboard(principal: Principal = Depends(require_session("patient"))):
    return _dashboard("patient", principal)


@router.get("/coordinator/dashboard", response_model=DashboardResponse)
async def coordinator_dashboard(principal: Principal = Depends(require_session("coordinator"))):
    return _dashboard("coordinator", principal)


@router.get("/admin/dashboard", response_model=DashboardResponse)
async def admin_dashboard(principal: Principal = Depends(require_session("admin"))):
    return _dashboard("admin", principal)


def _login_page(namespace: str):
    async def _page(ctx: PortalContext = Depends(get_portal_context)):
        service = build_auth_service(ctx, namespace)
        session = await service.bootstrap()
        return {
            "portal": namespace,
            "page": "login",
            "authenticated": session is not None,
            "redirect_to": (
                dispatch_route(session.principal.role, session.principal.account_status) if session else None
            ),
        }

    return _page


for _namespace in NAMESPACES:
    router.add_api_route(f"/{_namespace}/login", _login_page(_namespace), methods=["GET"])
