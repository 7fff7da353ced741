from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from alphacare_portal.auth.dependencies import PortalContext, get_portal_context
from alphacare_portal.auth.navigation import DeferredScheduler
from alphacare_portal.auth.oauth import OAuthCompletionFlow, OAuthTransferState, get_authorize_url
from alphacare_portal.models.responses import OAuthCallbackResponse

router = APIRouter(prefix="/auth", tags=["oauth"])


@router.get("/google")
async def start_oauth(ctx: PortalContext = Depends(get_portal_context)):
    """Send the browser to the identity provider's consent screen."""
    url = await get_authorize_url(ctx.backend)
    return RedirectResponse(url, status_code=307)


@router.get("/callback", response_model=OAuthCallbackResponse)
async def oauth_callback(request: Request, ctx: PortalContext = Depends(get_portal_context)):
    """Landing page for the provider redirect.

    The delayed redirect is returned as a ``Refresh`` header so the browser
    shows the result before moving on.
    """
    flow = OAuthCompletionFlow(
        store=ctx.store,
        backend=ctx.backend,
        navigator=ctx.navigator,
        notifier=ctx.notifier,
        scheduler=DeferredScheduler(),
    )
    try:
        await flow.run(OAuthTransferState.from_query(dict(request.query_params)))
        payload = OAuthCallbackResponse(
            status=flow.status,
            message=flow.message,
            redirect_to=flow.redirect_to,
            redirect_after_seconds=flow.redirect_delay_seconds,
            notifications=ctx.notifier.drain(),
        )
    finally:
        flow.dispose()

    headers = {}
    if payload.redirect_to is not None:
        headers["Refresh"] = f"{payload.redirect_after_seconds:g}; url={payload.redirect_to}"
    return JSONResponse(content=payload.model_dump(), headers=headers)
