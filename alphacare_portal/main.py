import logging
import secrets
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from alphacare_portal.auth.dependencies import GuardRedirect
from alphacare_portal.auth.errors import PortalAuthError
from alphacare_portal.auth.storage import BrowserStorageRegistry
from alphacare_portal.config import settings
from alphacare_portal.observability import configure_logging, incr_metric, log_event
from alphacare_portal.routers import auth_routes, dashboards, oauth

configure_logging(settings.log_level)

app = FastAPI(title="AlphaCare Portal", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def attach_browser_id(request: Request, call_next):
    browser_id = request.cookies.get(settings.browser_cookie_name)
    issued = not BrowserStorageRegistry.is_valid_browser_id(browser_id)
    if issued:
        browser_id = secrets.token_urlsafe(16)
    request.state.browser_id = browser_id
    response = await call_next(request)
    if issued:
        response.set_cookie(
            settings.browser_cookie_name,
            browser_id,
            httponly=True,
            samesite="lax",
        )
    return response


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or str(uuid4())
    )
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(PortalAuthError)
async def handle_portal_auth_error(request: Request, exc: PortalAuthError):
    incr_metric("http.auth_error", kind=exc.kind)
    log_event(
        "portal_auth_error",
        level=logging.WARNING,
        request_id=getattr(request.state, "request_id", None),
        path=request.url.path,
        kind=exc.kind,
    )
    return JSONResponse(status_code=exc.http_status, content={"detail": exc.to_detail()})


@app.exception_handler(GuardRedirect)
async def handle_guard_redirect(request: Request, exc: GuardRedirect):
    return RedirectResponse(exc.location, status_code=303)


app.include_router(auth_routes.router)
app.include_router(oauth.router)
app.include_router(dashboards.router)


@app.get("/")
async def root():
    return {"status": "ok", "service": "alphacare-portal"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
