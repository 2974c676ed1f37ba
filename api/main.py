"""
api/main.py -- FastAPI application entry point for the OASIS bridge.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost, i.e. reverse registration order):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. log_requests          -- method / path / status / latency
  5. SessionMiddleware     -- signed-cookie session holding the OASIS marker
  6. session_guard         -- stale registry token advisory (needs the session)

Lifespan checks the registry configuration, builds the account store and the
registry client, and wires the login services onto app.state. Services are
constructed here and injected; nothing in auth/ or registry/ looks them up
globally.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.concurrency import run_in_threadpool
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.decider import AuthenticationDecider
from auth.dependencies import get_current_user, try_get_current_user
from auth.messages import Messenger
from auth.models import LocalAccount
from auth.reconciler import AccountReconciler
from auth.session import SessionFinalizer, SessionGuard, SessionMarker
from auth.store import AccountStore
from core.config import Settings, get_settings
from registry.client import RegistryClient
from registry.models import RegistryMisconfigured

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("oasisbridge.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, settings: Settings, store: AccountStore, client: RegistryClient) -> None:
    """Build the login services from their collaborators and attach them to app.state.

    Shared by the real lifespan and the test lifespan so tests exercise the
    same wiring with in-memory stores and a fake registry transport.
    """
    app.state.settings = settings
    app.state.account_store = store
    app.state.registry_client = client
    app.state.decider = AuthenticationDecider(
        store=store,
        client=client,
        reconciler=AccountReconciler(store),
        finalizer=SessionFinalizer(),
        settings=settings,
    )
    app.state.session_guard = SessionGuard()


def check_registry_settings(settings: Settings) -> None:
    """Fail startup when registry settings are missing, except in DEBUG mode.

    In DEBUG mode the app starts anyway so local non-member accounts can log
    in; every member login then fails fast with AuthError.MISCONFIGURED.
    """
    missing = settings.missing_registry_settings()
    if not missing:
        return
    logger.critical("OASIS registry is not configured; missing %s", ", ".join(missing))
    if not settings.debug:
        raise RegistryMisconfigured(f"Missing required settings: {', '.join(missing)}")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.
    """
    logger.info("OASIS bridge API starting up")
    settings = get_settings()
    check_registry_settings(settings)
    store = AccountStore()
    client = RegistryClient(settings)
    wire_services(app, settings, store, client)
    logger.info("Auth initialized (registry_configured=%s)", settings.registry_configured)

    yield

    client.close()
    store.close()
    logger.info("OASIS bridge API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="OASIS Bridge API",
    description="Login federation between local accounts and the OASIS membership registry.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced with auth-protected routes below.
    docs_url=None,
    redoc_url=None,
)


# ---------------------------------------------------------------------------
# Session guard middleware
#
# Registered before SessionMiddleware so it runs INSIDE it and can read
# request.session. Requests without a session marker pass straight through;
# the account lookup is a blocking DB call and runs in the thread pool.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def session_guard(request: Request, call_next):
    stale = False
    guard: SessionGuard | None = getattr(request.app.state, "session_guard", None)
    session = request.session if "session" in request.scope else None
    if guard is not None and SessionMarker.from_session(session) is not None:
        account = await run_in_threadpool(try_get_current_user, request)
        messenger = Messenger()
        if not guard.check(session, account, messenger):
            messenger.flash(session)
            stale = True
    response = await call_next(request)
    if stale:
        response.headers["X-OASIS-Session-Warning"] = "stale-token"
    return response


app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie="oasisbridge_session",
    same_site="lax",
    https_only=_settings.secure_cookies,
)


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Outer middleware
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    expose_headers=["X-OASIS-Session-Warning"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(user: LocalAccount = Depends(get_current_user)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="OASIS Bridge API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: LocalAccount = Depends(get_current_user)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="OASIS Bridge API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error leaves in the ErrorResponse envelope, the same shape the login
# route uses for failed logins.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "?")
    response = _error(429, "rate_limited", "Too many login attempts. Please wait and try again.", str(exc.detail))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured dict details (from auth.dependencies) pass through as the error field."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Logged server-side only; the client gets a generic message.
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and whether the registry is configured."""
    settings: Settings = getattr(request.app.state, "settings", get_settings())
    return HealthResponse(version=VERSION, registry_configured=settings.registry_configured)
