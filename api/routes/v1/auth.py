"""
api/routes/v1/auth.py -- Login, logout and member session endpoints.

Routes:
  POST /api/v1/auth/login           -- registry-or-local login; sets JWT cookie
  POST /api/v1/auth/logout          -- clears session + cookie; 302 to logout target
  GET  /api/v1/auth/me              -- current account info (requires auth)
  GET  /api/v1/auth/member-profile  -- 302 to the member's registry profile page
  GET  /api/v1/auth/messages        -- pop messages flashed into the session

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  Every credential failure returns the same "bad_credentials" error so the
  response never reveals which accounts exist.
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from collections.abc import MutableMapping

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.limiter import limiter
from api.models import (
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageItem,
    MessagesResponse,
)
from auth.decider import UNRECOGNIZED_CREDENTIALS, AuthenticationDecider, DecisionOutcome
from auth.dependencies import get_current_user, try_get_current_user
from auth.messages import Messenger, pop_flashed
from auth.models import LocalAccount
from auth.session import logout_redirect, member_profile_redirect
from auth.store import AccountStore
from auth.tokens import create_access_token, set_auth_cookie
from core.config import get_settings
from registry.models import AuthError

router = APIRouter()

# AuthError -> (HTTP status, error code). Anything not listed is a credential failure.
_FAILURE_STATUS: dict[AuthError, tuple[int, str]] = {
    AuthError.SERVICE_UNAVAILABLE: (503, "service_unavailable"),
    AuthError.INVALID_RESPONSE: (503, "service_unavailable"),
    AuthError.MISCONFIGURED: (503, "misconfigured"),
    AuthError.STORAGE_FAILURE: (500, "account_setup"),
    AuthError.UNKNOWN: (500, "authentication_error"),
}


def _request_session(request: Request) -> MutableMapping | None:
    # request.session asserts when SessionMiddleware is not installed.
    return request.session if "session" in request.scope else None


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(get_settings().login_rate_limit)
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate an email/username and password.

    Members are authenticated against the OASIS registry and their local
    account is created or synced; local non-member accounts are checked
    against their local password. Runs synchronously in FastAPI's thread
    pool -- the registry call is the only blocking step.
    """
    decider: AuthenticationDecider = request.app.state.decider
    store: AccountStore = request.app.state.account_store
    messenger = Messenger()

    outcome = decider.decide(
        body.identifier,
        body.password,
        session=_request_session(request),
        messenger=messenger,
        current_account=try_get_current_user(request),
    )
    messages = [MessageItem(**m) for m in messenger.as_dicts()]

    if not outcome.success:
        resp = _failure_response(outcome, messages)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    account = outcome.account
    if not account.is_active:
        # Registry sync already blocked the account; refuse like a bad password.
        session = _request_session(request)
        if session is not None:
            session.clear()
        resp = _failure_response(DecisionOutcome.failed(AuthError.INVALID_CREDENTIALS), messages)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    store.update_last_login(account.id)
    settings = get_settings()
    token = create_access_token(account.id, account.username)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 -- OAuth token type, not a password
            expires_in=settings.token_expire_seconds,
            account_id=account.id,
            username=account.username,
            member=outcome.member,
            messages=messages,
        ).model_dump(),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/messages", response_model=MessagesResponse)
def get_messages(request: Request) -> MessagesResponse:
    """Return and clear messages flashed into the session (e.g. stale-session advisories)."""
    session = _request_session(request)
    flashed = pop_flashed(session) if session is not None else []
    return MessagesResponse(messages=[MessageItem(**m) for m in flashed])


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout")
def logout(request: Request, current_user: LocalAccount = Depends(get_current_user)) -> RedirectResponse:
    """End the session. Registry members land on the member logout page, everyone else on the default."""
    session = _request_session(request)
    target = logout_redirect(session, get_settings())
    if session is not None:
        session.clear()
    resp = RedirectResponse(target, status_code=302)
    resp.delete_cookie("access_token")
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: LocalAccount = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated account."""
    return MeResponse(
        account_id=current_user.id,
        username=current_user.username,
        email=current_user.email,
        roles=sorted(current_user.roles),
        member=current_user.is_member,
        member_id=current_user.member_id,
    )


@router.get("/auth/member-profile")
def member_profile(
    request: Request,
    lang: str = "en",
    current_user: LocalAccount = Depends(get_current_user),
) -> RedirectResponse:
    """Send a member to their registry profile page, logged in via their registry token.

    Falls back to /api/v1/auth/me for non-members, or when the token, email
    or redirect URLs are missing.
    """
    target = member_profile_redirect(current_user, _request_session(request), get_settings(), lang)
    if target is None:
        return RedirectResponse("/api/v1/auth/me", status_code=302)
    return RedirectResponse(target, status_code=302)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _failure_response(outcome: DecisionOutcome, messages: list[MessageItem]) -> JSONResponse:
    status, code = _FAILURE_STATUS.get(outcome.error, (401, "bad_credentials"))
    if status == 401:
        message = UNRECOGNIZED_CREDENTIALS
    else:
        errors = [m.text for m in messages if m.level == "error"]
        message = errors[0] if errors else UNRECOGNIZED_CREDENTIALS
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(
            error=ErrorDetail(code=code, message=message),
            messages=messages,
        ).model_dump(),
    )
