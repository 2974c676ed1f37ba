"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two transports are checked in priority order:
  1. JWT cookie ("access_token") -- set by POST /api/v1/auth/login.
  2. Authorization: Bearer <token> header -- API clients.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import LocalAccount
from auth.tokens import decode_access_token


def try_get_current_user(request: Request) -> LocalAccount | None:
    """Resolve the request's account from the JWT cookie or Bearer header.

    Returns None when no valid token is present or the account is gone or
    blocked. Never raises.
    """
    store = request.app.state.account_store

    token: str | None = request.cookies.get("access_token")
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    if not token:
        return None

    payload = decode_access_token(token)
    if payload is None:
        return None
    account = store.get_by_id(payload["account_id"])
    if account is None or not account.is_active:
        return None
    return account


def get_current_user(request: Request) -> LocalAccount:
    """Require authentication. Raises HTTP 401 if the request is not authenticated."""
    account = try_get_current_user(request)
    if account is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return account

