"""
auth/tokens.py -- JWT and password hashing utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       account_id, username and expiry. This is the host application's
       "logged in" state; the OASIS session marker lives separately in the
       Starlette session. Verification returns None on any failure.

  Passwords: bcrypt directly (no passlib wrapper) over a base64 SHA-256
       digest, so passwords of any length fit bcrypt's 72-byte input.
       Member passwords are re-hashed on every successful registry login
       so a local fallback check always sees the password the registry
       last accepted. _DUMMY_HASH keeps verify time constant when no
       account matched.

  SECRET_KEY: sourced from core.config.get_settings().

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.models import LocalAccount
from core.config import get_settings

logger = logging.getLogger("oasisbridge.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def _prehash(plain: str) -> bytes:
    # bcrypt rejects input over 72 bytes; registry passwords may be longer.
    return base64.b64encode(hashlib.sha256(plain.encode("utf-8")).digest())


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the SHA-256 digest of the given plaintext password."""
    return bcrypt.hashpw(_prehash(plain), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches a hash from hash_password()."""
    try:
        return bcrypt.checkpw(_prehash(plain), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash or a password bcrypt refuses to process.
        return False


# Computed once at module load so the first failed login is not measurably
# faster than later ones.
_DUMMY_HASH: str = hash_password("oasisbridge_timing_dummy")


def authenticate_account(account: LocalAccount | None, password: str) -> LocalAccount | None:
    """Verify a local password against an already-resolved account.

    Always runs bcrypt, even when there is no account or no stored hash, so
    response time does not reveal whether the identifier exists.

    Returns the account on success, None on any failure (unknown account,
    wrong password, blocked account).
    """
    if account is None or account.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, account.hashed_password):
        return None
    if not account.is_active:
        return None
    return account


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(account_id: int, username: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for the host application's login state.

    expire_seconds of 0 uses Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": username,
        "account_id": account_id,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "account_id" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="lax": not sent on cross-site POST.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
