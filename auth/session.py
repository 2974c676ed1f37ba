"""
auth/session.py -- The OASIS session marker: writing it, checking it, reading it.

The marker is a handful of registry values stored in the Starlette session
after a successful registry login:

    member            MemberID
    OasisAPIToken     registry API token (raw, never HTML-escaped)
    OasisRegCategory  membership category
    OasisOrchardRoles comma-separated registry roles (only when non-empty)

It identifies an externally-authenticated member for the rest of the session.
It is NOT refreshed from the registry; it is as old as the login that wrote
it, and it disappears when the session is cleared at logout.

SessionFinalizer writes the marker. SessionGuard inspects it on every
authenticated request. logout_redirect() and member_profile_redirect() read
it to pick redirect targets.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from dataclasses import dataclass
from urllib.parse import quote

from auth.messages import Messenger
from auth.models import LocalAccount
from core.config import Settings
from registry.models import RegistryRecord

logger = logging.getLogger("oasisbridge.session")

MEMBER_KEY = "member"
TOKEN_KEY = "OasisAPIToken"
CATEGORY_KEY = "OasisRegCategory"
ROLES_KEY = "OasisOrchardRoles"

STALE_SESSION_MESSAGE = (
    "Your OASIS session may have expired. Please log out and log in again if you experience any issues."
)


@dataclass(frozen=True)
class SessionMarker:
    member_id: str
    api_token: str
    reg_category: str = ""
    orchard_roles: str = ""

    @classmethod
    def from_session(cls, session: MutableMapping | None) -> SessionMarker | None:
        """Read the marker back, or None when the session carries no marker.

        Both the member and token keys must be present; either alone does not
        count as a marker.
        """
        if session is None or MEMBER_KEY not in session or TOKEN_KEY not in session:
            return None
        token = session.get(TOKEN_KEY)
        return cls(
            member_id=str(session.get(MEMBER_KEY) or ""),
            api_token=token if isinstance(token, str) else "",
            reg_category=str(session.get(CATEGORY_KEY) or ""),
            orchard_roles=str(session.get(ROLES_KEY) or ""),
        )


# ---------------------------------------------------------------------------
# Finalizer
# ---------------------------------------------------------------------------


class SessionFinalizer:
    """Writes the session marker after a successful registry login."""

    def finalize(
        self,
        account: LocalAccount,
        record: RegistryRecord,
        session: MutableMapping | None,
        current_account: LocalAccount | None = None,
    ) -> bool:
        """Store the marker for account in session. Returns True on success.

        Refuses (False, session untouched) when the caller is already logged
        in as an administrator, so a member login from an admin's browser
        cannot silently overwrite the admin session. Fails (False) when there
        is no session to write to.

        This does not log the account in; the caller issues the login cookie.
        """
        if current_account is not None and current_account.is_active and current_account.is_admin:
            logger.info("Admin OASIS login attempt, not overwriting admin session (account %s)", current_account.id)
            return False

        if session is None:
            logger.error("No session available for OASIS data storage (account %s)", account.id)
            return False

        session[MEMBER_KEY] = record.member_id
        session[TOKEN_KEY] = record.api_token
        session[CATEGORY_KEY] = record.reg_category
        if record.orchard_roles:
            session[ROLES_KEY] = record.orchard_roles
        else:
            # Never carry a previous member's roles over on a shared browser.
            session.pop(ROLES_KEY, None)

        logger.info("OASIS user login finalized for member %s", record.member_id)
        return True


# ---------------------------------------------------------------------------
# Guard
# ---------------------------------------------------------------------------


class SessionGuard:
    """Per-request soft check that a member session still carries a registry token.

    Only presence is checked. The token is not validated against the
    registry, and a stale session is never logged out or blocked -- the user
    just gets an advisory.
    """

    def check(
        self,
        session: MutableMapping | None,
        current_account: LocalAccount | None,
        messenger: Messenger,
    ) -> bool:
        """Return False (and warn) when a member session has an empty token, else True."""
        if current_account is None:
            return True
        marker = SessionMarker.from_session(session)
        if marker is None:
            return True
        if marker.api_token:
            return True

        logger.warning("Invalid or expired OASIS token for account %s", current_account.id)
        messenger.add_warning(STALE_SESSION_MESSAGE)
        return False


# ---------------------------------------------------------------------------
# Redirect targets
# ---------------------------------------------------------------------------


def logout_redirect(session: MutableMapping | None, settings: Settings) -> str:
    """Pick the post-logout location: members go to the member landing page."""
    if session is not None and session.get(MEMBER_KEY):
        return settings.member_logout_redirect
    return settings.default_logout_redirect


def member_profile_redirect(
    account: LocalAccount,
    session: MutableMapping | None,
    settings: Settings,
    langcode: str = "en",
) -> str | None:
    """Build the external member profile URL, or None if anything is missing.

    Format: {OASIS_TOKEN_LOGIN_URL}/{email}/{token}/{profile path}. The
    registry logs the member in with the token and lands them on their
    profile page in the requested language.
    """
    if not account.is_member:
        return None
    login_url = settings.oasis_token_login_url
    profile_path = settings.member_profile_url(langcode)
    marker = SessionMarker.from_session(session)
    token = marker.api_token if marker else ""
    email = account.email or ""
    if not (login_url and profile_path and token and email):
        return None
    return f"{login_url.rstrip('/')}/{quote(email, safe='@')}/{quote(token, safe='')}/{profile_path.lstrip('/')}"
