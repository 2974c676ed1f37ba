"""
auth/decider.py -- Login decision pipeline: registry member or local account?

Called once per login submission. The decision:

  1. Resolve the local account. Input without "@" is a username; input with
     "@" is an email. The candidate email sent to the registry is the
     account's email when a username resolved, otherwise the raw input.
  2. is_member is True unless an account resolved AND it holds no member
     role (regular_member / associate_member).
  3. Members and unknown identifiers go to the registry. Success reconciles
     the local account, writes the session marker (best-effort) and ends the
     decision. Failure is reported per AuthError kind (see _report_failure).
  4. A resolved non-member account is checked against its local password.
     The registry is never called for it.
  5. Any unexpected exception on the registry path is logged and reported
     as a generic error; the attempt fails with AuthError.UNKNOWN.

Tie-break: a resolved non-member always takes the local path. The registry is
only asked about known members and identifiers with no local account (which
may be first-time members -- or typos, which cost one registry call).

Every failure carries the same form error (UNRECOGNIZED_CREDENTIALS) so the
response never reveals whether the identifier or the password was wrong.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from dataclasses import dataclass, field

from auth.messages import Messenger
from auth.models import LocalAccount
from auth.reconciler import AccountReconciler, ReconcileError
from auth.session import SessionFinalizer
from auth.store import AccountStore
from auth.tokens import authenticate_account
from core.config import Settings
from registry.client import RegistryClient
from registry.models import AuthError, RegistryMisconfigured

logger = logging.getLogger("oasisbridge.auth")

# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------

UNRECOGNIZED_CREDENTIALS = "Unrecognized username/email address or password."
SERVICE_UNAVAILABLE_MESSAGE = (
    "The OASIS authentication service is temporarily unavailable. "
    "Please try again later or contact support if the problem persists."
)
INVALID_RESPONSE_MESSAGE = (
    "There was a problem communicating with the authentication service. Please try again later."
)
MISCONFIGURED_MESSAGE = "Authentication is not available at the moment. Please contact support."
ACCOUNT_SETUP_MESSAGE = "There was a problem setting up your account. Please contact support."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred during authentication. Please try again later."


@dataclass
class DecisionOutcome:
    """Result of one login decision.

    On success, account/uid identify who logged in and member says whether
    the registry vouched for them. On failure, error classifies why and
    errors holds the form-level error text.
    """

    success: bool
    account: LocalAccount | None = None
    uid: int | None = None
    member: bool = False
    error: AuthError | None = None
    errors: list[str] = field(default_factory=list)

    @classmethod
    def failed(cls, error: AuthError) -> DecisionOutcome:
        return cls(success=False, error=error, errors=[UNRECOGNIZED_CREDENTIALS])


class AuthenticationDecider:
    """Chooses between registry and local authentication and runs the chosen path.

    All collaborators are injected; nothing is looked up globally.
    """

    def __init__(
        self,
        store: AccountStore,
        client: RegistryClient,
        reconciler: AccountReconciler,
        finalizer: SessionFinalizer,
        settings: Settings,
    ) -> None:
        self._store = store
        self._client = client
        self._reconciler = reconciler
        self._finalizer = finalizer
        self._settings = settings

    def decide(
        self,
        login_input: str,
        secret: str,
        session: MutableMapping | None = None,
        messenger: Messenger | None = None,
        current_account: LocalAccount | None = None,
    ) -> DecisionOutcome:
        """Authenticate one login attempt.

        session is the request's session (None if there is none);
        current_account is whoever is already logged in on this browser.
        User-facing messages are added to messenger.
        """
        messenger = messenger if messenger is not None else Messenger()
        login_input = (login_input or "").strip()

        account, email = self._resolve_account(login_input)
        is_member = account is None or account.is_member

        if is_member:
            return self._authenticate_with_registry(email, secret, session, messenger, current_account)

        if authenticate_account(account, secret) is not None:
            logger.info("Local login for account %s", account.id)
            return DecisionOutcome(success=True, account=account, uid=account.id, member=False)
        return DecisionOutcome.failed(AuthError.INVALID_CREDENTIALS)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _resolve_account(self, login_input: str) -> tuple[LocalAccount | None, str]:
        if not login_input:
            return None, ""
        if "@" not in login_input:
            account = self._store.get_by_username(login_input)
            if account is not None and account.email:
                return account, account.email
            return account, login_input
        return self._store.get_by_email(login_input), login_input

    def _authenticate_with_registry(
        self,
        email: str,
        secret: str,
        session: MutableMapping | None,
        messenger: Messenger,
        current_account: LocalAccount | None,
    ) -> DecisionOutcome:
        try:
            try:
                result = self._client.authenticate(email, secret)
            except RegistryMisconfigured as e:
                logger.critical("OASIS registry is not configured: %s", e)
                messenger.add_error(MISCONFIGURED_MESSAGE)
                return DecisionOutcome.failed(AuthError.MISCONFIGURED)

            if not result.success:
                self._report_failure(result.error, email, messenger)
                return DecisionOutcome.failed(result.error or AuthError.UNKNOWN)

            record = result.record
            if not record.member_id:
                return DecisionOutcome.failed(AuthError.INVALID_CREDENTIALS)

            try:
                account = self._reconciler.reconcile(record.member_id, secret, record)
            except ReconcileError as e:
                logger.error("Failed to create or update account from OASIS data: %s", e)
                messenger.add_error(ACCOUNT_SETUP_MESSAGE)
                return DecisionOutcome.failed(AuthError.STORAGE_FAILURE)

            self._finalize(account, record, session, current_account)
            logger.info("OASIS login for member %s (account %s)", record.member_id, account.id)
            return DecisionOutcome(success=True, account=account, uid=account.id, member=True)
        except Exception:
            logger.exception("Error during OASIS authentication for %s", email)
            messenger.add_error(UNEXPECTED_ERROR_MESSAGE)
            return DecisionOutcome.failed(AuthError.UNKNOWN)

    def _finalize(self, account, record, session, current_account) -> None:
        """Write the session marker. Failures are logged; the login still succeeds."""
        try:
            finalized = self._finalizer.finalize(account, record, session, current_account)
        except Exception:
            logger.exception("Session finalization raised for account %s", account.id)
            return
        if not finalized:
            logger.warning("OASIS session marker not written for account %s", account.id)

    def _report_failure(self, error: AuthError | None, email: str, messenger: Messenger) -> None:
        """Map a registry failure to user messages and log entries.

        Credential and input failures add nothing here: the generic form
        error is the only thing the user sees, so account existence is not
        leaked.
        """
        if error in (AuthError.INVALID_CREDENTIALS, AuthError.INVALID_INPUT):
            return
        if error == AuthError.SERVICE_UNAVAILABLE:
            message = SERVICE_UNAVAILABLE_MESSAGE
            if self._settings.oasis_service_url:
                message = f"{message} Service status: {self._settings.oasis_service_url}"
            messenger.add_error(message)
            logger.warning("OASIS API unavailable during login attempt for %s", email)
        elif error == AuthError.INVALID_RESPONSE:
            messenger.add_error(INVALID_RESPONSE_MESSAGE)
            logger.warning("Invalid response from OASIS API during login attempt for %s", email)
        else:
            messenger.add_error(UNEXPECTED_ERROR_MESSAGE)
            logger.warning(
                "Unknown error type during OASIS authentication for %s: %s",
                email,
                error.value if error else "unknown",
            )
