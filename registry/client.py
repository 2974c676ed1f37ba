"""
registry/client.py -- HTTP client for the OASIS member registry.

The registry authenticates a member with a single GET request that carries
the member's email and password as path segments, authorized by a
service-level Basic-Auth header built from the configured admin credentials:

    GET {OASIS_API_USER_ENDPOINT}{email}/{password}
    Accept: application/json
    Authorization: Basic base64(OASIS_ADMIN_USER:OASIS_ADMIN_PASSWORD)

A 200 response whose JSON body has a non-empty MemberID is a successful
authentication. A 200 without MemberID means the credentials were rejected.

Failure classification (see AuthError):
  connection refused / DNS / timeout     -> SERVICE_UNAVAILABLE
  HTTP >= 500                            -> SERVICE_UNAVAILABLE
  HTTP 4xx                               -> INVALID_CREDENTIALS
  body not JSON, or not a JSON object    -> INVALID_RESPONSE
  JSON object without MemberID           -> INVALID_CREDENTIALS
  any other error                        -> UNKNOWN

Missing endpoint or admin credentials raise RegistryMisconfigured before any
network attempt -- that is an operator problem, not a per-user failure.

No retries. One attempt per login; the user decides whether to try again.

Security:
  The member password is part of the URL, so URLs are never logged. Only the
  email and the failure reason are written to the log.
"""

from __future__ import annotations

import base64
import logging
from urllib.parse import quote

import requests
from email_validator import EmailNotValidError, validate_email

from core.config import Settings
from registry.models import AuthError, AuthResult, RegistryMisconfigured, RegistryRecord

logger = logging.getLogger("oasisbridge.registry")


def is_valid_email(value: str) -> bool:
    """Return True if value is a syntactically valid email address.

    Syntax only -- no DNS lookups on the login path.
    """
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


class RegistryClient:
    """Stateless client for the registry's member authentication endpoint.

    Usage:
        client = RegistryClient(get_settings())
        result = client.authenticate("user@example.com", "secret")
        if result.success:
            record = result.record
    """

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self._settings = settings
        if session is None:
            session = requests.Session()
            # The registry is a known host; a short redirect budget protects
            # against redirect chains carrying the credential path elsewhere.
            session.max_redirects = 3
        self._session = session

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _endpoint(self) -> str:
        endpoint = self._settings.oasis_api_user_endpoint
        if not endpoint:
            logger.critical("OASIS_API_USER_ENDPOINT is not set")
            raise RegistryMisconfigured(
                "OASIS_API_USER_ENDPOINT is not set. Please check your environment or .env file."
            )
        return endpoint

    def _authorization_header(self) -> str:
        user = self._settings.oasis_admin_user
        password = self._settings.oasis_admin_password
        if not user or not password:
            logger.critical("OASIS_ADMIN_USER or OASIS_ADMIN_PASSWORD is not set")
            raise RegistryMisconfigured(
                "OASIS admin credentials are not set. Please check your environment or .env file."
            )
        encoded = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
        return f"Basic {encoded}"

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self, identifier: str, secret: str) -> AuthResult:
        """Authenticate a member against the registry.

        Returns an AuthResult carrying either a sanitized RegistryRecord or an
        AuthError. Raises RegistryMisconfigured when the endpoint or admin
        credentials are missing.
        """
        if not identifier or not secret:
            return AuthResult.failure(AuthError.INVALID_INPUT)
        if not is_valid_email(identifier):
            return AuthResult.failure(AuthError.INVALID_INPUT)

        # Both checks run before the request is built so a misconfigured
        # deployment never reaches the network.
        url = f"{self._endpoint()}{quote(identifier, safe='@')}/{quote(secret, safe='')}"
        headers = {
            "Accept": "application/json",
            "Authorization": self._authorization_header(),
        }
        timeout = (self._settings.oasis_connect_timeout, self._settings.oasis_timeout)

        try:
            resp = self._session.get(url, headers=headers, timeout=timeout)
            resp.raise_for_status()
        except requests.ConnectionError as e:
            logger.error("Cannot connect to OASIS API: %s", type(e).__name__)
            return AuthResult.failure(AuthError.SERVICE_UNAVAILABLE)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else 0
            if status >= 500:
                logger.error("OASIS API server error (%d) for %s", status, identifier)
                return AuthResult.failure(AuthError.SERVICE_UNAVAILABLE)
            logger.error("OASIS API client error (%d) for %s", status, identifier)
            return AuthResult.failure(AuthError.INVALID_CREDENTIALS)
        except requests.RequestException as e:
            logger.error("Error communicating with OASIS API: %s", type(e).__name__)
            return AuthResult.failure(AuthError.SERVICE_UNAVAILABLE)
        except Exception:
            logger.exception("Unexpected error during OASIS authentication for %s", identifier)
            return AuthResult.failure(AuthError.UNKNOWN)

        try:
            data = resp.json()
        except ValueError:
            logger.error("Invalid JSON response from OASIS API")
            return AuthResult.failure(AuthError.INVALID_RESPONSE)

        if not isinstance(data, dict):
            logger.error("Invalid response format from OASIS API")
            return AuthResult.failure(AuthError.INVALID_RESPONSE)

        record = RegistryRecord.from_wire(data)
        if not record.member_id:
            return AuthResult.failure(AuthError.INVALID_CREDENTIALS)
        return AuthResult.ok(record)

    def close(self) -> None:
        self._session.close()
