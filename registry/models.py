"""
registry/models.py -- Domain types for registry authentication results.

Pattern: Data class. RegistryRecord owns the shape of a member record once it
has left the wire; the client does the fetching and classification.

Sanitization happens exactly once, in RegistryRecord.from_wire(). Display
fields are trimmed and HTML-escaped so they are safe to render anywhere
downstream. OasisAPIToken is trimmed only -- it is sent back to the registry
verbatim by the member profile redirect, so escaping would corrupt it.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from enum import Enum

# Registry wire field names. Order matches the documented response body.
WIRE_FIELDS = (
    "MemberID",
    "FirstName",
    "LastName",
    "LoginID",
    "RegStatus",
    "RegCategory",
    "OrchardRoles",
)
TOKEN_FIELD = "OasisAPIToken"


class AuthError(str, Enum):
    """Classification of a failed authentication attempt."""

    INVALID_INPUT = "invalid_input"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_RESPONSE = "invalid_response"
    MISCONFIGURED = "misconfigured"
    STORAGE_FAILURE = "storage_failure"
    UNKNOWN = "unknown"


class RegistryMisconfigured(Exception):
    """Raised when the registry endpoint or admin credentials are not configured.

    Operator-facing: no user can fix this by retrying. Raised before any
    network attempt.
    """


def _clean(value) -> str:
    return html.escape(str(value).strip(), quote=True)


@dataclass(frozen=True)
class RegistryRecord:
    """A sanitized member record returned by the registry."""

    member_id: str
    first_name: str = ""
    last_name: str = ""
    login_email: str = ""
    reg_status: str = ""
    reg_category: str = ""
    orchard_roles: str = ""  # comma-separated, as sent by the registry
    api_token: str = ""

    @classmethod
    def from_wire(cls, data: dict) -> RegistryRecord:
        """Build a record from the decoded JSON body, sanitizing every field.

        Missing or null fields become empty strings.
        """
        values = {name: _clean(data[name]) if data.get(name) is not None else "" for name in WIRE_FIELDS}
        token = data.get(TOKEN_FIELD)
        return cls(
            member_id=values["MemberID"],
            first_name=values["FirstName"],
            last_name=values["LastName"],
            login_email=values["LoginID"],
            reg_status=values["RegStatus"],
            reg_category=values["RegCategory"],
            orchard_roles=values["OrchardRoles"],
            api_token=str(token).strip() if token is not None else "",
        )

    @property
    def is_active(self) -> bool:
        return self.reg_status.upper() == "ACTIVE"

    @property
    def role_names(self) -> set[str]:
        """Registry-granted role names parsed from the comma-separated list."""
        return {name.strip() for name in self.orchard_roles.split(",") if name.strip()}


@dataclass(frozen=True)
class AuthResult:
    """Outcome of RegistryClient.authenticate().

    Exactly one of record / error is set.
    """

    record: RegistryRecord | None = None
    error: AuthError | None = None

    @property
    def success(self) -> bool:
        return self.record is not None

    @classmethod
    def ok(cls, record: RegistryRecord) -> AuthResult:
        return cls(record=record)

    @classmethod
    def failure(cls, error: AuthError) -> AuthResult:
        return cls(error=error)
