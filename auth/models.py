"""
auth/models.py -- Domain dataclasses for local accounts.

Pattern: Data class (pure data container, minimal logic). Stores and services
do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Role names. "authenticated" is the base role every account holds.
ROLE_AUTHENTICATED = "authenticated"
ROLE_ADMINISTRATOR = "administrator"
ROLE_REGULAR_MEMBER = "regular_member"
ROLE_ASSOCIATE_MEMBER = "associate_member"
ROLE_GOVERNING_COUNCIL = "governing_council"
ROLE_EXECUTIVE_COMMITTEE = "executive_committee"

MEMBER_ROLES = frozenset({ROLE_REGULAR_MEMBER, ROLE_ASSOCIATE_MEMBER})
ADMIN_ROLES = frozenset({ROLE_ADMINISTRATOR})


@dataclass
class LocalAccount:
    """A user account in the host application.

    username is the display/login name. Accounts created from registry data
    get "{first}-{last}-{member_id}" so two members with the same name never
    collide.

    member_id links the account to a registry member. It is None for purely
    local accounts (staff, administrators). At most one account carries a
    given member_id.

    hashed_password is a bcrypt hash. For members it mirrors the registry
    password last used to log in successfully.
    """

    username: str
    email: str | None = None
    id: int | None = None
    hashed_password: str | None = None
    first_name: str = ""
    last_name: str = ""
    member_id: str | None = None
    is_active: bool = True
    roles: set[str] = field(default_factory=lambda: {ROLE_AUTHENTICATED})
    created_at: str | None = None
    last_login: str | None = None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def add_role(self, role: str) -> None:
        self.roles.add(role)

    @property
    def is_member(self) -> bool:
        """True if the account holds a registry member role (regular or associate)."""
        return bool(self.roles & MEMBER_ROLES)

    @property
    def is_admin(self) -> bool:
        return bool(self.roles & ADMIN_ROLES)
