"""
auth/reconciler.py -- Map a registry member record onto a local account.

Find-or-create by MemberID, then sync:
  password  -- always re-hashed from the secret the registry just accepted
  names     -- first / last name, unconditionally
  member_id -- unconditionally
  email     -- only if changed AND not owned by another account
  status    -- active iff RegStatus is ACTIVE (case-insensitive)
  roles     -- additive only (see ROLE_MAP / COUNCIL_ROLE_MAP)

Everything is persisted with one save_account() call. A storage failure
raises ReconcileError; because the in-memory account is discarded by the
caller, the stored account stays exactly as it was before the attempt.

Role sync never revokes. If the registry stops listing "Governing Council"
for a member, the local governing_council role stays until an administrator
removes it.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from auth.models import (
    ROLE_ASSOCIATE_MEMBER,
    ROLE_AUTHENTICATED,
    ROLE_EXECUTIVE_COMMITTEE,
    ROLE_GOVERNING_COUNCIL,
    ROLE_REGULAR_MEMBER,
    LocalAccount,
)
from auth.store import AccountStore
from auth.tokens import hash_password
from registry.models import RegistryRecord

logger = logging.getLogger("oasisbridge.auth")

# RegCategory -> base member role. Unmatched categories add no base role.
ROLE_MAP: dict[str, str] = {
    "Regular Members": ROLE_REGULAR_MEMBER,
    "Associate Members": ROLE_ASSOCIATE_MEMBER,
}

# OrchardRoles entry -> extra role.
COUNCIL_ROLE_MAP: dict[str, str] = {
    "Governing Council": ROLE_GOVERNING_COUNCIL,
    "Executive Committee": ROLE_EXECUTIVE_COMMITTEE,
}


class ReconcileError(Exception):
    """The reconciled account could not be persisted."""


def roles_for_record(record: RegistryRecord) -> set[str]:
    """Return the local roles a registry record grants."""
    roles: set[str] = set()
    base = ROLE_MAP.get(record.reg_category)
    if base:
        roles.add(base)
    granted = record.role_names
    for name, role in COUNCIL_ROLE_MAP.items():
        if name in granted:
            roles.add(role)
    return roles


class AccountReconciler:
    """Creates or updates the local account for a registry member."""

    def __init__(self, store: AccountStore) -> None:
        self._store = store

    def reconcile(self, member_id: str, secret: str, record: RegistryRecord) -> LocalAccount:
        """Find or create the account for member_id and sync it to record.

        Raises ReconcileError if the account cannot be saved.
        """
        try:
            account = self._store.get_by_member_id(member_id)
            created = account is None
            if account is None:
                account = self._new_account(member_id, record)

            account.hashed_password = hash_password(secret.strip())
            self._apply_record(account, record, check_email=not created)
            self._store.save_account(account)
        except SQLAlchemyError as e:
            logger.error("Error creating or updating account from OASIS data for member %s: %s", member_id, e)
            raise ReconcileError(f"could not save account for member {member_id}") from e

        if created:
            logger.info("Created new account from OASIS data: %s (member %s)", record.login_email, member_id)
        return account

    def _new_account(self, member_id: str, record: RegistryRecord) -> LocalAccount:
        email = record.login_email or None
        if email and self._store.email_in_use(email):
            logger.warning(
                "Creating account for member %s without email because %s is already in use by another account.",
                member_id,
                email,
            )
            email = None
        return LocalAccount(
            username=f"{record.first_name}-{record.last_name}-{member_id}",
            email=email,
            member_id=member_id,
            is_active=record.is_active,
            roles={ROLE_AUTHENTICATED},
        )

    def _apply_record(self, account: LocalAccount, record: RegistryRecord, check_email: bool) -> None:
        desired_email = record.login_email
        if check_email and desired_email and desired_email != account.email:
            if self._store.email_in_use(desired_email, exclude_id=account.id):
                logger.warning(
                    "Skipped updating email for account %s from OASIS because %s is already in use by another account.",
                    account.id,
                    desired_email,
                )
            else:
                account.email = desired_email

        account.first_name = record.first_name
        account.last_name = record.last_name
        account.member_id = record.member_id or account.member_id
        account.is_active = record.is_active

        # Additive: existing roles are kept even if the registry no longer lists them.
        for role in roles_for_record(record):
            account.add_role(role)
