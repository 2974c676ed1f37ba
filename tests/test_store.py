"""Unit tests for auth/store.py -- AccountStore persistence.

Covers:
- save_account() insert fills id / created_at and persists roles
- save_account() update rewrites the role set
- lookups by id / username / email / member_id
- email_in_use() with and without exclude_id
- UNIQUE email and member_id constraints
- update_last_login()
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import ROLE_AUTHENTICATED, ROLE_REGULAR_MEMBER, LocalAccount
from auth.store import AccountStore


def _member(**overrides) -> LocalAccount:
    fields = {
        "username": "Ada-Lovelace-123",
        "email": "user@example.com",
        "member_id": "123",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "roles": {ROLE_AUTHENTICATED, ROLE_REGULAR_MEMBER},
    }
    fields.update(overrides)
    return LocalAccount(**fields)


class TestSaveAccount:
    def test_insert_assigns_id_and_created_at(self, store: AccountStore):
        account = _member()
        account_id = store.save_account(account)
        assert account.id == account_id
        assert account.created_at

    def test_insert_persists_fields_and_roles(self, store: AccountStore):
        store.save_account(_member())
        loaded = store.get_by_member_id("123")
        assert loaded is not None
        assert loaded.username == "Ada-Lovelace-123"
        assert loaded.email == "user@example.com"
        assert loaded.first_name == "Ada"
        assert loaded.is_active is True
        assert loaded.roles == {ROLE_AUTHENTICATED, ROLE_REGULAR_MEMBER}

    def test_update_rewrites_roles_and_fields(self, store: AccountStore):
        account = _member()
        store.save_account(account)
        account.roles = {ROLE_AUTHENTICATED}
        account.is_active = False
        account.last_name = "Byron"
        store.save_account(account)

        loaded = store.get_by_id(account.id)
        assert loaded.roles == {ROLE_AUTHENTICATED}
        assert loaded.is_active is False
        assert loaded.last_name == "Byron"
        assert loaded.created_at == account.created_at

    def test_create_account_is_an_insert(self, store: AccountStore):
        account_id = store.create_account(LocalAccount(username="admin", email="admin@example.com"))
        assert store.get_by_username("admin").id == account_id
        assert store.has_users()


class TestLookups:
    def test_empty_store_has_no_users(self, store: AccountStore):
        assert not store.has_users()
        assert store.get_by_email("user@example.com") is None

    def test_empty_member_id_never_matches(self, store: AccountStore):
        store.save_account(LocalAccount(username="staff", email="staff@example.com"))
        assert store.get_by_member_id("") is None

    def test_username_lookup_is_exact(self, store: AccountStore):
        store.save_account(_member())
        assert store.get_by_username("Ada-Lovelace-123") is not None
        assert store.get_by_username("ada-lovelace-123") is None

    def test_email_in_use(self, store: AccountStore):
        account = _member()
        store.save_account(account)
        assert store.email_in_use("user@example.com")
        assert not store.email_in_use("user@example.com", exclude_id=account.id)
        assert not store.email_in_use("other@example.com")


class TestConstraints:
    def test_duplicate_email_rejected(self, store: AccountStore):
        store.save_account(_member())
        with pytest.raises(IntegrityError):
            store.save_account(_member(username="other", member_id="456"))

    def test_duplicate_member_id_rejected(self, store: AccountStore):
        store.save_account(_member())
        with pytest.raises(IntegrityError):
            store.save_account(_member(username="other", email="other@example.com"))

    def test_failed_insert_leaves_nothing_behind(self, store: AccountStore):
        store.save_account(_member())
        with pytest.raises(IntegrityError):
            store.save_account(_member(username="other", member_id="456"))
        assert store.get_by_username("other") is None
        assert store.get_by_member_id("456") is None

    def test_local_accounts_may_share_null_email(self, store: AccountStore):
        store.save_account(LocalAccount(username="a"))
        store.save_account(LocalAccount(username="b"))
        assert store.get_by_username("a").email is None
        assert store.get_by_username("b").email is None


def test_update_last_login(store: AccountStore):
    account = _member()
    store.save_account(account)
    assert store.get_by_id(account.id).last_login is None
    store.update_last_login(account.id)
    assert store.get_by_id(account.id).last_login is not None
