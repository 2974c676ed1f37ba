"""Unit tests for auth/session.py -- session marker write, guard and redirects.

Covers:
- SessionFinalizer: admin guard, missing session, keys written
- SessionGuard: anonymous / no marker / healthy / empty token
- logout_redirect(): member vs. default target
- member_profile_redirect(): URL format and every missing-piece fallback
"""

import logging

import pytest

from auth.messages import WARNING, Messenger
from auth.models import ROLE_ADMINISTRATOR, ROLE_AUTHENTICATED, ROLE_REGULAR_MEMBER, LocalAccount
from auth.session import (
    CATEGORY_KEY,
    MEMBER_KEY,
    ROLES_KEY,
    STALE_SESSION_MESSAGE,
    TOKEN_KEY,
    SessionFinalizer,
    SessionGuard,
    SessionMarker,
    logout_redirect,
    member_profile_redirect,
)
from registry.models import RegistryRecord


def _record(**overrides) -> RegistryRecord:
    fields = {
        "member_id": "123",
        "login_email": "user@example.com",
        "reg_status": "ACTIVE",
        "reg_category": "Regular Members",
        "orchard_roles": "",
        "api_token": "tok-123",
    }
    fields.update(overrides)
    return RegistryRecord(**fields)


def _member_account() -> LocalAccount:
    return LocalAccount(
        id=7,
        username="Ada-Lovelace-123",
        email="user@example.com",
        member_id="123",
        roles={ROLE_AUTHENTICATED, ROLE_REGULAR_MEMBER},
    )


def _admin_account() -> LocalAccount:
    return LocalAccount(id=1, username="admin", roles={ROLE_AUTHENTICATED, ROLE_ADMINISTRATOR})


class TestSessionFinalizer:
    def test_writes_marker(self):
        session: dict = {}
        ok = SessionFinalizer().finalize(_member_account(), _record(orchard_roles="Governing Council"), session)
        assert ok is True
        assert session[MEMBER_KEY] == "123"
        assert session[TOKEN_KEY] == "tok-123"
        assert session[CATEGORY_KEY] == "Regular Members"
        assert session[ROLES_KEY] == "Governing Council"

    def test_empty_roles_not_written(self):
        session: dict = {}
        SessionFinalizer().finalize(_member_account(), _record(), session)
        assert ROLES_KEY not in session

    def test_previous_member_roles_are_cleared(self):
        session: dict = {MEMBER_KEY: "999", TOKEN_KEY: "old", ROLES_KEY: "Governing Council"}
        SessionFinalizer().finalize(_member_account(), _record(orchard_roles=""), session)
        assert ROLES_KEY not in session
        assert session[MEMBER_KEY] == "123"

    def test_admin_session_is_not_overwritten(self, caplog):
        session: dict = {"existing": "value"}
        with caplog.at_level(logging.INFO, logger="oasisbridge.session"):
            ok = SessionFinalizer().finalize(_member_account(), _record(), session, current_account=_admin_account())
        assert ok is False
        assert session == {"existing": "value"}
        assert "Admin OASIS login attempt" in caplog.text

    def test_blocked_admin_does_not_trigger_guard(self):
        admin = _admin_account()
        admin.is_active = False
        session: dict = {}
        assert SessionFinalizer().finalize(_member_account(), _record(), session, current_account=admin) is True
        assert session[MEMBER_KEY] == "123"

    def test_non_admin_current_account_is_overwritten(self):
        session: dict = {MEMBER_KEY: "999", TOKEN_KEY: "old"}
        assert SessionFinalizer().finalize(_member_account(), _record(), session, current_account=_member_account())
        assert session[MEMBER_KEY] == "123"
        assert session[TOKEN_KEY] == "tok-123"

    def test_missing_session_fails(self, caplog):
        with caplog.at_level(logging.ERROR, logger="oasisbridge.session"):
            assert SessionFinalizer().finalize(_member_account(), _record(), None) is False
        assert "No session available" in caplog.text


class TestSessionMarker:
    def test_requires_both_keys(self):
        assert SessionMarker.from_session({MEMBER_KEY: "123"}) is None
        assert SessionMarker.from_session({TOKEN_KEY: "tok"}) is None
        assert SessionMarker.from_session(None) is None

    def test_non_string_token_reads_as_empty(self):
        marker = SessionMarker.from_session({MEMBER_KEY: "123", TOKEN_KEY: None})
        assert marker is not None
        assert marker.api_token == ""


class TestSessionGuard:
    def test_anonymous_request_passes(self):
        messenger = Messenger()
        assert SessionGuard().check({MEMBER_KEY: "123", TOKEN_KEY: ""}, None, messenger)
        assert messenger.messages == []

    def test_session_without_marker_passes(self):
        messenger = Messenger()
        assert SessionGuard().check({MEMBER_KEY: "123"}, _member_account(), messenger)
        assert messenger.messages == []

    def test_healthy_marker_passes(self):
        messenger = Messenger()
        assert SessionGuard().check({MEMBER_KEY: "123", TOKEN_KEY: "tok"}, _member_account(), messenger)
        assert messenger.messages == []

    @pytest.mark.parametrize("token", ["", None, 42])
    def test_empty_token_warns(self, token, caplog):
        messenger = Messenger()
        with caplog.at_level(logging.WARNING, logger="oasisbridge.session"):
            ok = SessionGuard().check({MEMBER_KEY: "123", TOKEN_KEY: token}, _member_account(), messenger)
        assert ok is False
        assert messenger.by_level(WARNING) == [STALE_SESSION_MESSAGE]
        assert "Invalid or expired OASIS token" in caplog.text


class TestLogoutRedirect:
    def test_member_session_goes_to_member_page(self, settings):
        assert logout_redirect({MEMBER_KEY: "123"}, settings) == "/node/490"

    def test_other_sessions_go_to_default(self, settings):
        assert logout_redirect({}, settings) == "/"
        assert logout_redirect({MEMBER_KEY: ""}, settings) == "/"
        assert logout_redirect(None, settings) == "/"


class TestMemberProfileRedirect:
    def test_builds_token_login_url(self, settings):
        session = {MEMBER_KEY: "123", TOKEN_KEY: "tok-123"}
        url = member_profile_redirect(_member_account(), session, settings)
        assert url == "https://oasis.test/token-login/user@example.com/tok-123/members/profile"

    def test_french_profile_path(self, settings):
        session = {MEMBER_KEY: "123", TOKEN_KEY: "tok-123"}
        url = member_profile_redirect(_member_account(), session, settings, langcode="fr")
        assert url.endswith("/membres/profil")

    def test_token_is_percent_encoded(self, settings):
        session = {MEMBER_KEY: "123", TOKEN_KEY: "a/b+c"}
        url = member_profile_redirect(_member_account(), session, settings)
        assert "/a%2Fb%2Bc/" in url

    def test_non_member_gets_none(self, settings):
        session = {MEMBER_KEY: "123", TOKEN_KEY: "tok-123"}
        assert member_profile_redirect(_admin_account(), session, settings) is None

    def test_missing_token_gets_none(self, settings):
        assert member_profile_redirect(_member_account(), {MEMBER_KEY: "123", TOKEN_KEY: ""}, settings) is None
        assert member_profile_redirect(_member_account(), {}, settings) is None

    def test_missing_email_gets_none(self, settings):
        account = _member_account()
        account.email = None
        assert member_profile_redirect(account, {MEMBER_KEY: "123", TOKEN_KEY: "tok"}, settings) is None

    def test_unconfigured_login_url_gets_none(self, settings):
        unconfigured = settings.model_copy(update={"oasis_token_login_url": ""})
        session = {MEMBER_KEY: "123", TOKEN_KEY: "tok-123"}
        assert member_profile_redirect(_member_account(), session, unconfigured) is None
