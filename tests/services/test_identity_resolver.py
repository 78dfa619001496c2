"""
Tests for payer identity resolution.

Strategies are tried in order; the first match wins and
anything unmatched is a guest.
"""

import pytest

from donation_ledger.services.identity_resolver import (
    IdentityHints,
    IdentityResolver,
    extract_handle,
)


@pytest.fixture
def resolver(db_session):
    return IdentityResolver(db_session)


class TestExtractHandle:

    def test_first_word(self):
        assert extract_handle("Notch thanks for the server!") == "Notch"

    def test_leading_whitespace(self):
        assert extract_handle("   jeb_  hi") == "jeb_"

    def test_rejects_invalid_handles(self):
        assert extract_handle("hi!") is None
        assert extract_handle("ab") is None
        assert extract_handle("a" * 17) is None

    def test_empty(self):
        assert extract_handle(None) is None
        assert extract_handle("   ") is None


class TestResolve:

    def test_account_id(self, resolver, make_account):
        account = make_account()
        result = resolver.resolve(IdentityHints(account_id=account.id))
        assert result.account_id == account.id
        assert result.matched_by == "account_id"
        assert result.is_guest is False

    def test_unknown_account_id_falls_through(self, resolver, make_account):
        account = make_account(email="steve@example.com")
        result = resolver.resolve(IdentityHints(
            account_id=999, email="steve@example.com"
        ))
        assert result.account_id == account.id
        assert result.matched_by == "email"

    def test_message_token_matches_handle(self, resolver, make_account):
        account = make_account(minecraft_username="Notch")
        result = resolver.resolve(IdentityHints(message="Notch keep it up"))
        assert result.account_id == account.id
        assert result.matched_by == "message"

    def test_message_token_matches_username(self, resolver, make_account):
        account = make_account("builder42")
        result = resolver.resolve(IdentityHints(message="builder42"))
        assert result.account_id == account.id

    def test_handle_preferred_over_username(self, resolver, make_account):
        make_account("Dinnerbone")
        by_handle = make_account("other", minecraft_username="Dinnerbone")
        result = resolver.resolve(IdentityHints(message="Dinnerbone"))
        assert result.account_id == by_handle.id

    def test_message_before_display_name(self, resolver, make_account):
        first = make_account("alpha", minecraft_username="Alpha")
        make_account("beta", minecraft_username="Beta")
        result = resolver.resolve(IdentityHints(
            message="Alpha", display_name="Beta"
        ))
        assert result.account_id == first.id

    def test_display_name_token(self, resolver, make_account):
        account = make_account(minecraft_username="Grumm")
        result = resolver.resolve(IdentityHints(
            message="love the server", display_name="Grumm Smith"
        ))
        assert result.account_id == account.id
        assert result.matched_by == "display_name"

    def test_email_is_exact(self, resolver, make_account):
        make_account(email="steve@example.com")
        result = resolver.resolve(IdentityHints(email="STEVE@example.com"))
        assert result.is_guest is True

    def test_minecraft_username_hint(self, resolver, make_account):
        account = make_account(minecraft_username="Herobrine")
        result = resolver.resolve(IdentityHints(minecraft_username="Herobrine"))
        assert result.matched_by == "minecraft_username"
        assert result.account_id == account.id

    def test_no_match_is_guest(self, resolver, make_account):
        make_account(minecraft_username="Steve")
        result = resolver.resolve(IdentityHints(
            message="Notch extra text", display_name="Some Person"
        ))
        assert result.is_guest is True
        assert result.account is None
        assert result.account_id is None
