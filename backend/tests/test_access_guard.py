"""
Access guard: owner matching (by id or by email), preparer allow rules, token resolution.
"""
import pytest
from unittest.mock import patch

from conftest import StubIdentityProvider
from models import Identity, UserRole
from services.access_guard import (
    OwnerByEmail,
    OwnerById,
    authenticate,
    authorize_ownership,
    is_preparer_allowed,
    owner_matches,
    owner_of_record,
    ownership_filter,
)
from utils.errors import Forbidden, Unauthorized

ALICE = Identity(id="user-1", email="alice@example.com")


class TestOwner:
    def test_user_id_is_authoritative(self):
        record = {"client_user_id": "user-1", "email": "someone@else.com"}
        assert owner_of_record(record) == OwnerById("user-1")

    def test_email_owner_when_no_user_id(self):
        record = {"client_user_id": None, "email": " Alice@Example.com "}
        assert owner_of_record(record) == OwnerByEmail("alice@example.com")

    def test_no_owner(self):
        assert owner_of_record({}) is None
        assert owner_matches(None, ALICE) is False

    def test_id_owner_ignores_email(self):
        assert owner_matches(OwnerById("user-1"), Identity(id="user-1", email="new@example.com"))
        assert not owner_matches(OwnerById("user-9"), ALICE)

    def test_email_owner_case_insensitive(self):
        assert owner_matches(OwnerByEmail("alice@example.com"), Identity(id="x", email="ALICE@example.com"))

    def test_authorize_ownership_blocks_other_account(self):
        with pytest.raises(Forbidden) as exc:
            authorize_ownership({"client_user_id": "user-2", "email": "alice@example.com"}, ALICE)
        assert exc.value.message == "Unauthorized update."

    def test_authorize_ownership_email_record(self):
        authorize_ownership({"client_user_id": None, "email": "alice@example.com"}, ALICE)

    def test_ownership_filter_mirrors_matching(self):
        assert ownership_filter(ALICE) == {
            "$or": [
                {"client_user_id": "user-1"},
                {"client_user_id": None, "email": "alice@example.com"},
            ]
        }


class TestPreparerRules:
    def test_domain_wins(self):
        with patch("services.access_guard.PREPARER_EMAIL_DOMAIN", "@Firm.test"), \
             patch("services.access_guard.PREPARER_EMAILS", "alice@example.com"):
            assert is_preparer_allowed("ada@firm.test")
            assert not is_preparer_allowed("alice@example.com")

    def test_allow_list_when_no_domain(self):
        with patch("services.access_guard.PREPARER_EMAIL_DOMAIN", ""), \
             patch("services.access_guard.PREPARER_EMAILS", "ada@firm.test, bob@x.com\ncarol@y.com"):
            assert is_preparer_allowed("BOB@x.com")
            assert is_preparer_allowed("carol@y.com")
            assert not is_preparer_allowed("mallory@x.com")

    def test_nothing_configured_denies(self):
        with patch("services.access_guard.PREPARER_EMAIL_DOMAIN", ""), \
             patch("services.access_guard.PREPARER_EMAILS", ""):
            assert not is_preparer_allowed("ada@firm.test")

    def test_lookalike_domain_denied(self):
        with patch("services.access_guard.PREPARER_EMAIL_DOMAIN", "firm.test"):
            assert not is_preparer_allowed("ada@notfirm.test")
            assert not is_preparer_allowed("")


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_missing_token(self):
        with pytest.raises(Unauthorized):
            await authenticate(None, StubIdentityProvider())

    @pytest.mark.asyncio
    async def test_invalid_token(self):
        with pytest.raises(Unauthorized):
            await authenticate("bogus", StubIdentityProvider())

    @pytest.mark.asyncio
    async def test_session_without_email(self):
        provider = StubIdentityProvider({"t": {"id": "u"}})
        with pytest.raises(Unauthorized) as exc:
            await authenticate("t", provider)
        assert exc.value.message == "Invalid user session."

    @pytest.mark.asyncio
    async def test_roles(self):
        with patch("services.access_guard.PREPARER_EMAIL_DOMAIN", "firm.test"):
            client = await authenticate("client-token", StubIdentityProvider())
            preparer = await authenticate("preparer-token", StubIdentityProvider())
        assert client.role == UserRole.CLIENT
        assert preparer.role == UserRole.PREPARER
        assert preparer.email == "ada@firm.test"
