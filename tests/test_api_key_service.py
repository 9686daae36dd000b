"""
Tests for API Key Service.

Tests key generation, resolution, and management.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from argon2 import PasswordHasher
from sqlalchemy.exc import OperationalError

from devclip.db.models import APIKey
from devclip.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ResourceNotFoundError,
    ValidationError,
)
from devclip.services.api_key import (
    INVALID_FORMAT_MESSAGE,
    INVALID_KEY_MESSAGE,
    APIKeyService,
    mask_key_prefix,
)
from tests.factories import create_mock_api_key, make_result


def test_mask_key_prefix():
    """Display form keeps the first 15 characters only."""
    assert mask_key_prefix("devclip_abcdefghijkl") == "devclip_abcdefg..."


class TestAPIKeyServiceGeneration:
    """Tests for API key generation."""

    def test_generate_api_key_format(self):
        """Generated key has the devclip_ prefix and a long random suffix."""
        service = APIKeyService(AsyncMock())

        plaintext, key_hash, prefix = service.generate_api_key()

        assert plaintext.startswith("devclip_")
        assert prefix == plaintext[:20]
        assert len(plaintext) > 40

    def test_generate_api_key_hash_verifies(self):
        """The stored hash verifies against the plaintext."""
        service = APIKeyService(AsyncMock())

        plaintext, key_hash, _ = service.generate_api_key()

        assert key_hash != plaintext
        assert PasswordHasher().verify(key_hash, plaintext)

    def test_generate_api_key_unique(self):
        service = APIKeyService(AsyncMock())

        keys = {service.generate_api_key()[0] for _ in range(5)}

        assert len(keys) == 5


class TestResolve:
    """Tests for resolving a secret to a credential."""

    async def test_malformed_key_rejected_before_lookup(self, db_session):
        service = APIKeyService(db_session)

        with pytest.raises(AuthenticationError, match=INVALID_FORMAT_MESSAGE):
            await service.resolve("sk_live_not_ours")

        db_session.execute.assert_not_awaited()

    async def test_unknown_key_rejected(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(scalar=None))
        service = APIKeyService(db_session)

        with pytest.raises(AuthenticationError, match=INVALID_KEY_MESSAGE):
            await service.resolve("devclip_" + "x" * 43)

    async def test_revoked_key_rejected(self, db_session):
        service = APIKeyService(db_session)
        plaintext, key_hash, prefix = service.generate_api_key()
        revoked = create_mock_api_key(
            key_hash=key_hash, key_prefix=prefix, revoked_at=datetime.now(UTC)
        )
        db_session.execute = AsyncMock(return_value=make_result(scalar=revoked))

        with pytest.raises(AuthenticationError, match=INVALID_KEY_MESSAGE):
            await service.resolve(plaintext)

    async def test_hash_mismatch_rejected(self, db_session):
        service = APIKeyService(db_session)
        plaintext, _, prefix = service.generate_api_key()
        _, other_hash, _ = service.generate_api_key()
        stored = create_mock_api_key(key_hash=other_hash, key_prefix=prefix)
        db_session.execute = AsyncMock(return_value=make_result(scalar=stored))

        with pytest.raises(AuthenticationError, match=INVALID_KEY_MESSAGE):
            await service.resolve(plaintext)

    async def test_valid_key_resolves_to_owner(self, db_session):
        service = APIKeyService(db_session)
        plaintext, key_hash, prefix = service.generate_api_key()
        account_id = uuid4()
        stored = create_mock_api_key(account_id=account_id, key_hash=key_hash, key_prefix=prefix)
        db_session.execute = AsyncMock(return_value=make_result(scalar=stored))

        credential = await service.resolve(plaintext)

        assert credential.account_id == account_id
        assert credential.key_id == stored.id
        assert not credential.is_revoked


class TestCreateAPIKey:
    """Tests for plan-limited key creation."""

    async def test_free_plan_cannot_create_keys(self, db_session):
        service = APIKeyService(db_session)

        with pytest.raises(AuthorizationError, match="free plan"):
            await service.create_api_key(uuid4(), "free", "Laptop")

        db_session.add.assert_not_called()

    async def test_limit_reached(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(scalar=3))
        service = APIKeyService(db_session)

        with pytest.raises(AuthorizationError, match="limit reached"):
            await service.create_api_key(uuid4(), "pro", "Fourth")

        db_session.add.assert_not_called()

    async def test_creates_key_under_limit(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(scalar=1))
        service = APIKeyService(db_session)
        account_id = uuid4()

        generated = await service.create_api_key(account_id, "pro", "Laptop")

        added = db_session.add.call_args[0][0]
        assert isinstance(added, APIKey)
        assert added.account_id == account_id
        assert added.key_prefix == generated.plaintext_key[:20]
        assert added.key_hash != generated.plaintext_key
        assert generated.key_id == added.id
        db_session.commit.assert_awaited_once()

    async def test_team_plan_is_unlimited(self, db_session):
        service = APIKeyService(db_session)

        await service.create_api_key(uuid4(), "team", "CI")

        # No count query for unlimited plans
        db_session.execute.assert_not_awaited()
        db_session.add.assert_called_once()


class TestKeyManagement:
    """Tests for listing, revoking and last-used tracking."""

    async def test_touch_last_used_commits(self, db_session):
        service = APIKeyService(db_session)

        await service.touch_last_used(uuid4())

        db_session.execute.assert_awaited_once()
        db_session.commit.assert_awaited_once()

    async def test_touch_last_used_failure_is_swallowed(self, db_session):
        db_session.execute = AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception()))
        service = APIKeyService(db_session)

        await service.touch_last_used(uuid4())

        db_session.rollback.assert_awaited_once()

    async def test_list_api_keys(self, db_session):
        account_id = uuid4()
        keys = [create_mock_api_key(account_id=account_id, name=n) for n in ("a", "b")]
        db_session.execute = AsyncMock(return_value=make_result(scalars=keys))
        service = APIKeyService(db_session)

        result = await service.list_api_keys(account_id)

        assert [k.name for k in result] == ["a", "b"]

    async def test_revoke_unknown_key(self, db_session):
        service = APIKeyService(db_session)

        with pytest.raises(ResourceNotFoundError):
            await service.revoke_api_key(uuid4(), uuid4())

    async def test_revoke_already_revoked(self, db_session):
        revoked = create_mock_api_key(revoked_at=datetime.now(UTC))
        db_session.execute = AsyncMock(return_value=make_result(scalar=revoked))
        service = APIKeyService(db_session)

        with pytest.raises(ValidationError, match="already revoked"):
            await service.revoke_api_key(revoked.account_id, revoked.id)

    async def test_revoke_sets_timestamp(self, db_session):
        active = create_mock_api_key()
        db_session.execute = AsyncMock(return_value=make_result(scalar=active))
        service = APIKeyService(db_session)

        credential = await service.revoke_api_key(active.account_id, active.id)

        assert active.revoked_at is not None
        assert credential.is_revoked
        db_session.commit.assert_awaited_once()
