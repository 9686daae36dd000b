"""
Tests for API Dependencies.

Tests bearer extraction, caller resolution and the admin guard.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.security import HTTPAuthorizationCredentials

from devclip.api.dependencies import (
    get_ai_adapter,
    get_api_key_secret,
    get_authenticated,
    get_pipeline,
    require_admin,
)
from devclip.exceptions import AuthorizationError
from devclip.services.pipeline import RequestAuthorizationPipeline
from tests.factories import make_caller


class TestGetAPIKeySecret:
    """Tests for bearer secret extraction."""

    def test_missing_header(self):
        assert get_api_key_secret(None) is None

    def test_bearer_credentials(self):
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="devclip_abc")

        assert get_api_key_secret(credentials) == "devclip_abc"


class TestGetAuthenticated:
    """Tests for resolving the caller."""

    async def test_sets_account_on_request_state(self):
        caller = make_caller()
        pipeline = MagicMock(spec=RequestAuthorizationPipeline)
        pipeline.authenticate = AsyncMock(return_value=caller)
        request = MagicMock()

        result = await get_authenticated(request, "devclip_abc", pipeline)

        assert result is caller
        assert request.state.account_id == caller.account.account_id
        pipeline.authenticate.assert_awaited_once_with("devclip_abc")


class TestRequireAdmin:
    """Tests for the admin guard."""

    async def test_admin_allowed(self):
        caller = make_caller(is_admin=True)

        assert await require_admin(caller) is caller

    async def test_non_admin_denied(self):
        with pytest.raises(AuthorizationError, match="Admin access required"):
            await require_admin(make_caller(is_admin=False))


class TestServiceWiring:
    """Tests for pipeline construction."""

    def test_ai_adapter_absent_before_startup(self):
        request = MagicMock()
        request.app.state = MagicMock(spec=[])

        assert get_ai_adapter(request) is None

    def test_pipeline_shares_one_session(self, db_session):
        pipeline = get_pipeline(db=db_session, ai=None)

        assert pipeline.credentials.db is db_session
        assert pipeline.ledger.db is db_session
        assert pipeline.usage.db is db_session
        assert pipeline.ai is None
