"""
Tests for the monthly refresh batch.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from devclip.services.refresh import RefreshReport, refresh_all_accounts
from tests.factories import create_mock_account, make_result


@pytest.fixture
def session_provider(db_session):
    @asynccontextmanager
    async def provider():
        yield db_session

    return provider


async def test_refreshes_every_account(db_session, session_provider):
    first = create_mock_account(plan_tier="pro", credit_balance=12000)
    second = create_mock_account(plan_tier="free", credit_balance=10)
    db_session.execute = AsyncMock(
        side_effect=[
            make_result(scalars=[first.id, second.id]),
            make_result(scalar=first),
            make_result(scalar=second),
        ]
    )

    report = await refresh_all_accounts(session_provider)

    assert report.refreshed == 2
    assert report.failed == []
    assert first.credit_balance == 15000
    assert second.credit_balance == 50
    assert db_session.commit.await_count == 2


async def test_failed_account_does_not_stop_batch(db_session, session_provider):
    missing_id = uuid4()
    present = create_mock_account(plan_tier="pro", credit_balance=0)
    db_session.execute = AsyncMock(
        side_effect=[
            make_result(scalars=[missing_id, present.id]),
            make_result(scalar=None),
            make_result(scalar=present),
        ]
    )

    report = await refresh_all_accounts(session_provider)

    assert report.refreshed == 1
    assert report.failed == [missing_id]
    assert report.total == 2
    assert present.credit_balance == 5000


async def test_dry_run_writes_nothing(db_session, session_provider):
    account = create_mock_account(plan_tier="team", credit_balance=100)
    db_session.execute = AsyncMock(
        side_effect=[make_result(scalars=[account.id]), make_result(scalar=account)]
    )

    report = await refresh_all_accounts(session_provider, dry_run=True)

    assert report == RefreshReport(refreshed=1, failed=[], dry_run=True)
    assert account.credit_balance == 100
    db_session.commit.assert_not_awaited()
