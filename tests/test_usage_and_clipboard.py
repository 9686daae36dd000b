"""
Tests for usage records and clipboard history.
"""

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from devclip.db.models import ClipboardItem, UsageRecord
from devclip.exceptions import ResourceNotFoundError
from devclip.services.clipboard import ClipboardService
from devclip.services.usage import UsageService, truncate_snapshot, zero_fill_daily
from tests.factories import create_mock_clipboard_item, create_mock_usage_record, make_result


class TestUsageRecording:
    """Tests for appending usage records."""

    async def test_record_truncates_snapshots(self, db_session):
        service = UsageService(db_session, snapshot_chars=5)
        account_id = uuid4()

        usage = await service.record(
            account_id=account_id,
            operation="explain",
            credits_charged=1,
            input_text="print('hello world')",
            output_text="It prints hello world.",
            tokens_used=120,
            model="gpt-5-mini",
        )

        added = db_session.add.call_args[0][0]
        assert isinstance(added, UsageRecord)
        assert added.input_snapshot == "print"
        assert added.output_snapshot == "It pr"
        assert usage.account_id == account_id
        assert usage.tokens_used == 120
        db_session.commit.assert_awaited_once()

    async def test_record_rolls_back_on_failure(self, db_session):
        db_session.commit = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception()))
        service = UsageService(db_session)

        with pytest.raises(OperationalError):
            await service.record(account_id=uuid4(), operation="json", credits_charged=1)

        db_session.rollback.assert_awaited_once()

    def test_truncate_snapshot_none(self):
        assert truncate_snapshot(None, 10) is None
        assert truncate_snapshot("abc", 10) == "abc"


class TestUsageQueries:
    """Tests for listing and summarizing usage."""

    async def test_list_usage(self, db_session):
        account_id = uuid4()
        records = [create_mock_usage_record(account_id=account_id) for _ in range(2)]
        db_session.execute = AsyncMock(
            side_effect=[make_result(scalar=7), make_result(scalars=records)]
        )

        page, total = await UsageService(db_session).list_usage(account_id, limit=2)

        assert total == 7
        assert [r.usage_id for r in page] == [r.id for r in records]

    async def test_summary(self, db_session):
        account_id = uuid4()
        now = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
        recent = [create_mock_usage_record(account_id=account_id, operation="explain")]
        db_session.execute = AsyncMock(
            side_effect=[
                make_result(one=(3, 4, 120)),
                make_result(rows=[("explain", 1, 1), ("json", 2, 2)]),
                make_result(rows=[(date(2024, 1, 15), 3, 4)]),
                make_result(scalars=recent),
            ]
        )

        summary = await UsageService(db_session).summary(account_id, days=3, now=now)

        assert summary.total_operations == 3
        assert summary.total_credits == 4
        assert summary.total_tokens == 120
        assert [(u.operation, u.count) for u in summary.by_operation] == [
            ("explain", 1),
            ("json", 2),
        ]
        assert [(d.day, d.count) for d in summary.daily] == [
            (date(2024, 1, 13), 0),
            (date(2024, 1, 14), 0),
            (date(2024, 1, 15), 3),
        ]
        assert len(summary.recent) == 1

    async def test_count_all(self, db_session):
        db_session.execute = AsyncMock(return_value=make_result(scalar=12))

        assert await UsageService(db_session).count_all() == 12

    def test_zero_fill_daily(self):
        series = zero_fill_daily({date(2024, 2, 1): (2, 3)}, date(2024, 1, 31), 2)

        assert [(d.day, d.count, d.credits) for d in series] == [
            (date(2024, 1, 31), 0, 0),
            (date(2024, 2, 1), 2, 3),
        ]


class TestClipboardService:
    """Tests for clipboard history."""

    async def test_create_item(self, db_session):
        account_id = uuid4()

        item = await ClipboardService(db_session).create_item(account_id, "a: 1", "yaml")

        added = db_session.add.call_args[0][0]
        assert isinstance(added, ClipboardItem)
        assert added.content_type == "yaml"
        assert item.account_id == account_id
        assert not item.favorite

    async def test_create_item_rejects_unknown_type(self, db_session):
        with pytest.raises(ValueError):
            await ClipboardService(db_session).create_item(uuid4(), "x", "binary")

    async def test_list_items(self, db_session):
        account_id = uuid4()
        items = [create_mock_clipboard_item(account_id=account_id)]
        db_session.execute = AsyncMock(return_value=make_result(scalars=items))

        result = await ClipboardService(db_session).list_items(account_id)

        assert [i.item_id for i in result] == [items[0].id]

    async def test_toggle_favorite(self, db_session):
        item = create_mock_clipboard_item(favorite=False)
        db_session.execute = AsyncMock(return_value=make_result(scalar=item))

        result = await ClipboardService(db_session).toggle_favorite(item.account_id, item.id)

        assert result.favorite is True
        db_session.commit.assert_awaited_once()

    async def test_toggle_favorite_other_account(self, db_session):
        with pytest.raises(ResourceNotFoundError):
            await ClipboardService(db_session).toggle_favorite(uuid4(), uuid4())

    async def test_delete_item(self, db_session):
        item = create_mock_clipboard_item()
        db_session.execute = AsyncMock(side_effect=[make_result(scalar=item), make_result()])

        await ClipboardService(db_session).delete_item(item.account_id, item.id)

        assert db_session.execute.await_count == 2
        db_session.commit.assert_awaited_once()

    async def test_delete_missing_item(self, db_session):
        with pytest.raises(ResourceNotFoundError):
            await ClipboardService(db_session).delete_item(uuid4(), uuid4())

        db_session.commit.assert_not_awaited()
