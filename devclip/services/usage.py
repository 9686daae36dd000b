"""
Usage Service - Append-only usage records and per-account analytics.

NO DICTIONARIES - Aggregates are returned as typed dataclasses.
"""

from datetime import date, datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from devclip.config import settings
from devclip.db.models import UsageRecord, utc_now
from devclip.models.domain import DailyUsage, OperationUsage, UsageRecordData, UsageSummary
from devclip.observability.logging import get_logger

logger = get_logger(__name__)

SUMMARY_DAYS = 30
SUMMARY_RECENT = 10


def truncate_snapshot(text: str | None, limit: int) -> str | None:
    """Keep at most `limit` characters of an input/output snapshot."""
    if text is None:
        return None
    return text[:limit]


def to_usage_data(record: UsageRecord) -> UsageRecordData:
    return UsageRecordData(
        usage_id=record.id,
        account_id=record.account_id,
        api_key_id=record.api_key_id,
        operation=record.operation,
        input_snapshot=record.input_snapshot,
        output_snapshot=record.output_snapshot,
        credits_charged=record.credits_charged,
        tokens_used=record.tokens_used,
        model=record.model,
        created_at=record.created_at,
    )


class UsageService:
    """Writes and reads usage records."""

    def __init__(self, db: AsyncSession, snapshot_chars: int = settings.usage_snapshot_chars):
        self.db = db
        self.snapshot_chars = snapshot_chars

    async def record(
        self,
        account_id: UUID,
        operation: str,
        credits_charged: int,
        input_text: str | None = None,
        output_text: str | None = None,
        tokens_used: int = 0,
        model: str | None = None,
        api_key_id: UUID | None = None,
    ) -> UsageRecordData:
        """Append one usage record for a completed, billed operation."""
        record = UsageRecord(
            id=uuid4(),
            account_id=account_id,
            api_key_id=api_key_id,
            operation=operation,
            input_snapshot=truncate_snapshot(input_text, self.snapshot_chars),
            output_snapshot=truncate_snapshot(output_text, self.snapshot_chars),
            credits_charged=credits_charged,
            tokens_used=tokens_used,
            model=model,
            created_at=utc_now(),
        )
        self.db.add(record)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        logger.info(
            "usage_recorded",
            usage_id=str(record.id),
            account_id=str(account_id),
            operation=operation,
            credits_charged=credits_charged,
            tokens_used=tokens_used,
        )
        return to_usage_data(record)

    async def list_usage(
        self, account_id: UUID, limit: int = 50, offset: int = 0
    ) -> tuple[list[UsageRecordData], int]:
        """An account's usage records, newest first. Returns (records, total_count)."""
        count_stmt = (
            select(func.count())
            .select_from(UsageRecord)
            .where(UsageRecord.account_id == account_id)
        )
        total = (await self.db.execute(count_stmt)).scalar_one()

        stmt = (
            select(UsageRecord)
            .where(UsageRecord.account_id == account_id)
            .order_by(UsageRecord.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.db.execute(stmt)
        return [to_usage_data(r) for r in result.scalars().all()], int(total)

    async def summary(
        self,
        account_id: UUID,
        days: int = SUMMARY_DAYS,
        recent: int = SUMMARY_RECENT,
        now: datetime | None = None,
    ) -> UsageSummary:
        """
        Usage analytics for an account.

        Includes all-time totals, a per-operation breakdown, a zero-filled
        daily series covering the last `days` days, and the most recent records.
        """
        now = now or utc_now()

        totals_stmt = select(
            func.count(),
            func.coalesce(func.sum(UsageRecord.credits_charged), 0),
            func.coalesce(func.sum(UsageRecord.tokens_used), 0),
        ).where(UsageRecord.account_id == account_id)
        total_operations, total_credits, total_tokens = (await self.db.execute(totals_stmt)).one()

        by_operation_stmt = (
            select(
                UsageRecord.operation,
                func.count(),
                func.coalesce(func.sum(UsageRecord.credits_charged), 0),
            )
            .where(UsageRecord.account_id == account_id)
            .group_by(UsageRecord.operation)
            .order_by(UsageRecord.operation)
        )
        by_operation = [
            OperationUsage(operation=operation, count=int(count), credits=int(credits))
            for operation, count, credits in (await self.db.execute(by_operation_stmt)).all()
        ]

        first_day = now.date() - timedelta(days=days - 1)
        day_column = func.date(func.timezone("UTC", UsageRecord.created_at))
        daily_stmt = (
            select(
                day_column,
                func.count(),
                func.coalesce(func.sum(UsageRecord.credits_charged), 0),
            )
            .where(UsageRecord.account_id == account_id, day_column >= first_day)
            .group_by(day_column)
        )
        daily_rows = (await self.db.execute(daily_stmt)).all()
        daily = zero_fill_daily(
            {day: (int(count), int(credits)) for day, count, credits in daily_rows},
            first_day,
            days,
        )

        recent_stmt = (
            select(UsageRecord)
            .where(UsageRecord.account_id == account_id)
            .order_by(UsageRecord.created_at.desc())
            .limit(recent)
        )
        recent_records = [
            to_usage_data(r) for r in (await self.db.execute(recent_stmt)).scalars().all()
        ]

        return UsageSummary(
            total_operations=int(total_operations),
            total_credits=int(total_credits),
            total_tokens=int(total_tokens),
            by_operation=by_operation,
            daily=daily,
            recent=recent_records,
        )

    async def count_all(self) -> int:
        """Platform-wide number of usage records."""
        result = await self.db.execute(select(func.count()).select_from(UsageRecord))
        return int(result.scalar_one())


def zero_fill_daily(
    totals: dict[date, tuple[int, int]], first_day: date, days: int
) -> list[DailyUsage]:
    """One DailyUsage per day from `first_day`, using (0, 0) for days with no usage."""
    series = []
    for offset in range(days):
        day = first_day + timedelta(days=offset)
        count, credits = totals.get(day, (0, 0))
        series.append(DailyUsage(day=day, count=count, credits=credits))
    return series
