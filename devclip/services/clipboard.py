"""
Clipboard History Service - Per-account saved snippets.
"""

from uuid import UUID, uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from devclip.db.models import ClipboardItem, utc_now
from devclip.exceptions import ResourceNotFoundError
from devclip.models.api import ContentType
from devclip.models.domain import ClipboardItemData
from devclip.observability.logging import get_logger

logger = get_logger(__name__)


def to_clipboard_data(item: ClipboardItem) -> ClipboardItemData:
    return ClipboardItemData(
        item_id=item.id,
        account_id=item.account_id,
        content=item.content,
        content_type=item.content_type,
        formatted=item.formatted,
        favorite=item.favorite,
        created_at=item.created_at,
    )


class ClipboardService:
    """CRUD over clipboard history, always scoped to one account."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_items(self, account_id: UUID, limit: int = 50) -> list[ClipboardItemData]:
        """Newest items first."""
        stmt = (
            select(ClipboardItem)
            .where(ClipboardItem.account_id == account_id)
            .order_by(ClipboardItem.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return [to_clipboard_data(item) for item in result.scalars().all()]

    async def create_item(
        self,
        account_id: UUID,
        content: str,
        content_type: ContentType | str = ContentType.TEXT,
        formatted: bool = False,
    ) -> ClipboardItemData:
        item = ClipboardItem(
            id=uuid4(),
            account_id=account_id,
            content=content,
            content_type=ContentType(content_type).value,
            formatted=formatted,
            favorite=False,
            created_at=utc_now(),
        )
        self.db.add(item)
        await self.db.commit()

        logger.info(
            "clipboard_item_created",
            item_id=str(item.id),
            account_id=str(account_id),
            content_type=item.content_type,
        )
        return to_clipboard_data(item)

    async def _get_owned(self, account_id: UUID, item_id: UUID) -> ClipboardItem:
        stmt = select(ClipboardItem).where(
            ClipboardItem.id == item_id, ClipboardItem.account_id == account_id
        )
        result = await self.db.execute(stmt)
        item = result.scalar_one_or_none()
        if item is None:
            raise ResourceNotFoundError("Clipboard item", item_id)
        return item

    async def toggle_favorite(self, account_id: UUID, item_id: UUID) -> ClipboardItemData:
        """Flip the favorite flag on one of the account's items."""
        item = await self._get_owned(account_id, item_id)
        item.favorite = not item.favorite
        await self.db.commit()

        logger.info(
            "clipboard_item_favorite_toggled", item_id=str(item_id), favorite=item.favorite
        )
        return to_clipboard_data(item)

    async def delete_item(self, account_id: UUID, item_id: UUID) -> None:
        """Delete one of the account's items."""
        await self._get_owned(account_id, item_id)
        await self.db.execute(
            delete(ClipboardItem).where(
                ClipboardItem.id == item_id, ClipboardItem.account_id == account_id
            )
        )
        await self.db.commit()

        logger.info("clipboard_item_deleted", item_id=str(item_id), account_id=str(account_id))
