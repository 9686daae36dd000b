"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Account(Base):
    """
    ORM model for accounts table.

    Stores plan tier and the credit ledger. Never hard-deleted.
    """

    __tablename__ = "accounts"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Identity
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    # Plan
    plan_tier: Mapped[str] = mapped_column(String(20), nullable=False, default="free")

    # Ledger
    credit_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    credits_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    credit_carryover: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Roles
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("credit_balance >= 0", name="ck_credit_balance_non_negative"),
        CheckConstraint("credits_used >= 0", name="ck_credits_used_non_negative"),
        CheckConstraint("credit_carryover >= 0", name="ck_credit_carryover_non_negative"),
        CheckConstraint("plan_tier IN ('free', 'pro', 'team')", name="ck_accounts_plan_tier"),
        Index("idx_accounts_plan_tier", "plan_tier"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Account(id={self.id}, plan_tier={self.plan_tier}, "
            f"balance={self.credit_balance}, used={self.credits_used})>"
        )


class APIKey(Base):
    """
    ORM model for api_keys table.

    Stores Argon2id-hashed API keys. Revocation is a soft delete.
    """

    __tablename__ = "api_keys"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Ownership
    account_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False, index=True
    )

    # Key storage (hashed with Argon2id)
    key_hash: Mapped[str] = mapped_column(Text, nullable=False)
    key_prefix: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    # Metadata
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "idx_api_keys_prefix_active",
            "key_prefix",
            postgresql_where=(revoked_at.is_(None)),
        ),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<APIKey(id={self.id}, account_id={self.account_id}, "
            f"prefix={self.key_prefix}, revoked={self.revoked_at is not None})>"
        )


class UsageRecord(Base):
    """
    ORM model for usage_records table.

    Append-only: one row per successfully completed, billed operation.
    """

    __tablename__ = "usage_records"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Foreign Keys
    account_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )
    api_key_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("api_keys.id"), nullable=True
    )

    # Operation
    operation: Mapped[str] = mapped_column(String(50), nullable=False)
    input_snapshot: Mapped[str | None] = mapped_column(Text, nullable=True)
    output_snapshot: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Billing
    credits_charged: Mapped[int] = mapped_column(Integer, nullable=False)
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits_charged >= 0", name="ck_usage_credits_non_negative"),
        CheckConstraint("tokens_used >= 0", name="ck_usage_tokens_non_negative"),
        Index("idx_usage_records_account_created", "account_id", "created_at"),
        Index("idx_usage_records_operation", "operation"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<UsageRecord(id={self.id}, account_id={self.account_id}, "
            f"operation={self.operation}, credits={self.credits_charged})>"
        )


class ClipboardItem(Base):
    """ORM model for clipboard_items table (per-account history)."""

    __tablename__ = "clipboard_items"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
    formatted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    favorite: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "content_type IN ('json', 'yaml', 'sql', 'code', 'text', 'log')",
            name="ck_clipboard_items_content_type",
        ),
        Index("idx_clipboard_items_account_created", "account_id", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<ClipboardItem(id={self.id}, account_id={self.account_id}, "
            f"type={self.content_type}, favorite={self.favorite})>"
        )


class ErrorLog(Base):
    """
    ORM model for error_logs table.

    Request context (query, headers, body) is redacted before it is written here.
    """

    __tablename__ = "error_logs"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    account_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)

    # Request context
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Error details
    error_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    stack: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_context: Mapped[Any | None] = mapped_column(JSONB, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_error_logs_created_at", "created_at"),
        Index("idx_error_logs_status_code", "status_code"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<ErrorLog(id={self.id}, endpoint={self.endpoint}, "
            f"status={self.status_code}, kind={self.error_kind})>"
        )
