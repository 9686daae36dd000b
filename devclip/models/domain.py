"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from devclip.models.api import HandlerCategory, PlanTier


@dataclass(frozen=True)
class AccountData:
    """Immutable account data snapshot."""

    account_id: UUID
    email: str | None
    plan_tier: PlanTier
    credit_balance: int
    credits_used: int
    credit_carryover: int
    is_admin: bool
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        """Validate ledger invariants."""
        if self.credit_balance < 0:
            raise ValueError(f"Balance cannot be negative: {self.credit_balance}")
        if self.credits_used < 0:
            raise ValueError(f"Used counter cannot be negative: {self.credits_used}")


@dataclass(frozen=True)
class CredentialData:
    """Resolved API key metadata (never carries the secret)."""

    key_id: UUID
    account_id: UUID
    name: str
    key_prefix: str
    created_at: datetime
    last_used_at: datetime | None
    revoked_at: datetime | None

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None


@dataclass(frozen=True)
class GeneratedCredential:
    """Newly generated API key. The plaintext is shown once and never stored."""

    key_id: UUID
    account_id: UUID
    plaintext_key: str
    key_prefix: str
    name: str
    created_at: datetime


@dataclass(frozen=True)
class TierPolicy:
    """Per-tier allocation, carryover cap, model and key limit."""

    tier: PlanTier
    rank: int
    monthly_allocation: int
    carryover_cap: int
    model: str
    max_api_keys: int | None  # None = unlimited

    def __post_init__(self) -> None:
        """Validate policy constraints."""
        if self.monthly_allocation < 0:
            raise ValueError(f"Monthly allocation cannot be negative: {self.monthly_allocation}")
        if self.carryover_cap < 0:
            raise ValueError(f"Carryover cap cannot be negative: {self.carryover_cap}")
        if self.max_api_keys is not None and self.max_api_keys < 0:
            raise ValueError(f"API key limit cannot be negative: {self.max_api_keys}")


@dataclass(frozen=True)
class RefreshAmounts:
    """Result of the monthly refresh arithmetic."""

    carryover: int
    new_balance: int


@dataclass(frozen=True)
class OperationDefinition:
    """Static catalog entry: what an operation costs and where it runs."""

    name: str
    cost: int
    category: HandlerCategory
    min_tier: PlanTier | None = None

    def __post_init__(self) -> None:
        """Validate catalog entry."""
        if not self.name:
            raise ValueError("Operation name cannot be empty")
        if self.cost <= 0:
            raise ValueError(f"Operation cost must be positive: {self.cost}")


@dataclass(frozen=True)
class AIResult:
    """Text and token usage returned by the completion provider."""

    text: str
    total_tokens: int
    model: str


@dataclass(frozen=True)
class CodeFormatResult:
    """Formatted code and the grammar that was used."""

    formatted: str
    language: str


@dataclass(frozen=True)
class UsageRecordData:
    """Immutable usage record snapshot."""

    usage_id: UUID
    account_id: UUID
    api_key_id: UUID | None
    operation: str
    input_snapshot: str | None
    output_snapshot: str | None
    credits_charged: int
    tokens_used: int
    model: str | None
    created_at: datetime


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of a completed, billed operation."""

    operation: str
    result: str
    credits_charged: int
    credits_remaining: int
    tokens_used: int = 0
    language: str | None = None


@dataclass(frozen=True)
class ClipboardItemData:
    """Immutable clipboard history entry."""

    item_id: UUID
    account_id: UUID
    content: str
    content_type: str
    formatted: bool
    favorite: bool
    created_at: datetime


@dataclass(frozen=True)
class OperationUsage:
    """Aggregate usage for one operation."""

    operation: str
    count: int
    credits: int


@dataclass(frozen=True)
class DailyUsage:
    """Aggregate usage for one calendar day (UTC)."""

    day: date
    count: int
    credits: int


@dataclass(frozen=True)
class UsageSummary:
    """Usage analytics for one account."""

    total_operations: int
    total_credits: int
    total_tokens: int
    by_operation: list[OperationUsage]
    daily: list[DailyUsage]
    recent: list[UsageRecordData]


@dataclass(frozen=True)
class ErrorLogEntry:
    """Server-side failure to persist for operators."""

    endpoint: str
    method: str
    status_code: int
    error_kind: str
    message: str
    stack: str | None = None
    request_context: Any = None
    account_id: UUID | None = None
    user_agent: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class AuthenticatedCaller:
    """A resolved credential together with its owning account."""

    credential: CredentialData
    account: AccountData


@dataclass(frozen=True)
class HandlerOutput:
    """What an operation handler produced, before billing."""

    text: str
    tokens_used: int = 0
    model: str | None = None
    language: str | None = None
