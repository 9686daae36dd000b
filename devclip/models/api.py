"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

# Input caps: formatting is local and cheap, AI text crosses a billed provider.
FORMAT_MAX_CHARS = 100_000
AI_MAX_CHARS = 10_000


class PlanTier(str, Enum):
    """Subscription plan tiers, ordered free < pro < team."""

    FREE = "free"
    PRO = "pro"
    TEAM = "team"


class FormatOperation(str, Enum):
    """Local text transforms exposed on POST /v1/format."""

    JSON = "json"
    YAML = "yaml"
    SQL = "sql"
    ANSI_STRIP = "ansi-strip"
    LOG_TO_MARKDOWN = "log-to-markdown"


class AIOperation(str, Enum):
    """Operations served by the external completion provider."""

    EXPLAIN = "explain"
    REFACTOR = "refactor"
    SUMMARIZE = "summarize"


class HandlerCategory(str, Enum):
    """Where an operation is executed."""

    LOCAL = "local"
    AI = "ai"


class CodeLanguage(str, Enum):
    """Grammars understood by the universal code formatter."""

    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    JSX = "jsx"
    TSX = "tsx"
    HTML = "html"
    VUE = "vue"
    ANGULAR = "angular"
    CSS = "css"
    SCSS = "scss"
    LESS = "less"
    JSON = "json"
    YAML = "yaml"
    MARKDOWN = "markdown"
    GRAPHQL = "graphql"
    SQL = "sql"


class ContentType(str, Enum):
    """Clipboard history content classification."""

    JSON = "json"
    YAML = "yaml"
    SQL = "sql"
    CODE = "code"
    TEXT = "text"
    LOG = "log"


# ============================================================================
# Operation Models
# ============================================================================


class FormatRequest(BaseModel):
    """POST /v1/format request body."""

    text: str = Field(..., min_length=1, max_length=FORMAT_MAX_CHARS)
    operation: FormatOperation


class CodeFormatRequest(BaseModel):
    """POST /v1/format/code request body."""

    text: str = Field(..., min_length=1, max_length=FORMAT_MAX_CHARS)
    language: CodeLanguage | None = Field(
        None, description="Grammar to use; auto-detected when omitted"
    )


class AIRequest(BaseModel):
    """POST /v1/ai/{explain,refactor,summarize} request body."""

    text: str = Field(..., min_length=1, max_length=AI_MAX_CHARS)

    @field_validator("text")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Whitespace-only input would be billed for nothing."""
        if not v.strip():
            raise ValueError("text cannot be blank")
        return v


class OperationResponse(BaseModel):
    """Response for every metered operation.

    tokensUsed and creditsCharged both report the billed cost. Provider token
    counts from AI operations are reported separately as providerTokens.
    """

    success: bool = True
    operation: str
    result: str
    tokens_used: int = Field(..., serialization_alias="tokensUsed")
    tokens_remaining: int = Field(..., serialization_alias="tokensRemaining")
    credits_charged: int = Field(..., serialization_alias="creditsCharged")
    provider_tokens: int | None = Field(None, serialization_alias="providerTokens")
    language: str | None = None


# ============================================================================
# Account Models
# ============================================================================


class AccountResponse(BaseModel):
    """GET /v1/account response."""

    account_id: UUID
    email: str | None
    plan_tier: PlanTier
    credit_balance: int
    credits_used: int
    credit_carryover: int
    is_admin: bool
    monthly_allocation: int
    carryover_cap: int


# ============================================================================
# API Key Models
# ============================================================================


class CreateAPIKeyRequest(BaseModel):
    """POST /v1/keys request body."""

    name: str = Field(..., min_length=1, max_length=100)


class CreateAPIKeyResponse(BaseModel):
    """POST /v1/keys response. The plaintext key is only ever returned here."""

    key_id: UUID
    name: str
    api_key: str
    created_at: str


class APIKeyItem(BaseModel):
    """Single API key in list response (masked)."""

    key_id: UUID
    name: str
    masked_key: str
    created_at: str
    last_used_at: str | None
    revoked_at: str | None


class ListAPIKeysResponse(BaseModel):
    """GET /v1/keys response."""

    keys: list[APIKeyItem]


# ============================================================================
# Usage Models
# ============================================================================


class UsageRecordItem(BaseModel):
    """Single usage record."""

    usage_id: UUID
    operation: str
    credits_charged: int
    tokens_used: int
    model: str | None
    input_snapshot: str | None
    output_snapshot: str | None
    created_at: str


class ListUsageResponse(BaseModel):
    """GET /v1/usage response."""

    records: list[UsageRecordItem]
    total_count: int


class OperationUsageItem(BaseModel):
    """Per-operation aggregate in the usage summary."""

    operation: str
    count: int
    credits: int


class DailyUsageItem(BaseModel):
    """Per-day aggregate in the usage summary."""

    date: str  # YYYY-MM-DD
    count: int
    credits: int


class UsageSummaryResponse(BaseModel):
    """GET /v1/usage/summary response."""

    total_operations: int
    total_credits: int
    total_tokens: int
    by_operation: list[OperationUsageItem]
    daily: list[DailyUsageItem]
    recent: list[UsageRecordItem]


# ============================================================================
# Clipboard History Models
# ============================================================================


class CreateClipboardItemRequest(BaseModel):
    """POST /v1/history request body."""

    content: str = Field(..., min_length=1, max_length=FORMAT_MAX_CHARS)
    content_type: ContentType = ContentType.TEXT
    formatted: bool = False


class ClipboardItemResponse(BaseModel):
    """Single clipboard history entry."""

    item_id: UUID
    content: str
    content_type: ContentType
    formatted: bool
    favorite: bool
    created_at: str


class ListClipboardResponse(BaseModel):
    """GET /v1/history response."""

    items: list[ClipboardItemResponse]


# ============================================================================
# Admin Models
# ============================================================================


class AdminAccountItem(BaseModel):
    """Account row in the admin listing."""

    account_id: UUID
    email: str | None
    plan_tier: PlanTier
    credit_balance: int
    credits_used: int
    credit_carryover: int
    is_admin: bool
    created_at: str


class AdminAccountListResponse(BaseModel):
    """GET /admin/users response."""

    accounts: list[AdminAccountItem]
    total_count: int


class SetCreditsRequest(BaseModel):
    """PATCH /admin/users/{id}/credits request body."""

    credit_balance: int = Field(..., ge=0)


class SetAdminRequest(BaseModel):
    """PATCH /admin/users/{id}/admin request body."""

    is_admin: bool


class SetPlanRequest(BaseModel):
    """PUT /admin/users/{id}/plan request body."""

    plan_tier: PlanTier


class PlanCountItem(BaseModel):
    """Account count for one plan tier."""

    plan_tier: PlanTier
    count: int


class PlatformStatsResponse(BaseModel):
    """GET /admin/stats response."""

    total_accounts: int
    accounts_by_plan: list[PlanCountItem]
    total_credit_balance: int
    total_credits_used: int
    total_operations: int


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str
    database: str
    timestamp: str
