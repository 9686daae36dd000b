"""
API Routes - FastAPI endpoints for metered operations and account self-service.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from devclip.api.dependencies import capture_request_body, get_authenticated, get_pipeline
from devclip.config import settings
from devclip.db.session import get_read_db, get_write_db
from devclip.models.api import (
    AccountResponse,
    AIOperation,
    AIRequest,
    APIKeyItem,
    ClipboardItemResponse,
    CodeFormatRequest,
    CreateAPIKeyRequest,
    CreateAPIKeyResponse,
    CreateClipboardItemRequest,
    DailyUsageItem,
    FormatRequest,
    ListAPIKeysResponse,
    ListClipboardResponse,
    ListUsageResponse,
    OperationResponse,
    OperationUsageItem,
    UsageRecordItem,
    UsageSummaryResponse,
)
from devclip.models.domain import (
    AuthenticatedCaller,
    ClipboardItemData,
    PipelineResult,
    UsageRecordData,
)
from devclip.services.api_key import APIKeyService, mask_key_prefix
from devclip.services.catalog import CODE_FORMAT_OPERATION
from devclip.services.clipboard import ClipboardService
from devclip.services.pipeline import RequestAuthorizationPipeline
from devclip.services.plans import plan_policies
from devclip.services.usage import UsageService

router = APIRouter(prefix="/v1", dependencies=[Depends(capture_request_body)])


def _operation_response(result: PipelineResult) -> OperationResponse:
    return OperationResponse(
        success=True,
        operation=result.operation,
        result=result.result,
        tokens_used=result.credits_charged,
        tokens_remaining=result.credits_remaining,
        credits_charged=result.credits_charged,
        provider_tokens=result.tokens_used or None,
        language=result.language,
    )


def _usage_item(record: UsageRecordData) -> UsageRecordItem:
    return UsageRecordItem(
        usage_id=record.usage_id,
        operation=record.operation,
        credits_charged=record.credits_charged,
        tokens_used=record.tokens_used,
        model=record.model,
        input_snapshot=record.input_snapshot,
        output_snapshot=record.output_snapshot,
        created_at=record.created_at.isoformat(),
    )


def _clipboard_item(item: ClipboardItemData) -> ClipboardItemResponse:
    return ClipboardItemResponse(
        item_id=item.item_id,
        content=item.content,
        content_type=item.content_type,
        formatted=item.formatted,
        favorite=item.favorite,
        created_at=item.created_at.isoformat(),
    )


# ============================================================================
# Metered operations
# ============================================================================


@router.post("/format", response_model=OperationResponse, response_model_exclude_none=True)
async def format_text(
    request: FormatRequest,
    caller: AuthenticatedCaller = Depends(get_authenticated),
    pipeline: RequestAuthorizationPipeline = Depends(get_pipeline),
) -> OperationResponse:
    """
    Apply a local text transform (json, yaml, sql, ansi-strip, log-to-markdown).

    Costs 1 credit, debited only when formatting succeeds.
    """
    result = await pipeline.execute(caller, request.operation.value, request.text)
    return _operation_response(result)


@router.post("/format/code", response_model=OperationResponse, response_model_exclude_none=True)
async def format_code(
    request: CodeFormatRequest,
    caller: AuthenticatedCaller = Depends(get_authenticated),
    pipeline: RequestAuthorizationPipeline = Depends(get_pipeline),
) -> OperationResponse:
    """Pretty-print code, auto-detecting the language when none is given."""
    language = request.language.value if request.language else None
    result = await pipeline.execute(caller, CODE_FORMAT_OPERATION, request.text, language)
    return _operation_response(result)


@router.post(
    "/ai/{operation}", response_model=OperationResponse, response_model_exclude_none=True
)
async def run_ai_operation(
    operation: AIOperation,
    request: AIRequest,
    caller: AuthenticatedCaller = Depends(get_authenticated),
    pipeline: RequestAuthorizationPipeline = Depends(get_pipeline),
) -> OperationResponse:
    """
    Explain, refactor or summarize text with the tier's model.

    The provider is called before any credits move; a provider failure
    costs nothing.
    """
    result = await pipeline.execute(caller, operation.value, request.text)
    return _operation_response(result)


# ============================================================================
# Account and usage
# ============================================================================


@router.get("/account", response_model=AccountResponse)
async def get_account(
    caller: AuthenticatedCaller = Depends(get_authenticated),
) -> AccountResponse:
    """Plan, balance and allocation for the calling account."""
    account = caller.account
    policy = plan_policies.get(account.plan_tier)
    return AccountResponse(
        account_id=account.account_id,
        email=account.email,
        plan_tier=account.plan_tier,
        credit_balance=account.credit_balance,
        credits_used=account.credits_used,
        credit_carryover=account.credit_carryover,
        is_admin=account.is_admin,
        monthly_allocation=policy.monthly_allocation,
        carryover_cap=policy.carryover_cap,
    )


@router.get("/usage", response_model=ListUsageResponse)
async def list_usage(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    caller: AuthenticatedCaller = Depends(get_authenticated),
    db: AsyncSession = Depends(get_read_db),
) -> ListUsageResponse:
    """The caller's usage records, newest first."""
    records, total = await UsageService(db).list_usage(
        caller.account.account_id, limit=limit, offset=offset
    )
    return ListUsageResponse(records=[_usage_item(r) for r in records], total_count=total)


@router.get("/usage/summary", response_model=UsageSummaryResponse)
async def get_usage_summary(
    caller: AuthenticatedCaller = Depends(get_authenticated),
    db: AsyncSession = Depends(get_read_db),
) -> UsageSummaryResponse:
    """Totals, per-operation breakdown, 30-day daily series and recent records."""
    summary = await UsageService(db).summary(caller.account.account_id)
    return UsageSummaryResponse(
        total_operations=summary.total_operations,
        total_credits=summary.total_credits,
        total_tokens=summary.total_tokens,
        by_operation=[
            OperationUsageItem(operation=u.operation, count=u.count, credits=u.credits)
            for u in summary.by_operation
        ],
        daily=[
            DailyUsageItem(date=d.day.isoformat(), count=d.count, credits=d.credits)
            for d in summary.daily
        ],
        recent=[_usage_item(r) for r in summary.recent],
    )


# ============================================================================
# API key management
# ============================================================================


@router.post(
    "/keys", response_model=CreateAPIKeyResponse, status_code=status.HTTP_201_CREATED
)
async def create_api_key(
    request: CreateAPIKeyRequest,
    caller: AuthenticatedCaller = Depends(get_authenticated),
    db: AsyncSession = Depends(get_write_db),
) -> CreateAPIKeyResponse:
    """
    Create an API key for the calling account.

    The plaintext key is returned once and never again.
    """
    generated = await APIKeyService(db).create_api_key(
        caller.account.account_id, caller.account.plan_tier, request.name
    )
    return CreateAPIKeyResponse(
        key_id=generated.key_id,
        name=generated.name,
        api_key=generated.plaintext_key,
        created_at=generated.created_at.isoformat(),
    )


@router.get("/keys", response_model=ListAPIKeysResponse)
async def list_api_keys(
    caller: AuthenticatedCaller = Depends(get_authenticated),
    db: AsyncSession = Depends(get_read_db),
) -> ListAPIKeysResponse:
    """The caller's keys, masked, including revoked ones."""
    keys = await APIKeyService(db).list_api_keys(caller.account.account_id)
    return ListAPIKeysResponse(
        keys=[
            APIKeyItem(
                key_id=key.key_id,
                name=key.name,
                masked_key=mask_key_prefix(key.key_prefix),
                created_at=key.created_at.isoformat(),
                last_used_at=key.last_used_at.isoformat() if key.last_used_at else None,
                revoked_at=key.revoked_at.isoformat() if key.revoked_at else None,
            )
            for key in keys
        ]
    )


@router.delete("/keys/{key_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_api_key(
    key_id: UUID,
    caller: AuthenticatedCaller = Depends(get_authenticated),
    db: AsyncSession = Depends(get_write_db),
) -> None:
    """Revoke one of the caller's keys. Takes effect on the next request."""
    await APIKeyService(db).revoke_api_key(caller.account.account_id, key_id)


# ============================================================================
# Clipboard history
# ============================================================================


@router.get("/history", response_model=ListClipboardResponse)
async def list_history(
    caller: AuthenticatedCaller = Depends(get_authenticated),
    db: AsyncSession = Depends(get_read_db),
) -> ListClipboardResponse:
    """Most recent clipboard items for the caller."""
    items = await ClipboardService(db).list_items(
        caller.account.account_id, limit=settings.history_list_limit
    )
    return ListClipboardResponse(items=[_clipboard_item(i) for i in items])


@router.post(
    "/history", response_model=ClipboardItemResponse, status_code=status.HTTP_201_CREATED
)
async def create_history_item(
    request: CreateClipboardItemRequest,
    caller: AuthenticatedCaller = Depends(get_authenticated),
    db: AsyncSession = Depends(get_write_db),
) -> ClipboardItemResponse:
    item = await ClipboardService(db).create_item(
        caller.account.account_id, request.content, request.content_type, request.formatted
    )
    return _clipboard_item(item)


@router.put("/history/{item_id}/favorite", response_model=ClipboardItemResponse)
async def toggle_history_favorite(
    item_id: UUID,
    caller: AuthenticatedCaller = Depends(get_authenticated),
    db: AsyncSession = Depends(get_write_db),
) -> ClipboardItemResponse:
    item = await ClipboardService(db).toggle_favorite(caller.account.account_id, item_id)
    return _clipboard_item(item)


@router.delete("/history/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_history_item(
    item_id: UUID,
    caller: AuthenticatedCaller = Depends(get_authenticated),
    db: AsyncSession = Depends(get_write_db),
) -> None:
    await ClipboardService(db).delete_item(caller.account.account_id, item_id)
