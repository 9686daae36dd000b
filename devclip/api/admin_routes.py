"""
Admin API routes for managing accounts and plans.

Protected by API key authentication; the owning account must carry the admin flag.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from devclip.api.dependencies import capture_request_body, require_admin
from devclip.db.session import get_read_db, get_write_db
from devclip.exceptions import AccountNotFoundError, ResourceNotFoundError
from devclip.models.api import (
    AccountResponse,
    AdminAccountItem,
    AdminAccountListResponse,
    PlanCountItem,
    PlatformStatsResponse,
    SetAdminRequest,
    SetCreditsRequest,
    SetPlanRequest,
)
from devclip.models.domain import AccountData, AuthenticatedCaller
from devclip.observability.logging import get_logger
from devclip.services.ledger import AccountLedger
from devclip.services.plans import plan_policies
from devclip.services.usage import UsageService

logger = get_logger(__name__)
router = APIRouter(
    prefix="/admin", tags=["admin"], dependencies=[Depends(capture_request_body)]
)


@contextmanager
def _target_account(account_id: UUID) -> Iterator[None]:
    """A missing target account is a 404 here, not an authentication failure."""
    try:
        yield
    except AccountNotFoundError:
        raise ResourceNotFoundError("Account", account_id) from None


def _account_response(account: AccountData) -> AccountResponse:
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


@router.get("/users", response_model=AdminAccountListResponse)
async def list_users(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    admin: AuthenticatedCaller = Depends(require_admin),
    db: AsyncSession = Depends(get_read_db),
) -> AdminAccountListResponse:
    """List accounts, newest first."""
    accounts, total = await AccountLedger(db).list_accounts(limit=limit, offset=offset)
    return AdminAccountListResponse(
        accounts=[
            AdminAccountItem(
                account_id=a.account_id,
                email=a.email,
                plan_tier=a.plan_tier,
                credit_balance=a.credit_balance,
                credits_used=a.credits_used,
                credit_carryover=a.credit_carryover,
                is_admin=a.is_admin,
                created_at=a.created_at.isoformat(),
            )
            for a in accounts
        ],
        total_count=total,
    )


@router.patch("/users/{account_id}/credits", response_model=AccountResponse)
async def set_user_credits(
    account_id: UUID,
    request: SetCreditsRequest,
    admin: AuthenticatedCaller = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> AccountResponse:
    """Override an account's credit balance."""
    with _target_account(account_id):
        account = await AccountLedger(db).set_balance(account_id, request.credit_balance)
    logger.info(
        "admin_set_credits",
        admin_account_id=str(admin.account.account_id),
        account_id=str(account_id),
        credit_balance=request.credit_balance,
    )
    return _account_response(account)


@router.patch("/users/{account_id}/admin", response_model=AccountResponse)
async def set_user_admin(
    account_id: UUID,
    request: SetAdminRequest,
    admin: AuthenticatedCaller = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> AccountResponse:
    """Grant or revoke the admin flag."""
    with _target_account(account_id):
        account = await AccountLedger(db).set_admin(account_id, request.is_admin)
    logger.info(
        "admin_set_admin_flag",
        admin_account_id=str(admin.account.account_id),
        account_id=str(account_id),
        is_admin=request.is_admin,
    )
    return _account_response(account)


@router.put("/users/{account_id}/plan", response_model=AccountResponse)
async def set_user_plan(
    account_id: UUID,
    request: SetPlanRequest,
    admin: AuthenticatedCaller = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> AccountResponse:
    """Move an account to a tier; the balance is reset to the tier's allocation."""
    with _target_account(account_id):
        account = await AccountLedger(db).set_plan(account_id, request.plan_tier)
    logger.info(
        "admin_set_plan",
        admin_account_id=str(admin.account.account_id),
        account_id=str(account_id),
        plan_tier=request.plan_tier.value,
    )
    return _account_response(account)


@router.post("/users/{account_id}/refresh", response_model=AccountResponse)
async def refresh_user_credits(
    account_id: UUID,
    admin: AuthenticatedCaller = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> AccountResponse:
    """Apply the monthly refresh to a single account now."""
    with _target_account(account_id):
        account = await AccountLedger(db).monthly_refresh(account_id)
    logger.info(
        "admin_refresh_credits",
        admin_account_id=str(admin.account.account_id),
        account_id=str(account_id),
    )
    return _account_response(account)


@router.get("/stats", response_model=PlatformStatsResponse)
async def get_platform_stats(
    admin: AuthenticatedCaller = Depends(require_admin),
    db: AsyncSession = Depends(get_read_db),
) -> PlatformStatsResponse:
    """Platform-wide account, credit and operation totals."""
    ledger = AccountLedger(db)
    counts = await ledger.plan_counts()
    total_balance, total_used = await ledger.credit_totals()
    total_operations = await UsageService(db).count_all()

    return PlatformStatsResponse(
        total_accounts=sum(counts.values()),
        accounts_by_plan=[
            PlanCountItem(plan_tier=tier, count=count) for tier, count in counts.items()
        ],
        total_credit_balance=total_balance,
        total_credits_used=total_used,
        total_operations=total_operations,
    )
