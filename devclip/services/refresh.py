"""
Monthly Refresh - Batch credit refresh across all accounts.

Each account is refreshed in its own session and transaction, so one failing
account does not roll back the others. Transient database errors are retried.
"""

from dataclasses import dataclass, field
from uuid import UUID

from devclip.observability.logging import get_logger
from devclip.services.error_logger import SessionProvider, retry_with_backoff
from devclip.services.ledger import AccountLedger
from devclip.services.plans import PlanPolicies, compute_monthly_refresh, plan_policies

logger = get_logger(__name__)


@dataclass
class RefreshReport:
    """Outcome of one batch run."""

    refreshed: int = 0
    failed: list[UUID] = field(default_factory=list)
    dry_run: bool = False

    @property
    def total(self) -> int:
        return self.refreshed + len(self.failed)


async def refresh_all_accounts(
    session_provider: SessionProvider,
    policies: PlanPolicies = plan_policies,
    dry_run: bool = False,
) -> RefreshReport:
    """
    Apply the monthly refresh to every account.

    With dry_run, balances are computed and logged but nothing is written.
    """
    async with session_provider() as session:
        account_ids = await AccountLedger(session, policies).list_account_ids()

    logger.info("monthly_refresh_started", accounts=len(account_ids), dry_run=dry_run)
    report = RefreshReport(dry_run=dry_run)

    for account_id in account_ids:
        try:
            if dry_run:
                await _preview(session_provider, policies, account_id)
            else:
                await retry_with_backoff(
                    lambda account_id=account_id: _refresh_one(
                        session_provider, policies, account_id
                    )
                )
        except Exception as exc:
            report.failed.append(account_id)
            logger.error(
                "monthly_refresh_account_failed",
                account_id=str(account_id),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            continue
        report.refreshed += 1

    logger.info(
        "monthly_refresh_completed",
        refreshed=report.refreshed,
        failed=len(report.failed),
        dry_run=dry_run,
    )
    return report


async def _refresh_one(
    session_provider: SessionProvider, policies: PlanPolicies, account_id: UUID
) -> None:
    async with session_provider() as session:
        await AccountLedger(session, policies).monthly_refresh(account_id)


async def _preview(
    session_provider: SessionProvider, policies: PlanPolicies, account_id: UUID
) -> None:
    async with session_provider() as session:
        account = await AccountLedger(session, policies).get_account(account_id)
    amounts = compute_monthly_refresh(account.credit_balance, policies.get(account.plan_tier))
    logger.info(
        "monthly_refresh_preview",
        account_id=str(account_id),
        plan_tier=account.plan_tier.value,
        balance_before=account.credit_balance,
        carryover=amounts.carryover,
        balance_after=amounts.new_balance,
    )
