"""
Account Ledger - Credit balances, usage counters and plan tiers.

The debit is a single conditional UPDATE: it succeeds only while the balance
covers the amount, so concurrent debits on one account cannot overdraw it.
"""

from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from devclip.db.models import Account, utc_now
from devclip.exceptions import AccountNotFoundError, InsufficientCreditsError, ValidationError
from devclip.models.api import PlanTier
from devclip.models.domain import AccountData
from devclip.observability.logging import get_logger
from devclip.services.plans import (
    DEFAULT_TIER,
    PlanPolicies,
    compute_monthly_refresh,
    plan_policies,
)

logger = get_logger(__name__)


def to_account_data(account: Account) -> AccountData:
    """Convert an ORM row into an immutable snapshot."""
    return AccountData(
        account_id=account.id,
        email=account.email,
        plan_tier=PlanTier(account.plan_tier),
        credit_balance=account.credit_balance,
        credits_used=account.credits_used,
        credit_carryover=account.credit_carryover,
        is_admin=account.is_admin,
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


class AccountLedger:
    """Per-account credit ledger backed by the accounts table."""

    def __init__(self, db: AsyncSession, policies: PlanPolicies = plan_policies):
        self.db = db
        self.policies = policies

    async def _load(self, account_id: UUID, for_update: bool = False) -> Account:
        stmt = select(Account).where(Account.id == account_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        account = result.scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def _update_returning(self, account_id: UUID, **values: object) -> AccountData:
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(updated_at=utc_now(), **values)
            .returning(Account)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        result = await self.db.execute(stmt)
        account = result.scalar_one_or_none()
        if account is None:
            await self.db.rollback()
            raise AccountNotFoundError(account_id)
        await self.db.commit()
        return to_account_data(account)

    async def get_account(self, account_id: UUID) -> AccountData:
        """
        Get an account snapshot.

        Raises:
            AccountNotFoundError: no such account
        """
        return to_account_data(await self._load(account_id))

    async def get_balance(self, account_id: UUID) -> int:
        """Current credit balance."""
        account = await self._load(account_id)
        return account.credit_balance

    async def get_or_create_account(self, email: str) -> AccountData:
        """Find an account by email, creating it on the default tier if missing."""
        result = await self.db.execute(select(Account).where(Account.email == email))
        account = result.scalar_one_or_none()
        if account is not None:
            return to_account_data(account)

        policy = self.policies.get(DEFAULT_TIER)
        now = utc_now()
        account = Account(
            id=uuid4(),
            email=email,
            plan_tier=policy.tier.value,
            credit_balance=policy.monthly_allocation,
            credits_used=0,
            credit_carryover=0,
            is_admin=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(account)
        await self.db.commit()
        await self.db.refresh(account)

        logger.info(
            "account_created",
            account_id=str(account.id),
            plan_tier=policy.tier.value,
            credit_balance=policy.monthly_allocation,
        )
        return to_account_data(account)

    async def debit(self, account_id: UUID, amount: int) -> AccountData:
        """
        Atomically subtract `amount` from the balance and add it to the used counter.

        Raises:
            ValidationError: amount is not positive
            AccountNotFoundError: no such account
            InsufficientCreditsError: balance < amount (nothing is changed)
        """
        if amount <= 0:
            raise ValidationError(f"Debit amount must be positive: {amount}")

        stmt = (
            update(Account)
            .where(Account.id == account_id, Account.credit_balance >= amount)
            .values(
                credit_balance=Account.credit_balance - amount,
                credits_used=Account.credits_used + amount,
                updated_at=utc_now(),
            )
            .returning(Account)
            .execution_options(synchronize_session=False, populate_existing=True)
        )
        result = await self.db.execute(stmt)
        account = result.scalar_one_or_none()

        if account is None:
            await self.db.rollback()
            current = await self.db.get(Account, account_id, populate_existing=True)
            if current is None:
                raise AccountNotFoundError(account_id)
            logger.warning(
                "debit_rejected_insufficient_credits",
                account_id=str(account_id),
                required=amount,
                available=current.credit_balance,
            )
            raise InsufficientCreditsError(required=amount, available=current.credit_balance)

        await self.db.commit()

        logger.info(
            "credits_debited",
            account_id=str(account_id),
            amount=amount,
            balance_after=account.credit_balance,
        )
        return to_account_data(account)

    async def set_plan(self, account_id: UUID, plan_tier: PlanTier | str) -> AccountData:
        """
        Move an account to a tier and reset its balance to that tier's allocation.

        Unused balance from the previous tier is not carried over.
        """
        policy = self.policies.get(plan_tier)
        account = await self._update_returning(
            account_id,
            plan_tier=policy.tier.value,
            credit_balance=policy.monthly_allocation,
            credit_carryover=0,
        )
        logger.info(
            "account_plan_changed",
            account_id=str(account_id),
            plan_tier=policy.tier.value,
            credit_balance=policy.monthly_allocation,
        )
        return account

    async def monthly_refresh(self, account_id: UUID) -> AccountData:
        """Grant the monthly allocation plus capped carryover and reset the used counter."""
        account = await self._load(account_id, for_update=True)
        policy = self.policies.get(account.plan_tier)
        amounts = compute_monthly_refresh(account.credit_balance, policy)

        balance_before = account.credit_balance
        account.credit_carryover = amounts.carryover
        account.credit_balance = amounts.new_balance
        account.credits_used = 0
        account.updated_at = utc_now()
        await self.db.commit()

        logger.info(
            "account_monthly_refresh",
            account_id=str(account_id),
            plan_tier=policy.tier.value,
            balance_before=balance_before,
            carryover=amounts.carryover,
            balance_after=amounts.new_balance,
        )
        return to_account_data(account)

    async def set_balance(self, account_id: UUID, balance: int) -> AccountData:
        """Administrative balance override."""
        if balance < 0:
            raise ValidationError(f"Balance cannot be negative: {balance}")
        account = await self._update_returning(account_id, credit_balance=balance)
        logger.info("account_balance_set", account_id=str(account_id), credit_balance=balance)
        return account

    async def set_admin(self, account_id: UUID, is_admin: bool) -> AccountData:
        """Grant or revoke the admin flag."""
        account = await self._update_returning(account_id, is_admin=is_admin)
        logger.info("account_admin_flag_set", account_id=str(account_id), is_admin=is_admin)
        return account

    async def list_accounts(
        self, limit: int = 100, offset: int = 0
    ) -> tuple[list[AccountData], int]:
        """Page through accounts, newest first. Returns (accounts, total_count)."""
        total = (await self.db.execute(select(func.count()).select_from(Account))).scalar_one()
        stmt = select(Account).order_by(Account.created_at.desc()).limit(limit).offset(offset)
        result = await self.db.execute(stmt)
        return [to_account_data(a) for a in result.scalars().all()], int(total)

    async def list_account_ids(self) -> list[UUID]:
        """All account ids (used by the monthly refresh batch)."""
        result = await self.db.execute(select(Account.id).order_by(Account.created_at))
        return list(result.scalars().all())

    async def plan_counts(self) -> dict[PlanTier, int]:
        """Number of accounts per tier (tiers with no accounts report 0)."""
        stmt = select(Account.plan_tier, func.count()).group_by(Account.plan_tier)
        result = await self.db.execute(stmt)
        counts = {tier: 0 for tier in PlanTier}
        for plan_tier, count in result.all():
            counts[PlanTier(plan_tier)] = int(count)
        return counts

    async def credit_totals(self) -> tuple[int, int]:
        """Platform-wide (sum of balances, sum of used counters)."""
        stmt = select(
            func.coalesce(func.sum(Account.credit_balance), 0),
            func.coalesce(func.sum(Account.credits_used), 0),
        )
        result = await self.db.execute(stmt)
        balance, used = result.one()
        return int(balance), int(used)
