"""
API Key Service - Generation, resolution and management of account API keys.

NO DICTIONARIES - All data uses typed dataclasses.
"""

import base64
import secrets
from uuid import UUID, uuid4

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from devclip.db.models import APIKey, utc_now
from devclip.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ResourceNotFoundError,
    ValidationError,
)
from devclip.models.api import PlanTier
from devclip.models.domain import CredentialData, GeneratedCredential
from devclip.observability.logging import get_logger
from devclip.observability.metrics import metrics
from devclip.services.plans import PlanPolicies, plan_policies

logger = get_logger(__name__)

KEY_PREFIX = "devclip_"
PREFIX_LENGTH = 20
INVALID_FORMAT_MESSAGE = "Invalid API key format"
INVALID_KEY_MESSAGE = "Invalid or revoked API key"


def mask_key_prefix(key_prefix: str) -> str:
    """Display form of a stored key: the first 15 characters only."""
    return f"{key_prefix[:15]}..."


def _to_credential(api_key: APIKey) -> CredentialData:
    return CredentialData(
        key_id=api_key.id,
        account_id=api_key.account_id,
        name=api_key.name,
        key_prefix=api_key.key_prefix,
        created_at=api_key.created_at,
        last_used_at=api_key.last_used_at,
        revoked_at=api_key.revoked_at,
    )


class APIKeyService:
    """Credential store: maps API key secrets to their owning account."""

    def __init__(self, db: AsyncSession, policies: PlanPolicies = plan_policies):
        self.db = db
        self.policies = policies
        self.password_hasher = PasswordHasher()

    def generate_api_key(self) -> tuple[str, str, str]:
        """
        Generate a new API key.

        Returns:
            tuple: (plaintext_key, key_hash, key_prefix)
        """
        random_bytes = secrets.token_bytes(32)
        key_suffix = base64.urlsafe_b64encode(random_bytes).decode("utf-8").rstrip("=")

        # Format: devclip_{suffix}
        plaintext_key = f"{KEY_PREFIX}{key_suffix}"

        # Prefix is stored in clear for indexed lookup
        key_prefix = plaintext_key[:PREFIX_LENGTH]

        key_hash = self.password_hasher.hash(plaintext_key)

        return plaintext_key, key_hash, key_prefix

    async def count_active_keys(self, account_id: UUID) -> int:
        """Number of non-revoked keys owned by an account."""
        stmt = (
            select(func.count())
            .select_from(APIKey)
            .where(APIKey.account_id == account_id, APIKey.revoked_at.is_(None))
        )
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def create_api_key(
        self, account_id: UUID, plan_tier: PlanTier | str, name: str
    ) -> GeneratedCredential:
        """
        Create a new API key, subject to the plan's key limit.

        Returns:
            GeneratedCredential with plaintext key (shown once!)

        Raises:
            AuthorizationError: plan allows no keys or the limit is reached
        """
        policy = self.policies.get(plan_tier)

        if policy.max_api_keys == 0:
            logger.warning(
                "api_key_creation_denied", account_id=str(account_id), plan_tier=policy.tier.value
            )
            raise AuthorizationError(
                "API keys are not available on the free plan. Upgrade to Pro or Team."
            )

        if policy.max_api_keys is not None:
            active = await self.count_active_keys(account_id)
            if active >= policy.max_api_keys:
                logger.warning(
                    "api_key_limit_reached",
                    account_id=str(account_id),
                    plan_tier=policy.tier.value,
                    active_keys=active,
                    limit=policy.max_api_keys,
                )
                raise AuthorizationError(
                    f"API key limit reached: the {policy.tier.value} plan allows "
                    f"{policy.max_api_keys} active keys"
                )

        plaintext_key, key_hash, key_prefix = self.generate_api_key()

        api_key = APIKey(
            id=uuid4(),
            account_id=account_id,
            key_hash=key_hash,
            key_prefix=key_prefix,
            name=name,
            created_at=utc_now(),
        )

        self.db.add(api_key)
        await self.db.commit()
        await self.db.refresh(api_key)

        logger.info(
            "api_key_created",
            key_id=str(api_key.id),
            account_id=str(account_id),
            name=name,
        )

        return GeneratedCredential(
            key_id=api_key.id,
            account_id=account_id,
            plaintext_key=plaintext_key,
            key_prefix=key_prefix,
            name=name,
            created_at=api_key.created_at,
        )

    async def resolve(self, provided_key: str) -> CredentialData:
        """
        Resolve an API key secret to its credential.

        Malformed secrets are rejected before any lookup. A revoked key is
        indistinguishable from an unknown one.

        Raises:
            AuthenticationError: malformed, unknown, revoked or mismatched key
        """
        if not provided_key.startswith(KEY_PREFIX):
            metrics.record_auth_failure("invalid_format")
            logger.warning("api_key_invalid_format", prefix=provided_key[:8])
            raise AuthenticationError(INVALID_FORMAT_MESSAGE)

        key_prefix = provided_key[:PREFIX_LENGTH]

        stmt = select(APIKey).where(APIKey.key_prefix == key_prefix, APIKey.revoked_at.is_(None))
        result = await self.db.execute(stmt)
        api_key = result.scalar_one_or_none()

        if api_key is None or api_key.revoked_at is not None:
            metrics.record_auth_failure("not_found")
            logger.warning("api_key_not_found", prefix=key_prefix)
            raise AuthenticationError(INVALID_KEY_MESSAGE)

        try:
            self.password_hasher.verify(api_key.key_hash, provided_key)
        except (VerificationError, InvalidHashError):
            metrics.record_auth_failure("hash_mismatch")
            logger.warning("api_key_hash_mismatch", key_id=str(api_key.id))
            raise AuthenticationError(INVALID_KEY_MESSAGE) from None

        logger.info("api_key_validated", key_id=str(api_key.id), account_id=str(api_key.account_id))

        return _to_credential(api_key)

    async def touch_last_used(self, key_id: UUID) -> None:
        """Record a successful authentication. Best-effort: failures are logged only."""
        try:
            await self.db.execute(
                update(APIKey).where(APIKey.id == key_id).values(last_used_at=utc_now())
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            logger.warning("api_key_last_used_update_failed", key_id=str(key_id), error=str(exc))
            await self.db.rollback()

    async def list_api_keys(self, account_id: UUID) -> list[CredentialData]:
        """List an account's keys, newest first (revoked keys included)."""
        stmt = (
            select(APIKey)
            .where(APIKey.account_id == account_id)
            .order_by(APIKey.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return [_to_credential(key) for key in result.scalars().all()]

    async def revoke_api_key(self, account_id: UUID, key_id: UUID) -> CredentialData:
        """
        Revoke (soft-delete) one of the account's keys.

        Raises:
            ResourceNotFoundError: no such key for this account
            ValidationError: key already revoked
        """
        stmt = select(APIKey).where(APIKey.id == key_id, APIKey.account_id == account_id)
        result = await self.db.execute(stmt)
        api_key = result.scalar_one_or_none()

        if api_key is None:
            raise ResourceNotFoundError("API key", key_id)

        if api_key.revoked_at is not None:
            raise ValidationError("API key is already revoked")

        api_key.revoked_at = utc_now()
        await self.db.commit()

        logger.info("api_key_revoked", key_id=str(key_id), account_id=str(account_id))

        return _to_credential(api_key)
