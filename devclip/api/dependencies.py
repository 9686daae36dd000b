"""
FastAPI Dependencies - Authentication, authorization and service wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from devclip.db.session import get_write_db
from devclip.exceptions import AuthorizationError
from devclip.models.domain import AuthenticatedCaller
from devclip.observability.logging import get_logger
from devclip.services.ai import AIInvocationAdapter
from devclip.services.api_key import APIKeyService
from devclip.services.ledger import AccountLedger
from devclip.services.pipeline import RequestAuthorizationPipeline
from devclip.services.usage import UsageService

logger = get_logger(__name__)

# Bearer token scheme: Authorization: Bearer devclip_...
bearer_scheme = HTTPBearer(auto_error=False)


async def capture_request_body(request: Request) -> None:
    """Keep the raw request body on request.state for the error logger."""
    request.state.raw_body = await request.body()


def get_api_key_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str | None:
    """The bearer secret, or None when the header is missing or not a Bearer token."""
    if credentials is None:
        return None
    return credentials.credentials


def get_ai_adapter(request: Request) -> AIInvocationAdapter | None:
    """AI adapter built at startup; None when no provider key is configured."""
    return getattr(request.app.state, "ai_adapter", None)


def get_pipeline(
    db: AsyncSession = Depends(get_write_db),
    ai: AIInvocationAdapter | None = Depends(get_ai_adapter),
) -> RequestAuthorizationPipeline:
    """Pipeline bound to the request's write session."""
    return RequestAuthorizationPipeline(
        credentials=APIKeyService(db),
        ledger=AccountLedger(db),
        usage=UsageService(db),
        ai=ai,
    )


async def get_authenticated(
    request: Request,
    secret: str | None = Depends(get_api_key_secret),
    pipeline: RequestAuthorizationPipeline = Depends(get_pipeline),
) -> AuthenticatedCaller:
    """
    FastAPI dependency resolving the bearer API key to a caller.

    Usage:
        @router.get("/v1/account")
        async def get_account(caller: AuthenticatedCaller = Depends(get_authenticated)):
            pass

    Raises:
        AuthenticationError: rendered as 401 with WWW-Authenticate: Bearer
    """
    caller = await pipeline.authenticate(secret)
    request.state.account_id = caller.account.account_id
    return caller


async def require_admin(
    caller: AuthenticatedCaller = Depends(get_authenticated),
) -> AuthenticatedCaller:
    """Allow only callers whose account carries the admin flag."""
    if not caller.account.is_admin:
        logger.warning("admin_access_denied", account_id=str(caller.account.account_id))
        raise AuthorizationError("Admin access required")
    return caller
