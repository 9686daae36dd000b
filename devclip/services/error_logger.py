"""
Error Logger - Redaction, persisted error logs and transient-failure retry.

Anything written to logs or the error_logs table passes through
redact_sensitive_data first.
"""

import re
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from typing import Any, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from devclip.db.models import ErrorLog, utc_now
from devclip.exceptions import DevClipError
from devclip.models.domain import ErrorLogEntry
from devclip.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

REDACTED = "[REDACTED]"
MAX_REDACTION_DEPTH = 10
TRUNCATED = {"__truncated": "Max depth reached"}

SENSITIVE_FIELD_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"password",
        r"passwd",
        r"(^|_)pwd($|_)",
        r"secret",
        r"token",
        r"(api|private|public|webhook|stripe|client).?key",
        r"authorization",
        r"credential",
        r"bearer",
        r"cookie",
        r"(^|_)cvv($|_)",
        r"(^|_)ssn($|_)",
        r"credit.?card",
        r"card.?number",
    )
)

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (OperationalError, InterfaceError, OSError)


def is_sensitive_field(name: str) -> bool:
    """True when a field name matches any sensitive-data pattern."""
    return any(pattern.search(name) for pattern in SENSITIVE_FIELD_PATTERNS)


def redact_sensitive_data(data: Any, depth: int = 0) -> Any:
    """
    Recursively replace values of sensitive fields with "[REDACTED]".

    Walks mappings and sequences; structures nested deeper than
    MAX_REDACTION_DEPTH are replaced with a truncation marker.
    """
    if depth > MAX_REDACTION_DEPTH:
        return dict(TRUNCATED)

    if isinstance(data, dict):
        return {
            key: REDACTED
            if isinstance(key, str) and is_sensitive_field(key)
            else redact_sensitive_data(value, depth + 1)
            for key, value in data.items()
        }

    if isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item, depth + 1) for item in data]

    return data


def _is_retryable(exc: BaseException) -> bool:
    """Server-class DevClip errors and connection-level failures are retried."""
    if isinstance(exc, DevClipError):
        return not exc.is_client_error
    return isinstance(exc, TRANSIENT_ERRORS)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retrying_after_error",
        attempt=retry_state.attempt_number,
        error=str(exc),
        error_type=type(exc).__name__,
    )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 0.1,
    max_delay: float = 5.0,
) -> T:
    """
    Await `operation`, retrying with exponential backoff on transient failures.

    Delays double from `initial_delay`. DevClipError instances with a 4xx
    status and programming errors outside TRANSIENT_ERRORS are raised
    immediately without retry.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=initial_delay, max=max_delay),
        retry=retry_if_exception(_is_retryable),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            result = await operation()
    return result


SessionProvider = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class ErrorLogger:
    """Persists server-side failures to the error_logs table."""

    def __init__(self, session_provider: SessionProvider):
        self.session_provider = session_provider

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1.0),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=_log_retry,
        reraise=True,
    )
    async def _persist(self, row: ErrorLog) -> None:
        async with self.session_provider() as session:
            session.add(row)
            await session.commit()

    async def log_error(self, entry: ErrorLogEntry) -> bool:
        """
        Redact and persist an error entry.

        Never raises: a failure to persist is itself logged and reported as False.
        """
        request_context = redact_sensitive_data(entry.request_context)

        logger.error(
            "server_error",
            endpoint=entry.endpoint,
            method=entry.method,
            status_code=entry.status_code,
            error_kind=entry.error_kind,
            message=entry.message,
            account_id=str(entry.account_id) if entry.account_id else None,
        )

        row = ErrorLog(
            account_id=entry.account_id,
            endpoint=entry.endpoint[:255],
            method=entry.method[:10],
            status_code=entry.status_code,
            error_kind=entry.error_kind,
            message=entry.message,
            stack=entry.stack,
            request_context=request_context,
            user_agent=entry.user_agent[:500] if entry.user_agent else None,
            ip_address=entry.ip_address,
            created_at=utc_now(),
        )

        try:
            await self._persist(row)
        except Exception as exc:
            logger.warning(
                "error_log_persist_failed",
                endpoint=entry.endpoint,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False
        return True
