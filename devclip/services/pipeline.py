"""
Request Authorization Pipeline - Authenticate, authorize, execute, bill, record.

Stages run strictly in order:
1. Resolve the API key and load the owning account
2. Look up the operation's cost and check the plan tier
3. Check the balance covers the cost
4. Dispatch to the local formatter or the AI adapter
5. Debit the cost (only after a successful dispatch)
6. Append a usage record (best-effort)

A failure in stages 1-5 aborts the request without moving any credits.
"""

import time
from collections.abc import Callable

from devclip.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DevClipError,
    InsufficientCreditsError,
    OperationError,
    ProviderError,
)
from devclip.models.api import HandlerCategory
from devclip.models.domain import (
    AuthenticatedCaller,
    HandlerOutput,
    OperationDefinition,
    PipelineResult,
)
from devclip.observability.logging import get_logger, log_context
from devclip.observability.metrics import metrics
from devclip.observability.tracing import trace_operation
from devclip.services.ai import AIInvocationAdapter
from devclip.services.api_key import APIKeyService
from devclip.services.catalog import CODE_FORMAT_OPERATION, OperationCatalog, default_catalog
from devclip.services.code_formatter import format_code
from devclip.services.formatters import apply_format
from devclip.services.ledger import AccountLedger
from devclip.services.plans import PlanPolicies, plan_policies
from devclip.services.usage import UsageService

logger = get_logger(__name__)

MISSING_KEY_MESSAGE = "Missing or invalid authorization header"

LocalHandler = Callable[[str, str, str | None], HandlerOutput]


def run_local_operation(operation: str, text: str, language: str | None = None) -> HandlerOutput:
    """Dispatch a local (non-AI) operation by name."""
    if operation == CODE_FORMAT_OPERATION:
        result = format_code(text, language)
        return HandlerOutput(text=result.formatted, language=result.language)
    return HandlerOutput(text=apply_format(operation, text))


def _outcome_for(exc: DevClipError) -> str:
    if isinstance(exc, AuthenticationError):
        return "unauthenticated"
    if isinstance(exc, AuthorizationError):
        return "forbidden"
    if isinstance(exc, InsufficientCreditsError):
        return "insufficient_credits"
    if isinstance(exc, OperationError):
        return "operation_failed"
    return exc.kind.value


class RequestAuthorizationPipeline:
    """Runs one billed operation on behalf of an API key holder."""

    def __init__(
        self,
        credentials: APIKeyService,
        ledger: AccountLedger,
        usage: UsageService,
        ai: AIInvocationAdapter | None,
        catalog: OperationCatalog = default_catalog,
        policies: PlanPolicies = plan_policies,
        local_handler: LocalHandler = run_local_operation,
    ):
        self.credentials = credentials
        self.ledger = ledger
        self.usage = usage
        self.ai = ai
        self.catalog = catalog
        self.policies = policies
        self.local_handler = local_handler

    async def authenticate(self, secret: str | None) -> AuthenticatedCaller:
        """
        Resolve an API key secret to its credential and owning account.

        Raises:
            AuthenticationError: missing, malformed, unknown or revoked key,
                or the key's account no longer exists
        """
        if not secret:
            metrics.record_auth_failure("missing")
            raise AuthenticationError(MISSING_KEY_MESSAGE)

        credential = await self.credentials.resolve(secret)
        account = await self.ledger.get_account(credential.account_id)
        await self.credentials.touch_last_used(credential.key_id)

        return AuthenticatedCaller(credential=credential, account=account)

    async def run(
        self, secret: str | None, operation: str, text: str, language: str | None = None
    ) -> PipelineResult:
        """Authenticate and execute in one call."""
        caller = await self.authenticate(secret)
        return await self.execute(caller, operation, text, language)

    async def execute(
        self,
        caller: AuthenticatedCaller,
        operation: str,
        text: str,
        language: str | None = None,
    ) -> PipelineResult:
        """
        Authorize, dispatch, debit and record one operation for an authenticated caller.

        Raises:
            ValidationError: unknown operation
            AuthorizationError: plan tier below the operation's minimum
            InsufficientCreditsError: balance does not cover the cost
            OperationError: the handler failed (no credits are debited)
        """
        account = caller.account
        start_time = time.monotonic()

        with (
            log_context(account_id=str(account.account_id), operation=operation),
            trace_operation(
                "pipeline.execute",
                operation=operation,
                account_id=str(account.account_id),
                plan_tier=account.plan_tier.value,
            ) as span,
        ):
            try:
                definition = self.catalog.lookup(operation)
                self._authorize(caller, definition)
                output = await self._dispatch(definition, text, language, caller)
                updated = await self.ledger.debit(account.account_id, definition.cost)
            except DevClipError as exc:
                metrics.record_operation(
                    operation, _outcome_for(exc), time.monotonic() - start_time
                )
                raise

            metrics.record_debit(operation, account.plan_tier.value, definition.cost)
            span.set_attribute("credits_charged", definition.cost)
            span.set_attribute("credits_remaining", updated.credit_balance)

            await self._record_usage(caller, definition, text, output)

            duration = time.monotonic() - start_time
            metrics.record_operation(operation, "completed", duration)
            logger.info(
                "operation_completed",
                credits_charged=definition.cost,
                credits_remaining=updated.credit_balance,
                tokens_used=output.tokens_used,
                duration_seconds=duration,
            )

        return PipelineResult(
            operation=operation,
            result=output.text,
            credits_charged=definition.cost,
            credits_remaining=updated.credit_balance,
            tokens_used=output.tokens_used,
            language=output.language,
        )

    def _authorize(self, caller: AuthenticatedCaller, definition: OperationDefinition) -> None:
        account = caller.account

        if not self.policies.meets(account.plan_tier, definition.min_tier):
            logger.warning(
                "operation_tier_denied",
                plan_tier=account.plan_tier.value,
                required_tier=definition.min_tier.value if definition.min_tier else None,
            )
            raise AuthorizationError(
                f"Operation {definition.name} requires the "
                f"{definition.min_tier.value if definition.min_tier else ''} plan"
            )

        if account.credit_balance < definition.cost:
            logger.warning(
                "operation_insufficient_credits",
                required=definition.cost,
                available=account.credit_balance,
            )
            raise InsufficientCreditsError(
                required=definition.cost, available=account.credit_balance
            )

    async def _dispatch(
        self,
        definition: OperationDefinition,
        text: str,
        language: str | None,
        caller: AuthenticatedCaller,
    ) -> HandlerOutput:
        with trace_operation("pipeline.dispatch", category=definition.category.value):
            try:
                if definition.category == HandlerCategory.AI:
                    if self.ai is None:
                        raise ProviderError(definition.name, "AI provider is not configured")
                    result = await self.ai.invoke(text, definition.name, caller.account.plan_tier)
                    return HandlerOutput(
                        text=result.text, tokens_used=result.total_tokens, model=result.model
                    )
                return self.local_handler(definition.name, text, language)
            except DevClipError:
                raise
            except Exception as exc:
                logger.error(
                    "operation_handler_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=True,
                )
                raise OperationError(definition.name, f"Operation failed: {exc}") from exc

    async def _record_usage(
        self,
        caller: AuthenticatedCaller,
        definition: OperationDefinition,
        text: str,
        output: HandlerOutput,
    ) -> None:
        """The debit has already committed; a failure here is logged, never raised."""
        try:
            await self.usage.record(
                account_id=caller.account.account_id,
                operation=definition.name,
                credits_charged=definition.cost,
                input_text=text,
                output_text=output.text,
                tokens_used=output.tokens_used,
                model=output.model,
                api_key_id=caller.credential.key_id,
            )
        except Exception as exc:
            metrics.record_usage_log_failure(definition.name)
            logger.error(
                "usage_record_failed",
                credits_charged=definition.cost,
                error=str(exc),
                error_type=type(exc).__name__,
            )
