"""
AI Invocation Adapter - Chat-completion calls for explain/refactor/summarize.

The provider client is injected; model and prompt tables are fixed per
instance. Calls are bounded by a timeout and are never retried.
"""

import time
from collections.abc import Mapping

from openai import AsyncOpenAI, OpenAIError

from devclip.config import Settings
from devclip.exceptions import ProviderError
from devclip.models.api import AIOperation, PlanTier
from devclip.models.domain import AIResult
from devclip.observability.logging import get_logger
from devclip.observability.metrics import metrics
from devclip.observability.tracing import add_span_attributes, trace_operation
from devclip.services.plans import plan_policies

logger = get_logger(__name__)

NO_RESULT_PLACEHOLDER = "No result"

SYSTEM_PROMPTS: Mapping[AIOperation, str] = {
    AIOperation.EXPLAIN: (
        "You are a helpful code assistant. "
        "Explain the following code or text clearly and concisely."
    ),
    AIOperation.SUMMARIZE: (
        "You are a helpful assistant. Summarize the following text in a clear and concise way."
    ),
    AIOperation.REFACTOR: (
        "You are an expert code reviewer. Suggest improvements and refactor the following code. "
        "Provide clean, optimized code."
    ),
}


def create_ai_client(settings: Settings) -> AsyncOpenAI:
    """Build the provider client. Retries are disabled; the adapter owns the timeout."""
    return AsyncOpenAI(
        api_key=settings.ai_api_key,
        base_url=settings.ai_base_url,
        timeout=settings.ai_request_timeout_seconds,
        max_retries=0,
    )


class AIInvocationAdapter:
    """Calls the completion provider with a tier-selected model."""

    def __init__(
        self,
        client: AsyncOpenAI,
        models: Mapping[PlanTier, str],
        prompts: Mapping[AIOperation, str] = SYSTEM_PROMPTS,
        max_completion_tokens: int = 2048,
        timeout_seconds: float = 30.0,
    ) -> None:
        missing_models = set(PlanTier) - set(models)
        if missing_models:
            raise ValueError(
                f"No model configured for tiers: {sorted(t.value for t in missing_models)}"
            )
        missing_prompts = set(AIOperation) - set(prompts)
        if missing_prompts:
            raise ValueError(
                f"No prompt configured for operations: {sorted(o.value for o in missing_prompts)}"
            )
        self.client = client
        self.models = dict(models)
        self.prompts = dict(prompts)
        self.max_completion_tokens = max_completion_tokens
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "AIInvocationAdapter":
        return cls(
            client=create_ai_client(settings),
            models=plan_policies.models(),
            max_completion_tokens=settings.ai_max_completion_tokens,
            timeout_seconds=settings.ai_request_timeout_seconds,
        )

    def model_for(self, tier: PlanTier | str) -> str:
        return self.models[PlanTier(tier)]

    async def invoke(
        self, text: str, operation: AIOperation | str, tier: PlanTier | str
    ) -> AIResult:
        """
        Run one completion.

        Returns:
            AIResult with the first choice's text (or a placeholder when the
            provider returns none) and the provider-reported total tokens.

        Raises:
            ProviderError: network, timeout or provider-side failure
        """
        ai_operation = AIOperation(operation)
        model = self.model_for(tier)

        with trace_operation("ai.invoke", operation=ai_operation.value, model=model) as span:
            start_time = time.monotonic()
            try:
                response = await self.client.chat.completions.create(
                    model=model,
                    messages=[
                        {"role": "system", "content": self.prompts[ai_operation]},
                        {"role": "user", "content": text},
                    ],
                    max_completion_tokens=self.max_completion_tokens,
                    timeout=self.timeout_seconds,
                )
            except OpenAIError as exc:
                duration = time.monotonic() - start_time
                metrics.record_ai_request(model, success=False, duration=duration)
                logger.error(
                    "ai_provider_call_failed",
                    operation=ai_operation.value,
                    model=model,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    duration_seconds=duration,
                )
                raise ProviderError(
                    ai_operation.value, f"AI provider request failed: {exc}"
                ) from exc

            duration = time.monotonic() - start_time
            content = response.choices[0].message.content if response.choices else None
            total_tokens = response.usage.total_tokens if response.usage else 0

            if not content:
                logger.warning(
                    "ai_provider_empty_result",
                    operation=ai_operation.value,
                    model=model,
                    choices=len(response.choices or []),
                )

            metrics.record_ai_request(
                model, success=True, duration=duration, total_tokens=total_tokens
            )
            add_span_attributes(span, total_tokens=total_tokens, empty_result=not content)
            logger.info(
                "ai_provider_call_completed",
                operation=ai_operation.value,
                model=model,
                total_tokens=total_tokens,
                duration_seconds=duration,
            )

            return AIResult(
                text=content or NO_RESULT_PLACEHOLDER,
                total_tokens=total_tokens or 0,
                model=model,
            )
