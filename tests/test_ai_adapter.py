"""
Tests for the AI invocation adapter.

The provider client is a mock; no network calls are made.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from devclip.exceptions import ProviderError
from devclip.models.api import AIOperation, PlanTier
from devclip.services.ai import NO_RESULT_PLACEHOLDER, SYSTEM_PROMPTS, AIInvocationAdapter
from devclip.services.plans import plan_policies


def make_completion(content: str | None = "Explained.", total_tokens: int | None = 42):
    response = MagicMock()
    response.choices = [] if content is None else [MagicMock(message=MagicMock(content=content))]
    response.usage = None if total_tokens is None else MagicMock(total_tokens=total_tokens)
    return response


@pytest.fixture
def ai_client() -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_completion())
    return client


@pytest.fixture
def adapter(ai_client) -> AIInvocationAdapter:
    return AIInvocationAdapter(ai_client, plan_policies.models(), timeout_seconds=5.0)


class TestConstruction:
    """Tests for adapter configuration checks."""

    def test_missing_tier_model_rejected(self, ai_client):
        with pytest.raises(ValueError, match="No model configured"):
            AIInvocationAdapter(ai_client, {PlanTier.FREE: "m"})

    def test_missing_prompt_rejected(self, ai_client):
        prompts = {AIOperation.EXPLAIN: "explain"}
        with pytest.raises(ValueError, match="No prompt configured"):
            AIInvocationAdapter(ai_client, plan_policies.models(), prompts=prompts)

    @pytest.mark.parametrize(
        "tier,model",
        [(PlanTier.FREE, "gpt-5-nano"), (PlanTier.PRO, "gpt-5-mini"), (PlanTier.TEAM, "gpt-5")],
    )
    def test_model_selected_by_tier(self, adapter, tier, model):
        assert adapter.model_for(tier) == model
        assert adapter.model_for(tier.value) == model


class TestInvoke:
    """Tests for completion calls."""

    async def test_returns_text_and_tokens(self, adapter, ai_client):
        result = await adapter.invoke("print(1)", AIOperation.EXPLAIN, PlanTier.PRO)

        assert result.text == "Explained."
        assert result.total_tokens == 42
        assert result.model == "gpt-5-mini"

    async def test_sends_system_prompt_and_user_text(self, adapter, ai_client):
        await adapter.invoke("some text", "summarize", "team")

        kwargs = ai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-5"
        assert kwargs["messages"] == [
            {"role": "system", "content": SYSTEM_PROMPTS[AIOperation.SUMMARIZE]},
            {"role": "user", "content": "some text"},
        ]
        assert kwargs["timeout"] == 5.0

    async def test_empty_choices_return_placeholder(self, adapter, ai_client):
        ai_client.chat.completions.create = AsyncMock(
            return_value=make_completion(content=None, total_tokens=7)
        )

        result = await adapter.invoke("x", AIOperation.REFACTOR, PlanTier.PRO)

        assert result.text == NO_RESULT_PLACEHOLDER
        assert result.total_tokens == 7

    async def test_missing_usage_counts_zero_tokens(self, adapter, ai_client):
        ai_client.chat.completions.create = AsyncMock(
            return_value=make_completion(total_tokens=None)
        )

        result = await adapter.invoke("x", AIOperation.EXPLAIN, PlanTier.FREE)

        assert result.total_tokens == 0

    async def test_provider_error_wrapped(self, adapter, ai_client):
        ai_client.chat.completions.create = AsyncMock(side_effect=OpenAIError("upstream down"))

        with pytest.raises(ProviderError, match="AI provider request failed") as exc_info:
            await adapter.invoke("x", AIOperation.EXPLAIN, PlanTier.PRO)

        assert exc_info.value.status_code == 502
        assert exc_info.value.details() == {"operation": "explain"}

    async def test_unknown_operation_rejected(self, adapter):
        with pytest.raises(ValueError):
            await adapter.invoke("x", "translate", PlanTier.PRO)
