"""Tests for council_mode/council.py: the full pipeline with mock providers."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from council_mode.council import CouncilOptions, execute_council
from council_mode.errors import TierLimitExceeded
from council_mode.models import ConversationContext, ProviderReply, UserInfo
from council_mode.providers.base import ProviderError
from council_mode.synthesis import FALLBACK_NOTE, FALLBACK_UNAVAILABLE, SINGLE_MODEL_NOTE


def _context(tier: str, uses: int = 0) -> ConversationContext:
    return ConversationContext(current_query="", user=UserInfo(id="user-1", tier=tier, council_uses_today=uses))


def _fail(provider, message: str = "401 Unauthorized") -> None:
    provider.query = AsyncMock(side_effect=ProviderError(provider.name(), message))


async def test_forced_council_runs_every_model(registry):
    result = await execute_council("Is a monorepo better?", registry, options=CouncilOptions(force=True))

    assert result.triggered is True
    assert result.reason == "forced"
    deliberation = result.deliberation
    assert deliberation.trigger == "user_invoked"
    assert {r.model_id for r in deliberation.responses} == {"claude", "openai", "gemini"}
    assert [e.step for e in deliberation.synthesis.arbitration_log] == [1, 2, 3, 4, 5]
    assert deliberation.query_id


async def test_not_triggered_calls_no_model(registry, three_providers):
    result = await execute_council("What time is it?", registry)

    assert result.triggered is False
    assert result.reason == "no_context"
    assert result.deliberation is None
    for provider in three_providers.values():
        provider.query.assert_not_awaited()


async def test_invocation_token_stripped_before_dispatch(registry, three_providers):
    result = await execute_council("/council Should I refinance?", registry)

    assert result.triggered is True
    assert result.reason == "user_invoked"
    assert result.query == "Should I refinance?"
    assert result.deliberation.original_query == "/council Should I refinance?"
    assert three_providers["claude"].query.await_args.args[0] == "Should I refinance?"


async def test_auto_trigger_for_pro_user(registry, pro_context):
    result = await execute_council("Should I put $50,000 of my money into index funds?", registry, context=pro_context)

    assert result.reason == "financial_threshold"
    assert result.deliberation.trigger == "auto"
    assert "finance" in result.deliberation.query_classification


async def test_spent_quota_raises_before_dispatch(registry, three_providers):
    with pytest.raises(TierLimitExceeded) as exc_info:
        await execute_council("/council Should I refinance?", registry, context=_context("pro", uses=25))

    assert exc_info.value.limit == 25
    assert exc_info.value.recoverable is False
    three_providers["claude"].query.assert_not_awaited()


async def test_free_tier_roster_is_truncated(registry):
    result = await execute_council("/council Should I refinance?", registry, context=_context("free"))
    assert [r.model_id for r in result.deliberation.responses] == ["claude", "openai"]


async def test_store_and_usage_recorded(registry):
    store = MagicMock()
    usage = MagicMock()

    result = await execute_council(
        "/council Should I refinance?", registry, context=_context("pro"), store=store, usage=usage
    )

    store.save.assert_called_once_with(result.deliberation)
    usage.record_council_use.assert_called_once_with("user-1")


async def test_single_success_is_synthesized_with_note(registry, three_providers):
    _fail(three_providers["openai"])
    _fail(three_providers["gemini"])

    result = await execute_council("q", registry, options=CouncilOptions(force=True))

    deliberation = result.deliberation
    assert deliberation.synthesis.final_response.endswith(SINGLE_MODEL_NOTE)
    assert "single_model" in deliberation.synthesis.transparency_flags
    assert len(deliberation.responses) == 3


async def test_no_success_falls_back_to_single_model(registry, three_providers):
    three_providers["claude"].query = AsyncMock(
        side_effect=[ProviderError("claude", "401 Unauthorized"), ProviderReply(content="Fallback answer.")]
    )
    _fail(three_providers["openai"])
    _fail(three_providers["gemini"])

    result = await execute_council("q", registry, options=CouncilOptions(force=True))

    deliberation = result.deliberation
    assert deliberation.synthesis.final_response == f"Fallback answer.\n\n{FALLBACK_NOTE}"
    assert deliberation.synthesis.transparency_flags == ("council_failed",)
    claude = next(r for r in deliberation.responses if r.model_id == "claude")
    assert claude.status == "success"
    assert len(deliberation.responses) == 3


async def test_no_success_and_failed_fallback(registry, three_providers):
    for provider in three_providers.values():
        _fail(provider)

    result = await execute_council("q", registry, options=CouncilOptions(force=True))

    assert result.deliberation.synthesis.final_response == FALLBACK_UNAVAILABLE
    assert result.deliberation.agreement.level == "split"


async def test_progress_callback_receives_each_model(registry):
    seen = []
    await execute_council("q", registry, options=CouncilOptions(force=True), on_model_response=seen.append)
    assert sorted(r.model_id for r in seen) == ["claude", "gemini", "openai"]


async def test_explicit_classification_used(registry):
    result = await execute_council(
        "q", registry, options=CouncilOptions(force=True, classification=["technology"])
    )
    assert result.deliberation.query_classification == ("technology",)
    step = result.deliberation.synthesis.arbitration_log[1]
    assert step.reasoning == 'Query type "code_technical" matched to specialty weights'
