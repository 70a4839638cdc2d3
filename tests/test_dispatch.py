"""Tests for council_mode/dispatch.py: concurrency, deadline, context slicing."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from council_mode.dispatch import (
    STRAGGLER_MESSAGE,
    DispatchOptions,
    adapter_context_for,
    build_system_prompt,
    dispatch,
    distribute_context,
    fallback_to_single_model,
    filter_successful,
)
from council_mode.errors import CouncilError, InsufficientResponses
from council_mode.models import (
    ConversationContext,
    ConversationMessage,
    DispatchResult,
    SharedContext,
    UserInfo,
)
from council_mode.providers.base import ProviderError
from tests.conftest import MockProvider, make_registry, make_response


async def _hang(*args, **kwargs):
    await asyncio.sleep(10)


def _result(*statuses: str) -> DispatchResult:
    responses = [make_response(f"m{i}", status=s) for i, s in enumerate(statuses)]
    successes = sum(1 for s in statuses if s == "success")
    return DispatchResult(
        responses=responses,
        success_count=successes,
        failure_count=len(statuses) - successes,
        total_latency_ms=100,
        partial_result=successes < len(statuses),
    )


@pytest.fixture
def history_context() -> ConversationContext:
    return ConversationContext(
        current_query="What are the ethics and the practical steps of layoffs?",
        user=UserInfo(id="u1", tier="pro"),
        detected_intent="Decide on a restructuring plan",
        constraints=["Budget under $1M", "Within six months"],
        history=[
            ConversationMessage("user", "We cut costs because revenue fell."),
            ConversationMessage("assistant", "The statistics show a sector-wide decline."),
            ConversationMessage("user", "Thanks, that helps."),
        ],
    )


# --- dispatch ---

async def test_dispatch_all_succeed(registry, three_providers):
    seen = []
    result = await dispatch("Should I refinance?", registry, on_model_response=seen.append)

    assert result.success_count == 3
    assert result.failure_count == 0
    assert result.partial_result is False
    assert {r.model_id for r in result.responses} == {"claude", "openai", "gemini"}
    assert len(seen) == 3
    for provider in three_providers.values():
        provider.query.assert_awaited_once()


async def test_dispatch_counts_are_consistent(registry, three_providers):
    three_providers["gemini"].query = AsyncMock(side_effect=ProviderError("gemini", "403 Forbidden"))

    result = await dispatch("q", registry)

    assert result.success_count + result.failure_count == len(result.responses) == 3
    assert result.success_count == 2
    assert result.partial_result is True
    [failed] = [r for r in result.responses if r.status != "success"]
    assert failed.model_id == "gemini"
    assert failed.status == "error"


async def test_dispatch_repeatable_with_same_providers(registry, three_providers):
    three_providers["gemini"].query = AsyncMock(side_effect=ProviderError("gemini", "403 Forbidden"))

    first = await dispatch("q", registry)
    second = await dispatch("q", registry)

    assert (first.success_count, first.failure_count, first.partial_result) == (
        second.success_count,
        second.failure_count,
        second.partial_result,
    )
    assert [r.model_id for r in first.responses] == [r.model_id for r in second.responses]
    assert [r.status for r in first.responses] == [r.status for r in second.responses]


async def test_dispatch_deadline_abandons_stragglers(registry, three_providers):
    three_providers["gemini"].query = AsyncMock(side_effect=_hang)
    callback = MagicMock()

    result = await dispatch(
        "q",
        registry,
        DispatchOptions(timeout_ms=100),
        on_model_response=callback,
    )

    straggler = next(r for r in result.responses if r.model_id == "gemini")
    assert straggler.status == "timeout"
    assert straggler.error_message == STRAGGLER_MESSAGE
    assert straggler.latency_ms == 100
    assert result.success_count == 2
    assert callback.call_count == 2
    assert "gemini" not in {c.args[0].model_id for c in callback.call_args_list}


async def test_dispatch_unregistered_model_is_an_error_response(registry):
    result = await dispatch("q", registry, DispatchOptions(models=["claude", "mistral"]))

    missing = next(r for r in result.responses if r.model_id == "mistral")
    assert missing.status == "error"
    assert "No adapter registered" in missing.error_message
    assert result.success_count == 1


async def test_dispatch_deduplicates_roster(registry, three_providers):
    result = await dispatch("q", registry, DispatchOptions(models=["claude", "claude"]))
    assert len(result.responses) == 1
    three_providers["claude"].query.assert_awaited_once()


async def test_dispatch_sends_context_to_each_model(registry, three_providers, history_context):
    await dispatch("q", registry, DispatchOptions(context=history_context))

    prompt, context = three_providers["claude"].query.await_args.args
    assert prompt == "q"
    assert "User Intent: Decide on a restructuring plan" in context.system_prompt
    assert "Key Constraints: Budget under $1M, Within six months" in context.system_prompt


async def test_dispatch_without_context_sends_none(registry, three_providers):
    await dispatch("q", registry)
    assert three_providers["openai"].query.await_args.args == ("q", None)


# --- Context distribution ---

def test_distribute_context_slices_history_by_model(history_context):
    distribution = distribute_context(history_context, ["claude", "openai", "gemini"])

    assert distribution.shared.user_intent == "Decide on a restructuring plan"
    claude = distribution.specialized["claude"]
    assert [m.content for m in claude.relevant_history] == ["We cut costs because revenue fell."]
    assert claude.domain_context == ["Query involves ethical or philosophical considerations"]

    openai = distribution.specialized["openai"]
    assert len(openai.relevant_history) == 3
    assert openai.domain_context == ["Query requires practical, actionable guidance"]

    gemini = distribution.specialized["gemini"]
    assert [m.content for m in gemini.relevant_history] == ["The statistics show a sector-wide decline."]


def test_unknown_model_gets_breadth_slice(history_context):
    distribution = distribute_context(history_context, ["mistral"])
    assert len(distribution.specialized["mistral"].relevant_history) == 3


def test_build_system_prompt_skips_empty_parts():
    shared = SharedContext(original_query="q", user_intent="")
    assert build_system_prompt(shared) == ""
    assert build_system_prompt(shared, ["Note A", "Note B"]) == "Context Notes: Note A; Note B"


def test_adapter_context_for_without_distribution():
    assert adapter_context_for(None, "claude") is None


# --- filter_successful ---

def test_filter_successful_keeps_only_successes():
    filtered = filter_successful(_result("success", "success", "timeout"))
    assert [r.status for r in filtered.responses] == ["success", "success"]
    assert filtered.partial_result is True


def test_filter_successful_single_success_is_partial():
    filtered = filter_successful(_result("success", "error", "timeout"))
    assert len(filtered.responses) == 1
    assert filtered.partial_result is True


def test_filter_successful_no_successes_raises():
    with pytest.raises(InsufficientResponses) as exc_info:
        filter_successful(_result("error", "timeout"))
    assert exc_info.value.received == 0
    assert exc_info.value.required == 2
    assert exc_info.value.code == "INSUFFICIENT_RESPONSES"


def test_filter_successful_below_higher_minimum_raises():
    with pytest.raises(InsufficientResponses):
        filter_successful(_result("success", "success", "error"), min_responses=3)


# --- fallback ---

async def test_fallback_to_single_model(registry, three_providers):
    response = await fallback_to_single_model("q", registry, "openai")
    assert response.model_id == "openai"
    assert response.status == "success"
    three_providers["openai"].query.assert_awaited_once()


async def test_fallback_passes_history(registry, three_providers):
    history = [ConversationMessage("user", "Earlier question")]
    await fallback_to_single_model("q", registry, "claude", history)
    _, context = three_providers["claude"].query.await_args.args
    assert context.history == history


async def test_fallback_unknown_model_raises():
    registry = make_registry({"claude": MockProvider("claude")})
    with pytest.raises(CouncilError) as exc_info:
        await fallback_to_single_model("q", registry, "gemini")
    assert exc_info.value.code == "NO_FALLBACK_MODEL"
    assert exc_info.value.recoverable is False
