"""Council dispatch: parallel model calls under one global deadline."""

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass

from config.config_loader import DEFAULT_TIMEOUTS
from council_mode.adapter import failed_response
from council_mode.errors import CouncilError, InsufficientResponses
from council_mode.models import (
    AdapterContext,
    ContextDistribution,
    ConversationContext,
    ConversationMessage,
    DispatchResult,
    ModelResponse,
    SharedContext,
    SpecializedContext,
)
from council_mode.registry import AdapterRegistry
from council_mode.weights import model_family

logger = logging.getLogger(__name__)

DEFAULT_ROSTER = ["claude", "openai", "gemini"]
STRAGGLER_MESSAGE = "Abandoned at council deadline"

_REASONING_HISTORY = re.compile(r"\b(because|therefore|reason|logic|ethical|moral|principle)\b", re.IGNORECASE)
_RESEARCH_HISTORY = re.compile(r"\b(research|study|data|source|according to|statistics)\b", re.IGNORECASE)
_PHILOSOPHICAL_QUERY = re.compile(r"\b(ethics|moral|principle|philosophy)\b", re.IGNORECASE)
_PRACTICAL_QUERY = re.compile(r"\b(how to|steps|practical|action|implementation)\b", re.IGNORECASE)
_FACTUAL_QUERY = re.compile(r"\b(what is|facts|data|statistics|research)\b", re.IGNORECASE)


@dataclass
class DispatchOptions:
    models: list[str] | None = None
    timeout_ms: int | None = None          # Global deadline; defaults to total_council_timeout_ms
    min_responses: int | None = None
    context: ConversationContext | None = None


# --- Context distribution ---

def _reasoning_slice(context: ConversationContext) -> SpecializedContext:
    history = [m for m in context.history if _REASONING_HISTORY.search(m.content)][-5:]
    notes = []
    if _PHILOSOPHICAL_QUERY.search(context.current_query):
        notes.append("Query involves ethical or philosophical considerations")
    return SpecializedContext(relevant_history=history, domain_context=notes)


def _breadth_slice(context: ConversationContext) -> SpecializedContext:
    notes = []
    if _PRACTICAL_QUERY.search(context.current_query):
        notes.append("Query requires practical, actionable guidance")
    return SpecializedContext(relevant_history=list(context.history[-10:]), domain_context=notes)


def _research_slice(context: ConversationContext) -> SpecializedContext:
    history = [m for m in context.history if _RESEARCH_HISTORY.search(m.content)][-5:]
    notes = []
    if _FACTUAL_QUERY.search(context.current_query):
        notes.append("Query requires factual, data-driven response")
    return SpecializedContext(relevant_history=history, domain_context=notes)


_SLICE_BY_FAMILY: dict[str | None, Callable[[ConversationContext], SpecializedContext]] = {
    "claude": _reasoning_slice,
    "openai": _breadth_slice,
    "gemini": _research_slice,
}


def distribute_context(context: ConversationContext, models: list[str] | None = None) -> ContextDistribution:
    """Shared query facts for every model plus a history slice suited to each one."""
    shared = SharedContext(
        original_query=context.current_query,
        user_intent=context.detected_intent,
        key_constraints=list(context.constraints),
    )
    specialized = {
        model_id: _SLICE_BY_FAMILY.get(model_family(model_id), _breadth_slice)(context)
        for model_id in models or DEFAULT_ROSTER
    }
    return ContextDistribution(shared=shared, specialized=specialized)


def build_system_prompt(shared: SharedContext, domain_context: list[str] | None = None) -> str:
    parts: list[str] = []
    if shared.user_intent:
        parts.append(f"User Intent: {shared.user_intent}")
    if shared.key_constraints:
        parts.append(f"Key Constraints: {', '.join(shared.key_constraints)}")
    if domain_context:
        parts.append(f"Context Notes: {'; '.join(domain_context)}")
    return "\n".join(parts)


def adapter_context_for(distribution: ContextDistribution | None, model_id: str) -> AdapterContext | None:
    if distribution is None:
        return None
    specialized = distribution.specialized.get(model_id, SpecializedContext())
    return AdapterContext(
        system_prompt=build_system_prompt(distribution.shared, specialized.domain_context),
        history=list(specialized.relevant_history),
    )


# --- Dispatch ---

async def dispatch(
    query: str,
    registry: AdapterRegistry,
    options: DispatchOptions | None = None,
    on_model_response: Callable[[ModelResponse], None] | None = None,
) -> DispatchResult:
    """Query every requested model concurrently and collect what finishes in time.

    Each model call carries its own timeout and retry inside its adapter.
    When the global deadline fires, unfinished calls are cancelled and
    recorded as timeout responses; their results are never used. Never
    raises for model failures.

    Args:
        query: The user's question, invocation token already stripped.
        registry: Adapters by model id.
        options: Roster, global deadline, minimum responses and context.
        on_model_response: Called as each model finishes before the deadline.
    """
    options = options or DispatchOptions()
    models = list(dict.fromkeys(options.models or DEFAULT_ROSTER))
    timeout_ms = options.timeout_ms or registry.timeouts.total_council_timeout_ms
    min_responses = options.min_responses or registry.timeouts.min_models_for_synthesis
    distribution = distribute_context(options.context, models) if options.context else None

    start = time.monotonic()
    deadline_passed = False

    async def _run(model_id: str) -> ModelResponse:
        adapter = registry.get(model_id)
        if adapter is None:
            response = failed_response(model_id, model_id, "error", f"No adapter registered for model: {model_id}", 0)
        else:
            response = await adapter.execute(query, adapter_context_for(distribution, model_id))
        if on_model_response and not deadline_passed:
            on_model_response(response)
        return response

    logger.info("Dispatching to %d model(s): %s", len(models), ", ".join(models))
    tasks = {asyncio.create_task(_run(m)): m for m in models}
    done, pending = await asyncio.wait(tasks, timeout=timeout_ms / 1000)
    deadline_passed = True

    by_model: dict[str, ModelResponse] = {tasks[task]: task.result() for task in done}
    if pending:
        abandoned = sorted(tasks[task] for task in pending)
        logger.warning("Council deadline (%dms) reached; abandoning: %s", timeout_ms, ", ".join(abandoned))
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for model_id in abandoned:
            by_model[model_id] = failed_response(
                model_id, registry.display_name(model_id), "timeout", STRAGGLER_MESSAGE, timeout_ms
            )

    # Roster order, whatever order the calls finished in
    responses = [by_model[m] for m in models]

    success_count = sum(1 for r in responses if r.status == "success")
    total_latency = int((time.monotonic() - start) * 1000)
    logger.info("Dispatch complete: %d/%d models succeeded in %dms", success_count, len(models), total_latency)

    if len(models) >= min_responses and success_count < min_responses:
        logger.warning(
            "Only %d/%d models responded. Council quality is degraded.", success_count, len(models)
        )

    return DispatchResult(
        responses=responses,
        success_count=success_count,
        failure_count=len(responses) - success_count,
        total_latency_ms=total_latency,
        partial_result=success_count < len(models),
    )


def filter_successful(result: DispatchResult, min_responses: int = DEFAULT_TIMEOUTS.min_models_for_synthesis) -> DispatchResult:
    """Keep only successful responses.

    Exactly one success is a degraded but usable result and is returned
    with partial_result set. Any other count below the minimum raises
    InsufficientResponses.
    """
    successful = [r for r in result.responses if r.status == "success"]
    if len(successful) >= min_responses:
        return DispatchResult(
            responses=successful,
            success_count=result.success_count,
            failure_count=result.failure_count,
            total_latency_ms=result.total_latency_ms,
            partial_result=result.partial_result,
        )
    if len(successful) == 1:
        return DispatchResult(
            responses=successful,
            success_count=result.success_count,
            failure_count=result.failure_count,
            total_latency_ms=result.total_latency_ms,
            partial_result=True,
        )
    raise InsufficientResponses(len(successful), min_responses)


async def fallback_to_single_model(
    query: str,
    registry: AdapterRegistry,
    model_id: str = "claude",
    history: list[ConversationMessage] | None = None,
) -> ModelResponse:
    """Ask one designated model alone. Raises CouncilError when it is not registered."""
    adapter = registry.get(model_id)
    if adapter is None:
        raise CouncilError(f"No adapter available for fallback model: {model_id}", "NO_FALLBACK_MODEL", recoverable=False)
    logger.warning("Falling back to single model: %s", model_id)
    context = AdapterContext(history=list(history)) if history else None
    return await adapter.execute(query, context)
