"""Council pipeline: trigger, dispatch, analyze, synthesize, record."""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from config.config_loader import DEFAULT_TIERS, TierLimits
from council_mode.agreement import DISAGREEMENT_THRESHOLD, analyze_agreement
from council_mode.dispatch import DEFAULT_ROSTER, DispatchOptions, dispatch, fallback_to_single_model, filter_successful
from council_mode.errors import CouncilError, InsufficientResponses, TierLimitExceeded
from council_mode.models import (
    ConversationContext,
    CouncilDeliberation,
    ModelResponse,
    TriggerType,
)
from council_mode.registry import AdapterRegistry
from council_mode.synthesis import SynthesisOptions, build_deliberation, create_fallback_synthesis, synthesize
from council_mode.trigger import (
    FINANCIAL_THRESHOLD,
    can_use_council,
    evaluate_trigger,
    is_user_invoked,
    strip_invocation,
    tier_limits,
)
from council_mode.weights import classify_query

logger = logging.getLogger(__name__)


class DeliberationStore(Protocol):
    def save(self, deliberation: CouncilDeliberation) -> None: ...


class UsageRecorder(Protocol):
    def record_council_use(self, user_id: str) -> None: ...


@dataclass
class CouncilOptions:
    models: list[str] | None = None
    classification: list[str] | None = None
    force: bool = False                    # Skip trigger evaluation
    fallback_model: str = "claude"
    max_response_length: int | None = None
    timeout_ms: int | None = None
    tiers: dict[str, TierLimits] = field(default_factory=lambda: dict(DEFAULT_TIERS))
    financial_threshold: float = FINANCIAL_THRESHOLD
    disagreement_threshold: int = DISAGREEMENT_THRESHOLD


@dataclass
class CouncilResult:
    triggered: bool
    reason: str
    query: str                             # Query as sent to the models
    deliberation: CouncilDeliberation | None = None   # Set exactly when triggered
    detail: str | None = None


def _roster(options: CouncilOptions, context: ConversationContext | None) -> list[str]:
    models = list(dict.fromkeys(options.models or DEFAULT_ROSTER))
    if context is not None:
        models = models[: tier_limits(context.user.tier, options.tiers).models_available]
    return models


def _replace_response(responses: list[ModelResponse], replacement: ModelResponse) -> list[ModelResponse]:
    kept = [r for r in responses if r.model_id != replacement.model_id]
    return kept + [replacement]


async def execute_council(
    query: str,
    registry: AdapterRegistry,
    context: ConversationContext | None = None,
    options: CouncilOptions | None = None,
    store: DeliberationStore | None = None,
    usage: UsageRecorder | None = None,
    on_model_response: Callable[[ModelResponse], None] | None = None,
) -> CouncilResult:
    """Run the whole council pipeline for one query.

    Returns a result with triggered=False when the trigger declines the
    query. Raises TierLimitExceeded, before any model is called, when a
    user context is given and its daily quota is spent.
    """
    options = options or CouncilOptions()
    invoked = is_user_invoked(query)

    if options.force:
        evaluation_reason = "forced"
        stripped = strip_invocation(query)
    else:
        evaluation = evaluate_trigger(query, context, options.tiers, options.financial_threshold)
        if not evaluation.should_trigger:
            logger.info("Council not triggered: %s", evaluation.reason)
            return CouncilResult(
                triggered=False, reason=evaluation.reason, query=evaluation.query, detail=evaluation.detail
            )
        evaluation_reason = evaluation.reason
        stripped = evaluation.query

    if context is not None:
        allowed, detail = can_use_council(context.user.tier, context.user.council_uses_today, options.tiers)
        if not allowed:
            limits = tier_limits(context.user.tier, options.tiers)
            logger.warning("Tier limit reached for user %s: %s", context.user.id, detail)
            raise TierLimitExceeded(context.user.tier, limits.council_per_day)

    trigger: TriggerType = "user_invoked" if invoked or options.force else "auto"
    classification = options.classification or classify_query(stripped)
    models = _roster(options, context)
    logger.info("Council triggered (%s), classification: %s", evaluation_reason, ", ".join(classification))

    result = await dispatch(
        stripped,
        registry,
        DispatchOptions(models=models, timeout_ms=options.timeout_ms, context=context),
        on_model_response=on_model_response,
    )

    responses = list(result.responses)
    usable: list[ModelResponse] | None
    try:
        usable = filter_successful(result, registry.timeouts.min_models_for_synthesis).responses
    except InsufficientResponses as exc:
        usable = [r for r in responses if r.status == "success"] or None
        if usable:
            logger.warning("%s; synthesizing from the responses that arrived", exc)
        else:
            logger.warning("%s; trying fallback model %s", exc, options.fallback_model)
            fallback: ModelResponse | None = None
            try:
                history = context.history if context else None
                fallback = await fallback_to_single_model(stripped, registry, options.fallback_model, history)
                responses = _replace_response(responses, fallback)
            except CouncilError as fallback_exc:
                logger.warning("Fallback unavailable: %s", fallback_exc)
            successes = [fallback] if fallback and fallback.status == "success" else []
            agreement = analyze_agreement(successes)
            synthesis = create_fallback_synthesis(str(exc), successes)

    if usable:
        agreement = analyze_agreement(usable, options.disagreement_threshold)
        synthesis = synthesize(
            stripped,
            usable,
            SynthesisOptions(
                classification=classification,
                max_response_length=options.max_response_length,
                disagreement_threshold=options.disagreement_threshold,
            ),
            agreement,
        )

    deliberation = build_deliberation(
        query_id=str(uuid.uuid4()),
        original_query=query,
        responses=responses,
        synthesis=synthesis,
        agreement=agreement,
        trigger=trigger,
        classification=classification,
        pricing=registry.pricing,
    )

    if store is not None:
        store.save(deliberation)
    if usage is not None and context is not None:
        usage.record_council_use(context.user.id)

    return CouncilResult(triggered=True, reason=evaluation_reason, query=stripped, deliberation=deliberation)
