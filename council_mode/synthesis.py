"""Synthesis: arbitrate council responses into one answer with an audit trail."""

import logging
import math
import re
from dataclasses import dataclass, field

from council_mode.agreement import DISAGREEMENT_THRESHOLD, analyze_agreement
from council_mode.models import (
    AgreementAnalysis,
    ArbitrationEntry,
    CouncilDeliberation,
    ModelResponse,
    ModelWeight,
    SynthesisResult,
    TriggerType,
)
from council_mode.weights import calculate_model_weights, map_classification_to_query_type, rank_by_weight

logger = logging.getLogger(__name__)

DEFAULT_PRICING = (0.01, 0.03)   # Per 1K input / output tokens

UNABLE_TO_ANSWER = (
    "I apologize, but I was unable to gather perspectives from the council at this time. "
    "Please try again or ask your question directly."
)
FALLBACK_UNAVAILABLE = (
    "I apologize, but I couldn't gather perspectives from the council in time. "
    "Please try again in a moment."
)
SINGLE_MODEL_NOTE = (
    "**Council Note**: This response came from a single model. Full council deliberation was not available."
)
FALLBACK_NOTE = (
    "**Council Note**: Full council deliberation was not completed. This response is from a single model."
)
SPLIT_BANNER = (
    "The models reached different conclusions on this question. "
    "Here is a synthesis with the key disagreements noted:"
)


@dataclass
class SynthesisOptions:
    classification: list[str] = field(default_factory=lambda: ["general"])
    max_response_length: int | None = None
    disagreement_threshold: int = DISAGREEMENT_THRESHOLD


def split_tokens(tokens_used: int) -> tuple[int, int]:
    """Input and output token counts, assuming a 30/70 split of the total."""
    return math.ceil(tokens_used * 3 / 10), math.ceil(tokens_used * 7 / 10)


def estimate_cost(
    model_id: str,
    input_tokens: int,
    output_tokens: int,
    pricing: dict[str, tuple[float, float]] | None = None,
) -> float:
    """Dollar cost from per-1K-token prices; unknown models use the default rate."""
    input_rate, output_rate = (pricing or {}).get(model_id, DEFAULT_PRICING)
    return input_tokens / 1000 * input_rate + output_tokens / 1000 * output_rate


def _flag(topic: str) -> str:
    return re.sub(r"\s+", "_", re.sub(r"[()]", "", topic.lower()).strip())


def _apply_length_limit(body: str, disclosure: str, limit: int | None) -> str:
    """Truncate the body only; disclosure text is always kept whole."""
    full = body + disclosure
    if not limit or len(full) <= limit:
        return full
    room = limit - len(disclosure)
    if room <= 3:
        return disclosure.lstrip()
    return body[: room - 3] + "..." + disclosure


def _compose(
    successful: list[ModelResponse],
    agreement: AgreementAnalysis,
    weights: list[ModelWeight],
) -> tuple[str, str]:
    """Returns (body, disclosure) for the final answer."""
    if not successful:
        return UNABLE_TO_ANSWER, ""
    if len(successful) == 1:
        return successful[0].content, f"\n\n{SINGLE_MODEL_NOTE}"

    names = {r.model_id: r.display_name for r in successful}
    ranked = rank_by_weight(successful, weights)
    primary = ranked[0]

    if agreement.level == "high":
        return primary.content, f"\n\n**Council Note**: All {len(successful)} models aligned on this recommendation."

    if agreement.level in ("moderate", "low"):
        others_add_value = any(r.summary != primary.summary for r in ranked[1:])
        if not (others_add_value and agreement.divergent_points):
            return primary.content, ""
        main = agreement.divergent_points[0]
        return primary.content, (
            f"\n\n**Council Note**: {agreement.level.capitalize()} agreement ({agreement.score}%). "
            f"Models differed on {main.topic.lower()}. "
            "The primary recommendation above reflects the highest-weighted perspective."
        )

    # Split: both leading views and every divergence are always shown
    body_lines = [SPLIT_BANNER, "", f"**Primary Recommendation ({primary.display_name}):**", primary.summary, ""]
    if len(ranked) > 1:
        secondary = ranked[1]
        body_lines += [f"**Alternative View ({secondary.display_name}):**", secondary.summary, ""]

    disclosure_lines = ["**Key Disagreements:**"]
    if agreement.divergent_points:
        for point in agreement.divergent_points:
            disclosure_lines.append(f"• {point.topic}")
            disclosure_lines += [f"  - {names.get(p.model_id, p.model_id)}: {p.position}" for p in point.positions]
    else:
        disclosure_lines.append("• Overall conclusion")
        disclosure_lines += [f"  - {r.display_name}: {r.summary}" for r in ranked]

    return "\n".join(body_lines), "\n" + "\n".join(disclosure_lines)


def synthesize(
    query: str,
    responses: list[ModelResponse],
    options: SynthesisOptions | None = None,
    agreement: AgreementAnalysis | None = None,
) -> SynthesisResult:
    """Arbitrate the responses into one answer.

    The arbitration log always has five steps in the same order: dispatch,
    weight, analyze, resolve, then synthesize (or fallback when nothing
    succeeded). Only successful responses take part in weighting and
    agreement.
    """
    options = options or SynthesisOptions()
    successful = sorted((r for r in responses if r.status == "success"), key=lambda r: r.model_id)
    classification = options.classification or ["general"]
    log: list[ArbitrationEntry] = []

    log.append(ArbitrationEntry(
        step=1,
        action="dispatch",
        reasoning=f"Query classified as: {', '.join(classification)}",
        outcome=f"{len(successful)} model(s) responded",
    ))

    query_type = map_classification_to_query_type(classification)
    weights = calculate_model_weights(successful, query_type)
    log.append(ArbitrationEntry(
        step=2,
        action="weight",
        reasoning=f'Query type "{query_type}" matched to specialty weights',
        outcome=", ".join(f"{r.display_name}: {w.adjusted_weight}%" for r, w in zip(successful, weights))
        or "No weights applied",
    ))

    if agreement is None:
        agreement = analyze_agreement(successful, options.disagreement_threshold)
    log.append(ArbitrationEntry(
        step=3,
        action="analyze",
        reasoning="Compared aligned vs divergent points across responses",
        outcome=f"Agreement: {agreement.level} ({agreement.score}%)",
    ))

    flags: list[str] = [_flag(d.topic) for d in agreement.divergent_points if d.resolution == "presented_both"]
    if agreement.divergent_points:
        log.append(ArbitrationEntry(
            step=4,
            action="resolve",
            reasoning=f"{len(agreement.divergent_points)} divergence(s) detected",
            outcome="; ".join(f"{d.topic}: {d.resolution}" for d in agreement.divergent_points),
        ))
    else:
        log.append(ArbitrationEntry(
            step=4,
            action="resolve",
            reasoning="No divergences detected",
            outcome="Nothing to resolve",
        ))

    if not successful:
        flags.append("council_failed")
    elif len(successful) == 1:
        flags.append("single_model")
    elif agreement.level == "split":
        flags.append("split_council")

    body, disclosure = _compose(successful, agreement, weights)
    final = _apply_length_limit(body, disclosure, options.max_response_length)

    if successful:
        log.append(ArbitrationEntry(
            step=5,
            action="synthesize",
            reasoning="Generated unified response from model outputs",
            outcome=f"{len(final.split())} words, {len(flags)} flag(s)",
        ))
    else:
        log.append(ArbitrationEntry(
            step=5,
            action="fallback",
            reasoning="No model produced a usable response",
            outcome="Returned an unable-to-answer message",
        ))

    logger.info("Synthesis complete: %s agreement (%d%%), %d flag(s)", agreement.level, agreement.score, len(flags))
    return SynthesisResult(final_response=final, arbitration_log=log, weights_applied=weights, transparency_flags=flags)


def create_fallback_synthesis(reason: str, partial_responses: list[ModelResponse] | None = None) -> SynthesisResult:
    """Synthesis for when the council could not deliberate at all."""
    usable = [r for r in partial_responses or [] if r.status == "success"]
    if usable:
        final = f"{usable[0].content}\n\n{FALLBACK_NOTE}"
        outcome = f"Answered by {usable[0].display_name} alone"
    else:
        final = FALLBACK_UNAVAILABLE
        outcome = "Council deliberation incomplete"
    logger.warning("Council fallback: %s", reason)
    return SynthesisResult(
        final_response=final,
        arbitration_log=[ArbitrationEntry(step=1, action="fallback", reasoning=reason, outcome=outcome)],
        weights_applied=[],
        transparency_flags=["council_failed"],
    )


def build_deliberation(
    query_id: str,
    original_query: str,
    responses: list[ModelResponse],
    synthesis: SynthesisResult,
    agreement: AgreementAnalysis,
    trigger: TriggerType,
    classification: list[str] | None = None,
    pricing: dict[str, tuple[float, float]] | None = None,
) -> CouncilDeliberation:
    """Freeze one query's outcome. Latency is the slowest model, since calls run in parallel."""
    total_latency = max((r.latency_ms for r in responses), default=0)
    total_cost = sum(
        estimate_cost(r.model_id, *split_tokens(r.tokens_used), pricing)
        for r in responses
    )
    return CouncilDeliberation(
        query_id=query_id,
        original_query=original_query,
        query_classification=tuple(classification or ["general"]),
        responses=tuple(responses),
        agreement=agreement,
        synthesis=synthesis,
        total_latency_ms=total_latency,
        total_cost_estimate=total_cost,
        trigger=trigger,
    )
