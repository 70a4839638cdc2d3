"""Agreement analysis: how far a set of model responses align or diverge."""

import logging
import math
import re

from council_mode.confidence import round_half_up
from council_mode.models import AgreementAnalysis, AgreementLevel, DivergentPoint, ModelPosition, ModelResponse

logger = logging.getLogger(__name__)

DISAGREEMENT_THRESHOLD = 15     # Confidence points between two models
CONTRADICTION_PENALTY = 15
ALIGNMENT_SIMILARITY = 0.3
GENERIC_ALIGNED_POINT = "General approach aligned across models"

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_YES = re.compile(r"\byes\b", re.IGNORECASE)
_NO = re.compile(r"\bno\b", re.IGNORECASE)
_POSITIVE_STATEMENT = re.compile(r"\b(is|are|was|were)\s+(true|correct|right)\b", re.IGNORECASE)
_NEGATIVE_STATEMENT = re.compile(
    r"\b(is|are|was|were)\s+(not\s+(true|correct|right)|false|incorrect|wrong)\b", re.IGNORECASE
)
_NUMERIC_CLAIM = re.compile(
    r"\b(\d+(?:\.\d+)?)\s*(percent|%|dollars?|million|billion|years?|months?|days?|hours?)\b", re.IGNORECASE
)

_UNIT_ALIASES = {"%": "percent", "dollar": "dollars", "year": "years", "month": "months", "day": "days", "hour": "hours"}


def is_significant_disagreement(
    confidence_a: int,
    confidence_b: int,
    factual_contradiction: bool = False,
    threshold: int = DISAGREEMENT_THRESHOLD,
) -> bool:
    if factual_contradiction:
        return True
    return abs(confidence_a - confidence_b) >= threshold


# --- Content similarity ---

def extract_key_concepts(text: str) -> set[str]:
    """Lowercase words longer than three characters."""
    return {w for w in re.split(r"\W+", text.lower()) if len(w) > 3}


def concept_similarity(a: set[str], b: set[str]) -> float:
    """Jaccard similarity; 0 when both sets are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def average_similarity(responses: list[ModelResponse]) -> float:
    """Mean pairwise concept similarity, 1.0 for fewer than two responses."""
    if len(responses) < 2:
        return 1.0
    concepts = [extract_key_concepts(r.content) for r in responses]
    pairs = [
        concept_similarity(concepts[i], concepts[j])
        for i in range(len(concepts))
        for j in range(i + 1, len(concepts))
    ]
    return sum(pairs) / len(pairs)


# --- Contradictions ---

def _position_confidence(response: ModelResponse) -> int:
    return response.confidence.normalized_score or 50


def _opposing_groups(
    responses: list[ModelResponse],
    positive: re.Pattern[str],
    negative: re.Pattern[str],
) -> tuple[list[ModelResponse], list[ModelResponse]]:
    pos = [r for r in responses if positive.search(r.content) and not negative.search(r.content)]
    neg = [r for r in responses if negative.search(r.content) and not positive.search(r.content)]
    return pos, neg


def _yes_no_contradiction(responses: list[ModelResponse]) -> DivergentPoint | None:
    yes_models, no_models = _opposing_groups(responses, _YES, _NO)
    if not yes_models or not no_models:
        return None
    positions = [ModelPosition(r.model_id, "Yes", _position_confidence(r)) for r in yes_models]
    positions += [ModelPosition(r.model_id, "No", _position_confidence(r)) for r in no_models]
    return DivergentPoint(
        topic="Direct yes/no disagreement",
        positions=positions,
        resolution="presented_both",
        resolution_reasoning="Models gave opposite yes/no answers",
    )


def _definitive_contradiction(responses: list[ModelResponse]) -> DivergentPoint | None:
    affirm, deny = _opposing_groups(responses, _POSITIVE_STATEMENT, _NEGATIVE_STATEMENT)
    if not affirm or not deny:
        return None
    positions = [ModelPosition(r.model_id, "Affirms the claim", _position_confidence(r)) for r in affirm]
    positions += [ModelPosition(r.model_id, "Rejects the claim", _position_confidence(r)) for r in deny]
    return DivergentPoint(
        topic="Definitive statement clash",
        positions=positions,
        resolution="presented_both",
        resolution_reasoning="Models made opposite true/false statements",
    )


def _numeric_claims(text: str) -> dict[str, set[float]]:
    claims: dict[str, set[float]] = {}
    for value, unit in _NUMERIC_CLAIM.findall(text):
        unit = unit.lower()
        claims.setdefault(_UNIT_ALIASES.get(unit, unit), set()).add(float(value))
    return claims


def _numeric_contradictions(responses: list[ModelResponse]) -> list[DivergentPoint]:
    """Models that each state exactly one figure for the same unit, and the figures differ."""
    by_model = {r.model_id: _numeric_claims(r.content) for r in responses}
    points: list[DivergentPoint] = []
    units = sorted({unit for claims in by_model.values() for unit in claims})
    for unit in units:
        stated = [
            (r, next(iter(by_model[r.model_id][unit])))
            for r in responses
            if len(by_model[r.model_id].get(unit, ())) == 1
        ]
        if len(stated) < 2 or len({value for _, value in stated}) < 2:
            continue
        points.append(
            DivergentPoint(
                topic=f"Numeric disagreement ({unit})",
                positions=[ModelPosition(r.model_id, f"{value:g} {unit}", _position_confidence(r)) for r, value in stated],
                resolution="presented_both",
                resolution_reasoning=f"Models stated different {unit} figures",
            )
        )
    return points


def detect_factual_contradictions(responses: list[ModelResponse]) -> list[DivergentPoint]:
    """Yes/no clashes first, then definitive-statement and numeric clashes."""
    contradictions: list[DivergentPoint] = []
    for detector in (_yes_no_contradiction, _definitive_contradiction):
        point = detector(responses)
        if point:
            contradictions.append(point)
    contradictions.extend(_numeric_contradictions(responses))
    return contradictions


# --- Aligned points ---

def _leading_sentences(text: str) -> list[str]:
    sentences = [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]
    return [s.strip() for s in sentences[:3] if 20 < len(s) < 200]


def _sentence_words(sentence: str) -> set[str]:
    return set(re.split(r"\W+", sentence.lower()))


def extract_aligned_points(responses: list[ModelResponse]) -> list[str]:
    """Leading sentences of the first response that every other response echoes."""
    if len(responses) < 2:
        return [responses[0].summary] if responses and responses[0].summary else []

    phrases = [_leading_sentences(r.content) for r in responses]
    aligned: list[str] = []
    for phrase in phrases[0]:
        words = _sentence_words(phrase)
        if all(
            any(concept_similarity(words, _sentence_words(other)) > ALIGNMENT_SIMILARITY for other in others)
            for others in phrases[1:]
        ):
            aligned.append(phrase)

    if not aligned and any(r.summary for r in responses):
        aligned.append(GENERIC_ALIGNED_POINT)
    return aligned


# --- Scoring ---

def determine_agreement_level(score: int) -> AgreementLevel:
    if score >= 80:
        return "high"
    if score >= 60:
        return "moderate"
    if score >= 40:
        return "low"
    return "split"


def calculate_agreement_score(
    responses: list[ModelResponse],
    contradictions: list[DivergentPoint] | None = None,
) -> int:
    if len(responses) < 2:
        return 100
    if contradictions is None:
        contradictions = detect_factual_contradictions(responses)

    content_similarity = average_similarity(responses) * 100

    confidences = [r.confidence.normalized_score for r in responses]
    mean = sum(confidences) / len(confidences)
    variance = sum((c - mean) ** 2 for c in confidences) / len(confidences)
    confidence_alignment = max(0.0, 100 - math.sqrt(variance))

    score = content_similarity * 0.5 + confidence_alignment * 0.3 - len(contradictions) * CONTRADICTION_PENALTY
    return max(0, min(100, round_half_up(score)))


def _confidence_divergences(
    responses: list[ModelResponse],
    captured: list[DivergentPoint],
    threshold: int,
) -> list[DivergentPoint]:
    points: list[DivergentPoint] = []
    for i, first in enumerate(responses):
        for second in responses[i + 1:]:
            conf_a = first.confidence.normalized_score
            conf_b = second.confidence.normalized_score
            if not is_significant_disagreement(conf_a, conf_b, threshold=threshold):
                continue
            already = any(
                {p.model_id for p in point.positions} >= {first.model_id, second.model_id}
                for point in captured + points
            )
            if already:
                continue
            a_higher = conf_a > conf_b
            points.append(
                DivergentPoint(
                    topic="Confidence level divergence",
                    positions=[
                        ModelPosition(first.model_id, "Higher confidence" if a_higher else "Lower confidence", conf_a),
                        ModelPosition(second.model_id, "Lower confidence" if a_higher else "Higher confidence", conf_b),
                    ],
                    resolution="model_a_weighted" if a_higher else "model_b_weighted",
                    resolution_reasoning=f"{abs(conf_a - conf_b)}% confidence difference",
                )
            )
    return points


def analyze_agreement(
    responses: list[ModelResponse],
    disagreement_threshold: int = DISAGREEMENT_THRESHOLD,
) -> AgreementAnalysis:
    """Compare successful responses and report alignment and divergence.

    The result does not depend on the order of ``responses``: they are
    sorted by model id before the anchor sentence and pairwise positions
    are chosen.
    """
    if not responses:
        return AgreementAnalysis(level="split", score=0)
    if len(responses) == 1:
        return AgreementAnalysis(level="high", score=100, aligned_points=[responses[0].summary or "Single response"])

    ordered = sorted(responses, key=lambda r: r.model_id)
    contradictions = detect_factual_contradictions(ordered)
    score = calculate_agreement_score(ordered, contradictions)
    level = determine_agreement_level(score)

    divergent = list(contradictions)
    divergent += _confidence_divergences(ordered, contradictions, disagreement_threshold)

    logger.debug(
        "Agreement %s (%d), %d contradiction(s), %d divergent point(s)",
        level, score, len(contradictions), len(divergent),
    )
    return AgreementAnalysis(
        level=level,
        score=score,
        aligned_points=extract_aligned_points(ordered),
        divergent_points=divergent,
    )


def format_agreement_summary(analysis: AgreementAnalysis) -> str:
    lines = [f"Agreement Level: {analysis.level} ({analysis.score}%)"]
    if analysis.aligned_points:
        lines.append("\nAligned Points:")
        lines.extend(f"  • {point}" for point in analysis.aligned_points)
    if analysis.divergent_points:
        lines.append("\nDivergent Points:")
        for point in analysis.divergent_points:
            lines.append(f"  • {point.topic}:")
            lines.extend(f"    - {p.model_id}: {p.position} ({p.confidence}%)" for p in point.positions)
            lines.append(f"    Resolution: {point.resolution}")
    return "\n".join(lines)
