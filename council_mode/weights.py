"""Model weighting: specialty table by query type, corrected by confidence."""

import logging
from typing import Literal

from council_mode.confidence import round_half_up
from council_mode.models import ModelResponse, ModelWeight
from council_mode.trigger import detect_domains

logger = logging.getLogger(__name__)

QueryType = Literal[
    "deep_reasoning",
    "current_events",
    "creative",
    "code_technical",
    "multi_source",
    "financial",
    "strategic_planning",
    "factual",
    "general",
]

# Base weight per provider family for each query type
SPECIALTY_WEIGHTS: dict[str, dict[str, int]] = {
    "deep_reasoning": {"claude": 60, "openai": 25, "gemini": 15},
    "current_events": {"claude": 20, "openai": 30, "gemini": 50},
    "creative": {"claude": 35, "openai": 50, "gemini": 15},
    "code_technical": {"claude": 45, "openai": 40, "gemini": 15},
    "multi_source": {"claude": 35, "openai": 25, "gemini": 40},
    "financial": {"claude": 45, "openai": 35, "gemini": 20},
    "strategic_planning": {"claude": 50, "openai": 30, "gemini": 20},
    "factual": {"claude": 25, "openai": 35, "gemini": 40},
    "general": {"claude": 34, "openai": 33, "gemini": 33},
}

UNKNOWN_MODEL_WEIGHT = 33
NEUTRAL_CONFIDENCE = 75
MIN_WEIGHT = 5
MAX_WEIGHT = 95

# Scanned in order; the first group with a matching tag wins
CLASSIFICATION_KEYWORDS: list[tuple[QueryType, set[str]]] = [
    ("deep_reasoning", {"philosophy", "ethics", "deep", "reasoning", "logic", "legal"}),
    ("current_events", {"news", "current", "events", "recent", "today"}),
    ("creative", {"creative", "brainstorm", "story", "writing", "fiction"}),
    ("code_technical", {"code", "programming", "technical", "software", "debug", "technology"}),
    ("multi_source", {"research", "sources", "synthesis", "compare", "multiple"}),
    ("financial", {"financial", "money", "investment", "budget", "mortgage", "finance"}),
    ("strategic_planning", {"strategy", "planning", "long-term", "roadmap", "business"}),
    ("factual", {"fact", "factual", "data", "statistics", "definition", "science", "health"}),
]


def model_family(model_id: str) -> str | None:
    """Provider family for a model id, or None when unrecognised."""
    lowered = model_id.lower()
    if "claude" in lowered:
        return "claude"
    if "gpt" in lowered or "openai" in lowered:
        return "openai"
    if "gemini" in lowered:
        return "gemini"
    return None


def get_specialty_weights(query_type: str) -> dict[str, int]:
    return SPECIALTY_WEIGHTS.get(query_type, SPECIALTY_WEIGHTS["general"])


def map_classification_to_query_type(classification: list[str]) -> QueryType:
    tags = {tag.lower() for tag in classification}
    for query_type, keywords in CLASSIFICATION_KEYWORDS:
        if tags & keywords:
            return query_type
    return "general"


def classify_query(query: str) -> list[str]:
    """Classification tags for a query: its detected domains, else ["general"]."""
    return detect_domains(query) or ["general"]


def base_weight(model_id: str, query_type: str) -> int:
    family = model_family(model_id)
    if family is None:
        return UNKNOWN_MODEL_WEIGHT
    return get_specialty_weights(query_type)[family]


def calculate_model_weights(responses: list[ModelResponse], query_type: str) -> list[ModelWeight]:
    """Specialty weight per response, scaled ±10% per 50 confidence points from neutral."""
    weights: list[ModelWeight] = []
    for response in responses:
        base = base_weight(response.model_id, query_type)
        adjustment = (response.confidence.normalized_score - NEUTRAL_CONFIDENCE) / 50
        adjusted = round_half_up(base * (1 + adjustment * 0.1))
        if adjustment > 0:
            reason: str | None = "Higher confidence"
        elif adjustment < 0:
            reason = "Lower confidence"
        else:
            reason = None
        weights.append(
            ModelWeight(
                model_id=response.model_id,
                base_weight=base,
                adjusted_weight=max(MIN_WEIGHT, min(MAX_WEIGHT, adjusted)),
                adjustment_reason=reason,
            )
        )
    logger.debug("Weights for %s: %s", query_type, {w.model_id: w.adjusted_weight for w in weights})
    return weights


def rank_by_weight(responses: list[ModelResponse], weights: list[ModelWeight]) -> list[ModelResponse]:
    """Highest adjusted weight first; ties break on confidence, then model id."""
    by_model = {w.model_id: w.adjusted_weight for w in weights}
    return sorted(
        responses,
        key=lambda r: (-by_model.get(r.model_id, 0), -r.confidence.normalized_score, r.model_id),
    )
