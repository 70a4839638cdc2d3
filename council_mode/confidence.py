"""Confidence normalizer: scores a response text on five independent factors.

Providers return no comparable native confidence, so the score is derived
from the text alone. Each factor is a plain function over the text and the
scorer combines them with fixed weights. Everything here is deterministic.
"""

import logging
import math
import re
from collections.abc import Callable
from dataclasses import dataclass

from council_mode.models import ModelConfidence

logger = logging.getLogger(__name__)

HEDGING_PATTERNS = [
    r"\bi think\b",
    r"\bprobably\b",
    r"\bmight\b",
    r"\bcould be\b",
    r"\bpossibly\b",
    r"\bit'?s possible\b",
    r"\bi'?m not sure\b",
    r"\bi believe\b",
    r"\bgenerally\b",
    r"\btypically\b",
    r"\busually\b",
    r"\boften\b",
    r"\bperhaps\b",
    r"\bmaybe\b",
    r"\bseem(s|ingly)?\b",
    r"\bappear(s)?\b",
    r"\blikely\b",
    r"\bunlikely\b",
    r"\buncertain\b",
]

CITATION_PATTERNS = [
    r"according to",
    r"\bcited\b",
    r"\breference(s|d)?\b",
    r"\bsource(s)?\b",
    r"\bstud(y|ies)\b",
    r"\bresearch(ers)?\b",
    r"\b\d{4}\b.*\bet al\b",
]

_URL = re.compile(r"https?://[^\s]+")

# (pattern, bonus) pairs; each pattern counts once regardless of repeats
DEPTH_MARKERS: list[tuple[str, float]] = [
    (r"\b(first|second|third|finally)\b", 1.0),
    (r"\b(because|therefore|thus|hence)\b", 1.0),
    (r"\b(however|although|on the other hand)\b", 0.5),
    (r"\b(for example|specifically|in particular)\b", 0.5),
    (r"\b(alternatively|another option|could also)\b", 0.5),
    (r"\b(assuming|given that|if we assume)\b", 0.5),
    (r"\b[1-9]\.\s|\n-\s|\n\*\s", 0.5),
]

_SUMMARY_MARKER = re.compile(r"\b(in summary|in conclusion|to summarize|overall)\b", re.IGNORECASE)
_ACTION_MARKER = re.compile(r"\b(I recommend|you should|consider|steps?|action)\b", re.IGNORECASE)
_DIRECT_ANSWER = re.compile(r"\b(yes|no|the answer is|it is|they are)\b", re.IGNORECASE)

# (pattern, penalty) pairs for self-contradiction within one text
CONTRADICTION_PATTERNS: list[tuple[str, int]] = [
    (r"\b(but|however).*(not|never).*(but|however)", 15),
    (r"\bis\b.*(is not|isn't)\b.*same", 15),
    (r"\byes\b.*\bno\b.*\byes\b", 15),
    (r"\b(always|never).*(sometimes|occasionally)", 10),
    (r"\b(maybe|perhaps).*(definitely|certainly)", 5),
]

MAX_DEPTH = 5.0


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives; Python's round() uses banker's rounding."""
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def _word_count(text: str) -> int:
    return len(text.split())


def hedging_score(text: str) -> int:
    """100 for hedge-free text; each hedge per word costs 500 points."""
    lowered = text.lower()
    hedges = sum(len(re.findall(p, lowered)) for p in HEDGING_PATTERNS)
    words = max(_word_count(text), 1)
    return int(_clamp(round_half_up(100 - (hedges / words) * 500)))


def reasoning_depth(text: str) -> float:
    """Reasoning depth on a 1-5 scale, in half-point steps."""
    depth = 1.0
    for pattern, bonus in DEPTH_MARKERS:
        if re.search(pattern, text, re.IGNORECASE):
            depth += bonus
    return min(depth, MAX_DEPTH)


def count_citations(text: str) -> int:
    """URLs plus citation-style phrases."""
    count = len(_URL.findall(text))
    for pattern in CITATION_PATTERNS:
        count += len(re.findall(pattern, text, re.IGNORECASE))
    return count


def citation_score(text: str) -> int:
    return min(count_citations(text) * 10, 100)


def completeness_score(text: str) -> int:
    score = 50
    words = _word_count(text)
    if words >= 100:
        score += 20
    elif words >= 50:
        score += 10
    elif words < 20:
        score -= 20
    if _SUMMARY_MARKER.search(text):
        score += 10
    if _ACTION_MARKER.search(text):
        score += 10
    if _DIRECT_ANSWER.search(text):
        score += 10
    return int(_clamp(score))


def consistency_score(text: str) -> int:
    score = 100
    for pattern, penalty in CONTRADICTION_PATTERNS:
        if re.search(pattern, text, re.IGNORECASE):
            score -= penalty
    return max(score, 0)


def depth_score(text: str) -> float:
    """Reasoning depth mapped onto 0-100 so it can be weighted with the others."""
    return reasoning_depth(text) / MAX_DEPTH * 100


@dataclass(frozen=True)
class ConfidenceFactor:
    name: str
    weight: float
    score: Callable[[str], float]


FACTORS: tuple[ConfidenceFactor, ...] = (
    ConfidenceFactor("reasoning_depth", 0.30, depth_score),
    ConfidenceFactor("hedging", 0.25, hedging_score),
    ConfidenceFactor("citations", 0.15, citation_score),
    ConfidenceFactor("completeness", 0.15, completeness_score),
    ConfidenceFactor("consistency", 0.15, consistency_score),
)


def factor_scores(text: str) -> dict[str, float]:
    return {factor.name: factor.score(text) for factor in FACTORS}


def normalize_confidence(text: str) -> tuple[int, float]:
    """Return (normalized_score 0-100, reasoning_depth 1-5) for a response text."""
    scores = factor_scores(text)
    weighted = sum(scores[factor.name] * factor.weight for factor in FACTORS)
    normalized = int(_clamp(round_half_up(weighted)))
    depth = reasoning_depth(text)
    logger.debug("Confidence factors %s -> %d (depth %.1f)", scores, normalized, depth)
    return normalized, depth


def build_model_confidence(text: str, raw_score: float | None = None) -> ModelConfidence:
    normalized, depth = normalize_confidence(text)
    return ModelConfidence(raw_score=raw_score, normalized_score=normalized, reasoning_depth=depth)


def format_confidence_breakdown(text: str) -> str:
    """Human-readable per-factor breakdown, for debugging the heuristics."""
    scores = factor_scores(text)
    normalized, depth = normalize_confidence(text)
    lines = ["Confidence Breakdown:"]
    for factor in FACTORS:
        lines.append(f"  {factor.name}: {scores[factor.name]:g}/100 (weight {factor.weight:.0%})")
    lines.append(f"  Reasoning depth: {depth:.1f}/5")
    lines.append(f"  Citations found: {count_citations(text)}")
    lines.append(f"  Final: {normalized}%")
    return "\n".join(lines)
