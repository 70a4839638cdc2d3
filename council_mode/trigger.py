"""Trigger evaluation: decide whether a query goes to the full council.

User invocation always wins. Otherwise a known user context is needed, the
tier must have quota left and allow auto-trigger, and the query must hit one
of the auto-trigger conditions below.
"""

import logging
import re

from config.config_loader import DEFAULT_TIERS, UNLIMITED, TierLimits
from council_mode.models import AutoTriggerConditions, ConversationContext, TriggerEvaluation

logger = logging.getLogger(__name__)

FINANCIAL_THRESHOLD = 10_000

INVOCATION_PATTERNS = [
    re.compile(r"^/council\s+", re.IGNORECASE),
    re.compile(r"\[council\]", re.IGNORECASE),
    re.compile(r"multiple (AI |model )?perspectives", re.IGNORECASE),
    re.compile(r"different (AI |model )?(opinions|views)", re.IGNORECASE),
    re.compile(r"what would (other AIs|different models) say", re.IGNORECASE),
    re.compile(r"compare (AI |model )?responses", re.IGNORECASE),
    re.compile(r"council mode", re.IGNORECASE),
]

LEGAL_PATTERNS = [
    r"\b(legal|law(yer|suit)?|attorney|court|sue|liab(le|ility))\b",
    r"\bcontract\b",
    r"\bcopyright\b",
    r"\btrademark\b",
    r"\bpatent\b",
    r"\bdivorce\b",
    r"\bcustody\b",
]

HEALTH_PATTERNS = [
    r"\b(doctor|medical|diagnos|symptom|treatment|medication|health)\b",
    r"\b(cancer|disease|illness|surgery|hospital)\b",
    r"\b(prescri(be|ption)|dosage)\b",
]

DOMAIN_PATTERNS: dict[str, str] = {
    "technology": r"\b(code|software|programming|algorithm|database)\b",
    "business": r"\b(business|company|startup|revenue|market)\b",
    "science": r"\b(research|study|experiment|scientific|data)\b",
    "philosophy": r"\b(ethics|moral|philosophy|meaning|purpose)\b",
    "finance": r"\b(financial|investment|money|budget)\b",
    "legal": r"\b(legal|law|contract|policy)\b",
    "health": r"\b(health|medical|treatment|wellness)\b",
}

RESEARCH_PATTERNS = [
    r"\b(research|sources?|citations?|references?)\b",
    r"\b(studies|papers?|publications?)\b",
    r"\bwhat does the research (say|show)\b",
    r"\baccording to\b",
]

STRATEGIC_PATTERNS = [
    r"\b(strategy|strategic|plan(ning)?|roadmap)\b",
    r"\b(long[\s-]?term|next (year|few years|decade))\b",
    r"\b(5[\s-]?year|10[\s-]?year|future)\b",
]

CONFLICT_PATTERNS = [
    r"\b(conflicting|contradictory|opposing)\b",
    r"\b(some say|others say|but also)\b",
    r"\b(on one hand|on the other hand)\b",
]

NOVEL_PATTERNS = [
    r"\b(new|novel|unprecedented|never before)\b",
    r"\b(unique situation|unusual case)\b",
    r"\b(first time|never happened)\b",
]

_AMOUNT = re.compile(
    r"(?P<dollar>\$)?(?P<number>\d[\d,]*(?:\.\d+)?)(?:\s*(?P<scale>k|million|billion)\b)?",
    re.IGNORECASE,
)
_SCALE = {"k": 1_000, "million": 1_000_000, "billion": 1_000_000_000}


def _matches_any(patterns: list[str], text: str) -> bool:
    return any(re.search(p, text, re.IGNORECASE) for p in patterns)


# --- User invocation ---

def is_user_invoked(query: str) -> bool:
    return any(p.search(query) for p in INVOCATION_PATTERNS)


def strip_invocation(query: str) -> str:
    cleaned = re.sub(r"^/council\s+", "", query, flags=re.IGNORECASE)
    cleaned = re.sub(r"\[council\]", "", cleaned, flags=re.IGNORECASE)
    return cleaned.strip()


# --- High stakes ---

def extract_dollar_amount(query: str) -> float:
    """Canonical dollar value of the amount named in the query, 0 if none.

    A "$"-prefixed figure wins, then a figure carrying a scale suffix, then
    the first bare number. Only the suffix attached to the chosen figure
    ("k", "million", "billion") scales it.
    """
    matches = list(_AMOUNT.finditer(query))
    if not matches:
        return 0.0
    match = next(
        (m for m in matches if m.group("dollar")),
        next((m for m in matches if m.group("scale")), matches[0]),
    )
    amount = float(match.group("number").replace(",", ""))
    scale = match.group("scale")
    return amount * _SCALE[scale.lower()] if scale else amount


def detect_financial_threshold(query: str, threshold: float = FINANCIAL_THRESHOLD) -> bool:
    return extract_dollar_amount(query) >= threshold


def detect_legal_implications(query: str) -> bool:
    return _matches_any(LEGAL_PATTERNS, query)


def detect_health_decisions(query: str) -> bool:
    return _matches_any(HEALTH_PATTERNS, query)


# --- Complexity ---

def detect_domains(query: str) -> list[str]:
    return [domain for domain, pattern in DOMAIN_PATTERNS.items() if re.search(pattern, query, re.IGNORECASE)]


def detect_multi_domain(query: str) -> bool:
    return len(detect_domains(query)) >= 2


def detect_research_depth(query: str) -> bool:
    return _matches_any(RESEARCH_PATTERNS, query)


def detect_strategic_planning(query: str) -> bool:
    return _matches_any(STRATEGIC_PATTERNS, query)


# --- Uncertainty ---

def detect_conflicting_sources(query: str) -> bool:
    return _matches_any(CONFLICT_PATTERNS, query)


def detect_novel_situation(query: str) -> bool:
    return _matches_any(NOVEL_PATTERNS, query)


# --- Conditions ---

def evaluate_conditions(
    query: str,
    context: ConversationContext | None = None,
    financial_threshold: float = FINANCIAL_THRESHOLD,
) -> AutoTriggerConditions:
    return AutoTriggerConditions(
        financial_threshold=detect_financial_threshold(query, financial_threshold),
        legal_implications=detect_legal_implications(query),
        health_decisions=detect_health_decisions(query),
        multi_domain=detect_multi_domain(query),
        research_depth_required=detect_research_depth(query),
        strategic_planning=detect_strategic_planning(query),
        conflicting_sources=detect_conflicting_sources(query),
        novel_situation=detect_novel_situation(query),
        user_preference_aggressive=bool(context and context.user.aggressive_preference),
    )


def get_auto_trigger_reason(conditions: AutoTriggerConditions) -> str:
    """The single highest-priority reason that holds, or "none"."""
    if conditions.financial_threshold:
        return "financial_threshold"
    if conditions.legal_implications:
        return "legal_implications"
    if conditions.health_decisions:
        return "health_decisions"
    if conditions.multi_domain and conditions.research_depth_required:
        return "complex_multi_domain"
    if conditions.conflicting_sources:
        return "conflicting_sources"
    if conditions.novel_situation:
        return "novel_situation"
    if conditions.user_preference_aggressive:
        return "user_preference"
    return "none"


def should_auto_trigger(conditions: AutoTriggerConditions) -> bool:
    return get_auto_trigger_reason(conditions) != "none"


# --- Tier limits ---

def tier_limits(tier: str, tiers: dict[str, TierLimits] = DEFAULT_TIERS) -> TierLimits:
    """Limits for a tier; unknown tiers get the free tier's limits."""
    return tiers.get(tier, tiers.get("free", DEFAULT_TIERS["free"]))


def can_use_council(
    tier: str,
    uses_today: int,
    tiers: dict[str, TierLimits] = DEFAULT_TIERS,
) -> tuple[bool, str | None]:
    """Returns (allowed, reason). reason is None when allowed."""
    limits = tier_limits(tier, tiers)
    if limits.council_per_day == UNLIMITED:
        return True, None
    if uses_today >= int(limits.council_per_day):
        return False, f"Daily limit of {limits.council_per_day} council queries reached for {tier} tier"
    return True, None


# --- Entry point ---

def evaluate_trigger(
    query: str,
    context: ConversationContext | None = None,
    tiers: dict[str, TierLimits] = DEFAULT_TIERS,
    financial_threshold: float = FINANCIAL_THRESHOLD,
) -> TriggerEvaluation:
    """Decide whether the council should deliberate on this query.

    Checks run in a fixed order: user invocation, missing context, tier
    quota, auto-trigger availability, then the auto-trigger conditions.
    The returned query has any invocation token stripped.
    """
    if is_user_invoked(query):
        logger.debug("Council invoked explicitly")
        return TriggerEvaluation(should_trigger=True, reason="user_invoked", query=strip_invocation(query))

    if context is None:
        return TriggerEvaluation(should_trigger=False, reason="no_context", query=query)

    allowed, detail = can_use_council(context.user.tier, context.user.council_uses_today, tiers)
    if not allowed:
        logger.debug("Council blocked: %s", detail)
        return TriggerEvaluation(should_trigger=False, reason="tier_limit", query=query, detail=detail)

    if not tier_limits(context.user.tier, tiers).auto_trigger_enabled:
        return TriggerEvaluation(should_trigger=False, reason="auto_trigger_disabled", query=query)

    conditions = evaluate_conditions(query, context, financial_threshold)
    reason = get_auto_trigger_reason(conditions)
    logger.debug("Auto-trigger conditions: %s -> %s", conditions, reason)
    if reason == "none":
        return TriggerEvaluation(
            should_trigger=False, reason="no_trigger_conditions_met", query=query, conditions=conditions
        )
    return TriggerEvaluation(should_trigger=True, reason=reason, query=query, conditions=conditions)
