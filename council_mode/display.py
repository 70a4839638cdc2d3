"""Display state machine and the user-facing council summary."""

import logging

from council_mode.errors import InvalidTransition
from council_mode.models import (
    AgreementAnalysis,
    AgreementLevel,
    ConsensusLevel,
    CouncilDeliberation,
    CouncilSummary,
    DisagreementSummary,
    DisplayState,
    DivergentPoint,
    ModelCard,
)

logger = logging.getLogger(__name__)

DISPLAY_STATES: tuple[DisplayState, ...] = ("default", "expanded", "disagreement", "full_log")

# Every state reaches every other state; none transitions to itself
STATE_TRANSITIONS: dict[DisplayState, tuple[DisplayState, ...]] = {
    "default": ("expanded", "disagreement", "full_log"),
    "expanded": ("default", "disagreement", "full_log"),
    "disagreement": ("default", "expanded", "full_log"),
    "full_log": ("default", "expanded", "disagreement"),
}

_CONSENSUS: dict[AgreementLevel, ConsensusLevel] = {
    "high": "High",
    "moderate": "Moderate",
    "low": "Split",
    "split": "Split",
}


def map_to_consensus_level(level: AgreementLevel) -> ConsensusLevel:
    return _CONSENSUS[level]


def consensus_description(agreement: AgreementAnalysis, model_count: int) -> str:
    if agreement.level == "high":
        return f"{model_count}/{model_count} models aligned"
    if agreement.level == "moderate":
        return f"{model_count} models, moderate agreement ({agreement.score}%)"
    if agreement.level == "low":
        return f"{model_count} models, limited agreement ({agreement.score}%)"
    return f"{model_count} models disagreed"


def determine_display_state(deliberation: CouncilDeliberation) -> DisplayState:
    """Split councils, and low agreement with a divergence, open on the disagreement view."""
    agreement = deliberation.agreement
    if agreement.level == "split":
        return "disagreement"
    if agreement.level == "low" and agreement.divergent_points:
        return "disagreement"
    return "default"


def can_transition(source: DisplayState, target: DisplayState) -> bool:
    return target in STATE_TRANSITIONS.get(source, ())


def available_transitions(state: DisplayState) -> list[DisplayState]:
    return list(STATE_TRANSITIONS.get(state, ()))


def build_model_cards(deliberation: CouncilDeliberation) -> list[ModelCard]:
    return [
        ModelCard(
            model_id=r.model_id,
            model_name=r.display_name,
            confidence_percent=r.confidence.normalized_score,
            summary=r.summary if r.status == "success" else f"({r.status}) {r.error_message or ''}".strip(),
            full_response_available=r.status == "success" and bool(r.content),
        )
        for r in deliberation.responses
    ]


def _recommendation(point: DivergentPoint, names: dict[str, str]) -> str:
    if point.resolution in ("model_a_weighted", "model_b_weighted") and len(point.positions) >= 2:
        chosen = point.positions[0 if point.resolution == "model_a_weighted" else 1]
        return f"Weighted toward {names.get(chosen.model_id, chosen.model_id)}"
    if point.resolution == "external_grounding":
        return "Verify against an external source"
    return "Both perspectives presented"


def build_disagreement_summaries(deliberation: CouncilDeliberation) -> list[DisagreementSummary] | None:
    points = deliberation.agreement.divergent_points
    if not points:
        return None
    names = {r.model_id: r.display_name for r in deliberation.responses}
    return [
        DisagreementSummary(
            topic=point.topic,
            model_positions=[
                {"model": names.get(p.model_id, p.model_id), "position": p.position} for p in point.positions
            ],
            recommendation=_recommendation(point, names),
            reasoning=point.resolution_reasoning,
        )
        for point in points
    ]


def build_council_summary(deliberation: CouncilDeliberation) -> CouncilSummary:
    successful = sum(1 for r in deliberation.responses if r.status == "success")
    return CouncilSummary(
        consensus_level=map_to_consensus_level(deliberation.agreement.level),
        consensus_description=consensus_description(deliberation.agreement, successful),
        model_cards=build_model_cards(deliberation),
        disagreements=build_disagreement_summaries(deliberation),
        arbitration_visible=bool(deliberation.synthesis.arbitration_log),
    )


class DisplaySession:
    """Tracks which view of one deliberation is showing."""

    def __init__(self, deliberation: CouncilDeliberation, initial: DisplayState | None = None) -> None:
        self.deliberation = deliberation
        self.state: DisplayState = initial or determine_display_state(deliberation)
        self.history: list[DisplayState] = [self.state]

    def available(self) -> list[DisplayState]:
        return available_transitions(self.state)

    def transition(self, target: DisplayState) -> DisplayState:
        if not can_transition(self.state, target):
            raise InvalidTransition(self.state, target)
        logger.debug("Display %s -> %s", self.state, target)
        self.state = target
        self.history.append(target)
        return target
