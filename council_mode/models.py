"""Dataclasses for the Council Mode deliberation pipeline. No pipeline logic, no deps."""

from dataclasses import dataclass, field
from typing import Literal

ResponseStatus = Literal["success", "timeout", "error", "partial"]
AgreementLevel = Literal["high", "moderate", "low", "split"]
ResolutionType = Literal["model_a_weighted", "model_b_weighted", "presented_both", "external_grounding"]
TriggerType = Literal["auto", "user_invoked"]
DisplayState = Literal["default", "expanded", "disagreement", "full_log"]
ConsensusLevel = Literal["High", "Moderate", "Split"]


# --- Provider boundary ---

@dataclass
class AdapterContext:
    system_prompt: str = ""
    history: list["ConversationMessage"] = field(default_factory=list)


@dataclass
class ProviderReply:
    content: str
    tokens_used: int | None = None
    finish_reason: str | None = None


# --- Model responses ---
# Everything reachable from a CouncilDeliberation is frozen and holds tuples.

def _freeze(record: object, *names: str) -> None:
    for name in names:
        object.__setattr__(record, name, tuple(getattr(record, name)))


@dataclass(frozen=True)
class ModelConfidence:
    raw_score: float | None      # Provider-native confidence; no provider supplies one today
    normalized_score: int        # 0-100
    reasoning_depth: float       # 1-5 (0 for failed responses)


@dataclass(frozen=True)
class ModelResponse:
    model_id: str                # Registry key: "claude", "openai", "gemini", ...
    display_name: str
    content: str
    summary: str
    confidence: ModelConfidence
    sources_cited: tuple[str, ...] = ()
    reasoning_chain: tuple[str, ...] = ()  # At most 5 steps
    latency_ms: int = 0
    tokens_used: int = 0
    timestamp: str = ""          # ISO 8601, UTC
    status: ResponseStatus = "success"
    error_message: str | None = None

    def __post_init__(self) -> None:
        _freeze(self, "sources_cited", "reasoning_chain")


# --- Agreement analysis ---

@dataclass(frozen=True)
class ModelPosition:
    model_id: str
    position: str
    confidence: int


@dataclass(frozen=True)
class DivergentPoint:
    topic: str
    positions: tuple[ModelPosition, ...]
    resolution: ResolutionType
    resolution_reasoning: str

    def __post_init__(self) -> None:
        _freeze(self, "positions")


@dataclass(frozen=True)
class AgreementAnalysis:
    level: AgreementLevel
    score: int                   # 0-100
    aligned_points: tuple[str, ...] = ()
    divergent_points: tuple[DivergentPoint, ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "aligned_points", "divergent_points")


# --- Arbitration ---

@dataclass(frozen=True)
class ArbitrationEntry:
    step: int
    action: str                  # "dispatch", "weight", "analyze", "resolve", "synthesize" or "fallback"
    reasoning: str
    outcome: str


@dataclass(frozen=True)
class ModelWeight:
    model_id: str
    base_weight: int             # From the specialty table
    adjusted_weight: int         # Confidence-corrected, clamped to [5, 95]
    adjustment_reason: str | None = None


@dataclass(frozen=True)
class SynthesisResult:
    final_response: str
    arbitration_log: tuple[ArbitrationEntry, ...] = ()
    weights_applied: tuple[ModelWeight, ...] = ()
    transparency_flags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "arbitration_log", "weights_applied", "transparency_flags")


@dataclass(frozen=True)
class CouncilDeliberation:
    query_id: str
    original_query: str
    query_classification: tuple[str, ...]
    responses: tuple[ModelResponse, ...]
    agreement: AgreementAnalysis
    synthesis: SynthesisResult
    total_latency_ms: int        # Max of per-model latencies; dispatch is parallel
    total_cost_estimate: float
    trigger: TriggerType

    def __post_init__(self) -> None:
        _freeze(self, "query_classification", "responses")


# --- Trigger evaluation ---

@dataclass
class AutoTriggerConditions:
    financial_threshold: bool = False
    legal_implications: bool = False
    health_decisions: bool = False
    multi_domain: bool = False
    research_depth_required: bool = False
    strategic_planning: bool = False
    conflicting_sources: bool = False
    novel_situation: bool = False
    user_preference_aggressive: bool = False


@dataclass
class TriggerEvaluation:
    should_trigger: bool
    reason: str
    query: str                   # Query with any invocation token stripped
    conditions: AutoTriggerConditions | None = None
    detail: str | None = None


# --- Conversation context ---

@dataclass
class ConversationMessage:
    role: Literal["user", "assistant"]
    content: str
    timestamp: str | None = None


@dataclass
class UserInfo:
    id: str
    tier: str                    # "free", "pro", "enterprise"
    council_uses_today: int = 0
    aggressive_preference: bool = False


@dataclass
class ConversationContext:
    current_query: str
    user: UserInfo
    detected_intent: str = ""
    constraints: list[str] = field(default_factory=list)
    history: list[ConversationMessage] = field(default_factory=list)


@dataclass
class SharedContext:
    original_query: str
    user_intent: str
    key_constraints: list[str] = field(default_factory=list)


@dataclass
class SpecializedContext:
    relevant_history: list[ConversationMessage] = field(default_factory=list)
    domain_context: list[str] = field(default_factory=list)


@dataclass
class ContextDistribution:
    shared: SharedContext
    specialized: dict[str, SpecializedContext] = field(default_factory=dict)


# --- Dispatch ---

@dataclass
class DispatchResult:
    responses: list[ModelResponse]
    success_count: int
    failure_count: int
    total_latency_ms: int        # Wall-clock time of the whole dispatch
    partial_result: bool


# --- User-facing summary ---

@dataclass
class ModelCard:
    model_id: str
    model_name: str
    confidence_percent: int
    summary: str
    full_response_available: bool


@dataclass
class DisagreementSummary:
    topic: str
    model_positions: list[dict[str, str]]   # [{"model": ..., "position": ...}]
    recommendation: str
    reasoning: str


@dataclass
class CouncilSummary:
    consensus_level: ConsensusLevel
    consensus_description: str
    model_cards: list[ModelCard]
    disagreements: list[DisagreementSummary] | None = None
    arbitration_visible: bool = True
