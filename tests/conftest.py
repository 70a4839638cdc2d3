"""Shared pytest fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    DEFAULT_TIERS,
    AppConfig,
    DefaultsConfig,
    InboxConfig,
    ModelConfig,
    TimeoutConfig,
)
from council_mode.models import (
    AdapterContext,
    AgreementAnalysis,
    ConversationContext,
    CouncilDeliberation,
    DivergentPoint,
    ModelConfidence,
    ModelPosition,
    ModelResponse,
    ProviderReply,
    UserInfo,
)
from council_mode.providers.base import AIProvider
from council_mode.registry import AdapterRegistry
from council_mode.synthesis import SynthesisOptions, build_deliberation, synthesize

FAST_TIMEOUTS = TimeoutConfig(
    per_model_timeout_ms=500,
    total_council_timeout_ms=1_000,
    min_models_for_synthesis=2,
    retry_attempts=1,
    retry_delay_ms=1,
)

CLAUDE_ANSWER = (
    "Yes, refinancing makes sense here because the rate drop is large. "
    "First, compare the closing costs against the monthly savings. "
    "Second, check how long you plan to stay in the house. "
    "In summary, I recommend refinancing if you stay more than three years."
)
GPT_ANSWER = (
    "Yes, refinancing is worth it because the rate difference is meaningful. "
    "First, add up the closing costs and the monthly savings. "
    "Then consider how long you will keep the loan. "
    "Overall, you should refinance if the break-even point is under three years."
)
GEMINI_ANSWER = (
    "No, refinancing probably does not pay off. "
    "Closing costs might exceed the savings and rates could fall further. "
    "Perhaps wait a few months."
)


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because query is defined in the class body below.
        self.query = AsyncMock(  # type: ignore[assignment]
            return_value=ProviderReply(content=response_content, tokens_used=10)
        )

    def name(self) -> str:
        return self._name

    async def query(self, prompt: str, context: AdapterContext | None = None) -> ProviderReply:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return ProviderReply(content=self._response_content, tokens_used=10)


def make_response(
    model_id: str = "claude",
    content: str = "A reasonable answer with enough words to count.",
    confidence: int = 80,
    status: str = "success",
    display_name: str | None = None,
    summary: str | None = None,
    latency_ms: int = 1_000,
    tokens_used: int = 100,
) -> ModelResponse:
    """ModelResponse with a fixed confidence, bypassing the text heuristics."""
    failed = status != "success"
    return ModelResponse(
        model_id=model_id,
        display_name=display_name or model_id.capitalize(),
        content="" if failed else content,
        summary="" if failed else (summary if summary is not None else content[:60]),
        confidence=ModelConfidence(raw_score=None, normalized_score=0 if failed else confidence, reasoning_depth=3.0),
        latency_ms=latency_ms,
        tokens_used=0 if failed else tokens_used,
        timestamp="2026-01-01T00:00:00+00:00",
        status=status,  # type: ignore[arg-type]
        error_message=f"{model_id} failed" if failed else None,
    )


def make_registry(providers: dict[str, MockProvider], timeouts: TimeoutConfig = FAST_TIMEOUTS) -> AdapterRegistry:
    registry = AdapterRegistry(timeouts)
    for model_id, provider in providers.items():
        registry.register(model_id, provider, display_name=model_id.capitalize())
    return registry


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="test",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        display_name="Test Model",
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_app_config(tmp_path: Path) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-opus-4-6",
        api_key_env="ANTHROPIC_API_KEY",
        display_name="Claude",
        max_tokens=4096,
    )
    return AppConfig(
        defaults=DefaultsConfig(output_dir=tmp_path / "output"),
        timeouts=FAST_TIMEOUTS,
        tiers=dict(DEFAULT_TIERS),
        models={"claude": model_cfg},
        inbox=InboxConfig(dir=tmp_path / "inbox", archive_dir=tmp_path / "inbox" / "archive"),
        available_providers={"claude"},
    )


@pytest.fixture
def three_providers() -> dict[str, MockProvider]:
    return {
        "claude": MockProvider("claude", CLAUDE_ANSWER),
        "openai": MockProvider("openai", GPT_ANSWER),
        "gemini": MockProvider("gemini", GEMINI_ANSWER),
    }


@pytest.fixture
def registry(three_providers: dict[str, MockProvider]) -> AdapterRegistry:
    return make_registry(three_providers)


@pytest.fixture
def pro_context() -> ConversationContext:
    return ConversationContext(
        current_query="Should I invest $50,000 in index funds?",
        user=UserInfo(id="user-1", tier="pro", council_uses_today=0),
    )


@pytest.fixture
def aligned_responses() -> list[ModelResponse]:
    return [
        make_response("claude", CLAUDE_ANSWER, confidence=82, display_name="Claude"),
        make_response("openai", GPT_ANSWER, confidence=80, display_name="GPT"),
    ]


@pytest.fixture
def split_agreement() -> AgreementAnalysis:
    return AgreementAnalysis(
        level="split",
        score=30,
        aligned_points=[],
        divergent_points=[
            DivergentPoint(
                topic="Direct yes/no disagreement",
                positions=[
                    ModelPosition("claude", "Yes", 85),
                    ModelPosition("gemini", "No", 60),
                ],
                resolution="presented_both",
                resolution_reasoning="Models gave opposite yes/no answers",
            )
        ],
    )


@pytest.fixture
def sample_deliberation(aligned_responses: list[ModelResponse]) -> CouncilDeliberation:
    agreement = AgreementAnalysis(level="high", score=85, aligned_points=["Refinancing makes sense"])
    synthesis = synthesize(
        "Should I refinance?",
        aligned_responses,
        SynthesisOptions(classification=["finance"]),
        agreement,
    )
    return build_deliberation(
        query_id="q-123",
        original_query="Should I refinance?",
        responses=aligned_responses,
        synthesis=synthesis,
        agreement=agreement,
        trigger="user_invoked",
        classification=["finance"],
    )


@pytest.fixture
def split_deliberation(split_agreement: AgreementAnalysis) -> CouncilDeliberation:
    responses = [
        make_response("claude", CLAUDE_ANSWER, confidence=85, display_name="Claude"),
        make_response("gemini", GEMINI_ANSWER, confidence=60, display_name="Gemini"),
    ]
    synthesis = synthesize("Should I refinance?", responses, agreement=split_agreement)
    return build_deliberation(
        query_id="q-split",
        original_query="/council Should I refinance?",
        responses=responses,
        synthesis=synthesis,
        agreement=split_agreement,
        trigger="user_invoked",
    )
