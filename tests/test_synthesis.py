"""Tests for council_mode/synthesis.py."""

import dataclasses

import pytest

from council_mode.agreement import analyze_agreement
from council_mode.models import AgreementAnalysis
from council_mode.synthesis import (
    FALLBACK_NOTE,
    FALLBACK_UNAVAILABLE,
    SINGLE_MODEL_NOTE,
    SPLIT_BANNER,
    UNABLE_TO_ANSWER,
    SynthesisOptions,
    build_deliberation,
    create_fallback_synthesis,
    estimate_cost,
    synthesize,
)
from tests.conftest import CLAUDE_ANSWER, GEMINI_ANSWER, GPT_ANSWER, make_response

HIGH = AgreementAnalysis(level="high", score=85, aligned_points=["Refinance"])
HIGH_NOTE = "\n\n**Council Note**: All 2 models aligned on this recommendation."


def test_arbitration_log_has_five_ordered_steps(aligned_responses):
    result = synthesize("q", aligned_responses, agreement=HIGH)
    assert [e.step for e in result.arbitration_log] == [1, 2, 3, 4, 5]
    assert [e.action for e in result.arbitration_log] == ["dispatch", "weight", "analyze", "resolve", "synthesize"]
    assert result.arbitration_log[3].reasoning == "No divergences detected"


def test_no_successful_responses():
    result = synthesize("q", [make_response("claude", status="timeout"), make_response("openai", status="error")])

    assert result.final_response == UNABLE_TO_ANSWER
    assert result.transparency_flags == ("council_failed",)
    assert result.weights_applied == ()
    assert result.arbitration_log[-1].action == "fallback"
    assert len(result.arbitration_log) == 5


def test_single_response_carries_note():
    result = synthesize("q", [make_response("claude", CLAUDE_ANSWER)])
    assert result.final_response == f"{CLAUDE_ANSWER}\n\n{SINGLE_MODEL_NOTE}"
    assert result.transparency_flags == ("single_model",)


def test_high_agreement_uses_highest_weighted_model(aligned_responses):
    result = synthesize("q", aligned_responses, SynthesisOptions(classification=["finance"]), HIGH)

    assert result.final_response == CLAUDE_ANSWER + HIGH_NOTE
    weights = {w.model_id: w.adjusted_weight for w in result.weights_applied}
    assert weights["claude"] > weights["openai"]
    assert result.arbitration_log[1].reasoning == 'Query type "financial" matched to specialty weights'
    assert result.transparency_flags == ()


def test_failed_responses_excluded_from_weighting(aligned_responses):
    responses = aligned_responses + [make_response("gemini", status="timeout")]
    result = synthesize("q", responses, agreement=HIGH)
    assert {w.model_id for w in result.weights_applied} == {"claude", "openai"}


def test_split_council_shows_both_views(split_agreement):
    responses = [
        make_response("claude", CLAUDE_ANSWER, 85, display_name="Claude", summary="Refinance now"),
        make_response("gemini", GEMINI_ANSWER, 60, display_name="Gemini", summary="Wait a few months"),
    ]
    result = synthesize("q", responses, agreement=split_agreement)

    assert result.final_response.startswith(SPLIT_BANNER)
    assert "**Primary Recommendation (Claude):**" in result.final_response
    assert "**Alternative View (Gemini):**" in result.final_response
    assert "**Key Disagreements:**" in result.final_response
    assert "  - Gemini: No" in result.final_response
    assert "split_council" in result.transparency_flags
    assert "direct_yes/no_disagreement" in result.transparency_flags


def test_split_without_divergences_lists_overall_conclusion():
    responses = [
        make_response("claude", summary="Refinance now"),
        make_response("openai", summary="Do not refinance"),
    ]
    result = synthesize("q", responses, agreement=AgreementAnalysis(level="split", score=20))
    assert "• Overall conclusion" in result.final_response
    assert "  - Openai: Do not refinance" in result.final_response


def test_moderate_agreement_discloses_main_divergence():
    responses = [
        make_response("claude", CLAUDE_ANSWER, 90, summary="Refinance"),
        make_response("openai", GPT_ANSWER, 60, summary="Refinance if staying"),
    ]
    agreement = analyze_agreement(responses)
    agreement = dataclasses.replace(agreement, level="moderate", score=70)

    result = synthesize("q", responses, agreement=agreement)

    assert result.final_response.startswith(CLAUDE_ANSWER)
    assert "Moderate agreement (70%)" in result.final_response
    assert "confidence level divergence" in result.final_response


def test_length_limit_truncates_body_and_keeps_disclosure(aligned_responses):
    result = synthesize("q", aligned_responses, SynthesisOptions(max_response_length=120), HIGH)

    assert len(result.final_response) == 120
    assert result.final_response.endswith(HIGH_NOTE)
    assert "..." in result.final_response


def test_length_limit_not_applied_when_short_enough(aligned_responses):
    result = synthesize("q", aligned_responses, SynthesisOptions(max_response_length=10_000), HIGH)
    assert "..." not in result.final_response


def test_fallback_synthesis_with_partial_response():
    partial = [make_response("claude", "Answer from one model.", display_name="Claude")]
    result = create_fallback_synthesis("Only 1 model responded", partial)
    assert result.final_response == f"Answer from one model.\n\n{FALLBACK_NOTE}"
    assert result.transparency_flags == ("council_failed",)
    assert result.arbitration_log[0].action == "fallback"
    assert result.arbitration_log[0].reasoning == "Only 1 model responded"


def test_fallback_synthesis_without_responses():
    result = create_fallback_synthesis("Council timed out", [make_response("claude", status="timeout")])
    assert result.final_response == FALLBACK_UNAVAILABLE


def test_estimate_cost_default_and_custom_pricing():
    assert estimate_cost("unknown", 1000, 1000) == pytest.approx(0.04)
    assert estimate_cost("claude", 1000, 2000, {"claude": (0.015, 0.075)}) == pytest.approx(0.165)


def test_build_deliberation_totals(aligned_responses):
    responses = aligned_responses + [make_response("gemini", status="timeout", latency_ms=45_000)]
    synthesis = synthesize("q", responses, agreement=HIGH)

    deliberation = build_deliberation("q-1", "/council q", responses, synthesis, HIGH, "user_invoked")

    assert deliberation.total_latency_ms == 45_000
    # Each 100-token success: 30 input + 70 output at the default rate
    assert deliberation.total_cost_estimate == pytest.approx(2 * (0.03 * 0.01 + 0.07 * 0.03))
    assert deliberation.query_classification == ("general",)
    assert len(deliberation.responses) == 3


def test_deliberation_is_immutable(sample_deliberation):
    with pytest.raises(dataclasses.FrozenInstanceError):
        sample_deliberation.trigger = "auto"  # type: ignore[misc]
