"""Text views per display state, JSON summary, Rich console output and markdown save."""

import json
import logging
import re
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from council_mode.agreement import format_agreement_summary
from council_mode.display import build_council_summary
from council_mode.models import CouncilDeliberation, DisplayState, ModelResponse
from council_mode.synthesis import estimate_cost, split_tokens

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_RULE = "─" * 50
_CONSENSUS_STYLE = {"High": "green", "Moderate": "yellow", "Split": "red"}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _response_cost(response: ModelResponse, pricing: dict[str, tuple[float, float]] | None) -> float:
    return estimate_cost(response.model_id, *split_tokens(response.tokens_used), pricing)


# --- Plain-text views ---

def format_default_view(deliberation: CouncilDeliberation) -> str:
    summary = build_council_summary(deliberation)
    lines = [
        deliberation.synthesis.final_response,
        "",
        _RULE,
        f"Council Consensus: {summary.consensus_level} ({summary.consensus_description})",
    ]
    return "\n".join(lines)


def format_expanded_view(deliberation: CouncilDeliberation) -> str:
    summary = build_council_summary(deliberation)
    weights = {w.model_id: w for w in deliberation.synthesis.weights_applied}
    lines = ["COUNCIL DELIBERATION", "═" * 50, ""]

    for card in summary.model_cards:
        weight = weights.get(card.model_id)
        lines.append(f"{card.model_name}")
        lines.append(f"  Weight: {weight.adjusted_weight if weight else 0}%")
        lines.append(f"  Confidence: {card.confidence_percent}%")
        lines.append(f"  {card.summary}")
        lines.append("")

    lines += ["ARBITRATION SUMMARY", _RULE]
    agreement = deliberation.agreement
    if agreement.aligned_points:
        lines.append("• All models agreed:")
        lines += [f"  {_truncate(point, 80)}" for point in agreement.aligned_points[:3]]
    if deliberation.synthesis.weights_applied:
        top = max(deliberation.synthesis.weights_applied, key=lambda w: w.adjusted_weight)
        names = {c.model_id: c.model_name for c in summary.model_cards}
        lines.append(
            f"• {names.get(top.model_id, top.model_id)} weighted higher ({top.adjustment_reason or 'specialty match'})"
        )
    if agreement.divergent_points:
        point = agreement.divergent_points[0]
        lines.append(f"• {point.topic}: {point.resolution.replace('_', ' ')}")
    return "\n".join(lines)


def format_disagreement_view(deliberation: CouncilDeliberation) -> str:
    summary = build_council_summary(deliberation)
    lines = [
        "[Split Council]",
        "─" * 60,
        "",
        "The models reached different conclusions on this question.",
        "",
        deliberation.synthesis.final_response.split("\n\n")[0],
        "",
    ]
    if summary.disagreements:
        lines += ["KEY DISAGREEMENT", ""]
        for disagreement in summary.disagreements:
            lines.append(f"On {disagreement.topic}:")
            lines += [f"  • {p['model']} argues: {_truncate(p['position'], 80)}" for p in disagreement.model_positions]
            lines.append(f"  Council's take: {disagreement.recommendation}. {disagreement.reasoning}")
            lines.append("")
    return "\n".join(lines).rstrip()


def format_full_log(
    deliberation: CouncilDeliberation,
    pricing: dict[str, tuple[float, float]] | None = None,
) -> str:
    lines = [
        "FULL ARBITRATION LOG",
        "═" * 60,
        "",
        f"Query ID: {deliberation.query_id}",
        f"Trigger: {'Auto' if deliberation.trigger == 'auto' else 'User invoked'}",
        "",
        "─" * 60,
        "Models queried:",
    ]
    for r in deliberation.responses:
        line = f"• {r.display_name}: {r.status}, {r.latency_ms}ms | {r.tokens_used} tokens"
        line += f" | ${_response_cost(r, pricing):.3f}"
        lines.append(line)
    lines.append("")

    for entry in deliberation.synthesis.arbitration_log:
        lines += [f"STEP {entry.step}: {entry.action}", f"• {entry.reasoning}", f"• {entry.outcome}", ""]

    lines += [
        "─" * 60,
        f"Total latency: {deliberation.total_latency_ms}ms | Total cost: ${deliberation.total_cost_estimate:.3f}",
    ]
    return "\n".join(lines)


def format_for_state(
    deliberation: CouncilDeliberation,
    state: DisplayState,
    pricing: dict[str, tuple[float, float]] | None = None,
) -> str:
    if state == "expanded":
        return format_expanded_view(deliberation)
    if state == "disagreement":
        return format_disagreement_view(deliberation)
    if state == "full_log":
        return format_full_log(deliberation, pricing)
    return format_default_view(deliberation)


def format_as_json(deliberation: CouncilDeliberation) -> str:
    summary = build_council_summary(deliberation)
    payload = {
        "synthesis": deliberation.synthesis.final_response,
        "consensus": {
            "level": summary.consensus_level,
            "description": summary.consensus_description,
        },
        "models": [asdict(card) for card in summary.model_cards],
        "disagreements": [asdict(d) for d in summary.disagreements] if summary.disagreements else None,
        "metadata": {
            "query_id": deliberation.query_id,
            "latency_ms": deliberation.total_latency_ms,
            "cost_estimate": deliberation.total_cost_estimate,
            "trigger": deliberation.trigger,
        },
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


# --- Rich console ---

def print_model_cards(deliberation: CouncilDeliberation) -> None:
    """Print one panel per council member."""
    console.print(Rule("[bold cyan]Council Members[/bold cyan]"))
    weights = {w.model_id: w.adjusted_weight for w in deliberation.synthesis.weights_applied}
    for card in build_council_summary(deliberation).model_cards:
        border = "dim" if card.full_response_available else "red"
        console.print(
            Panel(
                card.summary or "(no response)",
                title=f"[bold]{card.model_name}[/bold]",
                subtitle=f"confidence {card.confidence_percent}% | weight {weights.get(card.model_id, 0)}%",
                border_style=border,
            )
        )


def print_deliberation(
    deliberation: CouncilDeliberation,
    state: DisplayState,
    pricing: dict[str, tuple[float, float]] | None = None,
) -> None:
    """Render one display state to the console."""
    summary = build_council_summary(deliberation)
    style = _CONSENSUS_STYLE[summary.consensus_level]

    if state == "default":
        console.print(Rule("[bold green]Council Synthesis[/bold green]"))
        console.print(Markdown(deliberation.synthesis.final_response))
    elif state == "expanded":
        print_model_cards(deliberation)
        console.print(Rule("[bold green]Council Synthesis[/bold green]"))
        console.print(Markdown(deliberation.synthesis.final_response))
        console.print(Text(format_agreement_summary(deliberation.agreement), style="dim"))
    elif state == "disagreement":
        console.print(Rule("[bold red]Split Council[/bold red]"))
        console.print(Markdown(format_disagreement_view(deliberation)))
    else:
        console.print(Rule("[bold cyan]Arbitration Log[/bold cyan]"))
        console.print(Text(format_full_log(deliberation, pricing)))

    console.print(
        Text(
            f"Consensus: {summary.consensus_level} ({summary.consensus_description}) | "
            f"Latency: {deliberation.total_latency_ms / 1000:.1f}s | "
            f"Cost: ${deliberation.total_cost_estimate:.3f}",
            style=style,
        )
    )


# --- Markdown transcript ---

def save_to_file(
    deliberation: CouncilDeliberation,
    output_dir: Path,
    slug_override: str | None = None,
) -> Path:
    """Save the full deliberation as a markdown file.

    Args:
        deliberation: The finished deliberation.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the query text. Useful for inbox mode.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(deliberation.original_query)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    summary = build_council_summary(deliberation)
    models = ", ".join(r.display_name for r in deliberation.responses) or "none"

    lines: list[str] = [
        f"# Council Deliberation: {deliberation.original_query[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Query ID:** {deliberation.query_id}",
        f"**Trigger:** {deliberation.trigger}",
        f"**Classification:** {', '.join(deliberation.query_classification)}",
        f"**Models:** {models}",
        f"**Consensus:** {summary.consensus_level} ({summary.consensus_description})",
        f"**Latency:** {deliberation.total_latency_ms}ms",
        f"**Estimated cost:** ${deliberation.total_cost_estimate:.4f}",
        "",
        "---",
        "",
        "## Model Responses",
        "",
    ]

    for resp in deliberation.responses:
        lines.append(f"### {resp.display_name} ({resp.model_id})")
        lines.append("")
        if resp.status == "success":
            lines.append(resp.content)
        else:
            lines.append(f"*{resp.status}: {resp.error_message}*")
        lines.append("")
        lines.append(
            f"*Confidence: {resp.confidence.normalized_score}% | "
            f"Depth: {resp.confidence.reasoning_depth:g}/5 | "
            f"Latency: {resp.latency_ms}ms"
            + (f" | Tokens: {resp.tokens_used}" if resp.tokens_used else "")
            + "*"
        )
        lines.append("")

    lines += ["## Agreement", "", "```", format_agreement_summary(deliberation.agreement), "```", ""]

    lines += ["## Arbitration Log", ""]
    for entry in deliberation.synthesis.arbitration_log:
        lines.append(f"{entry.step}. **{entry.action}**: {entry.reasoning} -> {entry.outcome}")
    lines.append("")

    if deliberation.synthesis.transparency_flags:
        lines += [f"**Flags:** {', '.join(deliberation.synthesis.transparency_flags)}", ""]

    lines += ["## Synthesis", "", deliberation.synthesis.final_response, ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Deliberation saved to: %s", filepath)
    return filepath
