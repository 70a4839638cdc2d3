"""Click CLI: config loading, registry build, council run and output."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from council_mode.council import CouncilOptions, CouncilResult, execute_council
from council_mode.display import DISPLAY_STATES, determine_display_state
from council_mode.dispatch import fallback_to_single_model
from council_mode.errors import CouncilError, TierLimitExceeded
from council_mode.healthcheck import run_health_checks
from council_mode.inbox import archive_file, load_query, pending_files
from council_mode.models import ConversationContext, ModelResponse, UserInfo
from council_mode.output import format_as_json, print_deliberation, save_to_file
from council_mode.registry import AdapterRegistry, build_registry

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_REASON_TEXT = {
    "no_context": "no user tier given, so auto-trigger cannot apply (use --tier, --force or /council)",
    "tier_limit": "daily council limit reached for this tier",
    "auto_trigger_disabled": "auto-trigger is not available on this tier",
    "no_trigger_conditions_met": "the question did not look high-stakes, complex or uncertain",
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _split_csv(value: str | None) -> list[str] | None:
    if not value:
        return None
    items = [part.strip() for part in value.split(",") if part.strip()]
    return items or None


def _build_context(query: str, tier: str | None, uses_today: int, aggressive: bool) -> ConversationContext | None:
    """A user context only exists when a tier is given."""
    if tier is None:
        return None
    return ConversationContext(
        current_query=query,
        user=UserInfo(id="cli", tier=tier, council_uses_today=uses_today, aggressive_preference=aggressive),
    )


def _build_options(
    config: AppConfig,
    models: list[str] | None,
    classification: list[str] | None,
    force: bool,
    max_length: int | None,
) -> CouncilOptions:
    return CouncilOptions(
        models=models or config.defaults.roster,
        classification=classification,
        force=force,
        fallback_model=config.defaults.fallback_model,
        max_response_length=max_length if max_length is not None else config.defaults.max_response_length,
        tiers=config.tiers,
        financial_threshold=config.defaults.financial_threshold,
        disagreement_threshold=config.defaults.disagreement_threshold,
    )


def _check_and_filter_providers(registry: AdapterRegistry) -> None:
    """Run health checks, print results, and ask user what to do on failures.

    Failed models are removed from the registry. Exits if the user
    declines to continue or no model passes.
    """
    console.print("\n[bold]Checking providers...[/bold]")
    statuses = asyncio.run(run_health_checks(registry.providers))

    for status in statuses:
        if status.ok:
            console.print(f"  [green]OK  [/green] {status.model_id} [dim]({status.latency_ms} ms)[/dim]")
        else:
            console.print(f"  [red]FAIL[/red] {status.model_id}: {escape(status.short_error)}")

    failed_names = [s.model_id for s in statuses if not s.ok]
    if not failed_names:
        console.print()
        return

    if len(failed_names) == len(statuses):
        console.print("\n[bold red]Error:[/bold red] No providers passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed_names)} provider(s) failed:[/yellow] {', '.join(failed_names)}")
    console.print(f"Working providers: {', '.join(s.model_id for s in statuses if s.ok)}")

    if not click.confirm("Continue with working providers only?", default=True):
        sys.exit(0)

    for name in failed_names:
        registry.remove(name)
    console.print()


async def _answer_directly(query: str, registry: AdapterRegistry, config: AppConfig) -> ModelResponse | None:
    """Single-model answer for queries the council declined."""
    model_id = config.defaults.fallback_model
    if model_id not in registry:
        model_id = next(iter(registry.model_ids()), model_id)
    try:
        response = await fallback_to_single_model(query, registry, model_id)
    except CouncilError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        return None
    if response.status != "success":
        message = escape(response.error_message or "")
        console.print(f"[bold red]Error:[/bold red] {response.display_name} failed: {message}")
        return None
    console.print(Markdown(response.content))
    console.print(f"[dim]Answered by {response.display_name} alone.[/dim]")
    return response


async def _run_single(
    query: str,
    config: AppConfig,
    registry: AdapterRegistry,
    options: CouncilOptions,
    context: ConversationContext | None,
    view: str | None,
    as_json: bool,
    output_dir: Path,
    slug_override: str | None = None,
) -> Path | None:
    """Run one council query, render it, and return the saved transcript path."""
    console.print(f"\n[bold cyan]Council Mode[/bold cyan]: {len(registry)} model(s) registered")
    console.print(f"Question: [italic]{escape(query[:80])}{'...' if len(query) > 80 else ''}[/italic]\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:

        def on_model_response(response: ModelResponse) -> None:
            if response.status == "success":
                progress.print(
                    f"[green]OK[/green] {response.display_name} "
                    f"({response.latency_ms / 1000:.1f}s, confidence {response.confidence.normalized_score}%)"
                )
            else:
                progress.print(
                    f"[red]{response.status.upper()}[/red] {response.display_name}: {escape(response.error_message or '')}"
                )

        progress.add_task("Consulting the council...", total=None)
        result: CouncilResult = await execute_council(
            query,
            registry,
            context=context,
            options=options,
            on_model_response=on_model_response,
        )

    deliberation = result.deliberation
    if deliberation is None:
        reason = _REASON_TEXT.get(result.reason, result.reason)
        console.print(f"[yellow]Council not convened:[/yellow] {escape(result.detail or reason)}")
        await _answer_directly(result.query, registry, config)
        return None

    if as_json:
        click.echo(format_as_json(deliberation))
    else:
        state = view or determine_display_state(deliberation)
        print_deliberation(deliberation, state, registry.pricing)  # type: ignore[arg-type]

    saved_path = save_to_file(deliberation, output_dir, slug_override=slug_override)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return saved_path


async def _run_inbox(
    config: AppConfig,
    registry: AdapterRegistry,
    inbox_dir: Path,
    archive_dir: Path,
    cli_models: list[str] | None,
    cli_classification: list[str] | None,
    cli_tier: str | None,
    cli_uses_today: int | None,
    aggressive: bool,
    cli_force: bool,
    max_length: int | None,
    view: str | None,
    as_json: bool,
    output_dir: Path,
) -> None:
    """Process all .md files in the inbox folder.

    Precedence for per-file settings: CLI flag > frontmatter > config default.
    """
    files = pending_files(inbox_dir, archive_dir)

    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        try:
            item = load_query(file_path)
            tier = cli_tier if cli_tier is not None else item.tier
            uses_today = cli_uses_today if cli_uses_today is not None else (item.uses_today or 0)
            options = _build_options(
                config,
                cli_models or item.models,
                cli_classification or item.classification,
                cli_force or item.force,
                max_length,
            )
            saved = await _run_single(
                query=item.query,
                config=config,
                registry=registry,
                options=options,
                context=_build_context(item.query, tier, uses_today, aggressive),
                view=view,
                as_json=as_json,
                output_dir=output_dir,
                slug_override=item.slug,
            )
            archived = archive_file(file_path, archive_dir)
            click.echo(f"Processed: {file_path.name} -> {saved or 'direct answer'} (archived: {archived.name})")
        except Exception as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, archive_dir, failed=True)


@click.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True), help="Read question from .md file")
@click.option("--models", default=None, help="Comma-separated council roster (default: from config)")
@click.option("--classification", default=None, help="Comma-separated query tags, e.g. financial,strategy")
@click.option("--tier", type=click.Choice(["free", "pro", "enterprise"]), default=None,
              help="User tier; enables quota checks and auto-trigger")
@click.option("--uses-today", default=None, type=int, help="Council queries already used today (with --tier)")
@click.option("--aggressive", is_flag=True, default=False, help="Prefer the council whenever the tier allows")
@click.option("--force", is_flag=True, default=False, help="Convene the council without trigger evaluation")
@click.option("--view", type=click.Choice(list(DISPLAY_STATES)), default=None,
              help="Display state (default: chosen from the agreement level)")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the JSON summary instead")
@click.option("--max-length", default=None, type=int, help="Truncate the synthesized answer body")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--inbox", "use_inbox", is_flag=True, default=False,
              help="Process all .md files in inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None,
              help="Override inbox folder path (default: from config)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    question: str | None,
    question_file: str | None,
    models: str | None,
    classification: str | None,
    tier: str | None,
    uses_today: int | None,
    aggressive: bool,
    force: bool,
    view: str | None,
    as_json: bool,
    max_length: int | None,
    output_path: str | None,
    verbose: bool,
    use_inbox: bool,
    inbox_dir_override: str | None,
    skip_health_check: bool,
) -> None:
    """Council Mode -- ask several AI models and arbitrate their answers.

    \b
    Examples:
      council-mode "/council Should I refinance my mortgage?"
      council-mode "Is a $50,000 kitchen remodel worth it?" --tier pro
      council-mode "Monorepo or polyrepo?" --force --view expanded
      council-mode "SQL or NoSQL?" --force --models claude,openai --json
      council-mode --file question.md --force
      council-mode --inbox --inbox-dir ./my_queue
    """
    # Reconfigure stdout/stderr to UTF-8 on Windows so model responses with
    # Unicode chars don't crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    output_dir = Path(output_path) if output_path else config.defaults.output_dir
    registry = build_registry(config)

    if not len(registry):
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    if not skip_health_check:
        _check_and_filter_providers(registry)

    if use_inbox:
        inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.dir
        asyncio.run(
            _run_inbox(
                config=config,
                registry=registry,
                inbox_dir=inbox_dir,
                archive_dir=config.inbox.archive_dir,
                cli_models=_split_csv(models),
                cli_classification=_split_csv(classification),
                cli_tier=tier,
                cli_uses_today=uses_today,
                aggressive=aggressive,
                cli_force=force,
                max_length=max_length,
                view=view,
                as_json=as_json,
                output_dir=output_dir,
            )
        )
        return

    if question_file:
        query = Path(question_file).read_text(encoding="utf-8").strip()
    elif question:
        query = question
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument, --file, or --inbox.")
        sys.exit(1)

    options = _build_options(config, _split_csv(models), _split_csv(classification), force, max_length)
    context = _build_context(query, tier, uses_today or 0, aggressive)

    try:
        asyncio.run(
            _run_single(
                query=query,
                config=config,
                registry=registry,
                options=options,
                context=context,
                view=view,
                as_json=as_json,
                output_dir=output_dir,
            )
        )
    except TierLimitExceeded as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        sys.exit(1)


if __name__ == "__main__":
    main()
