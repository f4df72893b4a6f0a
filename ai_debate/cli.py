"""Click CLI: loads config, builds the agent panel, runs the debate with live output."""

import asyncio
import logging
import signal
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

from config.config_loader import AppConfig, load_config
from ai_debate.controller import DebateController
from ai_debate.models import MAX_AGENTS, MIN_AGENTS, AgentState, Session, Stage, Utterance
from ai_debate.output import (
    console,
    format_progress,
    print_agent_error,
    print_agent_table,
    print_result,
    print_stage_header,
    print_utterance,
    save_transcript,
)
from ai_debate.providers.anthropic import AnthropicProvider
from ai_debate.providers.base import AgentProvider, ProviderError
from ai_debate.providers.gemini import GeminiProvider
from ai_debate.providers.openai_provider import OpenAIProvider
from ai_debate.scheduler import stage_progress
from ai_debate.summary import DebateSummary, summarize

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[AgentProvider]] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}

# Only the tail of the streaming text is shown live
_LIVE_TAIL_CHARS = 1500


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


@contextmanager
def _pause_on_interrupt(controller: DebateController) -> Iterator[None]:
    """Route Ctrl-C to controller.pause() so the in-flight turn is cancelled cleanly."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, controller.pause)
    except NotImplementedError:
        # Loops without signal support fall back to KeyboardInterrupt from asyncio.run
        yield
        return
    try:
        yield
    finally:
        loop.remove_signal_handler(signal.SIGINT)


def _build_all_providers(config: AppConfig) -> dict[str, AgentProvider]:
    """Build all available providers. Returns dict keyed by agent id."""
    providers: dict[str, AgentProvider] = {}
    for name in sorted(config.available_providers):
        model_cfg = config.models[name]
        if model_cfg.sdk not in PROVIDER_CLASSES:
            logging.warning("Provider '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            providers[name] = PROVIDER_CLASSES[model_cfg.sdk](model_cfg)
        except ProviderError as exc:
            logging.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _determine_panel(config: AppConfig, models_arg: str | None) -> list[str]:
    """Panel order is the debate's speaking order. --models overrides the default."""
    if models_arg:
        return [m.strip() for m in models_arg.split(",") if m.strip()]
    return list(config.debate.default_agents)


def _select_panel(
    panel_names: list[str],
    all_providers: dict[str, AgentProvider],
    explicit: bool,
) -> list[str]:
    """Keep panel members that have a provider.

    An explicit --models list must be fully available; the default panel is
    trimmed to whoever has an API key.
    """
    unavailable = [n for n in panel_names if n not in all_providers]
    if unavailable and explicit:
        raise click.UsageError(f"No working provider for: {', '.join(unavailable)}. Check API keys in .env.")
    panel = [n for n in panel_names if n in all_providers]
    if not MIN_AGENTS <= len(panel) <= MAX_AGENTS:
        raise click.UsageError(
            f"Need {MIN_AGENTS}-{MAX_AGENTS} agents with API keys, got {len(panel)}: "
            f"{', '.join(panel) or 'none'}. Check API keys in .env or adjust --models."
        )
    return panel


async def _run_debate(
    session: Session,
    config: AppConfig,
    all_providers: dict[str, AgentProvider],
    display_names: dict[str, str],
    want_summary: bool,
) -> DebateSummary | None:
    panel_providers = {n: all_providers[n] for n in session.agents}
    last_stage: list[Stage | None] = [None]

    with Live(console=console, transient=True, refresh_per_second=8) as live:

        def on_partial(agent: str, text: str) -> None:
            live.update(
                Panel(
                    Text(text[-_LIVE_TAIL_CHARS:]),
                    title=f"[bold]{display_names.get(agent, agent.upper())}[/bold] is speaking...",
                    subtitle=format_progress(stage_progress(session)),
                    border_style="cyan",
                )
            )

        def on_utterance(utterance: Utterance) -> None:
            live.update(Text(""))
            print_utterance(utterance, display_names)

        def on_agent_error(state: AgentState) -> None:
            live.update(Text(""))
            print_agent_error(state, display_names)

        def on_progress(current: Session) -> None:
            if current.stage is not last_stage[0] and current.stage is not Stage.DONE:
                last_stage[0] = current.stage
                print_stage_header(stage_progress(current))

        controller = DebateController(
            session,
            panel_providers,
            config.prompts,
            config.debate,
            display_names=display_names,
            on_partial=on_partial,
            on_utterance=on_utterance,
            on_agent_error=on_agent_error,
            on_progress=on_progress,
        )
        print_stage_header(controller.stage_progress())
        last_stage[0] = session.stage
        with _pause_on_interrupt(controller):
            await controller.run()

    if session.paused or not (want_summary and session.consensus_reached):
        return None
    try:
        return await summarize(
            session,
            all_providers,
            config.prompts,
            priority=config.debate.summary_priority or list(all_providers),
            timeout_sec=config.debate.turn_timeout_sec,
        )
    except RuntimeError as exc:
        logger.warning("Consensus summary unavailable: %s", exc)
        return None


@click.command()
@click.argument("topic", required=False)
@click.option("--file", "topic_file", type=click.Path(exists=True), help="Read the topic from a text/markdown file")
@click.option("--models", default=None, help="Comma-separated agents in speaking order, e.g. gpt,claude,gemini")
@click.option("--output", "output_path", default=None, help="Transcript directory (default: from config)")
@click.option("--no-summary", is_flag=True, default=False, help="Skip the consensus write-up")
@click.option("--no-save", is_flag=True, default=False, help="Do not save a markdown transcript")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    topic: str | None,
    topic_file: str | None,
    models: str | None,
    output_path: str | None,
    no_summary: bool,
    no_save: bool,
    verbose: bool,
) -> None:
    """AI Debate -- staged debate between 2-3 models until they agree.

    \b
    Stages: position -> cross-exam -> common-ground -> consensus.
    Press Ctrl-C to stop; the transcript so far is still saved.

    \b
    Examples:
      ai-debate "Should cities ban cars from their centres?"
      ai-debate "Four-day work week?" --models claude,gpt
      ai-debate --file topic.md --no-summary
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if topic_file:
        topic_text = Path(topic_file).read_text(encoding="utf-8").strip()
    elif topic:
        topic_text = topic.strip()
    else:
        console.print("[bold red]Error:[/bold red] Provide a TOPIC argument or --file.")
        sys.exit(1)
    if not topic_text:
        console.print("[bold red]Error:[/bold red] The debate topic is empty.")
        sys.exit(1)

    all_providers = _build_all_providers(config)
    try:
        panel = _select_panel(_determine_panel(config, models), all_providers, explicit=models is not None)
    except click.UsageError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc.message}")
        sys.exit(1)

    display_names = {name: cfg.display_name or name.upper() for name, cfg in config.models.items()}
    session = Session(topic=topic_text, agents=tuple(panel))

    console.print(f"\n[bold cyan]AI Debate[/bold cyan] ({len(panel)} agents)")
    console.print(f"Panel: {', '.join(display_names[n] for n in panel)}")
    console.print(f"Topic: [italic]{topic_text[:80]}{'...' if len(topic_text) > 80 else ''}[/italic]\n")

    summary: DebateSummary | None = None
    interrupted = False
    try:
        summary = asyncio.run(_run_debate(session, config, all_providers, display_names, not no_summary))
    except KeyboardInterrupt:
        interrupted = True
    if interrupted or session.paused:
        console.print("\n[yellow]Debate interrupted.[/yellow]")

    if session.complete:
        print_result(session, summary, display_names)
    print_agent_table(session, display_names)

    if not no_save:
        output_dir = Path(output_path) if output_path else config.debate.output_dir
        saved_path = save_transcript(session, output_dir, summary=summary, display_names=display_names)
        console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


if __name__ == "__main__":
    main()
