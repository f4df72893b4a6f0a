"""Rich console output and markdown transcript export for debate sessions."""

import logging
import re
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from ai_debate.consensus import CONSENSUS_MARKER, has_consensus_marker
from ai_debate.models import AgentState, AgentStatus, Session, Stage, StageProgress, Utterance
from ai_debate.scheduler import STAGE_LABELS
from ai_debate.summary import DebateSummary, extract_agreed_proposal, final_positions

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLES = {
    AgentStatus.IDLE: "dim",
    AgentStatus.STREAMING: "cyan",
    AgentStatus.COMPLETE: "green",
    AgentStatus.ERROR: "red",
    AgentStatus.ABSTAINED: "red",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _label(agent: str, display_names: Mapping[str, str] | None) -> str:
    return (display_names or {}).get(agent, agent.upper())


def total_tokens(session: Session) -> int:
    return sum(state.token_usage for state in session.agent_states.values())


def format_progress(progress: StageProgress) -> str:
    if progress.stage is Stage.DONE:
        return progress.label
    prefix = f"Round {progress.round} - " if progress.round > 0 else ""
    return f"{progress.label} | {prefix}{progress.current}/{progress.total}"


def print_stage_header(progress: StageProgress) -> None:
    console.print(Rule(f"[bold cyan]{progress.label}[/bold cyan]"))


def print_utterance(utterance: Utterance, display_names: Mapping[str, str] | None = None) -> None:
    agreed = has_consensus_marker(utterance.content)
    console.print(
        Panel(
            Markdown(utterance.content),
            title=f"[bold]{_label(utterance.agent, display_names)}[/bold]",
            subtitle=f"{utterance.stage.value}, round {utterance.round}" + (" | agrees" if agreed else ""),
            border_style="green" if agreed else "dim",
        )
    )


def print_agent_error(state: AgentState, display_names: Mapping[str, str] | None = None) -> None:
    console.print(
        f"[bold red]{_label(state.agent, display_names)} is out of the debate:[/bold red] {state.last_error}"
    )


def print_agent_table(session: Session, display_names: Mapping[str, str] | None = None) -> None:
    table = Table(title="Agents", show_lines=False)
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Tokens", justify="right")
    for agent in session.agents:
        state = session.agent_states[agent]
        style = _STATUS_STYLES[state.status]
        table.add_row(_label(agent, display_names), f"[{style}]{state.status.value}[/{style}]", f"{state.token_usage:,}")
    console.print(table)
    console.print(Text(f"Total token usage: {total_tokens(session):,} tokens", style="dim"))


def print_result(
    session: Session,
    summary: DebateSummary | None = None,
    display_names: Mapping[str, str] | None = None,
) -> None:
    """Print the outcome: consensus write-up or each agent's final position."""
    if session.consensus_reached:
        console.print(Rule("[bold green]Consensus reached[/bold green]"))
        if summary is not None:
            console.print(Text(f"Summarized by: {_label(summary.summarizer, display_names)}", style="dim"))
            console.print(Markdown(summary.text))
        else:
            console.print(Markdown(extract_agreed_proposal(session.utterances)))
        return

    console.print(Rule("[bold yellow]No consensus[/bold yellow]"))
    for agent, utterance in final_positions(session).items():
        body = utterance.content.replace(CONSENSUS_MARKER, "").strip() if utterance else "_No contribution._"
        console.print(Panel(Markdown(body), title=f"[bold]{_label(agent, display_names)}[/bold] final position"))


def save_transcript(
    session: Session,
    output_dir: Path,
    summary: DebateSummary | None = None,
    display_names: Mapping[str, str] | None = None,
    slug_override: str | None = None,
) -> Path:
    """Save the committed transcript as a markdown file.

    Args:
        session: The session to export; may be unfinished.
        output_dir: Directory to save the file in.
        summary: Optional consensus write-up appended at the end.
        display_names: Agent id -> display name.
        slug_override: If provided, use this as the filename stem suffix.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(session.topic)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    if session.consensus_reached:
        outcome = "consensus reached"
    elif session.complete:
        outcome = "no consensus"
    else:
        outcome = "interrupted"

    lines: list[str] = [
        f"# AI Debate: {session.topic[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Panel:** {', '.join(_label(a, display_names) for a in session.agents)}",
        f"**Outcome:** {outcome}",
        f"**Tokens (estimated):** {total_tokens(session):,}",
        "",
        "---",
        "",
    ]

    current: tuple[Stage, int] | None = None
    for u in session.utterances:
        if (u.stage, u.round) != current:
            current = (u.stage, u.round)
            lines += [f"## {STAGE_LABELS[u.stage]}, round {u.round}", ""]
        lines += [f"### {_label(u.agent, display_names)}", "", u.content, ""]

    abstained = [a for a in session.agents if session.agent_states[a].status is AgentStatus.ABSTAINED]
    if abstained:
        lines += ["## Abstentions", ""]
        for agent in abstained:
            lines.append(f"- {_label(agent, display_names)}: {session.agent_states[agent].last_error}")
        lines.append("")

    if summary is not None:
        lines += [f"## Consensus summary (by {_label(summary.summarizer, display_names)})", "", summary.text, ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Transcript saved to: %s", filepath)
    return filepath
