"""Final consensus write-up: parse agreed proposals, ask one model to merge them."""

import asyncio
import logging
import re
from collections.abc import Mapping, Sequence
from contextlib import aclosing
from dataclasses import dataclass

from config.config_loader import PromptsConfig
from ai_debate.consensus import CONSENSUS_MARKER, has_consensus_marker
from ai_debate.context import recent_utterances
from ai_debate.models import Session, Stage, Utterance
from ai_debate.prompts import build_summary_request
from ai_debate.providers.base import AgentProvider, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_PRIORITY = ("claude", "gpt", "gemini")
DEFAULT_SUMMARY_TIMEOUT_SEC = 120.0

# Summaries are built from the tail of the debate only
_SUMMARY_WINDOW = 5


def _section(label: str) -> re.Pattern[str]:
    # Text after "**Label**:" up to the next bold heading line
    return re.compile(rf"\*\*{label}\*\*:\s*([^\n]*(?:\n(?!\*\*)[^\n]*)*)")


_CORE_RE = _section("Core argument")
_CONCESSION_RE = _section("Concession")
_PROPOSAL_RE = _section("Proposal")


@dataclass(frozen=True)
class ParsedConsensus:
    core_argument: str
    concession: str
    proposal: str
    raw: str


@dataclass(frozen=True)
class DebateSummary:
    text: str
    summarizer: str


def parse_consensus_response(content: str) -> ParsedConsensus:
    clean = content.replace(CONSENSUS_MARKER, "", 1).strip()

    def grab(pattern: re.Pattern[str]) -> str:
        match = pattern.search(clean)
        return match.group(1).strip() if match else ""

    return ParsedConsensus(
        core_argument=grab(_CORE_RE),
        concession=grab(_CONCESSION_RE),
        proposal=grab(_PROPOSAL_RE),
        raw=clean,
    )


def extract_agreed_proposal(utterances: Sequence[Utterance]) -> str:
    """Merge the proposals of all agreeing consensus-stage utterances.

    One distinct proposal is returned as is; several are joined with " | ".
    """
    proposals: list[str] = []
    for u in utterances:
        if u.stage is not Stage.CONSENSUS or not has_consensus_marker(u.content):
            continue
        parsed = parse_consensus_response(u.content)
        proposal = parsed.proposal or parsed.raw
        if proposal and proposal not in proposals:
            proposals.append(proposal)
    return " | ".join(proposals)


def final_positions(session: Session) -> dict[str, Utterance | None]:
    """Each agent's last consensus-stage utterance, or its last utterance if it never got there."""
    positions: dict[str, Utterance | None] = {}
    for agent in session.agents:
        own = [u for u in session.utterances if u.agent == agent]
        in_consensus = [u for u in own if u.stage is Stage.CONSENSUS]
        if in_consensus:
            positions[agent] = in_consensus[-1]
        else:
            positions[agent] = own[-1] if own else None
    return positions


async def _collect_text(provider: AgentProvider, system_prompt: str, request: str, timeout_sec: float) -> str:
    parts: list[str] = []
    stream = provider.stream(system_prompt, (), request)
    async with asyncio.timeout(timeout_sec), aclosing(stream):
        async for fragment in stream:
            parts.append(fragment)
    return "".join(parts).strip()


async def summarize(
    session: Session,
    providers: Mapping[str, AgentProvider],
    prompts: PromptsConfig,
    priority: Sequence[str] = DEFAULT_SUMMARY_PRIORITY,
    timeout_sec: float = DEFAULT_SUMMARY_TIMEOUT_SEC,
) -> DebateSummary:
    """Write up the agreed consensus with the first provider that succeeds.

    Args:
        session: A completed session that reached consensus.
        providers: Available providers keyed by agent id.
        prompts: Prompt templates (uses prompts.summary as system prompt).
        priority: Provider ids to try, in order; missing ones are skipped.
        timeout_sec: Deadline per provider; a provider that misses it is skipped.

    Returns:
        DebateSummary with the text and the provider that wrote it.

    Raises:
        ValueError: If the session did not reach consensus.
        RuntimeError: If no provider produced a summary.
    """
    if not session.consensus_reached:
        raise ValueError("Only a debate that reached consensus can be summarized")

    request = build_summary_request(session.topic, recent_utterances(session.utterances, _SUMMARY_WINDOW))

    for name in priority:
        provider = providers.get(name)
        if provider is None:
            continue
        logger.info("Running summary via %s", name)
        try:
            text = await _collect_text(provider, prompts.summary, request, timeout_sec)
        except ProviderError as exc:
            logger.warning("Summary via %s failed: %s", name, exc)
            continue
        except TimeoutError:
            logger.warning("Summary via %s timed out after %gs", name, timeout_sec)
            continue
        if text:
            return DebateSummary(text=text, summarizer=name)
        logger.warning("Summary via %s returned empty content", name)

    raise RuntimeError("No provider could write the consensus summary")
