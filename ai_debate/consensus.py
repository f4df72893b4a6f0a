"""Consensus detection over the committed utterance log."""

import logging
from collections.abc import Sequence

from ai_debate.models import Stage, Utterance

logger = logging.getLogger(__name__)

CONSENSUS_MARKER = "[CONSENSUS]"

# No consensus is accepted before this round of the consensus stage
MIN_CONSENSUS_ROUND = 3

# A proposal counts as accepted only when the marker sits in this head of the text
_PROPOSAL_SCAN_CHARS = 500


def has_consensus_marker(text: str) -> bool:
    return CONSENSUS_MARKER in text


def opens_with_consensus_marker(text: str) -> bool:
    return CONSENSUS_MARKER in text[:_PROPOSAL_SCAN_CHARS]


def latest_consensus_utterances(
    utterances: Sequence[Utterance],
    agents: Sequence[str],
) -> dict[str, Utterance | None]:
    """Map each agent to its most recent consensus-stage utterance (any round)."""
    latest: dict[str, Utterance | None] = {a: None for a in agents}
    for u in utterances:
        if u.stage is Stage.CONSENSUS and u.agent in latest:
            latest[u.agent] = u
    return latest


def is_consensus_reached(
    utterances: Sequence[Utterance],
    stage: Stage,
    round_number: int,
    agents: Sequence[str],
    min_round: int = MIN_CONSENSUS_ROUND,
) -> bool:
    """True when every listed agent's latest consensus utterance carries the marker.

    Args:
        utterances: Full committed log.
        stage: Current stage; only the consensus stage can reach consensus.
        round_number: Current round within the stage.
        agents: Agents whose agreement is required (the non-abstained panel).
        min_round: Earliest round at which consensus may be declared.
    """
    if stage is not Stage.CONSENSUS or round_number < min_round:
        return False
    if not agents:
        return False

    latest = latest_consensus_utterances(utterances, agents)
    if any(u is None for u in latest.values()):
        return False

    agreed = all(has_consensus_marker(u.content) for u in latest.values() if u is not None)
    if agreed:
        logger.info("Consensus reached in round %d among %s", round_number, ", ".join(agents))
    return agreed


def find_open_proposal(utterances: Sequence[Utterance]) -> str | None:
    """Content of the latest consensus-stage utterance that is still under discussion."""
    for u in reversed(utterances):
        if u.stage is Stage.CONSENSUS and not opens_with_consensus_marker(u.content):
            return u.content
    return None


def consensus_rounds_remaining(round_number: int, min_round: int = MIN_CONSENSUS_ROUND) -> int:
    """Rounds left before consensus may be declared."""
    return max(0, min_round - round_number)
