"""Bounded conversation context handed to an agent for its next turn."""

from collections.abc import Sequence

from ai_debate.models import ContextFragment, Utterance

DEFAULT_CONTEXT_WINDOW = 5


def recent_utterances(utterances: Sequence[Utterance], window: int = DEFAULT_CONTEXT_WINDOW) -> list[Utterance]:
    """Return the last `window` utterances in log order."""
    if window < 0:
        raise ValueError(f"Context window must be >= 0, got {window}")
    if window == 0:
        return []
    return list(utterances[-window:])


def build_context(
    utterances: Sequence[Utterance],
    agent: str,
    window: int = DEFAULT_CONTEXT_WINDOW,
) -> list[ContextFragment]:
    """Tag recent utterances as "self" (the requesting agent) or "other".

    Content is prefixed with the speaker's upper-cased id so the agent can tell
    its peers apart once roles are collapsed to user/assistant.
    """
    return [
        ContextFragment(
            role="self" if u.agent == agent else "other",
            content=f"[{u.agent.upper()}]: {u.content}",
        )
        for u in recent_utterances(utterances, window)
    ]
