"""Abstract base for all streaming generation providers."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence

from ai_debate.models import ContextFragment

_ROLE_MAP = {"self": "assistant", "other": "user"}
_TRANSCRIPT_OPENER = "(Debate transcript so far)"


class ProviderError(Exception):
    """Raised when a provider call fails. Treated as transient by the executor."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class CredentialError(ProviderError):
    """The provider rejected or lacks its API key. Never retried."""


class ProviderTimeout(ProviderError):
    """The stream did not finish within the turn deadline."""


def to_chat_messages(context: Sequence[ContextFragment], prompt: str) -> list[dict[str, str]]:
    """Map fragments to user/assistant chat messages, ending with the task prompt.

    Consecutive messages with the same role are merged and the list always
    opens with a user message, since some APIs require strictly alternating
    turns starting from the user.
    """
    messages: list[dict[str, str]] = []
    for role, content in [(_ROLE_MAP[f.role], f.content) for f in context] + [("user", prompt)]:
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"] += "\n\n" + content
        else:
            messages.append({"role": role, "content": content})
    if messages[0]["role"] == "assistant":
        messages.insert(0, {"role": "user", "content": _TRANSCRIPT_OPENER})
    return messages


class AgentProvider(ABC):
    """Abstract base for all debate agents' generation backends."""

    @abstractmethod
    def name(self) -> str:
        """Return the agent id (e.g. 'gpt', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    def stream(
        self,
        system_prompt: str,
        context: Sequence[ContextFragment],
        prompt: str,
    ) -> AsyncIterator[str]:
        """Stream text fragments for one turn.

        Implementations are async generators: lazy, finite, not restartable.

        Args:
            system_prompt: Debater instructions for this agent.
            context: Recent utterances, tagged self/other.
            prompt: The stage task for this turn.

        Raises:
            CredentialError: If the API key is missing or rejected.
            ProviderError: On any other API failure.
        """
        ...
