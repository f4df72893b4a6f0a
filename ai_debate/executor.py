"""Turn execution: drive one agent's stream, commit or classify the failure."""

import asyncio
import logging
import math
from collections.abc import Callable
from contextlib import aclosing

from ai_debate.models import (
    AgentState,
    AgentStatus,
    LiveTurn,
    ProtocolError,
    Session,
    TurnDirective,
    TurnOutcome,
    Utterance,
)
from ai_debate.providers.base import AgentProvider, CredentialError, ProviderError, ProviderTimeout

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_TURN_TIMEOUT_SEC = 120.0

# Coarse usage estimate: roughly four characters per token
_CHARS_PER_TOKEN = 4

PartialCallback = Callable[[str, str], None]


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


class TurnExecutor:
    """Runs a single turn for one agent.

    Only touches the agent's status, usage and retry counter, the transient
    live state, and (on success) the utterance log. Stage and round belong to
    the controller.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout_sec: float = DEFAULT_TURN_TIMEOUT_SEC,
    ) -> None:
        self._max_retries = max_retries
        self._timeout_sec = timeout_sec

    async def _collect(
        self,
        session: Session,
        directive: TurnDirective,
        provider: AgentProvider,
        on_partial: PartialCallback | None,
    ) -> str:
        live = session.live
        stream = provider.stream(directive.system_prompt, directive.context, directive.prompt)
        async with aclosing(stream):
            async for fragment in stream:
                live.text += fragment
                logger.debug("%s +%d chars", directive.agent, len(fragment))
                if on_partial:
                    on_partial(directive.agent, live.text)
        return live.text

    async def _run_stream(
        self,
        session: Session,
        directive: TurnDirective,
        provider: AgentProvider,
        cancel_event: asyncio.Event | None,
        on_partial: PartialCallback | None,
    ) -> str | None:
        """Return the full text, or None when cancelled.

        Raises:
            ProviderTimeout: If the stream outlives the turn deadline.
            Exception: Whatever the provider raised.
        """
        collect = asyncio.ensure_future(self._collect(session, directive, provider, on_partial))
        waiters: set[asyncio.Future] = {collect}
        cancel_wait = None
        if cancel_event is not None:
            cancel_wait = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(waiters, timeout=self._timeout_sec, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            collect.cancel()
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        # A cancel raised during the last fragment still wins over the finished stream
        if cancel_event is not None and cancel_event.is_set():
            collect.cancel()
            await asyncio.wait({collect})
            error = None if collect.cancelled() else collect.exception()
            if error is not None:
                logger.debug("Discarding %s failure after cancel: %s", directive.agent, error)
            return None

        if collect in done:
            return collect.result()

        collect.cancel()
        await asyncio.wait({collect})
        raise ProviderTimeout(directive.agent, f"Stream timed out after {self._timeout_sec:g}s")

    def _abstain(self, state: AgentState, message: str) -> TurnOutcome:
        state.status = AgentStatus.ABSTAINED
        state.last_error = message
        logger.warning("Agent %s abstains: %s", state.agent, message)
        return TurnOutcome.ABSTAINED

    def _handle_transient(self, state: AgentState, exc: Exception) -> TurnOutcome:
        if state.retry_count < self._max_retries:
            state.retry_count += 1
            state.status = AgentStatus.IDLE
            state.last_error = str(exc)
            logger.warning(
                "Agent %s failed (attempt %d/%d), will retry: %s",
                state.agent, state.retry_count, self._max_retries + 1, exc,
            )
            return TurnOutcome.RETRY
        return self._abstain(state, f"Giving up after {self._max_retries + 1} attempts: {exc}")

    async def execute(
        self,
        session: Session,
        directive: TurnDirective,
        provider: AgentProvider,
        cancel_event: asyncio.Event | None = None,
        on_partial: PartialCallback | None = None,
    ) -> TurnOutcome:
        """Drive the agent's stream to completion, failure or cancellation.

        Args:
            session: Session the turn belongs to.
            directive: What the scheduler asked for.
            provider: The agent's generation backend.
            cancel_event: When set mid-stream, the turn stops and nothing is committed.
            on_partial: Called with (agent, accumulated_text) after every fragment.

        Returns:
            TurnOutcome describing what happened to the turn.

        Raises:
            ProtocolError: If the agent already abstained or a turn is in flight.
        """
        state = session.state_for(directive.agent)
        if state.status is AgentStatus.ABSTAINED:
            raise ProtocolError(f"Agent '{directive.agent}' has abstained and cannot take a turn")
        if session.live is not None:
            raise ProtocolError(f"Turn for '{session.live.agent}' is still in flight")

        state.status = AgentStatus.STREAMING
        session.live = LiveTurn(agent=directive.agent)
        logger.info("%s speaking (%s, round %d)", directive.agent, directive.stage.value, directive.round)

        try:
            text = await self._run_stream(session, directive, provider, cancel_event, on_partial)
            if text is not None and not text.strip():
                raise ProviderError(directive.agent, "Empty response")
        except CredentialError as exc:
            return self._abstain(state, str(exc))
        except asyncio.CancelledError:
            state.status = AgentStatus.IDLE
            raise
        except Exception as exc:
            return self._handle_transient(state, exc)
        finally:
            session.live = None

        if text is None:
            state.status = AgentStatus.IDLE
            logger.info("Turn for %s cancelled, partial text discarded", directive.agent)
            return TurnOutcome.CANCELLED

        session.utterances.append(
            Utterance(agent=directive.agent, content=text, stage=directive.stage, round=directive.round)
        )
        state.status = AgentStatus.COMPLETE
        state.token_usage += estimate_tokens(text)
        state.retry_count = 0
        state.last_error = None
        return TurnOutcome.COMMITTED
