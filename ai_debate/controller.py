"""Stage/round controller: the driver loop that owns a debate session."""

import asyncio
import logging
from collections.abc import Callable, Mapping

from config.config_loader import DebateSettings, PromptsConfig
from ai_debate.executor import PartialCallback, TurnExecutor
from ai_debate.models import (
    AdvanceRound,
    AdvanceStage,
    AgentState,
    CompleteSession,
    ProduceTurn,
    Session,
    Stage,
    StageProgress,
    TurnOutcome,
    Utterance,
)
from ai_debate.providers.base import AgentProvider
from ai_debate.scheduler import decide_next_action, stage_config_from_rounds, stage_progress

logger = logging.getLogger(__name__)


class DebateController:
    """Ticks a session forward one action at a time.

    The only component that changes stage, round, pause and completion
    flags. Turns run one at a time; a tick waits for its turn to resolve.
    """

    def __init__(
        self,
        session: Session,
        providers: Mapping[str, AgentProvider],
        prompts: PromptsConfig,
        settings: DebateSettings,
        executor: TurnExecutor | None = None,
        display_names: Mapping[str, str] | None = None,
        on_partial: PartialCallback | None = None,
        on_utterance: Callable[[Utterance], None] | None = None,
        on_agent_error: Callable[[AgentState], None] | None = None,
        on_progress: Callable[[Session], None] | None = None,
    ) -> None:
        missing = [a for a in session.agents if a not in providers]
        if missing:
            raise ValueError(f"No provider for agent(s): {', '.join(missing)}")
        extra = [name for name in providers if name not in session.agents]
        if extra:
            raise ValueError(f"Providers for agents outside the session: {', '.join(extra)}")

        self.session = session
        self._providers = dict(providers)
        self._prompts = prompts
        self._settings = settings
        self._stage_config = stage_config_from_rounds(settings.stage_rounds)
        self._executor = executor or TurnExecutor(
            max_retries=settings.max_retries,
            timeout_sec=settings.turn_timeout_sec,
        )
        self._display_names = dict(display_names or {})
        self._on_partial = on_partial
        self._on_utterance = on_utterance
        self._on_agent_error = on_agent_error
        self._on_progress = on_progress
        self._cancel = asyncio.Event()
        self._lock = asyncio.Lock()

    def pause(self) -> None:
        """Stop after the current action; an in-flight turn is cancelled and discarded."""
        self.session.paused = True
        self._cancel.set()
        logger.info("Debate paused")

    def resume(self) -> None:
        self.session.paused = False
        self._cancel.clear()
        logger.info("Debate resumed")

    def reset(self) -> None:
        """Restart the debate on the same topic and panel. Abstentions are cleared."""
        self._cancel.set()
        session = self.session
        session.stage = Stage.POSITION
        session.round = 1
        session.utterances.clear()
        session.agent_states = {a: AgentState(agent=a) for a in session.agents}
        session.paused = False
        session.complete = False
        session.consensus_reached = False
        session.live = None
        self._cancel = asyncio.Event()
        logger.info("Debate reset")

    def stage_progress(self) -> StageProgress:
        return stage_progress(self.session)

    def _complete(self, consensus_reached: bool) -> None:
        session = self.session
        session.complete = True
        session.consensus_reached = consensus_reached
        session.stage = Stage.DONE
        session.round = 0
        logger.info(
            "Debate complete: %s",
            "consensus reached" if consensus_reached else "no consensus",
        )

    async def tick(self) -> bool:
        """Apply one scheduler action. Returns False when nothing was done."""
        async with self._lock:
            session = self.session
            if session.paused or session.complete:
                return False

            action = decide_next_action(
                session,
                self._prompts,
                self._stage_config,
                context_window=self._settings.context_window,
                min_consensus_round=self._settings.min_consensus_round,
                display_names=self._display_names,
            )

            if isinstance(action, CompleteSession):
                self._complete(action.consensus_reached)
            elif isinstance(action, AdvanceStage):
                logger.info("Stage %s -> %s", session.stage.value, action.stage.value)
                session.stage = action.stage
                session.round = action.round
            elif isinstance(action, AdvanceRound):
                logger.info("%s: round %d -> %d", session.stage.value, session.round, action.round)
                session.round = action.round
            elif isinstance(action, ProduceTurn):
                await self._run_turn(action)
            else:
                raise TypeError(f"Unknown scheduler action: {action!r}")

            if self._on_progress:
                self._on_progress(session)
            return True

    async def _run_turn(self, action: ProduceTurn) -> None:
        directive = action.directive
        outcome = await self._executor.execute(
            self.session,
            directive,
            self._providers[directive.agent],
            cancel_event=self._cancel,
            on_partial=self._on_partial,
        )
        if outcome is TurnOutcome.COMMITTED and self._on_utterance:
            self._on_utterance(self.session.utterances[-1])
        elif outcome is TurnOutcome.ABSTAINED and self._on_agent_error:
            self._on_agent_error(self.session.state_for(directive.agent))

    async def run(self) -> Session:
        """Tick until the session completes or is paused."""
        while await self.tick():
            pass
        return self.session
