"""Turn scheduling: decides the single next action for a debate session."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from config.config_loader import PromptsConfig
from ai_debate.consensus import MIN_CONSENSUS_ROUND, find_open_proposal, is_consensus_reached
from ai_debate.context import DEFAULT_CONTEXT_WINDOW, build_context, recent_utterances
from ai_debate.models import (
    STAGE_ORDER,
    AdvanceRound,
    AdvanceStage,
    CompleteSession,
    ProduceTurn,
    ProtocolError,
    SchedulerAction,
    Session,
    Stage,
    StageProgress,
    TurnDirective,
)
from ai_debate.prompts import build_stage_prompt, system_prompt_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageConfig:
    max_rounds: int


DEFAULT_STAGE_CONFIG: dict[Stage, StageConfig] = {
    Stage.POSITION: StageConfig(max_rounds=1),
    Stage.CROSS_EXAM: StageConfig(max_rounds=4),
    Stage.COMMON_GROUND: StageConfig(max_rounds=2),
    Stage.CONSENSUS: StageConfig(max_rounds=15),
}

STAGE_LABELS: dict[Stage, str] = {
    Stage.POSITION: "Stage 1: Positions",
    Stage.CROSS_EXAM: "Stage 2: Cross-examination",
    Stage.COMMON_GROUND: "Stage 3: Common ground",
    Stage.CONSENSUS: "Stage 4: Consensus",
    Stage.DONE: "Debate finished",
}


def stage_config_from_rounds(stage_rounds: Mapping[Stage, int]) -> dict[Stage, StageConfig]:
    """Overlay configured round ceilings on the defaults."""
    config = dict(DEFAULT_STAGE_CONFIG)
    for stage, rounds in stage_rounds.items():
        if rounds < 1:
            raise ValueError(f"Stage '{stage.value}' needs at least 1 round, got {rounds}")
        config[stage] = StageConfig(max_rounds=rounds)
    return config


def next_stage(stage: Stage) -> Stage:
    if stage is Stage.DONE:
        return Stage.DONE
    return STAGE_ORDER[STAGE_ORDER.index(stage) + 1]


def initial_round(stage: Stage) -> int:
    return 0 if stage is Stage.DONE else 1


def agents_yet_to_speak(session: Session) -> list[str]:
    """Eligible agents without an utterance in the current (stage, round), in panel order."""
    spoken = {u.agent for u in session.utterances_for(session.stage, session.round)}
    return [a for a in session.eligible_agents() if a not in spoken]


def decide_next_action(
    session: Session,
    prompts: PromptsConfig,
    stage_config: Mapping[Stage, StageConfig] = DEFAULT_STAGE_CONFIG,
    context_window: int = DEFAULT_CONTEXT_WINDOW,
    min_consensus_round: int = MIN_CONSENSUS_ROUND,
    display_names: Mapping[str, str] | None = None,
) -> SchedulerAction:
    """Return the next action. Checks run in a fixed order and the first match wins.

    1. consensus reached -> complete the session
    2. last round of the stage fully spoken -> next stage (or complete at done)
    3. every eligible agent spoke this round -> next round
    4. otherwise -> a turn for the first eligible agent who has not spoken

    Abstained agents are left out of the "must speak" set, so a round is
    satisfied once the remaining agents have spoken.

    Raises:
        ProtocolError: If the session is already complete or in the done stage.
    """
    if session.complete or session.stage is Stage.DONE:
        raise ProtocolError("Scheduler invoked on a completed session")

    eligible = session.eligible_agents()
    pending = agents_yet_to_speak(session)

    if is_consensus_reached(
        session.utterances, session.stage, session.round, eligible, min_round=min_consensus_round
    ):
        return CompleteSession(consensus_reached=True)

    if not pending and session.round >= stage_config[session.stage].max_rounds:
        upcoming = next_stage(session.stage)
        if upcoming is Stage.DONE:
            return CompleteSession(consensus_reached=False)
        return AdvanceStage(stage=upcoming, round=initial_round(upcoming))

    if not pending:
        return AdvanceRound(round=session.round + 1)

    agent = pending[0]
    recent = recent_utterances(session.utterances, context_window)
    open_proposal = find_open_proposal(session.utterances) if session.stage is Stage.CONSENSUS else None
    display_name = (display_names or {}).get(agent)

    directive = TurnDirective(
        agent=agent,
        system_prompt=system_prompt_for(prompts, agent, display_name),
        prompt=build_stage_prompt(
            prompts, session.stage, session.topic, recent, session.round, open_proposal
        ),
        context=tuple(build_context(session.utterances, agent, context_window)),
        stage=session.stage,
        round=session.round,
    )
    logger.debug("Next turn: %s (%s, round %d)", agent, session.stage.value, session.round)
    return ProduceTurn(directive=directive)


def stage_progress(session: Session) -> StageProgress:
    """Turns taken in the current round against the panel size."""
    return StageProgress(
        stage=session.stage,
        round=session.round,
        current=len(session.utterances_for(session.stage, session.round)),
        total=len(session.agents),
        label=STAGE_LABELS[session.stage],
    )
