"""Dataclasses and enums for the debate engine. Session carries the only helpers."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ProtocolError(RuntimeError):
    """Raised when the engine is driven outside its protocol (programming error)."""


class Stage(str, Enum):
    POSITION = "position"
    CROSS_EXAM = "cross-exam"
    COMMON_GROUND = "common-ground"
    CONSENSUS = "consensus"
    DONE = "done"


STAGE_ORDER: tuple[Stage, ...] = (
    Stage.POSITION,
    Stage.CROSS_EXAM,
    Stage.COMMON_GROUND,
    Stage.CONSENSUS,
    Stage.DONE,
)

DEBATE_STAGES: tuple[Stage, ...] = STAGE_ORDER[:-1]


class AgentStatus(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERROR = "error"
    ABSTAINED = "abstained"


class TurnOutcome(str, Enum):
    COMMITTED = "committed"
    RETRY = "retry"
    ABSTAINED = "abstained"
    CANCELLED = "cancelled"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Utterance:
    agent: str
    content: str
    stage: Stage
    round: int
    created_at: datetime = field(default_factory=_now)
    id: str = field(default_factory=_new_id)


@dataclass
class AgentState:
    agent: str
    status: AgentStatus = AgentStatus.IDLE
    token_usage: int = 0
    retry_count: int = 0
    last_error: str | None = None


@dataclass(frozen=True)
class ContextFragment:
    role: str              # "self" or "other"
    content: str


@dataclass(frozen=True)
class TurnDirective:
    agent: str
    system_prompt: str
    prompt: str
    context: tuple[ContextFragment, ...]
    stage: Stage
    round: int


@dataclass
class LiveTurn:
    """In-flight streaming text. Never part of the committed log."""

    agent: str
    text: str = ""


@dataclass(frozen=True)
class CompleteSession:
    consensus_reached: bool


@dataclass(frozen=True)
class AdvanceStage:
    stage: Stage
    round: int


@dataclass(frozen=True)
class AdvanceRound:
    round: int


@dataclass(frozen=True)
class ProduceTurn:
    directive: TurnDirective


SchedulerAction = CompleteSession | AdvanceStage | AdvanceRound | ProduceTurn


@dataclass(frozen=True)
class StageProgress:
    stage: Stage
    round: int
    current: int
    total: int
    label: str


MIN_AGENTS = 2
MAX_AGENTS = 3


@dataclass
class Session:
    topic: str
    agents: tuple[str, ...]
    stage: Stage = Stage.POSITION
    round: int = 1
    utterances: list[Utterance] = field(default_factory=list)
    agent_states: dict[str, AgentState] = field(default_factory=dict)
    paused: bool = False
    complete: bool = False
    consensus_reached: bool = False
    live: LiveTurn | None = None

    def __post_init__(self) -> None:
        if not self.topic or not self.topic.strip():
            raise ValueError("Debate topic must not be empty")
        self.agents = tuple(self.agents)
        if not MIN_AGENTS <= len(self.agents) <= MAX_AGENTS:
            raise ValueError(
                f"A debate needs {MIN_AGENTS}-{MAX_AGENTS} agents, got {len(self.agents)}"
            )
        if len(set(self.agents)) != len(self.agents):
            raise ValueError(f"Duplicate agents in panel: {', '.join(self.agents)}")
        if not self.agent_states:
            self.agent_states = {a: AgentState(agent=a) for a in self.agents}
        elif set(self.agent_states) != set(self.agents):
            raise ValueError("agent_states must cover exactly the session agents")

    def state_for(self, agent: str) -> AgentState:
        try:
            return self.agent_states[agent]
        except KeyError:
            raise ProtocolError(f"Agent '{agent}' is not part of this session") from None

    def eligible_agents(self) -> list[str]:
        """Agents that may still be scheduled, in canonical panel order."""
        return [
            a for a in self.agents
            if self.agent_states[a].status is not AgentStatus.ABSTAINED
        ]

    def utterances_for(self, stage: Stage, round_number: int) -> list[Utterance]:
        return [u for u in self.utterances if u.stage is stage and u.round == round_number]
