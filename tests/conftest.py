"""Shared pytest fixtures."""

import asyncio
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import pytest

from config.config_loader import AppConfig, DebateSettings, ModelConfig, PromptsConfig
from ai_debate.models import ContextFragment, Session, Stage, Utterance
from ai_debate.providers.base import AgentProvider

AGREE = "[CONSENSUS] **Core argument**: shared view\n**Concession**: none\n**Proposal**: Adopt the plan."
DISAGREE = "**Core argument**: still unsure\n**Concession**: a little\n**Proposal**: Amend the plan."


class MockProvider(AgentProvider):
    """Scripted test double.

    Each reply is a string, a list of fragments (a fragment may be an
    exception to raise mid-stream), or an exception to raise up front. When
    the script runs out, `default` is streamed.
    """

    def __init__(self, provider_name: str = "mock", replies: Sequence | None = None, default: str = "Mock response") -> None:
        self._name = provider_name
        self._replies = list(replies or [])
        self._default = default
        self.calls: list[tuple[str, tuple[ContextFragment, ...], str]] = []

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def stream(
        self,
        system_prompt: str,
        context: Sequence[ContextFragment],
        prompt: str,
    ) -> AsyncIterator[str]:
        self.calls.append((system_prompt, tuple(context), prompt))
        reply = self._replies.pop(0) if self._replies else self._default
        if isinstance(reply, BaseException):
            raise reply
        for fragment in [reply] if isinstance(reply, str) else reply:
            if isinstance(fragment, BaseException):
                raise fragment
            await asyncio.sleep(0)
            yield fragment


class HangingProvider(AgentProvider):
    """Streams one fragment, then never finishes."""

    def __init__(self, provider_name: str = "slow") -> None:
        self._name = provider_name
        self.closed = False

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "slow-model"

    async def stream(
        self,
        system_prompt: str,
        context: Sequence[ContextFragment],
        prompt: str,
    ) -> AsyncIterator[str]:
        try:
            yield "partial "
            await asyncio.Event().wait()
            yield "never"
        finally:
            self.closed = True


def utter(agent: str, content: str, stage: Stage = Stage.POSITION, round_number: int = 1) -> Utterance:
    return Utterance(agent=agent, content=content, stage=stage, round=round_number)


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        system="You are {name}. {persona}",
        stages={
            Stage.POSITION: "Position on {topic}.\n{recent}",
            Stage.CROSS_EXAM: "Cross-exam {round} on {topic}.\n{recent}",
            Stage.COMMON_GROUND: "Common ground {round} on {topic}.\n{recent}",
            Stage.CONSENSUS: "Consensus {round} on {topic}.\n{proposal}\n{recent}",
        },
        summary="Summarize the agreed consensus.",
        personas={"a": "Be agent A.", "b": "Be agent B."},
    )


@pytest.fixture
def sample_debate_settings(tmp_path: Path) -> DebateSettings:
    return DebateSettings(
        default_agents=["a", "b"],
        output_dir=tmp_path / "output",
        context_window=5,
        max_retries=3,
        min_consensus_round=3,
        turn_timeout_sec=5.0,
        stage_rounds={
            Stage.POSITION: 1,
            Stage.CROSS_EXAM: 1,
            Stage.COMMON_GROUND: 1,
            Stage.CONSENSUS: 5,
        },
        summary_priority=["a", "b"],
    )


@pytest.fixture
def sample_app_config(
    sample_debate_settings: DebateSettings,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    models = {
        name: ModelConfig(
            name=name,
            sdk="openai",
            model=f"model-{name}",
            api_key_env=f"TEST_{name.upper()}_KEY",
            timeout_sec=30,
            max_tokens=1024,
            display_name=f"Agent {name.upper()}",
        )
        for name in ("a", "b")
    }
    return AppConfig(
        debate=sample_debate_settings,
        models=models,
        prompts=sample_prompts_config,
        available_providers={"a", "b"},
    )


@pytest.fixture
def two_agent_session() -> Session:
    return Session(topic="Should cities ban cars downtown?", agents=("a", "b"))


@pytest.fixture
def three_agent_session() -> Session:
    return Session(topic="Should cities ban cars downtown?", agents=("a", "b", "c"))
