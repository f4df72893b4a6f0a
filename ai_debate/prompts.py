"""Prompt assembly from the templates in settings.yaml."""

from collections.abc import Sequence

from config.config_loader import PromptsConfig
from ai_debate.models import Stage, Utterance

_NO_PROPOSAL = "No consensus proposal is on the table yet. Draft the first one."


def _format_recent(recent: Sequence[Utterance]) -> str:
    if not recent:
        return "(nothing yet, you speak first)"
    return "\n\n".join(f"[{u.agent.upper()}]\n{u.content}" for u in recent)


def system_prompt_for(prompts: PromptsConfig, agent: str, display_name: str | None = None) -> str:
    return prompts.system.format(
        name=display_name or agent.upper(),
        persona=prompts.personas.get(agent, ""),
    ).strip()


def build_stage_prompt(
    prompts: PromptsConfig,
    stage: Stage,
    topic: str,
    recent: Sequence[Utterance],
    round_number: int,
    open_proposal: str | None = None,
) -> str:
    """Fill the stage template. Only the consensus stage receives a proposal block."""
    if stage not in prompts.stages:
        raise ValueError(f"No prompt template for stage '{stage.value}'")

    if stage is Stage.CONSENSUS:
        proposal = f"Proposal under discussion:\n{open_proposal}" if open_proposal else _NO_PROPOSAL
    else:
        proposal = ""

    return prompts.stages[stage].format(
        topic=topic,
        round=round_number,
        recent=_format_recent(recent),
        proposal=proposal,
    ).strip()


def build_summary_request(topic: str, recent: Sequence[Utterance]) -> str:
    body = "\n\n---\n\n".join(f"[{u.agent.upper()}]\n{u.content}" for u in recent)
    return f"## Debate topic\n{topic}\n\n## Recent discussion\n{body}"
