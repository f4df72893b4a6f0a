"""Load settings.yaml into typed dataclasses. Reports which providers have API keys."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ai_debate.models import DEBATE_STAGES, Stage

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    display_name: str = ""
    base_url: str | None = None


@dataclass
class PromptsConfig:
    system: str
    stages: dict[Stage, str]
    summary: str
    personas: dict[str, str] = field(default_factory=dict)


@dataclass
class DebateSettings:
    default_agents: list[str]
    output_dir: Path
    context_window: int = 5
    max_retries: int = 3
    min_consensus_round: int = 3
    turn_timeout_sec: float = 120.0
    stage_rounds: dict[Stage, int] = field(default_factory=dict)
    summary_priority: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    debate: DebateSettings
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    available_providers: set[str] = field(default_factory=set)


def _parse_stage_map(raw: dict, section: str) -> dict[Stage, object]:
    parsed: dict[Stage, object] = {}
    for key, value in raw.items():
        try:
            stage = Stage(key)
        except ValueError:
            raise ValueError(f"Unknown stage '{key}' in {section}") from None
        if stage not in DEBATE_STAGES:
            raise ValueError(f"Stage '{key}' cannot be configured in {section}")
        parsed[stage] = value
    return parsed


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError on unknown
    stage names. Missing API keys are logged, not raised: callers check
    available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    debate_raw = raw["debate"]
    stage_rounds = {
        stage: int(value)
        for stage, value in _parse_stage_map(debate_raw.get("stage_rounds", {}), "stage_rounds").items()
    }
    debate = DebateSettings(
        default_agents=list(debate_raw["default_agents"]),
        output_dir=Path(debate_raw["output_dir"]),
        context_window=int(debate_raw.get("context_window", 5)),
        max_retries=int(debate_raw.get("max_retries", 3)),
        min_consensus_round=int(debate_raw.get("min_consensus_round", 3)),
        turn_timeout_sec=float(debate_raw.get("turn_timeout_sec", 120)),
        stage_rounds=stage_rounds,
        summary_priority=list(debate_raw.get("summary_priority", [])),
    )

    prompts_raw = raw["prompts"]
    personas_raw = raw.get("personas", {})
    prompts = PromptsConfig(
        system=prompts_raw["system"],
        stages={
            stage: str(template)
            for stage, template in _parse_stage_map(prompts_raw["stages"], "prompts.stages").items()
        },
        summary=prompts_raw["summary"],
        personas={k: str(v) for k, v in personas_raw.items()},
    )
    missing = [s.value for s in DEBATE_STAGES if s not in prompts.stages]
    if missing:
        raise ValueError(f"Missing stage prompts: {', '.join(missing)}")

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            display_name=str(model_raw.get("display_name", provider_name.upper())),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        debate=debate,
        models=models,
        prompts=prompts,
        available_providers=available_providers,
    )
