"""Load settings.yaml into typed dataclasses. Checks API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

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
    base_url: str | None = None


@dataclass
class RoleConfig:
    name: str
    model: str
    persona: str
    expertise: list[str] = field(default_factory=list)
    specialties: list[str] = field(default_factory=list)


@dataclass
class PromptsConfig:
    output_format: str
    position: str
    respond: str
    evaluate: str
    analyze: str


@dataclass
class DefaultsConfig:
    max_rounds: int
    output_dir: Path
    default_model: str
    consensus_threshold: float = 0.75
    minimum_support: float = 0.66
    escalation_threshold: float = 0.6
    temperature: float = 0.3
    analysis_roles: list[str] = field(default_factory=list)
    debate_panel: list[str] = field(default_factory=list)


@dataclass
class InboxConfig:
    dir: Path
    archive_dir: Path


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    roles: dict[str, RoleConfig]
    prompts: PromptsConfig
    inbox: InboxConfig
    available_models: set[str] = field(default_factory=set)


def _validate_ratio(name: str, value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0 and 1, got {value}")
    return value


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing and ValueError for
    out-of-range thresholds. Logs missing API keys but does not raise —
    callers check available_models.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        max_rounds=int(defaults_raw["max_rounds"]),
        output_dir=Path(defaults_raw["output_dir"]),
        default_model=str(defaults_raw["default_model"]),
        consensus_threshold=_validate_ratio(
            "consensus_threshold", float(defaults_raw.get("consensus_threshold", 0.75))
        ),
        minimum_support=_validate_ratio(
            "minimum_support", float(defaults_raw.get("minimum_support", 0.66))
        ),
        escalation_threshold=_validate_ratio(
            "escalation_threshold", float(defaults_raw.get("escalation_threshold", 0.6))
        ),
        temperature=float(defaults_raw.get("temperature", 0.3)),
        analysis_roles=list(defaults_raw.get("analysis_roles", [])),
        debate_panel=list(defaults_raw.get("debate_panel", [])),
    )
    if defaults.max_rounds < 1:
        raise ValueError(f"max_rounds must be >= 1, got {defaults.max_rounds}")

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        output_format=prompts_raw.get("output_format", ""),
        position=prompts_raw["position"],
        respond=prompts_raw["respond"],
        evaluate=prompts_raw["evaluate"],
        analyze=prompts_raw["analyze"],
    )

    roles: dict[str, RoleConfig] = {}
    for role_name, role_raw in raw.get("roles", {}).items():
        roles[role_name] = RoleConfig(
            name=role_name,
            model=str(role_raw.get("model", defaults.default_model)),
            persona=str(role_raw.get("persona", "")),
            expertise=list(role_raw.get("expertise", [])),
            specialties=list(role_raw.get("specialties", [])),
        )

    inbox_raw = raw.get("inbox", {})
    inbox_dir = Path(inbox_raw.get("dir", "./inbox"))
    inbox = InboxConfig(
        dir=inbox_dir,
        archive_dir=Path(inbox_raw.get("archive_dir", inbox_dir / "archive")),
    )

    models: dict[str, ModelConfig] = {}
    available_models: set[str] = set()

    for model_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=model_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
        )
        models[model_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_models.add(model_name)
            logger.info("Model available: %s", model_name)
        else:
            logger.info(
                "Model skipped (no API key): %s — set %s in .env",
                model_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        roles=roles,
        prompts=prompts,
        inbox=inbox,
        available_models=available_models,
    )
