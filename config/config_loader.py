"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

UNLIMITED = "unlimited"


@dataclass
class TimeoutConfig:
    per_model_timeout_ms: int = 30_000      # Hard cap for one provider attempt
    total_council_timeout_ms: int = 45_000  # Global deadline shared by the whole dispatch
    min_models_for_synthesis: int = 2
    retry_attempts: int = 1
    retry_delay_ms: int = 2_000


@dataclass
class TierLimits:
    council_per_day: int | str              # int, or "unlimited"
    auto_trigger_enabled: bool
    models_available: int


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    display_name: str
    max_tokens: int
    cost_input_per_1k: float = 0.01
    cost_output_per_1k: float = 0.03
    base_url: str | None = None


@dataclass
class DefaultsConfig:
    roster: list[str] = field(default_factory=lambda: ["claude", "openai", "gemini"])
    fallback_model: str = "claude"
    disagreement_threshold: int = 15
    financial_threshold: float = 10_000
    output_dir: Path = Path("./output")
    max_response_length: int | None = None


@dataclass
class InboxConfig:
    dir: Path = Path("./inbox")
    archive_dir: Path = Path("./inbox/archive")


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    timeouts: TimeoutConfig
    tiers: dict[str, TierLimits]
    models: dict[str, ModelConfig]
    inbox: InboxConfig = field(default_factory=InboxConfig)
    available_providers: set[str] = field(default_factory=set)


DEFAULT_TIMEOUTS = TimeoutConfig()

DEFAULT_TIERS: dict[str, TierLimits] = {
    "free": TierLimits(council_per_day=3, auto_trigger_enabled=False, models_available=2),
    "pro": TierLimits(council_per_day=25, auto_trigger_enabled=True, models_available=3),
    "enterprise": TierLimits(council_per_day=UNLIMITED, auto_trigger_enabled=True, models_available=4),
}


def _parse_daily_cap(value: object) -> int | str:
    if isinstance(value, str) and value.strip().lower() == UNLIMITED:
        return UNLIMITED
    return int(value)  # type: ignore[arg-type]


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs warnings for missing API keys but does not raise; callers check
    available_providers count.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw.get("defaults", {})
    max_length = defaults_raw.get("max_response_length")
    defaults = DefaultsConfig(
        roster=list(defaults_raw.get("roster", DefaultsConfig().roster)),
        fallback_model=str(defaults_raw.get("fallback_model", "claude")),
        disagreement_threshold=int(defaults_raw.get("disagreement_threshold", 15)),
        financial_threshold=float(defaults_raw.get("financial_threshold", 10_000)),
        output_dir=Path(defaults_raw.get("output_dir", "./output")),
        max_response_length=int(max_length) if max_length is not None else None,
    )

    timeouts_raw = raw.get("timeouts", {})
    timeouts = TimeoutConfig(
        per_model_timeout_ms=int(timeouts_raw.get("per_model_timeout_ms", DEFAULT_TIMEOUTS.per_model_timeout_ms)),
        total_council_timeout_ms=int(
            timeouts_raw.get("total_council_timeout_ms", DEFAULT_TIMEOUTS.total_council_timeout_ms)
        ),
        min_models_for_synthesis=int(
            timeouts_raw.get("min_models_for_synthesis", DEFAULT_TIMEOUTS.min_models_for_synthesis)
        ),
        retry_attempts=int(timeouts_raw.get("retry_attempts", DEFAULT_TIMEOUTS.retry_attempts)),
        retry_delay_ms=int(timeouts_raw.get("retry_delay_ms", DEFAULT_TIMEOUTS.retry_delay_ms)),
    )

    tiers: dict[str, TierLimits] = dict(DEFAULT_TIERS)
    for tier_name, tier_raw in raw.get("tiers", {}).items():
        tiers[tier_name] = TierLimits(
            council_per_day=_parse_daily_cap(tier_raw["council_per_day"]),
            auto_trigger_enabled=bool(tier_raw["auto_trigger_enabled"]),
            models_available=int(tier_raw["models_available"]),
        )

    inbox_raw = raw.get("inbox", {})
    inbox = InboxConfig(
        dir=Path(inbox_raw.get("dir", "./inbox")),
        archive_dir=Path(inbox_raw.get("archive_dir", "./inbox/archive")),
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            display_name=str(model_raw.get("display_name", provider_name)),
            max_tokens=int(model_raw["max_tokens"]),
            cost_input_per_1k=float(model_raw.get("cost_input_per_1k", 0.01)),
            cost_output_per_1k=float(model_raw.get("cost_output_per_1k", 0.03)),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s (set %s in .env)",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        timeouts=timeouts,
        tiers=tiers,
        models=models,
        inbox=inbox,
        available_providers=available_providers,
    )
