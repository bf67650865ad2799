"""Engine configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


# settings.yaml section -> {yaml key: Settings field}
_YAML_SECTIONS: dict[str, dict[str, str]] = {
    "server": {"host": "host", "port": "port"},
    "rating": {
        "min": "rating_min",
        "max": "rating_max",
        "default": "rating_default",
        "k_provisional": "k_factor_provisional",
        "k_established": "k_factor_established",
        "k_veteran": "k_factor_veteran",
        "provisional_games": "provisional_games",
        "veteran_games": "veteran_games",
        "opponent_easy": "opponent_easy",
        "opponent_medium": "opponent_medium",
        "opponent_hard": "opponent_hard",
        "history_size": "rating_history_size",
        "log_size": "rating_log_size",
    },
    "flow": {
        "window": "flow_window",
        "min_samples": "flow_min_samples",
        "enter_threshold": "flow_enter_threshold",
        "exit_threshold": "flow_exit_threshold",
        "weight_accuracy": "flow_weight_accuracy",
        "weight_speed": "flow_weight_speed",
        "weight_streak": "flow_weight_streak",
        "streak_cap": "streak_cap",
        "too_fast_ms": "too_fast_ms",
        "target_min_ms": "target_min_ms",
        "target_max_ms": "target_max_ms",
        "slow_limit_ms": "slow_limit_ms",
    },
    "difficulty": {
        "cooldown_seconds": "difficulty_cooldown_seconds",
        "trend_window": "trend_window",
        "trend_threshold": "trend_threshold",
    },
    "pool": {
        "history_fraction": "pool_history_fraction",
        "category_fallback": "pool_category_fallback",
        "seed": "pool_seed",
        "question_bank": "question_bank_path",
    },
    "bias": {
        "slot_count": "bias_slot_count",
        "min_samples": "bias_min_samples",
        "critical_value": "bias_critical_value",
        "length_max_share": "length_bias_max_share",
        "length_min_questions": "length_bias_min_questions",
    },
}


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        for section, keys in _YAML_SECTIONS.items():
            values = data.get(section) or {}
            for yaml_key, field_name in keys.items():
                flattened[field_name] = values.get(yaml_key)
        if 'categories' in data:
            flattened['categories'] = data['categories']

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Engine settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_prefix="SKILL_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    categories: list[str] = Field(
        default_factory=lambda: ["tech", "business", "marketing", "finance", "general"]
    )

    # Rating
    rating_min: int = Field(default=400)
    rating_max: int = Field(default=3000)
    rating_default: int = Field(default=1000)
    k_factor_provisional: float = Field(default=40.0)
    k_factor_established: float = Field(default=24.0)
    k_factor_veteran: float = Field(default=16.0)
    provisional_games: int = Field(default=20)
    veteran_games: int = Field(default=100)
    opponent_easy: int = Field(default=900)
    opponent_medium: int = Field(default=1100)
    opponent_hard: int = Field(default=1400)
    rating_history_size: int = Field(default=20, ge=1)
    rating_log_size: int = Field(default=100, ge=1)

    # Flow
    flow_window: int = Field(default=8, ge=1)
    flow_min_samples: int = Field(default=3, ge=1)
    flow_enter_threshold: float = Field(default=70.0)
    flow_exit_threshold: float = Field(default=55.0)
    flow_weight_accuracy: float = Field(default=0.5, ge=0)
    flow_weight_speed: float = Field(default=0.3, ge=0)
    flow_weight_streak: float = Field(default=0.2, ge=0)
    streak_cap: int = Field(default=5, ge=1)
    too_fast_ms: int = Field(default=800, ge=0)
    target_min_ms: int = Field(default=1500)
    target_max_ms: int = Field(default=8000)
    slow_limit_ms: int = Field(default=20000)

    # Difficulty
    difficulty_cooldown_seconds: float = Field(default=60.0, ge=0)
    trend_window: int = Field(default=3, ge=2)
    trend_threshold: float = Field(default=10.0, gt=0)

    # Question pool
    pool_history_fraction: float = Field(default=0.25, ge=0, lt=1)
    pool_category_fallback: bool = Field(default=True)
    pool_seed: int | None = Field(default=None)
    question_bank_path: Path | None = Field(default=None)

    # Bias audit
    bias_slot_count: int = Field(default=4, ge=2)
    bias_min_samples: int = Field(default=20, ge=1)
    # chi-square critical value, df = slot_count - 1 = 3, p = 0.001
    bias_critical_value: float = Field(default=16.27, gt=0)
    # share of questions whose correct answer is the longest (or shortest) option
    length_bias_max_share: float = Field(default=0.4, gt=0, le=1)
    length_bias_min_questions: int = Field(default=10, ge=1)

    # Diagnostics server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @model_validator(mode="after")
    def _check_consistency(self) -> "Settings":
        if not self.rating_min <= self.rating_default <= self.rating_max:
            raise ValueError("rating_default must lie within [rating_min, rating_max]")
        if self.flow_exit_threshold > self.flow_enter_threshold:
            raise ValueError("flow_exit_threshold must not exceed flow_enter_threshold")
        weights = self.flow_weight_accuracy + self.flow_weight_speed + self.flow_weight_streak
        if abs(weights - 1.0) > 1e-6:
            raise ValueError(f"flow weights must sum to 1.0, got {weights:.3f}")
        if not self.too_fast_ms < self.target_min_ms <= self.target_max_ms < self.slow_limit_ms:
            raise ValueError("speed band must satisfy too_fast < target_min <= target_max < slow_limit")
        if self.provisional_games > self.veteran_games:
            raise ValueError("provisional_games must not exceed veteran_games")
        return self

    @property
    def opponent_ratings(self) -> dict[str, int]:
        """Reference rating per difficulty value."""
        return {
            "easy": self.opponent_easy,
            "medium": self.opponent_medium,
            "hard": self.opponent_hard,
        }

    @property
    def resolved_question_bank_path(self) -> Path | None:
        if self.question_bank_path is None:
            return None
        if self.question_bank_path.is_absolute():
            return self.question_bank_path
        return self.project_root / self.question_bank_path

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get engine settings singleton."""
    return Settings()
