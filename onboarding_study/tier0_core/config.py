"""
onboarding_study.tier0_core.config
────────────────────────────────────
Typed configuration in two layers:

- StudySettings: process settings from .env → environment variables.
- ExperimentConfig: the study definition (arms, endings, telemetry, modules),
  read once at startup from STUDY_CONFIG_PATH or the built-in default and
  immutable afterwards.

Minimal stack: pydantic-settings + python-dotenv
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from onboarding_study.tier0_core.errors import ConfigurationError


class StudySettings(BaseSettings):
    """
    Process-level settings. Add fields here as the host grows.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ───────────────────────────────────────────────────────────
    app_name: str = Field(default="onboarding-study", alias="APP_NAME")
    environment: str = Field(default="development", alias="APP_ENV")

    # ── Study ─────────────────────────────────────────────────────────────────
    study_config_path: str | None = Field(default=None, alias="STUDY_CONFIG_PATH")
    study_variation: str | None = Field(default=None, alias="STUDY_VARIATION")

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="STUDY_LOG_LEVEL")
    log_format: str = Field(default="json", alias="STUDY_LOG_FORMAT")
    study_utils_log_level: str = Field(default="WARNING", alias="STUDY_UTILS_LOG_LEVEL")

    # ── Metrics ───────────────────────────────────────────────────────────────
    metrics_enabled: bool = Field(default=False, alias="STUDY_METRICS_ENABLED")
    metrics_port: int = Field(default=8001, alias="STUDY_METRICS_PORT")

    # ── Kernel host ───────────────────────────────────────────────────────────
    kernel_host: str = Field(default="127.0.0.1", alias="KERNEL_HOST")
    kernel_port: int = Field(default=8080, alias="KERNEL_PORT")

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if v.lower() not in allowed:
            raise ValueError(f"environment must be one of {allowed}, got {v!r}")
        return v.lower()

    @field_validator("log_level", "study_utils_log_level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()

    @property
    def is_test(self) -> bool:
        return self.environment == "test"


# ── Study definition ──────────────────────────────────────────────────────────

class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class WeightedVariation(_ConfigModel):
    name: str = Field(min_length=1)
    weight: float = Field(default=1.0, ge=0)


class EndingAction(_ConfigModel):
    """What the telemetry collaborator does for an ending: survey url and ping category."""
    url: str | None = None
    category: str = "ended-neutral"


class TelemetryConfig(_ConfigModel):
    send: bool = True
    remove_testing_flag: bool = False


class ExperimentConfig(_ConfigModel):
    study_name: str = Field(min_length=1)
    weighted_variations: tuple[WeightedVariation, ...] = ()
    fixed_variation: str | None = None
    endings: dict[str, EndingAction] = Field(default_factory=dict)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    modules: tuple[str, ...] = ()

    @model_validator(mode="after")
    def unique_variation_names(self) -> ExperimentConfig:
        names = [v.name for v in self.weighted_variations]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate variation names: {dupes}")
        return self

    def variation_names(self) -> list[str]:
        return [v.name for v in self.weighted_variations]


DEFAULT_EXPERIMENT = ExperimentConfig(
    study_name="onboarding-tour-study",
    weighted_variations=(
        WeightedVariation(name="var1"),
        WeightedVariation(name="var2"),
        WeightedVariation(name="var3"),
        WeightedVariation(name="var4"),
    ),
    endings={
        "ineligible": EndingAction(category="ended-neutral"),
        "user-disable": EndingAction(category="ended-negative"),
        "expired": EndingAction(category="ended-positive"),
    },
    telemetry=TelemetryConfig(send=True, remove_testing_flag=False),
)


def load_experiment_config(settings: StudySettings | None = None) -> ExperimentConfig:
    """
    Load the study definition. Reads STUDY_CONFIG_PATH (JSON, camelCase keys)
    when set, otherwise the built-in default; STUDY_VARIATION then forces an arm.
    Raises ConfigurationError on an unreadable or invalid file.
    """
    settings = settings or get_settings()
    config = DEFAULT_EXPERIMENT

    if settings.study_config_path:
        path = Path(settings.study_config_path)
        try:
            config = ExperimentConfig.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigurationError(
                user_message=f"Cannot read study config {path}: {exc}",
                path=str(path),
            ) from exc
        except PydanticValidationError as exc:
            raise ConfigurationError(
                user_message=f"Invalid study config {path}",
                detail=str(exc),
                path=str(path),
            ) from exc

    if settings.study_variation:
        config = config.model_copy(update={"fixed_variation": settings.study_variation})
    return config


@lru_cache(maxsize=1)
def get_settings() -> StudySettings:
    """
    Return the singleton settings. Cached after first call.
    Call _reset_settings() in tests to pick up new env vars.
    """
    return StudySettings()


def _reset_settings() -> None:
    """For tests: clear the settings cache."""
    get_settings.cache_clear()


__all__ = [
    "StudySettings",
    "WeightedVariation",
    "EndingAction",
    "TelemetryConfig",
    "ExperimentConfig",
    "DEFAULT_EXPERIMENT",
    "load_experiment_config",
    "get_settings",
]
