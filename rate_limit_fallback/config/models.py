"""
Configuration schema for rate limit fallback.

The JSON configuration document uses camelCase keys; these pydantic models
accept either camelCase or snake_case and fall back to defaults for invalid
enumerated values instead of failing the whole document.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..models.fallback import FallbackMode, FallbackModel
from ..models.patterns import ErrorPattern
from .constants import (
    DEDUP_WINDOW_MS,
    DEFAULT_COOLDOWN_MS,
    DEFAULT_MAX_LEARNED_PATTERNS,
    DEFAULT_MAX_SUBAGENT_DEPTH,
    RESET_INTERVAL_MS,
    STATE_TIMEOUT_MS,
)


DEFAULT_FALLBACK_MODELS: List[FallbackModel] = [
    FallbackModel(provider_id="anthropic", model_id="claude-sonnet-4-20250514"),
    FallbackModel(provider_id="google", model_id="gemini-2.5-pro"),
    FallbackModel(provider_id="google", model_id="gemini-2.5-flash"),
]

LOG_LEVELS = ("debug", "info", "warn", "error")
METRICS_FORMATS = ("pretty", "json", "csv")


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class LogConfig(_ConfigModel):
    """Logging configuration."""
    level: Literal["debug", "info", "warn", "error"] = "warn"
    format: Literal["simple", "json"] = "simple"
    enable_timestamp: bool = True

    @field_validator("level", mode="before")
    @classmethod
    def validate_level(cls, v):
        if isinstance(v, str) and v.lower() == "warning":
            return "warn"
        return v if v in LOG_LEVELS else "warn"


class MetricsOutputConfig(_ConfigModel):
    console: bool = True
    file: Optional[str] = None
    format: Literal["pretty", "json", "csv"] = "pretty"

    @field_validator("format", mode="before")
    @classmethod
    def validate_format(cls, v):
        return v if v in METRICS_FORMATS else "pretty"


class MetricsConfig(_ConfigModel):
    """Metrics collection configuration."""
    enabled: bool = False
    output: MetricsOutputConfig = Field(default_factory=MetricsOutputConfig)
    reset_interval: Literal["hourly", "daily", "weekly"] = "daily"

    @field_validator("reset_interval", mode="before")
    @classmethod
    def validate_reset_interval(cls, v):
        return v if v in RESET_INTERVAL_MS else "daily"


class LearningConfig(_ConfigModel):
    """Thresholds that drive pattern learning."""
    enabled: bool = False
    auto_approve_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    max_learned_patterns: int = Field(default=DEFAULT_MAX_LEARNED_PATTERNS, ge=1)
    min_error_frequency: int = Field(default=3, ge=1)
    learning_window_ms: int = Field(default=24 * 60 * 60 * 1000, ge=1)


class ErrorPatternsConfig(_ConfigModel):
    """The ``errorPatterns`` section: custom patterns and learning thresholds.

    ``learnedPatterns`` lives in the same section of the document but is owned
    by the pattern store, so it is not modelled here.
    """
    custom: List[ErrorPattern] = Field(default_factory=list)
    enable_learning: bool = False
    auto_approve_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    max_learned_patterns: int = Field(default=DEFAULT_MAX_LEARNED_PATTERNS, ge=1)
    min_error_frequency: int = Field(default=3, ge=1)
    learning_window_ms: int = Field(default=24 * 60 * 60 * 1000, ge=1)

    def to_learning_config(self) -> LearningConfig:
        return LearningConfig(
            enabled=self.enable_learning,
            auto_approve_threshold=self.auto_approve_threshold,
            max_learned_patterns=self.max_learned_patterns,
            min_error_frequency=self.min_error_frequency,
            learning_window_ms=self.learning_window_ms,
        )


class FallbackConfig(_ConfigModel):
    """Top-level configuration document."""
    fallback_models: List[FallbackModel] = Field(
        default_factory=lambda: list(DEFAULT_FALLBACK_MODELS)
    )
    cooldown_ms: int = Field(default=DEFAULT_COOLDOWN_MS, ge=0)
    enabled: bool = True
    fallback_mode: FallbackMode = FallbackMode.CYCLE
    max_subagent_depth: int = Field(default=DEFAULT_MAX_SUBAGENT_DEPTH, ge=1)
    enable_subagent_fallback: bool = True
    dedup_window_ms: int = Field(default=DEDUP_WINDOW_MS, ge=0)
    retry_state_timeout_ms: int = Field(default=STATE_TIMEOUT_MS, ge=0)

    log: LogConfig = Field(default_factory=LogConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    error_patterns: ErrorPatternsConfig = Field(default_factory=ErrorPatternsConfig)

    # Accepted and validated as shapes only; no runtime engine consumes them.
    circuit_breaker: Optional[Dict[str, Any]] = None
    retry_policy: Optional[Dict[str, Any]] = None

    @field_validator("fallback_mode", mode="before")
    @classmethod
    def validate_fallback_mode(cls, v):
        valid = {mode.value for mode in FallbackMode}
        if isinstance(v, FallbackMode) or v in valid:
            return v
        return FallbackMode.CYCLE

    @field_validator("fallback_models", mode="before")
    @classmethod
    def validate_fallback_models(cls, v):
        if v is None:
            return list(DEFAULT_FALLBACK_MODELS)
        return v
