"""Configuration models, defaults and file discovery."""

from .constants import (
    CLEANUP_INTERVAL_MS,
    DEDUP_WINDOW_MS,
    SESSION_ENTRY_TTL_MS,
    STATE_TIMEOUT_MS,
)
from .loader import find_config_path, get_config_search_paths, load_config, parse_config
from .models import (
    DEFAULT_FALLBACK_MODELS,
    ErrorPatternsConfig,
    FallbackConfig,
    LearningConfig,
    LogConfig,
    MetricsConfig,
    MetricsOutputConfig,
)

__all__ = [
    "CLEANUP_INTERVAL_MS",
    "DEDUP_WINDOW_MS",
    "SESSION_ENTRY_TTL_MS",
    "STATE_TIMEOUT_MS",
    "find_config_path",
    "get_config_search_paths",
    "load_config",
    "parse_config",
    "DEFAULT_FALLBACK_MODELS",
    "ErrorPatternsConfig",
    "FallbackConfig",
    "LearningConfig",
    "LogConfig",
    "MetricsConfig",
    "MetricsOutputConfig",
]
