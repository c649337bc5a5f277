"""
Rate Limit Fallback - automatic model fallback for rate-limited agent sessions.

This package detects rate limit failures reported by an AI agent host and
re-issues the failed request against an alternate model:
- Rate limit detection with static and learned error patterns
- Confidence-scored pattern learning persisted to the configuration file
- Model selection with cooldowns and cycle/stop/retry-last fallback modes
- Deduplicated fallback orchestration across session hierarchies
- Metrics for rate limits, fallbacks and model performance
"""

__version__ = "0.1.0"

from .config import FallbackConfig, LearningConfig, load_config
from .errors import ConfigurationError, FallbackError, PatternStorageError
from .fallback import FallbackHandler, ModelSelector, RateLimitFallback
from .integrations import OpenCodeHttpClient
from .models import (
    ErrorPattern,
    ErrorSignature,
    FallbackMode,
    FallbackModel,
    LearnedPattern,
    Notification,
)
from .observability import MetricsManager, configure_logging
from .reliability import (
    ConfidenceScorer,
    ErrorPatternRegistry,
    PatternLearner,
    PatternStore,
    SignatureExtractor,
    to_error_document,
)
from .session import SubagentTracker

__all__ = [
    # Entry points
    "RateLimitFallback",
    "FallbackHandler",
    "ModelSelector",
    "OpenCodeHttpClient",

    # Configuration
    "FallbackConfig",
    "LearningConfig",
    "load_config",

    # Detection and learning
    "ErrorPatternRegistry",
    "SignatureExtractor",
    "ConfidenceScorer",
    "PatternLearner",
    "PatternStore",
    "to_error_document",

    # Models
    "ErrorPattern",
    "ErrorSignature",
    "FallbackMode",
    "FallbackModel",
    "LearnedPattern",
    "Notification",

    # Observability and sessions
    "MetricsManager",
    "configure_logging",
    "SubagentTracker",

    # Errors
    "FallbackError",
    "ConfigurationError",
    "PatternStorageError",
]
