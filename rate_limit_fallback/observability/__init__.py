"""Logging and metrics for fallback orchestration."""

from .logging import FallbackLogger, JsonFormatter, configure_logging
from .metrics import (
    FallbackMetrics,
    FallbackTargetMetrics,
    MetricsData,
    MetricsManager,
    MetricsSink,
    ModelPerformanceMetrics,
    RateLimitMetrics,
)

__all__ = [
    "FallbackLogger",
    "JsonFormatter",
    "configure_logging",
    "FallbackMetrics",
    "FallbackTargetMetrics",
    "MetricsData",
    "MetricsManager",
    "MetricsSink",
    "ModelPerformanceMetrics",
    "RateLimitMetrics",
]
