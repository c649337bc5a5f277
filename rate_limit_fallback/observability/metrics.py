"""
Metrics collection for rate limits, fallbacks and model performance.

``MetricsSink`` is the recording interface the fallback handler depends on.
``MetricsManager`` is the in-process implementation: it aggregates samples,
exports them as JSON, pretty text or CSV, and resets itself on the
configured interval.
"""

from __future__ import annotations

import asyncio
import csv
import io
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol

from ..config.constants import RESET_INTERVAL_MS
from ..config.models import MetricsConfig
from ..models.fallback import model_key

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class RateLimitMetrics:
    count: int
    first_occurrence: float
    last_occurrence: float
    average_interval: Optional[float] = None


@dataclass
class FallbackTargetMetrics:
    used_as_fallback: int = 0
    successful: int = 0
    failed: int = 0


@dataclass
class FallbackMetrics:
    total: int = 0
    successful: int = 0
    failed: int = 0
    average_duration: float = 0.0
    by_target_model: Dict[str, FallbackTargetMetrics] = field(default_factory=dict)


@dataclass
class ModelPerformanceMetrics:
    requests: int = 0
    successes: int = 0
    failures: int = 0
    average_response_time: Optional[float] = None


@dataclass
class MetricsData:
    rate_limits: Dict[str, RateLimitMetrics] = field(default_factory=dict)
    fallbacks: FallbackMetrics = field(default_factory=FallbackMetrics)
    model_performance: Dict[str, ModelPerformanceMetrics] = field(default_factory=dict)
    started_at: float = field(default_factory=_now_ms)
    generated_at: float = field(default_factory=_now_ms)

    def to_dict(self) -> Dict:
        """Plain dictionary with the camelCase keys used by the JSON export."""
        return {
            "rateLimits": {
                key: {
                    "count": m.count,
                    "firstOccurrence": m.first_occurrence,
                    "lastOccurrence": m.last_occurrence,
                    "averageInterval": m.average_interval,
                }
                for key, m in self.rate_limits.items()
            },
            "fallbacks": {
                "total": self.fallbacks.total,
                "successful": self.fallbacks.successful,
                "failed": self.fallbacks.failed,
                "averageDuration": self.fallbacks.average_duration,
                "byTargetModel": {
                    key: {
                        "usedAsFallback": m.used_as_fallback,
                        "successful": m.successful,
                        "failed": m.failed,
                    }
                    for key, m in self.fallbacks.by_target_model.items()
                },
            },
            "modelPerformance": {
                key: {
                    "requests": m.requests,
                    "successes": m.successes,
                    "failures": m.failures,
                    "averageResponseTime": m.average_response_time,
                }
                for key, m in self.model_performance.items()
            },
            "startedAt": self.started_at,
            "generatedAt": self.generated_at,
        }


class MetricsSink(Protocol):
    """Recording interface used by the fallback handler."""

    def record_rate_limit(self, provider_id: str, model_id: str) -> None: ...
    def record_fallback_start(self) -> float: ...
    def record_fallback_success(self, provider_id: str, model_id: str, start_time: float) -> None: ...
    def record_fallback_failure(self, provider_id: Optional[str] = None, model_id: Optional[str] = None) -> None: ...
    def record_model_request(self, provider_id: str, model_id: str) -> None: ...
    def record_model_success(self, provider_id: str, model_id: str, response_time: float) -> None: ...
    def record_model_failure(self, provider_id: str, model_id: str) -> None: ...


class MetricsManager:
    """Aggregates fallback metrics; every record call is a no-op when disabled."""

    def __init__(self, config: Optional[MetricsConfig] = None):
        self.config = config or MetricsConfig()
        self.metrics = MetricsData()
        self._reset_task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def start(self) -> None:
        """Start the periodic reset task on the running event loop."""
        if not self.enabled or self._reset_task is not None:
            return
        self._reset_task = asyncio.get_running_loop().create_task(self._reset_loop())

    async def _reset_loop(self) -> None:
        interval = RESET_INTERVAL_MS[self.config.reset_interval] / 1000
        while True:
            await asyncio.sleep(interval)
            self.reset()

    def update_config(self, config: MetricsConfig) -> None:
        restart = self._reset_task is not None
        self.destroy()
        self.config = config
        if restart:
            self.start()

    def reset(self) -> None:
        self.metrics = MetricsData()
        logger.debug("Metrics reset")

    def record_rate_limit(self, provider_id: str, model_id: str) -> None:
        if not self.enabled:
            return

        key = model_key(provider_id, model_id)
        now = _now_ms()
        existing = self.metrics.rate_limits.get(key)

        if existing is None:
            self.metrics.rate_limits[key] = RateLimitMetrics(
                count=1,
                first_occurrence=now,
                last_occurrence=now,
            )
            return

        interval = now - existing.last_occurrence
        existing.count += 1
        existing.last_occurrence = now
        if existing.average_interval:
            existing.average_interval = (existing.average_interval + interval) / 2
        else:
            existing.average_interval = interval

    def record_fallback_start(self) -> float:
        """Return the start timestamp used to measure fallback duration."""
        if not self.enabled:
            return 0
        return _now_ms()

    def record_fallback_success(self, provider_id: str, model_id: str, start_time: float) -> None:
        if not self.enabled:
            return

        duration = _now_ms() - start_time
        fallbacks = self.metrics.fallbacks
        fallbacks.total += 1
        fallbacks.successful += 1

        total_duration = fallbacks.average_duration * (fallbacks.successful - 1)
        fallbacks.average_duration = (total_duration + duration) / fallbacks.successful

        target = fallbacks.by_target_model.setdefault(
            model_key(provider_id, model_id), FallbackTargetMetrics()
        )
        target.used_as_fallback += 1
        target.successful += 1

    def record_fallback_failure(self, provider_id: Optional[str] = None, model_id: Optional[str] = None) -> None:
        if not self.enabled:
            return

        fallbacks = self.metrics.fallbacks
        fallbacks.total += 1
        fallbacks.failed += 1

        if provider_id and model_id:
            target = fallbacks.by_target_model.setdefault(
                model_key(provider_id, model_id), FallbackTargetMetrics()
            )
            target.used_as_fallback += 1
            target.failed += 1

    def record_model_request(self, provider_id: str, model_id: str) -> None:
        if not self.enabled:
            return
        self._performance(provider_id, model_id).requests += 1

    def record_model_success(self, provider_id: str, model_id: str, response_time: float) -> None:
        if not self.enabled:
            return

        performance = self._performance(provider_id, model_id)
        performance.successes += 1
        total_time = (performance.average_response_time or 0) * (performance.successes - 1)
        performance.average_response_time = (total_time + response_time) / performance.successes

    def record_model_failure(self, provider_id: str, model_id: str) -> None:
        if not self.enabled:
            return
        self._performance(provider_id, model_id).failures += 1

    def _performance(self, provider_id: str, model_id: str) -> ModelPerformanceMetrics:
        return self.metrics.model_performance.setdefault(
            model_key(provider_id, model_id), ModelPerformanceMetrics()
        )

    def get_metrics(self) -> MetricsData:
        self.metrics.generated_at = _now_ms()
        return self.metrics

    def export(self, format: str = "json") -> str:
        """
        Render the current metrics.

        Args:
            format: "json" (default), "pretty" or "csv"
        """
        metrics = self.get_metrics()
        if format == "pretty":
            return self._export_pretty(metrics)
        if format == "csv":
            return self._export_csv(metrics)
        return json.dumps(metrics.to_dict(), indent=2)

    def _export_pretty(self, metrics: MetricsData) -> str:
        lines = [
            "=" * 60,
            "Rate Limit Fallback Metrics",
            "=" * 60,
            f"Started: {_iso(metrics.started_at)}",
            f"Generated: {_iso(metrics.generated_at)}",
            "",
            "Rate Limits:",
            "-" * 40,
        ]

        if not metrics.rate_limits:
            lines.append("  No rate limits recorded")
        for key, data in metrics.rate_limits.items():
            lines.append(f"  {key}:")
            lines.append(f"    Count: {data.count}")
            lines.append(f"    First: {_iso(data.first_occurrence)}")
            lines.append(f"    Last: {_iso(data.last_occurrence)}")
            if data.average_interval:
                lines.append(f"    Avg Interval: {data.average_interval / 1000:.2f}s")
        lines.append("")

        fallbacks = metrics.fallbacks
        lines.extend([
            "Fallbacks:",
            "-" * 40,
            f"  Total: {fallbacks.total}",
            f"  Successful: {fallbacks.successful}",
            f"  Failed: {fallbacks.failed}",
        ])
        if fallbacks.average_duration > 0:
            lines.append(f"  Avg Duration: {fallbacks.average_duration / 1000:.2f}s")
        if fallbacks.by_target_model:
            lines.append("")
            lines.append("  By Target Model:")
            for key, data in fallbacks.by_target_model.items():
                lines.append(f"    {key}:")
                lines.append(f"      Used: {data.used_as_fallback}")
                lines.append(f"      Success: {data.successful}")
                lines.append(f"      Failed: {data.failed}")
        lines.append("")

        lines.extend(["Model Performance:", "-" * 40])
        if not metrics.model_performance:
            lines.append("  No performance data recorded")
        for key, data in metrics.model_performance.items():
            lines.append(f"  {key}:")
            lines.append(f"    Requests: {data.requests}")
            lines.append(f"    Successes: {data.successes}")
            lines.append(f"    Failures: {data.failures}")
            if data.average_response_time:
                lines.append(f"    Avg Response: {data.average_response_time / 1000:.2f}s")
            if data.requests > 0:
                lines.append(f"    Success Rate: {data.successes / data.requests * 100:.1f}%")

        return "\n".join(lines)

    def _export_csv(self, metrics: MetricsData) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")

        writer.writerow(["=== RATE_LIMITS ==="])
        writer.writerow(["model", "count", "first_occurrence", "last_occurrence", "avg_interval_ms"])
        for key, data in metrics.rate_limits.items():
            writer.writerow([
                key, data.count, data.first_occurrence, data.last_occurrence,
                data.average_interval or 0,
            ])
        writer.writerow([])

        fallbacks = metrics.fallbacks
        writer.writerow(["=== FALLBACKS_SUMMARY ==="])
        writer.writerow(["total", "successful", "failed", "avg_duration_ms"])
        writer.writerow([fallbacks.total, fallbacks.successful, fallbacks.failed, fallbacks.average_duration or 0])
        writer.writerow([])

        writer.writerow(["=== FALLBACKS_BY_MODEL ==="])
        writer.writerow(["model", "used_as_fallback", "successful", "failed"])
        for key, data in fallbacks.by_target_model.items():
            writer.writerow([key, data.used_as_fallback, data.successful, data.failed])
        writer.writerow([])

        writer.writerow(["=== MODEL_PERFORMANCE ==="])
        writer.writerow(["model", "requests", "successes", "failures", "avg_response_time_ms", "success_rate"])
        for key, data in metrics.model_performance.items():
            success_rate = f"{data.successes / data.requests * 100:.1f}" if data.requests else "0"
            writer.writerow([
                key, data.requests, data.successes, data.failures,
                data.average_response_time or 0, success_rate,
            ])

        return buffer.getvalue().rstrip("\n")

    def report(self) -> Optional[str]:
        """Write the export to the configured console and file outputs."""
        if not self.enabled:
            return None

        output = self.export(self.config.output.format)
        if self.config.output.console:
            print(output)

        if self.config.output.file:
            try:
                Path(self.config.output.file).write_text(output, encoding="utf-8")
                logger.debug(f"Metrics exported to {self.config.output.file}")
            except OSError as e:
                logger.warning(f"Failed to write metrics to file {self.config.output.file}: {e}")

        return output

    def destroy(self) -> None:
        """Cancel the reset task."""
        if self._reset_task is not None:
            self._reset_task.cancel()
            self._reset_task = None


def _iso(ms: float) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()
