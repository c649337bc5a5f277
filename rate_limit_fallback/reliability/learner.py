"""
Pattern learning from observed rate limit errors.

Repeated observations of the same signature are buffered in memory. Once a
signature recurs often enough inside the learning window, its samples are
merged and scored; confident merges are persisted through the pattern store
and become available to the error pattern registry.
"""

import asyncio
import hashlib
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from ..config.constants import MAX_TRACKED_SAMPLES
from ..config.models import LearningConfig
from ..models.patterns import ErrorSignature, LearnedPattern
from .extractor import SignatureExtractor
from .scoring import ConfidenceScorer, merge_signatures
from .storage import PatternStore

logger = logging.getLogger(__name__)


def pattern_key(provider: Optional[str], patterns: List[str]) -> str:
    """Canonical key: ``provider:sorted|unique|patterns`` (provider defaults to generic)."""
    normalized = sorted({str(p).lower() for p in patterns})
    return f"{provider or 'generic'}:{'|'.join(normalized)}"


@dataclass
class PatternTracker:
    """Accumulated observations of one canonical signature."""
    signature: ErrorSignature
    first_seen: float
    last_seen: float
    count: int = 1
    samples: List[ErrorSignature] = field(default_factory=list)


class PatternLearner:
    """Buffers signature observations and promotes confident ones."""

    def __init__(
        self,
        extractor: SignatureExtractor,
        scorer: ConfidenceScorer,
        store: PatternStore,
        config: LearningConfig,
        on_learned: Optional[Callable[[LearnedPattern], None]] = None
    ):
        self.extractor = extractor
        self.scorer = scorer
        self.store = store
        self.config = config
        self.on_learned = on_learned

        self._trackers: Dict[str, PatternTracker] = {}
        self._learned: Dict[str, LearnedPattern] = {}
        self._inflight: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    def learn_from_error(self, error: Any) -> None:
        """
        Record one observation of an error.

        Bookkeeping is synchronous. When a signature reaches the minimum
        frequency, scoring and persistence are scheduled as a background task
        on the running event loop; without a running loop the candidate stays
        pending until ``process_patterns`` is awaited.
        """
        if not self.config.enabled:
            return

        try:
            signatures = self.extractor.extract(error)
        except Exception as e:
            logger.error(f"Failed to extract error signature: {e}")
            return

        for signature in signatures:
            key = self._track(signature)
            if self._is_ready(key):
                self._schedule(key)

    def _track(self, signature: ErrorSignature) -> str:
        key = pattern_key(signature.provider, signature.patterns)
        now = time.time() * 1000

        tracker = self._trackers.get(key)
        if tracker is not None and now - tracker.first_seen > self.config.learning_window_ms:
            # Observations outside the learning window start over
            tracker = None

        if tracker is None:
            self._trackers[key] = PatternTracker(
                signature=signature,
                first_seen=now,
                last_seen=now,
                samples=[signature],
            )
            return key

        tracker.count += 1
        tracker.last_seen = now
        tracker.samples.append(signature)
        if len(tracker.samples) > MAX_TRACKED_SAMPLES:
            tracker.samples.pop(0)
        return key

    def _is_ready(self, key: str) -> bool:
        tracker = self._trackers.get(key)
        return (
            tracker is not None
            and tracker.count >= self.config.min_error_frequency
            and key not in self._inflight
        )

    def _schedule(self, key: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        self._inflight.add(key)
        task = loop.create_task(self._promote(key))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Failed to process learned pattern: {exc}")

    async def process_patterns(self) -> int:
        """Score every pending candidate now; returns the number promoted."""
        promoted = 0
        for key in list(self._trackers):
            if not self._is_ready(key):
                continue
            self._inflight.add(key)
            try:
                if await self._promote(key):
                    promoted += 1
            except Exception as e:
                logger.error(f"Failed to process learned pattern: {e}")
        return promoted

    async def wait_for_pending(self) -> None:
        """Wait for scheduled background promotions to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _promote(self, key: str) -> bool:
        try:
            tracker = self._trackers.get(key)
            if tracker is None:
                return False

            merged = self.merge_patterns(tracker.samples) or tracker.signature
            confidence = self.scorer.score_samples(tracker.samples, tracker.count, tracker.first_seen)

            if not self.scorer.should_auto_approve(confidence):
                logger.debug(
                    f"Pattern confidence {confidence:.2f} below threshold "
                    f"{self.config.auto_approve_threshold}, not auto-approving"
                )
                return False

            existing = self._learned.get(key)
            if existing is not None:
                pattern = existing.model_copy(update={
                    "sample_count": existing.sample_count + tracker.count,
                    "confidence": max(existing.confidence, confidence),
                })
            else:
                pattern = LearnedPattern(
                    name=self._unique_name(key, merged.provider),
                    provider=merged.provider,
                    patterns=list(merged.patterns),
                    priority=calculate_priority(merged, confidence),
                    confidence=confidence,
                    learned_at=_iso_timestamp(tracker.first_seen),
                    sample_count=tracker.count,
                )

            await self.store.save_pattern(pattern)

            self._learned[key] = pattern
            self._trackers.pop(key, None)
            logger.info(f"Learned new pattern: {pattern.name} (confidence: {confidence:.2f})")

            if self.on_learned is not None:
                self.on_learned(pattern)
            return True
        finally:
            self._inflight.discard(key)

    def merge_patterns(self, signatures: List[ErrorSignature]) -> Optional[ErrorSignature]:
        """Merge observations of one logical pattern (see ``merge_signatures``)."""
        return merge_signatures(signatures)

    def _unique_name(self, key: str, provider: Optional[str]) -> str:
        """Name for a new pattern; the key digest keeps same-millisecond promotions apart."""
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:8]
        base = f"learned-{provider or 'generic'}-{int(time.time() * 1000)}-{digest}"
        taken = {p.name for p in self._learned.values()}
        name = base
        suffix = 1
        while name in taken:
            suffix += 1
            name = f"{base}-{suffix}"
        return name

    async def load_learned_patterns(self) -> None:
        """Hydrate the promoted set from storage."""
        patterns = await self.store.load_patterns()
        self._learned = {pattern_key(p.provider, p.patterns): p for p in patterns}
        logger.info(f"Loaded {len(patterns)} learned patterns")

    def get_learned_patterns(self) -> List[LearnedPattern]:
        return list(self._learned.values())

    def get_learned_patterns_for_provider(self, provider: str) -> List[LearnedPattern]:
        """Patterns for ``provider`` plus the provider-less generic ones."""
        return [p for p in self._learned.values() if not p.provider or p.provider == provider]

    def get_learned_pattern_by_name(self, name: str) -> Optional[LearnedPattern]:
        for pattern in self._learned.values():
            if pattern.name == name:
                return pattern
        return None

    async def add_learned_pattern(self, pattern: LearnedPattern) -> None:
        """Manually add (or replace) a learned pattern."""
        await self.store.save_pattern(pattern)
        self._learned[pattern_key(pattern.provider, pattern.patterns)] = pattern

    async def remove_learned_pattern(self, key: str) -> bool:
        """
        Remove a learned pattern by its canonical key.

        Returns:
            True if a matching pattern existed
        """
        pattern = self._learned.get(key)
        if pattern is None:
            return False

        await self.store.delete_pattern(pattern.name)
        del self._learned[key]
        return True

    async def merge_duplicate_patterns(self) -> int:
        merged = await self.store.merge_duplicate_patterns()
        if merged > 0:
            await self.load_learned_patterns()
        return merged

    async def cleanup_old_patterns(self) -> int:
        removed = await self.store.cleanup_old_patterns(self.config.max_learned_patterns)
        if removed > 0:
            await self.load_learned_patterns()
        return removed

    def clear_tracked_patterns(self) -> None:
        """Forget buffered observations; promoted patterns are kept."""
        self._trackers.clear()

    def get_stats(self) -> Dict[str, int]:
        return {
            "trackedPatterns": len(self._trackers),
            "learnedPatterns": len(self._learned),
            "pendingPatterns": sum(
                1 for t in self._trackers.values()
                if t.count >= self.config.min_error_frequency
            ),
        }


def calculate_priority(signature: ErrorSignature, confidence: float) -> int:
    """Priority from confidence, with bonuses for provider-specific and richer patterns."""
    base_priority = math.floor(confidence * 50)
    provider_bonus = 10 if signature.provider else 0
    pattern_count_bonus = min(len(signature.patterns) * 2, 10)
    return max(1, min(100, base_priority + provider_bonus + pattern_count_bonus))


def _iso_timestamp(ms: float) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z")
