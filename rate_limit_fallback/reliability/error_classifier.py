"""
Rate limit error detection.

``ErrorPatternRegistry`` holds static detection patterns (defaults, custom
patterns from configuration and learned patterns loaded from storage) ordered
by priority, and matches incoming errors against them. When learning is
enabled, every detected rate limit error is also fed to the pattern learner.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from ..config.models import LearningConfig
from ..models.patterns import ErrorPattern, LearnedPattern
from .extractor import SignatureExtractor
from .learner import PatternLearner, pattern_key
from .normalize import to_error_document
from .scoring import ConfidenceScorer
from .storage import PatternStore

logger = logging.getLogger(__name__)


DEFAULT_PATTERNS = [
    ErrorPattern(
        name='http-429',
        patterns=[re.compile(r'\b429\b', re.IGNORECASE)],
        priority=100,
    ),
    ErrorPattern(
        name='rate-limit-general',
        patterns=['rate limit', 'rate_limit', 'ratelimit', 'too many requests', 'quota exceeded'],
        priority=90,
    ),
    ErrorPattern(
        name='anthropic-rate-limit',
        provider='anthropic',
        patterns=[
            'rate limit exceeded',
            'too many requests',
            'quota exceeded',
            'rate_limit_error',
            'overloaded',
        ],
        priority=80,
    ),
    ErrorPattern(
        name='google-rate-limit',
        provider='google',
        patterns=[
            'quota exceeded',
            'resource exhausted',
            'rate limit exceeded',
            'user rate limit exceeded',
            'daily limit exceeded',
            '429',
        ],
        priority=80,
    ),
    ErrorPattern(
        name='openai-rate-limit',
        provider='openai',
        patterns=[
            'rate limit exceeded',
            'you exceeded your current quota',
            'quota exceeded',
            'maximum requests per minute reached',
            'insufficient_quota',
        ],
        priority=80,
    ),
]


class ErrorPatternRegistry:
    """Priority-ordered registry of rate limit detection patterns."""

    def __init__(
        self,
        learning_config: Optional[LearningConfig] = None,
        config_path: Optional[Union[str, Path]] = None,
        custom_patterns: Optional[List[ErrorPattern]] = None
    ):
        """
        Initialize the registry.

        Args:
            learning_config: Learning thresholds; learning runs only if enabled
            config_path: JSON document that stores learned patterns
            custom_patterns: Extra patterns from configuration
        """
        # Shared with the confidence scorer, so it is only mutated in place
        self._patterns: List[ErrorPattern] = []
        self.config_path = Path(config_path) if config_path else None
        self.learner: Optional[PatternLearner] = None
        self._learned_names: Set[str] = set()

        self.register_default_patterns()
        if custom_patterns:
            self.register_many(custom_patterns)

        if learning_config is not None and learning_config.enabled:
            self._initialize_learning(learning_config)

    def _initialize_learning(self, learning_config: LearningConfig) -> None:
        if self.config_path is None:
            logger.warning("Config path not provided, pattern learning disabled")
            return

        self.learner = PatternLearner(
            extractor=SignatureExtractor(),
            scorer=ConfidenceScorer(learning_config, self._patterns),
            store=PatternStore(self.config_path, learning_config.max_learned_patterns),
            config=learning_config,
            on_learned=self._register_learned,
        )
        logger.info("Pattern learning enabled")

    def register_default_patterns(self) -> None:
        self.register_many(DEFAULT_PATTERNS)

    def register(self, pattern: ErrorPattern) -> None:
        """Add a pattern, replacing any pattern with the same name."""
        for index, existing in enumerate(self._patterns):
            if existing.name == pattern.name:
                self._patterns[index] = pattern
                break
        else:
            self._patterns.append(pattern)
        self._patterns.sort(key=lambda p: p.priority, reverse=True)

    def register_many(self, patterns: List[ErrorPattern]) -> None:
        for pattern in patterns:
            self.register(pattern)

    def is_rate_limit_error(self, error: Any) -> bool:
        """Check an error against the registered patterns, learning from matches."""
        is_rate_limit = self.get_matched_pattern(error) is not None

        if is_rate_limit and self.learner is not None:
            self.learner.learn_from_error(to_error_document(error))

        return is_rate_limit

    def get_matched_pattern(self, error: Any) -> Optional[ErrorPattern]:
        """Return the highest-priority pattern matching the error, if any."""
        doc = to_error_document(error)
        if not doc:
            return None

        all_text = _match_text(doc)
        for pattern in self._patterns:
            for candidate in pattern.patterns:
                if isinstance(candidate, re.Pattern):
                    if candidate.search(all_text):
                        return pattern
                elif candidate.lower() in all_text:
                    return pattern
        return None

    def get_all_patterns(self) -> List[ErrorPattern]:
        return list(self._patterns)

    def get_patterns_for_provider(self, provider: str) -> List[ErrorPattern]:
        return [p for p in self._patterns if not p.provider or p.provider == provider]

    def get_pattern_by_name(self, name: str) -> Optional[ErrorPattern]:
        for pattern in self._patterns:
            if pattern.name == name:
                return pattern
        return None

    def remove_pattern(self, name: str) -> bool:
        for index, pattern in enumerate(self._patterns):
            if pattern.name == name:
                del self._patterns[index]
                return True
        return False

    def reset_to_defaults(self) -> None:
        """Drop every custom and learned pattern, keeping only the defaults."""
        self._patterns.clear()
        self._learned_names.clear()
        self.register_default_patterns()

    async def load_learned_patterns(self) -> None:
        """Hydrate the learner from storage and register the learned patterns."""
        if self.learner is None:
            return

        await self.learner.load_learned_patterns()
        self._sync_learned()
        logger.info(f"Registered {len(self.learner.get_learned_patterns())} learned patterns")

    def _register_learned(self, pattern: LearnedPattern) -> None:
        self._learned_names.add(pattern.name)
        self.register(pattern.to_error_pattern())

    def get_learned_patterns(self) -> List[LearnedPattern]:
        if self.learner is None:
            return []
        return self.learner.get_learned_patterns()

    def get_learned_pattern_by_name(self, name: str) -> Optional[LearnedPattern]:
        if self.learner is None:
            return None
        return self.learner.get_learned_pattern_by_name(name)

    async def remove_learned_pattern(self, name: str) -> bool:
        """Remove a learned pattern by display name from storage and the registry."""
        if self.learner is None:
            return False

        pattern = self.learner.get_learned_pattern_by_name(name)
        if pattern is None:
            return False

        removed = await self.learner.remove_learned_pattern(pattern_key(pattern.provider, pattern.patterns))
        if removed:
            self.remove_pattern(name)
            self._learned_names.discard(name)
        return removed

    async def merge_duplicate_patterns(self) -> int:
        if self.learner is None:
            return 0

        merged = await self.learner.merge_duplicate_patterns()
        if merged > 0:
            self._sync_learned()
        return merged

    async def cleanup_old_patterns(self) -> int:
        if self.learner is None:
            return 0

        removed = await self.learner.cleanup_old_patterns()
        if removed > 0:
            self._sync_learned()
        return removed

    def _sync_learned(self) -> None:
        # Drop registry entries for learned patterns the learner no longer has
        current = {p.name for p in self.learner.get_learned_patterns()}
        for name in self._learned_names - current:
            self.remove_pattern(name)
        self._learned_names &= current
        for pattern in self.learner.get_learned_patterns():
            self._register_learned(pattern)

    def get_learning_stats(self) -> Optional[Dict[str, int]]:
        if self.learner is None:
            return None
        return self.learner.get_stats()

    def get_stats(self) -> Dict[str, Any]:
        """Counts of registered patterns by provider and priority range."""
        by_provider: Dict[str, int] = {}
        by_priority: Dict[str, int] = {}

        for pattern in self._patterns:
            provider = pattern.provider or 'generic'
            by_provider[provider] = by_provider.get(provider, 0) + 1

            priority_range = _priority_range(pattern.priority)
            by_priority[priority_range] = by_priority.get(priority_range, 0) + 1

        return {
            'total': len(self._patterns),
            'byProvider': by_provider,
            'byPriority': by_priority,
        }


def _match_text(doc: Dict[str, Any]) -> str:
    data = doc.get('data') if isinstance(doc.get('data'), dict) else {}
    response_body = str(data.get('responseBody') or '')
    message = str(data.get('message') or doc.get('message') or '')
    name = str(doc.get('name') or '')
    status_code = data.get('statusCode')
    status = str(status_code) if status_code is not None else ''
    return ' '.join([response_body, message, name, status]).lower()


def _priority_range(priority: int) -> str:
    if priority >= 90:
        return 'high (90-100)'
    if priority >= 70:
        return 'medium (70-89)'
    if priority >= 50:
        return 'low (50-69)'
    return 'very low (<50)'
