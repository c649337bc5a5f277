"""
Confidence scoring for learned patterns.

A candidate's confidence blends how often it recurred, how closely its text
resembles known rate limit semantics, and how recently it was first seen.
Disagreement between samples (for example, different provider guesses for
the same pattern text) scales the result down.
"""

import math
import time
from collections import Counter
from typing import List, Optional, Sequence

from ..config.models import LearningConfig
from ..models.patterns import ErrorPattern, ErrorSignature


FREQUENCY_WEIGHT = 0.5
SIMILARITY_WEIGHT = 0.3
RECENCY_WEIGHT = 0.2

RATE_LIMIT_KEYWORDS = [
    'rate', 'limit', 'quota', 'exceeded', 'too', 'many', 'requests',
    '429', 'exhausted', 'resource', 'daily', 'monthly', 'maximum',
    'insufficient', 'per', 'minute', 'second', 'request',
]


def jaccard_similarity(text1: str, text2: str) -> float:
    """Jaccard coefficient over the whitespace-separated words of two strings."""
    words1 = set(text1.split())
    words2 = set(text2.split())
    if not words1 and not words2:
        return 1.0
    union = words1 | words2
    return len(words1 & words2) / len(union)


class ConfidenceScorer:
    """Calculates confidence scores for pattern candidates."""

    def __init__(self, config: LearningConfig, known_patterns: Sequence[ErrorPattern]):
        """
        Initialize the scorer.

        Args:
            config: Learning thresholds (min frequency, window, auto-approve)
            known_patterns: Static patterns; may be a live list owned by the registry
        """
        self.config = config
        self.known_patterns = known_patterns

    def calculate_score(
        self,
        signature: ErrorSignature,
        sample_count: int,
        learned_at: Optional[float] = None
    ) -> float:
        """
        Calculate the overall confidence for a candidate.

        Args:
            signature: The candidate signature (possibly a merge of several)
            sample_count: Number of times the candidate was observed
            learned_at: Epoch milliseconds when the candidate was first seen

        Returns:
            Confidence between 0 and 1
        """
        frequency_score = self.calculate_frequency_score(sample_count, self.config.min_error_frequency)
        similarity_score = self.calculate_similarity_score(signature)
        recency_score = self.calculate_recency_score(learned_at) if learned_at else 0.5

        confidence = (
            frequency_score * FREQUENCY_WEIGHT
            + similarity_score * SIMILARITY_WEIGHT
            + recency_score * RECENCY_WEIGHT
        )
        return max(0.0, min(1.0, confidence))

    def score_samples(
        self,
        samples: List[ErrorSignature],
        sample_count: Optional[int] = None,
        first_seen: Optional[float] = None
    ) -> float:
        """Score several observations of one logical pattern.

        The samples are merged first; the merged score is scaled by how
        consistently the samples agree on their provider.
        """
        if not samples:
            return 0.0

        merged = merge_signatures(samples)
        count = sample_count if sample_count is not None else len(samples)
        score = self.calculate_score(merged, count, first_seen)
        return max(0.0, min(1.0, score * self.calculate_consistency_score(samples)))

    def calculate_frequency_score(self, count: int, min_frequency: int) -> float:
        if count <= 0:
            return 0.0

        # Patterns seen min_frequency times get a baseline; more raise it further
        normalized = min(count / (min_frequency * 2), 1.0)
        baseline = 0.5 if count >= min_frequency else 0.0
        return max(0.0, min(1.0, baseline + normalized * 0.5))

    def calculate_similarity_score(self, signature: ErrorSignature) -> float:
        if not signature.patterns:
            return 0.0

        pattern_text = ' '.join(signature.patterns).lower()
        keywords_found = [k for k in RATE_LIMIT_KEYWORDS if k in pattern_text]
        keyword_score = len(keywords_found) / len(RATE_LIMIT_KEYWORDS)

        known_pattern_bonus = 0.0
        for known in self.known_patterns:
            for known_text in known.pattern_texts():
                similarity = jaccard_similarity(pattern_text, known_text.lower())
                known_pattern_bonus = max(known_pattern_bonus, similarity)

        return max(0.0, min(1.0, keyword_score * 0.5 + known_pattern_bonus * 0.5))

    def calculate_recency_score(self, learned_at: float) -> float:
        age = time.time() * 1000 - learned_at
        window = self.config.learning_window_ms

        if age <= window:
            return 1.0

        # Decays with age but never below 0.3
        decay = math.exp(-age / (window * 10))
        return max(0.3, decay)

    def calculate_consistency_score(self, samples: List[ErrorSignature]) -> float:
        """Fraction of samples that agree with the most common provider guess."""
        if len(samples) <= 1:
            return 1.0

        providers = Counter(sample.provider for sample in samples)
        _, majority = providers.most_common(1)[0]
        return majority / len(samples)

    def should_auto_approve(self, confidence: float) -> bool:
        return confidence >= self.config.auto_approve_threshold


def merge_signatures(signatures: List[ErrorSignature]) -> Optional[ErrorSignature]:
    """
    Merge observations of the same logical pattern.

    - [] -> None
    - [one] -> that signature, unchanged
    - [many] -> union of distinct lower-cased pattern strings; provider kept
      only when every sample agrees; the first non-empty source error is kept
    """
    if not signatures:
        return None
    if len(signatures) == 1:
        return signatures[0]

    patterns = list(dict.fromkeys(
        p.lower() for signature in signatures for p in signature.patterns
    ))

    providers = {signature.provider for signature in signatures}
    provider = providers.pop() if len(providers) == 1 else None

    source_error = next(
        (s.source_error for s in signatures if s.source_error),
        ''
    )

    return ErrorSignature(
        provider=provider,
        patterns=patterns,
        source_error=source_error,
        extracted_at=max(s.extracted_at for s in signatures),
    )
