"""Rate limit detection and adaptive pattern learning."""

from .error_classifier import DEFAULT_PATTERNS, ErrorPatternRegistry
from .extractor import SignatureExtractor
from .learner import PatternLearner, PatternTracker, calculate_priority, pattern_key
from .normalize import to_error_document
from .scoring import ConfidenceScorer, jaccard_similarity, merge_signatures
from .storage import PatternStore

__all__ = [
    "DEFAULT_PATTERNS",
    "ErrorPatternRegistry",
    "SignatureExtractor",
    "PatternLearner",
    "PatternTracker",
    "calculate_priority",
    "pattern_key",
    "to_error_document",
    "ConfidenceScorer",
    "jaccard_similarity",
    "merge_signatures",
    "PatternStore",
]
