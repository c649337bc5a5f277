"""Fallback model selection and orchestration."""

from .handler import FallbackHandler
from .plugin import RateLimitFallback
from .selector import ModelSelector
from .state import ActiveFallback, RetryState, TrackedModel, extract_message_parts, parts_to_request

__all__ = [
    "FallbackHandler",
    "RateLimitFallback",
    "ModelSelector",
    "ActiveFallback",
    "RetryState",
    "TrackedModel",
    "extract_message_parts",
    "parts_to_request",
]
