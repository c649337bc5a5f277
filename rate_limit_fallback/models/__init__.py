"""Data models for fallback orchestration and pattern learning."""

from .fallback import (
    FallbackMode,
    FallbackModel,
    FilePart,
    MessagePart,
    Notification,
    TextPart,
    model_key,
    state_key,
)
from .patterns import ErrorPattern, ErrorSignature, LearnedPattern
from .session import FallbackState, SessionHierarchy, SubagentSession

__all__ = [
    "FallbackMode",
    "FallbackModel",
    "FilePart",
    "MessagePart",
    "Notification",
    "TextPart",
    "model_key",
    "state_key",
    "ErrorPattern",
    "ErrorSignature",
    "LearnedPattern",
    "FallbackState",
    "SessionHierarchy",
    "SubagentSession",
]
