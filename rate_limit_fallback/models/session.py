"""Session hierarchy models shared between the tracker and the fallback handler."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict


class FallbackState(str, Enum):
    """Hierarchy-level fallback progress."""
    NONE = "none"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class SubagentSession:
    """A nested subagent session inside a root session's hierarchy."""
    session_id: str
    parent_session_id: str
    depth: int
    fallback_state: FallbackState = FallbackState.NONE
    created_at: float = field(default_factory=_now_ms)
    last_activity: float = field(default_factory=_now_ms)

    def touch(self, state: FallbackState) -> None:
        self.fallback_state = state
        self.last_activity = _now_ms()


@dataclass
class SessionHierarchy:
    """A root session and the subagent sessions it owns."""
    root_session_id: str
    subagents: Dict[str, SubagentSession] = field(default_factory=dict)
    shared_fallback_state: FallbackState = FallbackState.NONE
    created_at: float = field(default_factory=_now_ms)
    last_activity: float = field(default_factory=_now_ms)

    def touch(self, state: FallbackState) -> None:
        self.shared_fallback_state = state
        self.last_activity = _now_ms()
