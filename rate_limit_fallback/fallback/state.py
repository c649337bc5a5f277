"""Per-message fallback bookkeeping and resendable message parts."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Set

from ..models.fallback import FilePart, MessagePart, TextPart


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class RetryState:
    """Models already attempted for one message in the current fallback episode."""
    attempted_models: Set[str] = field(default_factory=set)
    last_attempt_time: float = field(default_factory=_now_ms)

    def is_stale(self, timeout_ms: float) -> bool:
        return _now_ms() - self.last_attempt_time > timeout_ms


@dataclass
class TrackedModel:
    """The model a session is currently using."""
    provider_id: str
    model_id: str
    last_updated: float = field(default_factory=_now_ms)


@dataclass
class ActiveFallback:
    """A resend awaiting its completion or failure event."""
    session_id: str
    message_id: str
    timestamp: float = field(default_factory=_now_ms)


def extract_message_parts(message: Mapping[str, Any]) -> List[MessagePart]:
    """
    Keep only the resendable parts of a message.

    Text parts keep their text; file parts keep their path (or URL) and media
    type. Every other part type is dropped.
    """
    parts: List[MessagePart] = []
    for part in message.get("parts") or []:
        if not isinstance(part, Mapping):
            continue

        part_type = part.get("type")
        if part_type == "text" and isinstance(part.get("text"), str):
            parts.append(TextPart(text=part["text"]))
        elif part_type == "file":
            path = part.get("path") or part.get("url")
            if not path:
                continue
            parts.append(FilePart(
                path=path,
                media_type=part.get("mediaType") or part.get("mime") or "",
            ))
    return parts


def parts_to_request(parts: List[MessagePart]) -> List[Dict[str, Any]]:
    """Serialize parts into the camelCase request shape."""
    return [part.model_dump(by_alias=True) for part in parts]
