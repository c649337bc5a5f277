from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Dict, Literal, Optional, Union
from enum import Enum


class FallbackMode(str, Enum):
    """Behaviour once every fallback model has been tried.

    - cycle: forget per-message attempts and start over (default)
    - stop: stop and report that all fallback models are exhausted
    - retry-last: try the last model once, then behave like cycle
    """
    CYCLE = "cycle"
    STOP = "stop"
    RETRY_LAST = "retry-last"


class FallbackModel(BaseModel):
    """An alternate provider/model pair the session may switch to."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    provider_id: str = Field(..., alias="providerID", description="Provider identifier")
    model_id: str = Field(..., alias="modelID", description="Model identifier")

    @property
    def key(self) -> str:
        return model_key(self.provider_id, self.model_id)

    def to_request(self) -> Dict[str, str]:
        """Model selector shape expected by the host."""
        return {"providerID": self.provider_id, "modelID": self.model_id}


def model_key(provider_id: str, model_id: str) -> str:
    """Canonical ``provider/model`` key used by every registry."""
    return f"{provider_id}/{model_id}"


def state_key(session_id: str, message_id: str) -> str:
    """Key for per-message registries (retry state, dedup guard, attempts)."""
    return f"{session_id}:{message_id}"


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class FilePart(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: Literal["file"] = "file"
    path: str
    media_type: str = ""


MessagePart = Union[TextPart, FilePart]


class Notification(BaseModel):
    """User-facing notification sent through the host's toast channel."""
    title: str
    message: str
    variant: Literal["info", "success", "warning", "error"] = "info"
    duration_ms: Optional[int] = None
