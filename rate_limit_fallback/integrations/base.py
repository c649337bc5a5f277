"""
Collaborator interfaces consumed by the fallback handler.

The handler never talks to a host directly; it depends on these protocols,
which the HTTP client (or a test double) implements.
"""

from typing import Any, Dict, List, Optional, Protocol

from ..models.fallback import FallbackModel, MessagePart, Notification
from ..models.session import SessionHierarchy


class SessionClient(Protocol):
    """Session I/O against the host."""

    async def abort(self, session_id: str) -> None:
        """Abort the in-flight request of a session."""
        ...

    async def fetch_messages(self, session_id: str) -> Optional[List[Dict[str, Any]]]:
        """Return the session history as ``{id, role, parts}`` mappings, or None."""
        ...

    async def resend(self, session_id: str, parts: List[MessagePart], model: FallbackModel) -> None:
        """Re-issue a request with the given parts against ``model``."""
        ...


class Notifier(Protocol):
    """Best-effort user-facing notification channel."""

    async def notify(self, notification: Notification) -> None: ...


class HierarchyResolver(Protocol):
    """Resolves sessions to their root session and hierarchy."""

    def root_session_of(self, session_id: str) -> Optional[str]: ...

    def hierarchy_of(self, session_id: str) -> Optional[SessionHierarchy]: ...
