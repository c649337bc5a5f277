"""
Session hierarchy tracking.

A root session owns the subagent sessions spawned under it (directly or via
other subagents). The tracker resolves any session to its root and hierarchy
for the fallback handler; it is the only component that creates or tears
down hierarchies.
"""

import logging
import time
from typing import Dict, Optional

from ..config.constants import DEFAULT_MAX_SUBAGENT_DEPTH, SESSION_ENTRY_TTL_MS
from ..models.session import SessionHierarchy, SubagentSession

logger = logging.getLogger(__name__)


class SubagentTracker:
    """Instance-owned registry of session hierarchies."""

    def __init__(self, max_subagent_depth: int = DEFAULT_MAX_SUBAGENT_DEPTH):
        self.max_subagent_depth = max_subagent_depth
        self._hierarchies: Dict[str, SessionHierarchy] = {}
        self._session_to_root: Dict[str, str] = {}

    def register_subagent(self, session_id: str, parent_session_id: str) -> bool:
        """
        Register a subagent under its parent.

        A parent that is not yet tracked becomes the root of a new hierarchy.

        Returns:
            False if the subagent would exceed the maximum depth
        """
        root_session_id = self._session_to_root.get(parent_session_id, parent_session_id)
        hierarchy = self._get_or_create_hierarchy(root_session_id)

        parent = hierarchy.subagents.get(parent_session_id)
        depth = parent.depth + 1 if parent else 1

        if depth > self.max_subagent_depth:
            logger.debug(
                f"Refusing subagent {session_id}: depth {depth} exceeds {self.max_subagent_depth}"
            )
            return False

        hierarchy.subagents[session_id] = SubagentSession(
            session_id=session_id,
            parent_session_id=parent_session_id,
            depth=depth,
        )
        self._session_to_root[session_id] = root_session_id
        hierarchy.last_activity = time.time() * 1000
        return True

    def _get_or_create_hierarchy(self, root_session_id: str) -> SessionHierarchy:
        hierarchy = self._hierarchies.get(root_session_id)
        if hierarchy is None:
            hierarchy = SessionHierarchy(root_session_id=root_session_id)
            self._hierarchies[root_session_id] = hierarchy
            self._session_to_root[root_session_id] = root_session_id
        return hierarchy

    def root_session_of(self, session_id: str) -> Optional[str]:
        return self._session_to_root.get(session_id)

    def hierarchy_of(self, session_id: str) -> Optional[SessionHierarchy]:
        root_session_id = self.root_session_of(session_id)
        if root_session_id is None:
            return None
        return self._hierarchies.get(root_session_id)

    def cleanup_stale_entries(self) -> int:
        """Drop hierarchies idle for longer than the session TTL."""
        now = time.time() * 1000
        stale = [
            root for root, hierarchy in self._hierarchies.items()
            if now - hierarchy.last_activity > SESSION_ENTRY_TTL_MS
        ]
        for root in stale:
            hierarchy = self._hierarchies.pop(root)
            for subagent_id in hierarchy.subagents:
                self._session_to_root.pop(subagent_id, None)
            self._session_to_root.pop(root, None)
        return len(stale)

    def clear(self) -> None:
        self._hierarchies.clear()
        self._session_to_root.clear()

    def __len__(self) -> int:
        return len(self._hierarchies)
