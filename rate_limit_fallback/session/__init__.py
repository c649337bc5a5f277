"""Session hierarchy resolution."""

from .tracker import SubagentTracker

__all__ = ["SubagentTracker"]
