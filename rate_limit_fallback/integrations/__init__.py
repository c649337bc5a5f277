"""Host collaborator interfaces and their HTTP implementation."""

from .base import HierarchyResolver, Notifier, SessionClient
from .http_client import OpenCodeHttpClient

__all__ = [
    "HierarchyResolver",
    "Notifier",
    "SessionClient",
    "OpenCodeHttpClient",
]
