"""
Host event routing.

``RateLimitFallback`` is the entry point a host talks to: it receives
lifecycle events (``session.created``, ``session.error``, ``message.updated``,
``session.status``), classifies errors with the pattern registry and drives
the fallback handler. It also owns the periodic maintenance loop.
"""

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Optional, Union

from ..config.constants import CLEANUP_INTERVAL_MS
from ..config.loader import find_config_path, load_config
from ..config.models import FallbackConfig
from ..integrations.base import Notifier, SessionClient
from ..observability.logging import FallbackLogger, configure_logging
from ..observability.metrics import MetricsManager
from ..reliability.error_classifier import ErrorPatternRegistry
from ..session.tracker import SubagentTracker
from .handler import FallbackHandler

RETRY_STATUS_PHRASES = ("usage limit", "rate limit")


class RateLimitFallback:
    """Routes host events to the fallback handler."""

    def __init__(
        self,
        config: FallbackConfig,
        client: SessionClient,
        notifier: Optional[Notifier] = None,
        registry: Optional[ErrorPatternRegistry] = None,
        tracker: Optional[SubagentTracker] = None,
        metrics: Optional[MetricsManager] = None
    ):
        """
        Initialize the router.

        Args:
            config: Loaded configuration
            client: Session I/O collaborator
            notifier: Notification channel; defaults to ``client``
            registry: Error pattern registry; defaults to one built from ``config``
            tracker: Session hierarchy tracker
            metrics: Metrics manager
        """
        self.config = config
        self.client = client
        self.notifier = notifier or client
        self.registry = registry or ErrorPatternRegistry(custom_patterns=config.error_patterns.custom)
        self.tracker = tracker or SubagentTracker(config.max_subagent_depth)
        self.metrics = metrics or MetricsManager(config.metrics)
        self.log = FallbackLogger("plugin")

        self.handler = FallbackHandler(
            config=config,
            client=client,
            notifier=self.notifier,
            resolver=self.tracker,
            metrics=self.metrics,
        )
        self._maintenance_task: Optional[asyncio.Task] = None

    @classmethod
    async def create(
        cls,
        directory: Union[str, Path],
        client: SessionClient,
        notifier: Optional[Notifier] = None
    ) -> "RateLimitFallback":
        """Build a router for a project directory from its configuration file."""
        config = load_config(directory)
        configure_logging(config.log)

        config_path = find_config_path(directory)
        learning = config.error_patterns.to_learning_config()
        registry = ErrorPatternRegistry(
            learning_config=learning if config_path else None,
            config_path=config_path,
            custom_patterns=config.error_patterns.custom,
        )
        await registry.load_learned_patterns()

        return cls(config, client, notifier=notifier, registry=registry)

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def handle_event(self, event: Mapping) -> None:
        """Dispatch one host event; unknown event types are ignored."""
        if not self.enabled or not isinstance(event, Mapping):
            return

        event_type = event.get("type")
        properties = event.get("properties") or {}
        if not isinstance(properties, Mapping):
            return

        if event_type == "session.created":
            self._on_session_created(properties)
        elif event_type == "session.error":
            await self._on_session_error(properties)
        elif event_type == "message.updated":
            await self._on_message_updated(properties)
        elif event_type == "session.status":
            await self._on_session_status(properties)

    def _on_session_created(self, properties: Mapping) -> None:
        info = properties.get("info") or {}
        session_id = info.get("id")
        parent_id = info.get("parentID")
        if not session_id or not parent_id or not self.config.enable_subagent_fallback:
            return

        if self.tracker.register_subagent(session_id, parent_id):
            self.log.debug("Registered subagent", session_id=session_id, parent_id=parent_id)

    async def _on_session_error(self, properties: Mapping) -> None:
        session_id = properties.get("sessionID")
        error = properties.get("error")
        if session_id and error and self.registry.is_rate_limit_error(error):
            await self.handler.handle_rate_limit_fallback(session_id)

    async def _on_message_updated(self, properties: Mapping) -> None:
        info = properties.get("info") or {}
        session_id = info.get("sessionID")
        if not session_id:
            return

        error = info.get("error")
        is_rate_limit = bool(error) and self.registry.is_rate_limit_error(error)
        if is_rate_limit:
            await self.handler.handle_rate_limit_fallback(
                session_id,
                info.get("providerID"),
                info.get("modelID"),
            )
            return

        provider_id = info.get("providerID")
        model_id = info.get("modelID")
        if info.get("role") == "assistant" and provider_id and model_id:
            self.handler.set_session_model(session_id, provider_id, model_id)

        message_id = info.get("id")
        if message_id:
            self.handler.handle_message_updated(session_id, message_id, bool(error), False)

    async def _on_session_status(self, properties: Mapping) -> None:
        status = properties.get("status") or {}
        session_id = properties.get("sessionID")
        if not session_id or status.get("type") != "retry":
            return

        message = str(status.get("message") or "").lower()
        if not any(phrase in message for phrase in RETRY_STATUS_PHRASES):
            return

        # Only the first retry triggers a fallback; later ones belong to the same episode
        attempt = status.get("attempt")
        if attempt is None or attempt == 1:
            await self.handler.handle_rate_limit_fallback(session_id)

    def start(self) -> None:
        """Start metrics resets and the periodic maintenance loop."""
        if self._maintenance_task is None:
            self._maintenance_task = asyncio.get_running_loop().create_task(self._maintenance_loop())
        self.metrics.start()

    async def _maintenance_loop(self) -> None:
        while True:
            await asyncio.sleep(CLEANUP_INTERVAL_MS / 1000)
            self.cleanup_stale_entries()

    def cleanup_stale_entries(self) -> None:
        self.handler.cleanup_stale_entries()
        self.tracker.cleanup_stale_entries()

    async def stop(self) -> None:
        """Stop background work, report metrics and drop all state."""
        if self._maintenance_task is not None:
            self._maintenance_task.cancel()
            try:
                await self._maintenance_task
            except asyncio.CancelledError:
                pass
            self._maintenance_task = None

        self.metrics.report()
        if self.registry.learner is not None:
            await self.registry.learner.wait_for_pending()

        self.metrics.destroy()
        self.handler.destroy()
        self.tracker.clear()

    def update_config(self, config: FallbackConfig) -> None:
        self.config = config
        self.handler.update_config(config)
        self.metrics.update_config(config.metrics)
        self.tracker.max_subagent_depth = config.max_subagent_depth
