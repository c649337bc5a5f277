"""
Fallback orchestration.

``FallbackHandler`` drives one rate limit episode for a message: resolve the
target session, abort the failing request, pick the next model, resend the
last user message and track the attempt until its completion event arrives.
All registries are owned by the handler instance and are only reachable
through its methods.
"""

import time
from typing import Any, Dict, List, Optional

from ..config.models import FallbackConfig
from ..config.constants import SESSION_ENTRY_TTL_MS, TOAST_DURATION_MS, TOAST_ERROR_DURATION_MS
from ..integrations.base import HierarchyResolver, Notifier, SessionClient
from ..models.fallback import FallbackMode, FallbackModel, MessagePart, Notification, model_key, state_key
from ..models.session import FallbackState, SessionHierarchy
from ..observability.logging import FallbackLogger
from ..observability.metrics import MetricsSink
from .selector import ModelSelector
from .state import ActiveFallback, RetryState, TrackedModel, extract_message_parts


def _now_ms() -> float:
    return time.time() * 1000


class FallbackHandler:
    """State machine for rate limit fallback of a single host."""

    def __init__(
        self,
        config: FallbackConfig,
        client: SessionClient,
        notifier: Notifier,
        resolver: HierarchyResolver,
        metrics: MetricsSink,
        logger: Optional[FallbackLogger] = None
    ):
        self.config = config
        self.client = client
        self.notifier = notifier
        self.resolver = resolver
        self.metrics = metrics
        self.log = logger or FallbackLogger("handler")
        self.selector = ModelSelector(config)

        self._session_models: Dict[str, TrackedModel] = {}
        self._model_request_start: Dict[str, float] = {}
        self._retry_states: Dict[str, RetryState] = {}
        # dedup key -> epoch ms when the fallback started
        self._in_progress: Dict[str, float] = {}
        self._active: Dict[str, ActiveFallback] = {}

    async def handle_rate_limit_fallback(
        self,
        session_id: str,
        provider_id: Optional[str] = None,
        model_id: Optional[str] = None
    ) -> None:
        """
        Switch a rate-limited session to the next available model.

        Never raises; every failure is logged as a warning.
        """
        try:
            await self._run_fallback(session_id, provider_id, model_id)
        except Exception as e:
            self.log.warning("Fallback error", session_id=session_id, error=e)

    async def _run_fallback(
        self,
        session_id: str,
        provider_id: Optional[str],
        model_id: Optional[str]
    ) -> None:
        root_session_id, hierarchy = self._resolve(session_id)
        target_session_id = root_session_id or session_id

        if not provider_id or not model_id:
            tracked = self._session_models.get(target_session_id)
            if tracked is not None:
                provider_id, model_id = tracked.provider_id, tracked.model_id

        if provider_id and model_id:
            self.metrics.record_rate_limit(provider_id, model_id)

        messages = await self.client.fetch_messages(target_session_id)
        user_message = _last_user_message(messages)

        # Duplicates are dropped before the abort so they cannot cancel the resend in flight
        dedup_key = None
        if user_message is not None:
            dedup_key = state_key(target_session_id, user_message["id"])
            if not self._check_and_mark_in_progress(dedup_key):
                self.log.debug("Fallback already in progress", session_id=target_session_id,
                               message_id=user_message["id"])
                return

        await self._abort(target_session_id)
        await self._notify(
            "Rate Limit Detected",
            f"Switching from {model_id or 'current model'}...",
            "warning",
        )

        if user_message is None:
            return
        message_id = user_message["id"]

        if hierarchy is not None and root_session_id:
            hierarchy.touch(FallbackState.IN_PROGRESS)
            subagent = hierarchy.subagents.get(session_id)
            if subagent is not None:
                subagent.touch(FallbackState.IN_PROGRESS)

        retry_key = state_key(session_id, message_id)
        state = self._get_or_create_retry_state(retry_key)

        next_model = self.selector.select_fallback_model(provider_id, model_id, state.attempted_models)
        if next_model is None:
            await self._notify(
                "No Fallback Available",
                "All fallback models exhausted"
                if self.config.fallback_mode == FallbackMode.STOP
                else "All models are rate limited",
                "error",
                TOAST_ERROR_DURATION_MS,
            )
            self._retry_states.pop(retry_key, None)
            self._in_progress.pop(dedup_key, None)
            return

        state.attempted_models.add(next_model.key)
        state.last_attempt_time = _now_ms()

        parts = extract_message_parts(user_message)
        if not parts:
            self._in_progress.pop(dedup_key, None)
            return

        await self._notify("Retrying", f"Using {next_model.key}", "info")

        self.metrics.record_fallback_start()
        self._active[dedup_key] = ActiveFallback(session_id=target_session_id, message_id=message_id)

        await self._retry_with_model(target_session_id, next_model, parts, hierarchy, message_id)

    def _resolve(self, session_id: str):
        if not self.config.enable_subagent_fallback:
            return None, None
        return self.resolver.root_session_of(session_id), self.resolver.hierarchy_of(session_id)

    async def _retry_with_model(
        self,
        target_session_id: str,
        model: FallbackModel,
        parts: List[MessagePart],
        hierarchy: Optional[SessionHierarchy],
        message_id: Optional[str] = None
    ) -> None:
        self.metrics.record_model_request(model.provider_id, model.model_id)
        self._model_request_start[model.key] = _now_ms()

        with self.log.track_fallback(target_session_id, model.key, message_id=message_id):
            await self.client.resend(target_session_id, parts, model)

        self.set_session_model(target_session_id, model.provider_id, model.model_id)

        if hierarchy is not None and hierarchy.root_session_id == target_session_id:
            hierarchy.touch(FallbackState.COMPLETED)
            for subagent_id, subagent in hierarchy.subagents.items():
                if subagent.depth > self.config.max_subagent_depth:
                    continue
                self.set_session_model(subagent_id, model.provider_id, model.model_id)
                subagent.touch(FallbackState.COMPLETED)

        await self._notify("Fallback Successful", f"Now using {model.model_id}", "success")

    def handle_message_updated(
        self,
        session_id: str,
        message_id: str,
        has_error: bool,
        is_rate_limit_error: bool
    ) -> None:
        """Correlate a completion or failure event with an active fallback."""
        key = state_key(session_id, message_id)

        if has_error and not is_rate_limit_error:
            tracked = self._session_models.get(session_id)
            if tracked is None:
                return

            self.metrics.record_model_failure(tracked.provider_id, tracked.model_id)
            if key in self._active:
                self.metrics.record_fallback_failure(tracked.provider_id, tracked.model_id)
                self._in_progress.pop(key, None)
                self._active.pop(key, None)
            return

        if has_error:
            return

        active = self._active.pop(key, None)
        if active is None:
            return
        self._in_progress.pop(key, None)
        self.log.debug("Fallback completed", session_id=session_id, message_id=message_id)

        tracked = self._session_models.get(session_id)
        if tracked is None:
            return

        self.metrics.record_fallback_success(tracked.provider_id, tracked.model_id, active.timestamp)
        tracked_key = model_key(tracked.provider_id, tracked.model_id)
        started = self._model_request_start.pop(tracked_key, None)
        if started is not None:
            self.metrics.record_model_success(tracked.provider_id, tracked.model_id, _now_ms() - started)

    def set_session_model(self, session_id: str, provider_id: str, model_id: str) -> None:
        self._session_models[session_id] = TrackedModel(provider_id=provider_id, model_id=model_id)

    def get_session_model(self, session_id: str) -> Optional[FallbackModel]:
        tracked = self._session_models.get(session_id)
        if tracked is None:
            return None
        return FallbackModel(provider_id=tracked.provider_id, model_id=tracked.model_id)

    def _check_and_mark_in_progress(self, key: str) -> bool:
        started = self._in_progress.get(key)
        now = _now_ms()
        if started is not None and now - started < self.config.dedup_window_ms:
            return False
        self._in_progress[key] = now
        return True

    def _get_or_create_retry_state(self, key: str) -> RetryState:
        state = self._retry_states.get(key)
        if state is None or state.is_stale(self.config.retry_state_timeout_ms):
            state = RetryState()
            self._retry_states[key] = state
        return state

    async def _abort(self, session_id: str) -> None:
        try:
            await self.client.abort(session_id)
        except Exception as e:
            self.log.debug(f"Abort failed: {e}", session_id=session_id)

    async def _notify(
        self,
        title: str,
        message: str,
        variant: str,
        duration_ms: int = TOAST_DURATION_MS
    ) -> None:
        try:
            await self.notifier.notify(Notification(
                title=title,
                message=message,
                variant=variant,
                duration_ms=duration_ms,
            ))
        except Exception as e:
            self.log.debug(f"Notification failed: {e}", title=title)

    def cleanup_stale_entries(self) -> None:
        """Evict expired session models, retry states, active fallbacks and cooldowns."""
        now = _now_ms()

        for session_id, tracked in list(self._session_models.items()):
            if now - tracked.last_updated > SESSION_ENTRY_TTL_MS:
                del self._session_models[session_id]

        for key, state in list(self._retry_states.items()):
            if now - state.last_attempt_time > self.config.retry_state_timeout_ms:
                del self._retry_states[key]

        for key, active in list(self._active.items()):
            if now - active.timestamp > SESSION_ENTRY_TTL_MS:
                del self._active[key]
                self._in_progress.pop(key, None)

        # Dedup entries without an active attempt only matter inside the window
        for key, started in list(self._in_progress.items()):
            if key not in self._active and now - started > SESSION_ENTRY_TTL_MS:
                del self._in_progress[key]

        self.selector.cleanup_stale_entries()

    def update_config(self, config: FallbackConfig) -> None:
        self.config = config
        self.selector.update_config(config)
        self.log.debug("Fallback handler configuration updated")

    def destroy(self) -> None:
        """Drop all in-memory state."""
        self._session_models.clear()
        self._model_request_start.clear()
        self._retry_states.clear()
        self._in_progress.clear()
        self._active.clear()
        self.selector.clear()

    def get_stats(self) -> Dict[str, int]:
        return {
            "trackedSessions": len(self._session_models),
            "retryStates": len(self._retry_states),
            "inProgress": len(self._in_progress),
            "activeFallbacks": len(self._active),
        }


def _last_user_message(messages: Optional[List[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    if not messages:
        return None
    for message in reversed(messages):
        if isinstance(message, dict) and message.get("role") == "user" and message.get("id"):
            return message
    return None
