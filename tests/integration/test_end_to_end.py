"""End-to-end tests driving the event router with host events."""

import json

import pytest

from rate_limit_fallback.config.models import FallbackConfig
from rate_limit_fallback.fallback.plugin import RateLimitFallback
from rate_limit_fallback.models.fallback import FallbackModel
from rate_limit_fallback.reliability.error_classifier import ErrorPatternRegistry


RATE_LIMIT = {"name": "APIError", "data": {"statusCode": 429}}


def events_of(client):
    """Collaborator calls in order, with notification titles and resend models inlined."""
    events = []
    for name, args, _ in client.mock_calls:
        if name == "notify":
            events.append(("notify", args[0].title))
        elif name == "resend":
            events.append(("resend", args[2].key))
        elif name == "abort":
            events.append(("abort", args[0]))
    return events


def assistant_message(session_id, message_id, provider_id, model_id, error=None):
    info = {
        "id": message_id,
        "sessionID": session_id,
        "role": "assistant",
        "providerID": provider_id,
        "modelID": model_id,
    }
    if error is not None:
        info["error"] = error
    return {"type": "message.updated", "properties": {"info": info}}


@pytest.mark.integration
class TestEndToEnd:
    """Full fallback episodes from host events to collaborator calls."""

    @pytest.fixture
    def two_models(self):
        return [
            FallbackModel(provider_id="anthropic", model_id="claude"),
            FallbackModel(provider_id="google", model_id="gemini"),
        ]

    @pytest.mark.asyncio
    async def test_session_error_switches_to_next_model(self, two_models, mock_client):
        plugin = RateLimitFallback(FallbackConfig(fallback_models=two_models), mock_client)

        await plugin.handle_event(assistant_message("S", "msg-0", "anthropic", "claude"))
        await plugin.handle_event({
            "type": "session.error",
            "properties": {"sessionID": "S", "error": RATE_LIMIT},
        })

        assert events_of(mock_client) == [
            ("abort", "S"),
            ("notify", "Rate Limit Detected"),
            ("notify", "Retrying"),
            ("resend", "google/gemini"),
            ("notify", "Fallback Successful"),
        ]
        retrying = mock_client.notify.call_args_list[1].args[0]
        assert "google/gemini" in retrying.message
        assert plugin.handler.get_session_model("S").key == "google/gemini"

    @pytest.mark.asyncio
    async def test_stop_mode_with_no_models(self, mock_client):
        config = FallbackConfig(fallback_models=[], fallback_mode="stop")
        plugin = RateLimitFallback(config, mock_client)

        await plugin.handle_event({
            "type": "session.error",
            "properties": {"sessionID": "S", "error": RATE_LIMIT},
        })

        last = mock_client.notify.call_args_list[-1].args[0]
        assert last.title == "No Fallback Available"
        assert last.message == "All fallback models exhausted"
        mock_client.resend.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_completion_event_closes_the_attempt(self, two_models, mock_client, metrics):
        config = FallbackConfig(fallback_models=two_models)
        plugin = RateLimitFallback(config, mock_client, metrics=metrics)

        await plugin.handle_event(assistant_message("S", "msg-1", "anthropic", "claude", error=RATE_LIMIT))
        await plugin.handle_event(assistant_message("S", "msg-1", "google", "gemini"))

        data = metrics.get_metrics()
        assert data.rate_limits["anthropic/claude"].count == 1
        assert data.fallbacks.successful == 1
        assert data.fallbacks.by_target_model["google/gemini"].successful == 1
        assert plugin.handler.get_stats()["activeFallbacks"] == 0

    @pytest.mark.asyncio
    async def test_subagent_error_falls_back_on_root(self, fallback_config, mock_client):
        plugin = RateLimitFallback(fallback_config, mock_client)

        await plugin.handle_event({"type": "session.created", "properties": {"info": {"id": "sub", "parentID": "root"}}})
        await plugin.handle_event(assistant_message("sub", "msg-5", "anthropic", "claude", error=RATE_LIMIT))

        mock_client.abort.assert_awaited_once_with("root")
        assert plugin.handler.get_session_model("root").key == "google/gemini"
        assert plugin.handler.get_session_model("sub").key == "google/gemini"

    @pytest.mark.asyncio
    async def test_repeated_rate_limits_are_learned(self, pattern_file, learning_config, fallback_config, mock_client):
        registry = ErrorPatternRegistry(learning_config=learning_config, config_path=pattern_file)
        plugin = RateLimitFallback(fallback_config, mock_client, registry=registry)
        error = {"name": "APIError", "data": {"statusCode": 429, "message": "Gemini quota exceeded"}}

        for session_id in ("A", "B"):
            await plugin.handle_event({
                "type": "session.error",
                "properties": {"sessionID": session_id, "error": error},
            })
        await plugin.stop()

        stored = json.loads(pattern_file.read_text())["errorPatterns"]["learnedPatterns"]
        assert len(stored) == 1
        assert stored[0]["provider"] == "google"
        assert "quota exceeded" in stored[0]["patterns"]
        assert json.loads(pattern_file.read_text())["cooldownMs"] == 1000
