"""Shared pytest fixtures for rate limit fallback tests."""

import json
import logging

import pytest
from dotenv import load_dotenv
from unittest.mock import AsyncMock, Mock

# Load environment variables from .env file for tests
load_dotenv()

from rate_limit_fallback.config.models import FallbackConfig, LearningConfig, MetricsConfig
from rate_limit_fallback.models.fallback import FallbackModel
from rate_limit_fallback.observability.metrics import MetricsManager
from rate_limit_fallback.session.tracker import SubagentTracker


@pytest.fixture(autouse=True)
def isolated_config_env(monkeypatch):
    """Keep a developer's RATE_LIMIT_FALLBACK_CONFIG out of the tests."""
    monkeypatch.delenv("RATE_LIMIT_FALLBACK_CONFIG", raising=False)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Remove handlers installed by configure_logging during a test."""
    yield
    logger = logging.getLogger("rate_limit_fallback")
    for handler in list(logger.handlers):
        if getattr(handler, "_rate_limit_fallback", False):
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fallback_models():
    return [
        FallbackModel(provider_id="anthropic", model_id="claude"),
        FallbackModel(provider_id="google", model_id="gemini"),
        FallbackModel(provider_id="openai", model_id="gpt-4o"),
    ]


@pytest.fixture
def fallback_config(fallback_models):
    """Configuration with three fallback models and the default mode (cycle)."""
    return FallbackConfig(fallback_models=fallback_models)


@pytest.fixture
def learning_config():
    """Learning enabled with a low bar so tests can promote quickly."""
    return LearningConfig(
        enabled=True,
        auto_approve_threshold=0.5,
        min_error_frequency=2,
        max_learned_patterns=20,
    )


@pytest.fixture
def user_message():
    return {
        "id": "msg-1",
        "role": "user",
        "parts": [
            {"type": "text", "text": "Refactor the parser"},
            {"type": "file", "path": "src/parser.py", "mediaType": "text/x-python"},
            {"type": "tool", "tool": "bash"},
        ],
    }


@pytest.fixture
def mock_client(user_message):
    """Session client and notifier double with one user message in history."""
    client = Mock()
    client.abort = AsyncMock()
    client.fetch_messages = AsyncMock(return_value=[
        {"id": "msg-0", "role": "assistant", "parts": []},
        user_message,
        {"id": "msg-2", "role": "assistant", "parts": [{"type": "text", "text": "..."}]},
    ])
    client.resend = AsyncMock()
    client.notify = AsyncMock()
    return client


@pytest.fixture
def tracker():
    return SubagentTracker(max_subagent_depth=3)


@pytest.fixture
def metrics():
    return MetricsManager(MetricsConfig(enabled=True))


@pytest.fixture
def pattern_file(tmp_path):
    """A configuration document that already holds unrelated settings."""
    path = tmp_path / "rate-limit-fallback.json"
    path.write_text(json.dumps({"cooldownMs": 1000, "errorPatterns": {"enableLearning": True}}))
    return path


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end tests across the event router")
