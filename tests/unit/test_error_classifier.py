"""Unit tests for the rate limit error pattern registry."""

import json
import logging

import pytest

from rate_limit_fallback.config.models import LearningConfig
from rate_limit_fallback.models.patterns import ErrorPattern
from rate_limit_fallback.reliability.error_classifier import ErrorPatternRegistry
from tests.helpers.mock_exceptions import (
    MockProviderError,
    anthropic_rate_limit_error,
    api_error,
    httpx_status_error,
    message_error,
    openai_rate_limit_error,
)
from tests.helpers.patterns import learned_entry


class TestErrorDetection:
    """Test classification against the default patterns."""

    @pytest.fixture
    def registry(self):
        return ErrorPatternRegistry()

    @pytest.mark.parametrize("error", [
        api_error(429),
        api_error(500, message="Rate limit exceeded"),
        api_error(500, response_body='{"error": "quota exceeded"}'),
        message_error("Too Many Requests"),
        message_error("rate_limit reached"),
        message_error("HTTP 429 from upstream"),
        message_error("Anthropic is overloaded"),
        message_error("RESOURCE EXHAUSTED"),
        message_error("You exceeded your current quota"),
    ])
    def test_detects_rate_limit_errors(self, registry, error):
        assert registry.is_rate_limit_error(error) is True

    @pytest.mark.parametrize("error", [
        None,
        "rate limit",
        42,
        api_error(500, message="Internal server error"),
        message_error("connection reset by peer"),
        {},
    ])
    def test_ignores_other_values(self, registry, error):
        assert registry.is_rate_limit_error(error) is False

    def test_detects_sdk_exceptions(self, registry):
        assert registry.is_rate_limit_error(openai_rate_limit_error()) is True
        assert registry.is_rate_limit_error(anthropic_rate_limit_error()) is True
        assert registry.is_rate_limit_error(httpx_status_error(429)) is True
        assert registry.is_rate_limit_error(httpx_status_error(503, text="Service Unavailable")) is False

    def test_detects_loose_exception_attributes(self, registry):
        assert registry.is_rate_limit_error(MockProviderError("slow down", status_code=429)) is True
        assert registry.is_rate_limit_error(MockProviderError("slow down", status_code=500)) is False

    def test_status_regex_requires_word_boundary(self, registry):
        matched = registry.get_matched_pattern(message_error("ticket 4291 was closed"))
        assert matched is None or matched.name != "http-429"

    def test_highest_priority_pattern_wins(self, registry):
        matched = registry.get_matched_pattern(api_error(429, message="rate limit exceeded"))
        assert matched.name == "http-429"

        matched = registry.get_matched_pattern(message_error("rate limit exceeded"))
        assert matched.name == "rate-limit-general"

        matched = registry.get_matched_pattern(message_error("model overloaded"))
        assert matched.name == "anthropic-rate-limit"


class TestPatternManagement:
    """Test registration, lookup and statistics."""

    def test_default_stats(self):
        stats = ErrorPatternRegistry().get_stats()

        assert stats["total"] == 5
        assert stats["byProvider"] == {"generic": 2, "anthropic": 1, "google": 1, "openai": 1}
        assert stats["byPriority"] == {"high (90-100)": 2, "medium (70-89)": 3}

    def test_custom_patterns_are_ordered_by_priority(self):
        custom = ErrorPattern(name="gateway-throttle", patterns=["throttled"], priority=95)
        registry = ErrorPatternRegistry(custom_patterns=[custom])

        names = [p.name for p in registry.get_all_patterns()]
        assert names[:3] == ["http-429", "gateway-throttle", "rate-limit-general"]
        assert registry.is_rate_limit_error(message_error("Request throttled")) is True

    def test_register_replaces_by_name(self):
        registry = ErrorPatternRegistry()
        registry.register(ErrorPattern(name="http-429", patterns=["slow down"], priority=10))

        assert len(registry.get_all_patterns()) == 5
        assert registry.get_pattern_by_name("http-429").priority == 10
        assert registry.get_all_patterns()[-1].name == "http-429"

    def test_patterns_for_provider_include_generic(self):
        registry = ErrorPatternRegistry()

        names = {p.name for p in registry.get_patterns_for_provider("google")}
        assert names == {"http-429", "rate-limit-general", "google-rate-limit"}

    def test_remove_and_reset(self):
        registry = ErrorPatternRegistry(custom_patterns=[ErrorPattern(name="custom", patterns=["x"])])

        assert registry.remove_pattern("custom") is True
        assert registry.remove_pattern("custom") is False
        registry.remove_pattern("http-429")

        registry.reset_to_defaults()
        assert len(registry.get_all_patterns()) == 5
        assert registry.get_pattern_by_name("http-429") is not None

    @pytest.mark.asyncio
    async def test_learning_management_without_learner(self):
        registry = ErrorPatternRegistry()

        assert registry.learner is None
        assert registry.get_learning_stats() is None
        assert registry.get_learned_patterns() == []
        assert registry.get_learned_pattern_by_name("x") is None
        assert await registry.remove_learned_pattern("x") is False
        assert await registry.merge_duplicate_patterns() == 0
        assert await registry.cleanup_old_patterns() == 0

    def test_learning_requires_config_path(self, learning_config, caplog):
        with caplog.at_level(logging.WARNING):
            registry = ErrorPatternRegistry(learning_config=learning_config)

        assert registry.learner is None
        assert "pattern learning disabled" in caplog.text


class TestLearningIntegration:
    """Test the registry together with the pattern learner."""

    @pytest.mark.asyncio
    async def test_detected_errors_are_learned_and_registered(self, pattern_file, learning_config):
        registry = ErrorPatternRegistry(learning_config=learning_config, config_path=pattern_file)
        error = api_error(429, message="Rate limit exceeded for gemini")

        assert registry.is_rate_limit_error(error)
        assert registry.is_rate_limit_error(error)
        await registry.learner.wait_for_pending()

        learned = registry.get_learned_patterns()
        assert len(learned) == 1
        assert registry.get_pattern_by_name(learned[0].name).provider == "google"
        assert registry.get_learning_stats()["learnedPatterns"] == 1

    @pytest.mark.asyncio
    async def test_undetected_errors_are_not_learned(self, pattern_file, learning_config):
        registry = ErrorPatternRegistry(learning_config=learning_config, config_path=pattern_file)

        registry.is_rate_limit_error(message_error("connection reset"))
        registry.is_rate_limit_error(message_error("connection reset"))

        assert registry.get_learning_stats()["trackedPatterns"] == 0

    @pytest.mark.asyncio
    async def test_learned_patterns_load_from_storage(self, pattern_file, learning_config):
        pattern_file.write_text(json.dumps({"errorPatterns": {"learnedPatterns": [
            learned_entry("learned-azure-1", provider="azure", patterns=["throttling window"], priority=85),
        ]}}))
        registry = ErrorPatternRegistry(learning_config=learning_config, config_path=pattern_file)

        await registry.load_learned_patterns()

        assert registry.get_pattern_by_name("learned-azure-1").priority == 85
        assert registry.is_rate_limit_error(message_error("Throttling window active")) is True
        assert registry.get_learned_pattern_by_name("learned-azure-1").sample_count == 3

    @pytest.mark.asyncio
    async def test_remove_learned_pattern_by_name(self, pattern_file, learning_config):
        pattern_file.write_text(json.dumps({"errorPatterns": {"learnedPatterns": [
            learned_entry("learned-azure-1", provider="azure", patterns=["throttling window"]),
        ]}}))
        registry = ErrorPatternRegistry(learning_config=learning_config, config_path=pattern_file)
        await registry.load_learned_patterns()

        assert await registry.remove_learned_pattern("learned-azure-1") is True

        assert registry.get_pattern_by_name("learned-azure-1") is None
        assert registry.get_learned_patterns() == []
        stored = json.loads(pattern_file.read_text())["errorPatterns"]["learnedPatterns"]
        assert stored == []

    @pytest.mark.asyncio
    async def test_cleanup_unregisters_removed_patterns(self, pattern_file, learning_config):
        config = learning_config.model_copy(update={"max_learned_patterns": 1})
        pattern_file.write_text(json.dumps({"errorPatterns": {"learnedPatterns": [
            learned_entry("keep", patterns=["alpha throttle"], confidence=0.95),
            learned_entry("drop", patterns=["beta throttle"], confidence=0.6),
        ]}}))
        registry = ErrorPatternRegistry(learning_config=config, config_path=pattern_file)
        await registry.load_learned_patterns()

        assert await registry.cleanup_old_patterns() == 1

        assert registry.get_pattern_by_name("keep") is not None
        assert registry.get_pattern_by_name("drop") is None
