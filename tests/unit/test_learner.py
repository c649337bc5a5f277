"""Unit tests for pattern learning."""

import json
from unittest.mock import Mock, patch

import pytest

from rate_limit_fallback.config.models import LearningConfig
from rate_limit_fallback.models.patterns import ErrorSignature, LearnedPattern
from rate_limit_fallback.reliability.extractor import SignatureExtractor
from rate_limit_fallback.reliability.learner import (
    PatternLearner,
    calculate_priority,
    pattern_key,
)
from rate_limit_fallback.reliability.scoring import ConfidenceScorer
from rate_limit_fallback.reliability.storage import PatternStore
from tests.helpers.mock_exceptions import api_error
from tests.helpers.patterns import learned_entry


GEMINI_LIMIT = api_error(429, message="Rate limit exceeded for gemini")


def make_learner(path, config, on_learned=None):
    return PatternLearner(
        SignatureExtractor(),
        ConfidenceScorer(config, []),
        PatternStore(path),
        config,
        on_learned=on_learned,
    )


def stored_names(path):
    document = json.loads(path.read_text())
    return [p["name"] for p in document["errorPatterns"].get("learnedPatterns", [])]


class TestPatternKey:
    """Test canonical pattern keys."""

    def test_key_is_order_and_case_insensitive(self):
        assert pattern_key("google", ["Rate Limit", "429"]) == pattern_key("google", ["429", "rate limit"])
        assert pattern_key("google", ["429", "rate limit"]) == "google:429|rate limit"

    def test_missing_provider_is_generic(self):
        assert pattern_key(None, ["429", "429"]) == "generic:429"


class TestPatternLearner:
    """Test tracking, promotion and management of learned patterns."""

    @pytest.mark.asyncio
    async def test_disabled_learner_ignores_errors(self, pattern_file):
        learner = make_learner(pattern_file, LearningConfig(enabled=False))

        learner.learn_from_error(GEMINI_LIMIT)
        learner.learn_from_error(GEMINI_LIMIT)
        await learner.wait_for_pending()

        assert learner.get_stats() == {"trackedPatterns": 0, "learnedPatterns": 0, "pendingPatterns": 0}

    @pytest.mark.asyncio
    async def test_non_error_values_are_not_tracked(self, pattern_file, learning_config):
        learner = make_learner(pattern_file, learning_config)

        learner.learn_from_error(None)
        learner.learn_from_error("rate limit")

        assert learner.get_stats()["trackedPatterns"] == 0

    @pytest.mark.asyncio
    async def test_single_observation_is_tracked_not_promoted(self, pattern_file, learning_config):
        learner = make_learner(pattern_file, learning_config)

        learner.learn_from_error(GEMINI_LIMIT)
        await learner.wait_for_pending()

        stats = learner.get_stats()
        assert stats["trackedPatterns"] == 1
        assert stats["pendingPatterns"] == 0
        assert learner.get_learned_patterns() == []

    @pytest.mark.asyncio
    async def test_repeated_error_is_promoted_and_persisted(self, pattern_file, learning_config):
        on_learned = Mock()
        learner = make_learner(pattern_file, learning_config, on_learned=on_learned)

        learner.learn_from_error(GEMINI_LIMIT)
        learner.learn_from_error(GEMINI_LIMIT)
        await learner.wait_for_pending()

        learned = learner.get_learned_patterns()
        assert len(learned) == 1
        pattern = learned[0]
        assert pattern.name.startswith("learned-google-")
        assert pattern.provider == "google"
        assert "429" in pattern.patterns
        assert "rate limit" in pattern.patterns
        assert pattern.sample_count == 2
        assert pattern.confidence >= learning_config.auto_approve_threshold
        assert pattern.learned_at.endswith("Z")

        assert stored_names(pattern_file) == [pattern.name]
        on_learned.assert_called_once_with(pattern)
        assert learner.get_stats()["trackedPatterns"] == 0

    @pytest.mark.asyncio
    async def test_low_confidence_candidate_stays_pending(self, pattern_file, learning_config):
        config = learning_config.model_copy(update={"auto_approve_threshold": 0.99})
        learner = make_learner(pattern_file, config)

        learner.learn_from_error(GEMINI_LIMIT)
        learner.learn_from_error(GEMINI_LIMIT)
        await learner.wait_for_pending()

        assert learner.get_learned_patterns() == []
        assert learner.get_stats()["pendingPatterns"] == 1
        assert stored_names(pattern_file) == []
        assert await learner.process_patterns() == 0

    def test_without_running_loop_candidates_wait_for_processing(self, pattern_file, learning_config):
        learner = make_learner(pattern_file, learning_config)

        learner.learn_from_error(GEMINI_LIMIT)
        learner.learn_from_error(GEMINI_LIMIT)

        assert learner.get_stats()["pendingPatterns"] == 1
        assert learner.get_learned_patterns() == []

    @pytest.mark.asyncio
    async def test_process_patterns_promotes_pending_candidates(self, pattern_file, learning_config):
        learner = make_learner(pattern_file, learning_config)
        with patch.object(learner, "_schedule"):
            learner.learn_from_error(GEMINI_LIMIT)
            learner.learn_from_error(GEMINI_LIMIT)

        assert await learner.process_patterns() == 1
        assert len(learner.get_learned_patterns()) == 1

    @pytest.mark.asyncio
    async def test_repromotion_updates_existing_pattern(self, pattern_file, learning_config):
        learner = make_learner(pattern_file, learning_config)
        for _ in range(2):
            learner.learn_from_error(GEMINI_LIMIT)
        await learner.wait_for_pending()
        first = learner.get_learned_patterns()[0]

        for _ in range(2):
            learner.learn_from_error(GEMINI_LIMIT)
        await learner.wait_for_pending()

        learned = learner.get_learned_patterns()
        assert len(learned) == 1
        assert learned[0].name == first.name
        assert learned[0].sample_count == 4
        assert stored_names(pattern_file) == [first.name]

    @pytest.mark.asyncio
    async def test_same_millisecond_promotions_get_distinct_names(self, pattern_file, learning_config):
        learner = make_learner(pattern_file, learning_config)
        errors = [
            api_error(429, message="Too many requests"),
            api_error(429, message="Quota exceeded"),
            api_error(429, message="Request limit reached"),
        ]

        with patch("rate_limit_fallback.reliability.learner.time.time", return_value=100.0):
            for error in errors:
                learner.learn_from_error(error)
                learner.learn_from_error(error)
            await learner.wait_for_pending()

        names = [p.name for p in learner.get_learned_patterns()]
        assert len(names) == 3
        assert len(set(names)) == 3
        assert sorted(stored_names(pattern_file)) == sorted(names)

    @pytest.mark.asyncio
    async def test_observations_outside_window_start_over(self, pattern_file, learning_config):
        config = learning_config.model_copy(update={"learning_window_ms": 1000})
        learner = make_learner(pattern_file, config)

        with patch("rate_limit_fallback.reliability.learner.time.time", return_value=100.0):
            learner.learn_from_error(GEMINI_LIMIT)
        with patch("rate_limit_fallback.reliability.learner.time.time", return_value=105.0), \
                patch.object(learner, "_schedule") as schedule:
            learner.learn_from_error(GEMINI_LIMIT)

        schedule.assert_not_called()
        assert learner.get_stats() == {"trackedPatterns": 1, "learnedPatterns": 0, "pendingPatterns": 0}

    @pytest.mark.asyncio
    async def test_clear_tracked_patterns_keeps_learned(self, pattern_file, learning_config):
        learner = make_learner(pattern_file, learning_config)
        for _ in range(2):
            learner.learn_from_error(GEMINI_LIMIT)
        await learner.wait_for_pending()
        learner.learn_from_error(api_error(429, message="quota exceeded"))

        learner.clear_tracked_patterns()

        stats = learner.get_stats()
        assert stats["trackedPatterns"] == 0
        assert stats["learnedPatterns"] == 1

    @pytest.mark.asyncio
    async def test_load_and_lookup_learned_patterns(self, pattern_file, learning_config):
        pattern_file.write_text(json.dumps({"errorPatterns": {"learnedPatterns": [
            learned_entry("learned-google-1", provider="google", patterns=["429", "resource exhausted"]),
            learned_entry("learned-generic-1", patterns=["quota exceeded"]),
            learned_entry("learned-openai-1", provider="openai", patterns=["insufficient_quota"]),
        ]}}))
        learner = make_learner(pattern_file, learning_config)

        await learner.load_learned_patterns()

        assert len(learner.get_learned_patterns()) == 3
        names = {p.name for p in learner.get_learned_patterns_for_provider("google")}
        assert names == {"learned-google-1", "learned-generic-1"}
        assert learner.get_learned_pattern_by_name("learned-openai-1").provider == "openai"
        assert learner.get_learned_pattern_by_name("missing") is None

    @pytest.mark.asyncio
    async def test_remove_learned_pattern_by_key(self, pattern_file, learning_config):
        pattern_file.write_text(json.dumps({"errorPatterns": {"learnedPatterns": [
            learned_entry("learned-google-1", provider="google", patterns=["429", "rate limit"]),
        ]}}))
        learner = make_learner(pattern_file, learning_config)
        await learner.load_learned_patterns()

        assert await learner.remove_learned_pattern("google:nope") is False
        assert await learner.remove_learned_pattern(pattern_key("google", ["rate limit", "429"])) is True

        assert learner.get_learned_patterns() == []
        assert stored_names(pattern_file) == []

    @pytest.mark.asyncio
    async def test_add_learned_pattern(self, pattern_file, learning_config):
        learner = make_learner(pattern_file, learning_config)
        pattern = LearnedPattern.model_validate(learned_entry("manual", provider="azure"))

        await learner.add_learned_pattern(pattern)

        assert learner.get_learned_pattern_by_name("manual") == pattern
        assert stored_names(pattern_file) == ["manual"]

    @pytest.mark.asyncio
    async def test_cleanup_reloads_after_removal(self, pattern_file, learning_config):
        config = learning_config.model_copy(update={"max_learned_patterns": 2})
        pattern_file.write_text(json.dumps({"errorPatterns": {"learnedPatterns": [
            learned_entry(f"p{i}", patterns=[f"pattern {i}"], confidence=0.5 + i / 10) for i in range(4)
        ]}}))
        learner = make_learner(pattern_file, config)
        await learner.load_learned_patterns()

        assert await learner.cleanup_old_patterns() == 2

        assert {p.name for p in learner.get_learned_patterns()} == {"p2", "p3"}

    def test_merge_patterns(self, pattern_file, learning_config):
        learner = make_learner(pattern_file, learning_config)

        assert learner.merge_patterns([]) is None
        merged = learner.merge_patterns([
            ErrorSignature(patterns=["429"], provider="google"),
            ErrorSignature(patterns=["429", "Quota Exceeded"], provider="google"),
        ])
        assert merged.patterns == ["429", "quota exceeded"]
        assert merged.provider == "google"


class TestCalculatePriority:
    """Test priority derivation for promoted patterns."""

    def test_provider_and_pattern_bonuses(self):
        signature = ErrorSignature(patterns=["429", "rate limit"], provider="google")
        # floor(0.8 * 50) + 10 + 4
        assert calculate_priority(signature, 0.8) == 54

    def test_pattern_bonus_is_capped(self):
        signature = ErrorSignature(patterns=[str(i) for i in range(10)])
        assert calculate_priority(signature, 1.0) == 60

    def test_priority_has_floor_of_one(self):
        assert calculate_priority(ErrorSignature(patterns=[]), 0.0) == 1
