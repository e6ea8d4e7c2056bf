"""
Tests for application settings.

Tests verify:
- Defaults match the documented values
- AGENT_* environment variables override defaults, including nested model configs
- Validation rejects out-of-range values
- get_settings() caches until cache_clear()
"""

import pytest
from pydantic import ValidationError

from libs.common.settings import Settings, get_settings


class TestDefaults:
    def test_retrieval_defaults(self):
        settings = Settings()

        assert settings.retrieval_top_k == 10
        assert settings.narrow_filter_top_k == 10
        assert settings.broaden_filter_top_k == 15
        assert settings.min_narrow_results == 2
        assert settings.rrf_k == 60
        assert settings.rrf_vector_weight == 0.5
        assert settings.confidence_threshold == 0.5

    def test_quality_and_deadline_defaults(self):
        settings = Settings()

        assert settings.max_quality_retries == 1
        assert settings.invoke_deadline_ms == 60_000
        assert settings.stream_deadline_ms == 120_000
        assert settings.graph_max_steps == 25

    def test_breaker_defaults(self):
        settings = Settings()

        assert settings.llm_breaker.failure_threshold == 3
        assert settings.llm_breaker.reset_timeout_s == 60.0
        assert settings.vector_breaker.failure_threshold == 5
        assert settings.web_search_breaker.request_timeout_s == 15.0

    def test_feature_flags_enabled_by_default(self):
        settings = Settings()

        assert settings.feature_quality_checker
        assert settings.feature_retrieval_expansion
        assert settings.feature_query_planner
        assert settings.feature_emotional_support
        assert settings.feature_conversation_memory


class TestEnvironmentOverrides:
    def test_scalar_override(self, monkeypatch):
        monkeypatch.setenv("AGENT_CONFIDENCE_THRESHOLD", "0.7")
        monkeypatch.setenv("AGENT_FEATURE_QUALITY_CHECKER", "false")

        settings = Settings()

        assert settings.confidence_threshold == 0.7
        assert settings.feature_quality_checker is False

    def test_nested_model_override(self, monkeypatch):
        monkeypatch.setenv("AGENT_SYNTHESIZER_MODEL__TEMPERATURE", "0.4")

        settings = Settings()

        assert settings.synthesizer_model.temperature == 0.4
        assert settings.synthesizer_model.model == "gpt-4o"

    def test_app_env_from_test_fixture(self):
        assert Settings().app_env == "test"


class TestValidation:
    def test_confidence_threshold_out_of_range(self):
        with pytest.raises(ValidationError):
            Settings(confidence_threshold=1.5)

    def test_retry_window_must_not_shrink(self):
        with pytest.raises(ValidationError):
            Settings(retry_initial_wait_s=5.0, retry_max_wait_s=1.0)

    def test_unknown_app_env(self):
        with pytest.raises(ValidationError):
            Settings(app_env="qa")


def test_get_settings_is_cached(monkeypatch):
    """Cached settings only pick up environment changes after cache_clear()."""
    first = get_settings()
    monkeypatch.setenv("AGENT_RETRIEVAL_TOP_K", "3")

    assert get_settings() is first
    assert get_settings().retrieval_top_k == 10

    get_settings.cache_clear()
    assert get_settings().retrieval_top_k == 3
