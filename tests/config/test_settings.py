"""Tests for Settings validation and helpers."""

import pytest

from proposal_factcheck.config.settings import Settings, load_settings
from proposal_factcheck.exceptions import ConfigurationError


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(gemini_api_key="k")
        assert settings.similarity_threshold_default == 0.4
        assert settings.similarity_threshold_floor == 0.15
        assert settings.evidence_cache_ttl_seconds == 600.0
        assert settings.fact_max_iterations == 2

    def test_floor_above_default_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            load_settings(similarity_threshold_default=0.2, similarity_threshold_floor=0.3)

    def test_model_for_difficulty(self) -> None:
        settings = Settings(gemini_model="base", gemini_model_hard="big", gemini_model_easy=None)
        assert settings.model_for("hard") == "big"
        assert settings.model_for("easy") == "base"
        assert settings.model_for(None) == "base"

    def test_require_credentials(self) -> None:
        with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
            Settings(gemini_api_key="").require_credentials()
        Settings(gemini_api_key="k").require_credentials()

    def test_frozen(self) -> None:
        settings = Settings(gemini_api_key="k")
        with pytest.raises(ValueError):
            settings.gemini_api_key = "other"
