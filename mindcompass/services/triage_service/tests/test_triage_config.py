"""Tests for triage configuration."""
import pytest
from unittest.mock import patch

from mindcompass.shared.models import PriorityLevel
from mindcompass.services.triage_service.config import (
    CRISIS_ACKNOWLEDGMENT,
    CRISIS_PATTERN_VERSION,
    ESCALATION_NOTICES,
    FALLBACK_REFLECTION,
    ScoringThresholds,
    TriageConfig,
)


class TestTriageConfig:
    """Tests for TriageConfig."""

    def test_defaults(self):
        config = TriageConfig()

        assert config.thresholds == ScoringThresholds(medium=15, high=30)
        assert config.classifier_timeout_seconds == 15.0
        assert config.crisis_publishing_enabled is False
        assert config.store_backend == "memory"
        assert config.pattern_version == CRISIS_PATTERN_VERSION

    def test_from_env(self):
        with patch.dict("os.environ", {
            "MEDIUM_THRESHOLD": "10",
            "HIGH_THRESHOLD": "20",
            "CLASSIFIER_TIMEOUT_SECONDS": "2.5",
            "CRISIS_PUBLISHING_ENABLED": "TRUE",
            "KINESIS_STREAM_NAME": "test-stream",
            "CHECKIN_STORE": "Postgres",
            "SIDE_EFFECT_WORKERS": "4",
        }):
            config = TriageConfig.from_env()

        assert config.thresholds.medium == 10
        assert config.thresholds.high == 20
        assert config.classifier_timeout_seconds == 2.5
        assert config.crisis_publishing_enabled is True
        assert config.kinesis_stream_name == "test-stream"
        assert config.store_backend == "postgres"
        assert config.side_effect_workers == 4

    def test_from_env_rejects_inverted_thresholds(self):
        with patch.dict("os.environ", {"MEDIUM_THRESHOLD": "40", "HIGH_THRESHOLD": "30"}):
            with pytest.raises(ValueError):
                TriageConfig.from_env()

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            TriageConfig(classifier_timeout_seconds=0)

    def test_rejects_unknown_store(self):
        with pytest.raises(ValueError):
            TriageConfig(store_backend="redis")

    def test_is_immutable(self):
        config = TriageConfig()
        with pytest.raises(Exception):  # FrozenInstanceError
            config.store_backend = "postgres"


class TestFixedCopy:
    """Pre-approved user-facing text."""

    def test_crisis_acknowledgment_points_to_help(self):
        assert "someone who can help" in CRISIS_ACKNOWLEDGMENT

    def test_fallback_reflection_is_neutral(self):
        assert FALLBACK_REFLECTION.startswith("Thank you for sharing")

    def test_escalation_notices_cover_medium_and_high(self):
        assert set(ESCALATION_NOTICES) == {PriorityLevel.MEDIUM, PriorityLevel.HIGH}
