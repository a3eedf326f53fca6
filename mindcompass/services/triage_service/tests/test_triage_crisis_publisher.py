"""Tests for HIGH-priority triage event publishing."""
import json

import pytest
from unittest.mock import MagicMock, patch

from mindcompass.shared.models import AssessmentMode, AssessmentResult, PriorityLevel
from mindcompass.services.triage_service.crisis_publisher import (
    EVENT_CRISIS_DETECTED,
    EVENT_PRIORITY_HIGH,
    CrisisEventPublisher,
    TriageCrisisEvent,
)


def make_result(final=PriorityLevel.HIGH, override=False):
    return AssessmentResult(
        mode=AssessmentMode.SCIENTIFIC,
        total_score=35,
        deterministic_priority=PriorityLevel.LOW if override else final,
        free_text="private text",
        classifier_priority=PriorityLevel.LOW,
        classifier_reflection="ok",
        final_priority=final,
        final_reflection="ok",
        crisis_override_applied=override,
        matched_crisis_patterns=("kill_myself",) if override else (),
        pattern_version="2026.10.02",
    )


class TestTriageCrisisEvent:
    """Tests for TriageCrisisEvent."""

    def test_override_event_type(self):
        event = TriageCrisisEvent.from_result(make_result(override=True), "hash_abc")

        assert event.event_type == EVENT_CRISIS_DETECTED
        assert event.matched_pattern_ids == ["kill_myself"]

    def test_high_score_event_type(self):
        event = TriageCrisisEvent.from_result(make_result(), "hash_abc")
        assert event.event_type == EVENT_PRIORITY_HIGH

    def test_payload_excludes_free_text(self):
        result = make_result(override=True)
        payload = TriageCrisisEvent.from_result(result, "hash_abc").to_kinesis_payload()

        assert payload["source"] == "triage-service"
        assert payload["data"]["assessment_id"] == result.assessment_id
        assert payload["data"]["alias_hash"] == "hash_abc"
        assert "private text" not in json.dumps(payload)

    def test_event_is_immutable(self):
        event = TriageCrisisEvent.from_result(make_result(), "hash_abc")
        with pytest.raises(Exception):  # FrozenInstanceError
            event.final_priority = "low"


class TestCrisisEventPublisher:
    """Tests for CrisisEventPublisher."""

    def test_non_high_is_skipped(self):
        publisher = CrisisEventPublisher(enabled=True)
        publisher._kinesis_client = MagicMock()

        assert publisher.publish(make_result(final=PriorityLevel.MEDIUM), "hash_abc") is False
        publisher._kinesis_client.put_record.assert_not_called()

    def test_disabled_returns_false(self):
        publisher = CrisisEventPublisher(enabled=False)
        assert publisher.publish(make_result(), "hash_abc") is False

    def test_publish_success(self):
        mock_kinesis = MagicMock()
        mock_kinesis.put_record.return_value = {"ShardId": "shard-001", "SequenceNumber": "1"}
        publisher = CrisisEventPublisher(stream_name="test-stream", enabled=True, region="ap-south-1")
        publisher._kinesis_client = mock_kinesis

        assert publisher.publish(make_result(override=True), "hash_abc") is True

        call_kwargs = mock_kinesis.put_record.call_args.kwargs
        assert call_kwargs["StreamName"] == "test-stream"
        assert call_kwargs["PartitionKey"] == "hash_abc"
        assert json.loads(call_kwargs["Data"])["event_type"] == EVENT_CRISIS_DETECTED

    def test_publish_failure_returns_false(self):
        mock_kinesis = MagicMock()
        mock_kinesis.put_record.side_effect = Exception("Kinesis error")
        publisher = CrisisEventPublisher(enabled=True)
        publisher._kinesis_client = mock_kinesis

        assert publisher.publish(make_result(), "hash_abc") is False

    @patch("mindcompass.services.triage_service.crisis_publisher.boto3.client")
    def test_client_init_failure_logs_fallback(self, mock_boto_client, caplog):
        mock_boto_client.side_effect = Exception("no credentials")
        publisher = CrisisEventPublisher(enabled=True)

        assert publisher.publish(make_result(), "hash_abc") is False

        messages = [r.getMessage() for r in caplog.records]
        assert "KINESIS_CLIENT_INIT_FAILED" in messages
        assert "CRISIS_EVENT_FALLBACK_LOG" in messages

    @patch("mindcompass.services.triage_service.crisis_publisher.boto3.client")
    def test_client_created_lazily(self, mock_boto_client):
        publisher = CrisisEventPublisher(enabled=True, region="eu-west-1")
        mock_boto_client.assert_not_called()

        _ = publisher.kinesis_client

        mock_boto_client.assert_called_once_with("kinesis", region_name="eu-west-1")
