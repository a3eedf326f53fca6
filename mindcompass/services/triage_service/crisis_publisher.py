"""Crisis event publisher for the triage pipeline.

Publishes HIGH-priority outcomes to a Kinesis stream so follow-up
(outreach review, safety audit) is decoupled from the request path.

Failure Handling:
    - Publishing failure does NOT block or change the triage response
    - Failures are logged at CRITICAL level with the payload for replay
"""
import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3

from mindcompass.shared.models import AssessmentResult, PriorityLevel

logger = logging.getLogger(__name__)

EVENT_CRISIS_DETECTED = "triage.crisis.detected"
EVENT_PRIORITY_HIGH = "triage.priority.high"


@dataclass(frozen=True)
class TriageCrisisEvent:
    """Immutable HIGH-priority triage event."""
    event_id: str
    assessment_id: str
    alias_hash: str
    event_type: str = EVENT_PRIORITY_HIGH
    final_priority: str = PriorityLevel.HIGH.value
    crisis_override_applied: bool = False
    matched_pattern_ids: List[str] = field(default_factory=list)
    pattern_version: str = ""
    classifier_source: str = ""
    escalation_path: str = "helpline_handoff"
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_result(cls, result: AssessmentResult, alias_hash: str) -> "TriageCrisisEvent":
        return cls(
            event_id=f"evt_{uuid.uuid4().hex[:12]}",
            assessment_id=result.assessment_id,
            alias_hash=alias_hash,
            event_type=EVENT_CRISIS_DETECTED if result.crisis_override_applied else EVENT_PRIORITY_HIGH,
            final_priority=result.final_priority.value,
            crisis_override_applied=result.crisis_override_applied,
            matched_pattern_ids=list(result.matched_crisis_patterns),
            pattern_version=result.pattern_version,
            classifier_source=result.classifier_source,
        )

    def to_kinesis_payload(self) -> Dict[str, Any]:
        """Convert to Kinesis record payload."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat() + "Z",
            "source": "triage-service",
            "data": {
                "assessment_id": self.assessment_id,
                "alias_hash": self.alias_hash,
                "final_priority": self.final_priority,
                "crisis_override_applied": self.crisis_override_applied,
                "matched_pattern_ids": self.matched_pattern_ids,
                "pattern_version": self.pattern_version,
                "classifier_source": self.classifier_source,
                "escalation_path": self.escalation_path,
            }
        }


class CrisisEventPublisher:
    """Publishes HIGH-priority triage events to Kinesis."""

    def __init__(
        self,
        stream_name: str = "mindcompass-crisis-events",
        enabled: bool = True,
        region: Optional[str] = None,
    ):
        """Initialize publisher.

        Args:
            stream_name: Kinesis stream name
            enabled: Whether publishing is enabled (disable for local dev)
            region: AWS region (defaults to AWS_REGION env var)
        """
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region or os.getenv("AWS_REGION", "ap-south-1")
        self._kinesis_client = None

        logger.info(
            "CRISIS_PUBLISHER_INITIALIZED",
            extra={
                "stream_name": stream_name,
                "enabled": enabled,
                "region": self.region,
            }
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of Kinesis client."""
        if self._kinesis_client is None and self.enabled:
            try:
                self._kinesis_client = boto3.client(
                    "kinesis",
                    region_name=self.region,
                )
            except Exception as e:
                logger.error(
                    "KINESIS_CLIENT_INIT_FAILED",
                    extra={"error": str(e)}
                )
        return self._kinesis_client

    def publish(self, result: AssessmentResult, alias_hash: str) -> bool:
        """Publish a HIGH-priority triage outcome.

        Args:
            result: Final assessment result (must be HIGH)
            alias_hash: Hashed alias, used as partition key

        Returns:
            True if published successfully, False otherwise. Never raises.
        """
        if result.final_priority is not PriorityLevel.HIGH:
            logger.info(
                "CRISIS_PUBLISH_SKIPPED",
                extra={"assessment_id": result.assessment_id, "reason": "not_high_priority"}
            )
            return False

        if not self.enabled:
            logger.info(
                "CRISIS_PUBLISH_SKIPPED",
                extra={"assessment_id": result.assessment_id, "reason": "publishing_disabled"}
            )
            return False

        event = TriageCrisisEvent.from_result(result, alias_hash)
        payload = event.to_kinesis_payload()

        try:
            if self.kinesis_client is None:
                logger.critical(
                    "CRISIS_EVENT_FALLBACK_LOG",
                    extra={
                        "event_id": event.event_id,
                        "payload": json.dumps(payload),
                        "reason": "kinesis_client_unavailable",
                        "action": "MANUAL_PROCESSING_REQUIRED",
                    }
                )
                return False

            response = self.kinesis_client.put_record(
                StreamName=self.stream_name,
                Data=json.dumps(payload),
                PartitionKey=alias_hash,
            )

            logger.critical(
                "CRISIS_EVENT_PUBLISHED",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_type,
                    "assessment_id": result.assessment_id,
                    "alias_hash": alias_hash,
                    "shard_id": response.get("ShardId"),
                    "sequence_number": response.get("SequenceNumber"),
                }
            )
            return True

        except Exception as e:
            logger.critical(
                "CRISIS_EVENT_PUBLISH_FAILED",
                extra={
                    "event_id": event.event_id,
                    "assessment_id": result.assessment_id,
                    "alias_hash": alias_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "MANUAL_REVIEW_REQUIRED",
                    "payload": json.dumps(payload),
                }
            )
            return False
