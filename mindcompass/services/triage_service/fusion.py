"""Priority fusion: most-severe-wins plus a hard crisis override.

Up to three signals are reconciled:
    1. Deterministic questionnaire priority (scientific mode only)
    2. Classifier priority + reflection
    3. Crisis detector verdict on the free text

Disagreements always resolve toward the more severe tier. A crisis match
forces HIGH and the pre-approved acknowledgment, and nothing can weaken it.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from mindcompass.shared.models import (
    AssessmentMode,
    AssessmentResult,
    PriorityLevel,
)
from .classifier import ClassifierResult
from .config import CRISIS_ACKNOWLEDGMENT, ESCALATION_NOTICES
from .crisis_detector import CrisisDetector, DetectionResult

logger = logging.getLogger(__name__)

SIGNAL_DETERMINISTIC = "deterministic"
SIGNAL_CLASSIFIER = "classifier"
SIGNAL_TIE = "tie"
SIGNAL_CRISIS_OVERRIDE = "crisis_override"


@dataclass(frozen=True)
class FusionDecision:
    """Final priority and text for one check-in."""
    final_priority: PriorityLevel
    reflection: str
    crisis_override_applied: bool
    winning_signal: str
    escalation_notice: Optional[str] = None
    matched_pattern_ids: Tuple[str, ...] = ()
    pattern_version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "final_priority": self.final_priority.value,
            "reflection": self.reflection,
            "crisis_override_applied": self.crisis_override_applied,
            "winning_signal": self.winning_signal,
            "escalation_notice": self.escalation_notice,
        }


class PriorityFusion:
    """Combines deterministic, classifier and crisis signals."""

    def __init__(self, crisis_detector: Optional[CrisisDetector] = None):
        self.crisis_detector = crisis_detector or CrisisDetector()

    def fuse(
        self,
        deterministic: Optional[PriorityLevel],
        classifier_result: ClassifierResult,
        free_text: Optional[str],
        detection: Optional[DetectionResult] = None,
    ) -> FusionDecision:
        """Produce the final decision.

        Args:
            deterministic: Questionnaire priority, or None in journal mode
            classifier_result: Output of TriageClassifier (possibly fallback)
            free_text: The user's reflection, scanned for crisis language
            detection: Pre-computed detector verdict for ``free_text``; the
                text is scanned here when omitted

        Returns:
            FusionDecision with final priority and reflection
        """
        if detection is None:
            detection = self.crisis_detector.scan(free_text)

        # Crisis override takes precedence over every other signal
        if detection.is_crisis:
            logger.critical(
                "FUSION_CRISIS_OVERRIDE",
                extra={
                    "deterministic_priority": deterministic.value if deterministic else None,
                    "classifier_priority": classifier_result.priority.value,
                    "matched_pattern_ids": list(detection.matched_pattern_ids),
                    "final_priority": PriorityLevel.HIGH.value,
                },
            )
            return FusionDecision(
                final_priority=PriorityLevel.HIGH,
                reflection=CRISIS_ACKNOWLEDGMENT,
                crisis_override_applied=True,
                winning_signal=SIGNAL_CRISIS_OVERRIDE,
                matched_pattern_ids=detection.matched_pattern_ids,
                pattern_version=detection.pattern_version,
            )

        classifier_priority = classifier_result.priority
        escalation_notice = None

        if deterministic is None:
            final_priority = classifier_priority
            winning_signal = SIGNAL_CLASSIFIER
        elif deterministic.severity > classifier_priority.severity:
            final_priority = deterministic
            winning_signal = SIGNAL_DETERMINISTIC
            # The classifier text was written for a lower tier
            escalation_notice = ESCALATION_NOTICES.get(deterministic)
        elif classifier_priority.severity > deterministic.severity:
            final_priority = classifier_priority
            winning_signal = SIGNAL_CLASSIFIER
        else:
            final_priority = classifier_priority
            winning_signal = SIGNAL_TIE

        logger.info(
            "FUSION_COMPLETED",
            extra={
                "deterministic_priority": deterministic.value if deterministic else None,
                "classifier_priority": classifier_priority.value,
                "classifier_source": classifier_result.source,
                "final_priority": final_priority.value,
                "winning_signal": winning_signal,
            },
        )

        return FusionDecision(
            final_priority=final_priority,
            reflection=classifier_result.reflection,
            crisis_override_applied=False,
            winning_signal=winning_signal,
            escalation_notice=escalation_notice,
            pattern_version=detection.pattern_version,
        )

    def build_result(
        self,
        mode: AssessmentMode,
        total_score: Optional[int],
        deterministic: Optional[PriorityLevel],
        free_text: Optional[str],
        classifier_result: ClassifierResult,
        decision: FusionDecision,
    ) -> AssessmentResult:
        """Assemble the immutable AssessmentResult for persistence/display."""
        return AssessmentResult(
            mode=mode,
            total_score=total_score,
            deterministic_priority=deterministic,
            free_text=free_text or "",
            classifier_priority=classifier_result.priority,
            classifier_reflection=classifier_result.reflection,
            final_priority=decision.final_priority,
            final_reflection=decision.reflection,
            crisis_override_applied=decision.crisis_override_applied,
            classifier_source=classifier_result.source,
            escalation_notice=decision.escalation_notice,
            matched_crisis_patterns=decision.matched_pattern_ids,
            pattern_version=decision.pattern_version,
        )
