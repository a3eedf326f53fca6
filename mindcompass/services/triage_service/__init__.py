"""Triage Service: the check-in decision engine.

Components:
- questionnaire.py: Weekly Pulse items (static configuration)
- scoring.py: ScoringEngine, distress total and deterministic tier
- crisis_detector.py: CrisisDetector over the versioned pattern list
- classifier.py: TriageClassifier, response contract and fallback
- fusion.py: PriorityFusion, most-severe-wins plus crisis override
- resources.py: ResourceRouter over the support catalog
- session.py: CheckInSession, serializable check-in state
- dispatcher.py: SideEffectDispatcher for post-decision work
- crisis_publisher.py: Kinesis events for HIGH outcomes
- pipeline.py: TriagePipeline wiring it all together
- handler.py: Flask HTTP endpoints

Usage:
    # As HTTP service
    POST /triage {"alias": "...", "mode": "scientific", "answers": {...}, "text": "..."}

    # Direct import
    from mindcompass.services.triage_service import TriageConfig, TriagePipeline
    pipeline = TriagePipeline.from_config(TriageConfig.from_env(), llm=None)
    outcome = asyncio.run(pipeline.run(session))
"""

from .classifier import ClassifierContractError, ClassifierResult, TriageClassifier
from .config import (
    CRISIS_ACKNOWLEDGMENT,
    CRISIS_PATTERN_VERSION,
    CRISIS_PATTERNS,
    FALLBACK_REFLECTION,
    CrisisPattern,
    ScoringThresholds,
    TriageConfig,
)
from .crisis_detector import CrisisDetector, DetectionResult
from .crisis_publisher import CrisisEventPublisher, TriageCrisisEvent
from .dispatcher import SideEffectDispatcher
from .fusion import FusionDecision, PriorityFusion
from .pipeline import TriageOutcome, TriagePipeline
from .questionnaire import WEEKLY_PULSE_ITEMS, load_questionnaire
from .resources import RESOURCE_CATALOG, ResourceRouter, RoutingPlan
from .scoring import IncompleteResponseError, ScoreResult, ScoringEngine
from .session import CheckInSession

__all__ = [
    "CRISIS_ACKNOWLEDGMENT",
    "CRISIS_PATTERN_VERSION",
    "CRISIS_PATTERNS",
    "FALLBACK_REFLECTION",
    "RESOURCE_CATALOG",
    "WEEKLY_PULSE_ITEMS",
    "CheckInSession",
    "ClassifierContractError",
    "ClassifierResult",
    "CrisisDetector",
    "CrisisEventPublisher",
    "CrisisPattern",
    "DetectionResult",
    "FusionDecision",
    "IncompleteResponseError",
    "PriorityFusion",
    "ResourceRouter",
    "RoutingPlan",
    "ScoreResult",
    "ScoringEngine",
    "ScoringThresholds",
    "SideEffectDispatcher",
    "TriageClassifier",
    "TriageConfig",
    "TriageCrisisEvent",
    "TriageOutcome",
    "TriagePipeline",
    "load_questionnaire",
]
