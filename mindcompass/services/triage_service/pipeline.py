"""Triage pipeline: one check-in in, one final decision + routing plan out.

Flow:
    1. Score the Weekly Pulse (scientific mode only). Incomplete answers
       are rejected here, before any remote call.
    2. Crisis detection (worker thread) and the classifier run concurrently.
       The detector never waits on the classifier.
    3. Fuse, build the AssessmentResult, route resources.
    4. Queue persistence and crisis notification on the side-effect
       dispatcher. The outcome is returned without waiting for them.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from mindcompass.shared.models import AssessmentResult, PriorityLevel
from mindcompass.shared.utils import hash_pii
from mindcompass.services.checkin_service import CheckInStore, build_store
from mindcompass.services.llm_service import BaseLLM
from .classifier import TriageClassifier
from .config import TriageConfig
from .crisis_detector import CrisisDetector
from .crisis_publisher import CrisisEventPublisher
from .dispatcher import SideEffectDispatcher
from .fusion import PriorityFusion
from .resources import ResourceRouter, RoutingPlan
from .scoring import ScoreResult, ScoringEngine
from .session import CheckInSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriageOutcome:
    """What the caller shows the user."""
    result: AssessmentResult
    plan: RoutingPlan
    score: Optional[ScoreResult] = None
    winning_signal: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assessment": self.result.to_dict(),
            "routing": self.plan.to_dict(),
            "score": self.score.to_dict() if self.score else None,
            "winning_signal": self.winning_signal,
        }


class TriagePipeline:
    """Runs scoring, detection, classification, fusion and routing."""

    def __init__(
        self,
        scoring_engine: ScoringEngine,
        crisis_detector: CrisisDetector,
        classifier: TriageClassifier,
        fusion: Optional[PriorityFusion] = None,
        router: Optional[ResourceRouter] = None,
        store: Optional[CheckInStore] = None,
        publisher: Optional[CrisisEventPublisher] = None,
        dispatcher: Optional[SideEffectDispatcher] = None,
    ):
        """Initialize pipeline.

        Args:
            scoring_engine: Weekly Pulse scorer
            crisis_detector: Deterministic crisis-language detector
            classifier: Contract-enforcing classifier (never raises)
            fusion: Priority fusion (built on ``crisis_detector`` if omitted)
            router: Resource router (default catalog if omitted)
            store: Check-in store; persistence is skipped when None
            publisher: Crisis event publisher; skipped when None
            dispatcher: Side-effect work queue
        """
        self.scoring_engine = scoring_engine
        self.crisis_detector = crisis_detector
        self.classifier = classifier
        self.fusion = fusion or PriorityFusion(crisis_detector)
        self.router = router or ResourceRouter()
        self.store = store
        self.publisher = publisher
        self.dispatcher = dispatcher or SideEffectDispatcher()

        logger.info(
            "TRIAGE_PIPELINE_INITIALIZED",
            extra={
                "pattern_version": crisis_detector.pattern_version,
                "store_enabled": store is not None,
                "publisher_enabled": publisher is not None and publisher.enabled,
            },
        )

    @classmethod
    def from_config(
        cls,
        config: TriageConfig,
        llm: Optional[BaseLLM] = None,
        store: Optional[CheckInStore] = None,
        publisher: Optional[CrisisEventPublisher] = None,
    ) -> "TriagePipeline":
        """Wire a pipeline from runtime configuration.

        Args:
            config: Triage configuration
            llm: Classification backend; None routes every check-in through
                the conservative fallback
            store: Check-in store (built from ``config.store_backend`` if omitted)
            publisher: Crisis publisher (built from config if omitted)
        """
        detector = CrisisDetector(pattern_version=config.pattern_version)
        scoring_engine = ScoringEngine(thresholds=config.thresholds)
        return cls(
            scoring_engine=scoring_engine,
            crisis_detector=detector,
            classifier=TriageClassifier(
                llm,
                crisis_detector=detector,
                timeout_seconds=config.classifier_timeout_seconds,
                max_score=scoring_engine.max_score,
            ),
            fusion=PriorityFusion(detector),
            store=store if store is not None else build_store(config),
            publisher=publisher if publisher is not None else CrisisEventPublisher(
                stream_name=config.kinesis_stream_name,
                enabled=config.crisis_publishing_enabled,
            ),
            dispatcher=SideEffectDispatcher(max_workers=config.side_effect_workers),
        )

    async def run(self, session: CheckInSession) -> TriageOutcome:
        """Triage one check-in.

        Args:
            session: Completed check-in session

        Returns:
            TriageOutcome with the final result and routing plan

        Raises:
            IncompleteResponseError: Scientific-mode session with unanswered items
        """
        score: Optional[ScoreResult] = None
        if session.uses_questionnaire:
            score = self.scoring_engine.score(session.answers)

        total_score = score.total_score if score else None
        deterministic = score.priority if score else None
        text = session.free_text

        detection, classifier_result = await asyncio.gather(
            asyncio.to_thread(self.crisis_detector.scan, text),
            self.classifier.classify(total_score, text),
        )

        decision = self.fusion.fuse(deterministic, classifier_result, text, detection=detection)
        result = self.fusion.build_result(
            mode=session.mode,
            total_score=total_score,
            deterministic=deterministic,
            free_text=text,
            classifier_result=classifier_result,
            decision=decision,
        )
        plan = self.router.route(result.final_priority)

        logger.info(
            "TRIAGE_COMPLETED",
            extra={
                "assessment_id": result.assessment_id,
                "alias_hash": hash_pii(session.alias),
                "mode": session.mode.value,
                "final_priority": result.final_priority.value,
                "winning_signal": decision.winning_signal,
                "crisis_override_applied": result.crisis_override_applied,
                "classifier_source": result.classifier_source,
            },
        )

        self._dispatch_side_effects(session, result)

        return TriageOutcome(
            result=result,
            plan=plan,
            score=score,
            winning_signal=decision.winning_signal,
        )

    def _dispatch_side_effects(self, session: CheckInSession, result: AssessmentResult) -> None:
        """Queue persistence and notification; never waits on them."""
        if self.store is not None:
            self.dispatcher.dispatch("record_check_in", self.store.record_check_in, session.alias)
            self.dispatcher.dispatch(
                "save_assessment",
                self.store.save_assessment,
                session.alias,
                session.distress_responses(),
                session.free_text,
                result,
            )

        if self.publisher is not None and result.final_priority is PriorityLevel.HIGH:
            self.dispatcher.dispatch(
                "publish_crisis_event",
                self.publisher.publish,
                result,
                hash_pii(session.alias),
            )

    def close(self, wait_for_pending: bool = True) -> None:
        self.dispatcher.shutdown(wait_for_pending=wait_for_pending)
