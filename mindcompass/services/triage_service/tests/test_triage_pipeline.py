"""End-to-end tests for TriagePipeline with in-process collaborators."""
import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from mindcompass.shared.models import AssessmentMode, PriorityLevel
from mindcompass.shared.utils import configure_pii_salt, hash_pii
from mindcompass.services.checkin_service import CheckInStore, InMemoryCheckInStore
from mindcompass.services.llm_service import BaseLLM, LLMResponse
from mindcompass.services.triage_service.classifier import TriageClassifier
from mindcompass.services.triage_service.config import (
    CRISIS_ACKNOWLEDGMENT,
    FALLBACK_REFLECTION,
    TriageConfig,
)
from mindcompass.services.triage_service.crisis_detector import CrisisDetector
from mindcompass.services.triage_service.crisis_publisher import CrisisEventPublisher
from mindcompass.services.triage_service.pipeline import TriagePipeline
from mindcompass.services.triage_service.questionnaire import WEEKLY_PULSE_ITEMS
from mindcompass.services.triage_service.scoring import IncompleteResponseError, ScoringEngine
from mindcompass.services.triage_service.session import CheckInSession

LOW_REFLECTION = "It sounds like a steady week. Keep noticing what helps."


@pytest.fixture(autouse=True)
def setup_pii_salt():
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


def make_llm(priority="low", reflection=LOW_REFLECTION, side_effect=None):
    llm = MagicMock(spec=BaseLLM)
    llm.generate = AsyncMock(
        return_value=LLMResponse(
            text=json.dumps({"priority": priority, "reflection": reflection}),
            model="test-model",
            provider="openai",
        ),
        side_effect=side_effect,
    )
    return llm


def answers_with_total(total):
    answers = {}
    remaining = total
    for item in WEEKLY_PULSE_ITEMS:
        distress = min(3, remaining)
        remaining -= distress
        answers[item.item_id] = 3 - distress if item.positively_framed else distress
    return answers


@pytest.fixture
def store():
    return InMemoryCheckInStore()


@pytest.fixture
def publisher():
    return MagicMock(spec=CrisisEventPublisher, enabled=True)


def build_pipeline(llm, store=None, publisher=None):
    detector = CrisisDetector()
    return TriagePipeline(
        scoring_engine=ScoringEngine(),
        crisis_detector=detector,
        classifier=TriageClassifier(llm, crisis_detector=detector, timeout_seconds=1.0),
        store=store,
        publisher=publisher,
    )


@pytest.mark.asyncio
class TestTriagePipeline:
    """Tests for TriagePipeline.run()."""

    async def test_low_check_in(self, store, publisher):
        pipeline = build_pipeline(make_llm(), store, publisher)
        session = CheckInSession(alias="River", answers=answers_with_total(8), free_text="Fine week")

        outcome = await pipeline.run(session)
        pipeline.dispatcher.drain(timeout=5)

        assert outcome.result.final_priority is PriorityLevel.LOW
        assert outcome.result.total_score == 8
        assert outcome.plan.escalation is False
        assert outcome.score.total_score == 8
        publisher.publish.assert_not_called()

    async def test_score_outranks_classifier(self, store):
        pipeline = build_pipeline(make_llm("low"), store)
        session = CheckInSession(alias="river", answers=answers_with_total(31))

        outcome = await pipeline.run(session)

        assert outcome.result.final_priority is PriorityLevel.HIGH
        assert outcome.result.final_reflection == LOW_REFLECTION
        assert outcome.result.escalation_notice is not None
        assert outcome.winning_signal == "deterministic"
        assert outcome.plan.escalation is True

    async def test_crisis_text_overrides_everything(self, store, publisher):
        pipeline = build_pipeline(make_llm("low"), store, publisher)
        session = CheckInSession(
            alias="river",
            answers=answers_with_total(3),
            free_text="I want to kill myself",
        )

        outcome = await pipeline.run(session)
        pipeline.dispatcher.drain(timeout=5)

        assert outcome.result.final_priority is PriorityLevel.HIGH
        assert outcome.result.final_reflection == CRISIS_ACKNOWLEDGMENT
        assert outcome.result.crisis_override_applied is True
        publisher.publish.assert_called_once_with(outcome.result, hash_pii("river"))

    async def test_classifier_failure_still_returns_result(self, store):
        pipeline = build_pipeline(make_llm(side_effect=RuntimeError("down")), store)
        session = CheckInSession(alias="river", answers=answers_with_total(2))

        outcome = await pipeline.run(session)

        assert outcome.result.final_priority is PriorityLevel.MEDIUM
        assert outcome.result.final_reflection == FALLBACK_REFLECTION
        assert outcome.result.classifier_source == "fallback"

    async def test_incomplete_rejected_before_classifier(self, store):
        llm = make_llm()
        pipeline = build_pipeline(llm, store)
        answers = answers_with_total(10)
        del answers[7]

        with pytest.raises(IncompleteResponseError) as exc_info:
            await pipeline.run(CheckInSession(alias="river", answers=answers))

        assert exc_info.value.missing_item_ids == [7]
        llm.generate.assert_not_called()
        assert pipeline.dispatcher.drain(timeout=5) is True
        assert store.get_or_create_user("river").stats.total_check_ins == 0

    async def test_journal_mode_skips_scoring(self, store):
        llm = make_llm("medium", "That sounds like a lot. Talking to a friend could help.")
        pipeline = build_pipeline(llm, store)
        session = CheckInSession(alias="river", mode=AssessmentMode.JOURNAL, free_text="So much pressure")

        outcome = await pipeline.run(session)

        assert outcome.score is None
        assert outcome.result.total_score is None
        assert outcome.result.deterministic_priority is None
        assert outcome.result.final_priority is PriorityLevel.MEDIUM
        assert outcome.plan.listener_block != ()

    async def test_persistence_side_effects(self, store):
        pipeline = build_pipeline(make_llm(), store)
        answers = answers_with_total(8)
        session = CheckInSession(alias="River", answers=answers, free_text="Fine week")

        outcome = await pipeline.run(session)
        assert pipeline.dispatcher.drain(timeout=5) is True

        user = store.get_or_create_user("river")
        assert user.stats.total_check_ins == 1
        assert user.stats.consistency_streak == 1

        saved = store.list_assessments("river")
        assert len(saved) == 1
        assert saved[0].assessment_id == outcome.result.assessment_id
        assert sum(saved[0].responses.values()) == 8
        assert saved[0].reflection_text == "Fine week"

    async def test_store_failure_does_not_change_outcome(self):
        failing_store = MagicMock(spec=CheckInStore)
        failing_store.record_check_in.side_effect = RuntimeError("db down")
        failing_store.save_assessment.side_effect = RuntimeError("db down")
        pipeline = build_pipeline(make_llm(), failing_store)
        session = CheckInSession(alias="river", answers=answers_with_total(8))

        outcome = await pipeline.run(session)

        assert pipeline.dispatcher.drain(timeout=5) is True
        assert outcome.result.final_priority is PriorityLevel.LOW
        failing_store.record_check_in.assert_called_once_with("river")

    async def test_outcome_to_dict(self, store):
        pipeline = build_pipeline(make_llm(), store)
        session = CheckInSession(alias="river", answers=answers_with_total(8))

        data = (await pipeline.run(session)).to_dict()

        assert data["assessment"]["final_priority"] == "low"
        assert data["routing"]["priority"] == "low"
        assert data["score"]["total_score"] == 8


class TestFromConfig:
    """Tests for TriagePipeline.from_config()."""

    def test_wires_memory_store_and_thresholds(self):
        config = TriageConfig(classifier_timeout_seconds=3.0)

        pipeline = TriagePipeline.from_config(config, llm=None)

        assert isinstance(pipeline.store, InMemoryCheckInStore)
        assert pipeline.classifier.timeout_seconds == 3.0
        assert pipeline.classifier.llm is None
        assert pipeline.scoring_engine.thresholds == config.thresholds
        assert pipeline.classifier.max_score == pipeline.scoring_engine.max_score
        assert pipeline.publisher.enabled is False
        pipeline.close()
