"""Deterministic Weekly Pulse scoring.

Pure function of the answers plus static configuration: no I/O, no
hidden state. An incomplete response set is rejected, never scored.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from mindcompass.shared.models import PriorityLevel, QuestionnaireItem
from .config import ScoringThresholds
from .questionnaire import load_questionnaire

logger = logging.getLogger(__name__)


class IncompleteResponseError(ValueError):
    """Raised when scoring is attempted before every item is answered."""

    def __init__(self, missing_item_ids: List[int]):
        self.missing_item_ids = sorted(missing_item_ids)
        super().__init__(
            f"Questionnaire incomplete: {len(self.missing_item_ids)} item(s) unanswered "
            f"{self.missing_item_ids}"
        )


@dataclass(frozen=True)
class ScoreResult:
    """Deterministic score for one completed questionnaire."""
    total_score: int
    max_score: int
    priority: PriorityLevel
    distress_by_item: Tuple[Tuple[int, int], ...]

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_score": self.total_score,
            "max_score": self.max_score,
            "priority": self.priority.value,
        }


class ScoringEngine:
    """Scores raw Weekly Pulse answers into a distress total and tier."""

    def __init__(
        self,
        items: Optional[Iterable[QuestionnaireItem]] = None,
        thresholds: Optional[ScoringThresholds] = None,
    ):
        """Initialize engine with questionnaire and thresholds.

        Args:
            items: Questionnaire items (defaults to the Weekly Pulse battery)
            thresholds: Priority thresholds (defaults to 15/30)
        """
        self.items = load_questionnaire(items) if items is not None else load_questionnaire()
        self.thresholds = thresholds or ScoringThresholds()
        self._items_by_id = {item.item_id: item for item in self.items}

        if self.thresholds.high > self.max_score:
            logger.warning(
                "SCORING_THRESHOLD_UNREACHABLE",
                extra={"high_threshold": self.thresholds.high, "max_score": self.max_score},
            )

    @property
    def max_score(self) -> int:
        return 3 * len(self.items)

    def missing_items(self, raw_answers: Mapping[int, int]) -> List[int]:
        return [item.item_id for item in self.items if item.item_id not in raw_answers]

    def distress_responses(self, raw_answers: Mapping[int, int]) -> Dict[int, int]:
        """Convert raw agreement levels into per-item distress contributions.

        Raises:
            IncompleteResponseError: If any configured item is unanswered
            ValueError: If an answer is outside 0-3 or names an unknown item
        """
        unknown = sorted(set(raw_answers) - set(self._items_by_id))
        if unknown:
            raise ValueError(f"Answers reference unknown item ids: {unknown}")

        missing = self.missing_items(raw_answers)
        if missing:
            raise IncompleteResponseError(missing)

        return {
            item.item_id: item.distress_for(raw_answers[item.item_id])
            for item in self.items
        }

    def priority_for(self, total_score: int) -> PriorityLevel:
        if total_score >= self.thresholds.high:
            return PriorityLevel.HIGH
        if total_score >= self.thresholds.medium:
            return PriorityLevel.MEDIUM
        return PriorityLevel.LOW

    def score(self, raw_answers: Mapping[int, int]) -> ScoreResult:
        """Score a complete set of raw answers.

        Args:
            raw_answers: Item id -> raw agreement level (0-3)

        Returns:
            ScoreResult with total score and deterministic priority

        Raises:
            IncompleteResponseError: If any configured item is unanswered
        """
        distress = self.distress_responses(raw_answers)
        total_score = sum(distress.values())
        priority = self.priority_for(total_score)

        logger.info(
            "WEEKLY_PULSE_SCORED",
            extra={
                "total_score": total_score,
                "max_score": self.max_score,
                "priority": priority.value,
            },
        )

        return ScoreResult(
            total_score=total_score,
            max_score=self.max_score,
            priority=priority,
            distress_by_item=tuple(sorted(distress.items())),
        )
