"""Serializable check-in session state.

Holds the in-progress answers and reflection for one check-in. The
presentation layer owns transitions; the triage core only reads a session.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from mindcompass.shared.models import AssessmentMode, QuestionnaireItem
from mindcompass.shared.utils import normalize_alias
from .questionnaire import load_questionnaire


@dataclass
class CheckInSession:
    """Mutable check-in state passed explicitly through the flow."""
    alias: str
    mode: AssessmentMode = AssessmentMode.SCIENTIFIC
    answers: Dict[int, int] = field(default_factory=dict)
    free_text: str = ""
    items: Sequence[QuestionnaireItem] = field(default_factory=load_questionnaire, repr=False)

    def __post_init__(self):
        self.alias = normalize_alias(self.alias)
        if isinstance(self.mode, str):
            self.mode = AssessmentMode(self.mode)
        self._item_ids = {item.item_id for item in self.items}
        for item_id, raw_level in list(self.answers.items()):
            self.answer(item_id, raw_level)

    def answer(self, item_id: int, raw_level: int) -> None:
        """Record (or change) the raw agreement level for one item.

        Raises:
            ValueError: Unknown item, journal-mode session, or level outside 0-3
        """
        if self.mode is AssessmentMode.JOURNAL:
            raise ValueError("Journal check-ins have no questionnaire")
        if item_id not in self._item_ids:
            raise ValueError(f"Unknown questionnaire item: {item_id}")
        if isinstance(raw_level, bool) or not isinstance(raw_level, int) or not 0 <= raw_level <= 3:
            raise ValueError(f"Raw level must be an integer 0-3, got {raw_level!r}")
        self.answers[item_id] = raw_level

    def reflect(self, text: Optional[str]) -> None:
        self.free_text = (text or "").strip()

    @property
    def uses_questionnaire(self) -> bool:
        return self.mode is AssessmentMode.SCIENTIFIC

    @property
    def missing_item_ids(self) -> List[int]:
        if not self.uses_questionnaire:
            return []
        return [item.item_id for item in self.items if item.item_id not in self.answers]

    @property
    def is_complete(self) -> bool:
        return not self.missing_item_ids

    def distress_responses(self) -> Dict[int, int]:
        """Answered items mapped to distress (positively framed items inverted)."""
        return {
            item.item_id: item.distress_for(self.answers[item.item_id])
            for item in self.items
            if item.item_id in self.answers
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alias": self.alias,
            "mode": self.mode.value,
            "answers": {str(item_id): level for item_id, level in sorted(self.answers.items())},
            "free_text": self.free_text,
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        items: Optional[Sequence[QuestionnaireItem]] = None,
    ) -> "CheckInSession":
        """Rebuild a session from ``to_dict`` output or an API request body.

        Raises:
            ValueError: On a missing alias, unknown mode or invalid answer
        """
        raw_answers = data.get("answers") or {}
        if not isinstance(raw_answers, dict):
            raise ValueError("answers must be an object of item id -> level")
        answers = {int(item_id): level for item_id, level in raw_answers.items()}
        free_text = data.get("free_text") or data.get("text") or ""
        if not isinstance(free_text, str):
            raise ValueError("text must be a string")
        kwargs: Dict[str, Any] = {
            "alias": data.get("alias") or "",
            "mode": AssessmentMode(data.get("mode", AssessmentMode.SCIENTIFIC.value)),
            "answers": answers,
            "free_text": free_text.strip(),
        }
        if items is not None:
            kwargs["items"] = items
        return cls(**kwargs)
