"""Weekly Pulse questionnaire configuration.

21 items adapted from GHQ-12 (General Health Questionnaire) and DASS-21
(Depression Anxiety Stress Scales). Positively framed items are scored in
reverse: "Much more than usual" on a positive item is GOOD (distress 0).

Changing the item count is a configuration change; the scoring engine
derives its maximum score from whatever is loaded here.
"""
from typing import Iterable, Tuple

from mindcompass.shared.models import QuestionnaireItem

QUESTIONNAIRE_VERSION = "weekly-pulse-1"

# Raw agreement levels 0..3, in display order
ANSWER_LABELS: Tuple[str, ...] = (
    "Not at all",
    "No more than usual",
    "Rather more than usual",
    "Much more than usual",
)

WEEKLY_PULSE_ITEMS: Tuple[QuestionnaireItem, ...] = (
    QuestionnaireItem(1, "I have been able to concentrate on whatever I'm doing.", "GHQ-12", positively_framed=True),
    QuestionnaireItem(2, "I have lost sleep over worry.", "GHQ-12"),
    QuestionnaireItem(3, "I felt that I was playing a useful part in things.", "GHQ-12", positively_framed=True),
    QuestionnaireItem(4, "I felt capable of making decisions about things.", "GHQ-12", positively_framed=True),
    QuestionnaireItem(5, "I found it hard to wind down.", "DASS-21 (Stress)"),
    QuestionnaireItem(6, "I felt down-hearted and blue.", "DASS-21 (Depression)"),
    QuestionnaireItem(7, "I felt constantly under strain.", "GHQ-12"),
    QuestionnaireItem(8, "I have been losing confidence in myself.", "GHQ-12"),
    QuestionnaireItem(9, "I found it difficult to work up the initiative to do things.", "DASS-21 (Depression)"),
    QuestionnaireItem(10, "I tended to over-react to situations.", "DASS-21 (Stress)"),
    QuestionnaireItem(11, "I felt that I was close to panic.", "DASS-21 (Anxiety)"),
    QuestionnaireItem(12, "I felt that I had nothing to look forward to.", "DASS-21 (Depression)"),
    QuestionnaireItem(13, "I felt scared without any good reason.", "DASS-21 (Anxiety)"),
    QuestionnaireItem(14, "I have felt that I couldn't overcome my difficulties.", "GHQ-12"),
    QuestionnaireItem(15, "I felt I was rather touchy.", "DASS-21 (Stress)"),
    QuestionnaireItem(16, "I have been thinking of myself as a worthless person.", "GHQ-12"),
    QuestionnaireItem(17, "I was unable to become enthusiastic about anything.", "DASS-21 (Depression)"),
    QuestionnaireItem(
        18,
        "I experienced breathing difficulty (e.g., rapid breathing) without physical exertion.",
        "DASS-21 (Anxiety)",
    ),
    QuestionnaireItem(19, "I found myself getting agitated.", "DASS-21 (Stress)"),
    QuestionnaireItem(20, "I have been able to enjoy my normal day-to-day activities.", "GHQ-12", positively_framed=True),
    QuestionnaireItem(21, "I felt that I was using a lot of nervous energy.", "DASS-21 (Stress)"),
)


def load_questionnaire(
    items: Iterable[QuestionnaireItem] = WEEKLY_PULSE_ITEMS,
) -> Tuple[QuestionnaireItem, ...]:
    """Validate and freeze a questionnaire configuration.

    Args:
        items: Items in display order

    Returns:
        Immutable tuple of items

    Raises:
        ValueError: If the battery is empty or item ids repeat
    """
    loaded = tuple(items)
    if not loaded:
        raise ValueError("Questionnaire must contain at least one item")

    seen = set()
    for item in loaded:
        if item.item_id in seen:
            raise ValueError(f"Duplicate questionnaire item id: {item.item_id}")
        seen.add(item.item_id)
    return loaded
