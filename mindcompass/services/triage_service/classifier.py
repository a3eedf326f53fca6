"""Triage classifier: contract boundary toward the generative model.

The model is asked for ``{"priority": "low|medium|high", "reflection": "..."}``.
Everything the prompt asks for is also enforced here; a payload that breaks
the contract is treated exactly like a failed call.

Failure handling:
    - Exactly one attempt, bounded by a timeout. No retry loop.
    - Any failure returns the conservative fallback: HIGH if the crisis
      detector flags the text, otherwise MEDIUM. Never LOW.
    - A valid priority paired with a bad reflection keeps that priority as a
      floor; only the wording is replaced.
    - classify() never raises.
"""
import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from mindcompass.shared.models import PriorityLevel, max_severity
from mindcompass.shared.utils import hash_text_for_audit
from mindcompass.services.llm_service import BaseLLM
from .config import CRISIS_ACKNOWLEDGMENT, FALLBACK_REFLECTION
from .crisis_detector import CrisisDetector

logger = logging.getLogger(__name__)

MAX_REFLECTION_WORDS = 30

SOURCE_LLM = "llm"
SOURCE_FALLBACK = "fallback"

SYSTEM_PROMPT = """You are a responsible mental health triage assistant.

CORE INSTRUCTIONS:
1. Do Not Diagnose: never use clinical terms like "Depression", "Anxiety Disorder" or "PTSD".
2. Use Mirroring: reflect the user's sentiment in at most 30 words.

SAFETY PROTOCOL:
- If priority is LOW: be warm, validating and encouraging.
- If priority is MEDIUM: validate the difficulty but do not try to fix it. The reflection MUST end
  with a gentle nudge toward human connection (e.g. "This is a heavy load. Sharing it with a
  listener could really help.").
- If priority is HIGH: be brief and serious. Validate the pain and state explicitly that
  professional support is needed now. Do not offer platitudes.

PRIORITY LOGIC (for safety routing only):
- "high" if the user mentions suicide, self-harm, hopelessness, "ending it", or score >= 30.
- "medium" if the user mentions panic, inability to function, severe burnout, or score >= 15.
- "low" otherwise.

Output JSON ONLY: {"priority": "low" | "medium" | "high", "reflection": "<text>"}"""

DIAGNOSTIC_TERMS = re.compile(
    r"\b(depression|depressive|disorder|ptsd|bipolar|ocd|adhd|schizophreni\w*|"
    r"diagnos\w*|psychosis|psychotic)\b",
    re.IGNORECASE,
)

HUMAN_CONNECTION = re.compile(
    r"\b(talk\w*|shar\w*|reach\w*\s+out|listener|counsel+or|someone|friend\w*|"
    r"connect\w*|trusted|people)\b",
    re.IGNORECASE,
)

PROFESSIONAL_HELP = re.compile(
    r"\b(professional\w*|counsel+or\w*|helpline\w*|therapist\w*|crisis\s+line|"
    r"emergency|trained)\b",
    re.IGNORECASE,
)

PLATITUDES = re.compile(
    r"(everything\s+happens\s+for\s+a\s+reason|bright\s+side|think\s+positive|"
    r"could\s+be\s+worse|this\s+too\s+shall\s+pass|just\s+relax|cheer\s+up)",
    re.IGNORECASE,
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class ClassifierContractError(ValueError):
    """Model output violated the triage response contract.

    ``priority`` is set when the payload carried a valid priority and only
    the reflection broke the contract.
    """

    def __init__(self, message: str, priority: Optional[PriorityLevel] = None):
        super().__init__(message)
        self.priority = priority


@dataclass(frozen=True)
class ClassifierResult:
    """Structured classifier output (always valid, even on fallback)."""
    priority: PriorityLevel
    reflection: str
    source: str = SOURCE_LLM
    crisis_override_applied: bool = False
    failure_reason: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source == SOURCE_FALLBACK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": self.priority.value,
            "reflection": self.reflection,
            "source": self.source,
            "crisis_override_applied": self.crisis_override_applied,
        }


def _last_sentence(text: str) -> str:
    sentences = [s for s in _SENTENCE_SPLIT.split(text.strip()) if s.strip()]
    return sentences[-1] if sentences else ""


def validate_payload(payload: Any) -> ClassifierResult:
    """Validate a decoded model payload against the response contract.

    Args:
        payload: Decoded JSON value

    Returns:
        ClassifierResult with source=llm

    Raises:
        ClassifierContractError: On any contract violation
    """
    if not isinstance(payload, dict):
        raise ClassifierContractError("Payload is not a JSON object")

    keys = set(payload)
    if keys != {"priority", "reflection"}:
        raise ClassifierContractError(f"Unexpected payload keys: {sorted(keys)}")

    try:
        priority = PriorityLevel.parse(payload["priority"])
    except ValueError as e:
        raise ClassifierContractError(str(e)) from e

    reflection = payload["reflection"]
    # From here on the priority itself is valid; only the wording can fail
    if not isinstance(reflection, str) or not reflection.strip():
        raise ClassifierContractError("Reflection must be a non-empty string", priority)
    reflection = reflection.strip()

    word_count = len(reflection.split())
    if word_count > MAX_REFLECTION_WORDS:
        raise ClassifierContractError(f"Reflection too long: {word_count} words", priority)

    if DIAGNOSTIC_TERMS.search(reflection):
        raise ClassifierContractError("Reflection uses diagnostic terminology", priority)

    if priority is PriorityLevel.MEDIUM and not HUMAN_CONNECTION.search(_last_sentence(reflection)):
        raise ClassifierContractError(
            "MEDIUM reflection must end with a human-connection nudge", priority
        )

    if priority is PriorityLevel.HIGH:
        if not PROFESSIONAL_HELP.search(reflection):
            raise ClassifierContractError(
                "HIGH reflection must direct toward professional help", priority
            )
        if PLATITUDES.search(reflection):
            raise ClassifierContractError("HIGH reflection contains a platitude", priority)

    return ClassifierResult(priority=priority, reflection=reflection, source=SOURCE_LLM)


def parse_model_output(text: Optional[str]) -> ClassifierResult:
    """Decode raw model text and validate it.

    Raises:
        ClassifierContractError: If the text is empty, not JSON, or invalid
    """
    if not text or not text.strip():
        raise ClassifierContractError("No response from model")

    cleaned = _CODE_FENCE.sub("", text.strip())
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ClassifierContractError(f"Unparsable payload: {e.msg}") from e

    return validate_payload(payload)


class TriageClassifier:
    """Sends score + reflection to the model and enforces the contract."""

    def __init__(
        self,
        llm: Optional[BaseLLM],
        crisis_detector: Optional[CrisisDetector] = None,
        timeout_seconds: float = 15.0,
        max_score: int = 63,
    ):
        """Initialize classifier.

        Args:
            llm: Text generation backend; None means "unavailable" and every
                call takes the fallback path
            crisis_detector: Deterministic detector used for the override and
                for the fallback priority
            timeout_seconds: Deadline for the single model call
            max_score: Upper bound of the score range quoted in the prompt
        """
        self.llm = llm
        self.crisis_detector = crisis_detector or CrisisDetector()
        self.timeout_seconds = timeout_seconds
        self.max_score = max_score

        logger.info(
            "TRIAGE_CLASSIFIER_INITIALIZED",
            extra={
                "llm_available": llm is not None,
                "timeout_seconds": timeout_seconds,
            },
        )

    def build_prompt(self, total_score: Optional[int], free_text: str) -> str:
        score = total_score if total_score is not None else 0
        return (
            "Inputs:\n"
            f"- Self-Reported Distress Score (0-{self.max_score}): {score}\n"
            f"- User's Journal Entry: {json.dumps(free_text or '')}\n"
        )

    async def classify(self, total_score: Optional[int], free_text: Optional[str]) -> ClassifierResult:
        """Classify a check-in. Never raises.

        Args:
            total_score: Weekly Pulse total, or None in journal mode
            free_text: User reflection (may be empty)

        Returns:
            ClassifierResult from the model, or the conservative fallback

        Logs:
            - CLASSIFIER_SUCCEEDED: Valid payload accepted
            - CLASSIFIER_CRISIS_OVERRIDE: Detector overrode the model
            - CLASSIFIER_FALLBACK_USED: Any failure (warning level)
        """
        text = free_text or ""
        text_hash = hash_text_for_audit(text)

        if self.llm is None:
            return self.fallback(text, reason="llm_unavailable")

        try:
            response = await asyncio.wait_for(
                self.llm.generate(
                    prompt=self.build_prompt(total_score, text),
                    system_prompt=SYSTEM_PROMPT,
                    json_mode=True,
                ),
                timeout=self.timeout_seconds,
            )
            result = parse_model_output(response.text)
        except asyncio.TimeoutError:
            return self.fallback(text, reason="timeout")
        except ClassifierContractError as e:
            logger.warning(
                "CLASSIFIER_CONTRACT_VIOLATION",
                extra={
                    "text_hash": text_hash,
                    "reason": str(e),
                    "model_priority": e.priority.value if e.priority else None,
                },
            )
            return self.fallback(text, reason="contract_violation", floor=e.priority)
        except Exception as e:
            logger.error(
                "CLASSIFIER_CALL_FAILED",
                extra={
                    "text_hash": text_hash,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return self.fallback(text, reason="call_failed")

        detection = self.crisis_detector.scan(text)
        if detection.is_crisis:
            logger.warning(
                "CLASSIFIER_CRISIS_OVERRIDE",
                extra={
                    "text_hash": text_hash,
                    "model_priority": result.priority.value,
                    "matched_pattern_ids": list(detection.matched_pattern_ids),
                },
            )
            return ClassifierResult(
                priority=PriorityLevel.HIGH,
                reflection=CRISIS_ACKNOWLEDGMENT,
                source=SOURCE_LLM,
                crisis_override_applied=True,
            )

        logger.info(
            "CLASSIFIER_SUCCEEDED",
            extra={"text_hash": text_hash, "priority": result.priority.value},
        )
        return result

    def fallback(
        self,
        free_text: Optional[str],
        reason: str,
        floor: Optional[PriorityLevel] = None,
    ) -> ClassifierResult:
        """Conservative default used when the model cannot be trusted.

        ``floor`` is a priority the model did commit to; the fallback never
        drops below it.
        """
        is_crisis = self.crisis_detector.is_crisis(free_text)
        priority = max_severity(floor, PriorityLevel.HIGH if is_crisis else PriorityLevel.MEDIUM)

        logger.warning(
            "CLASSIFIER_FALLBACK_USED",
            extra={
                "reason": reason,
                "priority": priority.value,
                "crisis_detected": is_crisis,
            },
        )

        return ClassifierResult(
            priority=priority,
            reflection=FALLBACK_REFLECTION,
            source=SOURCE_FALLBACK,
            failure_reason=reason,
        )
