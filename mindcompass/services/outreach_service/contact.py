"""Safety plan and outbound contact links for HIGH-priority check-ins.

Nothing here places a call or sends a message. The caller receives
``tel:``/``sms:`` links and hands them to the device; whether the contact
is actually reached is never known to the service.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

from mindcompass.shared.models import AssessmentResult, PriorityLevel, ResourceEntry
from mindcompass.services.triage_service.resources import RESOURCE_CATALOG

logger = logging.getLogger(__name__)

TRUSTED_CONTACT_MESSAGE = (
    "I'm feeling really overwhelmed right now and need to talk to someone "
    "I trust. Are you free?"
)

HANDOFF_CALL = "call"
HANDOFF_SMS = "sms"

# Characters encodeURIComponent leaves alone, besides alphanumerics and -_.~
_URI_COMPONENT_SAFE = "!'()*"
_PHONE_STRIP = re.compile(r"[^\d+]")


def normalize_phone(phone: Optional[str]) -> str:
    """Reduce a phone number to digits with an optional leading '+'.

    Raises:
        ValueError: If no digits remain or a "+" appears after the first digit
    """
    cleaned = _PHONE_STRIP.sub("", phone or "")
    digits = cleaned.lstrip("+")
    if not digits or "+" in digits:
        raise ValueError("Phone number must contain digits")
    return ("+" if cleaned.startswith("+") else "") + digits


def tel_link(phone: str) -> str:
    return f"tel:{normalize_phone(phone)}"


def sms_link(phone: str, message: str = TRUSTED_CONTACT_MESSAGE) -> str:
    """Build an ``sms:`` link with a URL-encoded pre-filled body."""
    return f"sms:{normalize_phone(phone)}?body={quote(message, safe=_URI_COMPONENT_SAFE)}"


@dataclass(frozen=True)
class SafetyPlan:
    """User-authored plan: one coping strategy and one trusted person."""
    coping_strategy: str = ""
    contact_name: str = ""
    contact_phone: str = ""

    @property
    def has_contact(self) -> bool:
        try:
            normalize_phone(self.contact_phone)
        except ValueError:
            return False
        return True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SafetyPlan":
        """Parse the request body's ``safety_plan`` object.

        Raises:
            ValueError: Not an object, a field that is not a string, or a
                contact phone that cannot be dialled
        """
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError("safety_plan must be an object")

        fields = {}
        for name in ("coping_strategy", "contact_name", "contact_phone"):
            value = data.get(name)
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise ValueError(f"safety_plan.{name} must be a string")
            fields[name] = value.strip()

        if fields["contact_phone"]:
            normalize_phone(fields["contact_phone"])
        return cls(**fields)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coping_strategy": self.coping_strategy,
            "contact_name": self.contact_name,
            "contact_phone": self.contact_phone,
        }


@dataclass(frozen=True)
class ContactHandoff:
    """One tappable outbound action."""
    kind: str
    label: str
    link: str

    @classmethod
    def for_helpline(cls, entry: ResourceEntry) -> "ContactHandoff":
        return cls(kind=HANDOFF_CALL, label=f"Call {entry.title}", link=entry.link)

    @classmethod
    def for_trusted_contact(cls, plan: SafetyPlan) -> "ContactHandoff":
        name = plan.contact_name or "your trusted contact"
        return cls(kind=HANDOFF_SMS, label=f"Message {name}", link=sms_link(plan.contact_phone))

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "label": self.label, "link": self.link}


def handoff_for(
    result: AssessmentResult,
    plan: Optional[SafetyPlan] = None,
    emergency_contacts: Optional[Iterable[ResourceEntry]] = None,
) -> List[ContactHandoff]:
    """Outbound actions for a finished check-in.

    Args:
        result: Final assessment result
        plan: The user's safety plan, if one was written
        emergency_contacts: Helplines to offer; defaults to the catalog's
            emergency entries

    Returns:
        Helpline calls first, then a message to the trusted contact.
        Empty unless the final priority is HIGH.
    """
    if result.final_priority is not PriorityLevel.HIGH:
        return []

    if emergency_contacts is None:
        emergency_contacts = [entry for entry in RESOURCE_CATALOG if entry.is_emergency]

    handoffs = [
        ContactHandoff.for_helpline(entry)
        for entry in emergency_contacts
        if entry.link.startswith("tel:")
    ]
    helpline_count = len(handoffs)
    trusted_contact = plan is not None and plan.has_contact
    if trusted_contact:
        handoffs.append(ContactHandoff.for_trusted_contact(plan))

    logger.info(
        "CONTACT_HANDOFF_PREPARED",
        extra={
            "assessment_id": result.assessment_id,
            "helpline_count": helpline_count,
            "trusted_contact": trusted_contact,
        },
    )
    return handoffs
