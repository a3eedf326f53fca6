"""Outreach Service: safety plans and tel:/sms: handoff links."""
from .contact import (
    HANDOFF_CALL,
    HANDOFF_SMS,
    TRUSTED_CONTACT_MESSAGE,
    ContactHandoff,
    SafetyPlan,
    handoff_for,
    normalize_phone,
    sms_link,
    tel_link,
)

__all__ = [
    "HANDOFF_CALL",
    "HANDOFF_SMS",
    "TRUSTED_CONTACT_MESSAGE",
    "ContactHandoff",
    "SafetyPlan",
    "handoff_for",
    "normalize_phone",
    "sms_link",
    "tel_link",
]
