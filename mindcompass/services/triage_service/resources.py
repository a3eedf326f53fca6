"""Support resource catalog and priority-based routing.

Routing rules:
    LOW    - self-help tools, in catalog order
    MEDIUM - "Connect with a Listener" block (entries whose min_priority is
             exactly MEDIUM) first, then self-help tools
    HIGH   - safety escalation: emergency helplines are the primary call to
             action; self-help follows only as a continuation path

The router is a pure projection over the static catalog.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from mindcompass.shared.models import (
    SUPPORT_LABELS,
    PriorityLevel,
    ResourceEntry,
    SupportType,
)

logger = logging.getLogger(__name__)


# Curated resources (India specific)
RESOURCE_CATALOG: Tuple[ResourceEntry, ...] = (
    ResourceEntry(
        title="Grounding: The 5-4-3-2-1 Technique",
        description=(
            "A clinically proven mindfulness exercise to reduce acute anxiety "
            "by anchoring you in the present."
        ),
        link="internal:grounding",
        support_type=SupportType.SELF_HELP,
        min_priority=PriorityLevel.LOW,
    ),
    ResourceEntry(
        title="Cognitive Reframing Tool",
        description="Interactive guide to identify and challenge negative thought patterns.",
        link="internal:reframing",
        support_type=SupportType.SELF_HELP,
        min_priority=PriorityLevel.LOW,
    ),
    ResourceEntry(
        title="Box Breathing Exercise",
        description="Simple rhythmic breathing (4-4-4-4) to calm your nervous system immediately.",
        link="internal:breathing",
        support_type=SupportType.SELF_HELP,
        min_priority=PriorityLevel.LOW,
    ),
    ResourceEntry(
        title="University/College Wellness Centers",
        description=(
            "Visit your campus counselor. Most Indian universities (IITs, IIMs, "
            "DU, etc.) provide free student support."
        ),
        link="#",
        support_type=SupportType.COUNSELOR,
        min_priority=PriorityLevel.MEDIUM,
    ),
    ResourceEntry(
        title="YourDOST / Amaha (InnerHour)",
        description=(
            "Connect with verified Indian therapists via chat or video. "
            "Tailored for students and young professionals."
        ),
        link="https://yourdost.com",
        support_type=SupportType.COUNSELOR,
        min_priority=PriorityLevel.MEDIUM,
    ),
    ResourceEntry(
        title="Vandrevala Foundation",
        description=(
            "24/7 Multilingual Support. Free confidential counseling via call "
            "or WhatsApp for mental health distress."
        ),
        link="tel:18602662345",
        support_type=SupportType.HELPLINE,
        min_priority=PriorityLevel.HIGH,
        is_emergency=True,
    ),
    ResourceEntry(
        title="KIRAN Helpline (Govt. of India)",
        description=(
            "National Mental Health Rehabilitation Helpline. Available 24/7 in "
            "13 regional languages."
        ),
        link="tel:18005990019",
        support_type=SupportType.HELPLINE,
        min_priority=PriorityLevel.HIGH,
        is_emergency=True,
    ),
    ResourceEntry(
        title="Jeevan Aastha Helpline",
        description=(
            "24/7 Suicide Prevention Helpline. 'There is always a way.' "
            "Professional counseling support."
        ),
        link="tel:18002333330",
        support_type=SupportType.HELPLINE,
        min_priority=PriorityLevel.HIGH,
        is_emergency=True,
    ),
)


@dataclass(frozen=True)
class RoutingPlan:
    """What to show the user for a given final priority."""
    priority: PriorityLevel
    label: str
    escalation: bool
    emergency_contacts: Tuple[ResourceEntry, ...] = field(default_factory=tuple)
    listener_block: Tuple[ResourceEntry, ...] = field(default_factory=tuple)
    self_help: Tuple[ResourceEntry, ...] = field(default_factory=tuple)
    offer_safety_plan: bool = False

    @property
    def ordered(self) -> Tuple[ResourceEntry, ...]:
        """All entries in display order."""
        return self.emergency_contacts + self.listener_block + self.self_help

    @property
    def primary_contact(self) -> Optional[ResourceEntry]:
        return self.emergency_contacts[0] if self.emergency_contacts else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": self.priority.value,
            "label": self.label,
            "escalation": self.escalation,
            "offer_safety_plan": self.offer_safety_plan,
            "emergency_contacts": [entry.to_dict() for entry in self.emergency_contacts],
            "listener_block": [entry.to_dict() for entry in self.listener_block],
            "self_help": [entry.to_dict() for entry in self.self_help],
        }


class ResourceRouter:
    """Maps a final priority to an ordered set of support resources."""

    def __init__(self, catalog: Optional[Iterable[ResourceEntry]] = None):
        self.catalog = tuple(catalog) if catalog is not None else RESOURCE_CATALOG
        if not any(entry.is_emergency for entry in self.catalog):
            logger.warning("RESOURCE_CATALOG_HAS_NO_EMERGENCY_ENTRY")

    def eligible(self, priority: PriorityLevel) -> Tuple[ResourceEntry, ...]:
        """Every catalog entry whose min_priority is at or below ``priority``."""
        return tuple(entry for entry in self.catalog if entry.is_eligible(priority))

    def route(self, priority: PriorityLevel) -> RoutingPlan:
        """Build the routing plan for a final priority.

        Args:
            priority: Final fused priority

        Returns:
            RoutingPlan in display order
        """
        self_help = tuple(
            entry for entry in self.catalog
            if entry.support_type == SupportType.SELF_HELP
        )

        listener_block: Tuple[ResourceEntry, ...] = ()
        emergency_contacts: Tuple[ResourceEntry, ...] = ()

        if priority is PriorityLevel.MEDIUM:
            listener_block = tuple(
                entry for entry in self.catalog
                if entry.min_priority is PriorityLevel.MEDIUM
            )
        elif priority is PriorityLevel.HIGH:
            emergency_contacts = tuple(
                entry for entry in self.catalog
                if entry.min_priority is PriorityLevel.HIGH
            )

        plan = RoutingPlan(
            priority=priority,
            label=SUPPORT_LABELS[priority],
            escalation=priority is PriorityLevel.HIGH,
            emergency_contacts=emergency_contacts,
            listener_block=listener_block,
            self_help=self_help,
            offer_safety_plan=priority is not PriorityLevel.LOW,
        )

        logger.info(
            "RESOURCES_ROUTED",
            extra={
                "priority": priority.value,
                "escalation": plan.escalation,
                "emergency_count": len(emergency_contacts),
                "listener_count": len(listener_block),
                "self_help_count": len(self_help),
            },
        )
        return plan
