"""
Trust Event Taxonomy Service

Closed set of event types the engine accepts. Collaborators decide which
party caused an incident; the engine only checks that the type exists and
that its category matches.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Tuple

from marketplace_trust.db.models import ActorRole, EventCategory
from marketplace_trust.errors import InvalidEventType, InvalidEventCategory

logger = logging.getLogger(__name__)

BOTH_ROLES = (ActorRole.REQUESTER, ActorRole.FULFILLER)


@dataclass(frozen=True)
class EventTypeDefinition:
    event_type: str
    category: EventCategory
    label: str
    roles: Tuple[ActorRole, ...] = BOTH_ROLES
    counts_as_completion: bool = False
    advances_recovery: bool = False


EVENT_TYPES: Dict[str, EventTypeDefinition] = {
    definition.event_type: definition
    for definition in (
        # Negative - caused by the scored actor
        EventTypeDefinition("no-show", EventCategory.NEGATIVE, "No-show"),
        EventTypeDefinition(
            "late-arrival", EventCategory.NEGATIVE, "Late arrival",
            roles=(ActorRole.FULFILLER,),
        ),
        EventTypeDefinition("late-cancellation", EventCategory.NEGATIVE, "Late cancellation"),
        EventTypeDefinition(
            "excessive-extension-request", EventCategory.NEGATIVE, "Excessive extension request",
            roles=(ActorRole.FULFILLER,),
        ),
        EventTypeDefinition(
            "job-abandoned", EventCategory.NEGATIVE, "Job abandoned",
            roles=(ActorRole.FULFILLER,),
        ),
        EventTypeDefinition(
            "dispute-upheld-against-actor", EventCategory.NEGATIVE, "Dispute upheld against you",
        ),
        # Positive
        EventTypeDefinition(
            "job-completed", EventCategory.POSITIVE, "Job completed",
            roles=(ActorRole.REQUESTER,),
            counts_as_completion=True, advances_recovery=True,
        ),
        EventTypeDefinition(
            "booking-completed", EventCategory.POSITIVE, "Booking completed",
            roles=(ActorRole.FULFILLER,),
            counts_as_completion=True, advances_recovery=True,
        ),
        # Compensating adjustment inserted by support; the only manual override
        EventTypeDefinition(
            "support-credit", EventCategory.POSITIVE, "Support adjustment",
            advances_recovery=True,
        ),
        # Neutral
        EventTypeDefinition("dispute-dismissed", EventCategory.NEUTRAL, "Dispute dismissed"),
        EventTypeDefinition("reschedule-requested", EventCategory.NEUTRAL, "Reschedule requested"),
    )
}


class TaxonomyService:
    """Lookup and validation over the closed event taxonomy"""

    def get(self, event_type: str) -> EventTypeDefinition:
        definition = EVENT_TYPES.get(event_type)
        if definition is None:
            raise InvalidEventType(event_type)
        return definition

    def resolve(
        self,
        event_type: str,
        category: Optional[str] = None
    ) -> EventTypeDefinition:
        """
        Validate an event type and the caller's category.

        The category is optional; when supplied it must be a known category
        and agree with the taxonomy.
        """
        definition = self.get(event_type)
        if category is None:
            return definition

        try:
            requested = EventCategory(category)
        except ValueError:
            raise InvalidEventCategory(event_type, str(category))

        if requested != definition.category:
            raise InvalidEventCategory(event_type, requested.value, definition.category.value)
        return definition

    def is_completion(self, event_type: str) -> bool:
        definition = EVENT_TYPES.get(event_type)
        return bool(definition and definition.counts_as_completion)

    def list_event_types(self) -> List[Dict[str, Any]]:
        return [
            {
                "event_type": d.event_type,
                "category": d.category.value,
                "label": d.label,
                "roles": [r.value for r in d.roles],
                "counts_as_completion": d.counts_as_completion,
                "advances_recovery": d.advances_recovery,
            }
            for d in EVENT_TYPES.values()
        ]


# Singleton instance
taxonomy_service = TaxonomyService()
