"""
Event Store Service - append-only trust event ledger

- Validates event type / category against the closed taxonomy
- Derives expires_at from the category
- Deduplicates retries carrying the same dedup key
- Never updates or deletes an event; expired events stay for audit
"""
import logging
from typing import Dict, Any, List, Optional
from datetime import datetime, timedelta
from sqlalchemy.orm import Session
from sqlalchemy import and_

from marketplace_trust.clock import utcnow, as_naive_utc
from marketplace_trust.config import settings
from marketplace_trust.db.models import ActorRole, EventCategory, TrustEvent
from marketplace_trust.errors import InvalidActor, InvalidRole, InvalidOccurrenceTime
from marketplace_trust.services.taxonomy_service import taxonomy_service

logger = logging.getLogger(__name__)


def parse_role(role) -> ActorRole:
    """Coerce a role value, rejecting anything outside the two marketplace roles"""
    try:
        return ActorRole(role)
    except ValueError:
        raise InvalidRole(str(role))


class EventStoreService:

    def __init__(
        self,
        negative_expiry_days: int = settings.TRUST_NEGATIVE_EXPIRY_DAYS,
        neutral_expiry_days: int = settings.TRUST_NEUTRAL_EXPIRY_DAYS,
        dedup_window_hours: int = settings.TRUST_DEDUP_WINDOW_HOURS
    ):
        self.negative_expiry = timedelta(days=negative_expiry_days)
        self.neutral_expiry = timedelta(days=neutral_expiry_days)
        self.dedup_window = timedelta(hours=dedup_window_hours)

    def compute_expiry(
        self,
        category: EventCategory,
        occurred_at: datetime
    ) -> Optional[datetime]:
        """negative: +180d, neutral: +90d, positive: never"""
        if category == EventCategory.NEGATIVE:
            return occurred_at + self.negative_expiry
        if category == EventCategory.NEUTRAL:
            return occurred_at + self.neutral_expiry
        return None

    def build_event(
        self,
        actor_id: str,
        role,
        event_type: str,
        category: Optional[str] = None,
        counterpart_id: Optional[str] = None,
        dedup_key: Optional[str] = None,
        refs: Optional[Dict[str, Any]] = None,
        notes: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
        now: Optional[datetime] = None
    ) -> TrustEvent:
        """
        Validate the input and build an unsaved TrustEvent.

        Raises InvalidActor / InvalidRole / InvalidEventType / InvalidEventCategory /
        InvalidOccurrenceTime without touching the database.
        """
        if not isinstance(actor_id, str) or not actor_id.strip():
            raise InvalidActor(actor_id)
        now = now or utcnow()
        actor_role = parse_role(role)
        definition = taxonomy_service.resolve(event_type, category)

        occurred_at = as_naive_utc(occurred_at) if occurred_at else now
        if occurred_at > now:
            raise InvalidOccurrenceTime(
                f"occurred_at {occurred_at.isoformat()} is in the future"
            )

        return TrustEvent(
            actor_id=actor_id,
            role=actor_role.value,
            event_type=definition.event_type,
            category=definition.category.value,
            counterpart_id=counterpart_id,
            dedup_key=dedup_key,
            related_refs=dict(refs or {}),
            notes=notes,
            occurred_at=occurred_at,
            expires_at=self.compute_expiry(definition.category, occurred_at),
            created_at=now
        )

    def find_duplicate(
        self,
        db: Session,
        actor_id: str,
        role: ActorRole,
        dedup_key: Optional[str],
        now: Optional[datetime] = None
    ) -> Optional[TrustEvent]:
        """Return the event already recorded under this key inside the dedup window"""
        if not dedup_key:
            return None

        now = now or utcnow()
        return db.query(TrustEvent).filter(
            and_(
                TrustEvent.actor_id == actor_id,
                TrustEvent.role == ActorRole(role).value,
                TrustEvent.dedup_key == dedup_key,
                TrustEvent.created_at >= now - self.dedup_window
            )
        ).order_by(TrustEvent.id.asc()).first()

    def append(self, db: Session, event: TrustEvent) -> TrustEvent:
        """
        Add a built event to the caller's transaction.

        The caller flushes and commits together with the score update so
        the event and its recalculation land atomically.
        """
        db.add(event)
        return event

    def list_events(
        self,
        db: Session,
        actor_id: str,
        role
    ) -> List[TrustEvent]:
        """Full ledger for one actor/role, oldest first"""
        return db.query(TrustEvent).filter(
            and_(
                TrustEvent.actor_id == actor_id,
                TrustEvent.role == parse_role(role).value
            )
        ).order_by(TrustEvent.occurred_at.asc(), TrustEvent.id.asc()).all()

    def recent_events(
        self,
        db: Session,
        actor_id: str,
        role,
        limit: int = settings.TRUST_EVENT_HISTORY_LIMIT
    ) -> List[Dict[str, Any]]:
        """Audit history for one actor/role, newest first"""
        events = db.query(TrustEvent).filter(
            and_(
                TrustEvent.actor_id == actor_id,
                TrustEvent.role == parse_role(role).value
            )
        ).order_by(TrustEvent.occurred_at.desc(), TrustEvent.id.desc()).limit(limit).all()

        now = utcnow()
        return [
            {
                "event_id": e.id,
                "event_type": e.event_type,
                "category": e.category,
                "counterpart_id": e.counterpart_id,
                "related_refs": e.related_refs or {},
                "notes": e.notes,
                "occurred_at": e.occurred_at,
                "expires_at": e.expires_at,
                "expired": e.expires_at is not None and e.expires_at <= now,
            }
            for e in events
        ]


# Singleton instance
event_store_service = EventStoreService()
