"""
Trust Service - RecordEvent

One call = one transaction:
  append event -> aggregate ledger -> evaluate transition -> persist record
  (+ snapshot when the level changes)

The score record carries an optimistic-concurrency version. If another
writer committed first for the same actor/role, the flush fails with
StaleDataError (or IntegrityError when both tried to create the record),
the whole transaction is rolled back and redone against fresh state. After
TRUST_MAX_RECALC_ATTEMPTS attempts RecalculationConflict is raised; the
event is never silently dropped.

No writes are issued until the final flush, so a rolled-back attempt leaves
nothing behind.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional, Callable
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import IntegrityError
from sqlalchemy import and_

from marketplace_trust.clock import utcnow
from marketplace_trust.config import settings
from marketplace_trust.db.models import ActorRole, TrustScoreRecord
from marketplace_trust.errors import RecalculationConflict
from marketplace_trust.services.aggregation_service import (
    TrustAggregates, aggregation_service, compute_aggregates
)
from marketplace_trust.services.event_store_service import event_store_service, parse_role
from marketplace_trust.services.snapshot_service import snapshot_service
from marketplace_trust.services.transition_service import (
    LevelTransitionService, TransitionDecision, TransitionKind, transition_service
)

logger = logging.getLogger(__name__)

RECORD_UNIQUE_CONSTRAINT = "unique_trust_score_actor_role"


def is_record_create_race(error: IntegrityError) -> bool:
    """
    True when two writers both tried to create the same actor/role record.

    PostgreSQL names the violated constraint; SQLite only lists the columns.
    """
    message = str(error.orig)
    if RECORD_UNIQUE_CONSTRAINT in message:
        return True
    return (
        "UNIQUE constraint failed" in message
        and "trust_score_records.actor_id" in message
        and "trust_score_records.role" in message
    )


@dataclass(frozen=True)
class RecordEventResult:
    event_id: int
    actor_id: str
    role: ActorRole
    trust_level: int
    previous_trust_level: int
    deduplicated: bool = False
    transition: Optional[TransitionKind] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "actor_id": self.actor_id,
            "role": self.role.value,
            "trust_level": self.trust_level,
            "previous_trust_level": self.previous_trust_level,
            "deduplicated": self.deduplicated,
            "transition": self.transition.value if self.transition else None,
        }


class TrustService:

    def __init__(
        self,
        transitions: LevelTransitionService = transition_service,
        max_attempts: int = settings.TRUST_MAX_RECALC_ATTEMPTS
    ):
        self.transitions = transitions
        self.max_attempts = max(1, max_attempts)

    def record_event(
        self,
        db: Session,
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
    ) -> RecordEventResult:
        """
        Record a trust event and recalculate the actor/role score.

        Args:
            db: Database session (committed on success, rolled back on failure)
            actor_id: Scored actor
            role: "requester" or "fulfiller"
            event_type: Member of the closed taxonomy
            category: Optional; must match the taxonomy when given
            counterpart_id: Other party of the transaction
            dedup_key: Deterministic key of the triggering job/booking/incident
            refs: Opaque references kept for audit
            occurred_at: Backfilled occurrence time (defaults to now)

        Raises:
            InvalidActor / InvalidEventType / InvalidEventCategory / InvalidRole /
            InvalidOccurrenceTime before anything is written,
            RecalculationConflict when concurrent writers keep winning.
        """
        now = now or utcnow()
        actor_role = parse_role(role)
        event_args = dict(
            actor_id=actor_id,
            role=actor_role,
            event_type=event_type,
            category=category,
            counterpart_id=counterpart_id,
            dedup_key=dedup_key,
            refs=refs,
            notes=notes,
            occurred_at=occurred_at,
        )
        # Validate once before opening any write
        event_store_service.build_event(now=now, **event_args)

        result = self._run_with_retry(
            db, actor_id, actor_role,
            lambda: self._record_once(db, now, event_args)
        )

        if result.transition in (TransitionKind.PROMOTED, TransitionKind.RECOVERED):
            logger.info(
                f"Trust level {result.transition.value} for {actor_id}/{actor_role.value}: "
                f"{result.previous_trust_level} -> {result.trust_level}"
            )
        return result

    def refresh_aggregates(
        self,
        db: Session,
        actor_id: str,
        role,
        now: Optional[datetime] = None
    ) -> Optional[TrustAggregates]:
        """
        Recompute the stored windowed counters from the ledger without
        touching the trust level or the completion streak.

        Windows slide and events expire between writes; this keeps the
        persisted record current for reads. Returns None if the actor/role
        has no record.
        """
        now = now or utcnow()
        actor_role = parse_role(role)

        def refresh():
            record = self._get_record(db, actor_id, actor_role)
            if record is None:
                return None
            aggregates = aggregation_service.aggregate(db, actor_id, actor_role, now)
            for name, value in aggregates.to_record_fields().items():
                setattr(record, name, value)
            record.score_calculated_at = now
            record.updated_at = now
            db.flush()
            return aggregates

        return self._run_with_retry(db, actor_id, actor_role, refresh)

    def _run_with_retry(
        self,
        db: Session,
        actor_id: str,
        role: ActorRole,
        attempt_fn: Callable
    ):
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = attempt_fn()
                db.commit()
                return result
            except (StaleDataError, IntegrityError) as e:
                db.rollback()
                if isinstance(e, IntegrityError) and not is_record_create_race(e):
                    logger.error(f"Integrity error recording trust event for {actor_id}/{role.value}: {e}")
                    raise
                logger.warning(
                    f"Concurrent trust score update for {actor_id}/{role.value} "
                    f"(attempt {attempt}/{self.max_attempts}): {e}"
                )
            except Exception as e:
                db.rollback()
                logger.error(f"Error recalculating trust score for {actor_id}/{role.value}: {e}")
                raise

        logger.error(
            f"Giving up on trust score for {actor_id}/{role.value} "
            f"after {self.max_attempts} conflicting attempts"
        )
        raise RecalculationConflict(actor_id, role.value, self.max_attempts)

    def _record_once(
        self,
        db: Session,
        now: datetime,
        event_args: Dict[str, Any]
    ) -> RecordEventResult:
        actor_id = event_args["actor_id"]
        role = event_args["role"]

        duplicate = event_store_service.find_duplicate(
            db, actor_id, role, event_args["dedup_key"], now
        )
        if duplicate is not None:
            record = self._get_record(db, actor_id, role)
            level = record.trust_level if record else 0
            logger.info(
                f"Duplicate trust event {event_args['dedup_key']!r} for {actor_id}/{role.value}; "
                f"returning event {duplicate.id}"
            )
            return RecordEventResult(
                event_id=duplicate.id,
                actor_id=actor_id,
                role=role,
                trust_level=level,
                previous_trust_level=level,
                deduplicated=True,
            )

        event = event_store_service.build_event(now=now, **event_args)

        record = self._get_record(db, actor_id, role)
        is_new = record is None
        if is_new:
            record = self._new_record(actor_id, role, now)

        history = event_store_service.list_events(db, actor_id, role)
        aggregates = compute_aggregates(history + [event], now)
        decision = self.transitions.evaluate(
            role,
            aggregates,
            record.trust_level,
            record.consecutive_completed_since_last_negative,
            event,
            now,
        )
        self._apply(record, aggregates, decision, now)

        event_store_service.append(db, event)
        if is_new:
            db.add(record)
        # INSERT event + UPDATE record ... WHERE version = :old
        db.flush()

        if decision.changed:
            db.add(snapshot_service.build_snapshot(
                record,
                f"Trust level changed from {decision.previous_level} to {decision.new_level}: "
                f"{decision.reason}",
                now,
            ))
            db.flush()

        return RecordEventResult(
            event_id=event.id,
            actor_id=actor_id,
            role=role,
            trust_level=decision.new_level,
            previous_trust_level=decision.previous_level,
            transition=decision.kind,
        )

    def _get_record(
        self,
        db: Session,
        actor_id: str,
        role: ActorRole
    ) -> Optional[TrustScoreRecord]:
        return db.query(TrustScoreRecord).filter(
            and_(
                TrustScoreRecord.actor_id == actor_id,
                TrustScoreRecord.role == role.value
            )
        ).first()

    def _new_record(self, actor_id: str, role: ActorRole, now: datetime) -> TrustScoreRecord:
        return TrustScoreRecord(
            actor_id=actor_id,
            role=role.value,
            trust_level=0,
            previous_trust_level=0,
            consecutive_completed_since_last_negative=0,
            created_at=now,
        )

    def _apply(
        self,
        record: TrustScoreRecord,
        aggregates: TrustAggregates,
        decision: TransitionDecision,
        now: datetime
    ) -> None:
        for name, value in aggregates.to_record_fields().items():
            setattr(record, name, value)

        if decision.changed:
            record.previous_trust_level = decision.previous_level
        if decision.kind == TransitionKind.RECOVERED:
            record.trust_improved_at = now

        record.trust_level = decision.new_level
        record.consecutive_completed_since_last_negative = decision.consecutive_completed
        record.score_calculated_at = now
        record.updated_at = now


# Singleton instance
trust_service = TrustService()
