"""
Celery Tasks for async trust processing
"""
import logging
from datetime import datetime
from typing import Optional, Dict, Any
from celery import shared_task

from marketplace_trust.db.database import SessionLocal
from marketplace_trust.db.models import TrustScoreRecord
from marketplace_trust.errors import InvalidOccurrenceTime, RecalculationConflict, TrustEngineError

logger = logging.getLogger(__name__)


def get_db_session():
    """Get database session for tasks"""
    return SessionLocal()


def parse_occurred_at(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 string from the task payload; accepts a trailing Z for UTC"""
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise InvalidOccurrenceTime(f"Unparseable occurred_at: {value!r}")


@shared_task(bind=True, max_retries=5, default_retry_delay=5)
def record_trust_event(
    self,
    actor_id: str,
    role: str,
    event_type: str,
    category: Optional[str] = None,
    counterpart_id: Optional[str] = None,
    dedup_key: Optional[str] = None,
    refs: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None,
    occurred_at: Optional[str] = None
):
    """
    Record a trust event off the request path.

    occurred_at is an ISO-8601 UTC string (JSON serializer). Conflicts are
    retried with exponential backoff; validation errors are not retried.
    """
    from marketplace_trust.services.trust_service import trust_service

    db = get_db_session()
    try:
        result = trust_service.record_event(
            db,
            actor_id=actor_id,
            role=role,
            event_type=event_type,
            category=category,
            counterpart_id=counterpart_id,
            dedup_key=dedup_key,
            refs=refs,
            notes=notes,
            occurred_at=parse_occurred_at(occurred_at)
        )
        return result.to_dict()

    except RecalculationConflict as e:
        logger.warning(f"Trust event for {actor_id}/{role} conflicted, retrying: {e}")
        raise self.retry(exc=e, countdown=self.default_retry_delay * (2 ** self.request.retries))
    except TrustEngineError as e:
        logger.error(f"Rejected trust event for {actor_id}/{role}: {e}")
        raise
    finally:
        db.close()


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def snapshot_trust_scores(self, reason: str = "Periodic snapshot"):
    """Daily snapshot of every trust score record for trend analysis"""
    from marketplace_trust.services.snapshot_service import snapshot_service

    db = get_db_session()
    try:
        written = snapshot_service.snapshot_all(db, reason=reason)
        return {"snapshots_written": written}

    except Exception as e:
        logger.error(f"Periodic trust snapshot failed: {e}")
        raise self.retry(exc=e)
    finally:
        db.close()


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def refresh_trust_aggregates(
    self,
    actor_id: Optional[str] = None,
    role: Optional[str] = None,
    batch_size: int = 500
):
    """
    Recompute windowed counters so stored records reflect sliding windows
    and expired events. Levels and streaks are left untouched.

    With actor_id and role, refreshes just that record; otherwise all.
    """
    from marketplace_trust.services.trust_service import trust_service

    db = get_db_session()
    try:
        if actor_id and role:
            aggregates = trust_service.refresh_aggregates(db, actor_id, role)
            return {"refreshed": 0 if aggregates is None else 1}

        refreshed = 0
        last_id = 0
        while True:
            keys = db.query(
                TrustScoreRecord.id, TrustScoreRecord.actor_id, TrustScoreRecord.role
            ).filter(
                TrustScoreRecord.id > last_id
            ).order_by(TrustScoreRecord.id.asc()).limit(batch_size).all()

            if not keys:
                break

            for record_id, record_actor, record_role in keys:
                if trust_service.refresh_aggregates(db, record_actor, record_role) is not None:
                    refreshed += 1
                last_id = record_id

        logger.info(f"Refreshed trust aggregates for {refreshed} records")
        return {"refreshed": refreshed}

    except RecalculationConflict as e:
        raise self.retry(exc=e)
    finally:
        db.close()
