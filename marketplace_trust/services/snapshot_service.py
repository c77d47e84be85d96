"""
Trust Snapshot Service

Snapshots are immutable copies of a TrustScoreRecord plus a free-text
reason. They are written:
- automatically when a recalculation changes the trust level
- by the periodic snapshot job (trend analysis)
- by support staff as an administrative annotation

Snapshots only read score records; they never modify them.
"""
import logging
from typing import Dict, Any, List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy import and_

from marketplace_trust.clock import utcnow
from marketplace_trust.db.models import TrustScoreRecord, TrustSnapshot
from marketplace_trust.services.event_store_service import parse_role

logger = logging.getLogger(__name__)

_EXCLUDED_COLUMNS = {"id", "created_at", "updated_at"}


def serialize_record(record: TrustScoreRecord) -> Dict[str, Any]:
    """JSON-safe copy of every score column"""
    data: Dict[str, Any] = {}
    for column in TrustScoreRecord.__table__.columns:
        if column.name in _EXCLUDED_COLUMNS:
            continue
        value = getattr(record, column.name)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[column.name] = value
    return data


class SnapshotService:

    def build_snapshot(
        self,
        record: TrustScoreRecord,
        reason: str,
        now: Optional[datetime] = None
    ) -> TrustSnapshot:
        return TrustSnapshot(
            actor_id=record.actor_id,
            role=record.role,
            trust_level=record.trust_level,
            score_data=serialize_record(record),
            reason=reason,
            created_at=now or utcnow()
        )

    def take_snapshot(
        self,
        db: Session,
        actor_id: str,
        role,
        reason: str,
        now: Optional[datetime] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Administrative snapshot / annotation for one actor/role.

        Returns None when the actor has no score record in this role.
        """
        actor_role = parse_role(role)
        record = db.query(TrustScoreRecord).filter(
            and_(
                TrustScoreRecord.actor_id == actor_id,
                TrustScoreRecord.role == actor_role.value
            )
        ).first()

        if record is None:
            return None

        try:
            snapshot = self.build_snapshot(record, reason, now)
            db.add(snapshot)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Error writing trust snapshot for {actor_id}/{actor_role.value}: {e}")
            raise

        logger.info(f"Trust snapshot {snapshot.id} taken for {actor_id}/{actor_role.value}: {reason}")
        return self._to_dict(snapshot)

    def snapshot_all(
        self,
        db: Session,
        reason: str = "Periodic snapshot",
        now: Optional[datetime] = None,
        batch_size: int = 500
    ) -> int:
        """
        Snapshot every committed score record; returns how many were written.

        Records are read in id-ordered batches and flushed per batch, but the
        whole run commits once, so a failed run leaves no snapshots behind and
        can be retried without duplicating any.
        """
        now = now or utcnow()
        written = 0
        last_id = 0

        try:
            while True:
                records = db.query(TrustScoreRecord).filter(
                    TrustScoreRecord.id > last_id
                ).order_by(TrustScoreRecord.id.asc()).limit(batch_size).all()

                if not records:
                    break

                last_id = records[-1].id
                for record in records:
                    db.add(self.build_snapshot(record, reason, now))
                db.flush()
                # Flushed rows stay in the transaction; drop them from the identity map
                db.expunge_all()
                written += len(records)

            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Periodic trust snapshot failed after {written} records, nothing written: {e}")
            raise

        logger.info(f"Periodic trust snapshot wrote {written} snapshots")
        return written

    def list_snapshots(
        self,
        db: Session,
        actor_id: str,
        role,
        limit: int = 50
    ) -> List[Dict[str, Any]]:
        snapshots = db.query(TrustSnapshot).filter(
            and_(
                TrustSnapshot.actor_id == actor_id,
                TrustSnapshot.role == parse_role(role).value
            )
        ).order_by(TrustSnapshot.created_at.desc(), TrustSnapshot.id.desc()).limit(limit).all()

        return [self._to_dict(s) for s in snapshots]

    def _to_dict(self, snapshot: TrustSnapshot) -> Dict[str, Any]:
        return {
            "snapshot_id": snapshot.id,
            "actor_id": snapshot.actor_id,
            "role": snapshot.role,
            "trust_level": snapshot.trust_level,
            "score_data": snapshot.score_data,
            "reason": snapshot.reason,
            "created_at": snapshot.created_at
        }


# Singleton instance
snapshot_service = SnapshotService()
