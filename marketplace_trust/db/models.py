"""
SQLAlchemy ORM Models for the Marketplace Trust Engine

Every table is partitioned by (actor_id, role): the two marketplace roles
of one account are scored as unrelated identities.
"""
import enum

from sqlalchemy import (
    Column, Integer, String, Text, Float, DateTime, JSON,
    UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from marketplace_trust.db.database import Base


JSONType = JSON().with_variant(JSONB(), "postgresql")


class ActorRole(str, enum.Enum):
    REQUESTER = "requester"
    FULFILLER = "fulfiller"


class EventCategory(str, enum.Enum):
    NEGATIVE = "negative"
    POSITIVE = "positive"
    NEUTRAL = "neutral"


class TrustWindow(str, enum.Enum):
    """Trailing ranges over which events are counted"""
    DAYS_30 = "30d"
    DAYS_90 = "90d"
    DAYS_180 = "180d"
    LIFETIME = "lifetime"

    @property
    def days(self):
        return {"30d": 30, "90d": 90, "180d": 180}.get(self.value)


# ============================================================
# EVENT LEDGER (append-only)
# ============================================================

class TrustEvent(Base):
    """Immutable trust-relevant occurrence; never updated or deleted"""
    __tablename__ = "trust_events"
    
    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String(64), nullable=False)
    role = Column(String(20), nullable=False)
    event_type = Column(String(64), nullable=False)
    category = Column(String(20), nullable=False)
    counterpart_id = Column(String(64))
    dedup_key = Column(String(255))
    related_refs = Column(JSONType, default=dict)
    notes = Column(Text)
    occurred_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime)  # NULL = never expires (positive events)
    created_at = Column(DateTime, server_default=func.now())
    
    __table_args__ = (
        Index('idx_trust_events_actor_role_occurred', 'actor_id', 'role', 'occurred_at'),
        Index('idx_trust_events_dedup', 'actor_id', 'role', 'dedup_key'),
        Index('idx_trust_events_expires', 'expires_at'),
    )


# ============================================================
# SCORE RECORD (one per actor + role)
# ============================================================

class TrustScoreRecord(Base):
    """Last committed aggregates and trust level for an actor/role"""
    __tablename__ = "trust_score_records"
    
    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String(64), nullable=False)
    role = Column(String(20), nullable=False)
    
    # Negative events
    negative_count_30d = Column(Integer, default=0, nullable=False)
    negative_count_90d = Column(Integer, default=0, nullable=False)
    negative_count_180d = Column(Integer, default=0, nullable=False)
    negative_count_lifetime = Column(Integer, default=0, nullable=False)
    
    # Completed jobs/bookings (positive signal)
    completed_count_30d = Column(Integer, default=0, nullable=False)
    completed_count_90d = Column(Integer, default=0, nullable=False)
    completed_count_180d = Column(Integer, default=0, nullable=False)
    completed_count_lifetime = Column(Integer, default=0, nullable=False)
    
    neutral_count_30d = Column(Integer, default=0, nullable=False)
    neutral_count_90d = Column(Integer, default=0, nullable=False)
    neutral_count_180d = Column(Integer, default=0, nullable=False)
    neutral_count_lifetime = Column(Integer, default=0, nullable=False)
    
    # negative / (negative + completed)
    negative_rate_30d = Column(Float, default=0.0, nullable=False)
    negative_rate_90d = Column(Float, default=0.0, nullable=False)
    negative_rate_180d = Column(Float, default=0.0, nullable=False)
    negative_rate_lifetime = Column(Float, default=0.0, nullable=False)
    
    # Counterpart diversity (pattern vs. isolated incident)
    unique_counterparts_30d = Column(Integer, default=0, nullable=False)
    unique_counterparts_90d = Column(Integer, default=0, nullable=False)
    unique_counterparts_180d = Column(Integer, default=0, nullable=False)
    
    # 0 = Good/Normal, 1 = Advisory, 2 = Risk, 3 = High Risk
    trust_level = Column(Integer, default=0, nullable=False)
    previous_trust_level = Column(Integer, default=0, nullable=False)
    
    # Recovery tracking
    consecutive_completed_since_last_negative = Column(Integer, default=0, nullable=False)
    last_negative_at = Column(DateTime)
    last_completed_at = Column(DateTime)
    trust_improved_at = Column(DateTime)
    
    score_calculated_at = Column(DateTime)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    
    __table_args__ = (
        UniqueConstraint('actor_id', 'role', name='unique_trust_score_actor_role'),
        Index('idx_trust_score_level', 'role', 'trust_level'),
    )
    
    __mapper_args__ = {"version_id_col": version}


# ============================================================
# SNAPSHOTS (audit / trend analysis)
# ============================================================

class TrustSnapshot(Base):
    """Read-only copy of a score record at a point in time"""
    __tablename__ = "trust_snapshots"
    
    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String(64), nullable=False)
    role = Column(String(20), nullable=False)
    trust_level = Column(Integer, nullable=False)
    score_data = Column(JSONType, nullable=False)
    reason = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    
    __table_args__ = (
        Index('idx_trust_snapshots_actor_role', 'actor_id', 'role', 'created_at'),
    )
