"""
Pydantic Schemas for the Marketplace Trust Engine APIs.
Request and Response models for all endpoints.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


# ============================================
# ENUMS
# ============================================
class Urgency(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


# ============================================
# RECORD EVENT
# ============================================
class RecordEventRequest(BaseModel):
    """Trust event emitted by the booking/job/dispute subsystems"""
    actor_id: str = Field(..., min_length=1, max_length=64)
    role: str = Field(..., description="'requester' or 'fulfiller'")
    event_type: str = Field(..., description="Member of the closed event taxonomy")
    category: Optional[str] = Field(None, description="negative / positive / neutral; must match the taxonomy")
    counterpart_id: Optional[str] = Field(None, max_length=64)
    dedup_key: Optional[str] = Field(None, max_length=255, description="Deterministic key of the triggering job/booking/incident")
    refs: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    occurred_at: Optional[datetime] = Field(None, description="Backfilled occurrence time (UTC); defaults to now")

    class Config:
        json_schema_extra = {
            "example": {
                "actor_id": "cust_4821",
                "role": "requester",
                "event_type": "no-show",
                "category": "negative",
                "counterpart_id": "prov_1177",
                "dedup_key": "incident:9f2c",
                "refs": {"job_id": "job_553", "incident_id": "9f2c"}
            }
        }


class RecordEventResponse(BaseModel):
    event_id: int
    actor_id: str
    role: str
    trust_level: int
    previous_trust_level: int
    deduplicated: bool
    transition: Optional[str] = None


# ============================================
# GUIDANCE / ELIGIBILITY
# ============================================
class RecoveryProgress(BaseModel):
    eligible_for_improvement: bool
    completed: int
    required: int
    message: str


class GuidanceResponse(BaseModel):
    actor_id: str
    role: str
    level: int = Field(..., ge=0, le=3)
    status_label: str
    status: str
    description: str
    key_metrics: Dict[str, Any]
    improvement_tips: List[str]
    recovery_progress: RecoveryProgress


class EligibilityResponse(BaseModel):
    actor_id: str
    role: str
    trust_level: int = Field(..., ge=0, le=3)
    eligible: bool
    requires_fee: bool
    requires_confirmation: bool
    limits_urgent_actions: bool
    warnings: List[str]


# ============================================
# AUDIT
# ============================================
class TrustEventItem(BaseModel):
    event_id: int
    event_type: str
    category: str
    counterpart_id: Optional[str] = None
    related_refs: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    occurred_at: datetime
    expires_at: Optional[datetime] = None
    expired: bool


class SnapshotRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class SnapshotResponse(BaseModel):
    snapshot_id: int
    actor_id: str
    role: str
    trust_level: int
    score_data: Dict[str, Any]
    reason: Optional[str] = None
    created_at: datetime


class EventTypeItem(BaseModel):
    event_type: str
    category: str
    label: str
    roles: List[str]
    counts_as_completion: bool
    advances_recovery: bool
