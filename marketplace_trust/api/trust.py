"""
Trust Router - event intake, guidance, eligibility and audit endpoints

Provides:
- POST /events: Record a trust event (booking/job/dispute subsystems)
- GET /taxonomy: Closed event taxonomy
- GET /{role}/{actor_id}/guidance: Trust status for the actor's own dashboard
- GET /{role}/{actor_id}/eligibility: Job posting / acceptance gate
- GET /{role}/{actor_id}/events: Audit history (internal)
- POST /{role}/{actor_id}/snapshots: Administrative snapshot annotation (internal)
- GET /{role}/{actor_id}/snapshots: Snapshot history (internal)

Every per-actor route requires the internal API key: trust state is served
only to the marketplace backend, which shows it to the actor it belongs to
and never to the counterpart.
"""
from fastapi import APIRouter, Depends, Query, HTTPException
from typing import Optional, List
from sqlalchemy.orm import Session
import logging

from marketplace_trust.config import settings
from marketplace_trust.dependencies import get_db, verify_api_key
from marketplace_trust.db.models import ActorRole
from marketplace_trust.errors import TrustEngineError, RecalculationConflict
from marketplace_trust.services.trust_service import trust_service
from marketplace_trust.services.guidance_service import guidance_service
from marketplace_trust.services.event_store_service import event_store_service
from marketplace_trust.services.snapshot_service import snapshot_service
from marketplace_trust.services.taxonomy_service import taxonomy_service
from marketplace_trust.schemas import (
    Urgency,
    RecordEventRequest,
    RecordEventResponse,
    GuidanceResponse,
    EligibilityResponse,
    TrustEventItem,
    SnapshotRequest,
    SnapshotResponse,
    EventTypeItem
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/events", response_model=RecordEventResponse)
async def record_event(
    request: RecordEventRequest,
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """
    Record a trust event and recalculate the actor's trust level.

    Idempotent on (actor_id, role, dedup_key) inside the dedup window:
    a replay returns the original event with deduplicated=true.

    Errors:
    - 400: unknown event type / role, category mismatch, future occurred_at
    - 409: concurrent recalculations kept conflicting; retry the event
    """
    try:
        result = trust_service.record_event(
            db=db,
            actor_id=request.actor_id,
            role=request.role,
            event_type=request.event_type,
            category=request.category,
            counterpart_id=request.counterpart_id,
            dedup_key=request.dedup_key,
            refs=request.refs,
            notes=request.notes,
            occurred_at=request.occurred_at
        )
    except RecalculationConflict as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TrustEngineError as e:
        logger.warning(f"Rejected trust event for {request.actor_id}/{request.role}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    return result.to_dict()


@router.get("/taxonomy", response_model=List[EventTypeItem])
async def get_taxonomy():
    """Every accepted event type with its category and recovery semantics"""
    return taxonomy_service.list_event_types()


@router.get("/{role}/{actor_id}/guidance", response_model=GuidanceResponse)
async def get_guidance(
    role: ActorRole,
    actor_id: str,
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """
    Trust status, key metrics, improvement tips and recovery progress.

    Unknown actors get level-0 defaults.
    """
    return guidance_service.get_guidance(db, actor_id, role)


@router.get("/{role}/{actor_id}/eligibility", response_model=EligibilityResponse)
async def check_eligibility(
    role: ActorRole,
    actor_id: str,
    action: Optional[str] = Query(None, description="Calling flow, e.g. 'post-job' or 'accept-job'"),
    urgency: Optional[Urgency] = Query(None, description="Urgency of the job being posted/accepted"),
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """
    Gate for job posting (requester) and job acceptance (fulfiller).

    Returns fee / confirmation / urgent-limit flags and warnings. Only a
    level-3 fulfiller accepting a high-urgency job is ineligible.
    """
    context = {
        "action": action,
        "urgency": urgency.value if urgency else None
    }
    return guidance_service.check_eligibility(db, actor_id, role, context)


@router.get("/{role}/{actor_id}/events", response_model=List[TrustEventItem])
async def get_trust_events(
    role: ActorRole,
    actor_id: str,
    limit: int = Query(settings.TRUST_EVENT_HISTORY_LIMIT, ge=1, le=500),
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Audit history for one actor/role, newest first (expired events included)"""
    return event_store_service.recent_events(db, actor_id, role, limit=limit)


@router.post("/{role}/{actor_id}/snapshots", response_model=SnapshotResponse)
async def create_snapshot(
    role: ActorRole,
    actor_id: str,
    request: SnapshotRequest,
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Administrative annotation: copy the current score record with a reason"""
    snapshot = snapshot_service.take_snapshot(db, actor_id, role, request.reason)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No trust record for this actor and role")
    return snapshot


@router.get("/{role}/{actor_id}/snapshots", response_model=List[SnapshotResponse])
async def list_snapshots(
    role: ActorRole,
    actor_id: str,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key)
):
    """Snapshots for one actor/role, newest first"""
    return snapshot_service.list_snapshots(db, actor_id, role, limit=limit)
