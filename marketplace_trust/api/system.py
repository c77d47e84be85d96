"""
System Router - Health checks
"""
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
from sqlalchemy import text
from sqlalchemy.orm import Session
import logging
import redis

from marketplace_trust import __version__
from marketplace_trust.config import settings
from marketplace_trust.dependencies import get_db

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint.
    The database is required; the Celery broker only degrades async intake.
    """
    database_status = "unhealthy"
    try:
        db.execute(text("SELECT 1"))
        database_status = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    # Check Celery broker
    broker_status = "unhealthy"
    worker_queue_depth = 0
    try:
        r = redis.from_url(settings.CELERY_BROKER_URL, socket_connect_timeout=1)
        r.ping()
        broker_status = "healthy"
        worker_queue_depth = r.llen("trust-events") or 0
    except Exception as e:
        logger.warning(f"Broker health check failed: {e}")

    return {
        "status": "healthy" if database_status == "healthy" else "unhealthy",
        "database": database_status,
        "broker": broker_status,
        "worker_queue_depth": worker_queue_depth,
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
