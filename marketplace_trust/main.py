"""
Main FastAPI application for the Marketplace Trust Engine
"""
from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from marketplace_trust import __version__
from marketplace_trust.config import settings
from marketplace_trust.db.database import Base, engine
from marketplace_trust.api import system, trust

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Marketplace Trust Engine...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready")

    yield

    # Shutdown
    logger.info("Shutting down Marketplace Trust Engine...")
    engine.dispose()


app = FastAPI(
    title="Marketplace Trust Engine",
    description="Reliability trust levels for requesters and fulfillers",
    version=__version__,
    lifespan=lifespan
)

# Include routers
app.include_router(system.router, tags=["System"])
app.include_router(trust.router, prefix="/trust", tags=["Trust"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Marketplace Trust Engine",
        "version": __version__,
        "status": "running"
    }
