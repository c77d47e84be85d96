"""
Shared fixtures: in-memory SQLite sessions and an API client
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["API_KEY"] = "test-api-key"
os.environ["CELERY_BROKER_URL"] = "redis://localhost:6399/0"
os.environ["CELERY_RESULT_BACKEND"] = "redis://localhost:6399/0"

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace_trust.db.database import Base
from marketplace_trust.db import models  # noqa: F401  registers tables
from marketplace_trust.dependencies import get_db
from marketplace_trust.main import app

API_KEY = "test-api-key"
T0 = datetime(2026, 1, 1, 12, 0, 0)


def day(n: int) -> datetime:
    """T0 shifted by n days"""
    return T0 + timedelta(days=n)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed SQLite so two sessions really race on the same rows"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'trust.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def api_headers():
    return {"X-API-Key": API_KEY}
