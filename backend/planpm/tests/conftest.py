import os
os.environ["TESTING"] = "1"
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

from datetime import datetime, timezone
import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from planpm.main import app
from planpm.database import Base, build_engine, get_db
from planpm import models
from planpm.store import InMemoryScheduleStore

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = build_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def store():
    return InMemoryScheduleStore()


def utc(year, month, day, hour=9):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


@pytest.fixture
def make_configuration(store):
    """Register a configuration on the in-memory store."""

    def _make(**overrides):
        values = {
            "instrument_id": uuid.uuid4(),
            "maintenance_type": "Calibration",
            "frequency": "Monthly",
            "schedule_date": utc(2024, 1, 15),
            "template_id": None,
            "maintenance_by": "self",
            "vendor_name": None,
            "vendor_contact": None,
            "is_active": True,
        }
        values.update(overrides)
        return store.add_configuration(models.MaintenanceConfiguration(**values))

    return _make


def create_instrument(client, **overrides):
    payload = {"eqp_id": f"EQ-{uuid.uuid4().hex[:6]}", "instrument_type": "Balance"}
    payload.update(overrides)
    resp = client.post("/api/instruments/", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()
