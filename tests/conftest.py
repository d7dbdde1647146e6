"""Pytest configuration and fixtures."""
import os

# Settings are read at import time, so configure before importing the app.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("TOKENS", '["test-token"]')

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from personalization.core.db import get_db
from personalization.core.storage import InMemoryStorage
from personalization.main import app
from personalization.models.orm.base import Base
from personalization.repositories.experiment_repo import ExperimentRegistry

# Use in-memory SQLite for tests
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with overridden database dependency."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer test-token"}


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


def _experiment_definition(experiment_id="exp", weights=(0.5, 0.5), **overrides):
    """Raw experiment definition with variants named control, variant-a, variant-b..."""
    names = ["control"] + [f"variant-{chr(ord('a') + i)}" for i in range(len(weights) - 1)]
    definition = {
        "experiment_id": experiment_id,
        "name": experiment_id.title(),
        "enabled": True,
        "variants": [
            {"variant_id": name, "name": name.title(), "weight": weight}
            for name, weight in zip(names, weights)
        ],
    }
    definition.update(overrides)
    return definition


@pytest.fixture
def registry():
    """Registry with one plain 50/50 experiment and one disabled one."""
    return ExperimentRegistry.from_definitions(
        [
            _experiment_definition("checkout-button"),
            _experiment_definition("dark-mode", enabled=False),
        ]
    )


@pytest.fixture
def make_experiment():
    return _experiment_definition
