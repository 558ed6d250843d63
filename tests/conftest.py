"""Shared fixtures: a throwaway SQLite database, seeded users and an API client."""
import os

os.environ.setdefault("FAAE_DATABASE_URL", "sqlite://")
os.environ.setdefault("FAAE_OPENAI_API_KEY", "")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from faae_core import models
from faae_core.api.dependencies import get_assistant, get_storage
from faae_core.api.main import app
from faae_core.database import build_engine, get_db
from faae_core.file_storage import FileStorage
from faae_core.search import SearchAssistant

ADMIN_ID = "admin-1"
ANA_ID = "user-ana"
BRUNO_ID = "user-bruno"


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    models.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    session.add_all([
        models.User(id=ADMIN_ID, email="admin@faae.com.br", first_name="Carla", last_name="Admin",
                    role=models.UserRole.ADMIN, created_at=datetime(2024, 1, 1)),
        models.User(id=ANA_ID, email="ana@faae.com.br", first_name="Ana", last_name="Souza",
                    role=models.UserRole.SENIOR_ARCHITECT, created_at=datetime(2024, 1, 2)),
        models.User(id=BRUNO_ID, email="bruno@faae.com.br", first_name="Bruno", last_name="Lima",
                    role=models.UserRole.COLLABORATOR, created_at=datetime(2024, 1, 3)),
    ])
    session.commit()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    return FileStorage(str(tmp_path / "uploads"), max_size_bytes=1024)


@pytest.fixture
def client(db, session_factory, storage):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_assistant] = lambda: SearchAssistant()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth(user_id: str) -> dict:
    """Identity header for a seeded user."""
    return {"X-User-Id": user_id}
