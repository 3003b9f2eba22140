"""Shared pytest fixtures for the users API test suites."""

from collections.abc import Generator
import os
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Must be set before app.db.base builds its module-level engine.
os.environ.setdefault("USERS_API_DATABASE_URL", "sqlite+pysqlite:///:memory:")

from app.core.config import AppSettings  # noqa: E402


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Provide an isolated in-memory SQLite database with the schema created."""
    from app.db.models import Base

    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(environment="production")


@pytest.fixture
def client(engine: Engine, settings: AppSettings) -> Generator[TestClient, None, None]:
    """Provide an API test client bound to the in-memory database."""
    from app.db.base import get_db_session
    from app.main import create_app

    session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, class_=Session)

    def _session_override() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app = create_app(settings)
    app.dependency_overrides[get_db_session] = _session_override

    with TestClient(app) as test_client:
        yield test_client
