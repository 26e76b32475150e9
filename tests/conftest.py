# tests/conftest.py
import pytest

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from dialectic.main import app
from dialectic.db.database import Base

# Import models so metadata knows about all tables
import dialectic.models  # noqa: F401
from dialectic.models.ai_provider import AiProvider
from dialectic.models.generation_job import GenerationJob, JobStatus, JobType
from dialectic.models.project import DialecticProject, DialecticSession


@pytest.fixture(scope="session")
def engine():
    """Create an in-memory SQLite database shared across tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def clean_db(engine):
    """Reset all tables before each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture()
def db(engine):
    """Return a new SQLAlchemy session for each test."""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def project_session(db):
    """A project owned by user-1 with one session."""
    project = DialecticProject(id="project-1", user_id="user-1", project_name="Test Project",
                               initial_user_prompt="Build a todo app")
    session = DialecticSession(id="session-1", project_id=project.id, current_stage_slug="thesis")
    db.add_all([project, session])
    db.commit()
    return project, session


@pytest.fixture
def provider(db):
    row = AiProvider(
        id="model-1",
        name="claude",
        api_identifier="claude-sonnet-4-20250514",
        provider="anthropic",
        config={"context_window_tokens": 1000, "provider_max_output_tokens": 512},
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def base_payload():
    return {
        "projectId": "project-1",
        "sessionId": "session-1",
        "stageSlug": "thesis",
        "iterationNumber": 1,
        "model_id": "model-1",
        "user_jwt": "jwt-token",
        "walletId": "wallet-1",
    }


@pytest.fixture
def make_job(db, project_session, base_payload):
    """Insert a GenerationJob row; payload keys override `base_payload`."""
    def _make(job_type=JobType.PLAN, status=JobStatus.PROCESSING, parent_job_id=None, **payload_overrides):
        payload = {**base_payload, **payload_overrides}
        job = GenerationJob(
            session_id="session-1",
            user_id="user-1",
            stage_slug=payload.get("stageSlug") or "thesis",
            iteration_number=1,
            job_type=job_type,
            status=status,
            payload=payload,
            parent_job_id=parent_job_id,
        )
        db.add(job)
        db.commit()
        db.refresh(job)
        return job
    return _make


@pytest.fixture
def client(db):
    """FastAPI test client that routes all DB deps to the test session."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    from dialectic.db.database import get_db as db_get_db

    app.dependency_overrides[db_get_db] = override_get_db

    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        app.dependency_overrides.clear()
