import asyncio
from datetime import date, datetime

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, text

from exam_portal.models import (
    AIAttempt,
    Assessment,
    AssessmentAttempt,
    Profile,
    Question,
    Student,
)
from exam_portal.services import schedule

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

# StaticPool shares the same in-memory database across connections
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Half-way through the 10:00-11:00 AM window of the sample assessment
OPEN_NOW = datetime(2024, 6, 1, 10, 30)


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create all tables in the test database once per session."""
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def cleanup_db_between_tests():
    """Clean up test data after each test."""
    yield

    # Clean up in FK-safe order
    with Session(test_engine) as session:
        session.exec(text("DELETE FROM attemptanswer"))
        session.exec(text("DELETE FROM assessmentattempt"))
        session.exec(text("DELETE FROM aiattempt"))
        session.exec(text("DELETE FROM question"))
        session.exec(text("DELETE FROM assessment"))
        session.exec(text("DELETE FROM profile"))
        session.exec(text("DELETE FROM student"))
        session.commit()


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def clock(monkeypatch):
    """Pin the server's local clock; returns a setter for moving it."""
    current = {"now": OPEN_NOW}
    monkeypatch.setattr(schedule, "local_now", lambda tz=None: current["now"])

    def set_now(value: datetime):
        current["now"] = value

    return set_now


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================

from exam_portal.database import get_session
from exam_portal.main import app


@pytest.fixture
def client():
    """Create test client using httpx AsyncClient with sync wrapper."""

    def override_get_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    loop = asyncio.new_event_loop()
    transport = httpx.ASGITransport(app=app)
    async_client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    class SyncClientWrapper:
        def __init__(self, async_client, loop):
            self.async_client = async_client
            self.loop = loop

        def get(self, *args, **kwargs):
            return self.loop.run_until_complete(self.async_client.get(*args, **kwargs))

        def post(self, *args, **kwargs):
            return self.loop.run_until_complete(self.async_client.post(*args, **kwargs))

        def put(self, *args, **kwargs):
            return self.loop.run_until_complete(self.async_client.put(*args, **kwargs))

    yield SyncClientWrapper(async_client, loop)

    loop.run_until_complete(async_client.aclose())
    loop.close()
    app.dependency_overrides.clear()


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


def _persist(obj):
    with Session(test_engine) as session:
        session.add(obj)
        session.commit()
        session.refresh(obj)
        model, obj_id = type(obj), obj.id
    with Session(test_engine) as session:
        return session.get(model, obj_id)


@pytest.fixture
def student():
    """A student enrolled in Chess at Beginner level."""
    return _persist(
        Student(
            name="Alice Tan",
            email="alice@example.com",
            course="Chess",
            level="Beginner",
            user_id="user-alice",
        )
    )


@pytest.fixture
def other_student():
    return _persist(
        Student(
            name="Bob Lim",
            email="bob@example.com",
            course="Chess",
            level="Beginner",
            user_id="user-bob",
        )
    )


@pytest.fixture
def assessment():
    """Chess / Beginner assessment on 2024-06-01, 10:00-11:00 AM, 10 marks."""
    return _persist(
        Assessment(
            course="Chess",
            level="Beginner",
            date=date(2024, 6, 1),
            start_time="10:00 AM",
            end_time="11:00 AM",
            duration="60 minutes",
            total_marks=10,
        )
    )


@pytest.fixture
def questions(assessment):
    """One question of each kind; auto-gradeable marks add up to 10."""
    items = [
        Question(
            assessment_id=assessment.id,
            type="mcq",
            prompt="Which piece can fork two rooks most easily?",
            options=["King", "Knight", "Bishop", "Pawn"],
            correct=1,
            marks=4,
        ),
        Question(
            assessment_id=assessment.id,
            type="mcq",
            prompt="Name the tactic: one piece attacks two.",
            options=["Pin", "Skewer", "Knight fork", "Zwischenzug"],
            correct="Knight fork",
            marks=3,
            explanation="A fork attacks two pieces at once.",
        ),
        Question(
            assessment_id=assessment.id,
            type="short",
            prompt="Most popular first move for white?",
            correct="e4",
            marks=3,
        ),
        Question(
            assessment_id=assessment.id,
            type="essay",
            prompt="Explain the idea behind the Sicilian Defence.",
            marks=5,
        ),
    ]
    return [_persist(q) for q in items]


@pytest.fixture
def open_attempt(assessment, student):
    return _persist(
        AssessmentAttempt(
            assessment_id=assessment.id,
            student_id=student.id,
            student_email=student.email,
            status="started",
        )
    )


@pytest.fixture
def profiles():
    return [
        _persist(Profile(id="user-alice", full_name="Alice Tan", email="alice@example.com")),
        _persist(Profile(id="user-bob", full_name=None, email="bob@example.com")),
    ]


@pytest.fixture
def ai_attempt(student):
    return _persist(
        AIAttempt(
            user_id=student.user_id,
            total_puzzles=5,
            correct_count=3,
            score_pct=60.0,
            started_at=datetime(2024, 6, 2, 9, 0),
            finished_at=datetime(2024, 6, 2, 9, 10),
        )
    )
