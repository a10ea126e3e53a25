"""Pytest configuration and shared fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import CurrentUser, get_current_user
from database import get_db
from main import app
from models import Base, Profile, Program, Recommendation
from openai_client import get_openai_client, get_optional_openai_client

TEST_USER_ID = "user-1"


@pytest.fixture
def db_session():
    """In-memory SQLite session with every table created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def current_user() -> CurrentUser:
    return CurrentUser(id=TEST_USER_ID, email="student@example.com", access_token="test-token")


@pytest.fixture
def anonymous_client(db_session) -> TestClient:
    """Test client with the test database but no authenticated user."""
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[get_optional_openai_client] = lambda: None
    return TestClient(app)


@pytest.fixture
def test_client(anonymous_client, current_user) -> TestClient:
    """Test client authenticated as TEST_USER_ID, without an OpenAI client."""
    app.dependency_overrides[get_current_user] = lambda: current_user
    return anonymous_client


@pytest.fixture
def use_openai_client():
    """Install a fake OpenAI client for both client dependencies and return it."""
    def install(client):
        app.dependency_overrides[get_openai_client] = lambda: client
        app.dependency_overrides[get_optional_openai_client] = lambda: client
        return client
    return install


@pytest.fixture
def profile(db_session) -> Profile:
    row = Profile(
        id=TEST_USER_ID,
        first_name="Ada",
        last_name="Lovelace",
        email="student@example.com",
        target_study_level="Masters",
        education=[{"institution": "University of Lagos", "degree": "BSc Computer Science"}],
        career_goals={"shortTerm": "Data scientist", "longTerm": "Research lead", "desiredIndustry": [], "desiredRoles": []},
        preferences={"preferredLocations": ["Germany"], "studyMode": "Full-time", "budgetRange": {"min": 0, "max": 30000}},
        vector_store_id="vs_1",
        profile_file_id="file_profile",
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture
def recommendation(db_session, profile) -> Recommendation:
    """A favorite recommendation "rec1" for a programme at TU Munich."""
    program = Program(
        id="prog1",
        name="MSc Data Engineering",
        institution="TU Munich",
        degree_type="Masters",
        field_of_study="Computer Science",
        cost_per_year=3000,
        duration=24,
        location="Munich, Germany",
    )
    row = Recommendation(
        id="rec1",
        user_id=TEST_USER_ID,
        program_id="prog1",
        match_score=88,
        match_rationale={"careerAlignment": 90},
        is_favorite=True,
    )
    db_session.add_all([program, row])
    db_session.commit()
    return row


@pytest.fixture
def program_payload() -> dict:
    """Programme arguments as the assistant sends them to create_recommendation."""
    return {
        "name": "MSc Artificial Intelligence",
        "institution": "University of Amsterdam",
        "degree_type": "Masters",
        "field_of_study": "Artificial Intelligence",
        "description": "Two-year research-oriented master's programme.",
        "cost_per_year": 2314,
        "duration": 24,
        "location": "Amsterdam, Netherlands",
        "start_date": "September 2026",
        "application_deadline": "2026-04-01",
        "requirements": ["BSc in a related field", "IELTS 6.5"],
        "highlights": ["Strong ML research groups"],
        "page_link": "https://www.uva.nl/en/programmes/masters/artificial-intelligence",
        "match_score": 86,
        "match_rationale": {"careerAlignment": 90, "budgetFit": 85, "locationMatch": 80, "academicFit": 88},
        "scholarships": [{"name": "Amsterdam Merit Scholarship", "amount": "EUR 25,000", "eligibility": "Non-EU students"}],
    }
