import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="ielts-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET_KEY"] = "test-secret"
for _name in ("GEMINI_API_KEY", "OPENROUTER_API_KEY", "CRON_SECRET", "SEED_ADMIN_EMAIL", "SEED_ADMIN_PASSWORD"):
    os.environ.pop(_name, None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from ielts_portal.db import Base, SessionLocal, engine  # noqa: E402
from ielts_portal.main import app  # noqa: E402
from ielts_portal.models import ROLE_ADMIN, ROLE_INSTRUCTOR, User  # noqa: E402
from ielts_portal.routers.auth import hash_password  # noqa: E402


ADMIN_EMAIL = "admin@example.com"
INSTRUCTOR_EMAIL = "instructor@example.com"
PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


def login(client, email, password=PASSWORD):
    r = client.post("/auth/token", data={"username": email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def staff(db):
    db.add(User(email=ADMIN_EMAIL, name="Admin", password_hash=hash_password(PASSWORD), role=ROLE_ADMIN))
    db.add(User(email=INSTRUCTOR_EMAIL, name="Instructor", password_hash=hash_password(PASSWORD), role=ROLE_INSTRUCTOR))
    db.commit()


@pytest.fixture
def admin_headers(client, staff):
    return login(client, ADMIN_EMAIL)


@pytest.fixture
def instructor_headers(client, staff):
    return login(client, INSTRUCTOR_EMAIL)


MOCK_PAYLOAD = {
    "title": "Academic Mock 1",
    "description": "Full mock",
    "modules": [
        {
            "type": "READING",
            "duration_minutes": 60,
            "questions": [
                {"type": "MULTIPLE_CHOICE", "part": 1, "content": {"question": "Why?", "options": ["A", "B", "C", "D"]}, "correct_answer": "B"},
                {"type": "TRUE_FALSE_NOT_GIVEN", "part": 1, "content": {"statement": "The sky is green."}, "correct_answer": "NOT GIVEN"},
                {"type": "NOTES_COMPLETION", "part": 2, "content": {"prompt": "Meet at the ____"}, "correct_answer": ["library", "the library"]},
                {
                    "type": "MATCHING_HEADINGS",
                    "part": 3,
                    "points": 2,
                    "content": {
                        "passage": "Section A ... Section B ...",
                        "headings": ["i", "ii", "iii", "iv"],
                        "correctAnswers": {"A": "ii", "B": "iv"},
                    },
                },
            ],
        },
        {
            "type": "LISTENING",
            "duration_minutes": 30,
            "questions": [
                {"type": "MULTIPLE_CHOICE", "part": 1, "correct_answer": "A"},
                {"type": "MULTIPLE_CHOICE", "part": 2, "correct_answer": "B"},
                {"type": "MULTIPLE_CHOICE", "part": 3, "correct_answer": "C"},
                {"type": "MULTIPLE_CHOICE", "part": 4, "correct_answer": "D"},
            ],
        },
        {
            "type": "WRITING",
            "duration_minutes": 60,
            "questions": [
                {"type": "WRITING_TASK_1", "part": 1, "points": 0, "content": {"prompt": "Describe the chart."}},
                {"type": "WRITING_TASK_2", "part": 2, "points": 0, "content": {"prompt": "Discuss both views."}},
            ],
        },
    ],
}


@pytest.fixture
def mock_test(client, admin_headers):
    r = client.post("/admin/mocks", json=MOCK_PAYLOAD, headers=admin_headers)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
def student(client, admin_headers):
    r = client.post(
        "/admin/students",
        json={"email": "Student@Example.com", "password": PASSWORD, "name": "Sam", "candidate_number": "C1001"},
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
def assignment(client, admin_headers, student, mock_test):
    r = client.post("/admin/assignments", json={"student_id": student["id"], "mock_id": mock_test["id"]}, headers=admin_headers)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
def student_headers(client, assignment):
    r = client.post("/auth/student/token", json={"token": assignment["access_token"]})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def module_of(mock, module_type):
    return next(m for m in mock["modules"] if m["type"] == module_type)
