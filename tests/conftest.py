"""Shared fixtures: gateways, seeded records, and an API client."""

import pytest
from fastapi.testclient import TestClient

from ic_portal.core.auth import create_access_token
from ic_portal.db.sql import build_engine, init_sql_schema
from ic_portal.main import create_app
from ic_portal.models import ProfessorProfile, Resume, StudentProfile, User
from ic_portal.services.lifecycle_service import ApplicationLifecycleService, ProjectLocks
from ic_portal.services.project_service import ProjectService
from ic_portal.services.sql_storage import SqlStorage
from ic_portal.services.storage import InMemoryStorage


def make_student(user_id="stu-1", name="Ana Souza", with_resume=True) -> User:
    resume = None
    if with_resume:
        resume = Resume(filename="cv.pdf", content_type="application/pdf",
                        content="JVBERi0=", size_bytes=5)
    return User(
        id=user_id,
        email=f"{user_id}@usp.br",
        name=name,
        nusp="1234567",
        profile=StudentProfile(course="Engenharia de Computação", ideal_period=5, resume=resume),
    )


def make_professor(user_id="prof-1", name="Carlos Lima") -> User:
    return User(
        id=user_id,
        email=f"{user_id}@usp.br",
        name=name,
        profile=ProfessorProfile(faculty="POLI", department="PCS"),
    )


PROJECT_DATA = {
    "title": "Robust graph algorithms",
    "area": "Computer Science",
    "theme": "Algorithms",
    "duration": "12 months",
    "description": "Study of fault tolerant graph algorithms.",
    "keywords": ["graphs", "algorithms"],
    "scholarship_details": "FAPESP",
    "vacancies": 1,
}


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def sql_storage():
    engine = build_engine("sqlite://")
    init_sql_schema(engine)
    yield SqlStorage(engine)
    engine.dispose()


@pytest.fixture
def locks():
    return ProjectLocks()


@pytest.fixture
def lifecycle(storage, locks):
    return ApplicationLifecycleService(storage, locks)


@pytest.fixture
def projects(storage, locks):
    return ProjectService(storage, locks)


@pytest.fixture
def professor(storage):
    return storage.create_user(make_professor())


@pytest.fixture
def student(storage):
    return storage.create_user(make_student())


@pytest.fixture
def project(projects, professor):
    return projects.create_project(professor.id, dict(PROJECT_DATA))


@pytest.fixture
def client(storage):
    app = create_app(storage=storage)
    with TestClient(app) as test_client:
        yield test_client


def auth_headers(user_id: str, email: str = None) -> dict:
    token = create_access_token({"sub": user_id, "email": email or f"{user_id}@usp.br"})
    return {"Authorization": f"Bearer {token}"}
