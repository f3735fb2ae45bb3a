import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from backend.backend import app
from backend.engagement_module.database import Base, get_db_session
from backend.engagement_module.models import User, UserRole


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
    session = Session(bind=engine, autoflush=False)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_db_session():
        yield db

    app.dependency_overrides[get_db_session] = override_db_session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def factory(role: UserRole, name: str, email: str, **extra) -> User:
        user = User(name=name, email=email, role=role, password_hash="not-a-real-hash", **extra)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, "Ada Admin", "ada@school.test")


@pytest.fixture
def teacher(make_user):
    return make_user(UserRole.TEACHER, "Tom Teacher", "tom@school.test", subject="Mathematics", grades=["Grade 1", "Grade 2"])


@pytest.fixture
def student(make_user):
    return make_user(UserRole.STUDENT, "Sam Student", "sam@school.test", grade="Grade 1")


@pytest.fixture
def parent(make_user, student):
    return make_user(UserRole.PARENT, "Pat Parent", "pat@home.test", child_emails=[student.email])


@pytest.fixture
def other_parent(make_user):
    return make_user(UserRole.PARENT, "Olive Other", "olive@home.test")


@pytest.fixture
def auth():
    def headers(user: User) -> dict:
        return {"X-User-Id": user.id}

    return headers
