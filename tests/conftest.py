"""
Fixtures comunes: BD SQLite en memoria (nueva en cada test) y cliente HTTP.
"""

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db, enable_sqlite_foreign_keys
from models import User, Goal, Competition
from auth import hash_password
from goals import get_date_range, upsert_completion
from competition import join_competition
from main import app

# StaticPool → todas las sesiones comparten la misma conexión en memoria
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_foreign_keys(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(name="db", scope="function")
def session_fixture():
    """Tablas nuevas antes de cada test, borradas al terminar"""
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db: Session):
    def _make(username: str, password: str = "secreto123") -> User:
        user = User(
            username=username,
            email=f"{username.lower()}@mail.com",
            password_hash=hash_password(password)
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_competition(db: Session):
    """Crea la competición y une al creador, igual que POST /api/competition"""
    def _make(creator: User, title: str, description: str = "") -> Competition:
        competition = Competition(creator_id=creator.id, title=title, description=description)
        db.add(competition)
        db.commit()
        db.refresh(competition)
        join_competition(db, creator.id, competition)
        return competition
    return _make


@pytest.fixture
def add_goal_time(db: Session):
    """Registra minutos en el objetivo `title` del usuario (lo crea si no existe)"""
    def _add(user: User, title: str, minutes: int, day: date = None) -> Goal:
        day = day or date.today()
        goal = db.query(Goal).filter(Goal.user_id == user.id, Goal.title == title).first()
        if not goal:
            start, end = get_date_range("daily", day)
            goal = Goal(user_id=user.id, title=title, type="daily", start_date=start, end_date=end)
            db.add(goal)
            db.commit()
            db.refresh(goal)
        upsert_completion(db, goal, day, minutes)
        return goal
    return _add
