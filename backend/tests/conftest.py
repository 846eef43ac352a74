import os
import sys
from pathlib import Path
import uuid
import time

import pytest
from fastapi.testclient import TestClient

backend_dir = Path(__file__).resolve().parents[1]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from sqlalchemy import create_engine, select
from sqlalchemy.pool import StaticPool

from talent_training.db.base import Base
from talent_training.db import session as session_module
from talent_training.main import create_app
from talent_training.core.security import create_access_token

# Import models so that they are registered in Base.metadata before create_all.
from talent_training.models.profile import Profile
from talent_training.models.progress import SectionProgress  # noqa: F401
from talent_training.models.attempt import QuizAttempt  # noqa: F401
from talent_training.models.quiz import QuizQuestion


class _MemoryRedis:
    def __init__(self):
        self._data: dict[str, tuple[str, float | None]] = {}

    def ping(self):
        return True

    def _now(self) -> float:
        return time.time()

    def _get_entry(self, key: str):
        v = self._data.get(key)
        if not v:
            return None
        value, exp = v
        if exp is not None and exp <= self._now():
            self._data.pop(key, None)
            return None
        return value, exp

    def get(self, key: str):
        entry = self._get_entry(key)
        return entry[0] if entry else None

    def set(self, key: str, value: str, ex: int | None = None):
        exp = (self._now() + int(ex)) if ex else None
        self._data[key] = (value, exp)
        return True

    def delete(self, key: str):
        self._data.pop(key, None)
        return 1

    def incr(self, key: str):
        cur = self.get(key)
        n = int(cur or 0) + 1
        _, exp = self._data.get(key, ("", None))
        self._data[key] = (str(n), exp)
        return n

    def expire(self, key: str, seconds: int):
        entry = self._get_entry(key)
        if not entry:
            return False
        value, _ = entry
        self._data[key] = (value, self._now() + int(seconds))
        return True

    def ttl(self, key: str):
        entry = self._get_entry(key)
        if not entry:
            return -2
        _, exp = entry
        if exp is None:
            return -1
        return max(0, int(exp - self._now()))

    def flushall(self):
        self._data.clear()


# Configure test DB (SQLite in-memory) at import time so everything importing
# talent_training.db.session.SessionLocal gets the patched version.
_engine = create_engine(
    "sqlite+pysqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
Base.metadata.create_all(bind=_engine)
session_module.engine = _engine
session_module.SessionLocal = session_module.sessionmaker(autocommit=False, autoflush=False, bind=_engine)

# Correct option per question; the API tests answer from this key.
QUESTION_BANK = [
    ("What is the best way to handle a disagreement with a colleague?", "B"),
    ("Which technique helps prioritise daily tasks?", "A"),
    ("What is appropriate when joining a meeting late?", "D"),
    ("How should you reply to an email sent to the whole team?", "C"),
]


def _seed_questions() -> None:
    with session_module.SessionLocal() as db:
        if db.scalar(select(QuizQuestion).limit(1)) is not None:
            return
        for text, correct in QUESTION_BANK:
            db.add(
                QuizQuestion(
                    question=text,
                    option_a=f"{text} / option A",
                    option_b=f"{text} / option B",
                    option_c=f"{text} / option C",
                    option_d=f"{text} / option D",
                    correct_answer=correct,
                )
            )
        db.commit()


_seed_questions()


# Stub Redis at import time (rate limiting + quiz sessions).
_mem_redis = _MemoryRedis()
import talent_training.core.redis_client as redis_client_module

redis_client_module.get_redis = lambda: _mem_redis

import talent_training.core.rate_limit as rate_limit_module
rate_limit_module.get_redis = lambda: _mem_redis

import talent_training.routers.quiz as quiz_router_module
quiz_router_module.get_redis = lambda: _mem_redis

import talent_training.routers.health as health_router_module
health_router_module.get_redis = lambda: _mem_redis


@pytest.fixture(autouse=True)
def _clean_redis():
    _mem_redis.flushall()
    yield


@pytest.fixture()
def memory_redis():
    return _mem_redis


@pytest.fixture(scope="session")
def client():
    app = create_app()

    # Ensure app dependencies use our session factory.
    def _get_db_override():
        db = session_module.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[session_module.get_db] = _get_db_override
    return TestClient(app)


@pytest.fixture()
def db():
    with session_module.SessionLocal() as session:
        yield session


@pytest.fixture()
def answer_key(db) -> dict[str, str]:
    return {str(q.id): q.correct_answer for q in db.scalars(select(QuizQuestion))}


def _create_profile(*, is_admin: bool = False, first_name: str = "Test", last_name: str = "User") -> Profile:
    with session_module.SessionLocal() as db:
        prof = Profile(
            first_name=first_name,
            last_name=last_name,
            email=f"user_{uuid.uuid4().hex[:10]}@example.com",
            is_admin=is_admin,
        )
        db.add(prof)
        db.commit()
        db.refresh(prof)
        db.expunge(prof)
        return prof


def _auth_headers(prof: Profile) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(prof.id)}"}


@pytest.fixture()
def make_user():
    def _make(**kwargs) -> tuple[Profile, dict[str, str]]:
        prof = _create_profile(**kwargs)
        return prof, _auth_headers(prof)

    return _make


@pytest.fixture()
def learner(make_user):
    return make_user()


@pytest.fixture()
def trained_learner(client, make_user):
    prof, headers = make_user()
    for sid in ("section1", "section2", "section3"):
        r = client.post(f"/training/sections/{sid}/complete", headers=headers)
        assert r.status_code == 200
    return prof, headers


@pytest.fixture()
def admin_headers(make_user):
    _, headers = make_user(is_admin=True, first_name="Ada", last_name="Admin")
    return headers
