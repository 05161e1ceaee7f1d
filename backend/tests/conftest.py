"""
Pytest configuration for the Examica engine tests
"""
import os
import tempfile

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'examica_import.db')}",
)

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine

from examica.core.config import Settings
from examica.core.database import Base, make_session_factory
from examica.models import Exam, ExamQuestion, Question, User, VerificationAttempt
from examica.schemas.verification import FaceComparison
from examica.services.container import build_services
from examica.services.face_comparison import FaceComparator

START_EPOCH = 1_700_000_000.0


class FakeClock:
    """Controllable epoch-seconds clock"""

    def __init__(self, start: float = START_EPOCH):
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float):
        self.current += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'examica_test.db'}")

    # pysqlite needs explicit BEGIN for SAVEPOINT support
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        secret_key="test-secret-key",
        store_backend="memory",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'examica_test.db'}",
        reconciliation_max_retries=2,
    )


@pytest.fixture
def comparator():
    """Face comparator double that reports a strong match"""
    mock = MagicMock(spec=FaceComparator)
    mock.compare = AsyncMock(return_value=FaceComparison(similarity=96.5, confidence=99.8, success=True))
    return mock


@pytest.fixture
async def services(test_settings, session_factory, comparator, clock):
    services = build_services(
        test_settings,
        session_factory=session_factory,
        face_comparator=comparator,
        clock=clock,
    )
    yield services
    await services.aclose()


@pytest.fixture
async def seed(db):
    """Users, one timed exam requiring verification and one open exam"""
    student = User(id="student-1", email="student@example.com", full_name="Sam Student",
                   role="student", face_image_key="faces/student-1.jpg")
    other_student = User(id="student-2", email="other@example.com", full_name="Olu Other", role="student")
    examiner = User(id="examiner-1", email="examiner@example.com", full_name="Eve Examiner", role="examiner")

    timed = Exam(id="exam-timed", title="Geography", status="active", duration_minutes=60, requires_verification=True)
    open_exam = Exam(id="exam-open", title="Practice", status="active", duration_minutes=None, requires_verification=False)
    draft = Exam(id="exam-draft", title="Draft", status="draft", duration_minutes=30, requires_verification=False)

    questions = [
        Question(id="q-mc", question_type="multiple_choice", content="Capital of Kenya?",
                 options=["A", "B", "C", "D"], correct_answer=["B"], points=1.0),
        Question(id="q-tf", question_type="true_false", content="The Nile flows north.",
                 correct_answer=True, points=1.0),
        Question(id="q-fill", question_type="fill_blank", content="Capital of France is ___",
                 correct_answer=["Paris"], points=2.0),
        Question(id="q-essay", question_type="essay", content="Describe a river delta.", points=5.0),
    ]
    links = [
        ExamQuestion(exam_id="exam-timed", question_id="q-mc", order_index=1),
        ExamQuestion(exam_id="exam-timed", question_id="q-tf", order_index=2),
        ExamQuestion(exam_id="exam-timed", question_id="q-fill", order_index=3),
        ExamQuestion(exam_id="exam-timed", question_id="q-essay", order_index=4),
        ExamQuestion(exam_id="exam-open", question_id="q-mc", order_index=1),
        ExamQuestion(exam_id="exam-open", question_id="q-tf", order_index=2),
    ]

    db.add_all([student, other_student, examiner, timed, open_exam, draft, *questions])
    await db.flush()
    db.add_all(links)
    await db.commit()
    return {"student": student, "other_student": other_student, "examiner": examiner}


@pytest.fixture
async def verified_student(db, seed, services):
    """Student with a fresh successful verification"""
    db.add(VerificationAttempt(
        user_id="student-1",
        success=True,
        similarity=97.0,
        confidence=99.0,
        created_at=services.now(),
    ))
    await db.commit()
    return seed["student"]
