from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from exam_api.database import Base
from exam_api.errors import PersistenceError
from exam_api.services.answer_ledger import AnswerEntry
from exam_api.services.persistence import PersistedSession
from exam_api.services.session_manager import SessionManager
from exam_api.services.session_state import QuestionDescriptor
from exam_api.services.time_budget import TimeAllotments


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeGateway:
    """In-memory PersistenceGateway recording every call."""

    def __init__(self):
        self.sessions: dict[str, dict] = {}
        self.answers: dict[str, dict[str, AnswerEntry]] = {}
        self.calls: list[str] = []
        self.fail_on: set[str] = set()
        self._next_id = 0

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise PersistenceError(operation, "simulated outage")

    def create_session(self, user_id, exam_set_id, total_questions, started_at, meta):
        self._record("create_session")
        self._next_id += 1
        session_id = f"session-{self._next_id}"
        self.sessions[session_id] = {
            "user_id": user_id,
            "exam_set_id": exam_set_id,
            "total_questions": total_questions,
            "started_at": started_at,
            "meta": meta,
            "status": "in_progress",
            "current_index": 0,
            "time_left": meta.get("total_budget"),
            "updated_at": None,
        }
        self.answers[session_id] = {}
        return session_id

    def update_session_progress(self, session_id, current_index, time_left, updated_at):
        self._record("update_session_progress")
        record = self.sessions[session_id]
        record["current_index"] = current_index
        record["time_left"] = time_left
        record["updated_at"] = updated_at

    def upsert_answers(self, session_id, answers):
        self._record("upsert_answers")
        for entry in answers:
            self.answers[session_id][entry.question_id] = entry

    def mark_completed(self, session_id, correct_answers, score, time_spent, completed_at):
        self._record("mark_completed")
        self.sessions[session_id].update(
            status="completed",
            correct_answers=correct_answers,
            score=score,
            time_spent=time_spent,
            completed_at=completed_at,
        )

    def mark_cancelled(self, session_id, completed_at):
        self._record("mark_cancelled")
        self.sessions[session_id].update(status="cancelled", completed_at=completed_at)

    def seed(self, persisted: PersistedSession) -> None:
        """Store a session as if an earlier process had created it."""
        self.sessions[persisted.session_id] = {
            "user_id": persisted.user_id,
            "exam_set_id": persisted.exam_set_id,
            "total_questions": persisted.total_questions,
            "started_at": persisted.started_at,
            "meta": persisted.meta,
            "status": persisted.status,
            "current_index": persisted.current_index,
            "time_left": persisted.time_left,
            "updated_at": persisted.updated_at,
        }
        self.answers[persisted.session_id] = {a.question_id: a for a in persisted.answers}

    def find_in_progress_session(self, user_id):
        self._record("find_in_progress_session")
        for session_id, record in reversed(list(self.sessions.items())):
            if record["user_id"] == user_id and record["status"] == "in_progress":
                return PersistedSession(
                    session_id=session_id,
                    user_id=user_id,
                    exam_set_id=record["exam_set_id"],
                    status=record["status"],
                    total_questions=record["total_questions"],
                    current_index=record["current_index"],
                    time_left=record["time_left"],
                    started_at=record["started_at"],
                    updated_at=record["updated_at"],
                    meta=record["meta"],
                    answers=tuple(self.answers[session_id].values()),
                )
        return None


@pytest.fixture
def session_factory():
    """In-memory SQLite database shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def allotments() -> TimeAllotments:
    return TimeAllotments(seconds_per_part={}, default_seconds=60)


@pytest.fixture
def questions() -> list[QuestionDescriptor]:
    return [
        QuestionDescriptor(id=f"q{i}", correct_choice=choice, part=5)
        for i, choice in enumerate(["A", "B", "C", "D", "A"], start=1)
    ]


@pytest.fixture
def manager(gateway: FakeGateway, allotments: TimeAllotments, clock: FakeClock) -> SessionManager:
    return SessionManager(
        gateway,
        "user-1",
        auto_save_interval=0,
        allotments=allotments,
        clock=clock,
    )
