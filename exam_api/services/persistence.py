"""Durable store for exam sessions.

SessionManager is the only writer; everything it needs from the store goes
through the PersistenceGateway protocol so tests and other backends can
substitute their own implementation.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession, selectinload

from exam_api.errors import PersistenceError
from exam_api.models.db.exam_session import ExamAnswerRecord, ExamSessionRecord, SessionStatus
from exam_api.services.answer_ledger import AnswerEntry
from exam_api.services.session_state import QuestionDescriptor
from exam_api.services.time_budget import in_scope_questions
from exam_api.utils.time_utils import ensure_utc, now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersistedSession:
    """Snapshot of a durable session record and its answers."""

    session_id: str
    user_id: str
    exam_set_id: str
    status: str
    total_questions: int
    current_index: int
    time_left: int | None
    started_at: datetime
    updated_at: datetime | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    answers: tuple[AnswerEntry, ...] = ()

    @property
    def exam_set_name(self) -> str | None:
        name = self.meta.get("exam_set_name")
        return name if isinstance(name, str) else None

    def scoring_question_ids(self) -> set[str] | None:
        """In-scope question ids from the stored meta, or None when absent."""
        raw = self.meta.get("questions")
        if not isinstance(raw, list):
            return None
        questions = [
            QuestionDescriptor.from_dict(item)
            for item in raw
            if isinstance(item, dict) and "id" in item
        ]
        parts = self.meta.get("selected_parts") or None
        return {q.id for q in in_scope_questions(questions, parts)}

    @property
    def answered_count(self) -> int:
        """Non-empty answers, limited to in-scope questions when known."""
        question_ids = self.scoring_question_ids()
        return sum(
            1
            for entry in self.answers
            if entry.answer and (question_ids is None or entry.question_id in question_ids)
        )


class PersistenceGateway(Protocol):
    """Operations the session core needs from the durable store."""

    def create_session(
        self,
        user_id: str,
        exam_set_id: str,
        total_questions: int,
        started_at: datetime,
        meta: dict[str, Any],
    ) -> str: ...

    def update_session_progress(
        self, session_id: str, current_index: int, time_left: int, updated_at: datetime
    ) -> None: ...

    def upsert_answers(self, session_id: str, answers: Sequence[AnswerEntry]) -> None: ...

    def mark_completed(
        self,
        session_id: str,
        correct_answers: int,
        score: int,
        time_spent: int,
        completed_at: datetime,
    ) -> None: ...

    def mark_cancelled(self, session_id: str, completed_at: datetime) -> None: ...

    def find_in_progress_session(self, user_id: str) -> PersistedSession | None: ...


def to_persisted_session(record: ExamSessionRecord) -> PersistedSession:
    """Convert a loaded record (answers included) to a snapshot."""
    return PersistedSession(
        session_id=record.id,
        user_id=record.user_id,
        exam_set_id=record.exam_set_id,
        status=record.status,
        total_questions=record.total_questions,
        current_index=record.current_index,
        time_left=record.time_left,
        started_at=ensure_utc(record.started_at),
        updated_at=ensure_utc(record.updated_at) if record.updated_at else None,
        meta=record.meta,
        answers=tuple(
            AnswerEntry(
                question_id=answer.question_id,
                answer=answer.answer,
                time_spent_ms=answer.time_spent_ms,
            )
            for answer in record.answers
        ),
    )


class SqlPersistenceGateway:
    """PersistenceGateway backed by the SQLAlchemy session factory."""

    def __init__(self, session_factory: Callable[[], DBSession]):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[DBSession]:
        """Open a session, commit on success, convert database errors."""
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(operation, str(e)) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _get_session(
        self, db: DBSession, session_id: str, operation: str
    ) -> ExamSessionRecord:
        record = db.get(ExamSessionRecord, session_id)
        if record is None:
            raise PersistenceError(operation, f"session {session_id} not found")
        return record

    def create_session(
        self,
        user_id: str,
        exam_set_id: str,
        total_questions: int,
        started_at: datetime,
        meta: dict[str, Any],
    ) -> str:
        """Insert a new in-progress session and return its id."""
        session_id = uuid.uuid4().hex
        with self._transaction("create_session") as db:
            record = ExamSessionRecord(
                id=session_id,
                user_id=user_id,
                exam_set_id=exam_set_id,
                total_questions=total_questions,
                started_at=started_at,
                status=SessionStatus.IN_PROGRESS.value,
                time_left=meta.get("total_budget"),
            )
            record.meta = meta
            db.add(record)
        logger.debug(f"Inserted exam session {session_id} for user {user_id}")
        return session_id

    def update_session_progress(
        self, session_id: str, current_index: int, time_left: int, updated_at: datetime
    ) -> None:
        """Store the cursor and remaining time checkpoint."""
        with self._transaction("update_session_progress") as db:
            record = self._get_session(db, session_id, "update_session_progress")
            if not record.is_in_progress:
                raise PersistenceError(
                    "update_session_progress", f"session {session_id} is {record.status}"
                )
            record.current_index = current_index
            record.time_left = time_left
            record.updated_at = updated_at

    def upsert_answers(self, session_id: str, answers: Sequence[AnswerEntry]) -> None:
        """
        Insert or replace answers keyed by (session_id, question_id).
        """
        if not answers:
            return

        with self._transaction("upsert_answers") as db:
            self._get_session(db, session_id, "upsert_answers")
            question_ids = [entry.question_id for entry in answers]
            existing = {
                answer.question_id: answer
                for answer in db.execute(
                    select(ExamAnswerRecord).where(
                        ExamAnswerRecord.session_id == session_id,
                        ExamAnswerRecord.question_id.in_(question_ids),
                    )
                ).scalars()
            }

            answered_at = now_utc()
            for entry in answers:
                record = existing.get(entry.question_id)
                if record is None:
                    record = ExamAnswerRecord(
                        session_id=session_id,
                        question_id=entry.question_id,
                    )
                    db.add(record)
                    existing[entry.question_id] = record
                elif (
                    record.answer == entry.answer
                    and record.time_spent_ms == entry.time_spent_ms
                ):
                    continue

                record.answer = entry.answer
                record.time_spent_ms = entry.time_spent_ms
                record.answered_at = answered_at

    def _mark_terminal(
        self,
        db: DBSession,
        session_id: str,
        status: SessionStatus,
        operation: str,
    ) -> ExamSessionRecord | None:
        """Return the record to finalize, or None when already finalized."""
        record = self._get_session(db, session_id, operation)
        if record.status == status.value:
            # Repeated delivery of the same terminal write
            return None
        if not record.is_in_progress:
            raise PersistenceError(operation, f"session {session_id} is {record.status}")
        record.status = status.value
        return record

    def mark_completed(
        self,
        session_id: str,
        correct_answers: int,
        score: int,
        time_spent: int,
        completed_at: datetime,
    ) -> None:
        """Finalize a session with its results."""
        with self._transaction("mark_completed") as db:
            record = self._mark_terminal(
                db, session_id, SessionStatus.COMPLETED, "mark_completed"
            )
            if record is None:
                return
            record.correct_answers = correct_answers
            record.score = score
            record.time_spent = time_spent
            record.completed_at = completed_at
            record.updated_at = completed_at

    def mark_cancelled(self, session_id: str, completed_at: datetime) -> None:
        """Finalize a session as cancelled. Results are left untouched."""
        with self._transaction("mark_cancelled") as db:
            record = self._mark_terminal(
                db, session_id, SessionStatus.CANCELLED, "mark_cancelled"
            )
            if record is None:
                return
            record.completed_at = completed_at
            record.updated_at = completed_at

    def find_in_progress_session(self, user_id: str) -> PersistedSession | None:
        """Most recently started in-progress session for a user."""
        with self._transaction("find_in_progress_session") as db:
            record = db.execute(
                select(ExamSessionRecord)
                .options(selectinload(ExamSessionRecord.answers))
                .where(
                    ExamSessionRecord.user_id == user_id,
                    ExamSessionRecord.status == SessionStatus.IN_PROGRESS.value,
                )
                .order_by(ExamSessionRecord.started_at.desc())
                .limit(1)
            ).scalar_one_or_none()
            if record is None:
                return None
            return to_persisted_session(record)

