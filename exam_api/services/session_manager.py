"""
Orchestration of the exam session lifecycle.

A SessionManager owns at most one live session for one user. It is the only
component that writes to the persistence gateway: it creates the durable
record, checkpoints progress on a timer, and finalizes the session as
completed or cancelled.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from exam_api.config import AUTO_SAVE_INTERVAL_SECONDS
from exam_api.errors import AlreadyActive, PersistenceError
from exam_api.services.answer_ledger import AnswerEntry, AnswerLedger
from exam_api.services.autosave import AutoSaveScheduler
from exam_api.services.persistence import PersistedSession, PersistenceGateway
from exam_api.services.session_state import (
    QuestionDescriptor,
    SessionState,
    normalize_time_left,
    rounded_percent,
    session_meta,
)
from exam_api.services.time_budget import (
    TimeAllotments,
    TimeMode,
    UNLIMITED_TIME,
    compute_budget,
    in_scope_questions,
)
from exam_api.utils.time_utils import ensure_utc, now_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Upper bound on waiting for an in-flight tick before a teardown flush
TEARDOWN_FLUSH_TIMEOUT_SECONDS = 5.0


def compute_score(correct_answers: int, total_questions: int) -> int:
    """Score as a whole percentage, rounded half up."""
    return rounded_percent(correct_answers, total_questions)


@dataclass(frozen=True)
class CompletionResult:
    """Results persisted when a session completes."""

    session_id: str
    correct_answers: int
    total_questions: int
    score: int
    time_spent: int
    completed_at: datetime


@dataclass(frozen=True)
class _Checkpoint:
    """State captured for one flush."""

    session_id: str
    current_index: int
    time_left: int
    answers: list[AnswerEntry]
    revision: int


class SessionManager:
    """Owns the live exam session of one user."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        user_id: str,
        *,
        auto_save_interval: float = AUTO_SAVE_INTERVAL_SECONDS,
        allotments: TimeAllotments | None = None,
        clock: Callable[[], datetime] = now_utc,
        scheduler_factory: Callable[..., AutoSaveScheduler] = AutoSaveScheduler,
    ):
        self._gateway = gateway
        self.user_id = user_id
        self.auto_save_interval = auto_save_interval
        self._allotments = allotments
        self._clock = clock
        self._scheduler_factory = scheduler_factory

        self._state: SessionState | None = None
        self._scheduler: AutoSaveScheduler | None = None

        # Lock order: _lifecycle_lock -> _flush_lock -> _state_lock
        self._lifecycle_lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._state_lock = threading.Lock()

        self._revision = 0
        self._saved_revision = 0
        self.last_saved_at: datetime | None = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_current_session(self) -> SessionState | None:
        """Return the live session state, or None."""
        return self._state

    def get_session_snapshot(self) -> SessionState | None:
        """Return a detached copy of the live session state, or None."""
        with self._state_lock:
            if self._state is None:
                return None
            return self._state.clone()

    def has_active_session(self) -> bool:
        return self._state is not None

    @property
    def has_unsaved_changes(self) -> bool:
        with self._state_lock:
            return self._state is not None and self._revision != self._saved_revision

    @property
    def is_auto_saving(self) -> bool:
        """True while a flush is in flight."""
        return self._flush_lock.locked()

    def find_resumable_session(self) -> PersistedSession | None:
        """Look up a durable in-progress session for this user."""
        return self._call_gateway(
            "find_in_progress_session",
            self._gateway.find_in_progress_session,
            self.user_id,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(
        self,
        exam_set_id: str,
        questions: Iterable[QuestionDescriptor],
        selected_parts: Iterable[int] | None = None,
        time_mode: TimeMode | str = TimeMode.STANDARD,
        exam_set_name: str | None = None,
    ) -> str:
        """
        Create and persist a new session, then start auto-saving it.

        Raises:
            AlreadyActive: a session is already live.
            PersistenceError: the durable record could not be created. No
                local session exists afterwards.
            ValueError: the question list repeats a question id.
        """
        time_mode = TimeMode(time_mode)
        questions = tuple(questions)
        parts = tuple(selected_parts) if selected_parts else None

        question_ids = [q.id for q in questions]
        if len(set(question_ids)) != len(question_ids):
            raise ValueError("Question ids must be unique within a session")

        with self._lifecycle_lock:
            if self._state is not None:
                raise AlreadyActive(self._state.session_id)

            total_budget = compute_budget(questions, parts, time_mode, self._allotments)
            total_questions = len(in_scope_questions(questions, parts))
            started_at = self._clock()
            meta = session_meta(questions, parts, time_mode, total_budget, exam_set_name)

            try:
                session_id = self._call_gateway(
                    "create_session",
                    self._gateway.create_session,
                    self.user_id,
                    exam_set_id,
                    total_questions,
                    started_at,
                    meta,
                )
            except PersistenceError as e:
                logger.error(f"Failed to create exam session for user {self.user_id}: {e}")
                raise

            state = SessionState(
                session_id=session_id,
                exam_set_id=exam_set_id,
                questions=questions,
                time_mode=time_mode,
                total_budget=total_budget,
                time_left=total_budget,
                started_at=started_at,
                selected_parts=parts,
                exam_set_name=exam_set_name,
            )
            self._attach(state)

        logger.info(
            f"Created exam session {session_id} for user {self.user_id} "
            f"({total_questions} questions, budget {total_budget}s)"
        )
        return session_id

    def resume_session(self, persisted: PersistedSession) -> SessionState:
        """
        Re-attach to a durable in-progress session.

        Stored progress wins over recomputation: the budget is only
        recomputed when the record does not carry one.

        Raises:
            AlreadyActive: a different session is already live.
        """
        with self._lifecycle_lock:
            if self._state is not None:
                if self._state.session_id != persisted.session_id:
                    raise AlreadyActive(self._state.session_id)
                self._ensure_scheduler()
                return self._state

            state = self._state_from_persisted(persisted)
            self._attach(state)

        logger.info(
            f"Resumed exam session {state.session_id} for user {self.user_id} "
            f"at question {state.current_index + 1}"
        )
        return state

    def resume_current(self) -> SessionState | None:
        """Continue the live session, making sure it is being auto-saved."""
        with self._lifecycle_lock:
            if self._state is None:
                return None
            self._ensure_scheduler()
            with self._state_lock:
                self._state.is_started = True
                self._state.is_paused = False
                self._revision += 1
            return self._state

    def complete_session(self) -> CompletionResult | None:
        """
        Score, persist and discard the live session.

        Answers and progress are flushed before the completed record is
        written. Returns None when no session is live.

        Raises:
            PersistenceError: a write failed. The session stays live so the
                caller can retry.
        """
        with self._lifecycle_lock:
            if self._state is None:
                return None

            with self._flush_lock:
                state = self._state
                completed_at = self._clock()
                with self._state_lock:
                    checkpoint = self._checkpoint()
                    correct_answers = state.answers.correct_count(state.is_correct)
                    time_spent = self._time_spent(state, completed_at)
                total_questions = state.total_questions
                score = compute_score(correct_answers, total_questions)

                try:
                    self._flush(checkpoint)
                    self._call_gateway(
                        "mark_completed",
                        self._gateway.mark_completed,
                        state.session_id,
                        correct_answers,
                        score,
                        time_spent,
                        completed_at,
                    )
                except PersistenceError as e:
                    logger.error(f"Failed to complete exam session {state.session_id}: {e}")
                    raise

                self._discard()

        logger.info(
            f"Completed exam session {state.session_id}: "
            f"{correct_answers}/{total_questions} correct, score {score}"
        )
        return CompletionResult(
            session_id=state.session_id,
            correct_answers=correct_answers,
            total_questions=total_questions,
            score=score,
            time_spent=time_spent,
            completed_at=completed_at,
        )

    def cancel_session(self) -> bool:
        """
        Persist cancellation and discard the live session.

        Returns False when no session is live.

        Raises:
            PersistenceError: the cancelled record could not be written. The
                session stays live so the caller can retry.
        """
        with self._lifecycle_lock:
            if self._state is None:
                return False

            with self._flush_lock:
                session_id = self._state.session_id
                try:
                    self._call_gateway(
                        "mark_cancelled",
                        self._gateway.mark_cancelled,
                        session_id,
                        self._clock(),
                    )
                except PersistenceError as e:
                    logger.error(f"Failed to cancel exam session {session_id}: {e}")
                    raise

                self._discard()

        logger.info(f"Cancelled exam session {session_id}")
        return True

    def cancel_persisted_session(self, persisted: PersistedSession) -> None:
        """Cancel a durable in-progress session that is not attached here."""
        with self._lifecycle_lock:
            if self._state is not None and self._state.session_id == persisted.session_id:
                raise AlreadyActive(persisted.session_id)
            try:
                self._call_gateway(
                    "mark_cancelled",
                    self._gateway.mark_cancelled,
                    persisted.session_id,
                    self._clock(),
                )
            except PersistenceError as e:
                logger.error(f"Failed to cancel exam session {persisted.session_id}: {e}")
                raise
        logger.info(f"Cancelled stored exam session {persisted.session_id}")

    def shutdown(self) -> None:
        """Flush once and stop the scheduler, keeping the session resumable."""
        self.flush_on_teardown()
        with self._lifecycle_lock:
            self._stop_scheduler()

    # ------------------------------------------------------------------
    # Presentation-driven mutation (in memory only)
    # ------------------------------------------------------------------

    def save_answer(
        self, question_id: str, answer: str | None, time_spent_ms: int = 0
    ) -> bool:
        """Record an answer for the next flush. No-op without a live session."""
        with self._state_lock:
            if self._state is None:
                logger.debug(f"Ignoring answer for {question_id}: no active session")
                return False
            self._state.answers.upsert(question_id, answer, time_spent_ms)
            self._revision += 1
        return True

    def update_progress(self, current_index: int, time_left: int) -> bool:
        """Store cursor and remaining time. No-op without a live session."""
        with self._state_lock:
            state = self._state
            if state is None:
                logger.debug("Ignoring progress update: no active session")
                return False
            last_index = max(len(state.questions) - 1, 0)
            state.current_index = min(max(0, int(current_index)), last_index)
            state.time_left = normalize_time_left(state.time_mode, time_left)
            state.is_started = True
            self._revision += 1
        return True

    def set_paused(self, paused: bool) -> bool:
        """Advisory pause flag for the presentation layer."""
        with self._state_lock:
            if self._state is None:
                return False
            self._state.is_paused = bool(paused)
        return True

    # ------------------------------------------------------------------
    # Checkpointing
    # ------------------------------------------------------------------

    def auto_save(self) -> bool:
        """
        Push cursor, remaining time and every answer to the store.

        Skipped (returns False) when another flush is in flight or no session
        is live. Failures are logged and left to the next tick, which sends
        the full state again.
        """
        if not self._flush_lock.acquire(blocking=False):
            logger.debug("Auto-save skipped: previous flush still in flight")
            return False
        try:
            return self._flush_live("Auto-save")
        finally:
            self._flush_lock.release()

    def flush_on_teardown(self) -> bool:
        """Best-effort immediate flush before the process or page goes away."""
        if not self._flush_lock.acquire(timeout=TEARDOWN_FLUSH_TIMEOUT_SECONDS):
            logger.warning("Teardown flush skipped: previous flush did not finish")
            return False
        try:
            return self._flush_live("Teardown flush")
        except Exception as e:
            logger.error(f"Teardown flush failed: {e}")
            return False
        finally:
            self._flush_lock.release()

    def _flush_live(self, label: str) -> bool:
        with self._state_lock:
            checkpoint = self._checkpoint()
        if checkpoint is None:
            return False
        try:
            self._flush(checkpoint)
        except PersistenceError as e:
            logger.warning(f"{label} failed for session {checkpoint.session_id}: {e}")
            return False
        logger.debug(
            f"{label} stored session {checkpoint.session_id} "
            f"({len(checkpoint.answers)} answers)"
        )
        return True

    def _checkpoint(self) -> _Checkpoint | None:
        """Capture the state to flush. Caller holds _state_lock."""
        state = self._state
        if state is None:
            return None
        return _Checkpoint(
            session_id=state.session_id,
            current_index=state.current_index,
            time_left=state.time_left,
            answers=state.answers.to_ordered_list(),
            revision=self._revision,
        )

    def _flush(self, checkpoint: _Checkpoint) -> None:
        """Write one checkpoint. Caller holds _flush_lock."""
        saved_at = self._clock()
        self._call_gateway(
            "update_session_progress",
            self._gateway.update_session_progress,
            checkpoint.session_id,
            checkpoint.current_index,
            checkpoint.time_left,
            saved_at,
        )
        if checkpoint.answers:
            self._call_gateway(
                "upsert_answers",
                self._gateway.upsert_answers,
                checkpoint.session_id,
                checkpoint.answers,
            )
        with self._state_lock:
            self._saved_revision = max(self._saved_revision, checkpoint.revision)
            self.last_saved_at = saved_at

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _call_gateway(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        """Call the gateway, reporting any failure as PersistenceError."""
        try:
            return func(*args)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(operation, str(e)) from e

    def _attach(self, state: SessionState) -> None:
        with self._state_lock:
            self._state = state
            self._revision = 0
            self._saved_revision = 0
            self.last_saved_at = None
        self._ensure_scheduler()

    def _discard(self) -> None:
        self._stop_scheduler()
        with self._state_lock:
            self._state = None
            self._revision = 0
            self._saved_revision = 0

    def _ensure_scheduler(self) -> None:
        if self.auto_save_interval <= 0:
            return
        if self._scheduler is None:
            self._scheduler = self._scheduler_factory(
                self.auto_save, self.auto_save_interval
            )
        self._scheduler.start()

    def _stop_scheduler(self) -> None:
        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler = None

    def _time_spent(self, state: SessionState, finished_at: datetime) -> int:
        if state.is_unlimited:
            elapsed = ensure_utc(finished_at) - ensure_utc(state.started_at)
            return max(0, int(elapsed.total_seconds()))
        return max(0, state.total_budget - max(0, state.time_left))

    def _state_from_persisted(self, persisted: PersistedSession) -> SessionState:
        meta = persisted.meta
        questions = tuple(
            QuestionDescriptor.from_dict(item)
            for item in meta.get("questions") or []
            if isinstance(item, dict) and "id" in item
        )
        try:
            time_mode = TimeMode(meta.get("time_mode", TimeMode.STANDARD.value))
        except ValueError:
            time_mode = TimeMode.STANDARD
        raw_parts = meta.get("selected_parts")
        parts = tuple(raw_parts) if raw_parts else None

        total_budget = meta.get("total_budget")
        if not isinstance(total_budget, int):
            total_budget = compute_budget(questions, parts, time_mode, self._allotments)
        if time_mode is TimeMode.UNLIMITED:
            total_budget = UNLIMITED_TIME

        time_left = persisted.time_left if persisted.time_left is not None else total_budget

        return SessionState(
            session_id=persisted.session_id,
            exam_set_id=persisted.exam_set_id,
            questions=questions,
            time_mode=time_mode,
            total_budget=total_budget,
            time_left=normalize_time_left(time_mode, time_left),
            started_at=ensure_utc(persisted.started_at),
            answers=AnswerLedger(persisted.answers),
            selected_parts=parts,
            current_index=max(0, persisted.current_index),
            exam_set_name=persisted.exam_set_name,
            is_started=True,
        )
