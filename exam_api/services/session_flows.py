"""Resume prompt and exit confirmation over the session manager.

Both flows are read-only views: they build snapshots from copies of the
session state and change nothing except through SessionManager operations.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from exam_api.errors import PersistenceError
from exam_api.models.enums import ExitDecision, ResumeDecision
from exam_api.services.answer_ledger import AnswerEntry
from exam_api.services.persistence import PersistedSession
from exam_api.services.session_manager import SessionManager
from exam_api.services.session_state import QuestionDescriptor, SessionState, rounded_percent
from exam_api.utils.time_utils import isoformat_or_none

logger = logging.getLogger(__name__)

UNLIMITED_LABEL = "Unlimited"


def format_time(seconds: int) -> str:
    """Format remaining seconds as M:SS, or a label for unlimited time."""
    if seconds < 0:
        return UNLIMITED_LABEL
    minutes, rest = divmod(int(seconds), 60)
    return f"{minutes}:{rest:02d}"


@dataclass(frozen=True)
class ResumeSnapshot:
    """What the resume dialog shows about an unfinished session."""

    session_id: str
    exam_set_name: str | None
    current_index: int
    total_questions: int
    answered_count: int
    time_left: int
    started_at: datetime | None

    @property
    def progress_percent(self) -> int:
        return rounded_percent(self.answered_count, self.total_questions)

    @property
    def current_question(self) -> int:
        return self.current_index + 1

    @classmethod
    def from_state(cls, state: SessionState) -> "ResumeSnapshot":
        return cls(
            session_id=state.session_id,
            exam_set_name=state.exam_set_name,
            current_index=state.current_index,
            total_questions=state.total_questions,
            answered_count=state.answered_count,
            time_left=state.time_left,
            started_at=state.started_at,
        )

    @classmethod
    def from_persisted(cls, persisted: PersistedSession) -> "ResumeSnapshot":
        time_left = persisted.time_left
        if time_left is None:
            budget = persisted.meta.get("total_budget")
            time_left = budget if isinstance(budget, int) else 0
        return cls(
            session_id=persisted.session_id,
            exam_set_name=persisted.exam_set_name,
            current_index=persisted.current_index,
            total_questions=persisted.total_questions,
            answered_count=persisted.answered_count,
            time_left=time_left,
            started_at=persisted.started_at,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "sessionId": self.session_id,
            "examSetName": self.exam_set_name,
            "currentIndex": self.current_index,
            "currentQuestion": self.current_question,
            "totalQuestions": self.total_questions,
            "answeredCount": self.answered_count,
            "progressPercent": self.progress_percent,
            "timeLeft": self.time_left,
            "timeLeftDisplay": format_time(self.time_left),
            "startedAt": isoformat_or_none(self.started_at),
        }


@dataclass(frozen=True)
class ExitSnapshot:
    """What the exit confirmation shows about the live session."""

    current_index: int
    questions: tuple[QuestionDescriptor, ...]
    answers: tuple[AnswerEntry, ...]
    time_left: int
    total_questions: int
    answered_count: int
    has_unsaved_changes: bool = False
    last_saved_at: datetime | None = None

    @property
    def progress_percent(self) -> int:
        return rounded_percent(self.answered_count, self.total_questions)

    def to_dict(self) -> dict[str, object]:
        # Correct choices stay server side while the session is running
        return {
            "currentIndex": self.current_index,
            "currentQuestion": self.current_index + 1,
            "questions": [{"id": q.id, "part": q.part} for q in self.questions],
            "answers": [entry.to_dict() for entry in self.answers],
            "totalQuestions": self.total_questions,
            "answeredCount": self.answered_count,
            "progressPercent": self.progress_percent,
            "timeLeft": self.time_left,
            "timeLeftDisplay": format_time(self.time_left),
            "hasUnsavedChanges": self.has_unsaved_changes,
            "lastSavedAt": isoformat_or_none(self.last_saved_at),
        }


class ResumePrompt:
    """Offer to continue an unfinished session found at startup."""

    def __init__(self, manager: SessionManager):
        self._manager = manager

    def _find_persisted(self) -> PersistedSession | None:
        persisted = self._manager.find_resumable_session()
        current = self._manager.get_current_session()
        if persisted and current and persisted.session_id == current.session_id:
            return None
        return persisted

    def check(self) -> ResumeSnapshot | None:
        """
        Snapshot of the session the user could resume, if any.

        The live session takes precedence over the store. A failed store
        lookup is reported as nothing to resume.
        """
        state = self._manager.get_session_snapshot()
        if state is not None:
            return ResumeSnapshot.from_state(state)
        try:
            persisted = self._find_persisted()
        except PersistenceError as e:
            logger.warning(f"Could not look up resumable session: {e}")
            return None
        if persisted is None:
            return None
        return ResumeSnapshot.from_persisted(persisted)

    def resume(self) -> SessionState | None:
        """Re-attach to the unfinished session and keep auto-saving it."""
        state = self._manager.resume_current()
        if state is not None:
            return state
        persisted = self._find_persisted()
        if persisted is None:
            return None
        return self._manager.resume_session(persisted)

    def start_new(self) -> bool:
        """Cancel the unfinished session so a fresh one can be created."""
        if self._manager.has_active_session():
            return self._manager.cancel_session()
        persisted = self._find_persisted()
        if persisted is None:
            return False
        self._manager.cancel_persisted_session(persisted)
        return True

    def dismiss(self) -> None:
        """Close the prompt, leaving the unfinished session as it is."""
        return None

    def decide(self, decision: ResumeDecision | str) -> object:
        decision = ResumeDecision(decision)
        if decision is ResumeDecision.RESUME:
            return self.resume()
        if decision is ResumeDecision.START_NEW:
            return self.start_new()
        return self.dismiss()


class ExitConfirmation:
    """Confirm a voluntary exit from the live session."""

    def __init__(self, manager: SessionManager):
        self._manager = manager

    def snapshot(self) -> ExitSnapshot | None:
        state = self._manager.get_session_snapshot()
        if state is None:
            return None
        return ExitSnapshot(
            current_index=state.current_index,
            questions=state.questions,
            answers=tuple(state.answers.to_ordered_list()),
            time_left=state.time_left,
            total_questions=state.total_questions,
            answered_count=state.answered_count,
            has_unsaved_changes=self._manager.has_unsaved_changes,
            last_saved_at=self._manager.last_saved_at,
        )

    def confirm(self) -> bool:
        """Leave the exam: the session is cancelled."""
        return self._manager.cancel_session()

    def cancel(self) -> None:
        """Stay in the exam."""
        return None

    def decide(self, decision: ExitDecision | str) -> bool:
        decision = ExitDecision(decision)
        if decision is ExitDecision.CONFIRM:
            return self.confirm()
        self.cancel()
        return False
