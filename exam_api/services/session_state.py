"""In-memory representation of one live exam session."""
from __future__ import annotations

import copy
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from exam_api.services.answer_ledger import AnswerEntry, AnswerLedger
from exam_api.services.time_budget import TimeMode, UNLIMITED_TIME, in_scope_questions


def rounded_percent(part: int, whole: int) -> int:
    """Percentage of part in whole, rounded half up. Zero when whole is empty."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def normalize_time_left(time_mode: TimeMode, time_left: int) -> int:
    """Keep time_left either the unlimited sentinel or a non-negative integer."""
    if time_mode is TimeMode.UNLIMITED:
        return UNLIMITED_TIME
    return max(0, int(time_left))


@dataclass(frozen=True)
class QuestionDescriptor:
    """Question data the session needs for scoring and budgeting."""

    id: str
    correct_choice: str | None = None
    part: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "correctChoice": self.correct_choice,
            "part": self.part,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuestionDescriptor":
        part = data.get("part")
        metadata = data.get("metadata")
        return cls(
            id=str(data["id"]),
            correct_choice=data.get("correctChoice"),
            part=part if isinstance(part, int) else None,
            metadata=metadata if isinstance(metadata, dict) else {},
        )


def session_meta(
    questions: Iterable[QuestionDescriptor],
    selected_parts: Iterable[int] | None,
    time_mode: TimeMode,
    total_budget: int,
    exam_set_name: str | None = None,
) -> dict[str, Any]:
    """Meta stored with the durable session so it can be resumed."""
    return {
        "questions": [q.to_dict() for q in questions],
        "selected_parts": list(selected_parts) if selected_parts else None,
        "time_mode": time_mode.value,
        "total_budget": total_budget,
        "exam_set_name": exam_set_name,
    }


@dataclass
class SessionState:
    """
    Aggregate state of the live session.

    Only SessionManager mutates an instance; everyone else reads copies
    obtained from SessionManager.get_session_snapshot().
    """

    session_id: str
    exam_set_id: str
    questions: tuple[QuestionDescriptor, ...]
    time_mode: TimeMode
    total_budget: int
    time_left: int
    started_at: datetime
    answers: AnswerLedger = field(default_factory=AnswerLedger)
    selected_parts: tuple[int, ...] | None = None
    current_index: int = 0
    exam_set_name: str | None = None
    is_started: bool = False
    is_paused: bool = False

    def __post_init__(self) -> None:
        self._scoring_questions = {
            q.id: q for q in in_scope_questions(self.questions, self.selected_parts)
        }

    @property
    def total_questions(self) -> int:
        return len(self._scoring_questions)

    @property
    def answered_count(self) -> int:
        """Non-empty answers to in-scope questions."""
        return sum(
            1
            for entry in self.answers
            if entry.answer and entry.question_id in self._scoring_questions
        )

    @property
    def is_unlimited(self) -> bool:
        return self.time_mode is TimeMode.UNLIMITED

    def is_correct(self, entry: AnswerEntry) -> bool:
        """Score one ledger entry against the question's correct choice."""
        question = self._scoring_questions.get(entry.question_id)
        if question is None or question.correct_choice is None:
            return False
        return entry.answer == question.correct_choice

    def clone(self) -> "SessionState":
        """Detached copy safe to read while the live state keeps changing."""
        cloned = copy.copy(self)
        cloned.answers = self.answers.copy()
        return cloned
