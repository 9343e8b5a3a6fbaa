"""Time budget computation for exam sessions."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from exam_api.config import DEFAULT_SECONDS_PER_QUESTION, PART_SECONDS_PER_QUESTION
from exam_api.models.enums import TimeMode

if TYPE_CHECKING:
    from exam_api.services.session_state import QuestionDescriptor

# Sentinel stored in time_left for sessions without a time limit
UNLIMITED_TIME = -1


@dataclass
class TimeAllotments:
    """Seconds allotted per question, by exam part."""

    seconds_per_part: Mapping[int, int] = field(default_factory=dict)
    default_seconds: int = DEFAULT_SECONDS_PER_QUESTION

    @classmethod
    def from_config(cls) -> "TimeAllotments":
        """Build the table from application configuration."""
        return cls(dict(PART_SECONDS_PER_QUESTION), DEFAULT_SECONDS_PER_QUESTION)

    def seconds_for(self, part: int | None) -> int:
        """Seconds allotted to one question of the given part."""
        if part is not None and part in self.seconds_per_part:
            seconds = self.seconds_per_part[part]
        else:
            seconds = self.default_seconds
        return max(0, int(seconds))


def in_scope_questions(
    questions: Iterable[QuestionDescriptor],
    selected_parts: Iterable[int] | None = None,
) -> list[QuestionDescriptor]:
    """
    Filter questions down to the selected parts.

    No selection means every question is in scope. Questions without a
    part are never filtered out.
    """
    questions = list(questions)
    if not selected_parts:
        return questions
    parts = set(selected_parts)
    return [q for q in questions if q.part is None or q.part in parts]


def compute_budget(
    questions: Iterable[QuestionDescriptor],
    selected_parts: Iterable[int] | None = None,
    time_mode: TimeMode | str = TimeMode.STANDARD,
    allotments: TimeAllotments | None = None,
) -> int:
    """
    Compute the total seconds allotted to a session.

    Returns UNLIMITED_TIME for unlimited mode regardless of the questions.
    """
    if TimeMode(time_mode) is TimeMode.UNLIMITED:
        return UNLIMITED_TIME

    table = allotments if allotments is not None else TimeAllotments.from_config()
    return sum(
        table.seconds_for(question.part)
        for question in in_scope_questions(questions, selected_parts)
    )
