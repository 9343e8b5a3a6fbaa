"""
Exam session and answer database models for durable session checkpoints.
"""

from __future__ import annotations

import enum
import json
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from exam_api.database import Base


class SessionStatus(str, enum.Enum):
    """Status of an exam session."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExamSessionRecord(Base):
    """
    Exam session record.
    Stores progress and results of a single timed test-taking session.
    """

    __tablename__ = "exam_sessions"

    # Primary key - UUID hex generated on create
    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)

    # References
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    exam_set_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    # Timing
    started_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    time_spent: Mapped[int] = mapped_column(default=0, nullable=False)

    # Progress checkpoint
    current_index: Mapped[int] = mapped_column(default=0, nullable=False)
    time_left: Mapped[int | None] = mapped_column(nullable=True)  # -1 = unlimited

    # Status and results
    status: Mapped[str] = mapped_column(
        String(20), default=SessionStatus.IN_PROGRESS.value, nullable=False, index=True
    )
    total_questions: Mapped[int] = mapped_column(default=0, nullable=False)
    correct_answers: Mapped[int] = mapped_column(default=0, nullable=False)
    score: Mapped[int] = mapped_column(default=0, nullable=False)

    # Question snapshots and settings (stored as JSON string)
    meta_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    answers: Mapped[list["ExamAnswerRecord"]] = relationship(
        "ExamAnswerRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ExamAnswerRecord.id",
    )

    @property
    def meta(self) -> dict[str, Any]:
        """Parse meta from JSON."""
        if not self.meta_json:
            return {}
        try:
            return json.loads(self.meta_json)
        except (json.JSONDecodeError, TypeError):
            return {}

    @meta.setter
    def meta(self, value: dict[str, Any]) -> None:
        """Serialize meta to JSON."""
        self.meta_json = json.dumps(value) if value else None

    @property
    def is_in_progress(self) -> bool:
        """Check if session can still be resumed."""
        return self.status == SessionStatus.IN_PROGRESS.value


class ExamAnswerRecord(Base):
    """
    Latest recorded answer for one question within a session.
    Keyed by (session_id, question_id) so repeated flushes are idempotent.
    """

    __tablename__ = "exam_answers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("exam_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Answer data
    answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    time_spent_ms: Mapped[int] = mapped_column(default=0, nullable=False)
    answered_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    # Constraints
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_session_question"),
    )

    # Relationships
    session: Mapped["ExamSessionRecord"] = relationship(
        "ExamSessionRecord", back_populates="answers"
    )
