"""Database models."""
from exam_api.models.db.exam_session import ExamAnswerRecord, ExamSessionRecord, SessionStatus

__all__ = [
    "ExamAnswerRecord",
    "ExamSessionRecord",
    "SessionStatus",
]
