"""Pydantic models."""
from exam_api.models.sessions import (
    AnswerRequest,
    CompletionResponse,
    ExitDecisionRequest,
    ProgressRequest,
    QuestionPayload,
    ResumeDecisionRequest,
    SessionCreatedResponse,
    SessionCreateRequest,
    SessionView,
    StatusResponse,
)

__all__ = [
    "AnswerRequest",
    "CompletionResponse",
    "ExitDecisionRequest",
    "ProgressRequest",
    "QuestionPayload",
    "ResumeDecisionRequest",
    "SessionCreatedResponse",
    "SessionCreateRequest",
    "SessionView",
    "StatusResponse",
]
