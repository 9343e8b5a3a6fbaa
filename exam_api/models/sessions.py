"""Exam session Pydantic models."""
from pydantic import BaseModel, Field

from exam_api.models.enums import ExitDecision, ResumeDecision, TimeMode


class QuestionPayload(BaseModel):
    """Question descriptor sent when a session is created."""

    id: str = Field(..., min_length=1)
    correctChoice: str | None = None
    part: int | None = None
    metadata: dict[str, object] = Field(default_factory=dict)


class SessionCreateRequest(BaseModel):
    """Model for creating a new exam session."""

    examSetId: str = Field(..., min_length=1)
    examSetName: str | None = None
    questions: list[QuestionPayload] = Field(..., min_length=1)
    selectedParts: list[int] | None = None
    timeMode: TimeMode = TimeMode.STANDARD


class SessionCreatedResponse(BaseModel):
    """Model for session creation response."""

    sessionId: str
    totalQuestions: int
    timeLeft: int
    timeMode: TimeMode
    startedAt: str


class AnswerRequest(BaseModel):
    """Model for recording an answer."""

    questionId: str = Field(..., min_length=1)
    answer: str | None = None
    timeSpentMs: int = Field(0, ge=0)


class ProgressRequest(BaseModel):
    """Model for updating cursor and remaining time."""

    currentIndex: int = Field(..., ge=0)
    timeLeft: int = Field(..., ge=-1)
    isPaused: bool | None = None


class SessionView(BaseModel):
    """Model for the live session as seen by the exam screen."""

    sessionId: str
    examSetId: str
    examSetName: str | None = None
    currentIndex: int
    totalQuestions: int
    answeredCount: int
    timeLeft: int
    timeMode: TimeMode
    isStarted: bool
    isPaused: bool
    startedAt: str
    hasUnsavedChanges: bool
    lastSavedAt: str | None = None


class CompletionResponse(BaseModel):
    """Model for session completion response."""

    status: str
    sessionId: str
    correctAnswers: int
    totalQuestions: int
    score: int
    timeSpent: int
    completedAt: str


class ResumeDecisionRequest(BaseModel):
    """Model for the resume dialog choice."""

    decision: ResumeDecision


class ExitDecisionRequest(BaseModel):
    """Model for the exit dialog choice."""

    decision: ExitDecision


class StatusResponse(BaseModel):
    """Model for simple operation status."""

    status: str
    sessionId: str | None = None
