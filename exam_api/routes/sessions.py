"""Exam session endpoints."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from exam_api.dependencies.sessions import get_session_manager
from exam_api.errors import AlreadyActive, PersistenceError
from exam_api.models import (
    AnswerRequest,
    CompletionResponse,
    ExitDecisionRequest,
    ProgressRequest,
    ResumeDecisionRequest,
    SessionCreatedResponse,
    SessionCreateRequest,
    SessionView,
    StatusResponse,
)
from exam_api.models.enums import ExitDecision, ResumeDecision
from exam_api.services.session_flows import ExitConfirmation, ResumePrompt
from exam_api.services.session_manager import SessionManager
from exam_api.services.session_state import QuestionDescriptor, SessionState
from exam_api.utils import isoformat_or_none

router = APIRouter(prefix="/api/sessions", tags=["sessions"])

Manager = Annotated[SessionManager, Depends(get_session_manager)]

NO_ACTIVE_SESSION = "no_active_session"


def _persistence_failure(e: PersistenceError) -> HTTPException:
    return HTTPException(status_code=503, detail=str(e))


def _session_view(manager: SessionManager, state: SessionState) -> dict[str, object]:
    return {
        "sessionId": state.session_id,
        "examSetId": state.exam_set_id,
        "examSetName": state.exam_set_name,
        "currentIndex": state.current_index,
        "totalQuestions": state.total_questions,
        "answeredCount": state.answered_count,
        "timeLeft": state.time_left,
        "timeMode": state.time_mode,
        "isStarted": state.is_started,
        "isPaused": state.is_paused,
        "startedAt": isoformat_or_none(state.started_at),
        "hasUnsavedChanges": manager.has_unsaved_changes,
        "lastSavedAt": isoformat_or_none(manager.last_saved_at),
    }


@router.post("", response_model=SessionCreatedResponse)
def create_session(payload: SessionCreateRequest, manager: Manager) -> dict[str, object]:
    """Start a new exam session for the current user."""
    questions = [
        QuestionDescriptor(
            id=q.id.strip(),
            correct_choice=q.correctChoice,
            part=q.part,
            metadata=dict(q.metadata),
        )
        for q in payload.questions
    ]
    try:
        manager.create_session(
            payload.examSetId.strip(),
            questions,
            selected_parts=payload.selectedParts,
            time_mode=payload.timeMode,
            exam_set_name=payload.examSetName,
        )
    except AlreadyActive as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError as e:
        raise _persistence_failure(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    state = manager.get_session_snapshot()
    if state is None:
        raise HTTPException(status_code=409, detail="Session ended before it could be read")
    return {
        "sessionId": state.session_id,
        "totalQuestions": state.total_questions,
        "timeLeft": state.time_left,
        "timeMode": state.time_mode,
        "startedAt": isoformat_or_none(state.started_at),
    }


@router.get("/current", response_model=SessionView)
def get_current_session(manager: Manager) -> dict[str, object]:
    """Get the live session of the current user."""
    state = manager.get_session_snapshot()
    if state is None:
        raise HTTPException(status_code=404, detail="No active session")
    return _session_view(manager, state)


@router.post("/current/answers", response_model=StatusResponse)
def save_answer(payload: AnswerRequest, manager: Manager) -> dict[str, object]:
    """Record an answer. Ignored when no session is live."""
    if not manager.save_answer(payload.questionId, payload.answer, payload.timeSpentMs):
        return {"status": NO_ACTIVE_SESSION}
    return {"status": "recorded"}


@router.post("/current/progress", response_model=StatusResponse)
def update_progress(payload: ProgressRequest, manager: Manager) -> dict[str, object]:
    """Update cursor and remaining time. Ignored when no session is live."""
    if not manager.update_progress(payload.currentIndex, payload.timeLeft):
        return {"status": NO_ACTIVE_SESSION}
    if payload.isPaused is not None:
        manager.set_paused(payload.isPaused)
    return {"status": "updated"}


@router.post("/current/autosave", response_model=StatusResponse)
def auto_save(manager: Manager) -> dict[str, object]:
    """Flush the live session to the store now."""
    if not manager.has_active_session():
        return {"status": NO_ACTIVE_SESSION}
    return {"status": "saved" if manager.auto_save() else "skipped"}


@router.post("/current/flush", response_model=StatusResponse)
def flush_on_unload(manager: Manager) -> dict[str, object]:
    """Best-effort flush sent by the page as it unloads."""
    if not manager.has_active_session():
        return {"status": NO_ACTIVE_SESSION}
    return {"status": "saved" if manager.flush_on_teardown() else "skipped"}


@router.post("/current/complete")
def complete_session(manager: Manager) -> dict[str, object]:
    """Score and finalize the live session."""
    try:
        result = manager.complete_session()
    except PersistenceError as e:
        raise _persistence_failure(e)
    if result is None:
        return {"status": NO_ACTIVE_SESSION}
    return CompletionResponse(
        status="completed",
        sessionId=result.session_id,
        correctAnswers=result.correct_answers,
        totalQuestions=result.total_questions,
        score=result.score,
        timeSpent=result.time_spent,
        completedAt=isoformat_or_none(result.completed_at),
    ).model_dump()


@router.post("/current/cancel", response_model=StatusResponse)
def cancel_session(manager: Manager) -> dict[str, object]:
    """Abandon the live session."""
    state = manager.get_current_session()
    try:
        cancelled = manager.cancel_session()
    except PersistenceError as e:
        raise _persistence_failure(e)
    if not cancelled:
        return {"status": NO_ACTIVE_SESSION}
    return {"status": "cancelled", "sessionId": state.session_id if state else None}


@router.get("/resume")
def get_resume_prompt(manager: Manager) -> dict[str, object] | None:
    """Unfinished session the user may resume, or null."""
    snapshot = ResumePrompt(manager).check()
    return snapshot.to_dict() if snapshot else None


@router.post("/resume")
def decide_resume(payload: ResumeDecisionRequest, manager: Manager) -> dict[str, object]:
    """Apply the choice made in the resume dialog."""
    prompt = ResumePrompt(manager)
    try:
        outcome = prompt.decide(payload.decision)
    except AlreadyActive as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError as e:
        raise _persistence_failure(e)

    if payload.decision is ResumeDecision.RESUME:
        if outcome is None:
            raise HTTPException(status_code=404, detail="No session to resume")
        state = manager.get_session_snapshot() or outcome
        return {"status": "resumed", "session": _session_view(manager, state)}
    if payload.decision is ResumeDecision.START_NEW:
        return {"status": "cancelled" if outcome else NO_ACTIVE_SESSION}
    return {"status": "dismissed"}


@router.get("/current/exit")
def get_exit_confirmation(manager: Manager) -> dict[str, object]:
    """Progress shown when the user asks to leave the exam."""
    snapshot = ExitConfirmation(manager).snapshot()
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No active session")
    return snapshot.to_dict()


@router.post("/current/exit", response_model=StatusResponse)
def decide_exit(payload: ExitDecisionRequest, manager: Manager) -> dict[str, object]:
    """Apply the choice made in the exit dialog."""
    try:
        exited = ExitConfirmation(manager).decide(payload.decision)
    except PersistenceError as e:
        raise _persistence_failure(e)
    if exited:
        return {"status": "exited"}
    if payload.decision is ExitDecision.CONFIRM:
        return {"status": NO_ACTIVE_SESSION}
    return {"status": "stayed"}
