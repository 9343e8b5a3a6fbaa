from datetime import timedelta

import pytest

from exam_api.errors import PersistenceError
from exam_api.services.answer_ledger import AnswerEntry
from exam_api.services.persistence import PersistedSession
from exam_api.models.enums import ExitDecision, ResumeDecision
from exam_api.services.session_flows import ExitConfirmation, ResumePrompt, format_time
from exam_api.services.session_state import QuestionDescriptor


def _stored_session(clock, gateway) -> PersistedSession:
    persisted = PersistedSession(
        session_id="stored-1",
        user_id="user-1",
        exam_set_id="set-9",
        status="in_progress",
        total_questions=4,
        current_index=1,
        time_left=130,
        started_at=clock() - timedelta(minutes=10),
        meta={
            "questions": [QuestionDescriptor(f"q{i}", "A").to_dict() for i in range(1, 5)],
            "time_mode": "standard",
            "total_budget": 240,
            "exam_set_name": "Reading drill",
        },
        answers=(AnswerEntry("q1", "A", 900), AnswerEntry("q2", "", 0)),
    )
    gateway.seed(persisted)
    return persisted


def test_format_time() -> None:
    assert format_time(-1) == "Unlimited"
    assert format_time(0) == "0:00"
    assert format_time(65) == "1:05"
    assert format_time(3600) == "60:00"


def test_resume_prompt_without_sessions(manager) -> None:
    assert ResumePrompt(manager).check() is None


def test_resume_prompt_prefers_live_session(manager, questions) -> None:
    session_id = manager.create_session("set-1", questions, exam_set_name="Mock 1")
    manager.save_answer("q1", "A")
    manager.update_progress(2, 125)

    snapshot = ResumePrompt(manager).check()

    assert snapshot.session_id == session_id
    assert snapshot.to_dict() == {
        "sessionId": session_id,
        "examSetName": "Mock 1",
        "currentIndex": 2,
        "currentQuestion": 3,
        "totalQuestions": 5,
        "answeredCount": 1,
        "progressPercent": 20,
        "timeLeft": 125,
        "timeLeftDisplay": "2:05",
        "startedAt": snapshot.started_at.isoformat(),
    }


def test_resume_prompt_reads_persisted_session(manager, gateway, clock) -> None:
    _stored_session(clock, gateway)

    snapshot = ResumePrompt(manager).check()

    assert snapshot.session_id == "stored-1"
    assert snapshot.exam_set_name == "Reading drill"
    assert snapshot.answered_count == 1
    assert snapshot.total_questions == 4
    assert snapshot.time_left == 130
    assert not manager.has_active_session()


def test_resume_prompt_lookup_failure_shows_nothing(manager, gateway) -> None:
    gateway.fail_on.add("find_in_progress_session")
    assert ResumePrompt(manager).check() is None


def test_resume_reattaches_persisted_session(manager, gateway, clock) -> None:
    _stored_session(clock, gateway)

    state = ResumePrompt(manager).decide(ResumeDecision.RESUME)

    assert state.session_id == "stored-1"
    assert manager.get_current_session() is state
    assert state.current_index == 1
    assert state.time_left == 130
    assert state.answers.get("q1").answer == "A"


def test_resume_live_session_keeps_it(manager, questions) -> None:
    session_id = manager.create_session("set-1", questions)
    manager.set_paused(True)

    state = ResumePrompt(manager).resume()

    assert state.session_id == session_id
    assert not state.is_paused
    assert state.is_started


def test_resume_with_nothing_to_resume(manager) -> None:
    assert ResumePrompt(manager).resume() is None


def test_start_new_cancels_live_session(manager, gateway, questions) -> None:
    session_id = manager.create_session("set-1", questions)

    assert ResumePrompt(manager).decide("start_new") is True

    assert not manager.has_active_session()
    assert gateway.sessions[session_id]["status"] == "cancelled"
    new_id = manager.create_session("set-2", questions)
    assert new_id != session_id


def test_start_new_cancels_persisted_session_without_attaching(manager, gateway, clock) -> None:
    _stored_session(clock, gateway)

    assert ResumePrompt(manager).start_new() is True

    assert gateway.sessions["stored-1"]["status"] == "cancelled"
    assert not manager.has_active_session()
    assert ResumePrompt(manager).check() is None


def test_start_new_failure_propagates(manager, gateway, clock) -> None:
    _stored_session(clock, gateway)
    gateway.fail_on.add("mark_cancelled")

    with pytest.raises(PersistenceError):
        ResumePrompt(manager).start_new()
    assert gateway.sessions["stored-1"]["status"] == "in_progress"


def test_dismiss_leaves_session_untouched(manager, gateway, questions) -> None:
    session_id = manager.create_session("set-1", questions)
    manager.save_answer("q1", "A")
    calls_before = list(gateway.calls)

    assert ResumePrompt(manager).decide(ResumeDecision.DISMISS) is None

    assert manager.get_current_session().session_id == session_id
    assert gateway.calls == calls_before


def test_exit_snapshot_reports_progress(manager, questions) -> None:
    manager.create_session("set-1", questions)
    manager.save_answer("q1", "A")
    manager.save_answer("q2", "B")
    manager.update_progress(2, 61)

    snapshot = ExitConfirmation(manager).snapshot()

    assert snapshot.answered_count == 2
    assert snapshot.total_questions == 5
    assert snapshot.progress_percent == 40
    data = snapshot.to_dict()
    assert data["currentQuestion"] == 3
    assert data["timeLeftDisplay"] == "1:01"
    assert data["hasUnsavedChanges"] is True
    assert data["lastSavedAt"] is None
    assert data["questions"][0] == {"id": "q1", "part": 5}
    assert "correctChoice" not in data["questions"][0]
    assert [a["questionId"] for a in data["answers"]] == ["q1", "q2"]


def test_exit_snapshot_after_save(manager, questions) -> None:
    manager.create_session("set-1", questions)
    manager.save_answer("q1", "A")
    manager.auto_save()

    data = ExitConfirmation(manager).snapshot().to_dict()
    assert data["hasUnsavedChanges"] is False
    assert data["lastSavedAt"] is not None


def test_exit_snapshot_without_session(manager) -> None:
    assert ExitConfirmation(manager).snapshot() is None


def test_exit_confirm_cancels_session(manager, gateway, questions) -> None:
    session_id = manager.create_session("set-1", questions)

    assert ExitConfirmation(manager).decide(ExitDecision.CONFIRM) is True

    assert not manager.has_active_session()
    assert gateway.sessions[session_id]["status"] == "cancelled"


def test_exit_cancel_changes_nothing(manager, gateway, questions) -> None:
    manager.create_session("set-1", questions)
    calls_before = list(gateway.calls)

    assert ExitConfirmation(manager).decide("cancel") is False

    assert manager.has_active_session()
    assert gateway.calls == calls_before


def test_snapshots_do_not_mutate_state(manager, questions) -> None:
    manager.create_session("set-1", questions)
    manager.save_answer("q1", "A")
    revision_state = manager.has_unsaved_changes

    ResumePrompt(manager).check()
    ExitConfirmation(manager).snapshot()

    state = manager.get_current_session()
    assert len(state.answers) == 1
    assert state.current_index == 0
    assert manager.has_unsaved_changes == revision_state


def _mixed_part_questions() -> list[QuestionDescriptor]:
    return [
        QuestionDescriptor("q1", "A", part=1),
        QuestionDescriptor("q2", "B", part=1),
        QuestionDescriptor("q3", "C", part=2),
    ]


def test_exit_snapshot_counts_only_in_scope_answers(manager) -> None:
    manager.create_session("set-1", _mixed_part_questions(), selected_parts=[1])
    manager.save_answer("q1", "A")
    manager.save_answer("q3", "C")
    manager.save_answer("bogus", "D")

    snapshot = ExitConfirmation(manager).snapshot()

    assert snapshot.total_questions == 2
    assert snapshot.answered_count == 1
    assert snapshot.progress_percent == 50


def test_resume_snapshot_counts_only_in_scope_answers(manager) -> None:
    manager.create_session("set-1", _mixed_part_questions(), selected_parts=[1])
    manager.save_answer("q1", "A")
    manager.save_answer("q2", "B")
    manager.save_answer("q3", "C")
    manager.save_answer("bogus", "D")

    snapshot = ResumePrompt(manager).check()

    assert snapshot.answered_count == 2
    assert snapshot.progress_percent == 100


def test_persisted_snapshot_counts_only_in_scope_answers(manager, gateway, clock) -> None:
    gateway.seed(
        PersistedSession(
            session_id="stored-2",
            user_id="user-1",
            exam_set_id="set-1",
            status="in_progress",
            total_questions=2,
            current_index=0,
            time_left=60,
            started_at=clock(),
            meta={
                "questions": [q.to_dict() for q in _mixed_part_questions()],
                "selected_parts": [1],
                "total_budget": 120,
            },
            answers=(
                AnswerEntry("q1", "A"),
                AnswerEntry("q3", "C"),
                AnswerEntry("bogus", "D"),
            ),
        )
    )

    snapshot = ResumePrompt(manager).check()

    assert snapshot.total_questions == 2
    assert snapshot.answered_count == 1
    assert snapshot.progress_percent == 50


def test_persisted_answered_count_without_question_snapshot(clock) -> None:
    persisted = PersistedSession(
        session_id="legacy",
        user_id="user-1",
        exam_set_id="set-1",
        status="in_progress",
        total_questions=2,
        current_index=0,
        time_left=None,
        started_at=clock(),
        answers=(AnswerEntry("q1", "A"), AnswerEntry("q2", "")),
    )
    assert persisted.answered_count == 1
