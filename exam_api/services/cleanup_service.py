"""Service for cleanup operations."""
import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import Session as DBSession

from exam_api.config import CANCELLED_RETENTION_DAYS, SESSIONS_CLEANUP_INTERVAL_SECONDS
from exam_api.database import SessionLocal
from exam_api.models.db.exam_session import ExamAnswerRecord, ExamSessionRecord, SessionStatus

logger = logging.getLogger(__name__)


def cleanup_cancelled_sessions(
    session_factory: Callable[[], DBSession] = SessionLocal,
    retention_days: int = CANCELLED_RETENTION_DAYS,
    now: datetime | None = None,
) -> int:
    """Remove cancelled sessions older than the retention period."""
    if retention_days <= 0:
        return 0

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)

    try:
        db = session_factory()
        try:
            # Completed sessions are kept indefinitely
            expired = select(ExamSessionRecord.id).where(
                ExamSessionRecord.status == SessionStatus.CANCELLED.value,
                ExamSessionRecord.started_at < cutoff,
            )
            db.execute(
                delete(ExamAnswerRecord).where(ExamAnswerRecord.session_id.in_(expired))
            )
            result = db.execute(
                delete(ExamSessionRecord).where(ExamSessionRecord.id.in_(expired))
            )
            db.commit()
            deleted = result.rowcount
            if deleted > 0:
                logger.info(f"Cleaned up {deleted} cancelled exam sessions")
            return deleted
        finally:
            db.close()
    except Exception as e:
        logger.error(f"Failed to cleanup cancelled exam sessions: {e}")
        return 0


def schedule_sessions_cleanup(
    interval_seconds: int = SESSIONS_CLEANUP_INTERVAL_SECONDS,
) -> threading.Thread:
    """Schedule periodic cleanup of old cancelled sessions."""

    def _worker() -> None:
        # Initial delay before first cleanup
        time.sleep(60)
        while True:
            cleanup_cancelled_sessions()
            time.sleep(interval_seconds)

    thread = threading.Thread(
        target=_worker,
        name="exam_sessions_cleanup",
        daemon=True,
    )
    thread.start()
    return thread
