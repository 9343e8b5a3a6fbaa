"""Per-user SessionManager instances for the web application."""
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from exam_api.config import AUTO_SAVE_INTERVAL_SECONDS
from exam_api.services.persistence import PersistenceGateway
from exam_api.services.session_manager import SessionManager
from exam_api.services.time_budget import TimeAllotments

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Holds one SessionManager per user.

    A manager is kept while it owns a live session or a request is using
    it. Idle managers are dropped when their last lease ends; the user's
    unfinished session stays in the store and a fresh manager resumes it.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        auto_save_interval: float = AUTO_SAVE_INTERVAL_SECONDS,
        allotments: TimeAllotments | None = None,
    ):
        self._gateway = gateway
        self._auto_save_interval = auto_save_interval
        self._allotments = allotments
        self._managers: dict[str, SessionManager] = {}
        self._leases: dict[str, int] = {}
        self._lock = threading.Lock()

    def _get_locked(self, user_id: str) -> SessionManager:
        manager = self._managers.get(user_id)
        if manager is None:
            manager = SessionManager(
                self._gateway,
                user_id,
                auto_save_interval=self._auto_save_interval,
                allotments=self._allotments,
            )
            self._managers[user_id] = manager
        return manager

    def get(self, user_id: str) -> SessionManager:
        """Get the manager for a user, creating it if needed."""
        with self._lock:
            return self._get_locked(user_id)

    @contextmanager
    def lease(self, user_id: str) -> Iterator[SessionManager]:
        """Use a user's manager for the duration of one request."""
        with self._lock:
            manager = self._get_locked(user_id)
            self._leases[user_id] = self._leases.get(user_id, 0) + 1
        try:
            yield manager
        finally:
            self._release(user_id, manager)

    def _release(self, user_id: str, manager: SessionManager) -> None:
        with self._lock:
            remaining = self._leases.get(user_id, 1) - 1
            if remaining > 0:
                self._leases[user_id] = remaining
                return
            self._leases.pop(user_id, None)
            if self._managers.get(user_id) is manager and not manager.has_active_session():
                del self._managers[user_id]
                logger.debug(f"Dropped idle session manager for user {user_id}")

    def managers(self) -> list[SessionManager]:
        with self._lock:
            return list(self._managers.values())

    def shutdown(self) -> None:
        """Flush every live session and stop their schedulers."""
        managers = self.managers()
        for manager in managers:
            manager.shutdown()
        logger.info(f"Session registry shut down ({len(managers)} managers)")
