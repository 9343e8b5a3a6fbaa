"""Periodic auto-save scheduling."""
import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class AutoSaveScheduler:
    """
    Fires a callback every ``interval_seconds`` until stopped.

    Each tick runs on its own short-lived thread so a hung flush never delays
    the next tick; the callback is expected to skip a tick when the previous
    one is still in flight. The stop event is the cancellation token.
    """

    def __init__(
        self,
        callback: Callable[[], object],
        interval_seconds: float,
        name: str = "exam_autosave",
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._callback = callback
        self.interval_seconds = interval_seconds
        self.name = name
        self.tick_count = 0
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    def start(self) -> None:
        """Start ticking. Calling start on a running scheduler does nothing."""
        if self.is_running:
            return
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._run,
            args=(stop_event,),
            name=self.name,
            daemon=True,
        )
        self._thread.start()
        logger.debug(f"Auto-save scheduler started ({self.interval_seconds}s interval)")

    def stop(self, timeout: float | None = 1.0) -> None:
        """Cancel future ticks. A tick already in flight is left to finish."""
        if self._stop_event is not None:
            self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.debug("Auto-save scheduler stopped")

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval_seconds):
            self.tick_count += 1
            worker = threading.Thread(
                target=self._tick,
                name=f"{self.name}_tick",
                daemon=True,
            )
            worker.start()

    def _tick(self) -> None:
        try:
            self._callback()
        except Exception as e:
            logger.error(f"Auto-save tick failed: {e}")
