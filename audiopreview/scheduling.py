"""Cooperative callback scheduling for the analysis engine.

All engine state (settings, figures, transport) is touched from one thread.
Background work hands results back through :meth:`Scheduler.call_soon_threadsafe`.
"""

import heapq
import itertools
import logging
import threading
from collections.abc import Callable

from PySide6.QtCore import QObject, Qt, QTimer, Signal

logger = logging.getLogger(__name__)


class ScheduledCall:
    """Handle returned by the scheduler for a pending callback."""

    __slots__ = ("callback", "due_ms", "cancelled", "timer")

    def __init__(self, callback: Callable[[], None], due_ms: float = 0.0):
        self.callback = callback
        self.due_ms = due_ms
        self.cancelled = False
        self.timer: QTimer | None = None

    def cancel(self) -> None:
        self.cancelled = True
        if self.timer is not None:
            self.timer.stop()


class Scheduler:
    """Base class for engine schedulers.

    Subclasses implement :meth:`call_later` and :meth:`call_soon_threadsafe`.
    """

    def call_soon(self, callback: Callable[[], None]) -> ScheduledCall:
        """Run ``callback`` on a later turn of the loop."""
        return self.call_later(0, callback)

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledCall:
        """Run ``callback`` after ``delay_ms`` milliseconds."""
        raise NotImplementedError

    def call_soon_threadsafe(self, callback: Callable[[], None]) -> None:
        """Queue ``callback`` from any thread onto the scheduler thread."""
        raise NotImplementedError

    def cancel(self, handle: ScheduledCall | None) -> None:
        """Cancel a pending callback. Unknown or finished handles are ignored."""
        if handle is not None:
            handle.cancel()


def _run_callback(call: ScheduledCall) -> None:
    if call.cancelled:
        return
    call.cancelled = True
    call.callback()


class ManualScheduler(Scheduler):
    """Deterministic scheduler driven explicitly, for headless runs and tests.

    Time is virtual: it only moves when :meth:`advance` is called.
    """

    def __init__(self) -> None:
        self.now_ms = 0.0
        self._queue: list[tuple[float, int, ScheduledCall]] = []
        self._counter = itertools.count()
        self._threadsafe: list[ScheduledCall] = []
        self._lock = threading.Lock()

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(callback, self.now_ms + max(0.0, float(delay_ms)))
        heapq.heappush(self._queue, (call.due_ms, next(self._counter), call))
        return call

    def call_soon_threadsafe(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._threadsafe.append(ScheduledCall(callback, self.now_ms))

    def _drain_threadsafe(self) -> None:
        with self._lock:
            pending, self._threadsafe = self._threadsafe, []
        for call in pending:
            call.due_ms = self.now_ms
            heapq.heappush(self._queue, (call.due_ms, next(self._counter), call))

    @property
    def pending(self) -> int:
        """Number of live callbacks, due or not."""
        with self._lock:
            queued = len(self._threadsafe)
        return queued + sum(1 for _, _, call in self._queue if not call.cancelled)

    def run_pending(self) -> int:
        """Run callbacks that are due now, once each.

        Callbacks scheduled while running wait for the next call.

        Returns:
            Number of callbacks executed.
        """
        self._drain_threadsafe()
        due: list[ScheduledCall] = []
        while self._queue and self._queue[0][0] <= self.now_ms:
            due.append(heapq.heappop(self._queue)[2])
        executed = 0
        for call in due:
            if not call.cancelled:
                _run_callback(call)
                executed += 1
        return executed

    def run_until_idle(self, max_turns: int = 100_000) -> int:
        """Run due callbacks until none remain at the current time.

        Returns:
            Total number of callbacks executed.
        """
        total = 0
        for _ in range(max_turns):
            executed = self.run_pending()
            total += executed
            if executed == 0 and not self._has_due():
                return total
        logger.warning("Scheduler still busy after %d turns", max_turns)
        return total

    def _has_due(self) -> bool:
        with self._lock:
            if self._threadsafe:
                return True
        return any(due <= self.now_ms and not call.cancelled for due, _, call in self._queue)

    def advance(self, delta_ms: float) -> int:
        """Move virtual time forward, running callbacks as they come due."""
        target = self.now_ms + delta_ms
        total = self.run_until_idle()
        while True:
            self._drain_threadsafe()
            upcoming = [due for due, _, call in self._queue if not call.cancelled]
            next_due = min(upcoming) if upcoming else None
            if next_due is None or next_due > target:
                break
            self.now_ms = max(self.now_ms, next_due)
            total += self.run_until_idle()
        self.now_ms = target
        total += self.run_until_idle()
        return total


class QtScheduler(QObject, Scheduler):
    """Scheduler backed by the Qt event loop of the thread owning this object."""

    _threadsafe_call = Signal(object)

    def __init__(self, parent: QObject | None = None):
        super().__init__(parent)
        self._timers: set[QTimer] = set()
        self._threadsafe_call.connect(self._run_threadsafe, Qt.ConnectionType.QueuedConnection)

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> ScheduledCall:
        call = ScheduledCall(callback, float(delay_ms))
        timer = QTimer(self)
        timer.setSingleShot(True)
        call.timer = timer

        def fire() -> None:
            self._release(timer)
            call.timer = None
            _run_callback(call)

        timer.timeout.connect(fire)
        self._timers.add(timer)
        timer.start(max(0, int(delay_ms)))
        return call

    def cancel(self, handle: ScheduledCall | None) -> None:
        if handle is None:
            return
        timer = handle.timer
        handle.cancel()
        if timer is not None:
            self._release(timer)
            handle.timer = None

    def call_soon_threadsafe(self, callback: Callable[[], None]) -> None:
        # Emitting from a worker thread queues the slot on this object's thread
        self._threadsafe_call.emit(callback)

    def _run_threadsafe(self, callback: Callable[[], None]) -> None:
        callback()

    def _release(self, timer: QTimer) -> None:
        if timer in self._timers:
            self._timers.discard(timer)
            timer.deleteLater()
