"""Tests for the deterministic and Qt-backed schedulers."""

from __future__ import annotations

import os
import threading

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtCore import QCoreApplication, QElapsedTimer
from PySide6.QtWidgets import QApplication

from audiopreview.scheduling import ManualScheduler, QtScheduler


def _ensure_qapp() -> QApplication:
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app


def test_call_soon_runs_on_next_turn_in_order():
    scheduler = ManualScheduler()
    calls: list[str] = []

    scheduler.call_soon(lambda: calls.append("a"))
    scheduler.call_soon(lambda: calls.append("b"))
    assert calls == []

    assert scheduler.run_pending() == 2
    assert calls == ["a", "b"]


def test_callbacks_scheduled_while_running_wait_for_next_turn():
    scheduler = ManualScheduler()
    calls: list[int] = []

    def first() -> None:
        calls.append(1)
        scheduler.call_soon(lambda: calls.append(2))

    scheduler.call_soon(first)
    scheduler.run_pending()
    assert calls == [1]
    scheduler.run_until_idle()
    assert calls == [1, 2]


def test_cancelled_callbacks_do_not_run():
    scheduler = ManualScheduler()
    calls: list[int] = []
    handle = scheduler.call_soon(lambda: calls.append(1))
    scheduler.cancel(handle)
    scheduler.cancel(None)
    assert scheduler.run_until_idle() == 0
    assert calls == []
    assert scheduler.pending == 0


def test_call_later_runs_when_virtual_time_advances():
    scheduler = ManualScheduler()
    calls: list[float] = []
    scheduler.call_later(50, lambda: calls.append(scheduler.now_ms))
    scheduler.call_later(20, lambda: calls.append(scheduler.now_ms))

    scheduler.run_until_idle()
    assert calls == []
    scheduler.advance(30)
    assert calls == [20.0]
    scheduler.advance(30)
    assert calls == [20.0, 50.0]
    assert scheduler.now_ms == 60.0


def test_call_soon_threadsafe_from_worker_thread():
    scheduler = ManualScheduler()
    calls: list[str] = []
    worker = threading.Thread(target=lambda: scheduler.call_soon_threadsafe(lambda: calls.append("done")))
    worker.start()
    worker.join()

    assert scheduler.pending == 1
    scheduler.run_until_idle()
    assert calls == ["done"]


def _process_until(predicate, timeout_ms: int = 2000) -> None:
    timer = QElapsedTimer()
    timer.start()
    while not predicate() and timer.elapsed() < timeout_ms:
        QCoreApplication.processEvents()


def test_qt_scheduler_runs_timers_and_threadsafe_calls():
    _ensure_qapp()
    scheduler = QtScheduler()
    calls: list[str] = []

    scheduler.call_soon(lambda: calls.append("soon"))
    cancelled = scheduler.call_later(5, lambda: calls.append("cancelled"))
    scheduler.cancel(cancelled)
    worker = threading.Thread(target=lambda: scheduler.call_soon_threadsafe(lambda: calls.append("thread")))
    worker.start()
    worker.join()

    _process_until(lambda: len(calls) >= 2)
    _process_until(lambda: False, timeout_ms=30)

    assert sorted(calls) == ["soon", "thread"]
