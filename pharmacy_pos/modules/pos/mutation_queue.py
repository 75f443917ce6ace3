# pharmacy_pos/modules/pos/mutation_queue.py
"""
Single-slot mutation queue.

Every engine mutation that comes from the UI goes through here: one job runs
at a time on a private thread pool capped at one thread, later submissions
wait in FIFO order. A failing job is logged and reported on ``failed``; it
never stops the jobs queued behind it.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, QRunnable, QThreadPool, Signal, Slot

_log = logging.getLogger(__name__)


class _JobRunnable(QRunnable):
    """
    Thin QRunnable wrapper that executes a callable and ensures completion
    callbacks always run.
    """
    def __init__(self, work: Callable[[], None]) -> None:
        super().__init__()
        self.setAutoDelete(True)
        self._work = work

    @Slot()
    def run(self) -> None:  # type: ignore[override]
        self._work()


class MutationQueue(QObject):
    started = Signal(str)
    finished = Signal(str, object)  # label, return value
    failed = Signal(str, object)    # label, exception

    def __init__(self, parent: Optional[QObject] = None, logger: Optional[logging.Logger] = None) -> None:
        super().__init__(parent)
        self._pool = QThreadPool(self)
        self._pool.setMaxThreadCount(1)
        self._log = logger or _log
        self._lock = threading.Lock()
        self._pending = 0

    def submit(self, label: str, fn: Callable[..., Any], *args, **kwargs) -> None:
        with self._lock:
            self._pending += 1
        self._pool.start(_JobRunnable(lambda: self._run(label, fn, args, kwargs)))

    def pending(self) -> int:
        """Jobs submitted and not yet finished (including the one running)."""
        with self._lock:
            return self._pending

    def wait_for_idle(self, msecs: int = -1) -> bool:
        return self._pool.waitForDone(msecs)

    def _run(self, label: str, fn: Callable[..., Any], args: tuple, kwargs: dict) -> None:
        self.started.emit(label)
        try:
            result = fn(*args, **kwargs)
        except Exception as e:
            self._log.error("Queued %s failed: %s", label, e)
            self.failed.emit(label, e)
        else:
            self.finished.emit(label, result)
        finally:
            with self._lock:
                self._pending -= 1
