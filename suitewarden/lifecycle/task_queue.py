"""Single-worker background queue for deferred reporting work."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

logger = logging.getLogger("suitewarden.lifecycle.task_queue")

DEFAULT_QUEUE_CAPACITY = 1000
POLL_INTERVAL_SECONDS = 0.05


class BackgroundTaskQueue:
    """Bounded FIFO of callables run one at a time on a daemon thread.

    Producers never block: submit() drops the task and returns False when
    the queue is full or already draining.
    """

    def __init__(self, capacity: int = DEFAULT_QUEUE_CAPACITY, name: str = "suitewarden-tasks") -> None:
        self.capacity = capacity
        self.name = name
        self._queue: queue.Queue = queue.Queue(maxsize=capacity)
        self._closing = threading.Event()
        self._lock = threading.Lock()
        self._outstanding = 0
        self._thread: threading.Thread | None = None

    @property
    def outstanding(self) -> int:
        """Tasks accepted but not yet finished, including the running one."""
        with self._lock:
            return self._outstanding

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        with self._lock:
            if self._closing.is_set():
                logger.warning("Task queue %s is closed; dropping %s", self.name, _task_name(fn))
                return False
            try:
                self._queue.put_nowait((fn, args, kwargs))
            except queue.Full:
                logger.warning("Task queue %s is full; dropping %s", self.name, _task_name(fn))
                return False
            self._outstanding += 1
        return True

    def _run(self) -> None:
        while True:
            try:
                fn, args, kwargs = self._queue.get(timeout=POLL_INTERVAL_SECONDS)
            except queue.Empty:
                if self._closing.is_set():
                    return
                continue
            try:
                fn(*args, **kwargs)
            except Exception:
                logger.exception("Background task %s failed", _task_name(fn))
            finally:
                with self._lock:
                    self._outstanding -= 1
                self._queue.task_done()

    def drain(self, timeout: float) -> int:
        """Stop accepting work and wait up to timeout seconds for the backlog.

        Returns the number of tasks abandoned when the deadline passed.
        """
        with self._lock:
            self._closing.set()
        if self._thread is None:
            abandoned = self.outstanding
        else:
            self._thread.join(timeout)
            abandoned = self.outstanding if self._thread.is_alive() else 0
        if abandoned:
            logger.warning(
                "Task queue %s still had %d task(s) after %.1fs; abandoning them",
                self.name,
                abandoned,
                timeout,
            )
        return abandoned


def _task_name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)
