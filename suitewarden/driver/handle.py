"""Thread-pinned wrapper around one live browser session."""

from __future__ import annotations

import logging
import queue
import threading
import uuid
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional, TypeVar

from suitewarden.config import DEFAULT_SESSION_CALL_TIMEOUT_SECONDS
from suitewarden.driver.driver_types import DriverType
from suitewarden.driver.session import BrowserSession
from suitewarden.errors import SessionStartupError, TeardownError

logger = logging.getLogger("suitewarden.driver.handle")

T = TypeVar("T")


class DriverHandle:
    """One browser session plus the driver type that produced it.

    Session objects are created and used on a private daemon thread so the
    handle can be closed from any thread at suite end, including from
    atexit hooks. A call that overruns its timeout is abandoned on that
    thread and never keeps the process alive.
    """

    def __init__(
        self,
        driver_type: DriverType,
        *,
        call_timeout: float = DEFAULT_SESSION_CALL_TIMEOUT_SECONDS,
    ) -> None:
        self.driver_type = driver_type
        self.call_timeout = call_timeout
        self.handle_id = uuid.uuid4().hex[:8]
        self._session: Optional[BrowserSession] = None
        self._closed = False
        self._stopped = False
        self._calls: queue.Queue = queue.Queue()
        self._thread = threading.Thread(
            target=self._serve,
            name=f"suitewarden-driver-{self.handle_id}",
            daemon=True,
        )
        self._thread.start()

    def __repr__(self) -> str:
        return (
            f"DriverHandle(id={self.handle_id}, kind={self.driver_type.kind}, "
            f"alive={self.alive})"
        )

    @property
    def alive(self) -> bool:
        return self._session is not None and not self._closed

    @property
    def session_id(self) -> str | None:
        if self._session is None:
            return None
        return self._session.session_id

    def _serve(self) -> None:
        while True:
            item = self._calls.get()
            if item is None:
                return
            future, fn = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn()
            except Exception as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)

    def _stop(self) -> None:
        self._stopped = True
        self._calls.put(None)

    def _submit(self, fn: Callable[[], T], timeout: float | None = None) -> T:
        if self._stopped:
            raise RuntimeError(f"Driver handle {self.handle_id} is shut down")
        future: Future = Future()
        self._calls.put((future, fn))
        return future.result(timeout=self.call_timeout if timeout is None else timeout)

    def _require_session(self) -> BrowserSession:
        if self._session is None or self._closed:
            raise RuntimeError(f"Driver handle {self.handle_id} has no live session")
        return self._session

    def start(self) -> "DriverHandle":
        """Instantiate the underlying session on the handle's thread."""
        kind = self.driver_type.kind
        logger.info("Starting %s session for handle %s", kind, self.handle_id)
        try:
            self._session = self._submit(self.driver_type.instantiate)
        except FutureTimeoutError:
            self._stop()
            raise SessionStartupError(
                f"Session startup timed out after {self.call_timeout}s",
                driver_kind=kind,
            ) from None
        except Exception as exc:
            self._stop()
            raise SessionStartupError(
                f"Failed to start {kind} session: {exc}",
                driver_kind=kind,
            ) from exc
        logger.info("Handle %s bound to session %s", self.handle_id, self.session_id)
        return self

    def run(self, fn: Callable[[BrowserSession], T], timeout: float | None = None) -> T:
        """Run fn(session) on the session's own thread and return its result."""
        session = self._require_session()
        return self._submit(lambda: fn(session), timeout)

    def execute_script(self, code: str) -> Any:
        return self.run(lambda session: session.execute_script(code))

    def maximize_window(self) -> None:
        self.run(lambda session: session.maximize_window())

    def screenshot(self) -> bytes:
        return self.run(lambda session: session.screenshot())

    def close(self, timeout: float | None = None) -> bool:
        """Close the session; returns False when there was nothing to close.

        Raises TeardownError when closing fails or exceeds the timeout. A
        handle that failed to close stays alive so a later close can retry.
        """
        if self._closed or self._session is None:
            return False
        session = self._session
        try:
            self._submit(session.close, timeout)
        except FutureTimeoutError:
            raise TeardownError(
                f"Closing session {session.session_id} timed out"
            ) from None
        except Exception as exc:
            raise TeardownError(
                f"Closing session {session.session_id} failed: {exc}"
            ) from exc
        self._closed = True
        self._stop()
        logger.info("Closed session %s (handle %s)", session.session_id, self.handle_id)
        return True
