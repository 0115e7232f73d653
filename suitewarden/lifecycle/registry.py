"""Process-wide, thread-keyed store of live driver handles."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Hashable

from suitewarden.config import DEFAULT_SESSION_CALL_TIMEOUT_SECONDS
from suitewarden.driver.driver_types import DriverType
from suitewarden.driver.handle import DriverHandle
from suitewarden.errors import LifecycleStateError, TeardownError

logger = logging.getLogger("suitewarden.lifecycle.registry")


def current_thread_key() -> int:
    return threading.get_ident()


class SessionRegistry:
    """Maps each worker thread to its current handle and remembers every handle.

    The current-handle mapping only ever has one writer per key (the owning
    thread); the teardown list is appended to from every worker thread.
    """

    def __init__(
        self,
        driver_type_factory: Callable[[], DriverType],
        *,
        call_timeout: float = DEFAULT_SESSION_CALL_TIMEOUT_SECONDS,
    ) -> None:
        self._driver_type_factory = driver_type_factory
        self._call_timeout = call_timeout
        self._current: dict[Hashable, DriverHandle] = {}
        self._all_handles: list[DriverHandle] = []
        self._lock = threading.Lock()
        self._closing = False

    def _create(self, thread_key: Hashable) -> DriverHandle:
        with self._lock:
            if self._closing:
                raise LifecycleStateError("session registry is tearing down")
        handle = DriverHandle(self._driver_type_factory(), call_timeout=self._call_timeout)
        handle.start()
        with self._lock:
            closing = self._closing
            if not closing:
                self._all_handles.append(handle)
                self._current[thread_key] = handle
        if closing:
            # Teardown already took its snapshot; this handle would never be closed.
            self._close_one(handle, None)
            raise LifecycleStateError("session registry is tearing down")
        logger.info("Registered handle %s for thread %s", handle.handle_id, thread_key)
        return handle

    def current(self, thread_key: Hashable | None = None) -> DriverHandle | None:
        key = current_thread_key() if thread_key is None else thread_key
        with self._lock:
            return self._current.get(key)

    def get_or_create(self, thread_key: Hashable | None = None) -> DriverHandle:
        """Return the thread's current handle, starting one on first use."""
        key = current_thread_key() if thread_key is None else thread_key
        handle = self.current(key)
        if handle is not None:
            return handle
        return self._create(key)

    def replace(self, thread_key: Hashable | None = None) -> DriverHandle:
        """Close the thread's current handle and install a new one."""
        key = current_thread_key() if thread_key is None else thread_key
        with self._lock:
            old = self._current.pop(key, None)
        if old is not None:
            try:
                old.close()
            except TeardownError as exc:
                # Still listed in _all_handles, so teardown_all retries it.
                logger.warning("Could not close replaced handle %s: %s", old.handle_id, exc)
        return self._create(key)

    def handles(self) -> list[DriverHandle]:
        with self._lock:
            return list(self._all_handles)

    def _close_one(self, handle: DriverHandle, timeout: float | None) -> bool:
        try:
            handle.close(timeout)
            return True
        except TeardownError as exc:
            logger.warning("Session quit unexpectedly for handle %s: %s", handle.handle_id, exc)
        except Exception:
            logger.exception("Unexpected error closing handle %s", handle.handle_id)
        return False

    def teardown_all(self, timeout: float | None = None) -> dict[str, int]:
        """Close every live handle in parallel; one failure never stops the rest.

        After teardown starts the registry accepts no new handles.
        """
        with self._lock:
            self._closing = True
            targets = [handle for handle in self._all_handles if handle.alive]
            self._current.clear()
        summary = {"attempted": len(targets), "closed": 0, "failed": 0}
        if not targets:
            return summary

        logger.info("Tearing down %d browser session(s)", len(targets))
        results: dict[int, bool] = {}

        def close(index: int, handle: DriverHandle) -> None:
            results[index] = self._close_one(handle, timeout)

        threads = [
            threading.Thread(
                target=close,
                args=(index, handle),
                name=f"suitewarden-teardown-{handle.handle_id}",
                daemon=True,
            )
            for index, handle in enumerate(targets)
        ]
        for thread in threads:
            thread.start()
        # _close_one is bounded by the handle's call timeout.
        for thread in threads:
            thread.join()
        for index in range(len(targets)):
            if results.get(index):
                summary["closed"] += 1
            else:
                summary["failed"] += 1
        if summary["failed"]:
            logger.warning(
                "Teardown finished with %d failure(s) out of %d session(s)",
                summary["failed"],
                summary["attempted"],
            )
        return summary
