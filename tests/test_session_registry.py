"""Tests for thread-keyed session registration, replacement and teardown."""

import itertools
import threading
import unittest

from suitewarden.driver.driver_types import DriverType
from suitewarden.errors import LifecycleStateError, SessionStartupError
from suitewarden.lifecycle.registry import SessionRegistry

_ids = itertools.count(1)


class _FakeSession:
    def __init__(self, fail_closes: int = 0) -> None:
        self.session_id = f"session-{next(_ids)}"
        self.close_calls = 0
        self.fail_closes = fail_closes
        self.thread_names: set[str] = set()

    def close(self) -> None:
        self.close_calls += 1
        self.thread_names.add(threading.current_thread().name)
        if self.close_calls <= self.fail_closes:
            raise RuntimeError("browser went away")

    def execute_script(self, code: str) -> str:
        return "FakeAgent/1.0"

    def maximize_window(self) -> None:
        pass

    def screenshot(self) -> bytes:
        return b"png"


class _FakeDriverType(DriverType):
    def __init__(self, sessions: list, fail_closes: int = 0, fail_start: bool = False) -> None:
        super().__init__("chromium")
        self.sessions = sessions
        self.fail_closes = fail_closes
        self.fail_start = fail_start

    def instantiate(self) -> _FakeSession:
        if self.fail_start:
            raise RuntimeError("no browser binary")
        session = _FakeSession(fail_closes=self.fail_closes)
        self.sessions.append(session)
        return session


class SessionRegistryTests(unittest.TestCase):
    """Validate registry ownership and teardown invariants."""

    def setUp(self) -> None:
        self.sessions: list[_FakeSession] = []
        self.registry = SessionRegistry(lambda: _FakeDriverType(self.sessions), call_timeout=5)

    def tearDown(self) -> None:
        self.registry.teardown_all()

    def test_get_or_create_is_idempotent(self) -> None:
        first = self.registry.get_or_create("worker-1")
        second = self.registry.get_or_create("worker-1")
        self.assertIs(first, second)
        self.assertEqual(len(self.sessions), 1)
        self.assertTrue(first.alive)

    def test_concurrent_threads_get_distinct_handles(self) -> None:
        barrier = threading.Barrier(4)
        results: dict[str, object] = {}
        lock = threading.Lock()

        def worker(name: str) -> None:
            barrier.wait()
            handle = self.registry.get_or_create()
            again = self.registry.get_or_create()
            with lock:
                results[name] = (handle, again)

        threads = [threading.Thread(target=worker, args=(f"t{i}",)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(10)

        handles = [pair[0] for pair in results.values()]
        self.assertEqual(len(handles), 4)
        self.assertEqual(len({id(handle) for handle in handles}), 4)
        self.assertEqual(len({handle.session_id for handle in handles}), 4)
        for handle, again in results.values():
            self.assertIs(handle, again)

    def test_replace_closes_old_and_keeps_it_listed(self) -> None:
        old = self.registry.get_or_create("worker-1")
        new = self.registry.replace("worker-1")
        self.assertIsNot(old, new)
        self.assertFalse(old.alive)
        self.assertEqual(self.sessions[0].close_calls, 1)
        self.assertIs(self.registry.current("worker-1"), new)
        self.assertIn(old, self.registry.handles())

    def test_startup_failure_registers_nothing(self) -> None:
        registry = SessionRegistry(lambda: _FakeDriverType(self.sessions, fail_start=True))
        with self.assertRaises(SessionStartupError):
            registry.get_or_create("worker-1")
        self.assertIsNone(registry.current("worker-1"))
        self.assertEqual(registry.handles(), [])

    def test_teardown_attempts_every_handle_once_despite_failure(self) -> None:
        factories = iter([0, 0, 1, 0, 0])
        registry = SessionRegistry(lambda: _FakeDriverType(self.sessions, fail_closes=next(factories)))
        for index in range(5):
            registry.get_or_create(f"worker-{index}")

        with self.assertLogs("suitewarden.lifecycle.registry", level="WARNING"):
            summary = registry.teardown_all()

        self.assertEqual(summary, {"attempted": 5, "closed": 4, "failed": 1})
        self.assertEqual([session.close_calls for session in self.sessions], [1, 1, 1, 1, 1])
        self.assertIsNone(registry.current("worker-0"))

    def test_teardown_retries_handle_that_failed_during_replace(self) -> None:
        fail_closes = iter([1, 0])
        registry = SessionRegistry(lambda: _FakeDriverType(self.sessions, fail_closes=next(fail_closes)))
        stale = registry.get_or_create("worker-1")
        with self.assertLogs("suitewarden.lifecycle.registry", level="WARNING"):
            registry.replace("worker-1")
        self.assertTrue(stale.alive)

        summary = registry.teardown_all()
        self.assertEqual(summary["attempted"], 2)
        self.assertEqual(summary["closed"], 2)
        self.assertEqual(self.sessions[0].close_calls, 2)
        self.assertFalse(stale.alive)

    def test_no_registration_after_teardown_starts(self) -> None:
        self.registry.get_or_create("worker-1")
        self.registry.teardown_all()
        with self.assertRaises(LifecycleStateError):
            self.registry.get_or_create("worker-2")
        self.assertEqual(len(self.registry.handles()), 1)
        self.assertEqual(len(self.sessions), 1)

    def test_handle_started_during_teardown_is_closed(self) -> None:
        entered = threading.Event()
        release = threading.Event()

        class _GatedDriverType(_FakeDriverType):
            def instantiate(self) -> _FakeSession:
                entered.set()
                release.wait(5)
                return super().instantiate()

        registry = SessionRegistry(lambda: _GatedDriverType(self.sessions))
        errors: list[Exception] = []

        def worker() -> None:
            try:
                registry.get_or_create("late-worker")
            except LifecycleStateError as exc:
                errors.append(exc)

        thread = threading.Thread(target=worker)
        thread.start()
        self.assertTrue(entered.wait(5))
        self.assertEqual(registry.teardown_all()["attempted"], 0)
        release.set()
        thread.join(5)

        self.assertEqual(len(errors), 1)
        self.assertEqual(registry.handles(), [])
        self.assertEqual(self.sessions[0].close_calls, 1)

    def test_teardown_with_nothing_registered(self) -> None:
        self.assertEqual(self.registry.teardown_all(), {"attempted": 0, "closed": 0, "failed": 0})


if __name__ == "__main__":
    unittest.main()
