"""Suite-wide session lifecycle: one-time setup, per-test preparation, total teardown."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from suitewarden.capture.coordinator import CaptureCoordinator, CaptureSession
from suitewarden.capture.sinks import ArtifactSink, FileArtifactSink, HttpCaptureSink
from suitewarden.config import Settings, load_settings
from suitewarden.driver.driver_types import CloudCredentials, DriverType, select_driver_type
from suitewarden.driver.handle import DriverHandle
from suitewarden.errors import LifecycleStateError
from suitewarden.lifecycle.registry import SessionRegistry
from suitewarden.lifecycle.reset_policy import ResetPolicyEngine
from suitewarden.lifecycle.task_queue import BackgroundTaskQueue
from suitewarden.reporting.properties import build_suite_properties, write_suite_properties

logger = logging.getLogger("suitewarden.lifecycle.orchestrator")

SUITE_UNINITIALIZED = "uninitialized"
SUITE_READY = "ready"
SUITE_TEARING_DOWN = "tearing_down"
SUITE_CLOSED = "closed"


@dataclass
class TestContext:
    """Everything a running test needs from its thread's session."""

    __test__ = False

    handle: DriverHandle
    identity: str
    capture: CaptureSession | None
    user_agent: str


class SuiteLifecycleOrchestrator:
    """Owns the registry, reset policy, capture and task queue for one suite."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        driver_type_factory: Callable[[], DriverType] | None = None,
        sink_factory: Callable[[], ArtifactSink] | None = None,
        results_dir: Path | None = None,
    ) -> None:
        self.settings = settings or load_settings()
        self._driver_type_factory = driver_type_factory or (lambda: select_driver_type(self.settings))
        self._sink_factory = sink_factory or self._default_sink
        self.results_dir = Path(results_dir or Path(self.settings.artifacts_dir) / "results")
        self._state = SUITE_UNINITIALIZED
        self._state_lock = threading.Lock()
        self._state_changed = threading.Condition(self._state_lock)
        self._preparing = 0
        self._local = threading.local()
        self._last_user_agent = ""
        self.registry: SessionRegistry | None = None
        self.reset_engine: ResetPolicyEngine | None = None
        self.task_queue: BackgroundTaskQueue | None = None
        self.capture: CaptureCoordinator | None = None

    @property
    def state(self) -> str:
        return self._state

    def _default_sink(self) -> ArtifactSink:
        if self.settings.capture_url:
            return HttpCaptureSink(self.settings.capture_url)
        return FileArtifactSink(Path(self.settings.artifacts_dir) / "captures")

    def start(self) -> bool:
        """Allocate suite resources; returns False if already started."""
        with self._state_lock:
            if self._state != SUITE_UNINITIALIZED:
                return False
            self.registry = SessionRegistry(
                self._driver_type_factory,
                call_timeout=self.settings.session_call_timeout,
            )
            self.reset_engine = ResetPolicyEngine(self.registry)
            self.task_queue = BackgroundTaskQueue()
            self.task_queue.start()
            self.capture = CaptureCoordinator(
                capture_required=self.settings.capture_required,
                sink_factory=self._sink_factory,
                task_queue=self.task_queue,
            )
            self._state = SUITE_READY
        logger.info(
            "Suite ready (driver=%s, browser=%s, capture=%s)",
            self.settings.driver_kind,
            self.settings.browser,
            self.settings.capture_required,
        )
        return True

    def _require_ready(self) -> None:
        if self._state != SUITE_READY:
            raise LifecycleStateError(f"suite is {self._state}, expected {SUITE_READY}")

    def prepare_test(self, test_method: Callable[..., Any]) -> TestContext:
        """Settle the calling thread's session and open capture for one test."""
        with self._state_lock:
            self._require_ready()
            self._preparing += 1
        try:
            handle = self.reset_engine.prepare()
            user_agent = self.capture.probe_user_agent(handle)
            self._last_user_agent = user_agent
            identity = self.capture.resolve_identity(test_method)
            capture = self.capture.open_if_required(identity, handle)
        finally:
            with self._state_lock:
                self._preparing -= 1
                self._state_changed.notify_all()
        context = TestContext(handle=handle, identity=identity, capture=capture, user_agent=user_agent)
        self._local.context = context
        return context

    def current_context(self) -> TestContext | None:
        return getattr(self._local, "context", None)

    def clear_context(self) -> None:
        self._local.context = None

    def current_handle(self) -> DriverHandle | None:
        """Return the calling thread's current driver handle, if any."""
        if self.registry is None:
            return None
        return self.registry.current()

    def current_capture(self) -> CaptureSession | None:
        context = self.current_context()
        return context.capture if context is not None else None

    def session_id(self) -> str | None:
        """Remote session id of the calling thread's session."""
        handle = self.current_handle()
        return handle.session_id if handle is not None else None

    def authentication(self) -> CloudCredentials | None:
        handle = self.current_handle()
        if handle is None:
            return None
        return handle.driver_type.credentials()

    def _suite_properties(self, teardown: dict[str, int]) -> dict[str, str]:
        return build_suite_properties(
            {
                "browser": self.settings.browser,
                "driver.kind": self.settings.driver_kind,
                "headless": self.settings.headless,
                "grid.url": self.settings.grid_url,
                "cloud.url": self.settings.cloud_url,
                "capture.url": self.settings.capture_url,
                "user.agent": self._last_user_agent,
                "sessions.created": teardown.get("created", 0),
                "sessions.closed": teardown.get("closed", 0),
                "sessions.failed": teardown.get("failed", 0),
            }
        )

    def finish(self) -> dict[str, Any]:
        """Tear down every session, drain background work, write properties.

        Each step is attempted even if an earlier one failed; nothing raises.
        """
        with self._state_lock:
            if self._state in (SUITE_TEARING_DOWN, SUITE_CLOSED):
                return {"state": self._state, "skipped": True}
            if self._state == SUITE_UNINITIALIZED:
                self._state = SUITE_CLOSED
                return {"state": self._state, "skipped": True}
            self._state = SUITE_TEARING_DOWN
            if not self._state_changed.wait_for(
                lambda: self._preparing == 0,
                timeout=self.settings.session_call_timeout,
            ):
                logger.warning("%d test preparation(s) still running at teardown", self._preparing)

        summary: dict[str, Any] = {"state": SUITE_TEARING_DOWN, "skipped": False}
        teardown = {"created": len(self.registry.handles()), "attempted": 0, "closed": 0, "failed": 0}
        try:
            teardown.update(self.registry.teardown_all())
        except Exception:
            logger.exception("Session teardown failed")
        summary["teardown"] = teardown

        try:
            summary["abandoned_tasks"] = self.task_queue.drain(self.settings.task_drain_timeout)
        except Exception:
            logger.exception("Task queue drain failed")
            summary["abandoned_tasks"] = None

        if summary["abandoned_tasks"] == 0:
            try:
                self.capture.close()
            except Exception:
                logger.exception("Closing capture sink failed")

        try:
            summary["properties_path"] = str(
                write_suite_properties(self.results_dir, self._suite_properties(teardown))
            )
        except Exception:
            logger.exception("Writing suite properties failed")
            summary["properties_path"] = None

        with self._state_lock:
            self._state = SUITE_CLOSED
        summary["state"] = SUITE_CLOSED
        logger.info("Suite closed: %s", summary)
        return summary


_DEFAULT_ORCHESTRATOR: SuiteLifecycleOrchestrator | None = None
_DEFAULT_LOCK = threading.Lock()


def get_default_orchestrator() -> SuiteLifecycleOrchestrator:
    """Return the process-wide orchestrator used by BrowserTestCase."""
    global _DEFAULT_ORCHESTRATOR
    with _DEFAULT_LOCK:
        if _DEFAULT_ORCHESTRATOR is None:
            _DEFAULT_ORCHESTRATOR = SuiteLifecycleOrchestrator()
        return _DEFAULT_ORCHESTRATOR


def set_default_orchestrator(orchestrator: SuiteLifecycleOrchestrator | None) -> None:
    global _DEFAULT_ORCHESTRATOR
    with _DEFAULT_LOCK:
        _DEFAULT_ORCHESTRATOR = orchestrator
