"""Binds per-test screenshot capture to the thread's current session."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from suitewarden.capture.identity import resolve_identity
from suitewarden.capture.sinks import ArtifactSink
from suitewarden.driver.handle import DriverHandle
from suitewarden.errors import ScriptProbeError
from suitewarden.lifecycle.task_queue import BackgroundTaskQueue

logger = logging.getLogger("suitewarden.capture.coordinator")

USER_AGENT_SCRIPT = "() => navigator.userAgent"
USER_AGENT_UNAVAILABLE = "unavailable"


@dataclass
class CaptureSession:
    """Screenshot stream for one test, bound to one driver handle."""

    identity: str
    handle: DriverHandle
    sink: ArtifactSink
    task_queue: BackgroundTaskQueue
    actions: list[str] = field(default_factory=list)

    def take_screenshot(self, action: str) -> bool:
        """Grab a screenshot now and hand it to the sink in the background."""
        try:
            png = self.handle.screenshot()
        except Exception as exc:
            logger.warning("Screenshot for %s (%s) failed: %s", self.identity, action, exc)
            return False
        queued = self.task_queue.submit(self.sink.write_screenshot, self.identity, png, action=action)
        if queued:
            self.actions.append(action)
        return queued


class CaptureCoordinator:
    """Resolves test identities and opens capture sessions when configured."""

    def __init__(
        self,
        *,
        capture_required: bool,
        sink_factory: Callable[[], ArtifactSink],
        task_queue: BackgroundTaskQueue,
    ) -> None:
        self.capture_required = capture_required
        self._sink_factory = sink_factory
        self._sink: ArtifactSink | None = None
        self._task_queue = task_queue

    def resolve_identity(self, test_method: Callable[..., Any]) -> str:
        return resolve_identity(test_method)

    @property
    def sink(self) -> ArtifactSink:
        if self._sink is None:
            self._sink = self._sink_factory()
        return self._sink

    def open_if_required(self, identity: str, handle: DriverHandle) -> CaptureSession | None:
        if not self.capture_required:
            return None
        sink = self.sink
        details = {
            "session_id": handle.session_id,
            **handle.driver_type.describe(),
        }
        self._task_queue.submit(sink.start_execution, identity, details)
        logger.debug("Opened capture session for %s", identity)
        return CaptureSession(identity=identity, handle=handle, sink=sink, task_queue=self._task_queue)

    def close(self) -> None:
        """Release sink resources once no background task can use them."""
        close = getattr(self._sink, "close", None)
        if close is not None:
            close()

    def probe_user_agent(self, handle: DriverHandle) -> str:
        """Best-effort read of the browser's user agent string."""
        try:
            user_agent = read_user_agent(handle)
        except ScriptProbeError as exc:
            logger.debug("User agent probe failed: %s", exc)
            user_agent = USER_AGENT_UNAVAILABLE
        logger.debug("User agent is: '%s'", user_agent)
        return user_agent


def read_user_agent(handle: DriverHandle) -> str:
    """Evaluate navigator.userAgent; raises ScriptProbeError on any failure."""
    try:
        value = handle.execute_script(USER_AGENT_SCRIPT)
    except Exception as exc:
        raise ScriptProbeError(f"user agent script failed: {exc}") from exc
    if not isinstance(value, str) or not value:
        raise ScriptProbeError(f"user agent script returned {value!r}")
    return value
