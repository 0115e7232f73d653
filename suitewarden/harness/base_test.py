"""unittest base class that runs each test on its thread's prepared session."""

from __future__ import annotations

import atexit
import logging
import unittest

from suitewarden.capture.coordinator import CaptureSession
from suitewarden.driver.driver_types import CloudCredentials
from suitewarden.driver.handle import DriverHandle
from suitewarden.lifecycle.orchestrator import (
    SuiteLifecycleOrchestrator,
    TestContext,
    get_default_orchestrator,
)

logger = logging.getLogger("suitewarden.harness.base_test")


class BrowserTestCase(unittest.TestCase):
    """Base class for browser tests.

    Before every test the thread's session is reset or reused according to
    the driver type, the window is maximized, and screenshot capture is
    opened when configured. Set ``orchestrator`` to use a specific suite;
    otherwise the process-wide default is started on first use and finished
    at interpreter exit.
    """

    orchestrator: SuiteLifecycleOrchestrator | None = None
    test_context: TestContext | None = None

    def suite_orchestrator(self) -> SuiteLifecycleOrchestrator:
        if self.orchestrator is not None:
            return self.orchestrator
        return get_default_orchestrator()

    def setUp(self) -> None:
        super().setUp()
        orchestrator = self.suite_orchestrator()
        if orchestrator.start():
            atexit.register(orchestrator.finish)
        test_method = getattr(self, self._testMethodName)
        try:
            self.test_context = orchestrator.prepare_test(test_method)
        except Exception as exc:
            logger.error("Failed to configure browser for %s: %s", self.id(), exc)
            raise

    @property
    def driver(self) -> DriverHandle:
        if self.test_context is None:
            raise RuntimeError("Browser session is only available while a test runs")
        return self.test_context.handle

    @property
    def capture(self) -> CaptureSession | None:
        return self.test_context.capture if self.test_context is not None else None

    @property
    def user_agent(self) -> str | None:
        return self.test_context.user_agent if self.test_context is not None else None

    @property
    def identity(self) -> str | None:
        return self.test_context.identity if self.test_context is not None else None

    def take_screenshot(self, action: str) -> bool:
        """Record a screenshot for the current step when capture is enabled."""
        if self.capture is None:
            return False
        return self.capture.take_screenshot(action)

    def session_id(self) -> str | None:
        """Remote session id, for provider job status reporting."""
        return self.suite_orchestrator().session_id()

    def authentication(self) -> CloudCredentials | None:
        return self.suite_orchestrator().authentication()
