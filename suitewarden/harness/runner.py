"""Runs a unittest suite across worker threads inside one suite lifecycle."""

from __future__ import annotations

import logging
import time
import unittest
from concurrent.futures import ThreadPoolExecutor
from typing import Iterator

from suitewarden.harness.base_test import BrowserTestCase
from suitewarden.lifecycle.orchestrator import (
    SuiteLifecycleOrchestrator,
    get_default_orchestrator,
)

logger = logging.getLogger("suitewarden.harness.runner")

FAILURE_SCREENSHOT_ACTION = "test failure"


def iter_tests(suite: unittest.TestSuite | unittest.TestCase) -> Iterator[unittest.TestCase]:
    """Flatten nested suites into individual test cases."""
    if isinstance(suite, unittest.TestCase):
        yield suite
        return
    for item in suite:
        yield from iter_tests(item)


def merge_results(target: unittest.TestResult, source: unittest.TestResult) -> None:
    target.testsRun += source.testsRun
    target.failures.extend(source.failures)
    target.errors.extend(source.errors)
    target.skipped.extend(source.skipped)
    target.expectedFailures.extend(source.expectedFailures)
    target.unexpectedSuccesses.extend(source.unexpectedSuccesses)


def _outcome(result: unittest.TestResult) -> str:
    if result.errors:
        return "ERROR"
    if result.failures or result.unexpectedSuccesses:
        return "FAIL"
    if result.skipped:
        return "SKIP"
    return "PASS"


class ParallelSuiteRunner:
    """Fan tests out over worker threads; each thread keeps its own session."""

    def __init__(
        self,
        orchestrator: SuiteLifecycleOrchestrator | None = None,
        *,
        workers: int | None = None,
    ) -> None:
        self.orchestrator = orchestrator or get_default_orchestrator()
        self.workers = workers or self.orchestrator.settings.workers

    def _run_test(self, test: unittest.TestCase) -> unittest.TestResult:
        if isinstance(test, BrowserTestCase):
            test.orchestrator = self.orchestrator
        self.orchestrator.clear_context()
        result = unittest.TestResult()
        started = time.monotonic()
        test(result)
        outcome = _outcome(result)
        if outcome in {"FAIL", "ERROR"}:
            capture = self.orchestrator.current_capture()
            if capture is not None:
                capture.take_screenshot(FAILURE_SCREENSHOT_ACTION)
        logger.info("%s %s (%.2fs)", outcome, test.id(), time.monotonic() - started)
        for _, trace in result.errors + result.failures:
            logger.debug("%s traceback:\n%s", test.id(), trace)
        return result

    def run(self, suite: unittest.TestSuite | unittest.TestCase) -> unittest.TestResult:
        """Run every test in suite; the orchestrator is always finished."""
        tests = list(iter_tests(suite))
        result = unittest.TestResult()
        logger.info("Running %d test(s) on %d worker thread(s)", len(tests), self.workers)
        self.orchestrator.start()
        try:
            with ThreadPoolExecutor(
                max_workers=self.workers,
                thread_name_prefix="suitewarden-worker",
            ) as pool:
                for test_result in pool.map(self._run_test, tests):
                    merge_results(result, test_result)
        finally:
            self.orchestrator.finish()
        logger.info(
            "Ran %d test(s): %d failure(s), %d error(s), %d skipped",
            result.testsRun,
            len(result.failures),
            len(result.errors),
            len(result.skipped),
        )
        return result
