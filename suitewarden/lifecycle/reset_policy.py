"""Per-thread decision on whether the next test reuses or replaces its session."""

from __future__ import annotations

import logging
import threading
from typing import Hashable

from suitewarden.driver.handle import DriverHandle
from suitewarden.errors import SessionStartupError
from suitewarden.lifecycle.registry import SessionRegistry

logger = logging.getLogger("suitewarden.lifecycle.reset_policy")

RESET_STATE_FRESH = "fresh"
RESET_STATE_MUST_RESET = "must_reset"


class ResetPolicyEngine:
    """Runs the fresh/must_reset state machine once per test, per thread."""

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry
        self._local = threading.local()

    def state(self) -> str:
        return getattr(self._local, "state", RESET_STATE_FRESH)

    def reset_state(self) -> None:
        self._local.state = RESET_STATE_FRESH

    def prepare(self, thread_key: Hashable | None = None) -> DriverHandle:
        """Settle the current thread onto a ready, maximized session."""
        if self.state() == RESET_STATE_MUST_RESET:
            logger.debug("Resetting browser session before test")
            handle = self._registry.replace(thread_key)
        else:
            handle = self._registry.get_or_create(thread_key)

        if handle.driver_type.requires_reset():
            self._local.state = RESET_STATE_MUST_RESET
        else:
            self._local.state = RESET_STATE_FRESH

        try:
            handle.maximize_window()
        except Exception as exc:
            raise SessionStartupError(
                f"Failed to configure browser: {exc}",
                driver_kind=handle.driver_type.kind,
            ) from exc
        return handle
