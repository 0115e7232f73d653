"""Session lifecycle exception hierarchy."""


class SuiteWardenError(Exception):
    """Base error type for all session lifecycle failures."""


class SessionStartupError(SuiteWardenError):
    """Browser session could not be instantiated or configured."""

    def __init__(self, message: str, *, driver_kind: str = ""):
        super().__init__(message)
        self.driver_kind = driver_kind


class InconsistentIdentityError(SuiteWardenError):
    """Issue and test case id declarations disagree on one test method."""


class ScriptProbeError(SuiteWardenError):
    """Diagnostic script evaluation against a session failed."""


class TeardownError(SuiteWardenError):
    """Closing a session or draining background work failed."""


class LifecycleStateError(SuiteWardenError):
    """Operation is not allowed in the current suite lifecycle state."""
