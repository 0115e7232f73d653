"""Issue / test case id declarations and test identity resolution."""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from suitewarden.errors import InconsistentIdentityError

logger = logging.getLogger("suitewarden.capture.identity")

ISSUE_ATTR = "__suitewarden_issue__"
TEST_CASE_ID_ATTR = "__suitewarden_test_case_id__"
FALLBACK_IDENTITY_LENGTH = 20
ABBREVIATION_MARKER = "..."

F = TypeVar("F", bound=Callable[..., Any])


def issue(value: str) -> Callable[[F], F]:
    """Link a test to an issue tracker reference."""

    def decorator(fn: F) -> F:
        setattr(fn, ISSUE_ATTR, value)
        return fn

    return decorator


def test_case_id(value: str) -> Callable[[F], F]:
    """Link a test to a test-management case id."""

    def decorator(fn: F) -> F:
        setattr(fn, TEST_CASE_ID_ATTR, value)
        return fn

    return decorator


# Not a test itself; keep test collectors from picking up the decorator.
test_case_id.__test__ = False


def abbreviate(text: str, max_width: int) -> str:
    """Shorten text to max_width characters, ending with '...' when cut."""
    if len(text) <= max_width:
        return text
    if max_width <= len(ABBREVIATION_MARKER):
        return text[:max_width]
    return text[: max_width - len(ABBREVIATION_MARKER)] + ABBREVIATION_MARKER


def _declared(fn: Callable[..., Any], attr: str) -> str | None:
    value = getattr(fn, attr, None)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def declared_identity(test_method: Callable[..., Any]) -> str | None:
    """Return the declared issue/test case id, or None when neither is set."""
    fn = getattr(test_method, "__func__", test_method)
    issue_value = _declared(fn, ISSUE_ATTR)
    case_value = _declared(fn, TEST_CASE_ID_ATTR)
    if issue_value is not None and case_value is not None:
        if issue_value != case_value:
            raise InconsistentIdentityError(
                "test_case_id and issue are both declared but not equal for "
                f"{getattr(fn, '__qualname__', fn)}: {case_value!r} != {issue_value!r}"
            )
        return issue_value
    return issue_value if issue_value is not None else case_value


def resolve_identity(test_method: Callable[..., Any]) -> str:
    """Return the declared identity, falling back to the abbreviated method name."""
    identity = declared_identity(test_method)
    if identity is not None:
        return identity
    name = getattr(test_method, "__name__", None) or str(test_method)
    logger.warning("Method %s doesn't declare an issue or test case id.", name)
    return abbreviate(name, FALLBACK_IDENTITY_LENGTH)
