"""Driver type variants: where sessions come from and when they must be reset."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any

from suitewarden.config import (
    DRIVER_KIND_CLOUD,
    DRIVER_KIND_GRID,
    DRIVER_KIND_LOCAL,
    Settings,
)
from suitewarden.driver.session import BrowserSession, PlaywrightSession


@dataclass(frozen=True)
class CloudCredentials:
    """Username/access key pair for a remote browser provider."""

    username: str
    access_key: str

    def basic_auth_header(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.access_key}".encode("utf-8"))
        return f"Basic {token.decode('ascii')}"


class DriverType:
    """Base driver type; subclasses decide instantiation and reset policy."""

    kind = DRIVER_KIND_LOCAL

    def __init__(self, browser_name: str = "chromium", *, reuse_browser: bool = False) -> None:
        self.browser_name = browser_name
        self.reuse_browser = reuse_browser

    def instantiate(self) -> BrowserSession:
        raise NotImplementedError

    def requires_reset(self) -> bool:
        """Return True when the next test must get a brand new session."""
        return not self.reuse_browser

    def credentials(self) -> CloudCredentials | None:
        return None

    def describe(self) -> dict[str, Any]:
        return {
            "driver_kind": self.kind,
            "browser": self.browser_name,
            "reuse_browser": self.reuse_browser,
        }


class LocalDriverType(DriverType):
    """Browser launched on this machine."""

    def __init__(
        self,
        browser_name: str = "chromium",
        *,
        headless: bool = True,
        reuse_browser: bool = False,
    ) -> None:
        super().__init__(browser_name, reuse_browser=reuse_browser)
        self.headless = headless

    def instantiate(self) -> BrowserSession:
        return PlaywrightSession.start(self.browser_name, headless=self.headless)

    def describe(self) -> dict[str, Any]:
        details = super().describe()
        details["headless"] = self.headless
        return details


class GridDriverType(DriverType):
    """Browser served by a shared remote Playwright server."""

    kind = DRIVER_KIND_GRID

    def __init__(
        self,
        browser_name: str,
        endpoint: str,
        *,
        reuse_browser: bool = False,
    ) -> None:
        super().__init__(browser_name, reuse_browser=reuse_browser)
        self.endpoint = endpoint

    def instantiate(self) -> BrowserSession:
        return PlaywrightSession.start(self.browser_name, ws_endpoint=self.endpoint)

    def describe(self) -> dict[str, Any]:
        details = super().describe()
        details["grid_url"] = self.endpoint
        return details


class CloudDriverType(DriverType):
    """Browser rented from a cloud provider; every test gets a fresh session."""

    kind = DRIVER_KIND_CLOUD

    def __init__(self, browser_name: str, endpoint: str, credentials: CloudCredentials) -> None:
        super().__init__(browser_name, reuse_browser=False)
        self.endpoint = endpoint
        self._credentials = credentials

    def instantiate(self) -> BrowserSession:
        return PlaywrightSession.start(
            self.browser_name,
            ws_endpoint=self.endpoint,
            headers={"Authorization": self._credentials.basic_auth_header()},
        )

    def requires_reset(self) -> bool:
        return True

    def credentials(self) -> CloudCredentials | None:
        return self._credentials

    def describe(self) -> dict[str, Any]:
        details = super().describe()
        details["cloud_url"] = self.endpoint
        return details


def select_driver_type(settings: Settings) -> DriverType:
    """Return the driver type variant configured for this run."""
    kind = settings.driver_kind
    if kind == DRIVER_KIND_CLOUD:
        return CloudDriverType(
            settings.browser,
            settings.cloud_url,
            CloudCredentials(settings.cloud_username, settings.cloud_access_key),
        )
    if kind == DRIVER_KIND_GRID:
        return GridDriverType(
            settings.browser,
            settings.grid_url,
            reuse_browser=settings.reuse_browser,
        )
    return LocalDriverType(
        settings.browser,
        headless=settings.headless,
        reuse_browser=settings.reuse_browser,
    )
