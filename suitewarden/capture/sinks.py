"""Artifact sinks that receive capture executions and screenshots."""

from __future__ import annotations

import base64
import json
import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import httpx

logger = logging.getLogger("suitewarden.capture.sinks")

HTTP_TIMEOUT_SECONDS = 10.0
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ArtifactSink(Protocol):
    def start_execution(self, identity: str, details: dict[str, Any]) -> None: ...

    def write_screenshot(self, identity: str, png: bytes, *, action: str) -> None: ...


def _safe_name(value: str) -> str:
    return _UNSAFE_CHARS.sub("_", value).strip("._") or "unnamed"


class FileArtifactSink:
    """Writes executions and screenshots under <root>/<identity>/."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._counters: dict[str, int] = {}
        self._lock = threading.Lock()

    def _execution_dir(self, identity: str) -> Path:
        return self.root / _safe_name(identity)

    def start_execution(self, identity: str, details: dict[str, Any]) -> None:
        execution_dir = self._execution_dir(identity)
        execution_dir.mkdir(parents=True, exist_ok=True)
        payload = {
            "identity": identity,
            "started_at": datetime.now(timezone.utc).isoformat(),
            **details,
        }
        (execution_dir / "execution.json").write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def write_screenshot(self, identity: str, png: bytes, *, action: str) -> Path:
        execution_dir = self._execution_dir(identity)
        execution_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            index = self._counters.get(identity, 0) + 1
            self._counters[identity] = index
        path = execution_dir / f"{index:03d}-{_safe_name(action)}.png"
        path.write_bytes(png)
        logger.debug("Wrote screenshot %s", path)
        return path


class HttpCaptureSink:
    """Posts executions and screenshots to a remote capture service."""

    def __init__(self, base_url: str, client: httpx.Client | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=HTTP_TIMEOUT_SECONDS)
        self._execution_ids: dict[str, str] = {}

    def start_execution(self, identity: str, details: dict[str, Any]) -> None:
        response = self._client.post(
            f"{self.base_url}/executions",
            json={"testID": identity, **details},
        )
        response.raise_for_status()
        execution_id = str(response.json().get("executionID", "")).strip()
        if not execution_id:
            raise ValueError(f"capture service returned no executionID for {identity}")
        self._execution_ids[identity] = execution_id
        logger.info("Capture execution %s opened for %s", execution_id, identity)

    def write_screenshot(self, identity: str, png: bytes, *, action: str) -> None:
        execution_id = self._execution_ids.get(identity)
        if execution_id is None:
            raise ValueError(f"no capture execution opened for {identity}")
        response = self._client.post(
            f"{self.base_url}/screenshots",
            json={
                "executionID": execution_id,
                "action": action,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "screenshot": base64.b64encode(png).decode("ascii"),
            },
        )
        response.raise_for_status()

    def close(self) -> None:
        self._client.close()
