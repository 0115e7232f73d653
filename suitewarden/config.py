"""Suite settings loaded from a JSON file and SUITEWARDEN_* environment variables."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Mapping

from platformdirs import user_data_dir

logger = logging.getLogger("suitewarden.config")

SETTINGS_PATH = Path.home() / ".suitewarden" / "settings.json"
ENV_PREFIX = "SUITEWARDEN_"
ALLOWED_BROWSERS = {"chromium", "firefox", "webkit"}
DRIVER_KIND_LOCAL = "local"
DRIVER_KIND_GRID = "grid"
DRIVER_KIND_CLOUD = "cloud"
DEFAULT_SESSION_CALL_TIMEOUT_SECONDS = 30.0
DEFAULT_TASK_DRAIN_TIMEOUT_SECONDS = 15.0
MAX_WORKERS = 64

_BOOL_KEYS = ("headless", "reuse_browser", "capture")
_STR_KEYS = (
    "grid_url",
    "cloud_url",
    "cloud_username",
    "cloud_access_key",
    "capture_url",
    "artifacts_dir",
)
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def default_artifacts_dir() -> str:
    return str(Path(user_data_dir("suitewarden")) / "artifacts")


@dataclass(frozen=True)
class Settings:
    """Validated, read-only configuration for one suite run."""

    browser: str = "chromium"
    headless: bool = True
    grid_url: str = ""
    cloud_url: str = ""
    cloud_username: str = ""
    cloud_access_key: str = ""
    reuse_browser: bool = False
    capture: bool = False
    capture_url: str = ""
    artifacts_dir: str = ""
    workers: int = 1
    session_call_timeout: float = DEFAULT_SESSION_CALL_TIMEOUT_SECONDS
    task_drain_timeout: float = DEFAULT_TASK_DRAIN_TIMEOUT_SECONDS

    @property
    def capture_required(self) -> bool:
        return self.capture or bool(self.capture_url)

    @property
    def driver_kind(self) -> str:
        if self.cloud_url:
            return DRIVER_KIND_CLOUD
        if self.grid_url:
            return DRIVER_KIND_GRID
        return DRIVER_KIND_LOCAL

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_settings() -> dict[str, Any]:
    settings = Settings().to_dict()
    settings["artifacts_dir"] = default_artifacts_dir()
    return settings


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{key} must be a boolean, got {value!r}")


def _coerce_positive_float(key: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {value!r}") from None
    if number <= 0:
        raise ValueError(f"{key} must be positive")
    return number


def validate_settings(raw: Mapping[str, Any]) -> Settings:
    """Validate raw settings values and return a normalized Settings."""
    if not isinstance(raw, Mapping):
        raise ValueError("settings must be object")
    merged = default_settings()
    merged.update({key: value for key, value in raw.items() if key in merged})

    browser = str(merged["browser"]).strip().lower()
    if browser not in ALLOWED_BROWSERS:
        raise ValueError(f"unsupported browser: {browser}")

    values: dict[str, Any] = {"browser": browser}
    for key in _BOOL_KEYS:
        values[key] = _coerce_bool(key, merged[key])
    for key in _STR_KEYS:
        values[key] = str(merged[key] or "").strip()
    if not values["artifacts_dir"]:
        values["artifacts_dir"] = default_artifacts_dir()

    try:
        workers = int(merged["workers"])
    except (TypeError, ValueError):
        raise ValueError(f"workers must be an integer, got {merged['workers']!r}") from None
    if workers < 1 or workers > MAX_WORKERS:
        raise ValueError(f"workers must be between 1 and {MAX_WORKERS}")
    values["workers"] = workers

    values["session_call_timeout"] = _coerce_positive_float(
        "session_call_timeout", merged["session_call_timeout"]
    )
    values["task_drain_timeout"] = _coerce_positive_float(
        "task_drain_timeout", merged["task_drain_timeout"]
    )

    if values["cloud_url"] and not (values["cloud_username"] and values["cloud_access_key"]):
        raise ValueError("cloud_url requires cloud_username and cloud_access_key")
    return Settings(**values)


def settings_from_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect SUITEWARDEN_* overrides keyed by lower-case setting name."""
    environ = os.environ if environ is None else environ
    known = set(Settings.__dataclass_fields__)
    overrides: dict[str, str] = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        key = name[len(ENV_PREFIX):].lower()
        if key in known:
            overrides[key] = value
    return overrides


def _load_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        logger.warning("Ignoring unreadable settings file %s", path)
        return {}
    if not isinstance(raw, dict):
        logger.warning("Ignoring settings file %s: top level is not an object", path)
        return {}
    try:
        validate_settings(raw)
    except ValueError as exc:
        logger.warning("Ignoring invalid settings file %s: %s", path, exc)
        return {}
    return raw


def load_settings(
    path: Path = SETTINGS_PATH,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings file (or defaults) and apply environment overrides."""
    raw = _load_file(path)
    raw.update(settings_from_env(environ))
    return validate_settings(raw)


def mask_secret(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"
