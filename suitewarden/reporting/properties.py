"""Suite-level report properties written once after the run."""

from __future__ import annotations

import logging
import platform
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger("suitewarden.reporting.properties")

PROPERTIES_FILENAME = "environment.properties"


def _escape_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n")


def _escape_key(key: str) -> str:
    return _escape_value(key).replace("=", "\\=").replace(":", "\\:").replace(" ", "\\ ")


def build_suite_properties(base: Mapping[str, Any]) -> dict[str, str]:
    """Merge run-specific values with interpreter/platform details."""
    properties = {
        "python.version": platform.python_version(),
        "os.name": platform.system(),
        "os.version": platform.release(),
    }
    for key, value in base.items():
        if value is None or value == "":
            continue
        properties[str(key)] = str(value)
    return properties


def write_suite_properties(directory: Path, properties: Mapping[str, Any]) -> Path:
    """Atomically write key=value properties into directory."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / PROPERTIES_FILENAME
    lines = [f"{_escape_key(str(key))}={_escape_value(str(value))}" for key, value in sorted(properties.items())]
    temp_path = target.with_suffix(".properties.tmp")
    temp_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    temp_path.replace(target)
    logger.info("Wrote suite properties to %s", target)
    return target
