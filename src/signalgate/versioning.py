from __future__ import annotations

from importlib import metadata
from typing import Any, Dict

FALLBACK_VERSION = "0.0.0-dev"


def get_signalgate_version(config: Dict[str, Any]) -> str:
    telemetry = config.get("telemetry", {}) if isinstance(config, dict) else {}
    mode = str(telemetry.get("version_mode", "package")).lower()
    if mode in ("toml", "manual"):
        value = str(telemetry.get("signalgate_version", "")).strip()
        return value or FALLBACK_VERSION
    try:
        return metadata.version("signalgate")
    except metadata.PackageNotFoundError:
        return FALLBACK_VERSION
