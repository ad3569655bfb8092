from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

try:
    import tomllib  # py>=3.11
except ModuleNotFoundError:  # pragma: no cover - fallback for older runtimes
    import tomli as tomllib

logger = logging.getLogger(__name__)

EVENTS_DB_URI_ENV = "SIGNALGATE_EVENTS_DB_URI"

DEFAULT_CONFIG: Dict[str, Any] = {
    "decision": {
        "weights": {"balance": 1.0, "role": 1.0},
        "tie_break_order": [],
        "climate": {"enabled": False},
        "urgency": {
            "enabled": False,
            "threshold": 0.6,
            "max_boost": 1.0,
            "reduce_others": 0.25,
        },
        "method_selector": {"enabled": False},
    },
    "adaptive_gate": {
        "priority_category": "primary",
        "mandatory_category": "anchor",
        "relaxable_categories": [],
        "mode_threshold": 0.55,
        "high_priority_threshold": 0.8,
        "strict_threshold": 70.0,
        "threshold_reduction": 15.0,
        "severe_failure_floor": 45.0,
        "mandatory_floor": 60.0,
    },
    "telemetry": {
        "version_mode": "package",
        "signalgate_version": "",
    },
    "logging": {
        "enabled": True,
        "backend": "jsonl",
        "path": "logs/signalgate_events.jsonl",
        "verbosity": "normal",
        "notes_allowlist": [],
        "notes_max_length": 120,
    },
    "logging_sql": {
        "enabled": False,
        "uri": "",
        "table": "signalgate_decisions",
        "connect_timeout_s": 5,
    },
}


def _merge_dict(default: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for key, default_value in default.items():
        if key not in override:
            merged[key] = copy.deepcopy(default_value)
            continue
        override_value = override[key]
        if isinstance(default_value, dict) and isinstance(override_value, dict):
            merged[key] = _merge_dict(default_value, override_value)
        else:
            merged[key] = override_value
    for key, value in override.items():
        if key not in merged:
            merged[key] = value
    return merged


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    uri = os.getenv(EVENTS_DB_URI_ENV, "").strip()
    if uri:
        sql_cfg = config.setdefault("logging_sql", {})
        sql_cfg["uri"] = uri
        sql_cfg["enabled"] = True
    return config


def load_config(path: str | Path = "signalgate.toml") -> Dict[str, Any]:
    """Load config with safe defaults; missing or unreadable files are non-fatal.

    The returned dict (and its ``decision``/``adaptive_gate`` sections) should
    be loaded once and reused: the engine caches compiled policies by object
    identity.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    config_path = Path(path)
    if config_path.exists():
        try:
            with config_path.open("rb") as handle:
                raw = tomllib.load(handle)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("ignoring unreadable config %s: %s", config_path, exc)
            raw = None
        if isinstance(raw, dict):
            config = _merge_dict(config, raw)
    return _apply_env_overrides(config)
