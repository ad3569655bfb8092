import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Set

from signalgate.core.models import Decision, GateVerdict
from signalgate.core.policy import POLICY_SCHEMA_VERSION

from . import sql_sink

logger = logging.getLogger(__name__)


def _serialize(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))


def config_hash_from(config: Dict[str, Any]) -> str:
    decision = config.get("decision", {}) if isinstance(config, dict) else {}
    gate = config.get("adaptive_gate", {}) if isinstance(config, dict) else {}
    subset = {
        "decision": decision if isinstance(decision, dict) else {},
        "adaptive_gate": gate if isinstance(gate, dict) else {},
    }
    return hashlib.sha256(_serialize(subset).encode()).hexdigest()


PUBLIC_EVENT_FIELDS = {
    "timestamp_utc",
    "request_id",
    "event_type",
    "best",
    "score",
    "ranking",
    "scores",
    "gates",
    "competition_winner",
    "assertions_failed",
    "missing_inputs",
    "passed",
    "mode",
    "priority",
    "threshold",
    "failed_categories",
    "config_hash",
    "policy_schema_version",
    "signalgate_version",
    "duration_ms",
    "notes",
}


def _sanitize_notes(
    notes: Any,
    allowlist: Set[str],
    max_length: int,
) -> Optional[Dict[str, str]]:
    if not isinstance(notes, dict) or not allowlist:
        return None
    sanitized: Dict[str, str] = {}
    for key, value in notes.items():
        if key not in allowlist or not isinstance(value, str):
            continue
        if len(value) > max_length:
            continue
        sanitized[key] = value
    return sanitized or None


def sanitize_event(
    event: Dict[str, Any],
    verbosity: str = "normal",
    notes_allowlist: Optional[Iterable[str]] = None,
    notes_max_length: int = 120,
) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    allowlist = {item for item in (notes_allowlist or []) if isinstance(item, str)}
    for key in PUBLIC_EVENT_FIELDS:
        if key not in event:
            continue
        if key == "notes":
            if verbosity != "debug":
                continue
            notes = _sanitize_notes(event.get("notes"), allowlist, notes_max_length)
            if notes is not None:
                sanitized[key] = notes
            continue
        sanitized[key] = event[key]
    return sanitized


def build_decision_event(
    decision: Decision,
    *,
    timestamp_utc: str,
    request_id: str,
    config_hash: str,
    signalgate_version: str | None = None,
    duration_ms: int | None = None,
    notes: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    diagnostics = decision.diagnostics
    selector = diagnostics.get("method_selector") or {}
    competition = selector.get("competition") or {}
    winner = competition.get("winner") or {}
    rules = diagnostics.get("rules") or {}
    event: Dict[str, Any] = {
        "timestamp_utc": timestamp_utc,
        "request_id": request_id,
        "event_type": "decision",
        "best": decision.best,
        "score": decision.scores.get(decision.best) if decision.best is not None else None,
        "ranking": [item.candidate_id for item in decision.ranking],
        "scores": dict(decision.scores),
        "gates": {
            term: report.get("factor") for term, report in (selector.get("gates") or {}).items()
        },
        "competition_winner": winner.get("method"),
        "assertions_failed": len(rules.get("assertions_failed") or []),
        "missing_inputs": list(diagnostics.get("missing_inputs") or []),
        "config_hash": config_hash,
        "policy_schema_version": POLICY_SCHEMA_VERSION,
        "signalgate_version": signalgate_version,
        "duration_ms": duration_ms,
    }
    if notes:
        event["notes"] = notes
    return event


def build_gate_event(
    verdict: GateVerdict,
    *,
    timestamp_utc: str,
    request_id: str,
    config_hash: str,
    signalgate_version: str | None = None,
    duration_ms: int | None = None,
    notes: Dict[str, Any] | None = None,
) -> Dict[str, Any]:
    event: Dict[str, Any] = {
        "timestamp_utc": timestamp_utc,
        "request_id": request_id,
        "event_type": "gate",
        "passed": verdict.passed,
        "score": verdict.weighted_score,
        "mode": verdict.mode,
        "priority": verdict.state.priority,
        "threshold": verdict.state.threshold,
        "failed_categories": list(verdict.failed_categories),
        "config_hash": config_hash,
        "policy_schema_version": POLICY_SCHEMA_VERSION,
        "signalgate_version": signalgate_version,
        "duration_ms": duration_ms,
    }
    if notes:
        event["notes"] = notes
    return event


def append_event(
    path: str | Path,
    event: Dict[str, Any],
    verbosity: str = "normal",
    notes_allowlist: Optional[Iterable[str]] = None,
    notes_max_length: int = 120,
) -> None:
    record = sanitize_event(
        event,
        verbosity=verbosity,
        notes_allowlist=notes_allowlist,
        notes_max_length=notes_max_length,
    )
    log_path = Path(path).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write(_serialize(record) + "\n")


def log_event(event: Dict[str, Any], config: Dict[str, Any]) -> None:
    logging_cfg = config.get("logging", {}) if isinstance(config, dict) else {}
    sql_cfg = config.get("logging_sql", {}) if isinstance(config, dict) else {}
    if not logging_cfg.get("enabled", True):
        return
    backend = str(logging_cfg.get("backend", "jsonl")).lower()
    if backend == "off":
        return
    verbosity = str(logging_cfg.get("verbosity", "normal")).lower()
    notes_allowlist = logging_cfg.get("notes_allowlist", [])
    notes_max_length = int(logging_cfg.get("notes_max_length", 120))

    record = sanitize_event(
        event,
        verbosity=verbosity,
        notes_allowlist=notes_allowlist,
        notes_max_length=notes_max_length,
    )

    if backend in ("jsonl", "both"):
        path = logging_cfg.get("path", "logs/signalgate_events.jsonl")
        append_event(
            path,
            record,
            verbosity=verbosity,
            notes_allowlist=notes_allowlist,
            notes_max_length=notes_max_length,
        )

    if backend in ("sql", "both") and sql_cfg.get("enabled"):
        ok, message = sql_sink.insert_event(sql_cfg, record)
        if not ok:
            logger.warning("decision event not written to SQL: %s", message)
