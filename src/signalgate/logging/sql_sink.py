from __future__ import annotations

import json
import re
import threading
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

DECISION_EVENT_COLUMNS: List[Tuple[str, str]] = [
    ("timestamp_utc", "TEXT"),
    ("request_id", "TEXT"),
    ("event_type", "TEXT"),
    ("best", "TEXT"),
    ("passed", "INTEGER"),
    ("score", "REAL"),
    ("mode", "TEXT"),
    ("policy_schema_version", "TEXT"),
    ("signalgate_version", "TEXT"),
    ("config_hash", "TEXT"),
    ("record_json", "TEXT"),
]

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_ENGINES: Dict[str, Engine] = {}
_ENGINES_LOCK = threading.Lock()


def _serialize(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _create_table_sql(table: str, columns: Iterable[Tuple[str, str]]) -> str:
    cols = ", ".join(f"{name} {col_type}" for name, col_type in columns)
    return f"CREATE TABLE IF NOT EXISTS {table} ({cols})"


def _insert_sql(table: str, columns: Iterable[Tuple[str, str]]) -> str:
    names = [name for name, _ in columns]
    return (
        f"INSERT INTO {table} ({', '.join(names)}) "
        f"VALUES ({', '.join(':' + name for name in names)})"
    )


def _resolve_targets(config: Dict[str, Any]) -> Tuple[str, str]:
    uri = str(config.get("uri", "") or "").strip()
    table = str(config.get("table", "signalgate_decisions") or "").strip()
    return uri, table


def get_engine(uri: str) -> Engine:
    with _ENGINES_LOCK:
        engine = _ENGINES.get(uri)
        if engine is None:
            engine = create_engine(uri)
            _ENGINES[uri] = engine
        return engine


def dispose_engines() -> None:
    with _ENGINES_LOCK:
        engines = list(_ENGINES.values())
        _ENGINES.clear()
    for engine in engines:
        engine.dispose()


def _validate(uri: str, table: str) -> str | None:
    if not uri:
        return "Decision event SQL URI is empty."
    if not table or not _TABLE_NAME.match(table):
        return f"Invalid decision event table name: {table!r}."
    return None


def init_db(config: Dict[str, Any]) -> Tuple[bool, str]:
    uri, table = _resolve_targets(config)
    problem = _validate(uri, table)
    if problem:
        return False, problem
    try:
        with get_engine(uri).begin() as conn:
            conn.execute(text(_create_table_sql(table, DECISION_EVENT_COLUMNS)))
    except SQLAlchemyError as exc:
        return False, f"Decision event SQL init failed: {exc}"
    return True, f"Initialized decision event table {table}."


def _event_to_row(event: Dict[str, Any]) -> Dict[str, Any]:
    passed = event.get("passed")
    return {
        "timestamp_utc": event.get("timestamp_utc"),
        "request_id": event.get("request_id"),
        "event_type": event.get("event_type"),
        "best": event.get("best"),
        "passed": int(passed) if isinstance(passed, bool) else None,
        "score": event.get("score"),
        "mode": event.get("mode"),
        "policy_schema_version": event.get("policy_schema_version"),
        "signalgate_version": event.get("signalgate_version"),
        "config_hash": event.get("config_hash"),
        "record_json": _serialize(event),
    }


def insert_event(config: Dict[str, Any], event: Dict[str, Any]) -> Tuple[bool, str]:
    uri, table = _resolve_targets(config)
    problem = _validate(uri, table)
    if problem:
        return False, problem
    try:
        with get_engine(uri).begin() as conn:
            conn.execute(text(_create_table_sql(table, DECISION_EVENT_COLUMNS)))
            conn.execute(text(_insert_sql(table, DECISION_EVENT_COLUMNS)), _event_to_row(event))
    except SQLAlchemyError as exc:
        return False, f"Decision event SQL insert failed: {exc}"
    return True, "Inserted decision event."


def fetch_events(config: Dict[str, Any], limit: int = 100) -> List[Dict[str, Any]]:
    uri, table = _resolve_targets(config)
    problem = _validate(uri, table)
    if problem:
        raise ValueError(problem)
    query = text(f"SELECT record_json FROM {table} LIMIT :limit")
    with get_engine(uri).connect() as conn:
        rows = conn.execute(query, {"limit": int(limit)}).fetchall()
    return [json.loads(row[0]) for row in rows]
