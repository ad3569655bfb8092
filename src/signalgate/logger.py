import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator

GENESIS_DIGEST = "0" * 64


def _serialize(entry: Dict[str, Any]) -> str:
    return json.dumps(entry, sort_keys=True, separators=(",", ":"))


def _digest(entry: Dict[str, Any]) -> str:
    return hashlib.sha256(_serialize(entry).encode()).hexdigest()


class DecisionTraceLogger:
    """Append-only audit trail; each entry's digest covers the previous digest."""

    def __init__(self, path: str | Path = "decision_trace.log") -> None:
        self.path = Path(path)
        self._last_digest: str | None = None

    def _tail_digest(self) -> str:
        if self._last_digest is not None:
            return self._last_digest
        last = GENESIS_DIGEST
        for entry in self.entries():
            last = entry.get("sha256", last)
        self._last_digest = last
        return last

    def record(self, event: str, payload: Dict[str, Any]) -> str:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event": event,
            "payload": payload,
            "prev": self._tail_digest(),
        }
        digest = _digest(entry)
        entry["sha256"] = digest
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(_serialize(entry) + "\n")
        self._last_digest = digest
        return digest

    def record_decision(self, decision: Any, **payload: Any) -> str:
        body = {"best": decision.best, "scores": dict(decision.scores)}
        body.update(payload)
        return self.record("decision", body)

    def entries(self) -> Iterator[Dict[str, Any]]:
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if line:
                    yield json.loads(line)

    def verify(self) -> bool:
        """Recompute the chain; False on any edited, dropped or reordered entry."""
        previous = GENESIS_DIGEST
        for entry in self.entries():
            stored = entry.get("sha256")
            if entry.get("prev") != previous:
                return False
            body = {key: value for key, value in entry.items() if key != "sha256"}
            if _digest(body) != stored:
                return False
            previous = stored
        return True

    def flush(self) -> None:
        """Synchronous logger; nothing buffered, but ensure file exists for readers."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)

    def close(self) -> None:
        self.flush()
