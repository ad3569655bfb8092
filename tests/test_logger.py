import hashlib
import json
from datetime import datetime
from pathlib import Path

from signalgate import DecisionTraceLogger, evaluate
from signalgate.logger import GENESIS_DIGEST


def test_record_writes_chained_digest(tmp_path: Path) -> None:
    log_path = tmp_path / "trace.log"
    logger = DecisionTraceLogger(log_path)
    payload = {"best": "A"}

    digest = logger.record(event="decision", payload=payload)
    logger.close()

    lines = log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["event"] == "decision"
    assert entry["payload"] == payload
    assert entry["prev"] == GENESIS_DIGEST
    datetime.fromisoformat(entry["ts"].removesuffix("Z"))

    body = {key: value for key, value in entry.items() if key != "sha256"}
    serialized = json.dumps(body, sort_keys=True, separators=(",", ":"))
    assert entry["sha256"] == hashlib.sha256(serialized.encode()).hexdigest() == digest


def test_chain_links_entries_and_verifies(tmp_path: Path) -> None:
    logger = DecisionTraceLogger(tmp_path / "trace.log")
    first = logger.record("decision", {"n": 1})
    logger.record("decision", {"n": 2})
    entries = list(logger.entries())
    assert entries[1]["prev"] == first
    assert logger.verify() is True


def test_chain_resumes_from_existing_file(tmp_path: Path) -> None:
    path = tmp_path / "trace.log"
    last = DecisionTraceLogger(path).record("decision", {"n": 1})
    DecisionTraceLogger(path).record("decision", {"n": 2})
    entries = list(DecisionTraceLogger(path).entries())
    assert entries[1]["prev"] == last
    assert DecisionTraceLogger(path).verify() is True


def test_tampering_breaks_verification(tmp_path: Path) -> None:
    path = tmp_path / "trace.log"
    logger = DecisionTraceLogger(path)
    for idx in range(3):
        logger.record("decision", {"n": idx})
    lines = path.read_text(encoding="utf-8").splitlines()
    lines[1] = lines[1].replace('"n":1', '"n":9')
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    assert DecisionTraceLogger(path).verify() is False


def test_record_decision_uses_decision_fields(tmp_path: Path) -> None:
    decision = evaluate({}, {"candidates": ["A", "B"], "values": {"A": 0.0, "B": 0.5}})
    logger = DecisionTraceLogger(tmp_path / "trace.log")
    logger.record_decision(decision, request_id="r-1")
    entry = next(logger.entries())
    assert entry["payload"]["best"] == "A"
    assert entry["payload"]["request_id"] == "r-1"


def test_flush_creates_empty_file(tmp_path: Path) -> None:
    logger = DecisionTraceLogger(tmp_path / "sub" / "trace.log")
    logger.flush()
    assert (tmp_path / "sub" / "trace.log").exists()
    assert logger.verify() is True
