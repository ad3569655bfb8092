import json
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SCRIPT = ROOT / "scripts" / "decision_smoke.py"


def _run(*args: str, cwd: Path) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, str(SCRIPT), *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=False,
    )


def test_smoke_script_with_sample_facts(tmp_path: Path) -> None:
    log_path = tmp_path / "events.jsonl"
    result = _run("--config", str(tmp_path / "absent.toml"), "--log-path", str(log_path), cwd=tmp_path)
    assert result.returncode == 0, result.stderr
    payload = json.loads(result.stdout)
    assert payload["best"] == "WATER"
    assert len(payload["ranking"]) == 5
    record = json.loads(log_path.read_text(encoding="utf-8").splitlines()[0])
    assert record["best"] == "WATER"
    assert record["event_type"] == "decision"


def test_smoke_script_with_facts_file(tmp_path: Path) -> None:
    facts = tmp_path / "facts.json"
    facts.write_text(json.dumps({"candidates": ["A", "B"], "values": {"A": 0.9, "B": 0.1}}))
    result = _run(
        "--config",
        str(tmp_path / "absent.toml"),
        "--facts",
        str(facts),
        "--log-path",
        str(tmp_path / "events.jsonl"),
        cwd=tmp_path,
    )
    assert result.returncode == 0, result.stderr
    assert json.loads(result.stdout)["best"] == "B"


def test_smoke_script_fails_on_missing_facts_file(tmp_path: Path) -> None:
    result = _run(
        "--config",
        str(tmp_path / "absent.toml"),
        "--facts",
        str(tmp_path / "missing.json"),
        cwd=tmp_path,
    )
    assert result.returncode == 1
    assert "Decision smoke failed" in result.stderr
