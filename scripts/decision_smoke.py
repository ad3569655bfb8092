#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from signalgate.config import load_config  # noqa: E402
from signalgate.core import evaluate  # noqa: E402
from signalgate.logging import build_decision_event, config_hash_from, log_event  # noqa: E402
from signalgate.versioning import get_signalgate_version  # noqa: E402

SAMPLE_FACTS = {
    "candidates": ["WOOD", "FIRE", "EARTH", "METAL", "WATER"],
    "values": {"WOOD": 0.05, "FIRE": 0.3, "EARTH": 0.25, "METAL": 0.15, "WATER": 0.25},
    "strength": {
        "index": -0.2,
        "support": 0.9,
        "pressure": 1.4,
        "components": {
            "companions": 0.4,
            "resources": 0.5,
            "outputs": 0.6,
            "wealth": 0.5,
            "officers": 0.3,
        },
    },
    "roles": {
        "WOOD": "COMPANION",
        "FIRE": "OUTPUT",
        "EARTH": "WEALTH",
        "METAL": "OFFICER",
        "WATER": "RESOURCE",
    },
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SignalGate decision smoke harness.")
    parser.add_argument("--config", default="signalgate.toml", help="Path to config TOML.")
    parser.add_argument("--facts", default="", help="JSON facts file (default: built-in sample).")
    parser.add_argument(
        "--log-path",
        default="",
        help="JSONL event log path (overrides config).",
    )
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    config = load_config(args.config)
    if args.log_path:
        config["logging"]["path"] = args.log_path

    try:
        if args.facts:
            facts = json.loads(Path(args.facts).read_text(encoding="utf-8"))
        else:
            facts = SAMPLE_FACTS
        started = time.perf_counter()
        decision = evaluate(config["decision"], facts)
        duration_ms = int((time.perf_counter() - started) * 1000)
        event = build_decision_event(
            decision,
            timestamp_utc=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            request_id=uuid.uuid4().hex,
            config_hash=config_hash_from(config),
            signalgate_version=get_signalgate_version(config),
            duration_ms=duration_ms,
        )
        log_event(event, config)
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"Decision smoke failed: {exc}\n")
        return 1

    if decision.best is None:
        sys.stderr.write("Decision smoke failed: no candidate selected.\n")
        return 1
    payload = {"best": decision.best, "ranking": [item.as_dict() for item in decision.ranking]}
    sys.stdout.write(json.dumps(payload, sort_keys=True) + "\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
