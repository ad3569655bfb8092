#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from signalgate.config import load_config  # noqa: E402
from signalgate.logging import sql_sink  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize the SignalGate decision event table.")
    parser.add_argument("--config", default="signalgate.toml", help="Path to config TOML.")
    parser.add_argument("--uri", default="", help="SQL URI (overrides config).")
    parser.add_argument("--table", default="", help="Event table name (overrides config).")
    args = parser.parse_args()

    config = load_config(args.config)
    sql_cfg = dict(config.get("logging_sql", {}))
    if args.uri:
        sql_cfg["uri"] = args.uri
    if args.table:
        sql_cfg["table"] = args.table

    try:
        ok, message = sql_sink.init_db(sql_cfg)
    finally:
        sql_sink.dispose_engines()
    stream = sys.stdout if ok else sys.stderr
    stream.write(message + "\n")
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
