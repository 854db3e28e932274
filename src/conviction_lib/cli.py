"""
Replay a CSV of OHLCV bars through the conviction engine.

Usage:
    conviction-replay bars.csv
    conviction-replay bars.csv --preset sentinel_pro --signals-only
    conviction-replay bars.csv --json > results.jsonl

The CSV needs ``Open, High, Low, Close, Volume`` columns (any case); a
leading date/time column is kept as the row label.  ``--preset`` defaults
to the ``CONVICTION_PRESET`` environment variable, then ``default``.
"""

import argparse
import json
import os
import sys
from typing import Optional

import pandas as pd

from conviction_lib.core.config import DEFAULT_PRESET_ENV, get_preset, list_presets
from conviction_lib.core.logging_config import get_logger, setup_logging
from conviction_lib.trading.adapter import iter_results, result_row
from conviction_lib.trading.engine import ConvictionEngine


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="conviction-replay",
        description="Replay OHLCV bars through the streaming conviction engine",
    )
    parser.add_argument("csv", help="Path to a CSV file of OHLCV bars")
    parser.add_argument(
        "--preset",
        default=os.getenv(DEFAULT_PRESET_ENV, "default"),
        choices=list_presets(),
        help="Engine preset (default: $CONVICTION_PRESET or 'default')",
    )
    parser.add_argument(
        "--signals-only",
        action="store_true",
        help="Only print bars where a Buy or Sell fired",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Emit one JSON object per bar instead of a table",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: $LOG_LEVEL or INFO)",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(service="replay", level=args.log_level)
    log = get_logger("replay", preset=args.preset)

    try:
        df = pd.read_csv(args.csv, index_col=None)
    except (OSError, pd.errors.ParserError) as exc:
        log.error("csv_read_failed", path=args.csv, error=str(exc))
        return 2

    first = df.columns[0] if len(df.columns) else None
    if isinstance(first, str) and first.lower() in ("date", "datetime", "time", "timestamp"):
        df = df.set_index(first)

    engine = ConvictionEngine(get_preset(args.preset))
    log.info("replay_started", path=args.csv, rows=len(df))

    try:
        pairs = list(iter_results(df, engine))
    except ValueError as exc:
        log.error("replay_failed", error=str(exc))
        return 2

    fired = 0
    rows = []
    for label, result in pairs:
        if result.signal.fired:
            fired += 1
        elif args.signals_only:
            continue
        if args.json_output:
            payload = result.to_dict()
            payload["label"] = str(label)
            print(json.dumps(payload))
        else:
            row = result_row(result)
            row["label"] = label
            rows.append(row)

    if not args.json_output and rows:
        table = pd.DataFrame(rows).set_index("label")
        cols = ["bar", "composite", "trend_band", "volume_ratio", "signal", "strength"]
        print(table[cols].to_string(float_format=lambda x: f"{x:.2f}"))

    log.info("replay_complete", bars=len(pairs), signals=fired)
    return 0


if __name__ == "__main__":
    sys.exit(main())
