"""
pandas adapter: drive an engine over an OHLCV DataFrame.

The adapter only converts rows to ``Bar`` objects and results back to a
DataFrame; all scoring lives in the engine.  Rows the engine rejects
(NaN prices, low above high, negative volume, ...) are logged and skipped,
and the engine carries on with the next row.

Usage:
    from conviction_lib.trading.adapter import evaluate_frame

    out = evaluate_frame(df, get_preset("apex_liquidity_pro"))
    out[out["signal"] != "none"]
"""

import logging
from typing import Hashable, Iterable, Iterator, Optional

import pandas as pd

from conviction_lib.core.bars import Bar, InvalidBar
from conviction_lib.core.config import EngineConfig
from conviction_lib.core.models import EvaluationResult
from conviction_lib.trading.engine import ConvictionEngine

logger = logging.getLogger("adapter")

OHLCV_COLUMNS = ("Open", "High", "Low", "Close", "Volume")


def _normalise_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Accept lower-case column names as well as ``Open``/``High``/..."""
    rename = {c: c.capitalize() for c in df.columns if isinstance(c, str) and c.capitalize() in OHLCV_COLUMNS}
    out = df.rename(columns=rename)
    missing = [c for c in OHLCV_COLUMNS if c not in out.columns]
    if missing:
        raise ValueError(f"DataFrame is missing OHLCV columns: {missing}")
    return out


def result_row(result: EvaluationResult) -> dict:
    """Flatten one result into a DataFrame row."""
    row = {
        "bar": result.index,
        "composite": result.composite.value,
        "trend_band": result.trend_band,
        "volume_ratio": result.volume_ratio,
        "buy_confluence": result.buy_confluence,
        "sell_confluence": result.sell_confluence,
        "signal": result.signal.direction.value,
        "strength": result.signal.strength,
    }
    for name, contribution in result.composite.breakdown.items():
        row[f"score_{name}"] = contribution
    return row


def results_to_dataframe(
    results: Iterable[EvaluationResult],
    index: Optional[Iterable] = None,
) -> pd.DataFrame:
    rows = [result_row(r) for r in results]
    return pd.DataFrame(rows, index=list(index) if index is not None else None)


def iter_results(
    df: pd.DataFrame, engine: ConvictionEngine
) -> Iterator[tuple[Hashable, EvaluationResult]]:
    """Yield ``(row_label, result)`` for every row the engine accepts."""
    frame = _normalise_columns(df)
    skipped = 0
    accepted = 0
    for idx, o, h, lo, c, v in zip(
        frame.index,
        frame["Open"],
        frame["High"],
        frame["Low"],
        frame["Close"],
        frame["Volume"],
    ):
        try:
            bar = Bar(open=float(o), high=float(h), low=float(lo), close=float(c), volume=float(v))
            result = engine.process(bar)
        except (InvalidBar, TypeError, ValueError) as exc:
            skipped += 1
            logger.warning("Skipping row %s: %s", idx, exc)
            continue
        accepted += 1
        yield idx, result

    if skipped:
        logger.info("Evaluated %d bars, skipped %d invalid rows", accepted, skipped)


def evaluate_frame(
    df: pd.DataFrame,
    config: Optional[EngineConfig] = None,
    engine: Optional[ConvictionEngine] = None,
) -> pd.DataFrame:
    """Run every row of *df* through an engine and collect the results.

    Args:
        df: OHLCV frame (``Open, High, Low, Close, Volume``), oldest first.
        config: Configuration for a fresh engine.  Ignored if *engine* is given.
        engine: Existing engine to continue feeding.

    Returns:
        One row per accepted bar, indexed like the accepted input rows.
        ``score_<factor>`` columns hold each factor's contribution.
    """
    if engine is None:
        engine = ConvictionEngine(config)

    kept_index = []
    results: list[EvaluationResult] = []
    for idx, result in iter_results(df, engine):
        kept_index.append(idx)
        results.append(result)
    return results_to_dataframe(results, index=kept_index)
