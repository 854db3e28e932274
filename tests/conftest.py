"""
Shared pytest fixtures for the conviction engine test suite.

Provides synthetic OHLCV data (DataFrames and ``Bar`` lists) plus a helper
that feeds bars through a ``BarSeries`` / ``RollingStatistics`` pair so
detector tests can call a single detector on a known history.
"""

import numpy as np
import pandas as pd
import pytest

from conviction_lib.analysis.rolling import RollingStatistics
from conviction_lib.core.bars import Bar, BarSeries
from conviction_lib.core.config import EngineConfig, get_preset

# ---------------------------------------------------------------------------
# Synthetic data generators
# ---------------------------------------------------------------------------


def _make_timestamps(
    n: int, freq: str = "5min", start: str = "2025-01-06 03:00"
) -> pd.DatetimeIndex:
    """Generate a tz-aware (US/Eastern) DatetimeIndex for *n* bars."""
    return pd.date_range(start=start, periods=n, freq=freq, tz="America/New_York")


def _random_walk_ohlcv(
    n: int = 500,
    start_price: float = 100.0,
    volatility: float = 0.005,
    seed: int = 42,
    volume_mean: int = 1000,
    drift: float = 0.0,
) -> pd.DataFrame:
    """Geometric random-walk OHLCV with occasional volume spikes.

    Returns a DataFrame with columns: Open, High, Low, Close, Volume
    and a tz-aware DatetimeIndex.
    """
    rng = np.random.default_rng(seed)
    returns = rng.normal(drift, volatility, n)
    close = start_price * np.exp(np.cumsum(returns))

    spread = close * rng.uniform(0.001, 0.004, n)
    high = close + rng.uniform(0, 1, n) * spread
    low = close - rng.uniform(0, 1, n) * spread
    opn = close + rng.uniform(-0.5, 0.5, n) * spread

    # Ensure H >= max(O, C) and L <= min(O, C)
    high = np.maximum(high, np.maximum(opn, close))
    low = np.minimum(low, np.minimum(opn, close))

    volume = rng.poisson(volume_mean, n).astype(float)
    volume = np.maximum(volume, 1)
    # Spikes so volume-gated detectors actually fire
    spikes = rng.choice(n, size=max(1, n // 15), replace=False)
    volume[spikes] *= rng.uniform(2.0, 5.0, len(spikes))

    return pd.DataFrame(
        {"Open": opn, "High": high, "Low": low, "Close": close, "Volume": volume},
        index=_make_timestamps(n),
    )


def _trending_ohlcv(n: int = 300, seed: int = 123, trend: float = 0.002) -> pd.DataFrame:
    """Clearly trending OHLCV (positive drift by default)."""
    return _random_walk_ohlcv(
        n=n, start_price=5000.0, volatility=0.002, seed=seed, volume_mean=800, drift=trend
    )


def frame_to_bars(df: pd.DataFrame) -> list[Bar]:
    return [
        Bar(open=float(o), high=float(h), low=float(lo), close=float(c), volume=float(v))
        for o, h, lo, c, v in zip(df["Open"], df["High"], df["Low"], df["Close"], df["Volume"])
    ]


def flat_bars(n: int = 20, price: float = 100.0, volume: float = 1000.0) -> list[Bar]:
    """*n* identical zero-range bars."""
    return [Bar(price, price, price, price, volume) for _ in range(n)]


def quiet_bars(n: int = 20, price: float = 100.0, volume: float = 1000.0) -> list[Bar]:
    """*n* small symmetric doji-free bars around *price* (body 0.2, range 1.0).

    Bars alternate up/down and close mid-range, so no detector fires.
    """
    bars = []
    for i in range(n):
        if i % 2 == 0:
            bars.append(Bar(price - 0.1, price + 0.5, price - 0.5, price + 0.1, volume))
        else:
            bars.append(Bar(price + 0.1, price + 0.5, price - 0.5, price - 0.1, volume))
    return bars


def feed(bars: list[Bar], config: EngineConfig | None = None) -> tuple[BarSeries, RollingStatistics]:
    """Append *bars* to a fresh series, updating a fresh statistics bundle."""
    config = config or get_preset("default")
    series = BarSeries(capacity=config.history_capacity)
    stats = RollingStatistics(config)
    for b in bars:
        series.append(b)
        stats.update(series)
    return series, stats


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def ohlcv_df() -> pd.DataFrame:
    """Generic 500-bar random-walk OHLCV DataFrame."""
    return _random_walk_ohlcv(n=500, seed=42)


@pytest.fixture()
def trending_df() -> pd.DataFrame:
    """300-bar trending DataFrame (positive drift)."""
    return _trending_ohlcv(n=300, seed=123)


@pytest.fixture()
def ohlcv_bars(ohlcv_df) -> list[Bar]:
    return frame_to_bars(ohlcv_df)


@pytest.fixture()
def default_config() -> EngineConfig:
    return get_preset("default")
