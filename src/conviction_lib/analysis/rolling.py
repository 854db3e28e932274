"""
Incremental rolling aggregates: O(1) per bar, no history re-scans.

Every aggregate is bound to a period and fed one value per bar.  Before
``period`` values have arrived it reports the mean / extremum of whatever
is available, and 0 when nothing has arrived yet.

The EMA matches the usual charting convention: the first ``period``
values are averaged (SMA seed), then the standard smoothing
``ema += (x - ema) * 2 / (period + 1)`` takes over.  ``AverageTrueRange``
is that EMA applied to true range.

``RollingStatistics`` bundles every aggregate an engine configuration
needs and is updated once per appended bar.

Usage:
    from conviction_lib.analysis.rolling import SimpleMovingAverage

    sma = SimpleMovingAverage(3)
    for v in (1.0, 2.0, 3.0, 4.0):
        sma.update(v)
    sma.value   # 3.0
    sma.total   # 9.0
"""

import logging
from collections import deque
from typing import Optional

from conviction_lib.core.bars import Bar, BarSeries
from conviction_lib.core.config import (
    ABSORPTION,
    DELTA,
    DIVERGENCE,
    FAIR_VALUE_GAP,
    LIQUIDITY,
    LIQUIDITY_VOID,
    MANIPULATION,
    ORDER_BLOCK,
    STRUCTURE,
    VOLUME_CLUSTER,
    EngineConfig,
)

logger = logging.getLogger("rolling")


def safe_ratio(num: float, den: float) -> float:
    """``num / den``, or 0 when the denominator is not positive."""
    if den <= 0:
        return 0.0
    return num / den


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


# ---------------------------------------------------------------------------
# Single-series aggregates
# ---------------------------------------------------------------------------


class SimpleMovingAverage:
    """Running-sum mean over the last ``period`` values."""

    def __init__(self, period: int):
        if period < 1:
            raise ValueError("period must be >= 1")
        self.period = period
        self._values: deque[float] = deque()
        self._sum = 0.0

    def update(self, value: float) -> float:
        self._values.append(value)
        self._sum += value
        if len(self._values) > self.period:
            self._sum -= self._values.popleft()
        return self.value

    @property
    def count(self) -> int:
        return len(self._values)

    @property
    def total(self) -> float:
        """Sum of the values currently in the window."""
        return self._sum

    @property
    def value(self) -> float:
        if not self._values:
            return 0.0
        return self._sum / len(self._values)


class ExponentialMovingAverage:
    """EMA with an SMA seed at the ``period``-th value."""

    def __init__(self, period: int):
        if period < 1:
            raise ValueError("period must be >= 1")
        self.period = period
        self.alpha = 2.0 / (period + 1)
        self._seen = 0
        self._seed_sum = 0.0
        self._ema = 0.0

    def update(self, value: float) -> float:
        self._seen += 1
        if self._seen <= self.period:
            self._seed_sum += value
            self._ema = self._seed_sum / self._seen
        else:
            self._ema += (value - self._ema) * self.alpha
        return self._ema

    @property
    def count(self) -> int:
        return self._seen

    @property
    def ready(self) -> bool:
        return self._seen >= self.period

    @property
    def value(self) -> float:
        return self._ema


def true_range(bar: Bar, prev_close: Optional[float]) -> float:
    """``max(high-low, |high-prevClose|, |low-prevClose|)``; first bar is ``high-low``."""
    hl = bar.high - bar.low
    if prev_close is None:
        return hl
    return max(hl, abs(bar.high - prev_close), abs(bar.low - prev_close))


class AverageTrueRange:
    """EMA of true range."""

    def __init__(self, period: int):
        self.period = period
        self._ema = ExponentialMovingAverage(period)
        self._prev_close: Optional[float] = None
        self.last_tr = 0.0

    def update(self, bar: Bar) -> float:
        self.last_tr = true_range(bar, self._prev_close)
        self._prev_close = bar.close
        return self._ema.update(self.last_tr)

    @property
    def value(self) -> float:
        return self._ema.value


class RollingExtremum:
    """Max or min over the last ``period`` values via a monotonic deque."""

    def __init__(self, period: int, kind: str = "max"):
        if period < 1:
            raise ValueError("period must be >= 1")
        if kind not in ("max", "min"):
            raise ValueError("kind must be 'max' or 'min'")
        self.period = period
        self.kind = kind
        self._seen = 0
        # (position, value), values monotone from the front
        self._dq: deque[tuple[int, float]] = deque()

    def _dominates(self, a: float, b: float) -> bool:
        return a >= b if self.kind == "max" else a <= b

    def update(self, value: float) -> float:
        pos = self._seen
        self._seen += 1
        while self._dq and self._dominates(value, self._dq[-1][1]):
            self._dq.pop()
        self._dq.append((pos, value))
        while self._dq[0][0] <= pos - self.period:
            self._dq.popleft()
        return self.value

    @property
    def count(self) -> int:
        return min(self._seen, self.period)

    @property
    def value(self) -> float:
        if not self._dq:
            return 0.0
        return self._dq[0][1]


# ---------------------------------------------------------------------------
# Oscillators
# ---------------------------------------------------------------------------


class RelativeStrengthIndex:
    """RSI from simple average gain / loss over the last ``period`` changes.

    Reads 100 when the window holds gains but no losses, 0 for the
    reverse, and a neutral 50 when price has not moved at all.
    """

    def __init__(self, period: int):
        self.period = period
        self._gain = SimpleMovingAverage(period)
        self._loss = SimpleMovingAverage(period)
        self._prev_close: Optional[float] = None

    def update(self, close: float) -> float:
        if self._prev_close is not None:
            change = close - self._prev_close
            self._gain.update(max(change, 0.0))
            self._loss.update(max(-change, 0.0))
        self._prev_close = close
        return self.value

    @property
    def ready(self) -> bool:
        return self._gain.count >= self.period

    @property
    def value(self) -> float:
        gain, loss = self._gain.value, self._loss.value
        if loss <= 0:
            return 50.0 if gain <= 0 else 100.0
        return 100.0 - 100.0 / (1.0 + gain / loss)


class MovingAverageConvergence:
    """MACD line, signal line and histogram, one close at a time.

    The signal EMA starts taking MACD values once the slow EMA is seeded,
    so the histogram is ready after ``slow + signal - 1`` closes.
    """

    def __init__(self, fast: int, slow: int, signal: int):
        self._fast = ExponentialMovingAverage(fast)
        self._slow = ExponentialMovingAverage(slow)
        self._signal = ExponentialMovingAverage(signal)

    def update(self, close: float) -> float:
        self._fast.update(close)
        self._slow.update(close)
        if self._slow.ready:
            self._signal.update(self.line)
        return self.histogram

    @property
    def line(self) -> float:
        return self._fast.value - self._slow.value

    @property
    def signal(self) -> float:
        return self._signal.value

    @property
    def ready(self) -> bool:
        return self._signal.ready

    @property
    def histogram(self) -> float:
        if not self.ready:
            return 0.0
        return self.line - self._signal.value


# ---------------------------------------------------------------------------
# Per-bar helpers shared with the detectors
# ---------------------------------------------------------------------------


def bar_delta(bar: Bar) -> float:
    """Signed volume estimate: ``(closePos - 0.5) * 2 * volume`` (0 on zero range)."""
    pos = bar.close_position()
    if pos is None:
        return 0.0
    return (pos - 0.5) * 2.0 * bar.volume


def typical_price(bar: Bar) -> float:
    return (bar.high + bar.low + bar.close) / 3.0


# ---------------------------------------------------------------------------
# Engine-owned bundle
# ---------------------------------------------------------------------------


class RollingStatistics:
    """Every aggregate the configured factors read, updated once per bar.

    Volume and range averages are keyed by period so two detectors that
    share a lookback share one accumulator.
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        enabled = config.enabled
        trend = config.trend

        vol_periods = {config.signal.volume_period}
        range_periods: set[int] = set()
        if ABSORPTION in enabled:
            vol_periods.add(config.absorption.lookback)
        if LIQUIDITY in enabled:
            vol_periods.add(config.liquidity.pool_lookback)
        if ORDER_BLOCK in enabled:
            vol_periods.add(config.order_block.lookback)
        if STRUCTURE in enabled:
            vol_periods.add(config.structure.volume_period)
        if VOLUME_CLUSTER in enabled:
            vol_periods.add(config.volume_cluster.lookback)
        if DELTA in enabled:
            vol_periods.add(config.delta.period)
        if DIVERGENCE in enabled:
            vol_periods.add(config.divergence.period)
        if MANIPULATION in enabled:
            vol_periods.add(config.manipulation.volume_period)
        if FAIR_VALUE_GAP in enabled:
            range_periods.add(config.fair_value_gap.range_period)
        if LIQUIDITY_VOID in enabled:
            range_periods.add(config.liquidity_void.range_period)

        self._volume = {p: SimpleMovingAverage(p) for p in sorted(vol_periods)}
        self._range = {p: SimpleMovingAverage(p) for p in sorted(range_periods)}

        self.ema_fast = ExponentialMovingAverage(trend.ema_fast)
        self.ema_mid = ExponentialMovingAverage(trend.ema_mid)
        self.ema_slow = ExponentialMovingAverage(trend.ema_slow)

        self.band_sma = SimpleMovingAverage(trend.band_period)
        self.atr = AverageTrueRange(trend.band_period)
        self.tr_long = SimpleMovingAverage(2 * trend.band_period)

        self.delta_sum = SimpleMovingAverage(config.divergence.period)

        self.vwap_pv = SimpleMovingAverage(config.vwap.period)
        self.vwap_vol = SimpleMovingAverage(config.vwap.period)

        self.rsi = RelativeStrengthIndex(config.rsi.period)
        macd = config.macd
        self.macd = MovingAverageConvergence(macd.fast, macd.slow, macd.signal)

        # Swing extremes are fed lagged bars: the recent window covers
        # offsets 1..N, the older one N+1..2N.  The (high, low) pairs of the
        # last N+2 bars live here, independent of the history capacity.
        n = config.structure.period
        self._track_swings = STRUCTURE in enabled
        self._swing_feed: deque[tuple[float, float]] = deque(maxlen=n + 2)
        self.swing_high = RollingExtremum(n, "max")
        self.swing_low = RollingExtremum(n, "min")
        self.prior_swing_high = RollingExtremum(n, "max")
        self.prior_swing_low = RollingExtremum(n, "min")

        self.first_close: Optional[float] = None
        self.bars_seen = 0

    def update(self, series: BarSeries) -> None:
        """Fold the series' most recent bar into every aggregate."""
        bar = series.ago(0)
        self.bars_seen += 1
        if self.first_close is None:
            self.first_close = bar.close

        for sma in self._volume.values():
            sma.update(bar.volume)
        for sma in self._range.values():
            sma.update(bar.range)

        self.ema_fast.update(bar.close)
        self.ema_mid.update(bar.close)
        self.ema_slow.update(bar.close)

        self.band_sma.update(bar.close)
        self.atr.update(bar)
        self.tr_long.update(self.atr.last_tr)

        self.delta_sum.update(bar_delta(bar))
        self.vwap_pv.update(typical_price(bar) * bar.volume)
        self.vwap_vol.update(bar.volume)

        self.rsi.update(bar.close)
        self.macd.update(bar.close)

        if self._track_swings:
            self._update_swings(bar)

    def _update_swings(self, bar: Bar) -> None:
        feed = self._swing_feed
        feed.append((bar.high, bar.low))
        if len(feed) >= 2:
            prev_high, prev_low = feed[-2]
            self.swing_high.update(prev_high)
            self.swing_low.update(prev_low)
        if len(feed) == feed.maxlen:
            older_high, older_low = feed[0]
            self.prior_swing_high.update(older_high)
            self.prior_swing_low.update(older_low)

    # -- accessors ----------------------------------------------------------

    def volume_avg(self, period: int) -> float:
        return self._volume[period].value

    def volume_total(self, period: int) -> float:
        return self._volume[period].total

    def range_avg(self, period: int) -> float:
        return self._range[period].value

    def volume_ratio(self, volume: float, period: int) -> float:
        return safe_ratio(volume, self.volume_avg(period))

    @property
    def vwap(self) -> float:
        return safe_ratio(self.vwap_pv.total, self.vwap_vol.total)

    @property
    def volatility_ratio(self) -> float:
        """ATR relative to the long true-range average (0 when undefined)."""
        return safe_ratio(self.atr.value, self.tr_long.value)
