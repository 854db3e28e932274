"""
Adaptive trend band ("supertrend"-style) tracker.

Bands are ``SMA(close, period) ± multiplier * ATR(period)``.  In adaptive
mode the multiplier widens by ``widen`` when ATR runs hot relative to the
long true-range average and tightens by ``tighten`` when it runs cold.

Each bar the tracked line:
  - drops to the lower band when the close is above the upper band
  - jumps to the upper band when the close is below the lower band
  - otherwise holds its previous value exactly

The first bar seeds the line with its close.  The tracker is the only
engine component whose state carries forward between bars.

Usage:
    from conviction_lib.analysis.supertrend import TrendBandTracker

    tracker = TrendBandTracker(config.trend)
    value = tracker.advance(bar.close, stats)
    tracker.state.flipped_up
"""

import logging

from conviction_lib.analysis.rolling import RollingStatistics
from conviction_lib.core.config import TrendSettings
from conviction_lib.core.models import TrendBandState

logger = logging.getLogger("supertrend")

BAND_SCORE = 100.0


class TrendBandTracker:
    """Owns a ``TrendBandState`` and advances it once per bar."""

    def __init__(self, settings: TrendSettings):
        self.settings = settings
        self.state = TrendBandState()
        self.upper = 0.0
        self.lower = 0.0
        self.multiplier = settings.band_multiplier

    def _effective_multiplier(self, stats: RollingStatistics) -> float:
        m = self.settings.band_multiplier
        if not self.settings.adaptive:
            return m
        ratio = stats.volatility_ratio
        if ratio <= 0:
            return m
        if ratio > self.settings.high_vol_ratio:
            return m * self.settings.widen
        if ratio < self.settings.low_vol_ratio:
            return m * self.settings.tighten
        return m

    def advance(self, close: float, stats: RollingStatistics) -> float:
        """Fold in the current bar (``stats`` already updated) and return the line."""
        self.multiplier = self._effective_multiplier(stats)
        mid = stats.band_sma.value
        offset = self.multiplier * stats.atr.value
        self.upper = mid + offset
        self.lower = mid - offset

        prev = self.state.current
        if prev is None:
            value = close
        elif close > self.upper:
            value = self.lower
        elif close < self.lower:
            value = self.upper
        else:
            value = prev

        self.state.push(value)
        if prev is not None and value != prev:
            logger.debug("Trend band moved %.4f -> %.4f (close %.4f)", prev, value, close)
        return value

    def direction_score(self, close: float, bars_seen: int) -> float:
        """+100 with the close above the line, -100 below, 0 before warm-up."""
        current = self.state.current
        if current is None or bars_seen < self.settings.band_period:
            return 0.0
        if close > current:
            return BAND_SCORE
        if close < current:
            return -BAND_SCORE
        return 0.0
