"""
Confluence counting and Buy/Sell signal generation.

Every enabled factor votes with the sign of its raw score: positive votes
Buy, negative votes Sell, zero abstains.  When weighted, the EMA trio
alignment and the trend-band direction vote like any detector; the trend
filter reads them either way.  The ``confluence`` factor scores the vote
difference (buy minus sell) and does not vote itself.

A Buy fires only when all of these hold on the current bar:
  1. at least ``min_confluence`` Buy votes
  2. the configured trend filter agrees (band, ema, both, either or flip)
  3. volume / SMA(volume, volume_period) exceeds ``volume_threshold``
  4. at least one trigger detector scored positive
  5. the composite score is positive

Sell mirrors every condition.  Because the composite must carry the
signal's sign, Buy and Sell can never fire together.  Nothing fires
before the configuration's warm-up bar count.

Usage:
    from conviction_lib.analysis.confluence import SignalGenerator, ema_alignment

    gen = SignalGenerator(config.signal, warmup_bars=config.warmup_bars)
    decision = gen.evaluate(raw_scores, composite, volume_ratio, bars_seen, trend)
    decision.signal.direction
"""

from typing import NamedTuple, Optional

from conviction_lib.core.config import (
    CONFLUENCE,
    EMA_TREND,
    TREND_BAND,
    SignalSettings,
    TrendFilter,
)
from conviction_lib.core.models import NO_SIGNAL, CompositeScore, Direction, Signal

FULL_ALIGNMENT = 100.0
PARTIAL_ALIGNMENT = 50.0


def ema_alignment(fast: float, mid: float, slow: float, ready: bool = True) -> float:
    """EMA trio stacking score.

    fast > mid > slow -> +100, fast < mid < slow -> -100,
    fast vs mid only -> ±50, otherwise 0.  Returns 0 until ``ready``.
    """
    if not ready:
        return 0.0
    if fast > mid > slow:
        return FULL_ALIGNMENT
    if fast < mid < slow:
        return -FULL_ALIGNMENT
    if fast > mid:
        return PARTIAL_ALIGNMENT
    if fast < mid:
        return -PARTIAL_ALIGNMENT
    return 0.0


class Confluence(NamedTuple):
    buy: int
    sell: int


class TrendState(NamedTuple):
    """Trend direction scores the filter reads, whether or not they are weighted.

    ``flip`` is +1 when the band line turned up on the previous bar
    (``TrendBandState.flipped_up``), -1 when it turned down, else 0.
    """

    band: float = 0.0
    ema: float = 0.0
    flip: int = 0


class SignalDecision(NamedTuple):
    signal: Signal
    confluence: Confluence


def count_votes(raw_scores: dict[str, float]) -> Confluence:
    """Buy / sell votes; the confluence factor itself never votes."""
    votes = [v for name, v in raw_scores.items() if name != CONFLUENCE]
    buy = sum(1 for v in votes if v > 0)
    sell = sum(1 for v in votes if v < 0)
    return Confluence(buy, sell)


class SignalGenerator:
    """Applies the confluence rules to one bar's factor scores."""

    def __init__(self, settings: SignalSettings, warmup_bars: int = 0):
        self.settings = settings
        self.warmup_bars = warmup_bars

    def trend_agrees(self, trend: TrendState, sign: int) -> bool:
        band_ok = trend.band * sign > 0
        # EMA filter wants a full stack, not just fast vs mid
        ema_ok = trend.ema * sign >= FULL_ALIGNMENT
        mode = self.settings.trend_filter
        if mode == TrendFilter.BAND:
            return band_ok
        if mode == TrendFilter.EMA:
            return ema_ok
        if mode == TrendFilter.BOTH:
            return band_ok and ema_ok
        if mode == TrendFilter.FLIP:
            return band_ok and trend.flip * sign > 0
        return band_ok or ema_ok

    def _triggered(self, raw_scores: dict[str, float], sign: int) -> bool:
        return any(raw_scores.get(t, 0.0) * sign > 0 for t in self.settings.triggers)

    def _qualifies(
        self,
        sign: int,
        votes: int,
        raw_scores: dict[str, float],
        trend: TrendState,
        composite: float,
        volume_ratio: float,
    ) -> bool:
        return (
            votes >= self.settings.min_confluence
            and self.trend_agrees(trend, sign)
            and volume_ratio > self.settings.volume_threshold
            and self._triggered(raw_scores, sign)
            and composite * sign > 0
        )

    def evaluate(
        self,
        raw_scores: dict[str, float],
        composite: CompositeScore,
        volume_ratio: float,
        bars_seen: int,
        trend: Optional[TrendState] = None,
    ) -> SignalDecision:
        """Decide this bar's signal.

        Args:
            raw_scores: Raw score per enabled factor.
            composite: The bar's composite score.
            volume_ratio: Current volume over its ``volume_period`` average.
            bars_seen: Bars processed so far, current included.
            trend: Band and EMA direction for the trend filter.  Defaults
                to the ``trend_band`` / ``ema_trend`` entries of *raw_scores*.
        """
        if trend is None:
            trend = TrendState(
                band=raw_scores.get(TREND_BAND, 0.0),
                ema=raw_scores.get(EMA_TREND, 0.0),
            )
        votes = count_votes(raw_scores)
        if bars_seen < self.warmup_bars:
            return SignalDecision(NO_SIGNAL, votes)

        value = composite.value
        if self._qualifies(1, votes.buy, raw_scores, trend, value, volume_ratio):
            signal = Signal(Direction.BUY, min(100.0, value))
        elif self._qualifies(-1, votes.sell, raw_scores, trend, value, volume_ratio):
            signal = Signal(Direction.SELL, max(-100.0, value))
        else:
            signal = NO_SIGNAL
        return SignalDecision(signal, votes)
