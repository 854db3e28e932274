"""
Streaming conviction engine.

One ``ConvictionEngine`` per instrument stream.  Each call to
``process(bar)`` runs the full pipeline for that bar, in order:

    BarSeries -> RollingStatistics -> detectors -> TrendBandTracker
              -> CompositeScorer -> SignalGenerator

and returns a fresh ``EvaluationResult``.  No stage ever revises output
for a bar already processed, so replaying the same bars through a new
engine reproduces identical results.

The engine owns all of its mutable state (history, aggregates, trend
band); independent engines share nothing and need no locking.  A bar
that fails validation raises ``InvalidBar`` and leaves the engine exactly
as it was.

Usage:
    from conviction_lib.core.config import get_preset
    from conviction_lib.trading.engine import ConvictionEngine

    engine = ConvictionEngine(get_preset("sentinel_pro"))
    for bar in bars:
        result = engine.process(bar)
        if result.signal.fired:
            print(result.index, result.signal.direction, result.signal.strength)
"""

import logging
from typing import Callable, Optional

from conviction_lib.analysis.confluence import (
    SignalGenerator,
    TrendState,
    count_votes,
    ema_alignment,
)
from conviction_lib.analysis.cvd import detect_delta, detect_divergence
from conviction_lib.analysis.ict import (
    detect_absorption,
    detect_fair_value_gap,
    detect_liquidity,
    detect_liquidity_void,
    detect_manipulation,
    detect_order_blocks,
    detect_structure,
)
from conviction_lib.analysis.momentum import score_macd, score_rsi
from conviction_lib.analysis.rolling import RollingStatistics, safe_ratio
from conviction_lib.analysis.scorer import CompositeScorer
from conviction_lib.analysis.supertrend import TrendBandTracker
from conviction_lib.analysis.volume_profile import (
    detect_volume_cluster,
    detect_vpoc,
    detect_vwap,
)
from conviction_lib.core.bars import Bar, BarSeries, BarWindow, InvalidBar, validate_bar
from conviction_lib.core.config import (
    ABSORPTION,
    CONFLUENCE,
    DELTA,
    DIVERGENCE,
    EMA_TREND,
    FAIR_VALUE_GAP,
    LIQUIDITY,
    LIQUIDITY_VOID,
    MACD,
    MANIPULATION,
    ORDER_BLOCK,
    RSI,
    STRUCTURE,
    TREND_BAND,
    VOLUME_CLUSTER,
    VPOC,
    VWAP,
    EngineConfig,
    load_config,
)
from conviction_lib.core.models import DetectorOutput, EvaluationResult

logger = logging.getLogger("engine")

Detector = Callable[[BarWindow, RollingStatistics, object], DetectorOutput]

DETECTORS: dict[str, Detector] = {
    ABSORPTION: detect_absorption,
    LIQUIDITY: detect_liquidity,
    ORDER_BLOCK: detect_order_blocks,
    FAIR_VALUE_GAP: detect_fair_value_gap,
    STRUCTURE: detect_structure,
    DIVERGENCE: detect_divergence,
    VOLUME_CLUSTER: detect_volume_cluster,
    DELTA: detect_delta,
    LIQUIDITY_VOID: detect_liquidity_void,
    VWAP: detect_vwap,
    VPOC: detect_vpoc,
    MANIPULATION: detect_manipulation,
}


class ConvictionEngine:
    """Bar-at-a-time multi-factor scoring engine.

    Args:
        config: Engine configuration.  Defaults to ``load_config()``, i.e.
            the preset named by ``CONVICTION_PRESET``.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config if config is not None else load_config()
        self.series = BarSeries(capacity=self.config.history_capacity)
        self.stats = RollingStatistics(self.config)
        self.tracker = TrendBandTracker(self.config.trend)
        self.scorer = CompositeScorer(self.config.weights)
        self.signals = SignalGenerator(self.config.signal, self.config.warmup_bars)
        self._detectors = [
            (name, DETECTORS[name], self.config.detector_settings(name))
            for name in self.config.enabled_detectors
        ]
        self._window_size = max(
            [self.config.required_bars(n) for n, _, _ in self._detectors] + [1]
        )
        logger.debug(
            "Engine ready: preset=%s factors=%s warmup=%d capacity=%d",
            self.config.name,
            sorted(self.config.enabled),
            self.config.warmup_bars,
            self.series.capacity,
        )

    @property
    def bars_processed(self) -> int:
        return len(self.series)

    def process(self, bar: Bar) -> EvaluationResult:
        """Append *bar* and evaluate it.

        Raises:
            InvalidBar: The bar is malformed or out of order.  No state
                was changed.
        """
        try:
            validate_bar(bar, self.series.next_index)
        except InvalidBar as exc:
            logger.warning("Rejected bar at index %d: %s", self.series.next_index, exc)
            raise

        stored = self.series.append(bar)
        self.stats.update(self.series)
        band = self.tracker.advance(stored.close, self.stats)

        window = self.series.window(self._window_size)
        detectors = {
            name: fn(window, self.stats, settings)
            for name, fn, settings in self._detectors
        }
        enabled = self.config.enabled
        if RSI in enabled:
            detectors[RSI] = score_rsi(self.stats, self.config.rsi)
        if MACD in enabled:
            detectors[MACD] = score_macd(self.stats, self.config.macd, stored.close)

        bars_seen = len(self.series)
        state = self.tracker.state
        trend = TrendState(
            band=self.tracker.direction_score(stored.close, bars_seen),
            ema=ema_alignment(
                self.stats.ema_fast.value,
                self.stats.ema_mid.value,
                self.stats.ema_slow.value,
                ready=self.stats.ema_slow.ready,
            ),
            flip=int(state.flipped_up) - int(state.flipped_down),
        )
        raw = {name: out.score for name, out in detectors.items()}
        if EMA_TREND in enabled:
            raw[EMA_TREND] = trend.ema
        if TREND_BAND in enabled:
            raw[TREND_BAND] = trend.band
        if CONFLUENCE in enabled:
            votes = count_votes(raw)
            raw[CONFLUENCE] = float(votes.buy - votes.sell)

        composite = self.scorer.score(raw)
        volume_ratio = safe_ratio(
            stored.volume, self.stats.volume_avg(self.config.signal.volume_period)
        )
        decision = self.signals.evaluate(raw, composite, volume_ratio, bars_seen, trend)

        if decision.signal.fired:
            logger.debug(
                "%s signal at bar %d: strength=%.2f buy_votes=%d sell_votes=%d",
                decision.signal.direction.value.upper(),
                stored.index,
                decision.signal.strength,
                decision.confluence.buy,
                decision.confluence.sell,
            )

        return EvaluationResult(
            index=stored.index,
            composite=composite,
            detectors=detectors,
            trend_band=band,
            volume_ratio=volume_ratio,
            buy_confluence=decision.confluence.buy,
            sell_confluence=decision.confluence.sell,
            signal=decision.signal,
        )

    def process_many(self, bars) -> list[EvaluationResult]:
        return [self.process(b) for b in bars]
