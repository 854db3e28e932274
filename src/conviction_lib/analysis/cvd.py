"""
Volume delta approximation and delta/price divergence.

Without bid/ask data the buy/sell split of each bar is approximated from
where the close sits inside the range:

    delta = (close_position - 0.5) * 2 * volume

so a bar closing on its high counts its whole volume as buying, a bar
closing on its low as selling, and a zero-range bar counts as neutral.

Detectors:
  - Delta: the current bar's delta, amplified on aggressive volume and
    scaled against average volume
  - Divergence: price moved one way over the period while cumulative
    delta leaned the other way

Usage:
    from conviction_lib.analysis.cvd import detect_delta, detect_divergence, window_deltas

    out = detect_delta(window, stats, config.delta)
    out.flags["delta"]       # raw amplified delta
"""

import logging

import numpy as np

from conviction_lib.analysis.rolling import RollingStatistics, clamp, safe_ratio
from conviction_lib.core.bars import BarWindow
from conviction_lib.core.config import (
    DELTA,
    DIVERGENCE,
    DeltaSettings,
    DivergenceSettings,
)
from conviction_lib.core.models import DetectorOutput

logger = logging.getLogger("cvd")


def window_deltas(window: BarWindow) -> np.ndarray:
    """Per-bar delta estimate for every bar in *window* (0 for zero-range bars)."""
    rng = window.high - window.low
    pos = np.divide(
        window.close - window.low,
        rng,
        out=np.full(len(rng), 0.5),
        where=rng > 0,
    )
    return (pos - 0.5) * 2.0 * window.volume


def detect_delta(
    window: BarWindow,
    stats: RollingStatistics,
    settings: DeltaSettings,
) -> DetectorOutput:
    """Current-bar delta, amplified when the bar's volume is aggressive."""
    if len(window) < settings.required_bars():
        return DetectorOutput(DELTA, 0.0, {"delta": 0.0})

    avg_vol = stats.volume_avg(settings.period)
    volume_now = float(window.volume[-1])
    ratio = safe_ratio(volume_now, avg_vol)

    if ratio > settings.strong_ratio:
        amp = settings.strong_amp
    elif ratio > settings.aggression:
        amp = settings.aggressive_amp
    else:
        amp = 1.0

    delta = float(window_deltas(window)[-1]) * amp
    score = clamp(safe_ratio(delta, avg_vol) * settings.scale, -100.0, 100.0)
    return DetectorOutput(DELTA, score, {"delta": delta, "volume_ratio": ratio})


def detect_divergence(
    window: BarWindow,
    stats: RollingStatistics,
    settings: DivergenceSettings,
) -> DetectorOutput:
    """Fixed-magnitude divergence between price change and cumulative delta.

    Price change is measured from ``period`` bars ago to now; cumulative
    delta is summed over the last ``period`` bars and normalised by their
    total volume, so it lies in [-1, 1].
    """
    p = settings.period
    if len(window) < settings.required_bars():
        return DetectorOutput.neutral(DIVERGENCE, "bullish", "bearish")

    past_close = float(window.close[-1 - p])
    price_change = safe_ratio(float(window.close[-1]) - past_close, past_close)
    norm_delta = safe_ratio(stats.delta_sum.total, stats.volume_total(p))

    bullish = price_change < -settings.min_price_change and norm_delta > settings.min_delta
    bearish = price_change > settings.min_price_change and norm_delta < -settings.min_delta

    score = 0.0
    if bullish:
        score = settings.magnitude
    elif bearish:
        score = -settings.magnitude

    return DetectorOutput(
        DIVERGENCE,
        score,
        {
            "bullish": bullish,
            "bearish": bearish,
            "price_change": price_change,
            "norm_delta": norm_delta,
        },
    )
