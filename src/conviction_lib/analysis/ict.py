"""
Price-action / smart-money pattern detectors.

Implements the bar-pattern half of the detector family:
  - Absorption: heavy volume that failed to move price (rejection wicks)
  - Liquidity sweeps and pools: stop runs past a swing extreme that fail
  - Order blocks: high-volume opposing candles price has just reclaimed
  - Fair value gaps: three-candle imbalances left unfilled
  - Liquidity voids: one-bar price gaps
  - Structure breaks: BOS and change-of-character (CHoCH)
  - Manipulation: order-filling bars and failed stop hunts

Every detector is a pure function of the engine's bar window, its
``RollingStatistics`` and the detector's settings, returning a
``DetectorOutput``.  Fewer bars than a detector needs is "no signal":
score 0 and every flag ``False``.  Zero-range bars never contribute.

Window arrays are oldest first, so offset ``k`` (``k`` bars ago) lives at
position ``-1 - k``.

Usage:
    from conviction_lib.analysis.ict import detect_absorption

    out = detect_absorption(series.window(40), stats, config.absorption)
    out.score, out.flags
"""

import logging

import numpy as np

from conviction_lib.analysis.rolling import RollingStatistics, clamp, safe_ratio
from conviction_lib.core.bars import BarWindow
from conviction_lib.core.config import (
    ABSORPTION,
    FAIR_VALUE_GAP,
    LIQUIDITY,
    LIQUIDITY_VOID,
    MANIPULATION,
    ORDER_BLOCK,
    STRUCTURE,
    AbsorptionSettings,
    GapSettings,
    LiquiditySettings,
    ManipulationSettings,
    OrderBlockSettings,
    StructureSettings,
)
from conviction_lib.core.models import DetectorOutput

logger = logging.getLogger("ict")

SWEEP_FLAGS = ("sweep_high", "sweep_low", "pool_confirmed")
GAP_FLAGS = ("bullish", "bearish")
STRUCTURE_FLAGS = ("bos_up", "bos_down", "choch", "choch_up", "choch_down")


def _at(arr: np.ndarray, offset: int) -> float:
    """Value ``offset`` bars before the current one."""
    return float(arr[-1 - offset])


# ---------------------------------------------------------------------------
# Absorption
# ---------------------------------------------------------------------------


def detect_absorption(
    window: BarWindow,
    stats: RollingStatistics,
    settings: AbsorptionSettings,
) -> DetectorOutput:
    """Score high-volume bars whose close was rejected against their direction.

    An up-bar that closes near its low on heavy volume is sell-side
    absorption (negative); a down-bar closing near its high is buy-side
    absorption (positive).  Near-doji bars on very heavy volume lean
    against whichever way their small body points.
    """
    n = settings.lookback
    if len(window) < n:
        return DetectorOutput.neutral(ABSORPTION)

    avg_vol = stats.volume_avg(n)
    if avg_vol <= 0:
        return DetectorOutput.neutral(ABSORPTION)

    opens = window.open[-n:]
    highs = window.high[-n:]
    lows = window.low[-n:]
    closes = window.close[-n:]
    vols = window.volume[-n:]

    score = 0.0
    hits = 0
    for o, h, lo, c, v in zip(opens, highs, lows, closes, vols):
        rng = h - lo
        if rng <= 0:
            continue
        ratio = v / avg_vol
        pos = (c - lo) / rng
        is_up = c > o
        is_down = c < o

        if ratio > settings.strong_ratio:
            close_pct, weight = settings.strong_close_pct, settings.strong_weight
        elif ratio > settings.sensitivity:
            close_pct, weight = settings.moderate_close_pct, settings.moderate_weight
        else:
            close_pct, weight = None, 0.0

        if close_pct is not None:
            if is_up and pos < close_pct:
                score -= ratio * weight
                hits += 1
            elif is_down and pos > 1.0 - close_pct:
                score += ratio * weight
                hits += 1

        body = abs(c - o)
        if body < settings.doji_body_pct * rng and ratio > settings.doji_ratio:
            score -= float(np.sign(c - o)) * ratio * settings.doji_weight

    score = clamp(score, -settings.clamp, settings.clamp)
    return DetectorOutput(ABSORPTION, score, {"bars": hits})


# ---------------------------------------------------------------------------
# Liquidity sweeps & pools
# ---------------------------------------------------------------------------


def _is_window_max(arr: np.ndarray, offset: int, length: int) -> bool:
    """True if the value at ``offset`` is the max of the ``length`` bars ending there."""
    end = len(arr) - offset
    return float(arr[end - 1]) >= float(np.max(arr[end - length : end]))


def _is_window_min(arr: np.ndarray, offset: int, length: int) -> bool:
    end = len(arr) - offset
    return float(arr[end - 1]) <= float(np.min(arr[end - length : end]))


def detect_liquidity(
    window: BarWindow,
    stats: RollingStatistics,
    settings: LiquiditySettings,
) -> DetectorOutput:
    """Failed sweeps of recent swing extremes plus confirmed liquidity pools.

    Sweep: one of the last ``sweep_lookback`` bars printed the extreme of
    its own ``sweep_lookback`` window on heavy volume and closed back
    against the break.  A failed high sweep is bearish, a failed low
    sweep bullish.

    Pool: a ``pool_lookback`` extreme with heavy volume whose close was
    rejected past its midpoint, confirmed when one of the following 1-3
    bars closes beyond the opposite side of its range.
    """
    if len(window) < settings.required_bars():
        return DetectorOutput.neutral(LIQUIDITY, *SWEEP_FLAGS)

    avg_vol = stats.volume_avg(settings.pool_lookback)
    if avg_vol <= 0:
        return DetectorOutput.neutral(LIQUIDITY, *SWEEP_FLAGS)

    o, h, lo, c, v = window
    score = 0.0
    flags = {f: False for f in SWEEP_FLAGS}

    s = settings.sweep_lookback
    for k in range(s):
        if _at(h, k) - _at(lo, k) <= 0:
            continue
        ratio = _at(v, k) / avg_vol
        if ratio <= settings.sensitivity:
            continue
        bar_open, bar_close = _at(o, k), _at(c, k)
        if _is_window_max(h, k, s) and bar_close < bar_open:
            score -= settings.sweep_weight * ratio
            flags["sweep_high"] = True
        if _is_window_min(lo, k, s) and bar_close > bar_open:
            score += settings.sweep_weight * ratio
            flags["sweep_low"] = True

    p = settings.pool_lookback
    for k in range(1, p):
        bar_high, bar_low = _at(h, k), _at(lo, k)
        rng = bar_high - bar_low
        if rng <= 0:
            continue
        ratio = _at(v, k) / avg_vol
        if ratio <= settings.sensitivity:
            continue
        mid = (bar_high + bar_low) / 2.0
        bar_close = _at(c, k)
        later = [_at(c, j) for j in range(k - 1, max(k - 1 - settings.confirm_bars, -1), -1)]

        if _is_window_max(h, k, p) and bar_close < mid:
            if any(x < bar_low for x in later):
                score -= settings.pool_weight * ratio
                flags["pool_confirmed"] = True
        if _is_window_min(lo, k, p) and bar_close > mid:
            if any(x > bar_high for x in later):
                score += settings.pool_weight * ratio
                flags["pool_confirmed"] = True

    return DetectorOutput(LIQUIDITY, clamp(score, -settings.clamp, settings.clamp), flags)


# ---------------------------------------------------------------------------
# Order blocks
# ---------------------------------------------------------------------------


def detect_order_blocks(
    window: BarWindow,
    stats: RollingStatistics,
    settings: OrderBlockSettings,
) -> DetectorOutput:
    """Heavy-volume opposing candles that the current close has just reclaimed."""
    n = settings.lookback
    if len(window) < settings.required_bars():
        return DetectorOutput.neutral(ORDER_BLOCK)

    avg_vol = stats.volume_avg(n)
    if avg_vol <= 0:
        return DetectorOutput.neutral(ORDER_BLOCK)

    o, h, lo, c, v = window
    close_now = _at(c, 0)
    score = 0.0
    blocks = 0

    for k in range(2, n + 1):
        bar_high, bar_low = _at(h, k), _at(lo, k)
        rng = bar_high - bar_low
        if rng <= 0:
            continue
        ratio = _at(v, k) / avg_vol
        if ratio < settings.min_volume_ratio:
            continue
        pos = (_at(c, k) - bar_low) / rng
        is_up = _at(c, k) > _at(o, k)
        is_down = _at(c, k) < _at(o, k)

        if is_down and pos < settings.close_pct:
            if bar_high < close_now < bar_high * (1.0 + settings.band_pct):
                score += ratio * settings.weight
                blocks += 1
        elif is_up and pos > 1.0 - settings.close_pct:
            if bar_low * (1.0 - settings.band_pct) < close_now < bar_low:
                score -= ratio * settings.weight
                blocks += 1

    score = clamp(score, -settings.clamp, settings.clamp)
    return DetectorOutput(ORDER_BLOCK, score, {"blocks": blocks})


# ---------------------------------------------------------------------------
# Gaps
# ---------------------------------------------------------------------------


def detect_fair_value_gap(
    window: BarWindow,
    stats: RollingStatistics,
    settings: GapSettings,
) -> DetectorOutput:
    """Three-candle imbalance still open at the current bar.

    Bullish when the current low is above the high two bars back and the
    close has not retraced into the gap (it stays above that high).  The
    middle candle only has to print the displacement; its wick does not
    matter.  The gap must exceed ``min_range_mult`` times the average bar
    range.  Score is the gap as a percentage of the current close.
    """
    if len(window) < settings.required_bars():
        return DetectorOutput.neutral(FAIR_VALUE_GAP, *GAP_FLAGS)

    _, h, lo, c, _ = window
    close_now = _at(c, 0)
    min_gap = settings.min_range_mult * stats.range_avg(settings.range_period)
    flags = {f: False for f in GAP_FLAGS}
    score = 0.0

    bull_gap = _at(lo, 0) - _at(h, 2)
    bear_gap = _at(lo, 2) - _at(h, 0)
    if bull_gap > 0 and bull_gap > min_gap and close_now > _at(h, 2):
        score = safe_ratio(bull_gap, close_now) * 100.0
        flags["bullish"] = True
    elif bear_gap > 0 and bear_gap > min_gap and close_now < _at(lo, 2):
        score = -safe_ratio(bear_gap, close_now) * 100.0
        flags["bearish"] = True

    return DetectorOutput(FAIR_VALUE_GAP, score, flags)


def detect_liquidity_void(
    window: BarWindow,
    stats: RollingStatistics,
    settings: GapSettings,
) -> DetectorOutput:
    """One-bar gap between the previous bar's range and the current one."""
    if len(window) < settings.required_bars():
        return DetectorOutput.neutral(LIQUIDITY_VOID, *GAP_FLAGS)

    _, h, lo, c, _ = window
    close_now = _at(c, 0)
    min_gap = settings.min_range_mult * stats.range_avg(settings.range_period)
    flags = {f: False for f in GAP_FLAGS}
    score = 0.0

    up_gap = _at(lo, 0) - _at(h, 1)
    down_gap = _at(lo, 1) - _at(h, 0)
    if up_gap > 0 and up_gap > min_gap:
        score = safe_ratio(up_gap, close_now) * 100.0
        flags["bullish"] = True
    elif down_gap > 0 and down_gap > min_gap:
        score = -safe_ratio(down_gap, close_now) * 100.0
        flags["bearish"] = True

    return DetectorOutput(LIQUIDITY_VOID, score, flags)


# ---------------------------------------------------------------------------
# Market structure
# ---------------------------------------------------------------------------


def detect_structure(
    window: BarWindow,
    stats: RollingStatistics,
    settings: StructureSettings,
) -> DetectorOutput:
    """Break of structure past the prior N-bar swing, with CHoCH tagging.

    The swing high/low cover the N bars before the current one; the older
    swing covers the N bars before those.  A bullish break of a swing high
    that was not above the older swing high (the market was printing lower
    highs) is a change of character rather than a continuation.
    """
    if len(window) < settings.required_bars():
        return DetectorOutput.neutral(STRUCTURE, *STRUCTURE_FLAGS)

    close_now = _at(window.close, 0)
    volume_now = _at(window.volume, 0)
    heavy = volume_now > stats.volume_avg(settings.volume_period)

    swing_high = stats.swing_high.value
    swing_low = stats.swing_low.value
    flags = {f: False for f in STRUCTURE_FLAGS}
    score = 0.0

    if heavy and close_now > swing_high:
        flags["bos_up"] = True
        flags["choch_up"] = bool(swing_high <= stats.prior_swing_high.value)
        score = settings.magnitude
    elif heavy and close_now < swing_low:
        flags["bos_down"] = True
        flags["choch_down"] = bool(swing_low >= stats.prior_swing_low.value)
        score = -settings.magnitude

    flags["choch"] = flags["choch_up"] or flags["choch_down"]
    if flags["choch"]:
        logger.debug("CHoCH at close %.4f (swing %.4f / %.4f)", close_now, swing_high, swing_low)
    return DetectorOutput(STRUCTURE, score, flags)


# ---------------------------------------------------------------------------
# Manipulation
# ---------------------------------------------------------------------------


def _trailing(arr: np.ndarray, offset: int, length: int) -> np.ndarray:
    """The ``length`` values ending at ``offset`` bars ago."""
    end = len(arr) - offset
    return arr[end - length : end]


def detect_manipulation(
    window: BarWindow,
    stats: RollingStatistics,
    settings: ManipulationSettings,
) -> DetectorOutput:
    """Order-filling and stop-hunt footprints over the previous ``lookback`` bars.

    Fill: heavy volume on a bar narrower than ``fill_range_mult`` times
    the recent average range, closing mid-range, adds ``fill_weight`` per
    unit of volume ratio.  Fills are unsigned and always add.

    Stop hunt: heavy volume on a bar printing at the ``lookback`` extreme
    (within ``extreme_pct``) that closed back against the push.  A down
    bar at the highs subtracts ``hunt_weight`` per unit of volume ratio,
    an up bar at the lows adds it.
    """
    n = settings.lookback
    if len(window) < settings.required_bars():
        return DetectorOutput(MANIPULATION, 0.0, {"fills": 0, "hunts_high": 0, "hunts_low": 0})

    avg_vol = stats.volume_avg(settings.volume_period)
    ranges = window.high - window.low

    score = 0.0
    fills = hunts_high = hunts_low = 0
    for k in range(1, n + 1):
        h, lo = _at(window.high, k), _at(window.low, k)
        rng = h - lo
        if rng <= 0:
            continue
        o, c = _at(window.open, k), _at(window.close, k)
        ratio = safe_ratio(_at(window.volume, k), avg_vol)
        pos = (c - lo) / rng

        avg_range = float(np.mean(_trailing(ranges, k, settings.range_period)))
        if (
            ratio > settings.fill_ratio
            and rng < avg_range * settings.fill_range_mult
            and settings.fill_close_low < pos < settings.fill_close_high
        ):
            score += ratio * settings.fill_weight
            fills += 1

        if ratio > settings.hunt_ratio:
            at_highs = h > float(np.max(_trailing(window.high, k, n))) * (1.0 - settings.extreme_pct)
            at_lows = lo < float(np.min(_trailing(window.low, k, n))) * (1.0 + settings.extreme_pct)
            if at_highs and c < o:
                score -= ratio * settings.hunt_weight
                hunts_high += 1
            if at_lows and c > o:
                score += ratio * settings.hunt_weight
                hunts_low += 1

    score = clamp(score, -settings.clamp, settings.clamp)
    return DetectorOutput(
        MANIPULATION,
        score,
        {"fills": fills, "hunts_high": hunts_high, "hunts_low": hunts_low},
    )
