"""
Volume-at-price detectors.

  - Volume cluster: how much of the recent volume traded in the price bin
    holding the current close, signed by how bars in that bin closed
  - VWAP deviation: distance of the close from the rolling VWAP
  - VPOC proximity: price sitting on the volume point of control, signed
    by which side of the volume-weighted average price (VPAR) it is on

Price bins have a fixed width of ``cluster_pct`` percent of the first
close the engine ever saw, so bin boundaries never move as the window
rolls forward.

Usage:
    from conviction_lib.analysis.volume_profile import detect_volume_cluster

    out = detect_volume_cluster(window, stats, config.volume_cluster)
    out.flags["concentration"]
"""

import logging
from typing import Optional

import numpy as np

from conviction_lib.analysis.rolling import RollingStatistics, clamp, safe_ratio
from conviction_lib.core.bars import BarWindow
from conviction_lib.core.config import (
    VOLUME_CLUSTER,
    VPOC,
    VWAP,
    VolumeClusterSettings,
    VpocSettings,
    VwapSettings,
)
from conviction_lib.core.models import DetectorOutput

logger = logging.getLogger("volume_profile")


def price_bins(closes: np.ndarray, reference: Optional[float], pct: float) -> Optional[np.ndarray]:
    """Fixed-width bin index of each close, or ``None`` if the width is 0."""
    if reference is None:
        return None
    width = reference * pct / 100.0
    if width <= 0:
        return None
    return np.floor(closes / width).astype(np.int64)


def detect_volume_cluster(
    window: BarWindow,
    stats: RollingStatistics,
    settings: VolumeClusterSettings,
) -> DetectorOutput:
    """Concentration of volume in the current close's price bin.

    The bin must hold at least ``min_volume_multiple`` times the average
    bar volume.  Its share of the window's volume becomes the score,
    positive when most of the previous ``recent_bars`` bars in the bin
    closed high in their range, negative when most closed low, and 0 on
    a tie.
    """
    n = settings.required_bars()
    if len(window) < n:
        return DetectorOutput(VOLUME_CLUSTER, 0.0, {"concentration": 0.0})

    closes = window.close[-n:]
    vols = window.volume[-n:]
    bins = price_bins(closes, stats.first_close, settings.cluster_pct)
    if bins is None:
        return DetectorOutput(VOLUME_CLUSTER, 0.0, {"concentration": 0.0})

    current_bin = bins[-1]
    in_bin = bins == current_bin
    cluster_volume = float(vols[in_bin].sum())
    threshold = settings.min_volume_multiple * stats.volume_avg(settings.lookback)
    if cluster_volume <= 0 or cluster_volume < threshold:
        return DetectorOutput(VOLUME_CLUSTER, 0.0, {"concentration": 0.0})

    concentration = safe_ratio(cluster_volume, float(vols.sum()))

    highs = window.high[-n:]
    lows = window.low[-n:]
    bull = bear = 0
    for k in range(1, min(settings.recent_bars, n - 1) + 1):
        i = n - 1 - k
        if bins[i] != current_bin or vols[i] <= 0:
            continue
        rng = highs[i] - lows[i]
        if rng <= 0:
            continue
        pos = (closes[i] - lows[i]) / rng
        if pos > settings.upper_close_pct:
            bull += 1
        elif pos < settings.lower_close_pct:
            bear += 1

    if bull > bear:
        score = concentration * 100.0
    elif bear > bull:
        score = -concentration * 100.0
    else:
        score = 0.0

    return DetectorOutput(
        VOLUME_CLUSTER,
        clamp(score, -100.0, 100.0),
        {"concentration": concentration, "bull_votes": bull, "bear_votes": bear},
    )


def detect_vwap(
    window: BarWindow,
    stats: RollingStatistics,
    settings: VwapSettings,
) -> DetectorOutput:
    """Percent deviation of the close from the rolling VWAP of typical price."""
    if len(window) < settings.required_bars():
        return DetectorOutput(VWAP, 0.0, {"vwap": 0.0})

    vwap = stats.vwap
    if vwap <= 0:
        return DetectorOutput(VWAP, 0.0, {"vwap": 0.0})

    deviation = (float(window.close[-1]) - vwap) / vwap * 100.0
    return DetectorOutput(VWAP, clamp(deviation, -100.0, 100.0), {"vwap": vwap})


def detect_vpoc(
    window: BarWindow,
    stats: RollingStatistics,
    settings: VpocSettings,
) -> DetectorOutput:
    """Fixed-magnitude score while the close sits on the volume point of control.

    The VPOC is the typical price of the heaviest bar over the last
    ``period`` bars (the most recent one wins a tie); the VPAR is the
    volume-weighted typical price over the same bars.  Within
    ``proximity`` of the VPOC the score is ``+magnitude`` when the close
    is above the VPAR, ``-magnitude`` below it, and 0 on it.
    """
    n = settings.period
    empty = {"vpoc": 0.0, "vpar": 0.0, "at_vpoc": False}
    if len(window) < n:
        return DetectorOutput(VPOC, 0.0, empty)

    typical = (window.high[-n:] + window.low[-n:] + window.close[-n:]) / 3.0
    vols = window.volume[-n:]
    total = float(vols.sum())
    if total <= 0:
        return DetectorOutput(VPOC, 0.0, empty)

    heaviest = n - 1 - int(np.argmax(vols[::-1]))
    vpoc = float(typical[heaviest])
    vpar = float(np.dot(typical, vols)) / total

    close = float(window.close[-1])
    at_vpoc = safe_ratio(abs(close - vpoc), close) < settings.proximity
    score = float(np.sign(close - vpar)) * settings.magnitude if at_vpoc else 0.0
    return DetectorOutput(VPOC, score, {"vpoc": vpoc, "vpar": vpar, "at_vpoc": bool(at_vpoc)})
