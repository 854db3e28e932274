"""
conviction_lib.analysis — Rolling statistics, detectors, trend band and scoring.

Re-exports the public API from each sub-module so callers can do:

    from conviction_lib.analysis import detect_absorption, CompositeScorer
"""

from conviction_lib.analysis.confluence import (
    SignalGenerator,
    TrendState,
    count_votes,
    ema_alignment,
)
from conviction_lib.analysis.cvd import detect_delta, detect_divergence, window_deltas
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
from conviction_lib.analysis.rolling import (
    AverageTrueRange,
    ExponentialMovingAverage,
    MovingAverageConvergence,
    RelativeStrengthIndex,
    RollingExtremum,
    RollingStatistics,
    SimpleMovingAverage,
)
from conviction_lib.analysis.scorer import CompositeScorer
from conviction_lib.analysis.supertrend import TrendBandTracker
from conviction_lib.analysis.volume_profile import detect_volume_cluster, detect_vpoc, detect_vwap

__all__ = [
    # confluence
    "SignalGenerator",
    "TrendState",
    "count_votes",
    "ema_alignment",
    # cvd
    "detect_delta",
    "detect_divergence",
    "window_deltas",
    # ict
    "detect_absorption",
    "detect_fair_value_gap",
    "detect_liquidity",
    "detect_liquidity_void",
    "detect_manipulation",
    "detect_order_blocks",
    "detect_structure",
    # momentum
    "score_macd",
    "score_rsi",
    # rolling
    "AverageTrueRange",
    "ExponentialMovingAverage",
    "MovingAverageConvergence",
    "RelativeStrengthIndex",
    "RollingExtremum",
    "RollingStatistics",
    "SimpleMovingAverage",
    # scorer
    "CompositeScorer",
    # supertrend
    "TrendBandTracker",
    # volume_profile
    "detect_volume_cluster",
    "detect_vpoc",
    "detect_vwap",
]
