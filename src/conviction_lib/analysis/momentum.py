"""
Momentum oscillator factors: RSI zones and MACD histogram.

Both read oscillators that ``RollingStatistics`` keeps up to date bar by
bar; nothing here scans history.

RSI scores by zone:
  - below ``buy_below`` (oversold side)   -> +100
  - above ``sell_above``                   -> -100
  - below / above the 50 midline          -> ±50
  - exactly 50 (including a flat market)  -> 0

The MACD histogram is expressed relative to the close so the score does
not depend on the instrument's price level: ``scale`` raw points per 1 %
of price.

Usage:
    from conviction_lib.analysis.momentum import score_rsi, score_macd

    out = score_rsi(stats, config.rsi)
    out.flags["rsi"]
"""

from conviction_lib.analysis.rolling import RollingStatistics, clamp, safe_ratio
from conviction_lib.core.config import MACD, RSI, MacdSettings, RsiSettings
from conviction_lib.core.models import DetectorOutput

ZONE_SCORE = 100.0
MIDLINE_SCORE = 50.0
RSI_MIDLINE = 50.0


def score_rsi(stats: RollingStatistics, settings: RsiSettings) -> DetectorOutput:
    """Zone score of the current RSI reading (0 until the RSI is ready)."""
    rsi = stats.rsi
    if not rsi.ready:
        return DetectorOutput(RSI, 0.0, {"rsi": RSI_MIDLINE})

    value = rsi.value
    if value < settings.buy_below:
        score = ZONE_SCORE
    elif value > settings.sell_above:
        score = -ZONE_SCORE
    elif value < RSI_MIDLINE:
        score = MIDLINE_SCORE
    elif value > RSI_MIDLINE:
        score = -MIDLINE_SCORE
    else:
        score = 0.0
    return DetectorOutput(RSI, score, {"rsi": value})


def score_macd(
    stats: RollingStatistics,
    settings: MacdSettings,
    close: float,
) -> DetectorOutput:
    """Histogram as a percentage of *close*, times ``scale``, clamped to ±100."""
    macd = stats.macd
    hist = macd.histogram
    pct = safe_ratio(hist, close) * 100.0
    score = clamp(pct * settings.scale, -100.0, 100.0) if macd.ready else 0.0
    return DetectorOutput(
        MACD,
        score,
        {"histogram": hist, "line": macd.line, "signal": macd.signal},
    )
