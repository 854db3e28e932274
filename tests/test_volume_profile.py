"""
Unit tests for the volume-at-price detectors.

Tests cover:
  - price_bins(): fixed width from the reference close
  - detect_volume_cluster(): bullish / bearish vote, tie, threshold, history
  - detect_vwap(): flat series, deviation sign
  - detect_vpoc(): VPOC proximity signed by VPAR, most recent heavy bar wins
"""

import numpy as np
import pytest
from conftest import feed, flat_bars, quiet_bars

from conviction_lib.analysis.volume_profile import (
    detect_volume_cluster,
    detect_vpoc,
    detect_vwap,
    price_bins,
)
from conviction_lib.core.bars import Bar
from conviction_lib.core.config import get_preset

CFG = get_preset("default")


def _run(detector, settings, bars, config=CFG):
    series, stats = feed(bars, config)
    return detector(series.window(64), stats, settings)


def _closing_high(n: int) -> list[Bar]:
    return [Bar(99.8, 100.2, 99.6, 100.1, 1000) for _ in range(n)]


def _closing_low(n: int) -> list[Bar]:
    return [Bar(100.0, 100.2, 99.6, 99.7, 1000) for _ in range(n)]


# ═══════════════════════════════════════════════════════════════════════════
# price_bins
# ═══════════════════════════════════════════════════════════════════════════


class TestPriceBins:
    def test_fixed_width(self):
        bins = price_bins(np.array([100.0, 100.4, 100.6, 99.9]), 100.0, 0.5)
        np.testing.assert_array_equal(bins, [200, 200, 201, 199])

    def test_no_reference(self):
        assert price_bins(np.array([1.0]), None, 0.5) is None

    def test_zero_reference(self):
        assert price_bins(np.array([1.0]), 0.0, 0.5) is None


# ═══════════════════════════════════════════════════════════════════════════
# detect_volume_cluster
# ═══════════════════════════════════════════════════════════════════════════


class TestVolumeCluster:
    def test_bullish_cluster(self):
        out = _run(detect_volume_cluster, CFG.volume_cluster, _closing_high(31))
        assert out.flags["concentration"] == pytest.approx(1.0)
        assert out.score == pytest.approx(100.0)

    def test_bearish_cluster(self):
        out = _run(detect_volume_cluster, CFG.volume_cluster, _closing_low(31))
        assert out.score == pytest.approx(-100.0)

    def test_tie_is_zero(self):
        # flat bars have zero range, so no bar votes
        out = _run(detect_volume_cluster, CFG.volume_cluster, flat_bars(40))
        assert out.score == 0.0

    def test_split_concentration(self):
        # 16 bars far below, then 15 bars in the current bin
        low_bars = [Bar(90.0, 90.2, 89.6, 90.1, 1000) for _ in range(16)]
        out = _run(detect_volume_cluster, CFG.volume_cluster, low_bars + _closing_high(15))
        assert out.flags["concentration"] == pytest.approx(15 / 31)
        assert out.score == pytest.approx(15 / 31 * 100)

    def test_below_volume_threshold(self):
        cfg = get_preset("default", volume_cluster={"min_volume_multiple": 40.0})
        out = _run(detect_volume_cluster, cfg.volume_cluster, _closing_high(31), cfg)
        assert out.score == 0.0

    def test_insufficient_history(self):
        out = _run(detect_volume_cluster, CFG.volume_cluster, _closing_high(30))
        assert out.score == 0.0


# ═══════════════════════════════════════════════════════════════════════════
# detect_vwap
# ═══════════════════════════════════════════════════════════════════════════


class TestVwap:
    def test_flat_is_zero(self):
        out = _run(detect_vwap, CFG.vwap, flat_bars(25))
        assert out.score == pytest.approx(0.0)

    def test_close_above_vwap_positive(self):
        bars = quiet_bars(19) + [Bar(101.0, 103.0, 100.8, 102.8, 1000)]
        out = _run(detect_vwap, CFG.vwap, bars)
        assert out.score > 0
        assert out.flags["vwap"] < 102.8

    def test_zero_volume_is_zero(self):
        out = _run(detect_vwap, CFG.vwap, flat_bars(25, volume=0.0))
        assert out.score == 0.0


# ═══════════════════════════════════════════════════════════════════════════
# VPOC proximity
# ═══════════════════════════════════════════════════════════════════════════

APEX = get_preset("apex_liquidity_pro")


def _vpoc(bars):
    return _run(detect_vpoc, APEX.vpoc, bars, APEX)


class TestVpoc:
    def test_heavy_bar_above_vpar_is_bullish(self):
        heavy = Bar(100.4, 100.6, 100.0, 100.5, 5000)
        out = _vpoc(quiet_bars(19) + [heavy])
        assert out.flags["vpoc"] == pytest.approx((100.6 + 100.0 + 100.5) / 3)
        assert out.flags["at_vpoc"] is True
        assert out.flags["vpar"] < 100.5
        assert out.score == 100.0

    def test_heavy_bar_below_vpar_is_bearish(self):
        heavy = Bar(99.6, 100.0, 99.4, 99.5, 5000)
        out = _vpoc(quiet_bars(19) + [heavy])
        assert out.flags["at_vpoc"] is True
        assert out.score == -100.0

    def test_far_from_vpoc_is_zero(self):
        heavy = Bar(99.9, 100.5, 99.5, 100.1, 5000)
        out = _vpoc(quiet_bars(5) + [heavy] + quiet_bars(14, price=101.0))
        assert out.flags["vpoc"] == pytest.approx((100.5 + 99.5 + 100.1) / 3)
        assert out.flags["at_vpoc"] is False
        assert out.score == 0.0

    def test_tie_goes_to_most_recent_bar(self):
        older = Bar(99.9, 100.5, 99.5, 100.1, 3000)
        newer = Bar(100.9, 101.5, 100.5, 101.1, 3000)
        out = _vpoc(quiet_bars(18) + [older, newer])
        assert out.flags["vpoc"] == pytest.approx((101.5 + 100.5 + 101.1) / 3)

    def test_flat_market_and_short_history(self):
        assert _vpoc(flat_bars(25)).score == 0.0
        out = _vpoc(quiet_bars(19))
        assert out.score == 0.0
        assert out.flags["at_vpoc"] is False
