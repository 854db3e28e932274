"""
Engine configuration and named presets.

``EngineConfig`` is a frozen pydantic model: every numeric option carries
a default and a ``Field`` constraint, so a bad configuration fails loudly
at construction with a ``pydantic.ValidationError`` instead of producing
silent garbage bar after bar.

Which factors take part in scoring is decided by ``weights``: a factor is
enabled when it has a weight entry, and the caps of all enabled factors
must add up to 100.

Each named preset reproduces one member of the indicator family
(``sentinel_pro``, ``apex_liquidity_pro``, ...) as plain configuration;
there is no per-preset code path.

Usage:
    from conviction_lib.core.config import EngineConfig, get_preset, load_config

    cfg = get_preset("sentinel_pro")
    cfg = get_preset("default", signal={"min_confluence": 4})
    cfg = load_config()        # honours CONVICTION_PRESET
"""

import logging
import os
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger("config")

# ---------------------------------------------------------------------------
# Factor names
# ---------------------------------------------------------------------------

EMA_TREND = "ema_trend"
TREND_BAND = "trend_band"
ABSORPTION = "absorption"
LIQUIDITY = "liquidity"
ORDER_BLOCK = "order_block"
FAIR_VALUE_GAP = "fair_value_gap"
STRUCTURE = "structure"
DIVERGENCE = "divergence"
VOLUME_CLUSTER = "volume_cluster"
DELTA = "delta"
LIQUIDITY_VOID = "liquidity_void"
VWAP = "vwap"
VPOC = "vpoc"
MANIPULATION = "manipulation"
RSI = "rsi"
MACD = "macd"
CONFLUENCE = "confluence"

# Pattern detectors (run by the detector registry)
DETECTOR_NAMES = (
    ABSORPTION,
    LIQUIDITY,
    ORDER_BLOCK,
    FAIR_VALUE_GAP,
    STRUCTURE,
    DIVERGENCE,
    VOLUME_CLUSTER,
    DELTA,
    LIQUIDITY_VOID,
    VWAP,
    VPOC,
    MANIPULATION,
)

# Trend-state factors (computed from rolling EMAs and the band tracker)
TREND_FACTORS = (EMA_TREND, TREND_BAND)

# Oscillators kept incrementally by RollingStatistics
MOMENTUM_FACTORS = (RSI, MACD)

# Buy votes minus sell votes of every other factor
META_FACTORS = (CONFLUENCE,)

FACTOR_NAMES = TREND_FACTORS + MOMENTUM_FACTORS + DETECTOR_NAMES + META_FACTORS

DEFAULT_PRESET_ENV = "CONVICTION_PRESET"


class _Settings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ---------------------------------------------------------------------------
# Per-detector settings
# ---------------------------------------------------------------------------


class AbsorptionSettings(_Settings):
    lookback: int = Field(15, ge=1, description="Bars scanned, current included")
    sensitivity: float = Field(1.8, ge=0, description="Moderate-tier volume ratio")
    strong_ratio: float = Field(2.5, ge=0)
    strong_close_pct: float = Field(0.25, ge=0, le=0.5)
    moderate_close_pct: float = Field(0.35, ge=0, le=0.5)
    strong_weight: float = Field(15.0, ge=0)
    moderate_weight: float = Field(8.0, ge=0)
    doji_body_pct: float = Field(0.10, ge=0, le=1)
    doji_ratio: float = Field(2.0, ge=0)
    doji_weight: float = Field(6.0, ge=0)
    clamp: float = Field(150.0, gt=0)

    def required_bars(self) -> int:
        return self.lookback


class LiquiditySettings(_Settings):
    sweep_lookback: int = Field(5, ge=2)
    pool_lookback: int = Field(12, ge=2)
    sensitivity: float = Field(2.0, ge=0, description="Volume ratio for a sweep")
    sweep_weight: float = Field(15.0, ge=0)
    pool_weight: float = Field(20.0, ge=0)
    confirm_bars: int = Field(3, ge=1, le=10)
    clamp: float = Field(100.0, gt=0)

    def required_bars(self) -> int:
        return max(2 * self.sweep_lookback - 1, 2 * self.pool_lookback - 1)


class OrderBlockSettings(_Settings):
    lookback: int = Field(10, ge=2)
    min_volume_ratio: float = Field(1.8, ge=0)
    close_pct: float = Field(0.35, ge=0, le=0.5)
    band_pct: float = Field(0.03, gt=0)
    weight: float = Field(12.0, ge=0)
    clamp: float = Field(100.0, gt=0)

    def required_bars(self) -> int:
        return self.lookback + 1


class GapSettings(_Settings):
    range_period: int = Field(10, ge=1)
    min_range_mult: float = Field(0.5, ge=0)

    def required_bars(self) -> int:
        return max(3, self.range_period)


class StructureSettings(_Settings):
    period: int = Field(10, ge=1)
    volume_period: int = Field(10, ge=1)
    magnitude: float = Field(50.0, ge=0)

    def required_bars(self) -> int:
        return 2 * self.period + 1


class DivergenceSettings(_Settings):
    period: int = Field(20, ge=1)
    min_price_change: float = Field(0.001, ge=0, description="Fractional move")
    min_delta: float = Field(0.1, ge=0, description="Delta / volume over period")
    magnitude: float = Field(25.0, ge=0)

    def required_bars(self) -> int:
        return self.period + 1


class VolumeClusterSettings(_Settings):
    lookback: int = Field(30, ge=1)
    cluster_pct: float = Field(0.5, gt=0, description="Bin width, % of first close")
    min_volume_multiple: float = Field(2.0, ge=0)
    recent_bars: int = Field(5, ge=1)
    upper_close_pct: float = Field(0.6, ge=0.5, le=1)
    lower_close_pct: float = Field(0.4, ge=0, le=0.5)

    def required_bars(self) -> int:
        return self.lookback + 1


class DeltaSettings(_Settings):
    """Volume ratio above ``aggression`` multiplies the delta by
    ``aggressive_amp``; above ``strong_ratio`` by ``strong_amp``."""

    period: int = Field(20, ge=1)
    aggression: float = Field(1.8, ge=0)
    strong_ratio: float = Field(2.34, ge=0)
    aggressive_amp: float = Field(1.3, ge=0)
    strong_amp: float = Field(1.6, ge=0)
    scale: float = Field(50.0, gt=0)

    @model_validator(mode="after")
    def _check_tiers(self) -> "DeltaSettings":
        if self.strong_ratio < self.aggression:
            raise ValueError("strong_ratio must not be below aggression")
        return self

    def required_bars(self) -> int:
        return 1


class VwapSettings(_Settings):
    period: int = Field(20, ge=1)

    def required_bars(self) -> int:
        return self.period


class VpocSettings(_Settings):
    period: int = Field(20, ge=1)
    proximity: float = Field(0.002, ge=0, description="Fractional distance to the VPOC")
    magnitude: float = Field(100.0, ge=0)

    def required_bars(self) -> int:
        return self.period


class ManipulationSettings(_Settings):
    lookback: int = Field(12, ge=1, description="Past bars scanned, current excluded")
    volume_period: int = Field(10, ge=1)
    range_period: int = Field(5, ge=1)
    fill_ratio: float = Field(2.5, ge=0)
    fill_range_mult: float = Field(0.7, ge=0)
    fill_close_low: float = Field(0.4, ge=0, le=0.5)
    fill_close_high: float = Field(0.6, ge=0.5, le=1)
    fill_weight: float = Field(3.0, ge=0)
    hunt_ratio: float = Field(2.0, ge=0)
    extreme_pct: float = Field(0.01, ge=0, lt=1)
    hunt_weight: float = Field(5.0, ge=0)
    clamp: float = Field(100.0, gt=0)

    def required_bars(self) -> int:
        return self.lookback + max(self.lookback, self.range_period)


class RsiSettings(_Settings):
    period: int = Field(14, ge=1)
    buy_below: float = Field(40.0, ge=0, le=50)
    sell_above: float = Field(60.0, ge=50, le=100)

    def required_bars(self) -> int:
        return self.period + 1


class MacdSettings(_Settings):
    fast: int = Field(12, ge=1)
    slow: int = Field(26, ge=1)
    signal: int = Field(9, ge=1)
    scale: float = Field(100.0, gt=0, description="Raw points per 1% histogram")

    @model_validator(mode="after")
    def _check_order(self) -> "MacdSettings":
        if self.fast >= self.slow:
            raise ValueError("MACD periods must satisfy fast < slow")
        return self

    def required_bars(self) -> int:
        return self.slow + self.signal - 1


# ---------------------------------------------------------------------------
# Trend, scoring and signal settings
# ---------------------------------------------------------------------------


class TrendSettings(_Settings):
    ema_fast: int = Field(8, ge=1)
    ema_mid: int = Field(21, ge=1)
    ema_slow: int = Field(55, ge=1)
    band_period: int = Field(10, ge=1)
    band_multiplier: float = Field(2.0, gt=0)
    adaptive: bool = True
    high_vol_ratio: float = Field(1.2, gt=0)
    low_vol_ratio: float = Field(0.8, gt=0)
    widen: float = Field(1.1, gt=0)
    tighten: float = Field(0.9, gt=0)

    @model_validator(mode="after")
    def _check_order(self) -> "TrendSettings":
        if not self.ema_fast < self.ema_mid < self.ema_slow:
            raise ValueError("EMA periods must satisfy fast < mid < slow")
        if self.low_vol_ratio > self.high_vol_ratio:
            raise ValueError("low_vol_ratio must not exceed high_vol_ratio")
        return self


class FactorWeight(_Settings):
    """Score allocation for one factor: ``clamp(raw / norm, -cap, cap)``."""

    cap: float = Field(..., ge=0, le=100)
    norm: float = Field(..., gt=0)


class TrendFilter(str, Enum):
    """Which trend state must agree before a signal may fire."""

    BAND = "band"
    EMA = "ema"
    BOTH = "both"
    EITHER = "either"
    FLIP = "flip"  # band direction plus a fresh flip on the previous bar


class SignalSettings(_Settings):
    min_confluence: int = Field(3, ge=0)
    volume_period: int = Field(14, ge=1)
    volume_threshold: float = Field(1.6, ge=0)
    trend_filter: TrendFilter = TrendFilter.BAND
    triggers: tuple[str, ...] = (LIQUIDITY, ORDER_BLOCK, STRUCTURE)


def _w(cap: float, norm: float) -> FactorWeight:
    return FactorWeight(cap=cap, norm=norm)


DEFAULT_WEIGHTS: dict[str, FactorWeight] = {
    EMA_TREND: _w(15, 100 / 15),
    TREND_BAND: _w(5, 20),
    ABSORPTION: _w(20, 6),
    LIQUIDITY: _w(10, 8),
    ORDER_BLOCK: _w(10, 6),
    FAIR_VALUE_GAP: _w(5, 1),
    STRUCTURE: _w(10, 4),
    DIVERGENCE: _w(5, 5),
    VOLUME_CLUSTER: _w(5, 10),
    DELTA: _w(10, 5),
    VWAP: _w(5, 1 / 3),
}


class EngineConfig(_Settings):
    """Complete, immutable configuration of one engine instance."""

    name: str = "default"
    absorption: AbsorptionSettings = AbsorptionSettings()
    liquidity: LiquiditySettings = LiquiditySettings()
    order_block: OrderBlockSettings = OrderBlockSettings()
    fair_value_gap: GapSettings = GapSettings()
    structure: StructureSettings = StructureSettings()
    divergence: DivergenceSettings = DivergenceSettings()
    volume_cluster: VolumeClusterSettings = VolumeClusterSettings()
    delta: DeltaSettings = DeltaSettings()
    liquidity_void: GapSettings = GapSettings()
    vwap: VwapSettings = VwapSettings()
    vpoc: VpocSettings = VpocSettings()
    manipulation: ManipulationSettings = ManipulationSettings()
    rsi: RsiSettings = RsiSettings()
    macd: MacdSettings = MacdSettings()
    trend: TrendSettings = TrendSettings()
    signal: SignalSettings = SignalSettings()
    weights: dict[str, FactorWeight] = Field(
        default_factory=lambda: dict(DEFAULT_WEIGHTS)
    )
    history_margin: int = Field(16, ge=0)

    @model_validator(mode="after")
    def _check_weights(self) -> "EngineConfig":
        unknown = set(self.weights) - set(FACTOR_NAMES)
        if unknown:
            raise ValueError(f"unknown factors in weights: {sorted(unknown)}")
        if not self.weights:
            raise ValueError("at least one factor must be enabled")
        total = sum(w.cap for w in self.weights.values())
        if abs(total - 100.0) > 1e-6:
            raise ValueError(f"factor caps must sum to 100, got {total:g}")
        bad_triggers = set(self.signal.triggers) - set(self.weights)
        if bad_triggers:
            raise ValueError(f"trigger detectors not enabled: {sorted(bad_triggers)}")
        return self

    # -- derived -----------------------------------------------------------

    @property
    def enabled(self) -> frozenset[str]:
        return frozenset(self.weights)

    @property
    def enabled_detectors(self) -> tuple[str, ...]:
        return tuple(n for n in DETECTOR_NAMES if n in self.weights)

    def detector_settings(self, name: str) -> _Settings:
        return getattr(self, name)

    def required_bars(self, name: str) -> int:
        """Bars of history a factor needs before it may report anything."""
        if name == EMA_TREND:
            return self.trend.ema_slow
        if name == TREND_BAND:
            return self.trend.band_period
        if name == CONFLUENCE:
            return 1
        return self.detector_settings(name).required_bars()

    @property
    def warmup_bars(self) -> int:
        """No signal is emitted before this many bars have been processed."""
        needs = [self.required_bars(n) for n in self.weights]
        needs.append(self.signal.volume_period)
        return max(needs)

    @property
    def history_capacity(self) -> int:
        """Ring-buffer size: the longest detector window plus a margin."""
        windows = [
            self.detector_settings(n).required_bars()
            for n in DETECTOR_NAMES
            if n in self.weights
        ]
        return max(windows + [3]) + self.history_margin


# ---------------------------------------------------------------------------
# Named presets, one per indicator variant
# ---------------------------------------------------------------------------

PRESETS: dict[str, dict[str, Any]] = {
    "default": {},
    "elite_momentum_pro": {
        "structure": {"period": 10},
        "liquidity": {"sensitivity": 1.8},
        "trend": {
            "high_vol_ratio": 1.3,
            "low_vol_ratio": 0.7,
            "widen": 1.15,
            "tighten": 0.85,
        },
        "signal": {
            "min_confluence": 3,
            "volume_threshold": 1.6,
            "triggers": (STRUCTURE, LIQUIDITY, ORDER_BLOCK),
        },
        "weights": {
            EMA_TREND: _w(15, 100 / 15),
            DELTA: _w(15, 5),
            ABSORPTION: _w(20, 6),
            LIQUIDITY: _w(10, 8),
            ORDER_BLOCK: _w(10, 6),
            FAIR_VALUE_GAP: _w(5, 1),
            STRUCTURE: _w(10, 4),
            VWAP: _w(5, 1 / 3),
            CONFLUENCE: _w(10, 0.5),
        },
    },
    "institutional_flow_alpha": {
        "absorption": {"lookback": 15, "doji_weight": 10.0},
        "liquidity": {"pool_lookback": 10, "pool_weight": 30.0},
        "trend": {"ema_fast": 8, "ema_mid": 21, "ema_slow": 55},
        "rsi": {"period": 14, "buy_below": 40.0, "sell_above": 60.0},
        "macd": {"fast": 12, "slow": 26, "signal": 9},
        "signal": {
            "min_confluence": 2,
            "volume_threshold": 1.6,
            "trend_filter": TrendFilter.BOTH,
            "triggers": (ABSORPTION, LIQUIDITY),
        },
        # liquidity traps only trigger and vote; they carry no score
        "weights": {
            EMA_TREND: _w(30, 100 / 30),
            DELTA: _w(25, 2),
            ABSORPTION: _w(30, 5),
            RSI: _w(10, 10),
            MACD: _w(5, 1),
            LIQUIDITY: _w(0, 5),
        },
    },
    "apex_liquidity_pro": {
        "liquidity": {"pool_lookback": 12, "sensitivity": 2.0},
        "order_block": {"lookback": 12, "band_pct": 0.03},
        "delta": {"aggressive_amp": 1.0, "strong_amp": 1.0},
        "vpoc": {"period": 20, "proximity": 0.002},
        "manipulation": {"lookback": 12},
        "trend": {
            "ema_fast": 9,
            "ema_mid": 21,
            "ema_slow": 50,
            "band_multiplier": 2.5,
            "adaptive": False,
        },
        "signal": {
            "min_confluence": 3,
            "volume_threshold": 1.44,
            "triggers": (LIQUIDITY,),
        },
        # manipulation is reported and votes but carries no score
        "weights": {
            EMA_TREND: _w(20, 5),
            DELTA: _w(15, 3),
            LIQUIDITY: _w(35, 5),
            ORDER_BLOCK: _w(10, 5),
            FAIR_VALUE_GAP: _w(10, 1),
            VPOC: _w(10, 10),
            MANIPULATION: _w(0, 1),
        },
    },
    "sentinel_pro": {
        "absorption": {"lookback": 8, "sensitivity": 2.0},
        "structure": {"period": 8},
        "delta": {
            "aggression": 1.5,
            "strong_ratio": 2.0,
            "aggressive_amp": 1.25,
            "strong_amp": 1.5,
        },
        "trend": {"ema_fast": 8, "ema_mid": 21, "ema_slow": 55, "adaptive": False},
        "signal": {
            "min_confluence": 3,
            "volume_threshold": 1.7,
            "trend_filter": TrendFilter.BOTH,
            "triggers": (STRUCTURE,),
        },
        "weights": {
            EMA_TREND: _w(20, 5),
            DELTA: _w(15, 4),
            ABSORPTION: _w(20, 6),
            STRUCTURE: _w(20, 2.5),
            LIQUIDITY_VOID: _w(10, 1),
            DIVERGENCE: _w(5, 5),
            TREND_BAND: _w(10, 10),
        },
    },
    "quantum_delta_pro": {
        "order_block": {"lookback": 10, "band_pct": 0.02, "weight": 10.0},
        "structure": {"period": 5},
        "delta": {
            "aggression": 1.5,
            "strong_ratio": 2.0,
            "aggressive_amp": 1.25,
            "strong_amp": 1.5,
        },
        "trend": {
            "ema_fast": 8,
            "ema_mid": 21,
            "ema_slow": 50,
            "band_multiplier": 2.5,
            "adaptive": False,
        },
        "signal": {
            "min_confluence": 3,
            "volume_threshold": 1.8,
            "trend_filter": TrendFilter.EITHER,
            "triggers": (ORDER_BLOCK, STRUCTURE),
        },
        "weights": {
            EMA_TREND: _w(25, 4),
            DELTA: _w(30, 3),
            STRUCTURE: _w(15, 50 / 15),
            ORDER_BLOCK: _w(15, 5),
            FAIR_VALUE_GAP: _w(5, 1),
            TREND_BAND: _w(10, 10),
        },
    },
    "volume_cluster_absorption": {
        "volume_cluster": {"lookback": 30, "cluster_pct": 0.5},
        "absorption": {"lookback": 20, "sensitivity": 1.5},
        "signal": {
            "min_confluence": 2,
            "volume_threshold": 1.5,
            "triggers": (VOLUME_CLUSTER, ABSORPTION),
        },
        "weights": {
            VOLUME_CLUSTER: _w(50, 2),
            ABSORPTION: _w(30, 5),
            TREND_BAND: _w(20, 5),
        },
    },
}


def _merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Merge *overrides* into *base*; nested settings dicts merge key-wise."""
    merged = dict(base)
    for key, val in overrides.items():
        if key != "weights" and isinstance(val, dict) and isinstance(
            merged.get(key), dict
        ):
            merged[key] = {**merged[key], **val}
        else:
            merged[key] = val
    return merged


def get_preset(name: str, **overrides: Any) -> EngineConfig:
    """Build the named preset, optionally overriding individual settings.

    Nested settings merge key-wise (``signal={"min_confluence": 4}`` keeps
    the preset's other signal options); ``weights`` replaces the whole map.

    Raises:
        KeyError: Unknown preset name.
        pydantic.ValidationError: The resulting configuration is invalid.
    """
    if name not in PRESETS:
        raise KeyError(f"unknown preset {name!r}; choose from {sorted(PRESETS)}")
    merged = _merge({"name": name}, PRESETS[name])
    merged = _merge(merged, overrides)
    return EngineConfig.model_validate(merged)


def list_presets() -> list[str]:
    return sorted(PRESETS)


def load_config(**overrides: Any) -> EngineConfig:
    """Preset selected by the ``CONVICTION_PRESET`` env var (default: "default")."""
    name = os.getenv(DEFAULT_PRESET_ENV, "default").strip() or "default"
    logger.debug("Loading preset %s", name)
    return get_preset(name, **overrides)
