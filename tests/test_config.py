"""
Unit tests for engine configuration and presets.

Tests cover:
  - Every preset validates and keeps caps summing to 100
  - get_preset(): overrides merge key-wise, unknown name -> KeyError
  - Validation: caps, unknown factors, triggers, periods, EMA ordering
  - Derived values: enabled detectors, warm-up, history capacity
  - load_config(): CONVICTION_PRESET environment variable
"""

import pytest
from pydantic import ValidationError

from conviction_lib.core.config import (
    FACTOR_NAMES,
    PRESETS,
    EngineConfig,
    FactorWeight,
    TrendFilter,
    get_preset,
    list_presets,
    load_config,
)


# ═══════════════════════════════════════════════════════════════════════════
# Presets
# ═══════════════════════════════════════════════════════════════════════════


class TestPresets:
    def test_all_expected_presets_exist(self):
        assert set(list_presets()) == {
            "default",
            "institutional_flow_alpha",
            "apex_liquidity_pro",
            "elite_momentum_pro",
            "sentinel_pro",
            "quantum_delta_pro",
            "volume_cluster_absorption",
        }

    @pytest.mark.parametrize("name", sorted(PRESETS))
    def test_preset_is_valid(self, name):
        cfg = get_preset(name)
        assert cfg.name == name
        assert sum(w.cap for w in cfg.weights.values()) == pytest.approx(100.0)
        assert set(cfg.signal.triggers) <= cfg.enabled
        assert cfg.enabled <= set(FACTOR_NAMES)

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            get_preset("does_not_exist")

    def test_nested_override_merges(self):
        cfg = get_preset("sentinel_pro", signal={"min_confluence": 5})
        assert cfg.signal.min_confluence == 5
        assert cfg.signal.volume_threshold == pytest.approx(1.7)
        assert cfg.signal.trend_filter == TrendFilter.BOTH

    def test_preset_specific_values(self):
        assert get_preset("sentinel_pro").structure.period == 8
        assert get_preset("quantum_delta_pro").order_block.band_pct == pytest.approx(0.02)
        assert get_preset("apex_liquidity_pro").trend.adaptive is False

    def test_elite_adaptive_band_and_weights(self):
        cfg = get_preset("elite_momentum_pro")
        assert (cfg.trend.high_vol_ratio, cfg.trend.low_vol_ratio) == (1.3, 0.7)
        assert (cfg.trend.widen, cfg.trend.tighten) == (1.15, 0.85)
        assert cfg.weights["delta"].cap == 15
        assert cfg.weights["confluence"].cap == 10
        assert not {"trend_band", "divergence", "volume_cluster"} & cfg.enabled

    def test_sentinel_plain_band_and_delta_tiers(self):
        cfg = get_preset("sentinel_pro")
        assert cfg.trend.adaptive is False
        assert (cfg.delta.aggression, cfg.delta.strong_ratio) == (1.5, 2.0)
        assert (cfg.delta.aggressive_amp, cfg.delta.strong_amp) == (1.25, 1.5)

    def test_flow_alpha_momentum_factors(self):
        cfg = get_preset("institutional_flow_alpha")
        assert cfg.weights["rsi"].cap == 10
        assert cfg.weights["macd"].cap == 5
        assert cfg.weights["liquidity"].cap == 0

    def test_apex_profile_factors(self):
        cfg = get_preset("apex_liquidity_pro")
        assert {"vpoc", "manipulation"} <= cfg.enabled
        assert cfg.delta.strong_amp == 1.0

    def test_config_is_frozen(self):
        cfg = get_preset("default")
        with pytest.raises(ValidationError):
            cfg.name = "changed"


# ═══════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════


class TestValidation:
    def test_caps_must_sum_to_100(self):
        with pytest.raises(ValidationError, match="sum to 100"):
            EngineConfig(weights={"absorption": FactorWeight(cap=50, norm=1)})

    def test_unknown_factor(self):
        with pytest.raises(ValidationError, match="unknown factors"):
            EngineConfig(weights={"moon_phase": FactorWeight(cap=100, norm=1)})

    def test_trigger_must_be_enabled(self):
        with pytest.raises(ValidationError, match="trigger"):
            EngineConfig(
                weights={"absorption": FactorWeight(cap=100, norm=1)},
                signal={"triggers": ("liquidity",)},
            )

    def test_non_positive_period(self):
        with pytest.raises(ValidationError):
            get_preset("default", absorption={"lookback": 0})

    def test_negative_threshold(self):
        with pytest.raises(ValidationError):
            get_preset("default", signal={"volume_threshold": -1.0})

    def test_zero_norm(self):
        with pytest.raises(ValidationError):
            FactorWeight(cap=10, norm=0)

    def test_ema_order(self):
        with pytest.raises(ValidationError, match="fast < mid < slow"):
            get_preset("default", trend={"ema_fast": 30, "ema_mid": 21})

    def test_delta_tiers_ordered(self):
        with pytest.raises(ValidationError, match="strong_ratio"):
            get_preset("default", delta={"aggression": 2.5, "strong_ratio": 2.0})

    def test_macd_order(self):
        with pytest.raises(ValidationError, match="fast < slow"):
            get_preset("default", macd={"fast": 26, "slow": 12})

    def test_extra_keys_rejected(self):
        with pytest.raises(ValidationError):
            get_preset("default", absorption={"lookbak": 10})


# ═══════════════════════════════════════════════════════════════════════════
# Derived values
# ═══════════════════════════════════════════════════════════════════════════


class TestDerived:
    def test_enabled_detectors_follow_weights(self):
        cfg = get_preset("volume_cluster_absorption")
        assert cfg.enabled_detectors == ("absorption", "volume_cluster")

    def test_warmup_covers_slowest_factor(self):
        cfg = get_preset("default")
        assert cfg.warmup_bars == cfg.trend.ema_slow

    def test_warmup_without_ema(self):
        cfg = get_preset("volume_cluster_absorption")
        assert cfg.warmup_bars == cfg.volume_cluster.lookback + 1

    def test_warmup_covers_momentum_factors(self):
        cfg = get_preset("institutional_flow_alpha", trend={"ema_slow": 30, "ema_mid": 21})
        assert cfg.warmup_bars == cfg.macd.slow + cfg.macd.signal - 1

    def test_history_capacity_covers_windows(self):
        cfg = get_preset("default")
        assert cfg.history_capacity >= cfg.liquidity.required_bars()
        assert cfg.history_capacity >= cfg.structure.required_bars()
        assert cfg.history_capacity >= cfg.volume_cluster.required_bars()


class TestLoadConfig:
    def test_default_without_env(self, monkeypatch):
        monkeypatch.delenv("CONVICTION_PRESET", raising=False)
        assert load_config().name == "default"

    def test_env_selects_preset(self, monkeypatch):
        monkeypatch.setenv("CONVICTION_PRESET", "apex_liquidity_pro")
        assert load_config().name == "apex_liquidity_pro"

    def test_env_unknown_preset(self, monkeypatch):
        monkeypatch.setenv("CONVICTION_PRESET", "nope")
        with pytest.raises(KeyError):
            load_config()
