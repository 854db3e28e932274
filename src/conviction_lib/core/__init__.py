"""
conviction_lib.core — Bars, configuration, result types and logging.

Re-exports the public API from each sub-module so callers can do:

    from conviction_lib.core import Bar, BarSeries, EngineConfig, get_preset
"""

from conviction_lib.core.bars import Bar, BarSeries, BarWindow, InvalidBar, validate_bar
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
from conviction_lib.core.logging_config import get_logger, setup_logging
from conviction_lib.core.models import (
    CompositeScore,
    DetectorOutput,
    Direction,
    EvaluationResult,
    Signal,
    TrendBandState,
)

__all__ = [
    # bars
    "Bar",
    "BarSeries",
    "BarWindow",
    "InvalidBar",
    "validate_bar",
    # config
    "FACTOR_NAMES",
    "PRESETS",
    "EngineConfig",
    "FactorWeight",
    "TrendFilter",
    "get_preset",
    "list_presets",
    "load_config",
    # logging_config
    "get_logger",
    "setup_logging",
    # models
    "CompositeScore",
    "DetectorOutput",
    "Direction",
    "EvaluationResult",
    "Signal",
    "TrendBandState",
]
