"""
conviction_lib — Streaming multi-factor conviction engine.

Scores OHLCV bars one at a time by combining order-flow and price-action
detectors with an adaptive trend band, and emits Buy/Sell signals when
enough factors agree.

    from conviction_lib import ConvictionEngine, Bar, get_preset

    engine = ConvictionEngine(get_preset("elite_momentum_pro"))
    result = engine.process(Bar(open=100, high=101, low=99, close=100.5, volume=1500))
"""

from conviction_lib.core import Bar, EngineConfig, EvaluationResult, InvalidBar, get_preset
from conviction_lib.trading import ConvictionEngine, evaluate_frame

__version__ = "0.1.0"

__all__ = [
    "Bar",
    "ConvictionEngine",
    "EngineConfig",
    "EvaluationResult",
    "InvalidBar",
    "evaluate_frame",
    "get_preset",
]
