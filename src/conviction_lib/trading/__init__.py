"""
conviction_lib.trading — The streaming engine and its pandas adapter.
"""

from conviction_lib.trading.adapter import evaluate_frame, results_to_dataframe
from conviction_lib.trading.engine import ConvictionEngine

__all__ = [
    "ConvictionEngine",
    "evaluate_frame",
    "results_to_dataframe",
]
