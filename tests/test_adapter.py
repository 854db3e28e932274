"""
Unit tests for the pandas adapter.

Tests cover:
  - evaluate_frame(): one row per bar, index preserved, score columns
  - Invalid rows skipped and logged, valid rows unaffected
  - Lower-case column names accepted, missing columns rejected
  - Continuing an existing engine across frames
"""

import logging

import numpy as np
import pandas as pd
import pytest

from conviction_lib.core.config import get_preset
from conviction_lib.trading.adapter import evaluate_frame, iter_results, results_to_dataframe
from conviction_lib.trading.engine import ConvictionEngine


class TestEvaluateFrame:
    def test_one_row_per_bar(self, ohlcv_df):
        out = evaluate_frame(ohlcv_df, get_preset("default"))
        assert len(out) == len(ohlcv_df)
        assert out.index.equals(ohlcv_df.index)
        for col in ("composite", "trend_band", "signal", "strength", "score_absorption"):
            assert col in out.columns
        assert out["composite"].between(-100, 100).all()
        assert set(out["signal"].unique()) <= {"buy", "sell", "none"}

    def test_score_columns_follow_preset(self, ohlcv_df):
        out = evaluate_frame(ohlcv_df.head(50), get_preset("volume_cluster_absorption"))
        score_cols = sorted(c for c in out.columns if c.startswith("score_"))
        assert score_cols == ["score_absorption", "score_trend_band", "score_volume_cluster"]

    def test_invalid_rows_skipped(self, ohlcv_df, caplog):
        df = ohlcv_df.head(60).copy()
        bad = df.index[[10, 20]]
        df.loc[bad[0], "Close"] = np.nan
        df.loc[bad[1], "Low"] = df.loc[bad[1], "High"] + 5
        with caplog.at_level(logging.WARNING, logger="adapter"):
            out = evaluate_frame(df, get_preset("default"))
        assert len(out) == 58
        assert bad[0] not in out.index
        assert bad[1] not in out.index
        assert "Skipping row" in caplog.text
        assert list(out["bar"]) == list(range(58))

    def test_lowercase_columns(self, ohlcv_df):
        df = ohlcv_df.head(30).rename(columns=str.lower)
        out = evaluate_frame(df, get_preset("default"))
        assert len(out) == 30

    def test_missing_columns(self, ohlcv_df):
        with pytest.raises(ValueError, match="missing OHLCV"):
            evaluate_frame(ohlcv_df.drop(columns=["Volume"]), get_preset("default"))

    def test_matches_direct_engine(self, ohlcv_df):
        df = ohlcv_df.head(120)
        out = evaluate_frame(df, get_preset("sentinel_pro"))
        engine = ConvictionEngine(get_preset("sentinel_pro"))
        _, results = zip(*iter_results(df, engine))
        direct = results_to_dataframe(results, index=df.index)
        pd.testing.assert_frame_equal(out, direct)

    def test_continue_existing_engine(self, ohlcv_df):
        engine = ConvictionEngine(get_preset("default"))
        first = evaluate_frame(ohlcv_df.head(100), engine=engine)
        second = evaluate_frame(ohlcv_df.iloc[100:200], engine=engine)
        whole = evaluate_frame(ohlcv_df.head(200), get_preset("default"))
        pd.testing.assert_frame_equal(pd.concat([first, second]), whole)

    def test_empty_frame(self):
        empty = pd.DataFrame(columns=["Open", "High", "Low", "Close", "Volume"])
        out = evaluate_frame(empty, get_preset("default"))
        assert out.empty
