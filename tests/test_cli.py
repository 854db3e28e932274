"""
Tests for the ``conviction-replay`` command line entry point.

Tests cover:
  - Table output, one line per bar, date column kept as label
  - --json emits one parseable object per bar
  - --signals-only filters non-signal bars
  - Unreadable file and missing columns -> exit code 2
"""

import json
import logging

import pytest
from conftest import _random_walk_ohlcv

from conviction_lib.cli import build_parser, main


@pytest.fixture(autouse=True)
def _restore_root_logging():
    """main() installs its own root handler; put the original ones back."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def csv_path(tmp_path):
    df = _random_walk_ohlcv(n=150, seed=7)
    df.index.name = "Date"
    path = tmp_path / "bars.csv"
    df.to_csv(path)
    return path


class TestParser:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("CONVICTION_PRESET", raising=False)
        args = build_parser().parse_args(["bars.csv"])
        assert args.preset == "default"
        assert args.signals_only is False
        assert args.json_output is False

    def test_env_preset_default(self, monkeypatch):
        monkeypatch.setenv("CONVICTION_PRESET", "sentinel_pro")
        args = build_parser().parse_args(["bars.csv"])
        assert args.preset == "sentinel_pro"

    def test_unknown_preset_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["bars.csv", "--preset", "nope"])


class TestMain:
    def test_table_output(self, csv_path, capsys):
        assert main([str(csv_path)]) == 0
        out = capsys.readouterr().out
        lines = out.strip().splitlines()
        # header + index-name line + one line per bar
        assert len(lines) == 150 + 2
        assert "composite" in lines[0]
        assert "2025-01-06" in out

    def test_json_output(self, csv_path, capsys):
        assert main([str(csv_path), "--json", "--preset", "apex_liquidity_pro"]) == 0
        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 150
        first = json.loads(lines[0])
        assert first["index"] == 0
        assert first["signal"] in ("buy", "sell", "none")
        assert first["label"].startswith("2025-01-06")
        assert json.loads(lines[-1])["index"] == 149

    def test_signals_only(self, csv_path, capsys):
        assert main([str(csv_path), "--json", "--signals-only"]) == 0
        for line in capsys.readouterr().out.strip().splitlines():
            assert json.loads(line)["signal"] != "none"

    def test_missing_file(self, tmp_path, capsys):
        assert main([str(tmp_path / "absent.csv")]) == 2
        assert capsys.readouterr().out == ""

    def test_missing_columns(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("Open,High,Low\n1,2,0.5\n")
        assert main([str(path)]) == 2
