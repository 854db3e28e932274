"""
Bar model and the bounded, append-only bar history owned by an engine.

A ``Bar`` is one OHLCV observation.  ``BarSeries`` keeps bars in arrival
order behind a ring buffer: logical indices keep growing for the life of
the series while only the most recent ``capacity`` bars stay addressable.

Detectors never walk the full history; they ask for a ``window(n)`` of
the last *n* bars as NumPy arrays and work on that.

Usage:
    from conviction_lib.core.bars import Bar, BarSeries, InvalidBar

    series = BarSeries(capacity=128)
    series.append(Bar(open=100.0, high=101.0, low=99.5, close=100.6, volume=1200))
    recent = series.lookback(10)
    win = series.window(20)
    print(win.close[-1], win.volume.mean())
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, replace
from typing import NamedTuple, Optional

import numpy as np

logger = logging.getLogger("bars")


class InvalidBar(ValueError):
    """Raised when a bar violates the OHLCV ordering / non-negativity rules.

    The series is left untouched when this is raised.
    """


@dataclass(frozen=True)
class Bar:
    """One immutable OHLCV bar.

    ``index`` is the 0-based logical position in the series.  Leave it as
    ``None`` and ``BarSeries.append`` assigns the next index.
    """

    open: float
    high: float
    low: float
    close: float
    volume: float
    index: Optional[int] = None

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def is_up(self) -> bool:
        return self.close > self.open

    def close_position(self) -> Optional[float]:
        """Where the close sits inside the bar's range (0 = low, 1 = high).

        Returns ``None`` for a zero-range bar.
        """
        rng = self.high - self.low
        if rng <= 0:
            return None
        return (self.close - self.low) / rng


def validate_bar(bar: Bar, expected_index: int) -> Bar:
    """Raise ``InvalidBar`` if *bar* cannot be the next bar of a series.

    Returns the bar with every price and the volume coerced to ``float``;
    the ordering checks run on those coerced values.
    """
    fields = {}
    for name in ("open", "high", "low", "close", "volume"):
        val = getattr(bar, name)
        try:
            f = float(val)
        except (TypeError, ValueError) as exc:
            raise InvalidBar(f"{name} is not numeric: {val!r}") from exc
        if not math.isfinite(f):
            raise InvalidBar(f"{name} is not finite: {val!r}")
        fields[name] = f

    o, h, lo, c, v = (fields[k] for k in ("open", "high", "low", "close", "volume"))
    if v < 0:
        raise InvalidBar(f"volume must be >= 0, got {v}")
    if min(o, h, lo, c) < 0:
        raise InvalidBar("prices must be >= 0")
    if lo > h:
        raise InvalidBar(f"low {lo} is above high {h}")
    if not (lo <= o <= h):
        raise InvalidBar(f"open {o} outside [{lo}, {h}]")
    if not (lo <= c <= h):
        raise InvalidBar(f"close {c} outside [{lo}, {h}]")
    if bar.index is not None and bar.index != expected_index:
        raise InvalidBar(
            f"out-of-order bar: index {bar.index}, expected {expected_index}"
        )
    return replace(bar, **fields)


class BarWindow(NamedTuple):
    """The last *n* bars as float arrays, oldest first (``[-1]`` is current)."""

    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray

    def __len__(self) -> int:
        return len(self.close)


class BarSeries:
    """Append-only chronological bar store backed by a ring buffer.

    Args:
        capacity: How many of the most recent bars stay addressable.
            Older bars are evicted but logical indices never reset.
    """

    def __init__(self, capacity: int = 256):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._bars: deque[Bar] = deque(maxlen=capacity)
        self._count = 0

    def __len__(self) -> int:
        """Total number of bars ever appended."""
        return self._count

    @property
    def available(self) -> int:
        """Number of bars currently held in the buffer."""
        return len(self._bars)

    @property
    def next_index(self) -> int:
        return self._count

    def append(self, bar: Bar) -> Bar:
        """Validate and append *bar*; return it with its logical index set."""
        checked = validate_bar(bar, self._count)
        stored = checked
        if stored.index is None:
            stored = replace(stored, index=self._count)
        self._bars.append(stored)
        self._count += 1
        return stored

    def bar(self, i: int) -> Bar:
        """Bar at logical index *i*."""
        oldest = self._count - len(self._bars)
        if i < oldest or i >= self._count:
            raise IndexError(
                f"bar {i} not available (held range {oldest}..{self._count - 1})"
            )
        return self._bars[i - oldest]

    def ago(self, k: int) -> Bar:
        """Bar *k* bars before the most recent one (``ago(0)`` is current)."""
        return self.bar(self._count - 1 - k)

    @property
    def last(self) -> Optional[Bar]:
        return self._bars[-1] if self._bars else None

    def lookback(self, n: int) -> list[Bar]:
        """The *n* most recent bars (fewer if history is shorter), oldest first."""
        if n <= 0:
            return []
        n = min(n, len(self._bars))
        return list(self._bars)[-n:]

    def window(self, n: int) -> BarWindow:
        """The *n* most recent bars as NumPy arrays (fewer if not held)."""
        bars = self.lookback(n)
        if not bars:
            empty = np.empty(0, dtype=float)
            return BarWindow(empty, empty, empty, empty, empty)
        arr = np.array(
            [(b.open, b.high, b.low, b.close, b.volume) for b in bars], dtype=float
        )
        return BarWindow(arr[:, 0], arr[:, 1], arr[:, 2], arr[:, 3], arr[:, 4])
